"""Tests for the domain models."""

import warnings
from types import SimpleNamespace

from feedlens.models import EmbeddingStatus, Record


def test_record_from_row_object():
    row = SimpleNamespace(
        id=3,
        created_at=None,
        source_id=1,
        title="Title",
        url="http://x/3",
        body=None,
        summary="Short",
        publish_date="2024-10-01",
        author=None,
        is_read=False,
        is_favorite=True,
        embedding_status="completed",
    )

    with warnings.catch_warnings():
        warnings.simplefilter("error")
        record = Record.model_validate(row)

    assert record.id == 3
    assert record.is_favorite
    assert record.embedding_status == EmbeddingStatus.COMPLETED


def test_models_use_config_dict():
    assert Record.model_config.get("from_attributes") is True


def test_embedding_text_is_truncated():
    record = Record(source_id=1, title="T", url="http://x", summary="s" * 50)

    assert record.embedding_text(10) == "T\n\n" + "s" * 7
