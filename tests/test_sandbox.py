"""Tests for the parsing-script sandbox."""

import asyncio

import pytest

from feedlens.exceptions import ScriptRejectedError
from feedlens.ingestion.sandbox import ScriptSandbox, validate_script

from conftest import rss


FEED = rss(
    {"title": "First", "link": "http://x/1", "pubDate": "Wed, 02 Oct 2024 15:00:00 +0000"},
    {"title": "Second", "link": "http://x/2"},
)


@pytest.fixture(scope="module")
def sandbox():
    return ScriptSandbox(timeout=10.0)


def test_script_returns_drafts(sandbox):
    script = """
def parse(content):
    feed = parse_feed(content)
    return [{"title": e["title"], "link": e["link"], "date": e.get("published")} for e in feed["entries"]]
"""
    result = sandbox.run_sync(script, FEED)

    assert not result.failed
    assert [d.url for d in result.drafts] == ["http://x/1", "http://x/2"]
    assert result.drafts[0].publish_date == "Wed, 02 Oct 2024 15:00:00 +0000"


def test_html_helpers(sandbox):
    page = '<ul><li><a href="/a">Alpha</a></li><li><a href="/b">Beta <b>two</b></a></li></ul>'
    script = """
def parse(content):
    return [{"title": text_of(a), "url": "http://site" + a.get("href")} for a in select(content, "li a")]
"""
    result = sandbox.run_sync(script, page)

    assert [(d.title, d.url) for d in result.drafts] == [
        ("Alpha", "http://site/a"),
        ("Beta two", "http://site/b"),
    ]


def test_raising_script_degrades(sandbox):
    result = sandbox.run_sync("def parse(content):\n    raise ValueError('bad markup')\n", "x")

    assert result.failed
    assert result.drafts == []
    assert "bad markup" in result.error


@pytest.mark.parametrize("raise_stmt", ["raise RuntimeError('boom')", "raise LookupError('boom')", "1 / 0"])
def test_common_exceptions_keep_their_message(sandbox, raise_stmt):
    result = sandbox.run_sync(f"def parse(content):\n    {raise_stmt}\n", "x")

    assert result.failed
    assert "NameError" not in result.error
    assert "boom" in result.error or "ZeroDivisionError" in result.error


def test_script_can_catch_arithmetic_errors(sandbox):
    script = """
def parse(content):
    try:
        ratio = 1 / 0
    except ZeroDivisionError:
        ratio = 0
    return [{"title": "Ratio " + str(ratio), "url": "http://x/r"}]
"""
    result = sandbox.run_sync(script, "x")

    assert not result.failed
    assert result.drafts[0].title == "Ratio 0"


def test_non_list_result_degrades(sandbox):
    result = sandbox.run_sync("def parse(content):\n    return {'title': 'x'}\n", "x")

    assert result.failed
    assert "expected list" in result.error


def test_non_mapping_items_are_dropped(sandbox):
    script = "def parse(content):\n    return ['junk', {'title': 'Kept', 'url': 'http://x/k'}, 3]\n"
    result = sandbox.run_sync(script, "x")

    assert not result.failed
    assert [d.title for d in result.drafts] == ["Kept"]


def test_timeout_kills_script():
    sandbox = ScriptSandbox(timeout=3.0)
    result = sandbox.run_sync("def parse(content):\n    while True:\n        pass\n", "x")

    assert result.failed
    assert "timed out" in result.error


def test_forbidden_builtins_unavailable(sandbox):
    result = sandbox.run_sync("def parse(content):\n    return open('/etc/passwd').read()\n", "x")

    assert result.failed
    assert "NameError" in result.error


def test_async_run(sandbox):
    script = "def parse(content):\n    return [{'title': content, 'url': 'http://x/a'}]\n"
    result = asyncio.run(sandbox.run(script, "hello"))

    assert result.drafts[0].title == "hello"


@pytest.mark.parametrize(
    "script",
    [
        "import os\ndef parse(content):\n    return []\n",
        "from os import path\ndef parse(content):\n    return []\n",
        "def parse(content):\n    return ().__class__.__bases__\n",
        "def parse(content):\n    return '{0.__class__}'.format(content)\n",
        "def parse(content):\n    global x\n    return []\n",
        "def _helper():\n    pass\ndef parse(content):\n    return []\n",
        "def parse(content):\n    return __builtins__\n",
        "def transform(content):\n    return []\n",
    ],
)
def test_rejected_scripts(script):
    with pytest.raises(ScriptRejectedError):
        validate_script(script)


def test_rejected_script_degrades(sandbox):
    result = sandbox.run_sync("import socket\ndef parse(content):\n    return []\n", "x")

    assert result.failed
    assert result.error.startswith("Script rejected")


def test_syntax_error_degrades(sandbox):
    result = sandbox.run_sync("def parse(content)\n    return []\n", "x")

    assert result.failed
    assert "syntax" in result.error.lower()
