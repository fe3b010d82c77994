"""Tests for the local inference process and its client."""

import asyncio
import queue
import threading
from types import SimpleNamespace

import pytest

from feedlens.embedding import LocalEmbeddingProvider, build_provider
from feedlens.embedding.local import LocalInferenceWorker
from feedlens.embedding.worker import run_worker
from feedlens.exceptions import InferenceError, InferenceTimeoutError, WorkerNotStartedError

# Threads stand in for processes so the fake encoder needs no pickling
THREAD_CTX = SimpleNamespace(Queue=queue.Queue, Process=threading.Thread)


class FakeEncoder:
    def __init__(self, model: str) -> None:
        self.model = model

    def encode(self, text, normalize_embeddings=False):
        if text == "explode":
            raise RuntimeError("encoder crashed")
        return [float(len(text)), 1.0 if normalize_embeddings else 0.0]


class EncoderFactory:
    def __init__(self) -> None:
        self.loaded = []

    def __call__(self, model: str, cache_dir: str) -> FakeEncoder:
        self.loaded.append(model)
        return FakeEncoder(model)


def drain(responses: queue.Queue) -> list:
    messages = []
    while not responses.empty():
        messages.append(responses.get())
    return messages


def test_run_worker_protocol():
    requests, responses = queue.Queue(), queue.Queue()
    factory = EncoderFactory()
    for task_id, text, model in [("a", "abc", "m1"), ("b", "hello", "m1"), ("c", "x", "m2")]:
        requests.put({"task_id": task_id, "text": text, "model": model})
    requests.put(None)

    run_worker(requests, responses, "/tmp/models", load_encoder=factory)

    messages = drain(responses)
    assert messages[0] == {"status": "ready"}
    assert messages[1] == {"status": "loading", "model": "m1"}
    assert messages[2] == {"task_id": "a", "success": True, "embedding": [3.0, 1.0]}
    assert messages[3] == {"task_id": "b", "success": True, "embedding": [5.0, 1.0]}
    assert messages[4] == {"status": "loading", "model": "m2"}
    assert messages[5]["task_id"] == "c"
    assert factory.loaded == ["m1", "m2"]


def test_run_worker_reports_failures():
    requests, responses = queue.Queue(), queue.Queue()
    requests.put({"task_id": "a", "text": "explode", "model": "m1"})
    requests.put({"task_id": "b", "text": "fine", "model": "m1"})
    requests.put(None)

    run_worker(requests, responses, "/tmp/models", load_encoder=EncoderFactory())

    results = [m for m in drain(responses) if "task_id" in m]
    assert results[0]["success"] is False
    assert "encoder crashed" in results[0]["error"]
    assert results[1]["success"] is True


def test_client_round_trip():
    factory = EncoderFactory()
    worker = LocalInferenceWorker("/tmp/models", timeout=5.0, ctx=THREAD_CTX, load_encoder=factory)
    worker.start()

    async def main():
        first = await worker.embed("abc", "m1")
        both = await asyncio.gather(worker.embed("hello", "m1"), worker.embed("hi", "m1"))
        return first, both

    try:
        assert worker.wait_ready(2.0)
        first, both = asyncio.run(main())
    finally:
        worker.close()

    assert first == [3.0, 1.0]
    assert sorted(both) == [[2.0, 1.0], [5.0, 1.0]]
    assert factory.loaded == ["m1"]
    assert worker.pending_count == 0
    assert not worker.is_running


def test_client_surfaces_inference_errors():
    worker = LocalInferenceWorker(
        "/tmp/models", timeout=5.0, ctx=THREAD_CTX, load_encoder=EncoderFactory()
    )
    worker.start()
    try:
        with pytest.raises(InferenceError, match="encoder crashed"):
            asyncio.run(worker.embed("explode", "m1"))
    finally:
        worker.close()


def silent_worker(requests, responses, cache_dir):
    responses.put({"status": "ready"})
    while requests.get() is not None:
        pass


def test_round_trip_timeout():
    worker = LocalInferenceWorker("/tmp/models", timeout=0.2, ctx=THREAD_CTX, target=silent_worker)
    worker.start()
    try:
        with pytest.raises(InferenceTimeoutError):
            asyncio.run(worker.embed("never answered", "m1"))
        assert worker.pending_count == 0
    finally:
        worker.close()


def dying_worker(requests, responses, cache_dir):
    requests.get()


def test_worker_exit_fails_pending():
    worker = LocalInferenceWorker("/tmp/models", timeout=10.0, ctx=THREAD_CTX, target=dying_worker)
    worker.start()
    try:
        with pytest.raises(InferenceError, match="exited"):
            asyncio.run(worker.embed("lost", "m1"))
    finally:
        worker.close()


def test_embed_before_start():
    worker = LocalInferenceWorker("/tmp/models", ctx=THREAD_CTX)

    with pytest.raises(WorkerNotStartedError):
        asyncio.run(worker.embed("text", "m1"))


def test_local_provider_needs_running_worker():
    config = {"provider": "local", "model": "all-MiniLM-L6-v2"}
    worker = LocalInferenceWorker("/tmp/models", ctx=THREAD_CTX, load_encoder=EncoderFactory())

    with pytest.raises(WorkerNotStartedError):
        build_provider(config, worker)

    worker.start()
    try:
        provider = build_provider(config, worker)
        assert isinstance(provider, LocalEmbeddingProvider)
        assert asyncio.run(provider.embed("four")) == [4.0, 1.0]
    finally:
        worker.close()
