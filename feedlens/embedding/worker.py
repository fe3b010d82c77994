"""Local inference process.

Runs in its own process and talks to the parent over two queues. Requests are
``{"task_id", "text", "model"}`` dicts; ``None`` asks the process to exit.
Replies are either status messages (``{"status": "ready"}``,
``{"status": "loading", "model": ...}``) or task results
(``{"task_id", "success", "embedding" | "error"}``).
"""

import logging
from typing import Any, Callable, List

logger = logging.getLogger(__name__)


def load_sentence_transformer(model_name: str, cache_dir: str) -> Any:
    """Load a sentence-transformers model into the model cache."""
    # Imported here so the parent process never pays for torch
    from sentence_transformers import SentenceTransformer

    return SentenceTransformer(model_name, cache_folder=cache_dir)


def _to_list(vector: Any) -> List[float]:
    if hasattr(vector, "tolist"):
        vector = vector.tolist()
    return [float(x) for x in vector]


def run_worker(
    requests: Any,
    responses: Any,
    cache_dir: str,
    load_encoder: Callable[[str, str], Any] = load_sentence_transformer,
) -> None:
    """
    Serve embedding requests until the ``None`` sentinel arrives.

    The model is loaded on the first request and stays resident; a request
    naming another model replaces it.

    Args:
        requests: Queue of incoming requests
        responses: Queue for replies
        cache_dir: Directory where models are downloaded
        load_encoder: Factory returning an object with ``encode(text, normalize_embeddings=...)``
    """
    responses.put({"status": "ready"})

    encoder = None
    current_model = None

    while True:
        request = requests.get()
        if request is None:
            break

        task_id = request.get("task_id")
        model = request.get("model")
        try:
            if encoder is None or model != current_model:
                responses.put({"status": "loading", "model": model})
                logger.info("Loading embedding model %s", model)
                encoder = load_encoder(model, cache_dir)
                current_model = model

            vector = encoder.encode(request["text"], normalize_embeddings=True)
            responses.put({"task_id": task_id, "success": True, "embedding": _to_list(vector)})
        except Exception as e:
            logger.error("Inference task %s failed: %s", task_id, e)
            responses.put({"task_id": task_id, "success": False, "error": f"{type(e).__name__}: {e}"})

    logger.info("Inference worker stopped")
