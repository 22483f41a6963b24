"""Embedder: turn thread summaries, snippets and queries into vectors with fastembed."""
from __future__ import annotations

import logging
import threading

import numpy as np

from threadlinking.index.models import get_active_model

logger = logging.getLogger(__name__)

BATCH_SIZE = 32

_model = None
_loaded_model_name: str | None = None
# Guards _model and _loaded_model_name against concurrent load by multiple threads
# (e.g. a background index update racing a semantic search in the MCP server).
_model_lock = threading.Lock()


def get_model():
    global _model, _loaded_model_name
    cfg = get_active_model()
    if _model is not None and _loaded_model_name == cfg.name:
        return _model, cfg
    with _model_lock:
        if _model is None or _loaded_model_name != cfg.name:
            logger.info("Loading embedding model: %s", cfg.name)
            from fastembed import TextEmbedding
            kwargs = {}
            if cfg.file_name:
                kwargs["model_file"] = cfg.file_name
            _model = TextEmbedding(cfg.name, **kwargs)
            _loaded_model_name = cfg.name
            logger.info("Embedding model loaded")
    return _model, cfg


def reset_model() -> None:
    """Clear the cached model. Intended for use in tests only."""
    global _model, _loaded_model_name
    with _model_lock:
        _model = None
        _loaded_model_name = None


def _normalize(raw: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(raw, axis=1, keepdims=True)
    return (raw / np.where(norms == 0, 1, norms)).astype(np.float32)


def embed(texts: list[str]) -> list[np.ndarray]:
    """Embed documents. Returns one normalized float32 vector per text."""
    if not texts:
        return []
    model, cfg = get_model()
    out: list[np.ndarray] = []
    for start in range(0, len(texts), BATCH_SIZE):
        batch = [f"{cfg.document_prefix}{t}" for t in texts[start:start + BATCH_SIZE]]
        raw = np.array(list(model.embed(batch, batch_size=BATCH_SIZE)))
        normalized = _normalize(raw)
        out.extend(normalized[i] for i in range(len(batch)))
    return out


def embed_one(text: str) -> np.ndarray:
    """Embed a single document text."""
    return embed([text])[0]


def embed_query(text: str) -> np.ndarray:
    """Embed a search query string. Returns a normalized float32 vector."""
    model, cfg = get_model()
    raw = np.array(list(model.query_embed([f"{cfg.search_prefix}{text}"])))
    return _normalize(raw)[0]
