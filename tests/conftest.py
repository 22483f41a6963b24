import zlib
from pathlib import Path
from unittest.mock import patch

import numpy as np
import pytest

from threadlinking.events import clear_listeners
from threadlinking.index.models import get_active_model
from threadlinking.index.store import reset_index_cache


_ENV_VARS = (
    "THREADLINKING_LOCK_TIMEOUT",
    "THREADLINKING_EMBEDDING_MODEL",
    "THREADLINKING_LOG_LEVEL",
    "CLAUDE_CODE",
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
)


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """Data directory used in place of ~/.threadlinking."""
    return tmp_path / "threadlinking-home"


@pytest.fixture(autouse=True)
def isolated_home(home: Path, monkeypatch: pytest.MonkeyPatch):
    """Point THREADLINKING_HOME at a temp directory and reset module-level state for every test."""
    monkeypatch.setenv("THREADLINKING_HOME", str(home))
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    clear_listeners()
    reset_index_cache()
    yield
    clear_listeners()
    reset_index_cache()


def text_vector(text: str, dim: int = 384) -> np.ndarray:
    """Deterministic unit vector for *text*; equal texts give equal vectors."""
    rng = np.random.default_rng(zlib.crc32(text.encode("utf-8")))
    vec = rng.standard_normal(dim).astype(np.float32)
    return vec / np.linalg.norm(vec)


class FakeTextEmbedding:
    """Stands in for fastembed.TextEmbedding so tests never download model weights."""

    def __init__(self, dim: int) -> None:
        self.dim = dim
        self.documents: list[str] = []
        self.queries: list[str] = []

    def embed(self, texts, batch_size: int = 32):
        for text in texts:
            self.documents.append(text)
            yield text_vector(text, self.dim)

    def query_embed(self, texts):
        for text in texts:
            self.queries.append(text)
            yield text_vector(text, self.dim)


@pytest.fixture
def fake_model():
    """Patch the embedder's model loader with FakeTextEmbedding."""
    cfg = get_active_model()
    model = FakeTextEmbedding(cfg.dimensions)
    with patch("threadlinking.index.embedder.get_model", return_value=(model, cfg)):
        yield model
