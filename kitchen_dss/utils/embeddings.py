# =============================================
# File: kitchen_dss/utils/embeddings.py
# Purpose: Sentence embeddings with a deterministic hash fallback
# =============================================
from __future__ import annotations
import math
import os
from functools import lru_cache
from typing import List

from loguru import logger
from sentence_transformers import SentenceTransformer

EMBEDDING_DIM = 384


@lru_cache(maxsize=1)
def get_embedding_model() -> SentenceTransformer:
    model_name = os.getenv("EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2")
    model = SentenceTransformer(model_name, device="cpu")
    return model


def _rolling_hash(text: str) -> int:
    """32-bit signed `h = h * 31 + code` over the characters of `text`."""
    h = 0
    for ch in text:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def hash_embedding(text: str, dim: int = EMBEDDING_DIM) -> List[float]:
    """
    Structural stand-in for a sentence embedding: one rolling hash per
    dimension, seeded by appending the dimension index to the text.
    Same text -> same vector, always.
    """
    text = text or ""
    # fmod keeps the sign of the hash (truncated remainder)
    vec = [math.fmod(_rolling_hash(f"{text}{i}"), 100) / 100 for i in range(dim)]
    if not any(vec):
        vec[0] = 1.0
    return vec


class EmbeddingProvider:
    """
    Turns text into fixed-length vectors.

    backend="auto": sentence-transformers model, loaded lazily on first use.
    If the model cannot be loaded, or an encode fails, the provider switches
    to `hash_embedding` for the rest of its life, so one index never mixes
    vectors from two spaces. KnowledgeBase re-embeds when that happens
    mid-build.
    backend="hash": hash vectors only (offline / tests).

    `embed` never raises.
    """

    def __init__(self, backend: str | None = None, dim: int = EMBEDDING_DIM) -> None:
        self.backend = (backend or os.getenv("DSS_EMBEDDING_BACKEND", "auto")).strip().lower()
        self.dim = dim
        self._semantic_disabled = self.backend == "hash"
        self._model_loaded = False

    @property
    def model_loaded(self) -> bool:
        return self._model_loaded

    @property
    def semantic(self) -> bool:
        return not self._semantic_disabled

    def _load_model(self):
        try:
            model = get_embedding_model()
        except Exception as e:
            logger.warning(f"[embeddings] model load failed, using hash fallback for this session: {e}")
            self._semantic_disabled = True
            return None
        dim = model.get_sentence_embedding_dimension()
        if dim is not None and dim != self.dim:
            logger.warning(f"[embeddings] model dimension {dim} != {self.dim}; using hash fallback")
            self._semantic_disabled = True
            return None
        self._model_loaded = True
        return model

    def embed(self, text: str) -> List[float]:
        if not self._semantic_disabled:
            model = self._load_model()
            if model is not None:
                try:
                    vec = model.encode([text or ""], normalize_embeddings=True)[0]
                    return [float(x) for x in vec]
                except Exception as e:
                    logger.warning(f"[embeddings] encode failed, using hash fallback for this session: {e}")
                    self._semantic_disabled = True
        return hash_embedding(text, self.dim)

    def reset(self) -> None:
        """Forget the loaded-model flag; a disabled semantic strategy stays disabled."""
        self._model_loaded = False
