# =============================================
# File: tests/test_embeddings.py
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import numpy as np

from kitchen_dss.utils import embeddings as emb
from kitchen_dss.utils.embeddings import EMBEDDING_DIM, EmbeddingProvider, hash_embedding


class _FakeModel:
    def __init__(self, dim=EMBEDDING_DIM, fail_encode=False):
        self.dim = dim
        self.fail_encode = fail_encode
        self.calls = 0

    def get_sentence_embedding_dimension(self):
        return self.dim

    def encode(self, texts, normalize_embeddings=False):
        self.calls += 1
        if self.fail_encode:
            raise RuntimeError("encode exploded")
        v = np.ones((len(texts), self.dim), dtype=np.float32)
        return v / np.linalg.norm(v[0])


def test_hash_embedding_is_deterministic():
    a = hash_embedding("Order ORD-1 at Spice Route")
    b = hash_embedding("Order ORD-1 at Spice Route")
    assert a == b
    assert len(a) == EMBEDDING_DIM


def test_hash_embedding_differs_by_text_and_stays_in_range():
    a = hash_embedding("rejected orders in Delhi")
    b = hash_embedding("completed orders in Pune")
    assert a != b
    assert all(-1.0 < x < 1.0 for x in a)


def test_hash_embedding_custom_dimension():
    assert len(hash_embedding("x", dim=16)) == 16


def test_rolling_hash_wraps_to_signed_32_bit():
    h = emb._rolling_hash("a much longer piece of text that overflows thirty two bits")
    assert -(2 ** 31) <= h < 2 ** 31


def test_hash_backend_never_loads_model(monkeypatch):
    def _boom():
        raise AssertionError("model must not load")
    monkeypatch.setattr(emb, "get_embedding_model", _boom)
    p = EmbeddingProvider(backend="hash")
    assert p.embed("hello") == hash_embedding("hello")
    assert p.model_loaded is False
    assert p.semantic is False


def test_model_load_failure_switches_to_hash_for_good(monkeypatch):
    calls = {"n": 0}

    def _fail():
        calls["n"] += 1
        raise OSError("no weights offline")

    monkeypatch.setattr(emb, "get_embedding_model", _fail)
    p = EmbeddingProvider(backend="auto")
    assert p.embed("first") == hash_embedding("first")
    assert p.embed("second") == hash_embedding("second")
    assert calls["n"] == 1  # not retried after the first failure
    assert p.semantic is False
    assert p.model_loaded is False


def test_semantic_model_used_when_available(monkeypatch):
    model = _FakeModel()
    monkeypatch.setattr(emb, "get_embedding_model", lambda: model)
    p = EmbeddingProvider(backend="auto")
    vec = p.embed("Order ORD-1")
    assert len(vec) == EMBEDDING_DIM
    assert abs(float(np.linalg.norm(vec)) - 1.0) < 1e-5
    assert p.model_loaded is True


def test_dimension_mismatch_falls_back(monkeypatch):
    monkeypatch.setattr(emb, "get_embedding_model", lambda: _FakeModel(dim=768))
    p = EmbeddingProvider(backend="auto")
    assert p.embed("abc") == hash_embedding("abc")
    assert p.semantic is False


def test_encode_failure_switches_to_hash_for_good(monkeypatch):
    model = _FakeModel(fail_encode=True)
    monkeypatch.setattr(emb, "get_embedding_model", lambda: model)
    p = EmbeddingProvider(backend="auto")
    assert p.embed("abc") == hash_embedding("abc")
    assert p.semantic is False
    assert p.embed("def") == hash_embedding("def")
    assert model.calls == 1  # the model is not asked again


def test_reset_clears_loaded_flag(monkeypatch):
    monkeypatch.setattr(emb, "get_embedding_model", lambda: _FakeModel())
    p = EmbeddingProvider(backend="auto")
    p.embed("x")
    assert p.model_loaded is True
    p.reset()
    assert p.model_loaded is False
