"""
Fixtures comuns para os testes do núcleo causal.
"""
import numpy as np
import pytest

from causalxai.causal.causal_graph import CausalGraph
from causalxai.causal.corpus import TrainingCorpus
from causalxai.feature_flags import CausalConfig, CausalSettings


class LinearModel:
    """predict(x) = w · x, counting calls."""

    def __init__(self, weights):
        self.weights = np.asarray(weights, dtype=float)
        self.calls = 0

    def predict(self, features):
        self.calls += 1
        return float(np.dot(self.weights, features))


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Isola os testes de variáveis de ambiente CAUSALXAI_*."""
    import os
    for key in list(os.environ):
        if key.startswith("CAUSALXAI_"):
            monkeypatch.delenv(key, raising=False)
    CausalSettings.reset()
    yield
    CausalSettings.reset()


@pytest.fixture
def config():
    return CausalConfig(num_samples=50, num_bootstrap=100, seed=7)


@pytest.fixture
def scenario_corpus():
    """x1 = 2 · x0 over 20 rows."""
    x0 = np.linspace(0.0, 0.9, 20)
    return TrainingCorpus.from_arrays(np.column_stack([x0, 2 * x0]), feature_names=["x0", "x1"])


@pytest.fixture
def scenario_graph():
    return CausalGraph.from_edges(2, [(0, 1)], feature_names=["x0", "x1"])


@pytest.fixture
def scenario_model():
    return LinearModel([0.3, 0.4])


@pytest.fixture
def make_model():
    return LinearModel


@pytest.fixture
def chain_corpus():
    """Three features without noise: b = 2 · a, c = a + b."""
    x0 = np.linspace(0.0, 1.9, 40)
    x1 = 2 * x0
    x2 = x0 + x1
    return TrainingCorpus.from_arrays(np.column_stack([x0, x1, x2]), feature_names=["a", "b", "c"])


@pytest.fixture
def chain_graph():
    return CausalGraph.from_edges(3, [("a", "b"), ("b", "c"), ("a", "c")], feature_names=["a", "b", "c"])
