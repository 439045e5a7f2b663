"""
════════════════════════════════════════════════════════════════════════════════════════════════════
TESTS - Causal Graph & Graph Estimator
════════════════════════════════════════════════════════════════════════════════════════════════════
"""

import logging

import numpy as np
import pytest

from causalxai.causal.causal_graph import CausalGraph, CausalGraphBuilder, resolve_feature
from causalxai.causal.corpus import TrainingCorpus
from causalxai.causal.graph_estimator import correlation_matrix, estimate_causal_graph
from causalxai.errors import ConfigurationError, InvalidArgumentError


@pytest.fixture
def diamond():
    #   0 → 1 → 3 → 4
    #   0 → 2 → 3
    return CausalGraph.from_edges(5, [(0, 1), (0, 2), (1, 3), (2, 3), (3, 4)])


class TestCausalGraphBuilder:
    """Testes para construção de grafos causais."""

    def test_add_edge_returns_builder(self):
        """Testa encadeamento de add_edge."""
        builder = CausalGraphBuilder(3)
        assert builder.add_edge(0, 1) is builder

    def test_duplicate_edges_are_idempotent(self):
        """Testa arestas duplicadas."""
        graph = CausalGraphBuilder(3).add_edge(0, 1).add_edge(0, 1).build()
        assert graph.n_edges == 1
        assert graph.edges() == [(0, 1)]

    def test_edges_by_name(self):
        """Testa arestas definidas por nome."""
        graph = (
            CausalGraphBuilder(3, feature_names=["age", "income", "limit"])
            .add_edge("age", "income")
            .add_edge("income", "limit")
            .build()
        )
        assert graph.has_edge(0, 1)
        assert graph.has_edge(1, 2)
        assert graph.name_of(1) == "income"

    def test_generic_feature_names(self):
        """Testa nomes genéricos das features."""
        graph = CausalGraphBuilder(3).add_edge("feature_0", "feature_2").build()
        assert graph.edges() == [(0, 2)]

    def test_self_loop_rejected(self):
        """Testa rejeição de auto-ciclos."""
        with pytest.raises(ConfigurationError):
            CausalGraphBuilder(3).add_edge(1, 1)

    def test_out_of_range_edge_rejected(self):
        """Testa rejeição de índices fora do intervalo."""
        with pytest.raises(ConfigurationError):
            CausalGraphBuilder(3).add_edge(0, 3)
        with pytest.raises(ConfigurationError):
            CausalGraphBuilder(3).add_edge(-1, 0)

    def test_unknown_name_rejected(self):
        """Testa rejeição de nomes desconhecidos."""
        with pytest.raises(ConfigurationError):
            CausalGraphBuilder(2, feature_names=["a", "b"]).add_edge("a", "z")

    def test_name_count_mismatch(self):
        """Testa número de nomes diferente do número de features."""
        with pytest.raises(ConfigurationError):
            CausalGraphBuilder(3, feature_names=["a", "b"])

    def test_build_is_immutable(self):
        """Testa imutabilidade do grafo construído."""
        builder = CausalGraphBuilder(3).add_edge(0, 1)
        graph = builder.build()
        builder.add_edge(1, 2)
        assert graph.edges() == [(0, 1)]


class TestCausalGraph:
    """Testes de navegação no grafo."""

    def test_descendants_transitive(self, diamond):
        """Testa descendentes transitivos."""
        assert diamond.get_descendants(0) == frozenset({1, 2, 3, 4})
        assert diamond.get_descendants(2) == frozenset({3, 4})
        assert diamond.get_descendants(4) == frozenset()

    def test_descendants_closed_and_exclude_self(self, diamond):
        """Testa fecho dos descendentes sem o próprio nó."""
        for feature in range(diamond.num_features):
            descendants = diamond.get_descendants(feature)
            assert feature not in descendants
            for d in descendants:
                assert diamond.get_descendants(d) <= descendants

    def test_descendants_independent_of_insertion_order(self):
        """Testa independência da ordem de inserção."""
        edges = [(0, 1), (0, 2), (1, 3), (2, 3), (3, 4)]
        forward = CausalGraph.from_edges(5, edges)
        backward = CausalGraph.from_edges(5, list(reversed(edges)))
        for feature in range(5):
            assert forward.get_descendants(feature) == backward.get_descendants(feature)

    def test_descendants_out_of_range(self, diamond):
        """Testa índice inválido nos descendentes."""
        with pytest.raises(InvalidArgumentError):
            diamond.get_descendants(5)

    def test_parents_and_ancestors(self, diamond):
        """Testa pais e antepassados."""
        assert diamond.get_parents(3) == [1, 2]
        assert diamond.get_ancestors(4) == frozenset({0, 1, 2, 3})
        assert diamond.get_ancestors(0) == frozenset()

    def test_path_exists(self, diamond):
        """Testa existência de caminho."""
        assert diamond.path_exists(0, 4)
        assert not diamond.path_exists(4, 0)

    def test_adjustment_set(self, diamond):
        """Testa conjunto de ajustamento."""
        # Ancestrais comuns de 1 e 2
        assert diamond.get_adjustment_set(1, 2) == frozenset({0})

    def test_find_paths_ordered(self, diamond):
        """Testa ordem lexicográfica dos caminhos."""
        assert diamond.find_paths(0, 4, max_depth=6) == [(0, 1, 3, 4), (0, 2, 3, 4)]

    def test_find_paths_depth_bound(self, diamond):
        """Testa limite de profundidade."""
        assert diamond.find_paths(0, 4, max_depth=2) == []
        assert diamond.find_paths(0, 3, max_depth=2) == [(0, 1, 3), (0, 2, 3)]

    def test_find_paths_same_node(self, diamond):
        """Testa caminhos de um nó para si próprio."""
        assert diamond.find_paths(1, 1, max_depth=3) == []

    def test_find_paths_invalid_depth(self, diamond):
        """Testa profundidade inválida."""
        with pytest.raises(InvalidArgumentError):
            diamond.find_paths(0, 4, max_depth=0)

    def test_empty_graph(self):
        """Testa grafo sem arestas."""
        graph = CausalGraph.empty(3)
        assert graph.n_edges == 0
        assert all(graph.get_descendants(i) == frozenset() for i in range(3))

    def test_to_dict(self, diamond):
        """Testa serialização do grafo."""
        d = diamond.to_dict()
        assert d["num_features"] == 5
        assert d["n_edges"] == 5
        assert {"source": 3, "target": 4} in d["edges"]
        assert d["nodes"][0]["name"] == "feature_0"
        assert d["source"] == "supplied"


class TestResolveFeature:

    def test_index_and_names(self):
        """Testa resolução por índice e por nome."""
        assert resolve_feature(2, 3) == 2
        assert resolve_feature("b", 3, ("a", "b", "c")) == 1
        assert resolve_feature("feature_2", 3) == 2
        assert resolve_feature(np.int64(1), 3) == 1

    @pytest.mark.parametrize("ref", [3, -1, "feature_9", "unknown", True, 1.5, None])
    def test_invalid(self, ref):
        """Testa referências inválidas."""
        with pytest.raises(InvalidArgumentError):
            resolve_feature(ref, 3, ("a", "b", "c"))


class TestGraphEstimator:
    """Testes para o estimador heurístico de grafos."""

    def test_correlated_pair_gets_edge(self):
        """Testa aresta entre features correlacionadas."""
        x0 = np.linspace(0, 1, 30)
        noise = np.sin(np.arange(30) * 12.9898) * 0.01
        corpus = TrainingCorpus.from_arrays(np.column_stack([x0, 2 * x0 + noise]))
        graph = estimate_causal_graph(corpus)
        assert graph.edges() == [(0, 1)]
        assert graph.source == "estimated"

    def test_edges_point_from_lower_index(self):
        """Testa orientação das arestas pelo índice."""
        x0 = np.linspace(0, 1, 30)
        corpus = TrainingCorpus.from_arrays(np.column_stack([-x0, x0, x0 ** 2]))
        graph = estimate_causal_graph(corpus)
        for cause, effect in graph.edges():
            assert cause < effect

    def test_constant_column_has_zero_correlation(self):
        """Testa coluna constante."""
        x0 = np.linspace(0, 1, 10)
        corpus = TrainingCorpus.from_arrays(np.column_stack([x0, np.full(10, 5.0), 3 * x0]))
        corr = correlation_matrix(corpus)
        assert corr.iloc[0, 1] == 0.0
        assert corr.iloc[1, 1] == 0.0
        assert corr.iloc[0, 2] == pytest.approx(1.0)
        assert not np.isnan(corr.to_numpy()).any()

        graph = estimate_causal_graph(corpus)
        assert graph.edges() == [(0, 2)]

    def test_threshold_is_strict(self):
        """Testa limiar estrito de correlação."""
        a = np.array([1.0, -1.0, 1.0, -1.0])
        b = np.array([1.0, -1.0, 1.0, 1.0])
        corpus = TrainingCorpus.from_arrays(np.column_stack([a, b]))
        corr = correlation_matrix(corpus).iloc[0, 1]
        assert estimate_causal_graph(corpus, threshold=abs(corr)).n_edges == 0
        assert estimate_causal_graph(corpus, threshold=abs(corr) - 1e-6).n_edges == 1

    def test_estimation_warns(self, caplog):
        """Testa aviso de grafo heurístico."""
        corpus = TrainingCorpus.from_arrays(np.column_stack([np.arange(5.0), np.arange(5.0)]))
        with caplog.at_level(logging.WARNING):
            estimate_causal_graph(corpus)
        assert "heuristic" in caplog.text


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
