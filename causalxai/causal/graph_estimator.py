"""
════════════════════════════════════════════════════════════════════════════════════════════════════
GRAPH ESTIMATOR - Heuristic causal graph from pairwise correlations
════════════════════════════════════════════════════════════════════════════════════════════════════

Used only when the caller does not supply a graph.

For every pair (i, j) with i < j, an edge i → j is added when |corr(i, j)| exceeds the
threshold, under the assumption that earlier feature indices are causally prior.

WARNING: this is NOT causal discovery. There is no conditioning-set search and no
collider detection, and spurious edges are expected. Decisions in regulated settings
must not rely on an estimated graph; supply one built from domain knowledge (or set
CAUSALXAI_REQUIRE_GRAPH=true to make supplying it mandatory).
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from .causal_graph import CausalGraph, CausalGraphBuilder
from .corpus import TrainingCorpus

logger = logging.getLogger(__name__)

DEFAULT_CORRELATION_THRESHOLD = 0.3

# Columns whose sum of squared deviations falls below this are treated as constant.
_ZERO_VARIANCE = 1e-10


def correlation_matrix(corpus: TrainingCorpus) -> pd.DataFrame:
    """
    Pearson correlations between all feature columns.

    A pair involving a (near) constant column has correlation 0 rather than NaN.
    """
    features = corpus.features
    centered = features - features.mean(axis=0)
    sum_sq = np.einsum("ij,ij->j", centered, centered)
    cross = centered.T @ centered

    denom = np.sqrt(np.outer(sum_sq, sum_sq))
    constant = sum_sq < _ZERO_VARIANCE
    valid = ~(constant[:, None] | constant[None, :])

    corr = np.zeros_like(cross)
    np.divide(cross, denom, out=corr, where=valid)
    np.fill_diagonal(corr, np.where(constant, 0.0, 1.0))

    names = list(corpus.feature_names)
    return pd.DataFrame(corr, index=names, columns=names)


def estimate_causal_graph(
    corpus: TrainingCorpus,
    threshold: float = DEFAULT_CORRELATION_THRESHOLD,
) -> CausalGraph:
    """
    Build a CausalGraph from the corpus with the ordered-correlation heuristic.

    Args:
        corpus: training corpus
        threshold: minimum absolute correlation for an edge (strict inequality)

    Returns:
        CausalGraph with ``source="estimated"``
    """
    corr = correlation_matrix(corpus).to_numpy()
    builder = CausalGraphBuilder(corpus.n_features, corpus.feature_names)

    n = corpus.n_features
    for i in range(n):
        for j in range(i + 1, n):
            if abs(corr[i, j]) > threshold:
                builder.add_edge(i, j)

    graph = builder.build(source="estimated")
    logger.warning(
        f"Causal graph estimated from pairwise correlations (threshold={threshold}): "
        f"{graph.n_edges} edges over {n} features. This heuristic is not sound causal "
        f"discovery and may contain spurious edges; supply a domain graph for regulated decisions."
    )
    return graph
