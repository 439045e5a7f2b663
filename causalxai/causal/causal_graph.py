"""
════════════════════════════════════════════════════════════════════════════════════════════════════
CAUSAL GRAPH - Directed dependency graph over feature indices
════════════════════════════════════════════════════════════════════════════════════════════════════

Edges point from cause to effect. The graph is assumed acyclic: the caller (or the
correlation heuristic in graph_estimator, which only adds i→j for i < j) guarantees
it; cycles are not actively checked.

A graph is assembled with CausalGraphBuilder and frozen by build():

    graph = (
        CausalGraphBuilder(5, feature_names=["age", "income", "score", "limit", "debt"])
        .add_edge("age", "income")
        .add_edge("income", "limit")
        .add_edge("income", "debt")
        .add_edge("debt", "limit")
        .build()
    )
    graph.get_descendants(1)   # frozenset({3, 4})
"""

from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional, Sequence, Set, Tuple, Type, Union

from ..errors import CausalError, ConfigurationError, InvalidArgumentError

logger = logging.getLogger(__name__)

FeatureRef = Union[int, str]

_GENERIC_NAME = re.compile(r"^feature_(\d+)$")


def resolve_feature(
    ref: FeatureRef,
    num_features: int,
    feature_names: Sequence[str] = (),
    error_cls: Type[CausalError] = InvalidArgumentError,
) -> int:
    """
    Map a feature reference (index, name, or ``feature_<n>``) to an index.

    Raises ``error_cls`` for unknown names and out-of-range indices.
    """
    if isinstance(ref, bool):
        raise error_cls(f"Feature reference must be an index or a name, got {ref!r}")

    if isinstance(ref, str):
        if ref in feature_names:
            return list(feature_names).index(ref)
        match = _GENERIC_NAME.match(ref)
        if match is None:
            raise error_cls(f"Unknown feature: '{ref}'")
        index = int(match.group(1))
    else:
        try:
            index = int(ref)
        except (TypeError, ValueError):
            raise error_cls(f"Feature reference must be an index or a name, got {ref!r}")
        if index != ref:
            raise error_cls(f"Feature index must be an integer, got {ref!r}")

    if not 0 <= index < num_features:
        label = f"'{ref}'" if isinstance(ref, str) else str(index)
        raise error_cls(f"Feature {label} out of range [0, {num_features})")
    return index


@dataclass(frozen=True)
class CausalGraph:
    """
    Grafo causal imutável (DAG) sobre índices de features.
    """
    num_features: int
    children: Tuple[FrozenSet[int], ...]
    feature_names: Tuple[str, ...] = ()

    # Metadados
    source: str = "supplied"   # "supplied" | "estimated"
    created_at: datetime = field(default_factory=datetime.now, compare=False)

    # ──────────────────────────────────────────────────────────────────────
    # Navigation
    # ──────────────────────────────────────────────────────────────────────

    def _check(self, feature: int) -> int:
        return resolve_feature(feature, self.num_features, self.feature_names)

    def name_of(self, feature: int) -> str:
        if self.feature_names:
            return self.feature_names[feature]
        return f"feature_{feature}"

    def get_children(self, feature: int) -> List[int]:
        """Features directly caused by ``feature``, sorted."""
        return sorted(self.children[self._check(feature)])

    def get_parents(self, feature: int) -> List[int]:
        """Features that directly cause ``feature``, sorted."""
        feature = self._check(feature)
        return [i for i, kids in enumerate(self.children) if feature in kids]

    def has_edge(self, cause: int, effect: int) -> bool:
        return self._check(effect) in self.children[self._check(cause)]

    def get_descendants(self, feature: int) -> FrozenSet[int]:
        """
        Transitive closure of the children of ``feature``.

        Breadth-first, children visited in index order, so the result does not depend
        on edge insertion order. Never contains ``feature`` itself, even if the
        caller broke the acyclicity contract.
        """
        feature = self._check(feature)
        descendants: Set[int] = set()
        queue = deque([feature])
        while queue:
            current = queue.popleft()
            for child in sorted(self.children[current]):
                if child not in descendants and child != feature:
                    descendants.add(child)
                    queue.append(child)
        return frozenset(descendants)

    def get_ancestors(self, feature: int) -> FrozenSet[int]:
        """Todos os ancestrais (causas diretas e indiretas)."""
        feature = self._check(feature)
        ancestors: Set[int] = set()
        queue = deque([feature])
        while queue:
            current = queue.popleft()
            for parent in self.get_parents(current):
                if parent not in ancestors and parent != feature:
                    ancestors.add(parent)
                    queue.append(parent)
        return frozenset(ancestors)

    def path_exists(self, source: int, sink: int) -> bool:
        return self._check(sink) in self.get_descendants(source)

    def get_adjustment_set(self, treatment: int, outcome: int) -> FrozenSet[int]:
        """
        Common ancestors of treatment and outcome (naive backdoor adjustment set).
        """
        return self.get_ancestors(treatment) & self.get_ancestors(outcome)

    def find_paths(self, source: int, sink: int, max_depth: int) -> List[Tuple[int, ...]]:
        """
        All cycle-free directed paths from ``source`` to ``sink`` with at most
        ``max_depth`` edges, in lexicographic order of node indices.
        """
        source = self._check(source)
        sink = self._check(sink)
        if max_depth <= 0:
            raise InvalidArgumentError(f"max_depth must be positive, got {max_depth}")
        if source == sink:
            return []

        paths: List[Tuple[int, ...]] = []

        def _walk(path: List[int]) -> None:
            current = path[-1]
            if current == sink:
                paths.append(tuple(path))
                return
            if len(path) - 1 >= max_depth:
                return
            for child in sorted(self.children[current]):
                if child not in path:
                    path.append(child)
                    _walk(path)
                    path.pop()

        _walk([source])
        return paths

    # ──────────────────────────────────────────────────────────────────────
    # Export
    # ──────────────────────────────────────────────────────────────────────

    def edges(self) -> List[Tuple[int, int]]:
        return [(i, j) for i, kids in enumerate(self.children) for j in sorted(kids)]

    @property
    def n_edges(self) -> int:
        return sum(len(kids) for kids in self.children)

    def to_dict(self) -> Dict:
        return {
            "num_features": self.num_features,
            "nodes": [
                {"index": i, "name": self.name_of(i)} for i in range(self.num_features)
            ],
            "edges": [
                {"source": i, "target": j} for i, j in self.edges()
            ],
            "n_edges": self.n_edges,
            "source": self.source,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_edges(
        cls,
        num_features: int,
        edges: Sequence[Tuple[FeatureRef, FeatureRef]],
        feature_names: Optional[Sequence[str]] = None,
    ) -> "CausalGraph":
        builder = CausalGraphBuilder(num_features, feature_names)
        for cause, effect in edges:
            builder.add_edge(cause, effect)
        return builder.build()

    @classmethod
    def empty(cls, num_features: int, feature_names: Optional[Sequence[str]] = None) -> "CausalGraph":
        return CausalGraphBuilder(num_features, feature_names).build()


class CausalGraphBuilder:
    """
    Construtor de grafos causais.

    Edges can be given by index or by feature name. Duplicate edges are idempotent.
    """

    def __init__(self, num_features: int, feature_names: Optional[Sequence[str]] = None):
        if num_features <= 0:
            raise ConfigurationError(f"Graph needs at least one feature, got {num_features}")
        names = tuple(feature_names) if feature_names is not None else ()
        if names and len(names) != num_features:
            raise ConfigurationError(
                f"Expected {num_features} feature names, got {len(names)}"
            )
        self.num_features = num_features
        self.feature_names = names
        self._children: List[Set[int]] = [set() for _ in range(num_features)]

    def _resolve(self, ref: FeatureRef) -> int:
        return resolve_feature(ref, self.num_features, self.feature_names, ConfigurationError)

    def add_edge(self, cause: FeatureRef, effect: FeatureRef) -> "CausalGraphBuilder":
        """Adiciona uma relação causal cause → effect."""
        i = self._resolve(cause)
        j = self._resolve(effect)
        if i == j:
            raise ConfigurationError(f"Self-loop on feature {i} is not a causal edge")
        self._children[i].add(j)
        return self

    def build(self, source: str = "supplied") -> CausalGraph:
        """Constrói o grafo causal final."""
        graph = CausalGraph(
            num_features=self.num_features,
            children=tuple(frozenset(kids) for kids in self._children),
            feature_names=self.feature_names,
            source=source,
        )
        logger.debug(f"Built causal graph: {graph.num_features} features, {graph.n_edges} edges")
        return graph
