"""
Fairness decomposition of a protected attribute's effect on the prediction.

Paths from the protected feature to the outcome sink are split into:

- legitimate: at least one intermediate node, and every intermediate node is a
  declared legitimate proxy (e.g. gender → occupation → income)
- discriminatory: everything else, including the direct edge

    legitimate_effect     = sum of legitimate path contributions
    discrimination_effect = total_effect - legitimate_effect

Path contributions come from the mediation machinery, so for a model linear in the
mediators the discrimination effect equals the direct effect plus the contributions
of the discriminatory paths.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple

import numpy as np

from .causal_graph import CausalGraph, FeatureRef, resolve_feature
from .corpus import validate_instance, validate_value
from .mediation_analyzer import MediationPath, PathEffects, default_perturbed_value
from ..errors import ConfigurationError, InvalidArgumentError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FairnessDecomposition:
    """Total effect of a protected attribute split into legitimate and discriminatory parts."""
    protected_feature: int
    outcome_sink: int
    perturbed_value: float
    total_effect: float
    legitimate_effect: float
    discrimination_effect: float
    threshold: float
    exceeds_threshold: bool
    legitimate_paths: Tuple[MediationPath, ...] = ()
    discriminatory_paths: Tuple[MediationPath, ...] = ()
    legitimate_proxies: Tuple[int, ...] = ()
    used_reference_profile: bool = False
    n_excluded: int = 0
    degraded: bool = False
    graph_source: str = "supplied"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "protected_feature": self.protected_feature,
            "outcome_sink": self.outcome_sink,
            "perturbed_value": self.perturbed_value,
            "total_effect": round(self.total_effect, 6),
            "legitimate_effect": round(self.legitimate_effect, 6),
            "discrimination_effect": round(self.discrimination_effect, 6),
            "threshold": self.threshold,
            "exceeds_threshold": self.exceeds_threshold,
            "legitimate_paths": [p.to_dict() for p in self.legitimate_paths],
            "discriminatory_paths": [p.to_dict() for p in self.discriminatory_paths],
            "legitimate_proxies": list(self.legitimate_proxies),
            "used_reference_profile": self.used_reference_profile,
            "n_excluded": self.n_excluded,
            "degraded": self.degraded,
            "graph_source": self.graph_source,
        }


def is_legitimate_path(path: Tuple[int, ...], proxies: FrozenSet[int]) -> bool:
    intermediates = path[1:-1]
    return len(intermediates) > 0 and all(node in proxies for node in intermediates)


class FairnessDecomposer(PathEffects):
    """Splits a protected attribute's effect along legitimate and discriminatory paths."""

    def analyze_fairness(
        self,
        protected_feature: FeatureRef,
        graph: CausalGraph,
        legitimate_proxies: Iterable[FeatureRef],
        outcome_sink: FeatureRef,
        instance: Optional[Any] = None,
        perturbed_value: Optional[float] = None,
        threshold: Optional[float] = None,
        max_depth: Optional[int] = None,
        seed: Optional[int] = None,
        num_samples: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> FairnessDecomposition:
        """
        Decompose the effect of ``protected_feature`` on the outcome sink.

        Without an ``instance`` the corpus column-mean profile is the reference
        individual. ``seed`` and ``num_samples`` control the Monte Carlo draws shared
        by the total effect and the path contributions.
        """
        self._check_graph(graph)
        protected = resolve_feature(protected_feature, graph.num_features, graph.feature_names)
        sink = resolve_feature(outcome_sink, graph.num_features, graph.feature_names)
        if protected == sink:
            raise InvalidArgumentError("Outcome sink must differ from the protected feature")
        proxies = frozenset(
            resolve_feature(p, graph.num_features, graph.feature_names) for p in legitimate_proxies
        )

        used_reference = instance is None
        if used_reference:
            x = np.array(self.corpus.column_means(), dtype=float)
        else:
            x = validate_instance(instance, self.corpus.n_features)

        if perturbed_value is None:
            value = default_perturbed_value(self.corpus, x, protected)
        else:
            value = validate_value(perturbed_value, "Perturbed value")

        limit = self.config.fairness_threshold if threshold is None else float(threshold)
        if not np.isfinite(limit) or limit < 0:
            raise ConfigurationError(f"Fairness threshold must be non-negative, got {limit}")
        depth = self._resolve_depth(max_depth)

        parts = self.decompose(
            x, protected, graph, sink, value, depth,
            seed=seed, num_samples=num_samples, cancel_event=cancel_event,
        )

        legitimate, discriminatory = [], []
        for path, effect in zip(parts["paths"], parts["path_effects"]):
            record = MediationPath(
                nodes=path,
                effect=float(effect),
                names=tuple(graph.name_of(i) for i in path),
            )
            if is_legitimate_path(path, proxies):
                legitimate.append(record)
            else:
                discriminatory.append(record)

        total = parts["total"]
        legitimate_effect = float(sum(p.effect for p in legitimate))
        discrimination_effect = total - legitimate_effect
        exceeds = abs(discrimination_effect) > limit

        if exceeds:
            logger.warning(
                f"Discrimination effect of {graph.name_of(protected)} on {graph.name_of(sink)} is "
                f"{discrimination_effect:.4f}, above the fairness threshold {limit}"
            )
        logger.debug(
            f"Fairness {graph.name_of(protected)} → {graph.name_of(sink)}: total={total:.4f}, "
            f"legitimate={legitimate_effect:.4f} ({len(legitimate)} paths), "
            f"discriminatory={discrimination_effect:.4f} ({len(discriminatory)} paths)"
        )

        return FairnessDecomposition(
            protected_feature=protected,
            outcome_sink=sink,
            perturbed_value=value,
            total_effect=total,
            legitimate_effect=legitimate_effect,
            discrimination_effect=discrimination_effect,
            threshold=limit,
            exceeds_threshold=exceeds,
            legitimate_paths=tuple(legitimate),
            discriminatory_paths=tuple(discriminatory),
            legitimate_proxies=tuple(sorted(proxies)),
            used_reference_profile=used_reference,
            n_excluded=parts["n_excluded"],
            degraded=parts["n_excluded"] > 0,
            graph_source=graph.source,
        )
