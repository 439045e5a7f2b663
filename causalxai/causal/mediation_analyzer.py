"""
════════════════════════════════════════════════════════════════════════════════════════════════════
MEDIATION ANALYZER - Direct vs. indirect effects along causal paths
════════════════════════════════════════════════════════════════════════════════════════════════════

Decomposes the effect of changing a feature on the prediction:

    total     = E[predict | do(feature = v)] - predict(x)
    direct    = predict(x with feature = v) - predict(x)     (mediators held fixed)
    indirect  = total - direct

Path contributions reuse the Monte Carlo draws behind ``total`` (same seed, same
corpus row per draw). On top of the direct substitution:

    node effect   delta_m = mean_i predict(m ← row_i[m]) - predict(direct)
    path effect   R_p     = mean_i predict(members of p ← row_i) - predict(direct)

A node shared by several paths is split equally between them:

    contribution_p = R_p - sum_{m in p} delta_m * (1 - 1 / n_paths(m))

For a model linear in the mediators the contributions add up to the indirect
effect. Interactions within a single path stay with that path.

Additivity check: a residual above the configured tolerance marks the analysis
with ``additivity_ok=False`` and logs a warning; paths are never discarded. It
shows up when the model is non-linear across mediators of different paths, or
when it reads descendants that lie on no path to the outcome sink.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .causal_graph import CausalGraph, FeatureRef, resolve_feature
from .corpus import ModelLike, TrainingCorpus, as_predict_fn, validate_instance, validate_value
from .intervention_simulator import InterventionSimulator, draw_row
from .sampling import parallel_map, predict_scalar, summarize_samples
from ..errors import ConfigurationError, InvalidArgumentError
from ..feature_flags import CausalConfig, CausalSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MediationPath:
    """Directed path from the intervened feature to the outcome sink."""
    nodes: Tuple[int, ...]
    effect: float
    names: Tuple[str, ...] = ()

    @property
    def intermediates(self) -> Tuple[int, ...]:
        return self.nodes[1:-1]

    @property
    def is_direct(self) -> bool:
        return len(self.nodes) == 2

    def __str__(self) -> str:
        labels = self.names or tuple(f"feature_{i}" for i in self.nodes)
        return " → ".join(labels)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": list(self.nodes),
            "path": str(self),
            "effect": round(self.effect, 6),
        }


@dataclass(frozen=True)
class MediationAnalysis:
    """Resultado da decomposição em efeito directo e indirecto."""
    feature_index: int
    outcome_sink: int
    perturbed_value: float
    baseline_prediction: float
    total_effect: float
    direct_effect: float
    indirect_effect: float
    paths: Tuple[MediationPath, ...]
    additivity_residual: float
    additivity_ok: bool
    n_excluded: int = 0
    degraded: bool = False
    graph_source: str = "supplied"

    @property
    def proportion_mediated(self) -> float:
        if abs(self.total_effect) < 1e-12:
            return 0.0
        return self.indirect_effect / self.total_effect

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feature_index": self.feature_index,
            "outcome_sink": self.outcome_sink,
            "perturbed_value": self.perturbed_value,
            "baseline_prediction": round(self.baseline_prediction, 6),
            "total_effect": round(self.total_effect, 6),
            "direct_effect": round(self.direct_effect, 6),
            "indirect_effect": round(self.indirect_effect, 6),
            "proportion_mediated": round(self.proportion_mediated, 4),
            "paths": [p.to_dict() for p in self.paths],
            "additivity_residual": round(self.additivity_residual, 6),
            "additivity_ok": self.additivity_ok,
            "n_excluded": self.n_excluded,
            "degraded": self.degraded,
            "graph_source": self.graph_source,
        }


def default_perturbed_value(corpus: TrainingCorpus, instance: np.ndarray, feature: int) -> float:
    """Current value plus one corpus standard deviation (or +1.0 for a constant column)."""
    std = corpus.column_std(feature)
    step = std if std > 1e-12 else 1.0
    return float(instance[feature] + step)


class PathEffects:
    """
    Shared machinery for path-based decompositions (mediation and fairness).

    Holds the model and corpus; the graph is passed per call.
    """

    def __init__(
        self,
        model: ModelLike,
        corpus: TrainingCorpus,
        config: Optional[CausalConfig] = None,
    ):
        self.model = model
        self.predict = as_predict_fn(model)
        self.corpus = corpus
        self.config = (config or CausalSettings.get_config()).validate()

    def _check_graph(self, graph: CausalGraph) -> None:
        if graph.num_features != self.corpus.n_features:
            raise ConfigurationError(
                f"Graph has {graph.num_features} features but the corpus has {self.corpus.n_features}"
            )

    def _predict(self, vector: np.ndarray, quantity: str) -> float:
        summary = summarize_samples(np.array([predict_scalar(self.predict, vector)]), quantity)
        return float(summary.values[0])

    def _resolve_depth(self, max_depth: Optional[int]) -> int:
        depth = self.config.max_path_depth if max_depth is None else int(max_depth)
        if depth <= 0:
            raise InvalidArgumentError(f"max_depth must be positive, got {depth}")
        return depth

    def _resolve_samples(self, num_samples: Optional[int]) -> int:
        n = self.config.num_samples if num_samples is None else int(num_samples)
        if n <= 0:
            raise ConfigurationError(f"num_samples must be positive, got {n}")
        return n

    def _replacement_effect(
        self,
        intervened: np.ndarray,
        nodes: Sequence[int],
        reference: float,
        seed: int,
        num_samples: int,
        quantity: str,
        cancel_event: Optional[threading.Event],
    ) -> Tuple[float, int]:
        """Mean prediction change from copying each draw's corpus row into ``nodes``."""
        rows = self.corpus.features
        n_rows = self.corpus.n_rows
        members = np.asarray(nodes, dtype=int)

        def _draw(index: int) -> float:
            sample = intervened.copy()
            sample[members] = rows[draw_row(seed, index, n_rows), members]
            return predict_scalar(self.predict, sample)

        predictions = parallel_map(
            _draw,
            num_samples,
            n_jobs=self.config.n_jobs,
            batch_size=self.config.batch_size,
            cancel_event=cancel_event,
        )
        summary = summarize_samples(predictions, quantity)
        return float(np.mean(summary.values)) - reference, summary.n_excluded

    def path_effects(
        self,
        intervened: np.ndarray,
        paths: List[Tuple[int, ...]],
        reference: float,
        graph: CausalGraph,
        seed: int,
        num_samples: int,
        cancel_event: Optional[threading.Event] = None,
    ) -> Tuple[np.ndarray, int]:
        """
        Contribution of each path, nodes shared between paths split equally.

        Returns the contributions (in path order) and the number of excluded samples.
        """
        counts: Dict[int, int] = {}
        for path in paths:
            for node in path[1:]:
                counts[node] = counts.get(node, 0) + 1

        n_excluded = 0
        node_effects: Dict[int, float] = {}
        for node in sorted(counts):
            node_effects[node], excluded = self._replacement_effect(
                intervened, (node,), reference, seed, num_samples,
                f"resampled {graph.name_of(node)}", cancel_event,
            )
            n_excluded += excluded

        effects = []
        for path in paths:
            members = path[1:]
            if len(members) == 1:
                joint = node_effects[members[0]]
            else:
                joint, excluded = self._replacement_effect(
                    intervened, members, reference, seed, num_samples,
                    f"resampled path {' → '.join(graph.name_of(i) for i in path)}", cancel_event,
                )
                n_excluded += excluded
            shared = sum(node_effects[m] * (1.0 - 1.0 / counts[m]) for m in members)
            effects.append(joint - shared)
        return np.array(effects, dtype=float), n_excluded

    def decompose(
        self,
        instance: np.ndarray,
        feature: int,
        graph: CausalGraph,
        outcome_sink: int,
        perturbed_value: float,
        max_depth: int,
        seed: Optional[int] = None,
        num_samples: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Dict[str, Any]:
        """
        Baseline, total, direct and per-path effects for one perturbation.

        Inputs are expected to be validated already.
        """
        paths = graph.find_paths(feature, outcome_sink, max_depth)
        num_samples = self._resolve_samples(num_samples)
        seed = self.config.seed if seed is None else seed

        baseline = self._predict(instance, "baseline prediction")
        simulation = InterventionSimulator(self.model, self.corpus, graph, self.config).simulate_intervention(
            instance, feature, perturbed_value,
            num_samples=num_samples, seed=seed, cancel_event=cancel_event,
        )
        total = simulation.expected_prediction - baseline

        intervened = instance.copy()
        intervened[feature] = perturbed_value
        reference = self._predict(intervened, f"direct prediction for {graph.name_of(feature)}")
        direct = reference - baseline

        n_excluded = simulation.n_excluded
        # The simulator makes no draws at the current value, so neither do the paths.
        if not paths or perturbed_value == instance[feature]:
            effects = np.zeros(len(paths), dtype=float)
        else:
            effects, excluded = self.path_effects(
                intervened, paths, reference, graph, seed, num_samples, cancel_event,
            )
            n_excluded += excluded

        return {
            "paths": paths,
            "path_effects": effects,
            "baseline": baseline,
            "total": total,
            "direct": direct,
            "n_excluded": n_excluded,
        }


class MediationAnalyzer(PathEffects):
    """Decomposes a feature's effect into direct and path-wise indirect parts."""

    def analyze_mediators(
        self,
        instance: Any,
        feature_index: FeatureRef,
        graph: CausalGraph,
        outcome_sink: FeatureRef,
        perturbed_value: Optional[float] = None,
        max_depth: Optional[int] = None,
        seed: Optional[int] = None,
        num_samples: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> MediationAnalysis:
        """
        Direct, indirect and per-path effects of perturbing ``feature_index``.

        Args:
            instance: feature vector to explain
            feature_index: feature to perturb (index or name)
            graph: causal graph over the corpus features
            outcome_sink: feature node at which paths end (index or name)
            perturbed_value: new value; defaults to current value + one std
            max_depth: maximum path length in edges
            seed: Monte Carlo seed, shared by the total and the path effects
            num_samples: Monte Carlo draws; defaults to the configured count
        """
        self._check_graph(graph)
        x = validate_instance(instance, self.corpus.n_features)
        feature = resolve_feature(feature_index, graph.num_features, graph.feature_names)
        sink = resolve_feature(outcome_sink, graph.num_features, graph.feature_names)
        if feature == sink:
            raise InvalidArgumentError("Outcome sink must differ from the analysed feature")
        if perturbed_value is None:
            value = default_perturbed_value(self.corpus, x, feature)
        else:
            value = validate_value(perturbed_value, "Perturbed value")
        depth = self._resolve_depth(max_depth)

        parts = self.decompose(
            x, feature, graph, sink, value, depth,
            seed=seed, num_samples=num_samples, cancel_event=cancel_event,
        )
        total = parts["total"]
        direct = parts["direct"]
        indirect = total - direct

        paths: List[MediationPath] = [
            MediationPath(
                nodes=path,
                effect=float(effect),
                names=tuple(graph.name_of(i) for i in path),
            )
            for path, effect in zip(parts["paths"], parts["path_effects"])
        ]
        residual = indirect - float(np.sum(parts["path_effects"]))
        additivity_ok = abs(residual) <= self.config.additivity_tolerance

        if not additivity_ok:
            logger.warning(
                f"Path contributions for {graph.name_of(feature)} → {graph.name_of(sink)} leave a "
                f"residual of {residual:.4f} against the indirect effect {indirect:.4f} "
                f"(tolerance {self.config.additivity_tolerance}); the model may be non-linear across "
                f"mediators, or read descendants that lie on no path to {graph.name_of(sink)}"
            )

        logger.debug(
            f"Mediation {graph.name_of(feature)} → {graph.name_of(sink)}: total={total:.4f}, "
            f"direct={direct:.4f}, indirect={indirect:.4f}, {len(paths)} paths"
        )
        return MediationAnalysis(
            feature_index=feature,
            outcome_sink=sink,
            perturbed_value=value,
            baseline_prediction=parts["baseline"],
            total_effect=total,
            direct_effect=direct,
            indirect_effect=indirect,
            paths=tuple(paths),
            additivity_residual=residual,
            additivity_ok=additivity_ok,
            n_excluded=parts["n_excluded"],
            degraded=parts["n_excluded"] > 0,
            graph_source=graph.source,
        )
