"""
════════════════════════════════════════════════════════════════════════════════════════════════════
CAUSAL EFFECT ESTIMATOR - Interventional vs. observational effects
════════════════════════════════════════════════════════════════════════════════════════════════════

For an instance x, a feature f and a value v:

    baseline       = predict(x)
    observational  = predict(x with f = v) - baseline          (naive substitution)
    causal (ATE)   = E[predict | do(f = v)] - baseline          (InterventionSimulator)
    confounding    = observational - causal

Uncertainty comes from a population bootstrap: resample the training corpus with
replacement, average predict(row with f = v) - predict(row) per repetition, and take
the 2.5th / 97.5th percentiles of the sorted repetition means.

Counterfactual queries answer a different question: a single closest-possible-world
prediction for a feature that cannot be intervened upon (age, for instance). Only
that feature changes; descendants are not resampled.

Output:
- CausalEffect with ATE, observational effect, confounding bias and 95% CI
- CounterfactualResult with factual and counterfactual predictions
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np
from scipy import stats

from .causal_graph import CausalGraph, resolve_feature
from .corpus import ModelLike, TrainingCorpus, as_predict_fn, validate_instance, validate_value
from .intervention_simulator import ADJUSTMENT_METHOD, ADJUSTMENT_NOTE, InterventionSimulator
from .sampling import (
    BOOTSTRAP_STREAM,
    parallel_map,
    predict_scalar,
    summarize_samples,
    unit_rng,
)
from ..errors import ConfigurationError
from ..feature_flags import CausalConfig, CausalSettings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# RESULT RECORDS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CausalEffect:
    """
    Resultado de uma análise de efeito causal.

    Invariants: ``confounding_bias == observational_effect - ate`` and
    ``ci_lower <= ci_upper``. ``degraded`` results had some non-finite samples
    excluded and must be checked before being treated as reliable.
    """
    feature_index: int
    ate: float
    observational_effect: float
    confounding_bias: float
    ci_lower: float
    ci_upper: float
    uncertainty_width: float

    # Additional fields
    feature_name: str = ""
    intervention_value: float = 0.0
    baseline_prediction: float = 0.0
    std_error: float = 0.0
    p_value: float = 1.0
    num_samples: int = 0
    num_bootstrap: int = 0
    n_excluded: int = 0
    degraded: bool = False
    graph_source: str = "supplied"
    adjustment_method: str = ADJUSTMENT_METHOD
    adjustment_note: str = ADJUSTMENT_NOTE

    @property
    def causal_effect(self) -> float:
        return self.ate

    @property
    def is_significant(self) -> bool:
        """True if the confidence interval does not include zero."""
        return (self.ci_lower > 0 and self.ci_upper > 0) or (self.ci_lower < 0 and self.ci_upper < 0)

    def confounding_interpretation(self) -> str:
        bias = abs(self.confounding_bias)
        if bias < 0.01:
            return "Negligible confounding (correlation ≈ causation)"
        elif bias < 0.05:
            return "Moderate confounding detected"
        else:
            return "Strong confounding detected (correlation ≠ causation)"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feature_index": self.feature_index,
            "feature_name": self.feature_name,
            "intervention_value": self.intervention_value,
            "baseline_prediction": round(self.baseline_prediction, 6),
            "ate": round(self.ate, 6),
            "observational_effect": round(self.observational_effect, 6),
            "confounding_bias": round(self.confounding_bias, 6),
            "ci_lower": round(self.ci_lower, 6),
            "ci_upper": round(self.ci_upper, 6),
            "uncertainty_width": round(self.uncertainty_width, 6),
            "std_error": round(self.std_error, 6),
            "p_value": round(self.p_value, 4),
            "is_significant": self.is_significant,
            "confounding": self.confounding_interpretation(),
            "num_samples": self.num_samples,
            "num_bootstrap": self.num_bootstrap,
            "n_excluded": self.n_excluded,
            "degraded": self.degraded,
            "graph_source": self.graph_source,
            "adjustment_method": self.adjustment_method,
            "adjustment_note": self.adjustment_note,
        }


@dataclass(frozen=True)
class CounterfactualResult:
    """Prediction for the instance as observed and with one feature changed."""
    feature_index: int
    factual_value: float
    counterfactual_value: float
    factual_prediction: float
    counterfactual_prediction: float
    feature_name: str = ""

    @property
    def effect(self) -> float:
        return self.counterfactual_prediction - self.factual_prediction

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feature_index": self.feature_index,
            "feature_name": self.feature_name,
            "factual_value": self.factual_value,
            "counterfactual_value": self.counterfactual_value,
            "factual_prediction": round(self.factual_prediction, 6),
            "counterfactual_prediction": round(self.counterfactual_prediction, 6),
            "effect": round(self.effect, 6),
        }


def percentile(sorted_values: np.ndarray, pct: float) -> float:
    """Nearest-rank percentile of an ascending array."""
    n = len(sorted_values)
    index = int(math.ceil(n * pct / 100.0)) - 1
    index = max(0, min(index, n - 1))
    return float(sorted_values[index])


# ═══════════════════════════════════════════════════════════════════════════════
# ESTIMATOR
# ═══════════════════════════════════════════════════════════════════════════════

class EffectEstimator:
    """
    Combines baseline, observational and interventional predictions into a
    CausalEffect, with bootstrap confidence intervals.
    """

    def __init__(
        self,
        model: ModelLike,
        corpus: TrainingCorpus,
        graph: CausalGraph,
        config: Optional[CausalConfig] = None,
        simulator: Optional[InterventionSimulator] = None,
    ):
        self.config = (config or CausalSettings.get_config()).validate()
        self.predict = as_predict_fn(model)
        self.corpus = corpus
        self.graph = graph
        self.simulator = simulator or InterventionSimulator(model, corpus, graph, self.config)

    def _predict(self, vector: np.ndarray, quantity: str) -> float:
        summary = summarize_samples(np.array([predict_scalar(self.predict, vector)]), quantity)
        return float(summary.values[0])

    def interventional_effect(
        self,
        instance: Any,
        feature_index: int,
        value: float,
        num_bootstrap: Optional[int] = None,
        num_samples: Optional[int] = None,
        seed: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> CausalEffect:
        """
        Causal effect of do(feature = value) on the prediction for ``instance``.

        Raises:
            InvalidArgumentError: out-of-range feature, malformed or non-finite
                instance, non-finite value (before any model call)
            ConfigurationError: non-positive sample or bootstrap counts
            ComputationError: a required prediction could not be made finite
        """
        x = validate_instance(instance, self.corpus.n_features)
        feature_index = resolve_feature(feature_index, self.graph.num_features, self.graph.feature_names)
        value = validate_value(value)
        num_bootstrap = self.config.num_bootstrap if num_bootstrap is None else int(num_bootstrap)
        if num_bootstrap <= 0:
            raise ConfigurationError(f"num_bootstrap must be positive, got {num_bootstrap}")
        num_samples = self.config.num_samples if num_samples is None else int(num_samples)
        if num_samples <= 0:
            raise ConfigurationError(f"num_samples must be positive, got {num_samples}")
        seed = self.config.seed if seed is None else seed
        name = self.graph.name_of(feature_index)

        # 1. Baseline prediction (no intervention)
        baseline = self._predict(x, "baseline prediction")

        # 2. Observational effect (plain substitution)
        substituted = x.copy()
        substituted[feature_index] = value
        observational = self._predict(substituted, f"observational prediction for {name}") - baseline

        # 3. Interventional effect (descendants resampled)
        simulation = self.simulator.simulate_intervention(
            x, feature_index, value,
            num_samples=num_samples, seed=seed, cancel_event=cancel_event,
        )
        causal = simulation.expected_prediction - baseline

        # 4. Confounding bias
        confounding_bias = observational - causal

        # 5. Bootstrap confidence interval
        boot, row_excluded, rep_excluded = self._bootstrap_ate(
            feature_index, value, num_bootstrap, seed, cancel_event
        )
        ci_lower = percentile(boot, 2.5)
        ci_upper = percentile(boot, 97.5)

        std_error = float(np.std(boot, ddof=1)) if len(boot) > 1 else 0.0
        if std_error > 0:
            z_stat = float(np.mean(boot)) / std_error
            p_value = float(2 * (1 - stats.norm.cdf(abs(z_stat))))
        else:
            p_value = 0.0 if np.mean(boot) != 0 else 1.0

        n_excluded = simulation.n_excluded + row_excluded + rep_excluded
        effect = CausalEffect(
            feature_index=feature_index,
            ate=causal,
            observational_effect=observational,
            confounding_bias=confounding_bias,
            ci_lower=ci_lower,
            ci_upper=ci_upper,
            uncertainty_width=ci_upper - ci_lower,
            feature_name=name,
            intervention_value=value,
            baseline_prediction=baseline,
            std_error=std_error,
            p_value=p_value,
            num_samples=simulation.n_valid + simulation.n_excluded,
            num_bootstrap=num_bootstrap,
            n_excluded=n_excluded,
            degraded=n_excluded > 0,
            graph_source=self.graph.source,
        )

        if effect.degraded:
            logger.warning(
                f"Causal effect for {name} is degraded: {n_excluded} non-finite samples excluded"
            )
        logger.debug(
            f"do({name}={value}): ATE={causal:.4f} [{ci_lower:.4f}, {ci_upper:.4f}], "
            f"observational={observational:.4f}, bias={confounding_bias:.4f}"
        )
        return effect

    def _bootstrap_ate(
        self,
        feature_index: int,
        value: float,
        num_bootstrap: int,
        seed: int,
        cancel_event: Optional[threading.Event],
    ):
        """
        Sorted bootstrap distribution of the population ATE.

        ``predict`` is pure, so each row's effect is computed once and the
        repetitions resample those effects; this equals re-predicting every
        resampled row.
        """
        rows = self.corpus.features
        n_rows = self.corpus.n_rows

        def _row_effect(i: int) -> float:
            row = rows[i].copy()
            control = predict_scalar(self.predict, row)
            row[feature_index] = value
            return predict_scalar(self.predict, row) - control

        row_effects = parallel_map(
            _row_effect, n_rows,
            n_jobs=self.config.n_jobs,
            batch_size=self.config.batch_size,
            cancel_event=cancel_event,
        )
        row_summary = summarize_samples(row_effects, "per-row bootstrap effects")

        def _repetition(b: int) -> float:
            rng = unit_rng(seed, BOOTSTRAP_STREAM, b)
            sample = row_effects[rng.integers(n_rows, size=n_rows)]
            sample = sample[np.isfinite(sample)]
            if sample.size == 0:
                return float("nan")
            return float(np.mean(sample))

        repetitions = parallel_map(
            _repetition, num_bootstrap,
            n_jobs=1,
            batch_size=self.config.batch_size,
            cancel_event=cancel_event,
        )
        rep_summary = summarize_samples(repetitions, "bootstrap ATE repetitions")
        return np.sort(rep_summary.values), row_summary.n_excluded, rep_summary.n_excluded

    def counterfactual_effect(
        self,
        instance: Any,
        feature_index: int,
        counterfactual_value: float,
    ) -> CounterfactualResult:
        """
        Factual vs. counterfactual prediction with only ``feature_index`` changed.

        No other feature is touched, descendants included.
        """
        x = validate_instance(instance, self.corpus.n_features)
        feature_index = resolve_feature(feature_index, self.graph.num_features, self.graph.feature_names)
        counterfactual_value = validate_value(counterfactual_value, "Counterfactual value")
        name = self.graph.name_of(feature_index)

        factual = self._predict(x, "factual prediction")
        changed = x.copy()
        changed[feature_index] = counterfactual_value
        counterfactual = self._predict(changed, f"counterfactual prediction for {name}")

        return CounterfactualResult(
            feature_index=feature_index,
            factual_value=float(x[feature_index]),
            counterfactual_value=counterfactual_value,
            factual_prediction=factual,
            counterfactual_prediction=counterfactual,
            feature_name=name,
        )
