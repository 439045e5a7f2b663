"""
════════════════════════════════════════════════════════════════════════════════════════════════════
CAUSAL EXPLAINER - Entry point of the causal core
════════════════════════════════════════════════════════════════════════════════════════════════════

Binds a model, a training corpus and a causal graph, then answers typed queries:

    explainer = CausalExplainer(model, corpus, graph)
    effect = explainer.explain(InterventionalQuery(instance=x, feature="income", value=50_000))
    print(effect.ate, effect.confounding_bias)

When no graph is supplied one is estimated from pairwise correlations (with a
warning), unless ``require_graph`` is configured, in which case construction fails.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Iterable, Optional, Sequence, Union

import pandas as pd

from .causal_effect_estimator import CausalEffect, CounterfactualResult, EffectEstimator
from .causal_graph import CausalGraph, FeatureRef, resolve_feature
from .corpus import ModelLike, TrainingCorpus, as_predict_fn
from .fairness_decomposer import FairnessDecomposer, FairnessDecomposition
from .graph_estimator import estimate_causal_graph
from .intervention_simulator import InterventionSimulator
from .mediation_analyzer import MediationAnalysis, MediationAnalyzer
from .queries import (
    CounterfactualQuery,
    FairnessQuery,
    InterventionalQuery,
    MediationQuery,
    parse_query,
)
from ..errors import ConfigurationError
from ..feature_flags import CausalConfig, CausalSettings

logger = logging.getLogger(__name__)

QueryResult = Union[CausalEffect, CounterfactualResult, MediationAnalysis, FairnessDecomposition]


class CausalExplainer:
    """
    Causal explanations for a black-box model.

    The graph is fixed at construction; every query returns a fresh, immutable
    result record.
    """

    def __init__(
        self,
        model: ModelLike,
        corpus: Union[TrainingCorpus, pd.DataFrame, Any],
        graph: Optional[CausalGraph] = None,
        config: Optional[CausalConfig] = None,
        feature_names: Optional[Sequence[str]] = None,
    ):
        self.config = (config or CausalSettings.get_config()).validate()
        self.predict = as_predict_fn(model)
        self.model = model
        self.corpus = self._as_corpus(corpus, feature_names)

        if graph is None:
            if self.config.require_graph:
                raise ConfigurationError(
                    "A causal graph is required (require_graph=True) but none was supplied"
                )
            graph = estimate_causal_graph(self.corpus, self.config.correlation_threshold)
        elif graph.num_features != self.corpus.n_features:
            raise ConfigurationError(
                f"Graph has {graph.num_features} features but the corpus has {self.corpus.n_features}"
            )
        self.graph = graph

        self.simulator = InterventionSimulator(model, self.corpus, self.graph, self.config)
        self.estimator = EffectEstimator(
            model, self.corpus, self.graph, self.config, simulator=self.simulator
        )
        self.mediation = MediationAnalyzer(model, self.corpus, self.config)
        self.fairness = FairnessDecomposer(model, self.corpus, self.config)

        self._handlers: Dict[str, Callable[[Any, Optional[threading.Event]], QueryResult]] = {
            "interventional": self._run_interventional,
            "counterfactual": self._run_counterfactual,
            "mediation": self._run_mediation,
            "fairness": self._run_fairness,
        }

        logger.info(
            f"CausalExplainer ready: {self.corpus.n_rows} rows, {self.corpus.n_features} features, "
            f"{self.graph.n_edges} edges ({self.graph.source} graph)"
        )

    @staticmethod
    def _as_corpus(corpus: Any, feature_names: Optional[Sequence[str]]) -> TrainingCorpus:
        if isinstance(corpus, TrainingCorpus):
            return corpus
        if isinstance(corpus, pd.DataFrame):
            return TrainingCorpus.from_dataframe(corpus)
        return TrainingCorpus.from_arrays(corpus, feature_names=feature_names)

    @property
    def feature_names(self):
        return self.corpus.feature_names

    def feature_index(self, ref: FeatureRef) -> int:
        """Index of a feature given by index, name or ``feature_<n>``."""
        return resolve_feature(ref, self.graph.num_features, self.graph.feature_names or self.corpus.feature_names)

    # ──────────────────────────────────────────────────────────────────────
    # Dispatch
    # ──────────────────────────────────────────────────────────────────────

    def explain(self, query: Any, cancel_event: Optional[threading.Event] = None) -> QueryResult:
        """
        Answer a query model (or a dict with a ``kind`` field).

        Raises:
            InvalidArgumentError: malformed query or arguments
            ComputationError: no finite prediction for a required quantity
            AnalysisCancelledError: ``cancel_event`` was set
        """
        query = parse_query(query)
        return self._handlers[query.kind](query, cancel_event)

    def _run_interventional(self, query: InterventionalQuery, cancel_event) -> CausalEffect:
        return self.interventional_effect(
            query.instance, query.feature, query.value,
            num_samples=query.num_samples,
            num_bootstrap=query.num_bootstrap,
            seed=query.seed,
            cancel_event=cancel_event,
        )

    def _run_counterfactual(self, query: CounterfactualQuery, cancel_event) -> CounterfactualResult:
        return self.counterfactual_effect(query.instance, query.feature, query.counterfactual_value)

    def _run_mediation(self, query: MediationQuery, cancel_event) -> MediationAnalysis:
        return self.analyze_mediators(
            query.instance, query.feature, query.outcome_sink,
            perturbed_value=query.perturbed_value,
            max_depth=query.max_depth,
            seed=query.seed,
            num_samples=query.num_samples,
            cancel_event=cancel_event,
        )

    def _run_fairness(self, query: FairnessQuery, cancel_event) -> FairnessDecomposition:
        return self.analyze_fairness(
            query.protected_feature, query.legitimate_proxies, query.outcome_sink,
            instance=query.instance,
            perturbed_value=query.perturbed_value,
            threshold=query.threshold,
            max_depth=query.max_depth,
            seed=query.seed,
            num_samples=query.num_samples,
            cancel_event=cancel_event,
        )

    # ──────────────────────────────────────────────────────────────────────
    # Direct API
    # ──────────────────────────────────────────────────────────────────────

    def interventional_effect(
        self,
        instance: Any,
        feature: FeatureRef,
        value: float,
        num_samples: Optional[int] = None,
        num_bootstrap: Optional[int] = None,
        seed: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> CausalEffect:
        return self.estimator.interventional_effect(
            instance, self.feature_index(feature), value,
            num_bootstrap=num_bootstrap,
            num_samples=num_samples,
            seed=seed,
            cancel_event=cancel_event,
        )

    def counterfactual_effect(self, instance: Any, feature: FeatureRef, counterfactual_value: float) -> CounterfactualResult:
        return self.estimator.counterfactual_effect(instance, self.feature_index(feature), counterfactual_value)

    def analyze_mediators(
        self,
        instance: Any,
        feature: FeatureRef,
        outcome_sink: FeatureRef,
        perturbed_value: Optional[float] = None,
        max_depth: Optional[int] = None,
        seed: Optional[int] = None,
        num_samples: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> MediationAnalysis:
        return self.mediation.analyze_mediators(
            instance, self.feature_index(feature), self.graph, self.feature_index(outcome_sink),
            perturbed_value=perturbed_value,
            max_depth=max_depth,
            seed=seed,
            num_samples=num_samples,
            cancel_event=cancel_event,
        )

    def analyze_fairness(
        self,
        protected_feature: FeatureRef,
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
        return self.fairness.analyze_fairness(
            self.feature_index(protected_feature),
            self.graph,
            [self.feature_index(p) for p in legitimate_proxies],
            self.feature_index(outcome_sink),
            instance=instance,
            perturbed_value=perturbed_value,
            threshold=threshold,
            max_depth=max_depth,
            seed=seed,
            num_samples=num_samples,
            cancel_event=cancel_event,
        )
