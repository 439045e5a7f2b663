"""
════════════════════════════════════════════════════════════════════════════════════════════════════
TESTS - Causal Effect Estimator
════════════════════════════════════════════════════════════════════════════════════════════════════
"""

import logging
import threading

import numpy as np
import pytest

from causalxai.causal.causal_effect_estimator import (
    CausalEffect,
    EffectEstimator,
    percentile,
)
from causalxai.causal.causal_graph import CausalGraph
from causalxai.causal.corpus import TrainingCorpus
from causalxai.causal.intervention_simulator import ADJUSTMENT_NOTE
from causalxai.errors import (
    AnalysisCancelledError,
    ComputationError,
    ConfigurationError,
    InvalidArgumentError,
)
from causalxai.feature_flags import CausalConfig


@pytest.fixture
def estimator(scenario_model, scenario_corpus, scenario_graph, config):
    return EffectEstimator(scenario_model, scenario_corpus, scenario_graph, config)


class TestInterventionalEffect:
    """Testes para o efeito causal vs. observacional."""

    def test_confounding_scenario(self, estimator):
        """Testa viés de confundimento."""
        effect = estimator.interventional_effect([1.0, 2.0], 0, 2.0)

        assert effect.observational_effect == pytest.approx(0.3)
        # x1 é reamostrado do corpus (x1 <= 1.8 < 2), logo o efeito causal é menor
        assert effect.ate < effect.observational_effect
        assert effect.confounding_bias > 0
        assert effect.confounding_bias == effect.observational_effect - effect.ate
        assert effect.baseline_prediction == pytest.approx(1.1)

    def test_current_value_gives_zero_ate(self, estimator):
        """Testa ATE nulo no valor actual."""
        for feature, current in enumerate([1.0, 2.0]):
            effect = estimator.interventional_effect([1.0, 2.0], feature, current)
            assert effect.ate == 0.0
            assert effect.observational_effect == 0.0

    def test_current_value_is_discontinuous(self, estimator):
        """Testa salto do ATE junto ao valor actual."""
        exact = estimator.interventional_effect([1.0, 2.0], 0, 1.0)
        nearby = estimator.interventional_effect([1.0, 2.0], 0, 1.0 + 1e-9)
        assert exact.ate == 0.0
        # Fora do valor exacto x1 é reamostrado (x1 <= 1.8 < 2)
        assert nearby.ate < -0.1
        assert "no-op" in ADJUSTMENT_NOTE

    def test_isolated_feature_no_bias(self, scenario_model, scenario_corpus, config):
        """Testa feature isolada sem viés."""
        estimator = EffectEstimator(scenario_model, scenario_corpus, CausalGraph.empty(2), config)
        for feature in range(2):
            effect = estimator.interventional_effect([1.0, 2.0], feature, 3.0)
            assert effect.ate == effect.observational_effect
            assert effect.confounding_bias == 0.0

    def test_leaf_feature_is_exact(self, estimator):
        """Testa feature folha."""
        # x1 não tem descendentes no grafo 0 → 1
        effect = estimator.interventional_effect([1.0, 2.0], 1, 0.5)
        assert effect.ate == effect.observational_effect
        assert effect.ate == pytest.approx(0.4 * (0.5 - 2.0))

    def test_confidence_interval(self, estimator, scenario_corpus):
        """Testa intervalo de confiança bootstrap."""
        effect = estimator.interventional_effect([1.0, 2.0], 0, 2.0, num_bootstrap=200)

        assert effect.ci_lower <= effect.ci_upper
        assert effect.uncertainty_width == effect.ci_upper - effect.ci_lower
        # Efeito médio por linha: 0.3 · (2 - x0)
        mean_row_effect = float(np.mean(0.3 * (2.0 - scenario_corpus.column(0))))
        assert effect.ci_lower <= mean_row_effect <= effect.ci_upper
        assert effect.num_bootstrap == 200
        assert effect.std_error > 0
        assert effect.is_significant

    def test_interval_covers_mean_row_effect(self):
        """Testa cobertura do intervalo em corpora sintéticos com ruído."""
        def model(x):
            return 0.3 * x[0] + 0.4 * x[1] + 0.5 * x[0] ** 2

        config = CausalConfig(num_samples=10, num_bootstrap=100, seed=7)
        graph = CausalGraph.from_edges(2, [(0, 1)])
        trials = 50
        covered = 0
        for trial in range(trials):
            rng = np.random.default_rng(trial)
            x0 = rng.normal(0.5, 0.3, 60)
            x1 = 2 * x0 + rng.normal(0.0, 0.1, 60)
            rows = np.column_stack([x0, x1])
            estimator = EffectEstimator(model, TrainingCorpus.from_arrays(rows), graph, config)
            effect = estimator.interventional_effect(rows[0], 0, 1.0, seed=trial)

            treated = rows.copy()
            treated[:, 0] = 1.0
            mean_row_effect = float(np.mean([model(t) - model(r) for t, r in zip(treated, rows)]))
            covered += effect.ci_lower <= mean_row_effect <= effect.ci_upper
        assert covered >= 0.9 * trials

    def test_deterministic_across_jobs(self, scenario_model, scenario_corpus, scenario_graph, config):
        """Testa determinismo com vários workers."""
        serial = EffectEstimator(
            scenario_model, scenario_corpus, scenario_graph,
            config.with_overrides(n_jobs=1, batch_size=7),
        )
        threaded = EffectEstimator(
            scenario_model, scenario_corpus, scenario_graph,
            config.with_overrides(n_jobs=4, batch_size=7),
        )
        a = serial.interventional_effect([1.0, 2.0], 0, 2.0, seed=11)
        b = threaded.interventional_effect([1.0, 2.0], 0, 2.0, seed=11)
        assert a == b

    def test_reproducible_with_seed(self, estimator):
        """Testa reprodutibilidade com semente."""
        a = estimator.interventional_effect([1.0, 2.0], 0, 2.0, seed=1)
        b = estimator.interventional_effect([1.0, 2.0], 0, 2.0, seed=1)
        assert a.ate == b.ate
        assert a.ci_lower == b.ci_lower

    def test_feature_by_name(self, estimator):
        """Testa feature referida por nome."""
        by_name = estimator.interventional_effect([1.0, 2.0], "x0", 2.0)
        by_index = estimator.interventional_effect([1.0, 2.0], 0, 2.0)
        assert by_name == by_index
        assert by_name.feature_name == "x0"

    def test_metadata(self, estimator):
        """Testa metadados do resultado."""
        effect = estimator.interventional_effect([1.0, 2.0], 0, 2.0)
        assert effect.adjustment_note == ADJUSTMENT_NOTE
        assert effect.graph_source == "supplied"
        assert not effect.degraded
        assert effect.n_excluded == 0

        d = effect.to_dict()
        assert d["feature_index"] == 0
        assert d["ate"] == round(effect.ate, 6)
        assert d["ci_lower"] <= d["ci_upper"]
        assert "confounding" in d

    def test_invalid_arguments_before_model_calls(self, scenario_model, estimator):
        """Testa argumentos inválidos antes de chamar o modelo."""
        with pytest.raises(InvalidArgumentError):
            estimator.interventional_effect([1.0, 2.0], 5, 1.0)
        with pytest.raises(InvalidArgumentError):
            estimator.interventional_effect([1.0, 2.0, 3.0], 0, 1.0)
        with pytest.raises(InvalidArgumentError):
            estimator.interventional_effect([1.0, np.inf], 0, 1.0)
        with pytest.raises(InvalidArgumentError):
            estimator.interventional_effect([1.0, 2.0], 0, np.nan)
        with pytest.raises(ConfigurationError):
            estimator.interventional_effect([1.0, 2.0], 0, 1.0, num_bootstrap=0)
        assert scenario_model.calls == 0

    def test_degraded_result(self, scenario_corpus, scenario_graph, config, caplog):
        """Testa resultado degradado."""
        def model(x):
            return float("nan") if x[1] < 0.5 else 0.3 * x[0] + 0.4 * x[1]

        estimator = EffectEstimator(model, scenario_corpus, scenario_graph, config)
        with caplog.at_level(logging.WARNING):
            effect = estimator.interventional_effect([1.0, 2.0], 0, 2.0)

        assert effect.degraded
        assert effect.n_excluded > 0
        assert np.isfinite(effect.ate)
        assert "degraded" in caplog.text

    def test_all_predictions_invalid(self, scenario_corpus, scenario_graph, config):
        """Testa falha total das previsões."""
        estimator = EffectEstimator(lambda x: float("nan"), scenario_corpus, scenario_graph, config)
        with pytest.raises(ComputationError):
            estimator.interventional_effect([1.0, 2.0], 0, 2.0)

    def test_cancellation(self, estimator):
        """Testa cancelamento da estimação."""
        event = threading.Event()
        event.set()
        with pytest.raises(AnalysisCancelledError):
            estimator.interventional_effect([1.0, 2.0], 0, 2.0, cancel_event=event)

    def test_model_exceptions_propagate(self, scenario_corpus, scenario_graph, config):
        """Testa propagação de excepções do modelo."""
        def broken(x):
            raise RuntimeError("model offline")

        estimator = EffectEstimator(broken, scenario_corpus, scenario_graph, config)
        with pytest.raises(RuntimeError):
            estimator.interventional_effect([1.0, 2.0], 0, 2.0)


class TestCounterfactualEffect:
    """Testes para consultas contrafactuais."""

    def test_only_feature_changes(self, estimator):
        """Testa contrafactual sem reamostragem."""
        result = estimator.counterfactual_effect([1.0, 2.0], 0, 2.0)
        assert result.factual_prediction == pytest.approx(1.1)
        # Descendentes não são reamostrados
        assert result.counterfactual_prediction == pytest.approx(1.4)
        assert result.effect == pytest.approx(0.3)
        assert result.factual_value == 1.0
        assert result.to_dict()["effect"] == pytest.approx(0.3)

    def test_invalid_value(self, estimator):
        """Testa valor contrafactual inválido."""
        with pytest.raises(InvalidArgumentError):
            estimator.counterfactual_effect([1.0, 2.0], 0, float("inf"))


class TestCausalEffectRecord:

    def _effect(self, **kwargs):
        values = dict(
            feature_index=0, ate=0.2, observational_effect=0.3, confounding_bias=0.1,
            ci_lower=0.1, ci_upper=0.3, uncertainty_width=0.2,
        )
        values.update(kwargs)
        return CausalEffect(**values)

    def test_significance(self):
        """Testa significância pelo intervalo."""
        assert self._effect().is_significant
        assert not self._effect(ci_lower=-0.1).is_significant
        assert self._effect(ci_lower=-0.5, ci_upper=-0.1).is_significant

    def test_confounding_interpretation(self):
        """Testa interpretação do viés."""
        assert "Negligible" in self._effect(confounding_bias=0.005).confounding_interpretation()
        assert "Moderate" in self._effect(confounding_bias=-0.03).confounding_interpretation()
        assert "Strong" in self._effect(confounding_bias=0.2).confounding_interpretation()

    def test_percentile_nearest_rank(self):
        """Testa percentil por posição mais próxima."""
        values = np.arange(1.0, 101.0)
        assert percentile(values, 2.5) == 3.0
        assert percentile(values, 97.5) == 98.0
        assert percentile(np.array([5.0]), 2.5) == 5.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
