"""
════════════════════════════════════════════════════════════════════════════════════════════════════
CAUSAL CORE - Causal effect estimation for black-box models
════════════════════════════════════════════════════════════════════════════════════════════════════

Separa efeitos causais de correlação: "se forçarmos X = v, como muda a previsão?"
versus "o que muda quando X calha ser v?".

Features:
- Grafo causal (DAG) sobre índices de features, fornecido ou estimado
- Simulação de intervenções do(X = v) por reamostragem de descendentes
- Efeito causal vs. observacional, viés de confusão e IC bootstrap
- Decomposição de mediação (directo vs. indirecto, por caminho)
- Decomposição de fairness (legítimo vs. discriminatório)
"""

from .causal_graph import (
    CausalGraph,
    CausalGraphBuilder,
    FeatureRef,
    resolve_feature,
)

from .corpus import (
    PredictiveModel,
    TrainingCorpus,
)

from .graph_estimator import (
    correlation_matrix,
    estimate_causal_graph,
)

from .intervention_simulator import (
    ADJUSTMENT_NOTE,
    InterventionSimulator,
    SimulationResult,
)

from .causal_effect_estimator import (
    CausalEffect,
    CounterfactualResult,
    EffectEstimator,
)

from .mediation_analyzer import (
    MediationAnalysis,
    MediationAnalyzer,
    MediationPath,
)

from .fairness_decomposer import (
    FairnessDecomposer,
    FairnessDecomposition,
)

from .queries import (
    CausalQuery,
    CounterfactualQuery,
    FairnessQuery,
    InterventionalQuery,
    MediationQuery,
    parse_query,
)

from .explainer import CausalExplainer

__all__ = [
    # Graph
    'CausalGraph',
    'CausalGraphBuilder',
    'FeatureRef',
    'resolve_feature',
    'correlation_matrix',
    'estimate_causal_graph',
    # Data
    'PredictiveModel',
    'TrainingCorpus',
    # Intervention
    'ADJUSTMENT_NOTE',
    'InterventionSimulator',
    'SimulationResult',
    # Effects
    'CausalEffect',
    'CounterfactualResult',
    'EffectEstimator',
    # Mediation & Fairness
    'MediationAnalysis',
    'MediationAnalyzer',
    'MediationPath',
    'FairnessDecomposer',
    'FairnessDecomposition',
    # Queries
    'CausalQuery',
    'CounterfactualQuery',
    'FairnessQuery',
    'InterventionalQuery',
    'MediationQuery',
    'parse_query',
    'CausalExplainer',
]
