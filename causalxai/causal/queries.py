"""
causalxai - Query Models
========================

Typed requests accepted by CausalExplainer.explain(). The ``kind`` field selects
the analysis:

    interventional  → CausalEffect
    counterfactual  → CounterfactualResult
    mediation       → MediationAnalysis
    fairness        → FairnessDecomposition

Queries can be built directly or parsed from plain dicts (e.g. a JSON payload):

    query = parse_query({"kind": "interventional", "instance": [1.0, 2.0],
                         "feature": "income", "value": 3.0})
"""

from __future__ import annotations

from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field, StrictInt, TypeAdapter, ValidationError

from ..errors import InvalidArgumentError

# Feature index or feature name
FeatureKey = Union[StrictInt, str]


class InterventionalQuery(BaseModel):
    """Efeito causal de do(feature = value)."""
    kind: Literal["interventional"] = "interventional"
    instance: List[float]
    feature: FeatureKey
    value: float
    num_samples: Optional[int] = None
    num_bootstrap: Optional[int] = None
    seed: Optional[int] = None


class CounterfactualQuery(BaseModel):
    """Previsão factual vs. contrafactual com uma única feature alterada."""
    kind: Literal["counterfactual"] = "counterfactual"
    instance: List[float]
    feature: FeatureKey
    counterfactual_value: float


class MediationQuery(BaseModel):
    kind: Literal["mediation"] = "mediation"
    instance: List[float]
    feature: FeatureKey
    outcome_sink: FeatureKey
    perturbed_value: Optional[float] = None
    max_depth: Optional[int] = None
    seed: Optional[int] = None
    num_samples: Optional[int] = None


class FairnessQuery(BaseModel):
    kind: Literal["fairness"] = "fairness"
    protected_feature: FeatureKey
    outcome_sink: FeatureKey
    legitimate_proxies: List[FeatureKey] = Field(default_factory=list)
    instance: Optional[List[float]] = None
    perturbed_value: Optional[float] = None
    threshold: Optional[float] = None
    max_depth: Optional[int] = None
    seed: Optional[int] = None
    num_samples: Optional[int] = None


CausalQuery = Annotated[
    Union[InterventionalQuery, CounterfactualQuery, MediationQuery, FairnessQuery],
    Field(discriminator="kind"),
]

_QUERY_ADAPTER = TypeAdapter(CausalQuery)

QUERY_TYPES = (InterventionalQuery, CounterfactualQuery, MediationQuery, FairnessQuery)


def parse_query(data: Any) -> BaseModel:
    """
    Validate a query given as a dict (or pass a query model through).

    Raises:
        InvalidArgumentError: unknown ``kind`` or malformed fields
    """
    if isinstance(data, QUERY_TYPES):
        return data
    try:
        return _QUERY_ADAPTER.validate_python(data)
    except ValidationError as e:
        raise InvalidArgumentError(f"Malformed causal query: {e}") from e
