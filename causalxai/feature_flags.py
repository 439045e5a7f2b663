"""
causalxai - Configuration Flags
================================

Defaults for sample counts, thresholds and parallelism of the causal core.

Uso:
    from causalxai.feature_flags import CausalSettings

    config = CausalSettings.get_config()
    explainer = CausalExplainer(model, corpus, graph, config=config)

Configuração via variáveis de ambiente:
    CAUSALXAI_NUM_SAMPLES=200
    CAUSALXAI_N_JOBS=4
    CAUSALXAI_REQUIRE_GRAPH=true
"""

from __future__ import annotations

import os
import logging
from dataclasses import dataclass, replace
from typing import Dict, Any, Optional

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# CONFIG DATACLASS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CausalConfig:
    """
    Configuração do motor causal.

    Valores default seguem o comportamento de referência (50 amostras Monte Carlo,
    100 repetições bootstrap, limiar de correlação 0.3, limiar regulatório 0.10).
    """
    num_samples: int = 50
    num_bootstrap: int = 100
    correlation_threshold: float = 0.3
    fairness_threshold: float = 0.10
    max_path_depth: int = 6
    additivity_tolerance: float = 0.05

    # Reprodutibilidade e paralelismo
    seed: int = 42
    n_jobs: int = 1
    batch_size: int = 25

    # Exigir grafo fornecido pelo utilizador (sem estimação heurística)
    require_graph: bool = False

    def validate(self) -> "CausalConfig":
        """Raise ConfigurationError for values the core cannot work with."""
        for name in ("num_samples", "num_bootstrap", "max_path_depth", "batch_size"):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value}")
        if self.n_jobs == 0:
            raise ConfigurationError("n_jobs must be non-zero (use -1 for all cores)")
        for name in ("correlation_threshold", "fairness_threshold", "additivity_tolerance"):
            value = getattr(self, name)
            if value < 0:
                raise ConfigurationError(f"{name} must be non-negative, got {value}")
        return self

    def with_overrides(self, **overrides: Any) -> "CausalConfig":
        """Return a validated copy with the given fields replaced (None values ignored)."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes).validate()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "num_samples": self.num_samples,
            "num_bootstrap": self.num_bootstrap,
            "correlation_threshold": self.correlation_threshold,
            "fairness_threshold": self.fairness_threshold,
            "max_path_depth": self.max_path_depth,
            "additivity_tolerance": self.additivity_tolerance,
            "seed": self.seed,
            "n_jobs": self.n_jobs,
            "batch_size": self.batch_size,
            "require_graph": self.require_graph,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# SETTINGS CLASS
# ═══════════════════════════════════════════════════════════════════════════════

class CausalSettings:
    """
    Singleton para gestão da configuração.

    Carrega configuração de variáveis de ambiente ou usa defaults.

    Uso:
        config = CausalSettings.get_config()
        CausalSettings.reset()  # recarregar após alterar o ambiente
    """

    _instance: Optional[CausalConfig] = None

    @classmethod
    def _load_from_env(cls) -> CausalConfig:
        """Carrega configuração de variáveis de ambiente."""
        values: Dict[str, Any] = {}

        numeric_mapping = {
            "CAUSALXAI_NUM_SAMPLES": ("num_samples", int),
            "CAUSALXAI_NUM_BOOTSTRAP": ("num_bootstrap", int),
            "CAUSALXAI_CORRELATION_THRESHOLD": ("correlation_threshold", float),
            "CAUSALXAI_FAIRNESS_THRESHOLD": ("fairness_threshold", float),
            "CAUSALXAI_MAX_PATH_DEPTH": ("max_path_depth", int),
            "CAUSALXAI_ADDITIVITY_TOLERANCE": ("additivity_tolerance", float),
            "CAUSALXAI_SEED": ("seed", int),
            "CAUSALXAI_N_JOBS": ("n_jobs", int),
            "CAUSALXAI_BATCH_SIZE": ("batch_size", int),
        }

        for env_var, (attr_name, cast) in numeric_mapping.items():
            value = os.environ.get(env_var)
            if value:
                try:
                    values[attr_name] = cast(value)
                    logger.info(f"Config {attr_name} = {value}")
                except ValueError:
                    logger.warning(f"Invalid value for {env_var}: {value}")

        value = os.environ.get("CAUSALXAI_REQUIRE_GRAPH")
        if value:
            values["require_graph"] = value.lower() in ("true", "1", "yes")

        config = CausalConfig(**values)
        try:
            return config.validate()
        except ConfigurationError as e:
            logger.warning(f"Invalid environment configuration ({e}), using defaults")
            return CausalConfig()

    @classmethod
    def get_config(cls) -> CausalConfig:
        """Obtém configuração atual."""
        if cls._instance is None:
            cls._instance = cls._load_from_env()
        return cls._instance

    @classmethod
    def set_config(cls, config: CausalConfig) -> None:
        """Define configuração em runtime (para testes)."""
        cls._instance = config.validate()

    @classmethod
    def reset(cls) -> None:
        """Reset para recarregar config."""
        cls._instance = None

    @classmethod
    def to_dict(cls) -> Dict[str, Any]:
        """Exporta configuração como dict."""
        return cls.get_config().to_dict()
