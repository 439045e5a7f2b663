"""
════════════════════════════════════════════════════════════════════════════════════════════════════
TRAINING CORPUS - Empirical distribution used by the causal core
════════════════════════════════════════════════════════════════════════════════════════════════════

The corpus is the empirical joint distribution the simulator resamples from and the
graph estimator correlates over. It is frozen at construction.

The model is consumed through a single capability, ``predict(vector) -> float``.
Adapters for specific ML libraries live outside this package.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, Sequence, Tuple, Union, runtime_checkable

import numpy as np
import pandas as pd

from ..errors import ConfigurationError, InvalidArgumentError

logger = logging.getLogger(__name__)


@runtime_checkable
class PredictiveModel(Protocol):
    """Anything exposing ``predict(feature_vector) -> float``."""

    def predict(self, features: np.ndarray) -> float:
        ...


PredictFn = Callable[[np.ndarray], float]
ModelLike = Union[PredictiveModel, PredictFn]


def as_predict_fn(model: ModelLike) -> PredictFn:
    """Normalize a model object or a plain callable to a predict function."""
    predict = getattr(model, "predict", None)
    if callable(predict):
        return predict
    if callable(model):
        return model
    raise ConfigurationError(
        f"Model of type {type(model).__name__} exposes no predict(vector) capability"
    )


def default_feature_names(n_features: int) -> Tuple[str, ...]:
    return tuple(f"feature_{i}" for i in range(n_features))


def _read_only(array: np.ndarray) -> np.ndarray:
    array = np.array(array, dtype=float, copy=True)
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class TrainingCorpus:
    """
    Feature matrix plus a parallel label array.

    Labels are not used by the causal core; they are kept so other analysis layers
    can share the same corpus object.
    """
    features: np.ndarray
    labels: np.ndarray
    feature_names: Tuple[str, ...]

    @classmethod
    def from_arrays(
        cls,
        features: Any,
        labels: Optional[Sequence[float]] = None,
        feature_names: Optional[Sequence[str]] = None,
    ) -> "TrainingCorpus":
        """
        Build a validated corpus.

        Raises:
            ConfigurationError: empty corpus, ragged or non-finite rows, label or
                feature-name length mismatch.
        """
        try:
            matrix = np.asarray(features, dtype=float)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Training corpus is not a numeric matrix: {e}") from e

        if matrix.ndim != 2:
            raise ConfigurationError(
                f"Training corpus must be 2-dimensional (rows x features), got shape {matrix.shape}"
            )
        n_rows, n_features = matrix.shape
        if n_rows == 0 or n_features == 0:
            raise ConfigurationError("Training corpus must contain at least one row and one feature")
        if not np.all(np.isfinite(matrix)):
            bad_rows = np.unique(np.where(~np.isfinite(matrix))[0])
            raise ConfigurationError(
                f"Training corpus contains non-finite values in {len(bad_rows)} row(s), "
                f"first at row {int(bad_rows[0])}"
            )

        if labels is None:
            label_array = np.zeros(n_rows)
        else:
            label_array = np.asarray(labels, dtype=float).reshape(-1)
            if len(label_array) != n_rows:
                raise ConfigurationError(
                    f"Expected {n_rows} labels, got {len(label_array)}"
                )

        if feature_names is None:
            names = default_feature_names(n_features)
        else:
            names = tuple(str(n) for n in feature_names)
            if len(names) != n_features:
                raise ConfigurationError(
                    f"Expected {n_features} feature names, got {len(names)}"
                )
            if len(set(names)) != len(names):
                raise ConfigurationError("Feature names must be unique")

        logger.debug(f"Training corpus: {n_rows} rows x {n_features} features")
        return cls(
            features=_read_only(matrix),
            labels=_read_only(label_array),
            feature_names=names,
        )

    @classmethod
    def from_dataframe(
        cls,
        data: pd.DataFrame,
        label_column: Optional[str] = None,
    ) -> "TrainingCorpus":
        """Build a corpus from a DataFrame; every non-label column must be numeric."""
        if data is None or data.empty:
            raise ConfigurationError("Training corpus must be non-empty")

        labels = None
        frame = data
        if label_column is not None:
            if label_column not in data.columns:
                raise ConfigurationError(f"Label column '{label_column}' not in data")
            labels = data[label_column].to_numpy(dtype=float)
            frame = data.drop(columns=[label_column])

        non_numeric = [c for c in frame.columns if not pd.api.types.is_numeric_dtype(frame[c])]
        if non_numeric:
            raise ConfigurationError(f"Non-numeric feature columns: {non_numeric}")

        return cls.from_arrays(
            frame.to_numpy(dtype=float),
            labels=labels,
            feature_names=[str(c) for c in frame.columns],
        )

    # ──────────────────────────────────────────────────────────────────────
    # Shape and column statistics
    # ──────────────────────────────────────────────────────────────────────

    @property
    def n_rows(self) -> int:
        return int(self.features.shape[0])

    @property
    def n_features(self) -> int:
        return int(self.features.shape[1])

    def column(self, feature: int) -> np.ndarray:
        return self.features[:, feature]

    def column_means(self) -> np.ndarray:
        return self.features.mean(axis=0)

    def column_std(self, feature: int) -> float:
        return float(self.features[:, feature].std())

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(np.array(self.features), columns=list(self.feature_names))


# ═══════════════════════════════════════════════════════════════════════════════
# ARGUMENT VALIDATION
# ═══════════════════════════════════════════════════════════════════════════════

def validate_instance(instance: Any, n_features: int) -> np.ndarray:
    """Return a float copy of ``instance`` or raise InvalidArgumentError."""
    try:
        vector = np.array(instance, dtype=float, copy=True).reshape(-1)
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(f"Instance is not a numeric vector: {e}") from e
    if vector.shape[0] != n_features:
        raise InvalidArgumentError(
            f"Instance has {vector.shape[0]} features, expected {n_features}"
        )
    if not np.all(np.isfinite(vector)):
        bad = [int(i) for i in np.where(~np.isfinite(vector))[0]]
        raise InvalidArgumentError(f"Instance has non-finite values at indices {bad}")
    return vector


def validate_value(value: Any, label: str = "Intervention value") -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(f"{label} is not a number: {value!r}") from e
    if not np.isfinite(number):
        raise InvalidArgumentError(f"{label} must be finite, got {number}")
    return number
