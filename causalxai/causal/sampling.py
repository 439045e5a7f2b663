"""
Seeded, batch-parallel evaluation of independent work units.

Every unit derives its own generator from (base_seed, stream, index), so a result
never depends on which worker ran which unit or on ``n_jobs``. Results are returned
in index order; reductions over them are therefore bit-reproducible.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
from joblib import Parallel, delayed

from ..errors import AnalysisCancelledError, ComputationError

logger = logging.getLogger(__name__)

# Independent random streams per kind of work unit.
MONTE_CARLO_STREAM = 0
BOOTSTRAP_STREAM = 1


def unit_rng(base_seed: int, stream: int, index: int) -> np.random.Generator:
    """Generator for one unit of parallel work."""
    return np.random.default_rng([int(base_seed), int(stream), int(index)])


def parallel_map(
    func: Callable[[int], float],
    n_items: int,
    n_jobs: int = 1,
    batch_size: int = 25,
    cancel_event: Optional[threading.Event] = None,
) -> np.ndarray:
    """
    Evaluate ``func(0) .. func(n_items - 1)`` and return the results in order.

    Work is dispatched in batches of ``batch_size``; ``cancel_event`` is checked
    between batches, never inside one.
    """
    results = np.empty(n_items, dtype=float)
    with Parallel(n_jobs=n_jobs, prefer="threads") as parallel:
        for start in range(0, n_items, batch_size):
            if cancel_event is not None and cancel_event.is_set():
                raise AnalysisCancelledError(
                    f"Analysis cancelled after {start} of {n_items} work units"
                )
            stop = min(start + batch_size, n_items)
            if n_jobs == 1:
                batch = [func(i) for i in range(start, stop)]
            else:
                batch = parallel(delayed(func)(i) for i in range(start, stop))
            results[start:stop] = batch
    return results


@dataclass(frozen=True, eq=False)
class SampleSummary:
    """Finite samples of a quantity and how many were dropped."""
    values: np.ndarray
    n_excluded: int

    @property
    def n_valid(self) -> int:
        return int(self.values.shape[0])

    @property
    def degraded(self) -> bool:
        return self.n_excluded > 0


def summarize_samples(samples: np.ndarray, quantity: str) -> SampleSummary:
    """
    Drop non-finite samples.

    Raises:
        ComputationError: when no sample is finite.
    """
    samples = np.asarray(samples, dtype=float)
    finite = np.isfinite(samples)
    n_excluded = int(samples.shape[0] - finite.sum())
    if n_excluded == samples.shape[0]:
        raise ComputationError(
            f"All {samples.shape[0]} samples of {quantity} produced non-finite predictions"
        )
    if n_excluded:
        logger.warning(
            f"{n_excluded} of {samples.shape[0]} samples of {quantity} were non-finite and excluded"
        )
    return SampleSummary(values=samples[finite], n_excluded=n_excluded)


def predict_scalar(predict: Callable[[np.ndarray], float], vector: np.ndarray) -> float:
    """Call the model and coerce its single output to float."""
    output = np.asarray(predict(vector), dtype=float)
    if output.size != 1:
        raise ComputationError(
            f"Model returned {output.size} values for one feature vector, expected a single prediction"
        )
    return float(output.reshape(-1)[0])
