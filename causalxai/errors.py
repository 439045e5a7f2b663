"""
Error taxonomy for the causal core.

ConfigurationError and InvalidArgumentError are raised before any model call.
ComputationError is raised only after every sample of a quantity turned out
non-finite. Partial failures are not errors: results carry a ``degraded`` flag.
"""


class CausalError(Exception):
    """Base class for every error raised by causalxai."""


class ConfigurationError(CausalError):
    """Invalid construction input (corpus, graph, sample counts)."""


class InvalidArgumentError(CausalError, ValueError):
    """Invalid query argument (feature reference, value, instance)."""


class ComputationError(CausalError):
    """No finite prediction could be obtained for a requested quantity."""


class AnalysisCancelledError(CausalError):
    """The analysis was cancelled between batches of work."""
