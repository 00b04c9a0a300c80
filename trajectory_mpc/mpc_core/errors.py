"""
Exception hierarchy for the MPC core.

Per-cycle errors (InputError, FitError, SolveFailure) are recovered by
the controller, which emits a neutral or fallback command instead.
ConfigError is raised once at startup and is fatal.
"""


class MPCError(Exception):
    """Base class for all controller errors."""


class InputError(MPCError):
    """Telemetry is malformed or has too few waypoints."""


class FitError(MPCError):
    """Reference polynomial could not be fitted (too few points, singular design)."""


class SolveFailure(MPCError):
    """The horizon optimizer did not converge within its budget."""

    def __init__(self, message: str, status: str = "unknown"):
        super().__init__(message)
        self.status = status


class ConfigError(MPCError):
    """Invalid controller configuration."""
