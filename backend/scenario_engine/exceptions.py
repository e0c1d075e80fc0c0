"""Engine error taxonomy.

Every error raised by the forecasting and simulation core derives from
EngineError so the service layer can translate them in one place.
"""


class EngineError(Exception):
    """Base class for scenario engine failures."""


class InsufficientDataError(EngineError):
    """Series is shorter than the minimum sample size for the operation."""

    def __init__(self, required: int, actual: int, operation: str = "training") -> None:
        self.required = required
        self.actual = actual
        self.operation = operation
        super().__init__(
            f"Insufficient data for {operation}: need at least {required} periods, got {actual}"
        )


class UnsupportedModelError(EngineError):
    """Requested model kind is not one of the supported kinds."""


class ValidationError(EngineError):
    """Malformed scenario, settings or horizon."""


class NumericDegeneracyError(EngineError):
    """Singular system or zero-variance input; callers fall back locally."""


class ModelNotFoundError(EngineError):
    """No fitted model with the given id in the registry."""


class SimulationCancelledError(EngineError):
    """Run was cancelled cooperatively; no partial result exists."""
