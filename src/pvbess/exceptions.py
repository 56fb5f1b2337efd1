"""Custom exceptions for the PV + battery dispatch simulator."""

class PVBessError(Exception):
    """Base exception for simulator errors."""
    pass

class ValidationError(PVBessError):
    """Base exception for validation errors."""
    pass

class InputValidationError(ValidationError):
    """Exception raised for malformed signal input (non-finite, out of range, misaligned)."""
    pass

class ConfigurationError(PVBessError):
    """Exception raised for configuration errors."""
    pass

class DispatchError(PVBessError):
    """Exception raised for dispatch-policy errors."""
    pass

class PolicyEvaluationError(DispatchError):
    """Exception raised when a learned policy cannot produce a usable decision."""
    pass

class SimulationError(PVBessError):
    """Exception raised for simulation errors."""
    pass

class SimulationCancelledError(SimulationError):
    """Exception raised when a run is cancelled between steps."""
    pass

class AnalysisError(PVBessError):
    """Exception raised for trajectory analysis errors."""
    pass

class BenchmarkError(PVBessError):
    """Exception raised when the perfect-foresight benchmark cannot be solved."""
    pass
