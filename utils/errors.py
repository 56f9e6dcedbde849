"""Exception types raised by the consensus engine and its detectors."""


class EngineError(Exception):
    """Base class for fatal engine errors surfaced to the caller."""


class InsufficientData(EngineError):
    """Raised when a computation needs at least one sample and got none."""


class AlreadyRunning(EngineError):
    """Raised when a run is started while another run is in progress."""


class InvalidConfiguration(EngineError):
    """Raised when configuration values are out of range."""

    def __init__(self, errors):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("Invalid configuration: " + "; ".join(self.errors))


class DetectorError(Exception):
    """
    Raised by a detector when it cannot produce candidates.

    Recoverable: the orchestrator logs it and treats the detector's
    contribution as empty.
    """

    def __init__(self, detector: str, message: str):
        self.detector = detector
        super().__init__(f"{detector}: {message}")
