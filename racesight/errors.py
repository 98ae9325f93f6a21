"""Error taxonomy for the race analysis pipeline.

Every error carries a retry hint so the routing layer can tell a caller
whether trying again later can succeed. Quota errors are not retryable until
the next racing day; transient fetch errors are.
"""


class RaceSightError(Exception):
    """Base class for all pipeline errors."""

    retryable: bool = False

    def __init__(self, message: str, *, retryable: bool | None = None):
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"error": self.message, "type": self.kind, "retryable": self.retryable}


class DataUnavailable(RaceSightError):
    """No source could supply data (e.g. the race-card export is missing)."""

    retryable = True

    def __init__(self, message: str, *, source: str = "", action: str = ""):
        detail = message
        if source:
            detail += f" (expected source: {source})"
        if action:
            detail += f". {action}"
        super().__init__(detail)
        self.source = source
        self.action = action


class VenueNotFound(RaceSightError):
    """Venue name did not match any known course after normalisation."""


class RaceNotFound(RaceSightError):
    """Course exists but has no race at the requested time."""


class NoCompetitors(RaceSightError):
    """The race field is empty after a successful fetch."""


class QuotaExceeded(RaceSightError):
    """Daily inference quota exhausted; terminal until the day rolls over."""


class TransportTimeout(RaceSightError):
    """A remote fetch exceeded its timeout."""

    retryable = True


class ScraperError(RaceSightError):
    """A live page fetch or parse failed for a reason other than a timeout."""

    retryable = True


class InferenceError(RaceSightError):
    """The inference service failed or returned an unusable response."""

    retryable = True


class ExtractionSchemaViolation(InferenceError):
    """Inference response was not valid JSON or did not match the stats schema."""


class AnalysisFailed(RaceSightError):
    """Raised by the orchestrator once a run has transitioned to failed."""

    def __init__(self, message: str, *, kind: str = "AnalysisFailed", retryable: bool = False):
        super().__init__(message, retryable=retryable)
        self._kind = kind

    @property
    def kind(self) -> str:
        return self._kind
