"""Error taxonomy for the filing engine.

Transport failures, validation failures and fatal loop failures are kept
apart so the API layer can map each one to a status code and the tool
dispatcher can turn recoverable ones into text for the model.
"""


class FilingEngineError(Exception):
    """Base class for all engine errors."""

    code = "FilingEngineError"


# ============================================================================
# Persistence
# ============================================================================


class PersistenceError(FilingEngineError):
    """Raised when a persistence gateway operation fails."""

    code = "PersistenceError"

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class UnknownOperation(PersistenceError):
    """Operation name is not in the closed operation table."""

    code = "UnknownOperation"


class PayloadValidationError(PersistenceError):
    """Payload is missing required fields or names unknown columns."""

    code = "ValidationError"


class StoreConnectionError(PersistenceError, ConnectionError):
    """The relational store could not be reached."""

    code = "ConnectionError"


class ConstraintError(PersistenceError):
    """A database constraint rejected the write."""

    code = "ConstraintError"


# ============================================================================
# Document extraction
# ============================================================================


class ExtractionValidationError(FilingEngineError):
    """Extraction request rejected before any model call."""

    code = "ValidationError"


class UnsupportedMediaType(ExtractionValidationError):
    """Only PDF and raster image uploads can be extracted."""

    code = "UnsupportedMediaType"


class InvalidDocumentType(ExtractionValidationError):
    """Document type is not one of the extractable categories."""

    code = "InvalidDocumentType"


# ============================================================================
# Orchestration
# ============================================================================


class ToolLoopExceeded(FilingEngineError):
    """The model kept calling tools past the configured round limit."""

    code = "ToolLoopExceeded"

    def __init__(self, max_rounds: int):
        super().__init__(f"Model did not finish within {max_rounds} tool rounds")
        self.max_rounds = max_rounds


class EmptyMessage(FilingEngineError):
    """A chat message with no visible text."""

    code = "ValidationError"

    def __init__(self):
        super().__init__("Message must not be blank")


class UpstreamTimeout(FilingEngineError):
    """A model or store call did not return within its wait bound."""

    code = "UpstreamTimeout"

    def __init__(self, target: str, timeout_seconds: float):
        super().__init__(f"{target} did not respond within {timeout_seconds:g}s")
        self.target = target
        self.timeout_seconds = timeout_seconds


# ============================================================================
# Streaming
# ============================================================================


class StreamInterrupted(FilingEngineError):
    """A chat stream failed or closed before its completion sentinel."""

    code = "StreamInterrupted"
