"""Error taxonomy for the daily log engine."""

from enum import StrEnum


class LedgerError(Exception):
    """Base class for errors with a short user-presentable message."""

    user_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.user_message)


class CaptureError(LedgerError):
    """Input capture failed in the speech transducer."""

    user_message = "Speech recognition failed. Please try again."


class AlreadyActiveError(CaptureError):
    """Capture was started while a session is already running."""

    user_message = "Recording is already in progress."


class CaptureStateError(CaptureError):
    """A capture transition was requested from the wrong state."""

    user_message = "Recording is not active."


class ExtractionErrorKind(StrEnum):
    """Classification of extraction failures."""

    TIMEOUT = "timeout"
    NETWORK = "network"
    AUTH = "auth"
    SCHEMA_INVALID = "schema_invalid"
    CONTENT_REJECTED = "content_rejected"
    SERVICE = "service"

    @property
    def is_transient(self) -> bool:
        return self in {ExtractionErrorKind.TIMEOUT, ExtractionErrorKind.NETWORK}


_EXTRACTION_MESSAGES = {
    ExtractionErrorKind.TIMEOUT: (
        "The request took too long. Try splitting what you ate into smaller pieces."
    ),
    ExtractionErrorKind.NETWORK: (
        "Couldn't reach the nutrition service. Check your connection and try again."
    ),
    ExtractionErrorKind.AUTH: (
        "The nutrition service rejected the API key. Check your configuration."
    ),
    ExtractionErrorKind.SCHEMA_INVALID: (
        "Couldn't understand the nutrition service's answer. Please try again."
    ),
    ExtractionErrorKind.CONTENT_REJECTED: (
        "The request was blocked by the nutrition service. Try rephrasing it."
    ),
    ExtractionErrorKind.SERVICE: "The nutrition service failed. Please try again.",
}


class ExtractionError(LedgerError):
    """Structured extraction failed."""

    def __init__(self, kind: ExtractionErrorKind, detail: str | None = None) -> None:
        self.kind = kind
        self.detail = detail
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value)

    @property
    def is_transient(self) -> bool:
        return self.kind.is_transient

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return _EXTRACTION_MESSAGES[self.kind]


class PersistenceError(LedgerError):
    """A write to durable storage failed."""

    user_message = "Failed to save your food log. Please try again."


class AttemptInProgressError(LedgerError):
    """A logging attempt was started while another one is running."""

    user_message = "Still working on your last entry. Please wait for it to finish."


class TargetValidationError(LedgerError):
    """Macro targets failed validation."""

    user_message = "Macro targets are invalid."
