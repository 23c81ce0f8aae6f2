from enum import Enum


class ExtractionErrorKind(str, Enum):
    TRANSIENT = "transient"
    INVALID_INPUT = "invalid_input"
    QUOTA_EXCEEDED = "quota_exceeded"
    UNKNOWN = "unknown"


class ExtractionError(Exception):
    """Raised when text extraction fails, carrying a failure classification."""

    def __init__(
        self, message: str, kind: ExtractionErrorKind = ExtractionErrorKind.UNKNOWN
    ) -> None:
        super().__init__(message)
        self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind in (
            ExtractionErrorKind.TRANSIENT,
            ExtractionErrorKind.QUOTA_EXCEEDED,
        )
