from pdfbatch.extraction.exceptions import ExtractionError, ExtractionErrorKind
from pdfbatch.processor.exceptions import FileReadError
from pdfbatch.processor.models import FileFailure

_USER_MESSAGES = {
    ExtractionErrorKind.TRANSIENT: (
        "The extraction service is temporarily unavailable. Please try again later."
    ),
    ExtractionErrorKind.INVALID_INPUT: (
        "The file could not be read as a PDF. It may be corrupted or password protected."
    ),
    ExtractionErrorKind.QUOTA_EXCEEDED: (
        "The extraction service quota is exhausted. Please try again later."
    ),
    ExtractionErrorKind.UNKNOWN: "The file could not be processed.",
}


def classify_failure(exc: Exception) -> FileFailure:
    """Map an exception raised while processing a file to a stored failure."""
    if isinstance(exc, ExtractionError):
        return FileFailure(
            code=exc.kind.value,
            message=_USER_MESSAGES[exc.kind],
            retryable=exc.retryable,
        )
    if isinstance(exc, FileReadError):
        return FileFailure(
            code=ExtractionErrorKind.INVALID_INPUT.value,
            message="The uploaded file is missing or unreadable.",
        )
    return FileFailure(
        code=ExtractionErrorKind.UNKNOWN.value,
        message=_USER_MESSAGES[ExtractionErrorKind.UNKNOWN],
    )
