from abc import ABC, abstractmethod

_PDF_MAGIC = b"%PDF"


class BaseFileValidator(ABC):
    """Checks uploaded bytes before they are stored."""

    @abstractmethod
    def validate(self, filename: str, content: bytes) -> str | None:
        """Return a user-facing error message, or None when the file is acceptable."""


class PdfFileValidator(BaseFileValidator):
    """Accepts PDF files within the configured size bounds."""

    def __init__(self, min_size_bytes: int, max_size_bytes: int) -> None:
        self._min_size_bytes = min_size_bytes
        self._max_size_bytes = max_size_bytes

    def validate(self, filename: str, content: bytes) -> str | None:
        if not filename.lower().endswith(".pdf"):
            return f"Invalid file type: {filename}. Only PDF files are allowed."
        size = len(content)
        if size < self._min_size_bytes:
            return f"File too small: {filename}"
        if size > self._max_size_bytes:
            return (
                f"File too large: {filename}. Maximum size is "
                f"{self._max_size_bytes // (1024 * 1024)}MB."
            )
        if not content.startswith(_PDF_MAGIC):
            return f"File is not a valid PDF: {filename}"
        return None
