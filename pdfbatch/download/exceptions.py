class DownloadError(Exception):
    """Base exception for download link errors."""

    code = "internal"


class InvalidDownloadRequestError(DownloadError):
    """Raised when an output id or token is malformed. No lookup was made."""

    code = "validation"


class DownloadNotFoundError(DownloadError):
    """Raised for any unknown, expired, consumed, purged or missing download."""

    code = "not_found"
