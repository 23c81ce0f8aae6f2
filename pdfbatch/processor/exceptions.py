class ProcessorError(Exception):
    """Base exception for all processor-related errors."""


class FileReadError(ProcessorError):
    """Raised when a stored batch file cannot be read from disk."""


class UnsafeStoragePathError(FileReadError):
    """Raised when a storage path resolves outside the files root."""
