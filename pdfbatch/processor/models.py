from dataclasses import dataclass
from uuid import UUID

from pdfbatch.batch.states import FileStatus


@dataclass(frozen=True)
class FileFailure:
    """Classified reason a file could not be processed."""

    code: str
    message: str
    retryable: bool = False


@dataclass(frozen=True)
class FileOutcome:
    """Result of processing one batch file.

    ``pages`` is the file's contribution to the job total; zero unless completed.
    """

    file_id: UUID
    filename: str
    status: FileStatus
    pages: int = 0
    processing_record_id: UUID | None = None
    error_code: str | None = None
    error_message: str | None = None

    @property
    def completed(self) -> bool:
        return self.status is FileStatus.COMPLETED
