import math
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from pdfbatch.batch.states import JobStatus, MergeFormat
from pdfbatch.database.models import BatchFileRecord, BatchJobRecord
from pdfbatch.processor.models import FileOutcome


@dataclass(frozen=True)
class NewFile:
    """A file announced at job creation, before its bytes arrive."""

    name: str
    size: int


@dataclass(frozen=True)
class IncomingFile:
    """Uploaded bytes for a previously announced file."""

    filename: str
    content: bytes


@dataclass(frozen=True)
class UploadError:
    filename: str
    error: str


@dataclass
class UploadResult:
    job_id: UUID
    uploaded: list[str] = field(default_factory=list)
    errors: list[UploadError] = field(default_factory=list)
    job_status: JobStatus = JobStatus.PENDING


@dataclass
class ProcessJobResult:
    """Outcome of one Process sweep.

    ``all_completed`` means every file of the job is terminal; ``interrupted``
    means the sweep stopped early and the client should call Process again.
    """

    job_id: UUID
    status: JobStatus
    processed: list[FileOutcome] = field(default_factory=list)
    failed: list[FileOutcome] = field(default_factory=list)
    pages_processed: int = 0
    pages_charged: int = 0
    all_completed: bool = False
    interrupted: bool = False
    error_code: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class MergeResult:
    job_id: UUID
    output_id: UUID
    file_name: str
    format: MergeFormat
    file_size: int
    total_pages: int
    file_count: int
    download_token: str
    expires_at: datetime


@dataclass(frozen=True)
class JobStatusView:
    job: BatchJobRecord
    files: list[BatchFileRecord]


@dataclass(frozen=True)
class JobPage:
    jobs: list[BatchJobRecord]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0
