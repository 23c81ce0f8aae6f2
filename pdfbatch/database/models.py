from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from pdfbatch.batch.states import FileStatus, JobStatus, MergeFormat


@dataclass
class BatchJobRecord:
    """Represents a row from the batch_jobs table."""

    id: UUID
    user_id: UUID
    name: str
    status: JobStatus
    description: str | None = None
    merge_output: bool = False
    merge_format: MergeFormat | None = None
    total_files: int = 0
    processed_files: int = 0
    failed_files: int = 0
    estimated_pages: int = 0
    processed_pages: int = 0
    error_code: str | None = None
    error_message: str | None = None
    locked_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class BatchFileRecord:
    """Represents a row from the batch_files table."""

    id: UUID
    batch_job_id: UUID
    original_filename: str
    status: FileStatus
    file_size: int = 0
    position: int = 0
    estimated_pages: int = 1
    storage_path: str | None = None
    actual_pages: int | None = None
    processing_record_id: UUID | None = None
    error_code: str | None = None
    error_message: str | None = None
    billed_at: datetime | None = None
    processing_started_at: datetime | None = None
    processing_completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class ProcessingRecord:
    """Durable result of extracting one file (processing_records table).

    Batch membership lives in ``metadata`` rather than a foreign key, because
    standalone single-file processing produces records too.
    """

    user_id: UUID
    filename: str
    file_size: int
    page_count: int
    extracted_text: str
    confidence: float
    duration_ms: int
    page_confidences: list[float] = field(default_factory=list)
    tables: list[dict[str, Any]] = field(default_factory=list)
    math_fragments: list[dict[str, Any]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    id: UUID | None = None
    created_at: datetime | None = None


@dataclass
class BatchOutputRecord:
    """Represents a row from the batch_outputs table."""

    id: UUID
    batch_job_id: UUID
    output_format: MergeFormat
    file_path: str
    file_name: str
    content_type: str
    file_size: int
    download_token: str
    expires_at: datetime
    consumed_at: datetime | None = None
    download_count: int = 0
    purged_at: datetime | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class JobProgress:
    """Aggregate of a job's files, recomputed from the store after each sweep."""

    total_files: int
    completed_files: int
    failed_files: int
    skipped_files: int
    estimated_pages: int
    processed_pages: int

    @property
    def terminal_files(self) -> int:
        return self.completed_files + self.failed_files + self.skipped_files

    @property
    def all_terminal(self) -> bool:
        return self.total_files > 0 and self.terminal_files == self.total_files
