import math
from pathlib import Path
from uuid import UUID

from pdfbatch.batch.exceptions import (
    BatchValidationError,
    InvalidTransitionError,
    JobNotFoundError,
    StaleStateError,
)
from pdfbatch.batch.file_validator import BaseFileValidator, PdfFileValidator
from pdfbatch.batch.models import IncomingFile, JobPage, NewFile, UploadError, UploadResult
from pdfbatch.batch.states import FileStatus, JobStatus, MergeFormat
from pdfbatch.billing.exceptions import InsufficientCreditsError
from pdfbatch.billing.usage_ledger import UsageLedger, build_usage_ledger
from pdfbatch.config.settings import Settings
from pdfbatch.database.models import BatchFileRecord, BatchJobRecord
from pdfbatch.database.repositories.batch_file_repository import BatchFileRepository
from pdfbatch.database.repositories.batch_job_repository import (
    JOB_SORT_COLUMNS,
    BatchJobRepository,
)
from pdfbatch.logging.logger import Log
from pdfbatch.processor.file_loader import FileLoader, remove_job_dir


MAX_PAGE_SIZE = 100
MAX_NAME_LENGTH = 255


def estimate_pages(size: int, bytes_per_page: int) -> int:
    return max(1, math.ceil(size / bytes_per_page))


class BatchJobService:
    """Manages a user's batch jobs and receives their uploaded files."""

    def __init__(
        self,
        job_repo: BatchJobRepository,
        file_repo: BatchFileRepository,
        ledger: UsageLedger,
        file_loader: FileLoader,
        validator: BaseFileValidator,
        *,
        max_files_per_job: int = 100,
        max_file_size_bytes: int = 50 * 1024 * 1024,
        bytes_per_estimated_page: int = 50 * 1024,
        output_root: Path | None = None,
    ) -> None:
        self._job_repo = job_repo
        self._file_repo = file_repo
        self._ledger = ledger
        self._file_loader = file_loader
        self._validator = validator
        self._max_files_per_job = max_files_per_job
        self._max_file_size_bytes = max_file_size_bytes
        self._bytes_per_estimated_page = bytes_per_estimated_page
        self._output_root = output_root

    def create_job(
        self,
        user_id: UUID,
        name: str,
        files: list[NewFile],
        description: str | None = None,
        merge_output: bool = False,
        merge_format: str | MergeFormat | None = None,
    ) -> BatchJobRecord:
        """Create a pending job with one pending placeholder per announced file.

        Raises:
            BatchValidationError: the request is malformed. Nothing is written.
            InsufficientCreditsError: the estimated pages exceed the allowance.
        """
        if not name or not name.strip():
            raise BatchValidationError("Missing required field: name")
        if not files:
            raise BatchValidationError("A batch job needs at least one file")
        if len(files) > self._max_files_per_job:
            raise BatchValidationError(
                f"Maximum {self._max_files_per_job} files allowed per batch job"
            )

        fmt = self._parse_merge_format(merge_output, merge_format)

        seen: set[str] = set()
        placeholders: list[BatchFileRecord] = []
        for position, new_file in enumerate(files):
            self._check_new_file(new_file)
            if new_file.name in seen:
                raise BatchValidationError(f"Duplicate filename: {new_file.name}")
            seen.add(new_file.name)
            placeholders.append(
                BatchFileRecord(
                    id=UUID(int=0),
                    batch_job_id=UUID(int=0),
                    original_filename=new_file.name,
                    status=FileStatus.PENDING,
                    file_size=new_file.size,
                    position=position,
                    estimated_pages=estimate_pages(
                        new_file.size, self._bytes_per_estimated_page
                    ),
                )
            )

        total_estimate = sum(p.estimated_pages for p in placeholders)
        if not self._ledger.can_afford(user_id, total_estimate):
            raise InsufficientCreditsError(
                user_id,
                total_estimate,
                "Insufficient page limit for this batch job",
            )

        job = self._job_repo.create(
            BatchJobRecord(
                id=UUID(int=0),
                user_id=user_id,
                name=name.strip(),
                description=description,
                status=JobStatus.PENDING,
                merge_output=merge_output,
                merge_format=fmt,
            ),
            placeholders,
        )
        Log.info(
            f"Created batch job {job.id} for user {user_id}: {len(placeholders)} file(s), "
            f"{total_estimate} estimated page(s)"
        )
        return job

    def upload_files(
        self, job_id: UUID, user_id: UUID, files: list[IncomingFile]
    ) -> UploadResult:
        """Store uploaded bytes against their pending placeholders.

        Per-file problems are collected without aborting the other files.

        Raises:
            JobNotFoundError: unknown job or another user's job.
            InvalidTransitionError: the job no longer accepts uploads.
        """
        job = self._job_repo.find_for_user(job_id, user_id)
        if job is None:
            raise JobNotFoundError(f"Batch job {job_id} not found")
        if job.status is not JobStatus.PENDING:
            raise InvalidTransitionError(
                "Cannot upload files to a batch job that is not in pending status"
            )
        if not files:
            raise BatchValidationError("No files uploaded")

        result = UploadResult(job_id=job.id)
        for incoming in files:
            error = self._store(job, incoming)
            if error is None:
                result.uploaded.append(incoming.filename)
            else:
                result.errors.append(UploadError(filename=incoming.filename, error=error))
                Log.warning(f"Rejected upload {incoming.filename} for job {job.id}: {error}")

        result.job_status = job.status
        if self._file_repo.all_uploaded(job.id):
            try:
                self._job_repo.transition(job.id, JobStatus.PENDING, JobStatus.READY)
                result.job_status = JobStatus.READY
                Log.info(f"Batch job {job.id} moved pending -> ready")
            except StaleStateError:
                Log.info(f"Batch job {job.id} left pending before the upload finished")

        Log.info(
            f"Upload to batch job {job.id}: {len(result.uploaded)} stored, "
            f"{len(result.errors)} rejected"
        )
        return result

    @property
    def max_upload_bytes(self) -> int:
        return self._max_file_size_bytes

    def list_jobs(
        self,
        user_id: UUID,
        *,
        page: int = 1,
        limit: int = 20,
        status: str | None = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> JobPage:
        """Page through a user's jobs, optionally filtered by status."""
        if page < 1:
            raise BatchValidationError("page must be at least 1")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise BatchValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if sort_by not in JOB_SORT_COLUMNS:
            raise BatchValidationError(
                f"Cannot sort by {sort_by}. Use one of: {', '.join(JOB_SORT_COLUMNS)}"
            )
        if sort_order not in ("asc", "desc"):
            raise BatchValidationError("sort_order must be 'asc' or 'desc'")
        status_filter = None
        if status:
            try:
                status_filter = JobStatus(status)
            except ValueError as exc:
                raise BatchValidationError(f"Unknown job status: {status}") from exc

        jobs, total = self._job_repo.list_for_user(
            user_id,
            status=status_filter,
            limit=limit,
            offset=(page - 1) * limit,
            sort_by=sort_by,
            descending=sort_order == "desc",
        )
        return JobPage(jobs=jobs, page=page, limit=limit, total=total)

    def update_job(
        self,
        job_id: UUID,
        user_id: UUID,
        name: str | None = None,
        description: str | None = None,
    ) -> BatchJobRecord:
        """Rename a job or change its description.

        None leaves a field unchanged; an empty description clears it.

        Raises:
            JobNotFoundError: unknown job or another user's job.
            BatchValidationError: the new name is blank or too long.
        """
        job = self._job_repo.find_for_user(job_id, user_id)
        if job is None:
            raise JobNotFoundError(f"Batch job {job_id} not found")

        new_name = job.name
        if name is not None:
            new_name = name.strip()
            if not new_name:
                raise BatchValidationError("Job name cannot be empty")
            if len(new_name) > MAX_NAME_LENGTH:
                raise BatchValidationError(
                    f"Job name cannot exceed {MAX_NAME_LENGTH} characters"
                )
        new_description = job.description
        if description is not None:
            new_description = description.strip() or None

        updated = self._job_repo.update_details(job.id, user_id, new_name, new_description)
        if updated is None:
            raise JobNotFoundError(f"Batch job {job_id} not found")
        Log.info(f"Updated details of batch job {job.id}")
        return updated

    def delete_job(self, job_id: UUID, user_id: UUID) -> None:
        """Delete a job with its files, outputs and stored bytes.

        Raises:
            JobNotFoundError: unknown job or another user's job.
            InvalidTransitionError: the job is being processed or merged.
            StaleStateError: processing started while the delete was in flight.
        """
        job = self._job_repo.find_for_user(job_id, user_id)
        if job is None:
            raise JobNotFoundError(f"Batch job {job_id} not found")
        if job.status in (JobStatus.PROCESSING, JobStatus.MERGING):
            raise InvalidTransitionError(
                "Cannot delete a job that is currently processing"
            )
        if not self._job_repo.delete(job.id, user_id):
            raise StaleStateError(f"Batch job {job.id} changed before it could be deleted")

        self._file_loader.remove_job(job.id)
        if self._output_root is not None:
            remove_job_dir(self._output_root, job.id)
        Log.info(f"Deleted batch job {job.id} ({job.status.value}) for user {user_id}")

    def _store(self, job: BatchJobRecord, incoming: IncomingFile) -> str | None:
        error = self._validator.validate(incoming.filename, incoming.content)
        if error is not None:
            return error

        batch_file = self._file_repo.find_by_name(job.id, incoming.filename)
        if batch_file is None:
            return "File not found in batch job"
        if batch_file.status is not FileStatus.PENDING:
            return "File already uploaded or in progress"

        self._file_loader.store(job.id, batch_file.id, incoming.content)
        try:
            self._file_repo.mark_uploaded(
                batch_file.id,
                f"{job.id}/{batch_file.id}.pdf",
                len(incoming.content),
            )
        except StaleStateError:
            return "File already uploaded or in progress"
        return None

    def _check_new_file(self, new_file: NewFile) -> None:
        if not new_file.name:
            raise BatchValidationError("Each file must have name and size properties")
        if not new_file.name.lower().endswith(".pdf"):
            raise BatchValidationError(
                f"Invalid file type: {new_file.name}. Only PDF files are allowed."
            )
        if new_file.size <= 0:
            raise BatchValidationError(
                f"Invalid file size: {new_file.name}. Size must be greater than zero."
            )
        if new_file.size > self._max_file_size_bytes:
            raise BatchValidationError(
                f"File too large: {new_file.name}. Maximum size is "
                f"{self._max_file_size_bytes // (1024 * 1024)}MB."
            )

    def _parse_merge_format(
        self, merge_output: bool, merge_format: str | MergeFormat | None
    ) -> MergeFormat | None:
        if merge_format is None:
            if merge_output:
                raise BatchValidationError("No merge format specified for batch job")
            return None
        if isinstance(merge_format, MergeFormat):
            return merge_format
        try:
            return MergeFormat.parse(merge_format)
        except ValueError as exc:
            raise BatchValidationError(str(exc)) from exc


def build_job_service(settings: Settings, files_root: Path | None = None) -> BatchJobService:
    """Build a BatchJobService with all required collaborators."""
    return BatchJobService(
        job_repo=BatchJobRepository(),
        file_repo=BatchFileRepository(),
        ledger=build_usage_ledger(settings),
        file_loader=FileLoader(
            files_root=files_root if files_root is not None else Path(settings.files_root)
        ),
        validator=PdfFileValidator(
            min_size_bytes=settings.min_file_size_bytes,
            max_size_bytes=settings.max_file_size_bytes,
        ),
        max_files_per_job=settings.max_files_per_job,
        max_file_size_bytes=settings.max_file_size_bytes,
        bytes_per_estimated_page=settings.bytes_per_estimated_page,
        output_root=Path(settings.output_root),
    )
