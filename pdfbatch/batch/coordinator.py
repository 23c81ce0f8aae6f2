import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import UUID

from pdfbatch.batch.exceptions import (
    BatchValidationError,
    InternalPipelineError,
    InvalidTransitionError,
    JobNotFoundError,
    StaleStateError,
)
from pdfbatch.batch.models import JobStatusView, MergeResult, ProcessJobResult
from pdfbatch.batch.states import JobStatus
from pdfbatch.billing.exceptions import InsufficientCreditsError
from pdfbatch.billing.usage_ledger import UsageLedger, build_usage_ledger
from pdfbatch.config.settings import Settings
from pdfbatch.database.models import BatchJobRecord, JobProgress
from pdfbatch.database.repositories.batch_file_repository import BatchFileRepository
from pdfbatch.database.repositories.batch_job_repository import BatchJobRepository
from pdfbatch.database.repositories.processing_record_repository import (
    ProcessingRecordRepository,
)
from pdfbatch.download.link_issuer import DownloadLinkIssuer, build_link_issuer
from pdfbatch.logging.logger import Log
from pdfbatch.merge.models import MergeEntry, MergeJobInfo
from pdfbatch.merge.output_merger import OutputMerger
from pdfbatch.processor.file_processor import FileProcessor, build_file_processor
from pdfbatch.processor.models import FileOutcome

NO_COMPLETED_FILES = "no_completed_files"


class BatchJobCoordinator:
    """Drives a batch job through its lifecycle.

    Process: sweep processable files -> charge once -> recompute progress ->
    finalize. Merge: render completed files -> write artifact -> issue link ->
    complete. All state is read from the record store on every call.
    """

    def __init__(
        self,
        job_repo: BatchJobRepository,
        file_repo: BatchFileRepository,
        record_repo: ProcessingRecordRepository,
        file_processor: FileProcessor,
        ledger: UsageLedger,
        merger: OutputMerger,
        link_issuer: DownloadLinkIssuer,
        *,
        max_files_per_sweep: int = 0,
        sweep_time_budget_seconds: int = 0,
        stale_processing_seconds: int = 900,
    ) -> None:
        self._job_repo = job_repo
        self._file_repo = file_repo
        self._record_repo = record_repo
        self._file_processor = file_processor
        self._ledger = ledger
        self._merger = merger
        self._link_issuer = link_issuer
        self._max_files_per_sweep = max_files_per_sweep
        self._sweep_time_budget_seconds = sweep_time_budget_seconds
        self._stale_processing_seconds = stale_processing_seconds

    def get_job(self, job_id: UUID, user_id: UUID) -> JobStatusView:
        job = self._load(job_id, user_id)
        return JobStatusView(job=job, files=self._file_repo.list_for_job(job.id))

    def process_job(self, job_id: UUID, user_id: UUID) -> ProcessJobResult:
        """Run one processing sweep over a job's outstanding files.

        Raises:
            JobNotFoundError: unknown job or another user's job.
            InvalidTransitionError: the job is already completed or failed.
            InternalPipelineError: an unexpected error failed the job.
        """
        job = self._load(job_id, user_id)
        if job.status.is_terminal:
            raise InvalidTransitionError(
                f"Batch job {job.id} is already {job.status.value}"
            )
        if job.status is JobStatus.MERGING:
            return ProcessJobResult(
                job_id=job.id, status=JobStatus.MERGING, all_completed=True
            )

        job = self._start(job)
        Log.info(f"Sweeping batch job {job.id} for user {job.user_id}")

        try:
            outcomes, interrupted = self._sweep(job)
            completed = [o for o in outcomes if o.completed]
            failed = [o for o in outcomes if not o.completed]
            pages_processed = sum(o.pages for o in completed)

            try:
                receipt = self._ledger.charge_completed_files(job.user_id, job.id)
            except InsufficientCreditsError as exc:
                progress = self._file_repo.summarize(job.id)
                self._job_repo.update_progress(job.id, progress)
                self._job_repo.fail(job.id, exc.code, str(exc))
                Log.error(f"Batch job {job.id} failed: {exc}")
                return ProcessJobResult(
                    job_id=job.id,
                    status=JobStatus.FAILED,
                    processed=completed,
                    failed=failed,
                    pages_processed=pages_processed,
                    interrupted=interrupted,
                    all_completed=progress.all_terminal,
                    error_code=exc.code,
                    error_message=str(exc),
                )

            progress = self._file_repo.summarize(job.id)
            self._job_repo.update_progress(job.id, progress)
            status = self._finalize(job, progress) if not interrupted else job.status
        except Exception as exc:
            self._job_repo.fail(job.id, InternalPipelineError.code, str(exc))
            Log.exception(f"Batch job {job.id} failed unexpectedly: {exc}")
            raise InternalPipelineError(
                f"Batch job {job.id} failed unexpectedly: {exc}"
            ) from exc

        Log.info(
            f"Swept batch job {job.id}: {len(completed)} completed, {len(failed)} failed, "
            f"{receipt.pages} page(s) charged, status {status.value}"
        )
        return ProcessJobResult(
            job_id=job.id,
            status=status,
            processed=completed,
            failed=failed,
            pages_processed=pages_processed,
            pages_charged=receipt.pages,
            all_completed=progress.all_terminal,
            interrupted=interrupted,
            error_code=NO_COMPLETED_FILES if status is JobStatus.FAILED else None,
        )

    def merge_job(self, job_id: UUID, user_id: UUID) -> MergeResult:
        """Merge a job's completed files into one downloadable document.

        Raises:
            JobNotFoundError: unknown job or another user's job.
            BatchValidationError: merging was not requested or nothing to merge.
            InvalidTransitionError: the job is not waiting to be merged.
        """
        job = self._load(job_id, user_id)
        if not job.merge_output:
            raise BatchValidationError("Batch job is not configured for merged output")
        if job.merge_format is None:
            raise BatchValidationError("No merge format specified for batch job")
        if job.status is not JobStatus.MERGING:
            raise InvalidTransitionError(
                f"Batch job {job.id} is {job.status.value}, not ready for merging"
            )

        sources = self._record_repo.list_merge_sources(job.id)
        if not sources:
            raise BatchValidationError("No completed files found for merging")

        entries = [
            MergeEntry(
                filename=source.filename,
                pages=source.actual_pages,
                text=source.extracted_text,
                file_size=source.file_size,
                tables=source.tables,
                math_fragments=source.math_fragments,
            )
            for source in sources
        ]
        fmt = job.merge_format
        content = self._merger.render(
            fmt, MergeJobInfo(name=job.name, description=job.description), entries
        )
        now = datetime.now(timezone.utc)
        artifact = self._merger.write_artifact(job.id, job.name, fmt, content, now)

        try:
            output = self._link_issuer.issue(job.id, fmt, artifact, now=now)
        except Exception:
            artifact.path.unlink(missing_ok=True)
            Log.error(f"Could not issue download link for batch job {job.id}")
            raise

        self._job_repo.transition(job.id, JobStatus.MERGING, JobStatus.COMPLETED)
        Log.info(f"Merged {len(entries)} file(s) of batch job {job.id} into {fmt.value}")
        return MergeResult(
            job_id=job.id,
            output_id=output.id,
            file_name=output.file_name,
            format=fmt,
            file_size=output.file_size,
            total_pages=sum(entry.pages for entry in entries),
            file_count=len(entries),
            download_token=output.download_token,
            expires_at=output.expires_at,
        )

    def _load(self, job_id: UUID, user_id: UUID) -> BatchJobRecord:
        job = self._job_repo.find_for_user(job_id, user_id)
        if job is None:
            raise JobNotFoundError(f"Batch job {job_id} not found")
        return job

    def _start(self, job: BatchJobRecord) -> BatchJobRecord:
        if job.status is JobStatus.PROCESSING:
            return job
        try:
            self._job_repo.transition(job.id, job.status, JobStatus.PROCESSING)
        except StaleStateError:
            current = self._load(job.id, job.user_id)
            if current.status is not JobStatus.PROCESSING:
                raise
            return current
        Log.info(f"Batch job {job.id} moved {job.status.value} -> processing")
        job.status = JobStatus.PROCESSING
        return job

    def _sweep(self, job: BatchJobRecord) -> tuple[list[FileOutcome], bool]:
        stale_before = datetime.now(timezone.utc) - timedelta(
            seconds=self._stale_processing_seconds
        )
        files = self._file_repo.list_processable(job.id, stale_before)
        started = time.monotonic()
        outcomes: list[FileOutcome] = []

        for index, batch_file in enumerate(files):
            if self._max_files_per_sweep and index >= self._max_files_per_sweep:
                Log.info(f"Sweep of batch job {job.id} hit the file limit")
                return outcomes, True
            if (
                self._sweep_time_budget_seconds
                and time.monotonic() - started >= self._sweep_time_budget_seconds
            ):
                Log.info(f"Sweep of batch job {job.id} hit the time budget")
                return outcomes, True
            try:
                outcomes.append(
                    self._file_processor.process(job, batch_file, stale_before)
                )
            except StaleStateError:
                Log.debug(f"Batch file {batch_file.id} was taken by another sweep")
        return outcomes, False

    def _finalize(self, job: BatchJobRecord, progress: JobProgress) -> JobStatus:
        if not progress.all_terminal:
            return JobStatus.PROCESSING

        if not job.merge_output:
            target, code, message = JobStatus.COMPLETED, None, None
        elif progress.completed_files == 0:
            target = JobStatus.FAILED
            code = NO_COMPLETED_FILES
            message = "No file completed, so there is nothing to merge"
        else:
            target, code, message = JobStatus.MERGING, None, None

        try:
            self._job_repo.transition(
                job.id,
                JobStatus.PROCESSING,
                target,
                error_code=code,
                error_message=message,
            )
        except StaleStateError:
            current = self._load(job.id, job.user_id)
            Log.info(f"Batch job {job.id} was finalized concurrently as {current.status.value}")
            return current.status

        log = Log.error if target is JobStatus.FAILED else Log.info
        log(f"Batch job {job.id} moved processing -> {target.value}")
        return target


def build_coordinator(settings: Settings) -> BatchJobCoordinator:
    """Build a BatchJobCoordinator with all required collaborators."""
    return BatchJobCoordinator(
        job_repo=BatchJobRepository(),
        file_repo=BatchFileRepository(),
        record_repo=ProcessingRecordRepository(),
        file_processor=build_file_processor(settings),
        ledger=build_usage_ledger(settings),
        merger=OutputMerger(Path(settings.output_root)),
        link_issuer=build_link_issuer(settings),
        max_files_per_sweep=settings.max_files_per_sweep,
        sweep_time_budget_seconds=settings.sweep_time_budget_seconds,
        stale_processing_seconds=settings.stale_processing_seconds,
    )
