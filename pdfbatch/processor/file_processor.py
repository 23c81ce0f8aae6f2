from dataclasses import asdict
from datetime import datetime
from pathlib import Path

from pdfbatch.batch.states import FileStatus
from pdfbatch.config.settings import Settings
from pdfbatch.database.models import BatchFileRecord, BatchJobRecord, ProcessingRecord
from pdfbatch.database.repositories.batch_file_repository import BatchFileRepository
from pdfbatch.extraction.base import BaseExtractionAdapter
from pdfbatch.extraction.factory import ExtractionAdapterFactory
from pdfbatch.extraction.models import ExtractionResult
from pdfbatch.logging.logger import Log
from pdfbatch.processor.error_classifier import classify_failure
from pdfbatch.processor.file_loader import FileLoader
from pdfbatch.processor.models import FileOutcome


class FileProcessor:
    """Runs one batch file through extraction and records the outcome.

    Pipeline: mark processing -> load -> extract -> persist record + complete.
    Load and extraction failures are contained here and become a failed file;
    a failed file never produces a record and never contributes pages.
    """

    def __init__(
        self,
        file_loader: FileLoader,
        file_repo: BatchFileRepository,
        extractor: BaseExtractionAdapter,
    ) -> None:
        self._file_loader = file_loader
        self._file_repo = file_repo
        self._extractor = extractor

    def process(
        self,
        job: BatchJobRecord,
        batch_file: BatchFileRecord,
        stale_before: datetime,
    ) -> FileOutcome:
        """Process a single file of ``job``.

        A file already in processing is only taken over when it started
        before ``stale_before``.

        Raises:
            StaleStateError: if another sweep claimed or finished the file first.
        """
        # Step 1: Claim the file
        self._file_repo.mark_processing(batch_file.id, stale_before)
        Log.info(
            f"Processing batch file {batch_file.id} ({batch_file.original_filename}) "
            f"of job {job.id}"
        )

        # Step 2: Load and extract
        try:
            raw_bytes = self._file_loader.load(batch_file)
            result = self._extractor.extract(raw_bytes)
        except Exception as exc:
            failure = classify_failure(exc)
            self._file_repo.mark_failed(batch_file.id, failure.code, failure.message)
            log = Log.warning if failure.retryable else Log.error
            log(f"Batch file {batch_file.id} failed with {failure.code}: {exc}")
            return FileOutcome(
                file_id=batch_file.id,
                filename=batch_file.original_filename,
                status=FileStatus.FAILED,
                error_code=failure.code,
                error_message=failure.message,
            )

        # Step 3-4: Persist the record and complete the file together
        actual_pages = (
            result.page_count if result.page_count_reported else batch_file.estimated_pages
        )
        record = self._build_record(job, batch_file, result, len(raw_bytes))
        record_id = self._file_repo.mark_completed(batch_file.id, actual_pages, record)
        Log.info(
            f"Completed batch file {batch_file.id}: {actual_pages} page(s), "
            f"{len(result.text)} chars in {result.duration_ms} ms"
        )
        return FileOutcome(
            file_id=batch_file.id,
            filename=batch_file.original_filename,
            status=FileStatus.COMPLETED,
            pages=actual_pages,
            processing_record_id=record_id,
        )

    def _build_record(
        self,
        job: BatchJobRecord,
        batch_file: BatchFileRecord,
        result: ExtractionResult,
        file_size: int,
    ) -> ProcessingRecord:
        return ProcessingRecord(
            user_id=job.user_id,
            filename=batch_file.original_filename,
            file_size=file_size,
            page_count=result.page_count,
            extracted_text=result.text,
            confidence=result.confidence,
            duration_ms=result.duration_ms,
            page_confidences=list(result.page_confidences),
            tables=[asdict(table) for table in result.tables],
            math_fragments=[asdict(fragment) for fragment in result.math_fragments],
            metadata={
                "batch_job_id": str(job.id),
                "batch_file_id": str(batch_file.id),
                "engine": self._extractor.name,
                "page_count_reported": result.page_count_reported,
            },
        )


def build_file_processor(
    settings: Settings,
    files_root: Path | None = None,
) -> FileProcessor:
    """Build a FileProcessor with the configured extraction adapter."""
    return FileProcessor(
        file_loader=FileLoader(
            files_root=files_root if files_root is not None else Path(settings.files_root)
        ),
        file_repo=BatchFileRepository(),
        extractor=ExtractionAdapterFactory.create(settings),
    )
