from datetime import datetime
from typing import Any
from uuid import UUID

from psycopg.rows import dict_row

from pdfbatch.batch.exceptions import StaleStateError
from pdfbatch.batch.states import FileStatus, file_sources
from pdfbatch.database.connection import get_connection
from pdfbatch.database.models import BatchFileRecord, JobProgress, ProcessingRecord
from pdfbatch.database.repositories.processing_record_repository import insert_record

_FILE_COLUMNS = """
    id, batch_job_id, original_filename, storage_path, position, file_size,
    estimated_pages, actual_pages, status, processing_record_id, error_code,
    error_message, billed_at, processing_started_at, processing_completed_at,
    created_at, updated_at
"""


def file_from_row(row: dict[str, Any]) -> BatchFileRecord:
    return BatchFileRecord(
        id=row["id"],
        batch_job_id=row["batch_job_id"],
        original_filename=row["original_filename"],
        status=FileStatus(row["status"]),
        storage_path=row.get("storage_path"),
        position=row.get("position", 0),
        file_size=row.get("file_size", 0),
        estimated_pages=row.get("estimated_pages", 1),
        actual_pages=row.get("actual_pages"),
        processing_record_id=row.get("processing_record_id"),
        error_code=row.get("error_code"),
        error_message=row.get("error_message"),
        billed_at=row.get("billed_at"),
        processing_started_at=row.get("processing_started_at"),
        processing_completed_at=row.get("processing_completed_at"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def _sources(target: FileStatus) -> list[str]:
    return [s.value for s in file_sources(target)]


class BatchFileRepository:
    """Database operations for the batch_files table.

    Every status write is a compare-and-set against the states that may
    legally reach the target, so concurrent sweeps cannot move a file backwards.
    """

    def list_for_job(self, job_id: UUID) -> list[BatchFileRecord]:
        """All files of a job in upload order."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_FILE_COLUMNS}
                    FROM batch_files
                    WHERE batch_job_id = %s
                    ORDER BY created_at, position
                    """,
                    (job_id,),
                )
                rows = cur.fetchall()
        return [file_from_row(row) for row in rows]

    def list_processable(
        self, job_id: UUID, stale_before: datetime
    ) -> list[BatchFileRecord]:
        """Files a sweep should run: pending, uploaded, or abandoned mid-processing."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_FILE_COLUMNS}
                    FROM batch_files
                    WHERE batch_job_id = %s
                      AND (status IN ('pending', 'uploaded')
                           OR (status = 'processing'
                               AND (processing_started_at IS NULL
                                    OR processing_started_at < %s)))
                    ORDER BY created_at, position
                    """,
                    (job_id, stale_before),
                )
                rows = cur.fetchall()
        return [file_from_row(row) for row in rows]

    def find_by_name(
        self, job_id: UUID, filename: str
    ) -> BatchFileRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_FILE_COLUMNS}
                    FROM batch_files
                    WHERE batch_job_id = %s AND original_filename = %s
                    """,
                    (job_id, filename),
                )
                row = cur.fetchone()
        return file_from_row(row) if row is not None else None

    def mark_uploaded(self, file_id: UUID, storage_path: str, file_size: int) -> None:
        """Record where the bytes landed and move pending -> uploaded.

        Raises:
            StaleStateError: if the file is no longer pending.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE batch_files
                    SET status = 'uploaded', storage_path = %s, file_size = %s,
                        updated_at = NOW()
                    WHERE id = %s AND status = ANY(%s)
                    """,
                    (storage_path, file_size, file_id, _sources(FileStatus.UPLOADED)),
                )
                if cur.rowcount == 0:
                    raise StaleStateError(f"Batch file {file_id} is no longer pending")
            conn.commit()

    def mark_processing(self, file_id: UUID, stale_before: datetime) -> None:
        """Claim a file for extraction and stamp its start time.

        A file already in processing is only reclaimed when it started before
        ``stale_before``, so two live sweeps never extract the same file.

        Raises:
            StaleStateError: if the file is terminal or freshly claimed elsewhere.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE batch_files
                    SET status = 'processing', processing_started_at = NOW(),
                        processing_completed_at = NULL, error_code = NULL,
                        error_message = NULL, updated_at = NOW()
                    WHERE id = %s
                      AND (status IN ('pending', 'uploaded')
                           OR (status = 'processing'
                               AND (processing_started_at IS NULL
                                    OR processing_started_at < %s)))
                    """,
                    (file_id, stale_before),
                )
                if cur.rowcount == 0:
                    raise StaleStateError(
                        f"Batch file {file_id} cannot be moved to processing"
                    )
            conn.commit()

    def mark_failed(self, file_id: UUID, error_code: str, error_message: str) -> None:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE batch_files
                    SET status = 'failed', error_code = %s, error_message = %s,
                        processing_completed_at = NOW(), updated_at = NOW()
                    WHERE id = %s AND status = ANY(%s)
                    """,
                    (error_code, error_message, file_id, _sources(FileStatus.FAILED)),
                )
                if cur.rowcount == 0:
                    raise StaleStateError(f"Batch file {file_id} is not processing")
            conn.commit()

    def mark_completed(
        self, file_id: UUID, actual_pages: int, record: ProcessingRecord
    ) -> UUID:
        """Persist the processing record and complete the file in one transaction.

        Returns:
            The new processing record's ID.

        Raises:
            StaleStateError: if the file is not processing. Nothing is written.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                record_id = insert_record(cur, record)
                cur.execute(
                    """
                    UPDATE batch_files
                    SET status = 'completed', actual_pages = %s,
                        processing_record_id = %s,
                        processing_completed_at = NOW(), updated_at = NOW()
                    WHERE id = %s AND status = ANY(%s)
                    """,
                    (actual_pages, record_id, file_id, _sources(FileStatus.COMPLETED)),
                )
                if cur.rowcount == 0:
                    conn.rollback()
                    raise StaleStateError(f"Batch file {file_id} is not processing")
            conn.commit()
        return record_id

    def all_uploaded(self, job_id: UUID) -> bool:
        """True when the job has files and every one of them is uploaded."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT COUNT(*), COUNT(*) FILTER (WHERE status = 'uploaded')
                    FROM batch_files
                    WHERE batch_job_id = %s
                    """,
                    (job_id,),
                )
                row = cur.fetchone()
        if row is None:
            return False
        total, uploaded = row
        return total > 0 and total == uploaded

    def summarize(self, job_id: UUID) -> JobProgress:
        """Recompute job progress from the full file set."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT
                        COUNT(*) AS total,
                        COUNT(*) FILTER (WHERE status = 'completed') AS completed,
                        COUNT(*) FILTER (WHERE status = 'failed') AS failed,
                        COUNT(*) FILTER (WHERE status = 'skipped') AS skipped,
                        COALESCE(SUM(estimated_pages), 0) AS estimated_pages,
                        COALESCE(SUM(actual_pages) FILTER (WHERE status = 'completed'), 0)
                            AS processed_pages
                    FROM batch_files
                    WHERE batch_job_id = %s
                    """,
                    (job_id,),
                )
                row = cur.fetchone()
        assert row is not None
        return JobProgress(
            total_files=row["total"],
            completed_files=row["completed"],
            failed_files=row["failed"],
            skipped_files=row["skipped"],
            estimated_pages=int(row["estimated_pages"]),
            processed_pages=int(row["processed_pages"]),
        )
