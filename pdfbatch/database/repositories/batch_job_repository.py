from typing import Any
from uuid import UUID

import psycopg
from psycopg.rows import dict_row

from pdfbatch.batch.exceptions import StaleStateError
from pdfbatch.batch.states import JobStatus, MergeFormat, ensure_job_transition, job_sources
from pdfbatch.database.connection import get_connection
from pdfbatch.database.models import BatchFileRecord, BatchJobRecord, JobProgress

_JOB_COLUMNS = """
    id, user_id, name, description, status, merge_output, merge_format,
    total_files, processed_files, failed_files, estimated_pages, processed_pages,
    error_code, error_message, locked_at, started_at, completed_at,
    created_at, updated_at
"""

JOB_SORT_COLUMNS = ("created_at", "updated_at", "name", "status")


def job_from_row(row: dict[str, Any]) -> BatchJobRecord:
    merge_format = row.get("merge_format")
    return BatchJobRecord(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        description=row.get("description"),
        status=JobStatus(row["status"]),
        merge_output=bool(row.get("merge_output", False)),
        merge_format=MergeFormat(merge_format) if merge_format else None,
        total_files=row.get("total_files", 0),
        processed_files=row.get("processed_files", 0),
        failed_files=row.get("failed_files", 0),
        estimated_pages=row.get("estimated_pages", 0),
        processed_pages=row.get("processed_pages", 0),
        error_code=row.get("error_code"),
        error_message=row.get("error_message"),
        locked_at=row.get("locked_at"),
        started_at=row.get("started_at"),
        completed_at=row.get("completed_at"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


class BatchJobRepository:
    """Database operations for the batch_jobs table."""

    def create(
        self, job: BatchJobRecord, files: list[BatchFileRecord]
    ) -> BatchJobRecord:
        """Insert a job and its pending file placeholders in one transaction."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO batch_jobs
                        (user_id, name, description, status, merge_output,
                         merge_format, total_files, estimated_pages)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING {_JOB_COLUMNS}
                    """,
                    (
                        job.user_id,
                        job.name,
                        job.description,
                        JobStatus.PENDING.value,
                        job.merge_output,
                        job.merge_format.value if job.merge_format else None,
                        len(files),
                        sum(f.estimated_pages for f in files),
                    ),
                )
                row = cur.fetchone()
                assert row is not None
                cur.executemany(
                    """
                    INSERT INTO batch_files
                        (batch_job_id, original_filename, position, file_size,
                         estimated_pages, status)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    """,
                    [
                        (
                            row["id"],
                            f.original_filename,
                            f.position,
                            f.file_size,
                            f.estimated_pages,
                            f.status.value,
                        )
                        for f in files
                    ],
                )
            conn.commit()
        return job_from_row(row)

    def find_for_user(self, job_id: UUID, user_id: UUID) -> BatchJobRecord | None:
        """Find a job by ID, scoped to its owner."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_JOB_COLUMNS} FROM batch_jobs WHERE id = %s AND user_id = %s",
                    (job_id, user_id),
                )
                row = cur.fetchone()
        return job_from_row(row) if row is not None else None

    def list_for_user(
        self,
        user_id: UUID,
        *,
        status: JobStatus | None = None,
        limit: int = 20,
        offset: int = 0,
        sort_by: str = "created_at",
        descending: bool = True,
    ) -> tuple[list[BatchJobRecord], int]:
        """Return one page of a user's jobs and the total number matching the filter."""
        if sort_by not in JOB_SORT_COLUMNS:
            raise ValueError(f"Cannot sort batch jobs by {sort_by!r}")
        where = "user_id = %s"
        params: list[Any] = [user_id]
        if status is not None:
            where += " AND status = %s"
            params.append(status.value)
        direction = "DESC" if descending else "ASC"

        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT COUNT(*) AS total FROM batch_jobs WHERE {where}",
                    tuple(params),
                )
                count_row = cur.fetchone()
                cur.execute(
                    f"""
                    SELECT {_JOB_COLUMNS}
                    FROM batch_jobs
                    WHERE {where}
                    ORDER BY {sort_by} {direction}, id
                    LIMIT %s OFFSET %s
                    """,
                    (*params, limit, offset),
                )
                rows = cur.fetchall()
        total = count_row["total"] if count_row is not None else 0
        return [job_from_row(row) for row in rows], total

    def update_details(
        self, job_id: UUID, user_id: UUID, name: str, description: str | None
    ) -> BatchJobRecord | None:
        """Overwrite a job's name and description. None when the job is gone."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE batch_jobs
                    SET name = %s, description = %s, updated_at = NOW()
                    WHERE id = %s AND user_id = %s
                    RETURNING {_JOB_COLUMNS}
                    """,
                    (name, description, job_id, user_id),
                )
                row = cur.fetchone()
            conn.commit()
        return job_from_row(row) if row is not None else None

    def delete(self, job_id: UUID, user_id: UUID) -> bool:
        """Delete a job that is not being worked on. Files and outputs cascade.

        Returns False when no idle job with that ID belongs to the user.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    DELETE FROM batch_jobs
                    WHERE id = %s AND user_id = %s
                      AND status NOT IN ('processing', 'merging')
                    """,
                    (job_id, user_id),
                )
                deleted = cur.rowcount > 0
            conn.commit()
        return deleted

    def transition(
        self,
        job_id: UUID,
        current: JobStatus,
        target: JobStatus,
        *,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> None:
        """Move a job forward, atomically checking that it is still in ``current``.

        Raises:
            InvalidTransitionError: if the state graph forbids the move.
            StaleStateError: if the row changed underneath us.
        """
        ensure_job_transition(current, target)
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE batch_jobs
                    SET status = %s,
                        error_code = COALESCE(%s, error_code),
                        error_message = COALESCE(%s, error_message),
                        started_at = CASE WHEN %s
                                          THEN COALESCE(started_at, NOW())
                                          ELSE started_at END,
                        completed_at = CASE WHEN %s
                                            THEN NOW() ELSE completed_at END,
                        updated_at = NOW()
                    WHERE id = %s AND status = %s
                    """,
                    (
                        target.value,
                        error_code,
                        error_message,
                        target is JobStatus.PROCESSING,
                        target.is_terminal,
                        job_id,
                        current.value,
                    ),
                )
                if cur.rowcount == 0:
                    raise StaleStateError(
                        f"Batch job {job_id} is no longer '{current.value}'"
                    )
            conn.commit()

    def fail(self, job_id: UUID, error_code: str, error_message: str) -> bool:
        """Mark a job failed from whichever state can reach 'failed'.

        Returns False when the job was already past the point of failing.
        """
        sources = [s.value for s in job_sources(JobStatus.FAILED)]
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE batch_jobs
                    SET status = 'failed', error_code = %s, error_message = %s,
                        completed_at = NOW(), updated_at = NOW()
                    WHERE id = %s AND status = ANY(%s)
                    """,
                    (error_code, error_message, job_id, sources),
                )
                updated = cur.rowcount > 0
            conn.commit()
        return updated

    def update_progress(self, job_id: UUID, progress: JobProgress) -> None:
        """Overwrite the job's aggregate counters with a fresh recomputation."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE batch_jobs
                SET total_files = %s, processed_files = %s, failed_files = %s,
                    estimated_pages = %s, processed_pages = %s, updated_at = NOW()
                WHERE id = %s
                """,
                (
                    progress.total_files,
                    progress.terminal_files,
                    progress.failed_files,
                    progress.estimated_pages,
                    progress.processed_pages,
                    job_id,
                ),
            )
            conn.commit()

    def claim_next_runnable(
        self, conn: psycopg.Connection[Any], lease_seconds: int
    ) -> BatchJobRecord | None:
        """Lease the oldest ready/processing job using SELECT FOR UPDATE SKIP LOCKED."""
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"""
                SELECT {_JOB_COLUMNS}
                FROM batch_jobs
                WHERE status IN ('ready', 'processing')
                  AND (locked_at IS NULL
                       OR locked_at < NOW() - make_interval(secs => %s))
                ORDER BY created_at
                LIMIT 1
                FOR UPDATE SKIP LOCKED
                """,
                (lease_seconds,),
            )
            row = cur.fetchone()

        if row is None:
            conn.commit()
            return None

        conn.execute(
            "UPDATE batch_jobs SET locked_at = NOW() WHERE id = %s",
            (row["id"],),
        )
        conn.commit()
        return job_from_row(row)

    def release(self, job_id: UUID) -> None:
        """Drop the worker lease on a job."""
        with get_connection() as conn:
            conn.execute(
                "UPDATE batch_jobs SET locked_at = NULL WHERE id = %s",
                (job_id,),
            )
            conn.commit()
