from datetime import datetime
from typing import Any
from uuid import UUID

from psycopg.rows import dict_row

from pdfbatch.batch.states import MergeFormat
from pdfbatch.database.connection import get_connection
from pdfbatch.database.models import BatchOutputRecord

_OUTPUT_COLUMNS = """
    id, batch_job_id, output_format, file_path, file_name, content_type,
    file_size, download_token, expires_at, consumed_at, download_count,
    purged_at, created_at
"""


def output_from_row(row: dict[str, Any]) -> BatchOutputRecord:
    return BatchOutputRecord(
        id=row["id"],
        batch_job_id=row["batch_job_id"],
        output_format=MergeFormat(row["output_format"]),
        file_path=row["file_path"],
        file_name=row["file_name"],
        content_type=row["content_type"],
        file_size=row["file_size"],
        download_token=row["download_token"],
        expires_at=row["expires_at"],
        consumed_at=row.get("consumed_at"),
        download_count=row.get("download_count", 0),
        purged_at=row.get("purged_at"),
        created_at=row.get("created_at"),
    )


class BatchOutputRepository:
    """Database operations for the batch_outputs table."""

    def create(
        self,
        batch_job_id: UUID,
        output_format: MergeFormat,
        file_path: str,
        file_name: str,
        file_size: int,
        download_token: str,
        expires_at: datetime,
    ) -> BatchOutputRecord:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO batch_outputs
                        (batch_job_id, output_format, file_path, file_name,
                         content_type, file_size, download_token, expires_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING {_OUTPUT_COLUMNS}
                    """,
                    (
                        batch_job_id,
                        output_format.value,
                        file_path,
                        file_name,
                        output_format.content_type,
                        file_size,
                        download_token,
                        expires_at,
                    ),
                )
                row = cur.fetchone()
            conn.commit()
        assert row is not None
        return output_from_row(row)

    def consume(self, output_id: UUID, token: str) -> BatchOutputRecord | None:
        """Atomically redeem a live, unused token. None when nothing matched."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE batch_outputs
                    SET consumed_at = NOW(), download_count = download_count + 1
                    WHERE id = %s
                      AND download_token = %s
                      AND consumed_at IS NULL
                      AND purged_at IS NULL
                      AND expires_at > NOW()
                    RETURNING {_OUTPUT_COLUMNS}
                    """,
                    (output_id, token),
                )
                row = cur.fetchone()
            conn.commit()
        return output_from_row(row) if row is not None else None

    def list_expired(self, now: datetime) -> list[BatchOutputRecord]:
        """Outputs past their expiry whose artifact has not been purged yet."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_OUTPUT_COLUMNS}
                    FROM batch_outputs
                    WHERE expires_at <= %s AND purged_at IS NULL
                    ORDER BY expires_at
                    """,
                    (now,),
                )
                rows = cur.fetchall()
        return [output_from_row(row) for row in rows]

    def mark_purged(self, output_id: UUID) -> None:
        with get_connection() as conn:
            conn.execute(
                "UPDATE batch_outputs SET purged_at = NOW() WHERE id = %s AND purged_at IS NULL",
                (output_id,),
            )
            conn.commit()
