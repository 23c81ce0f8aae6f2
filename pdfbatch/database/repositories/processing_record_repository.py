from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from pdfbatch.database.connection import get_connection
from pdfbatch.database.models import ProcessingRecord


@dataclass(frozen=True)
class MergeSource:
    """One completed batch file joined with its processing record."""

    file_id: UUID
    filename: str
    file_size: int
    actual_pages: int
    extracted_text: str
    tables: list[dict[str, Any]] = field(default_factory=list)
    math_fragments: list[dict[str, Any]] = field(default_factory=list)


def insert_record(cur: psycopg.Cursor[Any], record: ProcessingRecord) -> UUID:
    """Insert a processing record on an open cursor and return its ID."""
    cur.execute(
        """
        INSERT INTO processing_records
            (user_id, filename, file_size, page_count, extracted_text, tables,
             math_fragments, confidence, page_confidences, duration_ms, metadata)
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (
            record.user_id,
            record.filename,
            record.file_size,
            record.page_count,
            record.extracted_text,
            Jsonb(record.tables),
            Jsonb(record.math_fragments),
            record.confidence,
            Jsonb(record.page_confidences),
            record.duration_ms,
            Jsonb(record.metadata),
        ),
    )
    row = cur.fetchone()
    assert row is not None
    return row[0]


class ProcessingRecordRepository:
    """Database operations for the processing_records table."""

    def create(self, record: ProcessingRecord) -> UUID:
        """Insert a standalone record (not tied to a batch file)."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                record_id = insert_record(cur, record)
            conn.commit()
        return record_id

    def count_for_batch_file(self, batch_file_id: UUID) -> int:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT COUNT(*) FROM processing_records
                    WHERE metadata->>'batch_file_id' = %s
                    """,
                    (str(batch_file_id),),
                )
                row = cur.fetchone()
        return int(row[0]) if row else 0

    def list_merge_sources(self, job_id: UUID) -> list[MergeSource]:
        """Completed files of a job that have a linked record, in upload order."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT bf.id AS file_id, bf.original_filename, bf.file_size,
                           COALESCE(bf.actual_pages, bf.estimated_pages) AS pages,
                           pr.extracted_text, pr.tables, pr.math_fragments
                    FROM batch_files bf
                    JOIN processing_records pr ON pr.id = bf.processing_record_id
                    WHERE bf.batch_job_id = %s AND bf.status = 'completed'
                    ORDER BY bf.created_at, bf.position
                    """,
                    (job_id,),
                )
                rows = cur.fetchall()
        return [
            MergeSource(
                file_id=row["file_id"],
                filename=row["original_filename"],
                file_size=row["file_size"],
                actual_pages=row["pages"],
                extracted_text=row["extracted_text"] or "",
                tables=row["tables"] or [],
                math_fragments=row["math_fragments"] or [],
            )
            for row in rows
        ]
