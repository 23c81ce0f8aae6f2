import os
import uuid
from collections.abc import Generator
from pathlib import Path
from typing import Any

import psycopg
import pytest

from pdfbatch.batch.coordinator import BatchJobCoordinator
from pdfbatch.batch.file_validator import PdfFileValidator
from pdfbatch.batch.job_service import BatchJobService
from pdfbatch.billing.usage_ledger import UsageLedger
from pdfbatch.config.settings import Settings
from pdfbatch.database.connection import close_pool, get_connection, init_pool
from pdfbatch.database.repositories.batch_file_repository import BatchFileRepository
from pdfbatch.database.repositories.batch_job_repository import BatchJobRepository
from pdfbatch.database.repositories.batch_output_repository import BatchOutputRepository
from pdfbatch.database.repositories.processing_record_repository import (
    ProcessingRecordRepository,
)
from pdfbatch.download.link_issuer import DownloadLinkIssuer
from pdfbatch.extraction.pdfplumber_adapter import PdfPlumberAdapter
from pdfbatch.merge.output_merger import OutputMerger
from pdfbatch.processor.file_loader import FileLoader
from pdfbatch.processor.file_processor import FileProcessor

_SCHEMA = Path(__file__).resolve().parents[2] / "pdfbatch" / "database" / "schema.sql"


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "pdfbatch_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        with get_connection() as conn:
            conn.execute(_SCHEMA.read_text(encoding="utf-8"))
            conn.commit()
    except Exception as e:
        close_pool()
        pytest.skip(
            f"PostgreSQL test DB not available: {e}. "
            "Set DB_* env to point at a disposable database"
        )
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def integration_cleanup(
    integration_pool: None,
) -> Generator[list[tuple[str, uuid.UUID]], None, None]:
    cleanup: list[tuple[str, uuid.UUID]] = []
    yield cleanup
    if not cleanup:
        return
    with get_connection() as conn:
        with conn.cursor() as cur:
            for table, row_id in cleanup:
                if table == "batch_jobs":
                    cur.execute(
                        """
                        DELETE FROM processing_records
                        WHERE id IN (
                            SELECT processing_record_id FROM batch_files
                            WHERE batch_job_id = %s
                        )
                        """,
                        (row_id,),
                    )
                    cur.execute("DELETE FROM batch_jobs WHERE id = %s", (row_id,))
            for table, row_id in cleanup:
                if table == "user_accounts":
                    cur.execute(
                        "DELETE FROM usage_ledger_entries WHERE user_id = %s", (row_id,)
                    )
                    cur.execute("DELETE FROM user_accounts WHERE user_id = %s", (row_id,))
        conn.commit()


def _seed_user(
    db_conn: psycopg.Connection[Any],
    cleanup: list[tuple[str, uuid.UUID]],
    pages_limit: int,
) -> uuid.UUID:
    user_id = uuid.uuid4()
    with db_conn.cursor() as cur:
        cur.execute(
            "INSERT INTO user_accounts (user_id, pages_used, pages_limit) VALUES (%s, 0, %s)",
            (user_id, pages_limit),
        )
    db_conn.commit()
    cleanup.append(("user_accounts", user_id))
    return user_id


@pytest.fixture
def seed_user(
    db_conn: psycopg.Connection[Any],
    integration_cleanup: list[tuple[str, uuid.UUID]],
) -> uuid.UUID:
    return _seed_user(db_conn, integration_cleanup, pages_limit=100)


@pytest.fixture
def seed_poor_user(
    db_conn: psycopg.Connection[Any],
    integration_cleanup: list[tuple[str, uuid.UUID]],
) -> uuid.UUID:
    return _seed_user(db_conn, integration_cleanup, pages_limit=2)


@pytest.fixture
def files_root(tmp_path: Path) -> Path:
    root = tmp_path / "files"
    root.mkdir()
    return root


@pytest.fixture
def job_service(files_root: Path, integration_pool: None) -> BatchJobService:
    return BatchJobService(
        job_repo=BatchJobRepository(),
        file_repo=BatchFileRepository(),
        ledger=UsageLedger(),
        file_loader=FileLoader(files_root=files_root),
        validator=PdfFileValidator(min_size_bytes=100, max_size_bytes=10 * 1024 * 1024),
        max_files_per_job=10,
        max_file_size_bytes=10 * 1024 * 1024,
        bytes_per_estimated_page=50 * 1024,
    )


@pytest.fixture
def coordinator(
    files_root: Path, tmp_path: Path, integration_pool: None
) -> BatchJobCoordinator:
    file_repo = BatchFileRepository()
    return BatchJobCoordinator(
        job_repo=BatchJobRepository(),
        file_repo=file_repo,
        record_repo=ProcessingRecordRepository(),
        file_processor=FileProcessor(
            file_loader=FileLoader(files_root=files_root),
            file_repo=file_repo,
            extractor=PdfPlumberAdapter(),
        ),
        ledger=UsageLedger(),
        merger=OutputMerger(tmp_path / "outputs"),
        link_issuer=DownloadLinkIssuer(BatchOutputRepository(), ttl_hours=1),
    )
