import uuid
from unittest.mock import MagicMock, patch

import pytest

from pdfbatch.batch.exceptions import InvalidTransitionError, StaleStateError
from pdfbatch.batch.states import FileStatus, JobStatus, MergeFormat
from pdfbatch.database.models import BatchFileRecord, BatchJobRecord, JobProgress
from pdfbatch.database.repositories.batch_job_repository import (
    BatchJobRepository,
    job_from_row,
)

USER_ID = uuid.UUID("aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa")
JOB_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")


def _make_row(**overrides: object) -> dict:
    row = {
        "id": JOB_ID,
        "user_id": USER_ID,
        "name": "Reports",
        "description": None,
        "status": "processing",
        "merge_output": True,
        "merge_format": "structured",
        "total_files": 2,
    }
    row.update(overrides)
    return row


def _mock_connection(mock_get_conn: MagicMock) -> tuple[MagicMock, MagicMock]:
    """Wire up a mock connection + cursor and return (mock_conn, mock_cursor)."""
    mock_cursor = MagicMock()
    mock_conn = MagicMock()
    mock_conn.cursor.return_value.__enter__ = MagicMock(return_value=mock_cursor)
    mock_conn.cursor.return_value.__exit__ = MagicMock(return_value=False)
    mock_get_conn.return_value.__enter__ = MagicMock(return_value=mock_conn)
    mock_get_conn.return_value.__exit__ = MagicMock(return_value=False)
    return mock_conn, mock_cursor


class TestJobFromRow:
    def test_maps_enums(self) -> None:
        job = job_from_row(_make_row())
        assert job.status is JobStatus.PROCESSING
        assert job.merge_format is MergeFormat.STRUCTURED
        assert job.total_files == 2

    def test_null_merge_format(self) -> None:
        assert job_from_row(_make_row(merge_format=None)).merge_format is None


class TestCreate:
    @patch("pdfbatch.database.repositories.batch_job_repository.get_connection")
    def test_inserts_job_and_files_in_one_transaction(
        self, mock_get_conn: MagicMock
    ) -> None:
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = _make_row(status="pending")
        job = BatchJobRecord(
            id=JOB_ID, user_id=USER_ID, name="Reports", status=JobStatus.PENDING
        )
        files = [
            BatchFileRecord(
                id=uuid.uuid4(),
                batch_job_id=JOB_ID,
                original_filename=f"{i}.pdf",
                status=FileStatus.PENDING,
                position=i,
                estimated_pages=2,
            )
            for i in range(2)
        ]

        created = BatchJobRepository().create(job, files)

        assert created.status is JobStatus.PENDING
        insert_params = mock_cursor.execute.call_args.args[1]
        assert insert_params[6] == 2
        assert insert_params[7] == 4
        rows = mock_cursor.executemany.call_args.args[1]
        assert [r[1] for r in rows] == ["0.pdf", "1.pdf"]
        mock_conn.commit.assert_called_once()


class TestFindForUser:
    @patch("pdfbatch.database.repositories.batch_job_repository.get_connection")
    def test_returns_none_for_other_user(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = None

        assert BatchJobRepository().find_for_user(JOB_ID, uuid.uuid4()) is None

    @patch("pdfbatch.database.repositories.batch_job_repository.get_connection")
    def test_scopes_query_to_owner(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = _make_row()

        job = BatchJobRepository().find_for_user(JOB_ID, USER_ID)

        assert job is not None
        assert mock_cursor.execute.call_args.args[1] == (JOB_ID, USER_ID)


class TestListForUser:
    @patch("pdfbatch.database.repositories.batch_job_repository.get_connection")
    def test_filters_sorts_and_pages(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = {"total": 7}
        mock_cursor.fetchall.return_value = [_make_row(status="failed")]

        jobs, total = BatchJobRepository().list_for_user(
            USER_ID,
            status=JobStatus.FAILED,
            limit=5,
            offset=5,
            sort_by="name",
            descending=False,
        )

        assert total == 7
        assert [j.status for j in jobs] == [JobStatus.FAILED]
        count_call, page_call = mock_cursor.execute.call_args_list
        assert "status = %s" in count_call.args[0]
        assert count_call.args[1] == (USER_ID, "failed")
        assert "ORDER BY name ASC" in page_call.args[0]
        assert page_call.args[1] == (USER_ID, "failed", 5, 5)

    @patch("pdfbatch.database.repositories.batch_job_repository.get_connection")
    def test_without_status_filter(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = {"total": 0}
        mock_cursor.fetchall.return_value = []

        jobs, total = BatchJobRepository().list_for_user(USER_ID)

        assert (jobs, total) == ([], 0)
        count_call, page_call = mock_cursor.execute.call_args_list
        assert "status" not in count_call.args[0]
        assert "ORDER BY created_at DESC" in page_call.args[0]
        assert page_call.args[1] == (USER_ID, 20, 0)

    @patch("pdfbatch.database.repositories.batch_job_repository.get_connection")
    def test_unknown_sort_column_never_reaches_database(
        self, mock_get_conn: MagicMock
    ) -> None:
        with pytest.raises(ValueError):
            BatchJobRepository().list_for_user(USER_ID, sort_by="id; DROP TABLE batch_jobs")
        mock_get_conn.assert_not_called()


class TestUpdateDetails:
    @patch("pdfbatch.database.repositories.batch_job_repository.get_connection")
    def test_returns_updated_job(self, mock_get_conn: MagicMock) -> None:
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = _make_row(name="Renamed", description="notes")

        job = BatchJobRepository().update_details(JOB_ID, USER_ID, "Renamed", "notes")

        assert job is not None
        assert job.name == "Renamed"
        assert mock_cursor.execute.call_args.args[1] == ("Renamed", "notes", JOB_ID, USER_ID)
        mock_conn.commit.assert_called_once()

    @patch("pdfbatch.database.repositories.batch_job_repository.get_connection")
    def test_missing_job_returns_none(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = None

        assert BatchJobRepository().update_details(JOB_ID, USER_ID, "X", None) is None


class TestDelete:
    @patch("pdfbatch.database.repositories.batch_job_repository.get_connection")
    def test_deletes_idle_job(self, mock_get_conn: MagicMock) -> None:
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.rowcount = 1

        assert BatchJobRepository().delete(JOB_ID, USER_ID) is True
        sql, params = mock_cursor.execute.call_args.args
        assert "status NOT IN ('processing', 'merging')" in sql
        assert params == (JOB_ID, USER_ID)
        mock_conn.commit.assert_called_once()

    @patch("pdfbatch.database.repositories.batch_job_repository.get_connection")
    def test_busy_or_missing_job_is_kept(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.rowcount = 0

        assert BatchJobRepository().delete(JOB_ID, USER_ID) is False


class TestTransition:
    @patch("pdfbatch.database.repositories.batch_job_repository.get_connection")
    def test_illegal_move_never_reaches_database(self, mock_get_conn: MagicMock) -> None:
        with pytest.raises(InvalidTransitionError):
            BatchJobRepository().transition(JOB_ID, JobStatus.COMPLETED, JobStatus.PROCESSING)
        mock_get_conn.assert_not_called()

    @patch("pdfbatch.database.repositories.batch_job_repository.get_connection")
    def test_compare_and_set(self, mock_get_conn: MagicMock) -> None:
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.rowcount = 1

        BatchJobRepository().transition(JOB_ID, JobStatus.READY, JobStatus.PROCESSING)

        params = mock_cursor.execute.call_args.args[1]
        assert params[0] == "processing"
        assert params[3] is True
        assert params[4] is False
        assert params[-1] == "ready"
        mock_conn.commit.assert_called_once()

    @patch("pdfbatch.database.repositories.batch_job_repository.get_connection")
    def test_stale_row_raises(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.rowcount = 0

        with pytest.raises(StaleStateError):
            BatchJobRepository().transition(
                JOB_ID, JobStatus.PROCESSING, JobStatus.COMPLETED
            )


class TestFail:
    @patch("pdfbatch.database.repositories.batch_job_repository.get_connection")
    def test_only_from_processing(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.rowcount = 1

        assert BatchJobRepository().fail(JOB_ID, "internal", "boom") is True
        assert mock_cursor.execute.call_args.args[1][-1] == ["processing"]

    @patch("pdfbatch.database.repositories.batch_job_repository.get_connection")
    def test_returns_false_when_already_terminal(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.rowcount = 0

        assert BatchJobRepository().fail(JOB_ID, "internal", "boom") is False


class TestUpdateProgress:
    @patch("pdfbatch.database.repositories.batch_job_repository.get_connection")
    def test_writes_counters(self, mock_get_conn: MagicMock) -> None:
        mock_conn, _cursor = _mock_connection(mock_get_conn)
        progress = JobProgress(
            total_files=3,
            completed_files=1,
            failed_files=1,
            skipped_files=0,
            estimated_pages=9,
            processed_pages=4,
        )

        BatchJobRepository().update_progress(JOB_ID, progress)

        params = mock_conn.execute.call_args.args[1]
        assert params == (3, 2, 1, 9, 4, JOB_ID)
        mock_conn.commit.assert_called_once()


class TestClaimNextRunnable:
    def test_returns_none_when_idle(self) -> None:
        mock_conn = MagicMock()
        mock_cursor = MagicMock()
        mock_conn.cursor.return_value.__enter__ = MagicMock(return_value=mock_cursor)
        mock_conn.cursor.return_value.__exit__ = MagicMock(return_value=False)
        mock_cursor.fetchone.return_value = None

        assert BatchJobRepository().claim_next_runnable(mock_conn, 600) is None
        mock_conn.commit.assert_called_once()

    def test_leases_claimed_job(self) -> None:
        mock_conn = MagicMock()
        mock_cursor = MagicMock()
        mock_conn.cursor.return_value.__enter__ = MagicMock(return_value=mock_cursor)
        mock_conn.cursor.return_value.__exit__ = MagicMock(return_value=False)
        mock_cursor.fetchone.return_value = _make_row(status="ready")

        job = BatchJobRepository().claim_next_runnable(mock_conn, 600)

        assert job is not None
        assert job.status is JobStatus.READY
        select_sql = mock_cursor.execute.call_args.args[0]
        assert "FOR UPDATE SKIP LOCKED" in select_sql
        mock_conn.execute.assert_called_once()
        assert "locked_at = NOW()" in mock_conn.execute.call_args.args[0]
