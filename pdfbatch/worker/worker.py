import time

from pdfbatch.config.settings import Settings
from pdfbatch.database.connection import get_connection
from pdfbatch.database.models import BatchJobRecord
from pdfbatch.database.repositories.batch_job_repository import BatchJobRepository
from pdfbatch.download.link_issuer import DownloadLinkIssuer
from pdfbatch.logging.logger import Log
from pdfbatch.worker.job_runner import JobRunner


class Worker:
    """Poll loop: claim -> dispatch, or purge expired outputs and sleep."""

    def __init__(
        self,
        job_repo: BatchJobRepository,
        job_runner: JobRunner,
        link_issuer: DownloadLinkIssuer,
        settings: Settings,
    ) -> None:
        self._job_repo = job_repo
        self._job_runner = job_runner
        self._link_issuer = link_issuer
        self._settings = settings

    def run(self, max_jobs: int | None = None) -> None:
        """Main poll loop. Runs forever until interrupted.

        If max_jobs is set, stop after running that many sweeps (for testing).
        """
        Log.info("Worker started, polling for batch jobs")
        jobs_done = 0
        try:
            while True:
                if max_jobs is not None and jobs_done >= max_jobs:
                    break
                job = self._try_claim_job()
                if job:
                    self._job_runner.run(job)
                    jobs_done += 1
                else:
                    self._purge_expired()
                    Log.debug("No batch jobs available, sleeping")
                    time.sleep(self._settings.job_poll_interval_seconds)
        except KeyboardInterrupt:
            Log.info("Worker shutting down gracefully")

    def _try_claim_job(self) -> BatchJobRecord | None:
        """Attempt to lease the next runnable job. Gracefully handle DB errors."""
        try:
            with get_connection() as conn:
                return self._job_repo.claim_next_runnable(
                    conn, self._settings.job_lease_seconds
                )
        except Exception as exc:
            Log.warning(f"Database error, will retry: {exc}")
            return None

    def _purge_expired(self) -> None:
        try:
            self._link_issuer.purge_expired()
        except Exception as exc:
            Log.warning(f"Purging expired outputs failed, will retry: {exc}")
