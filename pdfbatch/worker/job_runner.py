from pdfbatch.batch.coordinator import BatchJobCoordinator
from pdfbatch.batch.exceptions import InternalPipelineError, InvalidTransitionError, JobNotFoundError
from pdfbatch.database.models import BatchJobRecord
from pdfbatch.database.repositories.batch_job_repository import BatchJobRepository
from pdfbatch.logging.logger import Log


class JobRunner:
    """Run one sweep of a claimed batch job, log the outcome, release the lease."""

    def __init__(
        self,
        coordinator: BatchJobCoordinator,
        job_repo: BatchJobRepository,
    ) -> None:
        self._coordinator = coordinator
        self._job_repo = job_repo

    def run(self, job: BatchJobRecord) -> None:
        """Execute a single sweep with error handling."""
        Log.info(f"Running batch job {job.id} ({job.status.value})")
        try:
            result = self._coordinator.process_job(job.id, job.user_id)
            if result.error_code:
                Log.error(
                    f"Batch job {job.id} ended {result.status.value} "
                    f"with {result.error_code}"
                )
            else:
                Log.info(
                    f"Batch job {job.id} swept: {len(result.processed)} completed, "
                    f"{len(result.failed)} failed, status {result.status.value}"
                    + (" (interrupted)" if result.interrupted else "")
                )
        except InternalPipelineError as exc:
            Log.error(f"Batch job {job.id} failed: {exc}")
        except InvalidTransitionError as exc:
            Log.info(f"Batch job {job.id} no longer runnable: {exc}")
        except JobNotFoundError:
            Log.warning(f"Batch job {job.id} disappeared before it could run")
        except Exception as exc:
            Log.error(f"Batch job {job.id} sweep aborted, will retry after lease: {exc}")
        finally:
            self._release(job)

    def _release(self, job: BatchJobRecord) -> None:
        try:
            self._job_repo.release(job.id)
        except Exception as exc:
            Log.warning(f"Could not release lease on batch job {job.id}: {exc}")
