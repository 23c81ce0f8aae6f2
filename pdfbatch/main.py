from pdfbatch.batch.coordinator import build_coordinator
from pdfbatch.config.settings import Settings
from pdfbatch.database.connection import close_pool, init_pool
from pdfbatch.database.repositories.batch_job_repository import BatchJobRepository
from pdfbatch.download.link_issuer import build_link_issuer
from pdfbatch.logging.logger import Log
from pdfbatch.worker.job_runner import JobRunner
from pdfbatch.worker.worker import Worker


def main() -> None:
    """Entry point: initialize pool -> build dependencies -> start worker loop."""
    settings = Settings()
    Log.configure(settings.log_level)
    init_pool(settings)

    try:
        coordinator = build_coordinator(settings)
        job_repo = BatchJobRepository()
        job_runner = JobRunner(coordinator, job_repo)
        worker = Worker(job_repo, job_runner, build_link_issuer(settings), settings)
        worker.run()
    finally:
        close_pool()


if __name__ == "__main__":
    main()
