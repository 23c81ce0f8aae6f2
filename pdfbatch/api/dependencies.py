from functools import lru_cache
from uuid import UUID

from fastapi import Header

from pdfbatch.batch.coordinator import BatchJobCoordinator, build_coordinator
from pdfbatch.batch.exceptions import BatchValidationError
from pdfbatch.batch.job_service import BatchJobService, build_job_service
from pdfbatch.config.settings import Settings
from pdfbatch.download.link_issuer import DownloadLinkIssuer, build_link_issuer


@lru_cache
def get_settings() -> Settings:
    return Settings()


@lru_cache
def get_coordinator() -> BatchJobCoordinator:
    return build_coordinator(get_settings())


@lru_cache
def get_job_service() -> BatchJobService:
    return build_job_service(get_settings())


@lru_cache
def get_link_issuer() -> DownloadLinkIssuer:
    return build_link_issuer(get_settings())


def get_user_id(x_user_id: str = Header(default="")) -> UUID:
    """Caller identity, asserted by the authenticating proxy in front of the API."""
    try:
        return UUID(x_user_id)
    except ValueError as exc:
        raise BatchValidationError("Missing or invalid X-User-Id header") from exc
