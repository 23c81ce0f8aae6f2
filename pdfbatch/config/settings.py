from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "pdfbatch"
    db_username: str = "pdfbatch"
    db_password: str = "secret"
    db_pool_max_size: int = 10

    extraction_engine: str = "pdfplumber"
    extraction_service_url: str = ""
    extraction_service_api_key: str = ""
    extraction_timeout_seconds: int = 60

    files_root: str = "/app/files"
    output_root: str = "/tmp/batch_outputs"

    max_files_per_job: int = 100
    max_file_size_bytes: int = 50 * 1024 * 1024
    min_file_size_bytes: int = 100
    bytes_per_estimated_page: int = 50 * 1024

    # 0 disables the bound; the client re-polls Process until all_completed.
    max_files_per_sweep: int = 0
    sweep_time_budget_seconds: int = 0
    stale_processing_seconds: int = 900

    billing_page_policy: str = "actual"
    download_link_ttl_hours: int = 24

    job_poll_interval_seconds: int = 5
    job_lease_seconds: int = 600
