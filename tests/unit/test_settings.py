import pytest
from pydantic import ValidationError

from pdfbatch.config.settings import Settings


class TestSettingsDefaults:
    def test_default_app_env(self) -> None:
        s = Settings()
        assert s.app_env == "dev"

    def test_default_db_port(self) -> None:
        s = Settings()
        assert s.db_port == 5432

    def test_default_extraction_engine(self) -> None:
        s = Settings()
        assert s.extraction_engine == "pdfplumber"

    def test_default_job_limits(self) -> None:
        s = Settings()
        assert s.max_files_per_job == 100
        assert s.max_file_size_bytes == 50 * 1024 * 1024
        assert s.bytes_per_estimated_page == 50 * 1024

    def test_sweeps_are_unbounded_by_default(self) -> None:
        s = Settings()
        assert s.max_files_per_sweep == 0
        assert s.sweep_time_budget_seconds == 0

    def test_default_download_ttl(self) -> None:
        s = Settings()
        assert s.download_link_ttl_hours == 24

    def test_default_billing_policy(self) -> None:
        s = Settings()
        assert s.billing_page_policy == "actual"


class TestSettingsFromEnv:
    def test_loads_app_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("APP_ENV", "production")
        s = Settings()
        assert s.app_env == "production"

    def test_loads_log_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        s = Settings()
        assert s.log_level == "DEBUG"

    def test_loads_db_host(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DB_HOST", "db.example.com")
        s = Settings()
        assert s.db_host == "db.example.com"

    def test_loads_max_files_per_sweep(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MAX_FILES_PER_SWEEP", "5")
        s = Settings()
        assert s.max_files_per_sweep == 5

    def test_loads_extraction_service_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("EXTRACTION_SERVICE_URL", "http://extract.internal")
        s = Settings()
        assert s.extraction_service_url == "http://extract.internal"


class TestSettingsValidation:
    def test_invalid_db_port_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DB_PORT", "not_a_number")
        with pytest.raises(ValidationError):
            Settings()

    def test_invalid_ttl_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DOWNLOAD_LINK_TTL_HOURS", "abc")
        with pytest.raises(ValidationError):
            Settings()
