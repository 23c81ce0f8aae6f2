from pdfbatch.config.settings import Settings
from pdfbatch.extraction.base import BaseExtractionAdapter
from pdfbatch.extraction.http_adapter import HttpExtractionAdapter
from pdfbatch.extraction.pdfplumber_adapter import PdfPlumberAdapter
from pdfbatch.extraction.pymupdf_adapter import PyMuPdfAdapter


class ExtractionAdapterFactory:
    """Creates the correct extraction adapter based on settings."""

    ADAPTERS: dict[str, type[BaseExtractionAdapter]] = {
        "pdfplumber": PdfPlumberAdapter,
        "pymupdf": PyMuPdfAdapter,
        "http": HttpExtractionAdapter,
    }

    @classmethod
    def create(cls, settings: Settings) -> BaseExtractionAdapter:
        engine = settings.extraction_engine.lower()
        adapter_cls = cls.ADAPTERS.get(engine)
        if adapter_cls is None:
            raise ValueError(
                f"Unknown extraction engine '{engine}'. Choose from: {list(cls.ADAPTERS)}"
            )
        if adapter_cls is HttpExtractionAdapter:
            return HttpExtractionAdapter.from_settings(settings)
        return adapter_cls()
