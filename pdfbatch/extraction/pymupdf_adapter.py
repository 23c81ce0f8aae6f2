import time

import pymupdf

from pdfbatch.extraction.base import LocalPageExtractor
from pdfbatch.extraction.exceptions import ExtractionError, ExtractionErrorKind
from pdfbatch.extraction.models import ExtractionResult


class PyMuPdfAdapter(LocalPageExtractor):
    """Extracts per-page text from PDF using PyMuPDF."""

    name = "pymupdf"

    def extract(self, pdf_bytes: bytes) -> ExtractionResult:
        started = time.monotonic()
        try:
            with pymupdf.open(stream=pdf_bytes, filetype="pdf") as doc:  # type: ignore[no-untyped-call]
                pages = [page.get_text() for page in doc]
        except ExtractionError:
            raise
        except Exception as exc:
            raise ExtractionError(
                f"pymupdf extraction failed: {exc}", ExtractionErrorKind.INVALID_INPUT
            ) from exc
        return self._build_result(pages, started)
