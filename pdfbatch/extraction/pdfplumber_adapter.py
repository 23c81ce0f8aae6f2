import io
import time

import pdfplumber

from pdfbatch.extraction.base import LocalPageExtractor
from pdfbatch.extraction.exceptions import ExtractionError, ExtractionErrorKind
from pdfbatch.extraction.models import ExtractedTable, ExtractionResult


class PdfPlumberAdapter(LocalPageExtractor):
    """Extracts text and tables from PDF using pdfplumber."""

    name = "pdfplumber"

    def extract(self, pdf_bytes: bytes) -> ExtractionResult:
        started = time.monotonic()
        try:
            with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
                pages: list[str] = []
                tables: list[ExtractedTable] = []
                for index, page in enumerate(pdf.pages, start=1):
                    pages.append(page.extract_text() or "")
                    for raw_table in page.extract_tables():
                        table = _to_table(raw_table, index)
                        if table is not None:
                            tables.append(table)
        except ExtractionError:
            raise
        except Exception as exc:
            raise ExtractionError(
                f"pdfplumber extraction failed: {exc}", ExtractionErrorKind.INVALID_INPUT
            ) from exc
        return self._build_result(pages, started, tables)


def _to_table(raw: list[list[str | None]], page: int) -> ExtractedTable | None:
    rows = [
        [(cell or "").strip() for cell in row]
        for row in raw
        if row and any((cell or "").strip() for cell in row)
    ]
    if not rows:
        return None
    return ExtractedTable(headers=rows[0], rows=rows[1:], page=page)
