import time
from abc import ABC, abstractmethod

from pdfbatch.extraction.math_detector import detect_math_fragments
from pdfbatch.extraction.models import ExtractedTable, ExtractionResult, MathFragment


class BaseExtractionAdapter(ABC):
    """Contract for all document extraction adapters.

    Adapters never retry; the caller owns the retry policy.
    """

    name: str = "base"

    @abstractmethod
    def extract(self, pdf_bytes: bytes) -> ExtractionResult:
        """Extract text and structure from PDF bytes.

        Args:
            pdf_bytes: Raw PDF file content.

        Returns:
            ExtractionResult with text, page count and per-page confidence.

        Raises:
            ExtractionError: classified as transient, invalid_input,
                quota_exceeded or unknown.
        """


class LocalPageExtractor(BaseExtractionAdapter):
    """Shared assembly for engines that read the PDF page by page in-process.

    Pages with a text layer score a confidence of 1.0, pages without one 0.0.
    """

    def _build_result(
        self,
        pages: list[str],
        started: float,
        tables: list[ExtractedTable] | None = None,
    ) -> ExtractionResult:
        fragments: list[MathFragment] = []
        for index, page_text in enumerate(pages, start=1):
            fragments.extend(detect_math_fragments(page_text, page=index))
        return ExtractionResult(
            text="\n".join(pages).strip(),
            page_count=len(pages),
            page_confidences=[1.0 if p.strip() else 0.0 for p in pages],
            duration_ms=int((time.monotonic() - started) * 1000),
            tables=tables or [],
            math_fragments=fragments,
        )
