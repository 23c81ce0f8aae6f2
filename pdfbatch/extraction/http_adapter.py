import time
from typing import Any

import httpx

from pdfbatch.config.settings import Settings
from pdfbatch.extraction.base import BaseExtractionAdapter
from pdfbatch.extraction.exceptions import ExtractionError, ExtractionErrorKind
from pdfbatch.extraction.math_detector import detect_math_fragments
from pdfbatch.extraction.models import ExtractedTable, ExtractionResult, MathFragment

_INVALID_INPUT_STATUSES = frozenset({400, 413, 415, 422})
_QUOTA_STATUSES = frozenset({402, 429})


def classify_status(status_code: int) -> ExtractionErrorKind:
    if status_code >= 500:
        return ExtractionErrorKind.TRANSIENT
    if status_code in _INVALID_INPUT_STATUSES:
        return ExtractionErrorKind.INVALID_INPUT
    if status_code in _QUOTA_STATUSES:
        return ExtractionErrorKind.QUOTA_EXCEEDED
    return ExtractionErrorKind.UNKNOWN


class HttpExtractionAdapter(BaseExtractionAdapter):
    """Sends PDF bytes to an external extraction service over HTTP.

    The service answers with JSON carrying ``text`` and, optionally, ``pages``
    (a list of ``{text, confidence}``), ``page_count``, ``tables`` and ``math``.
    """

    name = "http"

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str = "",
        timeout_seconds: int = 60,
        client: httpx.Client | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("extraction_service_url is required for the http engine")
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = client or httpx.Client(
            base_url=base_url, headers=headers, timeout=timeout_seconds
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpExtractionAdapter":
        return cls(
            base_url=settings.extraction_service_url,
            api_key=settings.extraction_service_api_key,
            timeout_seconds=settings.extraction_timeout_seconds,
        )

    def extract(self, pdf_bytes: bytes) -> ExtractionResult:
        started = time.monotonic()
        try:
            response = self._client.post(
                "/extract",
                content=pdf_bytes,
                headers={"Content-Type": "application/pdf"},
            )
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise ExtractionError(
                f"Extraction service unreachable: {exc}", ExtractionErrorKind.TRANSIENT
            ) from exc

        if response.status_code >= 400:
            raise ExtractionError(
                f"Extraction service returned HTTP {response.status_code}",
                classify_status(response.status_code),
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ExtractionError(
                f"Extraction service returned invalid JSON: {exc}"
            ) from exc
        if not isinstance(payload, dict):
            raise ExtractionError("Extraction service returned an unexpected payload")

        return _parse_payload(payload, int((time.monotonic() - started) * 1000))


def _parse_payload(payload: dict[str, Any], duration_ms: int) -> ExtractionResult:
    pages = payload.get("pages") or []
    if pages:
        page_texts = [str(page.get("text") or "") for page in pages]
        confidences = [float(page.get("confidence", 0.0)) for page in pages]
        text = str(payload.get("text") or "\n".join(page_texts)).strip()
        page_count = len(pages)
        reported = True
    else:
        page_texts = [str(payload.get("text") or "")]
        text = page_texts[0].strip()
        page_count = int(payload.get("page_count") or 1)
        reported = bool(payload.get("page_count"))
        confidence = payload.get("confidence")
        confidences = [float(confidence)] if confidence is not None else []

    tables = [
        ExtractedTable(
            headers=[str(h) for h in table.get("headers", [])],
            rows=[[str(cell) for cell in row] for row in table.get("rows", [])],
            page=table.get("page"),
        )
        for table in payload.get("tables") or []
    ]

    fragments = [
        MathFragment(
            kind=str(item.get("kind", "formula")),
            content=str(item.get("content", "")),
            page=item.get("page"),
        )
        for item in payload.get("math") or []
        if item.get("content")
    ]
    seen = {fragment.content for fragment in fragments}
    for index, page_text in enumerate(page_texts, start=1):
        for fragment in detect_math_fragments(page_text, page=index if reported else None):
            if fragment.content not in seen:
                seen.add(fragment.content)
                fragments.append(fragment)

    return ExtractionResult(
        text=text,
        page_count=page_count,
        page_confidences=confidences,
        duration_ms=duration_ms,
        tables=tables,
        math_fragments=fragments,
        page_count_reported=reported,
    )
