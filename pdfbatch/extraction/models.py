from dataclasses import dataclass, field


@dataclass(frozen=True)
class ExtractedTable:
    """A table found on a page. ``headers`` is the first non-empty row."""

    headers: list[str]
    rows: list[list[str]] = field(default_factory=list)
    page: int | None = None


@dataclass(frozen=True)
class MathFragment:
    """A symbolic or mathematical snippet spotted in the page text."""

    kind: str
    content: str
    page: int | None = None


@dataclass(frozen=True)
class ExtractionResult:
    """Output of one extraction call.

    ``page_count_reported`` is False when the engine returned no per-page
    segmentation and ``page_count`` is only a fallback.
    """

    text: str
    page_count: int
    page_confidences: list[float] = field(default_factory=list)
    duration_ms: int = 0
    tables: list[ExtractedTable] = field(default_factory=list)
    math_fragments: list[MathFragment] = field(default_factory=list)
    page_count_reported: bool = True

    @property
    def confidence(self) -> float:
        """Mean of the per-page confidences, 0.0 when there are none."""
        if not self.page_confidences:
            return 0.0
        return round(sum(self.page_confidences) / len(self.page_confidences), 4)
