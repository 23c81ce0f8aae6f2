"""Pattern-based detection of mathematical fragments in extracted text."""

import re

from pdfbatch.extraction.models import MathFragment

_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("equation", re.compile(r"\$\$([^$]+)\$\$")),
    ("equation", re.compile(r"(?<!\$)\$([^$\n]+)\$(?!\$)")),
    ("formula", re.compile(r"(\d+(?:\.\d+)?\s*[+\-*/÷×]\s*\d+(?:\.\d+)?\s*=\s*\d+(?:\.\d+)?)")),
    ("formula", re.compile(r"(√\d+|√\([^)]+\))")),
    ("formula", re.compile(r"(\d+\^[\d+\-*/()]+)")),
    ("formula", re.compile(r"(∫[^∫\n]+?d[a-zA-Z])")),
    ("formula", re.compile(r"([Σ∑][^Σ∑\n]+)")),
]


def detect_math_fragments(text: str, page: int | None = None) -> list[MathFragment]:
    """Return fragments in order of appearance, each distinct content once."""
    found: list[tuple[int, MathFragment]] = []
    seen: set[str] = set()
    for kind, pattern in _PATTERNS:
        for match in pattern.finditer(text):
            content = match.group(1).strip()
            if not content or content in seen:
                continue
            seen.add(content)
            found.append((match.start(), MathFragment(kind=kind, content=content, page=page)))
    found.sort(key=lambda item: item[0])
    return [fragment for _, fragment in found]
