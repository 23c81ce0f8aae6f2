from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class MergeJobInfo:
    """Job-level fields shown in the merged document's banner."""

    name: str
    description: str | None = None


@dataclass(frozen=True)
class MergeEntry:
    """One completed file as it appears in the merged document."""

    filename: str
    pages: int
    text: str
    file_size: int = 0
    tables: list[dict[str, Any]] = field(default_factory=list)
    math_fragments: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class Artifact:
    """A merged document written to disk."""

    path: Path
    file_name: str
    size: int
