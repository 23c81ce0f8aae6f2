"""Job and file lifecycles as closed enums with total transition tables."""

from enum import Enum

from pdfbatch.batch.exceptions import InvalidTransitionError


class JobStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    PROCESSING = "processing"
    MERGING = "merging"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return not JOB_TRANSITIONS[self]


class FileStatus(str, Enum):
    PENDING = "pending"
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return not FILE_TRANSITIONS[self]


JOB_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.READY, JobStatus.PROCESSING}),
    JobStatus.READY: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset(
        {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.MERGING}
    ),
    JobStatus.MERGING: frozenset({JobStatus.COMPLETED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}

# processing -> processing restarts a file abandoned by a killed sweep.
FILE_TRANSITIONS: dict[FileStatus, frozenset[FileStatus]] = {
    FileStatus.PENDING: frozenset(
        {FileStatus.UPLOADED, FileStatus.PROCESSING, FileStatus.SKIPPED}
    ),
    FileStatus.UPLOADED: frozenset({FileStatus.PROCESSING, FileStatus.SKIPPED}),
    FileStatus.PROCESSING: frozenset(
        {FileStatus.PROCESSING, FileStatus.COMPLETED, FileStatus.FAILED}
    ),
    FileStatus.COMPLETED: frozenset(),
    FileStatus.FAILED: frozenset(),
    FileStatus.SKIPPED: frozenset(),
}


def can_transition_job(current: JobStatus, target: JobStatus) -> bool:
    return target in JOB_TRANSITIONS[current]


def can_transition_file(current: FileStatus, target: FileStatus) -> bool:
    return target in FILE_TRANSITIONS[current]


def job_sources(target: JobStatus) -> list[JobStatus]:
    """All job states from which ``target`` is reachable in one step."""
    return [state for state in JobStatus if target in JOB_TRANSITIONS[state]]


def file_sources(target: FileStatus) -> list[FileStatus]:
    """All file states from which ``target`` is reachable in one step."""
    return [state for state in FileStatus if target in FILE_TRANSITIONS[state]]


def ensure_job_transition(current: JobStatus, target: JobStatus) -> None:
    if not can_transition_job(current, target):
        raise InvalidTransitionError(
            f"Cannot move batch job from '{current.value}' to '{target.value}'"
        )


def ensure_file_transition(current: FileStatus, target: FileStatus) -> None:
    if not can_transition_file(current, target):
        raise InvalidTransitionError(
            f"Cannot move batch file from '{current.value}' to '{target.value}'"
        )


class MergeFormat(str, Enum):
    PLAIN = "plain"
    STRUCTURED = "structured"
    RICH = "rich"

    @property
    def extension(self) -> str:
        return _EXTENSIONS[self]

    @property
    def content_type(self) -> str:
        return _CONTENT_TYPES[self]

    @classmethod
    def parse(cls, value: str) -> "MergeFormat":
        """Parse a format name, accepting the legacy txt/md/docx spellings."""
        normalized = value.strip().lower()
        normalized = _LEGACY_NAMES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError as exc:
            supported = [member.value for member in cls]
            raise ValueError(
                f"Unknown merge format '{value}'. Choose from: {supported}"
            ) from exc


_EXTENSIONS = {
    MergeFormat.PLAIN: "txt",
    MergeFormat.STRUCTURED: "md",
    MergeFormat.RICH: "html",
}

_CONTENT_TYPES = {
    MergeFormat.PLAIN: "text/plain; charset=utf-8",
    MergeFormat.STRUCTURED: "text/markdown; charset=utf-8",
    MergeFormat.RICH: "text/html; charset=utf-8",
}

_LEGACY_NAMES = {"txt": "plain", "md": "structured", "docx": "rich"}
