import shutil
from pathlib import Path
from uuid import UUID

from pdfbatch.database.models import BatchFileRecord
from pdfbatch.processor.exceptions import FileReadError, UnsafeStoragePathError


def batch_file_path(files_root: Path, job_id: UUID, file_id: UUID) -> Path:
    """Build path to an uploaded batch file: {files_root}/{job_id}/{file_id}.pdf"""
    return files_root / str(job_id) / f"{file_id}.pdf"


def remove_job_dir(root: Path, job_id: UUID) -> bool:
    """Delete {root}/{job_id} and everything under it. False when it did not exist."""
    directory = root / str(job_id)
    if not directory.is_dir():
        return False
    shutil.rmtree(directory, ignore_errors=True)
    return True


class FileLoader:
    """Resolves the filesystem path of a batch file and reads its bytes."""

    FILES_ROOT = Path("/app/files")

    def __init__(self, files_root: Path | None = None) -> None:
        self._files_root = files_root if files_root is not None else self.FILES_ROOT

    @property
    def files_root(self) -> Path:
        return self._files_root

    def load(self, batch_file: BatchFileRecord) -> bytes:
        """Read batch file bytes from disk.

        Raises:
            FileReadError: if the file is missing or unreadable.
            UnsafeStoragePathError: if its storage path escapes the files root.
        """
        path = self.resolve(batch_file)
        if not path.is_file():
            raise FileReadError(f"File not found: {path}")
        try:
            return path.read_bytes()
        except OSError as exc:
            raise FileReadError(f"Cannot read {path}: {exc}") from exc

    def resolve(self, batch_file: BatchFileRecord) -> Path:
        if batch_file.storage_path:
            candidate = Path(batch_file.storage_path)
            if not candidate.is_absolute():
                candidate = self._files_root / candidate
        else:
            candidate = batch_file_path(
                self._files_root, batch_file.batch_job_id, batch_file.id
            )
        resolved = candidate.resolve()
        if not resolved.is_relative_to(self._files_root.resolve()):
            raise UnsafeStoragePathError(
                f"Storage path for batch file {batch_file.id} is outside the files root"
            )
        return resolved

    def store(self, job_id: UUID, file_id: UUID, content: bytes) -> Path:
        """Write uploaded bytes to their canonical location and return the path."""
        path = batch_file_path(self._files_root, job_id, file_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path

    def remove_job(self, job_id: UUID) -> bool:
        """Delete every stored upload of a job."""
        return remove_job_dir(self._files_root, job_id)
