import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import UUID

from pdfbatch.batch.states import MergeFormat
from pdfbatch.config.settings import Settings
from pdfbatch.database.models import BatchOutputRecord
from pdfbatch.database.repositories.batch_output_repository import BatchOutputRepository
from pdfbatch.download.exceptions import DownloadNotFoundError, InvalidDownloadRequestError
from pdfbatch.logging.logger import Log
from pdfbatch.merge.models import Artifact

_OUTPUT_ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"
)
_TOKEN_PATTERN = re.compile(r"^[0-9a-f]{64}$")


@dataclass(frozen=True)
class DownloadPayload:
    content: bytes
    content_type: str
    size: int
    file_name: str


def parse_output_id(value: str) -> UUID:
    """Parse a canonical lowercase UUID string.

    Raises:
        InvalidDownloadRequestError: if the value is not one.
    """
    if not _OUTPUT_ID_PATTERN.match(value):
        raise InvalidDownloadRequestError("Invalid output id format")
    return UUID(value)


def validate_token(token: str) -> str:
    if not _TOKEN_PATTERN.match(token):
        raise InvalidDownloadRequestError("Invalid download token format")
    return token


class DownloadLinkIssuer:
    """Issues single-use, time-limited download tokens for merged artifacts.

    A token is redeemed by one conditional UPDATE, so of two concurrent
    redemptions exactly one wins. Every failure after format validation is
    reported as not found, never as forbidden.
    """

    def __init__(
        self,
        output_repo: BatchOutputRepository,
        ttl_hours: int = 24,
    ) -> None:
        self._output_repo = output_repo
        self._ttl = timedelta(hours=ttl_hours)

    def issue(
        self,
        batch_job_id: UUID,
        fmt: MergeFormat,
        artifact: Artifact,
        now: datetime | None = None,
    ) -> BatchOutputRecord:
        issued_at = now or datetime.now(timezone.utc)
        output = self._output_repo.create(
            batch_job_id=batch_job_id,
            output_format=fmt,
            file_path=str(artifact.path),
            file_name=artifact.file_name,
            file_size=artifact.size,
            download_token=secrets.token_hex(32),
            expires_at=issued_at + self._ttl,
        )
        Log.info(
            f"Issued download link for output {output.id} of batch job {batch_job_id}, "
            f"expires {output.expires_at.isoformat()}"
        )
        return output

    def redeem(self, output_id: str, token: str) -> DownloadPayload:
        """Consume a token and return the artifact bytes.

        Raises:
            InvalidDownloadRequestError: malformed id or token.
            DownloadNotFoundError: anything else that prevents the download.
        """
        parsed_id = parse_output_id(output_id)
        validate_token(token)

        output = self._output_repo.consume(parsed_id, token)
        if output is None:
            Log.warning(f"Rejected download for output {parsed_id}")
            raise DownloadNotFoundError("Download link not found or expired")

        path = Path(output.file_path)
        try:
            content = path.read_bytes()
        except OSError as exc:
            Log.error(f"Artifact for output {output.id} is unreadable: {exc}")
            raise DownloadNotFoundError("Download link not found or expired") from exc

        Log.info(f"Served download of output {output.id} ({len(content)} bytes)")
        return DownloadPayload(
            content=content,
            content_type=output.content_type,
            size=len(content),
            file_name=output.file_name,
        )

    def purge_expired(self, now: datetime | None = None) -> int:
        """Delete artifacts of expired outputs and stamp them purged.

        Returns:
            Number of outputs purged.
        """
        cutoff = now or datetime.now(timezone.utc)
        purged = 0
        for output in self._output_repo.list_expired(cutoff):
            Path(output.file_path).unlink(missing_ok=True)
            self._output_repo.mark_purged(output.id)
            purged += 1
        if purged:
            Log.info(f"Purged {purged} expired batch output(s)")
        return purged


def build_link_issuer(settings: Settings) -> DownloadLinkIssuer:
    return DownloadLinkIssuer(
        output_repo=BatchOutputRepository(),
        ttl_hours=settings.download_link_ttl_hours,
    )
