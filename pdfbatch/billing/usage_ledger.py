from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

import psycopg

from pdfbatch.billing.exceptions import InsufficientCreditsError
from pdfbatch.billing.pricing import PagePricingPolicy
from pdfbatch.config.settings import Settings
from pdfbatch.database.connection import get_connection
from pdfbatch.logging.logger import Log


@dataclass(frozen=True)
class ChargeReceipt:
    """Outcome of a successful charge. ``pages == 0`` means nothing was debited."""

    user_id: UUID
    pages: int
    pages_used_after: int | None = None
    file_ids: list[UUID] = field(default_factory=list)


class UsageLedger:
    """Checks and debits a user's page allowance.

    The debit is one conditional UPDATE on the account row, so the database
    arbitrates concurrent charges; the pipeline never computes a balance.
    """

    def __init__(self, pricing_policy: PagePricingPolicy = PagePricingPolicy.ACTUAL) -> None:
        self._pricing_policy = pricing_policy

    def can_afford(self, user_id: UUID, pages: int) -> bool:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT pages_used + %s <= pages_limit
                    FROM user_accounts
                    WHERE user_id = %s
                    """,
                    (max(0, pages), user_id),
                )
                row = cur.fetchone()
        return bool(row[0]) if row is not None else False

    def charge(
        self, user_id: UUID, pages: int, batch_job_id: UUID | None = None
    ) -> ChargeReceipt:
        """Debit ``pages`` from the user's allowance.

        Raises:
            ValueError: if ``pages`` is negative.
            InsufficientCreditsError: if the account cannot cover the charge.
        """
        if pages < 0:
            raise ValueError("pages must be >= 0")
        if pages == 0:
            return ChargeReceipt(user_id=user_id, pages=0)

        with get_connection() as conn:
            with conn.cursor() as cur:
                used_after = self._debit(cur, user_id, pages, batch_job_id)
                if used_after is None:
                    conn.rollback()
                    raise InsufficientCreditsError(user_id, pages)
            conn.commit()

        Log.info(f"Charged user {user_id} {pages} page(s), used now {used_after}")
        return ChargeReceipt(user_id=user_id, pages=pages, pages_used_after=used_after)

    def charge_completed_files(self, user_id: UUID, batch_job_id: UUID) -> ChargeReceipt:
        """Bill every completed, not-yet-billed file of a job in one transaction.

        Files are claimed by stamping ``billed_at``; if the debit is refused the
        claim rolls back with it, so the files stay billable. Files billed by an
        earlier call are never claimed again.

        Raises:
            InsufficientCreditsError: if the account cannot cover the claimed pages.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE batch_files
                    SET billed_at = NOW()
                    WHERE batch_job_id = %s
                      AND status = 'completed'
                      AND billed_at IS NULL
                    RETURNING id, actual_pages, estimated_pages
                    """,
                    (batch_job_id,),
                )
                claimed = cur.fetchall()
                file_ids = [row[0] for row in claimed]
                pages = sum(
                    self._pricing_policy.billable_pages(row[1], row[2]) for row in claimed
                )
                if pages == 0:
                    conn.commit()
                    return ChargeReceipt(user_id=user_id, pages=0, file_ids=file_ids)

                used_after = self._debit(cur, user_id, pages, batch_job_id)
                if used_after is None:
                    conn.rollback()
                    Log.warning(
                        f"Charge of {pages} page(s) refused for user {user_id} "
                        f"on batch job {batch_job_id}"
                    )
                    raise InsufficientCreditsError(user_id, pages)
            conn.commit()

        Log.info(
            f"Charged user {user_id} {pages} page(s) for {len(file_ids)} file(s) "
            f"of batch job {batch_job_id}"
        )
        return ChargeReceipt(
            user_id=user_id, pages=pages, pages_used_after=used_after, file_ids=file_ids
        )

    def _debit(
        self, cur: psycopg.Cursor[Any], user_id: UUID, pages: int, batch_job_id: UUID | None
    ) -> int | None:
        cur.execute(
            """
            UPDATE user_accounts
            SET pages_used = pages_used + %s, updated_at = NOW()
            WHERE user_id = %s AND pages_used + %s <= pages_limit
            RETURNING pages_used
            """,
            (pages, user_id, pages),
        )
        row = cur.fetchone()
        if row is None:
            return None
        cur.execute(
            """
            INSERT INTO usage_ledger_entries (user_id, batch_job_id, pages, pages_used_after)
            VALUES (%s, %s, %s, %s)
            """,
            (user_id, batch_job_id, pages, row[0]),
        )
        return int(row[0])


def build_usage_ledger(settings: Settings) -> UsageLedger:
    return UsageLedger(PagePricingPolicy.parse(settings.billing_page_policy))
