from uuid import UUID


class BillingError(Exception):
    """Base exception for usage ledger errors."""


class InsufficientCreditsError(BillingError):
    """Raised when the ledger refuses a charge. The balance is unchanged."""

    code = "insufficient_funds"

    def __init__(self, user_id: UUID, pages: int, message: str | None = None) -> None:
        self.user_id = user_id
        self.pages = pages
        super().__init__(
            message or f"User {user_id} cannot afford {pages} page(s)"
        )
