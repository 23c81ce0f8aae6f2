from enum import Enum


class PagePricingPolicy(str, Enum):
    """Which page count a completed file is billed for.

    ACTUAL bills what the extraction service reported, falling back to the
    pre-upload estimate when it reported nothing. ESTIMATE bills the quote the
    user saw at job creation. LESSER bills the smaller of the two.
    """

    ACTUAL = "actual"
    ESTIMATE = "estimate"
    LESSER = "lesser"

    @classmethod
    def parse(cls, value: str) -> "PagePricingPolicy":
        try:
            return cls(value.strip().lower())
        except ValueError as exc:
            raise ValueError(
                f"Unknown billing page policy '{value}'. "
                f"Choose from: {[p.value for p in cls]}"
            ) from exc

    def billable_pages(self, actual_pages: int | None, estimated_pages: int) -> int:
        estimate = max(0, estimated_pages)
        if actual_pages is None:
            return estimate
        actual = max(0, actual_pages)
        if self is PagePricingPolicy.ACTUAL:
            return actual
        if self is PagePricingPolicy.ESTIMATE:
            return estimate
        return min(actual, estimate)
