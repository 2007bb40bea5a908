"""Coarse display categories for upstream charge status strings.

Matching is case-insensitive substring matching, not an exact enum: anything
containing "cancel" counts as failed, whatever PPRO calls it.
"""

from dataclasses import dataclass

SUCCESS = "success"
PENDING = "pending"
FAILED = "failed"
UNKNOWN = "unknown"

# Checked in order; first match wins.
CATEGORY_MARKERS: list[tuple[str, tuple[str, ...]]] = [
    (SUCCESS, ("success", "captured")),
    (PENDING, ("pending", "processing")),
    (FAILED, ("fail", "error", "cancel", "expired")),
]


def categorize_status(status: str | None) -> str:
    """Return success/pending/failed/unknown for an upstream status string."""

    lowered = (status or "").lower()
    for category, markers in CATEGORY_MARKERS:
        if any(marker in lowered for marker in markers):
            return category
    return UNKNOWN


@dataclass(frozen=True)
class StatusOutcome:
    category: str
    title: str
    message: str


def describe_status(status: str | None) -> StatusOutcome:
    """Shopper-facing title/message for a status, keeping cancel and expiry distinct."""

    lowered = (status or "").lower()
    category = categorize_status(status)
    if category == SUCCESS:
        return StatusOutcome(category, "Payment Successful!", "Your payment has been processed successfully.")
    if category == PENDING:
        return StatusOutcome(
            category,
            "Payment Processing",
            "Your payment is being processed. This may take a few moments.",
        )
    if category == FAILED:
        if "cancel" in lowered:
            return StatusOutcome(category, "Payment Cancelled", "Your payment has been cancelled.")
        if "expired" in lowered:
            return StatusOutcome(category, "Payment Expired", "Your payment has expired.")
        return StatusOutcome(category, "Payment Failed", "Unfortunately, your payment could not be processed.")
    return StatusOutcome(
        category,
        "Payment Status Unknown",
        "We are unable to determine the payment status at this time.",
    )
