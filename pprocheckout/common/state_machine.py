"""Checkout flow state transitions shared by the orchestrator and page controllers."""

CREATED = "CREATED"
REDIRECT_PENDING = "REDIRECT_PENDING"
QR_PENDING = "QR_PENDING"
SUCCEEDED = "SUCCEEDED"
FAILED = "FAILED"
EXPIRED = "EXPIRED"

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    CREATED: {REDIRECT_PENDING, QR_PENDING, FAILED},
    REDIRECT_PENDING: {SUCCEEDED, FAILED},
    QR_PENDING: {SUCCEEDED, FAILED, EXPIRED},
    SUCCEEDED: set(),
    # A re-checked charge can still report success after a failure-like status.
    FAILED: {SUCCEEDED},
    EXPIRED: set(),
}

TERMINAL_STATES = frozenset({SUCCEEDED, EXPIRED})


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Invalid transition: {current} -> {new}")


def resolved_state(category: str) -> str | None:
    """Resolved flow state for a display category, or None while still pending or unknown."""

    return {"success": SUCCEEDED, "failed": FAILED}.get(category)
