"""Active notification status transitions enforced by the transition engine."""

PENDING = "pending"
READ = "read"
DELETED = "deleted"

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    PENDING: {READ, DELETED},
    # Re-reading is a no-op so clients can retry without errors.
    READ: {READ, DELETED},
    DELETED: set(),
}

# Status names accepted from clients mapped onto projection states.
REQUESTED_STATUSES: dict[str, str] = {
    "read": READ,
    "delete": DELETED,
}


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Invalid transition: {current} -> {new}")


def resolve_requested_status(requested: str) -> str:
    """Map a client-facing status to its projection state."""

    try:
        return REQUESTED_STATUSES[requested]
    except (KeyError, TypeError):
        raise ValueError(f"Invalid status: {requested!r}") from None
