"""Lifecycle state machine contract for file transfers.

Fail-loud policy:
- Invalid state strings raise immediately.
- Illegal transitions raise immediately.
"""

from __future__ import annotations

from enum import StrEnum


class TransferState(StrEnum):
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    FAILED = "Failed"


TERMINAL_TRANSFER_STATES = frozenset(
    {
        TransferState.COMPLETED,
        TransferState.CANCELLED,
        TransferState.FAILED,
    }
)


def parse_transfer_state(value: str | None) -> TransferState:
    if value is None:
        raise RuntimeError("Transfer state is required")
    try:
        return TransferState(value)
    except ValueError:
        pass
    # Backends disagree on casing ("in_progress", "completed", ...)
    normalized = value.replace("_", "").replace("-", "").lower()
    for state in TransferState:
        if state.value.lower() == normalized:
            return state
    raise RuntimeError(f"Invalid transfer state: {value}")


def assert_transfer_transition(
    current: TransferState | None,
    target: TransferState,
    *,
    reason: str,
) -> None:
    if current is None:
        if target != TransferState.PENDING:
            raise RuntimeError(f"Illegal transfer transition: <new> -> {target} ({reason})")
        return
    if current == target and current not in TERMINAL_TRANSFER_STATES:
        return

    allowed: set[tuple[TransferState, TransferState]] = {
        (TransferState.PENDING, TransferState.IN_PROGRESS),
        (TransferState.PENDING, TransferState.COMPLETED),
        (TransferState.PENDING, TransferState.CANCELLED),
        (TransferState.PENDING, TransferState.FAILED),
        (TransferState.IN_PROGRESS, TransferState.COMPLETED),
        (TransferState.IN_PROGRESS, TransferState.CANCELLED),
        (TransferState.IN_PROGRESS, TransferState.FAILED),
    }
    if (current, target) not in allowed:
        raise RuntimeError(f"Illegal transfer transition: {current} -> {target} ({reason})")
