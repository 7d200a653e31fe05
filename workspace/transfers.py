"""Transfer tracker: correlates fire-and-forget transfers with their notifications.

Flow per transfer:
    start_transfer -> gateway returns Pending record -> subscribe 4 channels
    progress*      -> bytes updated, Pending -> InProgress
    complete       -> Completed (+ owner refresh for uploads) -> unsubscribe
    error          -> Failed(reason)                          -> unsubscribe
    cancelled      -> Cancelled                               -> unsubscribe
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from workspace.errors import GatewayError, describe
from workspace.interfaces.gateway import SessionGateway
from workspace.interfaces.notifications import NotificationChannel, Unsubscribe
from workspace.lifecycle import TransferState, assert_transfer_transition
from workspace.models import TransferDirection, TransferRecord, TransferStatus

logger = logging.getLogger(__name__)

UploadCompleteHook = Callable[[TransferRecord], Awaitable[Any] | None]


@dataclass(frozen=True)
class TransferChannels:
    progress: str
    complete: str
    error: str
    cancelled: str

    def all(self) -> tuple[str, str, str, str]:
        return (self.progress, self.complete, self.error, self.cancelled)


def transfer_channels(transfer_id: str, prefix: str = "") -> TransferChannels:
    """Channel names the backend emits for one transfer (``prefix`` is ``"ftp-"`` for FTP)."""
    return TransferChannels(
        progress=f"{prefix}transfer-progress-{transfer_id}",
        complete=f"{prefix}transfer-complete-{transfer_id}",
        error=f"{prefix}transfer-error-{transfer_id}",
        cancelled=f"{prefix}transfer-cancelled-{transfer_id}",
    )


def _parse_progress(payload: Any) -> tuple[int, int]:
    if isinstance(payload, dict):
        return int(payload.get("transferred", 0)), int(payload.get("total", 0))
    transferred, total = payload
    return int(transferred), int(total)


class TransferTracker:
    """Owns every TransferRecord; the only writer of transfer state."""

    def __init__(
        self,
        gateway: SessionGateway,
        channel: NotificationChannel,
        *,
        on_upload_complete: UploadCompleteHook | None = None,
        keep_history: bool = True,
        max_history: int = 200,
    ):
        self.gateway = gateway
        self.channel = channel
        self._on_upload_complete = on_upload_complete
        self.keep_history = keep_history
        self.max_history = max_history
        self._records: dict[str, TransferRecord] = {}
        self._subscriptions: dict[str, list[Unsubscribe]] = {}
        self._tasks: set[asyncio.Task] = set()

    # ── Start / cancel ──

    async def start_transfer(
        self,
        session_id: str,
        direction: TransferDirection,
        local_path: str,
        remote_path: str,
        *,
        is_folder: bool = False,
        owner: str | None = None,
        channel_prefix: str = "",
    ) -> TransferRecord | None:
        """Start a transfer and track it. Returns None when the backend refuses it."""
        try:
            record = await self.gateway.start_transfer(
                session_id, direction, local_path, remote_path, is_folder=is_folder
            )
        except GatewayError as exc:
            logger.warning(
                "Failed to start %s %s <-> %s on %s: %s",
                direction, local_path, remote_path, session_id, describe(exc),
            )
            return None
        except Exception:
            logger.exception(
                "Unexpected failure starting %s %s <-> %s on %s", direction, local_path, remote_path, session_id
            )
            return None

        if record.id in self._records:
            raise RuntimeError(f"Backend reused transfer id {record.id}")
        record.direction = direction
        record.is_folder = is_folder
        record.owner_tab_id = owner
        self._records[record.id] = record
        logger.debug("Tracking transfer %s (%s %s)", record.id, direction, record.filename)

        await self._subscribe(record.id, transfer_channels(record.id, channel_prefix))
        return record.copy()

    async def _subscribe(self, transfer_id: str, names: TransferChannels) -> None:
        unsubs: list[Unsubscribe] = []
        self._subscriptions[transfer_id] = unsubs
        unsubs.append(await self.channel.subscribe(names.progress, lambda p: self._on_progress(transfer_id, p)))
        unsubs.append(await self.channel.subscribe(names.complete, lambda p: self._on_completed(transfer_id, p)))
        unsubs.append(await self.channel.subscribe(names.error, lambda p: self._on_failed(transfer_id, p)))
        unsubs.append(await self.channel.subscribe(names.cancelled, lambda p: self._on_cancelled(transfer_id, p)))

        # @@@late-subscribe - a terminal event may land between two subscribe awaits
        record = self._records.get(transfer_id)
        if record is None or record.is_terminal or self._subscriptions.get(transfer_id) is not unsubs:
            for unsub in unsubs:
                unsub()
            if self._subscriptions.get(transfer_id) is unsubs:
                del self._subscriptions[transfer_id]

    def _unsubscribe(self, transfer_id: str) -> None:
        for unsub in self._subscriptions.pop(transfer_id, []):
            unsub()

    async def cancel_transfer(self, transfer_id: str) -> bool:
        """Ask the backend to cancel. Status changes when ``cancelled`` arrives."""
        record = self._records.get(transfer_id)
        if record is None or record.is_terminal:
            return False
        try:
            await self.gateway.cancel_transfer(transfer_id)
        except GatewayError as exc:
            logger.warning("Failed to cancel transfer %s: %s", transfer_id, describe(exc))
            return False
        except Exception:
            logger.exception("Unexpected failure cancelling transfer %s", transfer_id)
            return False
        return True

    # ── Notification handlers ──

    def _live_record(self, transfer_id: str, event: str) -> TransferRecord | None:
        record = self._records.get(transfer_id)
        if record is None:
            logger.debug("Ignoring %s for unknown transfer %s", event, transfer_id)
            return None
        if record.is_terminal:
            logger.debug("Ignoring %s for finished transfer %s (%s)", event, transfer_id, record.status)
            self._unsubscribe(transfer_id)
            return None
        return record

    def _on_progress(self, transfer_id: str, payload: Any) -> None:
        record = self._live_record(transfer_id, "progress")
        if record is None:
            return
        try:
            transferred, total = _parse_progress(payload)
        except (TypeError, ValueError):
            logger.warning("Malformed progress payload for %s: %r", transfer_id, payload)
            return
        if transferred > record.transferred_bytes:
            record.transferred_bytes = transferred
        if total >= 0:
            record.total_bytes = total
        if record.status.state == TransferState.PENDING:
            self._transition(record, TransferStatus.in_progress(), reason="progress")

    def _on_completed(self, transfer_id: str, _payload: Any = None) -> None:
        record = self._live_record(transfer_id, "completion")
        if record is None:
            return
        self._transition(record, TransferStatus.completed(), reason="complete")
        self._unsubscribe(transfer_id)
        logger.debug("Transfer %s completed", transfer_id)
        if record.is_upload:
            self._fire_upload_complete(record)
        self._prune_history()

    def _on_failed(self, transfer_id: str, payload: Any = None) -> None:
        record = self._live_record(transfer_id, "failure")
        if record is None:
            return
        reason = str(payload) if payload else "Transfer failed"
        self._transition(record, TransferStatus.failed(reason), reason="error")
        self._unsubscribe(transfer_id)
        logger.warning("Transfer %s failed: %s", transfer_id, reason)
        self._prune_history()

    def _on_cancelled(self, transfer_id: str, _payload: Any = None) -> None:
        record = self._live_record(transfer_id, "cancellation")
        if record is None:
            return
        self._transition(record, TransferStatus.cancelled(), reason="cancelled")
        self._unsubscribe(transfer_id)
        self._prune_history()

    def _transition(self, record: TransferRecord, status: TransferStatus, *, reason: str) -> None:
        assert_transfer_transition(record.status.state, status.state, reason=reason)
        record.status = status

    def _fire_upload_complete(self, record: TransferRecord) -> None:
        if self._on_upload_complete is None:
            return
        result = self._on_upload_complete(record.copy())
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    # ── History ──

    def _prune_history(self) -> None:
        finished = [tid for tid, record in self._records.items() if record.is_terminal]
        if not self.keep_history:
            drop = finished
        else:
            drop = finished[: max(0, len(finished) - self.max_history)]
        for tid in drop:
            del self._records[tid]

    def forget_owner(self, owner: str) -> int:
        """Drop every transfer owned by a closed tab; late notifications are then ignored."""
        owned = [tid for tid, record in self._records.items() if record.owner_tab_id == owner]
        for tid in owned:
            self._unsubscribe(tid)
            del self._records[tid]
        return len(owned)

    def clear_finished(self) -> int:
        finished = [tid for tid, record in self._records.items() if record.is_terminal]
        for tid in finished:
            del self._records[tid]
        return len(finished)

    # ── Read-only views ──

    def get(self, transfer_id: str) -> TransferRecord | None:
        record = self._records.get(transfer_id)
        return record.copy() if record else None

    def transfers(self) -> list[TransferRecord]:
        return [record.copy() for record in self._records.values()]

    def active_transfers(self) -> list[TransferRecord]:
        return [record.copy() for record in self._records.values() if not record.is_terminal]

    def transfers_for(self, owner: str) -> list[TransferRecord]:
        return [record.copy() for record in self._records.values() if record.owner_tab_id == owner]

    def is_subscribed(self, transfer_id: str) -> bool:
        return transfer_id in self._subscriptions

    async def drain(self) -> None:
        """Wait for pending upload-complete hooks."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

