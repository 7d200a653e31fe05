"""Tab registry: five per-kind tab collections sharing one active slot.

The registry performs no I/O. Callers release the backend session themselves.

Active-tab fallback (only when the closed tab was active):
    1. same kind still has tabs -> the tab now at min(closed_index, len - 1)
    2. otherwise the first tab of the first non-empty kind in KIND_PRIORITY
    3. otherwise nothing is active
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from workspace.models import KIND_PRIORITY, SessionKind, SessionRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TabKey:
    kind: SessionKind
    id: str


@dataclass(frozen=True)
class RegistrySnapshot:
    """Read-only view of the tab bar."""

    tabs: dict[SessionKind, tuple[SessionRecord, ...]]
    active: TabKey | None

    @property
    def active_id(self) -> str | None:
        return self.active.id if self.active else None

    def all_tabs(self) -> list[SessionRecord]:
        return [record for kind in KIND_PRIORITY for record in self.tabs[kind]]


class TabRegistry:
    """Owns every open tab and the active-tab identifier."""

    def __init__(self, priority: tuple[SessionKind, ...] = KIND_PRIORITY):
        if sorted(priority) != sorted(SessionKind):
            raise ValueError(f"Kind priority must list every kind exactly once: {priority}")
        self.priority = priority
        self._tabs: dict[SessionKind, list[SessionRecord]] = {kind: [] for kind in priority}
        self._active: TabKey | None = None

    # ── Mutations ──

    def add_tab(self, record: SessionRecord) -> None:
        """Append ``record`` to its kind and make it active."""
        tabs = self._tabs[record.kind]
        if self._index(record.kind, record.id) is not None:
            raise ValueError(f"Duplicate {record.kind} tab id: {record.id}")
        tabs.append(record)
        self._active = TabKey(record.kind, record.id)
        logger.debug("Opened %s tab %s (%d open)", record.kind, record.id, len(self))

    def close_tab(self, kind: SessionKind, tab_id: str) -> SessionRecord | None:
        """Remove one tab. Unknown ids are a no-op and return None."""
        closed_index = self._index(kind, tab_id)
        if closed_index is None:
            logger.debug("close_tab: no %s tab %s", kind, tab_id)
            return None
        removed = self._tabs[kind].pop(closed_index)
        if self._active == TabKey(kind, tab_id):
            self._active = self._fallback(kind, closed_index)
        logger.debug("Closed %s tab %s, active=%s", kind, tab_id, self.active_id)
        return removed

    def _fallback(self, kind: SessionKind, closed_index: int) -> TabKey | None:
        same_kind = self._tabs[kind]
        if same_kind:
            record = same_kind[min(closed_index, len(same_kind) - 1)]
            return TabKey(kind, record.id)
        for other in self.priority:
            if other == kind:
                continue
            tabs = self._tabs[other]
            if tabs:
                return TabKey(other, tabs[0].id)
        return None

    def set_active(self, tab_id: str, kind: SessionKind | None = None) -> bool:
        """Focus a tab. Unknown ids are ignored and return False."""
        kinds = (kind,) if kind is not None else self.priority
        for candidate in kinds:
            if self._index(candidate, tab_id) is not None:
                self._active = TabKey(candidate, tab_id)
                return True
        logger.debug("set_active: ignoring unknown tab %s", tab_id)
        return False

    def update_title(self, kind: SessionKind, tab_id: str, title: str) -> bool:
        index = self._index(kind, tab_id)
        if index is None:
            return False
        tabs = self._tabs[kind]
        tabs[index] = tabs[index].with_title(title)
        return True

    # ── Queries ──

    def _index(self, kind: SessionKind, tab_id: str) -> int | None:
        for i, record in enumerate(self._tabs[kind]):
            if record.id == tab_id:
                return i
        return None

    @property
    def active(self) -> TabKey | None:
        return self._active

    @property
    def active_id(self) -> str | None:
        return self._active.id if self._active else None

    def active_record(self) -> SessionRecord | None:
        if self._active is None:
            return None
        return self.get(self._active.kind, self._active.id)

    def get(self, kind: SessionKind, tab_id: str) -> SessionRecord | None:
        index = self._index(kind, tab_id)
        return self._tabs[kind][index] if index is not None else None

    def find(self, tab_id: str) -> list[SessionRecord]:
        """Every tab with this id, in priority order (an Sftp tab may share its terminal's id)."""
        return [record for kind in self.priority for record in self._tabs[kind] if record.id == tab_id]

    def tabs(self, kind: SessionKind) -> tuple[SessionRecord, ...]:
        return tuple(self._tabs[kind])

    def snapshot(self) -> RegistrySnapshot:
        return RegistrySnapshot(
            tabs={kind: tuple(self._tabs[kind]) for kind in SessionKind},
            active=self._active,
        )

    def __len__(self) -> int:
        return sum(len(tabs) for tabs in self._tabs.values())

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, TabKey):
            return False
        return self._index(key.kind, key.id) is not None
