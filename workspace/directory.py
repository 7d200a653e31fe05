"""Directory cache and navigation for browsing tabs (Ftp / Sftp).

Architecture:
    BrowserPane -> NavigationController (only writer) -> DirectoryCache (state)
                                        -> SessionGateway (resolve / list / mutate)

Concurrency policy per cache:
    latest     every listing takes a new generation; a response whose
               generation is no longer the newest is dropped
    serialize  listings run one at a time under the cache lock
Mutations are always serialized per cache.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Literal

from workspace.errors import GatewayError, MutationError, describe
from workspace.interfaces.gateway import SessionGateway
from workspace.models import FileEntry

logger = logging.getLogger(__name__)

NavigationPolicy = Literal["latest", "serialize"]


def sort_key(entry: FileEntry) -> tuple[bool, str, str]:
    return (not entry.is_dir, entry.name.casefold(), entry.name)


def sorted_entries(entries: Iterable[FileEntry]) -> list[FileEntry]:
    """Presentation order: directories first, then by name (case-insensitive, stable)."""
    return sorted(entries, key=sort_key)


def parent_path(path: str) -> str | None:
    """Parent of ``path`` by dropping the last segment; None at the root."""
    if not path:
        return None
    normalized = path.replace("\\", "/")
    is_absolute = normalized.startswith("/")
    segments = [s for s in normalized.split("/") if s]
    if not segments:
        return None
    if len(segments) == 1 and not is_absolute:
        # Drive root ("C:") or a bare relative name
        return None
    parent = "/".join(segments[:-1])
    return f"/{parent}" if is_absolute else parent


def join_path(base: str, name: str) -> str:
    if not base or base == "/":
        return f"/{name}"
    return f"{base.rstrip('/')}/{name}"


def _is_relative(path: str) -> bool:
    if not path or path == "." or path.startswith(("/", "~", "\\")):
        return False
    # Windows drive paths ("C:/...")
    return not (len(path) > 1 and path[1] == ":")


@dataclass(frozen=True)
class DirectoryView:
    """Read-only snapshot of a DirectoryCache for the UI layer."""

    current_path: str
    entries: tuple[FileEntry, ...]
    loading: bool
    error: str | None
    selected: frozenset[str]

    @property
    def sorted_entries(self) -> list[FileEntry]:
        return sorted_entries(self.entries)


@dataclass
class DirectoryCache:
    """Client-held mirror of one remote directory listing."""

    current_path: str = "/"
    entries: list[FileEntry] = field(default_factory=list)
    loading: bool = False
    error: str | None = None
    selected: set[str] = field(default_factory=set)
    closed: bool = False

    def snapshot(self) -> DirectoryView:
        return DirectoryView(
            current_path=self.current_path,
            entries=tuple(self.entries),
            loading=self.loading,
            error=self.error,
            selected=frozenset(self.selected),
        )


class NavigationController:
    """Drives one DirectoryCache through the Session Gateway.

    Every public operation returns True on success and False when it failed,
    was a no-op, or was superseded. Failures land in ``cache.error``; nothing
    is raised.
    """

    def __init__(
        self,
        gateway: SessionGateway,
        session_id: str,
        cache: DirectoryCache | None = None,
        *,
        resolve_after_list: bool = False,
        policy: NavigationPolicy = "latest",
        home_path: str = ".",
        downloads_path: str = "~/Downloads",
    ):
        self.gateway = gateway
        self.session_id = session_id
        self.cache = cache or DirectoryCache()
        # FTP: list the raw path, then ask the server where we ended up (PWD)
        self.resolve_after_list = resolve_after_list
        self.policy = policy
        self.home_path = home_path
        self.downloads_path = downloads_path
        self._generation = 0
        self._pending_navigation: asyncio.Future | None = None
        self._loaded = False
        self._lock = asyncio.Lock()

    @property
    def closed(self) -> bool:
        return self.cache.closed

    def close(self) -> None:
        self.cache.closed = True
        self._generation += 1

    # ── Listing ──

    async def open(self) -> bool:
        """Initial load of the session's home directory."""
        return await self.navigate(self.home_path)

    async def go_home(self) -> bool:
        return await self.navigate(self.home_path)

    async def go_downloads(self) -> bool:
        return await self.navigate(self.downloads_path)

    async def navigate(self, path: str) -> bool:
        done = asyncio.get_running_loop().create_future()
        self._pending_navigation = done
        try:
            return await self._load(path, resolve=True)
        finally:
            if not done.done():
                done.set_result(None)
            if self._pending_navigation is done:
                self._pending_navigation = None

    async def navigate_up(self) -> bool:
        parent = parent_path(self.cache.current_path)
        if parent is None:
            return False
        return await self.navigate(parent)

    async def refresh(self) -> bool:
        # @@@refresh-after-navigate - a refresh waits for the pending navigation, then lists where it landed
        while self._pending_navigation is not None:
            await asyncio.shield(self._pending_navigation)
        return await self._load(self.cache.current_path, resolve=False)

    async def _load(self, path: str, *, resolve: bool) -> bool:
        if self.closed:
            return False
        if self.policy == "serialize":
            async with self._lock:
                return await self._load_once(path, resolve=resolve)
        return await self._load_once(path, resolve=resolve)

    async def _load_once(self, path: str, *, resolve: bool) -> bool:
        if self.closed:
            return False
        self._generation += 1
        generation = self._generation
        cache = self.cache
        cache.loading = True
        cache.error = None

        try:
            if resolve:
                resolved, entries = await self._resolve_and_list(path)
            else:
                resolved, entries = path, await self.gateway.list_directory(self.session_id, path)
        except GatewayError as exc:
            if self._is_stale(generation):
                return False
            cache.error = describe(exc)
            cache.loading = False
            logger.warning("Listing %s on %s failed: %s", path, self.session_id, cache.error)
            return False
        except Exception as exc:
            if self._is_stale(generation):
                return False
            cache.error = describe(exc)
            cache.loading = False
            logger.exception("Unexpected gateway failure listing %s on %s", path, self.session_id)
            return False

        # @@@stale-listing - a newer navigation (or close) started while we were suspended
        if self._is_stale(generation):
            logger.debug("Dropping stale listing of %s for %s", resolved, self.session_id)
            return False

        self._loaded = True
        path_changed = resolved != cache.current_path
        cache.current_path = resolved
        cache.entries = list(entries)
        cache.loading = False
        if resolve and path_changed:
            cache.selected.clear()
        else:
            present = {entry.path for entry in cache.entries}
            cache.selected.intersection_update(present)
        return True

    async def _resolve_and_list(self, path: str) -> tuple[str, list[FileEntry]]:
        if self.resolve_after_list:
            entries = await self.gateway.list_directory(self.session_id, path)
            resolved = await self.gateway.resolve_path(self.session_id, ".")
            return resolved, entries
        if _is_relative(path) and self._loaded:
            # Relative to the displayed directory
            path = join_path(self.cache.current_path, path)
        resolved = await self.gateway.resolve_path(self.session_id, path)
        entries = await self.gateway.list_directory(self.session_id, resolved)
        return resolved, entries

    def _is_stale(self, generation: int) -> bool:
        return self.closed or generation != self._generation

    # ── Mutations ──

    async def create_directory(self, name: str) -> bool:
        name = name.strip()
        if not name or "/" in name or name in (".", ".."):
            return self._record_failure(MutationError(f"Invalid directory name: {name!r}"))
        target = join_path(self.cache.current_path, name)
        return await self._mutate(
            f"create directory {target}",
            lambda: self.gateway.create_directory(self.session_id, target),
        )

    async def delete_item(self, path: str, is_directory: bool) -> bool:
        return await self._mutate(
            f"delete {path}",
            lambda: self.gateway.delete(self.session_id, path, is_directory),
        )

    async def rename(self, old_path: str, new_path: str) -> bool:
        if old_path == new_path:
            return False
        return await self._mutate(
            f"rename {old_path} -> {new_path}",
            lambda: self.gateway.rename(self.session_id, old_path, new_path),
        )

    async def _mutate(self, label: str, operation: Callable[[], Awaitable[None]]) -> bool:
        if self.closed:
            return False
        async with self._lock:
            try:
                await operation()
            except GatewayError as exc:
                return self._record_failure(exc, label)
            except Exception as exc:
                logger.exception("Unexpected gateway failure: %s on %s", label, self.session_id)
                return self._record_failure(exc, label)
        if self.closed:
            return True
        await self.refresh()
        return True

    def _record_failure(self, exc: BaseException, label: str | None = None) -> bool:
        if not self.closed:
            self.cache.error = describe(exc)
        if label:
            logger.warning("Failed to %s on %s: %s", label, self.session_id, describe(exc))
        return False

    # ── Selection ──

    def select(self, path: str) -> None:
        self.cache.selected = {path}

    def toggle_selection(self, path: str) -> None:
        if path in self.cache.selected:
            self.cache.selected.discard(path)
        else:
            self.cache.selected.add(path)

    def clear_selection(self) -> None:
        self.cache.selected.clear()

    def select_all(self) -> None:
        self.cache.selected = {entry.path for entry in self.cache.entries}

    def selected_entries(self) -> list[FileEntry]:
        return [entry for entry in self.cache.entries if entry.path in self.cache.selected]
