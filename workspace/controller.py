"""Workspace controller: root of the orchestration core.

Orchestrates: open flow -> SessionGateway -> TabRegistry (+ BrowserPane for Ftp/Sftp)
              transfers -> TransferTracker -> owning BrowserPane refresh

The controller is the only component that changes which tab is active.
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from typing import Any

from workspace.config import WorkspaceConfig
from workspace.directory import DirectoryCache, DirectoryView, NavigationController, join_path
from workspace.errors import GatewayError, SessionConnectionError, describe
from workspace.events import EventBus
from workspace.interfaces.gateway import SessionGateway, SessionHandle
from workspace.interfaces.notifications import NotificationChannel
from workspace.models import (
    BROWSING_KINDS,
    FtpTab,
    RdpTab,
    SessionKind,
    SessionRecord,
    SftpTab,
    TerminalTab,
    TransferDirection,
    TransferRecord,
    VncTab,
    synthesize_tab_id,
)
from workspace.registry import RegistrySnapshot, TabRegistry
from workspace.transfers import TransferTracker

logger = logging.getLogger(__name__)


@dataclass
class BrowserPane:
    """Directory state of one browsing tab."""

    tab: FtpTab | SftpTab
    navigator: NavigationController
    channel_prefix: str = ""

    @property
    def session_id(self) -> str:
        return self.navigator.session_id

    @property
    def cache(self) -> DirectoryCache:
        return self.navigator.cache


@dataclass(frozen=True)
class WorkspaceSnapshot:
    """Everything the UI layer renders, as immutable values."""

    tabs: RegistrySnapshot
    directories: dict[str, DirectoryView]
    transfers: tuple[TransferRecord, ...]

    @property
    def active_id(self) -> str | None:
        return self.tabs.active_id

    @property
    def active_transfers(self) -> tuple[TransferRecord, ...]:
        return tuple(t for t in self.transfers if not t.is_terminal)


class WorkspaceController:
    def __init__(
        self,
        gateway: SessionGateway,
        channel: NotificationChannel | None = None,
        config: WorkspaceConfig | None = None,
    ):
        self.gateway = gateway
        self.channel = channel or EventBus()
        self.config = config or WorkspaceConfig()
        self.registry = TabRegistry()
        self.tracker = TransferTracker(
            gateway,
            self.channel,
            on_upload_complete=self._refresh_owner,
            keep_history=self.config.transfers.keep_history,
            max_history=self.config.transfers.max_history,
        )
        self._panes: dict[str, BrowserPane] = {}

    # ── Open flows ──

    async def _open(self, kind: SessionKind, params: dict[str, Any]) -> SessionHandle:
        try:
            handle = await self.gateway.open_session(kind, params)
        except SessionConnectionError:
            logger.warning("Failed to open %s session to %s", kind, params.get("host") or "local")
            raise
        except GatewayError as exc:
            logger.warning("Failed to open %s session: %s", kind, describe(exc))
            raise SessionConnectionError(describe(exc)) from exc
        if not handle.session_id:
            handle.session_id = synthesize_tab_id(kind)
        return handle

    async def open_terminal(
        self,
        host: str | None = None,
        port: int | None = None,
        username: str | None = None,
        *,
        auth: dict[str, Any] | None = None,
        connection_id: str | None = None,
        title: str | None = None,
    ) -> TerminalTab:
        """Open a local shell (``host=None``) or an SSH terminal."""
        port = port or self.config.defaults.ssh_port
        handle = await self._open(
            SessionKind.TERMINAL,
            {"host": host, "port": port, "username": username, "auth": auth, "connection_id": connection_id},
        )
        default_title = f"{username}@{host}" if host and username else (host or "Local")
        record = TerminalTab(
            id=handle.session_id,
            title=title or handle.title or default_title,
            host=host,
            port=port,
            username=username,
            connection_id=connection_id,
        )
        self.registry.add_tab(record)
        return record

    async def open_sftp(self, terminal_id: str, *, title: str | None = None) -> SftpTab:
        """Open an SFTP browser riding on an open terminal session and load its home directory."""
        terminal = self.registry.get(SessionKind.TERMINAL, terminal_id)
        if terminal is None:
            raise SessionConnectionError(f"No terminal session {terminal_id}")
        existing = self.registry.get(SessionKind.SFTP, terminal_id)
        if isinstance(existing, SftpTab):
            self.registry.set_active(terminal_id, SessionKind.SFTP)
            return existing

        handle = await self._open(SessionKind.SFTP, {"session_id": terminal_id})
        host = terminal.host if isinstance(terminal, TerminalTab) else None
        record = SftpTab(
            id=terminal_id,
            title=title or handle.title or f"SFTP: {terminal.title}",
            session_id=terminal_id,
            sftp_id=handle.session_id,
            host=host,
        )
        pane = self._attach_pane(record, handle.session_id, resolve_after_list=False, channel_prefix="")
        self.registry.add_tab(record)
        await pane.navigator.open()
        return record

    async def connect_ftp(
        self,
        host: str,
        port: int | None = None,
        username: str | None = None,
        password: str | None = None,
        *,
        connection_id: str | None = None,
        title: str | None = None,
    ) -> FtpTab:
        port = port or self.config.defaults.ftp_port
        handle = await self._open(
            SessionKind.FTP,
            {"host": host, "port": port, "username": username or None, "password": password or None},
        )
        record = FtpTab(
            id=handle.session_id,
            title=title or handle.title or f"FTP: {host}",
            host=host,
            port=port,
            username=username or None,
            anonymous=not username,
            connection_id=connection_id,
        )
        pane = self._attach_pane(record, handle.session_id, resolve_after_list=True, channel_prefix="ftp-")
        self.registry.add_tab(record)
        await pane.navigator.open()
        return record

    async def connect_vnc(
        self,
        host: str,
        port: int | None = None,
        password: str | None = None,
        *,
        connection_name: str | None = None,
        connection_id: str | None = None,
    ) -> VncTab:
        port = port or self.config.defaults.vnc_port
        handle = await self._open(SessionKind.VNC, {"host": host, "port": port, "password": password or None})
        record = VncTab(
            id=handle.session_id,
            title=connection_name or handle.title or f"VNC: {host}",
            host=host,
            port=port,
            width=handle.width or self.config.defaults.vnc_width,
            height=handle.height or self.config.defaults.vnc_height,
            connection_name=connection_name,
            connection_id=connection_id,
        )
        self.registry.add_tab(record)
        return record

    async def connect_rdp(
        self,
        host: str,
        username: str,
        password: str,
        port: int | None = None,
        *,
        domain: str | None = None,
        width: int | None = None,
        height: int | None = None,
        connection_name: str | None = None,
        connection_id: str | None = None,
    ) -> RdpTab:
        port = port or self.config.defaults.rdp_port
        width = width or self.config.defaults.rdp_width
        height = height or self.config.defaults.rdp_height
        handle = await self._open(
            SessionKind.RDP,
            {
                "host": host,
                "port": port,
                "username": username,
                "password": password,
                "domain": domain or None,
                "width": width,
                "height": height,
            },
        )
        record = RdpTab(
            id=handle.session_id,
            title=connection_name or handle.title or f"RDP: {host}",
            host=host,
            port=port,
            username=username,
            domain=domain or None,
            width=handle.width or width,
            height=handle.height or height,
            connection_name=connection_name,
            connection_id=connection_id,
        )
        self.registry.add_tab(record)
        return record

    def _attach_pane(
        self,
        record: FtpTab | SftpTab,
        session_id: str,
        *,
        resolve_after_list: bool,
        channel_prefix: str,
    ) -> BrowserPane:
        if record.id in self._panes:
            raise ValueError(f"Browsing tab id already in use: {record.id}")
        navigator = NavigationController(
            self.gateway,
            session_id,
            DirectoryCache(),
            resolve_after_list=resolve_after_list,
            policy=self.config.navigation.policy,
            home_path=self.config.navigation.home_path,
            downloads_path=self.config.navigation.downloads_path,
        )
        pane = BrowserPane(tab=record, navigator=navigator, channel_prefix=channel_prefix)
        self._panes[record.id] = pane
        return pane

    # ── Close / focus ──

    async def close_tab(self, kind: SessionKind, tab_id: str) -> bool:
        """Close a tab and release its backend session. Never raises for backend failures."""
        record = self.registry.close_tab(kind, tab_id)
        if record is None:
            return False
        if kind in BROWSING_KINDS:
            pane = self._panes.pop(tab_id, None)
            if pane is not None:
                pane.navigator.close()
            dropped = self.tracker.forget_owner(tab_id)
            if dropped:
                logger.debug("Dropped %d transfers of closed tab %s", dropped, tab_id)

        session_id = record.sftp_id if isinstance(record, SftpTab) else record.id
        try:
            await self.gateway.close_session(kind, session_id)
        except GatewayError as exc:
            logger.warning("Failed to close %s session %s: %s", kind, session_id, describe(exc))
        except Exception:
            logger.exception("Unexpected failure closing %s session %s", kind, session_id)
        return True

    def activate(self, tab_id: str, kind: SessionKind | None = None) -> bool:
        return self.registry.set_active(tab_id, kind)

    def rename_tab(self, kind: SessionKind, tab_id: str, title: str) -> bool:
        if not self.registry.update_title(kind, tab_id, title):
            return False
        pane = self._panes.get(tab_id)
        updated = self.registry.get(kind, tab_id)
        if pane is not None and isinstance(updated, (FtpTab, SftpTab)):
            pane.tab = updated
        return True

    @property
    def active_id(self) -> str | None:
        return self.registry.active_id

    def active_tab(self) -> SessionRecord | None:
        return self.registry.active_record()

    async def close(self) -> None:
        """Close every open tab."""
        for kind in self.registry.priority:
            for record in self.registry.tabs(kind):
                await self.close_tab(kind, record.id)

    # ── Browsing ──

    def pane(self, tab_id: str) -> BrowserPane | None:
        return self._panes.get(tab_id)

    def _require_pane(self, tab_id: str) -> BrowserPane:
        pane = self._panes.get(tab_id)
        if pane is None:
            raise KeyError(f"No browsing tab {tab_id}")
        return pane

    async def _refresh_owner(self, record: TransferRecord) -> None:
        if record.owner_tab_id is None:
            return
        pane = self._panes.get(record.owner_tab_id)
        if pane is None or pane.navigator.closed:
            logger.debug("Upload %s finished after its tab closed", record.id)
            return
        await pane.navigator.refresh()

    # ── Transfers ──

    async def upload(
        self,
        tab_id: str,
        local_path: str,
        remote_path: str | None = None,
        *,
        is_folder: bool = False,
    ) -> TransferRecord | None:
        pane = self._require_pane(tab_id)
        if remote_path is None:
            name = posixpath.basename(local_path.replace("\\", "/").rstrip("/"))
            remote_path = join_path(pane.cache.current_path, name)
        return await self.tracker.start_transfer(
            pane.session_id,
            TransferDirection.UPLOAD,
            local_path,
            remote_path,
            is_folder=is_folder,
            owner=tab_id,
            channel_prefix=pane.channel_prefix,
        )

    async def upload_folder(
        self, tab_id: str, local_path: str, remote_path: str | None = None
    ) -> TransferRecord | None:
        return await self.upload(tab_id, local_path, remote_path, is_folder=True)

    async def download(self, tab_id: str, remote_path: str, local_path: str) -> TransferRecord | None:
        pane = self._require_pane(tab_id)
        return await self.tracker.start_transfer(
            pane.session_id,
            TransferDirection.DOWNLOAD,
            local_path,
            remote_path,
            owner=tab_id,
            channel_prefix=pane.channel_prefix,
        )

    async def cancel_transfer(self, transfer_id: str) -> bool:
        return await self.tracker.cancel_transfer(transfer_id)

    # ── Snapshots ──

    def snapshot(self) -> WorkspaceSnapshot:
        return WorkspaceSnapshot(
            tabs=self.registry.snapshot(),
            directories={tab_id: pane.cache.snapshot() for tab_id, pane in self._panes.items()},
            transfers=tuple(self.tracker.transfers()),
        )

    def __repr__(self) -> str:
        return f"WorkspaceController(tabs={len(self.registry)}, active={self.active_id!r})"

