"""LocalGateway: Session Gateway backed by the local filesystem.

Serves local terminal identities and SFTP-style browsing of the local disk.
Transfers are local copies that report progress on the event bus exactly
like a remote backend would. Ftp/Vnc/Rdp need a real backend and are refused.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import stat
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from workspace.errors import MutationError, NavigationError, SessionConnectionError, TransferError
from workspace.events import EventBus
from workspace.interfaces.gateway import SessionGateway, SessionHandle
from workspace.models import (
    FileEntry,
    FileType,
    SessionKind,
    TransferDirection,
    TransferRecord,
    synthesize_tab_id,
)
from workspace.transfers import transfer_channels

logger = logging.getLogger(__name__)


@dataclass
class _LocalSession:
    kind: SessionKind
    cwd: Path


@dataclass
class _LocalTransfer:
    record: TransferRecord
    cancelled: bool = False
    task: asyncio.Task | None = field(default=None, repr=False)


def _file_type(mode: int) -> FileType:
    if stat.S_ISDIR(mode):
        return FileType.DIRECTORY
    if stat.S_ISLNK(mode):
        return FileType.SYMLINK
    if stat.S_ISREG(mode):
        return FileType.FILE
    return FileType.OTHER


def _list_sync(path: Path) -> list[FileEntry]:
    entries: list[FileEntry] = []
    for item in path.iterdir():
        try:
            st = item.lstat()
        except OSError:
            continue
        file_type = _file_type(st.st_mode)
        # Symlinks to directories browse like directories
        if file_type == FileType.SYMLINK and item.is_dir():
            file_type = FileType.DIRECTORY
        entries.append(
            FileEntry(
                name=item.name,
                path=str(item),
                file_type=file_type,
                size=st.st_size,
                modified=int(st.st_mtime),
                permissions=stat.S_IMODE(st.st_mode),
            )
        )
    entries.sort(key=lambda e: (not e.is_dir, e.name.lower()))
    return entries


def _tree_size(path: Path) -> int:
    if path.is_file():
        return path.stat().st_size
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            try:
                total += (Path(root) / name).stat().st_size
            except OSError:
                continue
    return total


class LocalGateway(SessionGateway):
    def __init__(
        self,
        bus: EventBus | None = None,
        root: str | Path | None = None,
        chunk_size: int = 32768,
    ):
        self.bus = bus or EventBus()
        self.root = Path(root).expanduser().resolve() if root else Path.home()
        self.chunk_size = chunk_size
        self._sessions: dict[str, _LocalSession] = {}
        self._transfers: dict[str, _LocalTransfer] = {}

    # ── Sessions ──

    async def open_session(self, kind: SessionKind, params: dict[str, Any]) -> SessionHandle:
        if kind == SessionKind.TERMINAL:
            if params.get("host"):
                raise SessionConnectionError(f"Remote terminals need a backend service: {params['host']}")
            session_id = synthesize_tab_id(kind)
            self._sessions[session_id] = _LocalSession(kind, self.root)
            return SessionHandle(session_id=session_id, kind=kind, title="Local")
        if kind == SessionKind.SFTP:
            terminal_id = params.get("session_id")
            if terminal_id not in self._sessions:
                raise SessionConnectionError(f"No local terminal session {terminal_id}")
            session_id = f"sftp-{uuid.uuid4().hex[:12]}"
            self._sessions[session_id] = _LocalSession(kind, self.root)
            return SessionHandle(session_id=session_id, kind=kind, title="Local files")
        raise SessionConnectionError(f"{kind} sessions are not available locally")

    async def close_session(self, kind: SessionKind, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is None:
            raise SessionConnectionError(f"Unknown session: {session_id}")

    def _session(self, session_id: str) -> _LocalSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise NavigationError(f"Unknown session: {session_id}")
        return session

    # ── Browsing ──

    async def resolve_path(self, session_id: str, path: str) -> str:
        session = self._session(session_id)
        if path in ("", "."):
            target = session.cwd
        elif path.startswith("~"):
            target = Path(path).expanduser()
        else:
            target = session.cwd / path
        try:
            resolved = await asyncio.to_thread(target.resolve, True)
        except OSError as exc:
            raise NavigationError(f"No such directory: {path}") from exc
        if not resolved.is_dir():
            raise NavigationError(f"Not a directory: {path}")
        return str(resolved)

    async def list_directory(self, session_id: str, path: str) -> list[FileEntry]:
        session = self._session(session_id)
        target = session.cwd / path
        try:
            entries = await asyncio.to_thread(_list_sync, target)
        except OSError as exc:
            raise NavigationError(f"{exc.strerror or exc}: {path}") from exc
        # Working directory only follows listings that succeeded
        session.cwd = Path(os.path.normpath(target))
        return entries

    async def create_directory(self, session_id: str, path: str) -> None:
        target = self._session(session_id).cwd / path
        try:
            await asyncio.to_thread(target.mkdir)
        except FileExistsError as exc:
            raise MutationError(f"Already exists: {path}") from exc
        except OSError as exc:
            raise MutationError(f"{exc.strerror or exc}: {path}") from exc

    async def delete(self, session_id: str, path: str, is_directory: bool) -> None:
        target = self._session(session_id).cwd / path
        try:
            if is_directory:
                await asyncio.to_thread(shutil.rmtree, target)
            else:
                await asyncio.to_thread(target.unlink)
        except OSError as exc:
            raise MutationError(f"{exc.strerror or exc}: {path}") from exc

    async def rename(self, session_id: str, old_path: str, new_path: str) -> None:
        session = self._session(session_id)
        source, dest = session.cwd / old_path, session.cwd / new_path
        if dest.exists():
            raise MutationError(f"Already exists: {new_path}")
        try:
            await asyncio.to_thread(source.rename, dest)
        except OSError as exc:
            raise MutationError(f"{exc.strerror or exc}: {old_path}") from exc

    # ── Transfers ──

    async def start_transfer(
        self,
        session_id: str,
        direction: TransferDirection,
        local_path: str,
        remote_path: str,
        is_folder: bool = False,
    ) -> TransferRecord:
        session = self._sessions.get(session_id)
        if session is None:
            raise TransferError(f"Unknown session: {session_id}")
        remote = session.cwd / remote_path
        source, dest = (Path(local_path), remote) if direction == TransferDirection.UPLOAD else (remote, Path(local_path))
        if not source.exists():
            raise TransferError(f"No such file: {source}")
        if is_folder and not source.is_dir():
            raise TransferError(f"Not a directory: {source}")

        total = await asyncio.to_thread(_tree_size, source)
        record = TransferRecord(
            id=str(uuid.uuid4()),
            filename=source.name,
            local_path=local_path,
            remote_path=str(remote),
            direction=direction,
            total_bytes=total,
            is_folder=is_folder,
        )
        transfer = _LocalTransfer(record=record)
        self._transfers[record.id] = transfer
        transfer.task = asyncio.create_task(self._run_transfer(transfer, source, dest))
        return record.copy()

    async def cancel_transfer(self, transfer_id: str) -> None:
        transfer = self._transfers.get(transfer_id)
        if transfer is None:
            raise TransferError(f"Unknown transfer: {transfer_id}")
        transfer.cancelled = True

    async def _run_transfer(self, transfer: _LocalTransfer, source: Path, dest: Path) -> None:
        names = transfer_channels(transfer.record.id)
        record = transfer.record
        transferred = 0
        try:
            if source.is_dir():
                files = [Path(root) / name for root, _d, fs in os.walk(source) for name in fs]
                await asyncio.to_thread(dest.mkdir, parents=True, exist_ok=True)
                for file in files:
                    target = dest / file.relative_to(source)
                    transferred = await self._copy_file(transfer, file, target, transferred)
            else:
                transferred = await self._copy_file(transfer, source, dest, transferred)
        except asyncio.CancelledError:
            self.bus.emit(names.cancelled)
            raise
        except _Cancelled:
            logger.debug("Local transfer %s cancelled at %d bytes", record.id, transferred)
            self.bus.emit(names.cancelled)
        except OSError as exc:
            self.bus.emit(names.error, f"{exc.strerror or exc}: {exc.filename or source}")
        else:
            self.bus.emit(names.complete, True)
        finally:
            self._transfers.pop(record.id, None)

    async def _copy_file(self, transfer: _LocalTransfer, source: Path, dest: Path, transferred: int) -> int:
        names = transfer_channels(transfer.record.id)
        total = transfer.record.total_bytes
        await asyncio.to_thread(dest.parent.mkdir, parents=True, exist_ok=True)
        with source.open("rb") as src, dest.open("wb") as dst:
            while True:
                if transfer.cancelled:
                    raise _Cancelled()
                chunk = await asyncio.to_thread(src.read, self.chunk_size)
                if not chunk:
                    break
                await asyncio.to_thread(dst.write, chunk)
                transferred += len(chunk)
                self.bus.emit(names.progress, (transferred, total))
        return transferred

    async def aclose(self) -> None:
        """Cancel outstanding copies (used at process exit)."""
        tasks = [t.task for t in self._transfers.values() if t.task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


class _Cancelled(Exception):
    pass
