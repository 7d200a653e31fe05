"""Workspace data model: session tabs, directory entries, transfers.

Session records are immutable; the tab registry swaps whole records when a
field changes. Transfer records are owned and mutated by the transfer tracker
only.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any, ClassVar

from workspace.lifecycle import TERMINAL_TRANSFER_STATES, TransferState, parse_transfer_state


class SessionKind(StrEnum):
    TERMINAL = "terminal"
    FTP = "ftp"
    SFTP = "sftp"
    VNC = "vnc"
    RDP = "rdp"


# Fallback scan order when the closed tab's own kind is empty.
KIND_PRIORITY: tuple[SessionKind, ...] = (
    SessionKind.TERMINAL,
    SessionKind.FTP,
    SessionKind.SFTP,
    SessionKind.VNC,
    SessionKind.RDP,
)

BROWSING_KINDS = frozenset({SessionKind.FTP, SessionKind.SFTP})


def synthesize_tab_id(kind: SessionKind) -> str:
    """Client-side id for tabs the backend does not name."""
    return f"{kind.value}-{uuid.uuid4().hex[:12]}"


# ── Session records ──


@dataclass(frozen=True)
class SessionRecord:
    """One open tab. Subclasses set ``kind``."""

    kind: ClassVar[SessionKind]

    id: str
    title: str

    def with_title(self, title: str) -> SessionRecord:
        return replace(self, title=title)


@dataclass(frozen=True)
class TerminalTab(SessionRecord):
    kind: ClassVar[SessionKind] = SessionKind.TERMINAL

    host: str | None = None  # None for a local shell
    port: int = 22
    username: str | None = None
    connection_id: str | None = None

    @property
    def is_local(self) -> bool:
        return self.host is None


@dataclass(frozen=True)
class SftpTab(SessionRecord):
    kind: ClassVar[SessionKind] = SessionKind.SFTP

    session_id: str = ""  # terminal session this browser rides on
    sftp_id: str = ""
    host: str | None = None


@dataclass(frozen=True)
class FtpTab(SessionRecord):
    kind: ClassVar[SessionKind] = SessionKind.FTP

    host: str = ""
    port: int = 21
    username: str | None = None
    anonymous: bool = False
    connection_id: str | None = None


@dataclass(frozen=True)
class VncTab(SessionRecord):
    kind: ClassVar[SessionKind] = SessionKind.VNC

    host: str = ""
    port: int = 5900
    width: int = 1024
    height: int = 768
    connection_name: str | None = None
    connection_id: str | None = None


@dataclass(frozen=True)
class RdpTab(SessionRecord):
    kind: ClassVar[SessionKind] = SessionKind.RDP

    host: str = ""
    port: int = 3389
    username: str = ""
    domain: str | None = None
    width: int = 1920
    height: int = 1080
    connection_name: str | None = None
    connection_id: str | None = None


# ── Directory entries ──


class FileType(StrEnum):
    FILE = "File"
    DIRECTORY = "Directory"
    SYMLINK = "Symlink"
    OTHER = "Other"


@dataclass(frozen=True)
class FileEntry:
    """Single remote directory entry."""

    name: str
    path: str
    file_type: FileType = FileType.FILE
    size: int = 0
    modified: int | None = None  # unix timestamp
    permissions: int | None = None

    @property
    def is_dir(self) -> bool:
        return self.file_type == FileType.DIRECTORY

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> FileEntry:
        raw_type = data.get("file_type") or FileType.OTHER.value
        try:
            file_type = FileType(raw_type)
        except ValueError:
            file_type = FileType.OTHER
        return cls(
            name=data["name"],
            path=data["path"],
            file_type=file_type,
            size=int(data.get("size") or 0),
            modified=data.get("modified"),
            permissions=data.get("permissions"),
        )


# ── Transfers ──


class TransferDirection(StrEnum):
    UPLOAD = "Upload"
    DOWNLOAD = "Download"


@dataclass(frozen=True)
class TransferStatus:
    """Tagged transfer status; ``reason`` is only set for ``Failed``."""

    state: TransferState
    reason: str | None = None

    @classmethod
    def pending(cls) -> TransferStatus:
        return cls(TransferState.PENDING)

    @classmethod
    def in_progress(cls) -> TransferStatus:
        return cls(TransferState.IN_PROGRESS)

    @classmethod
    def completed(cls) -> TransferStatus:
        return cls(TransferState.COMPLETED)

    @classmethod
    def cancelled(cls) -> TransferStatus:
        return cls(TransferState.CANCELLED)

    @classmethod
    def failed(cls, reason: str) -> TransferStatus:
        return cls(TransferState.FAILED, reason)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_TRANSFER_STATES

    def to_payload(self) -> str | dict[str, str]:
        """Backend wire shape: ``"Completed"`` or ``{"Failed": reason}``."""
        if self.state == TransferState.FAILED:
            return {"Failed": self.reason or ""}
        return self.state.value

    @classmethod
    def from_payload(cls, value: str | dict[str, str]) -> TransferStatus:
        if isinstance(value, dict):
            if "Failed" in value:
                return cls.failed(str(value["Failed"]))
            raise RuntimeError(f"Invalid transfer status payload: {value!r}")
        state = parse_transfer_state(value)
        if state == TransferState.FAILED:
            return cls.failed("")
        return cls(state)

    def __str__(self) -> str:
        if self.state == TransferState.FAILED and self.reason:
            return f"Failed: {self.reason}"
        return self.state.value


@dataclass
class TransferRecord:
    """One upload or download (a folder upload is a single record)."""

    id: str
    filename: str
    local_path: str
    remote_path: str
    direction: TransferDirection
    total_bytes: int = 0
    transferred_bytes: int = 0
    status: TransferStatus = field(default_factory=TransferStatus.pending)
    is_folder: bool = False
    owner_tab_id: str | None = None

    @property
    def is_upload(self) -> bool:
        return self.direction == TransferDirection.UPLOAD

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def progress_percent(self) -> float:
        if self.total_bytes == 0:
            return 0.0
        return min(100.0, self.transferred_bytes / self.total_bytes * 100.0)

    def copy(self) -> TransferRecord:
        return replace(self)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> TransferRecord:
        direction = TransferDirection.UPLOAD if data.get("is_upload") else TransferDirection.DOWNLOAD
        status_raw = data.get("status", TransferState.PENDING.value)
        return cls(
            id=data["id"],
            filename=data.get("filename", ""),
            local_path=data.get("local_path", ""),
            remote_path=data.get("remote_path", ""),
            direction=direction,
            total_bytes=int(data.get("total_bytes") or 0),
            transferred_bytes=int(data.get("transferred_bytes") or 0),
            status=TransferStatus.from_payload(status_raw),
        )
