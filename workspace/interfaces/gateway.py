"""Session Gateway: async facade over the backend command surface.

One method per backend operation. Implementations raise ``GatewayError``
subclasses on failure; the workspace core never sees protocol details.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from workspace.errors import TransferError
from workspace.models import FileEntry, SessionKind, TransferDirection, TransferRecord


@dataclass
class SessionHandle:
    """Backend answer to ``open_session``."""

    session_id: str
    kind: SessionKind
    title: str = ""
    width: int | None = None  # framebuffer size for Vnc/Rdp
    height: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class SessionGateway(ABC):
    """Backend session service.

    Implementations:
    - LocalGateway: local filesystem browsing and copy transfers
    - test fakes under tests/fakes/
    """

    @abstractmethod
    async def open_session(self, kind: SessionKind, params: dict[str, Any]) -> SessionHandle:
        """
        Open a protocol session.

        Args:
            kind: Session kind to open
            params: Kind-specific parameters (host, port, credentials,
                ``session_id`` of the terminal an Sftp browser rides on, ...)

        Returns:
            SessionHandle with the backend-assigned id

        Raises:
            SessionConnectionError: If the session cannot be opened
        """
        ...

    @abstractmethod
    async def close_session(self, kind: SessionKind, session_id: str) -> None:
        """Release a session. Raises SessionConnectionError on failure."""
        ...

    @abstractmethod
    async def list_directory(self, session_id: str, path: str) -> list[FileEntry]:
        """List an absolute directory. Raises NavigationError."""
        ...

    @abstractmethod
    async def resolve_path(self, session_id: str, path: str) -> str:
        """
        Resolve ``path`` against the session's working directory.

        ``"."``, ``"~"`` and relative fragments are interpreted by the backend.

        Returns:
            Absolute, backend-normalized path

        Raises:
            NavigationError: If the path cannot be resolved
        """
        ...

    @abstractmethod
    async def create_directory(self, session_id: str, path: str) -> None:
        """Raises MutationError."""
        ...

    @abstractmethod
    async def delete(self, session_id: str, path: str, is_directory: bool) -> None:
        """Raises MutationError."""
        ...

    @abstractmethod
    async def rename(self, session_id: str, old_path: str, new_path: str) -> None:
        """Raises MutationError."""
        ...

    @abstractmethod
    async def start_transfer(
        self,
        session_id: str,
        direction: TransferDirection,
        local_path: str,
        remote_path: str,
        is_folder: bool = False,
    ) -> TransferRecord:
        """
        Start a transfer without waiting for completion.

        Progress and the terminal outcome arrive later on the notification
        channel, keyed by the returned record's id.

        Returns:
            TransferRecord with status Pending

        Raises:
            TransferError: If the backend refuses the transfer
        """
        ...

    async def cancel_transfer(self, transfer_id: str) -> None:
        """Request cancellation. Acknowledged via a ``cancelled`` notification.

        Default: unsupported.
        """
        raise TransferError(f"Cancellation is not supported for transfer {transfer_id}")
