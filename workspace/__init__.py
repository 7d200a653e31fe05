"""Workspace: orchestration core of a multi-protocol remote-access client.

Usage:
    from workspace import create_workspace, WorkspaceConfig, resolve_profile_name

    config = WorkspaceConfig.load(resolve_profile_name(args.profile))
    ws = create_workspace(config)

    term = await ws.open_terminal()
    sftp = await ws.open_sftp(term.id)
    await ws.upload(sftp.id, "/tmp/report.pdf")
"""

from __future__ import annotations

from workspace.config import WorkspaceConfig, resolve_profile_name
from workspace.controller import BrowserPane, WorkspaceController, WorkspaceSnapshot
from workspace.errors import (
    GatewayError,
    MutationError,
    NavigationError,
    SessionConnectionError,
    TransferError,
    WorkspaceError,
)
from workspace.events import EventBus
from workspace.interfaces import NotificationChannel, SessionGateway, SessionHandle
from workspace.models import SessionKind, TransferDirection


def create_workspace(
    config: WorkspaceConfig | None = None,
    gateway: SessionGateway | None = None,
    channel: NotificationChannel | None = None,
) -> WorkspaceController:
    """Factory: create a WorkspaceController from config.

    Args:
        config: WorkspaceConfig (from WorkspaceConfig.load() or inline)
        gateway: Backend session service; defaults to a LocalGateway rooted
            at ``config.local_root`` sharing the controller's event bus
        channel: Notification channel the gateway emits on (required when a
            custom gateway emits on its own channel)
    """
    config = config or WorkspaceConfig()

    if gateway is None:
        from workspace.local import LocalGateway

        bus = channel if isinstance(channel, EventBus) else EventBus()
        gateway = LocalGateway(bus=bus, root=config.local_root, chunk_size=config.transfers.chunk_size)
        channel = bus

    return WorkspaceController(gateway, channel=channel, config=config)


__all__ = [
    "BrowserPane",
    "EventBus",
    "GatewayError",
    "MutationError",
    "NavigationError",
    "SessionConnectionError",
    "SessionGateway",
    "SessionHandle",
    "SessionKind",
    "TransferDirection",
    "TransferError",
    "WorkspaceConfig",
    "WorkspaceController",
    "WorkspaceError",
    "WorkspaceSnapshot",
    "create_workspace",
    "resolve_profile_name",
]
