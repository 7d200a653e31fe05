"""Workspace interfaces: ABC + data classes for the backend boundary.

Re-exports everything from gateway and notifications submodules.
"""

from workspace.interfaces.gateway import (
    SessionGateway,
    SessionHandle,
)
from workspace.interfaces.notifications import (
    Handler,
    NotificationChannel,
    Unsubscribe,
)

__all__ = [
    # Gateway
    "SessionGateway",
    "SessionHandle",
    # Notifications
    "NotificationChannel",
    "Handler",
    "Unsubscribe",
]
