"""Workspace error taxonomy.

Gateways raise ``GatewayError`` (or a subclass). The core converts every
gateway failure into tab- or transfer-local state; none of these escape the
workspace except ``SessionConnectionError`` from the open flows, where the tab
is never added.
"""

from __future__ import annotations


class WorkspaceError(Exception):
    """Base class for all workspace errors."""


class GatewayError(WorkspaceError):
    """A backend request failed. ``str(exc)`` is shown to the user."""


class SessionConnectionError(GatewayError):
    """Opening or closing a session failed."""


class NavigationError(GatewayError):
    """Resolving or listing a directory failed."""


class MutationError(GatewayError):
    """mkdir / delete / rename failed."""


class TransferError(GatewayError):
    """Starting or cancelling a transfer failed."""


def describe(exc: BaseException) -> str:
    """Human-readable message for an exception, never empty."""
    text = str(exc).strip()
    return text or exc.__class__.__name__
