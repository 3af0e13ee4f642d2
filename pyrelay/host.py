"""Controller-side entry points."""

from __future__ import annotations

from ._internal.dispatcher import RelaySession
from ._internal.recorder import PlaceholderNode
from ._internal.rpc_transports import RPCTransport
from .config import SessionConfig

__all__ = ["RelaySession", "create_proxy"]


def create_proxy(
    transport: RPCTransport,
    config: SessionConfig | None = None,
    *,
    start: bool = True,
) -> PlaceholderNode:
    """Open a session over *transport* and return its root placeholder.

    Must be called from inside the running event loop. Use
    :class:`RelaySession` directly when the session itself (for ``close()``)
    is needed.
    """
    session = RelaySession(transport, config)
    if start:
        session.start()
    return session.proxy
