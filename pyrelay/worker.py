"""Worker-side entry points."""

from __future__ import annotations

from typing import Any

from ._internal.rpc_transports import RPCTransport
from ._internal.worker import RemoteCallback, WorkerExecutor
from .config import SessionConfig

__all__ = ["RemoteCallback", "WorkerExecutor", "serve"]


def serve(
    root: Any,
    transport: RPCTransport,
    config: SessionConfig | None = None,
    *,
    start: bool = True,
) -> WorkerExecutor:
    """Expose *root* to the controller on the other end of *transport*.

    Await ``executor.wait_closed()`` to keep serving until the transport ends.
    """
    executor = WorkerExecutor(root, transport, config)
    if start:
        executor.start()
    return executor
