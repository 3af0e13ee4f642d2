"""
pyrelay - Drive an object graph living in a worker by recording operations locally.

pyrelay hands the controller a placeholder for the worker's root object.
Attribute reads, assignments, calls and constructions on placeholders are
recorded as a chain of actions and shipped to the worker as a single request
only when a value is actually needed, so ``await root.db.users.count()`` costs
one round trip no matter how long the path is.

Key Features:
    - Lazy chains of get/set/apply/construct actions, one request per chain
    - Functions passed as arguments become callbacks the worker can invoke
    - Persisted callbacks that live until explicitly disposed
    - Terminal results (numbers, strings, bytes, dates, sequences, streams)
      are returned as plain values; other results stay chainable

Basic Usage:
    >>> import asyncio
    >>> import pyrelay
    >>> async def main(transport):
    ...     root = pyrelay.create_proxy(transport)
    ...     total = await root.accounts.total()
    ...     root.settings.theme = "dark"
    ...     ticker = pyrelay.persist(print)
    ...     await root.feed.subscribe(ticker)
    ...     ticker.dispose()
"""

from typing import Any, Callable

from ._internal.callbacks import PersistedFunction, persist
from ._internal.recorder import TERMINAL_TYPES, PlaceholderNode, is_terminal
from ._internal.remote_handle import StreamHandle
from ._internal.rpc_transports import (
    ConnectionTransport,
    JSONSocketTransport,
    QueueTransport,
    RPCTransport,
)
from .config import SessionConfig, load_session_config
from .errors import ProxyUsageError, RemoteError, SessionClosedError
from .host import RelaySession, create_proxy
from .worker import WorkerExecutor, serve

__version__ = "0.1.0"

__all__ = [
    "create_proxy",
    "serve",
    "persist",
    "PersistedFunction",
    "PlaceholderNode",
    "RelaySession",
    "WorkerExecutor",
    "SessionConfig",
    "load_session_config",
    "RPCTransport",
    "QueueTransport",
    "ConnectionTransport",
    "JSONSocketTransport",
    "StreamHandle",
    "TERMINAL_TYPES",
    "is_terminal",
    "RemoteError",
    "SessionClosedError",
    "ProxyUsageError",
    "register_serializer",
]


def register_serializer(
    type_name: str,
    serializer: Callable[[Any], Any],
    deserializer: Callable[[Any], Any] | None = None,
) -> None:
    """Register a custom serializer pair for values of *type_name*."""
    from ._internal.serialization_registry import SerializerRegistry
    SerializerRegistry.get_instance().register(type_name, serializer, deserializer)
