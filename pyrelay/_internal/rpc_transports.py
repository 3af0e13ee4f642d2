"""
Relay transports.

A transport moves already-serialized relay messages (plain dicts, lists and
scalars) between the controller and the worker. The endpoint's receive thread
is the only caller of ``recv()``; ``send()`` may be called from the loop
thread and from worker code running in other threads.

This module contains:
- RPCTransport Protocol
- QueueTransport
- ConnectionTransport
- JSONSocketTransport
"""

from __future__ import annotations

import contextlib
import json
import logging
import socket
import struct
import threading
from typing import (
    TYPE_CHECKING,
    Any,
    Protocol,
    runtime_checkable,
)

from ..config import DEFAULT_MAX_MESSAGE_BYTES

if TYPE_CHECKING:
    from multiprocessing.connection import Connection

logger = logging.getLogger(__name__)

# Big-endian unsigned 32-bit payload length
_FRAME_HEADER = struct.Struct(">I")


@runtime_checkable
class RPCTransport(Protocol):
    """What an endpoint needs from its channel.

    ``recv`` blocks until a message arrives and returns None once the peer
    has gone away.
    """

    def send(self, obj: Any) -> None: ...

    def recv(self) -> Any: ...

    def close(self) -> None: ...


class QueueTransport:
    """Two one-way queues, e.g. ``queue.Queue`` between threads or
    ``multiprocessing.Queue`` between processes.

    Putting None on the inbound queue ends the stream.
    """

    def __init__(self, outbound: Any, inbound: Any) -> None:
        self._outbound = outbound
        self._inbound = inbound

    def send(self, obj: Any) -> None:
        self._outbound.put(obj)

    def recv(self) -> Any:
        return self._inbound.get()

    def close(self) -> None:
        for q in (self._outbound, self._inbound):
            # Only multiprocessing queues own OS resources
            if hasattr(q, "close"):
                with contextlib.suppress(OSError, ValueError):
                    q.close()


class ConnectionTransport:
    """A ``multiprocessing`` Connection (Pipe end or Listener/Client socket)."""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn
        self._send_lock = threading.Lock()

    def send(self, obj: Any) -> None:
        with self._send_lock:
            self._conn.send(obj)

    def recv(self) -> Any:
        try:
            return self._conn.recv()
        except EOFError:
            logger.debug("Connection closed by peer")
            return None

    def close(self) -> None:
        with contextlib.suppress(OSError):
            self._conn.close()


class JSONSocketTransport:
    """Length-prefixed JSON frames over a stream socket.

    Nothing is unpickled, so a worker on the other end cannot execute code
    in the controller by crafting a message.
    """

    def __init__(self, sock: socket.socket, max_message_bytes: int = DEFAULT_MAX_MESSAGE_BYTES) -> None:
        self._sock = sock
        self.max_message_bytes = max_message_bytes
        self._send_lock = threading.Lock()

    def send(self, obj: Any) -> None:
        try:
            payload = json.dumps(obj, default=_reduce_for_json, separators=(",", ":")).encode("utf-8")
        except TypeError as exc:
            logger.error("Cannot encode %s message as JSON: %s", type(obj).__name__, exc)
            raise
        if len(payload) > self.max_message_bytes:
            raise ValueError(f"Message too large: {len(payload)} bytes (limit {self.max_message_bytes})")

        with self._send_lock:
            self._sock.sendall(_FRAME_HEADER.pack(len(payload)) + payload)

    def recv(self) -> Any:
        header = self._read_exact(_FRAME_HEADER.size)
        if header is None:
            return None
        (length,) = _FRAME_HEADER.unpack(header)
        if length > self.max_message_bytes:
            raise ValueError(f"Message too large: {length} bytes (limit {self.max_message_bytes})")
        payload = self._read_exact(length)
        if payload is None:
            raise ConnectionError(f"Socket closed in the middle of a {length}-byte frame")
        return json.loads(payload)

    def _read_exact(self, size: int) -> bytes | None:
        """Read *size* bytes. None means the peer closed before sending any of them."""
        buf = bytearray()
        while len(buf) < size:
            chunk = self._sock.recv(min(size - len(buf), 65536))
            if not chunk:
                if not buf:
                    return None
                raise ConnectionError(f"Socket closed after {len(buf)}/{size} bytes")
            buf += chunk
        return bytes(buf)

    def close(self) -> None:
        # shutdown() wakes a receive thread blocked in recv(); close() alone does not
        with contextlib.suppress(OSError):
            self._sock.shutdown(socket.SHUT_RDWR)
        with contextlib.suppress(OSError):
            self._sock.close()


def _reduce_for_json(obj: Any) -> Any:
    """``json.dumps`` fallback: plain objects become their public data attributes."""
    attrs = getattr(obj, "__dict__", None)
    if isinstance(attrs, dict) and not callable(obj):
        return {k: v for k, v in attrs.items() if not k.startswith("_") and not callable(v)}
    raise TypeError(
        f"Object of type {type(obj).__name__} is not JSON serializable; "
        f"register a codec with pyrelay.register_serializer()"
    )
