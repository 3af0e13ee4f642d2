"""Stream handle for streams that cannot cross the process boundary.

A StreamHandle is a lightweight reference to a stream (file, socket, pipe)
that stays on the worker side. It carries only an identifier and the stream's
name so the controller can log or route it, and it is classified as a terminal
value: reading properties off it never issues further requests.
"""
from __future__ import annotations

import uuid
from typing import Any


class StreamHandle:
    """Handle to a stream living in the worker.

    Attributes:
        stream_id: Unique identifier for the remote stream.
        name: The stream's ``name`` attribute when it had one (for debugging/logging).
    """

    def __init__(self, stream_id: str, name: str | None = None) -> None:
        self.stream_id = stream_id
        self.name = name

    @classmethod
    def for_stream(cls, stream: Any) -> StreamHandle:
        name = getattr(stream, "name", None)
        return cls(uuid.uuid4().hex, name if isinstance(name, str) else None)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StreamHandle):
            return NotImplemented
        return self.stream_id == other.stream_id

    def __hash__(self) -> int:
        return hash(self.stream_id)

    def __repr__(self) -> str:
        return f"<RemoteStream id={self.stream_id} name={self.name}>"
