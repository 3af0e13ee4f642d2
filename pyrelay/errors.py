"""Exception types raised by pyrelay."""

from __future__ import annotations

from typing import Any


class RemoteError(Exception):
    """Raised when the worker reports a failure for a request.

    ``payload`` holds the deserialized error exactly as the worker sent it.
    When the worker sent a structured exception, ``remote_type`` and
    ``remote_traceback`` carry its type name and formatted traceback.
    """

    def __init__(
        self,
        payload: Any,
        *,
        remote_type: str | None = None,
        remote_traceback: str | None = None,
    ) -> None:
        self.payload = payload
        self.remote_type = remote_type
        self.remote_traceback = remote_traceback
        if remote_type:
            super().__init__(f"Remote {remote_type}: {payload}")
        else:
            super().__init__(payload)


class SessionClosedError(RuntimeError):
    """Raised for requests still pending (or newly issued) on a closed session."""


class ProxyUsageError(TypeError):
    """Raised when a placeholder is used in a way that cannot be recorded."""
