"""
Message endpoint shared by the controller session and the worker executor.

The receive thread only blocks on ``transport.recv()`` and forwards every
message to the owning event loop with ``call_soon_threadsafe``. All protocol
state is therefore mutated on the loop thread alone.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from typing import Any

from ..config import SessionConfig, resolve_session_config
from .rpc_transports import RPCTransport

logger = logging.getLogger(__name__)


class MessageEndpoint:
    """Owns a transport, the loop it delivers to, and the receive thread."""

    def __init__(
        self,
        transport: RPCTransport,
        config: SessionConfig | None = None,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.id = str(uuid.uuid4())
        self.config = resolve_session_config(config)
        self._transport = transport
        self._loop = loop if loop is not None else asyncio.get_running_loop()
        self._closed_future: asyncio.Future[None] = self._loop.create_future()
        self._recv_thread: threading.Thread | None = None
        self._stopping = False

    @property
    def name(self) -> str:
        return self.config["name"]

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    @property
    def closed(self) -> bool:
        return self._stopping

    def start(self) -> None:
        """Start the background receive thread."""
        if self._recv_thread is not None:
            return
        self._recv_thread = threading.Thread(
            target=self._recv_loop, name=f"{self.name}-recv", daemon=True
        )
        self._recv_thread.start()

    def handle_message(self, message: Any) -> None:
        raise NotImplementedError

    def send(self, message: Any) -> None:
        if self.config["debug_messages"]:
            logger.debug("[%s] send %r", self.name, message)
        self._transport.send(message)

    def _receive(self, message: Any) -> None:
        if self.config["debug_messages"]:
            logger.debug("[%s] recv %r", self.name, message)
        if not isinstance(message, dict):
            logger.warning("[%s] Dropping malformed message: %r", self.name, message)
            return
        self.handle_message(message)

    def _recv_loop(self) -> None:
        while not self._stopping:
            try:
                item = self._transport.recv()
            except Exception as exc:
                if self._stopping:
                    logger.debug("[%s] shutting down (%s)", self.name, exc)
                else:
                    logger.error("[%s] recv failed (endpoint_id=%s): %s", self.name, self.id, exc)
                self._post(self.close)
                return

            if item is None:
                logger.debug("[%s] transport reached end of stream", self.name)
                self._post(self.close)
                return

            self._post(self._receive, item)

    def _post(self, callback: Any, *args: Any) -> None:
        try:
            self._loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            # Loop already closed; nothing left to deliver to
            logger.debug("[%s] loop closed, dropping %s", self.name, getattr(callback, "__name__", callback))

    def _on_close(self) -> None:
        """Hook for subclasses to tear down protocol state."""

    def close(self) -> None:
        """Stop the endpoint. Safe to call more than once."""
        if self._stopping:
            return
        self._stopping = True
        self._on_close()
        self._transport.close()
        if not self._closed_future.done():
            self._closed_future.set_result(None)

    async def wait_closed(self) -> None:
        await self._closed_future
