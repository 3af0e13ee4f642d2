"""
Controller-side dispatcher.

RelaySession turns finalized action chains into OPERATION requests, keeps one
PendingRequest per request id, settles futures from SUCCESS/ERROR replies and
routes CALLBACK messages to the functions that were passed along with the
request. A request stays in the table while it is unsettled or still holds
live callbacks; it is dropped as soon as both are false.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, TypedDict

from ..config import SessionConfig
from ..errors import RemoteError, SessionClosedError
from .actions import (
    ACTION_DISPOSE,
    ACTION_OPERATION,
    RESULT_CALLBACK,
    RESULT_ERROR,
    RESULT_SUCCESS,
    Action,
    ActionChain,
    DisposeMessage,
    OperationMessage,
)
from .callbacks import CallbackRegistry
from .endpoint import MessageEndpoint
from .recorder import PlaceholderNode
from .rpc_serialization import FunctionHook, deserialize, serialize
from .rpc_transports import RPCTransport

logger = logging.getLogger(__name__)


class PendingRequest(TypedDict):
    id: int
    future: asyncio.Future[Any]
    callbacks: CallbackRegistry
    fulfilled: bool


def _as_exception(error: Any) -> BaseException:
    if isinstance(error, BaseException):
        return error
    return RemoteError(error)


class RelaySession(MessageEndpoint):
    """Dispatcher for one controller <-> worker channel.

    Create it inside the running event loop; ``proxy`` is the root
    placeholder. ``close()`` rejects whatever is still pending.
    """

    def __init__(
        self,
        transport: RPCTransport,
        config: SessionConfig | None = None,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        super().__init__(transport, config, loop=loop)
        self.pending: dict[int, PendingRequest] = {}
        self._ids = itertools.count()
        self.proxy = PlaceholderNode(self.dispatch)

    @property
    def pending_count(self) -> int:
        return len(self.pending)

    # -- dispatch ----------------------------------------------------------

    def dispatch(self, chain: ActionChain) -> asyncio.Future[Any]:
        future: asyncio.Future[Any] = self._loop.create_future()
        if self.closed:
            future.set_exception(SessionClosedError(f"Session {self.name} is closed"))
            return future

        request_id = next(self._ids)
        callbacks = CallbackRegistry()
        register = self._callback_hook(callbacks, request_id)

        try:
            data = [self._serialize_action(action, register) for action in chain]
        except Exception as exc:
            callbacks.clear()
            future.set_exception(exc)
            return future

        self.pending[request_id] = PendingRequest(
            id=request_id, future=future, callbacks=callbacks, fulfilled=False
        )

        try:
            self.send(OperationMessage(type=ACTION_OPERATION, id=request_id, data=data))
        except Exception as exc:
            pending = self.pending.pop(request_id, None)
            if pending:
                pending["callbacks"].clear()
            logger.error("[%s] Send failed for request %s: %s", self.name, request_id, exc)
            future.set_exception(exc)

        return future

    def _callback_hook(self, callbacks: CallbackRegistry, request_id: int) -> FunctionHook:
        def on_disposed(ref: str) -> None:
            self._send_dispose(ref)
            pending = self.pending.get(request_id)
            if pending is not None:
                self._release_if_settled(pending)

        def register(func: Any) -> dict[str, Any]:
            return callbacks.register(func, on_disposed)

        return register

    @staticmethod
    def _serialize_action(action: Action, register: FunctionHook) -> dict[str, Any]:
        wire: dict[str, Any] = {"type": action["type"], "key": action["key"]}
        if action["type"] == "set":
            wire["value"] = serialize(action["value"], register)
        elif action["type"] in ("apply", "construct"):
            wire["args"] = [serialize(arg, register) for arg in action["args"]]
        return wire

    def _send_dispose(self, ref: str) -> None:
        if self.closed:
            return
        try:
            self.send(DisposeMessage(type=ACTION_DISPOSE, ref=ref))
        except Exception as exc:
            logger.error("[%s] Failed to send dispose notice for %s: %s", self.name, ref, exc)

    # -- incoming ----------------------------------------------------------

    def handle_message(self, message: Any) -> None:
        msg_type = message.get("type")
        request_id = message.get("id")
        pending = self.pending.get(request_id)
        if pending is None:
            # Late result or callback for a request that was already purged
            logger.debug("[%s] Ignoring %s for unknown request %r", self.name, msg_type, request_id)
            return

        future = pending["future"]
        if msg_type == RESULT_SUCCESS:
            result = deserialize(message.get("result"))
            if not future.done():
                future.set_result(result)
            pending["fulfilled"] = True

        elif msg_type == RESULT_ERROR:
            error = _as_exception(deserialize(message.get("error")))
            if not future.done():
                future.set_exception(error)
            pending["fulfilled"] = True

        elif msg_type == RESULT_CALLBACK:
            func = message.get("func") or {}
            ref = func.get("ref")
            args = deserialize(func.get("args") or [])
            if not pending["callbacks"].invoke(ref, args):
                logger.debug("[%s] Callback %r already released, ignoring", self.name, ref)

        else:
            logger.warning("[%s] Unknown message type %r for request %r", self.name, msg_type, request_id)
            return

        self._release_if_settled(pending)

    def _release_if_settled(self, pending: PendingRequest) -> None:
        if pending["fulfilled"] and len(pending["callbacks"]) == 0:
            self.pending.pop(pending["id"], None)

    # -- teardown ----------------------------------------------------------

    def _on_close(self) -> None:
        pending, self.pending = self.pending, {}
        for request in pending.values():
            request["callbacks"].clear()
            if not request["future"].done():
                request["future"].set_exception(
                    SessionClosedError(f"Session {self.name} closed before request {request['id']} settled")
                )
