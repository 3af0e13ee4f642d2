"""
Worker-side executor.

WorkerExecutor runs OPERATION chains against a root object and replies with
exactly one SUCCESS or ERROR per request. Function tokens found in arguments
become RemoteCallback stubs that send CALLBACK messages back to the
controller; persisted ones go quiet once the controller disposes them.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Mapping, MutableMapping
from typing import Any

from ..config import SessionConfig
from .actions import (
    ACTION_DISPOSE,
    ACTION_OPERATION,
    RESULT_CALLBACK,
    RESULT_ERROR,
    RESULT_SUCCESS,
    CallbackMessage,
    ErrorMessage,
    SuccessMessage,
)
from .endpoint import MessageEndpoint
from .rpc_serialization import deserialize, serialize, serialize_exception
from .rpc_transports import RPCTransport

logger = logging.getLogger(__name__)


class RemoteCallback:
    """Callable stand-in for a controller function passed as an argument."""

    def __init__(self, worker: WorkerExecutor, request_id: int, ref: str, persisted: bool) -> None:
        self._worker = worker
        self.request_id = request_id
        self.ref = ref
        self.persisted = persisted
        self.released = False

    def __call__(self, *args: Any) -> None:
        if self.released:
            return
        if not self.persisted:
            self.released = True
        self._worker.send_callback(self.request_id, self.ref, args)

    def __repr__(self) -> str:
        kind = "persisted" if self.persisted else "one-shot"
        return f"<RemoteCallback ref={self.ref} {kind}>"


def _get_member(target: Any, key: Any) -> Any:
    if isinstance(target, Mapping):
        return target[key]
    return getattr(target, key)


def _set_member(target: Any, key: Any, value: Any) -> None:
    if isinstance(target, MutableMapping):
        target[key] = value
    else:
        setattr(target, key, value)


class WorkerExecutor(MessageEndpoint):
    """Executes recorded chains against ``root`` on behalf of a RelaySession."""

    def __init__(
        self,
        root: Any,
        transport: RPCTransport,
        config: SessionConfig | None = None,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        super().__init__(transport, config, loop=loop)
        self.root = root
        self.callbacks: dict[str, RemoteCallback] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def handle_message(self, message: Any) -> None:
        msg_type = message.get("type")
        if msg_type == ACTION_OPERATION:
            task = self._loop.create_task(self.run_operation(message["id"], message.get("data") or []))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        elif msg_type == ACTION_DISPOSE:
            callback = self.callbacks.pop(message.get("ref"), None)
            if callback is not None:
                callback.released = True
        else:
            logger.warning("[%s] Unknown message type %r", self.name, msg_type)

    async def run_operation(self, request_id: int, chain: list[dict[str, Any]]) -> None:
        try:
            result = await self.execute(request_id, chain)
            response: SuccessMessage | ErrorMessage = SuccessMessage(
                type=RESULT_SUCCESS, id=request_id, result=serialize(result)
            )
        except Exception as exc:
            logger.exception("[%s] Operation %s failed", self.name, request_id)
            response = ErrorMessage(type=RESULT_ERROR, id=request_id, error=serialize_exception(exc))

        if self.closed:
            return

        # Try to send response; if it cannot be encoded, send an error response instead
        try:
            self.send(response)
        except (TypeError, ValueError) as serialize_exc:
            logger.error(
                "[%s] Response serialization failed for request %s: %s",
                self.name, request_id, serialize_exc,
            )
            self.send(ErrorMessage(
                type=RESULT_ERROR,
                id=request_id,
                error=serialize_exception(
                    TypeError(f"Response serialization failed: {serialize_exc}")
                ),
            ))

    async def execute(self, request_id: int, chain: list[dict[str, Any]]) -> Any:
        def resolve_function(token: dict[str, Any]) -> RemoteCallback:
            persisted = bool(token.get("persisted"))
            callback = RemoteCallback(self, request_id, token["ref"], persisted)
            if persisted:
                self.callbacks[callback.ref] = callback
            return callback

        target = self.root
        for action in chain:
            kind, key = action["type"], action["key"]
            if kind == "get":
                target = _get_member(target, key)
            elif kind == "set":
                _set_member(target, key, deserialize(action.get("value"), resolve_function))
                target = True
            elif kind in ("apply", "construct"):
                member = _get_member(target, key)
                args = deserialize(action.get("args") or [], resolve_function)
                target = member(*args)
                if kind == "apply" and inspect.isawaitable(target):
                    target = await target
            else:
                raise ValueError(
                    f"Unknown action type: {kind!r}. Valid types are: 'get', 'set', 'apply', 'construct'."
                )
        return target

    def send_callback(self, request_id: int, ref: str, args: tuple[Any, ...]) -> None:
        if self.closed:
            return
        self.send(CallbackMessage(
            type=RESULT_CALLBACK,
            id=request_id,
            func={"ref": ref, "args": [serialize(arg) for arg in args]},
        ))

    def _on_close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        for callback in self.callbacks.values():
            callback.released = True
        self.callbacks.clear()
