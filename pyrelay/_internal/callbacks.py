"""
Callback bookkeeping for functions passed to the worker.

Each pending request owns one CallbackRegistry. Plain functions are
registered as one-shot handles and removed on first invocation; functions
wrapped in PersistedFunction survive invocation and are removed only when the
wrapper is disposed.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from typing import Any, Callable, Literal

from .actions import TYPE_FUNCTION

logger = logging.getLogger(__name__)

CallbackKind = Literal["one_shot", "persisted"]


class PersistedFunction:
    """A callback the worker may invoke any number of times until disposed.

    Every request the function is passed to subscribes to its disposal
    signal; ``dispose()`` fires each subscription exactly once.
    """

    def __init__(self, func: Callable[..., Any]) -> None:
        if not callable(func):
            raise TypeError(f"PersistedFunction requires a callable, got {type(func).__name__}")
        self._func = func
        self._listeners: list[Callable[[], None]] = []
        self.disposed = False

    @property
    def func(self) -> Callable[..., Any]:
        return self._func

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self._func(*args, **kwargs)

    def on_dispose(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Subscribe *listener* to disposal. Returns a function that detaches it."""
        self._listeners.append(listener)

        def remove_listener() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove_listener

    def dispose(self) -> None:
        if self.disposed:
            return
        self.disposed = True
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            listener()

    def __repr__(self) -> str:
        state = "disposed" if self.disposed else "live"
        return f"<PersistedFunction {getattr(self._func, '__name__', self._func)!r} {state}>"


def persist(func: Callable[..., Any]) -> PersistedFunction:
    """Wrap *func* so it can be invoked repeatedly by the worker."""
    return PersistedFunction(func)


class CallbackHandle:
    __slots__ = ("ref", "function", "kind", "disposed", "_detach")

    def __init__(self, ref: str, function: Callable[..., Any], kind: CallbackKind) -> None:
        self.ref = ref
        self.function = function
        self.kind: CallbackKind = kind
        self.disposed = False
        self._detach: Callable[[], None] | None = None

    def detach(self) -> None:
        if self._detach is not None:
            self._detach()
            self._detach = None

    def __repr__(self) -> str:
        return f"<CallbackHandle ref={self.ref} kind={self.kind} disposed={self.disposed}>"


def _log_callback_failure(task: asyncio.Future[Any]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Async callback failed: %s", exc, exc_info=exc)


class CallbackRegistry:
    """Reference-counted ref -> function mapping for a single request."""

    def __init__(self) -> None:
        self._handles: dict[str, CallbackHandle] = {}

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, ref: object) -> bool:
        return ref in self._handles

    def get(self, ref: str) -> CallbackHandle | None:
        return self._handles.get(ref)

    def register(
        self,
        func: Callable[..., Any],
        on_disposed: Callable[[str], None] | None = None,
    ) -> dict[str, Any]:
        """Register *func* and return the reference token that replaces it on the wire.

        *on_disposed* is called with the ref once a persisted handle has been
        removed because its PersistedFunction was disposed.
        """
        ref = uuid.uuid4().hex
        if isinstance(func, PersistedFunction):
            if func.disposed:
                raise ValueError(f"Cannot pass disposed {func!r} to the worker")
            handle = CallbackHandle(ref, func, "persisted")
            self._handles[ref] = handle
            handle._detach = func.on_dispose(lambda: self._persisted_disposed(ref, on_disposed))
            return {"type": TYPE_FUNCTION, "ref": ref, "persisted": True}

        self._handles[ref] = CallbackHandle(ref, func, "one_shot")
        return {"type": TYPE_FUNCTION, "ref": ref}

    def _persisted_disposed(self, ref: str, on_disposed: Callable[[str], None] | None) -> None:
        handle = self._handles.pop(ref, None)
        if handle is None or handle.disposed:
            return
        handle.disposed = True
        handle.detach()
        logger.debug("Persisted callback %s disposed", ref)
        if on_disposed is not None:
            on_disposed(ref)

    def invoke(self, ref: str, args: list[Any]) -> bool:
        """Invoke the handle for *ref*. Returns False when no live handle exists."""
        handle = self._handles.get(ref)
        if handle is None or handle.disposed:
            return False

        if handle.kind == "one_shot":
            del self._handles[ref]
            handle.disposed = True

        try:
            result = handle.function(*args)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                task.add_done_callback(_log_callback_failure)
        except Exception:
            logger.exception("Callback %s raised", ref)
        return True

    def clear(self) -> None:
        """Drop every handle without emitting dispose notices."""
        for handle in self._handles.values():
            handle.disposed = True
            handle.detach()
        self._handles.clear()
