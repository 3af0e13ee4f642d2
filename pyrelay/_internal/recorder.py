"""
Operation recorder.

A PlaceholderNode stands in for a remote value that has not been computed yet.
Attribute reads append ``get`` actions and return new nodes; nothing crosses
the boundary until a node is evaluated (``await node`` / ``node.evaluate()``),
assigned to, called or constructed. Results of calls that are not terminal
values come back wrapped in a node seeded with the result, so reading a
terminal attribute off them is answered locally.
"""

from __future__ import annotations

import asyncio
import datetime
import io
import logging
import numbers
from collections.abc import Generator, Mapping
from typing import Any, Callable

from ..errors import ProxyUsageError
from .actions import (
    ActionChain,
    apply_action,
    construct_action,
    extend_chain,
    get_action,
    set_action,
)
from .remote_handle import StreamHandle

logger = logging.getLogger(__name__)

Evaluator = Callable[[ActionChain], "asyncio.Future[Any]"]

# Values of these types are returned as-is instead of being wrapped in a
# placeholder. Changing this set changes how many round trips a chain costs.
TERMINAL_TYPES: tuple[type, ...] = (
    numbers.Number,  # includes bool
    str,
    type(None),
    bytes,
    bytearray,
    memoryview,
    datetime.date,  # includes datetime.datetime
    datetime.time,
    datetime.timedelta,
    list,
    tuple,
    io.IOBase,
    StreamHandle,
)


def is_terminal(value: Any) -> bool:
    """Return True if *value* is not further chainable."""
    return isinstance(value, TERMINAL_TYPES)


_MISSING: Any = object()


def _owned_value(container: Any, key: Any) -> Any:
    """Return ``container[key]`` / ``container.key`` if it is held locally, else _MISSING."""
    if isinstance(container, Mapping):
        return container.get(key, _MISSING) if _hashable(key) else _MISSING
    if isinstance(key, str):
        attrs = getattr(container, "__dict__", None)
        if isinstance(attrs, dict):
            return attrs.get(key, _MISSING)
    return _MISSING


def _hashable(key: Any) -> bool:
    try:
        hash(key)
    except TypeError:
        return False
    return True


def _log_failed_assignment(future: asyncio.Future[Any]) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.warning("Remote assignment failed: %s", exc)


class PlaceholderNode:
    """Local stand-in for a remote operation path.

    Reserved names (``read_property``, ``write_property``, ``call``,
    ``construct``, ``evaluate``) are the node's own methods; a remote member
    with one of those names is reached with ``node.read_property(name)``.
    """

    __slots__ = ("_evaluate", "_chain", "_previous", "_future", "_wrap_result", "__weakref__")

    def __init__(
        self,
        evaluate: Evaluator,
        chain: ActionChain = (),
        previous_result: Any = _MISSING,
        *,
        future: asyncio.Future[Any] | None = None,
        wrap_result: bool = False,
    ) -> None:
        object.__setattr__(self, "_evaluate", evaluate)
        object.__setattr__(self, "_chain", tuple(chain))
        object.__setattr__(self, "_previous", previous_result)
        object.__setattr__(self, "_future", future)
        object.__setattr__(self, "_wrap_result", wrap_result)

    # -- capability set ----------------------------------------------------

    def read_property(self, key: Any) -> Any:
        if self._previous is not _MISSING:
            value = _owned_value(self._previous, key)
            if value is not _MISSING and is_terminal(value):
                return value
        return PlaceholderNode(self._evaluate, extend_chain(self._chain, get_action(key)))

    def write_property(self, key: Any, value: Any) -> asyncio.Future[Any]:
        return self._evaluate(extend_chain(self._chain, set_action(key, value)))

    def call(self, *args: Any) -> PlaceholderNode:
        prefix, key = self._split_target("call")
        return self._dispatch_result(extend_chain(prefix, apply_action(key, args)))

    def construct(self, *args: Any) -> PlaceholderNode:
        prefix, key = self._split_target("construct")
        return self._dispatch_result(extend_chain(prefix, construct_action(key, args)))

    def evaluate(self) -> asyncio.Future[Any]:
        """Dispatch this node's chain once and return the (shared) future."""
        if self._future is None:
            object.__setattr__(self, "_future", self._evaluate(self._chain))
        return self._future

    # -- helpers -----------------------------------------------------------

    def _split_target(self, operation: str) -> tuple[ActionChain, Any]:
        if not self._chain:
            raise ProxyUsageError(f"Cannot {operation} the root proxy: no target member was selected")
        last = self._chain[-1]
        if last["type"] != "get":
            raise ProxyUsageError(
                f"Cannot {operation} the result of a {last['type']!r} action; select a member first"
            )
        return self._chain[:-1], last["key"]

    def _dispatch_result(self, chain: ActionChain) -> PlaceholderNode:
        return PlaceholderNode(self._evaluate, chain, future=self._evaluate(chain), wrap_result=True)

    async def _settle(self) -> Any:
        result = await self.evaluate()
        if self._wrap_result and not is_terminal(result):
            return PlaceholderNode(self._evaluate, self._chain, result, future=self._future)
        return result

    # -- Python protocol hooks ---------------------------------------------

    def __getattr__(self, name: str) -> Any:
        # Unset slots only happen on half-built instances (e.g. from __new__)
        if name in PlaceholderNode.__slots__:
            raise AttributeError(name)
        if name == "__name__":
            return self._chain[-1]["key"] if self._chain else None
        if name.startswith("__") and name.endswith("__"):
            raise AttributeError(name)
        return self.read_property(name)

    def __setattr__(self, name: str, value: Any) -> None:
        future = self.write_property(name, value)
        future.add_done_callback(_log_failed_assignment)

    def __getitem__(self, key: Any) -> Any:
        return self.read_property(key)

    def __setitem__(self, key: Any, value: Any) -> None:
        future = self.write_property(key, value)
        future.add_done_callback(_log_failed_assignment)

    # Keeps iter()/in from falling back to __getitem__(0), __getitem__(1), ...
    __iter__ = None

    def __copy__(self) -> PlaceholderNode:
        return PlaceholderNode(
            self._evaluate,
            self._chain,
            self._previous,
            future=self._future,
            wrap_result=self._wrap_result,
        )

    def __deepcopy__(self, memo: dict[int, Any]) -> PlaceholderNode:
        # The chain is immutable and the evaluator is shared, so a deep copy is a copy
        return self.__copy__()

    def __reduce__(self) -> Any:
        raise TypeError("PlaceholderNode cannot be pickled: it is bound to a live session")

    def __call__(self, *args: Any) -> PlaceholderNode:
        return self.call(*args)

    def __await__(self) -> Generator[Any, None, Any]:
        return self._settle().__await__()

    def __repr__(self) -> str:
        path = ".".join(str(action["key"]) for action in self._chain) or "<root>"
        return f"<PlaceholderNode {path}>"
