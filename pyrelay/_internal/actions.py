"""
Recorded actions and wire message shapes.

A chain is a tuple of Action dicts, root first. Chains are never mutated once
built: every new step copies the tuple and appends one action.
"""

from __future__ import annotations

from typing import Any, Literal, TypedDict, Union

# Message types
ACTION_OPERATION = "OPERATION"
ACTION_DISPOSE = "DISPOSE"
RESULT_SUCCESS = "SUCCESS"
RESULT_ERROR = "ERROR"
RESULT_CALLBACK = "CALLBACK"

# Value tags
TYPE_FUNCTION = "FUNCTION"
TYPE_BUFFER = "Buffer"
TYPE_DATE = "Date"
TYPE_TIME = "Time"
TYPE_DURATION = "Duration"
TYPE_NUMBER = "Number"
TYPE_STREAM = "Stream"
TYPE_ERROR = "Error"


class GetAction(TypedDict):
    type: Literal["get"]
    key: Any


class SetAction(TypedDict):
    type: Literal["set"]
    key: Any
    value: Any


class ApplyAction(TypedDict):
    type: Literal["apply"]
    key: Any
    args: list[Any]


class ConstructAction(TypedDict):
    type: Literal["construct"]
    key: Any
    args: list[Any]


Action = Union[GetAction, SetAction, ApplyAction, ConstructAction]
ActionChain = tuple[Action, ...]


class OperationMessage(TypedDict):
    type: Literal["OPERATION"]
    id: int
    data: list[Action]


class DisposeMessage(TypedDict):
    type: Literal["DISPOSE"]
    ref: str


class SuccessMessage(TypedDict):
    type: Literal["SUCCESS"]
    id: int
    result: Any


class ErrorMessage(TypedDict):
    type: Literal["ERROR"]
    id: int
    error: Any


class CallbackPayload(TypedDict):
    ref: str
    args: list[Any]


class CallbackMessage(TypedDict):
    type: Literal["CALLBACK"]
    id: int
    func: CallbackPayload


RelayMessage = Union[OperationMessage, DisposeMessage, SuccessMessage, ErrorMessage, CallbackMessage]


def get_action(key: Any) -> GetAction:
    return GetAction(type="get", key=key)


def set_action(key: Any, value: Any) -> SetAction:
    return SetAction(type="set", key=key, value=value)


def apply_action(key: Any, args: tuple[Any, ...] | list[Any]) -> ApplyAction:
    return ApplyAction(type="apply", key=key, args=list(args))


def construct_action(key: Any, args: tuple[Any, ...] | list[Any]) -> ConstructAction:
    return ConstructAction(type="construct", key=key, args=list(args))


def extend_chain(chain: ActionChain, action: Action) -> ActionChain:
    """Return a new chain with *action* appended; *chain* is left untouched."""
    return (*chain, action)
