"""
Relay Serialization Layer.

This module contains:
1. Data Structures: AttrDict (attribute access over deserialized mappings)
2. Serialization Logic: serialize, deserialize, serialize_exception

Values cross the boundary as plain structures. Functions become callback
reference tokens (through a hook supplied by whoever owns the callback
registry), binary blobs become base64 ``Buffer`` records, and the terminal
kinds the deserializer understands (bytes, dates, times, durations,
non-float numbers, sequences, stream handles) are rebuilt without going
back through the serializer.
"""

from __future__ import annotations

import base64
import datetime
import decimal
import fractions
import io
import logging
import numbers
import traceback
from typing import Any, Callable

from ..errors import RemoteError
from .actions import (
    TYPE_BUFFER,
    TYPE_DATE,
    TYPE_DURATION,
    TYPE_ERROR,
    TYPE_FUNCTION,
    TYPE_NUMBER,
    TYPE_STREAM,
    TYPE_TIME,
)
from .remote_handle import StreamHandle
from .serialization_registry import SerializerRegistry

logger = logging.getLogger(__name__)

FunctionHook = Callable[[Callable[..., Any]], dict[str, Any]]
ResolveHook = Callable[[dict[str, Any]], Any]

# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------

class AttrDict(dict[str, Any]):
    def __getattr__(self, item: str) -> Any:
        try:
            return self[item]
        except KeyError as e:
            raise AttributeError(item) from e

    def copy(self) -> AttrDict:
        return AttrDict(super().copy())


# ---------------------------------------------------------------------------
# Serialization Functions
# ---------------------------------------------------------------------------

def is_function_value(obj: Any) -> bool:
    """Return True for values that must travel as callback references."""
    return callable(obj) and not isinstance(obj, type)


def serialize_exception(exc: BaseException) -> dict[str, Any]:
    return {
        "type": TYPE_ERROR,
        "name": type(exc).__name__,
        "message": str(exc),
        "traceback": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    }


def _serialize_number(obj: numbers.Number) -> Any:
    # Decimal is checked first: it is not registered as numbers.Real
    if isinstance(obj, decimal.Decimal):
        return {"type": TYPE_NUMBER, "kind": "decimal", "value": str(obj)}
    if isinstance(obj, fractions.Fraction):
        return {"type": TYPE_NUMBER, "kind": "fraction", "value": str(obj)}
    if isinstance(obj, numbers.Integral):
        return int(obj)
    if isinstance(obj, numbers.Real):
        return float(obj)
    if isinstance(obj, numbers.Complex):
        value = complex(obj)
        return {"type": TYPE_NUMBER, "kind": "complex", "value": [value.real, value.imag]}
    raise TypeError(
        f"Cannot serialize number of type {type(obj).__name__}; "
        "register a codec with pyrelay.register_serializer()"
    )


def _deserialize_number(obj: dict[str, Any]) -> Any:
    kind, value = obj.get("kind"), obj["value"]
    if kind == "decimal":
        return decimal.Decimal(value)
    if kind == "fraction":
        return fractions.Fraction(value)
    if kind == "complex":
        return complex(*value)
    raise ValueError(f"Unknown number kind: {kind!r}")


def serialize(obj: Any, register_function: FunctionHook | None = None) -> Any:
    """Recursively prepare *obj* for the wire.

    Registry-handled types are serialized via SerializerRegistry first.
    Function values are handed to *register_function*, which returns the
    reference token that replaces them; without a hook they cannot be sent.
    Anything not recognized passes through unchanged for the transport to deal
    with.
    """
    registry = SerializerRegistry.get_instance()
    serializer = registry.find_serializer(obj)
    if serializer is not None:
        return serializer(obj)

    # Primitives pass through
    if isinstance(obj, (str, int, float, bool, type(None))):
        return obj

    if isinstance(obj, (bytes, bytearray, memoryview)):
        return {"type": TYPE_BUFFER, "data": base64.b64encode(bytes(obj)).decode("ascii")}

    if isinstance(obj, numbers.Number):
        return _serialize_number(obj)

    if isinstance(obj, (datetime.datetime, datetime.date)):
        return {"type": TYPE_DATE, "value": obj.isoformat()}

    if isinstance(obj, datetime.time):
        return {"type": TYPE_TIME, "value": obj.isoformat()}

    if isinstance(obj, datetime.timedelta):
        return {
            "type": TYPE_DURATION,
            "days": obj.days,
            "seconds": obj.seconds,
            "microseconds": obj.microseconds,
        }

    if isinstance(obj, StreamHandle):
        return {"type": TYPE_STREAM, "id": obj.stream_id, "name": obj.name}

    if isinstance(obj, io.IOBase):
        handle = StreamHandle.for_stream(obj)
        return {"type": TYPE_STREAM, "id": handle.stream_id, "name": handle.name}

    if isinstance(obj, BaseException):
        return serialize_exception(obj)

    if is_function_value(obj):
        if register_function is None:
            raise TypeError(
                f"Cannot serialize function {getattr(obj, '__name__', obj)!r}: "
                "no callback registry is available on this side"
            )
        return register_function(obj)

    if isinstance(obj, dict):
        return {k: serialize(v, register_function) for k, v in obj.items()}

    if isinstance(obj, (list, tuple)):
        return [serialize(item, register_function) for item in obj]

    return obj


def deserialize(obj: Any, resolve_function: ResolveHook | None = None) -> Any:
    """Rebuild values received from the wire.

    Tagged records become bytes, dates, times, durations, numbers,
    stream handles or RemoteError instances. Dicts with a registered
    ``__type__`` go to their deserializer, other dicts become AttrDict.
    Function tokens are passed to *resolve_function* when one is supplied
    (worker side).
    """
    if isinstance(obj, dict):
        tag = obj.get("type")
        if tag == TYPE_BUFFER and "data" in obj:
            return base64.b64decode(obj["data"])
        if tag == TYPE_DATE and "value" in obj:
            value = obj["value"]
            if "T" in value:
                return datetime.datetime.fromisoformat(value)
            return datetime.date.fromisoformat(value)
        if tag == TYPE_TIME and "value" in obj:
            return datetime.time.fromisoformat(obj["value"])
        if tag == TYPE_DURATION and "days" in obj:
            return datetime.timedelta(
                days=obj["days"], seconds=obj["seconds"], microseconds=obj["microseconds"]
            )
        if tag == TYPE_NUMBER and "value" in obj:
            return _deserialize_number(obj)
        if tag == TYPE_STREAM and "id" in obj:
            return StreamHandle(obj["id"], obj.get("name"))
        if tag == TYPE_ERROR and "message" in obj:
            return RemoteError(
                obj["message"],
                remote_type=obj.get("name"),
                remote_traceback=obj.get("traceback"),
            )
        if tag == TYPE_FUNCTION and "ref" in obj and resolve_function is not None:
            return resolve_function(obj)

        ref_type = obj.get("__type__")
        if ref_type:
            deserializer = SerializerRegistry.get_instance().get_deserializer(ref_type)
            if deserializer:
                return deserializer(obj)

        return AttrDict({k: deserialize(v, resolve_function) for k, v in obj.items()})

    if isinstance(obj, (list, tuple)):
        return [deserialize(item, resolve_function) for item in obj]

    return obj
