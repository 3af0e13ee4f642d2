"""Registry of custom value codecs used by the relay serializer.

Values whose class (or any base class) is registered by name are encoded
with the registered serializer before the built-in tags are tried. The
encoded form must be a dict carrying ``"__type__": type_name``; on the
receiving side that key selects the deserializer.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, NamedTuple

logger = logging.getLogger(__name__)

Codec = Callable[[Any], Any]


class SerializerPair(NamedTuple):
    serializer: Codec
    deserializer: Codec | None


class SerializerRegistry:
    """Process-wide table of ``type_name -> SerializerPair``."""

    _instance: SerializerRegistry | None = None

    def __init__(self) -> None:
        self._pairs: dict[str, SerializerPair] = {}

    @classmethod
    def get_instance(cls) -> SerializerRegistry:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def register(self, type_name: str, serializer: Codec, deserializer: Codec | None = None) -> None:
        """Register the codec pair for values whose class is named *type_name*.

        Registering a name twice replaces the earlier pair.
        """
        if not callable(serializer):
            raise TypeError(f"Serializer for {type_name!r} must be callable")
        if deserializer is not None and not callable(deserializer):
            raise TypeError(f"Deserializer for {type_name!r} must be callable")
        if type_name in self._pairs:
            logger.debug("Replacing serializer pair for %s", type_name)
        self._pairs[type_name] = SerializerPair(serializer, deserializer)

    def unregister(self, type_name: str) -> None:
        self._pairs.pop(type_name, None)

    def get_serializer(self, type_name: str) -> Codec | None:
        pair = self._pairs.get(type_name)
        return pair.serializer if pair else None

    def get_deserializer(self, type_name: str) -> Codec | None:
        pair = self._pairs.get(type_name)
        return pair.deserializer if pair else None

    def has_handler(self, type_name: str) -> bool:
        return type_name in self._pairs

    def find_serializer(self, obj: Any) -> Codec | None:
        """Return the serializer for *obj*'s class or its nearest registered base."""
        if not self._pairs:
            return None
        for klass in type(obj).__mro__:
            pair = self._pairs.get(klass.__name__)
            if pair is not None:
                return pair.serializer
        return None

    def clear(self) -> None:
        self._pairs.clear()
