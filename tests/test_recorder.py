"""Tests for PlaceholderNode action recording.

These tests drive the recorder with a stand-in evaluator, so they verify the
exact chains produced and how many times evaluation is triggered without any
transport involved.
"""

import asyncio
import copy
import datetime
import io
import logging
import pickle

import pytest

from pyrelay import ProxyUsageError, StreamHandle, is_terminal
from pyrelay._internal.recorder import PlaceholderNode

from .fixtures.loopback import ChainRecorder


def get(key):
    return {"type": "get", "key": key}


@pytest.mark.asyncio
class TestPropertyAccess:
    """Tests for deferred property reads."""

    async def test_intercepts_property_access(self):
        """Reading a path dispatches the whole chain once, when awaited."""
        recorder = ChainRecorder(respond=42)
        root = PlaceholderNode(recorder)

        assert await root.foo.bar.baz == 42
        assert recorder.chains == [[get("foo"), get("bar"), get("baz")]]

    async def test_nothing_dispatched_until_evaluated(self):
        """Building a path alone does not dispatch."""
        recorder = ChainRecorder(respond=1)
        root = PlaceholderNode(recorder)

        node = root.foo.bar
        assert isinstance(node, PlaceholderNode)
        assert recorder.chains == []

    async def test_repeated_evaluation_is_memoized(self):
        """evaluate() and await share a single dispatch."""
        recorder = ChainRecorder(respond="value")
        node = PlaceholderNode(recorder).foo.bar.baz

        first = node.evaluate()
        second = node.evaluate()
        assert first is second
        assert await node == "value"
        assert await node == "value"
        assert len(recorder.chains) == 1

    async def test_property_named_like_reserved_key(self):
        """A remote member named 'evaluate' is reachable through read_property."""
        recorder = ChainRecorder(respond=42)
        root = PlaceholderNode(recorder)

        assert await root.foo.read_property("evaluate").bar == 42
        assert recorder.chains == [[get("foo"), get("evaluate"), get("bar")]]

    async def test_item_access_records_get(self):
        """Subscription records a get with the raw key."""
        recorder = ChainRecorder(respond=None)
        root = PlaceholderNode(recorder)

        await root["not an identifier"][3]
        assert recorder.chains == [[get("not an identifier"), get(3)]]

    async def test_forking_does_not_share_chains(self):
        """Two branches from one node keep independent chains."""
        recorder = ChainRecorder(respond=0)
        base = PlaceholderNode(recorder).config

        await base.left
        await base.right
        assert recorder.chains == [[get("config"), get("left")], [get("config"), get("right")]]

    async def test_name_introspection(self):
        """__name__ reports the last recorded key without dispatching."""
        recorder = ChainRecorder()
        root = PlaceholderNode(recorder)

        assert root.foo.bar.__name__ == "bar"
        assert root.__name__ is None
        assert recorder.chains == []

    async def test_dunder_probes_do_not_record(self):
        """Protocol probing by Python itself raises AttributeError instead of recording."""
        recorder = ChainRecorder()
        node = PlaceholderNode(recorder).foo

        assert not hasattr(node, "__len__")
        with pytest.raises(TypeError):
            iter(node)
        assert recorder.chains == []

    async def test_copy_and_pickle_do_not_record(self):
        """copy() shares the chain; pickling fails fast with TypeError."""
        recorder = ChainRecorder(respond=7)
        node = PlaceholderNode(recorder).foo

        shallow = copy.copy(node)
        deep = copy.deepcopy(node)
        with pytest.raises(TypeError, match="cannot be pickled"):
            pickle.dumps(node)
        assert recorder.chains == []

        assert await shallow == 7
        assert await deep.bar == 7
        assert recorder.chains == [[get("foo")], [get("foo"), get("bar")]]

    async def test_unset_slots_raise_attribute_error(self):
        """A node built without __init__ does not recurse through __getattr__."""
        bare = PlaceholderNode.__new__(PlaceholderNode)
        with pytest.raises(AttributeError):
            bare._evaluate

    async def test_evaluating_root(self):
        """Awaiting the root dispatches an empty chain."""
        recorder = ChainRecorder(respond={"answer": 42})
        assert await PlaceholderNode(recorder) == {"answer": 42}
        assert recorder.chains == [[]]


@pytest.mark.asyncio
class TestAssignment:
    """Tests for property writes."""

    async def test_intercepts_setting_a_property(self):
        """Assignment dispatches immediately with a set action."""
        recorder = ChainRecorder(respond=True)
        root = PlaceholderNode(recorder)

        root.foo.bar.baz = {"foo": 13, "bar": 81}

        assert recorder.chains == [
            [get("foo"), get("bar"), {"type": "set", "key": "baz", "value": {"foo": 13, "bar": 81}}]
        ]

    async def test_write_property_returns_future(self):
        """write_property exposes the settlement future."""
        recorder = ChainRecorder(respond=True)
        future = PlaceholderNode(recorder).foo.write_property("bar", 5)

        assert isinstance(future, asyncio.Future)
        assert await future is True
        assert len(recorder.chains) == 1

    async def test_item_assignment(self):
        """Item assignment records a set action too."""
        recorder = ChainRecorder(respond=True)
        root = PlaceholderNode(recorder)

        root.table["row-1"] = 7
        assert recorder.chains == [[get("table"), {"type": "set", "key": "row-1", "value": 7}]]

    async def test_failed_assignment_is_logged(self, caplog):
        """A rejected attribute assignment surfaces as a warning."""
        recorder = ChainRecorder(error=RuntimeError("read-only"))
        root = PlaceholderNode(recorder)

        with caplog.at_level(logging.WARNING, logger="pyrelay._internal.recorder"):
            root.frozen = 1
            await asyncio.sleep(0)

        assert "Remote assignment failed" in caplog.text
        assert "read-only" in caplog.text


@pytest.mark.asyncio
class TestCallAndConstruct:
    """Tests for apply/construct recording and result wrapping."""

    async def test_intercepts_function_call(self):
        """Calling replaces the trailing get with an apply."""
        recorder = ChainRecorder(respond="hello")
        root = PlaceholderNode(recorder)

        assert await root.foo.bar.baz("yo", 42) == "hello"
        assert recorder.chains == [
            [get("foo"), get("bar"), {"type": "apply", "key": "baz", "args": ["yo", 42]}]
        ]

    async def test_call_dispatches_eagerly(self):
        """A call is sent even if its result is never awaited."""
        recorder = ChainRecorder(respond=None)
        PlaceholderNode(recorder).log.write("line")

        assert recorder.chains == [[get("log"), {"type": "apply", "key": "write", "args": ["line"]}]]

    async def test_intercepts_construction(self):
        """construct() records a construct action."""
        recorder = ChainRecorder(respond="hello world")
        root = PlaceholderNode(recorder)

        assert await root.foo.bar.baz.construct("yo", 42) == "hello world"
        assert recorder.chains == [
            [get("foo"), get("bar"), {"type": "construct", "key": "baz", "args": ["yo", 42]}]
        ]

    async def test_construct_off_root_is_rejected(self):
        """Constructing or calling the root has no target and fails synchronously."""
        recorder = ChainRecorder()
        root = PlaceholderNode(recorder)

        with pytest.raises(ProxyUsageError):
            root.construct()
        with pytest.raises(ProxyUsageError):
            root()
        assert recorder.chains == []

    async def test_calling_a_call_result_is_rejected(self):
        """Only member placeholders are callable."""
        recorder = ChainRecorder(respond=None)
        made = PlaceholderNode(recorder).factory.make()

        with pytest.raises(ProxyUsageError):
            made()

    async def test_non_terminal_result_is_wrapped(self):
        """A mapping result comes back as a seeded placeholder."""
        recorder = ChainRecorder(respond={"foo": "bar", "count": 3})
        result = await PlaceholderNode(recorder).service.describe()

        assert isinstance(result, PlaceholderNode)
        assert await result == {"foo": "bar", "count": 3}
        assert len(recorder.chains) == 1

    async def test_terminal_property_short_circuits(self):
        """Terminal members of a previous result are read locally."""
        recorder = ChainRecorder(respond={"foo": "bar", "count": 3, "tags": ["a"]})
        result = await PlaceholderNode(recorder).service.describe()

        assert result.foo == "bar"
        assert result.count == 3
        assert result["tags"] == ["a"]
        assert len(recorder.chains) == 1

    async def test_non_terminal_property_extends_chain(self):
        """Non-terminal or missing members fall back to a new round trip."""
        recorder = ChainRecorder(respond=lambda chain: {"child": {"a": 1}} if len(chain) == 2 else 7)
        result = await PlaceholderNode(recorder).factory.make("x")

        assert await result.child.a == 7
        assert recorder.chains[1] == [
            get("factory"),
            {"type": "apply", "key": "make", "args": ["x"]},
            get("child"),
            get("a"),
        ]

    async def test_object_attributes_short_circuit(self):
        """Instance attributes of a returned object count as owned members."""

        class Point:
            def __init__(self):
                self.x = 1
                self.y = 2

        recorder = ChainRecorder(respond=Point())
        point = await PlaceholderNode(recorder).geometry.origin()

        assert (point.x, point.y) == (1, 2)
        assert len(recorder.chains) == 1

    async def test_seeded_node_evaluate_is_settled(self):
        """The seeded node reuses the call's settled future."""
        recorder = ChainRecorder(respond={"k": "v"})
        result = await PlaceholderNode(recorder).api.fetch()

        assert result.evaluate().done()
        assert len(recorder.chains) == 1

    async def test_call_errors_surface_on_await(self):
        """A failed call rejects when awaited, never when called."""
        recorder = ChainRecorder(error=ValueError("boom"))
        pending = PlaceholderNode(recorder).api.explode()

        with pytest.raises(ValueError, match="boom"):
            await pending


class TestTerminalClassification:
    """Tests for the closed set of terminal value types."""

    @pytest.mark.parametrize(
        "value",
        [
            1,
            2.5,
            3j,
            True,
            "text",
            None,
            b"raw",
            bytearray(b"raw"),
            memoryview(b"raw"),
            datetime.date(2024, 1, 1),
            datetime.datetime(2024, 1, 1, 12, 0),
            datetime.time(12, 0),
            datetime.timedelta(seconds=5),
            [1, 2],
            (1, 2),
            io.BytesIO(b""),
            StreamHandle("s-1"),
        ],
    )
    def test_terminal_values(self, value):
        """Values in the closed set are terminal."""
        assert is_terminal(value)

    @pytest.mark.parametrize("value", [{"a": 1}, object(), {1, 2}, lambda: None])
    def test_chainable_values(self, value):
        """Everything else stays chainable."""
        assert not is_terminal(value)
