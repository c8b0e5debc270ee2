"""
Tests for the blob watcher driver loop.
"""
import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from blobwatch.core.errors import BlobQueryError, HeaderStreamError, SubscriptionUnsupportedError
from blobwatch.core.models.blob import Blob
from blobwatch.core.models.header import ExtendedHeader, HeaderEvent
from blobwatch.core.rpc.client import CelestiaRpcClient
from blobwatch.core.watcher import BlobWatcher, WatchSummary


class FakeSubscription:
    """Yields prepared header events and records when each one is taken."""

    def __init__(self, events, trace):
        self._events = list(events)
        self._trace = trace

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._events:
            raise StopAsyncIteration
        event = self._events.pop(0)
        self._trace.append(("next", event.header.height if event.ok else None))
        return event


@pytest.fixture
def trace():
    return []


@pytest.fixture
def header(make_header):
    def _header(height):
        return HeaderEvent.success(ExtendedHeader.model_validate(make_header(height)))
    return _header


@pytest.fixture
def watcher_for(demo_namespace, trace):
    """Build a watcher around a mock client fed with the given events and replies."""

    def _build(events, replies):
        client = MagicMock()
        client.header_subscribe = AsyncMock(return_value=FakeSubscription(events, trace))

        async def blob_get_all(height, namespaces):
            trace.append(("query", height))
            reply = replies.get(height, [])
            if isinstance(reply, Exception):
                raise reply
            return reply

        client.blob_get_all = AsyncMock(side_effect=blob_get_all)
        return client, BlobWatcher(client, demo_namespace, label="0xDEADBEEF")

    return _build


def messages(caplog, level):
    return [r.getMessage() for r in caplog.records if r.levelno == level]


def test_headers_without_blobs(watcher_for, header, caplog):
    """Test a header with no blobs is reported with a zero count."""
    caplog.set_level(logging.INFO, logger="blobwatch")
    client, watcher = watcher_for([header(100)], {})

    summary = asyncio.run(watcher.run())

    info = messages(caplog, logging.INFO)
    assert "Header: hash: ABCDEF; height: 100" in info
    assert "Found 0 blobs at height 100 in the 0xDEADBEEF namespace" in info
    assert summary == WatchSummary(headers=1, blobs=0, last_height=100)


def test_headers_with_one_blob(watcher_for, header, demo_namespace, caplog):
    caplog.set_level(logging.INFO, logger="blobwatch")
    blob = Blob.new(demo_namespace, b"Hello, World!")
    client, watcher = watcher_for([header(101)], {101: [blob]})

    summary = asyncio.run(watcher.run())

    assert "Found 1 blobs at height 101 in the 0xDEADBEEF namespace" in messages(caplog, logging.INFO)
    assert summary.blobs == 1
    client.blob_get_all.assert_awaited_once_with(101, [demo_namespace])


def test_query_error_does_not_stop_the_stream(watcher_for, header, caplog):
    caplog.set_level(logging.INFO, logger="blobwatch")
    replies = {102: BlobQueryError("header: height 102 not synced", code=1)}
    client, watcher = watcher_for([header(102), header(103)], replies)

    summary = asyncio.run(watcher.run())

    errors = messages(caplog, logging.ERROR)
    assert len(errors) == 1
    assert errors[0].startswith("Error fetching blobs: header: height 102 not synced")
    assert "Found 0 blobs at height 103 in the 0xDEADBEEF namespace" in messages(caplog, logging.INFO)
    assert summary.query_errors == 1
    assert summary.headers == 2
    assert summary.last_height == 103


def test_header_error_does_not_stop_the_stream(watcher_for, header, caplog):
    caplog.set_level(logging.INFO, logger="blobwatch")
    events = [HeaderEvent.failure(HeaderStreamError("Could not decode extended header")), header(104)]
    client, watcher = watcher_for(events, {})

    summary = asyncio.run(watcher.run())

    assert messages(caplog, logging.ERROR) == ["Error receiving header: Could not decode extended header"]
    assert "Found 0 blobs at height 104 in the 0xDEADBEEF namespace" in messages(caplog, logging.INFO)
    assert summary.header_errors == 1
    assert client.blob_get_all.await_count == 1


def test_error_isolation(watcher_for, header, caplog):
    """Test a bad header followed by a failed query leaves the next element intact."""
    caplog.set_level(logging.INFO, logger="blobwatch")
    events = [
        HeaderEvent.failure(HeaderStreamError("bad element")),
        header(105),
        header(106),
    ]
    client, watcher = watcher_for(events, {105: BlobQueryError("boom")})

    summary = asyncio.run(watcher.run())

    errors = messages(caplog, logging.ERROR)
    assert errors[0] == "Error receiving header: bad element"
    assert errors[1] == "Error fetching blobs: boom"
    assert "Found 0 blobs at height 106 in the 0xDEADBEEF namespace" in messages(caplog, logging.INFO)
    assert summary == WatchSummary(headers=2, header_errors=1, query_errors=1, last_height=106)


def test_one_query_per_header_before_the_next(watcher_for, header, trace):
    """Test each height is queried once and before the next header is taken."""
    client, watcher = watcher_for([header(1), header(2), header(2), header(3)], {})

    asyncio.run(watcher.run())

    assert trace == [
        ("next", 1), ("query", 1),
        ("next", 2), ("query", 2),
        ("next", 2), ("query", 2),
        ("next", 3), ("query", 3),
    ]


def test_reports_follow_header_order(watcher_for, header, caplog):
    caplog.set_level(logging.INFO, logger="blobwatch")
    heights = [210, 208, 209]
    client, watcher = watcher_for([header(h) for h in heights], {})

    asyncio.run(watcher.run())

    found = [m for m in messages(caplog, logging.INFO) if m.startswith("Found")]
    assert found == [f"Found 0 blobs at height {h} in the 0xDEADBEEF namespace" for h in heights]


def test_subscription_failure_propagates(demo_namespace):
    client = MagicMock()
    client.header_subscribe = AsyncMock(side_effect=SubscriptionUnsupportedError("needs ws"))
    watcher = BlobWatcher(client, demo_namespace)

    with pytest.raises(SubscriptionUnsupportedError):
        asyncio.run(watcher.run())


def test_default_label(demo_namespace):
    watcher = BlobWatcher(MagicMock(), demo_namespace)
    assert watcher.label == str(demo_namespace)


def test_against_node(fake_node, make_header, demo_namespace, caplog):
    """Test the watcher end to end over a WebSocket connection."""
    caplog.set_level(logging.INFO, logger="blobwatch")
    fake_node.stream = [
        make_header(100),
        make_header(101),
        {"header": {"height": "not-a-number"}},
        make_header(102),
        make_header(103),
    ]
    fake_node.blobs[101] = [Blob.new(demo_namespace, b"Hello, World!").to_rpc()]
    fake_node.failing_heights.add(102)

    async def scenario():
        async with fake_node.serve() as (ws_url, _):
            async with await CelestiaRpcClient.connect(ws_url) as client:
                return await BlobWatcher(client, demo_namespace, label="0xDEADBEEF").run()

    summary = asyncio.run(scenario())

    info = messages(caplog, logging.INFO)
    assert [m for m in info if m.startswith("Found")] == [
        "Found 0 blobs at height 100 in the 0xDEADBEEF namespace",
        "Found 1 blobs at height 101 in the 0xDEADBEEF namespace",
        "Found 0 blobs at height 103 in the 0xDEADBEEF namespace",
    ]
    errors = messages(caplog, logging.ERROR)
    assert errors[0].startswith("Error receiving header: Could not decode extended header")
    assert errors[1].startswith("Error fetching blobs: header: height 102 not synced")
    assert summary.headers == 4
    assert summary.header_errors == 1
    assert summary.query_errors == 1
    assert summary.blobs == 1


@pytest.mark.parametrize("field,value", [("index", "3"), ("share_version", None)])
def test_malformed_blob_does_not_stop_the_stream(fake_node, make_header, demo_namespace, caplog, field, value):
    """Test a badly typed blob field fails its height only."""
    caplog.set_level(logging.INFO, logger="blobwatch")
    bad = Blob.new(demo_namespace, b"Hello, World!").to_rpc()
    bad[field] = value
    fake_node.stream = [make_header(101), make_header(102)]
    fake_node.blobs[101] = [bad]
    fake_node.blobs[102] = [Blob.new(demo_namespace, b"next").to_rpc()]

    async def scenario():
        async with fake_node.serve() as (ws_url, _):
            async with await CelestiaRpcClient.connect(ws_url) as client:
                return await BlobWatcher(client, demo_namespace, label="0xDEADBEEF").run()

    summary = asyncio.run(scenario())

    errors = messages(caplog, logging.ERROR)
    assert len(errors) == 1
    assert errors[0].startswith("Error fetching blobs: Malformed blob at height 101")
    assert "Found 1 blobs at height 102 in the 0xDEADBEEF namespace" in messages(caplog, logging.INFO)
    assert summary.query_errors == 1
    assert summary.headers == 2
    assert summary.last_height == 102
