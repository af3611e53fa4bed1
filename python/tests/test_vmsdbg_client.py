import asyncio

import pytest

from vmsdbg import (
    ConnectFailed,
    ConnectionLost,
    ConnectionStatus,
    NotConnected,
    RemoteError,
    StreamId,
    VMServiceClient,
)
from vm_stubs import (
    FakeTransportFactory,
    failure,
    notification,
    settle,
    success,
    wait_for_sent,
)

URL = "ws://127.0.0.1:8181/ws"


def echo_params(message):
    return success(message, {"method": message["method"], "params": message.get("params")})


@pytest.mark.asyncio
async def test_connect_then_get_vm_round_trip(client, transports):
    await client.connect(URL)
    assert client.status == ConnectionStatus.CONNECTED
    assert client.get_connection_status() == ConnectionStatus.CONNECTED
    assert client.is_connected
    transport = transports.last
    assert transport.address == URL

    task = asyncio.create_task(client.call("getVM"))
    await wait_for_sent(transport, 1)
    assert transport.sent[0] == {"jsonrpc": "2.0", "id": "0", "method": "getVM"}
    assert client.pending_calls == 1
    transport.deliver({"jsonrpc": "2.0", "id": "0", "result": {"name": "vm"}})
    assert await task == {"name": "vm"}
    assert client.pending_calls == 0
    assert client.status_history == [
        ConnectionStatus.DISCONNECTED,
        ConnectionStatus.CONNECTING,
        ConnectionStatus.CONNECTED,
    ]


@pytest.mark.asyncio
async def test_http_service_uri_is_rewritten(client, transports):
    await client.connect("http://127.0.0.1:8181/AbCd=/")
    assert transports.last.address == "ws://127.0.0.1:8181/AbCd=/ws"
    assert client.address == "ws://127.0.0.1:8181/AbCd=/ws"


@pytest.mark.asyncio
async def test_responses_out_of_order(client, transports):
    await client.connect(URL)
    transport = transports.last
    tasks = [asyncio.create_task(client.get_isolate(f"isolates/{idx}")) for idx in range(3)]
    await wait_for_sent(transport, 3)
    for request_id in ("2", "0", "1"):
        transport.deliver(success({"id": request_id}, {"id": f"isolates/{request_id}"}))
    results = await asyncio.gather(*tasks)
    assert [result["id"] for result in results] == ["isolates/0", "isolates/1", "isolates/2"]


@pytest.mark.asyncio
async def test_status_listener_replays_connected(client):
    await client.connect(URL)
    seen = []
    client.add_connection_status_listener(seen.append)
    assert seen == [ConnectionStatus.CONNECTED]
    client.remove_connection_status_listener(seen.append)
    client.remove_connection_status_listener(seen.append)
    await client.disconnect()
    assert seen == [ConnectionStatus.CONNECTED]


@pytest.mark.asyncio
async def test_calls_without_connection_raise_not_connected(client):
    with pytest.raises(NotConnected):
        await client.get_vm()
    with pytest.raises(NotConnected):
        await client.subscribe_to_channel("Logging")
    with pytest.raises(ValueError):
        await client.subscribe_to_channel("Bogus")


@pytest.mark.asyncio
async def test_malformed_address_rejected_before_network(client, transports):
    with pytest.raises(ConnectFailed):
        await client.connect("not a url")
    assert transports.created == []
    assert client.status == ConnectionStatus.DISCONNECTED


@pytest.mark.asyncio
async def test_open_failure_moves_to_error(client, transports):
    transports.open_error = ConnectFailed("connection refused")
    with pytest.raises(ConnectFailed):
        await client.connect(URL)
    assert client.status == ConnectionStatus.ERROR
    assert not client.is_connected
    with pytest.raises(NotConnected):
        await client.get_vm()

    transports.open_error = None
    await client.connect(URL)
    assert client.status == ConnectionStatus.CONNECTED


@pytest.mark.asyncio
async def test_cancelled_connect_returns_to_disconnected(client, transports):
    transports.open_gate = asyncio.Event()
    task = asyncio.create_task(client.connect(URL))
    await settle()
    assert client.status == ConnectionStatus.CONNECTING
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert client.status == ConnectionStatus.DISCONNECTED
    assert transports.last.detached


@pytest.mark.asyncio
async def test_disconnect_fails_all_pending_calls(client, transports):
    await client.connect(URL)
    transport = transports.last
    tasks = [asyncio.create_task(client.call(method)) for method in ("getVM", "getVersion", "getVM")]
    await wait_for_sent(transport, 3)
    assert client.pending_calls == 3
    await client.disconnect()
    results = await asyncio.gather(*tasks, return_exceptions=True)
    assert all(isinstance(result, ConnectionLost) for result in results)
    assert client.pending_calls == 0
    assert client.status == ConnectionStatus.DISCONNECTED
    assert transport.closed
    # Late responses on the old channel go nowhere.
    transport.deliver({"jsonrpc": "2.0", "id": "0", "result": {}})


@pytest.mark.asyncio
async def test_remote_close_fails_pending_and_disconnects(client, transports):
    await client.connect(URL)
    transport = transports.last
    task = asyncio.create_task(client.get_vm())
    await wait_for_sent(transport, 1)
    transport.drop()
    with pytest.raises(ConnectionLost):
        await task
    assert client.status == ConnectionStatus.DISCONNECTED


@pytest.mark.asyncio
async def test_transport_error_moves_to_error(client, transports):
    await client.connect(URL)
    transport = transports.last
    task = asyncio.create_task(client.get_vm())
    await wait_for_sent(transport, 1)
    transport.drop("connection closed abnormally: 1011")
    with pytest.raises(ConnectionLost) as excinfo:
        await task
    assert "1011" in excinfo.value.reason
    assert client.status == ConnectionStatus.ERROR

    await client.connect(URL)
    assert client.status == ConnectionStatus.CONNECTED


@pytest.mark.asyncio
async def test_remote_error_does_not_affect_other_calls(client, transports):
    await client.connect(URL)
    transport = transports.last
    bad = asyncio.create_task(client.evaluate("isolates/1", "libraries/1", "1 +"))
    good = asyncio.create_task(client.get_version())
    await wait_for_sent(transport, 2)
    transport.deliver(failure(transport.sent[0], 113, "Expression compilation error"))
    transport.deliver(success(transport.sent[1], {"major": 4, "minor": 0}))
    with pytest.raises(RemoteError) as excinfo:
        await bad
    assert excinfo.value.code == 113
    assert await good == {"major": 4, "minor": 0}
    assert client.is_connected


@pytest.mark.asyncio
async def test_subscribe_sends_stream_listen_and_delivers_events(client, transports):
    await client.connect(URL)
    transport = transports.last
    first, second = [], []
    client.add_channel_observer("Logging", first.append)
    client.add_channel_observer(StreamId.LOGGING, second.append)
    await client.subscribe_to_channel("Logging")
    assert transport.sent == [
        {"jsonrpc": "2.0", "id": "0", "method": "streamListen", "params": {"streamId": "Logging"}}
    ]
    assert client.listening_streams() == ["Logging"]
    assert client.dispatcher.is_subscribed("Logging")

    transport.deliver(notification("Logging", {"message": "x"}))
    assert first == [{"message": "x"}]
    assert second == [{"message": "x"}]

    # Listening again on the same channel is a local no-op.
    await client.subscribe_to_channel(StreamId.LOGGING)
    assert transport.methods() == ["streamListen"]


@pytest.mark.asyncio
async def test_reconnect_relistens_previous_streams(client, transports):
    received = []
    client.add_channel_observer("Extension", received.append)
    await client.connect(URL)
    await client.subscribe_to_channel("Extension")
    await client.subscribe_to_channel("GC")
    await client.disconnect()
    assert client.listening_streams() == []

    await client.connect(URL)
    transport = transports.last
    assert len(transports.created) == 2
    assert sorted(msg["params"]["streamId"] for msg in transport.sent) == ["Extension", "GC"]
    assert sorted(msg["id"] for msg in transport.sent) == ["0", "1"]
    assert client.listening_streams() == ["Extension", "GC"]

    transport.deliver(notification("Extension", {"extensionKind": "app.ready"}))
    assert received == [{"extensionKind": "app.ready"}]


@pytest.mark.asyncio
async def test_failed_relisten_is_logged_and_connect_completes(client, transports, caplog):
    await client.connect(URL)
    await client.subscribe_to_channel("Logging")
    await client.subscribe_to_channel("GC")
    await client.disconnect()

    def reject_gc(message):
        if message["params"]["streamId"] == "GC":
            return failure(message, 100, "Feature is disabled")
        return success(message)

    transports.responder = reject_gc
    await client.connect(URL)
    assert client.status == ConnectionStatus.CONNECTED
    assert client.listening_streams() == ["Logging"]
    assert client.dispatcher.subscribed_streams() == ["GC", "Logging"]
    assert "failed to re-listen to stream GC" in caplog.text


@pytest.mark.asyncio
async def test_already_subscribed_counts_as_success(client, transports):
    transports.responder = lambda message: failure(message, 103, "Stream already subscribed")
    await client.connect(URL)
    await client.subscribe_to_channel("Debug")
    assert client.listening_streams() == ["Debug"]


@pytest.mark.asyncio
async def test_listen_rejection_is_raised(client, transports):
    transports.responder = lambda message: failure(message, 100, "Feature is disabled")
    await client.connect(URL)
    with pytest.raises(RemoteError):
        await client.subscribe_to_channel("Timeline")
    assert client.listening_streams() == []
    assert not client.dispatcher.is_subscribed("Timeline")


@pytest.mark.asyncio
async def test_unsubscribe_cancels_stream_but_keeps_observers(client, transports):
    received = []
    client.add_channel_observer("Logging", received.append)
    await client.connect(URL)
    await client.subscribe_to_channel("Logging")
    await client.unsubscribe_from_channel("Logging")
    transport = transports.last
    assert transport.methods() == ["streamListen", "streamCancel"]
    assert transport.sent[1]["params"] == {"streamId": "Logging"}
    assert client.listening_streams() == []
    assert client.dispatcher.subscribed_streams() == []
    assert client.dispatcher.observers("Logging") == [received.append]

    # Nothing to re-listen to after a reconnect.
    await client.disconnect()
    await client.connect(URL)
    assert transports.last.sent == []


@pytest.mark.asyncio
async def test_unsubscribe_tolerates_not_subscribed_and_disconnected(client, transports):
    def cancel_unknown(message):
        if message["method"] == "streamCancel":
            return failure(message, 104, "Stream not subscribed")
        return success(message)

    transports.responder = cancel_unknown
    await client.connect(URL)
    await client.subscribe_to_channel("VM")
    await client.unsubscribe_from_channel("VM")
    assert client.listening_streams() == []

    await client.disconnect()
    await client.unsubscribe_from_channel("Service")
    assert transports.last.methods() == ["streamListen", "streamCancel"]


@pytest.mark.asyncio
async def test_removing_last_observer_does_not_cancel_remotely(client, transports):
    received = []
    client.add_channel_observer("Isolate", received.append)
    await client.connect(URL)
    await client.subscribe_to_channel("Isolate")
    client.remove_channel_observer("Isolate", received.append)
    await settle()
    assert transports.last.methods() == ["streamListen"]
    assert client.listening_streams() == ["Isolate"]


@pytest.mark.asyncio
async def test_malformed_frames_are_dropped(client, transports, caplog):
    received = []
    client.add_channel_observer("Logging", received.append)
    await client.connect(URL)
    transport = transports.last
    task = asyncio.create_task(client.get_vm())
    await wait_for_sent(transport, 1)

    transport.deliver("{not json")
    transport.deliver("[1, 2]")
    transport.deliver({"jsonrpc": "2.0", "method": "streamNotify", "params": {"event": {}}})
    transport.deliver({"jsonrpc": "2.0", "id": "s1", "method": "registerService", "params": {}})
    transport.deliver(notification("Logging", {"message": "still here"}))
    transport.deliver(success(transport.sent[0], {"type": "VM"}))

    assert await task == {"type": "VM"}
    assert received == [{"message": "still here"}]
    assert "dropping malformed message" in caplog.text
    assert client.is_connected


@pytest.mark.asyncio
async def test_failing_observer_isolated_in_client(client, transports):
    received = []

    def broken(event):
        raise RuntimeError("render failed")

    client.add_channel_observer("GC", broken)
    client.add_channel_observer("GC", received.append)
    await client.connect(URL)
    transports.last.deliver(notification("GC", {"kind": "GC"}))
    assert received == [{"kind": "GC"}]


@pytest.mark.asyncio
async def test_second_connect_supersedes_first(client, transports):
    await client.connect(URL)
    first = transports.last
    pending = asyncio.create_task(client.get_vm())
    await wait_for_sent(first, 1)

    snapshots = []

    def record(status):
        snapshots.append((status, first.closed, first.detached))

    client.add_connection_status_listener(record)
    await client.connect("ws://127.0.0.1:9000/ws")
    second = transports.last
    assert second is not first
    assert snapshots[1] == (ConnectionStatus.CONNECTING, True, True)
    assert client.status == ConnectionStatus.CONNECTED
    with pytest.raises(ConnectionLost) as excinfo:
        await pending
    assert excinfo.value.reason == "superseded by a new connection"

    # Traffic on the old channel no longer reaches the client.
    received = []
    client.add_channel_observer("Logging", received.append)
    first.deliver(notification("Logging", {"message": "stale"}))
    second.deliver(notification("Logging", {"message": "fresh"}))
    assert received == [{"message": "fresh"}]


@pytest.mark.asyncio
async def test_connect_superseded_while_opening(client, transports):
    gate = asyncio.Event()
    transports.open_gate = gate
    first_task = asyncio.create_task(client.connect(URL))
    await settle()
    assert client.status == ConnectionStatus.CONNECTING
    transports.open_gate = None

    await client.connect("ws://127.0.0.1:9000/ws")
    assert client.status == ConnectionStatus.CONNECTED
    gate.set()
    with pytest.raises(ConnectFailed):
        await first_task
    assert client.status == ConnectionStatus.CONNECTED
    assert transports.last.address == "ws://127.0.0.1:9000/ws"


@pytest.mark.asyncio
async def test_typed_calls_build_params(client, transports):
    transports.responder = echo_params
    await client.connect(URL)

    assert await client.get_vm() == {"method": "getVM", "params": None}
    assert (await client.get_version())["method"] == "getVersion"
    assert (await client.get_memory_usage("isolates/1"))["params"] == {"isolateId": "isolates/1"}
    profile = await client.get_allocation_profile("isolates/1", gc=True)
    assert profile == {"method": "getAllocationProfile", "params": {"isolateId": "isolates/1", "gc": True}}
    evaluated = await client.evaluate("isolates/1", "objects/7", "x.length")
    assert evaluated["params"] == {"isolateId": "isolates/1", "targetId": "objects/7", "expression": "x.length"}
    assert (await client.pause("isolates/1"))["method"] == "pause"
    assert (await client.resume("isolates/1"))["method"] == "resume"
    extension = await client.call_service_extension("ext.app.toggle", "isolates/1", enabled="true")
    assert extension == {"method": "ext.app.toggle", "params": {"enabled": "true", "isolateId": "isolates/1"}}

    with pytest.raises(ValueError):
        await client.call_service_extension("app.toggle", "isolates/1")


@pytest.mark.asyncio
async def test_dispose_clears_everything_and_refuses_connect(transports):
    client = VMServiceClient(transport_factory=transports)
    seen = []
    client.add_connection_status_listener(seen.append)
    client.add_channel_observer("Logging", print)
    await client.connect(URL)
    await client.subscribe_to_channel("Logging")
    await client.dispose()
    assert client.status == ConnectionStatus.DISCONNECTED
    assert client.dispatcher.streams() == []
    assert client.dispatcher.subscribed_streams() == []
    assert seen[-1] == ConnectionStatus.DISCONNECTED
    with pytest.raises(ConnectFailed):
        await client.connect(URL)


@pytest.mark.asyncio
async def test_async_context_manager_closes_channel(transports):
    async with VMServiceClient(transport_factory=transports) as client:
        await client.connect(URL)
        assert client.is_connected
    assert transports.last.closed
    assert client.status == ConnectionStatus.DISCONNECTED


@pytest.mark.asyncio
async def test_instances_are_independent():
    left_transports, right_transports = FakeTransportFactory(), FakeTransportFactory()
    left = VMServiceClient(transport_factory=left_transports)
    right = VMServiceClient(transport_factory=right_transports)
    left_events, right_events = [], []
    left.add_channel_observer("Logging", left_events.append)
    right.add_channel_observer("Logging", right_events.append)
    await left.connect(URL)
    await right.connect(URL)
    await left.subscribe_to_channel("Logging")
    await right.subscribe_to_channel("Logging")
    assert left_transports.last.sent[0]["id"] == "0"
    assert right_transports.last.sent[0]["id"] == "0"

    left_transports.last.deliver(notification("Logging", "left only"))
    assert left_events == ["left only"]
    assert right_events == []
    await left.disconnect()
    assert right.is_connected
    await right.dispose()


@pytest.mark.asyncio
async def test_response_without_result_settles_with_none(client, transports):
    await client.connect(URL)
    transport = transports.last
    task = asyncio.create_task(client.call("setName", {"isolateId": "isolates/1", "name": "worker"}))
    await wait_for_sent(transport, 1)
    transport.deliver({"jsonrpc": "2.0", "id": "0"})
    assert await asyncio.wait_for(task, timeout=1.0) is None
    assert client.pending_calls == 0


@pytest.mark.asyncio
async def test_superseding_an_opening_connect_rebroadcasts_connecting(client, transports):
    gate = asyncio.Event()
    transports.open_gate = gate
    seen = []
    client.add_connection_status_listener(seen.append)
    first_task = asyncio.create_task(client.connect(URL))
    await settle()
    transports.open_gate = None

    await client.connect("ws://127.0.0.1:9000/ws")
    gate.set()
    with pytest.raises(ConnectFailed):
        await first_task
    assert seen == [
        ConnectionStatus.DISCONNECTED,
        ConnectionStatus.CONNECTING,
        ConnectionStatus.CONNECTING,
        ConnectionStatus.CONNECTED,
    ]
