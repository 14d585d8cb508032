from __future__ import annotations

import asyncio

import pytest

from chat_sync.application.exceptions import AuthLossError
from chat_sync.domain.value_objects.enums import ConnectionState
from chat_sync.services.connection_manager import ConnectionManager
from chat_sync.services.subscription_registry import SubscriptionRegistry
from tests.conftest import (
    ALICE,
    RECONNECT_DELAY,
    FakeCredentials,
    FakeTransport,
    address_for,
    wait_for,
)


def _manager(transport: FakeTransport, credentials: FakeCredentials) -> tuple[ConnectionManager, list]:
    manager = ConnectionManager(transport, credentials, reconnect_delay=RECONNECT_DELAY)
    states: list[ConnectionState] = []

    async def record(state: ConnectionState) -> None:
        states.append(state)

    manager.add_listener(record)
    return manager, states


@pytest.mark.asyncio
async def test_connect_reaches_connected(transport, credentials):
    manager, states = _manager(transport, credentials)

    await manager.connect(ALICE.id)

    assert manager.state is ConnectionState.CONNECTED
    assert states == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]
    assert transport.opened_with == ["token-1"]


@pytest.mark.asyncio
async def test_second_connect_keeps_single_connection(transport, credentials):
    manager, _ = _manager(transport, credentials)

    await manager.connect(ALICE.id)
    await manager.connect(ALICE.id)

    assert transport.opened_with == ["token-1"]


@pytest.mark.asyncio
async def test_failed_attempt_retries_after_fixed_delay(transport, credentials):
    transport.fail_opens = 2
    manager, states = _manager(transport, credentials)

    await manager.connect(ALICE.id)
    assert manager.state is ConnectionState.DISCONNECTED
    assert manager.reconnect_pending

    await wait_for(lambda: manager.state is ConnectionState.CONNECTED)

    assert transport.opened_with == ["token-1", "token-2", "token-3"]
    assert states[-1] is ConnectionState.CONNECTED


@pytest.mark.asyncio
async def test_each_attempt_uses_a_fresh_credential(transport, credentials):
    manager, _ = _manager(transport, credentials)
    await manager.connect(ALICE.id)

    transport.drop()
    await wait_for(lambda: len(transport.opened_with) == 2 and manager.state is ConnectionState.CONNECTED)

    assert transport.opened_with == ["token-1", "token-2"]
    assert len(set(credentials.issued)) == len(credentials.issued)


@pytest.mark.asyncio
async def test_transport_loss_goes_disconnected_then_reconnects_once(transport, credentials):
    manager, states = _manager(transport, credentials)
    await manager.connect(ALICE.id)

    transport.drop()
    await wait_for(lambda: manager.state is ConnectionState.CONNECTED and len(transport.opened_with) == 2)
    await asyncio.sleep(RECONNECT_DELAY * 5)

    assert len(transport.opened_with) == 2
    assert states == [
        ConnectionState.CONNECTING,
        ConnectionState.CONNECTED,
        ConnectionState.DISCONNECTED,
        ConnectionState.CONNECTING,
        ConnectionState.CONNECTED,
    ]


@pytest.mark.asyncio
async def test_disconnect_cancels_pending_reconnect(transport, credentials):
    transport.fail_opens = 1
    manager, _ = _manager(transport, credentials)
    await manager.connect(ALICE.id)
    assert manager.reconnect_pending

    await manager.disconnect()

    assert not manager.reconnect_pending
    await asyncio.sleep(RECONNECT_DELAY * 5)
    assert transport.opened_with == ["token-1"]
    assert manager.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_disconnect_is_unconditional(transport, credentials):
    manager, _ = _manager(transport, credentials)
    await manager.connect(ALICE.id)

    await manager.disconnect()
    await manager.disconnect()

    assert manager.state is ConnectionState.DISCONNECTED
    assert transport.is_open is False
    assert manager.signed_in is False


@pytest.mark.asyncio
async def test_credential_refusal_is_not_retried(transport, credentials):
    credentials.refuse = True
    manager, _ = _manager(transport, credentials)

    with pytest.raises(AuthLossError):
        await manager.connect(ALICE.id)

    assert manager.state is ConnectionState.DISCONNECTED
    assert not manager.reconnect_pending
    assert transport.opened_with == []


@pytest.mark.asyncio
async def test_broker_auth_rejection_is_not_retried(transport, credentials):
    transport.refuse = True
    manager, _ = _manager(transport, credentials)

    with pytest.raises(AuthLossError):
        await manager.connect(ALICE.id)

    await asyncio.sleep(RECONNECT_DELAY * 5)
    assert transport.opened_with == ["token-1"]
    assert manager.signed_in is False


@pytest.mark.asyncio
async def test_auth_loss_on_live_connection_tears_down_without_retry(transport, credentials):
    manager, _ = _manager(transport, credentials)
    await manager.connect(ALICE.id)

    transport.drop(AuthLossError("token revoked"))
    await wait_for(lambda: manager.state is ConnectionState.DISCONNECTED)
    await asyncio.sleep(RECONNECT_DELAY * 5)

    assert transport.opened_with == ["token-1"]
    assert not manager.reconnect_pending


@pytest.mark.asyncio
async def test_failing_listener_does_not_block_others(transport, credentials):
    manager, states = _manager(transport, credentials)

    async def broken(state: ConnectionState) -> None:
        raise RuntimeError("listener bug")

    manager._listeners.insert(0, broken)

    await manager.connect(ALICE.id)

    assert states[-1] is ConnectionState.CONNECTED


def _manager_with_registry(transport, credentials):
    """Manager plus a registry, behind a listener that stalls the first teardown."""
    manager = ConnectionManager(transport, credentials, reconnect_delay=RECONNECT_DELAY)
    registry = SubscriptionRegistry(transport, address_for, lambda raw: None)
    entered = asyncio.Event()
    gate = asyncio.Event()

    async def slow_teardown(state: ConnectionState) -> None:
        if state is ConnectionState.DISCONNECTED and not entered.is_set():
            entered.set()
            await gate.wait()

    manager.add_listener(slow_teardown)
    manager.add_listener(registry.on_state)
    return manager, registry, entered, gate


@pytest.mark.asyncio
async def test_sign_out_and_in_during_loss_handling_keeps_new_connection(transport, credentials):
    manager, registry, entered, gate = _manager_with_registry(transport, credentials)
    await registry.bind_identity(ALICE.id)
    await manager.connect(ALICE.id)

    transport.drop()
    await asyncio.wait_for(entered.wait(), timeout=1.0)
    await manager.disconnect()
    await manager.connect(ALICE.id)
    gate.set()
    await asyncio.sleep(RECONNECT_DELAY * 5)

    assert manager.state is ConnectionState.CONNECTED
    assert transport.is_open
    assert transport.opened_with == ["token-1", "token-2"]
    assert not manager.reconnect_pending
    assert len(transport.subscriptions) == 2
    assert transport.live == [registry.subscription]


@pytest.mark.asyncio
async def test_reconnect_during_loss_handling_is_not_undone(transport, credentials):
    manager, registry, entered, gate = _manager_with_registry(transport, credentials)
    await registry.bind_identity(ALICE.id)
    await manager.connect(ALICE.id)

    transport.drop()
    await asyncio.wait_for(entered.wait(), timeout=1.0)
    await manager.connect(ALICE.id)
    gate.set()
    await asyncio.sleep(RECONNECT_DELAY * 5)

    assert manager.state is ConnectionState.CONNECTED
    assert transport.is_open
    assert transport.opened_with == ["token-1", "token-2"]
    assert len(transport.live) == 1
    assert transport.live == [registry.subscription]
