"""
Unit tests for the one-shot slot and the cross-context handoff protocol.
"""

from __future__ import annotations

import asyncio

import pytest

from funnel.errors import HandoffError
from funnel.interaction.handoff import OneShotSlot, open_in_new_context


@pytest.mark.asyncio
async def test_slot_written_once_read_once():
    """A slot keeps the first value and rejects later writes."""
    slot: OneShotSlot[str] = OneShotSlot("page")

    assert slot.offer("first") is True
    assert slot.offer("second") is False
    assert await slot.take(100) == "first"
    with pytest.raises(HandoffError):
        await slot.take(100)


@pytest.mark.asyncio
async def test_slot_timeout_returns_none_and_closes():
    """A timed-out take closes the slot and drops late events."""
    torn_down = []
    slot: OneShotSlot[str] = OneShotSlot("page")
    slot.on_close(lambda: torn_down.append(True))

    assert await slot.take(10) is None
    assert slot.closed
    assert torn_down == [True]
    # Late event after the timeout won: dropped.
    assert slot.offer("late") is False


@pytest.mark.asyncio
async def test_slot_waits_for_writer():
    """take blocks until a writer offers a value."""
    slot: OneShotSlot[str] = OneShotSlot("page")
    asyncio.get_running_loop().call_later(0.01, slot.offer, "value")

    assert await slot.take(1_000) == "value"


def test_slot_close_is_idempotent():
    """Closing twice runs teardown once."""
    calls = []
    slot: OneShotSlot[str] = OneShotSlot()
    slot.on_close(lambda: calls.append(1))

    slot.close()
    slot.close()

    assert calls == [1]


@pytest.mark.asyncio
async def test_handoff_activates_new_context(make_driver, make_state):
    """The new context becomes active and the origin stays open."""
    origin = make_driver(url="https://shop.example/search")
    product = make_driver(url="https://shop.example/product/1")
    state = make_state(origin)
    seen_listeners = []

    async def trigger():
        # Subscription must exist before the trigger fires.
        seen_listeners.append(len(origin.listeners))
        origin.spawn(product)
        return True

    outcome = await open_in_new_context(state, trigger, timeout_ms=1_000)

    assert outcome.acquired
    assert seen_listeners == [1]
    assert state.active_context is product
    assert state.actions.driver is product
    assert state.waiter.driver is product
    assert origin.closed is False
    assert origin.listeners == []
    assert state.pending_subscription is None


@pytest.mark.asyncio
async def test_handoff_event_arriving_later(make_driver, make_state):
    """An event that arrives after the trigger is still taken."""
    origin = make_driver()
    product = make_driver(url="https://shop.example/p")
    state = make_state(origin)

    async def trigger():
        asyncio.get_running_loop().call_later(0.02, origin.spawn, product)
        return True

    outcome = await open_in_new_context(state, trigger, timeout_ms=1_000)

    assert outcome.acquired
    assert state.active_context is product


@pytest.mark.asyncio
async def test_handoff_timeout_keeps_active_context(make_driver, make_state):
    """No new context within the timeout leaves the origin active."""
    origin = make_driver()
    state = make_state(origin)

    async def trigger():
        return True

    outcome = await open_in_new_context(state, trigger, timeout_ms=20)

    assert not outcome
    assert outcome.triggered is True
    assert "no new context" in outcome.error
    assert state.active_context is origin
    assert origin.listeners == []
    assert state.pending_subscription is None


@pytest.mark.asyncio
async def test_handoff_trigger_failure(make_driver, make_state):
    """A failed trigger releases the subscription."""
    origin = make_driver()
    state = make_state(origin)

    async def trigger():
        return False

    outcome = await open_in_new_context(state, trigger, timeout_ms=1_000)

    assert outcome.acquired is False
    assert outcome.triggered is False
    assert origin.listeners == []
    assert state.active_context is origin


@pytest.mark.asyncio
async def test_handoff_second_pending_subscription_rejected(make_driver, make_state):
    """Only one subscription may be pending at a time."""
    origin = make_driver()
    state = make_state(origin)
    state.pending_subscription = origin.subscribe_once()

    async def trigger():
        return True

    with pytest.raises(HandoffError):
        await open_in_new_context(state, trigger, timeout_ms=100)
    assert len(origin.listeners) == 1


@pytest.mark.asyncio
async def test_handoff_only_first_event_used(make_driver, make_state):
    """Only the first new context is activated."""
    origin = make_driver()
    first = make_driver(url="https://shop.example/first")
    second = make_driver(url="https://shop.example/second")
    state = make_state(origin)

    async def trigger():
        origin.spawn(first)
        origin.spawn(second)
        return True

    await open_in_new_context(state, trigger, timeout_ms=1_000)

    assert state.active_context is first
