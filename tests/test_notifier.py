import asyncio

import pytest

from hospital_booking.notifier import APPOINTMENT_CREATED, Notifier, SubscriptionRegistry


class FakeSession:
    def __init__(self, delay: float = 0.0):
        self.received = []
        self.delay = delay

    async def send_json(self, data):
        if self.delay:
            await asyncio.sleep(self.delay)
        self.received.append(data)


class BrokenSession:
    async def send_json(self, data):
        raise ConnectionError("peer went away")


class StuckSession:
    async def send_json(self, data):
        await asyncio.sleep(60)


@pytest.mark.asyncio
async def test_publish_reaches_only_the_hospital_sessions():
    notifier = Notifier(SubscriptionRegistry())
    a1, a2, b = FakeSession(), FakeSession(), FakeSession()
    await notifier.subscribe(a1, "A")
    await notifier.subscribe(a2, "A")
    await notifier.subscribe(b, "B")

    delivered = await notifier.publish("A", APPOINTMENT_CREATED, {"id": "x"})

    assert delivered == 2
    expected = {"event": "watch", "data": {"type": APPOINTMENT_CREATED, "appointment": {"id": "x"}}}
    assert a1.received == [expected]
    assert a2.received == [expected]
    assert b.received == []


@pytest.mark.asyncio
async def test_no_replay_for_late_subscribers():
    notifier = Notifier(SubscriptionRegistry())
    await notifier.publish("A", APPOINTMENT_CREATED, {"id": "early"})

    late = FakeSession()
    await notifier.subscribe(late, "A")
    assert late.received == []


@pytest.mark.asyncio
async def test_resubscribe_moves_the_session():
    registry = SubscriptionRegistry()
    notifier = Notifier(registry)
    s = FakeSession()
    await notifier.subscribe(s, "A")
    await notifier.subscribe(s, "B")

    assert [x for x, _ in await registry.sessions_for("A")] == []
    assert [x for x, _ in await registry.sessions_for("B")] == [s]
    assert await notifier.publish("A", APPOINTMENT_CREATED, {}) == 0
    assert await notifier.publish("B", APPOINTMENT_CREATED, {}) == 1


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery():
    notifier = Notifier(SubscriptionRegistry())
    s = FakeSession()
    await notifier.subscribe(s, "A")
    await notifier.unsubscribe(s)
    await notifier.unsubscribe(s)

    assert await notifier.publish("A", APPOINTMENT_CREATED, {}) == 0
    assert s.received == []


@pytest.mark.asyncio
async def test_failing_session_does_not_block_others():
    registry = SubscriptionRegistry()
    notifier = Notifier(registry, send_timeout=0.2)
    good, broken, stuck = FakeSession(), BrokenSession(), StuckSession()
    for s in (good, broken, stuck):
        await notifier.subscribe(s, "A")

    delivered = await notifier.publish("A", APPOINTMENT_CREATED, {"id": "x"})

    assert delivered == 1
    assert len(good.received) == 1
    # dead sessions are dropped
    assert [s for s, _ in await registry.sessions_for("A")] == [good]


@pytest.mark.asyncio
async def test_events_arrive_in_publish_order():
    notifier = Notifier(SubscriptionRegistry())
    slow = FakeSession(delay=0.01)
    await notifier.subscribe(slow, "A")

    await asyncio.gather(*(notifier.publish("A", APPOINTMENT_CREATED, {"n": i}) for i in range(5)))

    assert [m["data"]["appointment"]["n"] for m in slow.received] == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
async def test_clear_drops_everything():
    registry = SubscriptionRegistry()
    s = FakeSession()
    await registry.subscribe(s, "A")
    await registry.clear()
    assert await registry.sessions_for("A") == []
    await registry.subscribe(s, "A")
    assert [x for x, _ in await registry.sessions_for("A")] == [s]


class MovingSession(FakeSession):
    """Fails its first send after re-joining another hospital."""

    def __init__(self, notifier: Notifier, new_hospital_id: str):
        super().__init__()
        self.notifier = notifier
        self.new_hospital_id = new_hospital_id
        self.moved = False

    async def send_json(self, data):
        if not self.moved:
            self.moved = True
            await self.notifier.subscribe(self, self.new_hospital_id)
            raise ConnectionError("lost while switching")
        await super().send_json(data)


@pytest.mark.asyncio
async def test_failed_send_keeps_a_newer_subscription():
    registry = SubscriptionRegistry()
    notifier = Notifier(registry)
    s = MovingSession(notifier, "B")
    await notifier.subscribe(s, "A")

    assert await notifier.publish("A", APPOINTMENT_CREATED, {"n": 1}) == 0

    assert [x for x, _ in await registry.sessions_for("B")] == [s]
    assert await notifier.publish("B", APPOINTMENT_CREATED, {"n": 2}) == 1
    assert [m["data"]["appointment"]["n"] for m in s.received] == [2]


@pytest.mark.asyncio
async def test_unsubscribe_for_another_hospital_is_ignored():
    registry = SubscriptionRegistry()
    s = FakeSession()
    await registry.subscribe(s, "B")
    await registry.unsubscribe(s, "A")
    assert [x for x, _ in await registry.sessions_for("B")] == [s]
