from savings_tracker.domain.models import RefreshSignal
from savings_tracker.events import ASSET_UPDATED, GOAL_UPDATED, EventBus


async def test_publish_reaches_sync_and_async_handlers():
    bus = EventBus()
    received = []

    def on_goal(signal):
        received.append(("sync", signal.goal_id))

    async def on_goal_async(signal):
        received.append(("async", signal.goal_id))

    bus.subscribe(GOAL_UPDATED, on_goal)
    bus.subscribe(GOAL_UPDATED, on_goal_async)

    await bus.publish(GOAL_UPDATED, RefreshSignal(goal_id=7))

    assert received == [("sync", 7), ("async", 7)]
    assert bus.count(GOAL_UPDATED) == 2
    assert bus.count(ASSET_UPDATED) == 0


async def test_failing_handler_does_not_reach_publisher():
    bus = EventBus()
    received = []

    def broken(signal):
        raise RuntimeError("subscriber bug")

    bus.subscribe(ASSET_UPDATED, broken)
    bus.subscribe(ASSET_UPDATED, lambda signal: received.append(signal.asset_id))

    await bus.publish(ASSET_UPDATED, RefreshSignal(asset_id=3))

    assert received == [3]


async def test_unsubscribe():
    bus = EventBus()
    received = []
    handler = received.append
    bus.subscribe(GOAL_UPDATED, handler)
    bus.unsubscribe(GOAL_UPDATED, handler)

    await bus.publish(GOAL_UPDATED, RefreshSignal(goal_id=1))

    assert received == []
