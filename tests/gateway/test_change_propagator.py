"""ChangePropagator 单元测试"""

from datetime import UTC, datetime

from campusrun.core.models import ActorRole, TaskStatus, TaskStatusEvent
from campusrun.gateway.services.propagator import (
    SUBSCRIPTION_CLOSED,
    ChangePropagator,
    task_channel,
    user_channel,
)


def _event(sequence: int = 1, task_id: str = "01JPROPAGATE00000000000000") -> TaskStatusEvent:
    return TaskStatusEvent(
        event_id=f"01JPROPEVT{sequence:016d}",
        task_id=task_id,
        sequence=sequence,
        from_status=TaskStatus.OPEN,
        to_status=TaskStatus.ACCEPTED,
        actor_id="bob",
        actor_role=ActorRole.HELPER,
        created_at=datetime.now(UTC),
    )


class TestFanOut:
    async def test_task_and_participant_channels(self):
        propagator = ChangePropagator()
        event = _event()
        task_q = await propagator.subscribe_task(event.task_id)
        alice_q = await propagator.subscribe_user("alice")
        bob_q = await propagator.subscribe_user("bob")
        carol_q = await propagator.subscribe_user("carol")

        delivered = await propagator.publish(event, ["alice", "bob"])

        assert delivered == 3
        for q in (task_q, alice_q, bob_q):
            payload = q.get_nowait()
            assert payload.task_id == event.task_id
            assert payload.sequence == 1
        assert carol_q.empty()

    async def test_duplicate_participants_deliver_once(self):
        propagator = ChangePropagator()
        alice_q = await propagator.subscribe_user("alice")
        await propagator.publish(_event(), ["alice", "alice", None])
        assert alice_q.qsize() == 1

    async def test_publish_without_subscribers(self):
        propagator = ChangePropagator()
        assert await propagator.publish(_event(), ["alice"]) == 0

    async def test_unsubscribe(self):
        propagator = ChangePropagator()
        event = _event()
        q = await propagator.subscribe_task(event.task_id)
        await propagator.unsubscribe(task_channel(event.task_id), q)

        assert propagator.subscriber_count(task_channel(event.task_id)) == 0
        await propagator.publish(event)
        assert q.empty()

        # 重复取消订阅无副作用
        await propagator.unsubscribe(task_channel(event.task_id), q)


class TestSlowSubscribers:
    async def test_full_queue_is_dropped(self):
        """队列满的订阅者被移除并收到关闭标记，其他订阅者不受影响"""
        propagator = ChangePropagator(queue_maxsize=1)
        slow = await propagator.subscribe_user("alice")
        fast = await propagator.subscribe_user("alice")

        await propagator.publish(_event(1), ["alice"])
        fast.get_nowait()
        await propagator.publish(_event(2), ["alice"])

        assert propagator.subscriber_count(user_channel("alice")) == 1
        assert fast.get_nowait().sequence == 2
        # 积压被清空，只剩关闭标记
        assert slow.get_nowait() is SUBSCRIPTION_CLOSED
        assert slow.empty()

    async def test_dropped_queue_gets_no_more_events(self):
        propagator = ChangePropagator(queue_maxsize=1)
        slow = await propagator.subscribe_task("01JPROPAGATE00000000000000")

        await propagator.publish(_event(1))
        await propagator.publish(_event(2))
        await propagator.publish(_event(3))

        assert slow.get_nowait() is SUBSCRIPTION_CLOSED
        assert slow.empty()
