"""Domain Model 单元测试

测试内容：
1. Task 的 accepted_by 不变式
2. TaskDraft 字段校验
3. TaskStatusEvent -> StatusChangePayload 转换
"""

from datetime import UTC, datetime

import pytest
from campusrun.core.models import (
    ActorRole,
    StatusChangePayload,
    Task,
    TaskDraft,
    TaskStatus,
    TaskStatusEvent,
)
from pydantic import ValidationError

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _task(**overrides) -> Task:
    values = {
        "task_id": "01JTASK000000000000000000A",
        "created_at": NOW,
        "updated_at": NOW,
        "created_by": "alice",
        "title": "取快递",
    }
    values.update(overrides)
    return Task(**values)


class TestTaskInvariants:
    def test_open_task_defaults(self):
        task = _task()
        assert task.status == TaskStatus.OPEN
        assert task.accepted_by is None
        assert task.version == 0

    def test_open_task_cannot_have_helper(self):
        with pytest.raises(ValidationError):
            _task(accepted_by="bob")

    @pytest.mark.parametrize(
        "status",
        [
            TaskStatus.ACCEPTED,
            TaskStatus.STARTED,
            TaskStatus.ON_THE_WAY,
            TaskStatus.DELIVERED,
            TaskStatus.COMPLETED,
        ],
    )
    def test_post_acceptance_status_requires_helper(self, status):
        with pytest.raises(ValidationError):
            _task(status=status, version=1)

    def test_cancelled_from_open_has_no_helper(self):
        """open -> cancelled 的任务没有 helper"""
        task = _task(status=TaskStatus.CANCELLED, version=1)
        assert task.accepted_by is None

    def test_participants(self):
        task = _task(status=TaskStatus.ACCEPTED, accepted_by="bob", version=1)
        assert task.participants() == ["alice", "bob"]
        assert task.is_participant("bob") is True
        assert task.is_participant("carol") is False
        assert _task().participants() == ["alice"]


class TestTaskDraft:
    def test_reward_must_be_positive(self):
        with pytest.raises(ValidationError):
            TaskDraft(
                title="x",
                category="food",
                dropoff_address="宿舍 5 号楼",
                reward_cents=0,
                estimated_minutes=10,
            )

    def test_unknown_category_rejected(self):
        with pytest.raises(ValidationError):
            TaskDraft(
                title="x",
                category="laundry",
                dropoff_address="宿舍 5 号楼",
                reward_cents=100,
                estimated_minutes=10,
            )

    def test_empty_title_rejected(self, make_draft):
        with pytest.raises(ValidationError):
            make_draft(title="")


class TestEventPayload:
    def test_to_payload_carries_ordering_fields(self):
        event = TaskStatusEvent(
            event_id="01JEVENT00000000000000000A",
            task_id="01JTASK000000000000000000A",
            sequence=5,
            from_status=TaskStatus.DELIVERED,
            to_status=TaskStatus.COMPLETED,
            actor_id="alice",
            actor_role=ActorRole.REQUESTER,
            created_at=NOW,
        )
        payload = event.to_payload()
        assert isinstance(payload, StatusChangePayload)
        assert payload.sequence == 5
        assert payload.actor_role == ActorRole.REQUESTER
        assert payload.is_terminal is True

    def test_payload_json_uses_lowercase_status(self):
        payload = StatusChangePayload(
            task_id="t1",
            from_status=TaskStatus.ACCEPTED,
            to_status=TaskStatus.STARTED,
            actor_id="bob",
            actor_role=ActorRole.HELPER,
            sequence=2,
            created_at=NOW,
        )
        data = payload.model_dump(mode="json")
        assert data["from_status"] == "accepted"
        assert data["to_status"] == "started"
        assert payload.is_terminal is False

    def test_sequence_starts_at_one(self):
        with pytest.raises(ValidationError):
            StatusChangePayload(
                task_id="t1",
                from_status=TaskStatus.OPEN,
                to_status=TaskStatus.ACCEPTED,
                actor_id="bob",
                actor_role=ActorRole.HELPER,
                sequence=0,
                created_at=NOW,
            )
