import asyncio
import json

import pytest
from pydantic import ValidationError

from levelfetch.core.events import EventBus
from levelfetch.core.registry import TaskRegistry
from levelfetch.exceptions import TaskNotFoundError
from levelfetch.models.task import (
    MAX_LOG_LINES,
    TaskEvent,
    TaskRecord,
    TaskStatus,
    append_log,
    finalize,
    mark_running,
    record_fail,
    record_ok,
    record_skip,
)
from levelfetch.storage.history import HISTORY_FILENAME, save_task_record


@pytest.fixture
async def registry():
    registry = TaskRegistry()
    await registry.register(TaskRecord(task_id="t1"))
    return registry


def test_counters_advance_together():
    record = TaskRecord(task_id="t1")
    for reduce in (record_ok(), record_skip(), record_fail("9", "link_fail: gone")):
        record = reduce(record)

    assert (record.ok_count, record.skip_count, record.fail_count) == (1, 1, 1)
    assert record.processed_ids == 3
    assert record.new_files_count == 1
    assert record.fail_items[0].id == "9"
    assert record.fail_items[0].reason == "link_fail: gone"


def test_append_log_keeps_most_recent_lines():
    record = TaskRecord(task_id="t1")
    for i in range(MAX_LOG_LINES + 5):
        record = append_log(f"line {i}")(record)

    assert len(record.logs) == MAX_LOG_LINES
    assert record.logs[0] == "line 5"
    assert record.logs[-1] == f"line {MAX_LOG_LINES + 4}"


def test_finalize_logs_the_message():
    record = TaskRecord(task_id="t1")
    record = mark_running("2026-01-01 00:00:00", "Task started")(record)
    record = finalize(TaskStatus.COMPLETED, "Task completed", "2026-01-01 00:01:00")(
        record
    )

    assert record.status is TaskStatus.COMPLETED
    assert record.ended_at == "2026-01-01 00:01:00"
    assert record.logs[-1] == "Task completed"


def test_records_are_immutable():
    record = TaskRecord(task_id="t1")
    with pytest.raises(ValidationError):
        record.ok_count = 5


def test_record_serializes_with_camel_case_keys():
    data = record_fail("7", "download_fail: 503")(TaskRecord(task_id="t1")).model_dump(
        by_alias=True, mode="json"
    )

    assert data["taskId"] == "t1"
    assert data["failCount"] == 1
    assert data["failItems"] == [{"id": "7", "reason": "download_fail: 503"}]


async def test_apply_is_atomic_under_concurrency(registry):
    await asyncio.gather(*(registry.apply("t1", record_ok()) for _ in range(200)))

    record = registry.snapshot("t1")
    assert record.ok_count == 200
    assert record.processed_ids == 200


async def test_terminal_records_absorb_updates(registry):
    await registry.apply("t1", finalize(TaskStatus.CANCELLED, "Task cancelled", "x"))

    after = await registry.apply(
        "t1", record_ok(), finalize(TaskStatus.COMPLETED, "Task completed", "y")
    )

    assert after.status is TaskStatus.CANCELLED
    assert after.ok_count == 0
    assert after.ended_at == "x"


async def test_snapshot_is_not_affected_by_later_updates(registry):
    before = registry.snapshot("t1")
    await registry.apply("t1", record_skip())

    assert before.skip_count == 0
    assert registry.snapshot("t1").skip_count == 1


async def test_unknown_and_duplicate_tasks(registry):
    with pytest.raises(TaskNotFoundError):
        await registry.apply("missing", record_ok())
    with pytest.raises(ValueError):
        await registry.register(TaskRecord(task_id="t1"))
    assert registry.snapshot("missing") is None
    assert registry.task_ids() == ["t1"]


def _event(task_id, event="ok", status=TaskStatus.RUNNING):
    return TaskEvent(
        task_id=task_id, level="info", event=event, message=event, status=status
    )


async def test_subscriptions_filter_by_task():
    bus = EventBus()
    everything = bus.subscribe()
    only_a = bus.subscribe("a")

    bus.publish(_event("a"))
    bus.publish(_event("b"))

    assert everything.queue.qsize() == 2
    assert only_a.queue.qsize() == 1
    assert (await only_a.get()).task_id == "a"


async def test_publish_never_blocks_without_consumers():
    bus = EventBus()
    subscription = bus.subscribe()

    for _ in range(10_000):
        bus.publish(_event("a"))

    assert subscription.queue.qsize() == 10_000


async def test_iteration_ends_after_terminal_event():
    bus = EventBus()
    subscription = bus.subscribe("a")
    bus.publish(_event("a", "start"))
    bus.publish(_event("a", "ok"))
    bus.publish(_event("a", "done", TaskStatus.COMPLETED))
    bus.publish(_event("a", "late"))

    seen = [event.event async for event in subscription]

    assert seen == ["start", "ok", "done"]


async def test_closed_subscription_receives_nothing():
    bus = EventBus()
    with bus.subscribe() as subscription:
        pass

    bus.publish(_event("a"))
    assert subscription.queue.empty()


def test_history_appends_records_without_logs(tmp_path):
    record = append_log("OK 1")(record_ok()(TaskRecord(task_id="t1")))

    save_task_record(tmp_path, record)
    path = save_task_record(tmp_path, record_skip()(record))

    assert path == tmp_path / HISTORY_FILENAME
    lines = [json.loads(line) for line in path.read_text("utf-8").splitlines()]
    assert [line["okCount"] for line in lines] == [1, 1]
    assert [line["skipCount"] for line in lines] == [0, 1]
    assert "logs" not in lines[0]
