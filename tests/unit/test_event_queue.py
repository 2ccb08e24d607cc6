"""Tests for solskin.engine.queue: UID-laned ordering and lifecycle."""

from __future__ import annotations

import asyncio

import pytest
from prometheus_client import CollectorRegistry

from solskin.engine.queue import EventQueue, QueueNotStartedError
from solskin.models.resources import ChangeEvent, EventAction, ResourceKind, WatchedResource
from solskin.observability.metrics import SolskinMetrics


def _make_event(uid: str, name: str = "p", action: EventAction = EventAction.CHANGE) -> ChangeEvent:
    resource = WatchedResource(kind=ResourceKind.POD, uid=uid, name=name, namespace="ns")
    return ChangeEvent(kind=ResourceKind.POD, action=action, resource=resource)


class TestEventQueueLifecycle:
    async def test_submit_before_start_raises(self) -> None:
        async def handler(event: ChangeEvent) -> None:
            pass

        queue = EventQueue(handler)
        with pytest.raises(QueueNotStartedError):
            await queue.submit(_make_event("a"))

    async def test_stop_before_start_is_safe(self) -> None:
        async def handler(event: ChangeEvent) -> None:
            pass

        queue = EventQueue(handler)
        await queue.stop()
        assert queue.running is False

    def test_lanes_must_be_positive(self) -> None:
        async def handler(event: ChangeEvent) -> None:
            pass

        with pytest.raises(ValueError, match="lanes must be >= 1"):
            EventQueue(handler, lanes=0)

    async def test_events_are_handled_and_depth_returns_to_zero(self) -> None:
        handled: list[str] = []
        metrics = SolskinMetrics(CollectorRegistry())

        async def handler(event: ChangeEvent) -> None:
            handled.append(event.resource.uid)

        queue = EventQueue(handler, lanes=2, metrics=metrics)
        await queue.start()
        try:
            for uid in ("a", "b", "c"):
                await queue.submit(_make_event(uid))
            await asyncio.wait_for(queue.join(), timeout=5.0)
        finally:
            await queue.stop()

        assert sorted(handled) == ["a", "b", "c"]
        assert queue.depth == 0
        assert metrics.registry.get_sample_value("solskin_event_queue_depth") == 0.0


class TestEventQueueOrdering:
    def test_same_uid_maps_to_same_lane(self) -> None:
        async def handler(event: ChangeEvent) -> None:
            pass

        queue = EventQueue(handler, lanes=8)
        first = queue.lane_for(_make_event("uid-1", name="x"))
        second = queue.lane_for(_make_event("uid-1", name="y", action=EventAction.DELETE))
        assert first == second
        assert 0 <= first < 8

    async def test_events_for_one_uid_are_serialized_in_order(self) -> None:
        active = 0
        max_active = 0
        seen: list[int] = []

        async def handler(event: ChangeEvent) -> None:
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            await asyncio.sleep(0)
            seen.append(int(event.resource.name))
            active -= 1

        queue = EventQueue(handler, lanes=4)
        await queue.start()
        try:
            for i in range(20):
                await queue.submit(_make_event("same-uid", name=str(i)))
            await asyncio.wait_for(queue.join(), timeout=5.0)
        finally:
            await queue.stop()

        assert seen == list(range(20))
        assert max_active == 1

    async def test_handler_error_does_not_stop_the_lane(self) -> None:
        handled: list[str] = []

        async def handler(event: ChangeEvent) -> None:
            if event.resource.name == "bad":
                raise RuntimeError("boom")
            handled.append(event.resource.name)

        queue = EventQueue(handler, lanes=1)
        await queue.start()
        try:
            await queue.submit(_make_event("u", name="bad"))
            await queue.submit(_make_event("u", name="good"))
            await asyncio.wait_for(queue.join(), timeout=5.0)
        finally:
            await queue.stop()

        assert handled == ["good"]
