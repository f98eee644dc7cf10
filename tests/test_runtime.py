# tests/test_runtime.py
"""
Tests for the runtime context registry and its scoped helpers.
"""

import asyncio
import logging
import re
import threading

import pytest

from sdgscript.errors import ContextCollisionError
from sdgscript.runtime import (
    CollisionPolicy,
    Context,
    ContextRegistry,
    EventType,
    generate_context_id,
    tracked_network_call,
)
from sdgscript.types import GRID_EMISSION_FACTOR, SdgGoal


CTX = Context(goal=SdgGoal.GOAL13, carbon_budget=1.0, description="batch job")


def _types(events):
    return [e.type for e in events]


class TestExplicitIdApi:

    def test_accumulate_then_end(self, registry):
        registry.start("c1", CTX)
        registry.accumulate("c1", {"energy": 0.2})
        registry.accumulate("c1", {"energy": 0.3})
        metrics = registry.end("c1")
        assert metrics.energy == pytest.approx(0.5)
        assert metrics.emissions == metrics.energy * GRID_EMISSION_FACTOR
        assert not registry.is_active("c1")

    def test_unknown_id_is_ignored(self, registry, caplog):
        with caplog.at_level(logging.WARNING, logger="sdgscript"):
            assert registry.accumulate("unknown", {"energy": 1}) is None
        assert "unknown" in caplog.text
        assert registry.current_metrics("unknown") is None
        assert not registry.is_active("unknown")
        assert registry.end("unknown") is None

    def test_start_sets_start_time(self, registry, clock):
        stored = registry.start("c1", CTX)
        assert stored.start_time == clock.now
        assert CTX.start_time is None
        assert registry.active_contexts() == {"c1": stored}

    def test_emissions_track_energy_exactly(self, registry):
        registry.start("c1", CTX)
        for usage in (0.1, 0.2, 0.7, 1e-9):
            total = registry.accumulate("c1", {"energy": usage})
            assert total.emissions == total.energy * GRID_EMISSION_FACTOR

    @pytest.mark.parametrize("goal", ["Goal13_ClimateAction", "Goal13", SdgGoal.GOAL13])
    def test_goal_names_resolve_to_members(self, registry, goal):
        stored = registry.start("c1", Context(goal=goal))
        assert stored.goal is SdgGoal.GOAL13

    def test_unknown_goal_string_is_kept(self, registry):
        stored = registry.start("c1", Context(goal="internal-ops"))
        assert stored.goal == "internal-ops"

    def test_fresh_context_has_zero_metrics(self, registry):
        registry.start("c1", CTX)
        m = registry.current_metrics("c1")
        assert (m.energy, m.network_calls, m.io_operations, m.memory) == (0, 0, 0, 0)

    def test_memory_keeps_peak(self, registry):
        registry.start("c1", CTX)
        registry.accumulate("c1", {"memory": 10.0})
        total = registry.accumulate("c1", {"memory": 4.0, "io_operations": 2})
        assert total.memory == 10.0
        assert total.io_operations == 2

    def test_malformed_usage_fields_are_dropped(self, registry, caplog):
        registry.start("c1", CTX)
        with caplog.at_level(logging.WARNING, logger="sdgscript"):
            total = registry.accumulate("c1", {
                "energy": -1.0,
                "network_calls": "two",
                "bogus": 3,
                "emissions": 999.0,
                "memory": float("nan"),
                "io_operations": 2,
            })
        assert total.energy == 0.0
        assert total.emissions == 0.0
        assert total.network_calls == 0
        assert total.memory == 0.0
        assert total.io_operations == 2
        assert "bogus" in caplog.text

    def test_max_duration_is_not_enforced(self, registry, timer):
        registry.start("c1", Context(goal=SdgGoal.GOAL9, max_duration=1.0))
        timer.advance(10.0)
        assert registry.is_active("c1")

    def test_generated_id_format(self):
        assert re.fullmatch(r"ctx_\d+_[0-9a-f]{9}", generate_context_id())
        assert generate_context_id() != generate_context_id()


class TestEvents:

    def test_lifecycle_order_and_payloads(self, registry, events, clock, timer):
        registry.start("c1", CTX)
        registry.accumulate("c1", {"energy": 2.0}, resource_type="gpu")
        timer.advance(0.25)
        clock.advance(0.25)
        registry.end("c1")

        assert _types(events) == [
            EventType.CONTEXT_STARTED,
            EventType.RESOURCE_TRACKED,
            EventType.CARBON_BUDGET_EXCEEDED,
            EventType.CONTEXT_ENDED,
        ]
        tracked = events[1].payload
        assert tracked["resource_type"] == "gpu"
        assert tracked["usage"] == {"energy": 2.0}
        assert tracked["total"].energy == 2.0

        exceeded = events[2].payload
        assert exceeded["budget"] == 1.0
        assert exceeded["metrics"].energy == 2.0

        ended = events[3]
        assert ended.payload["duration_ms"] == pytest.approx(250.0)
        assert ended.payload["metrics"].energy == 2.0
        assert ended.timestamp == clock.now
        assert all(e.context_id == "c1" for e in events)

    def test_within_budget_emits_no_exceeded_event(self, registry, events):
        registry.start("c1", CTX)
        registry.accumulate("c1", {"energy": 1.0})
        registry.end("c1")
        assert EventType.CARBON_BUDGET_EXCEEDED not in _types(events)

    def test_zero_budget_is_enforced(self, registry, events):
        registry.start("c1", Context(goal=SdgGoal.GOAL7, carbon_budget=0.0))
        registry.accumulate("c1", {"energy": 0.0001})
        registry.end("c1")
        assert EventType.CARBON_BUDGET_EXCEEDED in _types(events)

    def test_no_budget_never_exceeds(self, registry, events):
        registry.start("c1", Context(goal=SdgGoal.GOAL7))
        registry.accumulate("c1", {"energy": 1e6})
        registry.end("c1")
        assert EventType.CARBON_BUDGET_EXCEEDED not in _types(events)

    def test_failing_listener_does_not_block_others(self, registry, caplog):
        seen = []

        def broken(event):
            raise RuntimeError("listener failure")

        registry.subscribe(broken)
        registry.subscribe(seen.append)
        with caplog.at_level(logging.ERROR, logger="sdgscript"):
            registry.start("c1", CTX)
        assert _types(seen) == [EventType.CONTEXT_STARTED]
        assert "listener" in caplog.text.lower()

    def test_subscribe_is_idempotent(self, registry):
        seen = []
        registry.subscribe(seen.append)
        registry.subscribe(seen.append)
        registry.start("c1", CTX)
        assert len(seen) == 1

    def test_unsubscribe(self, registry):
        seen = []
        listener = registry.subscribe(seen.append)
        assert registry.unsubscribe(listener)
        assert not registry.unsubscribe(listener)
        registry.start("c1", CTX)
        assert seen == []

    def test_listener_may_call_back_into_registry(self, registry):
        def on_started(event):
            if event.type is EventType.CONTEXT_STARTED:
                registry.accumulate(event.context_id, {"io_operations": 1}, "bootstrap")

        registry.subscribe(on_started)
        registry.start("c1", CTX)
        assert registry.current_metrics("c1").io_operations == 1


class TestCollisionPolicy:

    def test_overwrite_resets_accumulator(self, registry, caplog):
        registry.start("c1", CTX)
        registry.accumulate("c1", {"energy": 0.7})
        with caplog.at_level(logging.WARNING, logger="sdgscript"):
            registry.start("c1", CTX)
        assert registry.current_metrics("c1").energy == 0.0
        assert "c1" in caplog.text
        assert len(registry) == 1

    def test_reject_raises_and_keeps_original(self, clock, timer):
        with ContextRegistry(CollisionPolicy.REJECT, clock=clock, timer=timer) as reg:
            reg.start("c1", CTX)
            reg.accumulate("c1", {"energy": 0.7})
            with pytest.raises(ContextCollisionError) as exc_info:
                reg.start("c1", CTX)
            assert exc_info.value.context_id == "c1"
            assert reg.current_metrics("c1").energy == pytest.approx(0.7)


class TestBroadcast:

    def test_charges_every_active_context(self, registry):
        registry.start("a", CTX)
        registry.start("b", CTX)
        credited = registry.accumulate_all({"network_calls": 1})
        assert credited == ["a", "b"]
        assert registry.current_metrics("a").network_calls == 1
        assert registry.current_metrics("b").network_calls == 1

    def test_no_active_contexts(self, registry):
        assert registry.accumulate_all({"energy": 1.0}) == []

    def test_context_ended_during_broadcast_is_skipped(self, registry):
        registry.start("a", CTX)
        registry.start("b", CTX)

        def end_b(event):
            if event.type is EventType.RESOURCE_TRACKED and event.context_id == "a":
                registry.end("b")

        registry.subscribe(end_b)
        assert registry.accumulate_all({"energy": 0.1}) == ["a"]

    def test_concurrent_broadcasts(self, registry):
        registry.start("a", CTX)

        def hammer():
            for _ in range(200):
                registry.accumulate_all({"network_calls": 1})

        threads = [threading.Thread(target=hammer) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert registry.current_metrics("a").network_calls == 800


class TestScopedHelpers:

    def test_tracking_charges_residual_and_ends(self, registry, events, timer):
        with registry.tracking(CTX, context_id="t1") as cid:
            assert cid == "t1"
            registry.accumulate(cid, {"energy": 0.5})
            timer.advance(2.0)
        assert not registry.is_active("t1")

        residual = [
            e for e in events
            if e.type is EventType.RESOURCE_TRACKED
            and e.payload["resource_type"] == "execution"
        ]
        assert len(residual) == 1
        assert residual[0].payload["usage"]["energy"] == pytest.approx(0.002)
        assert events[-1].type is EventType.CONTEXT_ENDED
        assert events[-1].payload["metrics"].energy == pytest.approx(0.502)

    def test_tracking_generates_id(self, registry):
        with registry.tracking(CTX) as cid:
            assert cid.startswith("ctx_")
            assert registry.is_active(cid)
        assert len(registry) == 0

    def test_tracking_ends_context_on_exception(self, registry, events):
        with pytest.raises(ValueError):
            with registry.tracking(CTX, context_id="boom"):
                raise ValueError("work failed")
        assert not registry.is_active("boom")
        assert events[-1].type is EventType.CONTEXT_ENDED

    def test_overlapping_scopes(self, registry):
        outer = registry.tracking(CTX, context_id="outer")
        inner = registry.tracking(CTX, context_id="inner")
        outer.__enter__()
        inner.__enter__()
        outer.__exit__(None, None, None)
        assert registry.is_active("inner")
        assert not registry.is_active("outer")
        inner.__exit__(None, None, None)
        assert len(registry) == 0

    def test_run(self, registry):
        assert registry.run(CTX, lambda x: x * 2, 21) == 42
        assert len(registry) == 0

    def test_run_async_with_coroutine_and_plain_function(self, registry):
        async def double(x):
            await asyncio.sleep(0)
            return x * 2

        assert asyncio.run(registry.run_async(CTX, double, 21)) == 42
        assert asyncio.run(registry.run_async(CTX, lambda: "sync")) == "sync"
        assert len(registry) == 0

    def test_tracking_async_ends_on_cancellation(self, registry, events):
        async def scenario():
            started = asyncio.Event()

            async def worker():
                async with registry.tracking_async(CTX, context_id="w"):
                    started.set()
                    await asyncio.sleep(3600)

            task = asyncio.create_task(worker())
            await started.wait()
            assert registry.is_active("w")
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())
        assert not registry.is_active("w")
        assert events[-1].type is EventType.CONTEXT_ENDED


class TestTrackedNetworkCall:

    def test_sync_call_is_charged(self, registry, timer):
        def download(url):
            timer.advance(0.1)
            return f"body of {url}"

        wrapped = tracked_network_call(registry, download)
        assert wrapped.__name__ == "download"
        with registry.tracking(Context(goal=SdgGoal.GOAL9), context_id="n1"):
            assert wrapped("http://x") == "body of http://x"
            m = registry.current_metrics("n1")
        assert m.network_calls == 1
        assert m.energy == pytest.approx(100.0 * 0.00001)

    def test_failed_call_is_charged_and_reraised(self, registry, events):
        def broken():
            raise ConnectionError("down")

        wrapped = tracked_network_call(registry, broken)
        registry.start("n1", CTX)
        with pytest.raises(ConnectionError):
            wrapped()
        assert registry.current_metrics("n1").network_calls == 1
        assert events[-1].payload["resource_type"] == "network_error"

    def test_interrupted_call_is_charged_and_reraised(self, registry, events):
        def interrupted():
            raise KeyboardInterrupt

        wrapped = tracked_network_call(registry, interrupted)
        registry.start("n1", CTX)
        with pytest.raises(KeyboardInterrupt):
            wrapped()
        assert registry.current_metrics("n1").network_calls == 1
        assert events[-1].payload["resource_type"] == "network_error"

    def test_cancelled_async_call_is_charged(self, registry, events):
        async def slow():
            await asyncio.sleep(3600)

        wrapped = tracked_network_call(registry, slow)
        registry.start("n1", CTX)

        async def scenario():
            task = asyncio.create_task(wrapped())
            await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())
        assert registry.current_metrics("n1").network_calls == 1
        assert events[-1].payload["resource_type"] == "network_error"

    def test_async_call_is_charged(self, registry, timer):
        async def download():
            timer.advance(0.05)
            return 200

        wrapped = tracked_network_call(registry, download)
        registry.start("a", CTX)
        registry.start("b", CTX)
        assert asyncio.run(wrapped()) == 200
        for cid in ("a", "b"):
            m = registry.current_metrics(cid)
            assert m.network_calls == 1
            assert m.energy == pytest.approx(50.0 * 0.00001)

    def test_no_active_context_is_harmless(self, registry):
        wrapped = tracked_network_call(registry, lambda: "ok")
        assert wrapped() == "ok"


class TestClose:

    def test_close_ends_open_contexts_and_drops_listeners(self, registry, events):
        registry.start("a", CTX)
        registry.start("b", CTX)
        registry.close()
        assert len(registry) == 0
        assert _types(events).count(EventType.CONTEXT_ENDED) == 2

        before = len(events)
        registry.start("c", CTX)
        assert len(events) == before

    def test_registry_as_context_manager(self, clock, timer):
        seen = []
        with ContextRegistry(clock=clock, timer=timer) as reg:
            reg.subscribe(seen.append)
            reg.start("a", CTX)
        assert _types(seen)[-1] is EventType.CONTEXT_ENDED
        assert len(reg) == 0

    def test_close_logs_open_context_count(self, registry, caplog):
        registry.start("a", CTX)
        registry.start("b", CTX)
        with caplog.at_level(logging.DEBUG, logger="sdgscript"):
            registry.close()
        assert "2 open context(s)" in caplog.text
