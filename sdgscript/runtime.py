"""
sdgscript/runtime.py
════════════════════

Runtime context tracker: accumulates *actual* resource use of bounded
execution scopes ("contexts") and budget-checks them when they close.

Architecture
────────────

  ┌───────────────────────────────────────────────────────────────┐
  │                      ContextRegistry                          │
  │                                                               │
  │   id ─► (Context, ResourceMetrics accumulator)                │
  │                                                               │
  │   start ──► accumulate* ──► end         (explicit-id API)     │
  │   tracking / tracking_async / run / run_async  (scoped API)   │
  │   accumulate_all                    (broadcast, approximate)  │
  │                                                               │
  │   listeners ◄── TrackingEvent   (sync, registration order)    │
  └───────────────────────────────────────────────────────────────┘

The registry is an ordinary object: the application creates one, passes
it to the code that needs it and closes it (``with ContextRegistry() as
reg:``) when done.  Closing ends any context still open.

Error policy
────────────
No tracker operation raises on bad input.  Unknown ids log a warning and
are ignored; malformed usage fields are dropped with a warning; a
listener that raises is logged and the remaining listeners still run.
The only exception is the opt-in ``CollisionPolicy.REJECT``.

Concurrency
───────────
Tracker operations never suspend.  One re-entrant lock serializes every
registry mutation and listener dispatch, so threaded hosts cannot
interleave ``accumulate(X)`` and ``end(X)``.  Scopes may overlap without
nesting; they are told apart by id.  Scoped helpers end their context on
every exit path, exceptions and task cancellation included.

Broadcast attribution
─────────────────────
``accumulate_all`` charges the same usage to *every* context active at
that instant.  Overlapping scopes are each charged in full; the totals
are therefore an over-approximation, not per-scope accounting.
"""

from __future__ import annotations

import enum
import functools
import inspect
import logging
import math
import threading
import time
import tracemalloc
import uuid
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass, field, replace
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    TypeVar,
    Union,
)

from sdgscript.errors import ContextCollisionError
from sdgscript.types import METRIC_FIELDS, ResourceMetrics, SdgGoal

__all__ = [
    "EventType",
    "TrackingEvent",
    "Context",
    "CollisionPolicy",
    "Listener",
    "ContextRegistry",
    "generate_context_id",
    "tracked_network_call",
    "RESIDUAL_ENERGY_PER_MS",
    "NETWORK_ENERGY_PER_MS",
]

_log = logging.getLogger(__name__)

T = TypeVar("T")

# Residual energy charged per millisecond of wall-clock time, kWh.
RESIDUAL_ENERGY_PER_MS: float = 0.000001
NETWORK_ENERGY_PER_MS: float = 0.00001

_BYTES_PER_MB = 1024 * 1024

# Fields a usage record may carry.  ``emissions`` is always re-derived
# from energy and ``compute_complexity`` is a static-only figure.
_ADDITIVE_FIELDS = ("energy", "network_calls", "io_operations")
_DERIVED_FIELDS = ("emissions", "compute_complexity")


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — EVENTS AND CONTEXTS
# ═════════════════════════════════════════════════════════════════════════

class EventType(enum.Enum):
    CONTEXT_STARTED = "context_started"
    CONTEXT_ENDED = "context_ended"
    RESOURCE_TRACKED = "resource_tracked"
    CARBON_BUDGET_EXCEEDED = "carbon_budget_exceeded"


@dataclass(frozen=True)
class TrackingEvent:
    """
    One lifecycle or accounting event.  Emitted, never stored.

    Payload keys by type:

        context_started         context
        resource_tracked        resource_type, usage, total
        carbon_budget_exceeded  context, metrics, budget
        context_ended           context, metrics, duration_ms
    """
    type: EventType
    context_id: str
    payload: Mapping[str, Any]
    timestamp: float


@dataclass(frozen=True)
class Context:
    """
    Descriptor of a runtime scope.

    ``start_time`` (epoch seconds) is filled in by the registry.
    ``max_duration`` (ms) is recorded and reported but never enforced.
    """
    goal: Union[SdgGoal, str]
    carbon_budget: Optional[float] = None
    description: Optional[str] = None
    start_time: Optional[float] = None
    max_duration: Optional[float] = None


class CollisionPolicy(enum.Enum):
    """What ``start`` does with an id that is already active."""
    OVERWRITE = "overwrite"     # last write wins; prior entry dropped
    REJECT = "reject"           # raise ContextCollisionError


Listener = Callable[[TrackingEvent], None]


@dataclass
class _Entry:
    context: Context
    started: float                                   # monotonic seconds
    metrics: ResourceMetrics = field(default_factory=ResourceMetrics.zero)


def generate_context_id() -> str:
    """``ctx_<epoch-ms>_<9 random hex chars>``; practically, not provably, unique."""
    return f"ctx_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _clean_usage(usage: Mapping[str, Any]) -> Dict[str, float]:
    """Keep the well-formed, non-negative numeric fields of *usage*."""
    clean: Dict[str, float] = {}
    for key, value in usage.items():
        if key in _DERIVED_FIELDS:
            continue
        if key not in METRIC_FIELDS:
            _log.warning("Ignoring unknown usage field %r", key)
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            _log.warning("Ignoring non-numeric usage %s=%r", key, value)
            continue
        if not math.isfinite(value) or value < 0:
            _log.warning("Ignoring invalid usage %s=%r", key, value)
            continue
        clean[key] = value
    return clean


class _ResidualMeter:
    """Wall-clock (and, when tracemalloc runs, heap) cost of a scope."""

    def __init__(self, timer: Callable[[], float]):
        self._timer = timer
        self._start = timer()
        self._mem_start: Optional[int] = (
            tracemalloc.get_traced_memory()[0] if tracemalloc.is_tracing() else None
        )

    def usage(self) -> Dict[str, float]:
        duration_ms = (self._timer() - self._start) * 1000.0
        usage = {"energy": max(0.0, duration_ms) * RESIDUAL_ENERGY_PER_MS}
        if self._mem_start is not None and tracemalloc.is_tracing():
            current = tracemalloc.get_traced_memory()[0]
            usage["memory"] = max(0, current - self._mem_start) / _BYTES_PER_MB
        return usage


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — REGISTRY
# ═════════════════════════════════════════════════════════════════════════

class ContextRegistry:
    """
    Registry of live execution scopes.

    Parameters
    ----------
    collision_policy : CollisionPolicy
        Behaviour of ``start`` on a duplicate id (default: overwrite).
    clock : callable
        Wall clock for timestamps, epoch seconds.
    timer : callable
        Monotonic timer for durations, seconds.
    """

    def __init__(
        self,
        collision_policy: CollisionPolicy = CollisionPolicy.OVERWRITE,
        *,
        clock: Callable[[], float] = time.time,
        timer: Callable[[], float] = time.perf_counter,
    ):
        self.collision_policy = collision_policy
        self._clock = clock
        self._timer = timer
        self._lock = threading.RLock()
        self._entries: Dict[str, _Entry] = {}
        self._listeners: List[Listener] = []

    # -- lifecycle ------------------------------------------------------------

    def __enter__(self) -> "ContextRegistry":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """End every context still open, then drop all listeners."""
        with self._lock:
            if len(self):
                _log.debug("Closing registry with %d open context(s)", len(self))
            for context_id in list(self._entries):
                _log.warning("Context %s still open at close; ending it", context_id)
                self.end(context_id)
            self._listeners.clear()

    # -- listeners ------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Listener:
        """Register *listener*; returns it so this can be used as a decorator."""
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)
        return listener

    def unsubscribe(self, listener: Listener) -> bool:
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                return False
            return True

    def _emit(self, type_: EventType, context_id: str, **payload: Any) -> None:
        event = TrackingEvent(type_, context_id, payload, self._clock())
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                _log.exception("Error in tracking event listener %r", listener)

    # -- explicit-id API ------------------------------------------------------

    def start(self, context_id: str, context: Context) -> Context:
        """
        Open a context under *context_id* with a zeroed accumulator.

        Returns the stored context (with ``start_time`` set).

        Raises
        ------
        ContextCollisionError
            If the id is active and the policy is ``REJECT``.
        """
        with self._lock:
            if context_id in self._entries:
                if self.collision_policy is CollisionPolicy.REJECT:
                    raise ContextCollisionError(context_id)
                _log.warning("Context id %s reused; previous entry overwritten", context_id)
            # goal names and tags resolve to members; unknown strings are kept
            goal = SdgGoal.coerce(context.goal) or context.goal
            stored = replace(context, goal=goal, start_time=self._clock())
            self._entries[context_id] = _Entry(context=stored, started=self._timer())
            self._emit(EventType.CONTEXT_STARTED, context_id, context=stored)
            return stored

    def accumulate(
        self,
        context_id: str,
        usage: Mapping[str, Any],
        resource_type: str = "manual",
    ) -> Optional[ResourceMetrics]:
        """
        Fold *usage* into the context's accumulator.

        Returns the new total, or ``None`` if *context_id* is not active.
        """
        with self._lock:
            if context_id not in self._entries:
                _log.warning("No active context found for id %s", context_id)
                return None
            return self._merge(context_id, _clean_usage(usage), resource_type)

    def _merge(
        self, context_id: str, usage: Dict[str, float], resource_type: str,
    ) -> ResourceMetrics:
        entry = self._entries[context_id]
        entry.metrics = entry.metrics.merged(usage)
        self._emit(
            EventType.RESOURCE_TRACKED,
            context_id,
            resource_type=resource_type,
            usage=dict(usage),
            total=entry.metrics,
        )
        return entry.metrics

    def end(self, context_id: str) -> Optional[ResourceMetrics]:
        """
        Close a context and return its final metrics.

        Emits ``carbon_budget_exceeded`` (if the accumulated energy is over
        the declared budget) before ``context_ended``.  Returns ``None`` if
        *context_id* is not active.
        """
        with self._lock:
            entry = self._entries.get(context_id)
            if entry is None:
                _log.warning("Cannot end unknown context %s", context_id)
                return None
            duration_ms = (self._timer() - entry.started) * 1000.0
            metrics = entry.metrics
            budget = entry.context.carbon_budget
            if budget is not None and metrics.energy > budget:
                self._emit(
                    EventType.CARBON_BUDGET_EXCEEDED,
                    context_id,
                    context=entry.context,
                    metrics=metrics,
                    budget=budget,
                )
            self._emit(
                EventType.CONTEXT_ENDED,
                context_id,
                context=entry.context,
                metrics=metrics,
                duration_ms=duration_ms,
            )
            # a listener may have closed or replaced the entry meanwhile
            if self._entries.get(context_id) is entry:
                del self._entries[context_id]
            return metrics

    # -- broadcast ------------------------------------------------------------

    def accumulate_all(
        self, usage: Mapping[str, Any], resource_type: str = "manual",
    ) -> List[str]:
        """
        Charge *usage* to every context active right now.

        The set of targets is a snapshot taken on entry: contexts started
        during the broadcast are not charged, contexts ended during it are
        skipped.  Returns the ids that were charged.
        """
        clean = _clean_usage(usage)
        credited: List[str] = []
        with self._lock:
            for context_id in list(self._entries):
                if context_id in self._entries:
                    self._merge(context_id, clean, resource_type)
                    credited.append(context_id)
        return credited

    # -- queries --------------------------------------------------------------

    def active_contexts(self) -> Dict[str, Context]:
        with self._lock:
            return {cid: e.context for cid, e in self._entries.items()}

    def current_metrics(self, context_id: str) -> Optional[ResourceMetrics]:
        with self._lock:
            entry = self._entries.get(context_id)
            return entry.metrics if entry else None

    def is_active(self, context_id: str) -> bool:
        with self._lock:
            return context_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # -- scoped execution -----------------------------------------------------

    def _finish(self, context_id: str, meter: _ResidualMeter) -> None:
        try:
            self.accumulate(context_id, meter.usage(), resource_type="execution")
        finally:
            self.end(context_id)

    @contextmanager
    def tracking(
        self, context: Context, *, context_id: Optional[str] = None,
    ) -> Iterator[str]:
        """
        Run a block inside a fresh context::

            with registry.tracking(Context(goal=SdgGoal.GOAL13)) as cid:
                ...

        Yields the context id.  Wall-clock time of the block is charged
        as residual energy right before the context ends.
        """
        cid = context_id or generate_context_id()
        self.start(cid, context)
        meter = _ResidualMeter(self._timer)
        try:
            yield cid
        finally:
            self._finish(cid, meter)

    @asynccontextmanager
    async def tracking_async(
        self, context: Context, *, context_id: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """Async variant of :meth:`tracking`; ends the context on cancellation too."""
        cid = context_id or generate_context_id()
        self.start(cid, context)
        meter = _ResidualMeter(self._timer)
        try:
            yield cid
        finally:
            self._finish(cid, meter)

    def run(self, context: Context, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        with self.tracking(context):
            return fn(*args, **kwargs)

    async def run_async(
        self,
        context: Context,
        fn: Callable[..., Union[T, Awaitable[T]]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Run *fn* (sync or async) inside a fresh context."""
        async with self.tracking_async(context):
            result = fn(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            return result  # type: ignore[return-value]


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — INSTRUMENTATION HELPERS
# ═════════════════════════════════════════════════════════════════════════

def tracked_network_call(registry: ContextRegistry, fn: Callable[..., Any]) -> Callable[..., Any]:
    """
    Wrap a network-calling function so every call is charged to all
    active contexts: one network call plus ``duration_ms × 1e-5`` kWh.
    Failed calls are charged too (as ``network_error``) and re-raised,
    including cancelled and interrupted ones.
    """
    timer = registry._timer

    def _charge(start: float, resource_type: str) -> None:
        duration_ms = (timer() - start) * 1000.0
        registry.accumulate_all(
            {"network_calls": 1, "energy": duration_ms * NETWORK_ENERGY_PER_MS},
            resource_type=resource_type,
        )

    if inspect.iscoroutinefunction(fn):
        @functools.wraps(fn)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            start = timer()
            try:
                result = await fn(*args, **kwargs)
            except BaseException:
                _charge(start, "network_error")
                raise
            _charge(start, "network")
            return result
        return async_wrapper

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        start = timer()
        try:
            result = fn(*args, **kwargs)
        except BaseException:
            _charge(start, "network_error")
            raise
        _charge(start, "network")
        return result
    return wrapper
