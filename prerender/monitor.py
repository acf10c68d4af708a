"""
Run Monitor
===========
Metrics for a prerender run.

Tracks:
- Routes written / skipped (empty content) / failed
- Retry count
- Active lanes
- Per-route timing (average, p95, slowest)
- Overall elapsed time

Async-safe: all mutating methods take an asyncio.Lock.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

_REPORT_INTERVAL_SEC = 10.0


@dataclass
class RouteTiming:
    """Outcome and duration of one route."""
    route: str = ""
    lane_index: int = 0
    attempts: int = 0
    total_ms: float = 0.0
    status: str = "ok"   # ok | skipped | failed


@dataclass
class RunMetrics:
    """Snapshot of all run metrics at a point in time."""
    routes_total: int = 0
    routes_written: int = 0
    routes_skipped: int = 0
    routes_failed: int = 0
    retries: int = 0

    active_lanes: int = 0
    lanes: int = 0

    avg_route_ms: float = 0.0
    p95_route_ms: float = 0.0
    slowest_route: str = ""
    slowest_route_ms: float = 0.0

    elapsed_sec: float = 0.0
    stop_reason: str = ""


class RunMonitor:
    """
    Usage::

        monitor = RunMonitor(lanes=4, routes_total=len(routes))
        await monitor.start()

        # In each lane:
        await monitor.record_route(RouteTiming(route=r, total_ms=...))

        metrics = await monitor.snapshot()
        await monitor.stop()
    """

    def __init__(self, lanes: int = 4, routes_total: int = 0):
        self._lock = asyncio.Lock()
        self._start_time: float = 0.0
        self._lanes = lanes
        self._routes_total = routes_total

        self._routes_written = 0
        self._routes_skipped = 0
        self._routes_failed = 0
        self._retries = 0
        self._active_lanes = 0

        self._timings: deque[RouteTiming] = deque(maxlen=1000)

        self._reporter_task: Optional[asyncio.Task] = None
        self._running = False
        self._stop_reason = ""

    async def start(self) -> None:
        self._start_time = time.monotonic()
        self._running = True
        self._reporter_task = asyncio.create_task(self._reporter_loop())

    async def stop(self, reason: str = "completed") -> None:
        self._running = False
        self._stop_reason = reason
        if self._reporter_task:
            self._reporter_task.cancel()
            try:
                await self._reporter_task
            except asyncio.CancelledError:
                pass
            self._reporter_task = None

    async def record_route(self, timing: RouteTiming) -> None:
        async with self._lock:
            if timing.status == "ok":
                self._routes_written += 1
            elif timing.status == "skipped":
                self._routes_skipped += 1
            else:
                self._routes_failed += 1
            self._timings.append(timing)

    async def record_retry(self) -> None:
        async with self._lock:
            self._retries += 1

    async def lane_started(self) -> None:
        async with self._lock:
            self._active_lanes += 1

    async def lane_finished(self) -> None:
        async with self._lock:
            self._active_lanes = max(0, self._active_lanes - 1)

    async def snapshot(self) -> RunMetrics:
        """Take a consistent snapshot of all metrics."""
        now = time.monotonic()
        async with self._lock:
            elapsed = now - self._start_time if self._start_time else 0.0

            done = [t for t in self._timings if t.status == "ok"]
            durations = sorted(t.total_ms for t in done)
            avg = sum(durations) / len(durations) if durations else 0.0
            p95 = 0.0
            if durations:
                idx = int(len(durations) * 0.95)
                p95 = durations[min(idx, len(durations) - 1)]
            slowest = max(done, key=lambda t: t.total_ms, default=None)

            return RunMetrics(
                routes_total=self._routes_total,
                routes_written=self._routes_written,
                routes_skipped=self._routes_skipped,
                routes_failed=self._routes_failed,
                retries=self._retries,
                active_lanes=self._active_lanes,
                lanes=self._lanes,
                avg_route_ms=round(avg, 1),
                p95_route_ms=round(p95, 1),
                slowest_route=slowest.route if slowest else "",
                slowest_route_ms=round(slowest.total_ms, 1) if slowest else 0.0,
                elapsed_sec=round(elapsed, 2),
                stop_reason=self._stop_reason,
            )

    async def _reporter_loop(self) -> None:
        """Periodically log progress."""
        while self._running:
            await asyncio.sleep(_REPORT_INTERVAL_SEC)
            if not self._running:
                break
            m = await self.snapshot()
            logger.info(
                f"[MONITOR] "
                f"written={m.routes_written}/{m.routes_total} "
                f"skip={m.routes_skipped} "
                f"retries={m.retries} "
                f"lanes={m.active_lanes}/{m.lanes} "
                f"avg={m.avg_route_ms:.0f}ms "
                f"elapsed={m.elapsed_sec:.0f}s"
            )

    def format_summary(self, metrics: RunMetrics) -> str:
        """Format a human-readable summary string."""
        lines = [
            "=" * 65,
            "  PRERENDER SUMMARY",
            "=" * 65,
            f"  Routes:              {metrics.routes_total}",
            f"  Snapshots written:   {metrics.routes_written}",
            f"  Routes skipped:      {metrics.routes_skipped} (empty content)",
            f"  Routes failed:       {metrics.routes_failed}",
            f"  Retries:             {metrics.retries}",
            "-" * 65,
            f"  Lanes:               {metrics.lanes}",
            f"  Avg route time:      {metrics.avg_route_ms:.0f} ms",
            f"  P95 route time:      {metrics.p95_route_ms:.0f} ms",
        ]
        if metrics.slowest_route:
            lines.append(
                f"  Slowest route:       {metrics.slowest_route} "
                f"({metrics.slowest_route_ms:.0f} ms)"
            )
        lines += [
            "-" * 65,
            f"  Elapsed time:        {metrics.elapsed_sec:.1f} s",
            f"  Stop reason:         {metrics.stop_reason}",
            "=" * 65,
        ]
        return "\n".join(lines)
