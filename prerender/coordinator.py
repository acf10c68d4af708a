"""
Crawl Coordinator
=================
Concurrent snapshot pipeline over a fixed pool of browser lanes.

Architecture:
- Single Chromium instance (``BrowserSession``) shared by all lanes
- Route list split into N contiguous slices, one asyncio task per slice
- Each lane owns one tab and processes its slice strictly in order:
  render → post-process → write
- Per-route retry: up to ``max_retries`` extra attempts on any error
- Fail-fast: a route exhausting its attempts cancels every lane and
  aborts the run with ``RouteFailedError``
- Empty captures are skipped, never retried
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from playwright.async_api import Browser, Page, async_playwright

from .errors import RouteFailedError
from .monitor import RouteTiming, RunMonitor
from .postprocess import SnapshotPostProcessor
from .renderer import LaneState, PageRenderer
from .run_config import PrerenderRunConfig
from .writer import check_unique_paths, route_to_path, write_snapshot

logger = logging.getLogger(__name__)

_BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
]


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass
class RenderJob:
    """One route being processed by a lane."""
    route: str
    lane_index: int
    position: int
    attempt: int = 0

    @property
    def is_first_in_lane(self) -> bool:
        return self.position == 0


@dataclass
class Snapshot:
    """Post-processed HTML and where it will be written."""
    route: str
    html: str
    path: Path


@dataclass
class PrerenderResult:
    """Outcome of a completed run."""
    written: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    stats: Dict = field(default_factory=dict)


def route_url(base_url: str, route: str) -> str:
    """Join the server origin and a route with exactly one slash between them."""
    return f"{base_url.rstrip('/')}/{route.lstrip('/')}"


def partition_routes(routes: Sequence[str], lanes: int) -> List[List[str]]:
    """
    Split routes into ``lanes`` contiguous slices of ``ceil(n / lanes)``.

    The last non-empty slice may be shorter; surplus lanes get empty slices.
    """
    if lanes < 1:
        raise ValueError("lanes must be at least 1")
    size = math.ceil(len(routes) / lanes)
    return [list(routes[i * size:(i + 1) * size]) for i in range(lanes)]


# ---------------------------------------------------------------------------
# Browser session
# ---------------------------------------------------------------------------

class BrowserSession:
    """One Chromium process; hands out an isolated tab per lane."""

    def __init__(self, headless: bool = True, user_agent: str = "prerendering"):
        self.headless = headless
        self.user_agent = user_agent
        self._playwright = None
        self._browser: Optional[Browser] = None

    async def start(self) -> None:
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.headless,
            args=_BROWSER_ARGS,
        )
        logger.info(f"Playwright browser started (user agent: {self.user_agent})")

    async def new_page(self) -> Page:
        if self._browser is None:
            raise RuntimeError("BrowserSession.start() has not been awaited")
        return await self._browser.new_page(user_agent=self.user_agent)

    async def close(self) -> None:
        if self._browser:
            try:
                await self._browser.close()
            except Exception as e:
                if "closed" not in str(e).lower():
                    logger.error(f"Error closing browser: {e}")
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------

class CrawlCoordinator:
    """
    Usage::

        coordinator = CrawlCoordinator(PrerenderRunConfig.from_file())
        result = await coordinator.run("http://localhost:3000")

        # Or from sync code:
        result = coordinator.run_sync("http://localhost:3000")
    """

    def __init__(
        self,
        config: PrerenderRunConfig = None,
        session=None,
        renderer: PageRenderer = None,
        post_processor: SnapshotPostProcessor = None,
    ):
        self.config = config or PrerenderRunConfig()
        self.session = session or BrowserSession(
            headless=self.config.headless,
            user_agent=self.config.user_agent,
        )
        self.renderer = renderer or PageRenderer(self.config)
        self.post_processor = post_processor or SnapshotPostProcessor()
        self.monitor = RunMonitor(lanes=self.config.lanes)

        self._written: List[str] = []
        self._skipped: List[str] = []

    def run_sync(self, base_url: str, routes: Sequence[str] = None,
                 output_dir: Union[str, Path] = None) -> PrerenderResult:
        """Sync wrapper — run the async pipeline from synchronous code."""
        return asyncio.run(self.run(base_url, routes, output_dir))

    async def run(self, base_url: str, routes: Sequence[str] = None,
                  output_dir: Union[str, Path] = None) -> PrerenderResult:
        """
        Render every route and write its snapshot.

        Args:
            base_url:   Asset server origin, e.g. ``http://localhost:3000``
            routes:     Routes to render (default: ``/`` + configured routes)
            output_dir: Snapshot root (default: the build directory)

        Raises:
            ConfigError:      two routes map to the same output file
            RouteFailedError: a route exhausted its retry ceiling
        """
        routes = list(routes) if routes is not None else self.config.all_routes()
        output_dir = Path(output_dir) if output_dir is not None else self.config.output_dir
        check_unique_paths(routes, output_dir)

        slices = partition_routes(routes, self.config.lanes)
        self._written = []
        self._skipped = []
        self.monitor = RunMonitor(lanes=self.config.lanes, routes_total=len(routes))

        logger.info("=" * 65)
        logger.info("PRERENDER STARTED")
        logger.info(f"Base URL: {base_url}")
        logger.info(f"Routes: {len(routes)} across {self.config.lanes} lanes "
                    f"({len(slices[0])} per lane)")
        logger.info("=" * 65)

        stop_reason = "completed"
        tasks: List[asyncio.Task] = []
        start = time.monotonic()
        try:
            await self.session.start()
            await self.monitor.start()
            tasks = [
                asyncio.create_task(
                    self._run_lane(index, lane_routes, base_url, output_dir)
                )
                for index, lane_routes in enumerate(slices)
            ]
            await asyncio.gather(*tasks)
        except RouteFailedError as e:
            stop_reason = f'Route "{e.route}" failed after {e.attempts} attempts'
            raise
        except Exception as e:
            stop_reason = f"Error: {e}"
            raise
        finally:
            # Fail-fast: abandon whatever the other lanes are still doing
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await self.monitor.stop(stop_reason)
            await self.session.close()

        elapsed = time.monotonic() - start
        metrics = await self.monitor.snapshot()
        logger.info("\n" + self.monitor.format_summary(metrics))
        logger.info(f"Finished in {elapsed:.3f}s.")

        stats = asdict(metrics)
        stats["elapsed_sec"] = round(elapsed, 3)
        return PrerenderResult(
            written=list(self._written),
            skipped=list(self._skipped),
            stats=stats,
        )

    # ------------------------------------------------------------------
    # Lane
    # ------------------------------------------------------------------

    async def _run_lane(self, lane_index: int, routes: List[str],
                        base_url: str, output_dir: Path) -> None:
        """Process one slice of routes, one at a time, on the lane's own tab."""
        lane = await self.renderer.open_lane(self.session, lane_index)
        if not routes:
            logger.debug(f"[LANE-{lane_index}] No routes assigned")
            return

        await self.monitor.lane_started()
        try:
            for position, route in enumerate(routes):
                job = RenderJob(route=route, lane_index=lane_index, position=position)
                await self._process_route(lane, job, base_url, output_dir)
        finally:
            await self.monitor.lane_finished()
        logger.debug(f"[LANE-{lane_index}] Done ({len(routes)} routes)")

    async def _process_route(self, lane: LaneState, job: RenderJob,
                             base_url: str, output_dir: Path) -> None:
        """Render → post-process → write, retrying up to the attempt ceiling."""
        max_attempts = self.config.max_attempts
        url = route_url(base_url, job.route)
        t_start = time.monotonic()

        while True:
            job.attempt += 1
            try:
                logger.info(f'[LANE-{job.lane_index}] Processing route "{job.route}"')
                html = await self.renderer.render(lane.page, url, job.is_first_in_lane)
                if html is None:
                    logger.warning(f'[SKIP] "{job.route}" rendered no content')
                    self._skipped.append(job.route)
                    await self.monitor.record_route(RouteTiming(
                        route=job.route, lane_index=job.lane_index,
                        attempts=job.attempt, status="skipped",
                    ))
                    return
                snapshot = Snapshot(
                    route=job.route,
                    html=self.post_processor.process(html),
                    path=route_to_path(job.route, output_dir),
                )
                write_snapshot(snapshot.route, snapshot.html, output_dir, path=snapshot.path)
                break
            except Exception as e:
                if job.attempt >= max_attempts:
                    await self.monitor.record_route(RouteTiming(
                        route=job.route, lane_index=job.lane_index,
                        attempts=job.attempt, status="failed",
                    ))
                    raise RouteFailedError(job.route, job.attempt, e) from e
                logger.warning(
                    f"[RETRY] Retrying {job.route} "
                    f"(attempt {job.attempt}/{max_attempts} failed). Message: {e}"
                )
                await self.monitor.record_retry()
                if self.config.retry_delay_s > 0:
                    await asyncio.sleep(self.config.retry_delay_s)

        total_ms = (time.monotonic() - t_start) * 1000
        self._written.append(job.route)
        await self.monitor.record_route(RouteTiming(
            route=job.route, lane_index=job.lane_index,
            attempts=job.attempt, total_ms=total_ms,
        ))
        logger.info(f"[LANE-{job.lane_index}] {total_ms / 1000:.3f}s")
