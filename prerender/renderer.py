"""
Page Renderer
=============
Drives one lane's browser tab to a route and captures the rendered DOM.

Readiness protocol — every navigation waits for network-idle, then applies
the wait/interaction of the route's class:

    DETAIL   path contains the detail marker segment (``/en/route/<q>``):
             sync the language toggle, inject ``<q>`` into the search input,
             wait for the confirmation element ``input#<q>[value=<q>]``
    ROOT     first route of a lane: extra settle for deferred data loading
    SEARCH   URL contains the search marker: click the link to its own path
    GENERIC  fixed settle delay

A lane's tab filters its own traffic: requests to map tiles, open-data
endpoints, font CDNs and service workers are aborted so snapshots are
deterministic and rate-limited third parties are never hit.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple
from urllib.parse import unquote, urlsplit

from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeout

from .errors import RenderError
from .run_config import PrerenderRunConfig

logger = logging.getLogger(__name__)

PRERENDER_STYLE_SELECTOR = "style[prerender]"
LANGUAGE_TOGGLE_SELECTOR = '[id="lang-selector"]'
SEARCH_INPUT_SELECTOR = '[id="searchInput"]'

_CLEAR_PRERENDER_STYLE_JS = """
(selector) => {
    const slot = document.querySelector(selector);
    if (slot) slot.innerText = '';
}
"""

_SYNC_LANGUAGE_JS = """
([selector, label]) => {
    const toggle = document.querySelector(selector);
    if (toggle && toggle.textContent === label) {
        toggle.click();
        return true;
    }
    return false;
}
"""

# Framework-controlled inputs ignore plain `input.value = x`; going through
# the prototype's native setter and re-dispatching the event updates them.
_INJECT_INPUT_JS = """
([selector, value, eventName]) => {
    const input = document.querySelector(selector);
    if (!input) throw new Error(`No input matches ${selector}`);
    const proto = input instanceof HTMLTextAreaElement
        ? window.HTMLTextAreaElement.prototype
        : window.HTMLInputElement.prototype;
    const setter = Object.getOwnPropertyDescriptor(proto, 'value').set;
    setter.call(input, value);
    input.dispatchEvent(new Event(eventName, { bubbles: true }));
}
"""


class RouteClass(enum.Enum):
    ROOT = "root"
    SEARCH = "search"
    DETAIL = "detail"
    GENERIC = "generic"


# ---------------------------------------------------------------------------
# Route helpers
# ---------------------------------------------------------------------------

def _path_segments(url: str) -> List[str]:
    return [s for s in urlsplit(url).path.split("/") if s]


def classify_route(
    url: str,
    is_first_in_lane: bool,
    search_marker: str = "search",
    detail_marker: str = "route",
) -> RouteClass:
    """Decide which readiness protocol applies to ``url``."""
    if detail_marker in _path_segments(url):
        return RouteClass.DETAIL
    if is_first_in_lane:
        return RouteClass.ROOT
    if search_marker in url:
        return RouteClass.SEARCH
    return RouteClass.GENERIC


def parse_detail_route(url: str, detail_marker: str = "route") -> Tuple[str, str]:
    """
    Extract ``(language, query)`` from a detail route URL.

    The query is the decoded last segment; the language is the segment
    before it once the marker is dropped, so ``/en/route/q`` and
    ``/route/en/q`` both yield ``("en", "q")``.

    Raises:
        RenderError: if the path does not carry both values
    """
    segments = [s for s in _path_segments(url) if s != detail_marker]
    if len(segments) < 2:
        raise RenderError(url, "detail route needs a language and a query segment")
    return segments[-2], unquote(segments[-1])


def css_attr_value(value: str) -> str:
    """Quote ``value`` for use inside a CSS attribute selector."""
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\a ")
    )
    return f'"{escaped}"'


async def inject_input_value(
    page: Page, selector: str, value: str, event: str = "input"
) -> None:
    """Set an input's value the way a user would, notifying the UI framework."""
    await page.evaluate(_INJECT_INPUT_JS, [selector, value, event])


# ---------------------------------------------------------------------------
# Network policy
# ---------------------------------------------------------------------------

class RequestFilter:
    """Aborts requests whose URL contains any deny-list entry."""

    def __init__(self, deny_list: List[str]):
        self.deny_list = [p for p in deny_list if p]
        self.allowed = 0
        self.blocked = 0

    def is_blocked(self, url: str) -> bool:
        return any(pattern in url for pattern in self.deny_list)

    async def handle(self, route) -> None:
        url = route.request.url
        if self.is_blocked(url):
            self.blocked += 1
            logger.debug(f"[BLOCK] {url[:100]}")
            await route.abort()
            return
        self.allowed += 1
        await route.continue_()


@dataclass
class LaneState:
    """A lane's private tab and the request policy bound to it."""
    lane_index: int
    page: Any
    request_filter: RequestFilter


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------

class PageRenderer:
    """
    Usage::

        renderer = PageRenderer(config)
        lane = await renderer.open_lane(session, lane_index=0)
        html = await renderer.render(lane.page, "http://localhost:3000/about",
                                     is_first_in_lane=True)
    """

    def __init__(self, config: PrerenderRunConfig = None):
        self.config = config or PrerenderRunConfig()

    async def open_lane(self, session, lane_index: int) -> LaneState:
        """Create the lane's tab and bind its request filter."""
        page = await session.new_page()
        request_filter = RequestFilter(self.config.deny_list())
        await page.route("**/*", request_filter.handle)
        logger.debug(f"[LANE-{lane_index}] Tab ready")
        return LaneState(lane_index=lane_index, page=page, request_filter=request_filter)

    async def render(self, page: Page, url: str, is_first_in_lane: bool) -> Optional[str]:
        """
        Navigate to ``url``, apply the readiness protocol and capture the DOM.

        Returns:
            The serialized DOM, or None when the page produced no content

        Raises:
            RenderError: on any navigation, evaluation or wait failure
        """
        cfg = self.config
        route_class = classify_route(
            url, is_first_in_lane, cfg.search_marker, cfg.detail_marker
        )
        try:
            await page.goto(
                url, wait_until="networkidle", timeout=cfg.navigation_timeout_ms
            )
            if route_class is RouteClass.DETAIL:
                await self._prepare_detail(page, url)
            elif route_class is RouteClass.ROOT:
                await self._settle(page, cfg.root_settle_ms)
            elif route_class is RouteClass.SEARCH:
                path = urlsplit(url).path
                await page.click(
                    f"a[href={css_attr_value(path)}]",
                    timeout=cfg.search_click_timeout_ms,
                )
                await asyncio.sleep(cfg.search_settle_ms / 1000)
            else:
                await self._settle(page, cfg.settle_ms)

            html = await page.content()
        except RenderError:
            raise
        except Exception as e:
            raise RenderError(url, f"{type(e).__name__}: {e}") from e

        if not html:
            return None
        return html

    async def _settle(self, page: Page, delay_ms: int) -> None:
        """Wait for the app-ready marker if configured, else a fixed delay."""
        if delay_ms <= 0:
            return
        selector = self.config.ready_selector
        if not selector:
            await asyncio.sleep(delay_ms / 1000)
            return
        try:
            await page.wait_for_selector(selector, timeout=delay_ms, state="attached")
        except PlaywrightTimeout:
            logger.debug(f"[SETTLE] {selector} not seen within {delay_ms}ms")

    async def _prepare_detail(self, page: Page, url: str) -> None:
        cfg = self.config
        lang, query = parse_detail_route(url, cfg.detail_marker)

        await page.evaluate(_CLEAR_PRERENDER_STYLE_JS, PRERENDER_STYLE_SELECTOR)

        label = cfg.language_toggle_labels.get(lang)
        if label is not None:
            toggled = await page.evaluate(
                _SYNC_LANGUAGE_JS, [LANGUAGE_TOGGLE_SELECTOR, label]
            )
            if toggled:
                logger.debug(f"[DETAIL] Switched language to {lang}")

        await inject_input_value(page, SEARCH_INPUT_SELECTOR, query)

        quoted = css_attr_value(query)
        await page.wait_for_selector(
            f"input[id={quoted}][value={quoted}]",
            timeout=cfg.detail_confirm_timeout_ms,
            state="attached",
        )
