"""
Shared stubs standing in for Playwright objects.

StubPage records every call a renderer makes, so tests can assert on the
readiness protocol without launching a browser.
"""

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeout

from prerender.run_config import PrerenderRunConfig

SHELL_HTML = (
    "<!DOCTYPE html><html><head>"
    "<style prerender></style>"
    '<style data-emotion="css">.app { color: red; }</style>'
    '<style data-emotion="css">.map > .tile { margin: 0 auto; }</style>'
    "</head><body>"
    '<img role="presentation" class="leaflet-tile" style="opacity: 0;" src="tile.png">'
    '<div id="root">rendered</div>'
    "</body></html>"
)


class StubRoute:
    class _Request:
        def __init__(self, url):
            self.url = url

    def __init__(self, url):
        self.request = self._Request(url)
        self.outcome = None

    async def abort(self):
        self.outcome = "abort"

    async def continue_(self):
        self.outcome = "continue"


class StubPage:
    def __init__(self, html=SHELL_HTML, present=(), evaluate_result=None, goto_error=None,
                 missing_links=()):
        self.html = html
        self.missing_links = set(missing_links)
        self.present = set(present)
        self.evaluate_result = evaluate_result
        self.goto_error = goto_error
        self.calls = []
        self.route_handler = None

    async def route(self, pattern, handler):
        self.route_handler = handler

    async def goto(self, url, wait_until=None, timeout=None):
        self.calls.append(("goto", url, wait_until, timeout))
        if self.goto_error is not None:
            raise self.goto_error

    async def click(self, selector, timeout=None):
        self.calls.append(("click", selector, timeout))
        if selector in self.missing_links:
            raise PlaywrightTimeout(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def evaluate(self, script, arg=None):
        self.calls.append(("evaluate", arg))
        return self.evaluate_result

    async def wait_for_selector(self, selector, timeout=None, state=None):
        self.calls.append(("wait_for_selector", selector, timeout, state))
        if selector not in self.present:
            raise PlaywrightTimeout(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def content(self):
        self.calls.append(("content",))
        return self.html

    def call_names(self):
        return [c[0] for c in self.calls]


class StubSession:
    """Replaces BrowserSession; every lane gets a fresh page from ``page_factory``."""

    def __init__(self, page_factory=StubPage):
        self.page_factory = page_factory
        self.pages = []
        self.started = False
        self.closed = False

    async def start(self):
        self.started = True

    async def new_page(self):
        page = self.page_factory()
        self.pages.append(page)
        return page

    async def close(self):
        self.closed = True


@pytest.fixture
def fast_config():
    """Config with every settle delay disabled."""
    return PrerenderRunConfig(
        root_settle_ms=0,
        settle_ms=0,
        search_settle_ms=0,
    )
