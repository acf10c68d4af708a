"""
Error Taxonomy
==============
Every failure the prerenderer raises derives from ``PrerenderError``.

Fatal (abort before or during the run):
    ConfigError, AssetServerError, RouteFailedError

Recoverable (caught by the lane retry loop):
    RenderError, PostProcessError, SnapshotWriteError
"""

from __future__ import annotations


class PrerenderError(Exception):
    """Base class for all prerender failures."""


class ConfigError(PrerenderError):
    """The run configuration is missing, unparseable or invalid."""


class AssetServerError(PrerenderError):
    """The static asset server could not be started."""


class RenderError(PrerenderError):
    """Navigation, in-page evaluation or a readiness wait failed."""

    def __init__(self, url: str, message: str):
        super().__init__(f"Failed to build HTML for {url}: {message}")
        self.url = url


class PostProcessError(PrerenderError):
    """The captured DOM could not be transformed into a snapshot."""


class SnapshotWriteError(PrerenderError):
    """The snapshot could not be mapped to a path or written to disk."""

    def __init__(self, route: str, message: str):
        super().__init__(f"Failed to create HTML page for {route}: {message}")
        self.route = route


class RouteFailedError(PrerenderError):
    """A route exhausted its retry ceiling; the whole run is aborted."""

    def __init__(self, route: str, attempts: int, cause: BaseException):
        super().__init__(
            f'Failed to process route "{route}" after {attempts} attempts: {cause}'
        )
        self.route = route
        self.attempts = attempts
