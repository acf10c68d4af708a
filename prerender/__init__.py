"""
SPA Prerender Package
Renders a built single-page application into one static HTML file per route.

CLI Usage:
    python -m prerender [--config .rsp.json] [--verbose]

    .rsp.json fields:
        port            Asset server port (default: 3000)
        routes          Routes to render besides "/" (default: [])
        buildDirectory  Built app, also receives the snapshots (default: ./build)
"""

from .asset_server import AssetServer
from .coordinator import (
    BrowserSession,
    CrawlCoordinator,
    PrerenderResult,
    RenderJob,
    Snapshot,
    partition_routes,
)
from .errors import (
    AssetServerError,
    ConfigError,
    PostProcessError,
    PrerenderError,
    RenderError,
    RouteFailedError,
    SnapshotWriteError,
)
from .monitor import RunMonitor
from .postprocess import SnapshotPostProcessor
from .renderer import PageRenderer, RequestFilter, RouteClass, classify_route
from .run_config import PrerenderRunConfig
from .writer import route_to_filename, route_to_path, write_snapshot

__all__ = [
    'AssetServer',
    'BrowserSession',
    'CrawlCoordinator',
    'PrerenderResult',
    'RenderJob',
    'Snapshot',
    'partition_routes',
    'PageRenderer',
    'RequestFilter',
    'RouteClass',
    'classify_route',
    'SnapshotPostProcessor',
    'route_to_filename',
    'route_to_path',
    'write_snapshot',
    'PrerenderRunConfig',
    'RunMonitor',
    # Errors
    'PrerenderError',
    'ConfigError',
    'AssetServerError',
    'RenderError',
    'PostProcessError',
    'SnapshotWriteError',
    'RouteFailedError',
]

__version__ = '1.0.0'
