"""
Snapshot Writer
===============
Maps a route to a file under the build directory and writes the snapshot.

    /                 → index.html
    /about            → about.html
    /products/42      → products/42.html   (products/ created if missing)
    /caf%C3%A9        → café.html
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, Optional, Union
from urllib.parse import unquote

from .errors import ConfigError, SnapshotWriteError

logger = logging.getLogger(__name__)

ROOT_ROUTE = "/"
ROOT_FILENAME = "index"
SNAPSHOT_SUFFIX = ".html"


def route_to_filename(route: str) -> str:
    """
    Decode a route into a relative output name (without suffix).

    Args:
        route: Route path, e.g. ``/products/42``

    Returns:
        Relative name using ``/`` separators, e.g. ``products/42``

    Raises:
        SnapshotWriteError: if the decoded route is not filesystem-safe
    """
    if route == ROOT_ROUTE:
        return ROOT_FILENAME

    name = unquote(route).strip("/")
    if not name:
        raise SnapshotWriteError(route, "route decodes to an empty file name")
    if "\x00" in name or "\\" in name:
        raise SnapshotWriteError(route, "route contains characters unsafe for a file name")

    segments = name.split("/")
    for segment in segments:
        if segment in ("", ".", ".."):
            raise SnapshotWriteError(route, f"route has an unsafe path segment {segment!r}")
    return name


def route_to_path(route: str, output_dir: Union[str, Path]) -> Path:
    """Full destination path of a route's snapshot."""
    return Path(output_dir) / f"{route_to_filename(route)}{SNAPSHOT_SUFFIX}"


def check_unique_paths(routes: Iterable[str], output_dir: Union[str, Path]) -> Dict[Path, str]:
    """
    Verify that no two routes write to the same file.

    Raises:
        ConfigError: on an unsafe route or when two routes collide
    """
    claimed: Dict[Path, str] = {}
    for route in routes:
        try:
            path = route_to_path(route, output_dir)
        except SnapshotWriteError as e:
            raise ConfigError(str(e)) from e
        if path in claimed:
            raise ConfigError(
                f'Routes "{claimed[path]}" and "{route}" both map to {path}'
            )
        claimed[path] = route
    return claimed


def write_snapshot(route: str, html: str, output_dir: Union[str, Path],
                   path: Optional[Path] = None) -> Path:
    """
    Persist a snapshot, creating intermediate directories as needed.

    Existing files are truncated and overwritten. ``path`` skips the
    route-to-path mapping when the caller already resolved it.

    Raises:
        SnapshotWriteError: on an unsafe route or any filesystem failure
    """
    if path is None:
        path = route_to_path(route, output_dir)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(html, encoding="utf-8")
    except OSError as e:
        raise SnapshotWriteError(route, str(e)) from e

    logger.info(f"Created {route_to_filename(route)}{SNAPSHOT_SUFFIX}")
    return path
