"""
Unified Run Configuration
=========================
Single source of truth for ALL prerender defaults and runtime limits.

The CLI reads ``.rsp.json`` (plus ``.env`` for third-party hosts) into a
``PrerenderRunConfig``; the coordinator, renderer and asset server all read
from this object.  Nothing else in the package hard-codes these numbers.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".rsp.json"
MAP_TILE_HOST_ENV = "REACT_APP_OSM_PROVIDER_HOST"


# ---------------------------------------------------------------------------
# Canonical defaults: the only place these numbers live
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "port": 3000,
    "build_directory": "./build",
    "lanes": 4,
    "max_retries": 3,                 # 4 attempts in total
    "retry_delay_s": 0.0,
    "user_agent": "prerendering",
    "headless": True,
    # Readiness protocol timings (ms)
    "navigation_timeout_ms": 0,       # 0 = wait for network-idle indefinitely
    "root_settle_ms": 3000,           # deferred decompression & data loading
    "settle_ms": 3000,
    "search_settle_ms": 500,
    "search_click_timeout_ms": 1000,
    "detail_confirm_timeout_ms": 1000,
    # Route-class markers
    "search_marker": "search",
    "detail_marker": "route",
}

# Requests matching any of these substrings never leave the tab
_DEFAULT_BLOCKED_PATTERNS = [
    "data.gov.hk",
    "gstatic",
    "service-worker",
]

# Text the language toggle shows when clicking it switches TO that language
_DEFAULT_LANGUAGE_TOGGLE_LABELS = {
    "en": "En",
    "zh": "繁",
}


@dataclass
class PrerenderRunConfig:
    """
    Unified configuration consumed by every prerender subsystem.

    Populate via:
      - ``PrerenderRunConfig()``                  → all defaults
      - ``PrerenderRunConfig(lanes=2)``           → override one value
      - ``PrerenderRunConfig.from_file(path)``    → from ``.rsp.json``
    """

    # ---- Asset server / output ----
    port: int = _DEFAULTS["port"]
    routes: List[str] = field(default_factory=list)
    build_directory: str = _DEFAULTS["build_directory"]

    # ---- Concurrency & retry ----
    lanes: int = _DEFAULTS["lanes"]
    max_retries: int = _DEFAULTS["max_retries"]
    retry_delay_s: float = _DEFAULTS["retry_delay_s"]

    # ---- Browser ----
    user_agent: str = _DEFAULTS["user_agent"]
    headless: bool = _DEFAULTS["headless"]

    # ---- Readiness protocol ----
    navigation_timeout_ms: int = _DEFAULTS["navigation_timeout_ms"]
    root_settle_ms: int = _DEFAULTS["root_settle_ms"]
    settle_ms: int = _DEFAULTS["settle_ms"]
    search_settle_ms: int = _DEFAULTS["search_settle_ms"]
    search_click_timeout_ms: int = _DEFAULTS["search_click_timeout_ms"]
    detail_confirm_timeout_ms: int = _DEFAULTS["detail_confirm_timeout_ms"]
    ready_selector: Optional[str] = None
    search_marker: str = _DEFAULTS["search_marker"]
    detail_marker: str = _DEFAULTS["detail_marker"]
    language_toggle_labels: Dict[str, str] = field(
        default_factory=lambda: dict(_DEFAULT_LANGUAGE_TOGGLE_LABELS)
    )

    # ---- Network policy ----
    map_tile_host: Optional[str] = None
    blocked_url_patterns: List[str] = field(default_factory=list)

    # -----------------------------------------------------------------------
    # Derived values
    # -----------------------------------------------------------------------
    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    @property
    def output_dir(self) -> Path:
        return Path(self.build_directory)

    def all_routes(self) -> List[str]:
        """Root route first, then configured routes, exact duplicates dropped."""
        seen = set()
        ordered = []
        for route in ["/"] + list(self.routes):
            if route in seen:
                continue
            seen.add(route)
            ordered.append(route)
        return ordered

    def deny_list(self) -> List[str]:
        """Substrings whose requests the renderer aborts."""
        patterns = []
        if self.map_tile_host:
            patterns.append(self.map_tile_host)
        patterns.extend(_DEFAULT_BLOCKED_PATTERNS)
        patterns.extend(p for p in self.blocked_url_patterns if p)
        return patterns

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_dict(cls, options: dict) -> "PrerenderRunConfig":
        """Build config from the parsed ``.rsp.json`` document."""
        if not isinstance(options, dict):
            raise ConfigError("Top-level value must be a JSON object")

        routes = options.get("routes") or []
        if not isinstance(routes, list) or not all(isinstance(r, str) for r in routes):
            raise ConfigError("'routes' must be a list of strings")

        blocked = options.get("blockedUrlPatterns") or []
        if not isinstance(blocked, list) or not all(isinstance(p, str) for p in blocked):
            raise ConfigError("'blockedUrlPatterns' must be a list of strings")

        cfg = cls(
            port=_int_option(options, "port", _DEFAULTS["port"]),
            routes=routes,
            build_directory=_str_option(options, "buildDirectory", _DEFAULTS["build_directory"]),
            lanes=_int_option(options, "lanes", _DEFAULTS["lanes"]),
            max_retries=_int_option(options, "maxRetries", _DEFAULTS["max_retries"]),
            user_agent=_str_option(options, "userAgent", _DEFAULTS["user_agent"]),
            ready_selector=options.get("readySelector") or None,
            blocked_url_patterns=blocked,
            map_tile_host=os.environ.get(MAP_TILE_HOST_ENV) or None,
        )
        if cfg.lanes < 1:
            raise ConfigError("'lanes' must be at least 1")
        if cfg.max_retries < 0:
            raise ConfigError("'maxRetries' must not be negative")
        return cfg

    @classmethod
    def from_file(cls, path: str = CONFIG_FILENAME, load_env: bool = True) -> "PrerenderRunConfig":
        """Read ``.rsp.json`` (and ``.env`` beside the working directory)."""
        if load_env:
            load_dotenv(find_dotenv(usecwd=True))
        try:
            raw = Path(path).read_text(encoding="utf-8")
            options = json.loads(raw)
        except (OSError, ValueError) as e:
            raise ConfigError(
                f"Failed to read options from '{path}'. Message: {e}"
            ) from e
        return cls.from_dict(options)

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self, base_url: str) -> None:
        """Emit a structured summary to the logger."""
        logger.info("=" * 60)
        logger.info("PRERENDER RUN CONFIG")
        logger.info("=" * 60)
        logger.info(f"  Server:           {base_url}")
        logger.info(f"  Build Directory:  {self.build_directory}")
        logger.info(f"  Routes:           {len(self.all_routes())} (including /)")
        logger.info(f"  Lanes:            {self.lanes}")
        logger.info(f"  Max Attempts:     {self.max_attempts} per route")
        logger.info(f"  User Agent:       {self.user_agent}")
        logger.info(f"  Blocked Patterns: {len(self.deny_list())} configured")
        if self.ready_selector:
            logger.info(f"  Ready Selector:   {self.ready_selector}")
        if not self.map_tile_host:
            logger.info(f"  Map Tiles:        {MAP_TILE_HOST_ENV} not set, tiles not blocked")
        logger.info("=" * 60)


def _int_option(options: dict, key: str, default: int) -> int:
    value = options.get(key)
    if value is None:
        return default
    # bool is an int subclass; "port": true is still a mistake
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"'{key}' must be an integer, got {value!r}")
    return value


def _str_option(options: dict, key: str, default: str) -> str:
    value = options.get(key)
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        raise ConfigError(f"'{key}' must be a string, got {value!r}")
    return value
