#!/usr/bin/env python3
"""
Prerender CLI
=============
Reads ``.rsp.json``, serves the build directory on localhost, renders every
route with headless Chromium and writes the snapshots back into the build
directory.

Exit status: 0 on success, 1 on a configuration/server error or when a
route exhausts its retries.

Run with: python -m prerender
"""

import argparse
import logging
import sys

from .asset_server import AssetServer
from .coordinator import CrawlCoordinator
from .errors import ConfigError, PrerenderError, RouteFailedError
from .run_config import CONFIG_FILENAME, PrerenderRunConfig

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%H:%M:%S'
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='prerender',
        description='Render a built single-page app into static HTML snapshots',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m prerender                        # reads ./.rsp.json
  python -m prerender --config site.json     # alternate config file
        """
    )
    parser.add_argument(
        '--config', type=str, default=CONFIG_FILENAME,
        help=f'Path to the JSON run configuration (default: {CONFIG_FILENAME})',
    )
    parser.add_argument(
        '--verbose', action='store_true',
        help='Log debug output (blocked requests, server access log)',
    )
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)

    try:
        cfg = PrerenderRunConfig.from_file(args.config)
    except ConfigError as e:
        logger.error(f"Error: {e}")
        return 1

    server = AssetServer(cfg.build_directory, port=cfg.port)
    try:
        base_url = server.start()
    except PrerenderError as e:
        logger.error(f"Error: {e}")
        return 1
    print(base_url)

    try:
        cfg.log_summary(base_url)
        CrawlCoordinator(cfg).run_sync(base_url)
    except RouteFailedError as e:
        logger.error(
            f'Error: Failed to process route "{e.route}" after {e.attempts} attempts'
            f"\nMessage: {e.__cause__}"
        )
        return 1
    except PrerenderError as e:
        logger.error(f"Error: {e}")
        return 1
    except Exception as e:
        logger.error(f"Error: {type(e).__name__}: {e}")
        logger.debug("Unexpected failure", exc_info=True)
        return 1
    finally:
        server.close()

    logger.info("Finish react-spa-prerender tasks!")
    return 0


if __name__ == '__main__':
    sys.exit(main())
