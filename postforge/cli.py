from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path

from .builder import Builder
from .config import SiteConfig
from .server import watch

logger = logging.getLogger(__name__)


def configure_logging(verbose: int, quiet: bool) -> None:
    level = logging.INFO
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S")


def build_site(config: SiteConfig) -> bool:
    builder = Builder(config)
    try:
        bundle = builder.update_all()
        bundle.result()
    except Exception:
        logger.exception("Build failed")
        return False
    finally:
        builder.close()
    return True


def run_watch(config: SiteConfig) -> bool:
    try:
        asyncio.run(watch(config))
    except KeyboardInterrupt:
        print("Stopped.")
    return True


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Static blog builder with a live-reloading editor server.")
    parser.add_argument("--config", default="site.toml", help="Path to site config file (TOML/YAML/JSON).")
    parser.add_argument("--output", default=None, help="Output directory, relative to the config file.")
    parser.add_argument("--port", default=None, type=int, help="Development server port (reload uses port + 1).")
    parser.add_argument(
        "--pwa",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Register the service worker on the homepage.",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Show debug output.")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only show warnings and errors.")
    parser.add_argument(
        "command",
        nargs="?",
        choices=("build", "watch"),
        default="build",
        help="Build once, or build and keep rebuilding on changes.",
    )
    args = parser.parse_args(argv)
    configure_logging(args.verbose, args.quiet)

    config_path = Path(args.config)
    if not config_path.exists():
        print(f"Config file not found: {config_path}", file=sys.stderr)
        sys.exit(1)
    config = SiteConfig.load(config_path).with_overrides(output_main=args.output, port=args.port, pwa=args.pwa)
    if not config.source_dir.exists():
        print(f"Source directory not found: {config.source_dir}", file=sys.stderr)
        sys.exit(1)

    if args.command == "watch":
        run_watch(config)
        return

    start = time.perf_counter()
    built = build_site(config)
    elapsed = time.perf_counter() - start
    if not built:
        sys.exit(1)
    print(f"Build completed in {elapsed:.2f}s.")
    print(f"Site generated in: {config.output_dir}")
