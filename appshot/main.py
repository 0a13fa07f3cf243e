"""Command line entry point: ``appshot --config config.json [--yuzu-url URL]``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from appshot.errors import ConfigurationError
from appshot.schemas import AppshotConfig
from appshot.services.artifacts import ArtifactStore
from appshot.services.coordinator import RunCoordinator, exit_code

LOGGER = logging.getLogger("appshot")


def configure_logging(level: str, log_file: Optional[Path] = None) -> None:
    resolved = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=resolved, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        logging.getLogger().addHandler(handler)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="appshot",
        description="Generate framed App Store screenshots by automating an AppScreen editor.",
    )
    parser.add_argument("--config", type=Path, default=Path("config.json"), help="Path to config.json")
    parser.add_argument("--yuzu-url", dest="yuzu_url", help="Editor base URL (skips local detection)")
    parser.add_argument("--output", type=Path, help="Output directory (default: output.path from the config)")
    parser.add_argument(
        "--source-root",
        type=Path,
        help="Directory holding the per-size raw screenshot folders (default: the config file's directory)",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("APPSHOT_LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO or $APPSHOT_LOG_LEVEL)",
    )
    parser.add_argument("--log-file", type=Path, help="Also write the log to this file")
    parser.add_argument(
        "--check",
        action="store_true",
        help="Validate the configuration and source screenshots without launching a browser",
    )
    return parser


def build_store(config: AppshotConfig, config_path: Path, args: argparse.Namespace) -> ArtifactStore:
    base_dir = config_path.resolve().parent
    output_root = args.output or base_dir / config.output.path
    source_root = args.source_root or base_dir
    return ArtifactStore(output_root=output_root, source_root=source_root)


def run_check(config: AppshotConfig, store: ArtifactStore) -> int:
    missing = store.missing_sources(config)
    expected = config.tasks_per_size()
    for size in config.sizes:
        absent = missing.get(size.label, [])
        LOGGER.info("%s: %s/%s source screenshots present", size.label, expected - len(absent), expected)
        for path in absent:
            LOGGER.error("  missing %s", path)
    if missing:
        return 1
    LOGGER.info("Configuration OK: %s screenshots to generate", config.total_expected())
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.log_file)

    LOGGER.info("Loading configuration from %s", args.config)
    try:
        config = AppshotConfig.load(args.config)
    except ConfigurationError as exc:
        LOGGER.error("%s", exc)
        return 1
    store = build_store(config, args.config, args)

    if args.check:
        return run_check(config, store)

    coordinator = RunCoordinator(config, store, base_url_override=args.yuzu_url)
    try:
        summary = asyncio.run(coordinator.run())
    except KeyboardInterrupt:
        LOGGER.warning("Interrupted")
        return 130
    return exit_code(summary)


if __name__ == "__main__":
    sys.exit(main())
