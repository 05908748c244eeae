"""Command line entry point.

Usage:
    shardgen                        # pgn/*.pgn -> model_data/*.pgn.libsvm.*
    PRINCHESS=./princhess shardgen --workers 4
    shardgen match sprt_gain --dry-run
"""

from __future__ import annotations

import argparse
import logging
import shlex
from pathlib import Path
from typing import List, Optional

from .config import Config, ShardGenSettings
from .logging_utils import setup_logging
from .matches import build_command, load_profiles, run_match
from .pipeline import ShardGenerator
from .utils.error_utils import ConfigurationError, ShardGenError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shardgen",
        description="Convert game records into training sample shards.",
    )
    parser.add_argument("--config", type=str, help="YAML config file (default: ./config.yaml if present).")
    parser.add_argument("--input-dir", type=Path, help="Directory of game-record files.")
    parser.add_argument("--output-dir", type=Path, help="Directory receiving shard files.")
    parser.add_argument("--workers", type=int, help="Maximum concurrent converter processes.")
    parser.add_argument("--timeout", type=float, help="Seconds before a converter run is treated as failed.")
    parser.add_argument("--log-dir", type=str, help="Directory for text and JSONL logs.")
    parser.add_argument("--no-progress", action="store_true", help="Disable the progress bar.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Increase logging verbosity.")

    sub = parser.add_subparsers(dest="command")
    match = sub.add_parser("match", help="Run a configured cutechess-cli match profile.")
    match.add_argument("profile", help="Profile name from the 'matches' config section.")
    match.add_argument("--dry-run", action="store_true", help="Print the command instead of running it.")
    return parser


def _settings(cfg: Config, args: argparse.Namespace) -> ShardGenSettings:
    settings = ShardGenSettings.from_config(cfg)
    if args.input_dir is not None:
        settings.input_dir = args.input_dir
    if args.output_dir is not None:
        settings.output_dir = args.output_dir
    if args.workers is not None:
        settings.workers = args.workers
    if args.timeout is not None:
        settings.converter_timeout = args.timeout
    settings.validate()
    return settings


def _generate(cfg: Config, args: argparse.Namespace, logger: logging.Logger) -> int:
    settings = _settings(cfg, args)
    logger.info("Converter: %s", settings.converter_binary)
    summary = ShardGenerator(settings).run(progress=not args.no_progress)
    logger.info("Done: %d files, %d shards in %s",
                len(summary.results), summary.total_shards, settings.output_dir)
    return 0


def _match(cfg: Config, args: argparse.Namespace, logger: logging.Logger) -> int:
    profiles = load_profiles(cfg)
    profile = profiles.get(args.profile)
    if profile is None:
        known = ", ".join(sorted(profiles)) or "none"
        raise ConfigurationError(f"Unknown match profile '{args.profile}' (configured: {known})")
    tool = cfg.matches().get("tool", "cutechess-cli")
    if args.dry_run:
        print(shlex.join(build_command(profile, tool)))
        return 0
    return run_match(profile, tool)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    level = logging.DEBUG if args.verbose else logging.INFO

    try:
        cfg = Config.load_or_default(args.config)
    except ConfigurationError as e:
        setup_logging(log_dir=None, level=level).error("%s", e)
        return 1

    log_dir = args.log_dir if args.log_dir is not None else cfg.logging().get("dir", "logs")
    logger = setup_logging(log_dir=log_dir or None, level=level)

    try:
        if args.command == "match":
            return _match(cfg, args, logger)
        return _generate(cfg, args, logger)
    except ShardGenError as e:
        if "input" in e.context_data:
            logger.error("%s (input: %s)", e, e.context_data["input"])
        else:
            logger.error("%s", e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
