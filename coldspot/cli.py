"""Command-line entry point.

Usage::

    coldspot run --config coldspot.yaml
    coldspot prepare --config coldspot.yaml --workdir cache/
    coldspot classify --config coldspot.yaml
    coldspot figure --config coldspot.yaml --no-diagnostics

Exit status is 0 on success and 1 when a ``PipelineError`` halts the
run; the structured error payload is logged before exiting.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from coldspot import __version__
from coldspot.core.config import PipelineConfig
from coldspot.core.exceptions import PipelineError
from coldspot.orchestrators import coldspot_pipeline

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger("coldspot.cli")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s | %(message)s"

COMMANDS = {
    "run": coldspot_pipeline.run_pipeline,
    "prepare": coldspot_pipeline.run_prepare,
    "classify": coldspot_pipeline.run_classify,
    "figure": coldspot_pipeline.run_figure,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="coldspot",
        description="Identify ballast-water exchange cold spots and plot them.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "command",
        choices=sorted(COMMANDS),
        help="stage to run ('run' runs all three)",
    )
    parser.add_argument("--config", required=True, type=Path, help="YAML configuration file")
    parser.add_argument("--workdir", type=Path, help="override the configured work directory")
    parser.add_argument(
        "--diagnostics",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="write diagnostic PNGs (default: as configured)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser


def load_config(args: argparse.Namespace) -> PipelineConfig:
    """Load the YAML config and apply command-line overrides."""
    config = PipelineConfig.from_yaml(args.config)
    overrides: dict[str, object] = {}
    if args.workdir is not None:
        overrides["workdir"] = args.workdir
    if args.diagnostics is not None:
        overrides["plot_diagnostics"] = args.diagnostics
    return dataclasses.replace(config, **overrides) if overrides else config


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level, format=LOG_FORMAT)

    try:
        config = load_config(args)
        config.workdir.mkdir(parents=True, exist_ok=True)
        result = COMMANDS[args.command](config)
    except PipelineError as exc:
        logger.error("Pipeline halted | %s", json.dumps(exc.to_error_dict()))
        return 1

    logger.info("Command completed | command=%s | result=%s", args.command, type(result).__name__)
    return 0
