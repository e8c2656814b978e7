from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Iterable, Optional

from .app.config import describe_config, describe_network, load_test_config, resolve_config
from .domain.errors import ConfigurationError
from .probes.network_throttle import NETWORK_PRESETS, format_network_conditions

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def run_cli(argv: Optional[Iterable[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="render_perf", description="Browser render performance tests")
    parser.add_argument("--log-level", choices=LOG_LEVELS, default="WARNING")
    subparsers = parser.add_subparsers(dest="command", required=True)

    resolve_parser = subparsers.add_parser("resolve", help="Resolve a test configuration and print it as JSON")
    resolve_parser.add_argument("--config", type=Path, required=True, help="YAML test configuration")
    resolve_parser.add_argument("--title", default=None, help="Test title (defaults to the file stem)")
    environment = resolve_parser.add_mutually_exclusive_group()
    environment.add_argument("--ci", dest="is_ci", action="store_const", const=True, default=None)
    environment.add_argument("--local", dest="is_ci", action="store_const", const=False)

    subparsers.add_parser("presets", help="List network throttling presets")

    args = parser.parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")

    if args.command == "resolve":
        return _handle_resolve(args)
    if args.command == "presets":
        return _handle_presets()
    return 0


def _handle_resolve(args) -> int:
    title = args.title or args.config.stem
    try:
        resolved = resolve_config(load_test_config(args.config), title, is_ci=args.is_ci)
    except ConfigurationError as err:
        return _abort(f"invalid configuration: {err}")
    payload = {
        "name": resolved.name,
        "environment": resolved.environment,
        "summary": describe_config(resolved),
        "network": describe_network(resolved),
        "throttle": resolved.throttle_rate,
        "warmup": resolved.warmup,
        "iterations": resolved.iterations,
        "track_fps": resolved.track_fps,
        "track_memory": resolved.track_memory,
        "track_web_vitals": resolved.track_web_vitals,
        "audit": asdict(resolved.audit),
        "export_trace": asdict(resolved.export_trace),
        "thresholds": resolved.thresholds.to_dict(),
        "buffers": resolved.buffers.to_dict(),
    }
    print(json.dumps(payload, indent=2, sort_keys=True))
    return 0


def _handle_presets() -> int:
    for conditions in NETWORK_PRESETS.values():
        print(format_network_conditions(conditions))
    return 0


def _abort(message: str) -> int:
    print(message, file=sys.stderr)
    return 1


def main() -> None:
    sys.exit(run_cli())


if __name__ == "__main__":
    main()
