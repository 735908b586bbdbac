"""Command line utilities for disputetrace."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List

import yaml

from ..configuration import AppConfig, build_default_config, load_config, parse_overrides
from ..core.context import Context
from ..core.errors import TraceProviderError
from ..core.provider import TraceProvider
from ..core.state import to_hex

DEFAULT_CONFIG_PATH = Path("configs/disputetrace.default.yaml")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Trace proofs for fault dispute games")
    parser.add_argument("--config", type=Path, help="Path to a disputetrace YAML configuration file")
    parser.add_argument(
        "--set",
        dest="overrides",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override configuration values using dotted paths",
    )
    parser.add_argument("--dir", type=Path, help="Trace directory (overrides trace.directory)")
    parser.add_argument(
        "--format",
        choices=("human", "json", "yaml"),
        default="human",
        help="Output format",
    )
    parser.add_argument(
        "--validate-only",
        action="store_true",
        help="Validate the configuration without printing it",
    )
    parser.add_argument(
        "--log-level",
        choices=("debug", "info", "warning", "error"),
        default="warning",
        help="Logging verbosity",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Abort the query after this many seconds",
    )
    query = parser.add_mutually_exclusive_group()
    query.add_argument("--get", type=int, metavar="INDEX", help="Print the state commitment at INDEX")
    query.add_argument("--oracle-data", type=int, metavar="INDEX", help="Print the oracle data at INDEX")
    query.add_argument("--preimage", type=int, metavar="INDEX", help="Print the state and proof data at INDEX")
    query.add_argument(
        "--absolute-prestate",
        action="store_true",
        help="Print the commitment to the absolute pre-state",
    )
    return parser


def format_config(config: AppConfig, output_format: str) -> str:
    return _render(config.to_dict(), output_format)


def run_query(provider: TraceProvider, ctx: Context, args: argparse.Namespace) -> Dict[str, Any]:
    """Run the query selected on the command line and return its result."""

    if args.get is not None:
        return {"index": args.get, "commitment": to_hex(provider.get(ctx, args.get))}
    if args.oracle_data is not None:
        datum = provider.get_oracle_data(ctx, args.oracle_data)
        return {"index": args.oracle_data, **datum.to_dict()}
    if args.preimage is not None:
        state_data, proof_data = provider.get_preimage(ctx, args.preimage)
        return {
            "index": args.preimage,
            "state_data": to_hex(state_data),
            "proof_data": to_hex(proof_data),
        }
    return {"absolute_prestate": to_hex(provider.absolute_pre_state(ctx))}


def _render(data: Dict[str, Any], output_format: str) -> str:
    if output_format == "json":
        return json.dumps(data, indent=2, sort_keys=True)
    if output_format == "yaml":
        return yaml.safe_dump(data, sort_keys=False)
    return _format_human(data)


def _format_human(data: Dict[str, Any], indent: int = 0) -> str:
    lines: List[str] = []
    for key, value in data.items():
        if isinstance(value, dict):
            lines.append(f"{' ' * indent}[{key}]")
            lines.append(_format_human(value, indent + 2))
        else:
            lines.append(f"{' ' * indent}{key:>20}: {value}")
    return "\n".join(lines)


def _has_query(args: argparse.Namespace) -> bool:
    return (
        args.get is not None
        or args.oracle_data is not None
        or args.preimage is not None
        or args.absolute_prestate
    )


def main(argv: Iterable[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        overrides = parse_overrides(args.overrides or [])
    except ValueError as exc:  # pragma: no cover - argparse already ensures format
        parser.error(str(exc))
        return 2
    if args.dir is not None:
        overrides["trace.directory"] = str(args.dir)

    config: AppConfig
    try:
        if args.config is not None:
            config = load_config(args.config, overrides=overrides)
        elif DEFAULT_CONFIG_PATH.exists():
            config = load_config(DEFAULT_CONFIG_PATH, overrides=overrides)
        else:
            config = build_default_config(overrides)
    except (OSError, ValueError) as exc:
        parser.error(str(exc))
        return 2

    if args.validate_only:
        return 0

    if not _has_query(args):
        print(format_config(config, args.format))
        return 0

    if args.timeout is not None and args.timeout <= 0:
        parser.error("--timeout must be positive")
        return 2
    ctx = Context.background()
    if args.timeout is not None:
        ctx = ctx.with_timeout(args.timeout)

    provider = TraceProvider.from_config(config)
    try:
        result = run_query(provider, ctx, args)
    except (TraceProviderError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print(_render(result, args.format))
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
