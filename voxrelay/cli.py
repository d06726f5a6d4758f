"""voxrelay CLI entry point.

Usage:
    voxrelay run [--config relay.yaml] [--host 0.0.0.0] [--port 8766]
    voxrelay init [--output relay.yaml]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from loguru import logger


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def cmd_run(args: argparse.Namespace) -> None:
    """Run the relay server."""
    from voxrelay.config import load_config

    config_path = args.config
    if config_path and not Path(config_path).exists():
        logger.error(f"Config file not found: {config_path}")
        sys.exit(1)

    config = load_config(config_path)
    configure_logging(config.logging.level)

    logger.info(f"voxrelay starting with config: {config_path or '<defaults>'}")
    logger.info(f"Listening on: {args.host or config.server.host}:{args.port or config.server.port}")
    logger.info(f"Bridge endpoints: {config.server.listen_path}, {config.server.token_path_prefix}<token>")
    if not config.vapi.api_key:
        logger.warning("No Vapi API key configured; bridge mode sessions will fail to provision")

    from voxrelay.server import run_server

    run_server(config, host=args.host, port=args.port)


def cmd_init(args: argparse.Namespace) -> None:
    """Generate a starter configuration file."""
    output = Path(args.output)

    if output.exists() and not args.force:
        logger.error(f"File already exists: {output}. Use --force to overwrite.")
        sys.exit(1)

    from voxrelay.config import DEFAULT_CONFIG_YAML

    output.write_text(DEFAULT_CONFIG_YAML)
    print(f"Configuration written to: {output}")
    print(f"\nEdit the file and run: voxrelay run --config {output}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="voxrelay",
        description="voxrelay - telephony to voice-assistant audio bridge",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # `voxrelay run`
    run_parser = subparsers.add_parser("run", help="Run the relay server")
    run_parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to a YAML config file (default: built-in defaults + environment)",
    )
    run_parser.add_argument("--host", default=None, help="Override the listen host")
    run_parser.add_argument("--port", "-p", type=int, default=None, help="Override the listen port")

    # `voxrelay init`
    init_parser = subparsers.add_parser("init", help="Generate a starter config file")
    init_parser.add_argument(
        "--output", "-o",
        default="relay.yaml",
        help="Output file path (default: relay.yaml)",
    )
    init_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Overwrite existing file",
    )
    return parser


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if args.command == "run":
        cmd_run(args)
    elif args.command == "init":
        cmd_init(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
