"""
leakprobe CLI - entry point for running a probe or the log receiver.

Usage examples:
    python -m leakprobe.cli probe
    python -m leakprobe.cli probe --window 5 --ice-server stun:stun.example.org:3478 --print
    python -m leakprobe.cli serve
"""

import argparse
import asyncio
import dataclasses
import sys

from leakprobe.base.config import get_config, set_config, setup_logging
from leakprobe.errors import LeakProbeError

EXIT_OK = 0
EXIT_UNDELIVERED = 1
EXIT_UNSUPPORTED = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="leakprobe", description="WebRTC address exposure probe")
    sub = parser.add_subparsers(dest="command", required=True)

    probe = sub.add_parser("probe", help="Run one probe and deliver the report")
    probe.add_argument("--window", type=float, help="Collection window in seconds")
    probe.add_argument("--ice-server", action="append", dest="ice_servers", metavar="URI",
                       help="Discovery server URI (repeatable)")
    probe.add_argument("--sink", help="Report sink URL")
    probe.add_argument("--print", action="store_true", dest="print_report",
                       help="Also print the report to stdout")

    sub.add_parser("serve", help="Start the reference log receiver")
    return parser


def _apply_overrides(args: argparse.Namespace) -> None:
    cfg = get_config()
    collector = cfg.collector
    if args.window is not None:
        if args.window <= 0:
            raise SystemExit("--window must be positive")
        collector = dataclasses.replace(collector, window_seconds=args.window)
    if args.ice_servers:
        collector = dataclasses.replace(collector, ice_servers=tuple(args.ice_servers))
    sink = cfg.sink
    if args.sink:
        sink = dataclasses.replace(sink, url=args.sink)
    set_config(dataclasses.replace(cfg, collector=collector, sink=sink))


def run_probe(args: argparse.Namespace) -> int:
    from leakprobe.engine.pipeline import LeakProbePipeline

    _apply_overrides(args)
    result = asyncio.run(LeakProbePipeline(get_config()).run())
    if args.print_report:
        print(result.content)
    if not result.capability_available:
        return EXIT_UNSUPPORTED
    return EXIT_OK if result.delivered else EXIT_UNDELIVERED


def run_server() -> int:
    import uvicorn
    from leakprobe.server.api import create_app

    config = get_config()
    print(f"Leak log server listening at http://{config.sink.host}:{config.sink.port}")
    print(f"Logs will be saved to: {config.sink_log_path}")
    uvicorn.run(create_app(config), host=config.sink.host, port=config.sink.port)
    return EXIT_OK


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        setup_logging(get_config())
    except LeakProbeError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_UNDELIVERED

    if args.command == "probe":
        return run_probe(args)
    return run_server()


if __name__ == "__main__":
    sys.exit(main())
