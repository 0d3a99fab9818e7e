from __future__ import annotations

import argparse
import logging
import shlex
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .coloring import CLEAR_SCREEN, danger, header, set_color_override, use_color
from .config import MonitorSettings, find_config, load_config, settings_from_config
from .errors import CaptureBackendError, InterfaceNotFoundError
from .monitor import Monitor
from .reporting import render_counters, render_session_summary
from .sinks import CsvRecordSink
from .sources import (
    FrameSource,
    LiveFrameSource,
    PcapReplaySource,
    SubprocessFrameSource,
    is_supported_capture,
    resolve_interface,
)
from .stats import CounterSnapshot, StatsAggregator


logger = logging.getLogger("layerwatch")


def _build_banner() -> str:
    banner = [
        "======================================================================",
        "   L A Y E R W A T C H   ::   link / network / transport / app",
        "======================================================================",
        f"  LAYERWATCH v{__version__}",
        "======================================================================",
    ]
    return "\n".join(banner)


def configure_logging(verbose: int = 0) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose >= 2:
        level = logging.DEBUG
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s"))
    root = logging.getLogger("layerwatch")
    root.handlers[:] = [handler]
    root.setLevel(level)
    logging.getLogger("scapy.runtime").setLevel(logging.ERROR)


def build_parser() -> argparse.ArgumentParser:
    banner = _build_banner()
    parser = argparse.ArgumentParser(
        prog="layerwatch",
        description=f"{banner}\n\nLive packet monitor with per-layer CSV logs and running counters.",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument(
        "interface",
        help="Network interface to capture from (e.g. eth0, tun0).",
    )

    general = parser.add_argument_group(header("General Options"))
    capture = parser.add_argument_group(header("Capture Options"))
    output = parser.add_argument_group(header("Output Controls"))

    general.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a layerwatch TOML config file.",
    )
    general.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v info, -vv debug).",
    )
    general.add_argument(
        "--version",
        action="version",
        version=f"layerwatch {__version__}",
    )

    capture.add_argument(
        "--helper",
        default=None,
        help="Capture helper command that writes length-prefixed frames to stdout.\n"
        "The interface name is appended as its last argument.",
    )
    capture.add_argument(
        "--replay",
        type=Path,
        default=None,
        help="Replay frames from a pcap/pcapng file instead of capturing live.",
    )
    capture.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for a frame before checking for renders and signals (default: 0.5).",
    )
    capture.add_argument(
        "--render-interval",
        type=float,
        default=None,
        help="Seconds between statistics renders (default: 1.0).",
    )

    output.add_argument(
        "-o",
        "--output-dir",
        type=Path,
        default=None,
        help="Directory for the CSV layer logs (default: current directory).",
    )
    output.add_argument(
        "-k",
        "--keep",
        action="store_true",
        help="Append to existing CSV logs instead of resetting them at startup.",
    )
    output.add_argument(
        "--no-render",
        action="store_true",
        help="Do not print live statistics while capturing.",
    )
    output.add_argument(
        "--no-color",
        action="store_true",
        help="Disable ANSI colors in output.",
    )
    return parser


def _load_settings(args: argparse.Namespace) -> MonitorSettings:
    config_path = find_config(args.config)
    loaded = load_config(config_path)
    errors = list(loaded.errors)
    settings = settings_from_config(loaded.data, errors)
    for err in errors:
        logger.warning(err)
    if loaded.path is not None:
        logger.info("Loaded config from %s", loaded.path)
    return settings.override(
        read_timeout=args.timeout,
        render_interval=args.render_interval,
        output_dir=args.output_dir,
        helper=args.helper,
        keep_existing=True if args.keep else None,
    )


def _report_missing_interface(exc: InterfaceNotFoundError) -> None:
    print(danger(str(exc)), file=sys.stderr)
    if exc.available:
        print("Available interfaces:", file=sys.stderr)
        for name in exc.available:
            print(f"  - {name}", file=sys.stderr)
    else:
        print("No capture interfaces could be enumerated.", file=sys.stderr)


def _build_source(args: argparse.Namespace, settings: MonitorSettings) -> tuple[FrameSource, str]:
    if args.replay is not None:
        return PcapReplaySource(args.replay), str(args.replay)
    if settings.helper:
        command = shlex.split(settings.helper) + [args.interface]
        return SubprocessFrameSource(command, max_frame_size=settings.max_frame_size), args.interface
    return LiveFrameSource(args.interface), args.interface


def _print_counters(snapshot: CounterSnapshot, elapsed: float, previous: Optional[CounterSnapshot]) -> None:
    prefix = CLEAR_SCREEN if use_color() else ""
    print(prefix + render_counters(snapshot, elapsed, previous), flush=True)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    if args.no_color:
        set_color_override(False)

    settings = _load_settings(args)
    print(_build_banner())

    if args.replay is not None:
        if not is_supported_capture(args.replay):
            print(f"Replay target is not a supported pcap/pcapng file: {args.replay}", file=sys.stderr)
            return 2
    else:
        try:
            resolve_interface(args.interface)
        except InterfaceNotFoundError as exc:
            _report_missing_interface(exc)
            return 1

    sink = CsvRecordSink(settings.output_dir, reset=not settings.keep_existing, filenames=settings.filenames())
    try:
        sink.open()
    except OSError as exc:
        print(danger(f"Unable to open output files in {settings.output_dir}: {exc}"), file=sys.stderr)
        sink.close()
        return 1

    try:
        source, source_name = _build_source(args, settings)
    except CaptureBackendError as exc:
        print(danger(str(exc)), file=sys.stderr)
        sink.close()
        return 1

    monitor = Monitor(
        source,
        sink,
        StatsAggregator(),
        settings,
        renderer=None if args.no_render else _print_counters,
        source_name=source_name,
    )
    restore = monitor.install_signal_handlers()
    try:
        result = monitor.run()
    finally:
        restore()

    print(render_session_summary(result, sink.paths))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
