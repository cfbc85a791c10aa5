"""
Command-line interface for watchcode.

This is the main entry point for the application.
"""

import argparse
import asyncio
import dataclasses
import logging
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from watchcode import __license__, __url__, __version__
from watchcode.config import (
    TOML_AVAILABLE,
    Config,
    ConfigError,
    get_config_dirs,
    load_config,
    save_default_config,
)
from watchcode.daemon import Daemon
from watchcode.encoder import AccelBackend, encoder_name, have_encoder, pick_backend
from watchcode.log import setup_logging

logger = logging.getLogger(__name__)


# -------------------- ARGUMENT PARSING --------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="watchcode",
        description="Watch a directory for new videos, transcode them and move them to a library.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Every option can also be set in the environment (WATCH_DIR, TEMP_DIR,
COMPLETE_DIR, VIDEO_ACCEL_API, VIDEO_CODEC, ...) or in a config file.
Command-line options win over both.

Examples:
  %(prog)s                                   # Run with environment/config settings
  %(prog)s --watch-dir ~/dl --complete-dir ~/media --accel cpu --codec libsvtav1
  %(prog)s --codec-skip --sample-duration 120
  %(prog)s --show-config                     # Print the effective configuration
  %(prog)s --clean                           # Remove empty directories and exit
        """,
    )

    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}\nLicense: {__license__}\nURL: {__url__}",
    )
    parser.add_argument("-c", "--config", type=Path, metavar="FILE", help="Read settings from FILE only")
    parser.add_argument("-d", "--debug", action="store_true", help="Enable debug logging")

    dir_group = parser.add_argument_group("Directories")
    dir_group.add_argument("--watch-dir", type=Path, help="Directory to watch for new files (default: /watch)")
    dir_group.add_argument("--temp-dir", type=Path, help="Scratch directory for running encodes (default: /temp)")
    dir_group.add_argument("--complete-dir", type=Path, help="Where finished files go (default: /ready)")

    enc_group = parser.add_argument_group("Encoding")
    enc_group.add_argument("--accel", help="Acceleration api: cpu, va, qsv, nvenc, vulkan (default: va)")
    enc_group.add_argument("--device", help="Hardware device (default: /dev/dri/renderD128)")
    enc_group.add_argument("--codec", help="Target codec, or encoder library for cpu (default: av1)")
    enc_group.add_argument("--bitrate", help="Video bitrate, or quality index for qsv (default: 4M)")
    enc_group.add_argument(
        "--codec-skip",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Move files already in the target codec without transcoding",
    )

    file_group = parser.add_argument_group("File handling")
    file_group.add_argument("--delete-source", dest="delete_source", action="store_true", default=None)
    file_group.add_argument("--keep-source", dest="delete_source", action="store_false")
    file_group.add_argument("--delete-misc", dest="delete_misc", action="store_true", default=None,
                            help="Delete files that are neither video nor subtitle")
    file_group.add_argument("--keep-misc", dest="delete_misc", action="store_false")
    file_group.add_argument("--sample-duration", type=float, metavar="SECONDS",
                            help="Skip videos shorter than this (0 disables)")
    file_group.add_argument("--clean-depth", type=int, metavar="N",
                            help="Remove empty directories at depth >= N (negative disables)")

    queue_group = parser.add_argument_group("Queue")
    queue_group.add_argument("--interval", dest="queue_interval", type=float, metavar="SECONDS",
                             help="Seconds between queue checks (default: 5)")
    queue_group.add_argument("--max-retries", type=int, metavar="N",
                             help="Give up on a file after N failed encodes (0 = never)")
    queue_group.add_argument("--stable-wait", type=float, metavar="SECONDS",
                             help="Seconds a new file must stay unchanged (default: 2)")
    queue_group.add_argument("--progress", dest="show_progress", action="store_true", default=None)
    queue_group.add_argument("--no-progress", dest="show_progress", action="store_false")

    util_group = parser.add_argument_group("Utilities")
    util_group.add_argument("--show-config", action="store_true", help="Print the effective configuration and exit")
    util_group.add_argument("--check-requirements", action="store_true", help="Check ffmpeg and encoder availability")
    util_group.add_argument("--clean", action="store_true", help="Remove empty directories once and exit")
    util_group.add_argument("--init-config", action="store_true", help="Write an example user config file and exit")

    return parser


CLI_FIELDS = (
    "watch_dir",
    "temp_dir",
    "complete_dir",
    "accel",
    "device",
    "codec",
    "bitrate",
    "codec_skip",
    "delete_source",
    "delete_misc",
    "sample_duration",
    "clean_depth",
    "queue_interval",
    "max_retries",
    "stable_wait",
    "show_progress",
)


def parse_args(args: Optional[List[str]] = None) -> Tuple[Config, argparse.Namespace]:
    """Parse command-line arguments and return the effective config + namespace."""
    ns = build_parser().parse_args(args)
    overrides: Dict[str, Any] = {name: getattr(ns, name) for name in CLI_FIELDS}
    if ns.debug:
        overrides["log_level"] = "DEBUG"
    cfg = load_config(ns.config, overrides)
    return cfg, ns


# -------------------- UTILITY COMMANDS --------------------


def show_config(cfg: Config) -> int:
    for key, value in dataclasses.asdict(cfg).items():
        print(f"{key} = {value}")
    print(f"backend = {pick_backend(cfg.accel).value}")
    return 0


def check_requirements(cfg: Config) -> int:
    """Check that the external tools needed by ``cfg`` are usable."""
    print(f"watchcode v{__version__} - Requirements Check")
    print("=" * 50)

    all_ok = True
    for tool in ("ffmpeg", "ffprobe"):
        if shutil.which(tool) is None:
            print(f"  ✗ {tool}: NOT FOUND")
            all_ok = False
            continue
        try:
            result = subprocess.run([tool, "-version"], capture_output=True, text=True, timeout=5)
        except (OSError, subprocess.SubprocessError) as e:
            print(f"  ✗ {tool}: error - {e}")
            all_ok = False
            continue
        version_line = result.stdout.split("\n")[0] if result.stdout else "unknown"
        print(f"  ✓ {tool}: {version_line}")

    backend = pick_backend(cfg.accel)
    enc = encoder_name(backend, cfg.codec)
    if have_encoder(enc):
        print(f"  ✓ encoder {enc}: available")
    else:
        print(f"  ✗ encoder {enc}: not available")
        all_ok = False

    if backend in (AccelBackend.VAAPI, AccelBackend.QSV):
        if Path(cfg.device).exists():
            print(f"  ✓ device {cfg.device}: found")
        else:
            print(f"  ✗ device {cfg.device}: not found")
            all_ok = False

    print(f"  {'✓' if TOML_AVAILABLE else '○'} TOML support: {'available' if TOML_AVAILABLE else 'not available'}")
    print()
    print("✓ All requirements satisfied" if all_ok else "✗ Some requirements missing")
    return 0 if all_ok else 1


def run_clean(cfg: Config) -> int:
    daemon = Daemon(cfg)
    removed = asyncio.run(daemon.cleanup())
    for path in removed:
        print(f"Removed empty directory: {path}")
    return 0


def handle_utility_commands(cfg: Config, ns: argparse.Namespace) -> Optional[int]:
    """Handle utility commands that exit immediately."""
    if ns.show_config:
        return show_config(cfg)
    if ns.check_requirements:
        return check_requirements(cfg)
    if ns.init_config:
        path = save_default_config(get_config_dirs()["user"])
        print(f"Config file: {path}")
        return 0
    if ns.clean:
        return run_clean(cfg)
    return None


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    try:
        cfg, ns = parse_args(argv)
    except ConfigError as e:
        print(f"watchcode: error: {e}", file=sys.stderr)
        return 2

    setup_logging(cfg.log_level)

    result = handle_utility_commands(cfg, ns)
    if result is not None:
        return result

    try:
        asyncio.run(Daemon(cfg).run())
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
