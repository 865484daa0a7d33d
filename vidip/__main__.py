#!/usr/bin/env python3
"""
vidip - Run as a module

Usage:
    python -m vidip [options] <IP_ADDRESS or last 3 digits>

Examples:
    sudo python -m vidip -l
    python -m vidip 192.168.0.90
    python -m vidip 90
    python -m vidip -c
"""

import argparse
import logging
import platform
import re
import sys
from typing import List, Mapping, Optional

from . import __version__, console
from .address import resolve_address
from .config import BridgeConfig
from .errors import DeviceNotFoundError, UnsupportedPlatformError, VidipError
from .pipeline import MODULE_TOOLS, REQUIRED_TOOLS, GstPipeline, check_dependencies
from .registry import DeviceRegistry, SystemRegistry
from .slots import SlotManager
from .snapshot import save_snapshot

TEST_URL = "https://webcamtests.com/"


class _Parser(argparse.ArgumentParser):
    """Reports bad input with exit code 1 (2 means 'no free slot')"""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def _resolution(value: str) -> str:
    if not re.match(r'^\d+x\d+$', value):
        raise argparse.ArgumentTypeError(f"invalid resolution '{value}', expected WIDTHxHEIGHT")
    return value


def build_parser() -> argparse.ArgumentParser:
    label = BridgeConfig.label
    parser = _Parser(
        prog='vidip',
        description='Turn an IP camera into a web camera (v4l2loopback + GStreamer)',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  sudo vidip -l            # Adds a new /dev/videoX labeled {label}-X
  vidip 192.168.0.90       # Streams from that IP into the first free {label} device
  vidip 90                 # Same as above, but uses default IP prefix: {BridgeConfig.default_ip_prefix}90
  vidip -s frame.png       # Saves one frame from the first {label} device

Environment:
  CAMERA_USER, CAMERA_PASS  camera credentials (default: root / pass)
  DEBUG=true                verbose GStreamer output
        """
    )

    actions = parser.add_mutually_exclusive_group()
    actions.add_argument(
        '-l', '--load',
        action='store_true',
        help='Load a new v4l2loopback device'
    )
    actions.add_argument(
        '-u', '--unload',
        action='store_true',
        help=f"Unload all v4l2loopback devices with '{label}-*' labels"
    )
    actions.add_argument(
        '-c', '--check',
        action='store_true',
        help=f'Check and list all loaded {label} v4l2loopback devices'
    )
    actions.add_argument(
        '-s', '--snapshot',
        metavar='FILE',
        help=f'Save one frame from a {label} device to FILE'
    )

    parser.add_argument(
        'address',
        nargs='?',
        metavar='IP_ADDRESS',
        help='Camera IP address, or its last 1-3 digits'
    )

    parser.add_argument(
        '-d', '--device',
        type=int,
        metavar='N',
        help='Device number for --snapshot (default: first labeled device)'
    )

    parser.add_argument(
        '--config',
        type=str,
        help='Path to a JSON config file'
    )

    parser.add_argument(
        '--resolution',
        type=_resolution,
        help=f'Override requested camera resolution (default: {BridgeConfig.resolution})'
    )

    parser.add_argument(
        '-v', '--version',
        action='version',
        version=__version__,
        help='Show version'
    )

    return parser


def load_config(args: argparse.Namespace, environ: Optional[Mapping[str, str]] = None) -> BridgeConfig:
    """Defaults, then config file, then environment, then command line"""
    config = BridgeConfig.load(args.config) if args.config else BridgeConfig()
    config = BridgeConfig.from_env(environ, config)
    if args.resolution:
        config.resolution = args.resolution
    return config


def configure_logging(debug: bool):
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def check_platform():
    if platform.system() != "Linux":
        raise UnsupportedPlatformError("This tool only runs on Linux systems.")


def print_slots(manager: SlotManager):
    config = manager.config
    slots = manager.inspect()
    console.success(
        f"{config.module_name} module is currently loaded with these {config.label} devices:"
    )
    if not slots:
        console.plain(f" No {config.label} devices found.")
    for slot in slots:
        state = " [in use]" if slot.in_use else ""
        console.plain(f" - {slot.path} (label: {slot.label}){state}")


def take_snapshot(manager: SlotManager, filepath: str, index: Optional[int] = None):
    registry = manager.registry
    if index is None:
        labeled = [slot.index for slot in manager.inspect()]
        if not labeled:
            raise DeviceNotFoundError(
                f"No {manager.config.label} devices found.",
                ["Please load one first: sudo vidip -l"],
            )
        index = labeled[0]
    device = registry.device_path(index)
    if not registry.device_exists(index):
        raise DeviceNotFoundError(f"Device {device} does not exist.")

    if save_snapshot(device, filepath):
        console.success(f"Saved frame from {device} to {filepath}")
    else:
        console.warn(f"Saved frame from {device} to {filepath}, but it is blank.")
        console.plain("Is a camera streaming into this device?")


def stream(manager: SlotManager, address: str) -> int:
    config = manager.config
    ip = resolve_address(address, config.default_ip_prefix)
    console.info(f"Using IP address: {ip}")

    slot = manager.select_stream_slot()
    pipeline = GstPipeline(ip, slot.path, config)
    if config.debug:
        console.warn(pipeline.describe())

    console.notice(
        f"Starting video stream from IP camera at {ip} to {slot.path}. Press Ctrl+C to stop."
    )
    console.plain(f"Test here: {TEST_URL}")
    return pipeline.run()


def report(error: VidipError) -> int:
    """Print an error with its hints and return its exit code"""
    console.error(error.message)
    for hint in error.hints:
        console.detail(hint)
    return error.exit_code


def run(args: argparse.Namespace, config: BridgeConfig,
        registry: Optional[DeviceRegistry] = None) -> int:
    """Dispatch parsed arguments. Raises VidipError on failure."""
    if args.load or args.unload:
        check_dependencies(REQUIRED_TOOLS + MODULE_TOOLS)
    else:
        check_dependencies(REQUIRED_TOOLS)

    registry = registry or SystemRegistry(config.module_name)
    manager = SlotManager(registry, config)

    if args.load:
        manager.allocate()
        return 0
    if args.unload:
        manager.release_all()
        return 0
    if args.check:
        print_slots(manager)
        return 0
    if args.snapshot:
        take_snapshot(manager, args.snapshot, args.device)
        return 0
    return stream(manager, args.address)


def main(argv: Optional[List[str]] = None, registry: Optional[DeviceRegistry] = None,
         environ: Optional[Mapping[str, str]] = None) -> int:
    parser = build_parser()
    argv = sys.argv[1:] if argv is None else argv
    # -h and -v exit here
    args = parser.parse_args(argv)

    try:
        check_platform()
    except VidipError as e:
        return report(e)

    if not argv:
        parser.print_help()
        return 1
    if not (args.load or args.unload or args.check or args.snapshot or args.address):
        parser.print_usage(sys.stderr)
        console.error("An IP address or one of -l, -u, -c, -s is required.")
        return 1

    config = load_config(args, environ)
    configure_logging(config.debug)

    try:
        return run(args, config, registry)
    except VidipError as e:
        return report(e)
    except KeyboardInterrupt:
        console.warn("\nScript interrupted. Exiting.")
        return 0


if __name__ == "__main__":
    sys.exit(main())
