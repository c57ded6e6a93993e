"""Command-line argument parsing for photoframe.

This module sets up the global options, logging options and the command
subparsers.
"""

import argparse
from pathlib import Path

from .. import __version__

ORIENTATION_CHOICES = ("auto", "landscape", "portrait")
LOG_LEVEL_CHOICES = ("DEBUG", "VERBOSE", "INFO", "WARNING", "ERROR", "CRITICAL")


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the command line argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="photoframe",
        description="Serve a rotating photo album to 7-colour e-paper frames",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  photoframe init-db                        # Create the album database
  photoframe album add beach.jpg            # Add a picture to the album
  photoframe album list                     # Show rotation order
  photoframe preview next.png               # Render the next frame without advancing
  photoframe serve                          # Serve frames to devices
        """,
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", type=Path, help="Path to a YAML configuration file")

    logging_group = parser.add_argument_group("logging", "Logging output options")
    verbosity = logging_group.add_mutually_exclusive_group()
    verbosity.add_argument(
        "--log-level", choices=LOG_LEVEL_CHOICES, help="Set console and file log level"
    )
    verbosity.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging (VERBOSE level)"
    )
    verbosity.add_argument(
        "-q", "--quiet", action="store_true", help="Only show errors on the console"
    )
    logging_group.add_argument("--log-dir", type=Path, help="Enable file logging in this directory")
    logging_group.add_argument(
        "--no-log-colors", action="store_true", help="Disable colored console output"
    )

    subparsers = parser.add_subparsers(dest="command", metavar="<command>")
    subparsers.required = True

    serve = subparsers.add_parser("serve", help="Serve frames and accept telemetry over HTTP")
    serve.add_argument("--host", help="Address to listen on")
    serve.add_argument("--port", type=int, help="Port to listen on")
    serve.add_argument("--workers", type=int, help="Number of worker threads")

    subparsers.add_parser("init-db", help="Create the album and telemetry tables")

    album = subparsers.add_parser("album", help="Maintain the album")
    album_commands = album.add_subparsers(dest="album_command", metavar="<action>")
    album_commands.required = True

    add = album_commands.add_parser("add", help="Convert a picture and add it to the album")
    add.add_argument("image", type=Path, help="Picture file in any format Pillow reads")
    add.add_argument("--id", dest="item_id", help="Item identifier (defaults to the file stem)")
    add.add_argument("--url", default="", help="Product URL of the source picture")
    add.add_argument(
        "--orientation",
        choices=ORIENTATION_CHOICES,
        default="auto",
        help="Target orientation (default: detect from the picture)",
    )
    add.add_argument(
        "--no-dither", action="store_true", help="Map colours without dithering"
    )

    remove = album_commands.add_parser("remove", help="Remove an item from the album")
    remove.add_argument("item_id", help="Item identifier")

    album_commands.add_parser("list", help="List items in rotation order")

    preview = subparsers.add_parser("preview", help="Render a frame to a PNG file")
    preview.add_argument("output", type=Path, help="PNG file to write")
    preview.add_argument(
        "--item",
        dest="items",
        action="append",
        metavar="ID",
        help="Compose these items (left first) instead of the next selection; repeatable",
    )

    return parser
