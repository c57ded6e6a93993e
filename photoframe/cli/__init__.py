"""CLI module for photoframe.

This module provides the command-line interface: argument parsing, settings
loading, logging setup and command dispatch.
"""

from typing import Optional

from pydantic import ValidationError

from ..config.settings import PhotoFrameSettings
from ..utils.logging import apply_command_line_overrides, setup_logging
from .commands import COMMANDS
from .parser import create_parser


def main_entry(argv: Optional[list[str]] = None) -> int:
    """Main entry point with argument parsing.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        settings = PhotoFrameSettings(config_file=args.config) if args.config else PhotoFrameSettings()
    except (FileNotFoundError, ValidationError) as e:
        parser.error(f"Invalid configuration: {e}")

    settings = apply_command_line_overrides(settings, args)
    setup_logging(settings)

    return COMMANDS[args.command](args, settings)


__all__ = ["create_parser", "main_entry"]
