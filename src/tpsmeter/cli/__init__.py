"""CLI utilities for the TPS meter.

This module provides CLI-specific utilities: context management, exit
codes and output formatting.
"""

from __future__ import annotations

from tpsmeter.cli.context import CLIContext, ExitCode, async_command
from tpsmeter.cli.output import format_error

__all__ = [
    "CLIContext",
    "ExitCode",
    "async_command",
    "format_error",
]
