"""CLI context and the sync-to-async bridge for click commands."""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Any, TypeVar

from tpsmeter.config import TpsMeterConfig

__all__ = ["ExitCode", "CLIContext", "async_command"]


class ExitCode(IntEnum):
    """Exit codes for the tpsmeter CLI.

    - 0 for success
    - 1 for failure
    - 130 for keyboard interrupt (128 + SIGINT=2)
    """

    SUCCESS = 0
    FAILURE = 1
    INTERRUPTED = 130


@dataclass(frozen=True, slots=True)
class CLIContext:
    """Global options and configuration shared with subcommands.

    Attributes:
        config: Resolved meter configuration.
        config_path: Config file given with --config, if any.
        verbosity: 0=default, 1=INFO, 2+=DEBUG.
        quiet: Suppress non-essential output.
    """

    config: TpsMeterConfig
    config_path: Path | None = None
    verbosity: int = 0
    quiet: bool = False


F = TypeVar("F", bound=Callable[..., Any])


def async_command(f: F) -> F:
    """Run an async click command with asyncio.run()."""

    @functools.wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        return asyncio.run(f(*args, **kwargs))

    return wrapper  # type: ignore[return-value]
