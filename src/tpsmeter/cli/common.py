from __future__ import annotations

import contextlib
from collections.abc import Generator

import click

from tpsmeter.cli.context import ExitCode
from tpsmeter.cli.output import format_error
from tpsmeter.exceptions import ConfigError, TpsMeterError
from tpsmeter.logging import get_logger


@contextlib.contextmanager
def cli_error_handler() -> Generator[None, None, None]:
    """Context manager for common CLI error handling.

    - KeyboardInterrupt: Exit with code 130
    - ConfigError: Format error with field details
    - TpsMeterError: Format error with message
    - OSError: Format error naming the file
    - Generic exceptions: Log and format error

    Example:
        >>> with cli_error_handler():
        >>>     records = list(read_event_log(path))
    """
    logger = get_logger(__name__)

    try:
        yield
    except KeyboardInterrupt:
        click.echo("\n\nInterrupted by user.", err=True)
        raise SystemExit(ExitCode.INTERRUPTED) from None
    except ConfigError as e:
        error_msg = format_error(
            e.message,
            details=[f"Field: {e.field}"] if e.field else None,
        )
        click.echo(error_msg, err=True)
        raise SystemExit(ExitCode.FAILURE) from e
    except TpsMeterError as e:
        click.echo(format_error(e.message), err=True)
        raise SystemExit(ExitCode.FAILURE) from e
    except OSError as e:
        error_msg = format_error(
            f"Could not read {e.filename or 'input'}: {e.strerror or e}"
        )
        click.echo(error_msg, err=True)
        raise SystemExit(ExitCode.FAILURE) from e
    except Exception as e:
        logger.exception("unexpected_command_error")
        click.echo(f"Error: {e!s}", err=True)
        raise SystemExit(ExitCode.FAILURE) from e
