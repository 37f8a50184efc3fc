from __future__ import annotations

from typing import Any

from tpsmeter.exceptions.base import TpsMeterError


class ConfigError(TpsMeterError):
    """Configuration could not be loaded, parsed, or validated.

    Out-of-range numbers are clamped rather than rejected, so this is only
    raised for unreadable files and values of the wrong type.

    Attributes:
        message: Human-readable error message.
        field: Dotted field name that caused the error, if known.
        value: Offending value, if known.

    Examples:
        ```python
        raise ConfigError(
            "Invalid configuration value",
            field="update_interval_ms",
            value="fast",
        )
        ```
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
    ) -> None:
        self.field = field
        self.value = value
        super().__init__(message)
