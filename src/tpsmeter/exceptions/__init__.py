"""TPS meter exception hierarchy.

All exceptions can be imported from this package:
    from tpsmeter.exceptions import ConfigError, SinkError
"""

from __future__ import annotations

from tpsmeter.exceptions.base import TpsMeterError
from tpsmeter.exceptions.config import ConfigError
from tpsmeter.exceptions.display import EventParseError, SinkError

__all__ = [
    "TpsMeterError",
    "ConfigError",
    "EventParseError",
    "SinkError",
]
