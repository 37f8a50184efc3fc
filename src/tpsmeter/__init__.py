"""Multi-stream tokens-per-second meter.

Estimates the generation rate of concurrently active text streams and
pushes throttled, human-readable notices to a host's display surface.

Usage:
    from tpsmeter import create_meter

    meter = create_meter(client=client)
    await meter.on_event(payload)
"""

from __future__ import annotations

from tpsmeter.config import TpsMeterConfig, load_config
from tpsmeter.display import DisplayCoordinator
from tpsmeter.estimator import RateEstimator, SmoothingProfile
from tpsmeter.exceptions import ConfigError, SinkError, TpsMeterError
from tpsmeter.meter import TpsMeter, create_meter
from tpsmeter.scheduling import AsyncioScheduler, VirtualScheduler

__version__ = "0.4.0"

__all__ = [
    "__version__",
    "AsyncioScheduler",
    "ConfigError",
    "DisplayCoordinator",
    "RateEstimator",
    "SinkError",
    "SmoothingProfile",
    "TpsMeter",
    "TpsMeterConfig",
    "TpsMeterError",
    "VirtualScheduler",
    "create_meter",
    "load_config",
]
