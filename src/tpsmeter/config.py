from __future__ import annotations

import re
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Literal, Self

import yaml
from pydantic import (
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from tpsmeter.constants import (
    BURST_TOKEN_THRESHOLD,
    DEFAULT_FAST_TPS_THRESHOLD,
    DEFAULT_ROLLING_WINDOW_MS,
    DEFAULT_SLOW_TPS_THRESHOLD,
    DEFAULT_UPDATE_INTERVAL_MS,
    LARGE_BURST_THRESHOLD,
)
from tpsmeter.exceptions import ConfigError
from tpsmeter.logging import get_logger

__all__ = [
    "TpsMeterConfig",
    "load_config",
    "get_project_config_path",
    "get_user_config_path",
]

logger = get_logger(__name__)

#: Inclusive (min, max) bounds; values outside are clamped
_BOUNDS: dict[str, tuple[float, float]] = {
    "update_interval_ms": (10, 5000),
    "rolling_window_ms": (100, 30000),
    "min_visible_tps": (0, 10000),
    "slow_tps_threshold": (0, 10000),
    "fast_tps_threshold": (0, 10000),
    "burst_token_threshold": (1, 100000),
    "large_burst_threshold": (1, 100000),
}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")

_project_config_override: ContextVar[Path | None] = ContextVar(
    "_project_config_override", default=None
)


def _snake_case(key: str) -> str:
    """Convert ``updateIntervalMs`` style keys to ``update_interval_ms``."""
    return _CAMEL_BOUNDARY.sub(r"_\1", key).lower()


class YamlConfigSource(PydanticBaseSettingsSource):
    """Settings source backed by a YAML (or JSON) file.

    JSON is a subset of YAML, so the plugin's historical ``tps-meter.json``
    files load unchanged. camelCase keys are accepted alongside snake_case.
    """

    def __init__(
        self,
        settings_cls: type[BaseSettings],
        yaml_file: Path | None = None,
    ):
        super().__init__(settings_cls)
        self.yaml_file = yaml_file
        self._config_data: dict[str, Any] = {}
        if yaml_file and yaml_file.exists():
            try:
                with open(yaml_file) as f:
                    loaded = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                raise ConfigError(
                    message=f"Could not read {yaml_file}: {e}",
                    field=None,
                    value=None,
                ) from e
            if loaded is None:
                logger.warning("config_file_empty", path=str(yaml_file))
            elif not isinstance(loaded, dict):
                raise ConfigError(
                    message=f"Config file {yaml_file} must contain a mapping",
                    field=None,
                    value=type(loaded).__name__,
                )
            else:
                self._config_data = {_snake_case(k): v for k, v in loaded.items()}

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        if field_name in self._config_data:
            return self._config_data[field_name], field_name, False
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        return self._config_data


class TpsMeterConfig(BaseSettings):
    """Resolved meter configuration.

    Created once per meter and never mutated afterwards.

    Attributes:
        enabled: Master switch; a disabled meter ignores every event.
        update_interval_ms: Throttle cadence for display flushes.
        rolling_window_ms: Window length for the instantaneous rate.
        show_average: Include the lifetime average.
        show_instant: Include the instantaneous rate.
        show_total_tokens: Include the token total.
        show_elapsed: Include elapsed MM:SS.
        format: Display style.
        min_visible_tps: Rates below this are not pushed to the display.
        fallback_token_heuristic: Token counting heuristic.
        enable_color_coding: Colour the toast by speed.
        slow_tps_threshold: Below this the meter reports "slow".
        fast_tps_threshold: Above this the meter reports "fast".
        burst_token_threshold: Count that selects the burst half-life.
        large_burst_threshold: Count that selects the large-burst half-life.
    """

    model_config = SettingsConfigDict(
        env_prefix="TPS_METER_",
        extra="ignore",
        allow_inf_nan=False,
    )

    enabled: bool = True
    update_interval_ms: float = DEFAULT_UPDATE_INTERVAL_MS
    rolling_window_ms: float = DEFAULT_ROLLING_WINDOW_MS
    show_average: bool = True
    show_instant: bool = True
    show_total_tokens: bool = True
    show_elapsed: bool = False
    format: Literal["compact", "verbose", "minimal"] = "compact"
    min_visible_tps: float = 0
    fallback_token_heuristic: Literal[
        "chars_div_4", "chars_div_3", "words_div_0_75"
    ] = "chars_div_4"
    enable_color_coding: bool = False
    slow_tps_threshold: float = DEFAULT_SLOW_TPS_THRESHOLD
    fast_tps_threshold: float = DEFAULT_FAST_TPS_THRESHOLD
    burst_token_threshold: int = Field(default=BURST_TOKEN_THRESHOLD)
    large_burst_threshold: int = Field(default=LARGE_BURST_THRESHOLD)

    @field_validator(*_BOUNDS, mode="after")
    @classmethod
    def clamp_to_bounds(cls, v: float, info: ValidationInfo) -> float:
        """Clamp numeric settings into their supported range."""
        low, high = _BOUNDS[info.field_name]
        clamped = max(low, min(high, v))
        if clamped != v:
            logger.warning(
                "config_value_clamped",
                field=info.field_name,
                value=v,
                clamped=clamped,
            )
        return type(v)(clamped)

    @model_validator(mode="after")
    def check_threshold_ordering(self) -> Self:
        if self.slow_tps_threshold >= self.fast_tps_threshold:
            logger.warning(
                "config_thresholds_reset",
                slow=self.slow_tps_threshold,
                fast=self.fast_tps_threshold,
            )
            self.slow_tps_threshold = DEFAULT_SLOW_TPS_THRESHOLD
            self.fast_tps_threshold = DEFAULT_FAST_TPS_THRESHOLD
        if self.large_burst_threshold <= self.burst_token_threshold:
            self.burst_token_threshold = BURST_TOKEN_THRESHOLD
            self.large_burst_threshold = LARGE_BURST_THRESHOLD
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Order the settings sources.

        Priority (highest to lowest):
        1. Init arguments (explicit keyword arguments)
        2. Environment variables (TPS_METER_*)
        3. Project config (./.opencode/tps-meter.json, or load_config's path)
        4. User config (~/.config/opencode/tps-meter.json)
        """
        project_path = _project_config_override.get() or get_project_config_path()
        return (
            init_settings,
            env_settings,
            YamlConfigSource(settings_cls, project_path),
            YamlConfigSource(settings_cls, get_user_config_path()),
        )


def get_project_config_path() -> Path:
    """Path to the project configuration file in the working directory."""
    return Path.cwd() / ".opencode" / "tps-meter.json"


def get_user_config_path() -> Path:
    """Path to the user configuration file.

    Returns:
        Path to ~/.config/opencode/tps-meter.json
    """
    return Path.home() / ".config" / "opencode" / "tps-meter.json"


@contextmanager
def _project_config(path: Path | None) -> Iterator[None]:
    token = _project_config_override.set(path)
    try:
        yield
    finally:
        _project_config_override.reset(token)


def load_config(config_path: Path | None = None) -> TpsMeterConfig:
    """Load configuration with hierarchy: defaults -> user -> project -> env.

    Args:
        config_path: Optional project config file replacing
            ./.opencode/tps-meter.json.

    Returns:
        TpsMeterConfig with every value validated and clamped.

    Raises:
        ConfigError: If a file is unreadable or a value has the wrong type.
    """
    with _project_config(config_path):
        try:
            return TpsMeterConfig()
        except ValidationError as e:
            first_error = e.errors()[0]
            field = ".".join(str(loc) for loc in first_error["loc"])
            raise ConfigError(
                message=f"Invalid configuration: {first_error['msg']}",
                field=field,
                value=first_error.get("input"),
            ) from e
