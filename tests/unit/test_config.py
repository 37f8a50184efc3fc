"""Unit tests for configuration loading."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from tpsmeter.config import (
    TpsMeterConfig,
    get_project_config_path,
    get_user_config_path,
    load_config,
)
from tpsmeter.exceptions import ConfigError


def _write_json(path: Path, data: dict[str, Any]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))
    return path


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self, config_sandbox: Path) -> None:
        config = load_config()

        assert config.enabled is True
        assert config.update_interval_ms == 50
        assert config.rolling_window_ms == 1000
        assert config.format == "compact"
        assert config.show_elapsed is False
        assert config.fallback_token_heuristic == "chars_div_4"
        assert config.enable_color_coding is False
        assert (config.slow_tps_threshold, config.fast_tps_threshold) == (10, 50)
        assert (config.burst_token_threshold, config.large_burst_threshold) == (
            50,
            200,
        )

    def test_config_paths(self, config_sandbox: Path) -> None:
        assert get_project_config_path() == (
            Path.cwd() / ".opencode" / "tps-meter.json"
        )
        assert get_user_config_path() == (
            config_sandbox / "home" / ".config" / "opencode" / "tps-meter.json"
        )


class TestFileSources:
    """Tests for project and user config files."""

    def test_project_file_with_camel_case_keys(self, config_sandbox: Path) -> None:
        _write_json(
            get_project_config_path(),
            {"updateIntervalMs": 100, "format": "verbose", "showElapsed": True},
        )

        config = load_config()

        assert config.update_interval_ms == 100
        assert config.format == "verbose"
        assert config.show_elapsed is True

    def test_user_file_is_read(self, config_sandbox: Path) -> None:
        _write_json(get_user_config_path(), {"enable_color_coding": True})

        assert load_config().enable_color_coding is True

    def test_project_overrides_user(self, config_sandbox: Path) -> None:
        _write_json(get_user_config_path(), {"format": "minimal", "showAverage": False})
        _write_json(get_project_config_path(), {"format": "verbose"})

        config = load_config()

        assert config.format == "verbose"
        assert config.show_average is False

    def test_explicit_path_replaces_project_file(self, config_sandbox: Path) -> None:
        _write_json(get_project_config_path(), {"format": "verbose"})
        custom = _write_json(config_sandbox / "custom.yaml", {"format": "minimal"})

        assert load_config(custom).format == "minimal"
        # the override does not leak into later loads
        assert load_config().format == "verbose"

    def test_yaml_file(self, config_sandbox: Path) -> None:
        path = config_sandbox / "meter.yaml"
        path.write_text("update_interval_ms: 250\nformat: minimal\n")

        config = load_config(path)

        assert config.update_interval_ms == 250
        assert config.format == "minimal"

    def test_empty_file_uses_defaults(self, config_sandbox: Path) -> None:
        path = get_project_config_path()
        path.parent.mkdir(parents=True)
        path.write_text("")

        assert load_config().update_interval_ms == 50

    def test_non_mapping_file_raises(self, config_sandbox: Path) -> None:
        path = get_project_config_path()
        path.parent.mkdir(parents=True)
        path.write_text("[1, 2, 3]")

        with pytest.raises(ConfigError) as exc_info:
            load_config()

        assert exc_info.value.value == "list"

    def test_unparseable_file_raises(self, config_sandbox: Path) -> None:
        path = get_project_config_path()
        path.parent.mkdir(parents=True)
        path.write_text("{ not: [valid")

        with pytest.raises(ConfigError, match="Could not read"):
            load_config()


class TestEnvironment:
    """Tests for TPS_METER_ environment variables."""

    def test_env_overrides_files(
        self, config_sandbox: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _write_json(get_project_config_path(), {"updateIntervalMs": 100})
        monkeypatch.setenv("TPS_METER_UPDATE_INTERVAL_MS", "200")

        assert load_config().update_interval_ms == 200

    def test_env_disables_meter(
        self, config_sandbox: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TPS_METER_ENABLED", "false")

        assert load_config().enabled is False

    def test_wrong_type_raises_config_error(
        self, config_sandbox: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TPS_METER_UPDATE_INTERVAL_MS", "fast")

        with pytest.raises(ConfigError) as exc_info:
            load_config()

        assert exc_info.value.field == "update_interval_ms"
        assert exc_info.value.value == "fast"


class TestValidation:
    """Tests for clamping and consistency rules."""

    @pytest.mark.parametrize(
        ("field", "value", "expected"),
        [
            ("update_interval_ms", 1, 10),
            ("update_interval_ms", 60_000, 5000),
            ("rolling_window_ms", 50, 100),
            ("rolling_window_ms", 100_000, 30_000),
            ("min_visible_tps", -5, 0),
            ("burst_token_threshold", 0, 1),
        ],
    )
    def test_out_of_range_values_are_clamped(
        self,
        make_config: Callable[..., TpsMeterConfig],
        field: str,
        value: float,
        expected: float,
    ) -> None:
        config = make_config(**{field: value})

        assert getattr(config, field) == expected

    def test_inverted_speed_thresholds_are_reset(
        self, make_config: Callable[..., TpsMeterConfig]
    ) -> None:
        config = make_config(slow_tps_threshold=80, fast_tps_threshold=20)

        assert config.slow_tps_threshold == 10
        assert config.fast_tps_threshold == 50

    def test_inverted_burst_thresholds_are_reset(
        self, make_config: Callable[..., TpsMeterConfig]
    ) -> None:
        config = make_config(burst_token_threshold=300, large_burst_threshold=100)

        assert config.burst_token_threshold == 50
        assert config.large_burst_threshold == 200

    def test_custom_burst_thresholds_kept(
        self, make_config: Callable[..., TpsMeterConfig]
    ) -> None:
        config = make_config(burst_token_threshold=20, large_burst_threshold=80)

        assert (config.burst_token_threshold, config.large_burst_threshold) == (
            20,
            80,
        )

    def test_unknown_format_rejected(
        self, make_config: Callable[..., TpsMeterConfig]
    ) -> None:
        with pytest.raises(ValueError):
            make_config(format="fancy")
