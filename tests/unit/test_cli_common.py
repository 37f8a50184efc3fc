"""Unit tests for shared CLI helpers."""

from __future__ import annotations

import pytest

from tpsmeter.cli.common import cli_error_handler
from tpsmeter.cli.context import ExitCode
from tpsmeter.cli.output import format_error
from tpsmeter.exceptions import ConfigError, SinkError


class TestCliErrorHandler:
    """Tests for cli_error_handler."""

    @pytest.mark.parametrize(
        ("error", "code"),
        [
            (KeyboardInterrupt(), ExitCode.INTERRUPTED),
            (ConfigError("bad", field="format"), ExitCode.FAILURE),
            (SinkError("console", "closed"), ExitCode.FAILURE),
            (FileNotFoundError(2, "No such file", "log.jsonl"), ExitCode.FAILURE),
            (RuntimeError("boom"), ExitCode.FAILURE),
        ],
    )
    def test_exit_codes(self, error: BaseException, code: ExitCode) -> None:
        with pytest.raises(SystemExit) as exc_info, cli_error_handler():
            raise error

        assert exc_info.value.code == code

    def test_config_error_names_field(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit), cli_error_handler():
            raise ConfigError("Invalid configuration", field="format")

        assert "Field: format" in capsys.readouterr().err

    def test_no_error_passes_through(self) -> None:
        with cli_error_handler():
            value = 1

        assert value == 1


class TestFormatError:
    """Tests for format_error."""

    def test_details_and_suggestion(self) -> None:
        text = format_error(
            "Bad value", details=["Field: format"], suggestion="Use compact"
        )

        assert text.splitlines() == [
            "Error: Bad value",
            "  Field: format",
            "Suggestion: Use compact",
        ]
