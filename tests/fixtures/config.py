"""Configuration fixtures for TPS meter tests."""

from __future__ import annotations

import os
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from tpsmeter.config import TpsMeterConfig


@pytest.fixture
def config_sandbox(
    clean_env: None, temp_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[Path, None, None]:
    """Isolate config loading from the developer's machine.

    The working directory becomes ``temp_dir`` and the home directory
    ``temp_dir / "home"``, so neither project nor user config files are
    picked up unless a test writes them.

    Yields:
        The sandbox directory.
    """
    home = temp_dir / "home"
    home.mkdir()
    monkeypatch.setattr(Path, "home", lambda: home)
    original_cwd = os.getcwd()
    os.chdir(temp_dir)
    try:
        yield temp_dir
    finally:
        os.chdir(original_cwd)


@pytest.fixture
def make_config(config_sandbox: Path) -> Callable[..., TpsMeterConfig]:
    """Factory for TpsMeterConfig with keyword overrides.

    Example:
        >>> config = make_config(update_interval_ms=100, format="verbose")
    """

    def _make(**overrides: Any) -> TpsMeterConfig:
        return TpsMeterConfig(**overrides)

    return _make
