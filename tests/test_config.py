# Copyright (c) Syntropy Systems
"""Tests for YAML configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from speedvitals import config as config_module
from speedvitals.config import (
    CONFIG_FILENAME,
    SpeedVitalsConfig,
    find_config_file,
    load_config,
)
from speedvitals.errors import ConfigError


@pytest.fixture
def isolated(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run from an empty directory with no global config."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "get_global_config_dir", lambda: tmp_path / "global")
    return tmp_path


class TestLoadConfig:
    """Tests for load_config()."""

    def test_defaults(self, isolated: Path) -> None:
        """Test defaults apply when there is no config file."""
        config = load_config()

        assert config == SpeedVitalsConfig()
        assert config.concurrency == 3
        assert config.poll_interval == 5.0
        assert config.max_poll_attempts == 60
        assert config.max_retries == 2
        assert config.poll_timeout == 300.0

    def test_explicit_file(self, isolated: Path) -> None:
        """Test values are read from an explicit path."""
        path = isolated / "settings.yaml"
        _ = path.write_text("concurrency: 5\npoll_interval: 2\nmax_retries: 0\n")

        config = load_config(path)

        assert config.concurrency == 5
        assert config.poll_interval == 2.0
        assert isinstance(config.poll_interval, float)
        assert config.max_retries == 0
        assert config.max_poll_attempts == 60

    def test_found_walking_up(self, isolated: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the nearest .speedvitals.yaml in a parent directory is used."""
        _ = (isolated / CONFIG_FILENAME).write_text("max_poll_attempts: 10\n")
        nested = isolated / "a" / "b"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)

        assert find_config_file() == (isolated / CONFIG_FILENAME).resolve()
        assert load_config().max_poll_attempts == 10

    def test_global_config(self, isolated: Path) -> None:
        """Test the global config is used when no project file exists."""
        global_dir = isolated / "global"
        global_dir.mkdir()
        _ = (global_dir / "config.yaml").write_text("api_url: https://staging.test/v1\n")

        assert load_config().api_url == "https://staging.test/v1"

    def test_empty_file(self, isolated: Path) -> None:
        """Test an empty file means defaults."""
        path = isolated / "empty.yaml"
        _ = path.write_text("")

        assert load_config(path) == SpeedVitalsConfig()

    def test_unknown_keys_ignored(self, isolated: Path) -> None:
        """Test keys that are not settings are ignored."""
        path = isolated / "extra.yaml"
        _ = path.write_text("color: blue\nconcurrency: 2\n")

        assert load_config(path).concurrency == 2

    def test_missing_explicit_file(self, isolated: Path) -> None:
        """Test a missing explicit path is an error."""
        with pytest.raises(ConfigError, match="Config file not found"):
            _ = load_config(isolated / "nope.yaml")

    def test_invalid_yaml(self, isolated: Path) -> None:
        """Test malformed YAML is an error."""
        path = isolated / "bad.yaml"
        _ = path.write_text("concurrency: [1, 2\n")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            _ = load_config(path)

    def test_not_a_mapping(self, isolated: Path) -> None:
        """Test a YAML list is an error."""
        path = isolated / "list.yaml"
        _ = path.write_text("- 1\n- 2\n")

        with pytest.raises(ConfigError, match="Expected a mapping"):
            _ = load_config(path)

    @pytest.mark.parametrize(
        ("content", "message"),
        [
            ("concurrency: two\n", "concurrency .* must be an integer"),
            ("concurrency: true\n", "concurrency .* must be an integer"),
            ("poll_interval: soon\n", "poll_interval .* must be a number"),
            ("api_url: 42\n", "api_url .* must be a string"),
        ],
    )
    def test_wrong_types(self, isolated: Path, content: str, message: str) -> None:
        """Test settings of the wrong type are errors."""
        path = isolated / "types.yaml"
        _ = path.write_text(content)

        with pytest.raises(ConfigError, match=message):
            _ = load_config(path)

    @pytest.mark.parametrize(
        "content",
        [
            "concurrency: 0\n",
            "max_poll_attempts: 0\n",
            "max_retries: -1\n",
            "poll_interval: -1\n",
            "timeout: 0\n",
        ],
    )
    def test_out_of_range(self, isolated: Path, content: str) -> None:
        """Test settings outside their range are errors."""
        path = isolated / "range.yaml"
        _ = path.write_text(content)

        with pytest.raises(ConfigError):
            _ = load_config(path)
