"""Tests for logging settings parsing."""

import logging
from pathlib import Path

from tts_backend.logging_settings import parse_logging_settings


def test_parse_logging_settings(tmp_path: Path) -> None:
    """Test parsing levels and retention_hours."""
    config_file = tmp_path / "logging_settings.conf"
    config_file.write_text(
        """
# Test config
terminal = debug
generations = warning  # only failures
retention_hours = 24
"""
    )

    settings = parse_logging_settings(config_file)

    assert settings.terminal_level == logging.DEBUG
    assert settings.generations_level == logging.WARNING
    assert settings.retention_hours == 24


def test_parse_logging_settings_defaults(tmp_path: Path) -> None:
    """Test default values when config file doesn't exist."""
    settings = parse_logging_settings(tmp_path / "nonexistent.conf")

    assert settings.terminal_level == logging.INFO
    assert settings.generations_level == logging.INFO
    assert settings.retention_hours == 72


def test_parse_logging_settings_off_and_unknown_values(tmp_path: Path) -> None:
    """Test 'off' disables a destination and unknown levels fall back to info."""
    config_file = tmp_path / "logging_settings.conf"
    config_file.write_text(
        """
terminal = loud
generations = off
sessions = debug
not a setting
"""
    )

    settings = parse_logging_settings(config_file)

    assert settings.terminal_level == logging.INFO
    assert settings.generations_level is None


def test_parse_logging_settings_retention_bounds(tmp_path: Path) -> None:
    """Test invalid retention falls back to the default and negatives clamp to 0."""
    config_file = tmp_path / "logging_settings.conf"

    config_file.write_text("retention_hours = invalid\n")
    assert parse_logging_settings(config_file).retention_hours == 72

    config_file.write_text("retention_hours = -10\n")
    assert parse_logging_settings(config_file).retention_hours == 0
