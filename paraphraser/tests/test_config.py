"""Tests for configuration validation and the analytics kill-switch."""

import logging
from types import SimpleNamespace

import pytest

from paraphraser.core.config import Settings, analytics_disabled, validate_config


def make_settings(**overrides):
    defaults = dict(
        CONFIG_STRICT=False,
        GROQ_API_KEY="gsk_test",
        WATCHMAN_OFF=False,
        WATCHMAN_BASE_URL="https://watchman.example",
    )
    defaults.update(overrides)
    return SimpleNamespace(**defaults)


def test_complete_config_passes():
    assert validate_config(strict=True, settings_obj=make_settings())


def test_missing_model_key_fails_in_strict_mode():
    with pytest.raises(RuntimeError, match="GROQ_API_KEY"):
        validate_config(strict=True, settings_obj=make_settings(GROQ_API_KEY=None))


def test_missing_watchman_url_only_warns_when_not_strict(caplog):
    with caplog.at_level(logging.WARNING, logger="paraphraser"):
        assert validate_config(strict=False, settings_obj=make_settings(WATCHMAN_BASE_URL=""))
    assert "WATCHMAN_BASE_URL" in caplog.text
    assert "gsk_test" not in caplog.text


def test_watchman_url_not_required_when_analytics_off():
    cfg = make_settings(WATCHMAN_OFF=True, WATCHMAN_BASE_URL="")
    assert validate_config(strict=True, settings_obj=cfg)


def test_kill_switch_reads_settings():
    assert analytics_disabled(make_settings(WATCHMAN_OFF=True))
    assert not analytics_disabled(make_settings())


def test_environment_variables_are_loaded(monkeypatch):
    monkeypatch.setenv("WATCHMAN_OFF", "true")
    monkeypatch.setenv("NEXT_PUBLIC_WATCHMAN_BASE_URL", "https://public.watchman.example")
    monkeypatch.setenv("HUMANIZE_MODE", "options")
    monkeypatch.setenv("WORD_COUNT_TOLERANCE", "5")

    cfg = Settings(_env_file=None)

    assert cfg.WATCHMAN_OFF is True
    assert cfg.WATCHMAN_BASE_URL == "https://public.watchman.example"
    assert cfg.HUMANIZE_MODE == "options"
    assert cfg.WORD_COUNT_TOLERANCE == 5
    assert cfg.WATCHMAN_PRODUCT == "tabs-editor-tool"


def test_invalid_humanize_mode_rejected(monkeypatch):
    monkeypatch.setenv("HUMANIZE_MODE", "sideways")
    with pytest.raises(ValueError):
        Settings(_env_file=None)
