"""Tests for ``core.config`` and ``core.logging``."""

from __future__ import annotations

import logging

from core.config import Settings
from core.logging import LoggerRegistry, configure_logging, dispatch_logger, generate_batch_id
from core.resilience import CircuitBreakerConfig, RetryConfig
from engines import BatchDispatcher


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("BREAKER_FAILURE_THRESHOLD", "2")
    monkeypatch.setenv("SUBMIT_URL", "https://api.example.com/items")

    settings = Settings()

    assert settings.RETRY_MAX_ATTEMPTS == 5
    assert RetryConfig.from_settings(settings).max_attempts == 5
    assert CircuitBreakerConfig.from_settings(settings).failure_threshold == 2
    assert settings.SUBMIT_URL == "https://api.example.com/items"


def test_settings_read_dotenv_and_ignore_unknown_keys(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("SUBMIT_TIMEOUT=2.5\nUNRELATED_KEY=1\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    settings = Settings()

    assert settings.SUBMIT_TIMEOUT == 2.5
    assert Settings.model_config["extra"] == "ignore"


def test_dispatcher_from_settings():
    dispatcher = BatchDispatcher.from_settings("items", Settings(RETRY_MAX_ATTEMPTS=4, BREAKER_OPEN_TIMEOUT=5))
    assert dispatcher.breaker.name == "items"
    assert dispatcher.breaker.config.open_timeout_seconds == 5
    assert dispatcher.retry_policy.config.max_attempts == 4


def test_configure_logging_sets_root_level():
    configure_logging("WARNING", json_logs=True)
    try:
        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
    finally:
        configure_logging("INFO")


def test_domain_loggers_are_cached():
    assert dispatch_logger() is dispatch_logger()
    assert "dispatch" in LoggerRegistry._loggers


def test_batch_ids_are_short_and_unique():
    ids = {generate_batch_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(len(i) == 8 for i in ids)
