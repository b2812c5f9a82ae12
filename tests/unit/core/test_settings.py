"""Tests for Settings and the structured logging setup."""

from __future__ import annotations

import pytest
import structlog

from fusion_retrieval.core.config import Settings, get_settings
from fusion_retrieval.core.constants import SERVICE_NAME
from fusion_retrieval.core.logging import bind_request_context, configure_logging, get_logger


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings()

        assert settings.source_timeout_seconds == 5.0
        assert settings.degrade_after_failures == 3
        assert settings.probe_interval_seconds == 0.0
        assert settings.sources_file is None
        assert settings.service_name == SERVICE_NAME

    def test_environment_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FUSION_SOURCE_TIMEOUT_SECONDS", "1.5")
        monkeypatch.setenv("FUSION_DEFAULT_TIME_DECAY", "0")

        settings = Settings()

        assert settings.source_timeout_seconds == 1.5
        assert settings.default_time_decay == 0.0

    def test_default_strategy_mirrors_settings(self) -> None:
        settings = Settings(default_memory_weight=0.6, default_rag_weight=0.4, default_max_results=7)

        strategy = settings.default_strategy()

        assert strategy.memory_weight == 0.6
        assert strategy.rag_weight == 0.4
        assert strategy.max_results == 7
        assert strategy.threshold == settings.default_threshold

    def test_invalid_timeout_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            Settings(source_timeout_seconds=0)

    def test_default_time_decay_above_one_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            Settings(default_time_decay=2.0)

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()


class TestLogging:
    def test_request_context_is_bound_and_replaced(self) -> None:
        bind_request_context(user_id="u1", project_id="p1")
        assert structlog.contextvars.get_contextvars() == {"user_id": "u1", "project_id": "p1"}

        bind_request_context(user_id=None, project_id="p2")
        assert structlog.contextvars.get_contextvars() == {"project_id": "p2"}

        structlog.contextvars.clear_contextvars()

    def test_configured_logger_emits_events(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging()

        get_logger("test").info("Source query failed", source_id="docs")

        assert "Source query failed" in capsys.readouterr().out
