"""Tests for Settings, PipelineConfig and the alignment policy enum."""

from __future__ import annotations

import dataclasses

import pytest

from src.config import Settings
from src.pipeline_config import DEFAULT_DELIMITERS, AlignmentPolicy, PipelineConfig

# ---------------------------------------------------------------------------
# Enum tests
# ---------------------------------------------------------------------------


class TestAlignmentPolicy:
    def test_values(self) -> None:
        assert AlignmentPolicy.OPTIMAL.value == "optimal"
        assert AlignmentPolicy.GREEDY.value == "greedy"

    def test_from_string(self) -> None:
        assert AlignmentPolicy("optimal") is AlignmentPolicy.OPTIMAL
        assert AlignmentPolicy("greedy") is AlignmentPolicy.GREEDY

    def test_invalid_raises(self) -> None:
        with pytest.raises(ValueError):
            AlignmentPolicy("fuzzy")

    def test_is_str_subclass(self) -> None:
        """Enum values behave as plain strings for JSON serialization."""
        assert isinstance(AlignmentPolicy.OPTIMAL, str)


# ---------------------------------------------------------------------------
# PipelineConfig tests
# ---------------------------------------------------------------------------


class TestPipelineConfig:
    def test_defaults(self) -> None:
        config = PipelineConfig()
        assert config.alignment_policy is AlignmentPolicy.OPTIMAL
        assert config.alignment_window == 100
        assert config.alignment_max_dp_cells == 4_000_000
        assert config.delimiters == ("\uf6e1", "`")

    def test_frozen(self) -> None:
        config = PipelineConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.alignment_window = 5  # type: ignore[misc]

    def test_from_settings(self) -> None:
        settings = Settings(
            _env_file=None,
            alignment_policy="greedy",
            alignment_window=25,
            title_delimiters=["|"],
        )
        config = PipelineConfig.from_settings(settings)
        assert config.alignment_policy is AlignmentPolicy.GREEDY
        assert config.alignment_window == 25
        assert config.delimiters == ("|",)

    def test_from_settings_rejects_unknown_policy(self) -> None:
        with pytest.raises(ValueError):
            PipelineConfig.from_settings(Settings(_env_file=None, alignment_policy="fuzzy"))


# ---------------------------------------------------------------------------
# Settings tests
# ---------------------------------------------------------------------------


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("WORKER_CONCURRENCY", raising=False)
        monkeypatch.delenv("ALIGNMENT_POLICY", raising=False)
        settings = Settings(_env_file=None)
        assert settings.worker_concurrency == 5
        assert settings.lock_duration_seconds == 600
        assert settings.lock_extension_seconds == 300
        assert settings.poll_interval_seconds == 30
        assert settings.retry_max_attempts == 3
        assert settings.alignment_policy == "optimal"
        assert tuple(settings.title_delimiters) == DEFAULT_DELIMITERS

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WORKER_CONCURRENCY", "2")
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/1")
        settings = Settings(_env_file=None)
        assert settings.worker_concurrency == 2
        assert settings.redis_url == "redis://cache:6379/1"
