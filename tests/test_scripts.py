"""Tests for the operator scripts."""

from __future__ import annotations

import asyncio
import importlib.util
from pathlib import Path
from types import ModuleType
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

SCRIPTS = Path(__file__).parent.parent / "scripts"


def _load(name: str) -> ModuleType:
    spec = importlib.util.spec_from_file_location(name, SCRIPTS / f"{name}.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestClearRedis:
    def test_refuses_without_confirmation(self) -> None:
        clear_redis = _load("clear_redis")
        client = MagicMock()

        with patch.object(clear_redis, "get_redis_client", return_value=client) as factory:
            assert clear_redis.main([]) == 1

        factory.assert_not_called()
        client.flushdb.assert_not_called()

    def test_flushes_with_confirmation(self) -> None:
        clear_redis = _load("clear_redis")
        client = MagicMock()
        client.flushdb = AsyncMock()
        client.aclose = AsyncMock()
        settings = MagicMock(redis_url="redis://localhost:6379/0")

        with (
            patch.object(clear_redis, "get_settings", return_value=settings),
            patch.object(clear_redis, "get_redis_client", return_value=client) as factory,
        ):
            assert clear_redis.main(["--yes"]) == 0

        factory.assert_called_once_with("redis://localhost:6379/0")
        client.flushdb.assert_awaited_once()
        client.aclose.assert_awaited_once()

    def test_closes_client_when_flush_fails(self) -> None:
        clear_redis = _load("clear_redis")
        client = MagicMock()
        client.flushdb = AsyncMock(side_effect=ConnectionError("refused"))
        client.aclose = AsyncMock()

        with patch.object(clear_redis, "get_redis_client", return_value=client):
            with pytest.raises(ConnectionError):
                asyncio.run(clear_redis.clear("redis://localhost:6379/0"))

        client.aclose.assert_awaited_once()
