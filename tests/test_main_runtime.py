import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from ragbot import main


class FakeBot:
    def __init__(self, *args, **kwargs) -> None:
        self._close = AsyncMock()
        self._closed = False

    def is_closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        self._closed = True
        await self._close()


@pytest.fixture
def fake_cache(monkeypatch):
    cache = MagicMock()
    cache.close = AsyncMock()
    cache.get_stats.return_value = {"size": 0}
    monkeypatch.setattr(main, "api_cache", cache)
    return cache


def test_load_environment_requires_token(monkeypatch):
    monkeypatch.setattr(main, "load_dotenv", lambda **kwargs: None)
    monkeypatch.delenv("DISCORD_BOT_TOKEN", raising=False)

    with pytest.raises(SystemExit) as exc_info:
        main.load_environment()

    assert exc_info.value.code == 1


def test_load_environment_returns_token(monkeypatch):
    monkeypatch.setattr(main, "load_dotenv", lambda **kwargs: None)
    monkeypatch.setenv("DISCORD_BOT_TOKEN", "secret-token")

    assert main.load_environment() == "secret-token"


def test_initialize_cache_applies_config_and_starts_cleanup(monkeypatch, fake_cache):
    configure = MagicMock()
    monkeypatch.setattr(main, "configure_api_cache", configure)

    main.initialize_cache()

    configure.assert_called_once_with(main.app_config.cache_settings)
    fake_cache.start_cleanup.assert_called_once_with()


@pytest.mark.asyncio
async def test_shutdown_runtime_closes_bot_and_cache(fake_cache):
    bot = FakeBot()

    await main.shutdown_runtime(bot)

    bot._close.assert_awaited_once()
    fake_cache.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_shutdown_runtime_survives_cache_errors(fake_cache):
    fake_cache.close.side_effect = RuntimeError("already closed")

    await main.shutdown_runtime(None)

    fake_cache.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_async_main_runs_and_shuts_down(monkeypatch, fake_cache):
    monkeypatch.setattr(main, "load_environment", lambda: "token")
    monkeypatch.setattr(main, "initialize_cache", MagicMock())
    monkeypatch.setattr(main, "create_bot", lambda: FakeBot())
    start_bot_mock = AsyncMock(side_effect=asyncio.CancelledError())
    monkeypatch.setattr(main, "start_bot", start_bot_mock)
    shutdown_mock = AsyncMock()
    monkeypatch.setattr(main, "shutdown_runtime", shutdown_mock)

    with pytest.raises(asyncio.CancelledError):
        await main.async_main()

    start_bot_mock.assert_awaited_once()
    shutdown_mock.assert_awaited_once()


@pytest.mark.asyncio
async def test_async_main_reports_runtime_error(monkeypatch, fake_cache):
    monkeypatch.setattr(main, "load_environment", lambda: "token")
    monkeypatch.setattr(main, "initialize_cache", MagicMock())
    monkeypatch.setattr(main, "create_bot", lambda: FakeBot())
    monkeypatch.setattr(main, "start_bot", AsyncMock(side_effect=RuntimeError("gateway down")))
    shutdown_mock = AsyncMock()
    monkeypatch.setattr(main, "shutdown_runtime", shutdown_mock)

    assert await main.async_main() == 1
    shutdown_mock.assert_awaited_once()


@pytest.mark.asyncio
async def test_async_main_handles_bot_creation_failure(monkeypatch, fake_cache):
    monkeypatch.setattr(main, "load_environment", lambda: "token")
    monkeypatch.setattr(main, "initialize_cache", MagicMock())
    monkeypatch.setattr(main, "create_bot", MagicMock(side_effect=RuntimeError("bad intents")))
    shutdown_mock = AsyncMock()
    monkeypatch.setattr(main, "shutdown_runtime", shutdown_mock)

    assert await main.async_main() == 1
    shutdown_mock.assert_awaited_once_with(None)


def test_main_maps_system_exit(monkeypatch):
    def fake_run(coro):
        coro.close()
        raise SystemExit(1)

    monkeypatch.setattr(main.asyncio, "run", fake_run)

    assert main.main() == 1


def test_main_maps_keyboard_interrupt(monkeypatch):
    def fake_run(coro):
        coro.close()
        raise KeyboardInterrupt

    monkeypatch.setattr(main.asyncio, "run", fake_run)

    assert main.main() == 0


def test_build_intents_enables_guilds():
    intents = main.build_intents()
    assert intents.guilds is True


def test_load_cogs_registers_cache_and_events(monkeypatch):
    added = []
    fake_bot = SimpleNamespace(add_cog=added.append)

    main.load_cogs(fake_bot)

    names = {type(cog).__name__ for cog in added}
    assert names == {"CacheCog", "EventsListenerCog"}
