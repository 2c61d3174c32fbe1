"""
Tests for the PumpPortal feed client: subscription message, frame dispatch
and reconnect backoff accounting. No sockets are opened.
"""

from __future__ import annotations

import asyncio
import json

import pytest

from backend_bossraid.ingestion import FeedConfig, PumpPortalFeed
from backend_bossraid.raid_engine.context import RaidContext

from conftest import TEST_MINT


def _config(**kw) -> FeedConfig:
    fields = dict(
        ws_url="wss://feed.test/api/data",
        mint=TEST_MINT,
        reconnect_max_attempts=3,
        reconnect_base_delay_sec=0.0,
        watchdog_interval_sec=0.0,
    )
    fields.update(kw)
    return FeedConfig(**fields)


def test_subscribe_message():
    assert json.loads(_config().subscribe_message()) == {"method": "subscribeTokenTrade", "keys": [TEST_MINT]}


def test_config_from_settings(settings):
    config = FeedConfig.from_settings(settings)
    assert config.mint == settings.token_mint
    assert config.ws_url == settings.feed_ws_url
    assert config.reconnect_max_attempts == settings.reconnect_max_attempts


def test_requires_url_and_mint():
    with pytest.raises(ValueError):
        PumpPortalFeed(_config(ws_url=" "), lambda raw: None)
    with pytest.raises(ValueError):
        PumpPortalFeed(_config(mint=""), lambda raw: None)


def test_handle_raw_dispatches_and_survives_handler_errors():
    """Frames reach the handler; a raising handler is logged, not propagated."""
    seen = []

    def handler(raw):
        seen.append(raw)
        if raw == "boom":
            raise RuntimeError("bad frame")

    feed = PumpPortalFeed(_config(), handler)
    feed.handle_raw('{"signature": "a"}')
    feed.handle_raw("boom")
    feed.handle_raw('{"signature": "b"}')
    assert seen == ['{"signature": "a"}', "boom", '{"signature": "b"}']
    assert feed.messages_received == 3


def test_reconnect_attempts_count_up_then_watchdog_resets():
    """Attempts rise to the maximum; the watchdog restart starts a fresh budget."""

    async def scenario():
        ctx = RaidContext()
        feed = PumpPortalFeed(_config(), lambda raw: None, ctx)
        seen = []
        for _ in range(3):
            await feed._wait_before_reconnect(run_id=1)
            seen.append(feed.reconnect_attempts)
        await feed._wait_before_reconnect(run_id=1)
        seen.append(feed.reconnect_attempts)
        return seen

    assert asyncio.run(scenario()) == [1, 2, 3, 0]


def test_stop_interrupts_backoff():
    """stop() during a long backoff returns promptly."""

    async def scenario():
        feed = PumpPortalFeed(_config(reconnect_base_delay_sec=60.0), lambda raw: None)
        waiter = asyncio.ensure_future(feed._wait_before_reconnect(run_id=1))
        await asyncio.sleep(0.01)
        await feed.stop()
        await asyncio.wait_for(waiter, timeout=1.0)
        return feed.connected

    assert asyncio.run(scenario()) is False


def test_run_reconnects_until_stopped(monkeypatch):
    """Connection failures feed the backoff loop; stop() ends run()."""
    import backend_bossraid.ingestion.pumpportal_stream as stream

    attempts = []

    def refuse(*args, **kwargs):
        attempts.append(args[0])
        raise OSError("connection refused")

    monkeypatch.setattr(stream.websockets, "connect", refuse)

    async def scenario():
        feed = PumpPortalFeed(_config(reconnect_base_delay_sec=0.01), lambda raw: None)
        task = asyncio.ensure_future(feed.run())
        await asyncio.sleep(0.1)
        await feed.stop()
        await asyncio.wait_for(task, timeout=1.0)

    asyncio.run(scenario())
    assert len(attempts) >= 2
    assert all(url == "wss://feed.test/api/data" for url in attempts)
