"""
Real-time trade ingestion: PumpPortal WebSocket -> raid engine.

Connects to wss://pumpportal.fun/api/data, subscribes to token trades for the
configured mint (subscribeTokenTrade) and hands every frame to a message
handler, normally ReconciliationEngine.handle_message.

Fault tolerance: on close, reconnect up to reconnect_max_attempts times with
linear backoff (base * attempt); attempts reset on a successful connect. Once
attempts are exhausted the watchdog restarts the connection every
watchdog_interval_sec with attempts reset.

Usage: create PumpPortalFeed(config, engine.handle_message, context) and await
run(); call stop() to shut down.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Callable

import websockets
from websockets.exceptions import ConnectionClosed

from backend_bossraid.bossraid_logging import get_logger
from backend_bossraid.config.settings import Settings
from backend_bossraid.raid_engine.context import RaidContext

logger = get_logger(__name__)

DEFAULT_WS_PING_INTERVAL = 20.0
DEFAULT_WS_PING_TIMEOUT = 20.0
_WS_CLOSE_TIMEOUT = 5.0

MessageHandler = Callable[[Any], Any]


@dataclass
class FeedConfig:
    """Config for the PumpPortal trade feed."""

    ws_url: str = "wss://pumpportal.fun/api/data"
    mint: str = ""
    connect_timeout_sec: float = 10.0
    reconnect_max_attempts: int = 5
    reconnect_base_delay_sec: float = 1.0
    watchdog_interval_sec: float = 30.0
    ws_ping_interval: float | None = DEFAULT_WS_PING_INTERVAL
    ws_ping_timeout: float | None = DEFAULT_WS_PING_TIMEOUT

    @classmethod
    def from_settings(cls, settings: Settings) -> "FeedConfig":
        return cls(
            ws_url=settings.feed_ws_url,
            mint=settings.token_mint,
            connect_timeout_sec=settings.connect_timeout_sec,
            reconnect_max_attempts=settings.reconnect_max_attempts,
            reconnect_base_delay_sec=settings.reconnect_base_delay_sec,
            watchdog_interval_sec=settings.watchdog_interval_sec,
        )

    def subscribe_message(self) -> str:
        return json.dumps({"method": "subscribeTokenTrade", "keys": [self.mint]})


class PumpPortalFeed:
    """WebSocket client for one mint's trade stream."""

    def __init__(
        self,
        config: FeedConfig,
        on_message: MessageHandler,
        context: RaidContext | None = None,
    ) -> None:
        if not config.ws_url.strip():
            raise ValueError("ws_url must be non-empty")
        if not config.mint.strip():
            raise ValueError("mint must be non-empty")
        self._config = config
        self._on_message = on_message
        self._context = context or RaidContext()
        self._stop = asyncio.Event()
        self._ws: Any = None
        self._connected = False
        self.messages_received = 0

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def reconnect_attempts(self) -> int:
        return self._context.reconnect_attempts

    async def run(self) -> None:
        """
        Run the feed loop: connect, subscribe, dispatch frames, reconnect on
        failure. Exits when stop() is called.
        """
        run_id = 0
        while not self._stop.is_set():
            run_id += 1
            try:
                logger.info("feed_connecting", run_id=run_id, url=self._config.ws_url)
                async with websockets.connect(
                    self._config.ws_url,
                    open_timeout=self._config.connect_timeout_sec,
                    ping_interval=self._config.ws_ping_interval,
                    ping_timeout=self._config.ws_ping_timeout,
                    close_timeout=_WS_CLOSE_TIMEOUT,
                ) as ws:
                    self._ws = ws
                    self._connected = True
                    self._context.reconnect_attempts = 0
                    await ws.send(self._config.subscribe_message())
                    logger.info("feed_connected", run_id=run_id, mint=self._config.mint)
                    await self._receive_loop(ws)
            except asyncio.CancelledError:
                break
            except ConnectionClosed as e:
                logger.warning("feed_disconnected", run_id=run_id, code=e.code, reason=e.reason)
            except (asyncio.TimeoutError, OSError) as e:
                logger.warning("feed_connect_failed", run_id=run_id, error=str(e) or type(e).__name__)
            except Exception as e:
                logger.exception("feed_error", run_id=run_id, error=str(e))
            finally:
                self._ws = None
                self._connected = False

            if self._stop.is_set():
                break
            await self._wait_before_reconnect(run_id)
        logger.info("feed_stopped", run_id=run_id)

    async def _wait_before_reconnect(self, run_id: int) -> None:
        attempts = self._context.reconnect_attempts
        exhausted = attempts >= self._config.reconnect_max_attempts
        if not exhausted:
            attempts += 1
            self._context.reconnect_attempts = attempts
            delay = self._config.reconnect_base_delay_sec * attempts
            logger.info("feed_reconnect", run_id=run_id, attempt=attempts, backoff_sec=round(delay, 1))
        else:
            delay = self._config.watchdog_interval_sec
            logger.warning(
                "feed_reconnect_exhausted",
                run_id=run_id,
                attempts=attempts,
                watchdog_sec=delay,
            )
        if await self._sleep(delay):
            return
        if exhausted:
            # Watchdog restart: fresh attempt budget
            self._context.reconnect_attempts = 0
            logger.info("feed_watchdog_restart", run_id=run_id)

    async def _sleep(self, seconds: float) -> bool:
        """Sleep unless stopped first. Returns True when stop was requested."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def _receive_loop(self, ws: Any) -> None:
        async for raw in ws:
            if self._stop.is_set():
                return
            self.handle_raw(raw)

    def handle_raw(self, raw: str | bytes) -> None:
        """Dispatch one frame; a failing handler never kills the connection."""
        self.messages_received += 1
        try:
            self._on_message(raw)
        except Exception as e:
            logger.exception("feed_message_failed", error=str(e))

    async def stop(self) -> None:
        """Signal the loop to stop and close the socket."""
        self._stop.set()
        ws = self._ws
        if ws is not None:
            await ws.close()
