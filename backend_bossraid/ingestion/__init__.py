"""Inbound trade feed (PumpPortal WebSocket)."""

from backend_bossraid.ingestion.pumpportal_stream import FeedConfig, PumpPortalFeed

__all__ = ["FeedConfig", "PumpPortalFeed"]
