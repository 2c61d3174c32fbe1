"""
Backend BossRaid: live trade-driven boss raid game backend.

Listens to a Solana meme-coin trade stream, turns buys into damage and sells
into heals against a rotating sequence of bosses, and persists health, trade
history and session totals behind a small HTTP API. Modular architecture with
clear separation between ingestion, raid engine, storage, and API server.
"""

__version__ = "0.1.0"
