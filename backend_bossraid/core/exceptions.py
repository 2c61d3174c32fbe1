"""
Application-level exceptions.

Domain errors carry an HTTP status so the API server can map them to a
consistent {"error": message} response without per-route try/except ladders.
"""

from __future__ import annotations


class BossRaidError(Exception):
    """Base class for all BossRaid domain errors."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(BossRaidError):
    """Malformed input: missing field, wrong type, unknown action."""

    status_code = 400


class BossNotFoundError(BossRaidError):
    status_code = 404

    def __init__(self, boss_id: int | str) -> None:
        super().__init__(f"Boss with id {boss_id} not found")
        self.boss_id = boss_id


class InvalidHealthError(ValidationError):
    """Health write outside [0, max_health]."""

    def __init__(self, health: float, max_health: float) -> None:
        super().__init__(
            f"Invalid health value: {health}. Must be between 0 and {max_health}"
        )
        self.health = health
        self.max_health = max_health


class StaleBossVersionError(BossRaidError):
    """Optimistic version check failed: another writer updated the boss first."""

    status_code = 409

    def __init__(self, boss_id: int, expected: int, actual: int) -> None:
        super().__init__(
            f"Boss {boss_id} changed concurrently (expected version {expected}, found {actual})"
        )
        self.boss_id = boss_id
        self.expected = expected
        self.actual = actual


class PersistenceError(BossRaidError):
    """Store unreachable or unreadable."""

    status_code = 500


class RpcError(BossRaidError):
    """Solana JSON-RPC call failed."""

    status_code = 502


class RpcRateLimitedError(RpcError):
    status_code = 429


class NoActiveBossError(BossRaidError):
    """Every registered boss is defeated (or none are registered)."""

    status_code = 409

    def __init__(self) -> None:
        super().__init__("No active boss")


class UnauthorizedError(BossRaidError):
    """Write request failed the API key, origin or user-agent check."""

    status_code = 401


class TradeNotFoundError(BossRaidError):
    status_code = 404

    def __init__(self, signature: str) -> None:
        super().__init__("Trade not found")
        self.signature = signature


class TransactionNotFoundError(BossRaidError):
    """The RPC node has no transaction for the signature."""

    status_code = 404

    def __init__(self, signature: str) -> None:
        super().__init__("Transaction not found")
        self.signature = signature


class MintNotFoundError(BossRaidError):
    status_code = 404

    def __init__(self, mint: str) -> None:
        super().__init__("Mint address not found on blockchain")
        self.mint = mint
