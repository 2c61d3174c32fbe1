"""Wallet validation and display formatting for leaderboards."""

from __future__ import annotations

from solders.pubkey import Pubkey


def is_valid_wallet(w: str) -> bool:
    """Return True if w is a valid Solana wallet (Pubkey) address."""
    try:
        Pubkey.from_string((w or "").strip())
        return True
    except Exception:
        return False


def format_address(address: str) -> str:
    """First 4 and last 4 characters, e.g. 'AbCd...WxYz'."""
    if len(address) <= 8:
        return address
    return f"{address[:4]}...{address[-4:]}"


def format_compact(amount: float) -> str:
    """Two decimals with K / M suffix above a thousand / a million."""
    if amount >= 1_000_000:
        return f"{amount / 1_000_000:.2f}M"
    if amount >= 1_000:
        return f"{amount / 1_000:.2f}K"
    return f"{amount:.2f}"


def format_damage(amount: float) -> str:
    return format_compact(amount)


def format_token_amount(raw_amount: float, decimals: int = 6) -> str:
    """Raw integer token amount to a compact human string."""
    return format_compact(raw_amount / (10**decimals))
