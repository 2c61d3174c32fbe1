"""
Tests for the trade ingestion filter and its sliding-window rate limiter.

The limiter takes an injected clock so windows are deterministic.
"""

from __future__ import annotations

import pytest

from backend_bossraid.raid_engine.filter import (
    REJECT_AMOUNT_TOO_LARGE,
    REJECT_BAD_AMOUNT,
    REJECT_BAD_TX_TYPE,
    REJECT_MISSING_MINT,
    REJECT_MISSING_SIGNATURE,
    REJECT_RATE_LIMITED,
    REJECT_WRONG_MINT,
    SlidingWindowRateLimiter,
    TradeIngestionFilter,
)

from conftest import TEST_MINT, TRADER_A, trade_message


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


def _filter(clock=None, max_events: int = 10) -> TradeIngestionFilter:
    limiter = SlidingWindowRateLimiter(max_events, 1.0, clock=clock or FakeClock())
    return TradeIngestionFilter(TEST_MINT, limiter, max_sol=1000)


def test_valid_buy_accepted():
    """A well-formed buy for the tracked mint becomes a TradeEvent."""
    decision = _filter().check(trade_message("sig-1", 0.5, "buy", traderPublicKey=TRADER_A))
    assert decision.accepted is True
    assert decision.reason is None
    event = decision.event
    assert event.signature == "sig-1"
    assert event.sol_amount == 0.5
    assert event.tx_type == "buy"
    assert event.token_amount == 1000.0
    assert event.trader == TRADER_A


def test_tx_type_is_case_insensitive():
    """'SELL' is normalized to 'sell'."""
    decision = _filter().check(trade_message("sig-1", 1.0, "SELL"))
    assert decision.accepted is True
    assert decision.event.tx_type == "sell"


@pytest.mark.parametrize(
    "message,reason",
    [
        ({"mint": TEST_MINT, "solAmount": 1, "txType": "buy"}, REJECT_MISSING_SIGNATURE),
        ({"signature": "s", "solAmount": 1, "txType": "buy"}, REJECT_MISSING_MINT),
        (trade_message("s", 0), REJECT_BAD_AMOUNT),
        (trade_message("s", -2), REJECT_BAD_AMOUNT),
        (trade_message("s", "1.5"), REJECT_BAD_AMOUNT),
        (trade_message("s", True), REJECT_BAD_AMOUNT),
        (trade_message("s", 1000), REJECT_AMOUNT_TOO_LARGE),
        (trade_message("s", 5000.5), REJECT_AMOUNT_TOO_LARGE),
        (trade_message("s", 1, "create"), REJECT_BAD_TX_TYPE),
        (trade_message("s", 1, "transfer"), REJECT_BAD_TX_TYPE),
        ({**trade_message("s", 1), "mint": "OtherMint111"}, REJECT_WRONG_MINT),
    ],
)
def test_invalid_messages_rejected(message, reason):
    """Each malformed message is rejected with its reason and no event."""
    decision = _filter().check(message)
    assert decision.accepted is False
    assert decision.reason == reason
    assert decision.event is None


def test_alternate_amount_keys():
    """sol_amount and amount are accepted when solAmount is absent."""
    f = _filter()
    msg = {"signature": "a", "mint": TEST_MINT, "sol_amount": 2.0, "txType": "buy"}
    assert f.check(msg).event.sol_amount == 2.0
    msg = {"signature": "b", "mint": TEST_MINT, "amount": 3.0, "txType": "buy"}
    assert f.check(msg).event.sol_amount == 3.0


def test_eleventh_message_in_one_second_is_rate_limited():
    """11 messages inside one window: the 11th is rejected."""
    clock = FakeClock()
    f = _filter(clock)
    decisions = []
    for i in range(11):
        clock.now += 0.05
        decisions.append(f.check(trade_message(f"sig-{i}")))
    assert all(d.accepted for d in decisions[:10])
    assert decisions[10].accepted is False
    assert decisions[10].reason == REJECT_RATE_LIMITED


def test_ten_messages_over_two_seconds_pass():
    """10 messages spread over 2 seconds never exceed the window."""
    clock = FakeClock()
    f = _filter(clock)
    for i in range(10):
        clock.now += 0.2
        assert f.check(trade_message(f"sig-{i}")).accepted is True


def test_window_slides():
    """Once old stamps leave the window, messages are accepted again."""
    clock = FakeClock()
    f = _filter(clock)
    for i in range(11):
        f.check(trade_message(f"sig-{i}"))
    clock.now += 1.5
    assert f.check(trade_message("later")).accepted is True


def test_invalid_messages_count_toward_limit():
    """Rejected messages still occupy the window."""
    clock = FakeClock()
    f = _filter(clock)
    for i in range(10):
        f.check(trade_message(f"bad-{i}", 0))
    decision = f.check(trade_message("good"))
    assert decision.accepted is False
    assert decision.reason == REJECT_RATE_LIMITED


def test_validate_does_not_touch_limiter():
    """validate() and parse() leave the rate window untouched."""
    f = _filter()
    msg = trade_message("sig-1")
    for _ in range(20):
        assert f.validate(msg) is None
    assert len(f.limiter) == 0
    assert f.parse(msg).signature == "sig-1"


def test_limiter_reset():
    """reset() empties the window."""
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(2, 1.0, clock=clock)
    limiter.hit()
    limiter.hit()
    assert limiter.hit() is True
    limiter.reset()
    assert len(limiter) == 0
    assert limiter.hit() is False
