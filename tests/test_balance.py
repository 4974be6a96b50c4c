import logging

import pytest

from fundchat.balance import ALERT_THROTTLE_S, CACHE_TTL_S, BalanceManager, is_transaction_message

AGENT = "0x" + "9" * 40


class FakeClock:
    def __init__(self):
        self.t = 1000.0

    def __call__(self):
        return self.t


@pytest.fixture
def clock():
    return FakeClock()


def make_manager(wei, clock):
    calls = []

    def get_balance():
        calls.append(1)
        return wei

    mgr = BalanceManager(get_balance, lambda: AGENT, minimum_eth="0.001", target_eth="0.005", clock=clock)
    return mgr, calls


@pytest.mark.parametrize(
    "text,expected",
    [
        ("Send 0.1 ETH to vitalik.eth", True),
        ("deploy a fundraiser for 1 ETH", True),
        ("please create fundraiser now", True),
        ("What's my balance?", False),
        ("I want to contribute", False),
        ("show me the contributors", False),
        ("", False),
        ("sender of the message", False),
    ],
)
def test_is_transaction_message(text, expected):
    assert is_transaction_message(text) is expected


def test_custom_policy():
    assert is_transaction_message("please donate", {"donate": True})
    assert not is_transaction_message("send it", {"send": False})


def test_low_balance_blocks_with_wallet_address(clock):
    mgr, _ = make_manager(5 * 10**14, clock)
    ok, warning = mgr.ensure_sufficient_balance()
    assert ok is False
    assert "0.0005 ETH" in warning
    assert AGENT in warning


def test_sufficient_balance_passes(clock):
    mgr, _ = make_manager(10**16, clock)
    assert mgr.ensure_sufficient_balance() == (True, None)
    assert mgr.status()["isLowBalance"] is False


def test_cache_expires(clock):
    mgr, calls = make_manager(10**16, clock)
    assert mgr.current_balance() == "0.01"
    mgr.current_balance()
    assert len(calls) == 1
    clock.t += CACHE_TTL_S + 1
    mgr.current_balance()
    assert len(calls) == 2


def test_rpc_error_reports_zero(clock):
    def broken():
        raise RuntimeError("rpc down")

    mgr = BalanceManager(broken, lambda: AGENT, clock=clock)
    assert mgr.current_balance() == "0"
    assert mgr.status()["currentBalance"] == "0"
    assert mgr.ensure_sufficient_balance()[0] is False


def test_monitor_tick_throttles_warnings(clock, caplog):
    mgr, _ = make_manager(0, clock)
    with caplog.at_level(logging.WARNING, logger="fundchat.balance"):
        mgr.monitor_tick()
        mgr.monitor_tick()
        clock.t += ALERT_THROTTLE_S + 1
        mgr.monitor_tick()
    alerts = [r for r in caplog.records if "Low balance detected" in r.getMessage()]
    assert len(alerts) == 2
