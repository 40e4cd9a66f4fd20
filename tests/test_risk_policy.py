"""Tests for the mutable risk policy store."""

from cryptodesk.risk_policy import RiskPolicy, RiskPolicyStore


def test_defaults() -> None:
    """Fresh store carries the documented defaults and an open allowlist."""
    policy = RiskPolicyStore().get()
    assert policy.to_dict() == {
        "perTradeMaxRiskPct": 2.0,
        "maxLeverage": 3.0,
        "dailyDrawdownStopPct": 3.0,
        "allowlist": [],
    }
    assert policy.allows_symbol("ANYTHING")


def test_partial_update_keeps_other_fields() -> None:
    """Only supplied fields change."""
    store = RiskPolicyStore()
    store.set({"allowlist": ["BTCUSDT"]})
    updated = store.set({"max_leverage": 5})
    assert updated.max_leverage == 5
    assert updated.allowlist == ["BTCUSDT"]
    assert updated.per_trade_max_risk_pct == 2.0
    assert updated.daily_drawdown_stop_pct == 3.0


def test_none_values_are_skipped() -> None:
    """Explicit None means 'leave unchanged'."""
    store = RiskPolicyStore()
    store.set({"per_trade_max_risk_pct": 1.5})
    policy = store.set({"per_trade_max_risk_pct": None, "allowlist": ["BTCUSDT"]})
    assert policy.per_trade_max_risk_pct == 1.5
    assert policy.allowlist == ["BTCUSDT"]
    assert policy.allows_symbol("BTCUSDT")
    assert not policy.allows_symbol("ETHUSDT")


def test_unknown_fields_ignored() -> None:
    """Keys outside the policy fields leave the policy untouched."""
    store = RiskPolicyStore()
    before = store.get()
    after = store.set({"maxPosition": 10})
    assert after == before


def test_reset_restores_defaults() -> None:
    """reset() returns to the construction-time defaults."""
    store = RiskPolicyStore()
    store.set({"max_leverage": 10, "allowlist": ["SOLUSDT"]})
    assert store.reset() == RiskPolicy()
    assert store.get().allowlist == []


def test_reads_are_copies() -> None:
    """Mutating a returned policy or the input list never leaks into the store."""
    store = RiskPolicyStore()
    allow = ["BTCUSDT"]
    store.set({"allowlist": allow})
    allow.append("ETHUSDT")
    assert store.get().allowlist == ["BTCUSDT"]

    snapshot = store.get()
    snapshot.allowlist.append("DOGEUSDT")
    snapshot.max_leverage = 50
    assert store.get().allowlist == ["BTCUSDT"]
    assert store.get().max_leverage == 3.0


def test_custom_defaults() -> None:
    """A store can be seeded with its own defaults."""
    store = RiskPolicyStore(RiskPolicy(max_leverage=1))
    store.set({"max_leverage": 2})
    assert store.reset().max_leverage == 1
