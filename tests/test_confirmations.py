"""Tests for confirmation tickets and lazy expiry."""

import asyncio

import pytest

from cryptodesk.confirmations import ID_ALPHABET, ConfirmationRegistry, generate_id


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_generate_id_alphabet() -> None:
    """Ids are lowercase alphanumeric of the requested length."""
    tid = generate_id(12)
    assert len(tid) == 12
    assert set(tid) <= set(ID_ALPHABET)


def test_create_and_get() -> None:
    """A fresh ticket is retrievable with default TTL of one hour."""
    clock = FakeClock()
    reg = ConfirmationRegistry(clock=clock)
    ticket = reg.create({"symbol": "BTCUSDT"}, reason="risk exceeded")
    assert len(ticket.id) == 12
    assert ticket.expires_at - ticket.created_at == 3600

    got = reg.get(ticket.id)
    assert got is ticket
    assert got.draft == {"symbol": "BTCUSDT"}
    assert got.reason == "risk exceeded"


def test_expiry_boundary_is_exclusive() -> None:
    """Visible strictly before expires_at, gone at expires_at."""
    clock = FakeClock()
    reg = ConfirmationRegistry(clock=clock)
    ticket = reg.create({}, ttl_seconds=30)

    clock.now += 29
    assert reg.get(ticket.id) is not None
    clock.now += 1
    assert reg.get(ticket.id) is None


def test_unknown_id_returns_none() -> None:
    """Missing tickets are a None result, not an exception."""
    reg = ConfirmationRegistry()
    assert reg.get("doesnotexist") is None


def test_list_purges_expired() -> None:
    """list() drops every expired ticket from the registry."""
    clock = FakeClock()
    reg = ConfirmationRegistry(clock=clock)
    short = reg.create({"n": 1}, ttl_seconds=30)
    long = reg.create({"n": 2}, ttl_seconds=600)
    assert len(reg) == 2

    clock.now += 60
    assert len(reg) == 2  # nothing purged until the next call
    assert [t.id for t in reg.list()] == [long.id]
    assert len(reg) == 1
    assert reg.get(short.id) is None


def test_to_dict_iso_times() -> None:
    """Serialized tickets carry ISO-8601 UTC timestamps."""
    clock = FakeClock(now=0.0)
    reg = ConfirmationRegistry(clock=clock)
    d = reg.create({"a": 1}, ttl_seconds=60).to_dict()
    assert d["createdAt"] == "1970-01-01T00:00:00.000Z"
    assert d["expiresAt"] == "1970-01-01T00:01:00.000Z"
    assert d["draft"] == {"a": 1}


@pytest.mark.asyncio
async def test_real_clock_ttl_one_second() -> None:
    """ttl_seconds=1 is visible immediately and gone after 1.1s."""
    reg = ConfirmationRegistry()
    ticket = reg.create({"side": "BUY"}, ttl_seconds=1)
    assert reg.get(ticket.id) is not None
    await asyncio.sleep(1.1)
    assert reg.get(ticket.id) is None
    assert reg.list() == []
