from __future__ import annotations

import asyncio

import pytest

from leafgate.core.expiring import ExpiringMap, ExpiringSet


def test_expiring_map_reads_until_deadline(clock) -> None:
    store: ExpiringMap[str, int] = ExpiringMap(10, clock=clock)
    store.set("a", 1)

    clock.advance(9.9)
    assert store.get("a") == 1
    assert "a" in store

    clock.advance(0.1)
    assert store.get("a") is None
    assert "a" not in store
    assert len(store) == 0


def test_expiring_map_reset_extends_deadline(clock) -> None:
    store: ExpiringMap[str, str] = ExpiringMap(10, clock=clock)
    store.set("a", "old")
    clock.advance(8)
    store.set("a", "new")
    clock.advance(8)

    assert store.get("a") == "new"


def test_expiring_map_per_entry_ttl_overrides_default(clock) -> None:
    store: ExpiringMap[str, int] = ExpiringMap(10, clock=clock)
    store.set("short", 1, ttl_seconds=1)
    store.set("long", 2)
    clock.advance(2)

    assert store.keys() == ["long"]
    assert store.items() == [("long", 2)]


def test_expiring_map_delete_reports_live_entries_only(clock) -> None:
    store: ExpiringMap[str, int] = ExpiringMap(5, clock=clock)
    store.set("a", 1)
    store.set("b", 2)
    clock.advance(6)
    store.set("c", 3)

    assert store.delete("c") is True
    assert store.delete("a") is False
    assert store.delete("missing") is False


def test_expiring_map_pop_returns_value_once(clock) -> None:
    store: ExpiringMap[str, int] = ExpiringMap(5, clock=clock)
    store.set("a", 1)

    assert store.pop("a") == 1
    assert store.pop("a", -1) == -1


def test_expiring_map_on_expire_runs_for_lazy_eviction(clock) -> None:
    expired: list[tuple[str, int]] = []
    store: ExpiringMap[str, int] = ExpiringMap(
        1, clock=clock, on_expire=lambda key, value: expired.append((key, value))
    )
    store.set("a", 1)
    store.set("b", 2)
    clock.advance(1)

    assert store.purge_expired() == 2
    assert sorted(expired) == [("a", 1), ("b", 2)]


def test_expiring_map_rejects_negative_ttl() -> None:
    with pytest.raises(ValueError):
        ExpiringMap(-1)
    store: ExpiringMap[str, int] = ExpiringMap(1)
    with pytest.raises(ValueError):
        store.set("a", 1, ttl_seconds=-0.5)


def test_expiring_map_without_loop_schedules_no_timers(clock) -> None:
    store: ExpiringMap[str, int] = ExpiringMap(5, clock=clock)
    store.set("a", 1)

    assert store.pending_timers() == 0
    assert store.get("a") == 1


@pytest.mark.anyio
async def test_expiring_map_timer_evicts_entry() -> None:
    expired: list[str] = []
    store: ExpiringMap[str, int] = ExpiringMap(
        0.01, on_expire=lambda key, _value: expired.append(key)
    )
    store.set("a", 1)
    assert store.pending_timers() == 1

    await asyncio.sleep(0.05)

    assert expired == ["a"]
    assert store.pending_timers() == 0
    assert len(store) == 0


@pytest.mark.anyio
async def test_expiring_map_stale_timer_never_evicts_newer_value() -> None:
    store: ExpiringMap[str, str] = ExpiringMap(0.02)
    store.set("a", "first")
    store.set("a", "second", ttl_seconds=30)

    await asyncio.sleep(0.06)

    assert store.get("a") == "second"
    assert store.pending_timers() == 1
    store.clear()
    assert store.pending_timers() == 0


@pytest.mark.anyio
async def test_expiring_map_clear_then_reuse_starts_fresh_schedule() -> None:
    expired: list[str] = []
    store: ExpiringMap[str, int] = ExpiringMap(
        0.02, on_expire=lambda key, _value: expired.append(key)
    )
    store.set("a", 1)
    store.clear()
    store.set("a", 2, ttl_seconds=30)

    await asyncio.sleep(0.06)

    assert store.get("a") == 2
    assert store.pending_timers() == 1
    assert expired == []
    store.clear()


@pytest.mark.anyio
async def test_expiring_map_delete_cancels_timer() -> None:
    expired: list[str] = []
    store: ExpiringMap[str, int] = ExpiringMap(
        0.01, on_expire=lambda key, _value: expired.append(key)
    )
    store.set("a", 1)
    store.delete("a")

    await asyncio.sleep(0.04)

    assert expired == []
    assert store.pending_timers() == 0


def test_expiring_set_membership_and_discard(clock) -> None:
    members: ExpiringSet[str] = ExpiringSet(3, clock=clock)
    members.add("x")
    members.add("y", ttl_seconds=10)

    assert "x" in members
    assert sorted(members) == ["x", "y"]

    clock.advance(3)
    assert "x" not in members
    assert len(members) == 1
    assert members.discard("y") is True
    assert members.discard("y") is False
