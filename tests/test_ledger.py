"""Resource accrual, clamping and initialization."""
from datetime import timedelta
from types import SimpleNamespace

import pytest

from village.game.errors import StoreFailure
from village.game.ledger import apply_delta, compute_accrual, missing_resources

from conftest import START


def _b(type_key, level=1):
    return SimpleNamespace(type_key=type_key, level=level)


def test_under_one_minute_is_noop():
    result = compute_accrual(START, [_b("sawmill")], START + timedelta(seconds=59))
    assert result.minutes == 0
    assert result.produced == {}
    assert result.last_accrual_at == START


def test_accrual_is_additive_over_split_windows():
    buildings = [_b("sawmill"), _b("farm"), _b("quarry", 3)]
    whole = compute_accrual(START, buildings, START + timedelta(minutes=7))

    first = compute_accrual(START, buildings, START + timedelta(minutes=3))
    second = compute_accrual(first.last_accrual_at, buildings, START + timedelta(minutes=7))

    for kind, amount in whole.produced.items():
        assert first.produced[kind] + second.produced[kind] == amount
    assert second.last_accrual_at == whole.last_accrual_at


def test_sub_minute_remainder_is_kept():
    result = compute_accrual(START, [_b("sawmill")], START + timedelta(minutes=5, seconds=40))
    assert result.minutes == 5
    assert result.last_accrual_at == START + timedelta(minutes=5)


def test_flooring_is_per_building():
    # Level 2 sawmill: 5 * 1.5 + 1 = 8.5 per minute
    result = compute_accrual(START, [_b("sawmill", 2), _b("sawmill", 2)], START + timedelta(minutes=1))
    assert result.produced == {"wood": 16}


def test_non_generators_produce_nothing():
    result = compute_accrual(START, [_b("town_hall"), _b("house"), _b("wall")], START + timedelta(minutes=10))
    assert result.minutes == 10
    assert result.produced == {}


def test_apply_delta_never_goes_negative():
    values = {"wood": 10, "stone": 0, "food": 5, "iron": 1}
    out = apply_delta(values, {"wood": -10_000, "stone": -1, "food": 3})
    assert out["wood"] == 0
    assert out["stone"] == 0
    assert out["food"] == 8
    assert out["iron"] == 1
    assert all(v >= 0 for v in out.values())


def test_apply_delta_rejects_unknown_kind():
    with pytest.raises(ValueError):
        apply_delta({}, {"mana": 1})


def test_missing_resources_names_each_deficit():
    missing = missing_resources({"wood": 30, "stone": 100}, {"wood": 50, "stone": 20, "iron": 5})
    assert missing == {
        "wood": {"need": 50, "have": 30, "missing": 20},
        "iron": {"need": 5, "have": 0, "missing": 5},
    }


def test_initialize_sets_defaults_and_is_idempotent(make_player, ledger):
    pid = make_player()
    counters = ledger.get(pid)
    assert (counters.wood, counters.stone, counters.food, counters.iron) == (1000, 800, 600, 400)
    assert (counters.gold, counters.elixir, counters.gems) == (0, 0, 0)
    assert counters.population_cap == 10

    ledger.adjust(pid, {"wood": -100})
    ledger.store.commit()

    again = ledger.initialize(pid)
    assert again.wood == 900


def test_adjust_preserves_accrual_clock(make_player, ledger, clock):
    pid = make_player()
    before = ledger.get(pid).last_accrual_at

    clock.advance(minutes=3)
    ledger.adjust(pid, {"wood": -50, "gold": 20})
    ledger.store.commit()

    counters = ledger.get(pid)
    assert counters.last_accrual_at == before
    assert counters.wood == 950
    assert counters.gold == 20


def test_accrue_applies_production(make_player, ledger, place, clock):
    pid = make_player()
    place(pid, "farm", 0, 0)

    clock.advance(minutes=4, seconds=10)
    result = ledger.accrue(pid)

    counters = ledger.get(pid)
    assert result.produced == {"food": 24}
    assert counters.food == 624
    assert counters.wood == 1000
    assert counters.last_accrual_at == START + timedelta(minutes=4)


def test_failed_accrual_write_keeps_clock(make_player, ledger, place, clock, fail_call):
    pid = make_player()
    place(pid, "sawmill", 0, 0)
    clock.advance(minutes=3)

    fail_call(ledger.store, "commit")
    with pytest.raises(StoreFailure):
        ledger.accrue(pid)

    counters = ledger.get(pid)
    assert counters.wood == 1000
    assert counters.last_accrual_at == START

    # Same window retried, not lost and not doubled
    result = ledger.accrue(pid)
    assert result.produced == {"wood": 15}
    assert ledger.get(pid).wood == 1015


def test_accrue_twice_in_same_minute_counts_once(make_player, ledger, place, clock):
    pid = make_player()
    place(pid, "sawmill", 0, 0)
    clock.advance(minutes=2)

    ledger.accrue(pid)
    second = ledger.accrue(pid)

    assert second.minutes == 0
    assert ledger.get(pid).wood == 1010
