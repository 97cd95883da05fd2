"""Battle math and resolution."""
import threading
from datetime import timedelta
from fractions import Fraction

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from village.database import Base
from village.game.battle import BattleResolver, loss_fraction, pillage, steal_fraction, troop_losses
from village.game.errors import InsufficientTroops, InvalidInput, NotFound, SelfAttack, UnknownTroopType
from village.game.ledger import ResourceLedger
from village.game.locks import PlayerLocks
from village.game.store import VillageStore
from village.models.player import Player

from conftest import START


# ----- Pure math -----

def test_victory_loss_fraction_is_exact():
    fraction = loss_fraction(100, 80)
    assert fraction == Fraction(7, 18)
    assert round(float(fraction), 4) == 0.3889
    assert troop_losses({"soldier": 10}, fraction) == {"soldier": 3}


def test_loss_fraction_floors():
    # Crushing win still costs 10%
    assert loss_fraction(1000, 0) == Fraction(1, 10)
    # Narrow defeat costs at least half
    assert loss_fraction(79, 80) >= Fraction(1, 2)
    # Heavy defeat never exceeds the whole force
    assert loss_fraction(10, 1000) == 1


def test_equal_power_is_victory():
    assert loss_fraction(80, 80) == Fraction(1, 2)


def test_steal_fraction_and_pillage():
    fraction = steal_fraction(100, 80)
    assert fraction == Fraction(11, 180)
    assert pillage({"wood": 1000, "stone": 800, "food": 600, "iron": 400, "gold": 50}, fraction) == {
        "wood": 61,
        "stone": 48,
        "iron": 24,
        "food": 36,
    }


# ----- Resolution -----

@pytest.fixture
def armies(make_player, store, place, set_town_hall_level, defense):
    """Attacker with 10 soldiers (100 power); defender with 8 soldiers on a tower (80 power)."""
    attacker = make_player()
    defender = make_player()
    store.add_troops(attacker, "soldier", 10)
    store.add_troops(defender, "soldier", 8)
    store.commit()

    set_town_hall_level(defender, 2)
    tower = place(defender, "defense_tower", 0, 0)
    defense.assign(defender, tower.id, {"soldier": 8})
    return attacker, defender


def test_victory_applies_losses_and_pillage(armies, resolver, ledger, store, clock):
    attacker, defender = armies
    clock.advance(minutes=10, seconds=20)

    outcome = resolver.execute(attacker, defender, {"soldier": 10})

    assert outcome.victory is True
    assert (outcome.attack_power, outcome.defense_power) == (100, 80)
    assert outcome.attacker_losses == {"soldier": 3}
    assert outcome.stolen == {"wood": 61, "stone": 48, "iron": 24, "food": 36}
    assert outcome.warnings == []

    assert store.get_troop(attacker, "soldier").quantity == 7
    assert store.get_troop(defender, "soldier").quantity == 8

    a = ledger.get(attacker)
    d = ledger.get(defender)
    assert (a.wood, a.stone, a.food, a.iron) == (1061, 848, 636, 424)
    assert (d.wood, d.stone, d.food, d.iron) == (939, 752, 564, 376)
    # Both sides were accrued to the whole minute; the transfer left the clocks alone
    assert a.last_accrual_at == START + timedelta(minutes=10)
    assert d.last_accrual_at == START + timedelta(minutes=10)


def test_battle_is_recorded(armies, resolver):
    attacker, defender = armies
    outcome = resolver.execute(attacker, defender, {"soldier": 10})

    record = resolver.get_record(defender, outcome.record_id)
    assert record["result"] == "victory"
    assert record["attacker_losses"] == {"soldier": 3}
    assert record["attacking_troops"] == {"soldier": 10}
    assert record["defender_losses"] == {}
    assert record["stolen"]["wood"] == 61
    assert [b["id"] for b in resolver.history(attacker)] == [outcome.record_id]


def test_record_failure_does_not_undo_battle(armies, resolver, store, fail_call):
    attacker, defender = armies
    fail_call(store, "add_battle")

    outcome = resolver.execute(attacker, defender, {"soldier": 10})

    assert outcome.record_id is None
    assert [w["error"] for w in outcome.warnings] == ["BattleNotRecorded"]
    assert store.get_troop(attacker, "soldier").quantity == 7
    assert resolver.history(attacker) == []


def test_defeat_can_wipe_out_attackers(armies, resolver, ledger, store):
    attacker, defender = armies
    before = ledger.get(defender).wood

    outcome = resolver.execute(attacker, defender, {"soldier": 5})

    assert outcome.victory is False
    assert outcome.attacker_losses == {"soldier": 5}
    assert outcome.stolen == {"wood": 0, "stone": 0, "iron": 0, "food": 0}
    assert store.get_troop(attacker, "soldier").quantity == 5
    assert ledger.get(defender).wood == before


def test_lost_row_is_removed(make_player, resolver, store, place, set_town_hall_level, defense):
    attacker = make_player()
    defender = make_player()
    store.add_troops(attacker, "archer", 2)
    store.add_troops(defender, "cannon", 1)
    store.commit()
    set_town_hall_level(defender, 2)
    tower = place(defender, "defense_tower", 0, 0)
    defense.assign(defender, tower.id, {"cannon": 1})

    resolver.execute(attacker, defender, {"archer": 2})

    assert store.get_troop(attacker, "archer") is None


def test_walls_add_defense(make_player, resolver, store, place):
    attacker = make_player()
    defender = make_player()
    store.add_troops(attacker, "soldier", 3)
    store.commit()
    place(defender, "wall", 0, 0, level=2)
    place(defender, "wall", 1, 0, level=2)

    outcome = resolver.execute(attacker, defender, {"soldier": 3})

    assert outcome.defense_power == 40
    assert outcome.victory is False


def test_assignments_shrink_after_losses(armies, resolver, store, place, set_town_hall_level, defense):
    attacker, defender = armies
    set_town_hall_level(attacker, 2)
    tower = place(attacker, "defense_tower", 0, 0)
    defense.assign(attacker, tower.id, {"soldier": 10})

    resolver.execute(attacker, defender, {"soldier": 10})

    assigned = {a["troop_type"]: a["quantity"] for a in defense.assignments(attacker)}
    assert assigned == {"soldier": 7}


def test_self_attack_rejected(armies, resolver):
    attacker, _ = armies
    with pytest.raises(SelfAttack):
        resolver.execute(attacker, attacker, {"soldier": 1})


def test_attack_needs_owned_troops(armies, resolver, store):
    attacker, defender = armies
    with pytest.raises(InsufficientTroops) as err:
        resolver.execute(attacker, defender, {"soldier": 11})
    assert err.value.detail["troops"]["soldier"] == {"requested": 11, "owned": 10}
    assert store.get_troop(attacker, "soldier").quantity == 10


@pytest.mark.parametrize("troops", [{}, {"soldier": 0}, {"soldier": -2}])
def test_attack_needs_a_force(armies, resolver, troops):
    attacker, defender = armies
    with pytest.raises(InvalidInput):
        resolver.execute(attacker, defender, troops)


def test_unknown_troop_and_defender(armies, resolver):
    attacker, defender = armies
    with pytest.raises(UnknownTroopType):
        resolver.execute(attacker, defender, {"dragon": 1})
    with pytest.raises(NotFound):
        resolver.execute(attacker, 9999, {"soldier": 1})


def test_record_hidden_from_third_party(armies, make_player, resolver):
    attacker, defender = armies
    outcome = resolver.execute(attacker, defender, {"soldier": 10})
    with pytest.raises(NotFound):
        resolver.get_record(make_player(), outcome.record_id)


def test_pillage_counts_production_since_last_read(armies, resolver, ledger, place, clock):
    attacker, defender = armies
    place(defender, "sawmill", 3, 3)
    # 10 min of sawmill output (50 wood) lands before the loot is taken
    clock.advance(minutes=10)

    outcome = resolver.execute(attacker, defender, {"soldier": 10})

    assert outcome.stolen["wood"] == 64
    assert ledger.get(defender).wood == 1050 - 64


def test_mutual_attacks_from_two_threads(tmp_path, clock):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'battles.db'}",
        connect_args={"check_same_thread": False},
        future=True,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    locks = PlayerLocks(timeout=5)

    setup = factory()
    store = VillageStore(setup)
    ledger = ResourceLedger(store, locks, clock)
    ids = []
    for name in ("north", "south"):
        player = store.add_player(Player(username=name, password_hash="x", village_name=name, created_at=clock()))
        store.commit()
        ledger.initialize(player.id)
        store.add_troops(player.id, "soldier", 10)
        store.commit()
        ids.append(player.id)
    setup.close()

    start = threading.Barrier(2)
    outcomes, errors = [], []

    def fight(attacker, defender):
        session = factory()
        try:
            resolver = BattleResolver(VillageStore(session), locks, clock=clock)
            start.wait()
            outcomes.append(resolver.execute(attacker, defender, {"soldier": 10}))
        except Exception as exc:  # noqa: BLE001
            errors.append(exc)
        finally:
            session.close()

    a, b = ids
    threads = [threading.Thread(target=fight, args=(a, b)), threading.Thread(target=fight, args=(b, a))]
    for t in threads:
        t.start()
    for t in threads:
        t.join(20)

    assert not any(t.is_alive() for t in threads)
    assert errors == []
    assert sorted(o.attacker_id for o in outcomes) == sorted(ids)

    check = factory()
    try:
        store = VillageStore(check)
        assert {pid: store.get_troop(pid, "soldier").quantity for pid in ids} == {a: 9, b: 9}
        assert len(store.list_battles(a)) == 2
    finally:
        check.close()
        engine.dispose()
