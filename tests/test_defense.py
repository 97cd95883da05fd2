"""Defense assignments and the cross-player defense read."""
import pytest

from village.game.errors import InsufficientTroops, InvalidInput, NotFound


@pytest.fixture
def towers(make_player, store, place, set_town_hall_level):
    pid = make_player()
    store.add_troops(pid, "soldier", 10)
    store.add_troops(pid, "archer", 4)
    store.commit()
    set_town_hall_level(pid, 2)
    first = place(pid, "defense_tower", 0, 0)
    second = place(pid, "defense_tower", 0, 1)
    return pid, first.id, second.id


def test_assign_and_report(towers, defense):
    pid, first, _ = towers
    defense.assign(pid, first, {"soldier": 6, "archer": 2})

    report = defense.defense_report(pid)
    assert report["troops"] == 6 * 10 + 2 * 15
    assert report["total"] == 90
    assert defense.available_for_attack(pid) == {"archer": 2, "soldier": 4}


def test_assignment_cannot_exceed_owned_across_buildings(towers, defense):
    pid, first, second = towers
    defense.assign(pid, first, {"soldier": 6})

    with pytest.raises(InsufficientTroops) as err:
        defense.assign(pid, second, {"soldier": 5})
    assert err.value.detail["troops"]["soldier"] == {"requested": 5, "available": 4}

    defense.assign(pid, second, {"soldier": 4})


def test_reassigning_a_building_replaces_it(towers, defense):
    pid, first, _ = towers
    defense.assign(pid, first, {"soldier": 10})
    defense.assign(pid, first, {"soldier": 3, "archer": 0})

    assert defense.assignments(pid) == [{"building_id": first, "troop_type": "soldier", "quantity": 3}]


def test_only_defensive_buildings(towers, defense, store):
    pid, _, _ = towers
    th = next(b for b in store.list_buildings(pid) if b.type_key == "town_hall")
    with pytest.raises(InvalidInput):
        defense.assign(pid, th.id, {"soldier": 1})


def test_other_players_tower(towers, make_player, defense):
    _, first, _ = towers
    with pytest.raises(NotFound):
        defense.assign(make_player(), first, {"soldier": 1})


def test_demolished_tower_releases_troops(towers, defense, village):
    pid, first, _ = towers
    defense.assign(pid, first, {"soldier": 10})
    village.demolish(pid, first)

    assert defense.assignments(pid) == []
    assert defense.available_for_attack(pid)["soldier"] == 10


def test_defense_visible_to_attackers(towers, make_player, store, place, defense):
    pid, first, _ = towers
    defense.assign(pid, first, {"archer": 4})
    place(pid, "wall", 3, 3, level=3)

    snapshot = store.read_defense_for(pid)
    assert snapshot.assigned == {"archer": 4}
    assert snapshot.wall_levels == [3]
    assert defense.defense_report(pid)["total"] == 60 + 30


# ----- Disbanding -----

def test_disband_one_unit_by_default(towers, defense, store, ledger):
    pid, _, _ = towers

    assert defense.disband(pid, "soldier") == 9
    assert store.get_troop(pid, "soldier").quantity == 9
    assert ledger.get(pid).population_used == 9 + 4


def test_disbanding_the_last_units_removes_the_row(towers, defense, store):
    pid, _, _ = towers

    assert defense.disband(pid, "archer", 4) == 0
    assert store.get_troop(pid, "archer") is None
    assert "archer" not in defense.owned(pid)


def test_disband_more_than_owned(towers, defense, store):
    pid, _, _ = towers
    with pytest.raises(InsufficientTroops) as err:
        defense.disband(pid, "archer", 5)
    assert (err.value.detail["requested"], err.value.detail["owned"]) == (5, 4)

    with pytest.raises(InsufficientTroops):
        defense.disband(pid, "cannon")
    assert store.get_troop(pid, "archer").quantity == 4


def test_disband_rejects_bad_input(towers, defense):
    pid, _, _ = towers
    with pytest.raises(InvalidInput):
        defense.disband(pid, "soldier", 0)
    with pytest.raises(NotFound):
        defense.disband(pid, "dragon")


def test_disband_shrinks_assignments(towers, defense):
    pid, first, second = towers
    defense.assign(pid, first, {"soldier": 6})
    defense.assign(pid, second, {"soldier": 4})

    defense.disband(pid, "soldier", 3)

    assigned = {a["building_id"]: a["quantity"] for a in defense.assignments(pid)}
    assert assigned == {first: 6, second: 1}
