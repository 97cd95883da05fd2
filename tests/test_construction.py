"""Construction and upgrade admission rules."""
import pytest

from village.game.errors import (
    BuildingLimitReached,
    DuplicateUniqueBuilding,
    InsufficientResources,
    InvalidInput,
    InvalidPosition,
    MaxLevelExceeded,
    PositionOccupied,
    TownHallLevelTooLow,
    TownHallProtected,
    UnknownBuildingType,
)
from village.game.village import find_town_hall, town_hall_candidates


def test_new_player_has_town_hall_at_center(make_player, store):
    pid = make_player()
    th = find_town_hall(store.list_buildings(pid))
    assert (th.x, th.y, th.level) == (7, 7, 1)


def test_construct_deducts_cost_and_keeps_clock(make_player, planner, ledger, clock):
    pid = make_player()
    before = ledger.get(pid).last_accrual_at
    clock.advance(seconds=45)

    result = planner.construct(pid, "sawmill", 2, 3)

    counters = ledger.get(pid)
    assert result.building.type_key == "sawmill"
    assert (result.building.x, result.building.y) == (2, 3)
    assert result.warnings == []
    assert (counters.wood, counters.stone) == (950, 770)
    assert counters.last_accrual_at == before


def test_occupied_cell_is_rejected(make_player, planner):
    pid = make_player()
    # Town hall sits on (7, 7); a farm is otherwise buildable
    with pytest.raises(PositionOccupied):
        planner.construct(pid, "farm", 7, 7)


@pytest.mark.parametrize("x,y", [(-1, 0), (0, 15), (15, 15), (3, -2)])
def test_out_of_bounds_is_rejected(make_player, planner, x, y):
    pid = make_player()
    with pytest.raises(InvalidPosition):
        planner.construct(pid, "farm", x, y)


def test_unknown_building_type(make_player, planner):
    pid = make_player()
    with pytest.raises(UnknownBuildingType):
        planner.construct(pid, "castle", 1, 1)


def test_insufficient_resources_names_deficits(make_player, planner, ledger, store):
    pid = make_player()
    ledger.adjust(pid, {"wood": -900, "iron": -400})
    store.commit()

    with pytest.raises(InsufficientResources) as err:
        planner.construct(pid, "barracks", 1, 1)

    missing = err.value.detail["missing"]
    assert missing["wood"] == {"need": 200, "have": 100, "missing": 100}
    assert missing["iron"] == {"need": 50, "have": 0, "missing": 50}
    assert "stone" not in missing
    assert len(store.list_buildings(pid)) == 1


def test_walls_capped_at_five_per_town_hall_level(make_player, planner):
    pid = make_player()
    for i in range(5):
        planner.construct(pid, "wall", i, 0)

    with pytest.raises(BuildingLimitReached) as err:
        planner.construct(pid, "wall", 5, 0)
    assert err.value.detail["max"] == 5


def test_walls_do_not_count_against_general_cap(make_player, planner):
    pid = make_player()
    for i in range(3):
        planner.construct(pid, "wall", i, 0)
    for i in range(5):
        planner.construct(pid, "farm", i, 1)

    with pytest.raises(BuildingLimitReached) as err:
        planner.construct(pid, "farm", 5, 1)
    assert err.value.detail["current"] == 5


def test_general_cap_grows_with_town_hall(make_player, planner, set_town_hall_level):
    pid = make_player()
    for i in range(5):
        planner.construct(pid, "farm", i, 1)
    set_town_hall_level(pid, 2)
    planner.construct(pid, "farm", 5, 1)


def test_defense_tower_requires_town_hall_two(make_player, planner, set_town_hall_level):
    pid = make_player()
    with pytest.raises(TownHallLevelTooLow):
        planner.construct(pid, "defense_tower", 1, 1)

    set_town_hall_level(pid, 2)
    assert planner.construct(pid, "defense_tower", 1, 1).building.type_key == "defense_tower"


def test_unique_building_only_once(make_player, planner):
    pid = make_player()
    planner.construct(pid, "barracks", 1, 1)
    with pytest.raises(DuplicateUniqueBuilding):
        planner.construct(pid, "barracks", 2, 2)


def test_second_town_hall_is_rejected(make_player, planner):
    pid = make_player()
    with pytest.raises(DuplicateUniqueBuilding):
        planner.construct(pid, "town_hall", 1, 1)


def test_missing_town_hall_is_created_off_the_requested_cell(make_player, planner, store):
    pid = make_player(town_hall=False)

    result = planner.construct(pid, "farm", 7, 7)

    th = find_town_hall(store.list_buildings(pid))
    assert th is not None
    assert (th.x, th.y) == (8, 7)
    assert (result.building.x, result.building.y) == (7, 7)


def test_town_hall_falls_back_to_nearest_free_cell(make_player, village, place):
    pid = make_player(town_hall=False)
    for x, y in town_hall_candidates():
        place(pid, "wall", x, y)

    th = village.ensure_town_hall(pid)

    # Nearest ring-1 cell the preferred pattern skips
    assert (th.x, th.y) == (6, 8)


def test_failed_deduction_keeps_building_and_warns(make_player, planner, ledger, store, fail_call):
    pid = make_player()
    # First commit stores the building, the second one would store the payment
    fail_call(store, "commit", on_call=2)

    result = planner.construct(pid, "farm", 1, 1)

    assert [w["error"] for w in result.warnings] == ["CostNotDeducted"]
    assert any(b.type_key == "farm" for b in store.list_buildings(pid))
    assert ledger.get(pid).wood == 1000


# ----- Upgrades -----

def test_town_hall_upgrade_costs_and_levels(make_player, planner, ledger, store):
    pid = make_player()
    th = find_town_hall(store.list_buildings(pid))

    result = planner.upgrade(pid, th.id)

    counters = ledger.get(pid)
    assert (result.from_level, result.to_level) == (1, 2)
    assert (counters.wood, counters.stone, counters.food, counters.iron) == (500, 400, 400, 300)


def test_upgrade_pays_with_production_not_yet_read(make_player, planner, ledger, store, place, set_town_hall_level, clock):
    pid = make_player()
    th = set_town_hall_level(pid, 2)
    place(pid, "sawmill", 0, 0)
    place(pid, "quarry", 1, 0)
    ledger.adjust(pid, {"wood": -100, "stone": -40})
    store.commit()

    # 900 wood and 760 stone on the books; level 3 needs 1000 and 800
    clock.advance(minutes=20)
    result = planner.upgrade(pid, th.id)

    counters = ledger.get(pid)
    assert result.to_level == 3
    assert (counters.wood, counters.stone) == (0, 40)
    assert counters.last_accrual_at == clock()


def test_construct_pays_with_production_not_yet_read(make_player, planner, ledger, store, place, clock):
    pid = make_player()
    place(pid, "farm", 0, 0)
    ledger.adjust(pid, {"wood": -1000})
    store.commit()

    clock.advance(minutes=5)
    with pytest.raises(InsufficientResources):
        planner.construct(pid, "sawmill", 2, 2)

    ledger.adjust(pid, {"wood": 50})
    store.commit()
    result = planner.construct(pid, "sawmill", 2, 2)
    assert result.building.type_key == "sawmill"
    # Farm output from the five minutes was credited once
    assert ledger.get(pid).food == 630


def test_town_hall_above_four_fails_regardless_of_resources(make_player, planner, ledger, store, set_town_hall_level):
    pid = make_player()
    th = set_town_hall_level(pid, 4)

    with pytest.raises(MaxLevelExceeded):
        planner.upgrade(pid, th.id)

    ledger.adjust(pid, {"wood": 10**9, "stone": 10**9, "food": 10**9, "iron": 10**9})
    store.commit()
    with pytest.raises(MaxLevelExceeded):
        planner.upgrade(pid, th.id, 5)


def test_upgrade_must_be_one_level(make_player, planner, store):
    pid = make_player()
    th = find_town_hall(store.list_buildings(pid))
    with pytest.raises(InvalidInput):
        planner.upgrade(pid, th.id, 3)


def test_building_cannot_pass_town_hall_level(make_player, planner, set_town_hall_level):
    pid = make_player()
    farm = planner.construct(pid, "farm", 1, 1).building

    with pytest.raises(TownHallLevelTooLow):
        planner.upgrade(pid, farm.id)

    set_town_hall_level(pid, 2)
    assert planner.upgrade(pid, farm.id).to_level == 2
    with pytest.raises(TownHallLevelTooLow):
        planner.upgrade(pid, farm.id)


def test_upgrade_unaffordable(make_player, planner, ledger, store):
    pid = make_player()
    ledger.adjust(pid, {"wood": -1000})
    store.commit()
    th = find_town_hall(store.list_buildings(pid))

    with pytest.raises(InsufficientResources) as err:
        planner.upgrade(pid, th.id)
    assert err.value.detail["missing"]["wood"]["missing"] == 500


def test_preview_reports_blocker_without_changes(make_player, planner, ledger):
    pid = make_player()
    farm = planner.construct(pid, "farm", 1, 1).building
    wood = ledger.get(pid).wood

    preview = planner.preview_upgrade(pid, farm.id)

    assert preview["allowed"] is False
    assert preview["blocked"]["error"] == "TownHallLevelTooLow"
    assert preview["cost"] == {"wood": 80, "stone": 40, "food": 0, "iron": 0}
    assert ledger.get(pid).wood == wood
    assert planner.can_upgrade(pid, farm.id) is False


# ----- Move / demolish -----

def test_move_building(make_player, planner, village):
    pid = make_player()
    farm = planner.construct(pid, "farm", 1, 1).building

    with pytest.raises(PositionOccupied):
        village.move(pid, farm.id, 7, 7)
    with pytest.raises(InvalidPosition):
        village.move(pid, farm.id, 20, 1)

    moved = village.move(pid, farm.id, 4, 4)
    assert (moved.x, moved.y) == (4, 4)


def test_town_hall_cannot_be_demolished(make_player, village, store):
    pid = make_player()
    th = find_town_hall(store.list_buildings(pid))
    with pytest.raises(TownHallProtected):
        village.demolish(pid, th.id)


def test_demolish_frees_the_cell(make_player, planner, village, store):
    pid = make_player()
    farm = planner.construct(pid, "farm", 1, 1).building
    village.demolish(pid, farm.id)

    assert [b.type_key for b in store.list_buildings(pid)] == ["town_hall"]
    planner.construct(pid, "quarry", 1, 1)


def test_limits_and_town_hall_info(make_player, planner, village):
    pid = make_player()
    planner.construct(pid, "farm", 1, 1)
    planner.construct(pid, "wall", 0, 0)

    limits = village.limits(pid)
    assert limits == {"town_hall_level": 1, "buildings": 1, "max_buildings": 5, "walls": 1, "max_walls": 5}

    info = village.town_hall_info(pid)
    assert info["can_upgrade"] is True
    assert info["next_max_buildings"] == 10
