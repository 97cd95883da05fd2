"""Shared fixtures: in-memory database, fixed clock, game components, HTTP client."""
import itertools
import os
from datetime import datetime, timedelta

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from village.database import Base, get_db  # noqa: E402
from village.game.battle import BattleResolver  # noqa: E402
from village.game.construction import ConstructionPlanner  # noqa: E402
from village.game.defense import DefenseManager  # noqa: E402
from village.game.donations import DonationDesk  # noqa: E402
from village.game.errors import StoreFailure  # noqa: E402
from village.game.ledger import ResourceLedger  # noqa: E402
from village.game.locks import PlayerLocks  # noqa: E402
from village.game.store import VillageStore  # noqa: E402
from village.game.training import TrainingScheduler  # noqa: E402
from village.game.village import VillageState, find_town_hall  # noqa: E402
from village.main import create_app  # noqa: E402
from village.models.building import Building  # noqa: E402
from village.models.player import Player  # noqa: E402
from village.routes.deps import get_clock  # noqa: E402

START = datetime(2026, 1, 1, 12, 0, 0)


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(db):
    return VillageStore(db)


@pytest.fixture
def locks():
    return PlayerLocks(timeout=0.2)


@pytest.fixture
def clock():
    return FakeClock(START)


@pytest.fixture
def ledger(store, locks, clock):
    return ResourceLedger(store, locks, clock)


@pytest.fixture
def village(store, locks, clock):
    return VillageState(store, locks, clock)


@pytest.fixture
def planner(store, locks, ledger, village, clock):
    return ConstructionPlanner(store, locks, ledger, village, clock)


@pytest.fixture
def trainer(store, locks, ledger, clock):
    return TrainingScheduler(store, locks, ledger, clock)


@pytest.fixture
def defense(store, locks):
    return DefenseManager(store, locks)


@pytest.fixture
def resolver(store, locks, ledger, clock):
    return BattleResolver(store, locks, ledger, clock)


@pytest.fixture
def desk(store, locks, ledger, clock):
    return DonationDesk(store, locks, ledger, clock)


@pytest.fixture
def make_player(store, ledger, village, clock):
    seq = itertools.count(1)

    def _make(town_hall: bool = True) -> int:
        name = f"player{next(seq)}"
        player = store.add_player(
            Player(username=name, password_hash="x", village_name=f"{name} village", created_at=clock())
        )
        store.commit()
        ledger.initialize(player.id)
        if town_hall:
            village.ensure_town_hall(player.id)
        return player.id

    return _make


@pytest.fixture
def set_town_hall_level(store):
    def _set(player_id: int, level: int) -> Building:
        th = find_town_hall(store.list_buildings(player_id))
        th.level = level
        store.commit()
        return th

    return _set


@pytest.fixture
def place(store, clock):
    """Insert a building directly, skipping every admission rule."""

    def _place(player_id: int, type_key: str, x: int, y: int, level: int = 1) -> Building:
        b = store.add_building(
            Building(player_id=player_id, type_key=type_key, level=level, x=x, y=y, created_at=clock())
        )
        store.commit()
        return b

    return _place


@pytest.fixture
def fail_call(monkeypatch):
    """Make the Nth call of a store method fail the way a lost connection would."""

    def _fail(store: VillageStore, name: str, on_call: int = 1) -> None:
        original = getattr(store, name)
        calls = {"n": 0}

        def broken(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == on_call:
                store.rollback()
                raise StoreFailure(f"simulated {name} failure", operation=name)
            return original(*args, **kwargs)

        monkeypatch.setattr(store, name, broken)

    return _fail


@pytest.fixture
def client(session_factory, clock):
    app = create_app()

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as c:
        yield c
