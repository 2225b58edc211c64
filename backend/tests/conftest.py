"""Shared test fixtures and helpers."""

import json
from datetime import datetime
from typing import Optional

import pytest
from sqlalchemy.orm import sessionmaker

from nailbook.database import build_engine
from nailbook.models.entities import Base, Bookings, NailTechs, Slots
from nailbook.services.clock import to_timestamp
from nailbook.services.events import EventEmitter
from nailbook.services.slots.config import BookingConfig

DAY = "2030-03-12"  # a Tuesday
NOW = datetime(2030, 3, 11, 9, 0)


class FakePipeline:
    def __init__(self, redis):
        self.redis = redis
        self.commands = []

    def rpush(self, key, value):
        self.commands.append((key, value))
        return self

    def execute(self):
        for key, value in self.commands:
            self.redis.rpush(key, value)
        self.commands = []


class FakeRedis:
    """In-memory stand-in for the few redis-py calls the service makes."""

    def __init__(self):
        self.lists: dict[str, list] = {}
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    def ping(self):
        return True

    def pipeline(self):
        return FakePipeline(self)

    def rpush(self, key, value):
        self.lists.setdefault(key, []).append(value)
        return len(self.lists[key])

    def exists(self, key):
        return int(key in self.values)

    def setex(self, key, ttl, value):
        self.values[key] = value
        self.ttls[key] = ttl

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.values:
            return None
        self.values[key] = value
        if ex:
            self.ttls[key] = ex
        return True


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'nailbook.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def events(fake_redis):
    emitter = EventEmitter(fake_redis)
    emitter.start()
    return emitter


@pytest.fixture
def config():
    return BookingConfig()


@pytest.fixture
def nail_tech(db):
    tech = NailTechs(name="Jhen", is_default=1, is_active=1)
    db.add(tech)
    db.commit()
    return tech


def make_slot(
    db,
    nail_tech_id: int,
    time: str,
    date: str = DAY,
    status: str = "available",
    is_hidden: bool = False,
    held_by: Optional[int] = None,
) -> Slots:
    """Helper to insert a slot directly."""
    ts = to_timestamp(NOW)
    slot = Slots(
        nail_tech_id=nail_tech_id,
        date=date,
        time=time,
        status=status,
        is_hidden=int(is_hidden),
        held_by_booking_id=held_by,
        created_at=ts,
        updated_at=ts,
    )
    db.add(slot)
    db.commit()
    return slot


def make_day(db, nail_tech_id: int, times=("10:00", "10:30", "11:00", "13:00"), date: str = DAY) -> dict:
    """Helper to create a day of available slots, keyed by time."""
    return {t: make_slot(db, nail_tech_id, t, date=date) for t in times}


def reload(db, obj):
    db.expire_all()
    return db.get(type(obj), obj.id)


def queued_events(fake_redis, event_type: Optional[str] = None) -> list[dict]:
    raw = fake_redis.lists.get("events:p2p", [])
    decoded = [json.loads(r) for r in raw]
    if event_type:
        decoded = [e for e in decoded if e["type"] == event_type]
    return decoded


def booking_count(db) -> int:
    return db.query(Bookings).count()
