import os
import sys
from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
os.environ.setdefault("TOKO_DB_URL", "sqlite://")

from controller import TokoController  # noqa: E402
from db import Base, make_engine  # noqa: E402
from persistence import KeyValueStorage  # noqa: E402
from utils import Clock  # noqa: E402


class FixedClock(Clock):
    """Clock that starts at a fixed moment and ticks one second per call."""

    def __init__(self, start=datetime(2024, 5, 10, 9, 0, 0)):
        super().__init__("Asia/Jakarta")
        self.current = self.tz.localize(start)
        self._next_id = 1715306400000

    def now(self):
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value

    def new_id(self):
        self._next_id += 1
        return str(self._next_id)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def storage(session_factory):
    return KeyValueStorage(session_factory)


@pytest.fixture
def toko(clock):
    return TokoController(clock=clock)


@pytest.fixture
def persisted_toko(storage, clock):
    controller = TokoController(storage=storage, clock=clock, flush_delay=60)
    yield controller
    controller.close()
