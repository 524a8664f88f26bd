# tests/conftest.py
"""Shared fixtures: a small sales roster, an in-memory remote store and a fake clock."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from utils.dsa_reporting.cache import LocalCacheStore
from utils.dsa_reporting.models import SalesRecord, User
from utils.dsa_reporting.store import SalesDataStore
from utils.dsa_reporting.sync import RemoteSyncClient


class FakeClock:
    """Callable clock for TTL tests; advance() moves it forward."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def roster():
    """
    ADMIN
    RSM Rita
      SM Sarah -> DSS Dan -> DSA Xuan (C1), DSA Yen (C2)
      SM Minh  -> DSS Hoa -> DSA Zoe (C3)
               -> DSA Lan (C4) reporting to the SM directly
    """
    return [
        User(id='u-admin', username='admin', name='Admin', role='ADMIN'),
        User(id='u-rsm', username='rita', name='Rita', role='RSM', parent_id='u-admin'),
        User(id='u-sm1', username='sarah', name='Sarah', role='SM', parent_id='u-rsm'),
        User(id='u-dss1', username='dan', name='Dan', role='DSS', parent_id='u-sm1'),
        User(id='u-dsa1', username='xuan', name='Xuan', role='DSA', parent_id='u-dss1', dsa_code='C1'),
        User(id='u-dsa2', username='yen', name='Yen', role='DSA', parent_id='u-dss1', dsa_code='C2'),
        User(id='u-sm2', username='minh', name='Minh', role='SM', parent_id='u-rsm'),
        User(id='u-dss2', username='hoa', name='Hoa', role='DSS', parent_id='u-sm2'),
        User(id='u-dsa3', username='zoe', name='Zoe', role='DSA', parent_id='u-dss2', dsa_code='C3'),
        User(id='u-dsa4', username='lan', name='Lan', role='DSA', parent_id='u-sm2', dsa_code='C4'),
    ]


@pytest.fixture
def users_by_name(roster):
    return {u.username: u for u in roster}


@pytest.fixture
def make_record():
    """Factory for reported records with sensible defaults."""
    counter = {'n': 0}

    def _make(dsa_code='C1', report_date='2024-01-01', **kwargs):
        counter['n'] += 1
        kwargs.setdefault('id', f"r{counter['n']}")
        return SalesRecord(dsa_code=dsa_code, report_date=report_date, **kwargs)

    return _make


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    yield engine
    engine.dispose()


@pytest.fixture
def remote(engine):
    client = RemoteSyncClient(engine, batch_size=2)
    client.connect()
    yield client
    client.close()


@pytest.fixture
def cache(clock):
    return LocalCacheStore({}, clock=clock)


@pytest.fixture
def store(remote, cache):
    data_store = SalesDataStore(remote, cache)
    data_store.connect()
    yield data_store
    data_store.close()


@pytest.fixture
def offline_store(cache):
    return SalesDataStore(None, cache)
