# tests/test_cache.py
import logging

import pytest

from utils.dsa_reporting.cache import JsonFileStorage, LocalCacheStore
from utils.dsa_reporting.models import User


@pytest.fixture
def file_cache(tmp_path, clock):
    return LocalCacheStore(JsonFileStorage(tmp_path / 'cache'), clock=clock)


class TestJsonFileStorage:

    def test_mapping_behaviour(self, tmp_path):
        storage = JsonFileStorage(tmp_path)
        storage['pref:startDate'] = '"2024-01-01"'
        storage['app_users'] = '[]'

        assert storage['pref:startDate'] == '"2024-01-01"'
        assert set(storage) == {'pref:startDate', 'app_users'}
        assert len(storage) == 2

        del storage['app_users']
        assert 'app_users' not in storage
        with pytest.raises(KeyError):
            storage['app_users']

    def test_no_temp_files_left(self, tmp_path):
        storage = JsonFileStorage(tmp_path)
        storage['k'] = 'v'
        assert [p.name for p in tmp_path.iterdir()] == ['k.json']


class TestLocalCacheStore:

    def test_records_roundtrip_on_disk(self, file_cache, make_record, tmp_path, clock):
        file_cache.save_records([make_record('C1', '2024-01-01', direct_volume=5)])

        reopened = LocalCacheStore(JsonFileStorage(tmp_path / 'cache'), clock=clock)
        records = reopened.load_records()
        assert [(r.dsa_code, r.direct_volume) for r in records] == [('C1', 5)]

    def test_current_user(self, cache):
        user = User(id='u1', username='xuan', name='Xuan', role='DSA', dsa_code='C1')
        cache.save_current_user(user)
        assert cache.load_current_user() == user

        cache.save_current_user(None)
        assert cache.load_current_user() is None

    def test_corrupt_entry_is_discarded(self, cache, caplog):
        cache.storage['sales_records'] = '{not json'
        with caplog.at_level(logging.WARNING):
            assert cache.load_records() == []
        assert 'sales_records' in caplog.text

    def test_ttl(self, cache, clock):
        assert not cache.is_fresh('sales', 300)

        cache.mark_fetched('sales')
        assert cache.storage['ts_sales'] == str(int(clock.now * 1000))
        assert cache.is_fresh('sales', 300)

        clock.advance(299)
        assert cache.is_fresh('sales', 300)
        clock.advance(1)
        assert not cache.is_fresh('sales', 300)

    def test_users_and_sales_timestamps_are_independent(self, cache, clock):
        cache.mark_fetched('users')
        clock.advance(600)
        assert cache.is_fresh('users', 86400)
        assert not cache.is_fresh('sales', 300)

    def test_preferences_and_hard_reset(self, cache, make_record):
        cache.set_preference('statusFilter', 'pending')
        cache.save_records([make_record()])
        cache.mark_fetched('sales')

        cache.hard_reset(keep_preferences=True)
        assert cache.get_preference('statusFilter') == 'pending'
        assert cache.load_records() == []
        assert cache.last_fetched('sales') == 0

        cache.hard_reset()
        assert cache.get_preference('statusFilter', 'all') == 'all'
