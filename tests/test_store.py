# tests/test_store.py
import threading
from dataclasses import replace
from datetime import date

import pytest

from utils.dsa_reporting.constants import APPROVAL_APPROVED, APPROVAL_PENDING, APPROVAL_REJECTED
from utils.dsa_reporting.exceptions import OfflineError, PermissionDeniedError, ValidationError
from utils.dsa_reporting.models import make_placeholder, TeamPlacement
from utils.dsa_reporting.reconciliation import reconcile
from utils.dsa_reporting.store import SalesDataStore


@pytest.fixture
def seeded_store(store, roster):
    store.add_users(roster)
    return store


class TestUsers:

    def test_fetch_users_respects_ttl(self, store, remote, roster, clock):
        remote.batch_upsert('users', [u.to_dict() for u in roster])
        assert len(store.fetch_users()) == len(roster)

        remote.delete('users', 'u-dsa4')
        clock.advance(3600)
        assert len(store.fetch_users()) == len(roster)
        assert len(store.fetch_users(force=True)) == len(roster) - 1

    def test_empty_remote_roster_keeps_cache(self, store, cache, roster):
        cache.save_users(roster)
        store.users = cache.load_users()
        assert store.fetch_users(force=True) == store.users
        assert len(store.users) == len(roster)

    def test_current_user_refreshed_from_roster(self, store, remote, roster, users_by_name):
        store.set_current_user(users_by_name['xuan'])
        moved = replace(users_by_name['xuan'], name='Xuan N.')
        remote.batch_upsert('users', [u.to_dict() for u in roster if u.id != moved.id] + [moved.to_dict()])

        store.fetch_users(force=True)
        assert store.current_user.name == 'Xuan N.'
        assert store.cache.load_current_user().name == 'Xuan N.'

    def test_user_writes_reach_remote(self, seeded_store, remote, users_by_name):
        assert len(remote.list_all('users')) == 10

        seeded_store.delete_user('u-dsa4')
        seeded_store.bulk_delete_users(['u-dsa3', 'u-dss2'])
        assert {u['id'] for u in remote.list_all('users')} == {u.id for u in seeded_store.users}
        assert seeded_store.find_user('lan') is None
        assert seeded_store.find_user(' xuan ') is not None


class TestRecords:

    def test_fetch_merges_range_and_keeps_the_rest(self, store, remote, make_record):
        store.records = [make_record('C1', '2023-12-31', id='old'), make_record('C1', '2024-01-05', id='stale')]
        remote.upsert('sales_records', make_record('C2', '2024-01-06', id='new').to_dict())

        records = store.fetch_records('2024-01-01', '2024-01-31', force=True)
        assert {r.id for r in records} == {'old', 'new'}
        assert store.last_updated is not None

    def test_fetch_is_ttl_gated(self, store, remote, make_record, clock):
        store.records = [make_record(id='cached')]
        store.cache.mark_fetched('sales')
        remote.upsert('sales_records', make_record(id='remote').to_dict())

        assert [r.id for r in store.fetch_records('2024-01-01', '2024-01-31')] == ['cached']
        clock.advance(301)
        assert [r.id for r in store.fetch_records('2024-01-01', '2024-01-31')] == ['remote']

    def test_save_is_idempotent_by_natural_key(self, seeded_store, remote, make_record, users_by_name):
        record = make_record('C1', '2024-01-01', direct_volume=5)
        seeded_store.save_record(record)
        seeded_store.save_record(record)
        seeded_store.save_record(record.copy(id='another-id', direct_volume=9))

        rows = reconcile(
            seeded_store.records, seeded_store.users, users_by_name['admin'],
            '2024-01-01', '2024-01-01', status_filter='reported',
        )
        assert len(rows) == 1
        assert rows[0].direct_volume == 9
        assert [d['id'] for d in remote.list_all('sales_records')] == [record.id]

    def test_saving_a_placeholder_gets_a_real_id(self, seeded_store, users_by_name):
        placeholder = make_placeholder(users_by_name['yen'], '2024-01-02', TeamPlacement())
        saved = seeded_store.save_record(placeholder.copy(status='reported'))
        assert not saved.is_placeholder
        assert seeded_store.get_record(saved.id) is not None

    def test_save_requires_code_and_date(self, store, make_record):
        with pytest.raises(ValidationError):
            store.save_record(make_record(dsa_code=''))

    def test_delete_ignores_placeholders(self, seeded_store, make_record):
        seeded_store.save_record(make_record(id='keep'))
        seeded_store.delete_record('virt-u-dsa1-2024-01-01')
        assert seeded_store.get_record('keep') is not None

        seeded_store.delete_record('keep')
        assert seeded_store.get_record('keep') is None

    def test_import_merges_by_id(self, store, remote, make_record):
        store.save_record(make_record('C1', '2024-01-01', id='a', direct_volume=1))
        count = store.import_records([
            make_record('C1', '2024-01-01', id='a', direct_volume=2),
            make_record('C2', '2024-01-01', id='b'),
        ])
        assert count == 2
        assert store.get_record('a').direct_volume == 2
        assert len(store.records) == 2
        assert {d['id'] for d in remote.list_all('sales_records')} == {'a', 'b'}

    def test_cleanup_old_records(self, store, make_record):
        store.import_records([
            make_record('C1', '2024-01-01', id='old'),
            make_record('C1', '2024-03-01', id='young'),
        ])
        today = date(2024, 3, 15)
        assert [r.id for r in store.cleanup_candidates(today)] == ['old']
        assert store.cleanup_old_records(today) == 1
        assert [r.id for r in store.records] == ['young']

    def test_hard_reset(self, seeded_store, make_record):
        seeded_store.save_record(make_record())
        seeded_store.hard_reset()
        assert seeded_store.records == [] and seeded_store.users == []
        assert seeded_store.cache.load_records() == []


class TestApproval:

    def test_dsa_edits_are_approved_by_default(self, seeded_store, make_record, users_by_name):
        xuan = users_by_name['xuan']
        first = seeded_store.submit_report(make_record('C1'), editor=xuan)
        edit = seeded_store.submit_report(first.copy(direct_volume=3), editor=xuan)
        assert first.approval_status == APPROVAL_APPROVED
        assert edit.approval_status == APPROVAL_APPROVED

    def test_dsa_edit_pending_when_required(self, remote, cache, roster, make_record, users_by_name):
        strict = SalesDataStore(remote, cache, require_approval_for_dsa_edits=True)
        strict.users = roster
        xuan = users_by_name['xuan']

        first = strict.submit_report(make_record('C1'), editor=xuan)
        edit = strict.submit_report(make_record('C1', id='new-id', direct_volume=4), editor=xuan)
        assert first.approval_status == APPROVAL_APPROVED
        assert edit.approval_status == APPROVAL_PENDING
        assert edit.id == first.id

        # Manager edits are never held back
        by_dss = strict.submit_report(edit, editor=users_by_name['dan'])
        assert by_dss.approval_status == APPROVAL_APPROVED

    def test_dsa_cannot_report_for_others(self, seeded_store, make_record, users_by_name):
        with pytest.raises(ValidationError):
            seeded_store.submit_report(make_record('C2'), editor=users_by_name['xuan'])

    def test_approve_and_reject(self, seeded_store, make_record, users_by_name):
        pending = seeded_store.save_record(make_record('C1', approval_status=APPROVAL_PENDING))
        other = seeded_store.save_record(make_record('C2', approval_status=APPROVAL_PENDING))

        approved = seeded_store.approve_record(pending.id, approved=True, approver=users_by_name['dan'])
        rejected = seeded_store.approve_record(other.id, approved=False, approver=users_by_name['sarah'])
        assert approved.approval_status == APPROVAL_APPROVED
        assert rejected.approval_status == APPROVAL_REJECTED

    @pytest.mark.parametrize("approver, record_id", [
        ('xuan', 'p1'),      # DSA
        ('hoa', 'p1'),       # outside team
        ('dan', 'missing'),
        ('dan', 'done'),     # not pending
    ])
    def test_approval_rejections(self, seeded_store, make_record, users_by_name, approver, record_id):
        seeded_store.save_record(make_record('C1', '2024-01-01', id='p1', approval_status=APPROVAL_PENDING))
        seeded_store.save_record(make_record('C2', '2024-01-01', id='done'))
        with pytest.raises(ValidationError):
            seeded_store.approve_record(record_id, approved=True, approver=users_by_name[approver])


class TestOffline:

    def test_offline_store_writes_locally(self, offline_store, make_record, cache):
        offline_store.connect()
        offline_store.save_record(make_record(id='local'))
        assert not offline_store.is_online
        assert [r.id for r in cache.load_records()] == ['local']
        assert offline_store.fetch_records('2024-01-01', '2024-01-31', force=True)[0].id == 'local'

    def test_offline_error_flips_mode_and_is_swallowed(self, store, remote, make_record, monkeypatch):
        def down(*args, **kwargs):
            raise OfflineError("unreachable")

        monkeypatch.setattr(remote, 'upsert', down)
        saved = store.save_record(make_record(id='x'))

        assert saved.id == 'x'
        assert store.get_record('x') is not None
        assert not store.is_online
        assert store.last_error == "unreachable"

    def test_permission_denied_is_flagged(self, store, remote, monkeypatch):
        def denied(*args, **kwargs):
            raise PermissionDeniedError("denied")

        monkeypatch.setattr(remote, 'query_range', denied)
        store.fetch_records('2024-01-01', '2024-01-02', force=True)
        assert store.permission_denied

    def test_subscription_merges_into_store(self, store, remote, make_record):
        sub = store.subscribe('2024-01-01', '2024-01-31')
        remote.upsert('sales_records', make_record(id='live').to_dict())
        assert sub.poll()
        assert store.get_record('live') is not None

    def test_no_subscription_when_offline(self, offline_store):
        assert offline_store.subscribe('2024-01-01', '2024-01-31') is None


class TrackingLock:
    """Re-entrant lock that knows whether it is currently held."""

    def __init__(self):
        self._lock = threading.RLock()
        self.depth = 0

    def __enter__(self):
        self._lock.acquire()
        self.depth += 1
        return self

    def __exit__(self, *exc):
        self.depth -= 1
        self._lock.release()


def test_natural_key_lookup_runs_under_the_store_lock(store, make_record, monkeypatch):
    store._lock = TrackingLock()
    held = []
    original = store.find_by_natural_key

    def tracked(dsa_code, report_date):
        held.append(store._lock.depth > 0)
        return original(dsa_code, report_date)

    monkeypatch.setattr(store, 'find_by_natural_key', tracked)
    first = store.save_record(make_record('C1', '2024-01-01', id='a'))
    second = store.save_record(make_record('C1', '2024-01-01', id='b', direct_volume=3))

    assert held == [True, True]
    assert second.id == first.id == 'a'
    assert [r.direct_volume for r in store.records] == [3]
