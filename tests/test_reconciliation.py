# tests/test_reconciliation.py
from collections import Counter

import pytest

from utils.dsa_reporting.constants import APPROVAL_PENDING, STATUS_NOT_REPORTED
from utils.dsa_reporting.models import SalesRecord, User
from utils.dsa_reporting.reconciliation import RecordReconciler, reconcile


def _keys(rows):
    return Counter(r.natural_key for r in rows)


class TestEndToEnd:

    def test_admin_range_with_one_report(self):
        users = [
            User(id='admin', username='admin', name='Admin', role='ADMIN'),
            User(id='s', username='s', name='S', role='SM'),
            User(id='d', username='d', name='D', role='DSS', parent_id='s'),
            User(id='x', username='x', name='X', role='DSA', parent_id='d', dsa_code='C1'),
        ]
        records = [SalesRecord(id='r1', dsa_code='C1', report_date='2024-01-01', direct_app=1)]

        rows = reconcile(records, users, users[0], '2024-01-01', '2024-01-02')

        actual = [r for r in rows if not r.is_placeholder]
        placeholders = [r for r in rows if r.is_placeholder]
        assert [r.id for r in actual] == ['r1']
        assert [(p.dsa_code, p.report_date) for p in placeholders] == [('C1', '2024-01-02')]
        assert placeholders[0].id == 'virt-x-2024-01-02'
        assert placeholders[0].name == 'X'
        assert placeholders[0].dss == 'D' and placeholders[0].sm_name == 'S'
        assert placeholders[0].status == STATUS_NOT_REPORTED


class TestCompleteness:

    def test_all_filter_yields_one_row_per_dsa_and_day(self, roster, users_by_name, make_record):
        records = [
            make_record('C1', '2024-03-01'),
            make_record('C3', '2024-03-02'),
            make_record('C4', '2024-03-03'),
        ]
        rows = reconcile(records, roster, users_by_name['admin'], '2024-03-01', '2024-03-03')

        counts = _keys(rows)
        expected = {(code, f'2024-03-0{d}') for code in ('C1', 'C2', 'C3', 'C4') for d in (1, 2, 3)}
        assert set(counts) == expected
        assert all(n == 1 for n in counts.values())

    def test_reported_filter_has_no_placeholders(self, roster, users_by_name, make_record):
        records = [make_record('C1', '2024-03-01'), make_record('C2', '2024-03-02')]
        rows = reconcile(
            records, roster, users_by_name['admin'], '2024-03-01', '2024-03-03',
            status_filter='reported',
        )
        assert len(rows) == 2
        assert not any(r.is_placeholder for r in rows)

    def test_pending_filter_returns_only_pending_actuals(self, roster, users_by_name, make_record):
        records = [
            make_record('C1', '2024-03-01', approval_status=APPROVAL_PENDING),
            make_record('C2', '2024-03-01'),
        ]
        rows = reconcile(
            records, roster, users_by_name['admin'], '2024-03-01', '2024-03-02',
            status_filter='pending',
        )
        assert [r.dsa_code for r in rows] == ['C1']

    def test_not_reported_filter_returns_only_gaps(self, roster, users_by_name, make_record):
        records = [make_record('C1', '2024-03-01')]
        rows = reconcile(
            records, roster, users_by_name['dan'], '2024-03-01', '2024-03-01',
            status_filter='not yet reported',
        )
        assert [(r.dsa_code, r.is_placeholder) for r in rows] == [('C2', True)]

    def test_scope_limits_rows(self, roster, users_by_name, make_record):
        records = [make_record('C1', '2024-03-01'), make_record('C3', '2024-03-01')]
        rows = reconcile(records, roster, users_by_name['xuan'], '2024-03-01', '2024-03-02')
        assert {r.dsa_code for r in rows} == {'C1'}
        assert len(rows) == 2


class TestRangeCap:

    def test_no_placeholders_beyond_31_days(self, roster, users_by_name, make_record):
        records = [make_record('C1', '2024-01-15')]
        rows = reconcile(records, roster, users_by_name['admin'], '2024-01-01', '2024-02-15')
        assert [r.id for r in rows] == [records[0].id]

    def test_exactly_31_day_span_still_synthesizes(self, roster, users_by_name):
        rows = reconcile([], roster, users_by_name['xuan'], '2024-01-01', '2024-02-01')
        assert len(rows) == 32

    def test_reversed_range_is_empty(self, roster, users_by_name):
        assert reconcile([], roster, users_by_name['admin'], '2024-01-05', '2024-01-01') == []


class TestDedupe:

    def test_duplicate_natural_key_keeps_last(self, roster, users_by_name, make_record):
        records = [
            make_record('C1', '2024-03-01', direct_volume=10),
            make_record('C1', '2024-03-01', direct_volume=20),
        ]
        rows = reconcile(
            records, roster, users_by_name['admin'], '2024-03-01', '2024-03-01',
            status_filter='reported',
        )
        assert len(rows) == 1
        assert rows[0].direct_volume == 20


class TestHierarchyProjection:

    @pytest.fixture
    def moved_record(self, make_record):
        # Reported while C1 was still in Minh's region
        return make_record('C1', '2024-03-01', dss='Hoa', sm_name='Minh')

    def test_reprojection_uses_current_team(self, roster, users_by_name, moved_record):
        rows = RecordReconciler(roster, reproject_hierarchy=True).reconcile(
            [moved_record], users_by_name['admin'], '2024-03-01', '2024-03-01',
            status_filter='reported',
        )
        assert (rows[0].dss, rows[0].sm_name) == ('Dan', 'Sarah')

    def test_as_reported_names_kept_without_reprojection(self, roster, users_by_name, moved_record):
        rows = RecordReconciler(roster, reproject_hierarchy=False).reconcile(
            [moved_record], users_by_name['admin'], '2024-03-01', '2024-03-01',
            status_filter='reported',
        )
        assert (rows[0].dss, rows[0].sm_name) == ('Hoa', 'Minh')

    def test_team_filter_by_manager_id(self, roster, users_by_name, make_record):
        records = [make_record('C1', '2024-03-01'), make_record('C3', '2024-03-01')]
        rows = reconcile(
            records, roster, users_by_name['admin'], '2024-03-01', '2024-03-01',
            sm_filter='u-sm2',
        )
        assert {r.dsa_code for r in rows} == {'C3', 'C4'}
        assert [r.is_placeholder for r in rows if r.dsa_code == 'C3'] == [False]

    def test_team_filter_falls_back_to_names(self, roster, users_by_name, make_record):
        records = [make_record('C1', '2024-03-01')]
        rows = reconcile(
            records, roster, users_by_name['admin'], '2024-03-01', '2024-03-01',
            dss_filter='Dan',
        )
        assert {r.dsa_code for r in rows} == {'C1', 'C2'}

    @pytest.mark.parametrize("sm_filter", ['u-sm1', 'u-sm2'])
    def test_as_reported_team_filter_keeps_one_row_per_key(
        self, roster, users_by_name, moved_record, sm_filter
    ):
        rows = RecordReconciler(roster, reproject_hierarchy=False).reconcile(
            [moved_record], users_by_name['admin'], '2024-03-01', '2024-03-01',
            sm_filter=sm_filter,
        )
        counts = _keys(rows)
        assert counts[('C1', '2024-03-01')] == 1
        assert all(n == 1 for n in counts.values())

    def test_as_reported_filter_swaps_record_for_placeholder(self, roster, users_by_name, moved_record):
        # C1 now sits under Sarah but reported under Minh
        rows = RecordReconciler(roster, reproject_hierarchy=False).reconcile(
            [moved_record], users_by_name['admin'], '2024-03-01', '2024-03-01',
            sm_filter='u-sm1',
        )
        c1 = [r for r in rows if r.dsa_code == 'C1']
        assert len(c1) == 1 and c1[0].is_placeholder


class TestTeamFilterAgreesWithHeadcount:

    @pytest.fixture
    def detached_roster(self):
        # DSS Dan lost his SM; Sarah still exists
        return [
            User(id='admin', username='admin', name='Admin', role='ADMIN'),
            User(id='u-sm1', username='sarah', name='Sarah', role='SM'),
            User(id='u-dss1', username='dan', name='Dan', role='DSS'),
            User(id='u-dsa1', username='xuan', name='Xuan', role='DSA', parent_id='u-dss1', dsa_code='C1'),
        ]

    @pytest.mark.parametrize("sm_filter, dss_filter, expected", [
        ('u-sm1', 'all', 0),
        ('all', 'u-dss1', 1),
        ('all', 'all', 1),
    ])
    def test_rows_match_headcount(self, detached_roster, make_record, sm_filter, dss_filter, expected):
        reconciler = RecordReconciler(detached_roster)
        admin = detached_roster[0]
        stale = make_record('C1', '2024-03-01', dss='Dan', sm_name='Sarah')

        rows = reconciler.reconcile(
            [stale], admin, '2024-03-01', '2024-03-01',
            sm_filter=sm_filter, dss_filter=dss_filter,
        )
        assert len(rows) == expected
        assert reconciler.resolver.headcount(admin, sm_filter, dss_filter) == expected
