# tests/test_dashboard.py
from dataclasses import replace
from datetime import date

import pytest

from utils.dsa_reporting.constants import FILTER_ALL, STATUS_FILTER_PENDING
from utils.dsa_reporting.dashboard import DashboardFilters, DashboardView
from utils.dsa_reporting.filters import (
    get_filter_summary,
    load_saved_filters,
    save_filters,
    validate_filters,
)


@pytest.fixture
def day_records(make_record):
    return [
        make_record('C1', '2024-01-05', name='Xuan', direct_volume=100, direct_app=2),
        make_record('C2', '2024-01-05', name='Yen', direct_volume=300, direct_app=4),
    ]


def _view(records, roster, user, **filter_kw):
    filters = DashboardFilters(start_date='2024-01-05', end_date='2024-01-05', **filter_kw)
    return DashboardView(records, roster, user, filters)


class TestDashboardView:

    def test_admin_sees_every_dsa(self, day_records, roster, users_by_name):
        view = _view(day_records, roster, users_by_name['admin'])

        assert len(view.records) == 4
        overview = view.overview()
        assert overview['headcount'] == 4
        assert overview['totalVolume'] == 400
        assert overview['reportedCount'] == 2
        assert view.unique_reported_count() == 2

    def test_team_filter_narrows_headcount(self, day_records, roster, users_by_name):
        view = _view(day_records, roster, users_by_name['admin'], sm='u-sm2')
        assert view.headcount() == 2
        assert view.stats()['totalVolume'] == 0

    def test_dsa_sees_own_rows_but_full_leaderboard(self, day_records, roster, users_by_name):
        view = _view(day_records, roster, users_by_name['xuan'])

        assert [r.dsa_code for r in view.records] == ['C1']
        assert view.leaderboard().dsa_rank('C2') == (1, 4)

        info = view.dsa_self_info(today='2024-01-05')
        assert info.is_reported_today
        assert (info.rank, info.total_dsas) == (2, 4)
        assert not view.dsa_self_info(today='2024-01-06').is_reported_today

    def test_self_info_headline_masks_code(self, day_records, roster, users_by_name):
        view = _view(day_records, roster, users_by_name['xuan'])
        assert view.dsa_self_info(today='2024-01-05').headline == '*** | Dan | Sarah'

        lan = replace(users_by_name['lan'], dsa_code='DA12345')
        roster = [lan if u.id == lan.id else u for u in roster]
        view = _view(day_records, roster, lan)
        assert view.dsa_self_info(today='2024-01-05').headline == 'DA***345 | Minh'

    def test_self_info_only_for_dsas(self, day_records, roster, users_by_name):
        assert _view(day_records, roster, users_by_name['dan']).dsa_self_info() is None


class TestFilters:

    def test_defaults_to_month_to_date(self, cache):
        filters = load_saved_filters(cache, today=date(2024, 3, 15))
        assert (filters.start_date, filters.end_date) == ('2024-03-01', '2024-03-15')
        assert filters.status == filters.sm == filters.dss == FILTER_ALL

    def test_saved_filters_persist(self, cache):
        save_filters(cache, DashboardFilters('2024-01-01', '2024-01-31', STATUS_FILTER_PENDING, 'u-sm1'))
        filters = load_saved_filters(cache)
        assert filters == DashboardFilters('2024-01-01', '2024-01-31', STATUS_FILTER_PENDING, 'u-sm1')

    def test_unknown_saved_status_resets(self, cache):
        cache.set_preference('statusFilter', 'Đã báo cáo')
        assert load_saved_filters(cache).status == FILTER_ALL

    def test_validate(self):
        assert validate_filters(DashboardFilters('2024-01-01', '2024-01-01')) == (True, None)
        ok, error = validate_filters(DashboardFilters('2024-02-01', '2024-01-01'))
        assert not ok and error

    def test_summary(self):
        filters = DashboardFilters('2024-01-01', '2024-01-31', STATUS_FILTER_PENDING, sm='u-sm1')
        summary = get_filter_summary(filters, {'sm': {'u-sm1': 'Sarah'}, 'dss': {}})
        assert summary == "2024-01-01 → 2024-01-31 • Pending approval • SM: Sarah"
