# utils/dsa_reporting/dashboard.py
"""
Dashboard view model for DSA Reporting

One reconciliation pass plus everything the dashboard page derives from
it. Load once, filter many: pages build a DashboardView per rerun and
read stats, chart data and leaderboards from it.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional

import pandas as pd

from .constants import CHART_GROUP_KEYS, FILTER_ALL, PLACEHOLDER_MAX_SPAN_DAYS, ROLE_DSA
from .hierarchy import HierarchyResolver
from .leaderboard import Leaderboard
from .metrics import SalesMetrics
from .models import DateLike, SalesRecord, User, to_iso_date
from .reconciliation import RecordReconciler

logger = logging.getLogger(__name__)


@dataclass
class DashboardFilters:
    """Sidebar selections."""
    start_date: str
    end_date: str
    status: str = FILTER_ALL
    sm: str = FILTER_ALL
    dss: str = FILTER_ALL


@dataclass
class DsaSelfInfo:
    """Home card for a DSA viewer."""
    is_reported_today: bool
    rank: int
    total_dsas: int
    headline: str = ''


class DashboardView:
    """
    Usage:
        view = DashboardView(store.records, store.users, current_user, filters)

        rows = view.records
        stats = view.overview()
        chart_df = view.chart_data(tab='financial')
        top = view.leaderboard().top('dss', 'volume')
    """

    def __init__(
        self,
        all_records: List[SalesRecord],
        all_users: List[User],
        user: User,
        filters: DashboardFilters,
        reproject_hierarchy: bool = True,
        max_span_days: int = PLACEHOLDER_MAX_SPAN_DAYS,
    ):
        self.all_records = all_records
        self.user = user
        self.filters = filters
        self.resolver = HierarchyResolver(all_users)

        reconciler = RecordReconciler(
            all_users, reproject_hierarchy=reproject_hierarchy,
            max_span_days=max_span_days, resolver=self.resolver,
        )
        self.records = reconciler.reconcile(
            all_records, user, filters.start_date, filters.end_date,
            status_filter=filters.status, sm_filter=filters.sm, dss_filter=filters.dss,
        )
        self.metrics = SalesMetrics(self.records)
        self._leaderboard: Optional[Leaderboard] = None

    # =========================================================================
    # METRICS
    # =========================================================================

    def stats(self) -> Dict:
        return self.metrics.calculate_stats()

    def headcount(self) -> int:
        return self.resolver.headcount(self.user, self.filters.sm, self.filters.dss)

    def unique_reported_count(self) -> int:
        return self.metrics.unique_reported_count()

    def overview(self) -> Dict:
        return self.metrics.calculate_overview_metrics(
            self.filters.start_date, self.filters.end_date, self.headcount()
        )

    def chart_group_key(self) -> str:
        return CHART_GROUP_KEYS.get(self.user.role, 'sm_name')

    def chart_data(self, tab: str = 'financial') -> pd.DataFrame:
        return self.metrics.aggregate_for_chart(self.chart_group_key(), tab)

    def team_options(self) -> Dict[str, Dict[str, str]]:
        return self.resolver.team_options(self.user)

    # =========================================================================
    # LEADERBOARD / DSA HOME
    # =========================================================================

    def leaderboard(self) -> Leaderboard:
        """Everyone competes: built from all records, not the viewer's scope."""
        if self._leaderboard is None:
            self._leaderboard = Leaderboard(
                self.all_records, self.resolver.users,
                self.filters.start_date, self.filters.end_date,
                resolver=self.resolver,
            )
        return self._leaderboard

    def dsa_self_info(self, today: Optional[DateLike] = None) -> Optional[DsaSelfInfo]:
        """Reported-today flag and volume rank for a DSA viewer; None otherwise."""
        if self.user.role != ROLE_DSA or not self.user.dsa_code:
            return None

        today_str = to_iso_date(today or date.today())
        reported = any(
            r.dsa_code == self.user.dsa_code and r.report_date == today_str and r.is_reported
            for r in self.all_records
        )
        rank, total = self.leaderboard().dsa_rank(self.user.dsa_code)

        # Masked code | current DSS | current SM
        placement = self.resolver.placement(self.user)
        headline = " | ".join(
            part for part in (
                SalesMetrics.mask_code(self.user.dsa_code),
                placement.dss_name,
                placement.sm_name,
            ) if part
        )
        return DsaSelfInfo(is_reported_today=reported, rank=rank, total_dsas=total, headline=headline)
