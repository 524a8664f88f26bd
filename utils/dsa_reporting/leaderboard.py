# utils/dsa_reporting/leaderboard.py
"""
Leaderboards for DSA Reporting

Ranks individuals (DSA) and teams (DSS / SM) over a date range.
The input is NOT limited to the viewer's scope: everyone competes.

Teams are keyed by the manager's user id taken from each DSA's current
placement; the record's denormalized name is only a fallback key for
codes that are no longer on the roster. Team scopes rank by average per
roster headcount so large teams do not win on size alone.
"""

import logging
from typing import Dict, Iterable, Optional, Tuple

import pandas as pd

from .constants import LEADERBOARD_LIMIT
from .hierarchy import HierarchyResolver
from .metrics import records_to_dataframe
from .models import DateLike, SalesRecord, User, to_iso_date

logger = logging.getLogger(__name__)

SCOPES = ('dsa', 'dss', 'sm')
METRICS = ('volume', 'banca', 'crc')

SCOPE_TITLES = {
    'dsa': 'Top individuals (DSA)',
    'dss': 'Top teams (DSS)',
    'sm': 'Top regions (SM)',
}

LEADERBOARD_COLUMNS = [
    'id', 'name', 'dss', 'sm', 'volume', 'banca', 'crc', 'headcount',
    'avg_volume', 'avg_banca', 'avg_crc',
]


class Leaderboard:
    """
    Usage:
        board = Leaderboard(records, users, start_date, end_date)
        top_teams = board.top('dss', metric='volume')
        rank, total = board.dsa_rank('DA001')
    """

    def __init__(
        self,
        records: Iterable[SalesRecord],
        users: Iterable[User],
        start_date: Optional[DateLike] = None,
        end_date: Optional[DateLike] = None,
        resolver: Optional[HierarchyResolver] = None,
    ):
        self.resolver = resolver or HierarchyResolver(users)
        start = to_iso_date(start_date) if start_date else None
        end = to_iso_date(end_date) if end_date else None

        self.records = [
            r for r in records
            if r.dsa_code
            and not r.is_placeholder
            and (start is None or r.report_date >= start)
            and (end is None or r.report_date <= end)
        ]
        self.df = records_to_dataframe(self.records)

    # =========================================================================
    # GROUPING
    # =========================================================================

    def _group_columns(self, scope: str) -> pd.DataFrame:
        """Attach group_id / group_name to each row for the requested scope."""
        df = self.df.copy()
        if scope == 'dsa':
            df['group_id'] = df['dsa_code']
            df['group_name'] = df['name']
            return df

        placements = self.resolver.placements_by_code()
        id_attr, name_attr, record_col = (
            ('dss_id', 'dss_name', 'dss') if scope == 'dss' else ('sm_id', 'sm_name', 'sm_name')
        )

        group_ids, group_names = [], []
        for code, fallback in zip(df['dsa_code'], df[record_col]):
            p = placements.get(code)
            if p is not None and getattr(p, id_attr):
                group_ids.append(getattr(p, id_attr))
                group_names.append(getattr(p, name_attr))
            elif fallback and fallback != 'N/A':
                group_ids.append(f"name:{fallback}")
                group_names.append(fallback)
            else:
                group_ids.append('')
                group_names.append('')

        df['group_id'] = group_ids
        df['group_name'] = group_names
        return df[df['group_id'] != '']

    def _roster_headcount(self, scope: str) -> Dict[str, int]:
        """DSA count per manager id from the roster."""
        counts: Dict[str, int] = {}
        attr = 'dss_id' if scope == 'dss' else 'sm_id'
        for p in self.resolver.placements_by_code().values():
            key = getattr(p, attr)
            if key:
                counts[key] = counts.get(key, 0) + 1
        return counts

    def rank(self, scope: str = 'dsa') -> pd.DataFrame:
        """
        Aggregate every group in a scope.

        Args:
            scope: 'dsa', 'dss' or 'sm'

        Returns:
            DataFrame with LEADERBOARD_COLUMNS, unsorted
        """
        if scope not in SCOPES:
            raise ValueError(f"Unknown leaderboard scope: {scope}")

        if self.df.empty:
            return pd.DataFrame(columns=LEADERBOARD_COLUMNS)

        df = self._group_columns(scope)
        if df.empty:
            return pd.DataFrame(columns=LEADERBOARD_COLUMNS)

        df = df.assign(volume=df['direct_volume'] + df['direct_volume_feol'])
        grouped = df.groupby('group_id').agg(
            name=('group_name', 'first'),
            dss=('dss', 'first'),
            sm=('sm_name', 'first'),
            volume=('volume', 'sum'),
            banca=('direct_banca', 'sum'),
            crc=('direct_loan_crc', 'sum'),
            dsa_count=('dsa_code', 'nunique'),
        ).reset_index().rename(columns={'group_id': 'id'})

        if scope == 'dsa':
            grouped['headcount'] = 1
        else:
            roster_counts = self._roster_headcount(scope)
            grouped['headcount'] = [
                roster_counts.get(gid) or seen
                for gid, seen in zip(grouped['id'], grouped['dsa_count'])
            ]

        for metric in METRICS:
            grouped[f'avg_{metric}'] = grouped[metric] / grouped['headcount'].clip(lower=1)

        return grouped[LEADERBOARD_COLUMNS]

    def top(self, scope: str = 'dsa', metric: str = 'volume', limit: int = LEADERBOARD_LIMIT) -> pd.DataFrame:
        """
        Top groups for one metric, zero-valued groups dropped.

        Team scopes sort by avg_<metric>; the DSA scope sorts by the raw total.
        """
        if metric not in METRICS:
            raise ValueError(f"Unknown leaderboard metric: {metric}")

        ranked = self.rank(scope)
        if ranked.empty:
            return ranked

        sort_col = metric if scope == 'dsa' else f'avg_{metric}'
        ranked = ranked.sort_values(sort_col, ascending=False, kind='stable')
        ranked = ranked.head(limit)
        ranked = ranked[ranked[metric] > 0]
        return ranked.reset_index(drop=True)

    # =========================================================================
    # PERSONAL RANK
    # =========================================================================

    def dsa_rank(self, dsa_code: str) -> Tuple[int, int]:
        """
        Rank of one DSA by volume among every DSA on the roster.

        Returns:
            (rank, total_dsas); rank falls back to total when code is unknown
        """
        volumes: Dict[str, float] = {
            u.dsa_code: 0.0 for u in self.resolver.dsa_users() if u.dsa_code
        }
        for r in self.records:
            if r.dsa_code in volumes:
                volumes[r.dsa_code] += r.total_volume

        ordered = sorted(volumes.items(), key=lambda item: item[1], reverse=True)
        total = len(ordered)
        for index, (code, _) in enumerate(ordered, start=1):
            if code == dsa_code:
                return index, total
        return total, total
