# utils/dsa_reporting/metrics.py
"""
KPI Calculations for DSA Reporting

Handles all metric calculations over a reconciled record list:
- Dashboard totals (volume, apps, loans, banca, CRC)
- Derived ratios (pro-app, case size, banca %, activity rate)
- Chart aggregation by date / DSA / DSS / SM
- Monthly KPI scorecard for a single DSA

Pure pandas; no I/O.
"""

import logging
import math
from dataclasses import asdict, fields
from typing import Dict, Iterable, Optional

import numpy as np
import pandas as pd

from .constants import (
    CHART_MAX_GROUPS,
    KPI_SCORECARD,
    NUMERIC_FIELDS,
    STATUS_REPORTED,
)
from .models import DateLike, SalesRecord, parse_iso_date

logger = logging.getLogger(__name__)

RECORD_COLUMNS = [f.name for f in fields(SalesRecord)]


def records_to_dataframe(records: Iterable[SalesRecord]) -> pd.DataFrame:
    """Flatten records to a DataFrame with numeric metric columns."""
    rows = [asdict(r) for r in records]
    df = pd.DataFrame(rows, columns=RECORD_COLUMNS)
    if not df.empty:
        df[NUMERIC_FIELDS] = df[NUMERIC_FIELDS].apply(pd.to_numeric, errors='coerce').fillna(0)
    return df


class SalesMetrics:
    """
    KPI calculations for the DSA dashboard.

    Usage:
        metrics = SalesMetrics(reconciled_records)

        stats = metrics.calculate_stats()
        overview = metrics.calculate_overview_metrics(start, end, headcount)
        chart_df = metrics.aggregate_for_chart('sm_name', tab='financial')
    """

    def __init__(self, records: Iterable[SalesRecord]):
        """
        Initialize with data.

        Args:
            records: Reconciled records (actual + placeholders)
        """
        self.df = records_to_dataframe(records)

    # =========================================================================
    # TOTALS
    # =========================================================================

    def calculate_stats(self) -> Dict:
        """
        Dashboard totals.

        Returns:
            Dict with totalRecords, reportedCount, totalVolume, totalDirectVolume,
            totalApps, totalLoans, totalLoansFEOL, totalLoanCRC, totalBanca
        """
        df = self.df
        if df.empty:
            return self._get_empty_stats()

        return {
            'totalRecords': int(len(df)),
            'reportedCount': int((df['status'] == STATUS_REPORTED).sum()),
            'totalVolume': float((df['direct_volume'] + df['direct_volume_feol']).sum()),
            'totalDirectVolume': float(df['direct_volume'].sum()),
            'totalApps': float(df['direct_app'].sum()),
            'totalLoans': float(df['direct_loan'].sum()),
            'totalLoansFEOL': float(df['direct_loan_feol'].sum()),
            'totalLoanCRC': float(df['direct_loan_crc'].sum()),
            'totalBanca': float(df['direct_banca'].sum()),
        }

    @staticmethod
    def _get_empty_stats() -> Dict:
        return {
            'totalRecords': 0,
            'reportedCount': 0,
            'totalVolume': 0.0,
            'totalDirectVolume': 0.0,
            'totalApps': 0.0,
            'totalLoans': 0.0,
            'totalLoansFEOL': 0.0,
            'totalLoanCRC': 0.0,
            'totalBanca': 0.0,
        }

    def unique_reported_count(self) -> int:
        """Distinct DSAs with at least one reported row."""
        if self.df.empty:
            return 0
        return int(self.df.loc[self.df['status'] == STATUS_REPORTED, 'dsa_code'].nunique())

    # =========================================================================
    # DERIVED RATIOS
    # =========================================================================

    @staticmethod
    def days_in_range(start_date: DateLike, end_date: DateLike) -> int:
        """Inclusive day count: ceil((end - start) / 1 day) + 1."""
        delta = parse_iso_date(end_date) - parse_iso_date(start_date)
        return math.ceil(delta.total_seconds() / 86400) + 1

    @staticmethod
    def pro_app(total_apps: float, days: int, headcount: int) -> float:
        """Apps per DSA per day; 0 when days <= 0."""
        if days <= 0:
            return 0.0
        return (total_apps / days) / max(1, headcount)

    @staticmethod
    def case_size(total_volume: float, total_loans: float, total_loans_feol: float) -> float:
        loans = total_loans + total_loans_feol
        return total_volume / loans if loans else 0.0

    @staticmethod
    def banca_percentage(total_banca: float, total_volume: float) -> float:
        return 100 * total_banca / total_volume if total_volume else 0.0

    @staticmethod
    def activity_rate(reported_count: int, total_records: int) -> float:
        return 100 * reported_count / total_records if total_records else 0.0

    def calculate_overview_metrics(
        self,
        start_date: DateLike,
        end_date: DateLike,
        headcount: int,
    ) -> Dict:
        """
        Totals plus derived ratios for the metric cards.

        Args:
            start_date, end_date: Reporting range
            headcount: Visible DSA count under the current team filters
        """
        stats = self.calculate_stats()
        days = self.days_in_range(start_date, end_date)

        stats.update({
            'daysInRange': days,
            'headcount': headcount,
            'proApp': round(self.pro_app(stats['totalApps'], days, headcount), 2),
            'caseSize': self.case_size(
                stats['totalVolume'], stats['totalLoans'], stats['totalLoansFEOL']
            ),
            'bancaPercentage': round(
                self.banca_percentage(stats['totalBanca'], stats['totalVolume']), 1
            ),
            'activityRate': round(
                self.activity_rate(stats['reportedCount'], stats['totalRecords']), 1
            ),
            'uniqueReported': self.unique_reported_count(),
        })
        return stats

    # =========================================================================
    # CHART AGGREGATION
    # =========================================================================

    def aggregate_for_chart(self, group_key: str, tab: str = 'financial') -> pd.DataFrame:
        """
        Group rows for the performance chart.

        Args:
            group_key: 'report_date', 'name', 'dss' or 'sm_name'
            tab: 'financial', 'apps' or 'activity' (sort metric)

        Returns:
            DataFrame with one row per group, at most CHART_MAX_GROUPS rows
        """
        df = self.df
        if df.empty:
            return pd.DataFrame(columns=['key'])

        df = df[df[group_key].astype(str).str.strip().replace('N/A', '') != '']
        if df.empty:
            return pd.DataFrame(columns=['key'])

        grouped = df.groupby(group_key).agg(
            total_volume=('direct_volume', 'sum'),
            total_volume_feol=('direct_volume_feol', 'sum'),
            total_banca=('direct_banca', 'sum'),
            app_cash=('direct_app', 'sum'),
            app_feol=('direct_app_feol', 'sum'),
            app_crc=('direct_app_crc', 'sum'),
            loan_crc=('direct_loan_crc', 'sum'),
            calls=('calls_month', 'sum'),
            flyers=('flyers', 'sum'),
            ctv=('ctv', 'sum'),
            new_ctv=('new_ctv', 'sum'),
            dlk=('dlk', 'sum'),
            new_dlk=('new_dlk', 'sum'),
            ad_spend=('ad_spend', 'sum'),
        ).reset_index().rename(columns={group_key: 'key'})

        grouped['total_volume'] = grouped['total_volume'] + grouped.pop('total_volume_feol')
        grouped['app_pl'] = grouped.pop('app_cash') + grouped.pop('app_feol')
        # Ad spend is charted in millions
        grouped['ad_spend'] = grouped['ad_spend'] / 1_000_000

        if group_key == 'report_date':
            grouped = grouped.sort_values('key')
        elif tab == 'financial':
            grouped = grouped.sort_values('total_volume', ascending=False)
        elif tab == 'apps':
            grouped = grouped.assign(_sort=grouped['app_pl'] + grouped['loan_crc'])
            grouped = grouped.sort_values('_sort', ascending=False).drop(columns='_sort')
        else:
            grouped = grouped.assign(_sort=np.maximum(grouped['calls'], grouped['ad_spend']))
            grouped = grouped.sort_values('_sort', ascending=False).drop(columns='_sort')

        return grouped.head(CHART_MAX_GROUPS).reset_index(drop=True)

    # =========================================================================
    # DSA SCORECARD
    # =========================================================================

    def dsa_scorecard(self, dsa_code: str) -> Optional[Dict]:
        """
        Monthly KPI score for one DSA, capped per component.

        Score = min(40, vol/100M*40) + min(30, apps/10*30) + min(30, calls/100*30)
        Volume here is direct (cash) volume only.

        Returns:
            Dict with totals and component scores, or None if DSA has no rows
        """
        df = self.df[self.df['dsa_code'] == dsa_code] if not self.df.empty else self.df
        if df.empty:
            return None

        latest = df.sort_values('report_date', ascending=False).iloc[0]
        totals = {
            'volume': float(df['direct_volume'].sum()),
            'apps': float(df['direct_app'].sum()),
            'calls': float(df['calls_month'].sum()),
        }

        scores = {}
        for key, (target, weight) in KPI_SCORECARD.items():
            scores[key] = min(float(weight), totals[key] / target * weight)

        return {
            'dsa_code': dsa_code,
            'name': latest['name'],
            'dss': latest['dss'],
            'sm_name': latest['sm_name'],
            'latest_report_date': latest['report_date'],
            'total_volume': totals['volume'],
            'total_apps': totals['apps'],
            'total_loans': float(df['direct_loan'].sum()),
            'total_calls': totals['calls'],
            'volume_score': round(scores['volume'], 1),
            'apps_score': round(scores['apps'], 1),
            'calls_score': round(scores['calls'], 1),
            'kpi_score': round(sum(scores.values()), 1),
        }

    @staticmethod
    def mask_code(code: str) -> str:
        """'DA12345' -> 'DA***345'; short codes are fully masked."""
        if not code:
            return ''
        if len(code) <= 5:
            return '***'
        return f"{code[:2]}***{code[-3:]}"


def calculate_stats(records: Iterable[SalesRecord]) -> Dict:
    """Functional form of SalesMetrics.calculate_stats."""
    return SalesMetrics(records).calculate_stats()
