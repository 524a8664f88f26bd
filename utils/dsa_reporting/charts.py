# utils/dsa_reporting/charts.py
"""
Altair Chart Builders for DSA Reporting

- KPI summary cards (st.metric)
- DSA home card (reported today / rank)
- Performance chart per tab (financial / apps / activity)
- Leaderboard bar chart
"""

import logging
from typing import Dict, Optional

import altair as alt
import pandas as pd
import streamlit as st

from .constants import CHART_HEIGHT, CHART_WIDTH, COLORS

logger = logging.getLogger(__name__)

# tab -> [(column, label, color key)]
TAB_SERIES = {
    'financial': [
        ('total_volume', 'Volume', 'volume'),
        ('total_banca', 'Banca', 'banca'),
    ],
    'apps': [
        ('app_pl', 'Apps PL', 'apps'),
        ('app_crc', 'Apps CRC', 'crc'),
        ('loan_crc', 'Loans CRC', 'banca'),
    ],
    'activity': [
        ('calls', 'Calls', 'calls'),
        ('flyers', 'Flyers', 'flyers'),
        ('ad_spend', 'Ad spend (M)', 'banca'),
    ],
}

GROUP_LABELS = {
    'report_date': 'Date',
    'name': 'DSA',
    'dss': 'DSS',
    'sm_name': 'SM',
}


def format_compact(value: float) -> str:
    """1_234_567 -> '1.2M'."""
    for threshold, suffix in ((1e9, 'B'), (1e6, 'M'), (1e3, 'K')):
        if abs(value) >= threshold:
            return f"{value / threshold:.1f}{suffix}"
    return f"{value:,.0f}"


class SalesCharts:
    """
    Usage:
        SalesCharts.render_kpi_cards(view.overview())
        chart = SalesCharts.build_performance_chart(view.chart_data('apps'), 'apps', 'sm_name')
        st.altair_chart(chart, use_container_width=True)
    """

    # =========================================================================
    # KPI CARDS
    # =========================================================================

    @staticmethod
    def render_kpi_cards(overview: Dict):
        with st.container(border=True):
            st.markdown("**💰 PERFORMANCE**")
            col1, col2, col3, col4 = st.columns(4)
            with col1:
                st.metric(
                    label="Total Volume",
                    value=format_compact(overview['totalVolume']),
                    help="Σ (direct volume + FEOL volume)"
                )
            with col2:
                st.metric(
                    label="Banca",
                    value=format_compact(overview['totalBanca']),
                    delta=f"{overview['bancaPercentage']:.1f}% of volume",
                    delta_color="off",
                )
            with col3:
                st.metric(
                    label="Loans CRC",
                    value=f"{overview['totalLoanCRC']:,.0f}",
                )
            with col4:
                st.metric(
                    label="Case Size",
                    value=format_compact(overview['caseSize']),
                    help="Volume / (loans + FEOL loans)"
                )

            col5, col6, col7, col8 = st.columns(4)
            with col5:
                st.metric(
                    label="Apps",
                    value=f"{overview['totalApps']:,.0f}",
                )
            with col6:
                st.metric(
                    label="Pro-App",
                    value=f"{overview['proApp']:.2f}",
                    help=f"Apps / {overview['daysInRange']} day(s) / {overview['headcount']} DSA(s)"
                )
            with col7:
                st.metric(
                    label="Reported",
                    value=f"{overview['reportedCount']:,} / {overview['totalRecords']:,}",
                    delta=f"{overview['activityRate']:.1f}% activity",
                    delta_color="off",
                )
            with col8:
                st.metric(
                    label="DSAs reporting",
                    value=f"{overview['uniqueReported']} / {overview['headcount']}",
                )

    @staticmethod
    def render_dsa_home(info, scorecard: Optional[Dict] = None):
        """Personal card for a DSA viewer."""
        with st.container(border=True):
            if info.headline:
                st.caption(info.headline)
            col1, col2, col3 = st.columns(3)
            with col1:
                if info.is_reported_today:
                    st.success("✅ Today's report submitted")
                else:
                    st.warning("⏳ You have not reported today")
            with col2:
                st.metric("Volume rank", f"#{info.rank}", help=f"Out of {info.total_dsas} DSAs")
            with col3:
                if scorecard:
                    st.metric("KPI score", f"{scorecard['kpi_score']:.1f} / 100")

    # =========================================================================
    # CHARTS
    # =========================================================================

    @staticmethod
    def _empty_chart(message: str = "No data available") -> alt.Chart:
        return alt.Chart(pd.DataFrame({'text': [message]})).mark_text(
            fontSize=14, color='gray'
        ).encode(
            text='text:N'
        ).properties(width=CHART_WIDTH, height=100)

    @staticmethod
    def build_performance_chart(
        chart_df: pd.DataFrame,
        tab: str = 'financial',
        group_key: str = 'sm_name',
    ) -> alt.Chart:
        """Grouped bars for the tab's series, one group per date / DSA / DSS / SM."""
        if chart_df.empty:
            return SalesCharts._empty_chart()

        series = TAB_SERIES.get(tab, TAB_SERIES['financial'])
        columns = [col for col, _, _ in series]
        labels = {col: label for col, label, _ in series}

        data = chart_df.melt(
            id_vars=['key'], value_vars=columns, var_name='Metric', value_name='Value'
        )
        data['Metric'] = data['Metric'].map(labels)

        color_scale = alt.Scale(
            domain=[label for _, label, _ in series],
            range=[COLORS[color] for _, _, color in series],
        )
        group_label = GROUP_LABELS.get(group_key, 'Group')
        sort = None if group_key == 'report_date' else list(chart_df['key'])

        chart = alt.Chart(data).mark_bar().encode(
            x=alt.X('key:N', sort=sort, title=group_label, axis=alt.Axis(labelAngle=-45)),
            y=alt.Y('Value:Q', title=None, axis=alt.Axis(format='~s')),
            color=alt.Color('Metric:N', scale=color_scale, legend=alt.Legend(orient='bottom')),
            xOffset='Metric:N',
            tooltip=[
                alt.Tooltip('key:N', title=group_label),
                alt.Tooltip('Metric:N'),
                alt.Tooltip('Value:Q', format=',.0f'),
            ],
        ).properties(
            width=CHART_WIDTH,
            height=CHART_HEIGHT,
        )
        return chart

    @staticmethod
    def build_leaderboard_chart(board_df: pd.DataFrame, metric: str, scope: str) -> alt.Chart:
        """Horizontal bars; team scopes chart the per-head average."""
        if board_df.empty:
            return SalesCharts._empty_chart("No rankings yet")

        value_col = metric if scope == 'dsa' else f'avg_{metric}'
        return alt.Chart(board_df).mark_bar(color=COLORS.get(metric, COLORS['volume'])).encode(
            y=alt.Y('name:N', sort='-x', title=None),
            x=alt.X(f'{value_col}:Q', title=None, axis=alt.Axis(format='~s')),
            tooltip=[
                alt.Tooltip('name:N', title='Name'),
                alt.Tooltip(f'{metric}:Q', title='Total', format=',.0f'),
                alt.Tooltip('headcount:Q', title='Headcount'),
                alt.Tooltip(f'avg_{metric}:Q', title='Per head', format=',.0f'),
            ],
        ).properties(width=CHART_WIDTH, height=max(120, 24 * len(board_df)))
