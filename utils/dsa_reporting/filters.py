# utils/dsa_reporting/filters.py
"""
Sidebar Filter Components for DSA Reporting

- Date range (defaults to month-to-date)
- Status filter (all / reported / not yet reported / pending)
- SM / DSS team filters (manager ids, limited to the viewer's teams)

Selections persist in the local cache under pref:<name> so they survive
reloads.
"""

import logging
from datetime import date
from typing import Dict, Optional, Tuple

import streamlit as st

from .cache import LocalCacheStore
from .constants import FILTER_ALL, PLACEHOLDER_MAX_SPAN_DAYS, ROLE_DSA, STATUS_FILTERS
from .dashboard import DashboardFilters
from .models import parse_iso_date, to_iso_date

logger = logging.getLogger(__name__)

PREF_KEYS = {
    'start_date': 'startDate',
    'end_date': 'endDate',
    'status': 'statusFilter',
    'sm': 'smFilter',
    'dss': 'dssFilter',
}


def load_saved_filters(cache: LocalCacheStore, today: Optional[date] = None) -> DashboardFilters:
    """Last used filters, defaulting to month-to-date with everything selected."""
    today = today or date.today()
    filters = DashboardFilters(
        start_date=cache.get_preference(PREF_KEYS['start_date'], today.replace(day=1).isoformat()),
        end_date=cache.get_preference(PREF_KEYS['end_date'], today.isoformat()),
        status=cache.get_preference(PREF_KEYS['status'], FILTER_ALL),
        sm=cache.get_preference(PREF_KEYS['sm'], FILTER_ALL),
        dss=cache.get_preference(PREF_KEYS['dss'], FILTER_ALL),
    )
    if filters.status not in STATUS_FILTERS:
        filters.status = FILTER_ALL
    return filters


def save_filters(cache: LocalCacheStore, filters: DashboardFilters) -> None:
    for attr, pref in PREF_KEYS.items():
        cache.set_preference(pref, getattr(filters, attr))


def validate_filters(filters: DashboardFilters) -> Tuple[bool, Optional[str]]:
    """
    Returns:
        (is_valid, error_message)
    """
    if filters.start_date > filters.end_date:
        return False, "Start date must be before end date"
    return True, None


def get_filter_summary(filters: DashboardFilters, team_options: Dict[str, Dict[str, str]]) -> str:
    parts = [f"{filters.start_date} → {filters.end_date}"]
    if filters.status != FILTER_ALL:
        parts.append(STATUS_FILTERS.get(filters.status, filters.status))
    if filters.sm != FILTER_ALL:
        parts.append(f"SM: {team_options.get('sm', {}).get(filters.sm, filters.sm)}")
    if filters.dss != FILTER_ALL:
        parts.append(f"DSS: {team_options.get('dss', {}).get(filters.dss, filters.dss)}")
    return " • ".join(parts)


class DashboardFilterPanel:
    """
    Usage:
        panel = DashboardFilterPanel(cache, view_role=user.role)
        filters = panel.render(team_options)
    """

    def __init__(self, cache: LocalCacheStore, view_role: str):
        self.cache = cache
        self.view_role = view_role

    def _team_select(self, label: str, options: Dict[str, str], current: str, key: str) -> str:
        choices = [FILTER_ALL] + sorted(options, key=lambda k: options[k])
        index = choices.index(current) if current in choices else 0
        return st.selectbox(
            label,
            options=choices,
            index=index,
            format_func=lambda v: 'All' if v == FILTER_ALL else options.get(v, v),
            key=key,
        )

    def render(self, team_options: Dict[str, Dict[str, str]]) -> DashboardFilters:
        saved = load_saved_filters(self.cache)

        with st.sidebar:
            st.header("🎛️ Filters")

            with st.form("dsa_filter_form", border=False):
                st.markdown("**📅 Date Range**")
                col_d1, col_d2 = st.columns(2)
                with col_d1:
                    start = st.date_input("Start", value=parse_iso_date(saved.start_date), key="form_start_date")
                with col_d2:
                    end = st.date_input("End", value=parse_iso_date(saved.end_date), key="form_end_date")

                if (end - start).days > PLACEHOLDER_MAX_SPAN_DAYS:
                    st.caption(
                        f"Ranges over {PLACEHOLDER_MAX_SPAN_DAYS} days show reported rows only."
                    )

                statuses = list(STATUS_FILTERS)
                status = st.selectbox(
                    "Status",
                    options=statuses,
                    index=statuses.index(saved.status),
                    format_func=lambda v: STATUS_FILTERS[v],
                    key="form_status",
                )

                sm, dss = FILTER_ALL, FILTER_ALL
                if self.view_role != ROLE_DSA:
                    st.divider()
                    st.markdown("**👥 Team**")
                    sm = self._team_select("SM", team_options.get('sm', {}), saved.sm, "form_sm")
                    dss = self._team_select("DSS", team_options.get('dss', {}), saved.dss, "form_dss")

                submitted = st.form_submit_button(
                    "🔍 Apply Filters",
                    use_container_width=True,
                    type="primary",
                )

        filters = DashboardFilters(
            start_date=to_iso_date(start),
            end_date=to_iso_date(end),
            status=status,
            sm=sm,
            dss=dss,
        )
        if not submitted:
            return saved

        is_valid, error = validate_filters(filters)
        if not is_valid:
            st.sidebar.error(f"⚠️ {error}")
            return saved

        save_filters(self.cache, filters)
        logger.debug(f"Filters applied: {filters}")
        return filters
