# utils/dsa_reporting/reconciliation.py
"""
Record Reconciliation for DSA Reporting

Merges actual sales records with synthesized "not yet reported"
placeholders for a date range and a visibility scope.

Pipeline:
1. Scope       - DSA codes visible to the viewer (HierarchyResolver)
2. Actual      - in-scope records within [start, end] (ISO string compare)
3. Enrichment  - optionally reproject current DSS/SM names onto records
4. Team filter - SM / DSS filter on records and on placeholders
5. Status      - 'reported' / 'pending' short-circuit, no placeholders
6. Placeholders- only for spans of <= PLACEHOLDER_MAX_SPAN_DAYS
7. Assembly    - 'not yet reported' -> placeholders, 'all' -> both

Placeholders always reflect the CURRENT org chart. Actual records keep
their as-reported DSS/SM names unless reproject_hierarchy is on.
"""

import logging
from datetime import timedelta
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .constants import (
    FILTER_ALL,
    PLACEHOLDER_MAX_SPAN_DAYS,
    STATUS_FILTER_PENDING,
    STATUS_NOT_REPORTED,
    STATUS_REPORTED,
)
from .hierarchy import HierarchyResolver
from .models import (
    DateLike,
    SalesRecord,
    User,
    make_placeholder,
    parse_iso_date,
    to_iso_date,
)

logger = logging.getLogger(__name__)


class RecordReconciler:
    """
    Build the record list a viewer sees for a date range.

    Usage:
        reconciler = RecordReconciler(users, reproject_hierarchy=True)
        rows = reconciler.reconcile(
            records, current_user, '2024-01-01', '2024-01-31',
            status_filter='all', sm_filter='all', dss_filter='all'
        )
    """

    def __init__(
        self,
        users: Iterable[User],
        reproject_hierarchy: bool = True,
        max_span_days: int = PLACEHOLDER_MAX_SPAN_DAYS,
        resolver: Optional[HierarchyResolver] = None,
    ):
        """
        Args:
            users: Full roster
            reproject_hierarchy: Copy current DSS/SM names onto actual records
            max_span_days: Largest (end - start) that still gets placeholders
            resolver: Pre-built resolver over the same roster (optional)
        """
        self.resolver = resolver or HierarchyResolver(users)
        self.reproject_hierarchy = reproject_hierarchy
        self.max_span_days = max_span_days

    # =========================================================================
    # MAIN ENTRY POINT
    # =========================================================================

    def reconcile(
        self,
        records: Iterable[SalesRecord],
        user: User,
        start_date: DateLike,
        end_date: DateLike,
        status_filter: str = FILTER_ALL,
        sm_filter: str = FILTER_ALL,
        dss_filter: str = FILTER_ALL,
    ) -> List[SalesRecord]:
        """
        Reconcile actual records and placeholders.

        Args:
            records: Every known record (remote + cache)
            user: Viewer
            start_date, end_date: Inclusive range
            status_filter: 'all', 'reported', 'not yet reported' or 'pending'
            sm_filter, dss_filter: Manager user id (or legacy display name), or 'all'

        Returns:
            List of SalesRecord; order beyond "actual first" is not significant
        """
        start = to_iso_date(start_date)
        end = to_iso_date(end_date)
        scope = self.resolver.visible_dsa_codes(user)

        in_range = self._filter_scope_and_range(records, scope, start, end)
        actual = [
            r for r in self._enrich(in_range)
            if self._record_matches_team(r, sm_filter, dss_filter)
        ]
        # Only rows that survive the team filter may suppress a placeholder
        reported_keys = {r.natural_key for r in actual if r.is_reported}

        if status_filter == STATUS_REPORTED:
            return self._dedupe([r for r in actual if r.is_reported])
        if status_filter == STATUS_FILTER_PENDING:
            return [r for r in actual if r.is_pending]

        placeholders = self.synthesize_placeholders(
            user, start, end, reported_keys, sm_filter, dss_filter
        )

        if status_filter == STATUS_NOT_REPORTED:
            return placeholders

        result = self._dedupe([r for r in actual if r.is_reported]) + placeholders
        logger.debug(
            f"Reconciled {len(result)} rows for {user.username} "
            f"({start}..{end}, placeholders={len(placeholders)})"
        )
        return result

    # =========================================================================
    # ACTUAL RECORDS
    # =========================================================================

    @staticmethod
    def _filter_scope_and_range(
        records: Iterable[SalesRecord],
        scope: Set[str],
        start: str,
        end: str,
    ) -> List[SalesRecord]:
        return [
            r for r in records
            if r.dsa_code
            and r.dsa_code in scope
            and start <= r.report_date <= end
            and not r.is_placeholder
        ]

    def _enrich(self, records: List[SalesRecord]) -> List[SalesRecord]:
        """Reproject current DSS/SM names onto records (when enabled)."""
        if not self.reproject_hierarchy:
            return records

        placements = self.resolver.placements_by_code()
        enriched = []
        for r in records:
            p = placements.get(r.dsa_code)
            if p is None:
                enriched.append(r)
            else:
                enriched.append(r.copy(
                    dss=p.dss_name or r.dss,
                    sm_name=p.sm_name or r.sm_name,
                ))
        return enriched

    def _record_matches_team(self, record: SalesRecord, sm_filter: str, dss_filter: str) -> bool:
        """
        Current placement when reprojecting (same test as placeholders and
        headcount); as-reported names otherwise, or for codes off the roster.
        """
        if sm_filter == FILTER_ALL and dss_filter == FILTER_ALL:
            return True

        if self.reproject_hierarchy:
            placement = self.resolver.placements_by_code().get(record.dsa_code)
            if placement is not None:
                return self.resolver.placement_matches(placement, sm_filter, dss_filter)

        return self.resolver.names_match(record.sm_name, record.dss, sm_filter, dss_filter)

    @staticmethod
    def _dedupe(records: List[SalesRecord]) -> List[SalesRecord]:
        """One record per (dsa_code, report_date); the last one wins."""
        latest: Dict[Tuple[str, str], SalesRecord] = {}
        for r in records:
            latest[r.natural_key] = r
        if len(latest) < len(records):
            logger.warning(f"Dropped {len(records) - len(latest)} duplicate report(s) by natural key")
        return list(latest.values())

    # =========================================================================
    # PLACEHOLDERS
    # =========================================================================

    def synthesize_placeholders(
        self,
        user: User,
        start: str,
        end: str,
        reported_keys: Set[Tuple[str, str]],
        sm_filter: str = FILTER_ALL,
        dss_filter: str = FILTER_ALL,
    ) -> List[SalesRecord]:
        """
        One placeholder per in-scope DSA and day without a reported record.

        Returns an empty list when the span exceeds max_span_days or the
        range is reversed.
        """
        start_d = parse_iso_date(start)
        end_d = parse_iso_date(end)
        span = (end_d - start_d).days

        if span > self.max_span_days:
            logger.info(f"Range spans {span} days (> {self.max_span_days}); skipping placeholders")
            return []

        candidates = []
        seen_codes: Set[str] = set()
        for dsa in self.resolver.visible_dsa_users(user):
            if not dsa.dsa_code or dsa.dsa_code in seen_codes:
                continue
            placement = self.resolver.placement(dsa)
            if self.resolver.placement_matches(placement, sm_filter, dss_filter):
                seen_codes.add(dsa.dsa_code)
                candidates.append((dsa, placement))

        placeholders: List[SalesRecord] = []
        day = start_d
        while day <= end_d:
            day_str = day.isoformat()
            for dsa, placement in candidates:
                if (dsa.dsa_code, day_str) not in reported_keys:
                    placeholders.append(make_placeholder(dsa, day_str, placement))
            day += timedelta(days=1)

        return placeholders


def reconcile(
    all_records: Iterable[SalesRecord],
    all_users: Iterable[User],
    user: User,
    start_date: DateLike,
    end_date: DateLike,
    status_filter: str = FILTER_ALL,
    sm_filter: str = FILTER_ALL,
    dss_filter: str = FILTER_ALL,
    reproject_hierarchy: bool = True,
) -> List[SalesRecord]:
    """Functional form of RecordReconciler.reconcile."""
    reconciler = RecordReconciler(all_users, reproject_hierarchy=reproject_hierarchy)
    return reconciler.reconcile(
        all_records, user, start_date, end_date,
        status_filter=status_filter, sm_filter=sm_filter, dss_filter=dss_filter,
    )
