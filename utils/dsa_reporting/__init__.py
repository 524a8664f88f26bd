# utils/dsa_reporting/__init__.py
"""
DSA Reporting Module

Daily sales reporting for the DSA -> DSS -> SM -> RSM -> ADMIN hierarchy.

Components:
- hierarchy: Role-based visibility and current team placement
- reconciliation: Actual records + "not yet reported" placeholders
- metrics: KPI totals, ratios, chart aggregation, DSA scorecard
- leaderboard: DSA / DSS / SM rankings
- cache / sync / store: Local cache, remote store client, optimistic writes
- roster: User validation and CSV roster import
- export: CSV / JSON backup / Excel report
- dashboard / filters / charts: Streamlit page helpers

Usage:
    from utils.dsa_reporting import (
        HierarchyResolver,
        RecordReconciler,
        SalesMetrics,
        Leaderboard,
        SalesDataStore,
        DashboardView,
    )
"""

from .models import SalesRecord, TeamPlacement, User
from .exceptions import (
    HierarchyCycleError,
    OfflineError,
    PermissionDeniedError,
    ReportingError,
    SyncError,
    ValidationError,
)
from .hierarchy import HierarchyResolver, visible_dsa_codes
from .reconciliation import RecordReconciler, reconcile
from .metrics import SalesMetrics, calculate_stats
from .leaderboard import Leaderboard
from .cache import JsonFileStorage, LocalCacheStore
from .sync import BatchResult, RemoteSyncClient, Subscription
from .store import SalesDataStore
from .roster import parse_roster_csv, validate_roster, validate_user
from .export import SalesExport, parse_backup, to_csv, to_json_backup
from .dashboard import DashboardFilters, DashboardView, DsaSelfInfo
from .filters import DashboardFilterPanel
from .charts import SalesCharts

from .constants import (
    COLORS,
    FILTER_ALL,
    ROLES,
    STATUS_FILTERS,
    STATUS_NOT_REPORTED,
    STATUS_REPORTED,
)

__all__ = [
    # Models
    'User',
    'SalesRecord',
    'TeamPlacement',

    # Errors
    'ReportingError',
    'SyncError',
    'OfflineError',
    'PermissionDeniedError',
    'ValidationError',
    'HierarchyCycleError',

    # Core
    'HierarchyResolver',
    'visible_dsa_codes',
    'RecordReconciler',
    'reconcile',
    'SalesMetrics',
    'calculate_stats',
    'Leaderboard',

    # Storage
    'LocalCacheStore',
    'JsonFileStorage',
    'RemoteSyncClient',
    'Subscription',
    'BatchResult',
    'SalesDataStore',

    # Admin / export
    'parse_roster_csv',
    'validate_roster',
    'validate_user',
    'SalesExport',
    'parse_backup',
    'to_csv',
    'to_json_backup',

    # UI
    'DashboardFilters',
    'DashboardView',
    'DsaSelfInfo',
    'DashboardFilterPanel',
    'SalesCharts',

    # Constants
    'COLORS',
    'FILTER_ALL',
    'ROLES',
    'STATUS_FILTERS',
    'STATUS_REPORTED',
    'STATUS_NOT_REPORTED',
]

__version__ = '1.0.0'
