# utils/dsa_reporting/constants.py
"""
Constants for DSA Reporting Module

Centralized configuration for:
- Role definitions and ownership edges
- Report status / approval literals
- Reconciliation and cache limits
- Export column layout
- Color schemes and chart settings
"""

# =====================================================================
# ROLE DEFINITIONS
# =====================================================================

ROLE_DSA = 'DSA'
ROLE_DSS = 'DSS'
ROLE_SM = 'SM'
ROLE_RSM = 'RSM'
ROLE_ADMIN = 'ADMIN'

ROLES = [ROLE_DSA, ROLE_DSS, ROLE_SM, ROLE_RSM, ROLE_ADMIN]

# Full access: sees every DSA
FULL_ACCESS_ROLES = [ROLE_ADMIN]

# Team access: sees every DSA below them in the org tree
TEAM_ACCESS_ROLES = [ROLE_DSS, ROLE_SM, ROLE_RSM]

# Allowed manager role(s) for each role (child -> parents)
PARENT_ROLES = {
    ROLE_DSA: (ROLE_DSS, ROLE_SM),
    ROLE_DSS: (ROLE_SM,),
    ROLE_SM: (ROLE_RSM,),
    ROLE_RSM: (ROLE_ADMIN,),
    ROLE_ADMIN: (),
}

# =====================================================================
# STATUS LITERALS
# =====================================================================

STATUS_REPORTED = 'reported'
STATUS_NOT_REPORTED = 'not yet reported'

# Values written by older clients
LEGACY_STATUS_ALIASES = {
    'Đã báo cáo': STATUS_REPORTED,
    'Chưa báo cáo': STATUS_NOT_REPORTED,
}
LEGACY_REPORTED_PREFIX = 'Ngày'

VALID_STATUSES = [STATUS_REPORTED, STATUS_NOT_REPORTED]

APPROVAL_APPROVED = 'Approved'
APPROVAL_PENDING = 'Pending'
APPROVAL_REJECTED = 'Rejected'

APPROVAL_STATUSES = [APPROVAL_APPROVED, APPROVAL_PENDING, APPROVAL_REJECTED]

# =====================================================================
# FILTER VALUES
# =====================================================================

FILTER_ALL = 'all'
STATUS_FILTER_PENDING = 'pending'

STATUS_FILTERS = {
    FILTER_ALL: 'All statuses',
    STATUS_REPORTED: 'Reported',
    STATUS_NOT_REPORTED: 'Not yet reported',
    STATUS_FILTER_PENDING: 'Pending approval',
}

# =====================================================================
# RECONCILIATION SETTINGS
# =====================================================================

# Placeholder synthesis is O(DSAs x days); skip it for wider ranges
PLACEHOLDER_MAX_SPAN_DAYS = 31

PLACEHOLDER_ID_PREFIX = 'virt-'

DEFAULT_ROL = '0.0%'

# =====================================================================
# CACHE / SYNC SETTINGS
# =====================================================================

SALES_CACHE_TTL_SECONDS = 5 * 60          # 5 minutes
USERS_CACHE_TTL_SECONDS = 24 * 60 * 60    # 24 hours

# Max operations per remote transaction
WRITE_BATCH_SIZE = 500

SUBSCRIPTION_POLL_SECONDS = 15

CACHE_KEY_USERS = 'app_users'
CACHE_KEY_RECORDS = 'sales_records'
CACHE_KEY_CURRENT_USER = 'currentUser'
CACHE_KEY_TS_USERS = 'ts_users'
CACHE_KEY_TS_SALES = 'ts_sales'
CACHE_PREF_PREFIX = 'pref:'

COLLECTION_USERS = 'users'
COLLECTION_SALES = 'sales_records'

# =====================================================================
# DATA MANAGEMENT
# =====================================================================

CLEANUP_THRESHOLD_DAYS = 60

ROSTER_CSV_TEMPLATE = (
    "username,name,role,dsaCode,parentId,dssManager,smRegion\n"
    "nguyenvana,Nguyen Van A,DSA,DA001,id_of_dss,,"
)

# =====================================================================
# METRIC FIELDS
# =====================================================================

NUMERIC_FIELDS = [
    'direct_app', 'direct_loan', 'direct_app_crc', 'direct_loan_crc',
    'direct_volume', 'direct_banca',
    'direct_app_feol', 'direct_loan_feol', 'direct_volume_feol',
    'online_app', 'online_volume',
    'ctv', 'new_ctv', 'flyers', 'dlk', 'new_dlk',
    'calls_month', 'ad_spend', 'refs',
]

# Monthly KPI scorecard: (target, weight)
KPI_SCORECARD = {
    'volume': (100_000_000, 40),
    'apps': (10, 30),
    'calls': (100, 30),
}

# =====================================================================
# EXPORT SETTINGS
# =====================================================================

# (header, attribute) in export order
CSV_COLUMNS = [
    ('ID', 'id'),
    ('DSA Code', 'dsa_code'),
    ('Name', 'name'),
    ('DSS', 'dss'),
    ('SM', 'sm_name'),
    ('ReportDate', 'report_date'),
    ('Status', 'status'),
    ('ApprovalStatus', 'approval_status'),
    ('Direct App', 'direct_app'),
    ('Direct Loan', 'direct_loan'),
    ('App CRC', 'direct_app_crc'),
    ('Loan CRC', 'direct_loan_crc'),
    ('Direct Volume', 'direct_volume'),
    ('Direct Banca', 'direct_banca'),
    ('Direct Rol', 'direct_rol'),
    ('App FEOL', 'direct_app_feol'),
    ('Loan FEOL', 'direct_loan_feol'),
    ('Volume FEOL', 'direct_volume_feol'),
    ('Online App', 'online_app'),
    ('Online Volume', 'online_volume'),
    ('CTV', 'ctv'),
    ('New CTV', 'new_ctv'),
    ('Flyers', 'flyers'),
    ('DLK', 'dlk'),
    ('New DLK', 'new_dlk'),
    ('Calls', 'calls_month'),
    ('Ad Spend', 'ad_spend'),
    ('Refs', 'refs'),
]

EXCEL_STYLES = {
    "header_fill_color": "047857",
    "header_font_color": "FFFFFF",
    "currency_format": '#,##0',
    "percent_format": '0.0%',
    "date_format": 'YYYY-MM-DD',
}

# =====================================================================
# COLOR SCHEME / CHARTS
# =====================================================================

COLORS = {
    "volume": "#10b981",          # Emerald
    "banca": "#3b82f6",           # Blue
    "crc": "#ef4444",             # Red
    "apps": "#6366f1",            # Indigo
    "calls": "#f97316",           # Orange
    "flyers": "#fbbf24",          # Amber
    "reported": "#28a745",
    "not_reported": "#dc3545",
    "text_dark": "#333333",
    "grid": "#e0e0e0",
}

CHART_WIDTH = 800
CHART_HEIGHT = 400

CHART_MAX_GROUPS = 50
LEADERBOARD_LIMIT = 20

# Chart grouping per viewer role
CHART_GROUP_KEYS = {
    ROLE_DSA: 'report_date',
    ROLE_DSS: 'name',
    ROLE_SM: 'dss',
    ROLE_RSM: 'sm_name',
    ROLE_ADMIN: 'sm_name',
}
