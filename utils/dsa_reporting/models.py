# utils/dsa_reporting/models.py
"""
Domain records for DSA reporting.

Documents in the remote store and the local cache use camelCase keys
(`dsaCode`, `reportDate`, ...). In Python we use snake_case attributes and
convert at the edges with `from_dict()` / `to_dict()`.
"""

import itertools
import time
from dataclasses import dataclass, fields, replace
from datetime import date, datetime
from typing import Any, Dict, Optional, Tuple, Union

from .constants import (
    APPROVAL_APPROVED,
    APPROVAL_PENDING,
    DEFAULT_ROL,
    LEGACY_REPORTED_PREFIX,
    LEGACY_STATUS_ALIASES,
    NUMERIC_FIELDS,
    PLACEHOLDER_ID_PREFIX,
    ROLE_DSA,
    STATUS_NOT_REPORTED,
    STATUS_REPORTED,
)

DateLike = Union[str, date, datetime]

_id_counter = itertools.count()


def to_iso_date(value: DateLike) -> str:
    """Normalize a date/datetime/string to a 'YYYY-MM-DD' string."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()[:10]


def parse_iso_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def generate_record_id() -> str:
    """Timestamp-derived id; the suffix keeps ids unique within one millisecond."""
    return f"{int(time.time() * 1000)}{next(_id_counter) % 1000:03d}"


def _to_number(value: Any) -> Union[int, float]:
    if value is None or value == '':
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    try:
        number = float(str(value).replace(',', ''))
    except ValueError:
        return 0
    return int(number) if number.is_integer() else number


def _camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part.upper() if part in ('crc', 'feol') else part.capitalize() for part in rest)


# =============================================================================
# USER
# =============================================================================

@dataclass
class User:
    """A member of the sales organisation."""
    id: str
    username: str
    name: str
    role: str
    parent_id: Optional[str] = None
    dsa_code: Optional[str] = None
    avatar: Optional[str] = None
    phone_number: Optional[str] = None
    password_hash: Optional[str] = None
    password_salt: Optional[str] = None

    @property
    def is_dsa(self) -> bool:
        return self.role == ROLE_DSA

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        return cls(
            id=str(data.get('id', '')),
            username=str(data.get('username', '') or ''),
            name=str(data.get('name', '') or ''),
            role=str(data.get('role', ROLE_DSA) or ROLE_DSA).strip().upper(),
            parent_id=data.get('parentId') or None,
            dsa_code=(str(data['dsaCode']).strip() or None) if data.get('dsaCode') else None,
            avatar=data.get('avatar') or None,
            phone_number=data.get('phoneNumber') or None,
            password_hash=data.get('passwordHash') or None,
            password_salt=data.get('passwordSalt') or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Document form with unset (None) fields stripped."""
        return {
            _camel(f.name): getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


# =============================================================================
# SALES RECORD
# =============================================================================

@dataclass
class SalesRecord:
    """One DSA's report for one calendar date."""
    id: str
    dsa_code: str
    report_date: str
    name: str = ''
    dss: str = ''
    sm_name: str = ''
    status: str = STATUS_REPORTED
    approval_status: str = APPROVAL_APPROVED
    proof_image: Optional[str] = None

    # Direct sales (cash / credit card)
    direct_app: float = 0
    direct_loan: float = 0
    direct_app_crc: float = 0
    direct_loan_crc: float = 0
    direct_volume: float = 0
    direct_banca: float = 0
    direct_rol: str = DEFAULT_ROL

    # FEOL sales
    direct_app_feol: float = 0
    direct_loan_feol: float = 0
    direct_volume_feol: float = 0

    # Online sales
    online_app: float = 0
    online_volume: float = 0

    # Activity
    ctv: float = 0
    new_ctv: float = 0
    flyers: float = 0
    dlk: float = 0
    new_dlk: float = 0
    calls_month: float = 0
    ad_spend: float = 0
    refs: float = 0

    @property
    def natural_key(self) -> Tuple[str, str]:
        return (self.dsa_code, self.report_date)

    @property
    def is_placeholder(self) -> bool:
        return self.id.startswith(PLACEHOLDER_ID_PREFIX)

    @property
    def is_reported(self) -> bool:
        """Reported, including rows written with the legacy date-prefixed status."""
        return self.status == STATUS_REPORTED or self.status.startswith(LEGACY_REPORTED_PREFIX)

    @property
    def is_pending(self) -> bool:
        return self.approval_status == APPROVAL_PENDING

    @property
    def total_volume(self) -> float:
        return self.direct_volume + self.direct_volume_feol

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SalesRecord':
        status = str(data.get('status') or STATUS_REPORTED)
        status = LEGACY_STATUS_ALIASES.get(status, status)
        values = {
            name: _to_number(data.get(_camel(name)))
            for name in NUMERIC_FIELDS
        }
        return cls(
            id=str(data.get('id', '')),
            dsa_code=str(data.get('dsaCode') or '').strip(),
            report_date=to_iso_date(data.get('reportDate') or ''),
            name=str(data.get('name') or ''),
            dss=str(data.get('dss') or ''),
            sm_name=str(data.get('smName') or ''),
            status=status,
            approval_status=str(data.get('approvalStatus') or APPROVAL_APPROVED),
            proof_image=data.get('proofImage') or None,
            direct_rol=str(data.get('directRol') or DEFAULT_ROL),
            **values,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Document form with unset (None) fields stripped."""
        return {
            _camel(f.name): getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    def copy(self, **changes) -> 'SalesRecord':
        return replace(self, **changes)


@dataclass(frozen=True)
class TeamPlacement:
    """Current DSS / SM of a DSA. Ids are join keys, names are for display."""
    dss_id: str = ''
    dss_name: str = ''
    sm_id: str = ''
    sm_name: str = ''


def make_placeholder(user: User, report_date: str, placement: TeamPlacement) -> SalesRecord:
    """Synthesized 'not yet reported' row for a DSA/day without a report."""
    return SalesRecord(
        id=f"{PLACEHOLDER_ID_PREFIX}{user.id}-{report_date}",
        dsa_code=user.dsa_code or '',
        report_date=report_date,
        name=user.name,
        dss=placement.dss_name,
        sm_name=placement.sm_name,
        status=STATUS_NOT_REPORTED,
        approval_status=APPROVAL_APPROVED,
    )
