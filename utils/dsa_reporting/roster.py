# utils/dsa_reporting/roster.py
"""
Roster administration for DSA Reporting

- Validation of single users and of a whole roster (parent roles,
  DSA code uniqueness, ownership cycles)
- CSV roster import (username,name,role,dsaCode,parentId,dssManager,smRegion)
- Display labels for a user's current DSS / SM
"""

import io
import logging
import uuid
from typing import Dict, Iterable, List, Optional, Union

import pandas as pd

from .constants import PARENT_ROLES, ROLE_DSA, ROLE_DSS, ROLE_SM, ROLES
from .exceptions import HierarchyCycleError, ValidationError
from .hierarchy import HierarchyResolver
from .models import User

logger = logging.getLogger(__name__)

ROSTER_REQUIRED_COLUMNS = ['username', 'name', 'role']
ROSTER_OPTIONAL_COLUMNS = ['dsaCode', 'parentId', 'dssManager', 'smRegion']


def generate_user_id() -> str:
    return uuid.uuid4().hex[:12]


def allowed_parents(role: str, users: Iterable[User]) -> List[User]:
    """Users that may own a user of `role`."""
    parent_roles = PARENT_ROLES.get(role, ())
    return [u for u in users if u.role in parent_roles]


def hierarchy_labels(user: User, users: Iterable[User]) -> Dict[str, str]:
    """Current DSS / SM display names above `user` ('' when not applicable)."""
    resolver = HierarchyResolver(users)
    parent = resolver.get_user(user.parent_id)

    if user.role == ROLE_DSA:
        p = resolver.placement(user)
        return {'dss': p.dss_name, 'sm': p.sm_name}
    if user.role == ROLE_DSS and parent is not None:
        return {'dss': '', 'sm': parent.name}
    return {'dss': '', 'sm': ''}


# =============================================================================
# VALIDATION
# =============================================================================

def validate_user(user: User, users: Iterable[User]) -> None:
    """
    Check one user against the rest of the roster.

    Raises:
        ValidationError: Unknown role, missing/duplicate username or DSA code,
            missing parent, or a parent with a role that may not own `user`
    """
    others = [u for u in users if u.id != user.id]
    by_id = {u.id: u for u in others}

    if user.role not in ROLES:
        raise ValidationError(f"Unknown role '{user.role}' for {user.username or user.id}")
    if not user.username or not user.name:
        raise ValidationError("Username and name are required")
    if any(u.username == user.username for u in others):
        raise ValidationError(f"Username '{user.username}' is already taken")

    if user.role == ROLE_DSA:
        if not user.dsa_code:
            raise ValidationError(f"DSA '{user.username}' needs a DSA code")
        if any(u.dsa_code == user.dsa_code for u in others if u.role == ROLE_DSA):
            raise ValidationError(f"DSA code '{user.dsa_code}' is already assigned")

    if user.parent_id:
        if user.parent_id == user.id:
            raise HierarchyCycleError([user.id])
        parent = by_id.get(user.parent_id)
        if parent is None:
            raise ValidationError(f"Manager '{user.parent_id}' of '{user.username}' does not exist")
        if parent.role not in PARENT_ROLES.get(user.role, ()):
            raise ValidationError(
                f"A {user.role} cannot report to a {parent.role} "
                f"(allowed: {', '.join(PARENT_ROLES.get(user.role, ())) or 'none'})"
            )


def validate_roster(users: Iterable[User]) -> None:
    """
    Validate the ownership graph as a whole, then every user.

    Raises:
        ValidationError / HierarchyCycleError
    """
    users = list(users)
    cycles = HierarchyResolver(users).find_cycles()
    if cycles:
        raise HierarchyCycleError(cycles[0])

    for user in users:
        validate_user(user, users)


# =============================================================================
# CSV IMPORT
# =============================================================================

def _resolve_manager(row: Dict[str, str], role: str, pool: List[User]) -> Optional[str]:
    """parentId, else a DSS / SM looked up by username or name from dssManager / smRegion."""
    if row.get('parentId'):
        return row['parentId']

    lookups = []
    if role == ROLE_DSA and row.get('dssManager'):
        lookups.append((ROLE_DSS, row['dssManager']))
    if role in (ROLE_DSA, ROLE_DSS) and row.get('smRegion'):
        lookups.append((ROLE_SM, row['smRegion']))

    for manager_role, key in lookups:
        match = next(
            (u for u in pool if u.role == manager_role and key in (u.username, u.name)),
            None,
        )
        if match is not None:
            return match.id
    return None


def parse_roster_csv(content: Union[str, bytes], existing: Iterable[User]) -> List[User]:
    """
    Parse a roster CSV into new users, validated against `existing`.

    The whole file is rejected when any row is invalid.

    Raises:
        ValidationError: Missing columns, no usable rows, or invalid rows
    """
    if isinstance(content, bytes):
        content = content.decode('utf-8-sig')
    content = content.lstrip("\ufeff")

    try:
        df = pd.read_csv(io.StringIO(content), dtype=str, keep_default_na=False, skipinitialspace=True)
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise ValidationError(f"Could not read roster CSV: {e}") from e

    df.columns = [c.strip() for c in df.columns]
    missing = [c for c in ROSTER_REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValidationError(f"Roster CSV is missing column(s): {', '.join(missing)}")
    for col in ROSTER_OPTIONAL_COLUMNS:
        if col not in df.columns:
            df[col] = ''

    pool = list(existing)
    new_users: List[User] = []
    errors: List[str] = []

    for line_no, row in enumerate(df.to_dict('records'), start=2):
        row = {k: str(v).strip() for k, v in row.items()}
        if not (row['username'] and row['name'] and row['role']):
            continue

        role = row['role'].upper()
        user = User(
            id=generate_user_id(),
            username=row['username'],
            name=row['name'],
            role=role,
            dsa_code=row['dsaCode'] or None,
            parent_id=_resolve_manager(row, role, pool),
        )
        try:
            validate_user(user, pool)
        except ValidationError as e:
            errors.append(f"line {line_no}: {e}")
            continue
        pool.append(user)
        new_users.append(user)

    if errors:
        logger.warning(f"Roster import rejected: {len(errors)} invalid row(s)")
        raise ValidationError("Invalid roster rows:\n" + "\n".join(errors))
    if not new_users:
        raise ValidationError("Roster CSV contains no usable rows")

    logger.info(f"Parsed {len(new_users)} user(s) from roster CSV")
    return new_users
