# utils/dsa_reporting/hierarchy.py
"""
Role-based Visibility for DSA Reporting

Resolves which DSA codes a user may see:
- ADMIN: every DSA on the roster
- DSS/SM/RSM: every DSA below them (recursive parentId walk)
- DSA: own code only

The roster is walked in memory. A visited set guards against malformed
rosters with ownership cycles; a revisit is logged and the walk stops.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set

from .constants import (
    FILTER_ALL,
    FULL_ACCESS_ROLES,
    ROLE_DSA,
    ROLE_DSS,
    ROLE_SM,
    TEAM_ACCESS_ROLES,
)
from .models import TeamPlacement, User

logger = logging.getLogger(__name__)


class HierarchyResolver:
    """
    Visibility and team placement over one roster snapshot.

    Usage:
        resolver = HierarchyResolver(users)

        codes = resolver.visible_dsa_codes(current_user)
        placement = resolver.placement(dsa_user)   # current DSS / SM
        headcount = resolver.headcount(current_user, sm_filter='all', dss_filter='all')
    """

    def __init__(self, users: Iterable[User]):
        self.users: List[User] = list(users)
        self._by_id: Dict[str, User] = {u.id: u for u in self.users}
        self._children: Dict[str, List[User]] = defaultdict(list)
        for u in self.users:
            if u.parent_id:
                self._children[u.parent_id].append(u)
        self._placements: Optional[Dict[str, TeamPlacement]] = None

    # =========================================================================
    # ACCESS LEVEL
    # =========================================================================

    @staticmethod
    def get_access_level(user: User) -> str:
        """'full', 'team' or 'self'."""
        if user.role in FULL_ACCESS_ROLES:
            return 'full'
        if user.role in TEAM_ACCESS_ROLES:
            return 'team'
        return 'self'

    def get_user(self, user_id: Optional[str]) -> Optional[User]:
        if not user_id:
            return None
        return self._by_id.get(user_id)

    def dsa_users(self) -> List[User]:
        return [u for u in self.users if u.role == ROLE_DSA]

    # =========================================================================
    # VISIBILITY
    # =========================================================================

    def visible_dsa_codes(self, user: User) -> Set[str]:
        """
        DSA codes visible to `user`.

        Args:
            user: The viewing user (need not be on the roster)

        Returns:
            Set of non-empty DSA codes
        """
        level = self.get_access_level(user)

        if level == 'full':
            codes = {u.dsa_code for u in self.dsa_users() if u.dsa_code}
        elif level == 'self':
            codes = {user.dsa_code} if user.dsa_code else set()
        else:
            codes = {
                u.dsa_code for u in self.subordinates(user.id)
                if u.role == ROLE_DSA and u.dsa_code
            }

        logger.debug(f"Visible DSA codes for {user.username} ({level}): {len(codes)}")
        return codes

    def visible_dsa_users(self, user: User) -> List[User]:
        """DSA roster entries whose code is visible to `user`."""
        codes = self.visible_dsa_codes(user)
        return [u for u in self.dsa_users() if u.dsa_code and u.dsa_code in codes]

    def subordinates(self, manager_id: str) -> List[User]:
        """
        All direct and indirect reports of `manager_id` (excluding the manager).

        Walks down non-DSA reports only; DSAs are leaves.
        """
        result: List[User] = []
        visited: Set[str] = {manager_id}
        stack = [manager_id]

        while stack:
            current = stack.pop()
            for child in self._children.get(current, []):
                if child.id in visited:
                    logger.error(
                        f"Hierarchy cycle: user {child.id} revisited under {current}; "
                        f"stopping walk at this edge"
                    )
                    continue
                visited.add(child.id)
                result.append(child)
                if child.role != ROLE_DSA:
                    stack.append(child.id)

        return result

    def find_cycles(self) -> List[List[str]]:
        """
        Return every ownership cycle as a list of user ids.

        Each user has at most one parent, so following parent_id from any node
        either reaches a root or enters exactly one loop.
        """
        cycles: List[List[str]] = []
        seen: Set[str] = set()

        for start in self.users:
            path: List[str] = []
            on_path: Dict[str, int] = {}
            node = start
            while node is not None and node.id not in seen:
                if node.id in on_path:
                    cycles.append(path[on_path[node.id]:])
                    break
                on_path[node.id] = len(path)
                path.append(node.id)
                node = self.get_user(node.parent_id)
            seen.update(path)

        if cycles:
            logger.error(f"Roster contains {len(cycles)} hierarchy cycle(s)")
        return cycles

    # =========================================================================
    # TEAM PLACEMENT
    # =========================================================================

    def placement(self, user: User) -> TeamPlacement:
        """
        Current DSS / SM above a DSA.

        DSA -> DSS -> SM, or DSA -> SM directly. Anything else is left blank.
        """
        parent = self.get_user(user.parent_id)
        if parent is None:
            return TeamPlacement()

        if parent.role == ROLE_DSS:
            grand = self.get_user(parent.parent_id)
            if grand is not None and grand.role == ROLE_SM:
                return TeamPlacement(parent.id, parent.name, grand.id, grand.name)
            return TeamPlacement(dss_id=parent.id, dss_name=parent.name)

        if parent.role == ROLE_SM:
            return TeamPlacement(sm_id=parent.id, sm_name=parent.name)

        return TeamPlacement()

    def placements_by_code(self) -> Dict[str, TeamPlacement]:
        """Placement for every DSA with a code, keyed by dsa_code. Cached."""
        if self._placements is None:
            self._placements = {
                u.dsa_code: self.placement(u)
                for u in self.dsa_users()
                if u.dsa_code
            }
        return self._placements

    # =========================================================================
    # TEAM FILTERS
    # =========================================================================

    def manager_name(self, value: str) -> str:
        """Display name for a team filter value (user id, or legacy display name)."""
        manager = self.get_user(value)
        return manager.name if manager else value

    @staticmethod
    def _matches(value: str, manager_id: str, manager_name: str, by_id: bool) -> bool:
        if value == FILTER_ALL:
            return True
        if by_id:
            return manager_id == value
        return manager_name == value

    def placement_matches(self, placement: TeamPlacement, sm_filter: str, dss_filter: str) -> bool:
        """Does a current placement pass the SM / DSS team filters?"""
        return (
            self._matches(sm_filter, placement.sm_id, placement.sm_name, sm_filter in self._by_id)
            and self._matches(dss_filter, placement.dss_id, placement.dss_name, dss_filter in self._by_id)
        )

    def names_match(self, sm_name: str, dss_name: str, sm_filter: str, dss_filter: str) -> bool:
        """Team filters against denormalized (as-reported) names."""
        return (
            (sm_filter == FILTER_ALL or sm_name == self.manager_name(sm_filter))
            and (dss_filter == FILTER_ALL or dss_name == self.manager_name(dss_filter))
        )

    def headcount(self, user: User, sm_filter: str = FILTER_ALL, dss_filter: str = FILTER_ALL) -> int:
        """Visible DSAs on the roster that pass the team filters."""
        return sum(
            1 for u in self.visible_dsa_users(user)
            if self.placement_matches(self.placement(u), sm_filter, dss_filter)
        )

    def team_options(self, user: User) -> Dict[str, Dict[str, str]]:
        """
        SM / DSS choices for the sidebar, limited to teams the user can see.

        Returns:
            {'sm': {id: name}, 'dss': {id: name}}
        """
        options = {'sm': {}, 'dss': {}}
        for u in self.visible_dsa_users(user):
            p = self.placement(u)
            if p.sm_id:
                options['sm'][p.sm_id] = p.sm_name
            if p.dss_id:
                options['dss'][p.dss_id] = p.dss_name
        return options

    def __repr__(self) -> str:
        return f"HierarchyResolver(users={len(self.users)})"


def visible_dsa_codes(user: User, all_users: Iterable[User]) -> Set[str]:
    """Functional form of HierarchyResolver.visible_dsa_codes."""
    return HierarchyResolver(all_users).visible_dsa_codes(user)
