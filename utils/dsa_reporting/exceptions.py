# utils/dsa_reporting/exceptions.py
"""
Error taxonomy for DSA reporting.

Remote failures collapse into offline / permission denied / unknown;
bad input raises ValidationError with a message safe to show users.
"""


class ReportingError(Exception):
    """Base class for all DSA reporting errors."""


class SyncError(ReportingError):
    """Remote store failure that does not fit a more specific category."""


class OfflineError(SyncError):
    """Remote store is unreachable (network, auth handshake, quota)."""


class PermissionDeniedError(SyncError):
    """Remote store refused the operation."""


class ValidationError(ReportingError, ValueError):
    """Input rejected before it reached any store."""


class HierarchyCycleError(ValidationError):
    """Ownership edges loop back on themselves."""

    def __init__(self, user_ids):
        self.user_ids = list(user_ids)
        super().__init__(
            f"Hierarchy cycle detected through users: {', '.join(self.user_ids)}"
        )
