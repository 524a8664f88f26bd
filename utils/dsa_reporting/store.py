# utils/dsa_reporting/store.py
"""
Sales Data Store for DSA Reporting

Owns the in-memory roster and record set for one session and keeps the
local cache and the remote store in step.

Consistency model:
- Reads: cache first; remote fetch when the TTL has expired or on force.
  A fetch replaces cached records inside the fetched range and keeps the rest.
- Writes: optimistic. Memory and cache are updated first, then the remote
  write is attempted. Remote failures are logged and swallowed (no rollback,
  no retry queue). Last writer wins.
- Offline: inferred from errors. While offline, remote writes are skipped
  until the next successful fetch.
"""

import logging
import threading
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from .cache import LocalCacheStore
from .constants import (
    APPROVAL_APPROVED,
    APPROVAL_PENDING,
    APPROVAL_REJECTED,
    CLEANUP_THRESHOLD_DAYS,
    COLLECTION_SALES,
    COLLECTION_USERS,
    PLACEHOLDER_ID_PREFIX,
    ROLE_DSA,
    SALES_CACHE_TTL_SECONDS,
    STATUS_REPORTED,
    USERS_CACHE_TTL_SECONDS,
)
from .exceptions import OfflineError, PermissionDeniedError, SyncError, ValidationError
from .hierarchy import HierarchyResolver
from .models import DateLike, SalesRecord, User, generate_record_id, to_iso_date
from .sync import BatchResult, RemoteSyncClient, Subscription

logger = logging.getLogger(__name__)


class SalesDataStore:
    """
    Usage:
        store = SalesDataStore(RemoteSyncClient(engine), LocalCacheStore(storage))
        store.connect()

        users = store.fetch_users()
        records = store.fetch_records('2024-01-01', '2024-01-31')

        saved = store.submit_report(record, editor=current_user)
        store.approve_record(saved.id, approved=True, approver=manager)
    """

    def __init__(
        self,
        remote: Optional[RemoteSyncClient],
        cache: LocalCacheStore,
        sales_ttl_seconds: int = SALES_CACHE_TTL_SECONDS,
        users_ttl_seconds: int = USERS_CACHE_TTL_SECONDS,
        require_approval_for_dsa_edits: bool = False,
        cleanup_threshold_days: int = CLEANUP_THRESHOLD_DAYS,
    ):
        """
        Args:
            remote: Remote client, or None to run offline
            cache: Local cache
            sales_ttl_seconds, users_ttl_seconds: Fetch TTL gates
            require_approval_for_dsa_edits: DSA edits of an existing report become Pending
            cleanup_threshold_days: Age beyond which records are cleanup candidates
        """
        self.remote = remote
        self.cache = cache
        self.sales_ttl_seconds = sales_ttl_seconds
        self.users_ttl_seconds = users_ttl_seconds
        self.require_approval_for_dsa_edits = require_approval_for_dsa_edits
        self.cleanup_threshold_days = cleanup_threshold_days

        self._lock = threading.RLock()
        self.records: List[SalesRecord] = cache.load_records()
        self.users: List[User] = cache.load_users()
        self.current_user: Optional[User] = cache.load_current_user()

        self.is_online = remote is not None
        self.permission_denied = False
        self.last_error: Optional[str] = None
        self.last_updated: Optional[datetime] = None

        logger.debug(
            f"Store initialised from cache: {len(self.users)} users, {len(self.records)} records"
        )

    # =========================================================================
    # CONNECTION / ERRORS
    # =========================================================================

    def connect(self) -> bool:
        """Connect the remote client. Returns the resulting online state."""
        if self.remote is None:
            self.is_online = False
            logger.info("No remote store configured; running offline")
            return False
        try:
            self.remote.connect()
            self.is_online = True
        except SyncError as e:
            self._handle_sync_error(e, "connect")
        return self.is_online

    def close(self) -> None:
        if self.remote is not None:
            self.remote.close()

    def _handle_sync_error(self, error: SyncError, action: str) -> None:
        self.last_error = str(error)
        if isinstance(error, PermissionDeniedError):
            self.permission_denied = True
            logger.error(f"{action}: permission denied by remote store: {error}")
        elif isinstance(error, OfflineError):
            self.is_online = False
            logger.warning(f"{action}: remote store unreachable, switching to offline mode: {error}")
        else:
            logger.warning(f"{action}: remote write failed: {error}")

    def _remote_write(self, action: str, fn: Callable[[RemoteSyncClient], object]) -> Optional[object]:
        """Run a remote write if online; failures are logged and swallowed."""
        if self.remote is None or not self.is_online:
            logger.debug(f"{action}: offline, kept locally only")
            return None
        try:
            return fn(self.remote)
        except SyncError as e:
            self._handle_sync_error(e, action)
            return None

    def _report_batch(self, action: str, result: Optional[BatchResult]) -> None:
        if result is not None and not result.success:
            self.last_error = result.error
            logger.warning(f"{action}: {result.applied} applied, {result.failed} not applied")

    def _touch(self) -> None:
        self.last_updated = datetime.now()

    # =========================================================================
    # USERS
    # =========================================================================

    def fetch_users(self, force: bool = False) -> List[User]:
        """Roster, refreshed from the remote store when the 24h TTL has expired."""
        if not force and self.users and self.cache.is_fresh('users', self.users_ttl_seconds):
            logger.debug("Users cache hit")
            return self.users

        if self.remote is None:
            return self.users

        try:
            docs = self.remote.list_all(COLLECTION_USERS)
        except SyncError as e:
            self._handle_sync_error(e, "fetch users")
            return self.users

        self.is_online = True
        if not docs:
            logger.info("Remote roster is empty; keeping cached roster")
            return self.users

        with self._lock:
            self.users = [User.from_dict(d) for d in docs]
            self.cache.save_users(self.users)
            self.cache.mark_fetched('users')

            if self.current_user is not None:
                fresh = next((u for u in self.users if u.id == self.current_user.id), None)
                if fresh is not None:
                    self.set_current_user(fresh)

        logger.info(f"Fetched {len(self.users)} users from remote store")
        return self.users

    def set_current_user(self, user: Optional[User]) -> None:
        self.current_user = user
        self.cache.save_current_user(user)

    def find_user(self, username: str) -> Optional[User]:
        username = (username or '').strip()
        return next((u for u in self.users if u.username == username), None)

    def add_users(self, users: Iterable[User]) -> None:
        new_users = list(users)
        with self._lock:
            self.users = self.users + new_users
            self.cache.save_users(self.users)
        result = self._remote_write(
            "add users",
            lambda r: r.batch_upsert(COLLECTION_USERS, [u.to_dict() for u in new_users]),
        )
        self._report_batch("add users", result)

    def update_user(self, user: User) -> None:
        with self._lock:
            self.users = [user if u.id == user.id else u for u in self.users]
            self.cache.save_users(self.users)
            if self.current_user is not None and self.current_user.id == user.id:
                self.set_current_user(user)
        self._remote_write("update user", lambda r: r.upsert(COLLECTION_USERS, user.to_dict()))

    def delete_user(self, user_id: str) -> None:
        with self._lock:
            self.users = [u for u in self.users if u.id != user_id]
            self.cache.save_users(self.users)
        self._remote_write("delete user", lambda r: r.delete(COLLECTION_USERS, user_id))

    def bulk_delete_users(self, user_ids: Iterable[str]) -> None:
        ids = list(user_ids)
        drop = set(ids)
        with self._lock:
            self.users = [u for u in self.users if u.id not in drop]
            self.cache.save_users(self.users)
        result = self._remote_write("bulk delete users", lambda r: r.batch_delete(COLLECTION_USERS, ids))
        self._report_batch("bulk delete users", result)

    # =========================================================================
    # RECORDS: READ
    # =========================================================================

    def fetch_records(self, start_date: DateLike, end_date: DateLike, force: bool = False) -> List[SalesRecord]:
        """
        Every known record after refreshing [start, end] when the 5 min TTL
        has expired (or on force). Returns the cached set when offline.
        """
        if not force and self.records and self.cache.is_fresh('sales', self.sales_ttl_seconds):
            logger.debug("Sales cache hit")
            return self.records

        if self.remote is None:
            self.is_online = False
            return self.records

        try:
            docs = self.remote.query_range(start_date, end_date)
        except SyncError as e:
            self._handle_sync_error(e, "fetch records")
            return self.records

        self.is_online = True
        self.permission_denied = False
        self.merge_range(start_date, end_date, [SalesRecord.from_dict(d) for d in docs])
        self.cache.mark_fetched('sales')
        logger.info(f"Fetched {len(docs)} sales records from remote store")
        return self.records

    def merge_range(self, start_date: DateLike, end_date: DateLike, fetched: List[SalesRecord]) -> None:
        """Replace records inside [start, end] with `fetched`; keep the rest."""
        start, end = to_iso_date(start_date), to_iso_date(end_date)
        with self._lock:
            kept = [r for r in self.records if r.report_date < start or r.report_date > end]
            self.records = kept + list(fetched)
            self.cache.save_records(self.records)
            self._touch()

    def get_record(self, record_id: str) -> Optional[SalesRecord]:
        return next((r for r in self.records if r.id == record_id), None)

    def find_by_natural_key(self, dsa_code: str, report_date: DateLike) -> Optional[SalesRecord]:
        key = (dsa_code, to_iso_date(report_date))
        return next(
            (r for r in self.records if r.natural_key == key and not r.is_placeholder),
            None,
        )

    def subscribe(
        self,
        start_date: DateLike,
        end_date: DateLike,
        on_change: Optional[Callable[[List[SalesRecord]], None]] = None,
    ) -> Optional[Subscription]:
        """Live range subscription that merges each snapshot into the store."""
        if self.remote is None or not self.is_online:
            return None

        def apply(fetched: List[SalesRecord]) -> None:
            self.merge_range(start_date, end_date, fetched)
            self.cache.mark_fetched('sales')
            if on_change is not None:
                on_change(self.records)

        def failed(error: SyncError) -> None:
            self._handle_sync_error(error, "subscription")

        return self.remote.subscribe(start_date, end_date, apply, on_error=failed)

    # =========================================================================
    # RECORDS: WRITE
    # =========================================================================

    def save_record(self, record: SalesRecord) -> SalesRecord:
        """
        Upsert one record. A placeholder id is replaced with a fresh id, and
        a natural-key collision reuses the existing report's id.
        """
        if not record.dsa_code or not record.report_date:
            raise ValidationError("A report needs a DSA code and a report date")

        if record.is_placeholder or not record.id:
            record = record.copy(id=generate_record_id())

        # Lookup and write under one lock; merge_range runs on the subscription thread
        with self._lock:
            existing = self.find_by_natural_key(record.dsa_code, record.report_date)
            if existing is not None and existing.id != record.id:
                logger.info(
                    f"Report for {record.dsa_code} on {record.report_date} exists; "
                    f"overwriting {existing.id}"
                )
                record = record.copy(id=existing.id)

            for i, r in enumerate(self.records):
                if r.id == record.id:
                    self.records[i] = record
                    break
            else:
                self.records.insert(0, record)
            self.cache.save_records(self.records)
            self._touch()

        self._remote_write("save record", lambda r: r.upsert(COLLECTION_SALES, record.to_dict()))
        return record

    def approval_for(self, editor: User, is_edit: bool) -> str:
        """Approval status a submission gets from `editor`."""
        if is_edit and editor.role == ROLE_DSA and self.require_approval_for_dsa_edits:
            return APPROVAL_PENDING
        return APPROVAL_APPROVED

    def submit_report(self, record: SalesRecord, editor: User) -> SalesRecord:
        """Save a report from the entry form, applying the approval policy."""
        if editor.role == ROLE_DSA and editor.dsa_code and record.dsa_code != editor.dsa_code:
            raise ValidationError("A DSA can only report for their own code")

        is_edit = (
            (not record.is_placeholder and self.get_record(record.id) is not None)
            or self.find_by_natural_key(record.dsa_code, record.report_date) is not None
        )
        return self.save_record(record.copy(
            status=STATUS_REPORTED,
            approval_status=self.approval_for(editor, is_edit),
        ))

    def approve_record(self, record_id: str, approved: bool, approver: User) -> SalesRecord:
        """Approve or reject a Pending report."""
        if approver.role == ROLE_DSA:
            raise ValidationError("DSA users cannot approve reports")

        record = self.get_record(record_id)
        if record is None:
            raise ValidationError(f"Report {record_id} not found")
        if not record.is_pending:
            raise ValidationError(f"Report {record_id} is not pending approval")

        resolver = HierarchyResolver(self.users)
        if record.dsa_code not in resolver.visible_dsa_codes(approver):
            raise ValidationError(f"Report {record_id} is outside {approver.username}'s team")

        return self.save_record(record.copy(
            approval_status=APPROVAL_APPROVED if approved else APPROVAL_REJECTED,
        ))

    def delete_record(self, record_id: str) -> None:
        """Delete one record. Placeholder ids are ignored."""
        if not record_id or record_id.startswith(PLACEHOLDER_ID_PREFIX):
            return
        with self._lock:
            self.records = [r for r in self.records if r.id != record_id]
            self.cache.save_records(self.records)
            self._touch()
        self._remote_write("delete record", lambda r: r.delete(COLLECTION_SALES, record_id))

    def bulk_delete_records(self, record_ids: Iterable[str]) -> int:
        ids = [i for i in record_ids if i and not i.startswith(PLACEHOLDER_ID_PREFIX)]
        drop = set(ids)
        with self._lock:
            before = len(self.records)
            self.records = [r for r in self.records if r.id not in drop]
            removed = before - len(self.records)
            self.cache.save_records(self.records)
            self._touch()
        result = self._remote_write(
            "bulk delete records", lambda r: r.batch_delete(COLLECTION_SALES, ids)
        )
        self._report_batch("bulk delete records", result)
        return removed

    def import_records(self, records: Iterable[SalesRecord]) -> int:
        """Merge records by id (restore). Returns the number merged."""
        incoming: Dict[str, SalesRecord] = {r.id: r for r in records if not r.is_placeholder}
        if not incoming:
            return 0
        docs = [r.to_dict() for r in incoming.values()]

        with self._lock:
            pending = dict(incoming)
            merged = [pending.pop(r.id, r) for r in self.records]
            self.records = merged + list(pending.values())
            self.cache.save_records(self.records)
            self._touch()

        result = self._remote_write(
            "import records", lambda r: r.batch_upsert(COLLECTION_SALES, docs)
        )
        self._report_batch("import records", result)
        logger.info(f"Imported {len(docs)} record(s)")
        return len(docs)

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def cleanup_candidates(self, today: Optional[date] = None) -> List[SalesRecord]:
        """Records older than cleanup_threshold_days."""
        today = today or date.today()
        cutoff = (today - timedelta(days=self.cleanup_threshold_days)).isoformat()
        return [r for r in self.records if r.report_date < cutoff and not r.is_placeholder]

    def cleanup_old_records(self, today: Optional[date] = None) -> int:
        candidates = self.cleanup_candidates(today)
        if not candidates:
            return 0
        removed = self.bulk_delete_records(r.id for r in candidates)
        logger.info(f"Cleaned up {removed} record(s) older than {self.cleanup_threshold_days} days")
        return removed

    def hard_reset(self) -> None:
        """Forget every cached record, roster entry and timestamp."""
        with self._lock:
            self.cache.hard_reset()
            self.records = []
            self.users = []
            self.current_user = None
            self.last_updated = None
