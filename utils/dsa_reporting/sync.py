# utils/dsa_reporting/sync.py
"""
Remote Sync Client for DSA Reporting

Document-style access to the authoritative store through SQLAlchemy.
Each collection is a table holding the document id and its JSON payload;
`sales_records` also carries indexed report_date / dsa_code columns for
range queries.

Failures surface as the ReportingError taxonomy:
- OperationalError / InterfaceError -> OfflineError
- "denied" / "permission" in the driver message -> PermissionDeniedError
- anything else -> SyncError

The engine is injected; nothing connects at import time.
"""

import json
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import Column, Index, MetaData, String, Table, Text, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError

from .constants import (
    COLLECTION_SALES,
    COLLECTION_USERS,
    SUBSCRIPTION_POLL_SECONDS,
    WRITE_BATCH_SIZE,
)
from .exceptions import OfflineError, PermissionDeniedError, SyncError
from .models import DateLike, SalesRecord, to_iso_date

logger = logging.getLogger(__name__)

# =============================================================================
# SCHEMA
# =============================================================================

metadata = MetaData()

users_table = Table(
    COLLECTION_USERS, metadata,
    Column('id', String(64), primary_key=True),
    Column('payload', Text, nullable=False),
)

sales_records_table = Table(
    COLLECTION_SALES, metadata,
    Column('id', String(64), primary_key=True),
    Column('report_date', String(10), nullable=False),
    Column('dsa_code', String(64), nullable=False),
    Column('payload', Text, nullable=False),
    Index('ix_sales_records_report_date', 'report_date'),
    Index('ix_sales_records_dsa_code', 'dsa_code'),
)

COLLECTIONS = (COLLECTION_USERS, COLLECTION_SALES)


@dataclass
class BatchResult:
    """Outcome of a chunked batch write."""
    success: bool
    applied: int = 0
    failed: int = 0
    error: Optional[str] = None


def _strip_none(doc: Dict) -> Dict:
    return {k: v for k, v in doc.items() if v is not None}


def _chunks(items: Sequence, size: int) -> Iterable[Sequence]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


class RemoteSyncClient:
    """
    Usage:
        client = RemoteSyncClient(get_db_engine())
        client.connect()

        docs = client.query_range('2024-01-01', '2024-01-31')
        client.upsert('sales_records', record.to_dict())
        result = client.batch_delete('sales_records', ids)

        sub = client.subscribe('2024-01-01', '2024-01-31', on_change)
        sub.start()
        ...
        client.close()
    """

    def __init__(self, engine: Optional[Engine] = None, batch_size: int = WRITE_BATCH_SIZE):
        self.engine = engine
        self.batch_size = batch_size
        self._connected = False
        self._subscriptions: List['Subscription'] = []

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def is_connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        """Verify the engine and create the document tables if missing."""
        if self.engine is None:
            raise OfflineError("No database configured")
        with self._translated("connect"):
            metadata.create_all(self.engine, checkfirst=True)
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        self._connected = True
        logger.info("Remote store connected")

    def close(self) -> None:
        """Stop subscriptions. The engine itself belongs to the caller."""
        for sub in list(self._subscriptions):
            sub.cancel()
        self._subscriptions.clear()
        self._connected = False

    # =========================================================================
    # ERROR TRANSLATION
    # =========================================================================

    @staticmethod
    def _translate_error(error: Exception, action: str) -> SyncError:
        message = str(error)
        lowered = message.lower()
        if 'denied' in lowered or 'permission' in lowered:
            return PermissionDeniedError(f"{action}: {message}")
        if isinstance(error, (OperationalError, InterfaceError)):
            return OfflineError(f"{action}: {message}")
        return SyncError(f"{action}: {message}")

    @contextmanager
    def _translated(self, action: str):
        try:
            yield
        except SQLAlchemyError as e:
            raise self._translate_error(e, action) from e

    def _require_engine(self) -> Engine:
        if self.engine is None:
            raise OfflineError("No database configured")
        return self.engine

    @staticmethod
    def _check_collection(collection: str) -> None:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")

    @staticmethod
    def _row_params(collection: str, doc: Dict) -> Dict:
        doc = _strip_none(doc)
        params = {
            'id': str(doc['id']),
            'payload': json.dumps(doc, ensure_ascii=False),
        }
        if collection == COLLECTION_SALES:
            params['report_date'] = to_iso_date(doc.get('reportDate') or '')
            params['dsa_code'] = str(doc.get('dsaCode') or '')
        return params

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, collection: str, doc_id: str) -> Optional[Dict]:
        self._check_collection(collection)
        engine = self._require_engine()
        with self._translated(f"get {collection}/{doc_id}"):
            with engine.connect() as conn:
                row = conn.execute(
                    text(f"SELECT payload FROM {collection} WHERE id = :id"),
                    {'id': doc_id},
                ).fetchone()
        return json.loads(row[0]) if row else None

    def list_all(self, collection: str) -> List[Dict]:
        self._check_collection(collection)
        engine = self._require_engine()
        with self._translated(f"list {collection}"):
            with engine.connect() as conn:
                rows = conn.execute(text(f"SELECT payload FROM {collection}")).fetchall()
        return [json.loads(row[0]) for row in rows]

    def query_range(self, start_date: DateLike, end_date: DateLike) -> List[Dict]:
        """Sales documents with start <= reportDate <= end."""
        engine = self._require_engine()
        params = {'start': to_iso_date(start_date), 'end': to_iso_date(end_date)}
        with self._translated("query sales_records"):
            with engine.connect() as conn:
                rows = conn.execute(
                    text(
                        f"SELECT payload FROM {COLLECTION_SALES} "
                        "WHERE report_date >= :start AND report_date <= :end"
                    ),
                    params,
                ).fetchall()
        logger.debug(f"Fetched {len(rows)} sales documents for {params['start']}..{params['end']}")
        return [json.loads(row[0]) for row in rows]

    # =========================================================================
    # WRITES
    # =========================================================================

    def _write_chunk(self, conn, collection: str, docs: Sequence[Dict]) -> None:
        rows = [self._row_params(collection, d) for d in docs]
        conn.execute(
            text(f"DELETE FROM {collection} WHERE id = :id"),
            [{'id': r['id']} for r in rows],
        )
        columns = list(rows[0].keys())
        conn.execute(
            text(
                f"INSERT INTO {collection} ({', '.join(columns)}) "
                f"VALUES ({', '.join(':' + c for c in columns)})"
            ),
            rows,
        )

    def upsert(self, collection: str, doc: Dict) -> None:
        """Full-document replace by id."""
        self._check_collection(collection)
        engine = self._require_engine()
        with self._translated(f"upsert {collection}/{doc.get('id')}"):
            with engine.begin() as conn:
                self._write_chunk(conn, collection, [doc])

    def delete(self, collection: str, doc_id: str) -> None:
        self._check_collection(collection)
        engine = self._require_engine()
        with self._translated(f"delete {collection}/{doc_id}"):
            with engine.begin() as conn:
                conn.execute(text(f"DELETE FROM {collection} WHERE id = :id"), {'id': doc_id})

    def batch_upsert(self, collection: str, docs: Sequence[Dict]) -> BatchResult:
        """Upsert in chunks of batch_size, one transaction per chunk."""
        self._check_collection(collection)
        return self._run_batches(
            f"batch upsert {collection}", list(docs),
            lambda conn, chunk: self._write_chunk(conn, collection, chunk),
        )

    def batch_delete(self, collection: str, doc_ids: Sequence[str]) -> BatchResult:
        """Delete in chunks of batch_size, one transaction per chunk."""
        self._check_collection(collection)
        return self._run_batches(
            f"batch delete {collection}", list(doc_ids),
            lambda conn, chunk: conn.execute(
                text(f"DELETE FROM {collection} WHERE id = :id"),
                [{'id': i} for i in chunk],
            ),
        )

    def _run_batches(self, action: str, items: List, apply: Callable) -> BatchResult:
        """
        Apply chunks sequentially. A failure stops the run; earlier chunks
        stay committed.
        """
        if not items:
            return BatchResult(success=True)

        engine = self._require_engine()
        applied = 0
        for chunk in _chunks(items, self.batch_size):
            try:
                with self._translated(action):
                    with engine.begin() as conn:
                        apply(conn, chunk)
            except SyncError as e:
                logger.error(f"{action} failed after {applied} of {len(items)} item(s): {e}")
                return BatchResult(
                    success=False,
                    applied=applied,
                    failed=len(items) - applied,
                    error=str(e),
                )
            applied += len(chunk)

        logger.info(f"{action}: {applied} item(s) in {-(-applied // self.batch_size)} chunk(s)")
        return BatchResult(success=True, applied=applied)

    # =========================================================================
    # SUBSCRIPTION
    # =========================================================================

    def subscribe(
        self,
        start_date: DateLike,
        end_date: DateLike,
        callback: Callable[[List[SalesRecord]], None],
        interval: float = SUBSCRIPTION_POLL_SECONDS,
        on_error: Optional[Callable[[SyncError], None]] = None,
    ) -> 'Subscription':
        """Create a polling subscription on a date range (not started)."""
        sub = Subscription(self, start_date, end_date, callback, interval, on_error)
        self._subscriptions.append(sub)
        return sub


class Subscription:
    """
    Polls a date range and calls back with the full record list whenever
    the result set changes. The first successful poll always calls back.

    Runs on a daemon thread after start(); poll() can be called directly.
    """

    def __init__(
        self,
        client: RemoteSyncClient,
        start_date: DateLike,
        end_date: DateLike,
        callback: Callable[[List[SalesRecord]], None],
        interval: float = SUBSCRIPTION_POLL_SECONDS,
        on_error: Optional[Callable[[SyncError], None]] = None,
    ):
        self.client = client
        self.start_date = to_iso_date(start_date)
        self.end_date = to_iso_date(end_date)
        self.callback = callback
        self.interval = interval
        self.on_error = on_error
        self._fingerprint: Optional[frozenset] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def active(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def poll(self) -> bool:
        """Fetch once; returns True when the callback fired."""
        docs = self.client.query_range(self.start_date, self.end_date)
        fingerprint = frozenset(json.dumps(d, sort_keys=True) for d in docs)
        if fingerprint == self._fingerprint:
            return False
        self._fingerprint = fingerprint
        self.callback([SalesRecord.from_dict(d) for d in docs])
        return True

    def _poll_safely(self) -> None:
        try:
            self.poll()
        except SyncError as e:
            logger.warning(f"Subscription poll failed: {e}")
            if self.on_error is not None:
                self.on_error(e)

    def _run(self) -> None:
        self._poll_safely()
        while not self._stop.wait(self.interval):
            self._poll_safely()

    def start(self) -> 'Subscription':
        if self.active:
            return self
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run,
            name=f"sales-subscription-{self.start_date}-{self.end_date}",
            daemon=True,
        )
        self._thread.start()
        return self

    def cancel(self) -> None:
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.interval + 1)
        self._thread = None
