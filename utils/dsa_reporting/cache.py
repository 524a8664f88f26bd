# utils/dsa_reporting/cache.py
"""
Local Cache Store for DSA Reporting

Non-authoritative mirror of the last-known roster and record set, used as
the first paint source and the offline fallback. Values are JSON blobs in
a string-keyed store:

    app_users      -> [User documents]
    sales_records  -> [SalesRecord documents]
    currentUser    -> User document of the logged-in user
    ts_users       -> last successful users fetch (epoch ms)
    ts_sales       -> last successful records fetch (epoch ms)
    pref:<name>    -> UI preferences (dates, filters, view mode)

Lifetime: until the next successful sync or an explicit hard_reset().
"""

import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Callable, Iterator, List, MutableMapping, Optional, Union
from urllib.parse import quote, unquote

from .constants import (
    CACHE_KEY_CURRENT_USER,
    CACHE_KEY_RECORDS,
    CACHE_KEY_TS_SALES,
    CACHE_KEY_TS_USERS,
    CACHE_KEY_USERS,
    CACHE_PREF_PREFIX,
)
from .models import SalesRecord, User

logger = logging.getLogger(__name__)

_TS_KEYS = {
    'users': CACHE_KEY_TS_USERS,
    'sales': CACHE_KEY_TS_SALES,
}


class JsonFileStorage(MutableMapping):
    """One file per key under `directory`. Writes are atomic (tmp + replace)."""

    SUFFIX = '.json'

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}{self.SUFFIX}"

    def __getitem__(self, key: str) -> str:
        path = self._path(key)
        try:
            return path.read_text(encoding='utf-8')
        except FileNotFoundError:
            raise KeyError(key) from None

    def __setitem__(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp = path.with_suffix(path.suffix + '.tmp')
        tmp.write_text(value, encoding='utf-8')
        os.replace(tmp, path)

    def __delitem__(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            raise KeyError(key) from None

    def __iter__(self) -> Iterator[str]:
        for path in self.directory.glob(f'*{self.SUFFIX}'):
            yield unquote(path.name[:-len(self.SUFFIX)])

    def __len__(self) -> int:
        return sum(1 for _ in self.directory.glob(f'*{self.SUFFIX}'))


class LocalCacheStore:
    """
    Typed access to the local cache.

    Usage:
        cache = LocalCacheStore(JsonFileStorage('.cache'))
        users = cache.load_users()
        if not cache.is_fresh('sales', ttl_seconds=300):
            ...
        cache.save_records(records)
        cache.mark_fetched('sales')
    """

    def __init__(
        self,
        storage: Optional[MutableMapping] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            storage: String-keyed mapping (dict for tests, JsonFileStorage on disk)
            clock: Seconds since epoch; injectable for TTL tests
        """
        self.storage = storage if storage is not None else {}
        self.clock = clock

    # =========================================================================
    # RAW JSON
    # =========================================================================

    def _read_json(self, key: str, default: Any = None) -> Any:
        raw = self.storage.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (TypeError, json.JSONDecodeError) as e:
            logger.warning(f"Discarding unreadable cache entry '{key}': {e}")
            return default

    def _write_json(self, key: str, value: Any) -> None:
        self.storage[key] = json.dumps(value, ensure_ascii=False)

    # =========================================================================
    # USERS / RECORDS
    # =========================================================================

    def load_users(self) -> List[User]:
        return [User.from_dict(d) for d in self._read_json(CACHE_KEY_USERS, []) if isinstance(d, dict)]

    def save_users(self, users: List[User]) -> None:
        self._write_json(CACHE_KEY_USERS, [u.to_dict() for u in users])

    def load_records(self) -> List[SalesRecord]:
        return [
            SalesRecord.from_dict(d)
            for d in self._read_json(CACHE_KEY_RECORDS, [])
            if isinstance(d, dict)
        ]

    def save_records(self, records: List[SalesRecord]) -> None:
        self._write_json(CACHE_KEY_RECORDS, [r.to_dict() for r in records])

    def load_current_user(self) -> Optional[User]:
        data = self._read_json(CACHE_KEY_CURRENT_USER)
        return User.from_dict(data) if isinstance(data, dict) else None

    def save_current_user(self, user: Optional[User]) -> None:
        if user is None:
            self.storage.pop(CACHE_KEY_CURRENT_USER, None)
        else:
            self._write_json(CACHE_KEY_CURRENT_USER, user.to_dict())

    # =========================================================================
    # STALENESS
    # =========================================================================

    def last_fetched(self, kind: str) -> float:
        """Epoch seconds of the last successful fetch of 'users' or 'sales' (0 if never)."""
        raw = self.storage.get(_TS_KEYS[kind])
        try:
            return int(raw) / 1000 if raw else 0.0
        except ValueError:
            return 0.0

    def mark_fetched(self, kind: str, at: Optional[float] = None) -> None:
        at = self.clock() if at is None else at
        self.storage[_TS_KEYS[kind]] = str(int(at * 1000))

    def is_fresh(self, kind: str, ttl_seconds: float) -> bool:
        """True when the last fetch is within the TTL window."""
        return self.clock() - self.last_fetched(kind) < ttl_seconds

    # =========================================================================
    # PREFERENCES
    # =========================================================================

    def get_preference(self, name: str, default: Any = None) -> Any:
        return self._read_json(f"{CACHE_PREF_PREFIX}{name}", default)

    def set_preference(self, name: str, value: Any) -> None:
        self._write_json(f"{CACHE_PREF_PREFIX}{name}", value)

    # =========================================================================
    # RESET
    # =========================================================================

    def hard_reset(self, keep_preferences: bool = False) -> None:
        """Drop every cached entry (optionally keeping UI preferences)."""
        for key in list(self.storage.keys()):
            if keep_preferences and key.startswith(CACHE_PREF_PREFIX):
                continue
            del self.storage[key]
        logger.info("Local cache cleared")
