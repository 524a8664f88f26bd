# utils/dsa_reporting/session.py
"""
Per-session wiring of the data store for Streamlit pages.

The store lives in st.session_state so the roster and records survive
reruns; the local cache directory is shared by the process.
"""

import logging

import streamlit as st

from utils.config import config
from utils.db import get_db_engine

from .cache import JsonFileStorage, LocalCacheStore
from .dashboard import DashboardFilters, DashboardView
from .models import User
from .store import SalesDataStore
from .sync import RemoteSyncClient

logger = logging.getLogger(__name__)

STORE_SESSION_KEY = 'dsa_store'


def build_data_store() -> SalesDataStore:
    """Store wired from config: remote client when a database is configured, file cache always."""
    engine = get_db_engine()
    remote = None
    if engine is not None:
        remote = RemoteSyncClient(engine, batch_size=config.get_app_setting("WRITE_BATCH_SIZE", 500))

    cache = LocalCacheStore(JsonFileStorage(config.get_app_setting("CACHE_DIR", ".dsa_cache")))
    store = SalesDataStore(
        remote,
        cache,
        sales_ttl_seconds=config.get_app_setting("SALES_CACHE_TTL_SECONDS", 300),
        users_ttl_seconds=config.get_app_setting("USERS_CACHE_TTL_SECONDS", 86400),
        require_approval_for_dsa_edits=config.is_feature_enabled("REQUIRE_APPROVAL_FOR_DSA_EDITS"),
        cleanup_threshold_days=config.get_app_setting("CLEANUP_THRESHOLD_DAYS", 60),
    )
    store.connect()
    return store


def get_data_store() -> SalesDataStore:
    if STORE_SESSION_KEY not in st.session_state:
        st.session_state[STORE_SESSION_KEY] = build_data_store()
    return st.session_state[STORE_SESSION_KEY]


def build_dashboard_view(store: SalesDataStore, user: User, filters: DashboardFilters) -> DashboardView:
    return DashboardView(
        store.records,
        store.users,
        user,
        filters,
        reproject_hierarchy=config.is_feature_enabled("REPROJECT_HIERARCHY"),
        max_span_days=config.get_app_setting("PLACEHOLDER_MAX_SPAN_DAYS", 31),
    )


def render_connection_status(store: SalesDataStore):
    """Sidebar badge for online / offline / permission state."""
    with st.sidebar:
        if store.permission_denied:
            st.error("🔒 The server refused access. Please refresh or log in again.")
        elif store.is_online:
            st.caption("🟢 Online")
        else:
            st.caption("🟠 Offline: showing cached data; changes are saved locally")
        if store.last_updated is not None:
            st.caption(f"Updated {store.last_updated.strftime('%H:%M:%S')}")
