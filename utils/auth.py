# utils/auth.py
"""
Authentication Manager for Streamlit Apps

Features:
- SHA256 password hashing with per-user salt
- Users without a stored hash fall back to the shared DEFAULT_PASSWORD
- Role-based access control (DSA / DSS / SM / RSM / ADMIN)
- Session management with timeout
"""

import streamlit as st
import hashlib
import secrets
from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional, Tuple, List
from dataclasses import replace
import logging

from .config import config
from .dsa_reporting.models import User

logger = logging.getLogger(__name__)


class AuthManager:
    """Authentication manager for Streamlit apps"""

    def __init__(self):
        self.session_timeout = timedelta(
            hours=config.get_app_setting("SESSION_TIMEOUT_HOURS", 8)
        )
        self.default_password = config.get_app_setting("DEFAULT_PASSWORD", "123")

    # ==================== PASSWORD HASHING ====================

    def hash_password(self, password: str, salt: str = None) -> Tuple[str, str]:
        """
        Hash password with SHA256 + salt

        Args:
            password: Plain text password
            salt: Optional salt (generated if not provided)

        Returns:
            Tuple of (hash, salt)
        """
        if not salt:
            salt = secrets.token_hex(32)

        pwd_hash = hashlib.sha256((password + salt).encode()).hexdigest()
        return pwd_hash, salt

    def verify_password(self, password: str, stored_hash: str, salt: str) -> bool:
        pwd_hash, _ = self.hash_password(password, salt)
        return secrets.compare_digest(pwd_hash, stored_hash)

    def set_password(self, user: User, password: str) -> User:
        """Copy of `user` carrying a fresh hash/salt for `password`."""
        pwd_hash, salt = self.hash_password(password)
        return replace(user, password_hash=pwd_hash, password_salt=salt)

    # ==================== AUTHENTICATION ====================

    def authenticate(self, username: str, password: str, users: Iterable[User]) -> Tuple[bool, Optional[Dict]]:
        """
        Authenticate against the roster

        Args:
            username: User's username (surrounding whitespace ignored)
            password: Plain text password
            users: Current roster

        Returns:
            Tuple of (success: bool, user_info: dict or error: dict)
        """
        username = (username or '').strip()
        user = next((u for u in users if u.username == username), None)

        if user is None:
            logger.warning(f"Login attempt for non-existent user: {username}")
            return False, {"error": "Invalid username or password"}

        if user.password_hash and user.password_salt:
            valid = self.verify_password(password, user.password_hash, user.password_salt)
        else:
            valid = password == self.default_password

        if not valid:
            logger.warning(f"Invalid password for user: {username}")
            return False, {"error": "Invalid username or password"}

        logger.info(f"User {username} authenticated successfully")
        return True, {
            'user': user,
            'login_time': datetime.now()
        }

    # ==================== SESSION MANAGEMENT ====================

    def check_session(self) -> bool:
        """Check if user session is valid and not expired"""
        if not st.session_state.get('authenticated'):
            return False

        login_time = st.session_state.get('login_time')
        if login_time:
            elapsed = datetime.now() - login_time
            if elapsed > self.session_timeout:
                logger.info(f"Session expired for user: {st.session_state.get('username')}")
                self.logout()
                return False

        return True

    def login(self, user_info: Dict):
        """Initialize user session after successful authentication"""
        user: User = user_info['user']
        st.session_state.authenticated = True
        st.session_state.current_user = user
        st.session_state.user_id = user.id
        st.session_state.username = user.username
        st.session_state.user_role = user.role
        st.session_state.user_fullname = user.name
        st.session_state.login_time = user_info['login_time']
        st.session_state.debug_mode = config.is_feature_enabled("DEBUG_MODE")

        logger.info(f"User {user.username} ({user.role}) logged in successfully")

    def refresh_user(self, user: User):
        """Keep the session copy in step after a profile or roster change"""
        if st.session_state.get('user_id') == user.id:
            st.session_state.current_user = user
            st.session_state.user_role = user.role
            st.session_state.user_fullname = user.name

    def logout(self):
        """Clear user session"""
        username = st.session_state.get('username', 'Unknown')

        auth_keys = [
            'authenticated', 'current_user', 'user_id', 'username',
            'user_role', 'user_fullname', 'login_time', 'debug_mode'
        ]
        for key in auth_keys:
            if key in st.session_state:
                del st.session_state[key]

        st.cache_data.clear()

        logger.info(f"User {username} logged out")

    # ==================== ACCESS CONTROL ====================

    def require_auth(self) -> bool:
        """
        Require authentication to access a page
        Use at the beginning of each protected page
        """
        if not self.check_session():
            st.warning("⚠️ Please login to access this page")
            st.stop()
            return False
        return True

    def require_role(self, allowed_roles: List[str]) -> bool:
        """
        Require specific role(s) to access a page

        Usage:
            auth.require_role(['ADMIN', 'SM'])
        """
        if not self.require_auth():
            return False

        current_role = st.session_state.get('user_role', '')

        if current_role not in allowed_roles:
            st.error(f"🚫 Access denied. Required role: {', '.join(allowed_roles)}")
            st.stop()
            return False

        return True

    def has_role(self, role: str) -> bool:
        return st.session_state.get('user_role', '') == role

    def is_admin(self) -> bool:
        return self.has_role('ADMIN')

    # ==================== USER INFO HELPERS ====================

    def get_user_display_name(self) -> str:
        if st.session_state.get('user_fullname'):
            return st.session_state.user_fullname
        return st.session_state.get('username', 'User')

    def get_current_user(self) -> Optional[User]:
        return st.session_state.get('current_user')


# ==================== MODULE EXPORTS ====================

__all__ = [
    'AuthManager',
]
