# app.py
"""
DSA Sales Reporting - Main Entry Point

Version: 1.0.0
"""

import streamlit as st
from utils.auth import AuthManager
from utils.config import LOG_FORMAT
from utils.dsa_reporting.constants import ROLE_ADMIN, ROLE_DSA, ROLE_DSS, ROLE_RSM, ROLE_SM
from utils.dsa_reporting.session import get_data_store, render_connection_status
import logging

# Configure logging
logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
logger = logging.getLogger(__name__)

# ==================== PAGE CONFIGURATION ====================

APP_NAME = "DSA Sales Reporting"
APP_ICON = "📊"
APP_VERSION = "1.0.0"

st.set_page_config(
    page_title=APP_NAME,
    page_icon=APP_ICON,
    layout="wide",
    initial_sidebar_state="expanded"
)

# ==================== CUSTOM CSS ====================

st.markdown("""
<style>
    .main-header {
        font-size: 2.5rem;
        font-weight: bold;
        margin-bottom: 0.5rem;
        color: #047857;
    }

    .sub-header {
        font-size: 1.1rem;
        color: #666;
        margin-bottom: 2rem;
    }

    .welcome-box {
        background: linear-gradient(135deg, #047857 0%, #10b981 100%);
        color: white;
        padding: 2rem;
        border-radius: 0.75rem;
        margin-bottom: 2rem;
    }

    .welcome-title {
        font-size: 1.75rem;
        font-weight: 600;
        margin-bottom: 0.5rem;
    }

    .welcome-subtitle {
        opacity: 0.9;
        font-size: 1rem;
    }

    .info-card {
        background: #f8f9fa;
        padding: 1.5rem;
        border-radius: 0.5rem;
        border-left: 4px solid #047857;
        margin-bottom: 1rem;
    }

    .footer {
        text-align: center;
        color: #888;
        padding: 1rem;
        margin-top: 3rem;
        border-top: 1px solid #eee;
        font-size: 0.9rem;
    }
</style>
""", unsafe_allow_html=True)

# ==================== INITIALIZATION ====================

auth = AuthManager()
store = get_data_store()

# ==================== HELPER FUNCTIONS ====================

def show_login_page():
    """Display the login page"""
    st.markdown(f'<p class="main-header">{APP_ICON} {APP_NAME}</p>', unsafe_allow_html=True)
    st.markdown('<p class="sub-header">Daily sales reporting for DSA teams</p>', unsafe_allow_html=True)

    users = store.fetch_users()
    if not store.is_online:
        st.warning("⚠️ Working offline. Signing in with the cached roster.")
    if not users:
        st.error("⚠️ No user roster available yet.")
        st.info("Connect to the database once so the roster can be downloaded.")
        return

    # Center the login form
    col1, col2, col3 = st.columns([1, 2, 1])

    with col2:
        with st.form("login_form", clear_on_submit=False):
            st.markdown("#### 🔐 Login")

            username = st.text_input(
                "Username",
                placeholder="Enter your username",
                key="login_username"
            )
            password = st.text_input(
                "Password",
                type="password",
                placeholder="Enter your password",
                key="login_password"
            )

            col_btn1, col_btn2 = st.columns(2)
            with col_btn1:
                submit = st.form_submit_button(
                    "🔑 Login",
                    type="primary",
                    use_container_width=True
                )
            with col_btn2:
                st.form_submit_button(
                    "🔄 Clear",
                    use_container_width=True
                )

            if submit:
                if not username or not password:
                    st.warning("Please enter both username and password")
                else:
                    with st.spinner("Authenticating..."):
                        success, result = auth.authenticate(username, password, users)

                    if success:
                        auth.login(result)
                        store.set_current_user(result['user'])
                        st.success("✅ Login successful!")
                        st.rerun()
                    else:
                        st.error(result.get("error", "Authentication failed"))

        with st.expander("ℹ️ Need Help?"):
            st.info("""
            - Log in with the username your manager registered for you
            - Ask your SM or an administrator if you forgot your password
            - Session expires after 8 hours of inactivity
            """)


def show_main_app():
    """Display the main application after login"""
    user = auth.get_current_user()

    # Sidebar
    with st.sidebar:
        st.markdown(f"### 👤 {auth.get_user_display_name()}")

        role = st.session_state.get('user_role', ROLE_DSA)
        if role == ROLE_ADMIN:
            st.success("🔓 Full Access")
        elif role in (ROLE_RSM, ROLE_SM, ROLE_DSS):
            st.info("👥 Team Access")
        else:
            st.warning("👤 Personal Access")

        st.caption(f"Role: {role}")
        if user is not None and user.dsa_code:
            st.caption(f"DSA Code: {user.dsa_code}")
        st.markdown("---")

        if st.button("🚪 Logout", use_container_width=True):
            store.set_current_user(None)
            auth.logout()
            st.rerun()

    render_connection_status(store)

    # Main content - Welcome
    st.markdown(f"""
    <div class="welcome-box">
        <div class="welcome-title">Welcome, {auth.get_user_display_name()}! 👋</div>
        <div class="welcome-subtitle">Select a page from the sidebar menu to get started.</div>
    </div>
    """, unsafe_allow_html=True)

    st.markdown("### 📊 Available Pages")

    st.markdown("""
    <div class="info-card">
        <strong>📊 DSA Dashboard</strong><br>
        <span style="color: #666;">Daily reports, team KPIs, charts, leaderboards and the report entry form.</span>
    </div>
    """, unsafe_allow_html=True)

    if role in (ROLE_ADMIN, ROLE_RSM, ROLE_SM):
        st.markdown("""
        <div class="info-card">
            <strong>👥 User Management</strong><br>
            <span style="color: #666;">Maintain the DSA / DSS / SM roster and import it from CSV.</span>
        </div>
        """, unsafe_allow_html=True)

    if role == ROLE_ADMIN:
        st.markdown("""
        <div class="info-card">
            <strong>🗂️ Data Management</strong><br>
            <span style="color: #666;">Backup, restore, export and clean up sales records.</span>
        </div>
        """, unsafe_allow_html=True)

    # System Status (Admin only)
    if auth.is_admin():
        st.markdown("---")
        with st.expander("🔧 System Status (Admin Only)"):
            from utils.db import get_connection_pool_status
            pool_status = get_connection_pool_status()

            col1, col2, col3 = st.columns(3)
            with col1:
                st.metric("DB Status", pool_status.get("status", "OK"))
            with col2:
                st.metric("Users cached", len(store.users))
            with col3:
                st.metric("Records cached", len(store.records))
            if store.last_error:
                st.caption(f"Last sync error: {store.last_error}")

    # Footer
    st.markdown(f"""
    <div class="footer">
        <strong>{APP_NAME}</strong> v{APP_VERSION}
    </div>
    """, unsafe_allow_html=True)


# ==================== MAIN ====================

def main():
    """Main application entry point"""
    if not auth.check_session():
        show_login_page()
    else:
        show_main_app()


if __name__ == "__main__":
    main()
