"""Streamlit dashboard for commitment tracking and session verification."""
import os
import random
import time
from datetime import datetime, timedelta

import streamlit as st
import pandas as pd
import requests
import plotly.express as px
import plotly.graph_objects as go

# Configuration: prioritize Streamlit secrets, then env var, then localhost fallback
def get_backend_url():
    """Get backend URL from secrets, env var, or fallback to localhost."""
    try:
        if hasattr(st, "secrets") and "BACKEND_URL" in st.secrets:
            return st.secrets["BACKEND_URL"].rstrip("/")
    except Exception:
        # st.secrets raises when no secrets file exists
        pass
    env_url = os.getenv("BACKEND_URL")
    if env_url:
        return env_url.rstrip("/")
    return "http://127.0.0.1:8000"

API_BASE_URL = get_backend_url()

st.set_page_config(
    page_title="Stake Commitments",
    page_icon="🏃",
    layout="wide",
)

st.title("🏃 Commitment Tracking Dashboard")


def check_backend_health():
    """Check if backend is running (longer timeout for cloud cold starts)."""
    try:
        response = requests.get(f"{API_BASE_URL}/health", timeout=10)
        return response.status_code == 200 and response.json().get("status") == "ok"
    except requests.exceptions.RequestException:
        return False


def api_get(path: str):
    """GET a backend resource. Returns None on 404 or transport errors."""
    try:
        response = requests.get(f"{API_BASE_URL}{path}", timeout=5)
        if response.status_code == 200:
            return response.json()
        return None
    except requests.exceptions.RequestException:
        return None


def build_demo_trace(commitment_id: str, session_id: str, started: datetime, minutes: int = 30):
    """Synthetic jog: one fix every 5 s heading north at ~2.8 m/s."""
    start_ms = int(started.timestamp() * 1000)
    lat, lon = 37.7749, -122.4194
    points = []
    for i in range(minutes * 12):
        points.append({
            "latitude": lat + i * 14.0 / 111_195.0,
            "longitude": lon,
            "altitude": 20.0 + (i % 20),
            "accuracy": 5.0,
            "speed": 2.8,
            "timestamp": start_ms + i * 5000,
        })
    return {
        "session_id": session_id,
        "commitment_id": commitment_id,
        "activity_type": "running",
        "start_time": start_ms,
        "end_time": start_ms + minutes * 60 * 1000,
        "gps_points": points,
        "health": {"heart_rate": [random.randint(130, 160) for _ in range(minutes * 2)]},
        "device_info": {"platform": "dashboard", "device_id": "demo", "app_version": "0.1.0"},
    }


def generate_demo_commitment():
    """
    Create a 2-week "4x per week" commitment that started 3 days ago and
    submit one verified jog on each of days 0-2. Sessions only count toward
    the week that is still open, so the demo stays inside week 1.
    Returns (success: bool, message: str, commitment_id: str | None).
    """
    start = (datetime.now() - timedelta(days=3)).replace(hour=0, minute=0, second=0, microsecond=0)
    body = {
        "activity": "Running",
        "duration": "2 Weeks",
        "frequency": "4x per week",
        "stake": 50,
        "start_date": start.isoformat(),
    }
    response = requests.post(f"{API_BASE_URL}/commitments", json=body, timeout=5)
    if response.status_code != 200:
        return False, f"Failed to create commitment: {response.text}", None
    commitment_id = response.json()["id"]

    recorded = 0
    for day in [0, 1, 2]:
        started = start + timedelta(days=day, hours=7)
        trace = build_demo_trace(commitment_id, f"demo-{commitment_id}-{day}", started)
        response = requests.post(
            f"{API_BASE_URL}/commitments/{commitment_id}/sessions", json=trace, timeout=10,
        )
        if response.status_code != 200:
            return False, f"Failed to submit session for day {day}: {response.text}", commitment_id
        if response.json()["outcome"] == "recorded":
            recorded += 1
        time.sleep(0.05)

    return True, f"Created {commitment_id} with {recorded} verified sessions.", commitment_id


# Sidebar
st.sidebar.header("Controls")

backend_ok = check_backend_health()
if backend_ok:
    st.sidebar.markdown("**Backend:** :green_circle: Connected")
else:
    st.sidebar.markdown("**Backend:** :red_circle: Unreachable")
    st.warning("Backend unreachable (may be waking up or misconfigured). Refresh the page to retry.")
st.sidebar.caption(f"`{API_BASE_URL}`")

url_commitment_id = st.query_params.get("commitment_id", None)

commitments = (api_get("/commitments") or []) if backend_ok else []
known_ids = [c["id"] for c in commitments]

st.sidebar.subheader("Commitment Lookup")
commitment_id = st.sidebar.text_input(
    "Commitment ID",
    value=url_commitment_id or (known_ids[-1] if known_ids else ""),
    help="Enter a commitment id to view its progress",
)

if st.sidebar.button("Load Commitment"):
    if commitment_id:
        st.session_state["commitment_id"] = commitment_id
    else:
        st.sidebar.warning("Enter a commitment ID")

if url_commitment_id and "commitment_id" not in st.session_state:
    st.session_state["commitment_id"] = url_commitment_id

if st.sidebar.button("Generate Demo Commitment"):
    if not backend_ok:
        st.sidebar.error("Backend is offline - cannot generate a demo")
    else:
        with st.spinner("Submitting demo sessions..."):
            success, message, new_id = generate_demo_commitment()
        if success:
            st.session_state["commitment_id"] = new_id
            st.sidebar.success(message)
            st.rerun()
        else:
            st.error(message)

# Main content
selected_id = st.session_state.get("commitment_id")
progress = api_get(f"/commitments/{selected_id}/progress") if selected_id else None

if progress:
    commitment = progress["commitment"]
    st.subheader(f"{commitment['title']} · `{commitment['id']}`")
    st.caption(commitment["description"])

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("Status", progress["status"])
    with col2:
        st.metric("Week", f"{progress['current_week']} / {progress['total_weeks']}")
    with col3:
        st.metric(
            "Sessions",
            f"{progress['total_sessions_completed']} / {progress['total_sessions_required']}",
        )
    with col4:
        st.metric("Needed This Week", progress["sessions_needed_this_week"])

    if progress["status"] == "active" and not progress["can_still_succeed"]:
        st.error("This commitment can no longer succeed.")
    elif progress["status"] == "active":
        st.info(
            f"{progress['days_remaining_in_week']} day(s) left until "
            f"{progress['next_deadline'][:16].replace('T', ' ')}"
        )

    st.divider()

    # Weekly progress chart
    weeks = pd.DataFrame(progress["weekly_requirements"])
    if not weeks.empty:
        st.subheader("Weekly Progress")
        fig_weeks = go.Figure()
        fig_weeks.add_bar(x=weeks["week_number"], y=weeks["required_sessions"], name="Required", marker_color="#c7c7c7")
        fig_weeks.add_bar(x=weeks["week_number"], y=weeks["completed_sessions"], name="Completed", marker_color="#2ca02c")
        fig_weeks.update_layout(barmode="group", xaxis_title="Week", yaxis_title="Sessions")
        st.plotly_chart(fig_weeks, use_container_width=True)

    # Settlement panel
    settlement = api_get(f"/commitments/{selected_id}/settlement")
    if settlement:
        st.subheader("Settlement")
        if settlement.get("payout_amount") is not None:
            st.success(
                f"Payout owed: ${settlement['payout_amount']:.2f} "
                f"(payout status: {settlement.get('payout_status') or '-'})"
            )
        elif settlement.get("loss_amount") is not None:
            st.error(f"Stake forfeited: ${settlement['loss_amount']:.2f}")
        else:
            st.info(f"Stake of ${commitment['stake']:.2f} at risk, bonus ${commitment.get('bonus') or 0:.2f}.")

    st.divider()

    # Sessions and verdicts
    sessions = api_get(f"/commitments/{selected_id}/sessions") or []
    verdicts = api_get(f"/commitments/{selected_id}/verifications") or []

    col_left, col_right = st.columns(2)
    with col_left:
        st.subheader("Recorded Sessions")
        if sessions:
            df = pd.DataFrame(sessions)
            df["date"] = pd.to_datetime(df["date"])
            st.dataframe(
                df[["date", "duration", "distance", "heart_rate", "verified"]],
                use_container_width=True,
                hide_index=True,
            )
        else:
            st.info("No sessions recorded yet.")

    with col_right:
        st.subheader("Verification Scores")
        if verdicts:
            vdf = pd.DataFrame([
                {
                    "session_id": v["session_id"],
                    "score": v["verification_score"],
                    "status": v["status"],
                    "flags": ", ".join(f["type"] for f in v["flags"]),
                }
                for v in verdicts
            ])
            fig_scores = px.bar(
                vdf,
                x="session_id",
                y="score",
                color="status",
                color_discrete_map={"verified": "#2ca02c", "suspicious": "#ffbb78", "rejected": "#d62728"},
            )
            fig_scores.update_yaxes(range=[0, 1])
            fig_scores.add_hline(y=0.7, line_dash="dash")
            st.plotly_chart(fig_scores, use_container_width=True)
            st.dataframe(vdf, use_container_width=True, hide_index=True)
        else:
            st.info("No verification history.")

elif selected_id:
    st.warning(f"Commitment `{selected_id}` not found.")
else:
    st.info("Enter a commitment ID in the sidebar and click 'Load Commitment'.")

    st.subheader("Getting Started")
    if backend_ok:
        st.markdown("""
        **Quick Start:**
        1. Click **"Generate Demo Commitment"** to create a 2-week commitment with sample runs
        2. Or enter a known **Commitment ID** and click **"Load Commitment"**
        """)
    else:
        st.markdown("""
        **Backend Unavailable**

        The backend API is currently unreachable. Refresh this page in a few seconds.
        """)

# Footer
st.sidebar.divider()
st.sidebar.caption("Stake Commitments v0.1.0")
