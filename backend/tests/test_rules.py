"""Test the commitment rule engine: weekly windows, early failure, final status."""
from datetime import datetime, timedelta

import pytest

from backend.app.rules import (
    apply_sessions,
    build_weekly_requirements,
    can_record_session,
    can_still_meet_weekly_requirement,
    compute_progress,
    days_between,
    in_recording_window,
    parse_frequency,
    recording_window,
)
from backend.app.schemas import CommitmentResponse, SessionResponse

START = datetime(2024, 1, 1)  # a Monday, local midnight
ONE_US = timedelta(microseconds=1)


def make_commitment(days=14, frequency="3x per week", status="active", start=START):
    return CommitmentResponse(
        id="c1",
        title="Running Challenge",
        activity="Running",
        duration="2 Weeks",
        frequency=frequency,
        stake=50.0,
        bonus=10.0,
        start_date=start,
        end_date=start + timedelta(days=days),
        status=status,
    )


def make_sessions(*days, hour=7, verified=True):
    """Helper: one session at `hour` on each given day offset from START."""
    sessions = []
    for i, day in enumerate(days):
        when = START + timedelta(days=day, hours=hour)
        sessions.append(SessionResponse(
            id=f"s{i}-{day}-{hour}",
            commitment_id="c1",
            date=when,
            duration=30,
            verified=verified,
            created_at=when,
        ))
    return sessions


@pytest.mark.parametrize("label, expected", [
    ("Daily", 7),
    ("6x per week", 6),
    ("5x per week", 5),
    ("4x per week", 4),
    ("3x per week", 3),
    ("2x per week", 2),
    ("1x per week", 1),
    ("whenever", 3),
])
def test_parse_frequency(label, expected):
    assert parse_frequency(label) == expected


def test_days_between_rounds_half_days_up():
    assert days_between(START, START + timedelta(days=14)) == 14
    assert days_between(START, START + timedelta(hours=12)) == 1
    assert days_between(START, START + timedelta(hours=11, minutes=59)) == 0


def test_weeks_partition_the_commitment():
    commitment = make_commitment(days=14)
    reqs = build_weekly_requirements(commitment, now=START)

    assert [r.week_number for r in reqs] == [1, 2]
    assert reqs[0].week_start == START
    for prev, cur in zip(reqs, reqs[1:]):
        assert prev.week_end + ONE_US == cur.week_start
    assert reqs[-1].week_end + ONE_US == commitment.end_date
    assert all(r.required_sessions == 3 and r.completed_sessions == 0 for r in reqs)


def test_last_week_is_clipped_to_end_date():
    commitment = make_commitment(days=10)
    reqs = build_weekly_requirements(commitment, now=START)

    assert len(reqs) == 2
    assert reqs[1].week_start == START + timedelta(days=7)
    assert reqs[1].week_end == commitment.end_date


def test_weeks_start_at_local_midnight():
    commitment = make_commitment(start=START + timedelta(hours=9))
    reqs = build_weekly_requirements(commitment, now=START)
    assert reqs[0].week_start == START


def test_remaining_days():
    reqs = build_weekly_requirements(make_commitment(), now=datetime(2024, 1, 3, 12))
    assert reqs[0].remaining_days == 5
    assert reqs[1].remaining_days == 12

    reqs = build_weekly_requirements(make_commitment(), now=datetime(2024, 1, 9))
    assert reqs[0].remaining_days == 0


def test_sessions_land_in_their_week():
    reqs = build_weekly_requirements(make_commitment(), now=START)
    late_sunday = make_sessions(6, hour=23)
    updated = apply_sessions(reqs, make_sessions(0, 1, 7) + late_sunday, now=START)

    assert [r.completed_sessions for r in updated] == [3, 1]
    assert updated[0].is_completed is True
    assert updated[1].is_completed is False


def test_same_day_sessions_count_once():
    reqs = build_weekly_requirements(make_commitment(), now=START)
    sessions = make_sessions(0, hour=7) + make_sessions(0, hour=19) + make_sessions(1)
    updated = apply_sessions(reqs, sessions, now=START)
    assert updated[0].completed_sessions == 2


def test_unverified_sessions_do_not_count():
    reqs = build_weekly_requirements(make_commitment(), now=START)
    updated = apply_sessions(reqs, make_sessions(0, 1, 2, verified=False), now=START)
    assert updated[0].completed_sessions == 0


def test_finished_short_week_is_marked_failed():
    now = datetime(2024, 1, 9)
    reqs = build_weekly_requirements(make_commitment(), now=now)
    updated = apply_sessions(reqs, make_sessions(0, 1), now=now)
    assert updated[0].is_failed is True
    assert updated[1].is_failed is False


def test_can_record_session():
    existing = [START + timedelta(hours=7)]
    assert can_record_session(START + timedelta(hours=20), existing) is False
    assert can_record_session(START + timedelta(days=1, hours=6), existing) is True
    assert can_record_session(START, []) is True


def test_recording_window_is_the_open_week_up_to_now():
    reqs = build_weekly_requirements(make_commitment(days=14), now=START)
    now = START + timedelta(days=9, hours=12)

    assert recording_window(reqs, now) == (START + timedelta(days=7), now)
    # Closed week 1, the future, and inside the open week
    assert in_recording_window(START + timedelta(days=5, hours=7), reqs, now) is False
    assert in_recording_window(now + timedelta(minutes=1), reqs, now) is False
    assert in_recording_window(START + timedelta(days=7, hours=7), reqs, now) is True
    assert in_recording_window(now, reqs, now) is True


def test_no_recording_window_outside_the_commitment():
    reqs = build_weekly_requirements(make_commitment(days=7), now=START)

    assert recording_window(reqs, START - ONE_US) is None
    assert recording_window(reqs, START + timedelta(days=9)) is None
    assert in_recording_window(START + timedelta(days=4), reqs, START + timedelta(days=9)) is False
    assert recording_window([], START) is None


def test_can_still_meet_weekly_requirement():
    now = datetime(2024, 1, 6, 12)
    req = build_weekly_requirements(make_commitment(), now=now)[0]
    # 2 days left in the week
    assert can_still_meet_weekly_requirement(req, 1, now) is True
    assert can_still_meet_weekly_requirement(req, 0, now) is False
    assert can_still_meet_weekly_requirement(req, 3, now) is True

    after = datetime(2024, 1, 8, 1)
    assert can_still_meet_weekly_requirement(req, 2, after) is False
    assert can_still_meet_weekly_requirement(req, 3, after) is True


def test_mid_week_progress_is_active():
    now = datetime(2024, 1, 3, 12)
    progress = compute_progress(make_commitment(), make_sessions(0), now)

    assert progress.status == "active"
    assert progress.can_still_succeed is True
    assert progress.current_week == 1
    assert progress.total_weeks == 2
    assert progress.sessions_needed_this_week == 2
    assert progress.days_remaining_in_week == 5
    assert progress.next_deadline == START + timedelta(days=7) - ONE_US
    assert progress.total_sessions_completed == 1
    assert progress.total_sessions_required == 6


def test_early_failure_when_days_run_out():
    """Half a day left in week 1 and three sessions still needed."""
    now = datetime(2024, 1, 7, 12)
    progress = compute_progress(make_commitment(), [], now)

    assert progress.weekly_requirements[0].remaining_days == 1
    assert progress.status == "failed"
    assert progress.can_still_succeed is False


def test_no_early_failure_while_reachable():
    now = datetime(2024, 1, 6, 12)
    progress = compute_progress(make_commitment(), make_sessions(0, 1), now)
    assert progress.status == "active"


def test_short_finished_week_fails_before_end():
    now = datetime(2024, 1, 9)
    progress = compute_progress(make_commitment(), make_sessions(0, 1, 7), now)

    assert progress.status == "failed"
    assert progress.current_week == 2


def test_completed_after_end_when_every_week_met():
    now = datetime(2024, 1, 16)
    progress = compute_progress(make_commitment(), make_sessions(0, 1, 2, 7, 8, 9), now)

    assert progress.status == "completed"
    assert progress.can_still_succeed is True
    assert all(r.is_completed for r in progress.weekly_requirements)
    assert progress.next_deadline == make_commitment().end_date
    assert progress.sessions_needed_this_week == 0


def test_failed_after_end_when_a_week_fell_short():
    now = datetime(2024, 1, 16)
    progress = compute_progress(make_commitment(), make_sessions(0, 1, 2, 7, 8), now)

    assert progress.status == "failed"
    assert progress.can_still_succeed is False
    assert progress.weekly_requirements[1].is_failed is True


@pytest.mark.parametrize("stored", ["completed", "failed", "paused"])
def test_stored_status_is_kept(stored):
    # Sessions that would say otherwise
    sessions = make_sessions(0, 1, 2, 7, 8, 9) if stored == "failed" else []
    progress = compute_progress(make_commitment(status=stored), sessions, datetime(2024, 1, 16))

    assert progress.status == stored
    assert progress.can_still_succeed is (stored != "failed")


def test_evaluation_is_repeatable():
    now = datetime(2024, 1, 10, 8)
    commitment = make_commitment(frequency="4x per week")
    sessions = make_sessions(0, 1, 2, 3, 7)
    assert compute_progress(commitment, sessions, now) == compute_progress(commitment, sessions, now)


def test_one_week_commitment_completes_when_its_week_ends():
    commitment = make_commitment(days=7)
    sessions = make_sessions(0, 2, 4)

    assert compute_progress(commitment, sessions, datetime(2024, 1, 7, 20)).status == "active"
    assert compute_progress(commitment, sessions, START + timedelta(days=7)).status == "completed"
