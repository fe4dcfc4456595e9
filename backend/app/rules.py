"""Commitment rule engine.

Rules:
1. The frequency label defines the required sessions per week.
2. Only one session per calendar day counts (no stacking).
3. Weeks are rolling 7-day windows from the start date, the last one clipped
   to the commitment end date.
4. A week that ends short of its target fails the commitment.
5. A week that can no longer reach its target (more sessions needed than
   days left) fails the commitment early.
6. A session only counts toward the week that is open when it is submitted,
   and never from the future.

Weekly requirements are a projection rebuilt from the commitment and its
session history on every evaluation; nothing here is stored or mutated.
"""
import logging
import math
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple

from .schemas import CommitmentProgress, CommitmentResponse, SessionResponse, WeeklyRequirement

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)
ONE_WEEK = timedelta(days=7)
TERMINAL_STATUSES = ("completed", "failed")

# Checked in order, so "Daily" wins over any "Nx" that might also appear
FREQUENCY_LABELS = [
    ("Daily", 7),
    ("6x", 6),
    ("5x", 5),
    ("4x", 4),
    ("3x", 3),
    ("2x", 2),
    ("1x", 1),
]
DEFAULT_SESSIONS_PER_WEEK = 3


def as_local(dt: datetime) -> datetime:
    """Naive local wall-clock time. Aware datetimes are converted first."""
    if dt.tzinfo is not None:
        return dt.astimezone().replace(tzinfo=None)
    return dt


def local_midnight(dt: datetime) -> datetime:
    return as_local(dt).replace(hour=0, minute=0, second=0, microsecond=0)


def parse_frequency(frequency: str) -> int:
    """Map a frequency label such as "4x per week" to sessions per week."""
    for token, sessions in FREQUENCY_LABELS:
        if token in frequency:
            return sessions
    return DEFAULT_SESSIONS_PER_WEEK


def days_between(first: datetime, second: datetime) -> int:
    """Whole days between two datetimes, half-days rounded up."""
    days = abs((as_local(second) - as_local(first)).total_seconds()) / ONE_DAY.total_seconds()
    return math.floor(days + 0.5)


def days_left(until: datetime, now: datetime) -> int:
    """Whole days (rounded up) from now until a deadline, never negative."""
    return max(0, math.ceil((until - now).total_seconds() / ONE_DAY.total_seconds()))


def build_weekly_requirements(commitment: CommitmentResponse, now: Optional[datetime] = None) -> List[WeeklyRequirement]:
    """Partition the commitment into weekly windows with no sessions counted yet."""
    now = as_local(now or datetime.now())
    start = local_midnight(commitment.start_date)
    end = as_local(commitment.end_date)
    per_week = parse_frequency(commitment.frequency)
    total_weeks = math.ceil(days_between(commitment.start_date, commitment.end_date) / 7)

    requirements = []
    for index in range(total_weeks):
        week_start = start + index * ONE_WEEK
        week_end = week_start + ONE_WEEK - timedelta(microseconds=1)
        if week_end > end:
            week_end = end

        requirements.append(WeeklyRequirement(
            week_number=index + 1,
            required_sessions=per_week,
            completed_sessions=0,
            week_start=week_start,
            week_end=week_end,
            remaining_days=days_left(week_end, now),
        ))
    return requirements


def apply_sessions(
    requirements: Sequence[WeeklyRequirement],
    sessions: Iterable[SessionResponse],
    now: Optional[datetime] = None,
) -> List[WeeklyRequirement]:
    """Count verified sessions into the week whose window contains them.

    Each calendar day counts at most once.
    """
    now = as_local(now or datetime.now())
    session_days = sorted({as_local(s.date) for s in sessions if s.verified})

    updated = []
    for req in requirements:
        days = {d.date() for d in session_days if req.week_start <= d <= req.week_end}
        completed = len(days)
        is_completed = completed >= req.required_sessions
        updated.append(req.model_copy(update={
            "completed_sessions": completed,
            "is_completed": is_completed,
            "is_failed": not is_completed and now > req.week_end,
        }))
    return updated


def can_record_session(when: datetime, existing: Iterable[datetime]) -> bool:
    """False if a session already exists on the same local calendar day."""
    day: date = as_local(when).date()
    return not any(as_local(other).date() == day for other in existing)


def recording_window(
    requirements: Sequence[WeeklyRequirement],
    now: Optional[datetime] = None,
) -> Optional[Tuple[datetime, datetime]]:
    """Span a new session may start in: the open week, up to now.

    None when no week is open (before the start or after the last week).
    Closed weeks are never reopened by a late session.
    """
    now = as_local(now or datetime.now())
    for req in requirements:
        if req.week_start <= now <= req.week_end:
            return req.week_start, now
    return None


def in_recording_window(
    when: datetime,
    requirements: Sequence[WeeklyRequirement],
    now: Optional[datetime] = None,
) -> bool:
    window = recording_window(requirements, now)
    if window is None:
        return False
    opens, closes = window
    return opens <= as_local(when) <= closes


def can_still_meet_weekly_requirement(
    requirement: WeeklyRequirement,
    completed_so_far: int,
    now: Optional[datetime] = None,
) -> bool:
    """Whether the week's target is (or can still be) met.

    A finished week succeeds iff its target was reached. An open week fails
    fast once more sessions are still needed than days remain in it.
    """
    now = as_local(now or datetime.now())
    if now > requirement.week_end:
        return completed_so_far >= requirement.required_sessions

    needed = requirement.required_sessions - completed_so_far
    if needed <= 0:
        return True
    return needed <= requirement.remaining_days


def evaluate_commitment_status(
    commitment: CommitmentResponse,
    requirements: Sequence[WeeklyRequirement],
    total_completed_sessions: int,
    now: Optional[datetime] = None,
) -> CommitmentProgress:
    """
    Derive overall status plus the display fields for a commitment.

    - past the end date or the last week: completed iff every week met its
      target, else failed
    - otherwise walk weeks up to the current one; a finished week short of its
      target, or an open week that can no longer reach it, fails the commitment
      and stops the walk
    - completed/failed/paused commitments keep their stored status
    """
    now = as_local(now or datetime.now())
    start = local_midnight(commitment.start_date)
    end = as_local(commitment.end_date)
    total_weeks = len(requirements)
    current_index = max(0, math.floor((now - start) / ONE_WEEK))
    all_weeks_over = bool(requirements) and now > requirements[-1].week_end

    status = "active"
    can_still_succeed = True

    if commitment.status in TERMINAL_STATUSES or commitment.status == "paused":
        status = commitment.status
        can_still_succeed = status != "failed"
    elif now > end or all_weeks_over:
        if all(r.completed_sessions >= r.required_sessions for r in requirements):
            status = "completed"
        else:
            status = "failed"
            can_still_succeed = False
    else:
        for req in requirements[:current_index + 1]:
            if now > req.week_end:
                met = req.completed_sessions >= req.required_sessions
            else:
                met = can_still_meet_weekly_requirement(req, req.completed_sessions, now)
            if not met:
                logger.debug("Commitment %s fails in week %d", commitment.id, req.week_number)
                status = "failed"
                can_still_succeed = False
                break

    if current_index < total_weeks:
        current = requirements[current_index]
        next_deadline = current.week_end
        sessions_needed = max(0, current.required_sessions - current.completed_sessions)
    else:
        next_deadline = end
        sessions_needed = 0

    return CommitmentProgress(
        commitment=commitment,
        current_week=current_index + 1,
        total_weeks=total_weeks,
        weekly_requirements=list(requirements),
        total_sessions_completed=total_completed_sessions,
        total_sessions_required=sum(r.required_sessions for r in requirements),
        status=status,
        can_still_succeed=can_still_succeed,
        next_deadline=next_deadline,
        days_remaining_in_week=days_left(next_deadline, now),
        sessions_needed_this_week=sessions_needed,
    )


def compute_progress(
    commitment: CommitmentResponse,
    sessions: Sequence[SessionResponse],
    now: Optional[datetime] = None,
) -> CommitmentProgress:
    """Rebuild weekly requirements from the session history and evaluate them."""
    now = as_local(now or datetime.now())
    requirements = apply_sessions(build_weekly_requirements(commitment, now), sessions, now)
    verified = [s for s in sessions if s.verified]
    return evaluate_commitment_status(commitment, requirements, len(verified), now)
