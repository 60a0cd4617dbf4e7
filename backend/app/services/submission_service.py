"""
Submission lifecycle.

Token-keyed operations used by the candidate editor (append events, save
content, submit) and reviewer-side status transitions. Every candidate write
is rejected once the submission has reached a submitted status.
"""

import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from app.core.logger import get_logger
from app.models import Candidate, Challenge, Submission, SubmissionStatus
from app.services.events import KeystrokeEvent
from app.services.focus import focused_time_ms
from app.services.timeline_store import TimelineStore

logger = get_logger("submission_service")

REVIEW_STATUSES = {
    SubmissionStatus.UNDER_REVIEW,
    SubmissionStatus.ACCEPTED,
    SubmissionStatus.REJECTED,
}


class SubmissionError(Exception):
    """Base class for lifecycle errors."""


class InvalidTokenError(SubmissionError):
    pass


class SubmissionNotFoundError(SubmissionError):
    pass


class SubmissionLockedError(SubmissionError):
    """Write attempted on a submission that is already submitted."""


class InvalidTransitionError(SubmissionError):
    pass


def _to_ms(value: datetime) -> int:
    return int((value - datetime(1970, 1, 1)).total_seconds() * 1000)


# ============== Lookups ==============


def get_submission_by_token(db: Session, token: str) -> Submission:
    candidate = db.query(Candidate).filter(Candidate.token == token).first()
    if not candidate:
        raise InvalidTokenError("Invalid candidate token")
    if not candidate.submission:
        raise SubmissionNotFoundError("No submission found for candidate")
    return candidate.submission


def get_submission(db: Session, submission_id: int) -> Submission:
    submission = db.query(Submission).filter(Submission.id == submission_id).first()
    if not submission:
        raise SubmissionNotFoundError("Submission not found")
    return submission


def _ensure_writable(submission: Submission, action: str) -> None:
    if submission.is_terminal:
        raise SubmissionLockedError(f"Cannot {action}: submission already submitted")


# ============== Candidate operations ==============


def append_events(db: Session, token: str, events: list[KeystrokeEvent]) -> int:
    """Store a capture batch; returns the number of newly stored events."""
    submission = get_submission_by_token(db, token)
    _ensure_writable(submission, "add events")
    return TimelineStore(db).append(submission.id, events)


def update_content(db: Session, token: str, content: str, now: Optional[datetime] = None) -> Submission:
    """Save the latest document; the first save starts the attempt."""
    submission = get_submission_by_token(db, token)
    _ensure_writable(submission, "update content")

    now = now or datetime.utcnow()
    submission.content = content
    submission.updated_at = now
    if submission.status == SubmissionStatus.NOT_STARTED.value:
        submission.status = SubmissionStatus.IN_PROGRESS.value
        submission.started_at = now
        logger.info(f"Submission {submission.id} started")

    db.commit()
    db.refresh(submission)
    return submission


def submit(db: Session, token: str, now: Optional[datetime] = None) -> Submission:
    """
    Finalize a submission.

    `total_time_spent` is the focused time in seconds: every FOCUS_IN ->
    FOCUS_OUT interval, plus a trailing open interval up to `now`.
    """
    submission = get_submission_by_token(db, token)
    if submission.is_terminal:
        raise SubmissionLockedError("Submission already submitted")

    now = now or datetime.utcnow()
    events = TimelineStore(db).read_all(submission.id)
    focused_ms = focused_time_ms(events, until_ms=_to_ms(now))

    submission.status = SubmissionStatus.SUBMITTED.value
    submission.submitted_at = now
    submission.total_time_spent = focused_ms // 1000
    db.commit()
    db.refresh(submission)

    logger.info(
        f"Submission {submission.id} submitted "
        f"({len(events)} events, {submission.total_time_spent}s focused)"
    )
    return submission


def time_remaining(submission: Submission, now: Optional[datetime] = None) -> Optional[int]:
    """Seconds left before the challenge time limit, or None if untimed/not started."""
    challenge = submission.challenge
    if not challenge or not challenge.time_limit or not submission.started_at:
        return None
    now = now or datetime.utcnow()
    deadline = submission.started_at + timedelta(minutes=challenge.time_limit)
    return max(0, int((deadline - now).total_seconds()))


def is_time_up(submission: Submission, now: Optional[datetime] = None) -> bool:
    return time_remaining(submission, now) == 0


def auto_submit_if_expired(db: Session, token: str, now: Optional[datetime] = None) -> Optional[Submission]:
    """Submit an in-progress attempt whose time limit has run out."""
    submission = get_submission_by_token(db, token)
    if submission.status != SubmissionStatus.IN_PROGRESS.value or not is_time_up(submission, now):
        return None
    logger.info(f"Submission {submission.id} time is up; auto-submitting")
    return submit(db, token, now=now)


# ============== Reviewer operations ==============


def update_status(
    db: Session,
    submission_id: int,
    status: SubmissionStatus,
    now: Optional[datetime] = None,
) -> Submission:
    """Move a submitted attempt through review."""
    if status not in REVIEW_STATUSES:
        raise InvalidTransitionError(f"{status.value} is not a review status")

    submission = get_submission(db, submission_id)
    if not submission.is_terminal:
        raise InvalidTransitionError("Submission has not been submitted yet")

    submission.status = status.value
    if status in (SubmissionStatus.ACCEPTED, SubmissionStatus.REJECTED):
        submission.reviewed_at = now or datetime.utcnow()
    db.commit()
    db.refresh(submission)
    return submission


def create_challenge(
    db: Session,
    title: str,
    description: str = "",
    language: str = "python",
    time_limit: Optional[int] = None,
) -> Challenge:
    challenge = Challenge(
        title=title,
        description=description,
        language=language,
        time_limit=time_limit,
    )
    db.add(challenge)
    db.commit()
    db.refresh(challenge)
    return challenge


def invite_candidate(db: Session, challenge_id: int, name: str, email: str) -> Candidate:
    """Create a candidate with a fresh invitation token and an empty submission."""
    challenge = db.query(Challenge).filter(Challenge.id == challenge_id).first()
    if not challenge:
        raise SubmissionNotFoundError("Challenge not found")

    candidate = Candidate(
        challenge_id=challenge.id,
        name=name,
        email=email,
        token=secrets.token_urlsafe(24),
    )
    db.add(candidate)
    db.flush()

    db.add(
        Submission(
            candidate_id=candidate.id,
            challenge_id=challenge.id,
            content="",
            status=SubmissionStatus.NOT_STARTED.value,
        )
    )
    db.commit()
    db.refresh(candidate)
    logger.info(f"Invited candidate {candidate.id} to challenge {challenge.id}")
    return candidate
