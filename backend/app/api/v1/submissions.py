"""
Submissions API endpoints.

Reviewer view of candidate attempts: the recorded event timeline, keystroke
playback state at any point of the session, and focus-loss statistics.
"""

from dataclasses import asdict
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api.errors import http_error
from app.core.logger import get_logger
from app.core.security import get_current_reviewer
from app.db.session import get_db
from app.models import Submission, SubmissionStatus
from app.services import submission_service
from app.services.focus import focus_stats
from app.services.reconstruction import Timeline, state_at_index, state_at_offset
from app.services.submission_service import SubmissionError
from app.services.timeline_store import TimelineStore

logger = get_logger("submissions")

router = APIRouter()


# ============== Pydantic Schemas ==============


class SubmissionSummary(BaseModel):
    """Schema for a submission in reviewer lists."""

    id: int
    challenge_id: int
    candidate_id: int
    candidate_name: Optional[str] = None
    status: str
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    total_time_spent: int = 0
    event_count: int = 0


class TimelineResponse(BaseModel):
    submission_id: int
    total_events: int
    start: Optional[int] = None  # epoch ms of first event
    duration_ms: int
    events: list[dict]


class PlaybackResponse(BaseModel):
    """Schema for the reconstructed editor state."""

    submission_id: int
    playback_time: int  # ms from the first event
    total_duration: int
    content: str
    cursor_position: int
    focused: bool
    is_final_submission: bool
    snapshot_index: Optional[int] = None


class FocusResponse(BaseModel):
    submission_id: int
    duration_ms: int
    total_unfocused_ms: int
    focus_loss_count: int
    focus_percentage: float
    unfocused_segments: list[tuple[int, int]]


class StatusUpdateRequest(BaseModel):
    status: SubmissionStatus


# ============== Helpers ==============


def _load(db: Session, submission_id: int) -> Submission:
    try:
        return submission_service.get_submission(db, submission_id)
    except SubmissionError as exc:
        raise http_error(exc)


def _final_content(submission: Submission) -> Optional[str]:
    # Only a submitted document is authoritative for the end of playback
    return submission.content if submission.is_terminal else None


def _summary(submission: Submission, event_count: int) -> SubmissionSummary:
    return SubmissionSummary(
        id=submission.id,
        challenge_id=submission.challenge_id,
        candidate_id=submission.candidate_id,
        candidate_name=submission.candidate.name if submission.candidate else None,
        status=submission.status,
        started_at=submission.started_at,
        submitted_at=submission.submitted_at,
        reviewed_at=submission.reviewed_at,
        total_time_spent=submission.total_time_spent or 0,
        event_count=event_count,
    )


# ============== API Endpoints ==============


@router.get("", response_model=list[SubmissionSummary])
async def list_submissions(
    status_filter: Optional[SubmissionStatus] = Query(None, alias="status"),
    challenge_id: Optional[int] = None,
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    reviewer: str = Depends(get_current_reviewer),
):
    """List submissions, newest first, optionally filtered by status or challenge."""
    query = db.query(Submission)
    if status_filter:
        query = query.filter(Submission.status == status_filter.value)
    if challenge_id is not None:
        query = query.filter(Submission.challenge_id == challenge_id)

    submissions = query.order_by(Submission.created_at.desc(), Submission.id.desc()).limit(limit).all()
    store = TimelineStore(db)
    return [_summary(s, store.count(s.id)) for s in submissions]


@router.get("/{submission_id}", response_model=SubmissionSummary)
async def get_submission(
    submission_id: int,
    db: Session = Depends(get_db),
    reviewer: str = Depends(get_current_reviewer),
):
    submission = _load(db, submission_id)
    return _summary(submission, TimelineStore(db).count(submission.id))


@router.get("/{submission_id}/timeline", response_model=TimelineResponse)
async def get_timeline(
    submission_id: int,
    db: Session = Depends(get_db),
    reviewer: str = Depends(get_current_reviewer),
):
    """Full recorded event history, ascending by timestamp."""
    submission = _load(db, submission_id)
    events = TimelineStore(db).read_all(submission.id)
    start = events[0].timestamp if events else None
    duration = max(events[-1].timestamp - events[0].timestamp, 0) if events else 0

    return TimelineResponse(
        submission_id=submission.id,
        total_events=len(events),
        start=start,
        duration_ms=duration,
        events=[event.to_payload() for event in events],
    )


@router.get("/{submission_id}/playback", response_model=PlaybackResponse)
async def get_playback_state(
    submission_id: int,
    at: Optional[int] = Query(None, ge=0, description="Playback time in ms from the first event"),
    index: Optional[int] = Query(None, ge=-1, description="Event index (inclusive)"),
    db: Session = Depends(get_db),
    reviewer: str = Depends(get_current_reviewer),
):
    """
    Reconstruct the editor at a point of the session.

    Pass either `at` (ms offset, clamped to the session duration) or
    `index` (event position). Past the last recorded event the submitted
    document is shown.
    """
    if at is not None and index is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Pass either 'at' or 'index', not both",
        )

    submission = _load(db, submission_id)
    timeline = Timeline.from_events(TimelineStore(db).read_all(submission.id))
    final_content = _final_content(submission)

    if index is not None:
        state = state_at_index(timeline, index, final_content)
        position = max(-1, min(index, len(timeline.events) - 1))
        playback_time = timeline.events[position].timestamp - timeline.start if position >= 0 else 0
    else:
        playback_time = min(at or 0, timeline.duration)
        state = state_at_offset(timeline, playback_time, final_content)

    return PlaybackResponse(
        submission_id=submission.id,
        playback_time=playback_time,
        total_duration=timeline.duration,
        **asdict(state),
    )


@router.get("/{submission_id}/focus", response_model=FocusResponse)
async def get_focus_stats(
    submission_id: int,
    db: Session = Depends(get_db),
    reviewer: str = Depends(get_current_reviewer),
):
    """Focus-loss statistics over the recorded session."""
    submission = _load(db, submission_id)
    stats = focus_stats(TimelineStore(db).read_all(submission.id))
    return FocusResponse(
        submission_id=submission.id,
        duration_ms=stats.duration_ms,
        total_unfocused_ms=stats.total_unfocused_ms,
        focus_loss_count=stats.focus_loss_count,
        focus_percentage=stats.focus_percentage,
        unfocused_segments=list(stats.unfocused_segments),
    )


@router.patch("/{submission_id}/status", response_model=SubmissionSummary)
async def update_submission_status(
    submission_id: int,
    request: StatusUpdateRequest,
    db: Session = Depends(get_db),
    reviewer: str = Depends(get_current_reviewer),
):
    """Move a submitted attempt to UNDER_REVIEW, ACCEPTED or REJECTED."""
    try:
        submission = submission_service.update_status(db, submission_id, request.status)
    except SubmissionError as exc:
        raise http_error(exc)

    logger.info(f"Reviewer {reviewer} set submission {submission_id} to {submission.status}")
    return _summary(submission, TimelineStore(db).count(submission.id))
