"""
Candidate session API endpoints.

Public endpoints keyed by the candidate's invitation token. The browser
editor's capture buffer ships keystroke events and content autosaves here,
and submits the attempt when done.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api.errors import http_error
from app.db.session import get_db
from app.models import Submission
from app.services import submission_service
from app.services.events import KeystrokeEvent
from app.services.submission_service import SubmissionError

router = APIRouter()


# ============== Pydantic Schemas ==============


class ChallengeSummary(BaseModel):
    """Schema for the challenge shown to the candidate."""

    id: int
    title: str
    description: str = ""
    language: str = "python"
    time_limit: Optional[int] = None  # minutes

    class Config:
        from_attributes = True


class SessionResponse(BaseModel):
    """Schema for the candidate's view of their submission."""

    submission_id: int
    status: str
    content: str
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    total_time_spent: int = 0  # focused seconds
    time_remaining: Optional[int] = None  # seconds, None if untimed
    candidate_name: Optional[str] = None
    challenge: Optional[ChallengeSummary] = None


class AppendEventsRequest(BaseModel):
    """Schema for a capture batch."""

    events: list[KeystrokeEvent]


class AppendEventsResponse(BaseModel):
    success: bool = True
    received: int
    stored: int


class ContentUpdateRequest(BaseModel):
    content: str


# ============== Helpers ==============


def _session_response(submission: Submission) -> SessionResponse:
    challenge = submission.challenge
    return SessionResponse(
        submission_id=submission.id,
        status=submission.status,
        content=submission.content or "",
        started_at=submission.started_at,
        submitted_at=submission.submitted_at,
        total_time_spent=submission.total_time_spent or 0,
        time_remaining=submission_service.time_remaining(submission),
        candidate_name=submission.candidate.name if submission.candidate else None,
        challenge=ChallengeSummary.model_validate(challenge) if challenge else None,
    )


# ============== API Endpoints ==============


@router.get("/{token}", response_model=SessionResponse)
async def get_session(token: str, db: Session = Depends(get_db)):
    """
    Load the candidate's submission.

    An in-progress attempt whose time limit has run out is submitted here,
    so the editor comes back read-only.
    """
    try:
        submission_service.auto_submit_if_expired(db, token)
        submission = submission_service.get_submission_by_token(db, token)
    except SubmissionError as exc:
        raise http_error(exc)
    return _session_response(submission)


@router.post("/{token}/events", response_model=AppendEventsResponse)
async def append_events(
    token: str,
    batch: AppendEventsRequest,
    db: Session = Depends(get_db),
):
    """
    Append a batch of keystroke events.

    Retried batches are safe: events already stored (same eventId) are
    skipped. Rejected with 409 once the submission is submitted.
    """
    try:
        stored = submission_service.append_events(db, token, batch.events)
    except SubmissionError as exc:
        raise http_error(exc)
    return AppendEventsResponse(received=len(batch.events), stored=stored)


@router.put("/{token}/content", response_model=SessionResponse)
async def update_content(
    token: str,
    request: ContentUpdateRequest,
    db: Session = Depends(get_db),
):
    """Autosave the editor content. The first save starts the attempt."""
    try:
        submission = submission_service.update_content(db, token, request.content)
    except SubmissionError as exc:
        raise http_error(exc)
    return _session_response(submission)


@router.post("/{token}/submit", response_model=SessionResponse)
async def submit_session(token: str, db: Session = Depends(get_db)):
    """Finalize the attempt and compute the focused time spent."""
    try:
        submission = submission_service.submit(db, token)
    except SubmissionError as exc:
        raise http_error(exc)
    return _session_response(submission)
