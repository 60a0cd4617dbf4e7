"""
Challenge API endpoints.

Minimal reviewer-side helpers to create a challenge and issue tokenized
candidate invitations. Email delivery of the link happens elsewhere.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.errors import http_error
from app.core.security import get_current_reviewer
from app.db.session import get_db
from app.services import submission_service
from app.services.submission_service import SubmissionError

router = APIRouter()


# ============== Pydantic Schemas ==============


class ChallengeCreateRequest(BaseModel):
    title: str = Field(min_length=1)
    description: str = ""
    language: str = "python"
    time_limit: Optional[int] = Field(default=None, gt=0)  # minutes


class ChallengeResponse(BaseModel):
    id: int
    title: str
    description: str
    language: str
    time_limit: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class InviteRequest(BaseModel):
    name: str
    email: str


class InviteResponse(BaseModel):
    candidate_id: int
    submission_id: int
    token: str
    invite_path: str


# ============== API Endpoints ==============


@router.post("", response_model=ChallengeResponse, status_code=status.HTTP_201_CREATED)
async def create_challenge(
    request: ChallengeCreateRequest,
    db: Session = Depends(get_db),
    reviewer: str = Depends(get_current_reviewer),
):
    challenge = submission_service.create_challenge(
        db,
        title=request.title,
        description=request.description,
        language=request.language,
        time_limit=request.time_limit,
    )
    return challenge


@router.post("/{challenge_id}/invite", response_model=InviteResponse, status_code=status.HTTP_201_CREATED)
async def invite_candidate(
    challenge_id: int,
    request: InviteRequest,
    db: Session = Depends(get_db),
    reviewer: str = Depends(get_current_reviewer),
):
    """Create a candidate and an empty submission reachable via the returned token."""
    if "@" not in request.email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid email format",
        )

    try:
        candidate = submission_service.invite_candidate(db, challenge_id, request.name, request.email)
    except SubmissionError as exc:
        raise http_error(exc)

    return InviteResponse(
        candidate_id=candidate.id,
        submission_id=candidate.submission.id,
        token=candidate.token,
        invite_path=f"/challenge/{candidate.token}",
    )
