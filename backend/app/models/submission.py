from datetime import datetime
from enum import Enum

from sqlalchemy import Column, Integer, String, ForeignKey, Text, DateTime
from sqlalchemy.orm import relationship

from app.db.base import Base


class SubmissionStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


TERMINAL_STATUSES = frozenset({
    SubmissionStatus.SUBMITTED,
    SubmissionStatus.UNDER_REVIEW,
    SubmissionStatus.ACCEPTED,
    SubmissionStatus.REJECTED,
})


class Submission(Base):
    """
    One candidate's attempt at a challenge.

    `content` is the authoritative latest document. Once the status is
    terminal it is frozen and becomes the ground truth for playback past
    the last recorded event.
    """

    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, index=True)
    candidate_id = Column(Integer, ForeignKey("candidates.id"), unique=True)
    challenge_id = Column(Integer, ForeignKey("challenges.id"), index=True)

    content = Column(Text, default="")
    status = Column(String, default=SubmissionStatus.NOT_STARTED.value)

    started_at = Column(DateTime, nullable=True)
    submitted_at = Column(DateTime, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)

    # Focused seconds, computed from FOCUS_IN/FOCUS_OUT pairs on submit
    total_time_spent = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    candidate = relationship("Candidate", back_populates="submission")
    challenge = relationship("Challenge", back_populates="submissions")
    events = relationship(
        "KeystrokeEventRecord",
        back_populates="submission",
        order_by="KeystrokeEventRecord.sequence",
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in {s.value for s in TERMINAL_STATUSES}
