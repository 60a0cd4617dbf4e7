from datetime import datetime

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime
from sqlalchemy.orm import relationship

from app.db.base import Base


class Candidate(Base):
    """Invited candidate, addressed only through the opaque invitation token."""

    __tablename__ = "candidates"

    id = Column(Integer, primary_key=True, index=True)
    challenge_id = Column(Integer, ForeignKey("challenges.id"), index=True)

    name = Column(String)
    email = Column(String, index=True)

    # Tokenized invitation link: /challenge/<token>
    token = Column(String, unique=True, index=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    challenge = relationship("Challenge", back_populates="candidates")
    submission = relationship("Submission", back_populates="candidate", uselist=False)
