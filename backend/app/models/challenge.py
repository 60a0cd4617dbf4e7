from datetime import datetime

from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.orm import relationship

from app.db.base import Base


class Challenge(Base):
    """A take-home coding challenge candidates are invited to."""

    __tablename__ = "challenges"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, default="")
    language = Column(String, default="python")

    # Minutes; None means untimed
    time_limit = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    candidates = relationship("Candidate", back_populates="challenge")
    submissions = relationship("Submission", back_populates="challenge")
