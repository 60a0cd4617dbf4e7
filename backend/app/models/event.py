from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    BigInteger,
    String,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.db.base import Base


class KeystrokeEventRecord(Base):
    """
    Stored editor event for keystroke playback.

    Append-only. Rows are read back ordered by (timestamp, sequence); the
    autoincrement `sequence` breaks ties between equal timestamps.
    """

    __tablename__ = "keystroke_events"
    __table_args__ = (
        UniqueConstraint("submission_id", "event_id", name="uq_keystroke_event_id"),
    )

    sequence = Column(Integer, primary_key=True, autoincrement=True)
    submission_id = Column(Integer, ForeignKey("submissions.id"), index=True, nullable=False)

    # Client-assigned id, makes retried batches idempotent
    event_id = Column(String, nullable=False)

    type = Column(String, nullable=False)  # "FOCUS_IN", "CONTENT_SNAPSHOT", ...
    timestamp = Column(BigInteger, nullable=False, index=True)  # epoch milliseconds

    # NULL means absent, which is not the same as 0 / ""
    cursor_start = Column(Integer, nullable=True)
    cursor_end = Column(Integer, nullable=True)
    content = Column(Text, nullable=True)

    window_focus = Column(Boolean, default=True)
    received_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    submission = relationship("Submission", back_populates="events")
