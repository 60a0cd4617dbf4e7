from app.models.challenge import Challenge
from app.models.candidate import Candidate
from app.models.submission import Submission, SubmissionStatus, TERMINAL_STATUSES
from app.models.event import KeystrokeEventRecord

__all__ = [
    "Challenge",
    "Candidate",
    "Submission",
    "SubmissionStatus",
    "TERMINAL_STATUSES",
    "KeystrokeEventRecord",
]
