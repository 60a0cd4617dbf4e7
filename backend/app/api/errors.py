"""Translate lifecycle errors into HTTP responses."""

from fastapi import HTTPException, status

from app.services.submission_service import (
    InvalidTokenError,
    InvalidTransitionError,
    SubmissionError,
    SubmissionLockedError,
    SubmissionNotFoundError,
)

STATUS_BY_ERROR = {
    InvalidTokenError: status.HTTP_404_NOT_FOUND,
    SubmissionNotFoundError: status.HTTP_404_NOT_FOUND,
    SubmissionLockedError: status.HTTP_409_CONFLICT,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
}


def http_error(exc: SubmissionError) -> HTTPException:
    return HTTPException(
        status_code=STATUS_BY_ERROR.get(type(exc), status.HTTP_400_BAD_REQUEST),
        detail=str(exc),
    )
