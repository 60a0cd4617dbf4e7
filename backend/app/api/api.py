"""
API Router Aggregator.

Combines all v1 API routers into a single router for the main app.
"""

from fastapi import APIRouter

from app.api.v1 import session, submissions, challenges

api_router = APIRouter()

# Include all v1 routers with their prefixes and tags
api_router.include_router(
    session.router,
    prefix="/session",
    tags=["Session"],
)

api_router.include_router(
    submissions.router,
    prefix="/submissions",
    tags=["Submissions"],
)

api_router.include_router(
    challenges.router,
    prefix="/challenges",
    tags=["Challenges"],
)
