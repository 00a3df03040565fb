"""
ChurnGuard API package initialization.

This package contains FastAPI router modules for the dashboard:
- auth: Login, logout, session check and password change
- accounts: Classified account table, account risk history, latest risk
  scores and risk distribution
"""

from fastapi import APIRouter

from churnguard.api.accounts import router as accounts_router
from churnguard.api.auth import router as auth_router

# Create main API router
api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["auth"])
api_router.include_router(accounts_router, tags=["accounts"])

__all__ = [
    "api_router",
    "accounts_router",
    "auth_router",
]
