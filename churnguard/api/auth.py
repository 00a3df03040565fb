"""
FastAPI router module for dashboard session endpoints.

Key Endpoints:
- POST /auth/login: Exchange the dashboard password for a session token
- POST /auth/logout: Drop the caller's session (always succeeds)
- GET /auth/check: Confirm the bearer token is live
- POST /auth/change-password: Replace the dashboard password

Clients send the token back as 'Authorization: Bearer <sessionId>'.

Password hashing is CPU-bound, so login and change-password run it in a
worker thread to keep the event loop responsive.
"""

import asyncio
import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Header, HTTPException

from churnguard.core.dependencies import CurrentSessionDep, SessionStoreDep, extract_bearer_token
from churnguard.models.schemas import (
    AuthCheckResponse,
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    SessionUser,
)
from churnguard.services.auth import AuthenticationError, PasswordPolicyError


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login", response_model=LoginResponse)
async def login(request: LoginRequest, store: SessionStoreDep) -> LoginResponse:
    """
    Open a session.

    Raises:
        HTTPException 401: If the password is wrong.
    """
    try:
        record = await asyncio.to_thread(store.login, request.password)
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e))

    return LoginResponse(
        message="Login successful",
        session_id=record.token,
        user=SessionUser(id=record.user_id),
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    store: SessionStoreDep,
    authorization: Annotated[Optional[str], Header()] = None,
) -> MessageResponse:
    store.logout(extract_bearer_token(authorization))
    return MessageResponse(message="Logged out successfully")


@router.get("/check", response_model=AuthCheckResponse)
async def check(session: CurrentSessionDep) -> AuthCheckResponse:
    return AuthCheckResponse(user=SessionUser(id=session.user_id), authenticated=True)


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    request: ChangePasswordRequest,
    store: SessionStoreDep,
    session: CurrentSessionDep,
) -> MessageResponse:
    """
    Replace the dashboard password. Existing sessions stay valid.

    Raises:
        HTTPException 400: If the current password is wrong or the new one is too short.
    """
    try:
        await asyncio.to_thread(store.change_password, request.current_password, request.new_password)
    except (AuthenticationError, PasswordPolicyError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"Password changed by {session.user_id}")
    return MessageResponse(message="Password changed successfully")


__all__ = ["router"]
