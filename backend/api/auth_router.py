"""API routes for registration, login and account removal."""

import logging
import uuid

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.deps import unwrap_or_raise
from backend.api.schemas import AuthResponse, DeleteAccountRequest, LoginRequest, RegisterRequest
from backend.auth import AuthService, AuthSession, get_current_user_id
from backend.database import get_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _to_response(session: AuthSession) -> AuthResponse:
    return AuthResponse(
        user_id=session.user_id,
        email=session.email,
        token=session.token,
        expires_at=session.expires_at,
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    db: AsyncSession = Depends(get_session),
) -> AuthResponse:
    session = unwrap_or_raise(await AuthService(db).register(request.email, request.password))
    return _to_response(session)


@router.post("/login", response_model=AuthResponse)
async def login(
    request: LoginRequest,
    db: AsyncSession = Depends(get_session),
) -> AuthResponse:
    session = unwrap_or_raise(await AuthService(db).login(request.email, request.password))
    return _to_response(session)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> Response:
    unwrap_or_raise(await AuthService(db).logout(user_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/account", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(
    request: DeleteAccountRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
) -> Response:
    """Delete the caller's account and everything it owns."""
    unwrap_or_raise(await AuthService(db).delete_account(user_id, request.password))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
