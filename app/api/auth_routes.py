"""Auth API — token issuance, current user."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from app.config import get_settings
from app.errors import AuthInvalidError
from app.schemas import TokenRequest, TokenResponse, UserInfo
from app.services.auth import (
    UserStore,
    create_access_token,
    get_current_user,
    get_user_store,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/token", response_model=TokenResponse)
async def issue_token(data: TokenRequest, users: UserStore = Depends(get_user_store)):
    """Authenticate and return a JWT carrying the caller's role."""
    try:
        role = users.authenticate(data.username, data.password)
    except AuthInvalidError as exc:
        logger.warning(f"Rejected login for {data.username!r}")
        raise HTTPException(401, str(exc))

    settings = get_settings()
    token = create_access_token({"sub": data.username, "role": role})
    logger.info(f"Issued {role} token for {data.username}")
    return TokenResponse(token=token, expires_in=settings.jwt_expire_minutes * 60)


@router.get("/me", response_model=UserInfo)
async def get_me(user: dict = Depends(get_current_user)):
    """Get current authenticated user info."""
    return UserInfo(
        username=user.get("sub", ""),
        role=user.get("role", ""),
    )
