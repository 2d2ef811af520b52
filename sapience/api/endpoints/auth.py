from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sapience.core.database import get_db
from sapience.core.config import settings
from sapience.core.auth import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    create_access_token,
    get_current_user,
)
from sapience.core.logging_config import log_pipeline_event
from sapience.models.user import User
import logging
from slowapi import Limiter
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


@router.post("/login")
@limiter.limit("10/minute")
async def login(request: Request, db: Session = Depends(get_db)):
    """Issue an access token for the default user (development mode only)."""
    if not settings.DEV_MODE:
        raise HTTPException(
            status_code=503,
            detail="Authentication not available. Set DEV_MODE=true for local development.",
        )

    logger.warning("Using insecure development authentication bypass")

    user = db.query(User).filter(User.username == settings.DEFAULT_USERNAME).first()
    if not user or not user.is_active:
        raise HTTPException(status_code=404, detail="Default user not found")

    access_token = create_access_token({"sub": user.id})

    log_pipeline_event(
        "auth.login.dev_mode",
        "Development mode token issued",
        level=logging.WARNING,
        user_id=user.id,
        event_category="authentication",
    )

    response = JSONResponse(
        content={"access_token": access_token, "token_type": "bearer"}
    )
    response.set_cookie(
        key="auth_token",
        value=access_token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    return response


@router.post("/logout")
async def logout():
    """Logout endpoint - clears the auth cookie."""
    response = JSONResponse(content={"message": "Logged out successfully"})
    response.delete_cookie(
        key="auth_token",
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
    )
    return response


@router.get("/me")
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current user information."""
    return {
        "id": current_user.id,
        "username": current_user.username,
        "email": current_user.email,
    }
