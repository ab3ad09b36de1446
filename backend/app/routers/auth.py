"""
Authentication Router
Handles registration, login and current-user info.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.errors import AuthenticationError, AuthorizationError, ConflictError
from app.core.security import (
    get_password_hash, verify_password, create_access_token, get_current_user
)
from app.models.user import User
from app.models.schemas import UserRegister, UserLogin, UserResponse, TokenResponse

logger = logging.getLogger("studyguard.auth")

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


def _token_for(user: User) -> TokenResponse:
    token = create_access_token({"sub": str(user.id), "role": user.role})
    return TokenResponse(access_token=token, user=UserResponse.model_validate(user))


@router.post("/register", status_code=201)
def register(data: UserRegister, db: Session = Depends(get_db)):
    """Register a new user"""
    if db.query(User).filter(User.email == data.email).first():
        raise ConflictError("Email already registered")

    user = User(
        name=data.name,
        email=data.email,
        role=data.role,
        hashed_password=get_password_hash(data.password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered %s user %s", user.role, user.id)

    return {"success": True, "data": _token_for(user)}


@router.post("/login")
def login(data: UserLogin, db: Session = Depends(get_db)):
    """Login and get JWT token"""
    user = db.query(User).filter(User.email == data.email.strip().lower()).first()
    if not user or not verify_password(data.password, user.hashed_password):
        raise AuthenticationError("Incorrect email or password")
    if not user.is_active:
        raise AuthorizationError("Account is deactivated")

    return {"success": True, "data": _token_for(user)}


@router.get("/me")
def get_me(current_user: User = Depends(get_current_user)):
    """Get current user profile"""
    return {"success": True, "data": UserResponse.model_validate(current_user)}


@router.post("/logout")
def logout(current_user: User = Depends(get_current_user)):
    """Logout (client should discard token)"""
    return {"success": True, "message": "Logged out successfully"}
