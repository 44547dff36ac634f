from fastapi import APIRouter, Depends, Header, HTTPException, Request
from typing import Optional

from auth import build_demo_user, extract_token, issue_token, verify_token
from directory import User
from errors import TokenError
from logging_config import get_logger
from schemas.auth import LoginRequest, LoginResponse, UserResponse, VerifyResponse

logger = get_logger(__name__)

auth_router = APIRouter(prefix="/api/auth", tags=["auth"])


def get_current_user(authorization: Optional[str] = Header(None)) -> User:
    """Resolve the bearer token on an HTTP request into a verified user."""
    token = extract_token(authorization=authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Access token required")
    try:
        return verify_token(token)
    except TokenError as e:
        logger.warning(f"HTTP request rejected: {e.message}")
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def to_user_response(user: User) -> UserResponse:
    return UserResponse(id=user.id, name=user.name, email=user.email, photo=user.photo)


@auth_router.post("/login", response_model=LoginResponse)
async def login(login_request: LoginRequest, request: Request):
    # Password-less demo login: { "name": "...", "email": "...", "photo": "optional-url" }
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Login request from {client_host}, name: {login_request.name}")

    if not (login_request.name and login_request.name.strip()) or not (login_request.email and login_request.email.strip()):
        logger.warning(f"Login failed from {client_host}: name and email are required")
        raise HTTPException(status_code=400, detail="Name and email are required")

    user = build_demo_user(login_request.name, login_request.email, login_request.photo)
    token = issue_token(user)
    logger.info(f"User logged in: {user.name} ({user.id})")
    return LoginResponse(success=True, token=token, user=to_user_response(user))


@auth_router.get("/verify", response_model=VerifyResponse)
async def verify(user: User = Depends(get_current_user)):
    return VerifyResponse(success=True, user=to_user_response(user))


@auth_router.get("/profile", response_model=VerifyResponse)
async def profile(user: User = Depends(get_current_user)):
    return VerifyResponse(success=True, user=to_user_response(user))
