"""Session binding: signed tokens in, verified ``User`` records out."""
import random
import string
import time
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import quote

import jwt
from pydantic import ValidationError

from constants import DEFAULT_AVATAR_URL, JWT_ALGORITHM, JWT_SECRET, TOKEN_TTL_SECONDS
from directory import User
from errors import ExpiredToken, InvalidToken
from logging_config import get_logger

logger = get_logger(__name__)


def generate_user_id() -> str:
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"user_{int(time.time() * 1000)}_{suffix}"


def build_demo_user(name: str, email: str, photo: Optional[str] = None) -> User:
    """Password-less demo login: trust the submitted profile and mint a fresh user id."""
    name = name.strip()
    return User(
        id=generate_user_id(),
        name=name,
        email=email.strip(),
        photo=photo or DEFAULT_AVATAR_URL.format(name=quote(name)),
    )


def issue_token(user: User, ttl_seconds: Optional[int] = None, secret: str = JWT_SECRET) -> str:
    now = datetime.now(timezone.utc)
    ttl = TOKEN_TTL_SECONDS if ttl_seconds is None else ttl_seconds
    claims = {
        "userId": user.id,
        "name": user.name,
        "email": user.email,
        "photo": user.photo,
        "iat": now,
        "exp": now + timedelta(seconds=ttl),
    }
    token = jwt.encode(claims, secret, algorithm=JWT_ALGORITHM)
    logger.debug(f"Issued token for user {user.id}, expires in {ttl}s")
    return token


def verify_token(token: Optional[str], secret: str = JWT_SECRET) -> User:
    """Verify signature and expiry of ``token`` and build the user it names.

    Raises ``ExpiredToken`` for an expired token and ``InvalidToken`` for
    anything else that is wrong with it, including a missing token.
    """
    if not token:
        raise InvalidToken("Authentication token required")

    try:
        claims = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired token")
        raise ExpiredToken()
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected invalid token: {e}")
        raise InvalidToken()

    user_id = claims.get("userId")
    name = claims.get("name")
    if not isinstance(user_id, str) or not user_id.strip() or not isinstance(name, str) or not name.strip():
        logger.info("Rejected token with malformed claims")
        raise InvalidToken("Malformed token claims")

    try:
        return User(id=user_id, name=name, email=claims.get("email"), photo=claims.get("photo"))
    except ValidationError as e:
        logger.info(f"Rejected token with malformed claims: {e.error_count()} validation error(s)")
        raise InvalidToken("Malformed token claims")


def extract_token(authorization: Optional[str] = None, query_token: Optional[str] = None) -> Optional[str]:
    """Pick the bearer token from an Authorization header, falling back to a ``token`` query parameter."""
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
        if token:
            return token
    return query_token or None
