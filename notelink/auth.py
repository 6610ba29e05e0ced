from datetime import datetime, timedelta
import os
from typing import Optional
import structlog

from fastapi import Depends, HTTPException, Request, Response, status
from jose import jwt, JWTError
from passlib.context import CryptContext
from sqlmodel import Session

from notelink.db import get_session
from notelink.models import User

logger = structlog.get_logger()

SECRET_KEY = os.getenv("JWT_SECRET", "dev-secret-change-me")
ALGORITHM = "HS256"
SESSION_EXPIRE_DAYS = int(os.getenv("SESSION_EXPIRE_DAYS", "7"))
SESSION_COOKIE = "sid"
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "false").lower() in ("1", "true", "yes")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # malformed or empty stored hash
        return False


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_session_token(user_id: int, username: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.utcnow() + (expires_delta or timedelta(days=SESSION_EXPIRE_DAYS))
    to_encode = {"sub": str(user_id), "name": username, "exp": expire, "type": "session"}
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    logger.info("session_token_created", user_id=user_id, expires_at=expire.isoformat())
    return encoded_jwt


def decode_session_token(token: str) -> Optional[dict]:
    """Verify a session token and return its payload, or None if unusable."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning("token_verification_failed", error=str(e))
        return None

    if payload.get("type") != "session":
        logger.warning("invalid_token_type", expected="session", actual=payload.get("type"))
        return None

    sub = payload.get("sub")
    if not sub or not str(sub).isdigit():
        logger.warning("invalid_token_subject", subject=sub)
        return None
    return payload


def start_session(response: Response, user_id: int, username: str) -> None:
    token = create_session_token(user_id, username)
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=SESSION_EXPIRE_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="lax",
    )


def end_session(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE)


def _token_from_request(request: Request) -> Optional[str]:
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        return token
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


def get_session_payload(request: Request) -> Optional[dict]:
    token = _token_from_request(request)
    if not token:
        return None
    return decode_session_token(token)


def get_session_user(request: Request, session: Session = Depends(get_session)) -> Optional[User]:
    """The user behind a valid session token, or None.

    A token whose user row is gone, or now belongs to someone with another
    username, does not authenticate.
    """
    payload = get_session_payload(request)
    if not payload:
        return None
    user = session.get(User, int(payload["sub"]))
    if user is None or user.username != payload.get("name"):
        logger.warning("stale_session_token", user_id=payload["sub"])
        return None
    return user


def get_optional_user_id(user: Optional[User] = Depends(get_session_user)) -> Optional[int]:
    return user.id if user else None


def require_user_id(user: Optional[User] = Depends(get_session_user)) -> int:
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="login required")
    return user.id
