from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select
import structlog

from notelink.db import get_session
from notelink.models import Credentials, Note, User, UserCommunity
from notelink.auth import (
    end_session, get_password_hash, get_session_user, require_user_id, start_session, verify_password,
)
from notelink.middleware.rate_limit import auth_limit
from notelink.services.cache import invalidate_public_notes
from notelink.services.notes import delete_notes

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["auth"])

PASSWORD_MIN_LENGTH = 6


@router.get("/me")
def me(user: Optional[User] = Depends(get_session_user)):
    if user is None:
        return {"loggedIn": False}
    return {"loggedIn": True, "id": user.id, "username": user.username}


@router.post("/register")
@auth_limit()
def register(request: Request, response: Response, body: Credentials, session: Session = Depends(get_session)):
    username = (body.username or "").strip()
    password = body.password or ""
    if not username or len(password) < PASSWORD_MIN_LENGTH:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid username/password")

    existing = session.exec(select(User).where(User.username == username)).first()
    if existing:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="username already used")

    user = User(username=username, password_hash=get_password_hash(password))
    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="username already used")
    session.refresh(user)

    start_session(response, user.id, user.username)
    logger.info("user_registered", user_id=user.id)
    return {"userId": user.id, "username": user.username}


@router.post("/login")
@auth_limit()
def login(request: Request, response: Response, body: Credentials, session: Session = Depends(get_session)):
    username = (body.username or "").strip()
    user = session.exec(select(User).where(User.username == username)).first()
    if not user or not verify_password(body.password or "", user.password_hash):
        logger.warning("login_failed", username=username)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid credentials")

    start_session(response, user.id, user.username)
    logger.info("user_logged_in", user_id=user.id)
    return {"userId": user.id, "username": user.username}


@router.post("/logout")
def logout(response: Response):
    end_session(response)
    return {"ok": True}


@router.delete("/account")
def delete_account(response: Response, user_id: int = Depends(require_user_id), session: Session = Depends(get_session)):
    """Delete the user's notes (with quizzes), memberships and the user itself."""
    try:
        removed_notes = delete_notes(session, Note.user_id == user_id)
        for membership in session.exec(select(UserCommunity).where(UserCommunity.user_id == user_id)).all():
            session.delete(membership)
        user = session.get(User, user_id)
        if user:
            session.delete(user)
        session.commit()
    except Exception:
        session.rollback()
        raise

    invalidate_public_notes()
    end_session(response)
    logger.info("account_deleted", user_id=user_id, notes_deleted=removed_notes)
    return {"ok": True}
