"""
Membership and note permission checks shared by the routers.
"""
from typing import Optional

from fastapi import HTTPException, status
from sqlmodel import Session, select

from notelink.models import Note, UserCommunity


def get_membership(session: Session, user_id: int, community_id: int) -> Optional[UserCommunity]:
    return session.exec(
        select(UserCommunity).where(
            UserCommunity.user_id == user_id,
            UserCommunity.community_id == community_id,
        )
    ).first()


def user_belongs_to_community(session: Session, user_id: Optional[int], community_id: int) -> bool:
    if user_id is None:
        return False
    return get_membership(session, user_id, community_id) is not None


def is_community_admin(session: Session, user_id: int, community_id: int) -> bool:
    membership = get_membership(session, user_id, community_id)
    return membership is not None and membership.role == "admin"


def ensure_can_view_note(session: Session, user_id: Optional[int], note: Optional[Note]) -> Note:
    """Community notes need membership, private notes need authorship."""
    if not note:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")

    if note.community_id:
        if user_id is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="login required")
        if not user_belongs_to_community(session, user_id, note.community_id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")
        return note

    if note.visibility == "private":
        if user_id is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="login required")
        if note.user_id != user_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")

    return note


def ensure_can_edit_note(user_id: Optional[int], note: Optional[Note]) -> Note:
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="login required")
    if not note:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    if note.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")
    return note
