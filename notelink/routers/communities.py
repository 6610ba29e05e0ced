from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session, select
import structlog

from notelink.db import get_session
from notelink.auth import get_password_hash, require_user_id, verify_password
from notelink.models import Community, CommunityCreate, CommunityJoin, Note, UserCommunity
from notelink.services.access import get_membership, is_community_admin
from notelink.services.notes import community_slug, delete_notes

logger = structlog.get_logger()

router = APIRouter(prefix="/api/communities", tags=["communities"])

COMMUNITY_NAME_MAX = 100


@router.post("", status_code=status.HTTP_201_CREATED)
def create_community(body: CommunityCreate, user_id: int = Depends(require_user_id), session: Session = Depends(get_session)):
    name = (body.name or "").strip()
    join_code = body.join_code or ""
    if not name or not join_code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing fields")
    if len(name) > COMMUNITY_NAME_MAX:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name too long")

    community = Community(name=name, slug=community_slug(name), join_code_hash=get_password_hash(join_code))
    try:
        session.add(community)
        session.flush()
        # the creator administers the community
        session.add(UserCommunity(user_id=user_id, community_id=community.id, role="admin"))
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(community)

    logger.info("community_created", community_id=community.id, user_id=user_id)
    return {"id": community.id, "name": community.name}


@router.get("")
def search_communities(q: str = "", user_id: int = Depends(require_user_id), session: Session = Depends(get_session)):
    query = select(Community)
    term = q.strip()
    if term:
        query = query.where(Community.name.contains(term))
    rows = session.exec(query.order_by(Community.id.desc()).limit(50)).all()
    return [{"id": c.id, "name": c.name} for c in rows]


@router.post("/join")
def join_community(body: CommunityJoin, user_id: int = Depends(require_user_id), session: Session = Depends(get_session)):
    if not body.community_id or not body.join_code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing fields")

    community = session.get(Community, body.community_id)
    if not community:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="community not found")
    if not verify_password(body.join_code, community.join_code_hash):
        logger.warning("community_join_rejected", community_id=community.id, user_id=user_id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="invalid join code")

    # joining twice is a no-op
    if not get_membership(session, user_id, community.id):
        session.add(UserCommunity(user_id=user_id, community_id=community.id, role="member"))
        session.commit()
        logger.info("community_joined", community_id=community.id, user_id=user_id)

    return {"ok": True, "id": community.id, "name": community.name}


@router.get("/mine")
def my_communities(user_id: int = Depends(require_user_id), session: Session = Depends(get_session)):
    rows = session.exec(
        select(Community, UserCommunity)
        .join(UserCommunity, UserCommunity.community_id == Community.id)
        .where(UserCommunity.user_id == user_id)
        .order_by(UserCommunity.joined_at.desc())
    ).all()
    return [
        {"id": c.id, "name": c.name, "role": uc.role, "joined_at": uc.joined_at.isoformat()}
        for c, uc in rows
    ]


@router.post("/{community_id}/leave")
def leave_community(community_id: int, user_id: int = Depends(require_user_id), session: Session = Depends(get_session)):
    membership = get_membership(session, user_id, community_id)
    if not membership:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="not a member")

    if membership.role == "admin":
        admins = session.exec(
            select(UserCommunity).where(UserCommunity.community_id == community_id, UserCommunity.role == "admin")
        ).all()
        if len(admins) <= 1:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="the last admin cannot leave; delete the community instead")

    session.delete(membership)
    session.commit()
    logger.info("community_left", community_id=community_id, user_id=user_id)
    return {"ok": True}


@router.delete("/{community_id}")
def delete_community(community_id: int, user_id: int = Depends(require_user_id), session: Session = Depends(get_session)):
    if not is_community_admin(session, user_id, community_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="admin only")

    community = session.get(Community, community_id)
    if not community:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="community not found")

    try:
        removed_notes = delete_notes(session, Note.community_id == community_id)
        for membership in session.exec(select(UserCommunity).where(UserCommunity.community_id == community_id)).all():
            session.delete(membership)
        session.delete(community)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info("community_deleted", community_id=community_id, user_id=user_id, notes_deleted=removed_notes)
    return {"ok": True, "deleted": community_id}
