from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session, select
import structlog

from notelink.db import get_session
from notelink.auth import get_optional_user_id, require_user_id
from notelink.models import Community, Note, NoteDraft, University, UserCommunity, VisibilityUpdate
from notelink.services.access import ensure_can_edit_note, ensure_can_view_note, user_belongs_to_community
from notelink.services.cache import cache, invalidate_public_notes, public_notes_key
from notelink.services.markdown import build_markdown
from notelink.services.notes import (
    COMMUNITY_UNIVERSITY_NAME, delete_notes, get_or_create_university_id, normalize_visibility,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["notes"])

REQUIRED_FIELDS = ("course_name", "lecture_no", "lecture_date", "title", "body_raw")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def note_summary(note: Note) -> dict:
    return {
        "id": note.id,
        "user_id": note.user_id,
        "community_id": note.community_id,
        "university_id": note.university_id,
        "visibility": note.visibility,
        "author_name": note.author_name,
        "course_name": note.course_name,
        "lecture_no": note.lecture_no,
        "lecture_date": note.lecture_date,
        "title": note.title,
        "created_at": _iso(note.created_at),
    }


def note_detail(note: Note) -> dict:
    data = note_summary(note)
    data.update({
        "body_raw": note.body_raw,
        "body_md": note.body_md,
        "updated_at": _iso(note.updated_at),
    })
    return data


def _missing_fields(draft: NoteDraft, *extra: str) -> bool:
    return any(not str(getattr(draft, f) or "").strip() for f in REQUIRED_FIELDS + extra)


@router.get("/notes")
def list_public_notes(university_name: str = "", course: str = "", session: Session = Depends(get_session)):
    """Public, non-community notes of one university (community notes never leak here)."""
    university_name = university_name.strip()
    course = course.strip()
    if not university_name:
        return []

    key = public_notes_key(university_name, course)
    cached = cache.get(key)
    if cached is not None:
        return cached

    university = session.exec(select(University).where(University.name == university_name)).first()
    if not university:
        return []

    query = select(Note).where(
        Note.university_id == university.id,
        Note.visibility == "public",
        Note.community_id == None,  # noqa: E711
    )
    if course:
        query = query.where(Note.course_name.contains(course))
    notes = session.exec(query.order_by(Note.lecture_date.desc(), Note.id.desc())).all()

    result = [note_summary(n) for n in notes]
    cache.set(key, result)
    return result


@router.get("/community-notes")
def list_community_notes(user_id: int = Depends(require_user_id), session: Session = Depends(get_session)):
    community_ids = session.exec(select(UserCommunity.community_id).where(UserCommunity.user_id == user_id)).all()
    if not community_ids:
        return []

    rows = session.exec(
        select(Note, Community)
        .join(Community, Community.id == Note.community_id)
        .where(Note.community_id.in_(community_ids))
        .order_by(Note.lecture_date.desc(), Note.id.desc())
    ).all()
    return [{**note_summary(n), "community_name": c.name} for n, c in rows]


@router.get("/my-notes")
def list_my_notes(user_id: int = Depends(require_user_id), session: Session = Depends(get_session)):
    notes = session.exec(
        select(Note).where(Note.user_id == user_id).order_by(Note.lecture_date.desc(), Note.id.desc())
    ).all()
    return [note_summary(n) for n in notes]


@router.get("/notes/{note_id}")
def get_note(note_id: int, user_id: Optional[int] = Depends(get_optional_user_id), session: Session = Depends(get_session)):
    note = ensure_can_view_note(session, user_id, session.get(Note, note_id))
    return note_detail(note)


@router.post("/notes/preview")
def preview_note(draft: NoteDraft):
    """Render the Markdown for a draft without saving it."""
    if _missing_fields(draft):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing fields")
    body_md = build_markdown(draft.course_name, draft.lecture_no, draft.lecture_date, draft.title, draft.body_raw)
    return {"body_md": body_md}


@router.post("/notes", status_code=status.HTTP_201_CREATED)
def create_note(draft: NoteDraft, user_id: int = Depends(require_user_id), session: Session = Depends(get_session)):
    community_id = draft.community_id or None
    university_name = (draft.university_name or "").strip()
    if community_id and not university_name:
        university_name = COMMUNITY_UNIVERSITY_NAME

    if not university_name or _missing_fields(draft):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing fields")

    if community_id and not user_belongs_to_community(session, user_id, community_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="not a community member")

    note = Note(
        user_id=user_id,
        community_id=community_id,
        university_id=get_or_create_university_id(session, university_name),
        author_name=(draft.author_name or "").strip() or None,
        course_name=draft.course_name.strip(),
        lecture_no=str(draft.lecture_no).strip(),
        lecture_date=str(draft.lecture_date).strip(),
        title=draft.title.strip(),
        body_raw=draft.body_raw,
        body_md=build_markdown(draft.course_name, draft.lecture_no, draft.lecture_date, draft.title, draft.body_raw),
        visibility=normalize_visibility(draft.visibility),
    )
    session.add(note)
    session.commit()
    session.refresh(note)

    if not community_id:
        invalidate_public_notes()
    logger.info("note_created", note_id=note.id, user_id=user_id, community_id=community_id)
    return {"id": note.id}


@router.patch("/notes/{note_id}")
def update_note(note_id: int, draft: NoteDraft, user_id: int = Depends(require_user_id), session: Session = Depends(get_session)):
    note = ensure_can_edit_note(user_id, session.get(Note, note_id))
    if _missing_fields(draft):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing fields")

    community_id = draft.community_id or None
    if community_id and community_id != note.community_id and not user_belongs_to_community(session, user_id, community_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="not a community member")

    university_name = (draft.university_name or "").strip()
    if community_id and not university_name:
        university_name = COMMUNITY_UNIVERSITY_NAME
    if university_name:
        note.university_id = get_or_create_university_id(session, university_name)

    note.community_id = community_id
    note.author_name = (draft.author_name or "").strip() or None
    note.course_name = draft.course_name.strip()
    note.lecture_no = str(draft.lecture_no).strip()
    note.lecture_date = str(draft.lecture_date).strip()
    note.title = draft.title.strip()
    note.body_raw = draft.body_raw
    note.body_md = build_markdown(note.course_name, note.lecture_no, note.lecture_date, note.title, note.body_raw)
    if draft.visibility is not None:
        note.visibility = normalize_visibility(draft.visibility)
    note.updated_at = datetime.utcnow()

    session.add(note)
    session.commit()

    invalidate_public_notes()
    logger.info("note_updated", note_id=note.id, user_id=user_id)
    return {"ok": True, "id": note.id}


@router.delete("/notes/{note_id}")
def delete_note(note_id: int, user_id: int = Depends(require_user_id), session: Session = Depends(get_session)):
    ensure_can_edit_note(user_id, session.get(Note, note_id))
    delete_notes(session, Note.id == note_id)
    session.commit()

    invalidate_public_notes()
    logger.info("note_deleted", note_id=note_id, user_id=user_id)
    return {"ok": True}


@router.patch("/notes/{note_id}/visibility")
def update_visibility(note_id: int, body: VisibilityUpdate, user_id: int = Depends(require_user_id), session: Session = Depends(get_session)):
    note = ensure_can_edit_note(user_id, session.get(Note, note_id))
    if note.community_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="community note visibility cannot be changed")

    note.visibility = normalize_visibility(body.visibility)
    note.updated_at = datetime.utcnow()
    session.add(note)
    session.commit()

    invalidate_public_notes()
    return {"ok": True, "visibility": note.visibility}
