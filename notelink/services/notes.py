"""
Note persistence helpers: universities, visibility, cascading deletes.
"""
from __future__ import annotations

import re
import time
from typing import Iterable

import structlog
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from notelink.models import Note, NoteQuiz, University

logger = structlog.get_logger()

COMMUNITY_UNIVERSITY_NAME = "（コミュ）"
SLUG_STRIP_RE = re.compile(r"[^a-z0-9\-_ぁ-んァ-ン一-龥]")


def normalize_visibility(value) -> str:
    return "private" if value == "private" else "public"


def slugify_jp(value) -> str:
    s = re.sub(r"\s+", "-", str(value or "").strip().lower())
    return SLUG_STRIP_RE.sub("", s)[:80]


def community_slug(name: str) -> str:
    return f"{slugify_jp(name)}-{int(time.time() * 1000)}"


def get_or_create_university_id(session: Session, name) -> int:
    uni_name = str(name or "").strip()
    if not uni_name:
        raise ValueError("university_name is required")

    existing = session.exec(select(University).where(University.name == uni_name)).first()
    if existing:
        return existing.id

    uni = University(name=uni_name)
    session.add(uni)
    try:
        session.commit()
    except IntegrityError:
        # created concurrently by another request
        session.rollback()
        return session.exec(select(University).where(University.name == uni_name)).one().id
    session.refresh(uni)
    logger.info("university_created", university_id=uni.id, name=uni_name)
    return uni.id


def delete_quizzes_for_notes(session: Session, note_ids: Iterable[int]) -> int:
    ids = list(note_ids)
    if not ids:
        return 0
    quizzes = session.exec(select(NoteQuiz).where(NoteQuiz.note_id.in_(ids))).all()
    for q in quizzes:
        session.delete(q)
    return len(quizzes)


def delete_notes(session: Session, *conditions) -> int:
    """Delete notes matching ``conditions`` together with their quizzes. Does not commit."""
    notes = session.exec(select(Note).where(*conditions)).all()
    delete_quizzes_for_notes(session, [n.id for n in notes])
    for n in notes:
        session.delete(n)
    return len(notes)
