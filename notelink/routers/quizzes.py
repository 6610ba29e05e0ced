from datetime import datetime
import os
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlmodel import Session, select
import structlog

from notelink.db import get_session
from notelink.auth import get_optional_user_id, require_user_id
from notelink.middleware.rate_limit import quiz_generation_limit
from notelink.models import Note, NoteQuiz, QuizGenerateRequest, QuizUpdate
from notelink.quiz.pipeline import generate_rule_quizzes
from notelink.quiz.types import QuizOptions
from notelink.services.access import ensure_can_edit_note, ensure_can_view_note
from notelink.services.llm import QuizGenerationError, generate_quizzes_with_ai
from notelink.services.logging import log_performance
from notelink.services.monitoring import QUIZ_GENERATION_REQUESTS, QUIZZES_GENERATED
from notelink.services.notes import delete_quizzes_for_notes

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["quizzes"])

# Defaults for /generate; a request body may override them
QUIZ_GENERATE_LIMIT = int(os.getenv("QUIZ_GENERATE_LIMIT", "20"))
QUIZ_MIN_SCORE = int(os.getenv("QUIZ_MIN_SCORE", "3"))
QUIZ_LIMIT_MAX = 100
QUIZ_TYPE_MAX = 20


def quiz_to_dict(q: NoteQuiz) -> dict:
    return {
        "id": q.id,
        "type": q.type,
        "question": q.question,
        "answer": q.answer,
        "source_line": q.source_line,
        "created_at": q.created_at.isoformat() if q.created_at else None,
        "updated_at": q.updated_at.isoformat() if q.updated_at else None,
    }


def _load_quiz_for_owner(session: Session, quiz_id: int, user_id: int) -> NoteQuiz:
    quiz = session.get(NoteQuiz, quiz_id)
    if not quiz:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    note = session.get(Note, quiz.note_id)
    if not note or note.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")
    return quiz


def resolve_rule_options(body: QuizGenerateRequest) -> QuizOptions:
    limit = QUIZ_GENERATE_LIMIT if body.limit is None else body.limit
    if not 1 <= limit <= QUIZ_LIMIT_MAX:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"limit must be between 1 and {QUIZ_LIMIT_MAX}")
    return QuizOptions(
        limit=limit,
        min_score=QUIZ_MIN_SCORE if body.min_score is None else body.min_score,
        allow_true_false=True if body.allow_true_false is None else body.allow_true_false,
    )


@log_performance("rule_quiz_generation")
def run_rule_engine(note: Note, options: QuizOptions) -> List[dict]:
    return [item.to_dict() for item in generate_rule_quizzes(note.body_raw, options)]


@log_performance("ai_quiz_generation")
def run_ai_generator(note: Note) -> List[dict]:
    return generate_quizzes_with_ai(note.title, note.course_name, note.body_raw)


@router.get("/notes/{note_id}/quizzes")
def list_quizzes(note_id: int, user_id: Optional[int] = Depends(get_optional_user_id), session: Session = Depends(get_session)):
    ensure_can_view_note(session, user_id, session.get(Note, note_id))
    quizzes = session.exec(select(NoteQuiz).where(NoteQuiz.note_id == note_id).order_by(NoteQuiz.id.asc())).all()
    return [quiz_to_dict(q) for q in quizzes]


@router.post("/notes/{note_id}/quizzes/generate")
@quiz_generation_limit()
def generate_quizzes(
    request: Request,
    note_id: int,
    body: Optional[QuizGenerateRequest] = None,
    user_id: int = Depends(require_user_id),
    session: Session = Depends(get_session),
):
    """Generate quizzes for a note and store them.

    ``source="rule"`` runs the pattern engine; ``source="ai"`` asks the chat
    model and falls back to the pattern engine when that fails.
    ``mode="replace"`` drops the note's existing quizzes first.
    """
    body = body or QuizGenerateRequest()
    note = ensure_can_edit_note(user_id, session.get(Note, note_id))
    if body.mode not in ("replace", "append"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="mode must be replace or append")
    if body.source not in ("rule", "ai"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="source must be rule or ai")

    options = resolve_rule_options(body)
    source = body.source
    fallback = False

    if source == "ai":
        try:
            items = run_ai_generator(note)
            QUIZ_GENERATION_REQUESTS.labels(source="ai", status="success").inc()
        except QuizGenerationError as e:
            QUIZ_GENERATION_REQUESTS.labels(source="ai", status="error").inc()
            logger.warning("ai_quiz_fallback_to_rules", note_id=note.id, error=str(e))
            items = []
        if not items:
            source, fallback = "rule", True

    if source == "rule":
        items = run_rule_engine(note, options)
        QUIZ_GENERATION_REQUESTS.labels(source="rule", status="success").inc()

    try:
        if body.mode == "replace":
            delete_quizzes_for_notes(session, [note.id])
        for item in items:
            source_line = item.get("source_line")
            session.add(NoteQuiz(
                note_id=note.id,
                type=str(item.get("type") or "short")[:QUIZ_TYPE_MAX],
                question=item["question"],
                answer=item.get("answer") or "",
                source_line=None if source_line is None else str(source_line),
            ))
        session.commit()
    except Exception:
        session.rollback()
        raise

    QUIZZES_GENERATED.labels(source=source).inc(len(items))
    logger.info(
        "quizzes_generated",
        note_id=note.id,
        source=source,
        fallback=fallback,
        mode=body.mode,
        inserted=len(items),
    )
    return {"ok": True, "inserted": len(items), "source": source, "fallback": fallback}


@router.patch("/quizzes/{quiz_id}")
def update_quiz(quiz_id: int, body: QuizUpdate, user_id: int = Depends(require_user_id), session: Session = Depends(get_session)):
    quiz = _load_quiz_for_owner(session, quiz_id, user_id)

    question = (body.question or "").strip()
    if not question:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="question required")

    quiz.question = question
    quiz.answer = (body.answer or "").strip()
    new_type = (body.type or "").strip()
    if new_type:
        quiz.type = new_type[:QUIZ_TYPE_MAX]
    quiz.updated_at = datetime.utcnow()
    session.add(quiz)
    session.commit()
    return {"ok": True}


@router.delete("/quizzes/{quiz_id}")
def delete_quiz(quiz_id: int, user_id: int = Depends(require_user_id), session: Session = Depends(get_session)):
    quiz = _load_quiz_for_owner(session, quiz_id, user_id)
    session.delete(quiz)
    session.commit()
    return {"ok": True}
