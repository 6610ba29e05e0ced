"""
Rule-based quiz generation.

    text -> normalize -> units -> candidates -> score -> filter -> dedupe -> select

Everything here is a pure function of its input; nothing is cached or shared
between calls, so the pipeline can run from any request thread.
"""
from __future__ import annotations

from typing import List, Optional

import structlog

from notelink.quiz.normalizer import coerce_text, fallback_candidate, normalize_lines
from notelink.quiz.rules import extract_candidates
from notelink.quiz.scoring import DEFAULT_MIN_SCORE, filter_candidates, score_candidates
from notelink.quiz.selection import DEFAULT_LIMIT, dedupe_candidates, pick_with_variety, to_quiz_item
from notelink.quiz.types import QuizItem, QuizOptions, ScoredCandidate
from notelink.quiz.units import build_units

logger = structlog.get_logger()


def resolve_options(
    options: Optional[QuizOptions] = None,
    limit: Optional[int] = None,
    min_score: Optional[int] = None,
    allow_true_false: Optional[bool] = None,
) -> QuizOptions:
    base = options or QuizOptions(limit=DEFAULT_LIMIT, min_score=DEFAULT_MIN_SCORE)
    return QuizOptions(
        limit=base.limit if limit is None else int(limit),
        min_score=base.min_score if min_score is None else int(min_score),
        allow_true_false=base.allow_true_false if allow_true_false is None else bool(allow_true_false),
    )


def _fallback_items(body_text: str, limit: int) -> List[QuizItem]:
    candidate = fallback_candidate(body_text)
    if candidate is None or limit <= 0:
        return []
    return [to_quiz_item(ScoredCandidate(candidate=candidate, score=0))]


def generate_rule_quizzes(
    body_text,
    options: Optional[QuizOptions] = None,
    *,
    limit: Optional[int] = None,
    min_score: Optional[int] = None,
    allow_true_false: Optional[bool] = None,
) -> List[QuizItem]:
    """Generate quiz items from a note body without calling any AI service.

    Returns at most ``limit`` items with no duplicate questions. An empty
    list is a normal result for text with nothing to extract.
    """
    opts = resolve_options(options, limit, min_score, allow_true_false)
    text = coerce_text(body_text)

    lines = normalize_lines(text)
    if not lines:
        return _fallback_items(text, opts.limit)

    units = build_units(lines)
    candidates = extract_candidates(units)
    scored = filter_candidates(score_candidates(candidates), opts.min_score)
    picked = pick_with_variety(dedupe_candidates(scored), opts.limit, opts.allow_true_false)

    items = [to_quiz_item(c) for c in picked]
    if not items:
        # Headings and code blocks never reach the fallback sentence
        items = _fallback_items("".join(u.text for u in units), opts.limit)

    logger.debug(
        "rule_quizzes_generated",
        lines=len(lines),
        candidates=len(candidates),
        kept=len(scored),
        selected=len(items),
    )
    return items
