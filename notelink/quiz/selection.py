"""Deduplication and type-balanced selection of scored candidates."""
from __future__ import annotations

import math
import re
from typing import Iterable, List

from notelink.quiz.types import QuizItem, ScoredCandidate

DEFAULT_LIMIT = 20
TF_SHARE = 0.2
DEDUPE_KEY_MAX_CHARS = 120

LEADING_HEADING_RE = re.compile(r"^【.+?】")
WHITESPACE_RE = re.compile(r"\s+")
BRACKETS_RE = re.compile(r"[「」『』（）()［］\[\]【】]")


def normalize_question_key(question: str) -> str:
    s = LEADING_HEADING_RE.sub("", question or "", count=1)
    s = WHITESPACE_RE.sub("", s)
    s = BRACKETS_RE.sub("", s)
    return s[:DEDUPE_KEY_MAX_CHARS]


def dedupe_candidates(candidates: Iterable[ScoredCandidate]) -> List[ScoredCandidate]:
    seen = set()
    out: List[ScoredCandidate] = []
    for c in candidates:
        key = normalize_question_key(c.question)
        if key in seen:
            continue
        seen.add(key)
        out.append(c)
    return out


def rank_candidates(candidates: Iterable[ScoredCandidate]) -> List[ScoredCandidate]:
    # sorted() is stable, so equal scores keep their extraction order
    return sorted(candidates, key=lambda c: c.score, reverse=True)


def pick_with_variety(
    candidates: Iterable[ScoredCandidate],
    limit: int = DEFAULT_LIMIT,
    allow_true_false: bool = True,
) -> List[ScoredCandidate]:
    """Pick at most ``limit`` candidates, best first.

    With true/false allowed, tf items are capped at floor(limit * 0.2) and the
    rest of the budget goes to other types; any shortfall is backfilled from
    the unused candidates in score order regardless of type.
    """
    ranked = rank_candidates(candidates)
    if limit <= 0:
        return []
    if not allow_true_false:
        return ranked[:limit]

    tf = [c for c in ranked if c.type == "tf"]
    other = [c for c in ranked if c.type != "tf"]
    tf_cap = max(0, math.floor(limit * TF_SHARE))

    picked = other[: limit - tf_cap] + tf[:tf_cap]
    if len(picked) < limit:
        used = {id(c) for c in picked}
        remain = [c for c in ranked if id(c) not in used]
        picked.extend(remain[: limit - len(picked)])
    return picked[:limit]


def to_quiz_item(c: ScoredCandidate) -> QuizItem:
    source_line = c.candidate.source_line
    if isinstance(source_line, bool) or not isinstance(source_line, int):
        source_line = None
    return QuizItem(
        type=c.type or "short",
        question=c.question,
        answer=c.answer if c.answer is not None else "",
        source_line=source_line,
    )
