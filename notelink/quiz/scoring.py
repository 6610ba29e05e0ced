"""Candidate scoring and quality filtering."""
from __future__ import annotations

import re
from typing import Iterable, List

from notelink.quiz.types import Candidate, ScoredCandidate

DEFAULT_MIN_SCORE = 3

KIND_BASE_SCORES = {
    "def": 6,
    "def_blank": 5,
    "class2": 5,
    "list": 4,
    "cause": 4,
    "steps": 4,
    "tf": 2,
}

QUESTION_IDEAL = (15, 90)
ANSWER_IDEAL = (6, 120)
QUESTION_MIN_CHARS = 8
ANSWER_MIN_CHARS = 2

DEMONSTRATIVE_RE = re.compile(r"これ|それ|あれ|この|その|あの")
DIGIT_RE = re.compile(r"[0-9０-９]")
HEADING_TAG_RE = re.compile(r"^【.+】")
GENERIC_ANSWER_RE = re.compile(r"^(?:重要|大事|必要|不要|はい|いいえ)$")
SYMBOLS_ONLY_RE = re.compile(r"^[\W_]+$")


def length_score(length: int, minimum: int, maximum: int) -> int:
    if length < minimum:
        return -2
    if length > maximum:
        return -1
    return 1


def score_candidate(c: Candidate) -> int:
    q = c.question or ""
    a = c.answer or ""

    score = KIND_BASE_SCORES.get(c.kind, 0)
    score += length_score(len(q), *QUESTION_IDEAL)
    score += length_score(len(a), *ANSWER_IDEAL)

    if DEMONSTRATIVE_RE.search(q):
        score -= 2
    if DEMONSTRATIVE_RE.search(a):
        score -= 1

    if DIGIT_RE.search(q) or DIGIT_RE.search(a):
        score += 1

    if HEADING_TAG_RE.match(q):
        score += 1

    return score


def is_good_candidate(c) -> bool:
    """Structural quality checks, independent of the score."""
    q = c.question or ""
    a = c.answer or ""

    if len(q) < QUESTION_MIN_CHARS:
        return False
    if c.type != "tf" and len(a) < ANSWER_MIN_CHARS:
        return False
    if GENERIC_ANSWER_RE.match(a):
        return False
    if SYMBOLS_ONLY_RE.match(q) or SYMBOLS_ONLY_RE.match(a):
        return False
    return True


def score_candidates(candidates: Iterable[Candidate]) -> List[ScoredCandidate]:
    return [ScoredCandidate(candidate=c, score=score_candidate(c)) for c in candidates]


def filter_candidates(scored: Iterable[ScoredCandidate], min_score: int = DEFAULT_MIN_SCORE) -> List[ScoredCandidate]:
    return [s for s in scored if s.score >= min_score and is_good_candidate(s)]
