"""Typed containers shared across the quiz pipeline stages."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


QUIZ_TYPES = ("term", "fill", "short", "tf", "question")


@dataclass(frozen=True)
class RawLine:
    """One physical input line after normalization."""

    text: str
    line_number: int


@dataclass(frozen=True)
class Unit:
    """Sentence fragment or merged bullet group, tagged with its heading."""

    text: str
    heading: str
    line_number: Optional[int]


@dataclass(frozen=True)
class Candidate:
    type: str
    question: str
    answer: str
    source_line: Optional[int]
    kind: str

    @property
    def meta(self) -> dict:
        return {"kind": self.kind}


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: Candidate
    score: int

    @property
    def type(self) -> str:
        return self.candidate.type

    @property
    def question(self) -> str:
        return self.candidate.question

    @property
    def answer(self) -> str:
        return self.candidate.answer


@dataclass(frozen=True)
class QuizItem:
    """Pipeline output, ready to be stored as a NoteQuiz row."""

    type: str
    question: str
    answer: str = ""
    source_line: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "question": self.question,
            "answer": self.answer,
            "source_line": self.source_line,
        }


@dataclass(frozen=True)
class QuizOptions:
    limit: int = 20
    min_score: int = 3
    allow_true_false: bool = True
