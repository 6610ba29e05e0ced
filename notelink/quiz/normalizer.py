"""
Line normalization: the first stage of the rule quiz pipeline.

Turns a note body into numbered lines with code blocks, zero-width marks,
tabs and URLs removed. Blank lines are kept because the unit builder uses
them to close bullet groups.
"""
from __future__ import annotations

import re
from typing import Iterable, List, Optional, Union

from notelink.quiz.types import Candidate, RawLine

LINE_SPLIT_RE = re.compile(r"\r?\n")
FENCE_RE = re.compile(r"^\s*```[^`]*$")
URL_RE = re.compile(r"https?://\S+")
ZERO_WIDTH = "\u200b"

FALLBACK_MIN_CHARS = 25
FALLBACK_MAX_CHARS = 120
FALLBACK_CUT_RATIO = 0.45
BLANK_MARKER = "（　　　）"
SENTENCE_END_RE = re.compile(r"[。！？]$")


def coerce_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value if isinstance(value, str) else str(value)


def split_lines(text) -> List[str]:
    return LINE_SPLIT_RE.split(coerce_text(text))


def clean_line(line: str) -> str:
    s = line.replace(ZERO_WIDTH, "").replace("\t", " ")
    s = URL_RE.sub("", s)
    return s.rstrip()


def normalize_lines(source: Union[str, Iterable[str], None]) -> List[RawLine]:
    """Normalize a note body (or an already split list of lines).

    Line numbers are 1-based positions in the input. Lines inside a fenced
    code block, and the fence lines themselves, are dropped; an unterminated
    fence drops everything after it.
    """
    if source is None or isinstance(source, (str, bytes)):
        lines = split_lines(source)
    else:
        lines = [coerce_text(line) for line in source]

    out: List[RawLine] = []
    in_code = False
    for number, line in enumerate(lines, start=1):
        s = clean_line(line)
        if FENCE_RE.match(s):
            in_code = not in_code
            continue
        if in_code:
            continue
        out.append(RawLine(text=s, line_number=number))
    return out


def fallback_candidate(raw_text) -> Optional[Candidate]:
    """Build the single fill-in candidate used when nothing else was found.

    Returns None unless the trimmed text (minus one trailing sentence mark)
    is between 25 and 120 characters long.
    """
    t = SENTENCE_END_RE.sub("", coerce_text(raw_text).strip())
    if not FALLBACK_MIN_CHARS <= len(t) <= FALLBACK_MAX_CHARS:
        return None
    mid = int(len(t) * FALLBACK_CUT_RATIO)
    answer = t[mid:].strip()
    question = (t[:mid] + BLANK_MARKER).strip()
    if not answer:
        return None
    return Candidate(
        type="fill",
        question=question,
        answer=answer,
        source_line=None,
        kind="fallback",
    )
