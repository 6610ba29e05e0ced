"""Group normalized lines into heading-tagged units."""
from __future__ import annotations

import re
from functools import reduce
from typing import List, NamedTuple, Optional, Sequence, Tuple

from notelink.quiz.types import RawLine, Unit

HEADING_RE = re.compile(r"^#{1,6}\s+(.+)$")
# "・" is commonly written without a following space in Japanese notes.
BULLET_RE = re.compile(r"^(?:[-*]|\d+\.)\s+(.+)$|^・\s*(.+)$")
INLINE_MARKUP_RE = re.compile(r"[*_~`]")
WHITESPACE_RE = re.compile(r"\s+")
SENTENCE_SPLIT_RE = re.compile(r"(?<=[。！？])")

BULLET_JOINER = " / "


class _State(NamedTuple):
    units: Tuple[Unit, ...] = ()
    heading: str = ""
    bullets: Tuple[str, ...] = ()
    bullet_line: Optional[int] = None


def clean_inline(text: str) -> str:
    """Drop Markdown emphasis/code marks and collapse whitespace."""
    return WHITESPACE_RE.sub(" ", INLINE_MARKUP_RE.sub("", text or "")).strip()


def split_sentences(text: str) -> List[str]:
    return SENTENCE_SPLIT_RE.split(text)


def _flush_bullets(state: _State) -> _State:
    if not state.bullets:
        return state
    units = state.units
    text = BULLET_JOINER.join(state.bullets).strip()
    if text:
        units = units + (Unit(text=text, heading=state.heading, line_number=state.bullet_line),)
    return state._replace(units=units, bullets=(), bullet_line=None)


def _step(state: _State, line: RawLine) -> _State:
    s = (line.text or "").strip()
    if not s:
        return _flush_bullets(state)

    heading = HEADING_RE.match(s)
    if heading:
        return _flush_bullets(state)._replace(heading=clean_inline(heading.group(1)))

    bullet = BULLET_RE.match(s)
    if bullet:
        body = clean_inline(bullet.group(1) or bullet.group(2))
        bullet_line = state.bullet_line if state.bullets else line.line_number
        bullets = state.bullets + (body,) if body else state.bullets
        return state._replace(bullets=bullets, bullet_line=bullet_line)

    state = _flush_bullets(state)
    fragments = (p.strip() for p in split_sentences(clean_inline(s)))
    new_units = tuple(
        Unit(text=p, heading=state.heading, line_number=line.line_number) for p in fragments if p
    )
    return state._replace(units=state.units + new_units)


def build_units(lines: Sequence[RawLine]) -> List[Unit]:
    """Fold normalized lines into units.

    Headings tag every following unit until the next heading (blank lines do
    not reset them). Consecutive bullet lines are merged into one unit joined
    by " / " and numbered after the first bullet of the run.
    """
    final = _flush_bullets(reduce(_step, lines, _State()))
    return list(final.units)
