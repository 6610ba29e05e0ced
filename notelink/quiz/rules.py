"""
Pattern rules that turn a unit of note text into quiz candidates.

Each rule is a (matcher, builder) pair. The matcher looks at the unit text
and returns a match object or None; the builder turns the match into zero or
more candidates. Rules are independent and all of them are tried on every
unit, in the order of ``RULES``.
"""
from __future__ import annotations

import re
from typing import Callable, Iterable, List, NamedTuple, Optional

from notelink.quiz.types import QUIZ_TYPES, Candidate, Unit

DEFINITION_RE = re.compile(
    r"^(.{2,30}?)とは、?(.{6,120}?)(?:である|のこと|を指す|という)?[。！？]?$"
)
CLASSIFICATION_RE = re.compile(
    r"^(.{2,30}?)は、?(.{2,40}?)(?:と|、)(.{2,40}?)"
    r"(?:に分かれる|に分類される|がある|が存在する)[。！？]?$"
)
ENUMERATION_RE = re.compile(r"^(.{2,30}?)(?:の特徴|の要素|のポイント|には|は)[、:]?\s*(.{2,120})$")
CAUSATION_RE = re.compile(r"^(.{4,80}?)(?:のため|により|なので|その結果|したがって)(.{4,80})$")
STEP_MARKER_RE = re.compile(r"まず|次に|その後|最後に")

LIST_SPLIT_RE = re.compile(r"(?:/|、|,|・|;|：|:)\s*")
STEP_SPLIT_RE = re.compile(r"/|、|,")
TRAILING_MARK_RE = re.compile(r"[。！？]$")

LIST_MIN_ITEMS = 3
LIST_MAX_ITEMS = 5
LIST_ITEM_MAX_CHARS = 60
STEPS_MIN = 3
STEPS_MAX = 6
TF_DEFINITION_MIN = 8
TF_DEFINITION_MAX = 80

# Substring swaps used to turn a definition into a false statement.
TF_REPLACEMENTS = (
    ("重要", "不要"),
    ("増加", "減少"),
    ("大", "小"),
)

TF_TRUE = "正しい"
TF_FALSE = "誤り"


class Rule(NamedTuple):
    name: str
    matcher: Callable[[str], Optional[re.Match]]
    builder: Callable[[Unit, re.Match], List[Candidate]]


def trim(s) -> str:
    return (s or "").strip()


def with_heading(heading: str, question: str) -> str:
    if not heading:
        return question
    return f"【{heading}】{question}"


def make_candidate(unit: Unit, type: str, question: str, answer, kind: str) -> Optional[Candidate]:
    question = trim(with_heading(unit.heading, question))
    if not question or type not in QUIZ_TYPES:
        return None
    return Candidate(
        type=type,
        question=question,
        answer="" if answer is None else str(answer).strip(),
        source_line=unit.line_number,
        kind=kind,
    )


def split_list(text: str) -> List[str]:
    items = LIST_SPLIT_RE.split(TRAILING_MARK_RE.sub("", text or ""))
    return [t for t in (trim(i) for i in items) if t and len(t) <= LIST_ITEM_MAX_CHARS]


def alter_definition(definition: str) -> str:
    altered = definition
    for old, new in TF_REPLACEMENTS:
        altered = altered.replace(old, new)
    return altered


# ----------------- Builders -----------------

def build_definition(unit: Unit, m: re.Match) -> List[Candidate]:
    term, definition = trim(m.group(1)), trim(m.group(2))
    if not (term and definition):
        return []
    return [
        make_candidate(unit, "fill", f"「{term}」とは何か？", definition, "def"),
        make_candidate(unit, "fill", f"{term}とは、（　　　）である", definition, "def_blank"),
    ]


def build_classification(unit: Unit, m: re.Match) -> List[Candidate]:
    subject, a, b = trim(m.group(1)), trim(m.group(2)), trim(m.group(3))
    if not (subject and a and b):
        return []
    return [make_candidate(unit, "short", f"{subject}は何と何に分かれる？", f"{a} と {b}", "class2")]


def build_enumeration(unit: Unit, m: re.Match) -> List[Candidate]:
    subject = trim(m.group(1))
    items = split_list(trim(m.group(2)))
    if not subject or len(items) < LIST_MIN_ITEMS:
        return []
    answer = " / ".join(items[:LIST_MAX_ITEMS])
    return [make_candidate(unit, "short", f"{subject}の（主な）ポイントを挙げよ", answer, "list")]


def build_causation(unit: Unit, m: re.Match) -> List[Candidate]:
    cause, effect = trim(m.group(1)), trim(m.group(2))
    if not (cause and effect):
        return []
    return [
        make_candidate(
            unit,
            "short",
            f"次の因果関係を答えよ：{cause} → ？",
            TRAILING_MARK_RE.sub("", effect),
            "cause",
        )
    ]


def build_steps(unit: Unit, m: re.Match) -> List[Candidate]:
    steps = [t for t in (trim(s) for s in STEP_SPLIT_RE.split(unit.text)) if t]
    if len(steps) < STEPS_MIN:
        return []
    return [make_candidate(unit, "short", "手順を順番に説明せよ", " → ".join(steps[:STEPS_MAX]), "steps")]


def build_true_false(unit: Unit, m: re.Match) -> List[Candidate]:
    term, definition = trim(m.group(1)), trim(m.group(2))
    if not (term and TF_DEFINITION_MIN <= len(definition) <= TF_DEFINITION_MAX):
        return []
    wrong = alter_definition(definition)
    if wrong == definition:
        return []
    return [
        make_candidate(unit, "tf", f"正しい？誤り？：「{term}とは{wrong}である」", TF_FALSE, "tf"),
        make_candidate(unit, "tf", f"正しい？誤り？：「{term}とは{definition}である」", TF_TRUE, "tf"),
    ]


RULES = (
    Rule("definition", DEFINITION_RE.match, build_definition),
    Rule("classification", CLASSIFICATION_RE.match, build_classification),
    Rule("enumeration", ENUMERATION_RE.match, build_enumeration),
    Rule("causation", CAUSATION_RE.match, build_causation),
    Rule("steps", STEP_MARKER_RE.search, build_steps),
    Rule("true_false", DEFINITION_RE.match, build_true_false),
)


def extract_from_unit(unit: Unit, rules: Iterable[Rule] = RULES) -> List[Candidate]:
    out: List[Candidate] = []
    for rule in rules:
        m = rule.matcher(unit.text)
        if m is None:
            continue
        out.extend(c for c in rule.builder(unit, m) if c is not None)
    return out


def extract_candidates(units: Iterable[Unit], rules: Iterable[Rule] = RULES) -> List[Candidate]:
    rules = tuple(rules)
    out: List[Candidate] = []
    for unit in units:
        out.extend(extract_from_unit(unit, rules))
    return out
