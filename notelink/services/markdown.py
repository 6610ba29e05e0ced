"""
Render a raw lecture note into the Markdown layout shown to readers.
"""
from __future__ import annotations

import re
from typing import List

NONE_ITEM = "- （なし）"
TERM_PREFIX_RE = re.compile(r"^用語:\s*")
TODO_PREFIX_RE = re.compile(r"^TODO:\s*", re.IGNORECASE)


def _bullets(items: List[str], empty: str = NONE_ITEM) -> str:
    if not items:
        return empty
    return "\n".join(f"- {x}" for x in items)


def build_markdown(course_name, lecture_no, lecture_date, title, body_raw) -> str:
    lines = [
        l.strip()
        for l in str(body_raw or "").replace("\r\n", "\n").split("\n")
        if l.strip()
    ]

    important: List[str] = []
    questions: List[str] = []
    terms: List[str] = []
    todos: List[str] = []

    for l in lines:
        if "⭐️" in l or l.lower().startswith("important:"):
            important.append(l)
        if "？" in l or l.endswith("?"):
            questions.append(l)
        if l.startswith("用語:"):
            terms.append(TERM_PREFIX_RE.sub("", l))
        if l.upper().startswith("TODO:"):
            todos.append(TODO_PREFIX_RE.sub("", l))

    return f"""
# {title}

- 授業名：{course_name}
- 回：{lecture_no}
- 日付：{lecture_date}

## 重要ポイント：★
{_bullets(important)}

## 本文
{_bullets(lines, empty="")}

## 用語集：用語
{_bullets(terms)}

## 疑問・確認したいこと：？
{_bullets(questions)}

## TODO・課題：課題
{_bullets(todos)}

## まとめ：まとめ
- （あとで追記）
""".strip()
