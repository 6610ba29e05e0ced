from __future__ import annotations

import json
import os
import re
from typing import List, Optional

import structlog
from openai import OpenAI

logger = structlog.get_logger()

OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4.1-mini")
AI_BODY_MAX_CHARS = 8000
AI_MAX_QUIZZES = 15

SYSTEM_PROMPT = """
あなたは講義ノートから復習用クイズを作る教材作成者です。
返答は必ず「JSONのみ」。余計な文章は禁止。
""".strip()

USER_PROMPT = """
次の本文から復習用クイズを作ってください。

【出力形式（厳守）】
{{
  "quizzes": [
    {{ "type": "term|qa|tf", "question": "…", "answer": "…", "source_line": "…" }}
  ]
}}

【ルール】
- quizzesは5〜15問
- term: 用語の定義確認
- qa: 理解を問う質問（答えも付ける）
- tf: ○×（answerは「正しい」か「誤り」）
- question/answer は日本語で簡潔に
- source_line は本文の該当箇所を短く引用（なければ null）
- 絶対にJSON以外を出力しない

【ノート情報】
タイトル: {title}
授業名: {course_name}

【本文】
{body}
""".strip()

JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class QuizGenerationError(RuntimeError):
    """The AI service could not be reached or replied with something unusable."""


def ai_configured() -> bool:
    return bool(os.getenv("OPENAI_API_KEY"))


def _get_client() -> OpenAI:
    if not ai_configured():
        raise QuizGenerationError("OPENAI_API_KEY is missing")
    # Use env var; set timeouts per-request via with_options()
    return OpenAI()


def _parse_reply(content: str) -> dict:
    text = (content or "").strip()
    # Strip common code fences ```json ... ``` or ``` ... ```
    if text.startswith("```"):
        first_nl = text.find("\n")
        if first_nl != -1:
            text = text[first_nl + 1 :]
        if text.endswith("```"):
            text = text[:-3]
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        m = JSON_OBJECT_RE.search(text)
        if not m:
            raise QuizGenerationError("AIの返答がJSONとして解析できませんでした")
        try:
            return json.loads(m.group(0))
        except json.JSONDecodeError as e:
            raise QuizGenerationError(f"AIの返答がJSONとして解析できませんでした: {e}") from e


def _clip(value, limit: int) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip()[:limit]


def normalize_ai_quizzes(parsed) -> List[dict]:
    quizzes = parsed.get("quizzes") if isinstance(parsed, dict) else None
    if not isinstance(quizzes, list):
        return []
    items: List[dict] = []
    for q in quizzes:
        if not isinstance(q, dict):
            continue
        question = q.get("question")
        if not isinstance(question, str) or not question.strip():
            continue
        items.append({
            "type": str(q.get("type") or "qa")[:20],
            "question": question.strip()[:300],
            "answer": _clip(q.get("answer"), 500) or "",
            "source_line": _clip(q.get("source_line"), 200),
        })
        if len(items) >= AI_MAX_QUIZZES:
            break
    return items


def generate_quizzes_with_ai(title: str, course_name: str, body_raw: str) -> List[dict]:
    """Ask the chat completion API for review quizzes.

    Raises QuizGenerationError when the key is missing, the call fails or the
    reply cannot be parsed.
    """
    prompt = USER_PROMPT.format(
        title=title or "",
        course_name=course_name or "",
        body=str(body_raw or "")[:AI_BODY_MAX_CHARS],
    )
    client = _get_client().with_options(timeout=30.0)
    try:
        rsp = client.chat.completions.create(
            model=OPENAI_MODEL,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=0.4,
        )
    except Exception as e:
        logger.warning("ai_quiz_request_failed", error=str(e))
        raise QuizGenerationError(f"AI request failed: {e}") from e

    content = rsp.choices[0].message.content or ""
    items = normalize_ai_quizzes(_parse_reply(content))
    logger.info("ai_quizzes_generated", model=OPENAI_MODEL, count=len(items))
    return items
