"""
Unit tests for deduplication and type-balanced selection
"""
from notelink.quiz.selection import (
    dedupe_candidates,
    normalize_question_key,
    pick_with_variety,
    rank_candidates,
    to_quiz_item,
)
from notelink.quiz.types import Candidate, QuizItem, ScoredCandidate


def sc(question, score, type="short", source_line=1, answer="答えの例"):
    kind = "tf" if type == "tf" else "list"
    return ScoredCandidate(Candidate(type, question, answer, source_line, kind), score)


def others(*scores):
    return [sc(f"その他の問題{i}番目", s) for i, s in enumerate(scores)]


def tfs(*scores):
    return [sc(f"正誤の問題{i}番目", s, type="tf") for i, s in enumerate(scores)]


class TestQuestionKey:
    def test_ignores_heading_whitespace_and_brackets(self):
        assert normalize_question_key("【第1章】「光合成」 とは何か？") == "光合成とは何か？"
        assert normalize_question_key("光合成とは、（　　　）である") == "光合成とは、である"

    def test_only_first_heading_is_removed(self):
        assert normalize_question_key("【A】【B】問い") == "B問い"

    def test_truncated(self):
        assert len(normalize_question_key("あ" * 200)) == 120


class TestDedupe:
    def test_first_occurrence_wins(self):
        first = sc("【第1章】「光合成」とは何か？", 10)
        second = sc("「光合成」 とは何か？", 3)
        third = sc("「呼吸」とは何か？", 5)
        assert dedupe_candidates([first, second, third]) == [first, third]


class TestPickWithVariety:
    def test_rank_is_stable(self):
        a, b, c = sc("問題Aについて", 3), sc("問題Bについて", 5), sc("問題Cについて", 3)
        assert rank_candidates([a, b, c]) == [b, a, c]

    def test_true_false_is_capped(self):
        picked = pick_with_variety(others(9, 8, 7, 6, 5) + tfs(10, 10, 10), limit=5)
        assert len(picked) == 5
        assert sum(1 for c in picked if c.type == "tf") == 1
        assert [c.score for c in picked if c.type != "tf"] == [9, 8, 7, 6]

    def test_backfill_when_other_types_run_out(self):
        picked = pick_with_variety(others(9, 8) + tfs(4, 4, 4, 4, 4), limit=5)
        assert len(picked) == 5
        assert sum(1 for c in picked if c.type == "tf") == 3

    def test_without_true_false_allowance_takes_top_scores(self):
        picked = pick_with_variety(others(9, 8, 7) + tfs(10, 10, 10), limit=5, allow_true_false=False)
        assert [c.score for c in picked] == [10, 10, 10, 9, 8]

    def test_small_limit_has_no_tf_budget(self):
        picked = pick_with_variety(others(1) + tfs(10, 10), limit=4)
        assert [c.type for c in picked] == ["short", "tf", "tf"]

    def test_zero_limit(self):
        assert pick_with_variety(others(9, 8), limit=0) == []


class TestToQuizItem:
    def test_maps_fields(self):
        item = to_quiz_item(sc("「光合成」とは何か？", 5, type="fill", source_line=4))
        assert item == QuizItem(type="fill", question="「光合成」とは何か？", answer="答えの例", source_line=4)
        assert item.to_dict() == {
            "type": "fill",
            "question": "「光合成」とは何か？",
            "answer": "答えの例",
            "source_line": 4,
        }

    def test_defaults(self):
        item = to_quiz_item(ScoredCandidate(Candidate("", "問いの文章です", None, "3", "list"), 1))
        assert item.type == "short"
        assert item.answer == ""
        assert item.source_line is None

    def test_bool_source_line_is_dropped(self):
        assert to_quiz_item(sc("問いの文章です", 1, source_line=True)).source_line is None
