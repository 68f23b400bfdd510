import json

import pytest

from tests.fakes import ScriptedCompletionClient
from vocab_trainer.jobs.payloads import FillInBlankEvaluationItem, VocabSnapshot
from vocab_trainer.services.answer_evaluator import (
    AnswerEvaluator, compute_overall_score, evaluate_multiple_choice,
    format_markdown_report, score_percentage
)
from vocab_trainer.utils.exceptions import ParseError

VOCAB = VocabSnapshot(
    id=5, text_source="hello", source_language_code="en", target_language_code="vi",
    text_targets=[{"text_target": "xin chào"}],
)


def make_evaluator(client):
    return AnswerEvaluator(client, passing_score=70, max_retries=2, retry_delay_ms=0)


def fib_item(user_answer, system_answer="xin chào"):
    return FillInBlankEvaluationItem(vocab=VOCAB, vocab_id=5, user_answer=user_answer,
                                     system_answer=system_answer, question_type="textTarget")


def test_compute_overall_score_weights_and_clamp():
    assert compute_overall_score({"accuracy": 10, "fluency": 10, "register": 10, "completeness": 10}) == 100
    assert compute_overall_score({"accuracy": 8, "fluency": 6, "register": 4, "completeness": 5}) == 58.0
    assert compute_overall_score({"accuracy": 20, "fluency": 20, "register": 20, "completeness": 20}) == 100
    assert compute_overall_score({}) == 0


def test_multiple_choice_grading_is_exact_match():
    questions = [{"vocabId": 5, "correctAnswer": "xin chào",
                  "options": [{"label": "A", "value": "xin chào"}, {"label": "B", "value": "tạm biệt"}]}]

    evaluation = evaluate_multiple_choice([
        {"vocab_id": 5, "user_selected": "xin chào"},
        {"vocab_id": 5, "user_selected": "Xin chào"},
        {"vocab_id": 5, "user_selected": "tạm biệt", "system_selected": "tạm biệt"},
        {"vocab_id": 8, "user_selected": "xin chào"},
    ], questions)

    assert evaluation["correct"] == 1
    assert [r["status"] for r in evaluation["results"]] == ["PASSED", "FAILED", "FAILED", "FAILED"]
    assert [r["system_selected"] for r in evaluation["results"]] == ["xin chào", "xin chào", "xin chào", ""]
    assert [r["vocab_id"] for r in evaluation["results"]] == [5, 5, 5, None]
    assert score_percentage(1, 4) == 25
    assert score_percentage(0, 0) == 0


@pytest.mark.asyncio
async def test_fill_in_blank_accepts_model_judgment():
    client = ScriptedCompletionClient([json.dumps({"isCorrect": True, "explanation": "synonym"})])
    result = await make_evaluator(client).evaluate_fill_in_blank(fib_item("chào"))

    assert result == {"isCorrect": True, "explanation": "synonym"}
    assert 'Student answer: "chào"' in client.prompts[0]


@pytest.mark.asyncio
async def test_empty_fill_in_blank_answer_is_incorrect_without_model_call():
    client = ScriptedCompletionClient([])
    result = await make_evaluator(client).evaluate_fill_in_blank(fib_item("   "))

    assert result["isCorrect"] is False
    assert client.prompts == []


@pytest.mark.asyncio
async def test_fill_in_blank_requires_boolean_verdict():
    client = ScriptedCompletionClient([json.dumps({"isCorrect": "yes"})] * 3)
    with pytest.raises(ParseError):
        await make_evaluator(client).evaluate_fill_in_blank(fib_item("chào"))
    assert len(client.prompts) == 3


@pytest.mark.asyncio
async def test_translation_score_is_recomputed_from_subscores():
    client = ScriptedCompletionClient([json.dumps({
        "overallScore": 99,
        "scores": {"accuracy": 8, "fluency": 7, "register": 12, "completeness": 3},
        "meaningCoverage": 74,
        "errors": [{"span": "bạn khỏe", "type": "grammar", "explanation": "x", "suggestion": "y"}],
        "missingIdeas": ["greeting"],
        "correctedTranslation": "Xin chào!",
        "advice": ["Slow down"],
    })])
    evaluation = await make_evaluator(client).evaluate_translation(
        "xin chào", "A: Hello", "en", "vi", "casual", "friends"
    )

    assert evaluation["scores"]["register"] == 10
    assert evaluation["scores"]["completeness"] == 7
    # 8*2.5 + 7*2 + 10*1.5 + 7*4
    assert evaluation["overallScore"] == 77.0
    assert evaluation["errors"][0]["index"] == 1


def test_markdown_report_sections():
    report = format_markdown_report({
        "overallScore": 77.0,
        "scores": {"accuracy": 8, "fluency": 7, "register": 10, "completeness": 7},
        "errors": [{"index": 1, "span": "bạn khỏe", "type": "grammar", "explanation": "x", "suggestion": "y"}],
        "missingIdeas": ["greeting"],
        "correctedTranslation": "Xin chào!",
        "advice": ["Slow down"],
    }, "xin chào", "A: Hello")

    assert "## Overall Score: 77.0 / 100" in report
    assert "## Missing Ideas" in report
    assert "**Location**: bạn khỏe" in report
    assert "## Corrected Translation" in report


def test_overall_status_threshold():
    evaluator = make_evaluator(None)
    assert evaluator.overall_status(70) == "PASSED"
    assert evaluator.overall_status(69.9) == "FAILED"
