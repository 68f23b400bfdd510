#!/usr/bin/env python3
"""
评分服务模块
选择题做确定性比对；填空题和口语翻译交给大模型按评分规则判断
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from vocab_trainer.config.settings import settings
from vocab_trainer.jobs.payloads import FillInBlankEvaluationItem
from vocab_trainer.models.vocab_trainer import TrainerStatus
from vocab_trainer.utils.exceptions import ParseError
from vocab_trainer.utils.helpers import parse_json_response
from vocab_trainer.utils.retry import linear_retry

logger = logging.getLogger(__name__)

# 口语翻译评分权重，各项满分10分，总分100
SCORE_WEIGHTS = {
    "accuracy": 2.5,
    "fluency": 2.0,
    "register": 1.5,
    "completeness": 4.0,
}


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _to_number(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def compute_overall_score(scores: Dict[str, float]) -> float:
    """按固定权重计算总分并限制在 [0, 100]"""
    total = sum(_to_number(scores.get(name)) * weight for name, weight in SCORE_WEIGHTS.items())
    return round(_clamp(total, 0, 100), 1)


def index_questions(question_answers: List[Dict[str, Any]]) -> Dict[int, Dict[str, Any]]:
    """词汇ID -> 已保存的选择题"""
    return {
        question["vocabId"]: question
        for question in question_answers or []
        if question.get("vocabId")
    }


def evaluate_multiple_choice(answers: List[Dict[str, Any]],
                             question_answers: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    选择题评分，不调用大模型

    按 vocab_id 找到已保存的题目，user_selected 与题目的 correctAnswer
    完全一致（区分大小写）才算通过；找不到题目的答案记为 FAILED

    Returns:
        dict: results 为待写入的结果行，correct 为答对数量
    """
    questions = index_questions(question_answers)
    results = []
    correct = 0
    for answer in answers:
        user_selected = answer.get("user_selected", "")
        question = questions.get(answer.get("vocab_id"))
        system_selected = (question.get("correctAnswer") or "") if question else ""
        is_correct = bool(system_selected) and user_selected == system_selected
        if is_correct:
            correct += 1
        results.append({
            # 不属于本训练的词汇不更新掌握度
            "vocab_id": question["vocabId"] if question else None,
            "status": TrainerStatus.PASSED.value if is_correct else TrainerStatus.FAILED.value,
            "user_selected": user_selected,
            "system_selected": system_selected,
            "data": None,
        })
    return {"results": results, "correct": correct}


def score_percentage(correct: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return correct / total * 100


def format_markdown_report(evaluation: Dict[str, Any], transcript: str,
                           source_dialogue: str = "") -> str:
    """生成口语翻译评估的 Markdown 报告"""
    scores = evaluation.get("scores") or {}
    lines = [
        "# Translation Evaluation Report",
        "",
        f"## Overall Score: {evaluation.get('overallScore', 0)} / 100",
        "",
        "### Detailed Scores (scale 0-10)",
        f"- **Accuracy**: {scores.get('accuracy', 0)}/10",
        f"- **Fluency**: {scores.get('fluency', 0)}/10",
        f"- **Register**: {scores.get('register', 0)}/10",
        f"- **Completeness**: {scores.get('completeness', 0)}/10",
        "",
        "### Scoring Formula",
        "OverallScore = accuracy * 2.5 + fluency * 2 + register * 1.5 + completeness * 4 (clamped 0-100)",
        "",
        "## Source Dialogue",
        "",
        source_dialogue or "(no source provided)",
        "",
        "## Your Transcript",
        "",
        transcript or "(no transcript)",
        "",
    ]

    missing = evaluation.get("missingIdeas") or []
    if missing:
        lines += ["## Missing Ideas", ""]
        lines += [f"{i}. {idea}" for i, idea in enumerate(missing, 1)]
        lines.append("")

    errors = evaluation.get("errors") or []
    if errors:
        lines += ["## Errors Found", ""]
        for error in errors:
            prefix = f"**{error['index']}.** " if isinstance(error.get("index"), int) else ""
            lines.append(f"{prefix}**Location**: {error.get('span') or '(unknown span)'}")
            lines.append(f"- **Type**: {error.get('type') or '(unknown)'}")
            lines.append(f"- **Explanation**: {error.get('explanation') or ''}")
            lines.append(f"- **Suggestion**: {error.get('suggestion') or ''}")
            lines.append("")

    if evaluation.get("correctedTranslation"):
        lines += ["## Corrected Translation", "", evaluation["correctedTranslation"], ""]

    advice = evaluation.get("advice") or []
    if advice:
        lines += ["## Advice", ""]
        lines += [f"- {tip}" for tip in advice]
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


class AnswerEvaluator:
    """答案评估器"""

    def __init__(self, completion_client, passing_score: int = None,
                 max_retries: int = None, retry_delay_ms: int = None):
        self.client = completion_client
        self.passing_score = passing_score or settings.AI_PASSING_SCORE
        self.max_retries = settings.AI_MAX_RETRIES if max_retries is None else max_retries
        self.retry_delay_ms = settings.AI_RETRY_DELAY_MS if retry_delay_ms is None else retry_delay_ms

    def overall_status(self, percentage: float) -> str:
        return TrainerStatus.PASSED.value if percentage >= self.passing_score else TrainerStatus.FAILED.value

    async def _with_retry(self, operation, name: str):
        return await linear_retry(operation, name=name, max_retries=self.max_retries,
                                  retry_delay_ms=self.retry_delay_ms)

    # ------------------------------------------------------------------
    # 填空题
    # ------------------------------------------------------------------

    async def evaluate_fill_in_blank(self, item: FillInBlankEvaluationItem,
                                     user_id: Optional[int] = None) -> Dict[str, Any]:
        """判断单个填空答案在语义上是否正确"""
        if not item.user_answer.strip():
            return {"isCorrect": False, "explanation": "未作答"}

        vocab = item.vocab
        targets = ", ".join(vocab.target_texts)
        if item.question_type == "textSource":
            question = f'What is the translation of "{item.system_answer}" in {vocab.source_language_code}?'
        else:
            question = f'What is the translation of "{vocab.text_source}" in {vocab.target_language_code}?'

        prompt = (
            "TASK: FILL_IN_BLANK\n"
            "You are a language learning assistant. Evaluate if a student's answer is "
            "semantically correct and contextually appropriate.\n"
            f"Source language: {vocab.source_language_code}\n"
            f"Target language: {vocab.target_language_code}\n"
            f'Source word: "{vocab.text_source}"\n'
            f'Target word(s): "{targets}"\n'
            f"Question: {question}\n"
            f'Correct answer: "{item.system_answer}"\n'
            f'Student answer: "{item.user_answer}"\n'
            "Accept synonyms, different word forms and common translation alternatives.\n"
            'Respond with JSON only: {"isCorrect": true, "explanation": "<brief reason>"}\n'
            "Return ONLY the JSON object, no markdown formatting, no code blocks, no additional text."
        )

        async def _call():
            data = parse_json_response(await self.client.generate(prompt, user_id))
            if not isinstance(data, dict) or not isinstance(data.get("isCorrect"), bool):
                raise ParseError("填空题评估结果缺少 isCorrect")
            return {"isCorrect": data["isCorrect"], "explanation": data.get("explanation") or None}

        return await self._with_retry(_call, f"填空题评估(词汇{item.vocab_id})")

    async def evaluate_all_fill_in_blank(self, items: List[FillInBlankEvaluationItem],
                                         user_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """并发评估全部答案，任何一题重试后仍失败则整体失败"""
        return list(await asyncio.gather(
            *(self.evaluate_fill_in_blank(item, user_id) for item in items)
        ))

    # ------------------------------------------------------------------
    # 口语翻译
    # ------------------------------------------------------------------

    async def evaluate_translation(self, transcript: str, source_dialogue: str,
                                   source_language: str, target_language: str,
                                   target_style: Optional[str] = None,
                                   target_audience: Optional[str] = None,
                                   user_id: Optional[int] = None) -> Dict[str, Any]:
        """
        按评分规则评估口语翻译

        总分由各项得分重新计算，不直接采用模型给出的总分；
        模型提供 meaningCoverage（百分比）时 completeness = round(coverage / 10)

        Returns:
            dict: overallScore, scores, errors, missingIdeas, correctedTranslation, advice
        """
        prompt = (
            "TASK: TRANSLATION_EVALUATION\n"
            "You are an expert translation examiner. Compare the student's spoken translation "
            "with the source dialogue.\n"
            f"Source language: {source_language}\n"
            f"Target language: {target_language}\n"
            f"Target style: {target_style or 'neutral'}\n"
            f"Target audience: {target_audience or 'general'}\n"
            f"Source dialogue:\n{source_dialogue}\n"
            f"Student transcript:\n{transcript}\n"
            "Score accuracy, fluency, register and completeness from 0 to 10, and estimate "
            "meaningCoverage as the percentage (0-100) of source ideas covered.\n"
            'Respond with JSON only: {"overallScore": 0, "scores": {"accuracy": 0, "fluency": 0, '
            '"register": 0, "completeness": 0}, "meaningCoverage": 0, "errors": [{"index": 1, '
            '"span": "", "type": "", "explanation": "", "suggestion": ""}], "missingIdeas": [], '
            '"correctedTranslation": "", "advice": []}\n'
            "Return ONLY the JSON object, no markdown formatting, no code blocks, no additional text."
        )

        async def _call():
            data = parse_json_response(await self.client.generate(prompt, user_id))
            return self._normalize_translation(data)

        return await self._with_retry(_call, "口语翻译评估")

    def _normalize_translation(self, data: Any) -> Dict[str, Any]:
        if not isinstance(data, dict) or not isinstance(data.get("scores"), dict):
            raise ParseError("翻译评估结果缺少 scores")
        raw = data["scores"]
        scores = {
            name: _clamp(_to_number(raw.get(name)), 0, 10)
            for name in ("accuracy", "fluency", "register", "completeness")
        }
        if data.get("meaningCoverage") is not None:
            coverage = _clamp(_to_number(data["meaningCoverage"]), 0, 100)
            scores["completeness"] = round(coverage / 10)

        errors = []
        for i, error in enumerate(data.get("errors") or [], 1):
            if not isinstance(error, dict):
                continue
            errors.append({
                "index": error.get("index") if isinstance(error.get("index"), int) else i,
                "span": error.get("span") or "",
                "type": error.get("type") or "",
                "explanation": error.get("explanation") or "",
                "suggestion": error.get("suggestion") or "",
            })

        return {
            "overallScore": compute_overall_score(scores),
            "scores": scores,
            "errors": errors,
            "missingIdeas": [str(idea) for idea in data.get("missingIdeas") or []],
            "correctedTranslation": data.get("correctedTranslation") or "",
            "advice": [str(tip) for tip in data.get("advice") or []],
        }
