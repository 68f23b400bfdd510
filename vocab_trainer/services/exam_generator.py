#!/usr/bin/env python3
"""
出题服务模块
按题型生成考试内容：选择题和对话需要调用大模型，填空题和翻卡由词汇直接构建
"""

import asyncio
import json
import logging
import random
from typing import Any, Dict, List, Optional

from vocab_trainer.config.settings import settings
from vocab_trainer.jobs.payloads import VocabSnapshot
from vocab_trainer.utils.exceptions import ParseError, ValidationError
from vocab_trainer.utils.helpers import fisher_yates_shuffle, parse_json_response
from vocab_trainer.utils.retry import linear_retry

logger = logging.getLogger(__name__)

DIALOGUE_SPEAKERS = ["A", "B", "A", "B"]


def validate_dialogue(turns: Any, words: List[str]) -> List[Dict[str, str]]:
    """
    校验对话：必须正好4句，说话人依次为 A,B,A,B，
    并且每个词汇（不区分大小写）都出现在对话文本中
    """
    if not isinstance(turns, list) or len(turns) != len(DIALOGUE_SPEAKERS):
        raise ParseError(f"对话必须正好包含{len(DIALOGUE_SPEAKERS)}句")

    normalized = []
    for expected, turn in zip(DIALOGUE_SPEAKERS, turns):
        if not isinstance(turn, dict):
            raise ParseError("对话行格式错误")
        speaker = str(turn.get("speaker", "")).strip().upper()
        text = str(turn.get("text", "")).strip()
        if speaker != expected:
            raise ParseError(f"对话说话人顺序错误，期望 {expected}，实际 {speaker}")
        if not text:
            raise ParseError("对话内容为空")
        normalized.append({"speaker": speaker, "text": text})

    full_text = " ".join(turn["text"] for turn in normalized).lower()
    missing = [word for word in words if word.lower() not in full_text]
    if missing:
        raise ParseError(f"对话缺少词汇: {', '.join(missing)}")
    return normalized


def dialogue_words(vocabs: List[VocabSnapshot]) -> List[str]:
    """对话需要覆盖的去重词汇：所有目标释义和源词"""
    words = []
    seen = set()
    for vocab in vocabs:
        for word in vocab.target_texts + [vocab.text_source]:
            key = word.strip().lower()
            if key and key not in seen:
                seen.add(key)
                words.append(word.strip())
    return words


class ExamGenerator:
    """考试内容生成器"""

    def __init__(self, completion_client, question_count: int = None,
                 source_probability: float = None, max_retries: int = None,
                 retry_delay_ms: int = None, rng: random.Random = None):
        self.client = completion_client
        self.question_count = question_count or settings.AI_QUESTION_COUNT
        self.source_probability = settings.AI_SOURCE_QUESTION_PROBABILITY \
            if source_probability is None else source_probability
        self.max_retries = settings.AI_MAX_RETRIES if max_retries is None else max_retries
        self.retry_delay_ms = settings.AI_RETRY_DELAY_MS if retry_delay_ms is None else retry_delay_ms
        self.rng = rng or random.Random()

    async def _with_retry(self, operation, name: str):
        return await linear_retry(operation, name=name, max_retries=self.max_retries,
                                  retry_delay_ms=self.retry_delay_ms)

    # ------------------------------------------------------------------
    # 选择题
    # ------------------------------------------------------------------

    async def generate_multiple_choice(self, vocabs: List[VocabSnapshot],
                                       user_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        为每个词汇生成一道选择题

        单个词汇重试后仍失败时只跳过该题，不影响其他题目

        Returns:
            List[Dict]: 与词汇顺序一致的题目列表
        """
        results = await asyncio.gather(
            *(self._safe_multiple_choice(vocab, user_id) for vocab in vocabs)
        )
        questions = [q for q in results if q is not None]
        logger.info(f"选择题生成完成: {len(questions)}/{len(vocabs)}")
        return questions

    async def _safe_multiple_choice(self, vocab: VocabSnapshot, user_id: Optional[int]):
        try:
            return await self.generate_question_for_vocab(vocab, user_id)
        except Exception as e:
            logger.warning(f"词汇 {vocab.id} 选择题生成失败，已跳过: {e}")
            return None

    async def generate_question_for_vocab(self, vocab: VocabSnapshot,
                                          user_id: Optional[int] = None) -> Dict[str, Any]:
        targets = vocab.target_texts
        if not targets:
            raise ValidationError(f"词汇 {vocab.id} 没有释义，无法出选择题")

        # 抛硬币决定题目方向
        if self.rng.random() < self.source_probability:
            question_type = "textTarget"
            asked = vocab.text_source
            correct_answer = self.rng.choice(targets)
            from_lang, to_lang = vocab.source_language_code, vocab.target_language_code
        else:
            question_type = "textSource"
            asked = self.rng.choice(targets)
            correct_answer = vocab.text_source
            from_lang, to_lang = vocab.target_language_code, vocab.source_language_code

        prompt = self._multiple_choice_prompt(asked, correct_answer, from_lang, to_lang)

        async def _call():
            text = await self.client.generate(prompt, user_id)
            return self._parse_multiple_choice(text, correct_answer)

        question = await self._with_retry(_call, f"选择题生成(词汇{vocab.id})")
        return {
            "vocabId": vocab.id,
            "type": question_type,
            "content": question["content"],
            "options": question["options"],
            "correctAnswer": correct_answer,
        }

    def _multiple_choice_prompt(self, asked: str, correct_answer: str,
                                from_lang: str, to_lang: str) -> str:
        return (
            "TASK: MULTIPLE_CHOICE\n"
            "You are a language learning assistant creating a vocabulary quiz question.\n"
            f'Question: What is the translation of "{asked}" from {from_lang} to {to_lang}?\n'
            f'Correct answer: "{correct_answer}"\n'
            f"Option count: {self.question_count}\n"
            f"Create exactly {self.question_count} options: the correct answer exactly as given, "
            f"plus {self.question_count - 1} plausible distractors in {to_lang} of similar length "
            "and register. Distractors must not be synonyms of the correct answer.\n"
            'Respond with JSON only: {"content": "<question>", '
            '"options": [{"label": "A", "value": "<text>"}], "correctAnswer": "<text>"}\n'
            "Return ONLY the JSON object, no markdown formatting, no code blocks, no additional text."
        )

    def _parse_multiple_choice(self, text: str, correct_answer: str) -> Dict[str, Any]:
        data = parse_json_response(text)
        if not isinstance(data, dict):
            raise ParseError("选择题格式错误")
        options = data.get("options")
        if not isinstance(options, list):
            raise ParseError("选择题缺少选项")

        values = []
        for option in options:
            value = option.get("value") if isinstance(option, dict) else option
            if not isinstance(value, str) or not value.strip():
                raise ParseError("选项内容为空")
            if value not in values:
                values.append(value)

        if correct_answer not in values:
            raise ParseError("选项中不包含正确答案")
        if len(values) != self.question_count:
            raise ParseError(f"选项数量应为{self.question_count}，实际{len(values)}")

        shuffled = fisher_yates_shuffle(values, self.rng)
        return {
            "content": str(data.get("content") or "").strip(),
            "options": [{"label": chr(65 + i), "value": v} for i, v in enumerate(shuffled)],
        }

    # ------------------------------------------------------------------
    # 填空题 / 翻卡（不调用大模型）
    # ------------------------------------------------------------------

    def build_fill_in_blank(self, vocabs: List[VocabSnapshot]) -> List[Dict[str, Any]]:
        """没有释义的词汇会被跳过"""
        questions = []
        for vocab in vocabs:
            targets = vocab.target_texts
            if not targets:
                logger.warning(f"词汇 {vocab.id} 没有释义，跳过填空题")
                continue
            if self.rng.random() < 0.5:
                questions.append({
                    "vocabId": vocab.id,
                    "type": "textTarget",
                    "content": f'What is the translation of "{vocab.text_source}" in {vocab.target_language_code}?',
                    "correctAnswer": self.rng.choice(targets),
                })
            else:
                questions.append({
                    "vocabId": vocab.id,
                    "type": "textSource",
                    "content": f'What is the translation of "{self.rng.choice(targets)}" in {vocab.source_language_code}?',
                    "correctAnswer": vocab.text_source,
                })
        return questions

    def build_flip_cards(self, vocabs: List[VocabSnapshot]) -> List[Dict[str, Any]]:
        cards = []
        for vocab in vocabs:
            source_face = [vocab.text_source]
            target_face = vocab.target_texts
            if self.rng.random() < 0.5:
                cards.append({
                    "vocabId": vocab.id,
                    "frontText": source_face,
                    "backText": target_face,
                    "frontLanguageCode": vocab.source_language_code,
                    "backLanguageCode": vocab.target_language_code,
                })
            else:
                cards.append({
                    "vocabId": vocab.id,
                    "frontText": target_face,
                    "backText": source_face,
                    "frontLanguageCode": vocab.target_language_code,
                    "backLanguageCode": vocab.source_language_code,
                })
        return cards

    # ------------------------------------------------------------------
    # 翻译口语对话
    # ------------------------------------------------------------------

    async def generate_dialogue(self, vocabs: List[VocabSnapshot],
                                user_id: Optional[int] = None) -> List[Dict[str, str]]:
        """生成覆盖全部词汇的4句 A/B 对话，不合格的输出按解析错误重试"""
        if not vocabs:
            return []
        words = dialogue_words(vocabs)
        prompt = (
            "TASK: DIALOGUE\n"
            "Write a short natural conversation between two speakers for a language learner.\n"
            f"Words: {json.dumps(words, ensure_ascii=False)}\n"
            "Rules:\n"
            "- Use ALL of the words above, each at least once, exactly as written.\n"
            "- Exactly 4 lines, speakers strictly alternating A, B, A, B.\n"
            'Respond with JSON only: {"dialogue": [{"speaker": "A", "text": "..."}]}\n'
            "Return ONLY the JSON object, no markdown formatting, no code blocks, no additional text."
        )

        async def _call():
            data = parse_json_response(await self.client.generate(prompt, user_id))
            if not isinstance(data, dict):
                raise ParseError("对话格式错误")
            return validate_dialogue(data.get("dialogue"), words)

        return await self._with_retry(_call, "对话生成")

    # ------------------------------------------------------------------
    # 词汇自动翻译
    # ------------------------------------------------------------------

    async def translate_vocab(self, vocab: VocabSnapshot, user_id: Optional[int] = None) -> Dict[str, Any]:
        prompt = (
            "TASK: VOCAB_TRANSLATION\n"
            f'Word: "{vocab.text_source}"\n'
            f"Translate the word from {vocab.source_language_code} to {vocab.target_language_code}.\n"
            'Respond with JSON only: {"textTarget": "...", "grammar": "...", '
            '"explanationSource": "...", "explanationTarget": "...", '
            '"vocabExamples": [{"source": "...", "target": "..."}]}\n'
            "Return ONLY the JSON object, no markdown formatting, no code blocks, no additional text."
        )

        async def _call():
            data = parse_json_response(await self.client.generate(prompt, user_id))
            if not isinstance(data, dict) or not str(data.get("textTarget") or "").strip():
                raise ParseError("翻译结果缺少 textTarget")
            examples = [
                {"source": str(ex.get("source", "")), "target": str(ex.get("target", ""))}
                for ex in data.get("vocabExamples") or []
                if isinstance(ex, dict) and ex.get("source") and ex.get("target")
            ]
            return {
                "text_target": str(data["textTarget"]).strip(),
                "grammar": data.get("grammar") or None,
                "explanation_source": data.get("explanationSource") or None,
                "explanation_target": data.get("explanationTarget") or None,
                "examples": examples,
            }

        return await self._with_retry(_call, f"词汇翻译(词汇{vocab.id})")
