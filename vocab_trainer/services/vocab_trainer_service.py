#!/usr/bin/env python3
"""
词汇训练服务模块
训练的创建、查询、修改、删除，出题（需要大模型的题型走任务队列）和提交答案
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from vocab_trainer.jobs.job_queue import JobName, QueueName
from vocab_trainer.jobs.payloads import (
    AnswerSubmission, AudioEvaluationJobPayload, FillInBlankEvaluationItem,
    FillInBlankJobPayload, GenerationJobPayload, VocabSnapshot
)
from vocab_trainer.models.vocab_trainer import QuestionType, TrainerStatus, VocabTrainer
from vocab_trainer.repositories.vocab_repository import VocabRepository
from vocab_trainer.repositories.vocab_trainer_repository import VocabTrainerRepository
from vocab_trainer.services.answer_evaluator import (
    evaluate_multiple_choice, score_percentage
)
from vocab_trainer.services.exam_generator import ExamGenerator
from vocab_trainer.services.grading_service import TrainerGradingService
from vocab_trainer.utils.exceptions import NotFoundError, ValidationError
from vocab_trainer.utils.helpers import utc_now

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "status", "count_time", "set_count_time", "reminder_disabled")


class VocabTrainerService:
    def __init__(self, db: Session, job_queue, notifier=None, exam_generator: ExamGenerator = None):
        self.db = db
        self.job_queue = job_queue
        self.trainer_repo = VocabTrainerRepository(db)
        self.vocab_repo = VocabRepository(db)
        # 填空题和翻卡不调用大模型，不需要客户端
        self.exam_generator = exam_generator or ExamGenerator(completion_client=None)
        self.grading_service = TrainerGradingService(db, job_queue, notifier)
        logger.info("词汇训练服务初始化完成")

    # ------------------------------------------------------------------
    # 增删改查
    # ------------------------------------------------------------------

    def create(self, user_id: int, data: Dict[str, Any]) -> VocabTrainer:
        """创建训练，词汇ID去重后按顺序分配"""
        vocab_ids = self._unique_ids(data.get("vocab_ids") or [])
        self._ensure_vocabs_exist(vocab_ids, user_id)

        question_type = data.get("question_type") or QuestionType.MULTIPLE_CHOICE.value
        if question_type not in QuestionType.__members__:
            raise ValidationError(f"不支持的题型: {question_type}")

        try:
            trainer = self.trainer_repo.create_trainer(
                user_id=user_id,
                vocab_ids=vocab_ids,
                name=data["name"],
                question_type=question_type,
                status=TrainerStatus.PENDING.value,
                question_answers=[],
                count_time=0,
                set_count_time=data.get("set_count_time") or 0,
                reminder_repeat=0,
                reminder_last_remind=utc_now(),
                reminder_disabled=bool(data.get("reminder_disabled", False)),
            )
            logger.info(f"创建训练 {trainer.id} user={user_id} 题型={question_type} 词汇数={len(vocab_ids)}")
            return trainer
        except Exception as e:
            logger.error(f"创建训练失败: {e}")
            raise

    def find(self, user_id: int, page: int = 1, page_size: int = 20, name: Optional[str] = None,
             question_type: Optional[str] = None, statuses: Optional[List[str]] = None,
             sort_by: str = "created_at", sort_order: str = "desc") -> Dict[str, Any]:
        page = max(page, 1)
        page_size = max(1, min(page_size, 100))
        items, total = self.trainer_repo.find_with_pagination(
            user_id, page, page_size, name, question_type, statuses, sort_by, sort_order
        )
        return {
            "items": items,
            "total": total,
            "page": page,
            "page_size": page_size,
            "total_pages": (total + page_size - 1) // page_size,
        }

    def find_one(self, trainer_id: int, user_id: Optional[int] = None) -> VocabTrainer:
        trainer = self.trainer_repo.find_by_id(trainer_id, user_id)
        if not trainer:
            raise NotFoundError(f"VocabTrainer {trainer_id} 不存在")
        return trainer

    def update(self, trainer_id: int, user_id: int, data: Dict[str, Any]) -> VocabTrainer:
        """
        修改训练
        题型不可修改；重新分配词汇时清空已生成的题目
        """
        trainer = self.find_one(trainer_id, user_id)

        new_type = data.get("question_type")
        if new_type is not None and new_type != trainer.question_type:
            raise ValidationError("训练创建后不能修改题型")

        if data.get("vocab_ids") is not None:
            vocab_ids = self._unique_ids(data["vocab_ids"])
            self._ensure_vocabs_exist(vocab_ids, user_id)
            if vocab_ids != trainer.vocab_ids:
                self.trainer_repo.replace_words(trainer, vocab_ids)
                trainer.question_answers = []
                logger.info(f"训练 {trainer_id} 重新分配词汇，已清空题目")

        fields = {key: data[key] for key in UPDATABLE_FIELDS if data.get(key) is not None}
        return self.trainer_repo.update_trainer(trainer, **fields)

    def delete(self, trainer_id: int, user_id: int) -> bool:
        trainer = self.find_one(trainer_id, user_id)
        self.trainer_repo.delete_trainer(trainer)
        logger.info(f"删除训练 {trainer_id}")
        return True

    def delete_bulk(self, trainer_ids: List[int], user_id: int) -> int:
        if not trainer_ids:
            raise ValidationError("请至少选择一个训练")
        count = self.trainer_repo.delete_many(self._unique_ids(trainer_ids), user_id)
        logger.info(f"批量删除训练 {count}/{len(trainer_ids)} user={user_id}")
        return count

    # ------------------------------------------------------------------
    # 出题
    # ------------------------------------------------------------------

    async def find_one_and_exam(self, trainer_id: int, user_id: int) -> Dict[str, Any]:
        """
        获取训练和题目

        选择题和口语对话在题目为空时入队生成任务，立即返回空题目和任务ID；
        填空题和翻卡首次获取时生成并保存，之后返回相同内容
        """
        trainer = self.find_one(trainer_id, user_id)
        if trainer.question_answers:
            return {"trainer": trainer, "job_id": None}

        vocabs = self._snapshots(trainer)
        if not vocabs:
            logger.info(f"训练 {trainer_id} 没有词汇，返回空题目")
            return {"trainer": trainer, "job_id": None}

        question_type = trainer.question_type
        if question_type == QuestionType.MULTIPLE_CHOICE.value:
            job_id = await self._enqueue_generation(
                QueueName.MULTIPLE_CHOICE_GENERATION, JobName.GENERATE_QUESTIONS, trainer, vocabs, user_id
            )
            return {"trainer": trainer, "job_id": job_id}

        if question_type == QuestionType.TRANSLATION_AUDIO.value:
            job_id = await self._enqueue_generation(
                QueueName.DIALOGUE_GENERATION, JobName.GENERATE_DIALOGUE, trainer, vocabs, user_id
            )
            return {"trainer": trainer, "job_id": job_id}

        if question_type == QuestionType.FILL_IN_THE_BLANK.value:
            questions = self.exam_generator.build_fill_in_blank(vocabs)
        else:
            questions = self.exam_generator.build_flip_cards(vocabs)
        trainer = self.trainer_repo.update_trainer(trainer, question_answers=questions)
        return {"trainer": trainer, "job_id": None}

    async def _enqueue_generation(self, queue_name: str, job_name: str, trainer: VocabTrainer,
                                  vocabs: List[VocabSnapshot], user_id: int) -> str:
        payload = GenerationJobPayload(vocab_trainer_id=trainer.id, vocab_list=vocabs, user_id=user_id)
        job_id = await self.job_queue.enqueue(queue_name, job_name, payload.to_payload(),
                                              key=f"trainer:{trainer.id}")
        logger.info(f"训练 {trainer.id} 已入队生成任务 {job_id} ({queue_name})")
        return job_id

    # ------------------------------------------------------------------
    # 提交
    # ------------------------------------------------------------------

    async def submit_multiple_choice(self, trainer_id: int, user_id: int,
                                     data: Dict[str, Any]) -> Dict[str, Any]:
        """选择题同步评分"""
        trainer = self.find_one(trainer_id, user_id)
        self._ensure_type(trainer, QuestionType.MULTIPLE_CHOICE)

        answers = data.get("word_test_selects") or []
        if not answers:
            raise ValidationError("提交的答案不能为空")

        evaluation = evaluate_multiple_choice(answers, trainer.question_answers)
        percentage = score_percentage(evaluation["correct"], len(answers))

        self._record_count_time(trainer, data.get("count_time"))
        outcome = await self.grading_service.apply_grading_outcome(
            trainer_id, user_id, evaluation["results"], percentage,
            exam_path="/exam/multiple-choice"
        )
        return self._submission_response(trainer_id, user_id, outcome)

    async def submit_fill_in_blank(self, trainer_id: int, user_id: int,
                                   data: Dict[str, Any]) -> Dict[str, Any]:
        """
        填空题提交：按答案文本匹配词汇后入队评估任务
        systemAnswer 与源词或释义完全一致才能匹配，匹配不到的答案记录警告后跳过
        """
        trainer = self.find_one(trainer_id, user_id)
        self._ensure_type(trainer, QuestionType.FILL_IN_THE_BLANK)

        inputs = data.get("word_test_inputs") or []
        if not inputs:
            raise ValidationError("提交的答案不能为空")

        vocabs = self._snapshots(trainer)
        evaluations = []
        for item in inputs:
            matched = self._match_vocab(item.get("system_answer", ""), vocabs)
            if not matched:
                logger.warning(f"训练 {trainer_id} 答案无法匹配词汇，已跳过: {item.get('system_answer')}")
                continue
            vocab, question_type = matched
            evaluations.append(FillInBlankEvaluationItem(
                vocab=vocab,
                vocab_id=vocab.id,
                user_answer=item.get("user_answer", ""),
                system_answer=item.get("system_answer", ""),
                question_type=question_type,
            ))

        self._record_count_time(trainer, data.get("count_time"))
        payload = FillInBlankJobPayload(
            vocab_trainer_id=trainer_id,
            evaluations=evaluations,
            answer_submissions=[AnswerSubmission(user_answer=i.get("user_answer", ""),
                                                 system_answer=i.get("system_answer", ""))
                                for i in inputs],
            user_id=user_id,
        )
        job_id = await self.job_queue.enqueue(
            QueueName.FILL_IN_BLANK_EVALUATION, JobName.EVALUATE_ANSWERS, payload.to_payload()
        )
        logger.info(f"训练 {trainer_id} 填空题评估任务已入队 {job_id}，匹配 {len(evaluations)}/{len(inputs)}")
        return {"trainer": self.trainer_repo.find_by_id(trainer_id), "job_id": job_id, "outcome": None}

    async def submit_translation_audio(self, trainer_id: int, user_id: int,
                                       data: Dict[str, Any]) -> Dict[str, Any]:
        """口语翻译提交：需要已生成的对话和至少一个词汇"""
        trainer = self.find_one(trainer_id, user_id)
        self._ensure_type(trainer, QuestionType.TRANSLATION_AUDIO)

        if not trainer.question_answers:
            raise ValidationError("训练还没有生成对话，无法提交")
        vocabs = self._snapshots(trainer)
        if not vocabs:
            raise ValidationError("训练没有分配词汇，无法提交")

        file_id = (data.get("file_id") or "").strip()
        if not file_id:
            raise ValidationError("缺少音频文件ID")

        first = vocabs[0]
        self._record_count_time(trainer, data.get("count_time"))
        payload = AudioEvaluationJobPayload(
            vocab_trainer_id=trainer_id,
            user_id=user_id,
            file_id=file_id,
            source_language=data.get("source_language") or first.source_language_code,
            target_language=data.get("target_language") or first.target_language_code,
            target_style=data.get("target_style"),
            target_audience=data.get("target_audience"),
        )
        job_id = await self.job_queue.enqueue(
            QueueName.AUDIO_EVALUATION, JobName.EVALUATE_AUDIO, payload.to_payload()
        )
        logger.info(f"训练 {trainer_id} 口语评估任务已入队 {job_id}")
        return {"trainer": self.trainer_repo.find_by_id(trainer_id), "job_id": job_id, "outcome": None}

    # ------------------------------------------------------------------
    # 工具方法
    # ------------------------------------------------------------------

    @staticmethod
    def _unique_ids(ids: List[int]) -> List[int]:
        seen = set()
        return [i for i in ids if not (i in seen or seen.add(i))]

    def _ensure_vocabs_exist(self, vocab_ids: List[int], user_id: int):
        found = {vocab.id for vocab in self.vocab_repo.find_by_ids(vocab_ids, user_id)}
        missing = [vid for vid in vocab_ids if vid not in found]
        if missing:
            raise NotFoundError(f"词汇不存在: {missing}")

    @staticmethod
    def _ensure_type(trainer: VocabTrainer, expected: QuestionType):
        if trainer.question_type != expected.value:
            raise ValidationError(
                f"题型不匹配：训练为 {trainer.question_type}，提交的是 {expected.value}"
            )

    @staticmethod
    def _snapshots(trainer: VocabTrainer) -> List[VocabSnapshot]:
        return [VocabSnapshot.model_validate(vocab) for vocab in trainer.vocabs]

    @staticmethod
    def _match_vocab(system_answer: str, vocabs: List[VocabSnapshot]):
        for vocab in vocabs:
            if vocab.text_source == system_answer:
                return vocab, "textSource"
            if system_answer in vocab.target_texts:
                return vocab, "textTarget"
        return None

    def _record_count_time(self, trainer: VocabTrainer, count_time: Optional[int]):
        if count_time is not None:
            self.trainer_repo.update_trainer(trainer, count_time=count_time)

    def _submission_response(self, trainer_id: int, user_id: int, outcome: Dict[str, Any]) -> Dict[str, Any]:
        trainer = None if outcome["deleted"] else self.trainer_repo.find_by_id(trainer_id, user_id)
        return {"trainer": trainer, "job_id": None, "outcome": outcome}
