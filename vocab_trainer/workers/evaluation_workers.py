"""
评分任务处理器
填空题和口语翻译由大模型评分，结果交给 TrainerGradingService 处理状态转换
"""
import logging
from typing import Any, Dict

from vocab_trainer.jobs.job_queue import Job
from vocab_trainer.jobs.payloads import AudioEvaluationJobPayload, FillInBlankJobPayload
from vocab_trainer.models.vocab_trainer import TrainerStatus
from vocab_trainer.repositories.vocab_trainer_repository import VocabTrainerRepository
from vocab_trainer.services.answer_evaluator import format_markdown_report, score_percentage
from vocab_trainer.services.grading_service import TrainerGradingService
from vocab_trainer.utils.exceptions import NotFoundError, ValidationError
from vocab_trainer.workers.context import WorkerContext

logger = logging.getLogger(__name__)


class FillInBlankEvaluationWorker:
    def __init__(self, context: WorkerContext):
        self.context = context

    async def process(self, job: Job) -> Dict[str, Any]:
        payload = FillInBlankJobPayload.model_validate(job.data)
        notifier = self.context.notifier
        logger.info(f"开始处理填空题评估任务 {job.id} trainer={payload.vocab_trainer_id} user={payload.user_id}")
        await notifier.emit_progress(payload.user_id, job.id, "evaluating")

        db = self.context.session_factory()
        try:
            evaluator = self.context.answer_evaluator
            judgments = await evaluator.evaluate_all_fill_in_blank(payload.evaluations, payload.user_id)

            results = []
            for item, judgment in zip(payload.evaluations, judgments):
                results.append({
                    "vocab_id": item.vocab_id,
                    "status": TrainerStatus.PASSED.value if judgment["isCorrect"] else TrainerStatus.FAILED.value,
                    "user_selected": item.user_answer,
                    "system_selected": item.system_answer,
                    "data": {"explanation": judgment.get("explanation")},
                })

            correct = sum(1 for judgment in judgments if judgment["isCorrect"])
            percentage = score_percentage(correct, len(payload.answer_submissions))

            grading = TrainerGradingService(db, self.context.job_queue, notifier)
            outcome = await grading.apply_grading_outcome(
                payload.vocab_trainer_id, payload.user_id, results, percentage,
                exam_path="/exam/fill-in-blank"
            )
        except Exception as e:
            logger.error(f"填空题评估任务 {job.id} 失败 trainer={payload.vocab_trainer_id}: {e}")
            await notifier.emit_progress(payload.user_id, job.id, "failed", {"error": str(e)})
            raise
        finally:
            db.close()

        await notifier.emit_progress(payload.user_id, job.id, "completed",
                                     {"vocabTrainerId": payload.vocab_trainer_id, **outcome})
        return outcome


class AudioEvaluationWorker:
    def __init__(self, context: WorkerContext):
        self.context = context

    async def process(self, job: Job) -> Dict[str, Any]:
        payload = AudioEvaluationJobPayload.model_validate(job.data)
        notifier = self.context.notifier
        logger.info(f"开始处理口语评估任务 {job.id} trainer={payload.vocab_trainer_id} user={payload.user_id}")
        await notifier.emit_progress(payload.user_id, job.id, "evaluating")

        db = self.context.session_factory()
        try:
            trainer = VocabTrainerRepository(db).find_by_id(payload.vocab_trainer_id)
            if not trainer:
                raise NotFoundError(f"VocabTrainer {payload.vocab_trainer_id} 不存在")
            dialogue = trainer.question_answers or []
            vocab_ids = trainer.vocab_ids
            if not dialogue or not vocab_ids:
                raise ValidationError(f"训练 {trainer.id} 没有对话或词汇")
            source_dialogue = "\n".join(f"{turn['speaker']}: {turn['text']}" for turn in dialogue)

            audio = await self.context.audio_store.download(payload.file_id)
            transcript = await self.context.completion_client.transcribe(
                audio.data, audio.mime_type, payload.target_language, payload.user_id
            )
            evaluation = await self.context.answer_evaluator.evaluate_translation(
                transcript, source_dialogue, payload.source_language, payload.target_language,
                payload.target_style, payload.target_audience, payload.user_id
            )
            report = format_markdown_report(evaluation, transcript, source_dialogue)

            evaluator = self.context.answer_evaluator
            status = evaluator.overall_status(evaluation["overallScore"])
            results = [{
                "vocab_id": None,
                "status": status,
                "user_selected": transcript,
                "system_selected": source_dialogue,
                "data": {"transcript": transcript, "report": report, "evaluation": evaluation},
            }]
            # 整段录音只有一个结论，每个词汇按该结论更新一次掌握度
            is_correct = status == TrainerStatus.PASSED.value
            mastery_updates = [(vocab_id, is_correct) for vocab_id in vocab_ids]

            grading = TrainerGradingService(db, self.context.job_queue, notifier)
            outcome = await grading.apply_grading_outcome(
                payload.vocab_trainer_id, payload.user_id, results, evaluation["overallScore"],
                mastery_updates=mastery_updates, exam_path="/exam/translation-audio"
            )
        except Exception as e:
            logger.error(f"口语评估任务 {job.id} 失败 trainer={payload.vocab_trainer_id}: {e}")
            await notifier.emit_progress(payload.user_id, job.id, "failed", {"error": str(e)})
            raise
        finally:
            db.close()

        outcome["overallScore"] = evaluation["overallScore"]
        await notifier.emit_progress(payload.user_id, job.id, "completed",
                                     {"vocabTrainerId": payload.vocab_trainer_id, **outcome})
        return outcome
