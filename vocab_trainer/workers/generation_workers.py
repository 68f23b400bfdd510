"""
出题任务处理器
选择题和口语对话的生成结果写回训练记录；题目已存在或词汇已变化时跳过
"""
import logging
from typing import Any, Dict

from vocab_trainer.jobs.job_queue import Job
from vocab_trainer.jobs.payloads import GenerationJobPayload
from vocab_trainer.repositories.vocab_trainer_repository import VocabTrainerRepository
from vocab_trainer.utils.exceptions import NotFoundError
from vocab_trainer.workers.context import WorkerContext

logger = logging.getLogger(__name__)


class GenerationWorker:
    """生成类任务的公共流程"""
    label = "generation"

    def __init__(self, context: WorkerContext):
        self.context = context

    async def generate(self, payload: GenerationJobPayload):
        raise NotImplementedError

    async def process(self, job: Job) -> Dict[str, Any]:
        payload = GenerationJobPayload.model_validate(job.data)
        notifier = self.context.notifier
        logger.info(f"开始处理{self.label}任务 {job.id} trainer={payload.vocab_trainer_id} user={payload.user_id}")
        await notifier.emit_progress(payload.user_id, job.id, "generating")

        db = self.context.session_factory()
        try:
            trainer_repo = VocabTrainerRepository(db)
            trainer = trainer_repo.find_by_id(payload.vocab_trainer_id)
            if not trainer:
                raise NotFoundError(f"VocabTrainer {payload.vocab_trainer_id} 不存在")

            if trainer.question_answers:
                logger.info(f"训练 {trainer.id} 已有题目，跳过任务 {job.id}")
                result = {"skipped": True, "count": len(trainer.question_answers)}
            elif set(v.id for v in payload.vocab_list) != set(trainer.vocab_ids):
                logger.info(f"训练 {trainer.id} 的词汇已变化，任务 {job.id} 作废")
                result = {"skipped": True, "count": 0}
            else:
                content = await self.generate(payload)
                # 版本号冲突时抛出 ConflictError，由队列重试
                trainer_repo.update_trainer(trainer, question_answers=content)
                result = {"skipped": False, "count": len(content)}
        except Exception as e:
            logger.error(f"{self.label}任务 {job.id} 失败 trainer={payload.vocab_trainer_id}: {e}")
            await notifier.emit_progress(payload.user_id, job.id, "failed", {"error": str(e)})
            raise
        finally:
            db.close()

        logger.info(f"{self.label}任务 {job.id} 完成 trainer={payload.vocab_trainer_id}: {result}")
        await notifier.emit_progress(payload.user_id, job.id, "completed",
                                     {"vocabTrainerId": payload.vocab_trainer_id, **result})
        return result


class MultipleChoiceGenerationWorker(GenerationWorker):
    label = "选择题生成"

    async def generate(self, payload: GenerationJobPayload):
        return await self.context.exam_generator.generate_multiple_choice(payload.vocab_list, payload.user_id)


class DialogueGenerationWorker(GenerationWorker):
    label = "对话生成"

    async def generate(self, payload: GenerationJobPayload):
        return await self.context.exam_generator.generate_dialogue(payload.vocab_list, payload.user_id)
