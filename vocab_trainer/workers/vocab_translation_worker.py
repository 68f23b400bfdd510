import logging
from typing import Any, Dict

from vocab_trainer.jobs.job_queue import Job
from vocab_trainer.jobs.payloads import VocabSnapshot, VocabTranslationJobPayload
from vocab_trainer.repositories.vocab_repository import VocabRepository
from vocab_trainer.utils.exceptions import NotFoundError
from vocab_trainer.workers.context import WorkerContext

logger = logging.getLogger(__name__)


class VocabTranslationWorker:
    """词汇自动翻译：清理空白释义，调用大模型生成释义和例句"""

    def __init__(self, context: WorkerContext):
        self.context = context

    async def process(self, job: Job) -> Dict[str, Any]:
        payload = VocabTranslationJobPayload.model_validate(job.data)
        notifier = self.context.notifier
        logger.info(f"开始处理词汇翻译任务 {job.id} vocab={payload.vocab_id}")
        await notifier.emit_progress(payload.user_id, job.id, "generating")

        db = self.context.session_factory()
        try:
            vocab_repo = VocabRepository(db)
            vocab = vocab_repo.find_by_id(payload.vocab_id)
            if not vocab:
                raise NotFoundError(f"词汇 {payload.vocab_id} 不存在")

            removed = vocab_repo.remove_blank_text_targets(vocab)
            if removed:
                logger.debug(f"词汇 {vocab.id} 删除空白释义 {removed} 条")

            translation = await self.context.exam_generator.translate_vocab(
                VocabSnapshot.model_validate(vocab), payload.user_id
            )
            text_target = vocab_repo.add_text_target(vocab, translation)
            result = {"vocabId": vocab.id, "textTargetId": text_target.id,
                      "textTarget": text_target.text_target}
        except Exception as e:
            logger.error(f"词汇翻译任务 {job.id} 失败 vocab={payload.vocab_id}: {e}")
            await notifier.emit_progress(payload.user_id, job.id, "failed", {"error": str(e)})
            raise
        finally:
            db.close()

        await notifier.emit_progress(payload.user_id, job.id, "completed", result)
        return result
