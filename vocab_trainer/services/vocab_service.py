"""
词汇服务模块
创建词汇；没有提供释义时入队自动翻译任务
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from vocab_trainer.jobs.job_queue import JobName, QueueName
from vocab_trainer.jobs.payloads import VocabTranslationJobPayload
from vocab_trainer.models.vocab import Vocab
from vocab_trainer.repositories.user_repository import UserRepository
from vocab_trainer.repositories.vocab_repository import VocabRepository
from vocab_trainer.utils.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class VocabService:
    def __init__(self, db: Session, job_queue=None):
        self.db = db
        self.job_queue = job_queue
        self.vocab_repo = VocabRepository(db)
        self.user_repo = UserRepository(db)

    async def create(self, user_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        创建词汇

        Returns:
            dict: vocab 和自动翻译任务ID（如有）
        """
        if not self.user_repo.get_by_id(user_id):
            raise NotFoundError(f"用户 {user_id} 不存在")
        text_source = (data.get("text_source") or "").strip()
        if not text_source:
            raise ValidationError("词汇不能为空")

        text_targets = [
            item for item in data.get("text_targets") or []
            if (item.get("text_target") or "").strip()
        ]
        vocab = self.vocab_repo.create_vocab(
            user_id=user_id,
            text_source=text_source,
            source_language_code=data.get("source_language_code") or "en",
            target_language_code=data.get("target_language_code") or "vi",
            text_targets=text_targets,
        )
        logger.info(f"创建词汇 {vocab.id} user={user_id}: {text_source}")

        job_id = None
        if not text_targets and self.job_queue is not None:
            payload = VocabTranslationJobPayload(vocab_id=vocab.id, user_id=user_id)
            job_id = await self.job_queue.enqueue(
                QueueName.VOCAB_TRANSLATION, JobName.TRANSLATE_VOCAB, payload.to_payload(),
                key=f"vocab:{vocab.id}"
            )
            logger.info(f"词汇 {vocab.id} 没有释义，已入队自动翻译任务 {job_id}")
        return {"vocab": vocab, "job_id": job_id}

    def find_one(self, vocab_id: int, user_id: Optional[int] = None) -> Vocab:
        vocab = self.vocab_repo.find_by_id(vocab_id, user_id)
        if not vocab:
            raise NotFoundError(f"词汇 {vocab_id} 不存在")
        return vocab
