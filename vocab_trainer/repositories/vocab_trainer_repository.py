import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import asc, desc
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from vocab_trainer.models.vocab import Vocab
from vocab_trainer.models.vocab_trainer import VocabTrainer, VocabTrainerWord, VocabTrainerResult
from vocab_trainer.repositories.base import BaseRepository
from vocab_trainer.utils.exceptions import ConflictError

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = ("created_at", "updated_at", "name", "status", "reminder_repeat")


class VocabTrainerRepository(BaseRepository[VocabTrainer]):
    def __init__(self, db: Session):
        super().__init__(db, VocabTrainer)

    def _query(self):
        return self.db.query(VocabTrainer).options(
            selectinload(VocabTrainer.words)
            .selectinload(VocabTrainerWord.vocab)
            .selectinload(Vocab.text_targets),
            selectinload(VocabTrainer.results),
        )

    def find_by_id(self, trainer_id: int, user_id: Optional[int] = None) -> Optional[VocabTrainer]:
        """获取训练及其词汇和结果，传入 user_id 时只查该用户的记录"""
        query = self._query().filter(VocabTrainer.id == trainer_id)
        if user_id is not None:
            query = query.filter(VocabTrainer.user_id == user_id)
        return query.first()

    def find_by_ids(self, trainer_ids: List[int], user_id: Optional[int] = None) -> List[VocabTrainer]:
        query = self.db.query(VocabTrainer).filter(VocabTrainer.id.in_(trainer_ids))
        if user_id is not None:
            query = query.filter(VocabTrainer.user_id == user_id)
        return query.all()

    def find_with_pagination(self, user_id: int, page: int = 1, page_size: int = 20,
                             name: Optional[str] = None, question_type: Optional[str] = None,
                             statuses: Optional[List[str]] = None, sort_by: str = "created_at",
                             sort_order: str = "desc") -> Tuple[List[VocabTrainer], int]:
        """分页查询用户的训练"""
        query = self._query().filter(VocabTrainer.user_id == user_id)
        if name:
            query = query.filter(VocabTrainer.name.ilike(f"%{name}%"))
        if question_type:
            query = query.filter(VocabTrainer.question_type == question_type)
        if statuses:
            query = query.filter(VocabTrainer.status.in_(statuses))

        total = query.count()

        column = getattr(VocabTrainer, sort_by if sort_by in SORTABLE_FIELDS else "created_at")
        order = desc if sort_order.lower() == "desc" else asc
        items = query.order_by(order(column), order(VocabTrainer.id)) \
            .offset((page - 1) * page_size).limit(page_size).all()
        return items, total

    def create_trainer(self, user_id: int, vocab_ids: List[int], **fields) -> VocabTrainer:
        """创建训练并按顺序分配词汇"""
        trainer = VocabTrainer(user_id=user_id, **fields)
        for position, vocab_id in enumerate(vocab_ids):
            trainer.words.append(VocabTrainerWord(vocab_id=vocab_id, position=position))
        self.db.add(trainer)
        self.save(trainer)
        return trainer

    def replace_words(self, trainer: VocabTrainer, vocab_ids: List[int]):
        """替换词汇分配（不提交）"""
        trainer.words.clear()
        self.db.flush()
        for position, vocab_id in enumerate(vocab_ids):
            trainer.words.append(VocabTrainerWord(vocab_id=vocab_id, position=position))

    def save(self, trainer: VocabTrainer) -> VocabTrainer:
        """
        提交训练的修改
        版本号不一致说明记录已被其他请求修改，抛出 ConflictError
        """
        try:
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            logger.warning(f"训练 {trainer.id} 写入冲突: {e}")
            raise ConflictError(f"VocabTrainer {trainer.id} 已被其他请求修改") from e
        self.db.refresh(trainer)
        return trainer

    def update_trainer(self, trainer: VocabTrainer, **fields) -> VocabTrainer:
        for key, value in fields.items():
            setattr(trainer, key, value)
        return self.save(trainer)

    def delete_trainer(self, trainer: VocabTrainer):
        trainer_id = trainer.id
        self.db.delete(trainer)
        try:
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            raise ConflictError(f"VocabTrainer {trainer_id} 已被其他请求修改") from e

    def delete_many(self, trainer_ids: List[int], user_id: int) -> int:
        trainers = self.find_by_ids(trainer_ids, user_id)
        for trainer in trainers:
            self.db.delete(trainer)
        self.db.commit()
        return len(trainers)

    def create_results(self, trainer_id: int, results: List[Dict], commit: bool = True) -> List[VocabTrainerResult]:
        rows = [VocabTrainerResult(vocab_trainer_id=trainer_id, **result) for result in results]
        self.db.add_all(rows)
        if commit:
            self.db.commit()
        return rows

    def delete_results_by_trainer_id(self, trainer_id: int, commit: bool = True) -> int:
        count = self.db.query(VocabTrainerResult) \
            .filter(VocabTrainerResult.vocab_trainer_id == trainer_id) \
            .delete(synchronize_session=False)
        if commit:
            self.db.commit()
        return count

    def replace_results(self, trainer_id: int, results: List[Dict], commit: bool = True) -> List[VocabTrainerResult]:
        """在一个事务中删除旧结果并写入新结果，commit=False 时由调用方提交"""
        try:
            self.delete_results_by_trainer_id(trainer_id, commit=False)
            rows = self.create_results(trainer_id, results, commit=False)
            if commit:
                self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return rows

    def get_results(self, trainer_id: int) -> List[VocabTrainerResult]:
        return self.db.query(VocabTrainerResult) \
            .filter(VocabTrainerResult.vocab_trainer_id == trainer_id) \
            .order_by(VocabTrainerResult.id).all()
