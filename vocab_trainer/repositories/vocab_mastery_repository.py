from datetime import datetime
from typing import List, Optional

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from vocab_trainer.models.vocab_mastery import VocabMastery, VocabMasteryHistory
from vocab_trainer.repositories.base import BaseRepository

MAX_SCORE = 10
MIN_SCORE = 0


class VocabMasteryRepository(BaseRepository[VocabMastery]):
    def __init__(self, db: Session):
        super().__init__(db, VocabMastery)

    def find_by_vocab_id_and_user_id(self, vocab_id: int, user_id: int) -> Optional[VocabMastery]:
        return self.db.query(VocabMastery).filter(
            VocabMastery.vocab_id == vocab_id,
            VocabMastery.user_id == user_id
        ).first()

    def get_or_create(self, vocab_id: int, user_id: int) -> VocabMastery:
        """获取或创建掌握度记录，并发创建时以已存在的记录为准"""
        mastery = self.find_by_vocab_id_and_user_id(vocab_id, user_id)
        if mastery:
            return mastery
        try:
            return self.create(vocab_id=vocab_id, user_id=user_id, mastery_score=0,
                               correct_count=0, incorrect_count=0)
        except IntegrityError:
            self.db.rollback()
            return self.find_by_vocab_id_and_user_id(vocab_id, user_id)

    def apply_grading(self, mastery_id: int, is_correct: bool, commit: bool = True) -> VocabMastery:
        """在数据库中原子地调整分数（限制在 0..10）和对错计数"""
        if is_correct:
            values = {
                VocabMastery.mastery_score: case(
                    (VocabMastery.mastery_score >= MAX_SCORE, MAX_SCORE),
                    else_=VocabMastery.mastery_score + 1
                ),
                VocabMastery.correct_count: VocabMastery.correct_count + 1,
            }
        else:
            values = {
                VocabMastery.mastery_score: case(
                    (VocabMastery.mastery_score <= MIN_SCORE, MIN_SCORE),
                    else_=VocabMastery.mastery_score - 1
                ),
                VocabMastery.incorrect_count: VocabMastery.incorrect_count + 1,
            }
        self.db.query(VocabMastery).filter(VocabMastery.id == mastery_id) \
            .update(values, synchronize_session=False)
        if commit:
            self.db.commit()
        mastery = self.get_by_id(mastery_id)
        self.db.refresh(mastery)
        return mastery

    def add_history(self, mastery: VocabMastery) -> VocabMasteryHistory:
        history = VocabMasteryHistory(
            vocab_mastery_id=mastery.id,
            vocab_id=mastery.vocab_id,
            user_id=mastery.user_id,
            mastery_score=mastery.mastery_score,
            correct_count=mastery.correct_count,
            incorrect_count=mastery.incorrect_count,
        )
        self.db.add(history)
        self.db.commit()
        return history

    def get_user_masteries(self, user_id: int) -> List[VocabMastery]:
        return self.db.query(VocabMastery).filter(VocabMastery.user_id == user_id).all()

    def get_user_totals(self, user_id: int):
        """返回 (词汇数, 正确总数, 错误总数, 平均分)"""
        return self.db.query(
            func.count(VocabMastery.id),
            func.coalesce(func.sum(VocabMastery.correct_count), 0),
            func.coalesce(func.sum(VocabMastery.incorrect_count), 0),
            func.avg(VocabMastery.mastery_score),
        ).filter(VocabMastery.user_id == user_id).one()

    def get_problematic(self, user_id: int, min_incorrect: int, limit: int) -> List[VocabMastery]:
        return self.db.query(VocabMastery).options(joinedload(VocabMastery.vocab)).filter(
            VocabMastery.user_id == user_id,
            VocabMastery.incorrect_count >= min_incorrect
        ).order_by(VocabMastery.incorrect_count.desc(), VocabMastery.mastery_score.asc()) \
            .limit(limit).all()

    def get_history(self, user_id: int, start: Optional[datetime] = None,
                    end: Optional[datetime] = None) -> List[VocabMasteryHistory]:
        query = self.db.query(VocabMasteryHistory).filter(VocabMasteryHistory.user_id == user_id)
        if start:
            query = query.filter(VocabMasteryHistory.created_at >= start)
        if end:
            query = query.filter(VocabMasteryHistory.created_at <= end)
        return query.order_by(VocabMasteryHistory.created_at.asc()).all()
