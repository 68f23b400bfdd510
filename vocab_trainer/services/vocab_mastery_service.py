#!/usr/bin/env python3
"""
词汇掌握度服务模块
每次评分都调用 update_mastery：答对 +1（最高10），答错 -1（最低0），并追加历史快照
"""

import logging
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vocab_trainer.models.vocab_mastery import VocabMastery
from vocab_trainer.repositories.vocab_mastery_repository import VocabMasteryRepository
from vocab_trainer.utils.exceptions import NotFoundError
from vocab_trainer.utils.helpers import ensure_utc

logger = logging.getLogger(__name__)

# 分数分布区间
DISTRIBUTION_BUCKETS = [
    ("0", 0, 0),
    ("1-2", 1, 2),
    ("3-4", 3, 4),
    ("5-6", 5, 6),
    ("7-8", 7, 8),
    ("9-10", 9, 10),
]


class VocabMasteryService:
    def __init__(self, db: Session):
        self.db = db
        self.mastery_repo = VocabMasteryRepository(db)

    def update_mastery(self, vocab_id: int, user_id: int, is_correct: bool,
                       commit: bool = True) -> VocabMastery:
        """
        更新掌握度

        分数调整在数据库中原子完成；历史快照写入失败只记录日志。
        commit=False 时由调用方提交事务，提交后再调用 record_history
        """
        try:
            mastery = self.mastery_repo.get_or_create(vocab_id, user_id)
            mastery = self.mastery_repo.apply_grading(mastery.id, is_correct, commit=commit)
        except Exception as e:
            logger.error(f"更新掌握度失败 vocab={vocab_id} user={user_id}: {e}")
            self.db.rollback()
            raise

        if commit:
            self.record_history(mastery)
        logger.debug(f"掌握度已更新 vocab={vocab_id} user={user_id} score={mastery.mastery_score}")
        return mastery

    def ensure_mastery(self, vocab_id: int, user_id: int) -> VocabMastery:
        return self.mastery_repo.get_or_create(vocab_id, user_id)

    def record_history(self, mastery: VocabMastery):
        mastery_id = mastery.id
        try:
            self.mastery_repo.add_history(mastery)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"写入掌握度历史失败 mastery={mastery_id}: {e}")

    def get_mastery(self, vocab_id: int, user_id: int) -> VocabMastery:
        mastery = self.mastery_repo.find_by_vocab_id_and_user_id(vocab_id, user_id)
        if not mastery:
            raise NotFoundError(f"词汇 {vocab_id} 的掌握度记录不存在")
        return mastery

    def get_summary(self, user_id: int) -> Dict[str, Any]:
        total, correct, incorrect, average = self.mastery_repo.get_user_totals(user_id)
        return {
            "user_id": user_id,
            "total_vocabs": total,
            "total_correct": int(correct),
            "total_incorrect": int(incorrect),
            "average_mastery": round(float(average), 2) if average is not None else 0.0,
        }

    def get_distribution(self, user_id: int) -> List[Dict[str, Any]]:
        counts = OrderedDict((label, 0) for label, _, _ in DISTRIBUTION_BUCKETS)
        for mastery in self.mastery_repo.get_user_masteries(user_id):
            for label, low, high in DISTRIBUTION_BUCKETS:
                if low <= mastery.mastery_score <= high:
                    counts[label] += 1
                    break
        return [{"range": label, "count": count} for label, count in counts.items()]

    def get_top_problematic(self, user_id: int, min_incorrect: int = 5,
                            limit: int = 10) -> List[Dict[str, Any]]:
        items = []
        for mastery in self.mastery_repo.get_problematic(user_id, min_incorrect, limit):
            item = mastery.to_dict()
            item["text_source"] = mastery.vocab.text_source if mastery.vocab else None
            items.append(item)
        return items

    def get_progress_over_time(self, user_id: int, start: Optional[datetime] = None,
                               end: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """按天统计历史快照的平均分"""
        daily: "OrderedDict[str, List[int]]" = OrderedDict()
        for history in self.mastery_repo.get_history(user_id, start, end):
            day = ensure_utc(history.created_at).date().isoformat()
            daily.setdefault(day, []).append(history.mastery_score)
        return [
            {"date": day, "average_mastery": round(sum(scores) / len(scores), 2), "events": len(scores)}
            for day, scores in daily.items()
        ]
