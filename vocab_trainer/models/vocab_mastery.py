from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from .base import BaseModel

"""
词汇掌握度模型
每个 (词汇, 用户) 一条记录，mastery_score 取值 0..10；
每次更新都追加一条历史快照用于趋势统计
"""
class VocabMastery(BaseModel):
    __tablename__ = "vocab_mastery"
    __table_args__ = (
        UniqueConstraint("vocab_id", "user_id", name="uq_vocab_mastery_vocab_user"),
    )

    vocab_id = Column(Integer, ForeignKey("vocabs.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    mastery_score = Column(Integer, nullable=False, default=0)
    correct_count = Column(Integer, nullable=False, default=0)
    incorrect_count = Column(Integer, nullable=False, default=0)

    vocab = relationship("Vocab")

    def to_dict(self):
        return {
            "id": self.id,
            "vocab_id": self.vocab_id,
            "user_id": self.user_id,
            "mastery_score": self.mastery_score,
            "correct_count": self.correct_count,
            "incorrect_count": self.incorrect_count,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None
        }


class VocabMasteryHistory(BaseModel):
    __tablename__ = "vocab_mastery_history"

    vocab_mastery_id = Column(Integer, ForeignKey("vocab_mastery.id", ondelete="CASCADE"), nullable=False, index=True)
    vocab_id = Column(Integer, nullable=False)
    user_id = Column(Integer, nullable=False, index=True)
    mastery_score = Column(Integer, nullable=False)
    correct_count = Column(Integer, nullable=False)
    incorrect_count = Column(Integer, nullable=False)
