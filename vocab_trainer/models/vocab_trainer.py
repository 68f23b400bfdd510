from enum import Enum

from sqlalchemy import Column, String, Integer, ForeignKey, DateTime, Boolean, Text, JSON
from sqlalchemy.orm import relationship
from .base import BaseModel


class QuestionType(str, Enum):
    """题型"""
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    FLIP_CARD = "FLIP_CARD"
    FILL_IN_THE_BLANK = "FILL_IN_THE_BLANK"
    TRANSLATION_AUDIO = "TRANSLATION_AUDIO"


class TrainerStatus(str, Enum):
    """训练状态，结果行也使用 PASSED / FAILED"""
    PENDING = "PENDING"
    PASSED = "PASSED"
    FAILED = "FAILED"


"""
词汇训练模型
一次考试的聚合根：题型创建后不可修改，question_answers 按题型保存生成的题目，
reminder_repeat 记录通过次数，达到上限时记录被删除
"""
class VocabTrainer(BaseModel):
    __tablename__ = "vocab_trainers"

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    question_type = Column(String(30), nullable=False, default=QuestionType.MULTIPLE_CHOICE.value)
    status = Column(String(20), nullable=False, default=TrainerStatus.PENDING.value)
    question_answers = Column(JSON, nullable=False, default=list)
    count_time = Column(Integer, default=0)        # 实际用时（秒）
    set_count_time = Column(Integer, default=0)    # 规定用时（秒）
    reminder_repeat = Column(Integer, nullable=False, default=0)
    reminder_last_remind = Column(DateTime)
    reminder_disabled = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    words = relationship(
        "VocabTrainerWord",
        back_populates="trainer",
        cascade="all, delete-orphan",
        order_by="VocabTrainerWord.position"
    )
    results = relationship(
        "VocabTrainerResult",
        back_populates="trainer",
        cascade="all, delete-orphan",
        order_by="VocabTrainerResult.id"
    )

    @property
    def vocabs(self):
        """按分配顺序返回词汇"""
        return [word.vocab for word in self.words if word.vocab is not None]

    @property
    def vocab_ids(self):
        return [word.vocab_id for word in self.words]

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "question_type": self.question_type,
            "status": self.status,
            "question_answers": self.question_answers or [],
            "count_time": self.count_time,
            "set_count_time": self.set_count_time,
            "reminder_repeat": self.reminder_repeat,
            "reminder_last_remind": self.reminder_last_remind.isoformat() if self.reminder_last_remind else None,
            "reminder_disabled": self.reminder_disabled,
            "vocab_ids": self.vocab_ids,
            "created_at": self.created_at.isoformat() if self.created_at else None
        }


class VocabTrainerWord(BaseModel):
    __tablename__ = "vocab_trainer_words"

    vocab_trainer_id = Column(Integer, ForeignKey("vocab_trainers.id", ondelete="CASCADE"), nullable=False, index=True)
    vocab_id = Column(Integer, ForeignKey("vocabs.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    trainer = relationship("VocabTrainer", back_populates="words")
    vocab = relationship("Vocab")


class VocabTrainerResult(BaseModel):
    __tablename__ = "vocab_trainer_results"

    vocab_trainer_id = Column(Integer, ForeignKey("vocab_trainers.id", ondelete="CASCADE"), nullable=False, index=True)
    vocab_id = Column(Integer, ForeignKey("vocabs.id", ondelete="SET NULL"))
    status = Column(String(20), nullable=False)
    user_selected = Column(Text, default="")
    system_selected = Column(Text, default="")
    data = Column(JSON)  # explanation / 评估报告

    trainer = relationship("VocabTrainer", back_populates="results")

    def to_dict(self):
        return {
            "id": self.id,
            "vocab_trainer_id": self.vocab_trainer_id,
            "vocab_id": self.vocab_id,
            "status": self.status,
            "user_selected": self.user_selected,
            "system_selected": self.system_selected,
            "data": self.data,
        }
