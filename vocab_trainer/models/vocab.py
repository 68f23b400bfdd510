from sqlalchemy import Column, String, Integer, ForeignKey, Text
from sqlalchemy.orm import relationship
from .base import BaseModel

"""
词汇模型
一个源语言词汇（text_source）对应一个或多个目标语言释义（TextTarget），
每个释义可以带若干例句（VocabExample）
"""
class Vocab(BaseModel):
    __tablename__ = "vocabs"

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    text_source = Column(String(255), nullable=False)
    source_language_code = Column(String(10), nullable=False, default="en")
    target_language_code = Column(String(10), nullable=False, default="vi")

    text_targets = relationship(
        "TextTarget",
        back_populates="vocab",
        cascade="all, delete-orphan",
        order_by="TextTarget.id"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "text_source": self.text_source,
            "source_language_code": self.source_language_code,
            "target_language_code": self.target_language_code,
            "text_targets": [tt.to_dict() for tt in self.text_targets],
        }


class TextTarget(BaseModel):
    __tablename__ = "text_targets"

    vocab_id = Column(Integer, ForeignKey("vocabs.id", ondelete="CASCADE"), nullable=False, index=True)
    text_target = Column(String(255), nullable=False, default="")
    grammar = Column(String(100))
    explanation_source = Column(Text)
    explanation_target = Column(Text)

    vocab = relationship("Vocab", back_populates="text_targets")
    examples = relationship(
        "VocabExample",
        back_populates="text_target_ref",
        cascade="all, delete-orphan",
        order_by="VocabExample.id"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "text_target": self.text_target,
            "grammar": self.grammar,
            "explanation_source": self.explanation_source,
            "explanation_target": self.explanation_target,
            "examples": [ex.to_dict() for ex in self.examples],
        }


class VocabExample(BaseModel):
    __tablename__ = "vocab_examples"

    text_target_id = Column(Integer, ForeignKey("text_targets.id", ondelete="CASCADE"), nullable=False)
    source = Column(Text, nullable=False)
    target = Column(Text, nullable=False)

    text_target_ref = relationship("TextTarget", back_populates="examples")

    def to_dict(self):
        return {"id": self.id, "source": self.source, "target": self.target}
