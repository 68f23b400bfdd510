"""
任务载荷定义
队列中的数据统一使用驼峰字段名，例如 {vocabTrainerId, vocabList, userId}
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class TextTargetSnapshot(CamelModel):
    id: Optional[int] = None
    text_target: str
    grammar: Optional[str] = None
    explanation_source: Optional[str] = None
    explanation_target: Optional[str] = None


class VocabSnapshot(CamelModel):
    """任务中携带的词汇快照，worker 不需要再查询词汇表"""
    id: int
    text_source: str
    source_language_code: str
    target_language_code: str
    text_targets: List[TextTargetSnapshot] = Field(default_factory=list)

    @property
    def target_texts(self) -> List[str]:
        return [tt.text_target for tt in self.text_targets if (tt.text_target or "").strip()]


class GenerationJobPayload(CamelModel):
    """选择题生成 / 对话生成"""
    vocab_trainer_id: int
    vocab_list: List[VocabSnapshot]
    user_id: int


class FillInBlankEvaluationItem(CamelModel):
    vocab: VocabSnapshot
    vocab_id: int
    user_answer: str
    system_answer: str
    question_type: str  # textSource / textTarget


class AnswerSubmission(CamelModel):
    user_answer: str = ""
    system_answer: str = ""


class FillInBlankJobPayload(CamelModel):
    vocab_trainer_id: int
    evaluations: List[FillInBlankEvaluationItem]
    answer_submissions: List[AnswerSubmission]
    user_id: int


class AudioEvaluationJobPayload(CamelModel):
    vocab_trainer_id: int
    user_id: int
    file_id: str
    source_language: str
    target_language: str
    target_style: Optional[str] = None
    target_audience: Optional[str] = None


class VocabTranslationJobPayload(CamelModel):
    vocab_id: int
    user_id: int


class ReminderJobPayload(CamelModel):
    email: str
    reminder_type: str
    template: str
    data: Dict[str, Any] = Field(default_factory=dict)


class NotificationJobPayload(CamelModel):
    user_id: int
    data: Dict[str, Any] = Field(default_factory=dict)
