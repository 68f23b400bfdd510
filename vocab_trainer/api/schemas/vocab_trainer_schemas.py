from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

from vocab_trainer.api.schemas.vocab_schemas import VocabResponse
from vocab_trainer.models.vocab_trainer import QuestionType


class VocabTrainerCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    vocab_ids: List[int] = Field(default_factory=list)
    question_type: QuestionType = QuestionType.MULTIPLE_CHOICE
    set_count_time: Optional[int] = Field(None, ge=0)
    reminder_disabled: bool = False


class VocabTrainerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    vocab_ids: Optional[List[int]] = None
    question_type: Optional[QuestionType] = None
    status: Optional[str] = None
    count_time: Optional[int] = Field(None, ge=0)
    set_count_time: Optional[int] = Field(None, ge=0)
    reminder_disabled: Optional[bool] = None


class BulkDeleteRequest(BaseModel):
    ids: List[int]


class BulkDeleteResponse(BaseModel):
    deleted: int


class VocabTrainerResultResponse(BaseModel):
    id: int
    vocab_id: Optional[int] = None
    status: str
    user_selected: Optional[str] = None
    system_selected: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(
        from_attributes=True
    )


class VocabTrainerResponse(BaseModel):
    id: int
    user_id: int
    name: str
    question_type: str
    status: str
    question_answers: List[Any] = []
    count_time: Optional[int] = 0
    set_count_time: Optional[int] = 0
    reminder_repeat: int
    reminder_last_remind: Optional[datetime] = None
    reminder_disabled: bool
    vocab_ids: List[int] = []
    vocabs: List[VocabResponse] = []
    results: List[VocabTrainerResultResponse] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(
        from_attributes=True
    )


class VocabTrainerListResponse(BaseModel):
    items: List[VocabTrainerResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class ExamResponse(BaseModel):
    """出题结果：job_id 不为空时题目由后台任务生成，进度通过 WebSocket 推送"""
    trainer: VocabTrainerResponse
    job_id: Optional[str] = None


class WordTestSelect(BaseModel):
    vocab_id: int
    user_selected: str = ""


class MultipleChoiceSubmit(BaseModel):
    word_test_selects: List[WordTestSelect]
    count_time: Optional[int] = Field(None, ge=0)


class WordTestInput(BaseModel):
    user_answer: str = ""
    system_answer: str


class FillInBlankSubmit(BaseModel):
    word_test_inputs: List[WordTestInput]
    count_time: Optional[int] = Field(None, ge=0)


class TranslationAudioSubmit(BaseModel):
    file_id: str = Field(..., min_length=1)
    source_language: Optional[str] = None
    target_language: Optional[str] = None
    target_style: Optional[str] = None
    target_audience: Optional[str] = None
    count_time: Optional[int] = Field(None, ge=0)


class GradingOutcome(BaseModel):
    status: str
    score_percentage: float = Field(..., alias="scorePercentage")
    reminder_repeat: int = Field(..., alias="reminderRepeat")
    deleted: bool

    model_config = ConfigDict(
        populate_by_name=True
    )


class SubmissionResponse(BaseModel):
    """提交结果：选择题同步返回 outcome，其它题型返回 job_id"""
    trainer: Optional[VocabTrainerResponse] = None
    job_id: Optional[str] = None
    outcome: Optional[GradingOutcome] = None
