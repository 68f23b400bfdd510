from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List


class VocabExampleSchema(BaseModel):
    source: str
    target: str

    model_config = ConfigDict(
        from_attributes=True
    )


class TextTargetCreate(BaseModel):
    text_target: str = ""
    grammar: Optional[str] = None
    explanation_source: Optional[str] = None
    explanation_target: Optional[str] = None
    examples: List[VocabExampleSchema] = Field(default_factory=list)


class TextTargetResponse(TextTargetCreate):
    id: int

    model_config = ConfigDict(
        from_attributes=True
    )


class VocabCreate(BaseModel):
    text_source: str = Field(..., min_length=1, max_length=255)
    source_language_code: str = "en"
    target_language_code: str = "vi"
    text_targets: List[TextTargetCreate] = Field(default_factory=list)


class VocabResponse(BaseModel):
    id: int
    user_id: int
    text_source: str
    source_language_code: str
    target_language_code: str
    text_targets: List[TextTargetResponse] = []

    model_config = ConfigDict(
        from_attributes=True
    )


class VocabCreateResponse(BaseModel):
    """job_id 不为空表示已入队自动翻译任务"""
    vocab: VocabResponse
    job_id: Optional[str] = None
