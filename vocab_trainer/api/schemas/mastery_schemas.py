from pydantic import BaseModel, ConfigDict
from typing import Optional, List
from datetime import datetime


class VocabMasteryResponse(BaseModel):
    id: int
    vocab_id: int
    user_id: int
    mastery_score: int
    correct_count: int
    incorrect_count: int
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(
        from_attributes=True
    )


class MasterySummaryResponse(BaseModel):
    user_id: int
    total_vocabs: int
    total_correct: int
    total_incorrect: int
    average_mastery: float


class MasteryDistributionItem(BaseModel):
    range: str
    count: int


class ProblematicVocabResponse(BaseModel):
    id: int
    vocab_id: int
    user_id: int
    mastery_score: int
    correct_count: int
    incorrect_count: int
    text_source: Optional[str] = None


class MasteryProgressItem(BaseModel):
    date: str
    average_mastery: float
    events: int


class MasteryProgressResponse(BaseModel):
    user_id: int
    items: List[MasteryProgressItem]
