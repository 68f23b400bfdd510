import logging
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from vocab_trainer.utils.database import get_db
from vocab_trainer.utils.exceptions import VocabTrainerError
from vocab_trainer.services.vocab_mastery_service import VocabMasteryService
from vocab_trainer.api.schemas.mastery_schemas import (
    VocabMasteryResponse, MasterySummaryResponse, MasteryDistributionItem,
    ProblematicVocabResponse, MasteryProgressResponse
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/{user_id}/summary", response_model=MasterySummaryResponse)
async def get_mastery_summary(user_id: int, db: Session = Depends(get_db)):
    """
    获取用户掌握度汇总
    """
    try:
        return VocabMasteryService(db).get_summary(user_id)
    except Exception as e:
        logger.error(f"获取掌握度汇总失败: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="获取掌握度汇总失败"
        )


@router.get("/{user_id}/distribution", response_model=List[MasteryDistributionItem])
async def get_mastery_distribution(user_id: int, db: Session = Depends(get_db)):
    return VocabMasteryService(db).get_distribution(user_id)


@router.get("/{user_id}/problematic", response_model=List[ProblematicVocabResponse])
async def get_problematic_vocabs(
    user_id: int,
    min_incorrect: int = Query(5, ge=1, description="最少错误次数"),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db)
):
    """
    获取错误次数最多的词汇
    """
    return VocabMasteryService(db).get_top_problematic(user_id, min_incorrect, limit)


@router.get("/{user_id}/progress", response_model=MasteryProgressResponse)
async def get_mastery_progress(
    user_id: int,
    start: Optional[datetime] = Query(None, description="开始时间"),
    end: Optional[datetime] = Query(None, description="结束时间"),
    db: Session = Depends(get_db)
):
    try:
        items = VocabMasteryService(db).get_progress_over_time(user_id, start, end)
        return {"user_id": user_id, "items": items}
    except Exception as e:
        logger.error(f"获取掌握度趋势失败: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="获取掌握度趋势失败"
        )


@router.get("/{user_id}/vocabs/{vocab_id}", response_model=VocabMasteryResponse)
async def get_vocab_mastery(user_id: int, vocab_id: int, db: Session = Depends(get_db)):
    try:
        return VocabMasteryService(db).get_mastery(vocab_id, user_id)
    except VocabTrainerError:
        raise
    except Exception as e:
        logger.error(f"获取词汇掌握度失败: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="获取词汇掌握度失败"
        )
