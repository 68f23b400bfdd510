import logging
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from vocab_trainer.utils.database import get_db
from vocab_trainer.utils.exceptions import VocabTrainerError
from vocab_trainer.api.dependencies import get_job_queue
from vocab_trainer.services.vocab_service import VocabService
from vocab_trainer.api.schemas.vocab_schemas import VocabCreate, VocabCreateResponse, VocabResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=VocabCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_vocab(
    payload: VocabCreate,
    user_id: int = Query(..., description="用户ID"),
    db: Session = Depends(get_db),
    job_queue=Depends(get_job_queue)
):
    """
    创建词汇，没有释义时自动入队翻译任务
    """
    try:
        return await VocabService(db, job_queue).create(user_id, payload.model_dump())
    except (HTTPException, VocabTrainerError):
        raise
    except Exception as e:
        logger.error(f"创建词汇失败: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="创建词汇失败"
        )


@router.get("/{vocab_id}", response_model=VocabResponse)
async def get_vocab(
    vocab_id: int,
    user_id: int = Query(..., description="用户ID"),
    db: Session = Depends(get_db)
):
    return VocabService(db).find_one(vocab_id, user_id)
