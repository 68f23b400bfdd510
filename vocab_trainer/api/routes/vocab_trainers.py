import logging
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from vocab_trainer.utils.database import get_db
from vocab_trainer.utils.exceptions import VocabTrainerError
from vocab_trainer.api.dependencies import get_job_queue, get_notifier
from vocab_trainer.services.vocab_trainer_service import VocabTrainerService
from vocab_trainer.api.schemas.vocab_trainer_schemas import (
    VocabTrainerCreate, VocabTrainerUpdate, VocabTrainerResponse, VocabTrainerListResponse,
    BulkDeleteRequest, BulkDeleteResponse, ExamResponse, MultipleChoiceSubmit,
    FillInBlankSubmit, TranslationAudioSubmit, SubmissionResponse
)

logger = logging.getLogger(__name__)
router = APIRouter()


def get_vocab_trainer_service(db: Session = Depends(get_db),
                              job_queue=Depends(get_job_queue),
                              notifier=Depends(get_notifier)) -> VocabTrainerService:
    return VocabTrainerService(db, job_queue, notifier)


def _internal_error(message: str, e: Exception) -> HTTPException:
    logger.error(f"{message}: {e}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=message
    )


@router.post("/", response_model=VocabTrainerResponse, status_code=status.HTTP_201_CREATED)
async def create_vocab_trainer(
    payload: VocabTrainerCreate,
    user_id: int = Query(..., description="用户ID"),
    service: VocabTrainerService = Depends(get_vocab_trainer_service)
):
    """
    创建词汇训练
    """
    try:
        return service.create(user_id, payload.model_dump(mode="json"))
    except (HTTPException, VocabTrainerError):
        raise
    except Exception as e:
        raise _internal_error("创建训练失败", e)


@router.get("/", response_model=VocabTrainerListResponse)
async def list_vocab_trainers(
    user_id: int = Query(..., description="用户ID"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    name: Optional[str] = Query(None, description="按名称模糊搜索"),
    question_type: Optional[str] = Query(None),
    status_filter: Optional[List[str]] = Query(None, alias="status"),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    service: VocabTrainerService = Depends(get_vocab_trainer_service)
):
    """
    分页查询训练列表
    """
    try:
        return service.find(user_id, page, page_size, name, question_type, status_filter, sort_by, sort_order)
    except (HTTPException, VocabTrainerError):
        raise
    except Exception as e:
        raise _internal_error("查询训练列表失败", e)


@router.post("/delete-bulk", response_model=BulkDeleteResponse)
async def delete_vocab_trainers(
    payload: BulkDeleteRequest,
    user_id: int = Query(..., description="用户ID"),
    service: VocabTrainerService = Depends(get_vocab_trainer_service)
):
    try:
        return {"deleted": service.delete_bulk(payload.ids, user_id)}
    except (HTTPException, VocabTrainerError):
        raise
    except Exception as e:
        raise _internal_error("批量删除训练失败", e)


@router.get("/{trainer_id}", response_model=VocabTrainerResponse)
async def get_vocab_trainer(
    trainer_id: int,
    user_id: int = Query(..., description="用户ID"),
    service: VocabTrainerService = Depends(get_vocab_trainer_service)
):
    try:
        return service.find_one(trainer_id, user_id)
    except (HTTPException, VocabTrainerError):
        raise
    except Exception as e:
        raise _internal_error("获取训练失败", e)


@router.put("/{trainer_id}", response_model=VocabTrainerResponse)
async def update_vocab_trainer(
    trainer_id: int,
    payload: VocabTrainerUpdate,
    user_id: int = Query(..., description="用户ID"),
    service: VocabTrainerService = Depends(get_vocab_trainer_service)
):
    """
    修改训练，题型不可修改
    """
    try:
        return service.update(trainer_id, user_id, payload.model_dump(mode="json", exclude_unset=True))
    except (HTTPException, VocabTrainerError):
        raise
    except Exception as e:
        raise _internal_error("修改训练失败", e)


@router.delete("/{trainer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_vocab_trainer(
    trainer_id: int,
    user_id: int = Query(..., description="用户ID"),
    service: VocabTrainerService = Depends(get_vocab_trainer_service)
):
    try:
        service.delete(trainer_id, user_id)
    except (HTTPException, VocabTrainerError):
        raise
    except Exception as e:
        raise _internal_error("删除训练失败", e)


@router.get("/{trainer_id}/exam", response_model=ExamResponse)
async def get_vocab_trainer_exam(
    trainer_id: int,
    user_id: int = Query(..., description="用户ID"),
    service: VocabTrainerService = Depends(get_vocab_trainer_service)
):
    """
    获取考试题目
    选择题和口语翻译首次获取时返回 job_id，题目生成后通过 WebSocket 推送 completed 事件
    """
    try:
        return await service.find_one_and_exam(trainer_id, user_id)
    except (HTTPException, VocabTrainerError):
        raise
    except Exception as e:
        raise _internal_error("获取考试题目失败", e)


@router.post("/{trainer_id}/exam/multiple-choice", response_model=SubmissionResponse)
async def submit_multiple_choice(
    trainer_id: int,
    payload: MultipleChoiceSubmit,
    user_id: int = Query(..., description="用户ID"),
    service: VocabTrainerService = Depends(get_vocab_trainer_service)
):
    try:
        return await service.submit_multiple_choice(trainer_id, user_id, payload.model_dump())
    except (HTTPException, VocabTrainerError):
        raise
    except Exception as e:
        raise _internal_error("提交选择题失败", e)


@router.post("/{trainer_id}/exam/fill-in-blank", response_model=SubmissionResponse,
             status_code=status.HTTP_202_ACCEPTED)
async def submit_fill_in_blank(
    trainer_id: int,
    payload: FillInBlankSubmit,
    user_id: int = Query(..., description="用户ID"),
    service: VocabTrainerService = Depends(get_vocab_trainer_service)
):
    try:
        return await service.submit_fill_in_blank(trainer_id, user_id, payload.model_dump())
    except (HTTPException, VocabTrainerError):
        raise
    except Exception as e:
        raise _internal_error("提交填空题失败", e)


@router.post("/{trainer_id}/exam/translation-audio", response_model=SubmissionResponse,
             status_code=status.HTTP_202_ACCEPTED)
async def submit_translation_audio(
    trainer_id: int,
    payload: TranslationAudioSubmit,
    user_id: int = Query(..., description="用户ID"),
    service: VocabTrainerService = Depends(get_vocab_trainer_service)
):
    try:
        return await service.submit_translation_audio(trainer_id, user_id, payload.model_dump())
    except (HTTPException, VocabTrainerError):
        raise
    except Exception as e:
        raise _internal_error("提交口语翻译失败", e)
