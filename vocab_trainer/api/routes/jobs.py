from fastapi import APIRouter, Depends, HTTPException, status

from vocab_trainer.api.dependencies import get_job_queue
from vocab_trainer.api.schemas.job_schemas import JobResponse

router = APIRouter()


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, job_queue=Depends(get_job_queue)):
    """
    查询后台任务状态
    """
    job = job_queue.get_job(job_id)
    if not job:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="任务不存在"
        )
    return job.to_dict()
