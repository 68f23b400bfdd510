import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from vocab_trainer.utils.database import get_db
from vocab_trainer.utils.exceptions import VocabTrainerError
from vocab_trainer.services.config_service import ConfigService
from vocab_trainer.api.schemas.config_schemas import ConfigSet, ConfigResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/system/{key}", response_model=ConfigResponse)
async def get_system_config(key: str, db: Session = Depends(get_db)):
    return ConfigService(db).get_system_config(key)


@router.put("/system/{key}", response_model=ConfigResponse)
async def set_system_config(key: str, payload: ConfigSet, db: Session = Depends(get_db)):
    """
    设置系统配置，例如 ai.provider / ai.model
    """
    try:
        return ConfigService(db).set_system_config(key, payload.value, payload.is_active)
    except (HTTPException, VocabTrainerError):
        raise
    except Exception as e:
        logger.error(f"设置系统配置失败: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="设置系统配置失败"
        )


@router.get("/users/{user_id}/{key}", response_model=ConfigResponse)
async def get_user_config(user_id: int, key: str, db: Session = Depends(get_db)):
    return ConfigService(db).get_user_config(user_id, key)


@router.put("/users/{user_id}/{key}", response_model=ConfigResponse)
async def set_user_config(user_id: int, key: str, payload: ConfigSet, db: Session = Depends(get_db)):
    """
    设置用户配置，优先级高于系统配置
    """
    try:
        return ConfigService(db).set_user_config(user_id, key, payload.value, payload.is_active)
    except (HTTPException, VocabTrainerError):
        raise
    except Exception as e:
        logger.error(f"设置用户配置失败: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="设置用户配置失败"
        )
