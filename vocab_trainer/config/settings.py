from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import List

class Settings(BaseSettings):
    """应用配置"""

    # 应用配置
    APP_NAME: str = "词汇训练服务"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # 数据库配置
    DATABASE_URL: str = "sqlite:///./vocab_trainer.db"

    # 大模型配置
    AI_PROVIDER: str = "gemini"  # gemini, openrouter, groq
    GEMINI_API_KEY: str = ""
    GEMINI_API_BASE: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    OPENROUTER_API_KEY: str = ""
    OPENROUTER_API_BASE: str = "https://openrouter.ai/api/v1"
    GROQ_API_KEY: str = ""
    GROQ_API_BASE: str = "https://api.groq.com/openai/v1"
    # 按顺序尝试的默认模型
    AI_DEFAULT_MODELS: List[str] = [
        "gemini-2.0-flash-lite",
        "gemini-2.0-flash",
        "gemini-1.5-flash",
    ]
    AI_TIMEOUT_SECONDS: int = 45
    AI_MAX_TOKENS: int = 2000

    # 出题与评分配置
    AI_QUESTION_COUNT: int = 4
    AI_SOURCE_QUESTION_PROBABILITY: float = 0.5
    AI_PASSING_SCORE: int = 70
    AI_MAX_RETRIES: int = 2
    AI_RETRY_DELAY_MS: int = 1000

    # 训练生命周期配置
    MAX_REMINDER_REPEAT: int = 6
    REMINDER_INTERVAL_DAYS: int = 2
    NOTIFICATION_EXPIRES_DAYS: int = 30
    FRONTEND_URL: str = "http://localhost:3000/vocab-trainer"

    # 任务队列配置
    QUEUE_JOB_ATTEMPTS: int = 3
    QUEUE_BACKOFF_MS: int = 2000
    QUEUE_CONCURRENCY: int = 2
    # 每个队列保留的已完成 / 失败任务数量
    QUEUE_KEEP_COMPLETED: int = 100
    QUEUE_KEEP_FAILED: int = 500

    # 音频存储配置
    AUDIO_BASE_URL: str = "http://localhost:9000/audio"
    AUDIO_DOWNLOAD_TIMEOUT: int = 20

    # 日志配置
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
    LOG_DIR: str = "logs"

    model_config = ConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

# 创建全局配置实例
settings = Settings()
