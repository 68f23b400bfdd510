import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from vocab_trainer.config.settings import settings

def setup_logging():
    """配置日志系统，控制台和滚动文件同时输出"""

    root_logger = logging.getLogger()

    # 清除已有的处理器，避免重复配置
    root_logger.handlers.clear()
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    root_logger.setLevel(level)

    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(settings.LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    file_handler = RotatingFileHandler(
        log_dir / "vocab_trainer.log",
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5,
        encoding="utf-8"
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # 设置特定库的日志级别
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.DEBUG else logging.WARNING
    )
    for noisy in ("openai", "httpx", "apscheduler", "websockets"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    root_logger.info("日志系统初始化完成")
