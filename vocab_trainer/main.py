#!/usr/bin/env python3
"""
词汇训练后端 - FastAPI 主应用入口
Description: REST API 管理训练和提交答案，WebSocket 推送后台任务进度和通知
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from vocab_trainer.config.settings import settings
from vocab_trainer.utils.logger import setup_logging
from vocab_trainer.utils.database import init_db, check_db_connection, SessionLocal
from vocab_trainer.utils.exceptions import VocabTrainerError
from vocab_trainer.utils.helpers import format_timestamp
from vocab_trainer.utils.llm_client import create_completion_client
from vocab_trainer.services.config_service import DatabaseConfigResolver
from vocab_trainer.jobs.job_queue import job_queue
from vocab_trainer.api.websocket_manager import notification_hub
from vocab_trainer.workers.context import build_worker_context
from vocab_trainer.workers.registry import register_workers

# 设置日志
setup_logging()
logger = logging.getLogger(__name__)

completion_client = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理
    - 启动时初始化数据库、大模型客户端和任务队列
    - 关闭时停止任务队列
    """
    global completion_client

    logger.info("初始化词汇训练应用...")
    try:
        init_db()
        logger.info("数据库初始化完成")

        completion_client = create_completion_client(config_resolver=DatabaseConfigResolver(SessionLocal))
        context = build_worker_context(SessionLocal, job_queue, completion_client, notification_hub)
        register_workers(job_queue, context)
        await job_queue.start()
        logger.info("任务队列已启动")

        # 检查大模型连接
        await _check_llm_connection()

        logger.info("词汇训练应用启动完成")
    except Exception as e:
        logger.error(f"应用启动失败: {e}")
        raise

    yield  # 应用运行期间

    logger.info("正在关闭词汇训练应用...")
    await job_queue.stop()
    for user_id in list(notification_hub.active_connections.keys()):
        notification_hub.disconnect(user_id)
    logger.info("词汇训练应用已安全关闭")


def create_application() -> FastAPI:
    """创建并配置FastAPI应用实例"""

    app = FastAPI(
        title=settings.APP_NAME,
        description="基于大模型出题和评分的词汇训练系统",
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # 配置CORS中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_URL, "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 全局异常处理
    @app.exception_handler(VocabTrainerError)
    async def vocab_trainer_exception_handler(request, exc: VocabTrainerError):
        if exc.status_code >= 500:
            logger.error(f"服务异常: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message}
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request, exc):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail}
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc):
        logger.error(f"未处理的异常: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "内部服务器错误"}
        )

    return app


# 创建应用实例
app = create_application()

from vocab_trainer.api.routes import vocab_trainers, vocabs, mastery, jobs, configs, notifications, websocket  # noqa: E402

# 注册API路由
app.include_router(vocab_trainers.router, prefix="/api/v1/vocab-trainers", tags=["词汇训练"])
app.include_router(vocabs.router, prefix="/api/v1/vocabs", tags=["词汇管理"])
app.include_router(mastery.router, prefix="/api/v1/mastery", tags=["掌握度"])
app.include_router(jobs.router, prefix="/api/v1/jobs", tags=["后台任务"])
app.include_router(configs.router, prefix="/api/v1/configs", tags=["配置管理"])
app.include_router(notifications.router, prefix="/api/v1/notifications", tags=["通知"])
# WebSocket路由
app.include_router(websocket.router)


async def _check_llm_connection():
    """
    检查大模型连接是否正常
    """
    if completion_client is None:
        return False
    ok = await completion_client.check_connection()
    if ok:
        logger.info("大模型连接测试成功")
    else:
        logger.warning("大模型连接测试失败，出题和评分任务会在执行时重试")
    return ok


# 健康检查端点
@app.get("/")
async def root():
    """根端点 - 服务状态检查"""
    return {
        "status": "running",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": format_timestamp()
    }


@app.get("/health")
async def health_check():
    """健康检查端点"""
    db_status = check_db_connection()
    llm_status = await _check_llm_connection()

    status = "healthy" if db_status and llm_status else "unhealthy"

    return {
        "status": status,
        "database": "connected" if db_status else "disconnected",
        "llm_service": "connected" if llm_status else "disconnected",
        "active_connections": notification_hub.get_connection_count(),
        "timestamp": format_timestamp()
    }


if __name__ == "__main__":
    """开发环境直接运行"""
    uvicorn.run(
        "vocab_trainer.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
        ws_ping_interval=20,
        ws_ping_timeout=20,
        timeout_keep_alive=5,
    )
