import logging

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from vocab_trainer.config.settings import settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str):
    """创建数据库引擎，SQLite 需要允许跨线程访问"""
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=settings.DEBUG, **kwargs)
    return create_engine(
        database_url,
        echo=settings.DEBUG,  # 在DEBUG模式下输出SQL语句
        pool_pre_ping=True,
        pool_recycle=3600,
    )


engine = build_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """获取数据库会话"""
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error(f"数据库会话错误: {e}")
        db.rollback()
        raise
    finally:
        db.close()


def get_db_session() -> Session:
    """
    直接获取数据库会话
    在任务处理器和配置查询中使用，调用方负责关闭
    """
    return SessionLocal()


def check_db_connection(session_factory=None) -> bool:
    """检查数据库连接是否正常"""
    db = (session_factory or SessionLocal)()
    try:
        db.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"数据库连接检查失败: {e}")
        return False
    finally:
        db.close()


def init_db(bind=None):
    """初始化数据库表"""
    try:
        from vocab_trainer.models.base import Base
        from vocab_trainer.models import user, vocab, vocab_trainer, vocab_mastery, notification, config  # noqa: F401

        Base.metadata.create_all(bind=bind or engine)
        logger.info("数据库表初始化完成")
    except Exception as e:
        logger.error(f"数据库初始化失败: {e}")
        raise
