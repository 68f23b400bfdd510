import os
import tempfile

# 必须在导入 vocab_trainer 之前设置，settings 在导入时读取环境变量
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AI_RETRY_DELAY_MS"] = "0"
os.environ["QUEUE_BACKOFF_MS"] = "0"
os.environ["GEMINI_API_KEY"] = ""
os.environ["OPENROUTER_API_KEY"] = ""
os.environ["GROQ_API_KEY"] = ""
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="vocab_trainer_logs_")

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.orm import sessionmaker

from vocab_trainer.jobs.job_queue import JobQueue
from vocab_trainer.models.vocab_trainer import QuestionType, TrainerStatus
from vocab_trainer.repositories.user_repository import UserRepository
from vocab_trainer.repositories.vocab_repository import VocabRepository
from vocab_trainer.repositories.vocab_trainer_repository import VocabTrainerRepository
from vocab_trainer.utils.database import build_engine, init_db
from vocab_trainer.utils.helpers import utc_now


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    """创建测试数据库会话"""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def mock_job_queue():
    queue = MagicMock(spec=JobQueue)
    queue.enqueue = AsyncMock(return_value="job-1")
    return queue


@pytest.fixture
def mock_notifier():
    notifier = MagicMock()
    notifier.emit_progress = AsyncMock()
    notifier.emit_notification = AsyncMock()
    return notifier


@pytest.fixture
def user(db_session):
    return UserRepository(db_session).create(email="learner@example.com", first_name="Lan", last_name="Tran")


@pytest.fixture
def make_vocab(db_session, user):
    def _make(text_source="hello", targets=("xin chào",), user_id=None):
        return VocabRepository(db_session).create_vocab(
            user_id=user_id or user.id,
            text_source=text_source,
            source_language_code="en",
            target_language_code="vi",
            text_targets=[{"text_target": t} for t in targets],
        )
    return _make


@pytest.fixture
def make_trainer(db_session, user):
    def _make(vocab_ids, question_type=QuestionType.MULTIPLE_CHOICE.value, **fields):
        values = dict(
            name="Unit 1",
            question_type=question_type,
            status=TrainerStatus.PENDING.value,
            question_answers=[],
            count_time=0,
            set_count_time=0,
            reminder_repeat=0,
            reminder_last_remind=utc_now(),
            reminder_disabled=False,
        )
        values.update(fields)
        return VocabTrainerRepository(db_session).create_trainer(user.id, vocab_ids, **values)
    return _make
