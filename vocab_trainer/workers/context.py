from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy.orm import Session

from vocab_trainer.services.answer_evaluator import AnswerEvaluator
from vocab_trainer.services.exam_generator import ExamGenerator
from vocab_trainer.utils.audio_store import AudioStore
from vocab_trainer.utils.email_sender import EmailSender, LoggingEmailSender


@dataclass
class WorkerContext:
    """任务处理器共享的依赖"""
    session_factory: Callable[[], Session]
    job_queue: object
    completion_client: object
    exam_generator: ExamGenerator
    answer_evaluator: AnswerEvaluator
    notifier: object
    audio_store: AudioStore = field(default_factory=AudioStore)
    email_sender: EmailSender = field(default_factory=LoggingEmailSender)


def build_worker_context(session_factory, job_queue, completion_client, notifier, **overrides) -> WorkerContext:
    return WorkerContext(
        session_factory=session_factory,
        job_queue=job_queue,
        completion_client=completion_client,
        exam_generator=overrides.pop("exam_generator", None) or ExamGenerator(completion_client),
        answer_evaluator=overrides.pop("answer_evaluator", None) or AnswerEvaluator(completion_client),
        notifier=notifier,
        **overrides
    )
