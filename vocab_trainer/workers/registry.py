import logging

from vocab_trainer.jobs.job_queue import JobName, JobQueue, QueueName
from vocab_trainer.workers.context import WorkerContext
from vocab_trainer.workers.evaluation_workers import AudioEvaluationWorker, FillInBlankEvaluationWorker
from vocab_trainer.workers.generation_workers import DialogueGenerationWorker, MultipleChoiceGenerationWorker
from vocab_trainer.workers.reminder_workers import EmailReminderWorker, NotificationWorker
from vocab_trainer.workers.vocab_translation_worker import VocabTranslationWorker

logger = logging.getLogger(__name__)


def register_workers(job_queue: JobQueue, context: WorkerContext):
    """把每个队列的处理器注册到任务队列"""
    handlers = [
        (QueueName.MULTIPLE_CHOICE_GENERATION, JobName.GENERATE_QUESTIONS, MultipleChoiceGenerationWorker),
        (QueueName.DIALOGUE_GENERATION, JobName.GENERATE_DIALOGUE, DialogueGenerationWorker),
        (QueueName.FILL_IN_BLANK_EVALUATION, JobName.EVALUATE_ANSWERS, FillInBlankEvaluationWorker),
        (QueueName.AUDIO_EVALUATION, JobName.EVALUATE_AUDIO, AudioEvaluationWorker),
        (QueueName.VOCAB_TRANSLATION, JobName.TRANSLATE_VOCAB, VocabTranslationWorker),
        (QueueName.EMAIL_REMINDER, JobName.SEND_REMINDER, EmailReminderWorker),
        (QueueName.NOTIFICATION, JobName.SEND_CREATE_NOTIFICATION, NotificationWorker),
    ]
    for queue_name, job_name, worker_class in handlers:
        job_queue.register(queue_name, job_name, worker_class(context).process)
    logger.info(f"已注册 {len(handlers)} 个任务处理器")
