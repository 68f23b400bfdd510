from vocab_trainer.api.websocket_manager import NotificationHub, notification_hub
from vocab_trainer.jobs.job_queue import JobQueue, job_queue


def get_job_queue() -> JobQueue:
    return job_queue


def get_notifier() -> NotificationHub:
    return notification_hub
