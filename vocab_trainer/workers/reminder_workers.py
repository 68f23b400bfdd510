import logging
from typing import Any, Dict

from vocab_trainer.jobs.job_queue import Job
from vocab_trainer.jobs.payloads import NotificationJobPayload, ReminderJobPayload
from vocab_trainer.services.notification_service import NotificationService
from vocab_trainer.workers.context import WorkerContext

logger = logging.getLogger(__name__)


class EmailReminderWorker:
    def __init__(self, context: WorkerContext):
        self.context = context

    async def process(self, job: Job) -> Dict[str, Any]:
        payload = ReminderJobPayload.model_validate(job.data)
        logger.info(f"发送提醒邮件 job={job.id} to={payload.email} template={payload.template}")
        sent = await self.context.email_sender.send(payload.email, payload.template, payload.data)
        return {"sent": bool(sent)}


class NotificationWorker:
    def __init__(self, context: WorkerContext):
        self.context = context

    async def process(self, job: Job) -> Dict[str, Any]:
        payload = NotificationJobPayload.model_validate(job.data)
        db = self.context.session_factory()
        try:
            notification = NotificationService(db).create(payload.user_id, payload.data)
            data = notification.to_dict()
        finally:
            db.close()
        await self.context.notifier.emit_notification(payload.user_id, data)
        logger.info(f"通知任务完成 job={job.id} notification={data['id']}")
        return {"notificationId": data["id"]}
