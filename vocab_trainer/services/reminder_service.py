"""
提醒服务模块
通过任务队列发送提醒邮件和创建通知，支持立即、延时和周期发送
"""

import logging
from typing import Any, Dict, Optional

from vocab_trainer.jobs.job_queue import JobName, QueueName
from vocab_trainer.jobs.payloads import NotificationJobPayload, ReminderJobPayload

logger = logging.getLogger(__name__)


class ReminderType:
    NOTIFICATION = "notification"
    VOCAB_TRAINER = "vocab_trainer"


class EmailTemplate:
    REMINDER = "reminder"
    COMPLETED = "completed"


class ReminderService:
    def __init__(self, job_queue):
        self.job_queue = job_queue

    async def send_immediate_reminder(self, email: str, template: str, data: Dict[str, Any],
                                      reminder_type: str = ReminderType.NOTIFICATION) -> str:
        return await self.schedule_reminder(email, reminder_type, template, data, delay_ms=0)

    async def schedule_reminder(self, email: str, reminder_type: str, template: str,
                                data: Dict[str, Any], delay_ms: int) -> str:
        payload = ReminderJobPayload(email=email, reminder_type=reminder_type,
                                     template=template, data=data)
        job_id = await self.job_queue.enqueue(
            QueueName.EMAIL_REMINDER, JobName.SEND_REMINDER, payload.to_payload(),
            delay_ms=delay_ms
        )
        logger.info(f"提醒邮件已调度 job={job_id} to={email} delay={delay_ms}ms")
        return job_id

    async def schedule_recurring_reminder(self, email: str, reminder_type: str, template: str,
                                          data: Dict[str, Any], cron_pattern: str) -> str:
        payload = ReminderJobPayload(email=email, reminder_type=reminder_type,
                                     template=template, data=data)
        job_id = await self.job_queue.enqueue(
            QueueName.EMAIL_REMINDER, JobName.SEND_REMINDER, payload.to_payload(),
            cron_pattern=cron_pattern
        )
        logger.info(f"周期提醒已调度 job={job_id} to={email} cron={cron_pattern}")
        return job_id

    async def cancel_reminder(self, job_id: str) -> bool:
        removed = await self.job_queue.remove(job_id)
        if not removed:
            logger.warning(f"取消提醒失败，任务不存在或已开始: {job_id}")
        return removed

    async def send_immediate_create_notification(self, user_id: int, data: Dict[str, Any]) -> str:
        return await self.schedule_create_notification(user_id, data, delay_ms=0)

    async def schedule_create_notification(self, user_id: int, data: Dict[str, Any],
                                           delay_ms: Optional[int] = 0) -> str:
        payload = NotificationJobPayload(user_id=user_id, data=data)
        job_id = await self.job_queue.enqueue(
            QueueName.NOTIFICATION, JobName.SEND_CREATE_NOTIFICATION, payload.to_payload(),
            delay_ms=delay_ms
        )
        logger.info(f"通知已调度 job={job_id} user={user_id} delay={delay_ms}ms")
        return job_id
