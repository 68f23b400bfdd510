#!/usr/bin/env python3
"""
评分结果处理模块
选择题（同步）和填空题/口语（任务）共用：写入结果 -> 更新掌握度 -> 状态转换 -> 提醒与通知
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from vocab_trainer.config.settings import settings
from vocab_trainer.models.vocab_trainer import TrainerStatus, VocabTrainer
from vocab_trainer.repositories.user_repository import UserRepository
from vocab_trainer.repositories.vocab_trainer_repository import VocabTrainerRepository
from vocab_trainer.services.notification_service import NotificationService
from vocab_trainer.services.reminder_service import EmailTemplate, ReminderService, ReminderType
from vocab_trainer.services.vocab_mastery_service import VocabMasteryService
from vocab_trainer.utils.exceptions import ConflictError, NotFoundError
from vocab_trainer.utils.helpers import utc_now
from vocab_trainer.workflow.state_machine import TrainerState, TrainerStateMachine

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 3


def create_state_machine() -> TrainerStateMachine:
    return TrainerStateMachine(
        max_repeat=settings.MAX_REMINDER_REPEAT,
        passing_score=settings.AI_PASSING_SCORE,
        reminder_interval_days=settings.REMINDER_INTERVAL_DAYS,
    )


class TrainerGradingService:
    def __init__(self, db: Session, job_queue, notifier=None,
                 state_machine: Optional[TrainerStateMachine] = None):
        self.db = db
        self.notifier = notifier
        self.state_machine = state_machine or create_state_machine()
        self.trainer_repo = VocabTrainerRepository(db)
        self.user_repo = UserRepository(db)
        self.mastery_service = VocabMasteryService(db)
        self.notification_service = NotificationService(db)
        self.reminder_service = ReminderService(job_queue)

    async def apply_grading_outcome(self, trainer_id: int, user_id: int, results: List[Dict[str, Any]],
                                    score_percentage: float,
                                    mastery_updates: Optional[List[Tuple[int, bool]]] = None,
                                    exam_path: str = "") -> Dict[str, Any]:
        """
        处理一次评分

        Args:
            trainer_id: 训练ID
            user_id: 用户ID
            results: 结果行（vocab_id, status, user_selected, system_selected, data）
            score_percentage: 得分百分比
            mastery_updates: (vocab_id, is_correct) 列表，默认由结果行推导
            exam_path: 提醒链接中考试页面的路径

        Returns:
            dict: status, scorePercentage, reminderRepeat, deleted
        """
        trainer = self.trainer_repo.find_by_id(trainer_id)
        if not trainer:
            raise NotFoundError(f"VocabTrainer {trainer_id} 不存在")
        trainer_name = trainer.name

        if mastery_updates is None:
            mastery_updates = [
                (result["vocab_id"], result["status"] == TrainerStatus.PASSED.value)
                for result in results if result.get("vocab_id")
            ]
        # 掌握度记录提前创建，之后的写入在同一个事务中提交
        for vocab_id, _ in mastery_updates:
            self.mastery_service.ensure_mastery(vocab_id, user_id)

        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            try:
                transition, masteries = self._apply(trainer, user_id, results, mastery_updates, score_percentage)
                break
            except ConflictError:
                # 回滚后结果和掌握度都未写入，重新加载后整体重做
                if attempt == MAX_WRITE_ATTEMPTS:
                    raise
                logger.warning(f"训练 {trainer_id} 写入冲突，第{attempt}次重新加载")
                trainer = self.trainer_repo.find_by_id(trainer_id)
                if not trainer:
                    raise NotFoundError(f"VocabTrainer {trainer_id} 不存在")
                trainer_name = trainer.name

        for mastery in masteries:
            self.mastery_service.record_history(mastery)

        outcome = {
            "status": transition.status,
            "scorePercentage": round(score_percentage, 2),
            "reminderRepeat": transition.pass_count,
            "deleted": transition.retire,
        }

        if transition.retire:
            notification = self.notification_service.create_completion_notification(
                user_id, trainer_name, transition.pass_count
            )
            logger.info(f"训练 {trainer_id} 已完成全部{transition.pass_count}次通过，记录已删除")
            await self._push(user_id, notification.to_dict())
            return outcome

        logger.info(f"训练 {trainer_id} 评分完成: {transition.status} "
                    f"{score_percentage:.1f}% 通过次数={transition.pass_count}")

        # 4. 提醒与通知
        await self._schedule_follow_up(trainer, user_id, score_percentage,
                                       transition.reminder_delay_ms, exam_path)
        return outcome

    def _apply(self, trainer: VocabTrainer, user_id: int, results: List[Dict[str, Any]],
               mastery_updates: List[Tuple[int, bool]], score_percentage: float):
        """结果、掌握度和训练状态一起提交，版本冲突时整体回滚"""
        transition = self.state_machine.apply_grading(
            TrainerState.from_trainer(trainer), score_percentage, utc_now()
        )

        # 1. 替换结果；训练要被删除时结果随训练一起删除，不再写入
        if not transition.retire:
            self.trainer_repo.replace_results(trainer.id, results, commit=False)

        # 2. 更新掌握度
        masteries = [
            self.mastery_service.update_mastery(vocab_id, user_id, is_correct, commit=False)
            for vocab_id, is_correct in mastery_updates
        ]

        # 3. 状态转换，提交事务
        if transition.retire:
            self.trainer_repo.delete_trainer(trainer)
        else:
            self.trainer_repo.update_trainer(trainer, **transition.trainer_updates())
        return transition, masteries

    async def _schedule_follow_up(self, trainer: VocabTrainer, user_id: int, score_percentage: float,
                                  delay_ms: int, exam_path: str):
        exam_url = f"{settings.FRONTEND_URL}/{trainer.id}{exam_path}"
        notification_data = {
            "trainerName": trainer.name,
            "scorePercentage": round(score_percentage, 2),
            "trainerId": trainer.id,
            "questionType": trainer.question_type,
            "examUrl": exam_url,
        }
        try:
            user = self.user_repo.get_by_id(user_id)
            if user:
                await self.reminder_service.schedule_reminder(
                    user.email, ReminderType.VOCAB_TRAINER, EmailTemplate.REMINDER,
                    {
                        "firstName": user.first_name,
                        "lastName": user.last_name,
                        "testName": trainer.name,
                        "repeatDays": str(settings.REMINDER_INTERVAL_DAYS),
                        "examUrl": f"{settings.FRONTEND_URL}/{trainer.id}",
                    },
                    delay_ms,
                )
            else:
                logger.warning(f"用户 {user_id} 不存在，跳过提醒邮件")

            notification = self.notification_service.create(user_id, notification_data)
            await self._push(user_id, notification.to_dict())
            await self.reminder_service.schedule_create_notification(user_id, notification_data, delay_ms)
        except Exception as e:
            # 评分结果已提交，提醒失败不回滚评分
            logger.error(f"训练 {trainer.id} 提醒调度失败: {e}", exc_info=True)

    async def _push(self, user_id: int, notification: Dict[str, Any]):
        if self.notifier:
            await self.notifier.emit_notification(user_id, notification)
