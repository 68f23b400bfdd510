from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional
import logging

from vocab_trainer.models.vocab_trainer import TrainerStatus
from vocab_trainer.utils.helpers import ensure_utc

logger = logging.getLogger(__name__)


class TrainerPhase(Enum):
    """训练生命周期阶段"""
    PENDING = "pending"              # 已创建，未出题
    EXAM_SERVED = "exam_served"      # 题目已生成
    PASSED = "passed"                # 最近一次提交通过
    FAILED = "failed"                # 最近一次提交未通过
    RETIRED = "retired"              # 通过次数达到上限，记录被删除


@dataclass
class TrainerState:
    """训练状态数据类"""
    status: str = TrainerStatus.PENDING.value
    reminder_repeat: int = 0
    reminder_last_remind: Optional[datetime] = None
    reminder_disabled: bool = False
    has_questions: bool = False

    @classmethod
    def from_trainer(cls, trainer) -> "TrainerState":
        return cls(
            status=trainer.status,
            reminder_repeat=trainer.reminder_repeat or 0,
            reminder_last_remind=trainer.reminder_last_remind,
            reminder_disabled=bool(trainer.reminder_disabled),
            has_questions=bool(trainer.question_answers),
        )


@dataclass
class GradingTransition:
    """一次评分后的状态转换结果"""
    status: str
    score_percentage: float
    pass_count: int
    retire: bool
    reminder_delay_ms: Optional[int] = None
    reminder_last_remind: Optional[datetime] = None

    def trainer_updates(self) -> Dict[str, Any]:
        """非终止转换需要写回训练记录的字段"""
        return {
            "status": self.status,
            "reminder_repeat": self.pass_count,
            "reminder_last_remind": self.reminder_last_remind,
            "reminder_disabled": False,
        }


class TrainerStateMachine:
    """训练状态机：PENDING -> PASSED/FAILED -> 重复或退役"""

    def __init__(self, max_repeat: int = 6, passing_score: float = 70,
                 reminder_interval_days: int = 2):
        self.max_repeat = max_repeat
        self.passing_score = passing_score
        self.reminder_interval = timedelta(days=reminder_interval_days)

    def get_phase(self, state: TrainerState) -> TrainerPhase:
        if state.status == TrainerStatus.PASSED.value:
            return TrainerPhase.PASSED
        if state.status == TrainerStatus.FAILED.value:
            return TrainerPhase.FAILED
        return TrainerPhase.EXAM_SERVED if state.has_questions else TrainerPhase.PENDING

    def outcome_for_score(self, score_percentage: float) -> str:
        if score_percentage >= self.passing_score:
            return TrainerStatus.PASSED.value
        return TrainerStatus.FAILED.value

    def reminder_delay_ms(self, last_remind: Optional[datetime], now: datetime) -> int:
        """
        下次提醒的延迟：上次提醒时间 + 间隔 - 当前时间
        从未提醒过时立即发送
        """
        if last_remind is None:
            return 0
        due = ensure_utc(last_remind) + self.reminder_interval
        return max(0, int((due - ensure_utc(now)).total_seconds() * 1000))

    def apply_grading(self, state: TrainerState, score_percentage: float,
                      now: datetime) -> GradingTransition:
        """
        计算评分后的转换

        只有 PASSED 才增加通过次数；通过次数达到上限时转换为终止状态（删除记录）
        """
        status = self.outcome_for_score(score_percentage)
        pass_count = state.reminder_repeat + 1 if status == TrainerStatus.PASSED.value \
            else state.reminder_repeat

        if pass_count >= self.max_repeat:
            logger.info(f"训练通过次数达到上限 {self.max_repeat}，进入退役状态")
            return GradingTransition(status=status, score_percentage=score_percentage,
                                     pass_count=pass_count, retire=True)

        return GradingTransition(
            status=status,
            score_percentage=score_percentage,
            pass_count=pass_count,
            retire=False,
            reminder_delay_ms=self.reminder_delay_ms(state.reminder_last_remind, now),
            reminder_last_remind=now,
        )
