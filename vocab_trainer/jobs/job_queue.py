"""
任务队列
进程内的命名队列：每个队列一组 asyncio worker，延时任务和周期任务交给 APScheduler 调度
"""
import asyncio
import inspect
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Tuple

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from vocab_trainer.config.settings import settings
from vocab_trainer.utils.helpers import generate_job_id, utc_now

logger = logging.getLogger(__name__)


class QueueName:
    MULTIPLE_CHOICE_GENERATION = "multiple-choice-generation"
    DIALOGUE_GENERATION = "dialogue-generation"
    FILL_IN_BLANK_EVALUATION = "fill-in-blank-evaluation"
    AUDIO_EVALUATION = "audio-evaluation"
    VOCAB_TRANSLATION = "vocab-translation"
    EMAIL_REMINDER = "email-reminder"
    NOTIFICATION = "notification"


class JobName:
    GENERATE_QUESTIONS = "generate-questions"
    GENERATE_DIALOGUE = "generate-dialogue"
    EVALUATE_ANSWERS = "evaluate-answers"
    EVALUATE_AUDIO = "evaluate-audio"
    TRANSLATE_VOCAB = "translate-vocab"
    SEND_REMINDER = "send_reminder"
    SEND_CREATE_NOTIFICATION = "send_create_notification"


class JobStatus(str, Enum):
    DELAYED = "delayed"
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_STATUSES = (JobStatus.DELAYED, JobStatus.QUEUED, JobStatus.PROCESSING)


@dataclass
class Job:
    """队列中的任务"""
    id: str
    queue_name: str
    name: str
    data: Dict[str, Any]
    status: JobStatus = JobStatus.QUEUED
    attempts_made: int = 0
    max_attempts: int = 1
    key: Optional[str] = None
    cron_pattern: Optional[str] = None
    result: Any = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    finished_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "queue": self.queue_name,
            "name": self.name,
            "status": self.status.value,
            "attempts_made": self.attempts_made,
            "max_attempts": self.max_attempts,
            "cron_pattern": self.cron_pattern,
            "result": self.result,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


JobHandler = Callable[[Job], Awaitable[Any]]
ProgressCallback = Callable[[Job], Any]


class JobQueue:
    """
    命名任务队列

    - enqueue 立即返回任务ID
    - 处理函数抛出异常时按指数退避重试，次数用尽后进入死信列表
    - 每个队列只保留最近 keep_completed / keep_failed 个已结束的任务
    - on_progress 订阅任务状态变化
    """

    def __init__(self, concurrency: int = None, attempts: int = None, backoff_ms: int = None,
                 keep_completed: int = None, keep_failed: int = None):
        self.concurrency = concurrency or settings.QUEUE_CONCURRENCY
        self.attempts = attempts or settings.QUEUE_JOB_ATTEMPTS
        self.backoff_ms = settings.QUEUE_BACKOFF_MS if backoff_ms is None else backoff_ms
        self.keep_completed = settings.QUEUE_KEEP_COMPLETED if keep_completed is None else keep_completed
        self.keep_failed = settings.QUEUE_KEEP_FAILED if keep_failed is None else keep_failed

        self._handlers: Dict[str, Dict[str, JobHandler]] = {}
        self._queues: Dict[str, asyncio.Queue] = {}
        self._jobs: Dict[str, Job] = {}
        self._finished: Dict[str, Deque[str]] = {}
        self._dead_letters: Dict[str, Deque[str]] = {}
        # (queue_name, key) -> 未结束任务的ID
        self._keys: Dict[Tuple[str, str], str] = {}
        self._listeners: Dict[str, List[ProgressCallback]] = {}
        self._workers: List[asyncio.Task] = []
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        logger.info("任务队列初始化完成")

    # ------------------------------------------------------------------
    # 注册与启动
    # ------------------------------------------------------------------

    def register(self, queue_name: str, job_name: str, handler: JobHandler):
        """为队列中的某类任务注册处理函数"""
        self._handlers.setdefault(queue_name, {})[job_name] = handler
        self._get_queue(queue_name)
        logger.debug(f"注册任务处理器: {queue_name}/{job_name}")

    def process(self, queue_name: str, job_name: str):
        """装饰器形式的 register"""
        def decorator(handler: JobHandler) -> JobHandler:
            self.register(queue_name, job_name, handler)
            return handler
        return decorator

    async def start(self):
        if self._running:
            return
        self._running = True
        self._ensure_scheduler()
        for queue_name in list(self._queues):
            for index in range(self.concurrency):
                task = asyncio.create_task(self._worker(queue_name, index),
                                           name=f"{queue_name}-worker-{index}")
                self._workers.append(task)
        logger.info(f"任务队列已启动: {len(self._queues)}个队列, 每个队列{self.concurrency}个worker")

    async def stop(self):
        self._running = False
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        if self._scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("任务队列已停止")

    async def join(self):
        """等待所有已入队的任务处理完毕（不包括延时任务）"""
        for queue in list(self._queues.values()):
            await queue.join()

    def _get_queue(self, queue_name: str) -> asyncio.Queue:
        if queue_name not in self._queues:
            self._queues[queue_name] = asyncio.Queue()
            self._finished.setdefault(queue_name, deque())
            self._dead_letters.setdefault(queue_name, deque())
        return self._queues[queue_name]

    def _ensure_scheduler(self) -> AsyncIOScheduler:
        # 调度器必须绑定在当前运行的事件循环上
        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop(), timezone="UTC")
            self._scheduler.start()
        return self._scheduler

    # ------------------------------------------------------------------
    # 入队
    # ------------------------------------------------------------------

    async def enqueue(self, queue_name: str, job_name: str, payload: Dict[str, Any],
                      delay_ms: Optional[int] = None, cron_pattern: Optional[str] = None,
                      attempts: Optional[int] = None, key: Optional[str] = None) -> str:
        """
        添加任务

        Args:
            queue_name: 队列名
            job_name: 任务名
            payload: JSON 载荷
            delay_ms: 延时执行（毫秒）
            cron_pattern: 周期任务的 crontab 表达式，每次触发生成一个新任务
            attempts: 最大尝试次数
            key: 去重键，同键任务未结束时直接返回已有任务ID

        Returns:
            str: 任务ID
        """
        if key:
            existing = self.find_active(queue_name, key)
            if existing:
                logger.info(f"任务已存在，复用 {existing.id} ({queue_name} key={key})")
                return existing.id

        job = Job(
            id=generate_job_id(),
            queue_name=queue_name,
            name=job_name,
            data=payload,
            max_attempts=attempts or self.attempts,
            key=key,
            cron_pattern=cron_pattern,
        )
        self._jobs[job.id] = job
        if key:
            self._keys[(queue_name, key)] = job.id

        if cron_pattern:
            # 周期任务本身只是一个模板，不会被 worker 处理
            job.status = JobStatus.DELAYED
            self._ensure_scheduler().add_job(
                self._fire_repeatable, CronTrigger.from_crontab(cron_pattern, timezone="UTC"),
                args=[job.id], id=job.id, replace_existing=True
            )
            logger.info(f"周期任务已调度: {queue_name}/{job_name} {job.id} cron={cron_pattern}")
        elif delay_ms and delay_ms > 0:
            job.status = JobStatus.DELAYED
            self._schedule_release(job, delay_ms)
            logger.info(f"延时任务已调度: {queue_name}/{job_name} {job.id} delay={delay_ms}ms")
        else:
            await self._push(job)
            logger.info(f"任务已入队: {queue_name}/{job_name} {job.id}")

        return job.id

    def _schedule_release(self, job: Job, delay_ms: int):
        run_date = utc_now() + timedelta(milliseconds=delay_ms)
        self._ensure_scheduler().add_job(
            self._release, DateTrigger(run_date=run_date),
            args=[job.id], id=job.id, replace_existing=True
        )

    async def _release(self, job_id: str):
        job = self._jobs.get(job_id)
        if job and job.status == JobStatus.DELAYED:
            await self._push(job)

    async def _fire_repeatable(self, template_id: str):
        template = self._jobs.get(template_id)
        if template:
            await self.enqueue(template.queue_name, template.name, dict(template.data),
                               attempts=template.max_attempts)

    async def _push(self, job: Job):
        job.status = JobStatus.QUEUED
        await self._get_queue(job.queue_name).put(job.id)
        await self._emit(job)

    # ------------------------------------------------------------------
    # 处理
    # ------------------------------------------------------------------

    async def _worker(self, queue_name: str, index: int):
        queue = self._get_queue(queue_name)
        while True:
            job_id = await queue.get()
            try:
                job = self._jobs.get(job_id)
                if job and job.status == JobStatus.QUEUED:
                    await self._run(job)
            except Exception as e:
                logger.error(f"worker {queue_name}-{index} 异常: {e}", exc_info=True)
            finally:
                queue.task_done()

    async def _run(self, job: Job):
        handler = self._handlers.get(job.queue_name, {}).get(job.name)
        job.attempts_made += 1

        if handler is None:
            job.max_attempts = job.attempts_made
            await self._fail(job, f"未知任务类型: {job.queue_name}/{job.name}")
            return

        job.status = JobStatus.PROCESSING
        await self._emit(job)
        try:
            job.result = await handler(job)
        except Exception as e:
            await self._fail(job, str(e))
            return

        job.status = JobStatus.COMPLETED
        job.error = None
        job.finished_at = utc_now()
        logger.info(f"任务完成: {job.queue_name}/{job.name} {job.id}")
        await self._emit(job)
        self._retire(job)

    async def _fail(self, job: Job, error: str):
        job.error = error
        if job.attempts_made < job.max_attempts:
            delay = self.backoff_ms * (2 ** (job.attempts_made - 1))
            logger.warning(f"任务 {job.id} 第{job.attempts_made}次执行失败，{delay}ms后重试: {error}")
            if delay > 0:
                job.status = JobStatus.DELAYED
                self._schedule_release(job, delay)
                await self._emit(job)
            else:
                await self._push(job)
            return

        job.status = JobStatus.FAILED
        job.finished_at = utc_now()
        logger.error(f"任务失败，已移入死信列表: {job.queue_name}/{job.name} {job.id}: {error}")
        await self._emit(job)
        self._retire(job)

    def _retire(self, job: Job):
        """任务结束：释放去重键，超出保留数量的旧任务从内存中移除"""
        self._release_key(job)
        if job.status == JobStatus.COMPLETED:
            history, limit = self._finished.setdefault(job.queue_name, deque()), self.keep_completed
        else:
            history, limit = self._dead_letters.setdefault(job.queue_name, deque()), self.keep_failed
        history.append(job.id)
        while len(history) > limit:
            evicted = history.popleft()
            self._jobs.pop(evicted, None)
            logger.debug(f"清理已结束任务 {evicted} ({job.queue_name})")

    def _release_key(self, job: Job):
        if job.key and self._keys.get((job.queue_name, job.key)) == job.id:
            del self._keys[(job.queue_name, job.key)]

    # ------------------------------------------------------------------
    # 进度与查询
    # ------------------------------------------------------------------

    def on_progress(self, job_id: str, callback: ProgressCallback):
        """订阅任务状态变化，回调参数为 Job"""
        self._listeners.setdefault(job_id, []).append(callback)

    async def _emit(self, job: Job):
        for callback in list(self._listeners.get(job.id, [])):
            try:
                result = callback(job)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"任务 {job.id} 进度回调失败: {e}")
        if job.status in (JobStatus.COMPLETED, JobStatus.FAILED):
            self._listeners.pop(job.id, None)

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def get_jobs(self, queue_name: str, status: Optional[JobStatus] = None) -> List[Job]:
        return [job for job in self._jobs.values()
                if job.queue_name == queue_name and (status is None or job.status == status)]

    def get_dead_letters(self, queue_name: str) -> List[Job]:
        return [self._jobs[job_id] for job_id in self._dead_letters.get(queue_name, ())
                if job_id in self._jobs]

    def find_active(self, queue_name: str, key: str) -> Optional[Job]:
        job = self._jobs.get(self._keys.get((queue_name, key), ""))
        if job and job.status in ACTIVE_STATUSES:
            return job
        return None

    async def remove(self, job_id: str) -> bool:
        """取消未开始的任务（包括延时任务和周期任务）"""
        job = self._jobs.get(job_id)
        if not job or job.status not in (JobStatus.DELAYED, JobStatus.QUEUED):
            return False
        if self._scheduler and self._scheduler.get_job(job_id):
            self._scheduler.remove_job(job_id)
        # 已在 asyncio 队列中的任务由 worker 按状态跳过
        self._release_key(job)
        del self._jobs[job_id]
        self._listeners.pop(job_id, None)
        logger.info(f"任务已取消: {job_id}")
        return True


# 创建全局任务队列实例
job_queue = JobQueue()
