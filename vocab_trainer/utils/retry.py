import logging
from typing import Any, Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from vocab_trainer.config.settings import settings
from vocab_trainer.utils.exceptions import RETRYABLE_ERRORS

logger = logging.getLogger(__name__)


async def linear_retry(operation: Callable[[], Awaitable[Any]],
                       name: str = "ai-call",
                       max_retries: Optional[int] = None,
                       retry_delay_ms: Optional[int] = None) -> Any:
    """
    带线性退避的有限次重试

    第n次失败后等待 retry_delay_ms * n 毫秒，最多重试 max_retries 次，
    只对 ProviderError / ParseError 重试，重试耗尽后抛出最后一次的异常。

    Args:
        operation: 无参协程函数
        name: 用于日志的操作名称
        max_retries: 最大重试次数（不含首次调用）
        retry_delay_ms: 基础等待时间（毫秒）
    """
    retries = settings.AI_MAX_RETRIES if max_retries is None else max_retries
    delay_ms = settings.AI_RETRY_DELAY_MS if retry_delay_ms is None else retry_delay_ms
    base = max(delay_ms, 0) / 1000.0

    def _log_attempt(retry_state):
        logger.warning(
            f"{name} 第{retry_state.attempt_number}次调用失败，准备重试: "
            f"{retry_state.outcome.exception()}"
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(retries + 1),
        wait=wait_incrementing(start=base, increment=base),
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        before_sleep=_log_attempt,
        reraise=True,
    )
    return await retrying(operation)
