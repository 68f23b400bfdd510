import json
import random
import re
import uuid
from datetime import datetime
from typing import Any, List, Optional, Sequence, TypeVar

import pytz

from vocab_trainer.utils.exceptions import ParseError

T = TypeVar("T")

_FENCE_START = re.compile(r"^\s*```(?:json|JSON)?\s*")
_FENCE_END = re.compile(r"\s*```\s*$")


def utc_now() -> datetime:
    """当前UTC时间（带时区）"""
    return datetime.now(pytz.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """数据库读回的无时区时间按UTC处理"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return pytz.utc.localize(dt)
    return dt.astimezone(pytz.utc)


def format_timestamp(dt: datetime = None) -> str:
    """格式化时间戳"""
    return ensure_utc(dt or utc_now()).isoformat()


def generate_job_id() -> str:
    return uuid.uuid4().hex


def strip_code_fences(text: str) -> str:
    """去掉模型返回内容首尾的 ```json / ``` 包裹"""
    if text is None:
        return ""
    cleaned = _FENCE_START.sub("", text.strip(), count=1)
    cleaned = _FENCE_END.sub("", cleaned, count=1)
    return cleaned.strip()


def parse_json_response(text: str) -> Any:
    """解析模型返回的JSON，失败时抛出 ParseError"""
    cleaned = strip_code_fences(text)
    if not cleaned:
        raise ParseError("模型返回内容为空")
    try:
        return json.loads(cleaned)
    except (json.JSONDecodeError, TypeError) as e:
        raise ParseError(f"模型返回内容不是合法JSON: {e}") from e


def fisher_yates_shuffle(items: Sequence[T], rng: random.Random = None) -> List[T]:
    """均匀随机打乱，返回新列表"""
    rng = rng or random
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled
