from pydantic import BaseModel
from typing import Optional, Any


class JobResponse(BaseModel):
    id: str
    queue: str
    name: str
    status: str
    attempts_made: int
    max_attempts: int
    cron_pattern: Optional[str] = None
    result: Any = None
    error: Optional[str] = None
    created_at: str
    finished_at: Optional[str] = None
