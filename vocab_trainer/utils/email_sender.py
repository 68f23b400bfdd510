import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)


class EmailSender:
    """邮件发送接口，实际投递由外部邮件服务实现"""

    async def send(self, email: str, template: str, data: Dict[str, Any]) -> bool:
        raise NotImplementedError


class LoggingEmailSender(EmailSender):
    """只记录日志的邮件发送实现，用于开发环境"""

    async def send(self, email: str, template: str, data: Dict[str, Any]) -> bool:
        logger.info(f"发送邮件 template={template} to={email} data={data}")
        return True
