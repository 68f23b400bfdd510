import asyncio
import logging
import mimetypes
from dataclasses import dataclass
from typing import Optional

import requests

from vocab_trainer.config.settings import settings
from vocab_trainer.utils.exceptions import NotFoundError, VocabTrainerError

logger = logging.getLogger(__name__)


@dataclass
class AudioFile:
    data: bytes
    mime_type: str


class AudioStore:
    """音频文件存储客户端，按文件ID下载用户上传的录音"""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[int] = None):
        self.base_url = (base_url or settings.AUDIO_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.AUDIO_DOWNLOAD_TIMEOUT

    def build_url(self, file_id: str) -> str:
        return f"{self.base_url}/{file_id.lstrip('/')}"

    def _download(self, file_id: str) -> AudioFile:
        url = self.build_url(file_id)
        try:
            response = requests.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"下载音频失败 {url}: {e}")
            raise VocabTrainerError(f"下载音频失败: {e}") from e

        if response.status_code == 404:
            raise NotFoundError(f"音频文件 {file_id} 不存在")
        if response.status_code >= 400:
            raise VocabTrainerError(f"下载音频失败，状态码 {response.status_code}")

        mime_type = response.headers.get("Content-Type", "").split(";")[0].strip()
        if not mime_type or not mime_type.startswith("audio/"):
            guessed, _ = mimetypes.guess_type(url)
            mime_type = guessed or mime_type or "audio/wav"
        logger.info(f"音频下载完成 {file_id}: {len(response.content)}字节, {mime_type}")
        return AudioFile(data=response.content, mime_type=mime_type)

    async def download(self, file_id: str) -> AudioFile:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._download, file_id)
