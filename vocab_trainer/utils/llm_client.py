import asyncio
import base64
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import openai

from vocab_trainer.config.settings import settings
from vocab_trainer.utils.exceptions import ProviderError

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("gemini", "openrouter", "groq")

# 音频MIME类型到模型音频格式的映射
AUDIO_FORMATS = {
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
    "audio/vnd.wave": "wav",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/aiff": "aiff",
    "audio/x-aiff": "aiff",
    "audio/aac": "aac",
    "audio/ogg": "ogg",
    "audio/vorbis": "ogg",
    "audio/flac": "flac",
    "audio/x-flac": "flac",
    "audio/mp4": "m4a",
    "audio/x-m4a": "m4a",
    "audio/m4a": "m4a",
    "audio/webm": "wav",
}
KNOWN_FORMATS = {"wav", "mp3", "aiff", "aac", "ogg", "flac", "m4a"}


def map_mime_type_to_format(mime_type: Optional[str]) -> str:
    """
    将音频MIME类型转换为模型需要的格式标识
    无法识别时返回 wav 并记录警告，不抛出异常
    """
    normalized = (mime_type or "").split(";")[0].strip().lower()
    if normalized in AUDIO_FORMATS:
        return AUDIO_FORMATS[normalized]

    subtype = normalized.split("/")[-1] if normalized else ""
    if subtype in KNOWN_FORMATS:
        return subtype

    logger.warning(f"无法识别的音频类型 {mime_type}，按 wav 处理")
    return "wav"


@dataclass
class AudioInput:
    """随提示词一起发送的音频附件"""
    data: bytes
    mime_type: str


class CompletionClient:
    """大模型客户端，封装 Gemini / OpenRouter / Groq 的 OpenAI 兼容接口"""

    def __init__(self, config_resolver=None, timeout: Optional[int] = None,
                 max_tokens: Optional[int] = None):
        """
        Args:
            config_resolver: 提供 get(user_id, key) 的配置查询对象，None 时只用默认配置
            timeout: 单次调用超时（秒）
            max_tokens: 最大token数
        """
        self.config_resolver = config_resolver
        self.timeout = timeout or settings.AI_TIMEOUT_SECONDS
        self.max_tokens = max_tokens or settings.AI_MAX_TOKENS
        self._clients: Dict[str, openai.OpenAI] = {}
        logger.info(f"大模型客户端初始化完成，默认服务商: {settings.AI_PROVIDER}")

    def _lookup(self, user_id: Optional[int], key: str) -> Optional[str]:
        if not self.config_resolver:
            return None
        try:
            value = self.config_resolver.get(user_id, key)
        except Exception as e:
            logger.error(f"读取配置 {key} 失败: {e}")
            return None
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    def get_provider_name(self, user_id: Optional[int] = None, audio: bool = False) -> str:
        """按 用户配置 > 系统配置 > 环境配置 解析服务商"""
        provider = None
        if audio:
            provider = self._lookup(user_id, "ai.audio.provider")
        provider = provider or self._lookup(user_id, "ai.provider")
        if provider and provider.lower() in SUPPORTED_PROVIDERS:
            return provider.lower()
        if provider:
            logger.warning(f"不支持的大模型服务商 {provider}，使用默认 {settings.AI_PROVIDER}")
        return settings.AI_PROVIDER

    def get_model_candidates(self, user_id: Optional[int] = None, audio: bool = False) -> List[str]:
        """配置了模型时只用该模型，否则按默认列表顺序尝试"""
        model = None
        if audio:
            model = self._lookup(user_id, "ai.audio.model")
        model = model or self._lookup(user_id, "ai.model")
        if model:
            return [model]
        return list(settings.AI_DEFAULT_MODELS)

    def get_model_name(self, user_id: Optional[int] = None, audio: bool = False) -> str:
        return self.get_model_candidates(user_id, audio)[0]

    def resolve_target(self, user_id: Optional[int] = None, audio: bool = False):
        """一次解析服务商和候选模型，配置查询会访问数据库"""
        return self.get_provider_name(user_id, audio), self.get_model_candidates(user_id, audio)

    @staticmethod
    def _provider_credentials(provider: str):
        if provider == "openrouter":
            return settings.OPENROUTER_API_KEY, settings.OPENROUTER_API_BASE
        if provider == "groq":
            return settings.GROQ_API_KEY, settings.GROQ_API_BASE
        return settings.GEMINI_API_KEY, settings.GEMINI_API_BASE

    def _get_client(self, provider: str) -> openai.OpenAI:
        if provider not in self._clients:
            api_key, base_url = self._provider_credentials(provider)
            self._clients[provider] = openai.OpenAI(
                api_key=api_key,
                base_url=base_url,
                timeout=self.timeout,
                max_retries=0  # 重试由调用方控制
            )
        return self._clients[provider]

    @staticmethod
    def _resolve_model(provider: str, model: str) -> str:
        if provider == "openrouter" and "/" not in model:
            return f"google/{model}"
        return model

    @staticmethod
    def _build_messages(prompt: str, audio: Optional[AudioInput]) -> List[Dict[str, Any]]:
        if not audio:
            return [{"role": "user", "content": prompt}]
        encoded = base64.b64encode(audio.data).decode("ascii")
        return [{
            "role": "user",
            "content": [
                {"type": "text", "text": prompt},
                {
                    "type": "input_audio",
                    "input_audio": {
                        "data": encoded,
                        "format": map_mime_type_to_format(audio.mime_type),
                    },
                },
            ],
        }]

    async def generate(self, prompt: str, user_id: Optional[int] = None,
                       audio: Optional[AudioInput] = None,
                       temperature: float = 0.7) -> str:
        """
        根据提示词生成内容

        Args:
            prompt: 提示词
            user_id: 用户ID，用于解析模型配置
            audio: 可选的音频附件
            temperature: 生成温度

        Returns:
            str: 模型生成的文本

        Raises:
            ProviderError: 调用失败（已分类），不会返回伪造的成功结果
        """
        is_audio = audio is not None
        loop = asyncio.get_running_loop()
        # 配置查询是同步数据库访问，放到线程池中执行
        provider, candidates = await loop.run_in_executor(
            None, self.resolve_target, user_id, is_audio
        )
        messages = self._build_messages(prompt, audio)

        last_error = None
        for model in candidates:
            try:
                return await self._complete(provider, self._resolve_model(provider, model),
                                            messages, temperature)
            except ProviderError as e:
                last_error = e
                if e.category != ProviderError.MODEL_NOT_FOUND:
                    raise
                logger.warning(f"模型 {model} 不可用，尝试下一个模型")
        raise last_error

    async def _complete(self, provider: str, model: str, messages: List[Dict[str, Any]],
                        temperature: float) -> str:
        client = self._get_client(provider)
        logger.debug(f"调用大模型 {provider}/{model}，消息数: {len(messages)}")

        try:
            start_time = time.time()
            loop = asyncio.get_running_loop()
            response = await loop.run_in_executor(
                None,
                lambda: client.chat.completions.create(
                    model=model,
                    messages=messages,
                    temperature=temperature,
                    max_tokens=self.max_tokens,
                    stream=False
                )
            )
        except openai.APITimeoutError as e:
            logger.error(f"大模型调用超时 {provider}/{model}: {e}")
            raise ProviderError(ProviderError.TIMEOUT, str(e)) from e
        except openai.APIStatusError as e:
            category = ProviderError.classify(e.status_code)
            error = ProviderError(category, str(e), e.status_code)
            logger.error(f"大模型API错误 {provider}/{model}: {error}")
            raise error from e
        except openai.APIError as e:
            logger.error(f"大模型调用失败 {provider}/{model}: {e}")
            raise ProviderError(ProviderError.GENERIC, str(e)) from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            logger.error(f"大模型返回空内容 {provider}/{model}")
            raise ProviderError(ProviderError.GENERIC, "模型返回空内容")

        usage = response.usage
        logger.debug(f"大模型调用成功: {len(content)}字符, "
                     f"耗时: {time.time() - start_time:.2f}s, "
                     f"Token使用: {usage.total_tokens if usage else 'N/A'}")
        return content

    async def transcribe(self, audio_data: bytes, mime_type: str, source_language: str,
                         user_id: Optional[int] = None) -> str:
        """语音转写，只返回转写文本"""
        prompt = (
            f"Transcribe this audio exactly as spoken. The speaker uses {source_language}. "
            "Return only the transcript text, with no commentary, labels or formatting."
        )
        transcript = await self.generate(prompt, user_id, AudioInput(audio_data, mime_type),
                                         temperature=0)
        return transcript.strip()

    async def check_connection(self) -> bool:
        """检查与大模型的连接是否正常"""
        try:
            response = await self.generate("Hello, respond with 'OK'")
            return bool(response and "OK" in response.upper())
        except Exception as e:
            logger.error(f"大模型连接检查失败: {e}")
            return False


class MockCompletionClient(CompletionClient):
    """模拟大模型客户端，用于开发环境，按提示词类型返回结构正确的JSON"""

    def __init__(self, config_resolver=None):
        super().__init__(config_resolver)
        logger.info("使用模拟大模型客户端")

    @staticmethod
    def _extract(pattern: str, prompt: str, default: str = "") -> str:
        match = re.search(pattern, prompt)
        return match.group(1) if match else default

    async def generate(self, prompt: str, user_id: Optional[int] = None,
                       audio: Optional[AudioInput] = None,
                       temperature: float = 0.7) -> str:
        if audio is not None:
            return "This is a mock transcript."

        if "TASK: MULTIPLE_CHOICE" in prompt:
            correct = self._extract(r'Correct answer: "(.*)"', prompt)
            count = int(self._extract(r"Option count: (\d+)", prompt, "4"))
            values = [correct] + [f"{correct} ({i})" for i in range(1, count)]
            options = [{"label": chr(65 + i), "value": v} for i, v in enumerate(values)]
            return json.dumps({"content": self._extract(r'Question: (.*)', prompt),
                               "options": options, "correctAnswer": correct})

        if "TASK: DIALOGUE" in prompt:
            words = json.loads(self._extract(r"Words: (\[.*\])", prompt, "[]"))
            half = (len(words) + 1) // 2
            chunks = [words[:half], words[half:], [], []]
            lines = [{"speaker": s, "text": "Let's talk about " + ", ".join(c) + "."}
                     for s, c in zip("ABAB", chunks)]
            return json.dumps({"dialogue": lines})

        if "TASK: FILL_IN_BLANK" in prompt:
            expected = self._extract(r'Correct answer: "(.*)"', prompt)
            answer = self._extract(r'Student answer: "(.*)"', prompt)
            is_correct = expected.strip().lower() == answer.strip().lower()
            return json.dumps({"isCorrect": is_correct,
                               "explanation": "模拟评估结果"})

        if "TASK: TRANSLATION_EVALUATION" in prompt:
            return json.dumps({
                "overallScore": 80,
                "scores": {"accuracy": 8, "fluency": 8, "register": 8, "completeness": 8},
                "meaningCoverage": 80,
                "errors": [],
                "missingIdeas": [],
                "correctedTranslation": "",
                "advice": ["Keep practicing."],
            })

        if "TASK: VOCAB_TRANSLATION" in prompt:
            word = self._extract(r'Word: "(.*)"', prompt)
            return json.dumps({
                "textTarget": f"{word} (translated)",
                "grammar": "",
                "explanationSource": "",
                "explanationTarget": "",
                "vocabExamples": [],
            })

        return "OK"

    async def check_connection(self) -> bool:
        return True


def create_completion_client(use_mock: bool = False, config_resolver=None) -> CompletionClient:
    """创建大模型客户端实例，未配置密钥时使用模拟客户端"""
    api_key, _ = CompletionClient._provider_credentials(settings.AI_PROVIDER)
    if use_mock or not api_key:
        logger.info("使用模拟大模型客户端（开发模式）")
        return MockCompletionClient(config_resolver)
    return CompletionClient(config_resolver)
