import json
import threading
from unittest.mock import AsyncMock

import pytest

from vocab_trainer.config.settings import settings
from vocab_trainer.utils.exceptions import ProviderError
from vocab_trainer.utils.llm_client import (
    AudioInput, CompletionClient, MockCompletionClient, create_completion_client, map_mime_type_to_format
)


class DictResolver:
    def __init__(self, values):
        self.values = values

    def get(self, user_id, key):
        return self.values.get((user_id, key), self.values.get((None, key)))


def test_map_mime_type_to_format():
    assert map_mime_type_to_format("audio/mpeg") == "mp3"
    assert map_mime_type_to_format("audio/x-wav") == "wav"
    assert map_mime_type_to_format("audio/mp4") == "m4a"
    assert map_mime_type_to_format("audio/ogg; codecs=opus") == "ogg"
    assert map_mime_type_to_format("audio/flac") == "flac"
    # 无法识别时按 wav 处理
    assert map_mime_type_to_format("application/octet-stream") == "wav"
    assert map_mime_type_to_format(None) == "wav"


def test_provider_error_classification():
    assert ProviderError.classify(401) == ProviderError.UNAUTHORIZED
    assert ProviderError.classify(402) == ProviderError.PAYMENT_REQUIRED
    assert ProviderError.classify(404) == ProviderError.MODEL_NOT_FOUND
    assert ProviderError.classify(429) == ProviderError.RATE_LIMITED
    assert ProviderError.classify(400) == ProviderError.BAD_REQUEST
    assert ProviderError.classify(408) == ProviderError.TIMEOUT
    assert ProviderError.classify(503) == ProviderError.GENERIC

    error = ProviderError(ProviderError.RATE_LIMITED, "slow down", 429)
    assert error.category == ProviderError.RATE_LIMITED
    assert error.provider_status == 429


def test_user_config_overrides_system_config():
    resolver = DictResolver({
        (None, "ai.provider"): "groq",
        (None, "ai.model"): "llama-3.1-8b",
        (7, "ai.model"): "gemini-2.0-flash",
        (None, "ai.audio.model"): "gemini-1.5-pro",
    })
    client = CompletionClient(config_resolver=resolver)

    assert client.get_provider_name(7) == "groq"
    assert client.get_model_candidates(7) == ["gemini-2.0-flash"]
    assert client.get_model_candidates(8) == ["llama-3.1-8b"]
    assert client.get_model_name(8, audio=True) == "gemini-1.5-pro"


def test_defaults_without_config():
    client = CompletionClient()
    assert client.get_provider_name() == settings.AI_PROVIDER
    assert client.get_model_candidates() == list(settings.AI_DEFAULT_MODELS)


def test_unsupported_provider_falls_back_to_default():
    client = CompletionClient(config_resolver=DictResolver({(None, "ai.provider"): "unknown"}))
    assert client.get_provider_name() == settings.AI_PROVIDER


def test_audio_message_contains_encoded_audio():
    messages = CompletionClient._build_messages("transcribe", AudioInput(b"abc", "audio/mpeg"))
    parts = messages[0]["content"]
    assert parts[0] == {"type": "text", "text": "transcribe"}
    assert parts[1]["input_audio"] == {"data": "YWJj", "format": "mp3"}


@pytest.mark.asyncio
async def test_generate_tries_next_model_when_model_not_found():
    client = CompletionClient()
    client._complete = AsyncMock(side_effect=[
        ProviderError(ProviderError.MODEL_NOT_FOUND, "gone", 404),
        "OK",
    ])

    assert await client.generate("hi") == "OK"
    tried = [call.args[1] for call in client._complete.call_args_list]
    assert tried == list(settings.AI_DEFAULT_MODELS[:2])


@pytest.mark.asyncio
async def test_generate_raises_other_provider_errors_immediately():
    client = CompletionClient()
    client._complete = AsyncMock(side_effect=ProviderError(ProviderError.UNAUTHORIZED, "bad key", 401))

    with pytest.raises(ProviderError) as exc_info:
        await client.generate("hi")
    assert exc_info.value.category == ProviderError.UNAUTHORIZED
    assert client._complete.call_count == 1



@pytest.mark.asyncio
async def test_generate_reads_config_off_the_event_loop_thread():
    loop_thread = threading.get_ident()
    lookup_threads = []

    class RecordingResolver(DictResolver):
        def get(self, user_id, key):
            lookup_threads.append(threading.get_ident())
            return super().get(user_id, key)

    client = CompletionClient(config_resolver=RecordingResolver({(None, "ai.model"): "llama-3.1-8b"}))
    client._complete = AsyncMock(return_value="OK")

    assert await client.generate("hi", user_id=3) == "OK"
    assert client._complete.call_args.args[1] == "llama-3.1-8b"
    assert lookup_threads
    assert loop_thread not in lookup_threads


@pytest.mark.asyncio
async def test_transcribe_strips_text():
    client = CompletionClient()
    client._complete = AsyncMock(return_value="  xin chào \n")
    assert await client.transcribe(b"abc", "audio/wav", "vi") == "xin chào"


def test_create_completion_client_uses_mock_without_key():
    assert isinstance(create_completion_client(), MockCompletionClient)


@pytest.mark.asyncio
async def test_mock_client_multiple_choice_contains_correct_answer():
    prompt = 'TASK: MULTIPLE_CHOICE\nCorrect answer: "xin chào"\nOption count: 4\n'
    data = json.loads(await MockCompletionClient().generate(prompt))
    values = [option["value"] for option in data["options"]]
    assert "xin chào" in values
    assert len(set(values)) == 4
