"""
OpenAIServiceのテスト
"""

import json
from unittest.mock import Mock, patch

import httpx
import openai
import pytest

from kai.config import KaiConfig
from kai.services.openai_service import (
    EMPTY_REPLY,
    KaiServiceError,
    MockLLMService,
    OpenAIService,
    QuotaExceededError,
    is_quota_error,
)


def make_status_error(cls, status_code):
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(status_code, request=request)
    return cls("error", response=response, body=None)


def make_chunk(content):
    chunk = Mock()
    chunk.choices = [Mock()]
    chunk.choices[0].delta.content = content
    return chunk


class TestOpenAIService:
    """OpenAIServiceのテストクラス"""

    @pytest.fixture
    def config(self):
        """テスト用の設定"""
        return KaiConfig(openai_api_key="test_key")

    @pytest.fixture
    def mock_client(self):
        """モックOpenAIクライアント"""
        return Mock()

    @pytest.fixture
    def service(self, config, mock_client):
        """クライアントをモックにしたOpenAIService"""
        with patch("kai.services.openai_service.OpenAI", return_value=mock_client):
            return OpenAIService(config)

    @patch("kai.services.openai_service.OpenAI")
    def test_init_success(self, mock_openai, config):
        """初期化成功のテスト"""
        mock_openai.return_value = Mock()

        service = OpenAIService(config)

        assert service.client is not None
        assert service.model == "gpt-4o-mini"
        mock_openai.assert_called_once_with(api_key="test_key")

    def test_init_failure_no_key(self):
        """APIキーが設定されていない場合の初期化失敗テスト"""
        with pytest.raises(
            ValueError,
            match="OPENAI_API_KEYまたはOPENAI_API環境変数が設定されていません",
        ):
            OpenAIService(KaiConfig())

    @pytest.mark.asyncio
    async def test_chat_success(self, service, mock_client):
        """応答取得成功のテスト"""
        mock_response = Mock()
        mock_response.choices = [Mock()]
        mock_response.choices[0].message.content = '{"answer":"Hi","vocab":[]}'
        mock_client.chat.completions.create = Mock(return_value=mock_response)

        result = await service.chat("system", "user")

        assert result == '{"answer":"Hi","vocab":[]}'
        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["messages"] == [
            {"role": "system", "content": "system"},
            {"role": "user", "content": "user"},
        ]

    @pytest.mark.asyncio
    async def test_chat_model_override_and_empty_system(self, service, mock_client):
        """モデル指定と空のシステムプロンプト"""
        mock_response = Mock()
        mock_response.choices = [Mock()]
        mock_response.choices[0].message.content = "{}"
        mock_client.chat.completions.create = Mock(return_value=mock_response)

        await service.chat("", "user", model="gpt-4o")

        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["messages"] == [{"role": "user", "content": "user"}]

    @pytest.mark.asyncio
    async def test_chat_no_content(self, service, mock_client):
        """応答本文がない場合は既定のJSON"""
        mock_response = Mock()
        mock_response.choices = [Mock()]
        mock_response.choices[0].message.content = None
        mock_client.chat.completions.create = Mock(return_value=mock_response)

        result = await service.chat("system", "user")

        assert result == EMPTY_REPLY
        assert json.loads(result)["vocab"] == []

    @pytest.mark.asyncio
    async def test_chat_quota_error(self, service, mock_client):
        """利用枠超過はQuotaExceededError"""
        mock_client.chat.completions.create = Mock(
            side_effect=openai.OpenAIError("Error code: 429 - insufficient_quota")
        )

        with pytest.raises(QuotaExceededError):
            await service.chat("system", "user")

    @pytest.mark.asyncio
    async def test_chat_other_error(self, service, mock_client):
        """その他のエラーはKaiServiceError"""
        mock_client.chat.completions.create = Mock(side_effect=openai.OpenAIError("boom"))

        with pytest.raises(KaiServiceError) as exc_info:
            await service.chat("system", "user")

        assert not isinstance(exc_info.value, QuotaExceededError)
        assert "boom" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_stream_chat(self, service, mock_client):
        """差分のみを順に返す"""
        empty = Mock()
        empty.choices = []
        mock_client.chat.completions.create = Mock(
            return_value=iter([make_chunk("Hel"), empty, make_chunk(None), make_chunk("lo")])
        )

        chunks = [chunk async for chunk in service.stream_chat("system", "user")]

        assert chunks == ["Hel", "lo"]
        assert mock_client.chat.completions.create.call_args.kwargs["stream"] is True

    @pytest.mark.asyncio
    async def test_stream_chat_quota_error(self, service, mock_client):
        """ストリーミングでも利用枠超過を通知"""
        mock_client.chat.completions.create = Mock(
            side_effect=make_status_error(openai.RateLimitError, 429)
        )

        with pytest.raises(QuotaExceededError):
            async for _ in service.stream_chat("system", "user"):
                pass

    @pytest.mark.asyncio
    async def test_transcribe(self, service, mock_client):
        """文字起こしのテスト"""
        mock_client.audio.transcriptions.create = Mock(return_value=Mock(text="hello"))

        result = await service.transcribe(b"audio", filename="speech.webm")

        assert result == "hello"
        kwargs = mock_client.audio.transcriptions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-transcribe"
        assert kwargs["file"] == ("speech.webm", b"audio")

    @pytest.mark.asyncio
    async def test_synthesize_speech(self, service, mock_client):
        """音声生成のテスト"""
        mock_client.audio.speech.create = Mock(return_value=Mock(content=b"mp3"))

        result = await service.synthesize_speech("Hello", speed=1.2)

        assert result == b"mp3"
        kwargs = mock_client.audio.speech.create.call_args.kwargs
        assert kwargs["voice"] == "alloy"
        assert kwargs["input"] == "Hello"
        assert kwargs["speed"] == 1.2


class TestIsQuotaError:
    """is_quota_errorのテストクラス"""

    def test_rate_limit(self):
        """429は利用枠超過"""
        assert is_quota_error(make_status_error(openai.RateLimitError, 429))

    def test_payment_required(self):
        """402は利用枠超過"""
        assert is_quota_error(make_status_error(openai.APIStatusError, 402))

    def test_other_status(self):
        """500は利用枠超過ではない"""
        assert not is_quota_error(make_status_error(openai.InternalServerError, 500))

    def test_message(self):
        """insufficient_quotaを含むメッセージ"""
        assert is_quota_error(openai.OpenAIError("insufficient_quota"))
        assert not is_quota_error(openai.OpenAIError("timeout"))


class TestMockLLMService:
    """MockLLMServiceのテストクラス"""

    @pytest.mark.asyncio
    async def test_chat_is_valid_response(self):
        """モック応答は有効なKai応答"""
        data = json.loads(await MockLLMService().chat("system", "user"))

        assert isinstance(data["answer"], str)
        assert data["vocab"][0]["word"] == "immersion"

    @pytest.mark.asyncio
    async def test_stream_chat(self):
        """固定の3チャンクを返す"""
        chunks = [chunk async for chunk in MockLLMService().stream_chat("system", "user")]

        assert len(chunks) == 3
        assert chunks[0].startswith("This is a mock streaming reply.")

    @pytest.mark.asyncio
    async def test_transcribe_and_speech(self):
        """文字起こしと音声生成のモック"""
        service = MockLLMService()

        assert await service.transcribe(b"") == "Hello, this is a mock transcript."
        assert await service.synthesize_speech("Hi") == b""
