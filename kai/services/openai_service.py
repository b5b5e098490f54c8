"""
OpenAI APIサービス
"""

import json
import logging
from typing import AsyncIterator

import openai
from openai import OpenAI

from kai.config import KaiConfig
from kai.services.errors import KaiServiceError, QuotaExceededError

logger = logging.getLogger(__name__)

# 応答本文が取得できなかった場合に返すJSON
EMPTY_REPLY = json.dumps(
    {"answer": "Sorry, I could not generate a response.", "vocab": []}
)


def is_quota_error(error: Exception) -> bool:
    """
    利用枠超過のエラーか判定

    Args:
        error: OpenAI SDKが送出した例外

    Returns:
        利用枠超過の場合True
    """
    if isinstance(error, openai.RateLimitError):
        return True
    if isinstance(error, openai.APIStatusError) and error.status_code in (402, 429):
        return True
    return "insufficient_quota" in str(error)


def _wrap_error(error: openai.OpenAIError) -> KaiServiceError:
    if is_quota_error(error):
        return QuotaExceededError(str(error))
    return KaiServiceError(f"OpenAI error: {error}")


class OpenAIService:
    """OpenAI APIを使用するサービスクラス"""

    def __init__(self, config: KaiConfig) -> None:
        """
        初期化処理
        設定からAPIキーを取得し、OpenAIクライアントを初期化する

        Args:
            config: アプリケーション設定
        """
        if not config.openai_api_key:
            raise ValueError(
                "OPENAI_API_KEYまたはOPENAI_API環境変数が設定されていません"
            )
        self.client: OpenAI = OpenAI(api_key=config.openai_api_key)
        self.model: str = config.openai_model
        self.transcribe_model: str = config.openai_transcribe_model
        self.tts_model: str = config.openai_tts_model
        self.tts_voice: str = config.openai_tts_voice

    @staticmethod
    def _messages(system_prompt: str, user_prompt: str) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})
        return messages

    async def chat(self, system_prompt: str, user_prompt: str, model: str | None = None) -> str:
        """
        Chat Completionsで応答を取得

        Args:
            system_prompt: システムプロンプト
            user_prompt: ユーザープロンプト
            model: 使用するモデル（指定しない場合は設定のモデル）

        Returns:
            応答テキスト（JSONを想定）

        Raises:
            KaiServiceError: API呼び出しに失敗した場合
        """
        try:
            response = self.client.chat.completions.create(
                model=model or self.model,
                messages=self._messages(system_prompt, user_prompt),
            )
        except openai.OpenAIError as e:
            logger.error("OpenAI chat エラー: %s", e)
            raise _wrap_error(e) from e

        content: str | None = response.choices[0].message.content
        if isinstance(content, str):
            return content
        return EMPTY_REPLY

    async def stream_chat(
        self, system_prompt: str, user_prompt: str, model: str | None = None
    ) -> AsyncIterator[str]:
        """
        Chat Completionsの応答をトークン単位でストリーミング

        Args:
            system_prompt: システムプロンプト
            user_prompt: ユーザープロンプト
            model: 使用するモデル

        Yields:
            応答テキストの差分
        """
        try:
            stream = self.client.chat.completions.create(
                model=model or self.model,
                messages=self._messages(system_prompt, user_prompt),
                stream=True,
            )
            for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if isinstance(delta, str) and delta:
                    yield delta
        except openai.OpenAIError as e:
            logger.error("OpenAI stream エラー: %s", e)
            raise _wrap_error(e) from e

    async def transcribe(self, audio_data: bytes, filename: str = "speech.wav") -> str:
        """
        音声を文字起こし

        Args:
            audio_data: 音声データ（バイト列）
            filename: アップロード時のファイル名（拡張子で形式を判別させる）

        Returns:
            文字起こしテキスト
        """
        try:
            result = self.client.audio.transcriptions.create(
                model=self.transcribe_model,
                file=(filename, audio_data),
            )
        except openai.OpenAIError as e:
            logger.error("文字起こしエラー: %s", e)
            raise _wrap_error(e) from e
        return result.text or ""

    async def synthesize_speech(self, text: str, voice: str | None = None, speed: float = 1.0) -> bytes:
        """
        テキストから音声を生成

        Args:
            text: 音声化するテキスト
            voice: 音声（指定しない場合は設定の音声）
            speed: 再生速度（0.25〜4.0）

        Returns:
            MP3形式の音声データ
        """
        try:
            response = self.client.audio.speech.create(
                model=self.tts_model,
                voice=voice or self.tts_voice,
                input=text,
                speed=speed,
            )
        except openai.OpenAIError as e:
            logger.error("音声生成エラー: %s", e)
            raise _wrap_error(e) from e
        return response.content


class MockLLMService:
    """APIキーがない開発環境向けのモック"""

    STREAM_CHUNKS: tuple[str, ...] = (
        "This is a mock streaming reply. ",
        "Add an OPENAI_API_KEY to get live responses. ",
        "Meanwhile, you can test the UI and TTS. ",
    )

    async def chat(self, system_prompt: str, user_prompt: str, model: str | None = None) -> str:
        return json.dumps(
            {
                "answer": "This is a mock reply. Replace OPENAI_API_KEY to get real answers.",
                "corrections": [],
                "hints": [],
                "vocab": [
                    {"word": "immersion", "meaning": "deep involvement", "why": "core learning strategy here"}
                ],
            }
        )

    async def stream_chat(
        self, system_prompt: str, user_prompt: str, model: str | None = None
    ) -> AsyncIterator[str]:
        for chunk in self.STREAM_CHUNKS:
            yield chunk

    async def transcribe(self, audio_data: bytes, filename: str = "speech.wav") -> str:
        return "Hello, this is a mock transcript."

    async def synthesize_speech(self, text: str, voice: str | None = None, speed: float = 1.0) -> bytes:
        return b""
