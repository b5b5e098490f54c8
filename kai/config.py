"""
アプリケーション設定
"""
import logging
import os
import sys
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from kai.models.schemas import Level, TargetLanguage


def get_app_data_dir() -> Path:
    """
    アプリケーションのデータディレクトリを取得

    Returns:
        アプリケーションデータディレクトリのパス
    """
    if sys.platform == "win32":
        # Windowsの場合、AppData\Local\KaiCoachを使用
        app_data: str | None = os.getenv("LOCALAPPDATA")
        if app_data:
            return Path(app_data) / "KaiCoach"
    elif sys.platform == "darwin":
        # macOSの場合、~/Library/Application Support/KaiCoachを使用
        return Path.home() / "Library" / "Application Support" / "KaiCoach"
    # その他のOSまたはフォールバック
    return Path.home() / ".kai_coach"


def get_log_file() -> Path:
    """
    ログファイルのパスを取得

    Returns:
        ログファイルのパス
    """
    return get_app_data_dir() / "kai.log"


# アプリケーションデータディレクトリ
APP_DATA_DIR = get_app_data_dir()

# ログファイル
LOG_FILE = get_log_file()


class KaiConfig(BaseModel):
    """プロセス起動時に一度だけ構築し、各サービスへ明示的に渡す設定"""

    model_config = ConfigDict(frozen=True)

    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    openai_transcribe_model: str = "gpt-4o-transcribe"
    openai_tts_model: str = "tts-1"
    openai_tts_voice: str = "alloy"
    azure_speech_key: str | None = None
    azure_speech_region: str | None = None
    azure_speech_voice: str = "en-US-JennyNeural"
    default_target_language: TargetLanguage = TargetLanguage.EN
    default_level: Level = Level.INTERMEDIATE
    max_input_chars: int = 4000

    @classmethod
    def from_env(cls) -> "KaiConfig":
        """
        環境変数から設定を構築
        .envの読み込みはエントリーポイント側でload_dotenv()を呼んで行う

        Returns:
            KaiConfigオブジェクト
        """
        raw_target: str = os.getenv("KAI_DEFAULT_TARGET_LANG") or TargetLanguage.EN
        try:
            target_language = TargetLanguage(raw_target)
        except ValueError:
            raise ValueError(f"KAI_DEFAULT_TARGET_LANGが不正です: {raw_target}") from None
        raw_level: str = os.getenv("KAI_DEFAULT_LEVEL") or Level.INTERMEDIATE
        try:
            level = Level(raw_level)
        except ValueError:
            raise ValueError(f"KAI_DEFAULT_LEVELが不正です: {raw_level}") from None

        return cls(
            # OPENAI_API_KEYまたはOPENAI_APIのどちらかをサポート
            openai_api_key=os.getenv("OPENAI_API_KEY") or os.getenv("OPENAI_API"),
            openai_model=os.getenv("OPENAI_MODEL") or "gpt-4o-mini",
            openai_transcribe_model=os.getenv("OPENAI_TRANSCRIBE_MODEL") or "gpt-4o-transcribe",
            openai_tts_model=os.getenv("OPENAI_TTS_MODEL") or "tts-1",
            openai_tts_voice=os.getenv("OPENAI_TTS_VOICE") or "alloy",
            azure_speech_key=os.getenv("AZURE_SPEECH_KEY"),
            azure_speech_region=os.getenv("AZURE_SPEECH_REGION"),
            azure_speech_voice=os.getenv("AZURE_SPEECH_VOICE") or "en-US-JennyNeural",
            default_target_language=target_language,
            default_level=level,
        )

    @property
    def has_openai(self) -> bool:
        return bool(self.openai_api_key)

    @property
    def has_azure(self) -> bool:
        return bool(self.azure_speech_key and self.azure_speech_region)


def setup_logging(level: int = logging.INFO, log_file: Path | None = None) -> None:
    """
    ロギングを設定（標準出力とログファイル）

    Args:
        level: ログレベル
        log_file: ログファイルのパス（指定しない場合はLOG_FILE）
    """
    log_path: Path = log_file or LOG_FILE
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)

    root = logging.getLogger("kai")
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(stream_handler)
    root.addHandler(file_handler)
