"""
設定のテスト
"""
import logging
import os
from unittest.mock import patch

import pytest

from kai.config import KaiConfig, get_log_file, setup_logging
from kai.models.schemas import Level, TargetLanguage


class TestKaiConfig:
    """KaiConfigのテストクラス"""

    @patch.dict(os.environ, {}, clear=True)
    def test_defaults(self):
        """環境変数がない場合の既定値"""
        config = KaiConfig.from_env()

        assert config.openai_api_key is None
        assert config.openai_model == "gpt-4o-mini"
        assert config.default_target_language == "en"
        assert config.default_level == "intermediate"
        assert config.default_level is Level.INTERMEDIATE
        assert config.default_target_language is TargetLanguage.EN
        assert config.max_input_chars == 4000
        assert config.has_openai is False
        assert config.has_azure is False

    @patch.dict(os.environ, {"OPENAI_API": "legacy_key"}, clear=True)
    def test_legacy_key_name(self):
        """OPENAI_APIもサポート"""
        assert KaiConfig.from_env().openai_api_key == "legacy_key"

    @patch.dict(
        os.environ,
        {
            "OPENAI_API_KEY": "key",
            "OPENAI_API": "legacy_key",
            "OPENAI_MODEL": "gpt-4o",
            "AZURE_SPEECH_KEY": "azure_key",
            "AZURE_SPEECH_REGION": "japaneast",
            "KAI_DEFAULT_TARGET_LANG": "ja",
            "KAI_DEFAULT_LEVEL": "advanced",
        },
        clear=True,
    )
    def test_from_env(self):
        """環境変数から設定を構築"""
        config = KaiConfig.from_env()

        assert config.openai_api_key == "key"
        assert config.openai_model == "gpt-4o"
        assert config.has_azure is True
        assert config.default_target_language == "ja"
        assert config.default_level is Level.ADVANCED

    @patch.dict(os.environ, {"KAI_DEFAULT_LEVEL": "expert"}, clear=True)
    def test_invalid_level(self):
        """定義外の習熟度は例外"""
        with pytest.raises(ValueError, match="KAI_DEFAULT_LEVEL"):
            KaiConfig.from_env()

    @patch.dict(os.environ, {"KAI_DEFAULT_TARGET_LANG": "fr"}, clear=True)
    def test_invalid_target_language(self):
        """定義外の学習対象言語は例外"""
        with pytest.raises(ValueError, match="KAI_DEFAULT_TARGET_LANG"):
            KaiConfig.from_env()

    def test_log_file_name(self):
        """ログファイル名"""
        assert get_log_file().name == "kai.log"


class TestSetupLogging:
    """setup_loggingのテストクラス"""

    def test_handlers(self, tmp_path):
        """標準出力とファイルに出力する"""
        log_file = tmp_path / "logs" / "kai.log"

        setup_logging(logging.DEBUG, log_file)
        logger = logging.getLogger("kai.test")
        logger.info("hello")

        root = logging.getLogger("kai")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2
        for handler in root.handlers:
            handler.flush()
        assert "hello" in log_file.read_text(encoding="utf-8")

        for handler in list(root.handlers):
            handler.close()
            root.removeHandler(handler)
