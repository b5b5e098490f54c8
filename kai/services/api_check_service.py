"""
API接続チェックサービス
各種外部APIの接続状態をチェックする
"""
from typing import Dict, List
from openai import OpenAI
import azure.cognitiveservices.speech as speechsdk

from kai.config import KaiConfig


class APICheckService:
    """API接続状態をチェックするサービスクラス"""

    def __init__(self, config: KaiConfig) -> None:
        """
        初期化処理

        Args:
            config: アプリケーション設定
        """
        self.config: KaiConfig = config

    def check_openai_api(self) -> Dict[str, str]:
        """
        OpenAI APIの接続状態をチェック

        Returns:
            API名と状態を含む辞書
        """
        if not self.config.openai_api_key:
            return {
                "name": "OpenAI API",
                "status": "不明",
                "message": "APIキーが設定されていません（モック応答を使用）"
            }

        try:
            client = OpenAI(api_key=self.config.openai_api_key)
            # models.list()を呼び出して接続確認
            client.models.list()
            return {
                "name": "OpenAI API",
                "status": "利用可能",
                "message": "APIキーが有効です"
            }
        except Exception as e:
            return {
                "name": "OpenAI API",
                "status": "エラー",
                "message": f"API接続エラー: {str(e)}"
            }

    def check_azure_speech_api(self) -> Dict[str, str]:
        """
        Azure Speech Service APIの接続状態をチェック

        Returns:
            API名と状態を含む辞書
        """
        if not self.config.has_azure:
            return {
                "name": "Azure Speech Service API",
                "status": "不明",
                "message": "APIキーまたはリージョンが設定されていません"
            }

        try:
            # SpeechConfigの作成で設定を確認
            speechsdk.SpeechConfig(
                subscription=self.config.azure_speech_key,
                region=self.config.azure_speech_region
            )
            return {
                "name": "Azure Speech Service API",
                "status": "利用可能",
                "message": "APIキーとリージョンが設定されています"
            }
        except Exception as e:
            return {
                "name": "Azure Speech Service API",
                "status": "エラー",
                "message": f"接続エラー: {str(e)}"
            }

    def check_all_apis(self) -> List[Dict[str, str]]:
        """
        全てのAPIの接続状態をチェック

        Returns:
            API状態のリスト
        """
        return [self.check_openai_api(), self.check_azure_speech_api()]
