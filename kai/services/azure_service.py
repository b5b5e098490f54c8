"""
Azure Pronunciation Assessmentサービス
"""
import json
import logging
from typing import Any, Dict, List
from xml.sax.saxutils import escape

import azure.cognitiveservices.speech as speechsdk

from kai.config import KaiConfig
from kai.models.schemas import PronunciationResult, PronunciationWord, TargetLanguage
from kai.services.errors import KaiServiceError

logger = logging.getLogger(__name__)

# 学習対象言語ごとの認識言語
RECOGNITION_LANGUAGES: Dict[str, str] = {
    TargetLanguage.EN: "en-US",
    TargetLanguage.JA: "ja-JP",
}

# スコアが閾値未満のときに出す改善提案
SUGGESTION_THRESHOLD = 70
FLUENCY_SUGGESTION = "Add short pauses at commas and slow down slightly."
ACCURACY_SUGGESTION = "Exaggerate vowel length and stress content words."
COMPLETENESS_SUGGESTION = "Complete each word fully; avoid dropping endings."


def _ticks_to_ms(ticks: Any) -> int:
    """100ナノ秒単位をミリ秒に変換"""
    return round((ticks or 0) / 10000)


def parse_assessment_json(data: Dict[str, Any]) -> PronunciationResult:
    """
    Azureの詳細形式の認識結果（JSON）を評価結果に変換

    Args:
        data: 認識結果のJSON（NBest を含む）

    Returns:
        PronunciationResultオブジェクト
    """
    nbest: Dict[str, Any] = (data.get("NBest") or [{}])[0]
    assessment: Dict[str, Any] = nbest.get("PronunciationAssessment") or {}

    words: List[PronunciationWord] = []
    for item in nbest.get("Words") or []:
        word_assessment: Dict[str, Any] = item.get("PronunciationAssessment") or {}
        words.append(
            PronunciationWord(
                word=item.get("Word", ""),
                offset_ms=_ticks_to_ms(item.get("Offset")),
                duration_ms=_ticks_to_ms(item.get("Duration")),
                accuracy_score=word_assessment.get("AccuracyScore"),
                error_type=word_assessment.get("ErrorType"),
            )
        )

    # SDKはPronScore、REST APIはPronunciationScoreを返す
    overall = assessment.get("PronScore")
    if overall is None:
        overall = assessment.get("PronunciationScore", assessment.get("AccuracyScore"))

    return PronunciationResult(
        transcript=nbest.get("Display") or data.get("DisplayText") or "",
        pronunciation_score=overall,
        accuracy_score=assessment.get("AccuracyScore"),
        fluency_score=assessment.get("FluencyScore"),
        completeness_score=assessment.get("CompletenessScore"),
        prosody_score=assessment.get("ProsodyScore"),
        words=words,
    )


def summarize_pronunciation(result: PronunciationResult) -> str:
    """
    スコアを1行の要約にする

    Args:
        result: 発音評価結果

    Returns:
        "Pronunciation N/100, Accuracy A, Fluency F, Completeness C[, Prosody P]"
    """
    summary = (
        f"Pronunciation {round(result.pronunciation_score or 0)}/100, "
        f"Accuracy {round(result.accuracy_score or 0)}, "
        f"Fluency {round(result.fluency_score or 0)}, "
        f"Completeness {round(result.completeness_score or 0)}"
    )
    if result.prosody_score:
        summary += f", Prosody {round(result.prosody_score)}"
    return summary


def pronunciation_suggestions(result: PronunciationResult) -> List[str]:
    """
    閾値未満のスコアに対する改善提案
    スコアがない項目は提案の対象外とする

    Args:
        result: 発音評価結果

    Returns:
        改善提案のリスト
    """
    suggestions: List[str] = []
    checks = (
        (result.fluency_score, FLUENCY_SUGGESTION),
        (result.accuracy_score, ACCURACY_SUGGESTION),
        (result.completeness_score, COMPLETENESS_SUGGESTION),
    )
    for score, suggestion in checks:
        if score is not None and score < SUGGESTION_THRESHOLD:
            suggestions.append(suggestion)
    return suggestions


class AzurePronunciationService:
    """Azure Pronunciation Assessmentを使用するサービスクラス"""

    def __init__(self, config: KaiConfig) -> None:
        """
        初期化処理
        設定からAzure Speech Serviceのキーとリージョンを取得し、設定する

        Args:
            config: アプリケーション設定
        """
        self.speech_key: str | None = config.azure_speech_key
        self.speech_region: str | None = config.azure_speech_region

        if not self.speech_key or not self.speech_region:
            raise ValueError("AZURE_SPEECH_KEYとAZURE_SPEECH_REGION環境変数が設定されていません")

        self.speech_config: speechsdk.SpeechConfig = speechsdk.SpeechConfig(
            subscription=self.speech_key,
            region=self.speech_region
        )

    async def assess_pronunciation(
        self,
        pcm_data: bytes,
        target_language: TargetLanguage | str = TargetLanguage.EN,
        reference_text: str = "",
    ) -> PronunciationResult | None:
        """
        Azure Pronunciation Assessmentを使用して発音を評価

        Args:
            pcm_data: 16kHz・モノラル・16bit PCMの音声データ（ヘッダなし）
            target_language: 学習対象言語
            reference_text: 参照テキスト（空の場合は自由発話として評価）

        Returns:
            PronunciationResultオブジェクト、認識失敗時はNone
        """
        # Pronunciation assessmentの設定
        pronunciation_config: speechsdk.PronunciationAssessmentConfig = speechsdk.PronunciationAssessmentConfig(
            reference_text=reference_text,
            grading_system=speechsdk.PronunciationAssessmentGradingSystem.HundredMark,
            granularity=speechsdk.PronunciationAssessmentGranularity.Phoneme,
            enable_miscue=bool(reference_text)
        )
        pronunciation_config.enable_prosody_assessment = True

        # 音声認識の実行
        audio_stream: speechsdk.audio.PushAudioInputStream = speechsdk.audio.PushAudioInputStream()
        audio_stream.write(pcm_data)
        audio_stream.close()

        audio_config: speechsdk.audio.AudioConfig = speechsdk.audio.AudioConfig(stream=audio_stream)
        speech_recognizer: speechsdk.SpeechRecognizer = speechsdk.SpeechRecognizer(
            speech_config=self.speech_config,
            audio_config=audio_config,
            language=RECOGNITION_LANGUAGES[TargetLanguage(target_language)],
        )
        pronunciation_config.apply_to(speech_recognizer)

        result: speechsdk.SpeechRecognitionResult = speech_recognizer.recognize_once()

        if result.reason != speechsdk.ResultReason.RecognizedSpeech:
            logger.warning("発音評価の音声認識に失敗しました: %s", result.reason)
            return None

        raw_json: str = result.properties.get(
            speechsdk.PropertyId.SpeechServiceResponse_JsonResult, "{}"
        )
        try:
            return parse_assessment_json(json.loads(raw_json))
        except json.JSONDecodeError:
            # 詳細JSONが取れない場合はSDKのスコアのみ使う
            scores = speechsdk.PronunciationAssessmentResult(result)
            return PronunciationResult(
                transcript=result.text or "",
                pronunciation_score=scores.pronunciation_score,
                accuracy_score=scores.accuracy_score,
                fluency_score=scores.fluency_score,
                completeness_score=scores.completeness_score,
                prosody_score=scores.prosody_score,
            )


def build_ssml(text: str, voice_name: str, speed: float = 1.0) -> str:
    """
    読み上げ用のSSMLを生成

    Args:
        text: 読み上げるテキスト
        voice_name: Azureの音声名（例: en-US-JennyNeural）
        speed: 再生速度（1.0で100%）

    Returns:
        SSML文字列
    """
    rate = int(speed * 100 + 0.5)
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        '<speak version="1.0" xmlns="http://www.w3.org/2001/10/synthesis" xml:lang="en-US">\n'
        f'  <voice name="{voice_name}">\n'
        f'    <prosody rate="{rate}%">{escape(text)}</prosody>\n'
        "  </voice>\n"
        "</speak>"
    )


class AzureSpeechSynthesisService:
    """Azure Speech Serviceの音声合成を使用するサービスクラス"""

    def __init__(self, config: KaiConfig) -> None:
        """
        初期化処理
        設定からAzure Speech Serviceのキー・リージョン・音声を取得し、MP3出力で設定する

        Args:
            config: アプリケーション設定
        """
        if not config.azure_speech_key or not config.azure_speech_region:
            raise ValueError("AZURE_SPEECH_KEYとAZURE_SPEECH_REGION環境変数が設定されていません")

        self.voice_name: str = config.azure_speech_voice
        self.speech_config: speechsdk.SpeechConfig = speechsdk.SpeechConfig(
            subscription=config.azure_speech_key,
            region=config.azure_speech_region
        )
        self.speech_config.set_speech_synthesis_output_format(
            speechsdk.SpeechSynthesisOutputFormat.Audio24Khz48KBitRateMonoMp3
        )

    async def synthesize_speech(self, text: str, voice: str | None = None, speed: float = 1.0) -> bytes:
        """
        テキストから音声を生成

        Args:
            text: 音声化するテキスト
            voice: Azureの音声名（指定しない場合は設定の音声）
            speed: 再生速度

        Returns:
            MP3形式の音声データ

        Raises:
            KaiServiceError: 音声合成がキャンセルされた場合
        """
        synthesizer: speechsdk.SpeechSynthesizer = speechsdk.SpeechSynthesizer(
            speech_config=self.speech_config,
            audio_config=None
        )
        ssml = build_ssml(text, voice or self.voice_name, speed)
        result: speechsdk.SpeechSynthesisResult = synthesizer.speak_ssml_async(ssml).get()

        if result.reason != speechsdk.ResultReason.SynthesizingAudioCompleted:
            details = result.cancellation_details
            logger.error("Azure音声合成エラー: %s %s", details.reason, details.error_details)
            raise KaiServiceError(f"Azure TTS error: {details.error_details}")
        return result.audio_data
