"""
コーチングサービス
プロンプトパイプラインと各外部サービスを組み合わせて学習フィードバックを生成する
"""
import json
import logging
from typing import Any, AsyncIterator, Dict

from pydantic import ValidationError

from kai.config import KaiConfig
from kai.core.language import detect_language
from kai.core.parser import Invalid, Parsed, fallback_response, parse_kai_response
from kai.core.pipeline import plan_pipeline
from kai.core.prompts import (
    build_answer_only_system_prompt,
    build_dictionary_prompt,
    build_post_process_prompt,
    build_speech_feedback_prompt,
    build_system_prompt,
    build_translation_prompt,
    build_user_prompt,
    truncate_user_text,
)
from kai.models.schemas import (
    AudioFeatures,
    KaiResponse,
    PipelineInput,
    PostProcessParams,
    PromptContext,
    PronunciationResult,
    SpeechAnalysis,
    SpeechProvider,
    TargetLanguage,
    VocabItem,
    WordDefinition,
)
from kai.services.audio_service import AudioService
from kai.services.azure_service import (
    AzurePronunciationService,
    AzureSpeechSynthesisService,
    pronunciation_suggestions,
    summarize_pronunciation,
)
from kai.services.errors import KaiServiceError, QuotaExceededError
from kai.services.openai_service import MockLLMService, OpenAIService

logger = logging.getLogger(__name__)

QUOTA_STREAM_CHUNKS: tuple[str, ...] = (
    "Quota exceeded for the API key. ",
    "Switching to mock output so you can keep practicing. ",
    "Please check billing or replace the key in settings. ",
)

DEMO_LINE = "Try: Could I have a cappuccino, please?"


def _default_speech_analysis(transcript: str) -> SpeechAnalysis:
    """LLMの分析が得られない場合の発音フィードバック"""
    return SpeechAnalysis(
        transcript=transcript,
        pronunciation="Generally clear, minor vowel reductions on stressed syllables.",
        prosody="Pace is slightly fast; add short pauses at commas and emphasize keywords.",
        grammar="One subject-verb agreement issue detected.",
        suggestions=[
            "Slow down by ~10% and pause at commas.",
            "Stress content words (nouns/verbs) more strongly.",
            "Practice the minimal pair: ship/sheep.",
        ],
        demo="Here is a clearer version: Could I have a cappuccino, please?",
    )


class CoachService:
    """学習フィードバックの生成を統合的に実行するサービスクラス"""

    def __init__(self, config: KaiConfig) -> None:
        """
        初期化処理
        OpenAIサービスとAzureサービスを初期化する
        APIキーがない場合はモック、Azureの設定がない場合はazure_serviceとazure_tts_serviceをNoneにする

        Args:
            config: アプリケーション設定
        """
        self.config: KaiConfig = config
        self.mock_service: MockLLMService = MockLLMService()
        try:
            self.llm_service: OpenAIService | MockLLMService = OpenAIService(config)
        except ValueError:
            self.llm_service = self.mock_service
            logger.warning("OpenAI APIキーが設定されていません。モック応答を使用します。")

        try:
            self.azure_service: AzurePronunciationService | None = AzurePronunciationService(config)
            self.azure_tts_service: AzureSpeechSynthesisService | None = AzureSpeechSynthesisService(config)
        except ValueError:
            self.azure_service = None
            self.azure_tts_service = None
            logger.info("Azure Speech APIの環境変数が設定されていません。Azureでの発音評価は使用できません。")

        self.audio_service: AudioService = AudioService()

    @property
    def is_live(self) -> bool:
        """実際のOpenAI APIを使用しているか"""
        return isinstance(self.llm_service, OpenAIService)

    def _prepare(self, pipeline_input: PipelineInput) -> PipelineInput:
        return pipeline_input.model_copy(
            update={"user_text": truncate_user_text(pipeline_input.user_text, self.config.max_input_chars)}
        )

    async def reply(self, pipeline_input: PipelineInput, model: str | None = None) -> KaiResponse:
        """
        1回のリクエストで回答・訂正・ヒント・語彙を生成

        Args:
            pipeline_input: パイプラインへの入力
            model: 使用するモデル

        Returns:
            KaiResponse（解析できない場合は生のテキストを回答とし語彙は空）
        """
        pipeline_input = self._prepare(pipeline_input)
        plan = plan_pipeline(pipeline_input)
        logger.info("検出言語: %s, タスク: %s", plan.detected_lang, [str(t) for t in plan.tasks])

        ctx = PromptContext(
            level=pipeline_input.level,
            target_language=pipeline_input.target_language,
            detected_lang=plan.detected_lang,
            enable_corrections=pipeline_input.enable_corrections,
            enable_hints=pipeline_input.enable_hints,
        )
        system_prompt = build_system_prompt(ctx)
        user_prompt = build_user_prompt(pipeline_input.user_text)

        try:
            raw = await self.llm_service.chat(system_prompt, user_prompt, model)
        except QuotaExceededError:
            logger.warning("API利用枠を超過しました。モック応答に切り替えます。")
            raw = await self.mock_service.chat(system_prompt, user_prompt, model)

        match parse_kai_response(raw):
            case Parsed(response=response):
                return response
            case Invalid(reason=reason):
                logger.warning("応答を構造化できませんでした（%s）。生のテキストを回答にします。", reason)
                return fallback_response(raw)

    async def stream_reply(self, pipeline_input: PipelineInput, model: str | None = None) -> AsyncIterator[str]:
        """
        学習者への回答本文だけをストリーミング
        訂正・ヒント・語彙はストリーム完了後にpost_processで取得する

        Args:
            pipeline_input: パイプラインへの入力
            model: 使用するモデル

        Yields:
            回答テキストの差分
        """
        pipeline_input = self._prepare(pipeline_input)
        ctx = PromptContext(
            level=pipeline_input.level,
            target_language=pipeline_input.target_language,
            detected_lang=detect_language(pipeline_input.user_text),
            enable_corrections=pipeline_input.enable_corrections,
            enable_hints=pipeline_input.enable_hints,
        )
        system_prompt = build_answer_only_system_prompt(ctx)

        try:
            async for delta in self.llm_service.stream_chat(system_prompt, pipeline_input.user_text, model):
                yield delta
        except QuotaExceededError:
            logger.warning("API利用枠を超過しました。モックのストリームに切り替えます。")
            for chunk in QUOTA_STREAM_CHUNKS:
                yield chunk

    def post_process_params(self, pipeline_input: PipelineInput, final_answer: str) -> PostProcessParams:
        """
        ストリーミング完了後の後処理パラメータを作成
        stream_replyと同じく入力を切り詰めてから言語を判定する

        Args:
            pipeline_input: ストリーミング時と同じ入力
            final_answer: ストリーミングで確定した回答

        Returns:
            PostProcessParamsオブジェクト
        """
        pipeline_input = self._prepare(pipeline_input)
        return PostProcessParams(
            user_text=pipeline_input.user_text,
            final_answer=final_answer,
            level=pipeline_input.level,
            detected_lang=detect_language(pipeline_input.user_text),
            enable_corrections=pipeline_input.enable_corrections,
            enable_hints=pipeline_input.enable_hints,
        )

    async def post_process(self, params: PostProcessParams) -> KaiResponse:
        """
        確定した回答から訂正・ヒント・語彙を抽出

        Args:
            params: 後処理パラメータ

        Returns:
            KaiResponse（解析できない場合は確定した回答と空の語彙）
        """
        if not self.is_live:
            return KaiResponse(
                answer=params.final_answer,
                corrections=[],
                hints=[],
                vocab=[
                    VocabItem(
                        word="immersion",
                        part_of_speech="noun",
                        meaning="deep involvement in a language",
                        example="Immersion helps you learn faster.",
                        cefr="B2",
                        why="core learning idea",
                    )
                ],
            )

        prompt = build_post_process_prompt(params)
        try:
            raw = await self.llm_service.chat(prompt, "Return only JSON.")
        except QuotaExceededError:
            logger.warning("API利用枠を超過しました。モックの後処理結果を返します。")
            return KaiResponse(
                answer=params.final_answer,
                corrections=[],
                hints=[],
                vocab=[
                    VocabItem(
                        word="practice",
                        part_of_speech="verb",
                        meaning="反复练习以提高技能",
                        example="Practice a short dialogue daily.",
                        cefr="A2",
                        why="common learning verb",
                    )
                ],
            )

        match parse_kai_response(raw):
            case Parsed(response=response):
                return response
            case Invalid(reason=reason):
                logger.warning("後処理結果を構造化できませんでした（%s）", reason)
                return KaiResponse(answer=params.final_answer, vocab=[])

    async def lookup_word(self, word: str, sentence: str | None = None) -> WordDefinition:
        """
        文脈に沿った単語の意味を調べる

        Args:
            word: 対象の単語
            sentence: 単語が使われている文

        Returns:
            WordDefinitionオブジェクト
        """
        if not word:
            raise ValueError("word required")

        if not self.is_live:
            return WordDefinition(
                word=word,
                meaning=f'【Mock】Meaning of "{word}" varies by context.',
                example=sentence or "",
                cefr="B1",
            )

        try:
            content = await self.llm_service.chat("", build_dictionary_prompt(word, sentence))
        except QuotaExceededError:
            return WordDefinition(
                word=word,
                meaning=f"【额度不足】{word}（上下文义）",
                example=sentence or "",
                cefr="B1",
            )

        try:
            data: Any = json.loads(content or "{}")
            if isinstance(data, dict):
                return WordDefinition.model_validate({"word": word, **data})
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("辞書引き結果の解析に失敗しました: %s", e)
        return WordDefinition(word=word, meaning=content)

    async def translate(self, text: str) -> str:
        """
        英文を学習者向けの簡体字中国語に翻訳

        Args:
            text: 翻訳する英文

        Returns:
            翻訳テキスト
        """
        if not text:
            raise ValueError("text required")
        if not self.is_live:
            return "【Mock】" + text
        try:
            return await self.llm_service.chat("", build_translation_prompt(text))
        except QuotaExceededError:
            return "【额度不足：请检查 API 计费】"

    async def speak(
        self,
        text: str,
        voice: str | None = None,
        speed: float = 1.0,
        provider: SpeechProvider | str = SpeechProvider.OPENAI,
    ) -> bytes:
        """
        回答を読み上げる音声（MP3）を生成

        Args:
            text: 読み上げるテキスト
            voice: 音声（OpenAIの音声名またはAzureの音声名）
            speed: 再生速度
            provider: 音声合成のプロバイダー（openai / azure）

        Returns:
            MP3形式の音声データ（モックの場合は空）
        """
        if not text:
            raise ValueError("text required")
        if SpeechProvider(provider) == SpeechProvider.AZURE:
            if self.azure_tts_service is None:
                raise KaiServiceError("missing AZURE_SPEECH_KEY/REGION")
            return await self.azure_tts_service.synthesize_speech(text, voice=voice, speed=speed)
        return await self.llm_service.synthesize_speech(text, voice=voice, speed=speed)

    def _features(self, audio_data: bytes, audio_format: str) -> AudioFeatures | None:
        try:
            return self.audio_service.analyze(audio_data, audio_format)
        except Exception as e:
            # 特徴量が算出できなくても分析は続ける
            logger.warning("音響特徴量の算出に失敗しました: %s", e)
            return None

    async def analyze_speech(
        self,
        audio_data: bytes,
        target_language: TargetLanguage | str = TargetLanguage.EN,
        provider: SpeechProvider | str = SpeechProvider.OPENAI,
        audio_format: str = "wav",
    ) -> SpeechAnalysis:
        """
        録音から発音・韻律・文法のフィードバックを生成

        Args:
            audio_data: 音声データ（バイト列）
            target_language: 学習対象言語
            provider: 発音評価のプロバイダー（azure / openai）
            audio_format: 音声のコンテナ形式

        Returns:
            SpeechAnalysisオブジェクト（音響特徴量を含む）
        """
        features = self._features(audio_data, audio_format)

        if SpeechProvider(provider) == SpeechProvider.AZURE:
            analysis = await self._analyze_with_azure(audio_data, target_language, audio_format)
        else:
            analysis = await self._analyze_with_openai(audio_data, audio_format)

        return analysis.model_copy(update={"features": features})

    async def _analyze_with_azure(
        self, audio_data: bytes, target_language: TargetLanguage | str, audio_format: str
    ) -> SpeechAnalysis:
        if self.azure_service is None:
            raise KaiServiceError("missing AZURE_SPEECH_KEY/REGION")

        pcm_data = self.audio_service.to_pcm_16k_mono(audio_data, audio_format)
        result = await self.azure_service.assess_pronunciation(pcm_data, target_language)
        if result is None:
            result = PronunciationResult()

        transcript = result.transcript
        # Azureで文字起こしが取れない場合はOpenAIで補う
        if (not transcript or transcript.strip() == ".") and self.is_live:
            try:
                wav_data = self.audio_service.to_wav_16k_mono(audio_data, audio_format)
                transcript = await self.llm_service.transcribe(wav_data, "speech.wav")
            except KaiServiceError as e:
                logger.warning("文字起こしの補完に失敗しました: %s", e)

        if result.prosody_score:
            prosody = f"Azure prosody score: {round(result.prosody_score)}"
        else:
            prosody = "Prosody evaluated by Azure."

        return SpeechAnalysis(
            transcript=transcript,
            pronunciation=summarize_pronunciation(result),
            prosody=prosody,
            grammar="—",
            suggestions=pronunciation_suggestions(result),
            demo=DEMO_LINE,
            assessment=result,
        )

    async def _analyze_with_openai(self, audio_data: bytes, audio_format: str) -> SpeechAnalysis:
        try:
            transcript = await self.llm_service.transcribe(audio_data, f"speech.{audio_format}")
        except KaiServiceError as e:
            logger.warning("文字起こしに失敗しました: %s", e)
            transcript = "Hello, this is a mock transcript."

        analysis = _default_speech_analysis(transcript)
        if not self.is_live:
            return analysis

        try:
            content = await self.llm_service.chat(build_speech_feedback_prompt(), f"Transcript: {transcript}")
            data: Dict[str, Any] = json.loads(content)
            return SpeechAnalysis.model_validate(data)
        except (KaiServiceError, json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.error("発音フィードバックの生成に失敗しました: %s", e)
            return analysis
