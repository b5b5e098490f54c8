"""
データモデル（スキーマ定義）
"""

from enum import StrEnum
from typing import Annotated, Any, List, Union

from pydantic import BaseModel, ConfigDict, Field


class TargetLanguage(StrEnum):
    """学習対象言語"""

    EN = "en"
    JA = "ja"


class Level(StrEnum):
    """学習者の習熟度"""

    BEGINNER = "beginner"
    ELEMENTARY = "elementary"
    INTERMEDIATE = "intermediate"
    UPPER_INTERMEDIATE = "upper-intermediate"
    ADVANCED = "advanced"


class DetectedLanguage(StrEnum):
    """ユーザー入力から推定した言語"""

    ZH = "zh"
    JA = "ja"
    EN = "en"
    OTHER = "other"


class Task(StrEnum):
    """応答パイプラインで実行する学習タスク"""

    HINT = "hint"
    CORRECT = "correct"
    ANSWER = "answer"
    VOCAB = "vocab"


class SpeechProvider(StrEnum):
    """発音分析に使うプロバイダー"""

    AZURE = "azure"
    OPENAI = "openai"


class _ValueModel(BaseModel):
    """キャメルケースのJSONキーとスネークケースの属性を両方受け付ける不変モデル"""

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class PipelineInput(_ValueModel):
    """パイプラインへの入力（リクエストごとに生成）"""

    user_text: str = Field(alias="userText")
    target_language: TargetLanguage = Field(default=TargetLanguage.EN, alias="targetLanguage")
    level: Level = Level.INTERMEDIATE
    enable_corrections: bool = Field(default=True, alias="enableCorrections")
    enable_hints: bool = Field(default=True, alias="enableHints")


class PipelinePlan(_ValueModel):
    """検出言語と実行タスクの順序"""

    detected_lang: DetectedLanguage = Field(alias="detectedLang")
    tasks: tuple[Task, ...]


class PromptContext(_ValueModel):
    """システムプロンプト生成用のコンテキスト"""

    level: Level
    target_language: TargetLanguage = Field(default=TargetLanguage.EN, alias="targetLanguage")
    detected_lang: DetectedLanguage = Field(alias="detectedLang")
    enable_corrections: bool = Field(default=True, alias="enableCorrections")
    enable_hints: bool = Field(default=True, alias="enableHints")


class PostProcessParams(_ValueModel):
    """後処理プロンプト生成用のパラメータ"""

    user_text: str = Field(alias="userText")
    final_answer: str = Field(alias="finalAnswer")
    level: Level
    detected_lang: DetectedLanguage = Field(alias="detectedLang")
    enable_corrections: bool = Field(default=True, alias="enableCorrections")
    enable_hints: bool = Field(default=True, alias="enableHints")


class Correction(BaseModel):
    """文法の訂正"""

    model_config = ConfigDict(extra="allow")

    original: str | None = ""
    corrected: str | None = ""
    explanation: str | None = ""


class VocabItem(BaseModel):
    """文脈に沿った語彙情報（後処理ではpartOfSpeech/cefr/exampleも付く）"""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    word: str | None = ""
    meaning: str | None = ""
    why: str | None = ""
    part_of_speech: str | None = Field(default=None, alias="partOfSpeech")
    cefr: str | None = None
    example: str | None = None


# 形の合わない要素はモデルにせず、受け取った値のまま保持する
CorrectionEntry = Annotated[Union[Correction, Any], Field(union_mode="left_to_right")]
VocabEntry = Annotated[Union[VocabItem, Any], Field(union_mode="left_to_right")]


class KaiResponse(BaseModel):
    """Kaiの構造化された応答"""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    answer: str
    corrections: Annotated[Union[List[CorrectionEntry], Any], Field(union_mode="left_to_right")] = None
    hints: Annotated[Union[List[str], Any], Field(union_mode="left_to_right")] = None
    vocab: List[VocabEntry]

    def to_dict(self) -> dict[str, Any]:
        """受け取ったキーのみをJSONキー名で返す"""
        return self.model_dump(by_alias=True, exclude_unset=True)


class WordDefinition(BaseModel):
    """辞書引きの結果"""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    word: str
    meaning: str = ""
    part_of_speech: str | None = Field(default=None, alias="partOfSpeech")
    cefr: str | None = None
    example: str | None = None
    note: str | None = None


class PauseSummary(_ValueModel):
    """ポーズ（無音区間）の集計"""

    count: int = 0
    avg_ms: int = Field(default=0, alias="avgMs")


class AudioFeatures(_ValueModel):
    """1回の録音から算出した音響特徴量"""

    duration_sec: float = Field(alias="durationSec")
    sample_rate: int = Field(alias="sampleRate")
    rms: List[float]
    pitch_hz: List[float] = Field(alias="pitchHz")
    pauses: PauseSummary


class PronunciationWord(_ValueModel):
    """単語単位の発音評価"""

    word: str
    offset_ms: int = Field(default=0, alias="offsetMs")
    duration_ms: int = Field(default=0, alias="durationMs")
    accuracy_score: float | None = Field(default=None, alias="accuracyScore")
    error_type: str | None = Field(default=None, alias="errorType")


class PronunciationResult(_ValueModel):
    """Azure Pronunciation Assessmentの評価結果"""

    transcript: str = ""
    pronunciation_score: float | None = None  # 発音スコア
    accuracy_score: float | None = None  # 正確性スコア
    fluency_score: float | None = None  # 流暢さスコア
    completeness_score: float | None = None  # 完全性スコア
    prosody_score: float | None = None  # 韻律スコア
    words: List[PronunciationWord] = Field(default_factory=list)


class SpeechAnalysis(BaseModel):
    """発音フィードバック"""

    model_config = ConfigDict(populate_by_name=True)

    transcript: str = ""
    pronunciation: str = ""
    prosody: str = ""
    grammar: str = ""
    suggestions: List[str] = Field(default_factory=list)
    demo: str = ""
    features: AudioFeatures | None = None
    assessment: PronunciationResult | None = None
