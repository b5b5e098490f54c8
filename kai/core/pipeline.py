"""
応答パイプラインの計画
入力言語と設定から、ヒント・訂正・回答・語彙のどのタスクを実行するかを決める
"""

from kai.core.language import detect_language
from kai.models.schemas import DetectedLanguage, Level, PipelineInput, PipelinePlan, Task

# 習熟度ごとの語彙・文法の目安（おおよそのCEFRレベル）
LEVEL_DESCRIPTORS: dict[Level, str] = {
    Level.BEGINNER: "Use CEFR A2 level English with short sentences and common words.",
    Level.ELEMENTARY: "Use CEFR B1- with simple structures and high-frequency vocabulary.",
    Level.INTERMEDIATE: "Use CEFR B1-B2 level English. Keep it clear and mostly common words.",
    Level.UPPER_INTERMEDIATE: "Use CEFR B2 level English. Slightly challenging, but still clear.",
    Level.ADVANCED: "Use CEFR C1 level English. Precise and natural, but avoid rare words unless needed.",
}

# 回答と語彙は常に最後にこの順で実行する
CORE_TASKS: tuple[Task, ...] = (Task.ANSWER, Task.VOCAB)


def learning_tasks(
    detected_lang: DetectedLanguage | str,
    enable_corrections: bool,
    enable_hints: bool,
) -> tuple[Task, ...]:
    """
    回答の前に行う学習タスクを決定
    プランナーと全てのプロンプト生成がこの関数の結果を使う

    Args:
        detected_lang: 検出された言語
        enable_corrections: 文法訂正を有効にするか
        enable_hints: L1入力に対する英語表現のヒントを有効にするか

    Returns:
        (Task.HINT,)、(Task.CORRECT,) または空のタプル
    """
    if DetectedLanguage(detected_lang) != DetectedLanguage.EN:
        return (Task.HINT,) if enable_hints else ()
    return (Task.CORRECT,) if enable_corrections else ()


def plan_pipeline(pipeline_input: PipelineInput) -> PipelinePlan:
    """
    入力から実行計画を作成

    Args:
        pipeline_input: パイプラインへの入力

    Returns:
        検出言語とタスク列（末尾は必ずanswer, vocab）
    """
    detected: DetectedLanguage = detect_language(pipeline_input.user_text)
    tasks = learning_tasks(
        detected,
        pipeline_input.enable_corrections,
        pipeline_input.enable_hints,
    )
    return PipelinePlan(detected_lang=detected, tasks=tasks + CORE_TASKS)


def level_descriptor(level: Level | str) -> str:
    """
    習熟度に対応する指示文を返す

    Args:
        level: 習熟度

    Returns:
        語彙・文法の複雑さを指示する1文

    Raises:
        ValueError: 定義されていない習熟度が渡された場合
    """
    try:
        return LEVEL_DESCRIPTORS[Level(level)]
    except ValueError:
        raise ValueError(f"未定義の習熟度です: {level!r}") from None
