"""
テキスト生成サービス向けのプロンプト生成
"""

from kai.core.pipeline import learning_tasks, level_descriptor
from kai.models.schemas import PostProcessParams, PromptContext, Task

PERSONA = "You are Kai, a friendly language coach."

_BASE_GOALS: tuple[str, ...] = (
    "Reply in English unless explicitly asked otherwise.",
    "Keep responses concise and easy to understand.",
)

_TASK_GOALS: dict[Task, str] = {
    Task.HINT: "If the user used their L1 (e.g., Chinese), provide a natural English phrasing for their intent.",
    Task.CORRECT: "If the user writes English, provide gentle grammar corrections and a better phrasing.",
}

_VOCAB_GOAL = (
    "Extract 3-5 useful vocabulary items from your reply and explain their meaning in this context briefly."
)

# 後処理で要求するキー名
_TASK_KEYS: dict[Task, str] = {
    Task.CORRECT: "corrections",
    Task.HINT: "hints",
}

USER_PROMPT_TEMPLATE = """User message:
{user_text}

Respond in JSON with keys:
  answer: string (the final answer you would say to the learner),
  corrections?: {{ original: string, corrected: string, explanation: string }}[] (if any),
  hints?: string[] (natural English expressions for the user's intent, if L1 was used),
  vocab: {{ word: string, meaning: string, why: string }}[] (brief, in-context).
Return ONLY JSON, no code fences."""

POST_PROCESS_VOCAB_RULES = (
    "Rules for vocab: return 4-8 items most useful for the learner at this level; "
    "each item must include: word, partOfSpeech, meaning (in this context), "
    "example (short snippet from the final answer or a closely matching sentence), "
    "cefr (A2/B1/B2/C1 approx), and why (1 short reason)."
)

POST_PROCESS_SHAPE_EXAMPLE = (
    '{"answer":"<finalAnswer>",'
    '"corrections":[{"original":"","corrected":"","explanation":""}],'
    '"hints":["..."],'
    '"vocab":[{"word":"","partOfSpeech":"","meaning":"","example":"","cefr":"B1","why":""}]}'
)

DICTIONARY_PROMPT_TEMPLATE = """Provide a concise, learner-friendly definition of the target word within the given sentence context. Return JSON with keys: meaning (Chinese), partOfSpeech, cefr (A2/B1/B2/C1), example (short), and note (optional).
Target word: {word}
Sentence: {sentence}
Return ONLY JSON."""

TRANSLATION_PROMPT_TEMPLATE = """Translate the following English into concise, learner-friendly Simplified Chinese. Return only the translation.
---
{text}"""

SPEECH_FEEDBACK_PROMPT = (
    "You are Kai, a pronunciation coach. Analyze this learner transcript for pronunciation (segmental), "
    "prosody (stress, rhythm, intonation), and grammar. Then produce a short improved demonstration line "
    "in target English. Return JSON with keys: transcript, pronunciation, prosody, grammar, "
    "suggestions (array of 3-5 items), demo."
)

DEFAULT_MAX_INPUT_CHARS = 4000


def _bullets(header: str, goals: list[str]) -> str:
    return "\n".join([header, *(f"- {goal}" for goal in goals)])


def truncate_user_text(text: str, limit: int = DEFAULT_MAX_INPUT_CHARS) -> str:
    """ユーザー入力を先頭からlimit文字に切り詰める"""
    return text[:limit]


def build_system_prompt(ctx: PromptContext) -> str:
    """
    回答・訂正・ヒント・語彙をまとめてJSONで返させるシステムプロンプトを生成

    Args:
        ctx: プロンプトコンテキスト

    Returns:
        システムプロンプト
    """
    base = f"{PERSONA} {level_descriptor(ctx.level)} Always encourage the learner."
    goals = list(_BASE_GOALS)
    for task in learning_tasks(ctx.detected_lang, ctx.enable_corrections, ctx.enable_hints):
        goals.append(_TASK_GOALS[task])
    goals.append(_VOCAB_GOAL)
    return "\n".join([base, _bullets("Goals:", goals)])


def build_answer_only_system_prompt(ctx: PromptContext) -> str:
    """
    ストリーミング用：学習者への回答本文だけを生成させるシステムプロンプト

    Args:
        ctx: プロンプトコンテキスト

    Returns:
        システムプロンプト
    """
    base = f"{PERSONA} {level_descriptor(ctx.level)} Reply only with what you would say to the learner."
    goals = list(_BASE_GOALS)
    if Task.HINT in learning_tasks(ctx.detected_lang, ctx.enable_corrections, ctx.enable_hints):
        goals.append("The user may have used L1; infer their intent and reply naturally in English.")
    return "\n".join([base, _bullets("Guidelines:", goals)])


def build_user_prompt(user_text: str) -> str:
    """
    ユーザー入力をJSON応答を要求するテンプレートで包む

    Args:
        user_text: ユーザー入力

    Returns:
        ユーザープロンプト
    """
    return USER_PROMPT_TEMPLATE.format(user_text=user_text)


def build_post_process_prompt(params: PostProcessParams) -> str:
    """
    後処理プロンプトを生成
    ストリーミングで確定した回答から訂正・ヒント・語彙を抽出させる。
    ユーザー入力と回答はエスケープせずにそのまま埋め込む。

    Args:
        params: 後処理パラメータ

    Returns:
        後処理プロンプト
    """
    wanted = [
        _TASK_KEYS[task]
        for task in learning_tasks(params.detected_lang, params.enable_corrections, params.enable_hints)
    ]
    wanted.append("vocab")

    parts: list[str] = [
        "You are Kai, a precise post-processor for language coaching outputs.",
        level_descriptor(params.level),
        "Using the user input and the assistant final answer, extract helpful learning signals.",
        f"Return ONLY JSON with keys: answer, {', '.join(wanted)}.",
        POST_PROCESS_VOCAB_RULES,
        "Keep explanations short. JSON only, no code fences.",
        "---",
        "User input:",
        params.user_text,
        "---",
        "Assistant final answer:",
        params.final_answer,
        "---",
        "JSON shape example (illustrative, adapt fields if missing):",
        POST_PROCESS_SHAPE_EXAMPLE,
    ]
    return "\n".join(parts)


def build_dictionary_prompt(word: str, sentence: str | None = None) -> str:
    """文脈に沿った単語の定義を要求するプロンプト"""
    return DICTIONARY_PROMPT_TEMPLATE.format(word=word, sentence=sentence or "")


def build_translation_prompt(text: str) -> str:
    return TRANSLATION_PROMPT_TEMPLATE.format(text=text)


def build_speech_feedback_prompt() -> str:
    return SPEECH_FEEDBACK_PROMPT
