"""
テキスト生成サービスの応答（JSON）の解析
不正な応答でもパイプラインを止めず、応答の情報量を落とすだけにする
"""

import json
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from kai.models.schemas import KaiResponse


@dataclass(frozen=True)
class Parsed:
    """解析成功"""

    response: KaiResponse


@dataclass(frozen=True)
class Invalid:
    """解析失敗（理由と元のテキストを保持）"""

    reason: str
    raw: str


ParseResult = Parsed | Invalid


def parse_kai_response(text: str) -> ParseResult:
    """
    応答テキストをKaiResponseとして解析

    Args:
        text: テキスト生成サービスの生の応答

    Returns:
        Parsed または Invalid（例外は投げない）
    """
    try:
        obj: Any = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        return Invalid(reason=f"JSON解析エラー: {e}", raw=str(text))

    if not isinstance(obj, dict):
        return Invalid(reason="JSONオブジェクトではありません", raw=text)
    if not isinstance(obj.get("answer"), str):
        return Invalid(reason="answerが文字列ではありません", raw=text)
    if not isinstance(obj.get("vocab"), list):
        return Invalid(reason="vocabが配列ではありません", raw=text)

    try:
        return Parsed(response=KaiResponse.model_validate(obj))
    except ValidationError as e:
        return Invalid(reason=f"スキーマ不一致: {e.error_count()}件", raw=text)


def safe_parse_kai_response(text: str) -> KaiResponse | None:
    """
    応答テキストを解析し、不正な場合はNoneを返す

    Args:
        text: テキスト生成サービスの生の応答

    Returns:
        KaiResponse、解析失敗時はNone
    """
    result = parse_kai_response(text)
    if isinstance(result, Parsed):
        return result.response
    return None


def fallback_response(raw: str) -> KaiResponse:
    """生のテキストをそのまま回答とし、語彙を空にした応答"""
    return KaiResponse(answer=raw, vocab=[])
