"""
簡易言語判定
文字種（漢字・かな・ラテン文字）の有無だけで入力言語を推定する
"""

import re

from kai.models.schemas import DetectedLanguage

# Unicode Script=Han に含まれる範囲
_HAN_PATTERN = re.compile(
    "["
    "⺀-⺙⺛-⻳"  # CJK部首補助
    "⼀-⿕"  # 康熙部首
    "々〇〡-〩〸-〻"
    "㐀-䶿"  # 拡張A
    "一-鿿"  # CJK統合漢字
    "豈-舘並-龎"  # 互換漢字
    "\U00020000-\U0002a6df\U0002a700-\U0002ebe0"  # 拡張B-F
    "\U0002ebf0-\U0002ee5d"  # 拡張I
    "\U0002f800-\U0002fa1d"
    "\U00030000-\U0003134a"  # 拡張G
    "\U00031350-\U000323af"  # 拡張H
    "]"
)
_JAPANESE_PATTERN = re.compile("[ぁ-ゟ゠-ヿ一-龯]")
_LATIN_PATTERN = re.compile("[a-zA-Z]")


def detect_language(text: str) -> DetectedLanguage:
    """
    テキストの言語を推定

    判定は漢字 → かな → ラテン文字の順で、最初に一致したものを採用する。
    漢字を1文字でも含めば日本語や英語が主体でもzhになる。

    Args:
        text: ユーザー入力

    Returns:
        zh / ja / en / other のいずれか
    """
    if _HAN_PATTERN.search(text):
        return DetectedLanguage.ZH
    if _JAPANESE_PATTERN.search(text):
        return DetectedLanguage.JA
    if _LATIN_PATTERN.search(text):
        return DetectedLanguage.EN
    return DetectedLanguage.OTHER
