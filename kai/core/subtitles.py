"""
読み上げ音声の字幕タイムライン
単語の時刻情報が得られない場合に、単語数から再生時間を見積もって均等に割り当てる
"""

import math
from typing import List

from kai.models.schemas import PronunciationWord

BASE_DURATION_SEC = 3
MAX_EXTRA_SEC = 9  # 最長12秒
SEC_PER_WORD = 0.3


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def estimate_duration_sec(word_count: int) -> int:
    """単語数から読み上げ時間（秒）を見積もる"""
    return BASE_DURATION_SEC + min(MAX_EXTRA_SEC, _round_half_up(word_count * SEC_PER_WORD))


def subtitle_timeline(text: str) -> List[PronunciationWord]:
    """
    テキストを空白で単語に分け、見積もった再生時間を均等に割り当てる

    Args:
        text: 読み上げるテキスト

    Returns:
        単語ごとの開始位置と長さ（ミリ秒）

    Raises:
        ValueError: テキストが空の場合
    """
    if not text:
        raise ValueError("text required")

    words = text.split()
    step = estimate_duration_sec(len(words)) * 1000 / max(1, len(words))
    return [
        PronunciationWord(
            word=word,
            offset_ms=_round_half_up(i * step),
            duration_ms=_round_half_up(step),
        )
        for i, word in enumerate(words)
    ]
