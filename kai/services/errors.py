"""
外部サービス呼び出しの例外
"""


class KaiServiceError(Exception):
    """外部サービス呼び出しの失敗"""


class QuotaExceededError(KaiServiceError):
    """APIの利用枠超過（402/429、insufficient_quota）"""
