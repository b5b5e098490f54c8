"""
基本的なインポートテスト
すべての主要モジュールが正しくインポートできることを確認する
"""
import importlib

import pytest

MODULES = [
    "kai.config",
    "kai.models.schemas",
    "kai.core.language",
    "kai.core.pipeline",
    "kai.core.prompts",
    "kai.core.parser",
    "kai.core.subtitles",
    "kai.core.audio_features",
    "kai.services.audio_service",
    "kai.services.api_check_service",
    "kai.services.errors",
    "kai.services.openai_service",
    "kai.services.azure_service",
    "kai.services.coach_service",
    "kai.main",
]


@pytest.mark.parametrize("module", MODULES)
def test_imports(module):
    """すべての主要モジュールのインポートをテスト"""
    assert importlib.import_module(module) is not None
