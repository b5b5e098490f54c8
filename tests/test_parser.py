"""
応答解析のテスト
"""
import json

import pytest

from kai.core.parser import Invalid, Parsed, fallback_response, parse_kai_response, safe_parse_kai_response
from kai.models.schemas import KaiResponse


class TestSafeParseKaiResponse:
    """safe_parse_kai_responseのテストクラス"""

    def test_minimal_response(self):
        """answerと空のvocabのみ"""
        result = safe_parse_kai_response('{"answer":"Hi","vocab":[]}')

        assert isinstance(result, KaiResponse)
        assert result.answer == "Hi"
        assert result.vocab == []
        assert result.to_dict() == {"answer": "Hi", "vocab": []}

    def test_not_json(self):
        """JSONでない場合はNone"""
        assert safe_parse_kai_response("not json") is None

    def test_full_response_round_trip(self):
        """全てのキーを含む応答はそのまま復元できる"""
        data = {
            "answer": "You could say: I'd like a coffee.",
            "corrections": [
                {"original": "I want coffee", "corrected": "I'd like a coffee", "explanation": "More polite."}
            ],
            "hints": ["I'd like a coffee, please."],
            "vocab": [{"word": "polite", "meaning": "showing good manners", "why": "used in the answer"}],
        }

        result = safe_parse_kai_response(json.dumps(data))

        assert result is not None
        assert result.to_dict() == data

    def test_post_process_vocab_fields(self):
        """後処理形式の語彙（partOfSpeech, cefr, example）も保持"""
        data = {
            "answer": "Sure!",
            "vocab": [
                {
                    "word": "sure",
                    "partOfSpeech": "adverb",
                    "meaning": "certainly",
                    "example": "Sure!",
                    "cefr": "A2",
                    "why": "common reply",
                }
            ],
        }

        result = safe_parse_kai_response(json.dumps(data))

        assert result is not None
        assert result.vocab[0].part_of_speech == "adverb"
        assert result.vocab[0].cefr == "A2"
        assert result.to_dict() == data

    def test_extra_keys_preserved(self):
        """未知のキーも保持"""
        data = {"answer": "Hi", "vocab": [], "mock": "quota"}

        result = safe_parse_kai_response(json.dumps(data))

        assert result is not None
        assert result.to_dict() == data

    @pytest.mark.parametrize(
        "text",
        [
            '{"vocab":[]}',
            '{"answer":"Hi"}',
            '{"answer":1,"vocab":[]}',
            '{"answer":"Hi","vocab":{}}',
            '{"answer":"Hi","vocab":null}',
            '["answer","vocab"]',
            '"answer"',
            "null",
            "",
            '```json\n{"answer":"Hi","vocab":[]}\n```',
        ],
    )
    def test_invalid_structures(self, text):
        """answerやvocabが欠けている・型が違う場合はNone"""
        assert safe_parse_kai_response(text) is None


class TestParseKaiResponse:
    """parse_kai_responseのテストクラス"""

    def test_parsed(self):
        """成功時はParsed"""
        result = parse_kai_response('{"answer":"Hi","vocab":[],"hints":["Hello!"]}')

        assert isinstance(result, Parsed)
        assert result.response.hints == ["Hello!"]

    def test_invalid_keeps_raw(self):
        """失敗時はInvalidで元のテキストを保持"""
        result = parse_kai_response("Sure, here you go")

        assert isinstance(result, Invalid)
        assert result.raw == "Sure, here you go"
        assert "JSON解析エラー" in result.reason

    def test_missing_vocab_reason(self):
        """vocabがない場合の理由"""
        result = parse_kai_response('{"answer":"Hi"}')

        assert isinstance(result, Invalid)
        assert "vocab" in result.reason

    @pytest.mark.parametrize(
        "data",
        [
            {"answer": "Hi", "vocab": ["apple"]},
            {"answer": "Nice to meet you!", "vocab": [{"word": "meet", "meaning": "see", "why": None}]},
            {"answer": "Hi", "vocab": [], "hints": [{"text": "Hello"}]},
            {"answer": "Hi", "vocab": [], "hints": None, "corrections": None},
            {"answer": "Hi", "vocab": [], "corrections": "none"},
            {"answer": "Hi", "vocab": [{"word": 5}, 3, None], "corrections": [{"original": 1}, "typo"]},
        ],
    )
    def test_loose_items_round_trip(self, data):
        """answerが文字列でvocabが配列なら、要素の形が崩れていてもそのまま受け付ける"""
        result = parse_kai_response(json.dumps(data))

        assert isinstance(result, Parsed)
        assert result.response.to_dict() == data

    def test_loose_items_keep_models_when_possible(self):
        """形の合う要素はモデルとして扱う"""
        result = safe_parse_kai_response('{"answer":"Hi","vocab":[{"word":"hi","why":null},"apple"]}')

        assert result is not None
        assert result.vocab[0].word == "hi"
        assert result.vocab[0].why is None
        assert result.vocab[1] == "apple"

    def test_fallback_response(self):
        """フォールバックは生のテキストを回答にして語彙を空にする"""
        response = fallback_response("plain text")

        assert response.answer == "plain text"
        assert response.vocab == []
        assert response.corrections is None
