"""
Unit tests for the LLM service (provider client mocked)
"""
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from app.errors import UpstreamError
from app.services.emotion_ai_service import EmotionAIService, EmotionScorePayload
from app.services.llm_service import LLMService, strip_code_fences


def _client_returning(content):
    client = MagicMock()
    client.chat.completions.create.return_value = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))]
    )
    return client


MESSAGES = [{"role": "user", "content": "I'm fine"}]


class TestStripCodeFences:

    def test_json_fence(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_plain_fence(self):
        assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_no_fence(self):
        assert strip_code_fences('  {"a": 1} ') == '{"a": 1}'


class TestStructuredOutput:

    def test_parses_fenced_json(self, test_settings):
        llm = LLMService(test_settings, client=_client_returning('```json\n{"intensity": 14}\n```'))

        result = llm.structured_output(MESSAGES, EmotionScorePayload)

        assert isinstance(result, EmotionScorePayload)
        assert result.intensity == 10

    def test_prepends_schema_prompt_and_json_mode(self, test_settings):
        client = _client_returning("{}")
        LLMService(test_settings, client=client).structured_output(MESSAGES, EmotionScorePayload)

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["messages"][0]["role"] == "system"
        assert "EmotionScorePayload" in kwargs["messages"][0]["content"]

    def test_schema_reaches_provider_with_caller_system_prompt(self, test_settings):
        client = _client_returning("{}")
        messages = [
            {"role": "system", "content": "You are an expert emotion analyst."},
            {"role": "user", "content": 'Text: "deadline stress"'},
        ]

        LLMService(test_settings, client=client).structured_output(messages, EmotionScorePayload)

        sent = client.chat.completions.create.call_args.kwargs["messages"]
        assert [m["role"] for m in sent] == ["system", "user"]
        assert sent[0]["content"].startswith("You are an expert emotion analyst.")
        for field in ("primary_emotion", "intensity", "sentiment", "needs"):
            assert field in sent[0]["content"]
        # the caller's list is left alone
        assert messages[0]["content"] == "You are an expert emotion analyst."

    @pytest.mark.asyncio
    async def test_scoring_prompt_carries_field_names(self, test_settings):
        client = _client_returning('{"primary_emotion": "stress", "intensity": 8, "sentiment": -0.5}')

        analysis = await EmotionAIService(LLMService(test_settings, client=client)).score_response("deadline stress")

        system_prompt = client.chat.completions.create.call_args.kwargs["messages"][0]["content"]
        assert "primary_emotion" in system_prompt
        assert "EmotionScorePayload" in system_prompt
        assert analysis.primary_emotion == "stress"
        assert analysis.intensity_scored is True
        assert analysis.sentiment_scored is True

    def test_non_object_json_is_upstream_error(self, test_settings):
        llm = LLMService(test_settings, client=_client_returning("[1, 2]"))
        with pytest.raises(UpstreamError):
            llm.structured_output(MESSAGES, EmotionScorePayload)

    def test_unparsable_json_is_upstream_error(self, test_settings):
        llm = LLMService(test_settings, client=_client_returning("I feel happy"))
        with pytest.raises(UpstreamError):
            llm.structured_output(MESSAGES, EmotionScorePayload)

    def test_empty_content_is_upstream_error(self, test_settings):
        llm = LLMService(test_settings, client=_client_returning(None))
        with pytest.raises(UpstreamError):
            llm.structured_output(MESSAGES, EmotionScorePayload)

    def test_transport_failure_is_upstream_error(self, test_settings):
        client = MagicMock()
        client.chat.completions.create.side_effect = TimeoutError("timed out")
        with pytest.raises(UpstreamError):
            LLMService(test_settings, client=client).structured_output(MESSAGES, EmotionScorePayload)


class TestChatCompletion:

    def test_returns_content(self, test_settings):
        llm = LLMService(test_settings, client=_client_returning("Tell me more."))
        assert llm.chat_completion(MESSAGES, 0.8, 150) == "Tell me more."

    def test_failure_is_upstream_error(self, test_settings):
        client = MagicMock()
        client.chat.completions.create.side_effect = RuntimeError("503")
        with pytest.raises(UpstreamError):
            LLMService(test_settings, client=client).chat_completion(MESSAGES)
