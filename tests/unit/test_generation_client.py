"""
Unit tests for the chat-completions generation client.
"""

import json

import pytest
import pytest_asyncio
from httpx import ConnectError, Request, Response, TimeoutException

from yuliao.core.errors import GenerationError, GenerationErrorKind
from yuliao.integrations.generation_client import (
    GenerationClient,
    clean_json_string,
    parse_json_object,
)
from yuliao.integrations.retry import RetryPolicy


async def no_sleep(seconds):
    return None


def completion(content) -> dict:
    """Wrap model output in a chat-completions response body."""
    if not isinstance(content, str):
        content = json.dumps(content, ensure_ascii=False)
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


@pytest.fixture
def sample_scenario():
    return {
        "topic": "Morning Meeting",
        "chineseScript": "我们下午再碰一下吧。",
        "chineseHighlights": ["碰一下"],
        "englishReference": "Let's touch base this afternoon.",
        "highlights": [
            {"text": "touch base", "original": "touch base", "translation": "碰一下"},
        ],
    }


@pytest_asyncio.fixture
async def client():
    """Generation client with instant retries."""
    client = GenerationClient(
        api_key="test-key",
        api_base="https://llm.test/api/v4/",
        model="test-model",
        retry_policy=RetryPolicy(max_retries=3, base_delay=2.0, sleep=no_sleep),
    )
    yield client
    await client.close()


class TestJsonCleaning:
    def test_strips_code_fences(self):
        assert clean_json_string('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert clean_json_string('```\n{"a": 1}```') == '{"a": 1}'

    def test_empty_becomes_empty_object(self):
        assert clean_json_string(None) == "{}"
        assert clean_json_string("") == "{}"

    def test_parse_rejects_non_object(self):
        with pytest.raises(GenerationError) as exc:
            parse_json_object("[1, 2]")
        assert exc.value.kind == GenerationErrorKind.PARSE

    def test_parse_rejects_garbage(self):
        with pytest.raises(GenerationError) as exc:
            parse_json_object("Sure! Here is your JSON")
        assert exc.value.kind == GenerationErrorKind.PARSE


class TestGenerateContent:
    @pytest.mark.asyncio
    async def test_success(self, client, sample_scenario, monkeypatch):
        captured = {}

        async def mock_post(url, **kwargs):
            captured["url"] = url
            captured.update(kwargs)
            return Response(200, json=completion(sample_scenario), request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", mock_post)

        scenario = await client.generate_content(["touch base"], "Work")

        assert scenario.english_reference == "Let's touch base this afternoon."
        assert scenario.highlights[0].text == "touch base"
        assert captured["url"] == "https://llm.test/api/v4/chat/completions"
        assert captured["headers"]["Authorization"] == "Bearer test-key"
        assert captured["json"]["model"] == "test-model"
        assert captured["json"]["response_format"] == {"type": "json_object"}
        assert captured["timeout"] == client.timeout_seconds

    @pytest.mark.asyncio
    async def test_multi_phrase_uses_scenario_timeout(self, client, sample_scenario, monkeypatch):
        timeouts = []

        async def mock_post(url, **kwargs):
            timeouts.append(kwargs["timeout"])
            return Response(200, json=completion(sample_scenario), request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", mock_post)

        await client.generate_content(["touch base", "circle back"], "Work")

        assert timeouts == [client.scenario_timeout_seconds]

    @pytest.mark.asyncio
    async def test_fenced_output_and_chinese_original_normalized(self, client, sample_scenario, monkeypatch):
        sample_scenario["highlights"] = [{"text": "touch base", "original": "碰一下"}]
        fenced = "```json\n" + json.dumps(sample_scenario, ensure_ascii=False) + "\n```"

        async def mock_post(url, **kwargs):
            return Response(200, json=completion(fenced), request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", mock_post)

        scenario = await client.generate_content(["touch base"], "Work")

        assert scenario.highlights[0].original == "touch base"

    @pytest.mark.asyncio
    async def test_fresh_flag_changes_prompt(self, client, sample_scenario, monkeypatch):
        prompts = []

        async def mock_post(url, **kwargs):
            prompts.append(kwargs["json"]["messages"][0]["content"])
            return Response(200, json=completion(sample_scenario), request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", mock_post)

        await client.generate_content(["touch base"], "Work")
        await client.generate_content(["touch base"], "Work", fresh=True)

        assert "NEW situation" not in prompts[0]
        assert "NEW situation" in prompts[1]

    @pytest.mark.asyncio
    async def test_timeout_retried(self, client, sample_scenario, monkeypatch):
        call_count = 0

        async def mock_post(url, **kwargs):
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise TimeoutException("Timeout")
            return Response(200, json=completion(sample_scenario), request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", mock_post)

        scenario = await client.generate_content(["touch base"], "Work")

        assert call_count == 3
        assert scenario.topic == "Morning Meeting"

    @pytest.mark.asyncio
    async def test_server_error_retried_until_exhausted(self, client, monkeypatch):
        call_count = 0

        async def mock_post(url, **kwargs):
            nonlocal call_count
            call_count += 1
            return Response(503, text="overloaded", request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", mock_post)

        with pytest.raises(GenerationError) as exc:
            await client.generate_content(["touch base"], "Work")

        assert call_count == 4  # first attempt + 3 retries
        assert exc.value.kind == GenerationErrorKind.API
        assert exc.value.status_code == 503

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_error_not_retried(self, client, monkeypatch, status):
        call_count = 0

        async def mock_post(url, **kwargs):
            nonlocal call_count
            call_count += 1
            return Response(status, json={"error": "bad key"}, request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", mock_post)

        with pytest.raises(GenerationError) as exc:
            await client.generate_content(["touch base"], "Work")

        assert call_count == 1
        assert exc.value.kind == GenerationErrorKind.AUTH

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, client, monkeypatch):
        call_count = 0

        async def mock_post(url, **kwargs):
            nonlocal call_count
            call_count += 1
            return Response(400, json={"error": "bad request"}, request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", mock_post)

        with pytest.raises(GenerationError):
            await client.generate_content(["touch base"], "Work")

        assert call_count == 1

    @pytest.mark.asyncio
    async def test_connection_error_is_network(self, client, monkeypatch):
        async def mock_post(url, **kwargs):
            raise ConnectError("refused", request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", mock_post)

        with pytest.raises(GenerationError) as exc:
            await client.generate_content(["touch base"], "Work")

        assert exc.value.kind == GenerationErrorKind.NETWORK

    @pytest.mark.asyncio
    async def test_missing_reference_is_parse_error(self, client, monkeypatch):
        call_count = 0

        async def mock_post(url, **kwargs):
            nonlocal call_count
            call_count += 1
            return Response(200, json=completion({"chineseScript": "你好"}), request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", mock_post)

        with pytest.raises(GenerationError) as exc:
            await client.generate_content(["touch base"], "Work")

        assert exc.value.kind == GenerationErrorKind.PARSE
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_no_api_key(self, monkeypatch):
        client = GenerationClient(api_key="", api_base="https://llm.test", model="m")

        with pytest.raises(GenerationError) as exc:
            await client.generate_content(["touch base"], "Work")

        assert exc.value.kind == GenerationErrorKind.AUTH
        await client.close()


class TestScoring:
    @pytest.mark.asyncio
    async def test_evaluate_answer(self, client, monkeypatch):
        async def mock_post(url, **kwargs):
            body = completion({"score": 135, "feedback": "Great"})
            return Response(200, json=body, request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", mock_post)

        evaluation = await client.evaluate_answer("Let's touch base.", "Let's touch base later.")

        assert evaluation.score == 100
        assert evaluation.feedback == "Great"

    @pytest.mark.asyncio
    async def test_evaluate_answer_falls_back(self, client, monkeypatch):
        async def mock_post(url, **kwargs):
            return Response(401, json={}, request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", mock_post)

        evaluation = await client.evaluate_answer("x", "y")

        assert evaluation.score == 0
        assert evaluation.feedback == "评估异常。"

    @pytest.mark.asyncio
    async def test_review_feedback(self, client, monkeypatch):
        async def mock_post(url, **kwargs):
            body = completion({
                "score": 80,
                "feedback": "Good flow",
                "punctuatedTranscript": "Let's touch base.",
                "improvedVersion": "Let's touch base this afternoon.",
            })
            return Response(200, json=body, request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", mock_post)

        feedback = await client.review_feedback("lets touch base", "Let's touch base this afternoon.")

        assert feedback.score == 80
        assert feedback.punctuated_transcript == "Let's touch base."
        assert feedback.improved_version == "Let's touch base this afternoon."

    @pytest.mark.asyncio
    async def test_review_feedback_falls_back(self, client, monkeypatch):
        async def mock_post(url, **kwargs):
            return Response(200, json=completion("not json"), request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", mock_post)

        feedback = await client.review_feedback("my answer", "ref")

        assert feedback.score == 0
        assert feedback.feedback == "分析生成延迟。"
        assert feedback.punctuated_transcript == "my answer"


class TestExtraction:
    @pytest.mark.asyncio
    async def test_extract_skips_malformed(self, client, monkeypatch):
        async def mock_post(url, **kwargs):
            body = completion({
                "items": [
                    {"english": "touch base", "chinese": "联系一下", "type": "phrase", "tags": ["work"]},
                    {"chinese": "没有英文"},
                ]
            })
            return Response(200, json=body, request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", mock_post)

        phrases = await client.extract_corpus("Let's touch base tomorrow.")

        assert [p.english for p in phrases] == ["touch base"]
        assert phrases[0].tags == ["work"]

    @pytest.mark.asyncio
    async def test_extract_failure_returns_empty(self, client, monkeypatch):
        async def mock_post(url, **kwargs):
            raise TimeoutException("Timeout")

        monkeypatch.setattr(client.client, "post", mock_post)

        assert await client.extract_corpus("text") == []
