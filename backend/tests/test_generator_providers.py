from types import SimpleNamespace

import httpx
import openai
import pytest

from core.settings import AppSettings, PrimaryGeneratorSettings, SecondaryGeneratorSettings
from services.errors import QuotaExceeded, RateLimited, TransientError
from services.generator_providers import (
    GENERATION_PROMPT,
    OPTIMIZATION_PROMPT,
    OpenAIGenerator,
    build_generators,
    extract_bpmn_xml,
    extract_json_object,
    render_prompt,
    translate_error,
)

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/responses")


def _status_error(status: int, body=None, headers=None):
    response = httpx.Response(status, request=_REQUEST, headers=headers or {})
    if status == 429:
        return openai.RateLimitError("rate limited", response=response, body=body)
    return openai.APIStatusError(f"status {status}", response=response, body=body)


def test_rate_limit_keeps_retry_after():
    error = translate_error(_status_error(429, headers={"retry-after": "2"}))

    assert isinstance(error, RateLimited)
    assert error.retryable
    assert error.retry_after_s == 2.0


def test_insufficient_quota_is_not_retried():
    body = {"code": "insufficient_quota", "message": "You exceeded your current quota"}
    error = translate_error(_status_error(429, body=body))

    assert isinstance(error, QuotaExceeded)
    assert not error.retryable


def test_payment_required_is_quota():
    assert isinstance(translate_error(_status_error(402)), QuotaExceeded)


@pytest.mark.parametrize(
    "exc",
    [
        _status_error(500),
        openai.APITimeoutError(request=_REQUEST),
        openai.APIConnectionError(request=_REQUEST),
        ValueError("boom"),
    ],
)
def test_other_failures_are_transient(exc):
    assert isinstance(translate_error(exc), TransientError)


def test_extract_bpmn_xml_strips_fences_and_chatter():
    raw = "Here you go:\n```xml\n<bpmn:definitions id='D'><bpmn:process/></bpmn:definitions>\n```\nEnjoy"
    assert extract_bpmn_xml(raw) == "<bpmn:definitions id='D'><bpmn:process/></bpmn:definitions>"


def test_extract_bpmn_xml_without_definitions_is_transient():
    with pytest.raises(TransientError):
        extract_bpmn_xml("Sorry, I cannot help with that.")


def test_extract_json_object():
    raw = '```json\n{"bpmnXml": "<x/>", "changes": ["a"], "summary": "s"}\n```'
    assert extract_json_object(raw)["changes"] == ["a"]
    with pytest.raises(TransientError):
        extract_json_object("no json here")
    with pytest.raises(TransientError):
        extract_json_object("{not: valid}")


def test_render_prompt_substitutes_literally():
    rendered = render_prompt(OPTIMIZATION_PROMPT, {"currentBpmn": "<x/>", "industry": "finance", "context": {"a": 1}})

    assert "Current Process: <x/>" in rendered
    assert 'Optimization Context: {"a": 1}' in rendered
    assert '"bpmnXml": "optimized BPMN XML here"' in rendered


class _FakeResponses:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.result


def test_openai_generator_uses_responses_api():
    responses = _FakeResponses(result=SimpleNamespace(output_text="  <bpmn:definitions/>  "))
    generator = OpenAIGenerator("primary", SimpleNamespace(responses=responses), "gpt-test")

    text = generator.complete(GENERATION_PROMPT, {"description": "Ship goods", "industry": "general"})

    assert text == "<bpmn:definitions/>"
    call = responses.calls[0]
    assert call["model"] == "gpt-test"
    assert "Process Description: Ship goods" in call["input"][1]["content"][0]["text"]


def test_openai_generator_chat_mode():
    message = SimpleNamespace(content='{"bpmnXml": "<x/>"}')
    completions = _FakeResponses(result=SimpleNamespace(choices=[SimpleNamespace(message=message)]))
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    generator = OpenAIGenerator("secondary", client, "llama", api="chat")

    assert generator.complete(OPTIMIZATION_PROMPT, {}) == '{"bpmnXml": "<x/>"}'
    assert completions.calls[0]["messages"][0]["content"].startswith("You are a process optimization expert")


def test_openai_generator_translates_sdk_errors():
    responses = _FakeResponses(error=_status_error(429, headers={"retry-after": "1"}))
    generator = OpenAIGenerator("primary", SimpleNamespace(responses=responses), "gpt-test")

    with pytest.raises(RateLimited):
        generator.complete(GENERATION_PROMPT, {"description": "x", "industry": "general"})


def test_openai_generator_empty_answer_is_transient():
    responses = _FakeResponses(result=SimpleNamespace(output_text="", output=[]))
    generator = OpenAIGenerator("primary", SimpleNamespace(responses=responses), "gpt-test")

    with pytest.raises(TransientError):
        generator.complete(GENERATION_PROMPT, {"description": "x", "industry": "general"})


def test_build_generators_without_keys_returns_nothing():
    settings = AppSettings(
        primary=PrimaryGeneratorSettings(api_key=""),
        secondary=SecondaryGeneratorSettings(api_key=""),
    )

    assert build_generators(settings) == (None, None)


def test_build_generators_with_keys():
    settings = AppSettings(
        primary=PrimaryGeneratorSettings(api_key="sk-test", model="gpt-test"),
        secondary=SecondaryGeneratorSettings(api_key="hf-test", model="llama-test"),
    )

    primary, secondary = build_generators(settings)

    assert primary.describe()["model"] == "gpt-test"
    assert primary.api == "responses"
    assert secondary.api == "chat"
    assert secondary.describe()["provider"] == "openai-compatible"
