from __future__ import annotations

import itertools
import json

import pytest

from app.core.errors import AIOutcomeError, AIResponseError, AIUpstreamError, ConfigurationError, ConsensusError
from app.schemas import WorkflowConfig
from app.services.consensus import ConsensusAggregator
from app.services.http_cache import ResponseCache
from app.services.llm import CompletionRequest, CompletionResponse
from app.services.oracle import (
    FALLBACK_RESPONSE,
    SYSTEM_PROMPT,
    AIOracleClient,
    extract_message_content,
    parse_outcome,
)


def _envelope(content: str, response_id: str = "chatcmpl-1") -> str:
    return json.dumps({"id": response_id, "choices": [{"message": {"content": content}}]})


class FakeProvider:
    name = "fake"
    default_model = "fake-model"
    default_base_url = None

    def __init__(self, responses) -> None:
        self._responses = iter(responses)
        self.requests: list[CompletionRequest] = []

    def build_client(self, *, api_key, base_url, timeout):
        return object()

    def complete(self, client, request: CompletionRequest) -> CompletionResponse:
        self.requests.append(request)
        return next(self._responses)


def _oracle(provider: FakeProvider, *, cache_max_age: float = 60.0, replicas: int = 3) -> AIOracleClient:
    return AIOracleClient(
        provider=provider,
        client=object(),
        model="fake-model",
        aggregator=ConsensusAggregator(replicas=replicas),
        cache=ResponseCache(),
        cache_max_age=cache_max_age,
    )


@pytest.mark.parametrize(
    ("text", "result", "confidence"),
    [
        ('{"result":"YES","confidence":9000}', "YES", 9000),
        ('Here you go: {"result": "NO", "confidence": 1200} -- done', "NO", 1200),
        (FALLBACK_RESPONSE, "NO", 0),
        ('{"result":"YES","confidence":10000}', "YES", 10000),
        ('{"result":"NO","confidence":5000.0}', "NO", 5000),
    ],
)
def test_parse_outcome_accepts_valid_verdicts(text, result, confidence):
    outcome = parse_outcome(text)
    assert (outcome.result, outcome.confidence) == (result, confidence)


@pytest.mark.parametrize(
    "text",
    [
        "I cannot determine this.",
        '{"result":"INCONCLUSIVE","confidence":5000}',
        '{"result":"yes","confidence":5000}',
        '{"result":"YES","confidence":10001}',
        '{"result":"YES","confidence":-1}',
        '{"result":"YES","confidence":50.5}',
        '{"result":"YES","confidence":true}',
        '{"result":"YES"}',
    ],
)
def test_parse_outcome_rejects_invalid_output(text):
    with pytest.raises(AIOutcomeError):
        parse_outcome(text)


def test_extract_message_content_requires_text():
    assert extract_message_content(_envelope("hi", "abc")) == ("hi", "abc")
    with pytest.raises(AIResponseError, match="missing text content"):
        extract_message_content(json.dumps({"choices": []}))
    with pytest.raises(AIResponseError):
        extract_message_content("not json")


def test_ask_shares_cached_response_across_replicas():
    provider = FakeProvider(
        [CompletionResponse(200, _envelope('{"result":"NO","confidence":8000}'))]
    )
    oracle = _oracle(provider)

    outcome = oracle.ask("Will it rain tomorrow?")

    assert (outcome.result, outcome.confidence) == ("NO", 8000)
    assert len(provider.requests) == 1
    request = provider.requests[0]
    assert request.temperature == 0.0
    assert request.messages[0]["content"] == SYSTEM_PROMPT
    assert request.messages[1]["content"].endswith("Will it rain tomorrow?")


def test_ask_without_cache_queries_every_replica():
    body = _envelope('{"result":"YES","confidence":7000}')
    provider = FakeProvider(itertools.repeat(CompletionResponse(200, body)))

    outcome = _oracle(provider, cache_max_age=0).ask("Will it rain tomorrow?")

    assert outcome.result == "YES"
    assert len(provider.requests) == 3


def test_divergent_replicas_fail_consensus():
    provider = FakeProvider(
        [
            CompletionResponse(200, _envelope('{"result":"YES","confidence":7000}', "a")),
            CompletionResponse(200, _envelope('{"result":"NO","confidence":7000}', "b")),
            CompletionResponse(200, _envelope('{"result":"YES","confidence":7000}', "c")),
        ]
    )
    with pytest.raises(ConsensusError):
        _oracle(provider, cache_max_age=0).ask("Will it rain tomorrow?")


def test_upstream_error_surfaces_status_and_is_not_cached():
    provider = FakeProvider(itertools.repeat(CompletionResponse(429, '{"error":"rate limited"}')))
    oracle = _oracle(provider)

    with pytest.raises(AIUpstreamError) as excinfo:
        oracle.ask("Will it rain tomorrow?")

    assert excinfo.value.status_code == 429
    assert "rate limited" in str(excinfo.value)
    assert len(provider.requests) == 3
    assert len(oracle.cache) == 0


def test_malformed_model_output_raises_outcome_error():
    provider = FakeProvider([CompletionResponse(200, _envelope("I cannot determine this."))])
    with pytest.raises(AIOutcomeError):
        _oracle(provider).ask("Will it rain tomorrow?")


def test_from_config_uses_mock_response(test_settings):
    config = WorkflowConfig.model_validate({"useMockAi": True})
    oracle = AIOracleClient.from_config(
        test_settings, config, aggregator=ConsensusAggregator(replicas=2)
    )
    outcome = oracle.ask("Anything at all?")
    assert (outcome.result, outcome.confidence) == ("YES", 10000)


def test_from_config_requires_api_key(test_settings):
    with pytest.raises(ConfigurationError, match="API key not found"):
        AIOracleClient.from_config(
            test_settings, WorkflowConfig(), aggregator=ConsensusAggregator()
        )


def test_from_config_falls_back_to_workflow_key(test_settings):
    config = WorkflowConfig.model_validate({"deepseekApiKey": "sk-workflow"})
    oracle = AIOracleClient.from_config(test_settings, config, aggregator=ConsensusAggregator())
    assert oracle.provider.name == "deepseek"
    assert oracle.model == "deepseek-chat"


def test_from_config_rejects_unknown_provider(test_settings):
    config = WorkflowConfig.model_validate({"llmProvider": "gemini", "deepseekApiKey": "sk"})
    with pytest.raises(ConfigurationError, match="not registered"):
        AIOracleClient.from_config(test_settings, config, aggregator=ConsensusAggregator())


def test_workflow_provider_overrides_default(test_settings):
    config = WorkflowConfig.model_validate({"llmProvider": "OpenAI", "deepseekApiKey": "sk"})
    oracle = AIOracleClient.from_config(test_settings, config, aggregator=ConsensusAggregator())
    assert oracle.provider.name == "openai"
    assert oracle.model == "gpt-4"


def test_ask_without_provider_outside_mock_mode_is_a_configuration_error():
    oracle = AIOracleClient(
        provider=None,
        client=None,
        model="fake-model",
        aggregator=ConsensusAggregator(replicas=1),
    )
    with pytest.raises(ConfigurationError, match="No LLM provider configured"):
        oracle.ask("Will it rain tomorrow?")
