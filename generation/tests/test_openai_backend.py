# generation/tests/test_openai_backend.py
"""
Tests for the OpenAI backend.

The SDK runs over an httpx.AsyncClient backed by httpx.MockTransport, so
no request leaves the process.
"""
import asyncio
import json

import httpx
import pytest

from builders import build_request, no_sleep
from generation.backends.openai import (
    OpenAIBackend,
    build_system_prompt,
    build_user_prompt,
)
from generation.context_builder import build_context
from generation.errors import (
    EmptyResponse,
    MalformedOutput,
    MissingApiKey,
    OpenAIError,
)
from generation.models import Event, Team

GOOD_CONTENT = {
    "legs": [
        {
            "id": "leg-1",
            "betType": "spread",
            "selection": "Kansas City Chiefs -3.5",
            "target": "-3.5",
            "reasoning": "Broncos struggle against the blitz on the road.",
            "confidence": 7,
            "odds": "-110",
        },
        {
            "id": "leg-2",
            "betType": "player_receiving",
            "selection": "Travis Kelce",
            "target": "Over 5.5 receptions",
            "reasoning": "Denver linebackers give up underneath volume.",
            "confidence": 6,
            "odds": "-120",
        },
        {
            "id": "leg-3",
            "betType": "total",
            "selection": "Under 44.5",
            "target": "44.5",
            "reasoning": "Both defenses rank top ten in red zone stops.",
            "confidence": 6,
            "odds": "-105",
        },
    ],
    "aiReasoning": "Chiefs grind out a low-scoring win.",
    "overallConfidence": 6,
}


def completion(content, model="gpt-4o-mini-2024-07-18", total_tokens=1234):
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "created": 1729443600,
        "model": model,
        "choices": [
            {
                "index": 0,
                "finish_reason": "stop",
                "message": {"role": "assistant", "content": content},
            }
        ],
        "usage": {
            "prompt_tokens": 1000,
            "completion_tokens": total_tokens - 1000,
            "total_tokens": total_tokens,
        },
    }


class Transport:
    """Replays responses in order and records every request."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses[min(len(self.requests), len(self.responses)) - 1]
        if isinstance(response, Exception):
            raise response
        return response


def make_backend(transport: Transport, **kwargs) -> OpenAIBackend:
    client = httpx.AsyncClient(transport=httpx.MockTransport(transport))
    return OpenAIBackend("sk-test", http_client=client, sleep=no_sleep, **kwargs)


def generate(backend):
    request = build_request()
    return asyncio.run(backend.generate(request, build_context(request)))


def api_error(status_code, message):
    return httpx.Response(status_code, json={"error": {"message": message}})


class TestGenerate:

    def test_success(self):
        transport = Transport(httpx.Response(200, json=completion(json.dumps(GOOD_CONTENT))))

        response = generate(make_backend(transport))

        assert response.model == "gpt-4o-mini-2024-07-18"
        assert response.tokens == 1234
        assert response.generated_set.id.startswith("parlay-openai-")
        assert response.generated_set.combined_odds == "+583"

        sent = transport.requests[0]
        assert sent.url == "https://api.openai.com/v1/chat/completions"
        assert sent.headers["authorization"] == "Bearer sk-test"
        body = json.loads(sent.content)
        assert body["response_format"] == {"type": "json_object"}
        assert body["temperature"] == pytest.approx(0.56)
        assert [m["role"] for m in body["messages"]] == ["system", "user"]

    def test_server_error_is_retried(self):
        transport = Transport(
            api_error(500, "The server had an error"),
            httpx.Response(200, json=completion(json.dumps(GOOD_CONTENT))),
        )

        response = generate(make_backend(transport))

        assert len(transport.requests) == 2
        assert len(response.generated_set.legs) == 3

    def test_transport_error_is_retried(self):
        transport = Transport(
            httpx.ConnectError("connection refused"),
            httpx.Response(200, json=completion(json.dumps(GOOD_CONTENT))),
        )

        generate(make_backend(transport))

        assert len(transport.requests) == 2

    def test_retries_exhausted(self):
        transport = Transport(api_error(502, "Bad gateway"))

        with pytest.raises(OpenAIError) as exc_info:
            generate(make_backend(transport, max_retries=2))

        assert len(transport.requests) == 2
        assert exc_info.value.status_code == 502

    def test_auth_error_is_not_retried(self):
        transport = Transport(api_error(401, "Incorrect API key provided"))

        with pytest.raises(OpenAIError) as exc_info:
            generate(make_backend(transport))

        assert len(transport.requests) == 1
        assert exc_info.value.code == "OPENAI_ERROR"
        assert "Incorrect API key provided" in exc_info.value.message

    def test_quota_exhaustion_is_not_retried(self):
        transport = Transport(api_error(429, "You exceeded your current quota"))

        with pytest.raises(OpenAIError):
            generate(make_backend(transport))

        assert len(transport.requests) == 1

    def test_empty_content(self):
        transport = Transport(httpx.Response(200, json=completion("")))

        with pytest.raises(EmptyResponse) as exc_info:
            generate(make_backend(transport))

        assert exc_info.value.code == "NO_RESPONSE"

    def test_unparseable_content(self):
        transport = Transport(httpx.Response(200, json=completion("Take the Chiefs!")))

        with pytest.raises(MalformedOutput) as exc_info:
            generate(make_backend(transport))

        assert exc_info.value.code == "PARSE_ERROR"
        assert len(transport.requests) == 1


class TestConnection:

    def test_validate_connection(self):
        transport = Transport(httpx.Response(200, json=completion("ok")))
        assert asyncio.run(make_backend(transport).validate_connection()) is True
        assert json.loads(transport.requests[0].content)["max_tokens"] == 1

    def test_validate_connection_failure(self):
        transport = Transport(api_error(401, "Incorrect API key provided"))
        assert asyncio.run(make_backend(transport).validate_connection()) is False

    def test_missing_api_key(self):
        with pytest.raises(MissingApiKey) as exc_info:
            OpenAIBackend("")
        assert exc_info.value.code == "MISSING_API_KEY"


class TestPrompts:

    def test_system_prompt_carries_hints(self):
        request = build_request(
            event=Event(
                id="1",
                week=7,
                home_team=Team(id="13", display_name="Las Vegas Raiders"),
                away_team=Team(id="12", display_name="Kansas City Chiefs"),
                date="2024-10-20T17:00:00Z",
            )
        )
        prompt = build_system_prompt(build_context(request))

        assert "Moderate Strategy" in prompt
        assert "AVOID these generic phrases: home team advantage" in prompt
        assert "divisional_rivalry_dynamics" in prompt

    def test_user_prompt_lists_rosters(self):
        request = build_request()
        prompt = build_user_prompt(request, build_context(request))

        assert prompt.startswith("GAME: Denver Broncos @ Kansas City Chiefs")
        assert "QB: Patrick Mahomes (#15)" in prompt
        assert "RB: Isiah Pacheco (#10), Kareem Hunt (#29)" in prompt
        assert "Risk Tolerance: 50%" in prompt
