import json

import httpx
import pytest
import respx
from httpx import Response

from agenthub.hosted import HostedModelClient
from agenthub.llm import LocalModelClient, ProviderSet, ProviderUnavailable, resolve_model_id


@pytest.mark.asyncio
async def test_list_models_hits_models_endpoint():
    client = LocalModelClient("http://lm.test/v1", "test-model")
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.get("http://lm.test/v1/models").mock(
                return_value=Response(200, json={"data": [{"id": "test-model"}, {"name": "no-id"}]})
            )
            models = await client.list_models()
            assert [m["id"] for m in models] == ["test-model"]
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_local_completion_payload_shape_and_caps_tokens():
    client = LocalModelClient("http://lm.test/v1", "test-model", max_output_tokens=5)
    captured = {}
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.get("http://lm.test/v1/models").mock(
                return_value=Response(200, json={"data": [{"id": "test-model"}]})
            )

            def handler(request):
                captured["json"] = json.loads(request.content.decode("utf-8"))
                return Response(200, json={"model": "test-model", "choices": [{"message": {"content": "ok"}}]})

            respx_mock.post("http://lm.test/v1/chat/completions").mock(side_effect=handler)
            completion = await client.complete(
                [
                    {"role": "system", "content": "sys"},
                    {"role": "user", "content": "hi"},
                    {"role": "tool", "tool_call_id": "x", "content": "observed"},
                    {"role": "assistant", "content": "   "},
                ],
                temperature=0.5,
                max_tokens=20,
                tools=[{"type": "function", "function": {"name": "information_lookup"}}],
            )
            assert completion.text == "ok"
            assert completion.tool_calls == []
            payload = captured["json"]
            assert payload["model"] == "test-model"
            assert payload["max_tokens"] == 5
            assert payload["temperature"] == 0.5
            assert payload["stream"] is False
            assert "tools" not in payload
            assert [m["role"] for m in payload["messages"]] == ["system", "user", "user"]
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_local_completion_resolves_model_alias():
    client = LocalModelClient("http://lm.test/v1", "mistral-7b-instruct-v0.3-q4_k_m:custom")
    captured = {}
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.get("http://lm.test/v1/models").mock(
                return_value=Response(200, json={"data": [{"id": "mistral-7b-instruct-v0.3-q4_k_m"}]})
            )

            def handler(request):
                captured["json"] = json.loads(request.content.decode("utf-8"))
                return Response(200, json={"choices": [{"message": {"content": "ok"}}]})

            respx_mock.post("http://lm.test/v1/chat/completions").mock(side_effect=handler)
            completion = await client.complete([{"role": "user", "content": "hi"}])
            assert captured["json"]["model"] == "mistral-7b-instruct-v0.3-q4_k_m"
            assert completion.model == "mistral-7b-instruct-v0.3-q4_k_m"
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_local_completion_falls_back_to_reasoning_content():
    client = LocalModelClient("http://lm.test/v1", "test-model")
    try:
        with respx.mock(assert_all_called=False) as respx_mock:
            respx_mock.get("http://lm.test/v1/models").mock(return_value=Response(500))
            respx_mock.post("http://lm.test/v1/chat/completions").mock(
                return_value=Response(200, json={"choices": [{"message": {"content": "", "reasoning_content": "thinking"}}]})
            )
            completion = await client.complete([{"role": "user", "content": "hi"}])
            assert completion.text == "thinking"
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_local_unreachable_raises_provider_unavailable():
    client = LocalModelClient("http://lm.test/v1", "test-model")
    try:
        with respx.mock(assert_all_called=False) as respx_mock:
            respx_mock.get("http://lm.test/v1/models").mock(side_effect=httpx.ConnectError("refused"))
            respx_mock.post("http://lm.test/v1/chat/completions").mock(side_effect=httpx.ConnectError("refused"))
            with pytest.raises(ProviderUnavailable) as excinfo:
                await client.complete([{"role": "user", "content": "hi"}])
            assert excinfo.value.provider == "local"
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_empty_choices_raise_provider_unavailable():
    client = LocalModelClient("http://lm.test/v1", "test-model")
    try:
        with respx.mock(assert_all_called=False) as respx_mock:
            respx_mock.get("http://lm.test/v1/models").mock(return_value=Response(200, json={"data": []}))
            respx_mock.post("http://lm.test/v1/chat/completions").mock(return_value=Response(200, json={"choices": []}))
            with pytest.raises(ProviderUnavailable, match="No response from model"):
                await client.complete([{"role": "user", "content": "hi"}])
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_hosted_sends_bearer_and_tools():
    client = HostedModelClient("http://hosted.test/inference", "secret", "mistral-ai/Ministral-3B")
    captured = {}
    try:
        with respx.mock(assert_all_called=True) as respx_mock:

            def handler(request):
                captured["json"] = json.loads(request.content.decode("utf-8"))
                captured["headers"] = request.headers
                return Response(
                    200,
                    json={
                        "model": "mistral-ai/Ministral-3B",
                        "choices": [
                            {
                                "message": {
                                    "content": None,
                                    "tool_calls": [
                                        {
                                            "id": "call_9",
                                            "type": "function",
                                            "function": {"name": "information_lookup", "arguments": '{"query": "x"}'},
                                        }
                                    ],
                                }
                            }
                        ],
                    },
                )

            respx_mock.post("http://hosted.test/inference/chat/completions").mock(side_effect=handler)
            tools = [{"type": "function", "function": {"name": "information_lookup", "parameters": {}}}]
            completion = await client.complete([{"role": "user", "content": "hi"}], tools=tools)
            assert captured["headers"]["Authorization"] == "Bearer secret"
            assert captured["json"]["tools"] == tools
            assert captured["json"]["tool_choice"] == "auto"
            assert captured["json"]["model"] == "mistral-ai/Ministral-3B"
            assert completion.tool_calls[0].id == "call_9"
            assert completion.tool_calls[0].name == "information_lookup"
            assert json.loads(completion.tool_calls[0].arguments_json) == {"query": "x"}
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_hosted_without_token_is_not_configured():
    client = HostedModelClient("http://hosted.test/inference", None, "mistral-ai/Ministral-3B")
    try:
        assert not client.enabled
        assert await client.list_models() == []
        with pytest.raises(ProviderUnavailable) as excinfo:
            await client.complete([{"role": "user", "content": "hi"}])
        assert excinfo.value.status_code == 503
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_hosted_http_error_keeps_status():
    client = HostedModelClient("http://hosted.test/inference", "secret", "mistral-ai/Ministral-3B")
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.post("http://hosted.test/inference/chat/completions").mock(
                return_value=Response(429, json={"error": "quota"})
            )
            with pytest.raises(ProviderUnavailable) as excinfo:
                await client.complete([{"role": "user", "content": "hi"}])
            assert excinfo.value.status_code == 429
            assert "quota" in excinfo.value.detail
    finally:
        await client.close()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"choices": ["oops"]},
        {"choices": [{"message": "text"}]},
        {"choices": [{"message": {"content": "", "tool_calls": ["bad"]}}]},
        {"choices": [{"message": {"content": "", "tool_calls": {"function": {}}}}]},
    ],
)
async def test_hosted_malformed_completion_raises_provider_unavailable(body):
    client = HostedModelClient("http://hosted.test/inference", "secret", "mistral-ai/Ministral-3B")
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.post("http://hosted.test/inference/chat/completions").mock(
                return_value=Response(200, json=body)
            )
            with pytest.raises(ProviderUnavailable):
                await client.complete([{"role": "user", "content": "hi"}])
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_local_malformed_choice_raises_provider_unavailable():
    client = LocalModelClient("http://lm.test/v1", "test-model")
    try:
        with respx.mock(assert_all_called=False) as respx_mock:
            respx_mock.get("http://lm.test/v1/models").mock(
                return_value=Response(200, json={"data": [{"id": "test-model"}]})
            )
            respx_mock.post("http://lm.test/v1/chat/completions").mock(
                return_value=Response(200, json={"choices": ["oops"]})
            )
            with pytest.raises(ProviderUnavailable):
                await client.complete([{"role": "user", "content": "hi"}])
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_provider_set_falls_back_to_default():
    local = LocalModelClient("http://lm.test/v1", "test-model")
    hosted = HostedModelClient("http://hosted.test/inference", "secret", "m")
    providers = ProviderSet({"local": local, "hosted": hosted}, default="local")
    try:
        assert providers.get("hosted") is hosted
        assert providers.get("HOSTED") is hosted
        assert providers.get("unknown") is local
        assert providers.get(None) is local
    finally:
        await providers.close()


def test_resolve_model_id_matches_size_hint():
    assert resolve_model_id("qwen3-8b:latest", ["llama-3-8b-instruct"]) == "llama-3-8b-instruct"
    assert resolve_model_id("org/Model-X", ["model-x"]) == "model-x"
    assert resolve_model_id("absent", ["other"]) is None
