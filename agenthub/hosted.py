import logging
from typing import Any, Dict, List, Optional

import httpx

from .llm import ALLOWED_ROLES, Completion, ProviderUnavailable, extract_error_detail, parse_completion


logger = logging.getLogger("uvicorn.error")

HOSTED_MODELS: List[Dict[str, Any]] = [
    {
        "id": "mistral-ai/Ministral-3B",
        "name": "Ministral-3B",
        "description": "Fast and efficient 3B parameter model",
        "capabilities": ["text", "tools"],
    },
    {
        "id": "mistral-ai/Mistral-7B-Instruct-v0.3",
        "name": "Mistral-7B-Instruct",
        "description": "Versatile 7B parameter instruction-tuned model",
        "capabilities": ["text", "tools"],
    },
    {
        "id": "mistral-ai/Mistral-Small",
        "name": "Mistral-Small",
        "description": "Balanced performance and efficiency",
        "capabilities": ["text", "tools"],
    },
]


class HostedModelClient:
    """Cloud OpenAI-compatible inference endpoint with native function calling."""

    name = "hosted"
    supports_tools = True

    def __init__(self, base_url: str, api_token: Optional[str], default_model: str):
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.default_model = default_model
        self.client = httpx.AsyncClient(
            timeout=60,
            limits=httpx.Limits(max_connections=32, max_keepalive_connections=16),
        )

    @property
    def enabled(self) -> bool:
        return bool(self.api_token)

    async def list_models(self) -> List[Dict[str, Any]]:
        if not self.enabled:
            return []
        return [dict(m) for m in HOSTED_MODELS]

    def _sanitize_messages(self, messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        sanitized: List[Dict[str, Any]] = []
        for msg in messages:
            role = msg.get("role")
            if role not in ALLOWED_ROLES:
                continue
            cleaned: Dict[str, Any] = {"role": role, "content": msg.get("content")}
            if msg.get("tool_calls"):
                cleaned["tool_calls"] = msg["tool_calls"]
            elif not cleaned["content"]:
                continue
            if role == "tool":
                cleaned["tool_call_id"] = msg.get("tool_call_id")
            sanitized.append(cleaned)
        return sanitized

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        *,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Completion:
        if not self.enabled:
            raise ProviderUnavailable(self.name, "AI service not configured", 503)
        model_id = model or self.default_model
        payload: Dict[str, Any] = {
            "model": model_id,
            "messages": self._sanitize_messages(messages),
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"
        headers = {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }
        try:
            resp = await self.client.post(f"{self.base_url}/chat/completions", json=payload, headers=headers)
            resp.raise_for_status()
            return parse_completion(resp.json(), model_id)
        except httpx.HTTPStatusError as exc:
            detail = extract_error_detail(exc.response)
            logger.warning("Hosted model rejected request (%s): %s", exc.response.status_code, detail)
            raise ProviderUnavailable(self.name, detail or str(exc), exc.response.status_code) from exc
        except httpx.RequestError as exc:
            logger.warning("Hosted model unreachable: %s", exc)
            raise ProviderUnavailable(self.name, f"Failed to communicate with AI service: {exc}") from exc
        except ValueError as exc:
            raise ProviderUnavailable(self.name, str(exc)) from exc

    async def close(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()
