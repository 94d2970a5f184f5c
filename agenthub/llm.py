import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import httpx


logger = logging.getLogger("uvicorn.error")

ALLOWED_ROLES = {"system", "user", "assistant", "tool"}
DISALLOWED_FIELDS = {
    "tools",
    "tool_choice",
    "response_format",
    "reasoning",
    "seed",
    "logprobs",
    "top_logprobs",
    "parallel_tool_calls",
    "json_schema",
    "modalities",
    "audio",
}
_MODEL_SIZE_RE = re.compile(r"(\d+(?:\.\d+)?b)", re.IGNORECASE)


class ProviderUnavailable(RuntimeError):
    """The completion provider could not produce a reply (network, auth, quota, bad body)."""

    def __init__(self, provider: str, detail: str, status_code: Optional[int] = None):
        super().__init__(f"{provider}: {detail}")
        self.provider = provider
        self.detail = detail
        self.status_code = status_code


@dataclass
class ToolCall:
    id: str
    name: str
    arguments_json: str = "{}"


@dataclass
class Completion:
    text: str = ""
    model: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)


class CompletionProvider(Protocol):
    name: str
    supports_tools: bool
    default_model: str

    @property
    def enabled(self) -> bool: ...

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        *,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Completion: ...

    async def list_models(self) -> List[Dict[str, Any]]: ...

    async def close(self) -> None: ...


def _normalize_model_id(value: str) -> str:
    base = value.split(":")[0].strip()
    if "/" in base:
        base = base.rsplit("/", 1)[-1]
    return base.lower()


def resolve_model_id(preferred: Optional[str], available: List[str]) -> Optional[str]:
    if not preferred or not available:
        return None
    if preferred in available:
        return preferred
    base = preferred.split(":")[0]
    if base in available:
        return base
    target = _normalize_model_id(preferred)
    for mid in available:
        if _normalize_model_id(mid) == target:
            return mid
    size_match = _MODEL_SIZE_RE.search(preferred)
    if size_match:
        size_hint = size_match.group(1).lower()
        for mid in available:
            if size_hint in mid.lower():
                return mid
    return None


def extract_error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
        if isinstance(data, dict):
            return json.dumps(data, ensure_ascii=True)
    except Exception:
        pass
    try:
        return response.text
    except Exception:
        return ""


def parse_completion(data: Any, model: str) -> Completion:
    """Read the first choice of an OpenAI-style chat completion body."""
    if not isinstance(data, dict):
        raise ValueError("completion body is not an object")
    choices = data.get("choices") or []
    if not choices:
        raise ValueError("No response from model")
    first = choices[0] if isinstance(choices, list) else None
    if not isinstance(first, dict):
        raise ValueError("completion choice is not an object")
    message = first.get("message") or {}
    if not isinstance(message, dict):
        raise ValueError("completion message is not an object")
    content = message.get("content")
    if content is None or content == "":
        content = message.get("reasoning") or message.get("reasoning_content") or ""
    calls: List[ToolCall] = []
    raw_calls = message.get("tool_calls") or []
    if not isinstance(raw_calls, list):
        raise ValueError("tool_calls is not a list")
    for idx, raw in enumerate(raw_calls):
        fn = raw.get("function") if isinstance(raw, dict) else None
        if not isinstance(fn, dict):
            raise ValueError("malformed tool call entry")
        name = fn.get("name")
        if not name:
            continue
        arguments = fn.get("arguments")
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments or {})
        calls.append(ToolCall(id=str(raw.get("id") or f"call_{idx}"), name=name, arguments_json=arguments))
    return Completion(text=str(content), model=str(data.get("model") or model), tool_calls=calls)


class LocalModelClient:
    """OpenAI-compatible local server (Ollama, LM Studio). Text only; no native tool calls."""

    name = "local"
    supports_tools = False

    def __init__(self, base_url: str, default_model: str, max_output_tokens: Optional[int] = None):
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model
        self.max_output_tokens = max_output_tokens
        self.client = httpx.AsyncClient(timeout=120)
        self.model_cache: Dict[str, Dict[str, Any]] = {}
        self.model_cache_ttl = 60.0

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    async def list_models(self) -> List[Dict[str, Any]]:
        resp = await self.client.get(f"{self.base_url}/models", timeout=3.0)
        resp.raise_for_status()
        return [m for m in resp.json().get("data", []) if m.get("id")]

    async def list_models_cached(self, force: bool = False) -> List[str]:
        now = time.monotonic()
        cached = self.model_cache.get(self.base_url)
        if cached and not force and now - cached["ts"] < self.model_cache_ttl:
            return cached["ids"]
        ids = [m["id"] for m in await self.list_models()]
        self.model_cache[self.base_url] = {"ts": now, "ids": ids}
        return ids

    def _sanitize_messages(self, messages: Any) -> List[Dict[str, Any]]:
        if not isinstance(messages, list):
            return []
        sanitized: List[Dict[str, Any]] = []
        for msg in messages:
            if not isinstance(msg, dict):
                continue
            role = msg.get("role")
            if role not in ALLOWED_ROLES:
                continue
            content = msg.get("content")
            if not isinstance(content, str) or not content.strip():
                continue
            # Tool results only exist for native tool calling; fold them into user turns.
            if role == "tool":
                role = "user"
            sanitized.append({"role": role, "content": content})
        return sanitized

    def _sanitize_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in payload.items() if k not in DISALLOWED_FIELDS}

    async def _resolve_model(self, model: str) -> str:
        try:
            available = await self.list_models_cached()
        except Exception as exc:
            logger.debug("Local model list unavailable (%s); sending %s as-is", exc, model)
            return model
        available = [m for m in available if m and "embed" not in m.lower()]
        return resolve_model_id(model, available) or model

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        *,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Completion:
        final_max_tokens = max_tokens
        if self.max_output_tokens:
            final_max_tokens = min(max_tokens, self.max_output_tokens)
        payload: Dict[str, Any] = {
            "model": await self._resolve_model(model or self.default_model),
            "messages": self._sanitize_messages(messages),
            "temperature": temperature,
            "max_tokens": final_max_tokens,
            "stream": False,
        }
        if tools:
            payload["tools"] = tools
        payload = self._sanitize_payload(payload)
        if not payload["messages"]:
            raise ProviderUnavailable(self.name, "messages must include at least one non-empty entry")
        try:
            resp = await self.client.post(f"{self.base_url}/chat/completions", json=payload)
            resp.raise_for_status()
            return parse_completion(resp.json(), payload["model"])
        except httpx.HTTPStatusError as exc:
            detail = extract_error_detail(exc.response)
            logger.warning("Local model rejected request (%s): %s", exc.response.status_code, detail)
            raise ProviderUnavailable(self.name, detail or str(exc), exc.response.status_code) from exc
        except httpx.RequestError as exc:
            logger.warning("Local model unreachable at %s: %s", self.base_url, exc)
            raise ProviderUnavailable(self.name, f"Failed to communicate with local AI service: {exc}") from exc
        except ValueError as exc:
            raise ProviderUnavailable(self.name, str(exc)) from exc

    async def check(self) -> Dict[str, Any]:
        try:
            ids = await self.list_models_cached(force=True)
            return {"ok": True, "models": len(ids)}
        except Exception as exc:
            return {"ok": False, "error": str(exc)}

    async def close(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()


class ProviderSet:
    """Named completion providers with a configured default."""

    def __init__(self, providers: Dict[str, CompletionProvider], default: str):
        if default not in providers:
            raise ValueError(f"default provider {default!r} is not registered")
        self.providers = providers
        self.default = default

    def get(self, name: Optional[str] = None) -> CompletionProvider:
        key = (name or "").strip().lower()
        return self.providers.get(key) or self.providers[self.default]

    def names(self) -> List[str]:
        return list(self.providers)

    async def close(self) -> None:
        for provider in self.providers.values():
            await provider.close()
