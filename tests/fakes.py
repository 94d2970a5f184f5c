import copy
from typing import Any, Dict, List, Optional, Union

from agenthub.llm import Completion, ProviderUnavailable
from agenthub.schemas import SearchResponse, SearchResult


Reply = Union[str, Completion, Exception]


class FakeCompletionProvider:
    """Scripted completion provider. Replies are consumed in order; the last one repeats."""

    def __init__(
        self,
        replies: Optional[List[Reply]] = None,
        *,
        name: str = "local",
        supports_tools: bool = False,
        default_model: str = "test-model",
        model_ids: Optional[List[str]] = None,
        enabled: bool = True,
    ) -> None:
        self.name = name
        self.supports_tools = supports_tools
        self.default_model = default_model
        self.replies: List[Reply] = list(replies or ["<answer>ok</answer>"])
        self.model_ids = model_ids or [default_model]
        self._enabled = enabled
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        *,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Completion:
        self.calls.append(
            {
                "messages": copy.deepcopy(messages),
                "model": model,
                "temperature": temperature,
                "max_tokens": max_tokens,
                "tools": tools,
            }
        )
        index = min(len(self.calls) - 1, len(self.replies) - 1)
        reply = self.replies[index]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, Completion):
            return reply
        return Completion(text=reply, model=model or self.default_model)

    async def list_models(self) -> List[Dict[str, Any]]:
        if not self._enabled:
            return []
        return [{"id": mid} for mid in self.model_ids]

    async def close(self) -> None:
        self.closed = True


def failing_provider(name: str = "local", status_code: Optional[int] = None) -> FakeCompletionProvider:
    return FakeCompletionProvider(
        [ProviderUnavailable(name, "connection refused", status_code)],
        name=name,
    )


class FakeSearchChain:
    def __init__(
        self,
        results: Optional[List[Dict[str, str]]] = None,
        *,
        error: Optional[Exception] = None,
        mode: str = "offline",
    ) -> None:
        self.results = results if results is not None else [
            {"title": "Result", "url": "https://example.org/a", "content": "Snippet text"}
        ]
        self.error = error
        self.mode = mode
        self.queries: List[str] = []
        self.closed = False

    async def lookup(self, query: str, max_results: int = 5) -> SearchResponse:
        self.queries.append(query)
        if self.error:
            raise self.error
        return SearchResponse(
            query=query,
            results=[SearchResult(**r) for r in self.results[:max_results]],
            source="fake",
        )

    async def close(self) -> None:
        self.closed = True
