"""Tool table and the action resolvers the reasoning loop dispatches through."""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Union

from .llm import ToolCall
from .parsing import Act, Delegate
from .prompts import react_system_prompt, team_system_prompt
from .search import SearchChain, format_search_results


logger = logging.getLogger("uvicorn.error")

LOOKUP_FAILED = "Error: Information lookup failed. Please try a different query."


class ToolKind(str, Enum):
    INFORMATION_LOOKUP = "information_lookup"
    DELEGATE_TO_AGENT = "delegate_to_agent"

    @classmethod
    def parse(cls, name: str) -> Optional["ToolKind"]:
        try:
            return cls((name or "").strip())
        except ValueError:
            return None


@dataclass
class LookupParams:
    query: str


@dataclass
class DelegateParams:
    agent_id: str
    task: str


ToolParams = Union[LookupParams, DelegateParams]


@dataclass
class ToolOutcome:
    observation: str
    tools_used: List[str] = field(default_factory=list)


@dataclass
class ToolSpec:
    kind: ToolKind
    description: str
    usage: str
    parameters: Dict[str, Any]
    executor: Callable[[Any], Awaitable[ToolOutcome]]

    def prompt_line(self) -> str:
        return f"- {self.kind.value}: {self.description}\n  Usage: {self.usage}"

    def function_schema(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.kind.value,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


def unknown_tool(name: str) -> ToolOutcome:
    return ToolOutcome(observation=f'Error: Unknown tool "{name}"')


def lookup_query(raw: str) -> str:
    """Text params may be a bare query, a quoted query or a small JSON object."""
    text = (raw or "").strip()
    if text.startswith("{"):
        try:
            data = json.loads(text)
        except ValueError:
            data = None
        if isinstance(data, dict) and isinstance(data.get("query"), str):
            return data["query"].strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        text = text[1:-1].strip()
    return text


def params_from_call(kind: ToolKind, call: ToolCall) -> ToolParams:
    try:
        args = json.loads(call.arguments_json or "{}")
    except ValueError:
        logger.warning("Tool call %s carried invalid arguments: %r", call.name, call.arguments_json)
        args = {}
    if not isinstance(args, dict):
        args = {}
    if kind is ToolKind.DELEGATE_TO_AGENT:
        return DelegateParams(agent_id=str(args.get("agent_id") or ""), task=str(args.get("task") or ""))
    return LookupParams(query=str(args.get("query") or ""))


class ToolRegistry:
    """Closed table of tool kinds to executors."""

    def __init__(self, specs: Iterable[ToolSpec] = ()):
        self._specs: Dict[ToolKind, ToolSpec] = {}
        for spec in specs:
            self.register(spec)

    def register(self, spec: ToolSpec) -> None:
        self._specs[spec.kind] = spec

    def extended(self, *specs: ToolSpec) -> "ToolRegistry":
        return ToolRegistry([*self._specs.values(), *specs])

    def get(self, name: str) -> Optional[ToolSpec]:
        kind = ToolKind.parse(name)
        return self._specs.get(kind) if kind else None

    def kinds(self) -> List[ToolKind]:
        return list(self._specs)

    def prompt_lines(self, kinds: Sequence[ToolKind]) -> List[str]:
        return [self._specs[k].prompt_line() for k in kinds if k in self._specs]

    def function_schemas(self, kinds: Optional[Sequence[ToolKind]] = None) -> List[Dict[str, Any]]:
        selected = self.kinds() if kinds is None else kinds
        return [self._specs[k].function_schema() for k in selected if k in self._specs]

    async def execute(self, tool_name: str, params: ToolParams) -> ToolOutcome:
        spec = self.get(tool_name)
        if spec is None:
            logger.info("Model asked for unknown tool %r", tool_name)
            return unknown_tool(tool_name)
        logger.info("Executing tool %s", spec.kind.value)
        return await spec.executor(params)


def lookup_tool(search: SearchChain, max_results: int = 5) -> ToolSpec:
    async def run(params: LookupParams) -> ToolOutcome:
        used = [f'{ToolKind.INFORMATION_LOOKUP.value}("{params.query}")']
        if not params.query:
            return ToolOutcome(observation=LOOKUP_FAILED, tools_used=used)
        try:
            response = await search.lookup(params.query, max_results=max_results)
            return ToolOutcome(observation=format_search_results(response), tools_used=used)
        except Exception:
            logger.exception("information_lookup failed for %r", params.query)
            return ToolOutcome(observation=LOOKUP_FAILED, tools_used=used)

    return ToolSpec(
        kind=ToolKind.INFORMATION_LOOKUP,
        description="Look up current information on the web. Use for recent events, facts, or data.",
        usage='<action tool="information_lookup">your search query</action>',
        parameters={
            "type": "object",
            "properties": {"query": {"type": "string", "description": "The search query"}},
            "required": ["query"],
        },
        executor=run,
    )


def delegate_tool(executor: Callable[[DelegateParams], Awaitable[ToolOutcome]]) -> ToolSpec:
    return ToolSpec(
        kind=ToolKind.DELEGATE_TO_AGENT,
        description="Hand a subtask to a specialist team member and get their response.",
        usage='<action tool="delegate_to_agent" agent="agent_id">subtask description</action>',
        parameters={
            "type": "object",
            "properties": {
                "agent_id": {"type": "string", "description": "ID of the team member"},
                "task": {"type": "string", "description": "The subtask to hand over"},
            },
            "required": ["agent_id", "task"],
        },
        executor=executor,
    )


class ActionResolver:
    """Maps parsed intents and native tool calls onto the registry for one loop run."""

    capabilities: Sequence[ToolKind] = ()

    def __init__(self, registry: ToolRegistry):
        self.registry = registry

    def build_system_prompt(self, base: str) -> str:
        raise NotImplementedError

    def function_schemas(self) -> List[Dict[str, Any]]:
        return self.registry.function_schemas(self.capabilities)

    def _allowed(self, name: str) -> Optional[ToolKind]:
        kind = ToolKind.parse(name)
        if kind is None or kind not in self.capabilities:
            return None
        return kind

    async def resolve(self, intent: Union[Act, Delegate]) -> ToolOutcome:
        if isinstance(intent, Delegate):
            if self._allowed(ToolKind.DELEGATE_TO_AGENT.value) is None:
                return unknown_tool(ToolKind.DELEGATE_TO_AGENT.value)
            params: ToolParams = DelegateParams(agent_id=intent.agent_id, task=intent.task)
            return await self.registry.execute(ToolKind.DELEGATE_TO_AGENT.value, params)
        if self._allowed(intent.tool) is not ToolKind.INFORMATION_LOOKUP:
            return unknown_tool(intent.tool)
        return await self.registry.execute(intent.tool, LookupParams(query=lookup_query(intent.params)))

    async def resolve_call(self, call: ToolCall) -> ToolOutcome:
        kind = self._allowed(call.name)
        if kind is None:
            return unknown_tool(call.name)
        return await self.registry.execute(kind.value, params_from_call(kind, call))


class LookupActions(ActionResolver):
    capabilities = (ToolKind.INFORMATION_LOOKUP,)

    def build_system_prompt(self, base: str) -> str:
        return react_system_prompt(base, self.registry.prompt_lines(self.capabilities))


class TeamActions(ActionResolver):
    """Coordinator capabilities: delegation, plus lookup when the coordinator has it."""

    def __init__(self, registry: ToolRegistry, members: List[Dict[str, Any]], with_lookup: bool = True):
        super().__init__(registry)
        self.members = members
        kinds = [ToolKind.DELEGATE_TO_AGENT]
        if with_lookup:
            kinds.insert(0, ToolKind.INFORMATION_LOOKUP)
        self.capabilities = tuple(kinds)

    def build_system_prompt(self, base: str) -> str:
        return team_system_prompt(base, self.registry.prompt_lines(self.capabilities), self.members)
