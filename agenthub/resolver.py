"""Effective generation config: request values over agent values over server defaults."""

from typing import Optional

from .config import ModelDefaults
from .schemas import AgentConfig, ChatRequest, EffectiveConfig
from .tools import ToolKind


def _first_set(*values):
    for value in values:
        if value is not None:
            return value
    return None


def resolve_effective_config(
    request: ChatRequest,
    agent: Optional[AgentConfig],
    defaults: ModelDefaults,
) -> EffectiveConfig:
    """Merge request overrides, the agent's stored config and defaults, in that order."""
    agent_uses_lookup = agent is not None and ToolKind.INFORMATION_LOOKUP.value in agent.tools
    return EffectiveConfig(
        system_prompt=request.system_prompt
        or (agent.system_prompt if agent else None)
        or defaults.system_prompt,
        temperature=_first_set(request.temperature, agent.temperature if agent else None, defaults.temperature),
        max_tokens=_first_set(request.max_tokens, agent.max_tokens if agent else None, defaults.max_tokens),
        max_iterations=_first_set(agent.max_iterations if agent else None, defaults.max_iterations),
        model=request.model or (agent.model if agent else None),
        provider=request.provider or (agent.provider if agent else None),
        use_tools=bool(_first_set(request.use_web_search, request.use_tools, agent_uses_lookup)),
    )


def resolve_agent_config(agent: AgentConfig, defaults: ModelDefaults) -> EffectiveConfig:
    return resolve_effective_config(ChatRequest(), agent, defaults)
