import logging
from typing import Optional

from .config import ModelDefaults
from .db import Database
from .llm import ProviderSet
from .reasoning import run_reasoning_loop
from .resolver import resolve_effective_config
from .schemas import AgentConfig, ChatRequest, ChatResponse
from .tools import LookupActions, ToolRegistry


logger = logging.getLogger("uvicorn.error")

TITLE_MAX_CHARS = 60


class ChatNotFound(LookupError):
    """A conversation or agent referenced by the request does not exist for this user."""


def title_from_message(message: str) -> str:
    line = " ".join(message.split())
    if len(line) <= TITLE_MAX_CHARS:
        return line
    return line[: TITLE_MAX_CHARS - 3].rstrip() + "..."


async def run_chat(
    request: ChatRequest,
    *,
    db: Database,
    user_id: str,
    providers: ProviderSet,
    registry: ToolRegistry,
    defaults: ModelDefaults,
) -> ChatResponse:
    message = (request.message or "").strip()
    if not message:
        raise ValueError("Message is required")

    conversation = None
    if request.conversation_id:
        conversation = await db.get_conversation(request.conversation_id, user_id)
        if not conversation:
            raise ChatNotFound("Conversation not found")

    agent: Optional[AgentConfig] = None
    agent_id = request.agent_id or (conversation or {}).get("agent_id")
    if agent_id:
        row = await db.get_agent(agent_id, user_id)
        if not row:
            raise ChatNotFound("Agent not found")
        agent = AgentConfig(**row)

    config = resolve_effective_config(request, agent, defaults)
    provider = providers.get(config.provider)
    logger.info(
        "Chat via %s (agent=%s, tools=%s, max_iterations=%s)",
        provider.name,
        agent.name if agent else "-",
        config.use_tools,
        config.max_iterations,
    )

    if conversation:
        await db.append_message(conversation["id"], "user", message)
        await db.ensure_conversation_title(conversation["id"], title_from_message(message))

    actions = LookupActions(registry) if config.use_tools else None
    result = await run_reasoning_loop(provider, config, message, actions)

    if conversation:
        await db.append_message(conversation["id"], "assistant", result.text)
        if request.model or request.provider:
            await db.update_conversation(
                conversation["id"],
                user_id,
                {"model": request.model, "provider": request.provider},
            )

    return ChatResponse(
        response=result.text,
        model=result.model,
        tools_used=result.tools_used if config.use_tools else None,
    )
