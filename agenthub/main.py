import logging
import secrets
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Request
from pydantic import ValidationError

from .brave import BraveSearchClient
from .chat import ChatNotFound, run_chat
from .config import AppSettings, CONFIG_PATH, load_settings, save_settings
from .db import Database
from .hosted import HostedModelClient
from .llm import LocalModelClient, ProviderSet, ProviderUnavailable
from .schemas import (
    AgentConfig,
    AgentCreate,
    AgentUpdate,
    ChatRequest,
    ChatResponse,
    ConversationCreate,
    ConversationUpdate,
    TeamConfig,
    TeamCreate,
    TeamExecuteRequest,
    TeamExecuteResponse,
    TeamUpdate,
)
from .search import SearchChain
from .team import TeamConfigError, TeamCoordinator, validate_team_members
from .tools import ToolRegistry, lookup_tool


logger = logging.getLogger("uvicorn.error")


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_db(request: Request) -> Database:
    return request.app.state.db


def get_providers(request: Request) -> ProviderSet:
    return request.app.state.providers


def get_search(request: Request) -> SearchChain:
    return request.app.state.search


def get_registry(request: Request) -> ToolRegistry:
    return request.app.state.registry


def get_config_path(request: Request) -> Path:
    return request.app.state.config_path


def get_user_id(settings: AppSettings = Depends(get_settings)) -> str:
    return settings.default_user_id


def require_auth(request: Request) -> None:
    token = request.app.state.settings.auth_token
    if not token:
        return
    header = request.headers.get("authorization") or ""
    scheme, _, supplied = header.partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(supplied.strip(), token):
        raise HTTPException(status_code=401, detail="Unauthorized")


def provider_error(exc: ProviderUnavailable) -> HTTPException:
    status = 503 if exc.status_code == 503 else 502
    return HTTPException(status_code=status, detail=f"AI service error ({exc.provider}): {exc.detail}")


def build_providers(settings: AppSettings) -> ProviderSet:
    return ProviderSet(
        {
            "local": LocalModelClient(
                settings.local_base_url,
                settings.local_model,
                max_output_tokens=settings.local_max_output_tokens,
            ),
            "hosted": HostedModelClient(
                settings.hosted_base_url,
                settings.hosted_api_token,
                settings.hosted_model,
            ),
        },
        default=settings.default_provider,
    )


def build_search(settings: AppSettings) -> SearchChain:
    return SearchChain(
        BraveSearchClient(settings.brave_search_api_key),
        settings.searxng_instances,
        timeout_s=settings.search_timeout_s,
    )


def apply_settings(app: FastAPI, new_settings: AppSettings) -> None:
    """Point live clients at updated settings without rebuilding them."""
    app.state.settings = new_settings
    for provider in app.state.providers.providers.values():
        if isinstance(provider, LocalModelClient):
            provider.base_url = new_settings.local_base_url.rstrip("/")
            provider.default_model = new_settings.local_model
            provider.max_output_tokens = new_settings.local_max_output_tokens
        elif isinstance(provider, HostedModelClient):
            provider.base_url = new_settings.hosted_base_url.rstrip("/")
            provider.api_token = new_settings.hosted_api_token
            provider.default_model = new_settings.hosted_model
    if new_settings.default_provider in app.state.providers.providers:
        app.state.providers.default = new_settings.default_provider
    search = app.state.search
    if isinstance(search, SearchChain):
        search.brave.api_key = new_settings.brave_search_api_key
        search.searxng_instances = list(new_settings.searxng_instances)
        search.timeout_s = new_settings.search_timeout_s
    app.state.registry = ToolRegistry([lookup_tool(search, new_settings.search_max_results)])


async def _check_team_agents(db: Database, user_id: str, coordinator_id: str, member_ids: List[str]) -> None:
    try:
        validate_team_members(coordinator_id, member_ids)
    except TeamConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    found = await db.get_agents([coordinator_id, *member_ids], user_id)
    if coordinator_id not in found:
        raise HTTPException(status_code=400, detail="Coordinator agent not found")
    missing = [mid for mid in member_ids if mid not in found]
    if missing:
        raise HTTPException(status_code=400, detail=f"Member agents not found: {', '.join(missing)}")


router = APIRouter(prefix="/v1", dependencies=[Depends(require_auth)])


@router.get("/status")
async def status(
    settings: AppSettings = Depends(get_settings),
    providers: ProviderSet = Depends(get_providers),
    search: SearchChain = Depends(get_search),
):
    local = providers.providers.get("local")
    local_status: Dict[str, Any] = {"ok": False, "error": "not_configured"}
    if isinstance(local, LocalModelClient):
        local_status = await local.check()
    elif local is not None:
        local_status = {"ok": local.enabled}
    hosted = providers.providers.get("hosted")
    return {
        "local": {**local_status, "base_url": settings.local_base_url},
        "hosted": {"configured": bool(hosted and hosted.enabled)},
        "default_provider": providers.default,
        "search": {"mode": search.mode},
    }


@router.get("/models")
async def list_models(providers: ProviderSet = Depends(get_providers)):
    models: Dict[str, List[Dict[str, Any]]] = {}
    for name, provider in providers.providers.items():
        try:
            models[name] = await provider.list_models()
        except Exception as exc:
            logger.warning("Model listing failed for %s: %s", name, exc)
            models[name] = []
    return {"models": models, "default_provider": providers.default}


@router.get("/settings")
async def get_settings_route(settings: AppSettings = Depends(get_settings)):
    return {"settings": settings.to_safe_dict()}


@router.post("/settings")
async def update_settings_route(
    request: Request,
    payload: Dict[str, Any] = Body(default={}),
    settings: AppSettings = Depends(get_settings),
    config_path: Path = Depends(get_config_path),
):
    # Masked secrets echoed back from GET /settings keep their stored value.
    body = {k: v for k, v in payload.items() if v != "********"}
    try:
        new_settings = AppSettings(**{**settings.model_dump(), **body})
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid settings: {exc}") from exc
    save_settings(new_settings, config_path=config_path)
    apply_settings(request.app, new_settings)
    return {"ok": True, "settings": new_settings.to_safe_dict()}


@router.post("/chat", response_model=ChatResponse)
async def chat(
    payload: ChatRequest,
    settings: AppSettings = Depends(get_settings),
    db: Database = Depends(get_db),
    providers: ProviderSet = Depends(get_providers),
    registry: ToolRegistry = Depends(get_registry),
    user_id: str = Depends(get_user_id),
):
    if not (payload.message or "").strip():
        raise HTTPException(status_code=400, detail="Message is required")
    try:
        return await run_chat(
            payload,
            db=db,
            user_id=user_id,
            providers=providers,
            registry=registry,
            defaults=settings.model_defaults(),
        )
    except ChatNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ProviderUnavailable as exc:
        raise provider_error(exc) from exc


@router.get("/agents")
async def list_agents(db: Database = Depends(get_db), user_id: str = Depends(get_user_id)):
    return {"agents": await db.list_agents(user_id)}


@router.post("/agents")
async def create_agent(payload: AgentCreate, db: Database = Depends(get_db), user_id: str = Depends(get_user_id)):
    agent = await db.create_agent(user_id, payload.model_dump())
    return {"agent": AgentConfig(**agent).model_dump()}


@router.get("/agents/{agent_id}")
async def get_agent(agent_id: str, db: Database = Depends(get_db), user_id: str = Depends(get_user_id)):
    agent = await db.get_agent(agent_id, user_id)
    if not agent:
        raise HTTPException(status_code=404, detail="Agent not found")
    return {"agent": agent}


@router.patch("/agents/{agent_id}")
async def update_agent(
    agent_id: str,
    payload: AgentUpdate,
    db: Database = Depends(get_db),
    user_id: str = Depends(get_user_id),
):
    agent = await db.update_agent(agent_id, user_id, payload.model_dump(exclude_unset=True))
    if not agent:
        raise HTTPException(status_code=404, detail="Agent not found")
    return {"agent": agent}


@router.delete("/agents/{agent_id}")
async def delete_agent(agent_id: str, db: Database = Depends(get_db), user_id: str = Depends(get_user_id)):
    if not await db.delete_agent(agent_id, user_id):
        raise HTTPException(status_code=404, detail="Agent not found")
    return {"ok": True}


@router.get("/teams")
async def list_teams(db: Database = Depends(get_db), user_id: str = Depends(get_user_id)):
    return {"teams": await db.list_teams(user_id)}


@router.post("/teams")
async def create_team(payload: TeamCreate, db: Database = Depends(get_db), user_id: str = Depends(get_user_id)):
    await _check_team_agents(db, user_id, payload.coordinator_agent_id, payload.member_agent_ids)
    team = await db.create_team(user_id, payload.model_dump())
    return {"team": TeamConfig(**team).model_dump()}


@router.get("/teams/{team_id}")
async def get_team(team_id: str, db: Database = Depends(get_db), user_id: str = Depends(get_user_id)):
    team = await db.get_team(team_id, user_id)
    if not team:
        raise HTTPException(status_code=404, detail="Team not found")
    return {"team": team}


@router.patch("/teams/{team_id}")
async def update_team(
    team_id: str,
    payload: TeamUpdate,
    db: Database = Depends(get_db),
    user_id: str = Depends(get_user_id),
):
    current = await db.get_team(team_id, user_id)
    if not current:
        raise HTTPException(status_code=404, detail="Team not found")
    changes = payload.model_dump(exclude_unset=True)
    await _check_team_agents(
        db,
        user_id,
        changes.get("coordinator_agent_id") or current["coordinator_agent_id"],
        changes.get("member_agent_ids") if changes.get("member_agent_ids") is not None else current["member_agent_ids"],
    )
    return {"team": await db.update_team(team_id, user_id, changes)}


@router.delete("/teams/{team_id}")
async def delete_team(team_id: str, db: Database = Depends(get_db), user_id: str = Depends(get_user_id)):
    if not await db.delete_team(team_id, user_id):
        raise HTTPException(status_code=404, detail="Team not found")
    return {"ok": True}


@router.post("/teams/{team_id}/execute", response_model=TeamExecuteResponse)
async def execute_team(
    team_id: str,
    payload: TeamExecuteRequest,
    settings: AppSettings = Depends(get_settings),
    db: Database = Depends(get_db),
    providers: ProviderSet = Depends(get_providers),
    registry: ToolRegistry = Depends(get_registry),
    user_id: str = Depends(get_user_id),
):
    task = (payload.task or "").strip()
    if not task:
        raise HTTPException(status_code=400, detail="Task is required")
    row = await db.get_team(team_id, user_id)
    if not row:
        raise HTTPException(status_code=404, detail="Team not found")
    team = TeamConfig(**row)
    agents = await db.get_agents([team.coordinator_agent_id, *team.member_agent_ids], user_id)
    if team.coordinator_agent_id not in agents:
        raise HTTPException(status_code=404, detail="Coordinator agent not found")
    members = [AgentConfig(**agents[mid]) for mid in team.member_agent_ids if mid in agents]
    try:
        coordinator = TeamCoordinator(
            team,
            AgentConfig(**agents[team.coordinator_agent_id]),
            members,
            providers,
            registry,
            settings.model_defaults(),
        )
        return await coordinator.execute(task)
    except TeamConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ProviderUnavailable as exc:
        raise provider_error(exc) from exc


@router.get("/conversations")
async def list_conversations(db: Database = Depends(get_db), user_id: str = Depends(get_user_id)):
    return {"conversations": await db.list_conversations(user_id)}


@router.post("/conversations")
async def create_conversation(
    payload: Optional[ConversationCreate] = None,
    db: Database = Depends(get_db),
    user_id: str = Depends(get_user_id),
):
    payload = payload or ConversationCreate()
    if payload.agent_id and not await db.get_agent(payload.agent_id, user_id):
        raise HTTPException(status_code=404, detail="Agent not found")
    convo = await db.create_conversation(
        user_id,
        title=payload.title,
        agent_id=payload.agent_id,
        model=payload.model,
        provider=payload.provider,
    )
    return {"conversation": convo}


@router.get("/conversations/{conversation_id}")
async def get_conversation(conversation_id: str, db: Database = Depends(get_db), user_id: str = Depends(get_user_id)):
    convo = await db.get_conversation(conversation_id, user_id)
    if not convo:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"conversation": convo}


@router.get("/conversations/{conversation_id}/messages")
async def get_conversation_messages(
    conversation_id: str,
    limit: int = 200,
    db: Database = Depends(get_db),
    user_id: str = Depends(get_user_id),
):
    convo = await db.get_conversation(conversation_id, user_id)
    if not convo:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"messages": await db.list_messages(conversation_id, limit=limit)}


@router.patch("/conversations/{conversation_id}")
async def update_conversation(
    conversation_id: str,
    payload: ConversationUpdate,
    db: Database = Depends(get_db),
    user_id: str = Depends(get_user_id),
):
    convo = await db.update_conversation(conversation_id, user_id, payload.model_dump(exclude_unset=True))
    if not convo:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"conversation": convo}


@router.delete("/conversations/{conversation_id}")
async def delete_conversation(
    conversation_id: str,
    db: Database = Depends(get_db),
    user_id: str = Depends(get_user_id),
):
    if not await db.delete_conversation(conversation_id, user_id):
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"ok": True}


def create_app(
    settings: AppSettings,
    *,
    db: Optional[Database] = None,
    providers: Optional[ProviderSet] = None,
    search: Optional[SearchChain] = None,
    config_path: Optional[Path] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await app.state.db.init()
        logger.info(
            "agenthub ready: default provider %s, search mode %s",
            app.state.providers.default,
            app.state.search.mode,
        )
        try:
            yield
        finally:
            await app.state.providers.close()
            await app.state.search.close()

    app = FastAPI(title="AgentHub", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db or Database(settings.database_path)
    app.state.providers = providers or build_providers(settings)
    app.state.search = search or build_search(settings)
    app.state.registry = ToolRegistry([lookup_tool(app.state.search, settings.search_max_results)])
    app.state.config_path = config_path or CONFIG_PATH

    app.include_router(router)
    return app


app = create_app(load_settings())


if __name__ == "__main__":
    import uvicorn

    settings = app.state.settings
    try:
        uvicorn.run(
            "agenthub.main:app",
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level,
        )
    except KeyboardInterrupt:
        pass
