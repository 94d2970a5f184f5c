from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


ExecutionMode = Literal["sequential", "parallel"]
TurnRole = Literal["user", "assistant"]


class AgentConfig(BaseModel):
    id: str
    user_id: str
    name: str
    description: Optional[str] = None
    system_prompt: str = ""
    model: Optional[str] = None
    provider: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 2000
    max_iterations: int = 5
    tools: List[str] = Field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    model_config = {"protected_namespaces": ()}


class AgentCreate(BaseModel):
    name: str
    description: Optional[str] = None
    system_prompt: str
    model: Optional[str] = None
    provider: Optional[str] = None
    temperature: float = Field(default=0.7, ge=0, le=2)
    max_tokens: int = Field(default=2000, gt=0)
    max_iterations: int = Field(default=5, gt=0)
    tools: List[str] = Field(default_factory=list)

    model_config = {"protected_namespaces": ()}


class AgentUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    system_prompt: Optional[str] = None
    model: Optional[str] = None
    provider: Optional[str] = None
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, gt=0)
    max_iterations: Optional[int] = Field(default=None, gt=0)
    tools: Optional[List[str]] = None

    model_config = {"protected_namespaces": ()}


class TeamConfig(BaseModel):
    id: str
    user_id: str
    name: str
    description: Optional[str] = None
    coordinator_agent_id: str
    member_agent_ids: List[str] = Field(default_factory=list)
    execution_mode: ExecutionMode = "sequential"
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class TeamCreate(BaseModel):
    name: str
    description: Optional[str] = None
    coordinator_agent_id: str
    member_agent_ids: List[str] = Field(default_factory=list)
    execution_mode: ExecutionMode = "sequential"


class TeamUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    coordinator_agent_id: Optional[str] = None
    member_agent_ids: Optional[List[str]] = None
    execution_mode: Optional[ExecutionMode] = None


class Conversation(BaseModel):
    id: str
    user_id: str
    title: str = "New chat"
    agent_id: Optional[str] = None
    model: Optional[str] = None
    provider: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    model_config = {"protected_namespaces": ()}


class ConversationCreate(BaseModel):
    title: Optional[str] = None
    agent_id: Optional[str] = None
    model: Optional[str] = None
    provider: Optional[str] = None

    model_config = {"protected_namespaces": ()}


class ConversationUpdate(BaseModel):
    title: Optional[str] = None
    agent_id: Optional[str] = None
    model: Optional[str] = None
    provider: Optional[str] = None

    model_config = {"protected_namespaces": ()}


class ConversationTurn(BaseModel):
    id: str
    conversation_id: str
    role: TurnRole
    content: str
    created_at: str


class SearchResult(BaseModel):
    title: str = ""
    url: str = ""
    content: str = ""
    published_date: Optional[str] = None


class SearchResponse(BaseModel):
    query: str
    results: List[SearchResult] = Field(default_factory=list)
    number_of_results: int = 0
    source: str = "none"
    offline: bool = False

    @model_validator(mode="after")
    def _drop_incomplete_results(self) -> "SearchResponse":
        self.results = [r for r in self.results if r.title and r.url]
        self.number_of_results = len(self.results)
        return self


class ChatRequest(BaseModel):
    message: Optional[str] = None
    system_prompt: Optional[str] = None
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, gt=0)
    use_tools: Optional[bool] = None
    use_web_search: Optional[bool] = None
    model: Optional[str] = None
    provider: Optional[str] = None
    conversation_id: Optional[str] = None
    agent_id: Optional[str] = None

    model_config = {"protected_namespaces": ()}


class ChatResponse(BaseModel):
    response: str
    model: str
    tools_used: Optional[List[str]] = None

    model_config = {"protected_namespaces": ()}


class EffectiveConfig(BaseModel):
    system_prompt: str
    temperature: float
    max_tokens: int
    max_iterations: int
    model: Optional[str] = None
    provider: Optional[str] = None
    use_tools: bool = False

    model_config = {"protected_namespaces": ()}


class TeamExecuteRequest(BaseModel):
    task: Optional[str] = None


class TeamStep(BaseModel):
    agent: str
    action: str
    result: str


class TeamExecuteResponse(BaseModel):
    response: str
    team: str
    coordinator: str
    model: str
    steps: List[TeamStep] = Field(default_factory=list)
    tools_used: List[str] = Field(default_factory=list)

    model_config = {"protected_namespaces": ()}
