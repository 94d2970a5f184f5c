"""Team execution: a coordinator agent delegating subtasks to member agents."""

import logging
from typing import Dict, List

from .config import ModelDefaults
from .llm import ProviderSet
from .reasoning import run_reasoning_loop
from .resolver import resolve_agent_config
from .schemas import AgentConfig, TeamConfig, TeamExecuteResponse, TeamStep
from .tools import DelegateParams, LookupActions, TeamActions, ToolKind, ToolOutcome, ToolRegistry, delegate_tool


logger = logging.getLogger("uvicorn.error")


class TeamConfigError(ValueError):
    """The team definition cannot be executed as stored."""


def validate_team_members(coordinator_agent_id: str, member_agent_ids: List[str]) -> None:
    if coordinator_agent_id in member_agent_ids:
        raise TeamConfigError("The coordinator agent cannot also be listed as a team member")


class TeamCoordinator:
    """Runs the coordinator's reasoning loop with delegation to the team's members."""

    def __init__(
        self,
        team: TeamConfig,
        coordinator: AgentConfig,
        members: List[AgentConfig],
        providers: ProviderSet,
        registry: ToolRegistry,
        defaults: ModelDefaults,
    ):
        validate_team_members(team.coordinator_agent_id, team.member_agent_ids)
        self.team = team
        self.coordinator = coordinator
        self.members: Dict[str, AgentConfig] = {m.id: m for m in members}
        self.providers = providers
        self.registry = registry
        self.defaults = defaults
        self.steps: List[TeamStep] = []

    def roster(self) -> List[dict]:
        return [{"id": m.id, "name": m.name, "description": m.description} for m in self.members.values()]

    async def _delegate(self, params: DelegateParams) -> ToolOutcome:
        member = self.members.get(params.agent_id)
        if member is None:
            logger.info("Team %s: delegate target %r not found", self.team.name, params.agent_id)
            return ToolOutcome(observation=f'Error: Agent with ID "{params.agent_id}" not found in team.')

        logger.info("Team %s: delegating to %s", self.team.name, member.name)
        config = resolve_agent_config(member, self.defaults).model_copy(update={"max_iterations": 1})
        actions = LookupActions(self.registry) if config.use_tools else None
        result = await run_reasoning_loop(self.providers.get(config.provider), config, params.task, actions)

        self.steps.append(TeamStep(agent=member.name, action=params.task, result=result.text))
        return ToolOutcome(
            observation=f"Response from {member.name}:\n{result.text}",
            tools_used=[f"{ToolKind.DELEGATE_TO_AGENT.value}({member.name})", *result.tools_used],
        )

    async def execute(self, task: str) -> TeamExecuteResponse:
        if self.team.execution_mode == "parallel":
            logger.info("Team %s requests parallel mode; delegations run sequentially", self.team.name)
        self.steps = []

        config = resolve_agent_config(self.coordinator, self.defaults)
        with_lookup = config.use_tools
        config = config.model_copy(update={"use_tools": True})
        actions = TeamActions(
            self.registry.extended(delegate_tool(self._delegate)),
            self.roster(),
            with_lookup=with_lookup,
        )
        result = await run_reasoning_loop(self.providers.get(config.provider), config, task, actions)

        return TeamExecuteResponse(
            response=result.text,
            team=self.team.name,
            coordinator=self.coordinator.name,
            model=result.model,
            steps=list(self.steps),
            tools_used=result.tools_used,
        )

