"""Bounded think/act/observe/answer loop shared by single agents and team coordinators."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .llm import Completion, CompletionProvider
from .parsing import Answer, Think, Unstructured, parse_answer, parse_intent, parse_intents
from .prompts import FINAL_ANSWER_PROMPT, observation_message
from .schemas import EffectiveConfig
from .tools import ActionResolver


logger = logging.getLogger("uvicorn.error")


@dataclass
class ReasoningState:
    messages: List[Dict[str, Any]]
    iteration: int = 0
    tools_used: List[str] = field(default_factory=list)
    model_calls: int = 0
    model: str = ""


@dataclass
class LoopResult:
    text: str
    tools_used: List[str] = field(default_factory=list)
    model_calls: int = 0
    exhausted: bool = False
    model: str = ""


async def _call_model(
    provider: CompletionProvider,
    config: EffectiveConfig,
    state: ReasoningState,
    tools: Optional[List[Dict[str, Any]]] = None,
) -> Completion:
    completion = await provider.complete(
        state.messages,
        model=config.model,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        tools=tools,
    )
    state.model_calls += 1
    state.model = completion.model or state.model
    return completion


def _result(state: ReasoningState, text: str, config: EffectiveConfig, provider: CompletionProvider, exhausted: bool = False) -> LoopResult:
    return LoopResult(
        text=text,
        tools_used=list(state.tools_used),
        model_calls=state.model_calls,
        exhausted=exhausted,
        model=state.model or config.model or provider.default_model,
    )


async def _run_native_calls(completion: Completion, state: ReasoningState, actions: ActionResolver) -> None:
    state.messages.append(
        {
            "role": "assistant",
            "content": completion.text or None,
            "tool_calls": [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments_json},
                }
                for call in completion.tool_calls
            ],
        }
    )
    for call in completion.tool_calls:
        logger.info("Native tool call %s(%s)", call.name, call.arguments_json)
        outcome = await actions.resolve_call(call)
        state.tools_used.extend(outcome.tools_used)
        state.messages.append({"role": "tool", "tool_call_id": call.id, "content": outcome.observation})


async def run_reasoning_loop(
    provider: CompletionProvider,
    config: EffectiveConfig,
    message: str,
    actions: Optional[ActionResolver] = None,
) -> LoopResult:
    """Drive ``provider`` until it answers, gives up structure, or runs out of iterations.

    With tools disabled this is a single plain completion whose text is returned verbatim.
    With tools enabled at most ``max_iterations + 1`` completions are made: the last one is
    a forced request for a final answer. ``ProviderUnavailable`` propagates unchanged.
    """
    if not config.use_tools or actions is None:
        state = ReasoningState(
            messages=[
                {"role": "system", "content": config.system_prompt},
                {"role": "user", "content": message},
            ]
        )
        completion = await _call_model(provider, config, state)
        return _result(state, completion.text, config, provider)

    state = ReasoningState(
        messages=[
            {"role": "system", "content": actions.build_system_prompt(config.system_prompt)},
            {"role": "user", "content": message},
        ]
    )
    schemas = actions.function_schemas() if provider.supports_tools else None

    while state.iteration < config.max_iterations:
        logger.debug("Reasoning iteration %s/%s", state.iteration + 1, config.max_iterations)
        completion = await _call_model(provider, config, state, schemas)

        if completion.tool_calls:
            await _run_native_calls(completion, state, actions)
            state.iteration += 1
            continue

        intent = parse_intent(completion.text)
        if isinstance(intent, Answer):
            return _result(state, intent.text, config, provider)
        if isinstance(intent, Unstructured):
            logger.debug("Reply carried no action or answer; returning it as-is")
            return _result(state, completion.text, config, provider)

        for thought in parse_intents(completion.text):
            if isinstance(thought, Think):
                logger.debug("Model thought: %s", thought.text)
        state.messages.append({"role": "assistant", "content": completion.text})
        outcome = await actions.resolve(intent)
        state.tools_used.extend(outcome.tools_used)
        state.messages.append({"role": "user", "content": observation_message(outcome.observation)})
        state.iteration += 1

    logger.info("Reached %s iterations; asking for a final answer", config.max_iterations)
    state.messages.append({"role": "user", "content": FINAL_ANSWER_PROMPT})
    completion = await _call_model(provider, config, state)
    return _result(state, parse_answer(completion.text) or completion.text, config, provider, exhausted=True)

