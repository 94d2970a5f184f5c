"""Prompt text for the reasoning loop and the team coordinator."""

from typing import Iterable, List, Optional

REACT_GUIDE = """
You are an AI assistant that can use tools to help answer questions.

For each step, you should:
1. Think about what you need to do
2. If you need information, use a tool
3. Observe the results
4. Repeat until you can provide a final answer

Available tools:
{tools}

Response format:
- To think: <think>your reasoning here</think>
- To use a tool: <action tool="tool_name">parameters</action>
- To provide final answer: <answer>your complete response to the user</answer>

IMPORTANT:
- Always wrap your final response in <answer> tags
- You may use multiple tools before answering
- If you don't need tools, go directly to <answer>
"""

TEAM_GUIDE = """
You are the coordinator of a team. You can delegate tasks to specialist agents.

For each step, you should:
1. Think about what you need to do
2. If you need information, use a tool or delegate to a specialist
3. Observe the results
4. Repeat until you can provide a final answer

Available tools:
{tools}

Available team members:
{members}

Response format:
- To think: <think>your reasoning here</think>
- To use a tool: <action tool="tool_name">parameters</action>
- To delegate: <action tool="delegate_to_agent" agent="agent_id">subtask description</action>
- To provide final answer: <answer>your complete response to the user</answer>

IMPORTANT:
- You are the coordinator - synthesize results from specialists into a final answer
- Always wrap your final response in <answer> tags
- Delegate specialized tasks to the appropriate team member
- You can use multiple tools/delegations before answering
"""

CONTINUE_HINT = "Based on this information, continue reasoning or provide your final answer in <answer> tags."
FINAL_ANSWER_PROMPT = "Please provide your final answer now in <answer> tags based on what you have learned."


def react_system_prompt(custom_prompt: Optional[str], tool_lines: Iterable[str]) -> str:
    guide = REACT_GUIDE.format(tools="\n".join(tool_lines)).strip()
    if custom_prompt:
        return f"{custom_prompt}\n\n{guide}"
    return guide


def roster_lines(members: Iterable[dict]) -> List[str]:
    return [
        f"  - {m['name']} (id: {m['id']}): {m.get('description') or 'Specialist agent'}"
        for m in members
    ]


def team_system_prompt(custom_prompt: str, tool_lines: Iterable[str], members: Iterable[dict]) -> str:
    guide = TEAM_GUIDE.format(
        tools="\n".join(tool_lines),
        members="\n".join(roster_lines(members)) or "  (no members configured)",
    ).strip()
    return f"{custom_prompt}\n\n{guide}" if custom_prompt else guide


def observation_message(text: str, hint: str = CONTINUE_HINT) -> str:
    return f"<observation>{text}</observation>\n\n{hint}"
