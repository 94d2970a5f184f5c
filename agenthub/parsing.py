"""Intent extraction from model text.

Grammar (tags may appear anywhere in the reply, surrounded by free text)::

    <think>free text</think>
    <action tool="NAME">PARAMS</action>
    <action tool="delegate_to_agent" agent="ID">TASK</action>
    <answer>TEXT</answer>

Each tag type is scanned independently and only its first well-formed occurrence counts;
later duplicates are ignored. An opening tag without its closing tag is not a match.
When a reply carries several tag types, ``parse_intent`` decides by priority: a non-empty
answer wins, then the action tag, otherwise the whole reply is unstructured text.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union


DELEGATE_TOOL = "delegate_to_agent"

_OPEN_TAG_RE = {
    "think": re.compile(r"<think\s*>", re.IGNORECASE),
    "action": re.compile(r"<action(\s[^>]*)>", re.IGNORECASE),
    "answer": re.compile(r"<answer\s*>", re.IGNORECASE),
}
_CLOSE_TAG_RE = {name: re.compile(rf"</{name}\s*>", re.IGNORECASE) for name in _OPEN_TAG_RE}
_ATTR_RE = re.compile(r'([A-Za-z_][\w-]*)\s*=\s*"([^"]*)"')


@dataclass
class Think:
    text: str


@dataclass
class Act:
    tool: str
    params: str


@dataclass
class Delegate:
    agent_id: str
    task: str


@dataclass
class Answer:
    text: str


@dataclass
class Unstructured:
    text: str


ParsedIntent = Union[Think, Act, Delegate, Answer, Unstructured]


@dataclass
class TagMatch:
    name: str
    body: str
    start: int
    attrs: Dict[str, str] = field(default_factory=dict)


def find_first_tag(text: str, name: str) -> Optional[TagMatch]:
    """Return the first complete ``<name ...>…</name>`` block, or None."""
    open_re = _OPEN_TAG_RE[name]
    close_re = _CLOSE_TAG_RE[name]
    pos = 0
    while True:
        opening = open_re.search(text, pos)
        if not opening:
            return None
        closing = close_re.search(text, opening.end())
        if not closing:
            return None
        attrs: Dict[str, str] = {}
        if name == "action":
            attrs = {k.lower(): v for k, v in _ATTR_RE.findall(opening.group(1) or "")}
            if not attrs.get("tool"):
                pos = opening.end()
                continue
        return TagMatch(name=name, body=text[opening.end():closing.start()], start=opening.start(), attrs=attrs)


def _action_intent(match: TagMatch) -> Union[Act, Delegate]:
    tool = match.attrs["tool"].strip()
    body = match.body.strip()
    if tool == DELEGATE_TOOL:
        return Delegate(agent_id=match.attrs.get("agent", "").strip(), task=body)
    return Act(tool=tool, params=body)


def parse_intents(text: str) -> List[ParsedIntent]:
    """All recognised intents (first of each tag type), in the order they appear."""
    found: List[tuple] = []
    think = find_first_tag(text, "think")
    if think:
        found.append((think.start, Think(think.body.strip())))
    action = find_first_tag(text, "action")
    if action:
        found.append((action.start, _action_intent(action)))
    answer = find_first_tag(text, "answer")
    if answer:
        found.append((answer.start, Answer(answer.body.strip())))
    found.sort(key=lambda item: item[0])
    return [intent for _, intent in found]


def parse_intent(text: str) -> Union[Act, Delegate, Answer, Unstructured]:
    """The single intent the reasoning loop acts on."""
    answer = parse_answer(text)
    if answer:
        return Answer(answer)
    action = find_first_tag(text, "action")
    if action:
        return _action_intent(action)
    return Unstructured(text)


def parse_answer(text: str) -> Optional[str]:
    match = find_first_tag(text, "answer")
    if not match:
        return None
    return match.body.strip() or None
