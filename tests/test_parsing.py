from agenthub.parsing import Act, Answer, Delegate, Think, Unstructured, parse_answer, parse_intent, parse_intents


def test_answer_is_trimmed():
    assert parse_intent("<answer>  Paris  </answer>") == Answer("Paris")


def test_action_with_tool_attribute():
    intent = parse_intent('<think>need data</think><action tool="information_lookup">weather in Oslo</action>')
    assert intent == Act(tool="information_lookup", params="weather in Oslo")


def test_delegate_action_uses_agent_attribute():
    intent = parse_intent('<action tool="delegate_to_agent" agent="a1">summarise the report</action>')
    assert intent == Delegate(agent_id="a1", task="summarise the report")


def test_answer_wins_over_action():
    text = '<action tool="information_lookup">x</action> <answer>done</answer>'
    assert parse_intent(text) == Answer("done")


def test_empty_answer_falls_back_to_action():
    text = '<answer>   </answer><action tool="information_lookup">x</action>'
    assert parse_intent(text) == Act(tool="information_lookup", params="x")


def test_first_action_wins():
    text = '<action tool="information_lookup">first</action><action tool="information_lookup">second</action>'
    assert parse_intent(text) == Act(tool="information_lookup", params="first")


def test_action_without_tool_attribute_is_skipped():
    text = '<action>nothing</action><action tool="information_lookup">real</action>'
    assert parse_intent(text) == Act(tool="information_lookup", params="real")


def test_unterminated_tag_is_unstructured():
    text = "<answer>never closed"
    assert parse_intent(text) == Unstructured(text)
    assert parse_answer(text) is None


def test_plain_text_is_unstructured():
    assert parse_intent("Just a reply.") == Unstructured("Just a reply.")


def test_parse_intents_keeps_order():
    text = '<think>plan</think> then <action tool="information_lookup">q</action>'
    assert parse_intents(text) == [Think("plan"), Act(tool="information_lookup", params="q")]


def test_tags_are_case_insensitive():
    assert parse_intent("<ANSWER>yes</ANSWER>") == Answer("yes")
