from agenthub.config import ModelDefaults
from agenthub.resolver import resolve_agent_config, resolve_effective_config
from agenthub.schemas import AgentConfig, ChatRequest


def make_agent(**overrides) -> AgentConfig:
    data = {
        "id": "a1",
        "user_id": "local",
        "name": "Helper",
        "system_prompt": "You are Helper.",
        "temperature": 0.9,
        "max_tokens": 800,
        "max_iterations": 3,
        "model": "agent-model",
        "provider": "hosted",
        "tools": ["information_lookup"],
    }
    data.update(overrides)
    return AgentConfig(**data)


def test_request_temperature_beats_agent():
    config = resolve_effective_config(ChatRequest(message="hi", temperature=0.2), make_agent(), ModelDefaults())
    assert config.temperature == 0.2


def test_agent_temperature_beats_default():
    config = resolve_effective_config(ChatRequest(message="hi"), make_agent(), ModelDefaults())
    assert config.temperature == 0.9


def test_default_temperature_without_agent():
    config = resolve_effective_config(ChatRequest(message="hi"), None, ModelDefaults(temperature=0.7))
    assert config.temperature == 0.7


def test_zero_temperature_is_an_explicit_value():
    config = resolve_effective_config(ChatRequest(message="hi", temperature=0.0), make_agent(), ModelDefaults())
    assert config.temperature == 0.0


def test_defaults_without_agent():
    config = resolve_effective_config(ChatRequest(message="hi"), None, ModelDefaults())
    assert config.system_prompt == "You are a helpful assistant."
    assert config.max_tokens == 2000
    assert config.max_iterations == 5
    assert config.model is None
    assert config.provider is None
    assert config.use_tools is False


def test_agent_fields_flow_through():
    config = resolve_effective_config(ChatRequest(message="hi"), make_agent(), ModelDefaults())
    assert config.system_prompt == "You are Helper."
    assert config.max_tokens == 800
    assert config.max_iterations == 3
    assert config.model == "agent-model"
    assert config.provider == "hosted"
    assert config.use_tools is True


def test_request_overrides_model_provider_and_prompt():
    request = ChatRequest(message="hi", model="m2", provider="local", system_prompt="Be brief.", max_tokens=50)
    config = resolve_effective_config(request, make_agent(), ModelDefaults())
    assert config.model == "m2"
    assert config.provider == "local"
    assert config.system_prompt == "Be brief."
    assert config.max_tokens == 50


def test_use_web_search_beats_use_tools_and_agent():
    agent = make_agent()
    assert resolve_effective_config(ChatRequest(message="hi", use_web_search=False, use_tools=True), agent, ModelDefaults()).use_tools is False
    assert resolve_effective_config(ChatRequest(message="hi", use_tools=False), agent, ModelDefaults()).use_tools is False
    no_tools = make_agent(tools=[])
    assert resolve_effective_config(ChatRequest(message="hi", use_tools=True), no_tools, ModelDefaults()).use_tools is True


def test_blank_agent_prompt_falls_back_to_default():
    config = resolve_effective_config(ChatRequest(message="hi"), make_agent(system_prompt=""), ModelDefaults())
    assert config.system_prompt == "You are a helpful assistant."


def test_resolve_agent_config_ignores_request():
    config = resolve_agent_config(make_agent(temperature=0.4), ModelDefaults())
    assert config.temperature == 0.4
    assert config.use_tools is True
