import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from dotenv import load_dotenv

CONFIG_PATH = Path("config.json")
ENV_OVERRIDE_KEY = "AGENTHUB_ENV_OVERRIDES_CONFIG"
ENV_OVERRIDE_TRUE = {"1", "true", "yes", "on"}
SECRET_FIELDS = ("hosted_api_token", "brave_search_api_key", "auth_token")

DEFAULT_SEARXNG_INSTANCES = [
    "https://searx.be",
    "https://paulgo.io",
    "https://search.mdosch.de",
    "https://searx.tiekoetter.com",
]


class ModelDefaults(BaseModel):
    """Hardcoded fallbacks applied after request and agent values."""

    system_prompt: str = "You are a helpful assistant."
    temperature: float = 0.7
    max_tokens: int = 2000
    max_iterations: int = 5


class AppSettings(BaseModel):
    # Locally hosted OpenAI-compatible server (Ollama / LM Studio)
    local_base_url: str = "http://localhost:11434/v1"
    local_model: str = "mistral-7b-instruct-v0.3-q4_k_m:custom"
    local_max_output_tokens: Optional[int] = None

    # Cloud inference endpoint
    hosted_base_url: str = "https://models.github.ai/inference"
    hosted_api_token: Optional[str] = None
    hosted_model: str = "mistral-ai/Ministral-3B"

    default_provider: str = "local"

    brave_search_api_key: Optional[str] = None
    searxng_instances: List[str] = Field(default_factory=lambda: list(DEFAULT_SEARXNG_INSTANCES))
    search_timeout_s: float = 5.0
    search_max_results: int = 5

    default_system_prompt: str = "You are a helpful assistant."
    default_temperature: float = 0.7
    default_max_tokens: int = 2000
    default_max_iterations: int = 5

    database_path: str = "agenthub.db"
    host: str = "0.0.0.0"
    port: int = 8000
    auth_token: Optional[str] = None
    default_user_id: str = "local"
    log_level: str = "info"

    def model_defaults(self) -> ModelDefaults:
        return ModelDefaults(
            system_prompt=self.default_system_prompt,
            temperature=self.default_temperature,
            max_tokens=self.default_max_tokens,
            max_iterations=self.default_max_iterations,
        )

    def to_safe_dict(self) -> dict:
        data = self.model_dump()
        for key in SECRET_FIELDS:
            if data.get(key):
                data[key] = "********"
        return data

    model_config = {"protected_namespaces": ()}


def _load_from_env() -> dict:
    load_dotenv()
    env_map = {
        "local_base_url": os.getenv("LOCAL_MODEL_URL"),
        "local_model": os.getenv("LOCAL_MODEL"),
        "local_max_output_tokens": os.getenv("LOCAL_MAX_OUTPUT_TOKENS"),
        "hosted_base_url": os.getenv("HOSTED_MODELS_URL"),
        "hosted_api_token": os.getenv("HOSTED_MODELS_TOKEN"),
        "hosted_model": os.getenv("HOSTED_MODEL"),
        "default_provider": os.getenv("DEFAULT_PROVIDER"),
        "brave_search_api_key": os.getenv("BRAVE_SEARCH_API_KEY"),
        "searxng_instances": os.getenv("SEARXNG_INSTANCES"),
        "search_timeout_s": os.getenv("SEARCH_TIMEOUT_S"),
        "default_temperature": os.getenv("DEFAULT_TEMPERATURE"),
        "default_max_tokens": os.getenv("DEFAULT_MAX_TOKENS"),
        "default_max_iterations": os.getenv("DEFAULT_MAX_ITERATIONS"),
        "database_path": os.getenv("DATABASE_PATH"),
        "host": os.getenv("HOST"),
        "port": os.getenv("PORT"),
        "auth_token": os.getenv("AUTH_TOKEN"),
        "default_user_id": os.getenv("DEFAULT_USER_ID"),
        "log_level": os.getenv("LOG_LEVEL"),
    }
    cleaned = {k: v for k, v in env_map.items() if v not in (None, "")}
    for key in ("local_max_output_tokens", "default_max_tokens", "default_max_iterations", "port"):
        if key in cleaned:
            cleaned[key] = int(cleaned[key])
    for key in ("search_timeout_s", "default_temperature"):
        if key in cleaned:
            cleaned[key] = float(cleaned[key])
    if "searxng_instances" in cleaned:
        cleaned["searxng_instances"] = [
            url.strip() for url in str(cleaned["searxng_instances"]).split(",") if url.strip()
        ]
    return cleaned


def _env_overrides_config() -> bool:
    return str(os.getenv(ENV_OVERRIDE_KEY, "")).strip().lower() in ENV_OVERRIDE_TRUE


def load_settings(config_path: Optional[Path] = None) -> AppSettings:
    env_data = _load_from_env()
    path = config_path or CONFIG_PATH
    file_data: Dict[str, Any] = {}
    if path.exists():
        try:
            file_data = json.loads(path.read_text())
        except Exception:
            file_data = {}
    # Config wins by default; allow env overrides only when explicitly enabled.
    if _env_overrides_config():
        merged = {**file_data, **env_data}
    else:
        merged = {**env_data, **file_data}
    for key in SECRET_FIELDS:
        if not merged.get(key) and env_data.get(key):
            merged[key] = env_data[key]
    return AppSettings(**merged)


def save_settings(settings: AppSettings, config_path: Optional[Path] = None) -> None:
    path = config_path or CONFIG_PATH
    path.write_text(settings.model_dump_json(indent=2))
