from pathlib import Path

import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from agenthub.config import AppSettings
from agenthub.llm import ProviderSet
from agenthub.main import create_app
from tests.fakes import FakeCompletionProvider, FakeSearchChain


def make_settings(tmp_path: Path, **overrides) -> AppSettings:
    settings = AppSettings(
        local_base_url="http://lm.test/v1",
        local_model="test-model",
        hosted_base_url="http://hosted.test/inference",
        hosted_api_token=None,
        hosted_model="hosted-model",
        default_provider="local",
        brave_search_api_key=None,
        searxng_instances=[],
        database_path=str(tmp_path / "test.db"),
        host="127.0.0.1",
        port=8000,
    )
    if overrides:
        settings = settings.model_copy(update=overrides)
    return settings


@pytest.fixture
def app_factory(tmp_path: Path):
    def _factory(
        *,
        providers: dict | None = None,
        fake_search: FakeSearchChain | None = None,
        config_path: Path | None = None,
        **settings_overrides,
    ):
        settings = make_settings(tmp_path, **settings_overrides)
        provider_map = providers or {"local": FakeCompletionProvider()}
        provider_set = ProviderSet(provider_map, default=next(iter(provider_map)))
        search = fake_search or FakeSearchChain()
        cfg_path = config_path or (tmp_path / "config.json")
        app = create_app(settings, providers=provider_set, search=search, config_path=cfg_path)
        return app, cfg_path, provider_set, search

    return _factory


@pytest.fixture
async def client(app_factory):
    app, config_path, providers, search = app_factory()
    async with LifespanManager(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as http_client:
            http_client.app = app  # type: ignore[attr-defined]
            http_client.config_path = config_path  # type: ignore[attr-defined]
            http_client.fake_provider = providers.get("local")  # type: ignore[attr-defined]
            http_client.fake_search = search  # type: ignore[attr-defined]
            yield http_client
