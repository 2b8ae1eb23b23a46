import pytest

from keygate.config import get_settings
from keygate.services.types import Fatal, ImagePart, Retryable, Success, UpstreamRequest


@pytest.fixture
def mock_env(monkeypatch, tmp_path):
    """Sets up a mock environment for testing."""
    vars_to_clear = [
        "API_KEYS_POOL", "API_KEY", "LOG_LEVEL",
        "SECURITY__ALLOWED_CLIENT_IPS", "SECURITY__TRUST_PROXY_HEADERS",
        "SERVICES__GEMINI_BASE_URL", "SERVICES__GENERATE_MODEL",
    ]
    for var in vars_to_clear:
        monkeypatch.delenv(var, raising=False)

    # Use tmp_path as working directory so pydantic-settings won't find the real .env
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("API_KEYS_POOL", "key-aaaa,key-bbbb,key-cccc")

    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


@pytest.fixture
def upstream_request():
    return UpstreamRequest(
        prompt="Make it a watercolor",
        attachments=[ImagePart(data="aGVsbG8=", mime_type="image/png")],
    )


class ScriptedOperation:
    """Fake upstream operation returning a scripted sequence of outcomes."""

    def __init__(self, *outcomes):
        self._outcomes = list(outcomes)
        self.calls: list[str] = []

    async def __call__(self, api_key, request):
        self.calls.append(api_key)
        return self._outcomes.pop(0)


@pytest.fixture
def scripted():
    return ScriptedOperation


@pytest.fixture
def rate_limited():
    return Retryable("429 RESOURCE_EXHAUSTED")


@pytest.fixture
def success():
    return Success("payload")


@pytest.fixture
def fatal():
    return Fatal("Failed to generate content: boom")
