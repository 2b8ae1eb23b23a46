import asyncio

import pytest

from keygate.core.errors import (
    ConfigurationError,
    RateLimitExhausted,
    UpstreamRejected,
    ValidationError,
)
from keygate.services.gateway import KeyRotationGateway
from keygate.services.pool import KeyPool
from keygate.services.types import Fatal, GeneratedImage, Retryable, Success, UpstreamRequest


@pytest.fixture
def gateway():
    return KeyRotationGateway(KeyPool(["A", "B", "C"]))


@pytest.mark.asyncio
async def test_first_success_uses_one_key(gateway, upstream_request, scripted, success):
    operation = scripted(success)

    result = await gateway.execute(upstream_request, operation)

    assert result == "payload"
    assert operation.calls == ["A"]


@pytest.mark.asyncio
async def test_retry_until_success_wraps_cursor(gateway, upstream_request, scripted, rate_limited, success):
    operation = scripted(rate_limited, rate_limited, Success("from C"))

    result = await gateway.execute(upstream_request, operation)

    assert result == "from C"
    assert operation.calls == ["A", "B", "C"]
    assert gateway.pool.cursor == 0


@pytest.mark.asyncio
async def test_all_rate_limited_raises_after_n_attempts(gateway, upstream_request, scripted, rate_limited):
    operation = scripted(rate_limited, rate_limited, rate_limited, Success("never"))

    with pytest.raises(RateLimitExhausted) as exc_info:
        await gateway.execute(upstream_request, operation)

    assert operation.calls == ["A", "B", "C"]
    assert exc_info.value.status_code == 429


@pytest.mark.asyncio
async def test_single_key_rate_limited(upstream_request, scripted, rate_limited):
    gateway = KeyRotationGateway(KeyPool(["A"]))
    operation = scripted(rate_limited)

    with pytest.raises(RateLimitExhausted):
        await gateway.execute(upstream_request, operation)

    assert operation.calls == ["A"]


@pytest.mark.asyncio
async def test_fatal_stops_immediately(gateway, upstream_request, scripted, fatal, success):
    operation = scripted(fatal, success)

    with pytest.raises(UpstreamRejected) as exc_info:
        await gateway.execute(upstream_request, operation)

    assert operation.calls == ["A"]
    assert exc_info.value.message == "Failed to generate content: boom"
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_fatal_after_retry_keeps_upstream_status(gateway, upstream_request, scripted, rate_limited):
    operation = scripted(rate_limited, Fatal("blocked", status_code=400))

    with pytest.raises(UpstreamRejected) as exc_info:
        await gateway.execute(upstream_request, operation)

    assert operation.calls == ["A", "B"]
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_empty_pool_makes_no_upstream_calls(upstream_request, scripted, success):
    gateway = KeyRotationGateway(KeyPool([]))
    operation = scripted(success)

    with pytest.raises(ConfigurationError):
        await gateway.execute(upstream_request, operation)

    assert operation.calls == []


@pytest.mark.asyncio
async def test_incomplete_request_is_rejected(gateway, scripted, success):
    operation = scripted(success)

    with pytest.raises(ValidationError):
        await gateway.execute(UpstreamRequest(prompt="   ", attachments=[]), operation)

    assert operation.calls == []


@pytest.mark.asyncio
async def test_consecutive_calls_rotate_across_pool(gateway, upstream_request, scripted, success):
    operation = scripted(success, success, success, success)

    for _ in range(4):
        await gateway.execute(upstream_request, operation)

    assert operation.calls == ["A", "B", "C", "A"]


@pytest.mark.asyncio
async def test_rotation_continues_from_current_cursor(gateway, upstream_request, scripted, rate_limited, success):
    operation = scripted(rate_limited, success, rate_limited, success, rate_limited, success)

    for _ in range(3):
        await gateway.execute(upstream_request, operation)

    assert operation.calls == ["A", "B", "C", "A", "B", "C"]


@pytest.mark.asyncio
async def test_success_payload_is_returned_unmodified(gateway, upstream_request, scripted):
    image = GeneratedImage(data=b"\x89PNG\r\n\x1a\n", mime_type="image/png")
    operation = scripted(Success(image))

    result = await gateway.execute(upstream_request, operation)

    assert result is image


@pytest.mark.asyncio
async def test_unknown_outcome_type_raises(gateway, upstream_request, scripted):
    operation = scripted("not-an-outcome")

    with pytest.raises(TypeError):
        await gateway.execute(upstream_request, operation)


@pytest.mark.asyncio
async def test_concurrent_calls_share_the_cursor(gateway, upstream_request):
    calls: list[str] = []

    async def rate_limit_a(api_key, request):
        calls.append(api_key)
        await asyncio.sleep(0)
        if api_key == "A":
            return Retryable("429 RESOURCE_EXHAUSTED")
        return Success(api_key)

    results = await asyncio.gather(
        *(gateway.execute(upstream_request, rate_limit_a) for _ in range(6))
    )

    assert all(r in ("B", "C") for r in results)
    assert set(calls) <= {"A", "B", "C"}
    assert calls.count("A") == len(calls) - len(results)
    assert gateway.pool.cursor == len(calls) % 3
