import logging

from keygate.core.errors import (
    ConfigurationError,
    RateLimitExhausted,
    UpstreamRejected,
    ValidationError,
)
from keygate.services.pool import KeyPool, mask_key
from keygate.services.types import (
    Fatal,
    Retryable,
    Success,
    UpstreamOperation,
    UpstreamRequest,
)

logger = logging.getLogger("keygate.gateway")

NO_KEYS_MESSAGE = (
    "API key not configured on the server. "
    "Please set API_KEY or API_KEYS_POOL environment variables."
)
EXHAUSTED_MESSAGE = "All API keys are currently rate-limited. Please wait a moment."


class KeyRotationGateway:
    """Runs an upstream operation once per key, in round-robin order.

    The first ``Success`` is returned as is. ``Retryable`` moves on to the next
    key and ``Fatal`` stops immediately, so a call makes at most ``key_count``
    upstream invocations. Attempts are sequential and immediate.
    """

    def __init__(self, pool: KeyPool):
        self.pool = pool

    async def execute(self, request: UpstreamRequest, operation: UpstreamOperation):
        if not request.is_complete():
            raise ValidationError("Request must include a prompt and at least one image.")

        total_keys = self.pool.key_count
        if total_keys == 0:
            raise ConfigurationError(NO_KEYS_MESSAGE)

        for attempt in range(1, total_keys + 1):
            api_key = self.pool.get_next_key()
            logger.info(f"Attempt {attempt}/{total_keys} [Key {mask_key(api_key)}]")

            outcome = await operation(api_key, request)

            if isinstance(outcome, Success):
                return outcome.payload

            if isinstance(outcome, Retryable):
                logger.warning(
                    f"Key {mask_key(api_key)} rate-limited: {outcome.message}"
                )
                continue

            if isinstance(outcome, Fatal):
                logger.error(f"Upstream rejected via Key {mask_key(api_key)}: {outcome.message}")
                raise UpstreamRejected(outcome.message, status_code=outcome.status_code)

            raise TypeError(f"Unexpected upstream outcome: {outcome!r}")

        logger.error("All API keys are rate-limited.")
        raise RateLimitExhausted(EXHAUSTED_MESSAGE)
