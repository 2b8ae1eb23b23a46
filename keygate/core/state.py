from __future__ import annotations

import httpx
from keygate.services.pool import KeyPool
from keygate.services.gateway import KeyRotationGateway
from keygate.services.gemini import GeminiClient

# Initialized in lifespan (keygate/main.py), NOT at import time
key_pool: KeyPool | None = None
gateway: KeyRotationGateway | None = None
gemini_client: GeminiClient | None = None
http_client: httpx.AsyncClient | None = None
