import base64
import logging

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel

from keygate.config import get_settings
from keygate.core import state
from keygate.core.errors import GatewayError, ValidationError
from keygate.services.gemini import DESCRIBE_PROMPT
from keygate.services.types import ImagePart, UpstreamRequest

logger = logging.getLogger("keygate.api")


def _get_client_ip(request: Request) -> str:
    """Extract real client IP, respecting X-Forwarded-For behind a trusted proxy."""
    if get_settings().security.trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            # First IP in the chain is the original client
            return forwarded.split(",")[0].strip()
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()
    return getattr(request.client, "host", "unknown")


def check_client_access(request: Request):
    """Reject clients outside the IP whitelist with 403."""
    client_ip = _get_client_ip(request)
    allowed = get_settings().security.allowed_client_ips
    if allowed and allowed != ["*"] and client_ip not in allowed:
        logger.warning(f"Unauthorized access attempt from IP: {client_ip}")
        raise GatewayError(
            "Access denied: Your IP address is not whitelisted.",
            status_code=status.HTTP_403_FORBIDDEN,
        )


router = APIRouter(prefix="/api", tags=["Studio"], dependencies=[Depends(check_client_access)])


# --- Pydantic request models ---
# Fields are optional so missing values surface as a 400 with a readable message.

class InlineData(BaseModel):
    data: str | None = None
    mimeType: str | None = None


class ImagePartModel(BaseModel):
    inlineData: InlineData | None = None


class GenerateRequest(BaseModel):
    prompt: str | None = None
    imageParts: list[ImagePartModel] | None = None


class DescribeRequest(BaseModel):
    imagePart: ImagePartModel | None = None


# --- Helpers ---

def _to_image_part(part: ImagePartModel) -> ImagePart:
    inline = part.inlineData
    if inline is None or not inline.data or not inline.mimeType:
        raise ValidationError("Each image part must include inlineData with data and mimeType")
    return ImagePart(data=inline.data, mime_type=inline.mimeType)


def _require_ready():
    if state.gateway is None or state.gemini_client is None:
        raise GatewayError("Service is not ready", status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return state.gateway, state.gemini_client


# --- Endpoints ---

@router.post("/generate")
async def generate_image(body: GenerateRequest):
    """Generate a new image from the uploaded image(s) and a prompt."""
    if not body.prompt or not body.imageParts:
        raise ValidationError("Missing required fields: prompt and imageParts")

    upstream_request = UpstreamRequest(
        prompt=body.prompt,
        attachments=[_to_image_part(p) for p in body.imageParts],
    )
    gateway, client = _require_ready()
    image = await gateway.execute(upstream_request, client.generate_image)

    return {
        "base64": base64.b64encode(image.data).decode("ascii"),
        "mimeType": image.mime_type,
    }


@router.post("/describe")
async def describe_image(body: DescribeRequest):
    """Describe the uploaded image as a prompt suitable for regeneration."""
    if body.imagePart is None:
        raise ValidationError("Missing required field: imagePart")

    upstream_request = UpstreamRequest(
        prompt=DESCRIBE_PROMPT,
        attachments=[_to_image_part(body.imagePart)],
    )
    gateway, client = _require_ready()
    description = await gateway.execute(upstream_request, client.describe_image)

    return {"description": description.text}
