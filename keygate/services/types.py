from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, List, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class ImagePart:
    """Base64 image attachment, as sent by the browser in an ``inlineData`` part."""
    data: str
    mime_type: str

    def to_part(self) -> dict:
        return {"inlineData": {"mimeType": self.mime_type, "data": self.data}}


@dataclass
class UpstreamRequest:
    prompt: str
    attachments: List[ImagePart] = field(default_factory=list)

    def is_complete(self) -> bool:
        return bool(self.prompt and self.prompt.strip()) and len(self.attachments) > 0


@dataclass(frozen=True)
class GeneratedImage:
    data: bytes
    mime_type: str


@dataclass(frozen=True)
class Description:
    text: str


# --- Upstream outcomes ---

@dataclass(frozen=True)
class Success(Generic[T]):
    payload: T


@dataclass(frozen=True)
class Retryable:
    """Rate-limit or quota signal: try the next credential."""
    message: str


@dataclass(frozen=True)
class Fatal:
    """Any other failure: terminal for the current call."""
    message: str
    status_code: int = 500


Outcome = Union[Success[Any], Retryable, Fatal]

UpstreamOperation = Callable[[str, UpstreamRequest], Awaitable[Outcome]]
