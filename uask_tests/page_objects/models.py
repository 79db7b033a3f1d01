"""Value objects produced by the chatbot page object."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict


class ChallengeMode(str, Enum):
    """How a detected anti-bot challenge is handled."""
    MANUAL = "manual"
    WAIT = "wait"
    SKIP = "skip"


class ChatMessage(BaseModel):
    """One entry of a scraped conversation transcript."""
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str


class SessionInfo(BaseModel):
    """Point-in-time description of the browser session driving the chatbot."""
    model_config = ConfigDict(frozen=True)

    origin: str
    language: str
    device_type: Literal["mobile", "tablet", "desktop"]


class AccessibilityReport(BaseModel):
    has_aria_labels: bool = False
    keyboard_navigable: bool = False


class MaliciousInputResult(BaseModel):
    """Outcome of sending a script-injection payload."""
    executed: bool
    sanitized: bool
    response: str


def messages_by_role(messages: list[ChatMessage], role: str) -> list[ChatMessage]:
    """Filter a transcript down to one role."""
    return [m for m in messages if m.role == role]
