"""Page objects for Playwright chatbot testing."""

from .chatbot_page import ChatbotPage, ChatbotPageSelectors, Lookup
from .errors import (
    ChallengeUnresolvedError,
    ChatbotError,
    LanguageSwitchError,
    NavigationError,
    ResponseTimeoutError,
    SendMessageError,
    SuggestedQuestionError,
)
from .models import (
    AccessibilityReport,
    ChallengeMode,
    ChatMessage,
    MaliciousInputResult,
    SessionInfo,
    messages_by_role,
)

__all__ = [
    "ChatbotPage",
    "ChatbotPageSelectors",
    "Lookup",
    "ChatbotError",
    "NavigationError",
    "SendMessageError",
    "ResponseTimeoutError",
    "ChallengeUnresolvedError",
    "LanguageSwitchError",
    "SuggestedQuestionError",
    "AccessibilityReport",
    "ChallengeMode",
    "ChatMessage",
    "MaliciousInputResult",
    "SessionInfo",
    "messages_by_role",
]
