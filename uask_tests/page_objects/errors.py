"""Typed failures raised by the chatbot page object."""


class ChatbotError(Exception):
    """Base class for failures the caller is expected to assert or skip on."""


class NavigationError(ChatbotError):
    """The entry page did not load within the navigation timeout."""


class SendMessageError(ChatbotError):
    """The message could not be typed into the input or submitted."""


class ResponseTimeoutError(ChatbotError):
    """No new assistant message appeared within the response timeout."""


class ChallengeUnresolvedError(ChatbotError):
    """An anti-bot challenge appeared and was not solved in time."""


class LanguageSwitchError(ChatbotError):
    """The language control is missing or rejected the requested locale."""


class SuggestedQuestionError(ChatbotError):
    """A suggested question with the requested text was not shown."""
