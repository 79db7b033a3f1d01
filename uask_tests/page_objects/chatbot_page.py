"""Page object for chatbot Playwright interactions."""
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Frame, Locator, Page

from uask_tests import console
from uask_tests.config import Settings, get_settings
from uask_tests.utils import device_type_for_width, truncate, wait_until

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
)

log = logging.getLogger(__name__)

# Writes into a textarea or a contenteditable and lets the widget's own
# bindings see the change.
INJECT_TEXT_JS = """
(el, text) => {
    if (el.tagName === 'TEXTAREA' || el.tagName === 'INPUT') {
        el.value = text;
    } else {
        el.textContent = text;
    }
    el.dispatchEvent(new Event('input', { bubbles: true }));
}
"""

TRANSCRIPT_JS = """
([userSelector, assistantSelector]) => Array.from(
    document.querySelectorAll(`${userSelector}, ${assistantSelector}`)
).map(el => ({
    role: el.matches(assistantSelector) ? 'assistant' : 'user',
    content: el.textContent || ''
}))
"""

DIRECTION_JS = "() => window.getComputedStyle(document.body).direction"

LANGUAGE_CODES = {
    "en": "en-US",
    "ar": "ar-AE",
    "es": "es-AR",
}


@dataclass(frozen=True)
class Lookup:
    """One strategy for finding a control: css selector, ARIA role or visible text."""
    by: str
    value: str
    name: Optional[Union[str, re.Pattern]] = None

    def locate(self, root: Union[Page, Frame]) -> Locator:
        if self.by == "role":
            return root.get_by_role(self.value, name=self.name)
        if self.by == "text":
            return root.get_by_text(self.value)
        return root.locator(self.value)


class ChatbotPageSelectors:
    """Lookup strategies per control, tried in order.

    The target UI publishes no test contract, so each control lists its known
    variants. Update these when the widget markup changes.
    """

    CHAT_INPUT = (
        Lookup("css", ".expando-textarea"),
        Lookup("css", "[contenteditable='true']"),
        Lookup("role", "textbox"),
    )
    SEND_BUTTON = (
        Lookup("role", "button", re.compile(r"send|إرسال", re.IGNORECASE)),
        Lookup("css", "button[name='Send']"),
        Lookup("css", "button:has-text('Send')"),
        Lookup("css", "button:has-text('إرسال')"),
    )
    LANGUAGE_SELECT = (
        Lookup("role", "combobox"),
        Lookup("css", "select[name*='lang' i]"),
    )

    # Dismissed in order when visible; each one is optional
    ENTRY_WIDGETS = (
        Lookup("role", "button", "Accept and continue"),
        Lookup("role", "button", re.compile(r"accept", re.IGNORECASE)),
    )
    CLEAR_CONVERSATION = (
        Lookup("css", "button:has-text('Clear')"),
        Lookup("css", "button:has-text('New Chat')"),
    )

    # Message elements
    USER_MESSAGES = ".user-message, [data-role='user']"
    ASSISTANT_MESSAGES = ".bot-message, .assistant-message, [data-role='assistant']"
    LOADING_INDICATOR = ".loading, .typing-indicator, .dots"

    # Anti-bot challenge
    CHALLENGE_FRAME_URL = re.compile(r"captcha", re.IGNORECASE)
    CHALLENGE_CONTROL = Lookup("css", "[role='checkbox']")


class ChatbotPage:
    """Page object driving the chatbot widget through one browser tab.

    One instance per tab: operations are sequential and the instance keeps no
    lock of its own.
    """
    ENTRY_WIDGET_TIMEOUT = 5000
    CLEAR_CONTROL_TIMEOUT = 2000
    CHALLENGE_PROBE_TIMEOUT = 1000
    LOADING_INDICATOR_TIMEOUT = 5000
    INPUT_CLICK_TIMEOUT = 10000

    def __init__(
        self,
        page: Page,
        settings: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
        clock: Optional[Callable[[], float]] = None,
        interactive: Optional[bool] = None,
    ):
        self.page = page
        self.settings = settings or get_settings()
        self.logger = logger or log
        self.selectors = ChatbotPageSelectors
        self.language = self.settings.default_language
        self.interactive = (not self.settings.headless) if interactive is None else interactive
        self._clock = clock or time.monotonic

    # === Session ===
    @property
    def device_type(self) -> str:
        viewport = self.page.viewport_size
        return device_type_for_width(viewport["width"] if viewport else None)

    def is_mobile_view(self) -> bool:
        return self.device_type == "mobile"

    def session_info(self) -> SessionInfo:
        return SessionInfo(
            origin=self.settings.base_url,
            language=self.language,
            device_type=self.device_type,
        )

    @property
    def current_url(self) -> str:
        return self.page.url

    def get_title(self) -> str:
        return self.page.title()

    def wait(self, ms: float) -> None:
        self.page.wait_for_timeout(ms)

    # === Controls ===
    def _resolve(self, lookups: tuple[Lookup, ...], root: Union[Page, Frame, None] = None) -> Locator:
        """First lookup that matches anything, else the first lookup."""
        root = root or self.page
        for lookup in lookups:
            locator = lookup.locate(root)
            try:
                if locator.count() > 0:
                    return locator.first
            except PlaywrightError:
                continue
        return lookups[0].locate(root).first

    @staticmethod
    def _visible_within(locator: Locator, timeout_ms: float) -> bool:
        try:
            locator.wait_for(state="visible", timeout=timeout_ms)
            return True
        except PlaywrightError:
            return False

    @property
    def chat_input(self) -> Locator:
        return self._resolve(self.selectors.CHAT_INPUT)

    @property
    def send_button(self) -> Locator:
        return self._resolve(self.selectors.SEND_BUTTON)

    @property
    def language_select(self) -> Locator:
        return self._resolve(self.selectors.LANGUAGE_SELECT)

    @property
    def user_messages(self) -> Locator:
        return self.page.locator(self.selectors.USER_MESSAGES)

    @property
    def assistant_messages(self) -> Locator:
        return self.page.locator(self.selectors.ASSISTANT_MESSAGES)

    @property
    def loading_indicator(self) -> Locator:
        return self.page.locator(self.selectors.LOADING_INDICATOR).first

    # === Navigation ===
    def navigate(self, language: str = "en") -> None:
        """Load the locale-scoped entry page and let it settle."""
        url = self.settings.entry_url(language)
        self.logger.info("Navigating to: %s", url)
        try:
            self.page.goto(url, wait_until="networkidle", timeout=self.settings.navigation_timeout)
            self.page.wait_for_load_state("domcontentloaded")
        except PlaywrightError as e:
            self.logger.error("Navigation failed: %s", e)
            raise NavigationError(f"Could not load {url}: {e}") from e
        self.page.wait_for_timeout(self.settings.settle_delay)
        self.language = language
        self.logger.info("Loaded chatbot entry page (%s, %s)", language, self.device_type)

    def dismiss_entry_widgets(self) -> None:
        """Dismiss consent banners and similar overlays. Never raises."""
        self.logger.info("Handling entry widgets...")
        dismissed = 0
        for lookup in self.selectors.ENTRY_WIDGETS:
            try:
                widget = lookup.locate(self.page).first
                if not self._visible_within(widget, self.ENTRY_WIDGET_TIMEOUT):
                    continue
                widget.click(timeout=self.ENTRY_WIDGET_TIMEOUT)
                dismissed += 1
                self.logger.info("Dismissed entry widget: %s", lookup.name or lookup.value)
                self.page.wait_for_timeout(1000)
            except PlaywrightError as e:
                self.logger.warning("Could not dismiss entry widget %s: %s", lookup.name or lookup.value, e)
        if not dismissed:
            self.logger.info("No entry widgets found")

    def is_widget_ready(self) -> bool:
        """Whether the message input is visible within the ready timeout."""
        try:
            self.page.wait_for_load_state("networkidle")
        except PlaywrightError as e:
            self.logger.warning("Network did not go idle: %s", e)
        if self._visible_within(self.chat_input, self.settings.ready_timeout):
            self.logger.info("Chat widget is ready")
            return True
        self.logger.error("Chat widget not ready after %sms", self.settings.ready_timeout)
        return False

    # === Messaging ===
    def send_message(
        self,
        text: str,
        wait_for_response: bool = True,
        auto_handle_challenge: bool = True,
    ) -> Optional[str]:
        """Type and submit a message, then return the assistant's reply.

        Returns None when ``wait_for_response`` is False.

        Raises:
            SendMessageError: The input or send button could not be used
            ChallengeUnresolvedError: A challenge appeared and was not solved
            ResponseTimeoutError: No new assistant message appeared
        """
        self.logger.info("Sending message: %s", truncate(text))
        try:
            self.page.wait_for_load_state("networkidle")
            self.page.wait_for_timeout(1000)

            # force: the widget overlays the input while animating
            self.chat_input.click(force=True, timeout=self.INPUT_CLICK_TIMEOUT)
            self.chat_input.evaluate(INJECT_TEXT_JS, text)
            self.page.wait_for_timeout(500)
            self.take_screenshot("before-send")

            previous_count = self.assistant_messages.count()
            self.send_button.click(force=True)
            self.logger.info("Message sent (%d assistant messages before)", previous_count)

            if auto_handle_challenge and self._challenge_after_send(wait_for_response):
                self._clear_challenge()

            if not wait_for_response:
                return None
            return self.wait_for_response(previous_count, auto_handle_challenge=auto_handle_challenge)
        except ChatbotError as e:
            self.logger.error("Error sending message: %s", e)
            self.take_screenshot("send-message-error")
            raise
        except PlaywrightError as e:
            self.logger.error("Error sending message: %s", e)
            self.take_screenshot("send-message-error")
            raise SendMessageError(f"Could not send message: {e}") from e

    def wait_for_response(
        self,
        previous_count: int,
        timeout_ms: Optional[float] = None,
        auto_handle_challenge: bool = False,
    ) -> str:
        """Block until a new assistant message appears and return the latest one."""
        if timeout_ms is None:
            timeout_ms = self.settings.response_timeout
        self.logger.info("Waiting for bot response...")
        interrupted = []

        def arrived() -> bool:
            if auto_handle_challenge and self.is_challenge_present():
                interrupted.append(True)
                return True
            return self.assistant_messages.count() > previous_count

        while True:
            interrupted.clear()
            got_response = wait_until(
                arrived,
                timeout_ms,
                self.settings.response_poll_interval,
                sleep=self.page.wait_for_timeout,
                clock=self._clock,
            )
            if not interrupted:
                break
            self.logger.warning("Challenge appeared while waiting for the response")
            self._clear_challenge()

        if not got_response:
            self.logger.error("No response within %sms", timeout_ms)
            self.take_screenshot("response-timeout")
            raise ResponseTimeoutError(f"Bot did not respond within {timeout_ms}ms")

        try:
            self.loading_indicator.wait_for(state="hidden", timeout=self.LOADING_INDICATOR_TIMEOUT)
        except PlaywrightError:
            self.logger.debug("Loading indicator still visible, reading response anyway")

        # Streaming keeps appending to the last message for a moment
        self.page.wait_for_timeout(self.settings.settle_delay)

        response_text = (self.assistant_messages.last.text_content() or "").strip()
        if not response_text:
            self.take_screenshot("response-timeout")
            raise ResponseTimeoutError("Assistant message appeared but stayed empty")

        self.logger.info("Received response (%d chars)", len(response_text))
        self.take_screenshot("response-received")
        return response_text

    def click_suggested_question(self, question_text: str) -> None:
        self.logger.info("Clicking suggested question: %s", truncate(question_text))
        question = self.page.get_by_text(question_text).first
        try:
            question.wait_for(state="visible", timeout=5000)
            question.click()
        except PlaywrightError as e:
            self.logger.error("Error clicking suggested question: %s", e)
            raise SuggestedQuestionError(f"Suggested question not clickable: {question_text}") from e
        self.page.wait_for_timeout(1000)

    # === Anti-bot challenge ===
    def is_challenge_present(self) -> bool:
        """Whether a challenge frame with a visible checkbox is on the page. Never raises."""
        try:
            frames = self.page.frames
        except PlaywrightError:
            return False
        for frame in frames:
            try:
                if not self.selectors.CHALLENGE_FRAME_URL.search(frame.url):
                    continue
                control = self.selectors.CHALLENGE_CONTROL.locate(frame).first
                if self._visible_within(control, self.CHALLENGE_PROBE_TIMEOUT):
                    return True
            except PlaywrightError:
                continue
        return False

    def resolve_challenge(
        self,
        mode: Union[ChallengeMode, str, None] = None,
        timeout_ms: Optional[float] = None,
    ) -> bool:
        """Wait for a challenge to go away.

        ``skip`` gives up at once. ``wait`` polls until the challenge is gone
        or the ceiling passes. ``manual`` also prompts the operator, who must
        solve it in the visible browser. Without a mode, ``settings.challenge_mode``
        applies.

        Returns:
            True if no challenge remains, False otherwise
        """
        mode = ChallengeMode(mode if mode is not None else self.settings.challenge_mode)
        if timeout_ms is None:
            timeout_ms = self.settings.challenge_timeout

        if mode is ChallengeMode.SKIP:
            self.logger.warning("Skipping challenge")
            return False

        if mode is ChallengeMode.MANUAL:
            if not self.interactive:
                self.logger.error("Challenge needs a human but the browser is headless")
                return False
            self._prompt_operator(timeout_ms)
            self.take_screenshot("captcha-needs-solving")

        solved = self._wait_for_challenge_gone(timeout_ms)

        if solved:
            self.logger.info("Challenge solved")
            if mode is ChallengeMode.MANUAL:
                console.writeln(console.success("\nCAPTCHA SOLVED! Continuing test...\n"))
                # Let the page submit the solved token
                self.page.wait_for_timeout(3000)
        else:
            self.logger.error("Challenge not solved within %ss", int(timeout_ms / 1000))
            if mode is ChallengeMode.MANUAL:
                console.writeln(console.error("\nCAPTCHA TIMEOUT! The test cannot continue.\n"))
        return solved

    def _wait_for_challenge_gone(self, timeout_ms: float) -> bool:
        def progress(checks: int, elapsed: float) -> None:
            if checks % 5 == 0:
                remaining = max(0, int(timeout_ms / 1000 - elapsed))
                self.logger.info(
                    "... waiting for challenge (%ds elapsed, %ds remaining)", int(elapsed), remaining
                )

        return wait_until(
            lambda: not self.is_challenge_present(),
            timeout_ms,
            self.settings.challenge_poll_interval,
            sleep=self.page.wait_for_timeout,
            clock=self._clock,
            on_tick=progress,
        )

    def _prompt_operator(self, timeout_ms: float) -> None:
        seconds = int(timeout_ms / 1000)
        console.writeln(console.warn("\n" + console.box([
            "CAPTCHA MANUAL SOLVING REQUIRED",
            "-",
            "1. Look at the browser window",
            "2. Solve the CAPTCHA challenge",
            "3. Test will continue automatically",
            "",
            f"Timeout: {seconds} seconds",
        ]) + "\n"))

    def _challenge_after_send(self, wait_for_response: bool) -> bool:
        if wait_for_response:
            # wait_for_response keeps checking on every poll
            return self.is_challenge_present()
        # The challenge frame renders a moment after the click
        return wait_until(
            self.is_challenge_present,
            self.settings.challenge_detect_delay,
            self.settings.response_poll_interval,
            sleep=self.page.wait_for_timeout,
            clock=self._clock,
        )

    def _clear_challenge(self) -> None:
        self.logger.warning("CAPTCHA appeared")
        if not self.resolve_challenge():
            raise ChallengeUnresolvedError(
                "CAPTCHA not solved. Run the tests with --headed and solve it manually."
            )

    # === Language ===
    def switch_language(self, target: str) -> None:
        """Select a locale in the language dropdown ('en', 'ar', 'es' or a full code)."""
        code = LANGUAGE_CODES.get(target, target)
        self.logger.info("Switching language to: %s", code)
        dropdown = self.language_select
        try:
            dropdown.wait_for(state="visible", timeout=5000)
            dropdown.select_option(code)
        except PlaywrightError as e:
            self.logger.error("Error switching language: %s", e)
            raise LanguageSwitchError(f"Could not switch language to {code}: {e}") from e
        self.page.wait_for_timeout(self.settings.settle_delay)
        self.language = code.split("-")[0]
        self.logger.info("Language switched to: %s", code)

    def is_rtl_layout(self) -> bool:
        try:
            direction = self.page.evaluate(DIRECTION_JS)
        except PlaywrightError as e:
            self.logger.error("Error checking RTL layout: %s", e)
            return False
        self.logger.info("Page direction: %s", direction)
        return direction == "rtl"

    # === Conversation ===
    def get_all_messages(self) -> list[ChatMessage]:
        """Scrape the conversation in page order."""
        try:
            raw = self.page.evaluate(
                TRANSCRIPT_JS, [self.selectors.USER_MESSAGES, self.selectors.ASSISTANT_MESSAGES]
            )
        except PlaywrightError as e:
            self.logger.error("Error getting messages: %s", e)
            return []
        messages = [ChatMessage(role=m["role"], content=(m.get("content") or "").strip()) for m in raw]
        self.logger.info("Retrieved %d messages", len(messages))
        return messages

    def clear_conversation(self) -> None:
        """Start a fresh conversation, reloading the page if no control exists. Never raises."""
        try:
            for lookup in self.selectors.CLEAR_CONVERSATION:
                button = lookup.locate(self.page).first
                if self._visible_within(button, self.CLEAR_CONTROL_TIMEOUT):
                    button.click()
                    self.logger.info("Conversation cleared")
                    self.page.wait_for_timeout(1000)
                    return

            self.logger.info("No clear control found, reloading page")
            self.page.reload(wait_until="networkidle")
            self.page.wait_for_timeout(self.settings.settle_delay)
            self.dismiss_entry_widgets()
        except PlaywrightError as e:
            self.logger.warning("Failed to clear conversation: %s", e)

    # === Diagnostics ===
    def take_screenshot(self, prefix: str) -> Optional[Path]:
        """Save a viewport screenshot. Failures are logged and ignored."""
        try:
            directory = self.settings.screenshots_path
            directory.mkdir(parents=True, exist_ok=True)
            path = directory / f"{prefix}-{self.device_type}-{int(time.time() * 1000)}.png"
            self.page.screenshot(path=str(path), full_page=False)
        except (PlaywrightError, OSError) as e:
            self.logger.warning("Screenshot %s failed: %s", prefix, e)
            return None
        self.logger.debug("Screenshot: %s", path)
        return path

    def check_accessibility(self) -> AccessibilityReport:
        report = AccessibilityReport()
        try:
            chat_input = self.chat_input
            report.has_aria_labels = bool(chat_input.get_attribute("aria-label"))
            chat_input.focus()
            report.keyboard_navigable = bool(chat_input.evaluate("el => el === document.activeElement"))
        except PlaywrightError as e:
            self.logger.error("Error checking accessibility: %s", e)
        self.logger.info("Accessibility check: %s", report.model_dump())
        return report

    def test_malicious_input(self, payload: str) -> MaliciousInputResult:
        """Send a script-injection payload and report whether it ran or rendered raw."""
        executed = []

        def on_dialog(dialog):
            executed.append(dialog.message)
            dialog.dismiss()

        self.page.on("dialog", on_dialog)
        try:
            response = self.send_message(payload, wait_for_response=True, auto_handle_challenge=True)
            sanitized = payload not in self.page.content()
        finally:
            self.page.remove_listener("dialog", on_dialog)

        return MaliciousInputResult(
            executed=bool(executed),
            sanitized=sanitized,
            response=response or "",
        )
