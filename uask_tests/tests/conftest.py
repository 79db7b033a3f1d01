import json
import time

import pytest
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page, expect

from uask_tests.config import Settings, get_settings
from uask_tests.evaluator import create_evaluator_from_settings
from uask_tests.logging_setup import setup_logging
from uask_tests.page_objects import ChatbotPage, ChatbotPageSelectors
from uask_tests.page_objects.chatbot_page import (
    DIRECTION_JS,
    INJECT_TEXT_JS,
    TRANSCRIPT_JS,
)
from uask_tests.step import step

SECURITY_PARAMS = {
    "xss_payload": "xss_attempts",
    "injection": "prompt_injections",
    "sql_payload": "sql_injection",
    "dangerous_payload": "dangerous_payloads",
}


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_all_fixtures():
    """Load query test cases from every JSON file in the fixtures directory.

    Each test case inherits the file's default_validation and may override
    individual fields.
    """
    settings = get_settings()
    all_test_cases = []

    for json_file in sorted(settings.fixtures_path.glob("*.json")):
        with open(json_file, encoding="utf-8") as f:
            data = json.load(f)

        default_validation = data.get("default_validation", {})
        for tc in data.get("test_cases", []):
            tc["_source"] = json_file.name
            tc["validation"] = deep_merge(default_validation, tc.get("validation", {}))
            all_test_cases.append(tc)

    return all_test_cases


def load_security_payloads() -> dict:
    """Merge the security_tests sections of all fixture files."""
    settings = get_settings()
    payloads = {}
    for json_file in sorted(settings.fixtures_path.glob("*.json")):
        with open(json_file, encoding="utf-8") as f:
            data = json.load(f)
        for kind, values in data.get("security_tests", {}).items():
            payloads.setdefault(kind, []).extend(values)
    return payloads


# =============================================================================
# Browser fixtures
# =============================================================================

@pytest.fixture
def context(browser, settings):
    """Create a new browser context sized and localized from settings."""
    context = browser.new_context(
        viewport={'width': settings.viewport_width, 'height': settings.viewport_height},
        locale=settings.locale,
        timezone_id=settings.timezone_id,
    )
    yield context
    context.close()


@pytest.fixture
def data(request):
    """Fixture that provides each query test case to tests."""
    return request.param


@pytest.fixture(scope="session", autouse=True)
def settings():
    """Get test settings."""
    return get_settings()


@pytest.fixture(scope="session", autouse=True)
def configure_logging(settings):
    return setup_logging(settings)


@pytest.fixture(scope="session", autouse=True)
def configure_expect_timeout(settings):
    """Set global expect timeout from settings."""
    expect.set_options(timeout=settings.expect_timeout)


@pytest.fixture
def page(context, settings):
    page = context.new_page()
    page.set_default_timeout(settings.timeout)
    yield page
    page.close()


@pytest.fixture
def chatbot_page(page: Page, settings, request) -> ChatbotPage:
    """Create a ChatbotPage instance and open the chatbot, ready for input."""
    chatbot_page = ChatbotPage(
        page,
        settings,
        interactive=bool(request.config.getoption("--headed")),
    )
    chatbot_page.navigate(settings.default_language)
    chatbot_page.dismiss_entry_widgets()

    with step("Verify chat widget is ready for input"):
        assert chatbot_page.is_widget_ready(), "Chat input did not become visible"

    return chatbot_page


@pytest.fixture
def evaluator(settings):
    return create_evaluator_from_settings(settings)


# =============================================================================
# In-memory Playwright fakes for unit tests
# =============================================================================

class FakeClock:
    """Monotonic clock that only moves when slept on."""

    def __init__(self):
        self.now = 0.0

    def monotonic(self) -> float:
        return self.now

    def sleep_ms(self, ms: float) -> None:
        self.now += ms / 1000


class RealClock:
    monotonic = staticmethod(time.monotonic)

    @staticmethod
    def sleep_ms(ms: float) -> None:
        time.sleep(ms / 1000)


class FakeElement:
    def __init__(self, text="", visible=True, attrs=None, options=None, on_click=None):
        self.text = text
        self.value = ""
        self.visible = visible
        self.attrs = attrs or {}
        self.options = options
        self.on_click = on_click
        self.clicks = 0


class FakeDialog:
    def __init__(self, message):
        self.message = message
        self.dismissed = False

    def dismiss(self):
        self.dismissed = True


def _key(by, value, name=None):
    return (by, value, getattr(name, "pattern", name))


class FakeLocator:
    def __init__(self, root, key, index=None):
        self.root = root
        self.key = key
        self.index = index

    def _all(self):
        elements = self.root.elements.get(self.key, [])
        if self.index is None:
            return list(elements)
        try:
            return [elements[self.index]]
        except IndexError:
            return []

    def _one(self):
        elements = self._all()
        if not elements:
            raise PlaywrightError(f"Timeout: no element for {self.key}")
        return elements[0]

    @property
    def first(self):
        return FakeLocator(self.root, self.key, 0)

    @property
    def last(self):
        return FakeLocator(self.root, self.key, -1)

    def count(self):
        return len(self._all())

    def wait_for(self, state="visible", timeout=None):
        visible = any(e.visible for e in self._all())
        if state == "visible" and not visible:
            raise PlaywrightError(f"Timeout {timeout}ms waiting for {self.key} to be visible")
        if state == "hidden" and visible:
            raise PlaywrightError(f"Timeout {timeout}ms waiting for {self.key} to be hidden")

    def click(self, force=False, timeout=None):
        element = self._one()
        element.clicks += 1
        if element.on_click:
            element.on_click()

    def evaluate(self, expression, arg=None):
        element = self._one()
        if expression == INJECT_TEXT_JS:
            element.value = arg
            return None
        if "document.activeElement" in expression:
            return self.root.page.active is element
        raise PlaywrightError(f"Unsupported script: {expression}")

    def text_content(self):
        return self._one().text

    def input_value(self):
        return self._one().value

    def get_attribute(self, name):
        return self._one().attrs.get(name)

    def focus(self):
        self.root.page.active = self._one()

    def select_option(self, value):
        element = self._one()
        if element.options is not None and value not in element.options:
            raise PlaywrightError(f"Option {value} not found")
        element.value = value


class _FakeRoot:
    def __init__(self):
        self.elements = {}

    def add(self, by, value, element=None, name=None):
        element = element or FakeElement()
        self.elements.setdefault(_key(by, value, name), []).append(element)
        return element

    def add_for(self, lookup, element=None):
        return self.add(lookup.by, lookup.value, element, lookup.name)

    def locator(self, selector):
        return FakeLocator(self, _key("css", selector))

    def get_by_role(self, role, name=None):
        return FakeLocator(self, _key("role", role, name))

    def get_by_text(self, text):
        return FakeLocator(self, _key("text", text))


class FakeFrame(_FakeRoot):
    def __init__(self, page, url):
        super().__init__()
        self.page = page
        self.url = url


class FakePage(_FakeRoot):
    """Just enough of playwright's sync Page for ChatbotPage."""

    def __init__(self, clock=None, viewport_width=1920):
        super().__init__()
        self.page = self
        self.clock = clock or FakeClock()
        self.viewport_size = {"width": viewport_width, "height": 1080} if viewport_width else None
        self.url = "about:blank"
        self.direction = "ltr"
        self.html = "<html></html>"
        self.main_frame = FakeFrame(self, "about:blank")
        self.extra_frames = []
        self.transcript = []
        self.active = None
        self.goto_error = None
        self.evaluate_error = None
        self.screenshot_error = None
        self.visited = []
        self.reloads = 0
        self.screenshots = []
        self.listeners = {}
        self._events = []

    # --- time ---
    def schedule(self, delay_ms, callback):
        self._events.append((self.clock.monotonic() + delay_ms / 1000, callback))

    def wait_for_timeout(self, ms):
        self.clock.sleep_ms(ms)
        now = self.clock.monotonic()
        due = sorted((e for e in self._events if e[0] <= now), key=lambda e: e[0])
        self._events = [e for e in self._events if e[0] > now]
        for _, callback in due:
            callback()

    # --- navigation ---
    def goto(self, url, wait_until=None, timeout=None):
        if self.goto_error:
            raise PlaywrightError(self.goto_error)
        self.url = url
        self.visited.append(url)

    def wait_for_load_state(self, state=None):
        pass

    def reload(self, wait_until=None):
        self.reloads += 1

    def title(self):
        return "U-Ask"

    def content(self):
        return self.html

    def screenshot(self, path=None, full_page=False):
        if self.screenshot_error:
            raise PlaywrightError(self.screenshot_error)
        self.screenshots.append(path)

    @property
    def frames(self):
        return [self.main_frame] + self.extra_frames

    def evaluate(self, expression, arg=None):
        if self.evaluate_error:
            raise PlaywrightError(self.evaluate_error)
        if expression == DIRECTION_JS:
            return self.direction
        if expression == TRANSCRIPT_JS:
            return [{"role": role, "content": text} for role, text in self.transcript]
        raise PlaywrightError(f"Unsupported script: {expression}")

    # --- events ---
    def on(self, event, handler):
        self.listeners.setdefault(event, []).append(handler)

    def remove_listener(self, event, handler):
        self.listeners.get(event, []).remove(handler)

    def fire_dialog(self, message):
        for handler in list(self.listeners.get("dialog", [])):
            handler(FakeDialog(message))

    # --- chatbot widget ---
    def add_message(self, role, text):
        selector = (
            ChatbotPageSelectors.ASSISTANT_MESSAGES if role == "assistant"
            else ChatbotPageSelectors.USER_MESSAGES
        )
        self.add("css", selector, FakeElement(text))
        self.transcript.append((role, text))

    def show_challenge(self):
        frame = FakeFrame(self, "https://www.google.com/recaptcha/api2/anchor?k=abc")
        frame.add_for(ChatbotPageSelectors.CHALLENGE_CONTROL)
        self.extra_frames.append(frame)
        return frame

    def hide_challenge(self):
        self.extra_frames = [
            f for f in self.extra_frames
            if not ChatbotPageSelectors.CHALLENGE_FRAME_URL.search(f.url)
        ]

    def install_chat(self, reply="Visit the ICP portal to renew your Emirates ID.", delay_ms=1500,
                     replies_per_send=1, on_send=None):
        """Wire an input and send button that answer each message after ``delay_ms``.

        ``reply`` is a string or a callable taking the sent text.
        """
        chat_input = self.add_for(ChatbotPageSelectors.CHAT_INPUT[0], FakeElement(attrs={"aria-label": "Type your message"}))

        def send():
            text = chat_input.value
            chat_input.value = ""
            self.add_message("user", text)
            if on_send:
                on_send(text)
            answer = reply(text) if callable(reply) else reply
            for _ in range(replies_per_send):
                self.schedule(delay_ms, lambda: self.add_message("assistant", answer))

        send_button = self.add_for(ChatbotPageSelectors.SEND_BUTTON[0], FakeElement("Send", on_click=send))
        return chat_input, send_button


@pytest.fixture
def make_page():
    """Factory for fake pages; real_time pages sleep for real."""
    def factory(real_time=False, viewport_width=1920):
        return FakePage(clock=RealClock() if real_time else FakeClock(), viewport_width=viewport_width)
    return factory


@pytest.fixture
def fake_page(make_page):
    return make_page()


@pytest.fixture
def fake_element():
    return FakeElement


@pytest.fixture
def unit_settings(tmp_path):
    return Settings(
        screenshots_dir=str(tmp_path / "screenshots"),
        reports_dir=str(tmp_path / "reports"),
        logs_dir=str(tmp_path / "logs"),
        headless=True,
        openai_api_key="",
        response_timeout=10000,
    )


@pytest.fixture
def make_chatbot(fake_page, unit_settings):
    """Factory for a ChatbotPage over the fake page, sharing its clock."""
    def factory(page=None, settings=None, interactive=False):
        page = page or fake_page
        return ChatbotPage(
            page,
            settings or unit_settings,
            clock=page.clock.monotonic,
            interactive=interactive,
        )
    return factory


# =============================================================================
# Collection
# =============================================================================

def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--limit",
        action="store",
        default=None,
        type=int,
        help="Limit to first N queries from fixtures (does not affect other tests)",
    )
    parser.addoption(
        "--run-e2e",
        action="store_true",
        default=False,
        help="Run live browser scenarios against the chatbot",
    )


def pytest_generate_tests(metafunc):
    """Parametrize query and payload tests from fixture files at collection time."""
    if "data" in metafunc.fixturenames:
        all_cases = load_all_fixtures()
        limit = metafunc.config.getoption("--limit")

        if limit is not None:
            all_cases = all_cases[:limit]

        metafunc.parametrize("data", all_cases, ids=lambda q: q["id"])

    payload_args = [arg for arg in SECURITY_PARAMS if arg in metafunc.fixturenames]
    if payload_args:
        payloads = load_security_payloads()
        for arg in payload_args:
            values = payloads.get(SECURITY_PARAMS[arg], [])
            metafunc.parametrize(arg, values, ids=[f"{arg}{i}" for i in range(len(values))])


def pytest_collection_modifyitems(config, items):
    """Gate live scenarios and apply markers from fixture data.

    Tests marked 'e2e' are skipped unless --run-e2e or RUN_E2E is set.
    Tests marked with 'always' get the selected marker applied.
    Tests with the 'data' fixture get markers from the test case data.
    """
    run_e2e = config.getoption("--run-e2e") or get_settings().run_e2e
    skip_e2e = pytest.mark.skip(reason="Live scenario: pass --run-e2e or set RUN_E2E=true")
    selected_marker = config.getoption("-m")

    for item in items:
        if "e2e" in item.keywords and not run_e2e:
            item.add_marker(skip_e2e)

        # Tests with 'always' marker run regardless of marker filter
        if selected_marker and "always" in item.keywords:
            item.add_marker(selected_marker)
            continue

        if not (hasattr(item, "callspec") and "data" in item.callspec.params):
            continue

        data = item.callspec.params["data"]

        for marker_name in data.get("markers", []):
            item.add_marker(getattr(pytest.mark, marker_name))

        priority = data.get("priority")
        if priority:
            item.add_marker(getattr(pytest.mark, priority))
