import logging
import time
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Callable, Dict, List, Optional

import pytest

log = logging.getLogger(__name__)

BANNER = "=" * 80


@dataclass
class TestEvent:
    __test__ = False

    event_type: str
    timestamp: str = field(
        default_factory=lambda: datetime.now().isoformat())
    nodeid: str = None
    name: str = None
    location: str = None
    outcome: str = None
    duration_seconds: float = None
    duration_ms: int = None
    message: str = None
    step_name: str = None
    markers: List[str] = None
    step_type: str = None  # "action", "info", "wait" or "attachment"
    attachment_name: str = None
    attachment: str = None

    def to_dict(self):
        return {k: v for k, v in asdict(self).items() if v is not None}


class ResultCollectorPlugin:
    """Pytest plugin that collects results, logs test banners and emits events via callback."""

    def __init__(self, on_event: Callable[[TestEvent], None] = None):
        self.on_event = on_event
        self.results: List[TestEvent] = []
        self.counts: Dict[str, int] = {}
        self._current_test_start: float = None
        self._current_nodeid: str = None
        self._current_test_name: str = None

    def _emit(self, event: TestEvent):
        self.results.append(event)
        if self.on_event:
            self.on_event(event)

    def pytest_sessionstart(self, session):
        self._emit(TestEvent("session_start"))

    def pytest_runtest_logstart(self, nodeid, location):
        self._current_test_start = time.time()
        self._current_nodeid = nodeid
        self._current_test_name = nodeid.split("::")[-1]
        log.info(BANNER)
        log.info("TEST STARTED: %s", self._current_test_name)
        log.info(BANNER)

    def pytest_runtest_setup(self, item):
        markers = [
            mark.name for mark in item.iter_markers()
            if mark.name not in ('parametrize', 'usefixtures', 'skip', 'skipif')
        ]
        self._emit(TestEvent(
            "test_start",
            nodeid=item.nodeid,
            name=item.name,
            location=item.location[0],
            markers=markers or None,
        ))

    def pytest_runtest_makereport(self, item, call):
        if call.excinfo:
            outcome = "skipped" if call.excinfo.errisinstance(pytest.skip.Exception) else "failed"
            self._finish_test(item, outcome, str(call.excinfo.value))
        elif call.when == "call":
            self._finish_test(item, "passed")

    def _finish_test(self, item, outcome: str, message: str = None):
        elapsed = time.time() - self._current_test_start if self._current_test_start else None
        self.counts[outcome] = self.counts.get(outcome, 0) + 1
        self._emit(TestEvent(
            "test_end",
            nodeid=item.nodeid,
            name=item.name,
            outcome=outcome,
            duration_seconds=round(elapsed, 3) if elapsed else None,
            message=message.replace("\n", "\n" + " " * 5) if message else None,
        ))

        log.info("-" * 80)
        log.info("TEST %s: %s (%dms)", outcome.upper(), item.name, int((elapsed or 0) * 1000))
        log.info(BANNER)
        self._current_nodeid = None
        self._current_test_name = None

    def pytest_sessionfinish(self, session, exitstatus):
        summary = ", ".join(f"{count} {outcome}" for outcome, count in sorted(self.counts.items()))
        self._emit(TestEvent(
            "session_end",
            outcome="passed" if exitstatus in (0, pytest.ExitCode.NO_TESTS_COLLECTED) else "failed",
            message=summary or None,
        ))


# For step logging within tests
_current_plugin: Optional[ResultCollectorPlugin] = None


def set_current_plugin(plugin: Optional[ResultCollectorPlugin]):
    global _current_plugin
    _current_plugin = plugin


def log_step(name: str, outcome: str = "passed", message: str = None, duration_ms: int = None, step_type: str = "action"):
    """Record a test step event on the active plugin, if any.

    Args:
        name: Step description
        outcome: "passed" or "failed"
        message: Optional error message
        duration_ms: Duration in milliseconds
        step_type: "action" (timed), "info" (no timing) or "wait" (timed)
    """
    if _current_plugin:
        _current_plugin._emit(
            TestEvent(
                "step",
                step_name=name,
                outcome=outcome,
                message=message,
                duration_ms=duration_ms,
                nodeid=_current_plugin._current_nodeid,
                name=_current_plugin._current_test_name,
                step_type=step_type
            ))


def log_attachment(name: str, content: str):
    """Record a named text artifact for the running test."""
    if _current_plugin:
        _current_plugin._emit(
            TestEvent(
                "attachment",
                attachment_name=name,
                attachment=content,
                nodeid=_current_plugin._current_nodeid,
                name=_current_plugin._current_test_name,
                step_type="attachment",
            ))
