"""Unit tests for step recording and the JSONL report."""

import pytest

from uask_tests.output import JSONLWriter, generate_output_filename, read_events
from uask_tests.page_objects import ChallengeUnresolvedError
from uask_tests.plugin import ResultCollectorPlugin, TestEvent, set_current_plugin
from uask_tests.runner import build_pytest_args
from uask_tests.step import attach, info, skip_on_challenge, step


@pytest.fixture
def collector():
    plugin = ResultCollectorPlugin()
    plugin._current_nodeid = "tests/test_ui.py::test_widget"
    plugin._current_test_name = "test_widget"
    set_current_plugin(plugin)
    yield plugin
    set_current_plugin(None)


def test_step_records_passed_and_failed(collector):
    with step("Open chatbot"):
        pass
    with step("Send message", continue_on_failure=True):
        raise ValueError("input not found")

    passed, failed = collector.results
    assert (passed.step_name, passed.outcome) == ("Open chatbot", "passed")
    assert failed.outcome == "failed"
    assert failed.message == "ValueError: input not found"
    assert failed.nodeid == "tests/test_ui.py::test_widget"


def test_step_reraises_by_default(collector):
    with pytest.raises(AssertionError):
        with step("Verify response"):
            assert False, "empty response"
    assert collector.results[0].outcome == "failed"


def test_info_and_attach(collector):
    info("INFO: device type is desktop")
    attach("Quality Metrics", {"word_count": 42})

    note, attachment = collector.results
    assert note.step_type == "info"
    assert attachment.event_type == "attachment"
    assert attachment.attachment_name == "Quality Metrics"
    assert '"word_count": 42' in attachment.attachment


def test_skip_on_challenge(collector):
    with pytest.raises(pytest.skip.Exception, match="--headed"):
        with skip_on_challenge():
            raise ChallengeUnresolvedError("CAPTCHA not solved")
    assert collector.results[-1].outcome == "skipped"


def test_helpers_without_plugin():
    set_current_plugin(None)
    with step("No collector"):
        info("still logs")
        attach("text", "value")


def test_jsonl_round_trip(tmp_path):
    path = tmp_path / "reports" / generate_output_filename()
    with JSONLWriter(path) as writer:
        writer.write_event(TestEvent("session_start"))
        writer.write_event(TestEvent("attachment", attachment_name="Arabic Response", attachment="مرحبا"))

    events = list(read_events(path))
    assert [e["event_type"] for e in events] == ["session_start", "attachment"]
    assert events[1]["attachment"] == "مرحبا"
    assert "nodeid" not in events[0]


def test_output_filename():
    name = generate_output_filename("smoke")
    assert name.startswith("smoke_")
    assert name.endswith(".jsonl")


def test_build_pytest_args(tmp_path):
    args = build_pytest_args(
        markers=["ui", "security"],
        headless=False,
        browser="firefox",
        limit=3,
        run_e2e=True,
        tests_dir=tmp_path,
    )
    assert args == [
        str(tmp_path), "-m", "ui or security", "--headed",
        "--browser", "firefox", "--limit", "3", "--run-e2e",
    ]
    assert build_pytest_args(tests_dir=tmp_path) == [str(tmp_path)]
