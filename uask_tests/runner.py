"""Test runner for U-Ask chatbot Playwright tests."""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional

import pytest

from uask_tests import console
from uask_tests.config import Settings, get_settings
from uask_tests.output import JSONLWriter, generate_output_filename
from uask_tests.plugin import ResultCollectorPlugin, TestEvent, set_current_plugin

log = logging.getLogger(__name__)

TESTS_DIR = Path(__file__).parent / "tests"

ATTACHMENT_PREVIEW_LINES = 6


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class RunSummary:
    """Summary of a test run."""
    run_id: str
    status: RunStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    duration_seconds: float = 0
    current_test: Optional[str] = None
    output_file: Optional[str] = None
    skip_reasons: List[str] = field(default_factory=list)


def _print_attachment(event: TestEvent):
    lines = (event.attachment or "").splitlines()
    console.writeln(f"  {console.dim('@')} {console.label(event.attachment_name + ':')}")
    for line in lines[:ATTACHMENT_PREVIEW_LINES]:
        console.writeln(f"{' ' * 6}{console.dim(line)}")
    if len(lines) > ATTACHMENT_PREVIEW_LINES:
        console.writeln(f"{' ' * 6}{console.dim(f'... {len(lines) - ATTACHMENT_PREVIEW_LINES} more lines')}")


def _print_event(event: TestEvent, run: RunSummary):
    """Print test event to console."""
    if event.event_type == "test_start":
        run.current_test = event.name
        console.writeln(f"\n{console.label('TEST:')} {console.info(event.name)}")

    elif event.event_type == "step":
        failed = event.outcome == "failed"
        if event.step_type == "info":
            icon = console.dim("i")
        elif failed:
            icon = console.error("x")
        else:
            icon = console.success("+")
        duration = console.dim(f" ({event.duration_ms}ms)") if event.duration_ms else ""
        console.writeln(f"  [{icon}] {event.step_name}{duration}")
        if event.message and failed:
            console.writeln(f"{' ' * 6}{console.error(event.message)}")

    elif event.event_type == "attachment":
        _print_attachment(event)

    elif event.event_type == "test_end":
        run.total += 1
        if event.outcome == "passed":
            run.passed += 1
            status = console.success("PASSED")
        elif event.outcome == "skipped":
            run.skipped += 1
            if event.message:
                run.skip_reasons.append(f"{event.name}: {event.message}")
            run.current_test = None
            return
        elif event.outcome == "failed":
            run.failed += 1
            status = console.error("FAILED")
        else:
            status = console.warn(event.outcome.upper())
        duration = console.dim(f" ({event.duration_seconds:.2f}s)") if event.duration_seconds else ""
        console.writeln(f"  => {status}{duration}")
        if event.message and event.outcome == "failed":
            console.writeln(f"{' ' * 5}{console.error('Error:')} {event.message}")
        run.current_test = None


def build_pytest_args(
    markers: Optional[List[str]] = None,
    headless: bool = True,
    browser: Optional[str] = None,
    limit: Optional[int] = None,
    run_e2e: bool = False,
    tests_dir: Path = TESTS_DIR,
) -> List[str]:
    """Command line handed to pytest.main for one run."""
    args = [str(tests_dir)]
    if markers:
        args.extend(["-m", " or ".join(markers)])
    if not headless:
        args.append("--headed")
    if browser:
        args.extend(["--browser", browser])
    if limit:
        args.extend(["--limit", str(limit)])
    if run_e2e:
        args.append("--run-e2e")
    return args


class TestRunner:
    """Runs the pytest suite in-process and streams events to JSONL and the console."""
    __test__ = False

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def run(
        self,
        markers: Optional[List[str]] = None,
        headless: bool = True,
        output_path: Optional[Path] = None,
        limit: Optional[int] = None,
        run_e2e: bool = False,
    ) -> RunSummary:
        """Run tests and return summary."""
        run = RunSummary(
            run_id=str(uuid.uuid4()),
            status=RunStatus.RUNNING,
            started_at=datetime.now(),
        )

        if output_path is None:
            output_path = self.settings.reports_path / generate_output_filename()
        run.output_file = str(output_path)

        pytest_args = build_pytest_args(
            markers=markers,
            headless=headless,
            browser=self.settings.browser,
            limit=limit,
            run_e2e=run_e2e or self.settings.run_e2e,
        )
        log.info("Starting test run %s: pytest %s", run.run_id[:8], " ".join(pytest_args))

        with JSONLWriter(output_path) as writer:
            def on_event(event: TestEvent):
                writer.write_event(event)
                _print_event(event, run)

            plugin = ResultCollectorPlugin(on_event=on_event)
            set_current_plugin(plugin)
            try:
                exit_code = pytest.main(pytest_args, plugins=[plugin])
            finally:
                set_current_plugin(None)

        run.completed_at = datetime.now()
        run.duration_seconds = (run.completed_at - run.started_at).total_seconds()
        run.status = RunStatus.COMPLETED if exit_code in (0, pytest.ExitCode.NO_TESTS_COLLECTED) else RunStatus.FAILED
        log.info("Test run %s finished: %s (exit code %s)", run.run_id[:8], run.status.value, int(exit_code))
        return run


def run_tests_sync(
    markers: Optional[List[str]] = None,
    headless: bool = True,
    output_path: Optional[Path] = None,
    limit: Optional[int] = None,
    run_e2e: bool = False,
) -> RunSummary:
    """Synchronous helper to run tests."""
    return TestRunner().run(
        markers=markers,
        headless=headless,
        output_path=output_path,
        limit=limit,
        run_e2e=run_e2e,
    )
