import json
import linecache
import logging
import sys
import time
from contextlib import contextmanager
from typing import Union

import pytest

from uask_tests.page_objects.errors import ChallengeUnresolvedError
from uask_tests.plugin import log_attachment, log_step

log = logging.getLogger(__name__)


def _assertion_message(exc_tb) -> str:
    """Recover the message of a bare-evaluated assert from its source line.

    pytest's assertion rewriting does not reach the harness when the terminal
    reporter is disabled, so ``str(exc)`` can be empty.
    """
    tb = exc_tb.tb_next or exc_tb
    frame = tb.tb_frame
    source_line = linecache.getline(frame.f_code.co_filename, tb.tb_lineno).strip()
    if not source_line.startswith("assert ") or ", " not in source_line:
        return ""
    _, message_expr = source_line.split(", ", 1)
    try:
        return str(eval(message_expr, {**frame.f_globals, **frame.f_locals}))
    except Exception:
        return message_expr.strip('\'"')


@contextmanager
def step(description: str, continue_on_failure: bool = False, step_type: str = "action", start: float = None):
    """Context manager for test steps with logging.

    Args:
        description: Human-readable step description
        continue_on_failure: If True, don't re-raise exceptions
        step_type: "action", "info" or "wait"
        start: Optional start timestamp (defaults to now)
    """
    start_time = start or time.time()
    log.info("→ %s", description)

    try:
        yield
    except Exception:
        duration_ms = int((time.time() - start_time) * 1000)
        exc_type, exc_value, exc_tb = sys.exc_info()

        error_msg = str(exc_value) if exc_value.args else ""
        if not error_msg and isinstance(exc_value, AssertionError):
            error_msg = _assertion_message(exc_tb)

        error_msg = error_msg.replace("\n", f"\n{' ' * 6}")
        err = f"{exc_type.__name__}: {error_msg}" if error_msg else exc_type.__name__

        log.error("✗ %s (%dms): %s", description, duration_ms, err)
        log_step(description, "failed", err, duration_ms=duration_ms, step_type=step_type)
        if not continue_on_failure:
            raise
    else:
        duration_ms = int((time.time() - start_time) * 1000)
        log_step(description, "passed", duration_ms=duration_ms, step_type=step_type)


def info(message: str, outcome: str = "passed"):
    """Log an informational step (no timing expected).

    Args:
        message: Informational message to log
        outcome: "passed" or "failed" (default: "passed")
    """
    log.info(message)
    log_step(message, outcome, step_type="info")


def attach(name: str, content: Union[str, dict, list]):
    """Attach a named artifact (response text, scores, metrics) to the current test."""
    if not isinstance(content, str):
        content = json.dumps(content, indent=2, ensure_ascii=False)
    log.debug("Attachment %s: %s", name, content)
    log_attachment(name, content)


@contextmanager
def skip_on_challenge():
    """Turn an unsolved anti-bot challenge into a skip instead of a failure."""
    try:
        yield
    except ChallengeUnresolvedError as e:
        info(f"WARNING: {e}", outcome="skipped")
        pytest.skip(f"CAPTCHA appeared - manual solving required with --headed ({e})")
