"""JSONL report output for test runs."""

import json
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, TextIO

from uask_tests.plugin import TestEvent


class JSONLWriter:
    """Writes test events to JSONL format as they happen."""

    def __init__(self, output_path: Path):
        self.output_path = output_path
        self._file: Optional[TextIO] = None

    def __enter__(self):
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self.output_path, 'w', encoding='utf-8')
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._file:
            self._file.close()
            self._file = None

    def write_event(self, event: TestEvent):
        """Write a single event as a JSON line."""
        if self._file:
            self._file.write(json.dumps(event.to_dict(), ensure_ascii=False) + '\n')
            self._file.flush()


def read_events(path: Path) -> Iterator[dict]:
    """Yield the events of a JSONL report, skipping blank lines."""
    with open(path, encoding='utf-8') as f:
        for line in f:
            if line.strip():
                yield json.loads(line)


def generate_output_filename(prefix: str = "test_run") -> str:
    """Timestamped report filename, e.g. 'test_run_1706367000.jsonl'."""
    timestamp = int(datetime.now().timestamp())
    return f"{prefix}_{timestamp}.jsonl"
