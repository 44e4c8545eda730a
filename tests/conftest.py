"""Pytest configuration for the Stackathon test suite."""

import io
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stackathon import run_source
from stackathon.runtime import RunResult


class Captured:
    """Result of running a snippet: the RunResult plus what it printed."""

    def __init__(self, result: RunResult, out: str):
        self.result = result
        self.out = out

    @property
    def stack(self):
        return self.result.stack


@pytest.fixture
def run_stk():
    """Run source text with in-memory stdin/stdout."""

    def _run(source: str, stdin: str = "", loader=None) -> Captured:
        out = io.StringIO()
        result = run_source(
            source, stdin=io.StringIO(stdin), stdout=out, loader=loader
        )
        return Captured(result, out.getvalue())

    return _run
