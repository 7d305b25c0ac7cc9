"""Shared fixtures for unit tests."""

from typing import Any, Callable, Dict, List, Optional

import pytest

from fetchbay.engines.base import ProgressSink


class RecordingSink(ProgressSink):
    """ProgressSink that records every call.

    ``on_progress`` lets a test react to a report, e.g. to cancel mid-flight.
    """

    def __init__(self) -> None:
        self.started_result = True
        self.progress_result = True
        self.attach_result = True
        self.started_calls = 0
        self.reports: List[Dict[str, Any]] = []
        self.teardowns: List[Callable[[], None]] = []
        self.on_progress: Optional[Callable[[Dict[str, Any]], None]] = None

    def started(self) -> bool:
        self.started_calls += 1
        return self.started_result

    def progress(self, **counters: Any) -> bool:
        self.reports.append(counters)
        if self.on_progress is not None:
            self.on_progress(counters)
        return self.progress_result

    def attach(self, teardown: Callable[[], None]) -> bool:
        self.teardowns.append(teardown)
        return self.attach_result

    @property
    def downloaded(self) -> List[int]:
        return [r["downloaded_bytes"] for r in self.reports if "downloaded_bytes" in r]


@pytest.fixture
def sink() -> RecordingSink:
    """Create a recording progress sink."""
    return RecordingSink()


@pytest.fixture(autouse=True)
def reset_security_state() -> None:
    """Drop the global session store and login limiter between tests."""
    from fetchbay.core import rate_limiter
    from fetchbay.middleware import auth

    auth._auth_instance = None
    rate_limiter._rate_limiter = None
