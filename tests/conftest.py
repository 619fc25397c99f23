from __future__ import annotations

import threading
from datetime import datetime

import pytest

from schooltap.errors import ProviderError, ValidationError
from schooltap.models import Student
from schooltap.notify import NotificationDispatcher
from schooltap.scanner import ScanProcessor
from schooltap.storage import RecordStore


class FakeTransport:
    """Records every outgoing SMS; numbers listed in ``failures`` raise."""

    def __init__(self, failures: dict[str, ProviderError] | None = None):
        self.failures = failures or {}
        self.sent: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def send(self, to: str, text: str):
        if to in self.failures:
            raise self.failures[to]
        with self._lock:
            self.sent.append((to, text))
        return {"code": "ok"}


class FakeSpeaker:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.spoken: list[str] = []
        self.done = threading.Event()

    def say(self, text: str):
        self.spoken.append(text)
        self.done.set()
        if self.error:
            raise self.error


class FakeTagSource:
    def __init__(self, start_error: Exception | None = None):
        self.start_error = start_error
        self.started = 0
        self.stopped = 0
        self.on_tag = None
        self.on_failure = None

    def start(self, on_tag, on_failure=None):
        if self.start_error:
            raise self.start_error
        self.started += 1
        self.on_tag = on_tag
        self.on_failure = on_failure

    def stop(self):
        self.stopped += 1

    def emit(self, tag_id, now=None):
        self.on_tag(tag_id, now)


@pytest.fixture
def store(tmp_path):
    return RecordStore(str(tmp_path / "data"))


@pytest.fixture
def jane():
    return Student(rfid="A1", name="Jane Doe", admission_number="ADM-001", parent_phone="0800000001")


@pytest.fixture
def two_parent_student():
    return Student(
        rfid="C3",
        name="Sam Okafor",
        admission_number="ADM-003",
        parent_phone="0800000003",
        parent_phone2="0800000004",
    )


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def dispatcher(store, transport):
    return NotificationDispatcher(store, transport)


@pytest.fixture
def processor(store, dispatcher):
    return ScanProcessor(store, dispatcher)


@pytest.fixture
def morning():
    return datetime(2026, 2, 2, 9, 0)


@pytest.fixture
def failing_second_phone():
    return FakeTransport({"234800000004": ValidationError("Invalid number (Status: 400)", 400)})
