"""Shared test fixtures."""

import os
import threading
import uuid
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from pdfbot.errors import RenderError
from pdfbot.queue import JobQueue
from pdfbot.storage import Storage
from pdfbot.webhook import WebhookDispatcher


class FakeClock:
    """A clock that only moves when told to."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakeRenderer:
    """Writes a tiny PDF, failing the first ``failures`` calls."""

    def __init__(self, output_dir, failures=0, delay=0.0):
        self.output_dir = str(output_dir)
        self.failures = failures
        self.delay = delay
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def render(self, url, options):
        with self._lock:
            self.calls.append(url)
            call_number = len(self.calls)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                threading.Event().wait(self.delay)
            if call_number <= self.failures:
                raise RenderError(f"Could not render {url}")
            os.makedirs(self.output_dir, exist_ok=True)
            path = os.path.join(self.output_dir, f"{uuid.uuid4().hex}.pdf")
            with open(path, "wb") as f:
                f.write(b"%PDF-1.4\n%%EOF\n")
            return path
        finally:
            with self._lock:
                self.in_flight -= 1


class WebhookRecorder:
    """httpx mock transport that records every request it answers."""

    def __init__(self, status_code=200):
        self.status_code = status_code
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"received": True})

    def factory(self, config):
        return WebhookDispatcher(config, client=httpx.Client(transport=httpx.MockTransport(self)))


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def storage(tmp_path):
    return Storage(tmp_path / "storage")


@pytest.fixture()
def webhook_recorder():
    return WebhookRecorder()


@pytest.fixture()
def queue(storage, clock, webhook_recorder):
    return JobQueue(storage, clock=clock, dispatcher_factory=webhook_recorder.factory)


@pytest.fixture()
def renderer(tmp_path):
    return FakeRenderer(tmp_path / "render")


@pytest.fixture()
def webhook_config():
    return {"url": "https://hooks.example.com/pdf", "secret": "12345"}
