"""
Shared fakes for the gateway tests.
"""

import threading
from unittest.mock import Mock

import pytest

from smsgateway.utils.exceptions import TransportError
from smsgateway.whatsapp.supervisor import ConnectionSupervisor


class FakeTransport:
    """In-memory transport; events are pushed by the test through ``listener``."""

    def __init__(self):
        self.listeners = []
        self.sent = []
        self.close_calls = 0
        self.fail_open = False
        self.blocked_bodies: set[str] = set()
        self.release = threading.Event()

    @property
    def listener(self):
        return self.listeners[-1]

    def open(self, listener):
        if self.fail_open:
            raise TransportError("server down")
        self.listeners.append(listener)

    def send_text(self, address, body):
        if body in self.blocked_bodies:
            self.release.wait(5)
        self.sent.append((address, body))
        return {"status": "success", "to": address}

    def close(self):
        self.close_calls += 1


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def transport():
    fake = FakeTransport()
    yield fake
    fake.release.set()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler():
    return Mock()


@pytest.fixture
def make_supervisor(transport, scheduler):
    created = []

    def factory(notifier=None, **kwargs):
        supervisor = ConnectionSupervisor(
            transport=transport,
            notifier=notifier or Mock(),
            scheduler=scheduler,
            **kwargs,
        )
        created.append(supervisor)
        return supervisor

    yield factory

    transport.release.set()
    for supervisor in created:
        supervisor.cleanup()
