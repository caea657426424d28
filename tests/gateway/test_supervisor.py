"""
Tests for the WhatsApp connection supervisor state machine.
"""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from smsgateway.utils.exceptions import DeliveryTimeout, TransportUnavailable
from smsgateway.whatsapp import (
    CloseReason,
    ConnectionState,
    CredentialsUpdated,
    SessionClosed,
    SessionOpened,
    backoff_delay,
)


def run_scheduled_reconnect(scheduler):
    """Run the most recently scheduled reconnect job."""
    scheduler.add_job.call_args.args[0]()


def test_backoff_doubles_up_to_cap():
    delays = [backoff_delay(attempt, 2000, 60000) for attempt in range(1, 7)]
    assert delays == [2000, 4000, 8000, 16000, 32000, 60000]


def test_backoff_is_monotonic_and_capped():
    delays = [backoff_delay(attempt, 1500, 45000) for attempt in range(1, 30)]
    assert delays == sorted(delays)
    assert max(delays) == 45000


def test_initialize_then_open_reaches_connected(make_supervisor, transport):
    notifier = Mock()
    supervisor = make_supervisor(notifier)

    assert supervisor.state is ConnectionState.DISCONNECTED
    assert supervisor.initialize() is True
    assert supervisor.state is ConnectionState.CONNECTING
    notifier.success.assert_not_called()

    transport.listener(SessionOpened())

    assert supervisor.is_connected
    assert supervisor.attempt == 0
    notifier.success.assert_called_once()


def test_initialize_fails_when_transport_cannot_open(make_supervisor, transport, scheduler):
    transport.fail_open = True
    supervisor = make_supervisor()

    assert supervisor.initialize() is False
    assert supervisor.state is ConnectionState.DISCONNECTED
    scheduler.add_job.assert_not_called()


def test_close_schedules_reconnect_with_backoff(make_supervisor, transport, scheduler):
    notifier = Mock()
    supervisor = make_supervisor(notifier, backoff_base_ms=2000, backoff_cap_ms=60000)
    supervisor.initialize()
    transport.listener(SessionOpened())

    before = datetime.now(timezone.utc)
    transport.listener(SessionClosed(CloseReason.BROWSER_CLOSED))

    assert supervisor.state is ConnectionState.RECONNECTING
    assert supervisor.attempt == 1
    notifier.warning.assert_called_once()

    kwargs = scheduler.add_job.call_args.kwargs
    assert kwargs["trigger"] == "date"
    delay = (kwargs["run_date"] - before).total_seconds()
    assert 1.9 <= delay <= 3.0


def test_reconnect_reopens_and_resets_attempts(make_supervisor, transport, scheduler):
    supervisor = make_supervisor()
    supervisor.initialize()
    transport.listener(SessionOpened())
    transport.listener(SessionClosed())

    run_scheduled_reconnect(scheduler)

    assert supervisor.state is ConnectionState.CONNECTING
    assert transport.close_calls == 1
    assert len(transport.listeners) == 2

    transport.listener(SessionOpened())
    assert supervisor.state is ConnectionState.CONNECTED
    assert supervisor.attempt == 0


def test_attempts_increase_until_fatal(make_supervisor, transport, scheduler):
    """Consecutive failed reconnects raise the counter until max_attempts, then FATAL."""
    notifier = Mock()
    on_fatal = Mock()
    supervisor = make_supervisor(notifier, max_attempts=3, on_fatal=on_fatal)
    supervisor.initialize()
    transport.listener(SessionOpened())
    transport.listener(SessionClosed())
    transport.fail_open = True

    attempts = [supervisor.attempt]
    while supervisor.state is ConnectionState.RECONNECTING:
        run_scheduled_reconnect(scheduler)
        attempts.append(supervisor.attempt)

    assert attempts == [1, 2, 3, 3]
    assert supervisor.state is ConnectionState.FATAL
    on_fatal.assert_called_once()
    notifier.critical.assert_called_once()


def test_failed_session_close_counts_as_attempt(make_supervisor, transport, scheduler):
    supervisor = make_supervisor(max_attempts=5)
    supervisor.initialize()
    transport.listener(SessionOpened())
    transport.listener(SessionClosed())

    run_scheduled_reconnect(scheduler)
    transport.listener(SessionClosed(CloseReason.ERROR, detail="timeout"))

    assert supervisor.state is ConnectionState.RECONNECTING
    assert supervisor.attempt == 2


def test_logged_out_goes_straight_to_fatal(make_supervisor, transport, scheduler):
    notifier = Mock()
    on_fatal = Mock()
    supervisor = make_supervisor(notifier, on_fatal=on_fatal)
    supervisor.initialize()
    transport.listener(SessionOpened())

    transport.listener(SessionClosed(CloseReason.LOGGED_OUT))

    assert supervisor.state is ConnectionState.FATAL
    scheduler.add_job.assert_not_called()
    on_fatal.assert_called_once()
    notifier.critical.assert_called_once()

    # FATAL is terminal
    transport.listener(SessionOpened())
    assert supervisor.state is ConnectionState.FATAL


def test_events_from_superseded_session_are_ignored(make_supervisor, transport, scheduler):
    supervisor = make_supervisor()
    supervisor.initialize()
    transport.listener(SessionOpened())
    transport.listener(SessionClosed())
    run_scheduled_reconnect(scheduler)

    old_listener = transport.listeners[0]
    old_listener(SessionOpened())
    assert supervisor.state is ConnectionState.CONNECTING

    old_listener(SessionClosed())
    assert supervisor.attempt == 1


def test_credentials_update_does_not_alert(make_supervisor, transport):
    notifier = Mock()
    supervisor = make_supervisor(notifier)
    supervisor.initialize()

    transport.listener(CredentialsUpdated(qr_code="2@abc", attempt=1))

    assert supervisor.state is ConnectionState.CONNECTING
    notifier.success.assert_not_called()
    notifier.warning.assert_not_called()
    notifier.critical.assert_not_called()


def test_send_requires_connection(make_supervisor):
    supervisor = make_supervisor()

    with pytest.raises(TransportUnavailable):
        supervisor.send_text("59170012345", "hola")


def test_send_returns_transport_receipt(make_supervisor, transport):
    supervisor = make_supervisor()
    supervisor.initialize()
    transport.listener(SessionOpened())

    receipt = supervisor.send_text("59170012345", "hola")

    assert receipt["to"] == "59170012345"
    assert transport.sent == [("59170012345", "hola")]


def test_send_timeout_forces_reconnect_once(make_supervisor, transport, scheduler):
    """A hung send moves to RECONNECTING; the late close of that session is ignored."""
    supervisor = make_supervisor(send_timeout=0.05)
    supervisor.initialize()
    transport.listener(SessionOpened())
    transport.blocked_bodies.add("slow")

    with pytest.raises(DeliveryTimeout):
        supervisor.send_text("59170012345", "slow")

    assert supervisor.state is ConnectionState.RECONNECTING
    assert supervisor.attempt == 1

    transport.listener(SessionClosed())
    assert supervisor.attempt == 1
    assert scheduler.add_job.call_count == 1


def test_cleanup_is_idempotent(make_supervisor, transport, scheduler):
    supervisor = make_supervisor()
    supervisor.initialize()
    transport.listener(SessionOpened())
    transport.listener(SessionClosed())
    job = scheduler.add_job.return_value

    supervisor.cleanup()
    supervisor.cleanup()

    assert transport.close_calls == 1
    job.remove.assert_called_once()
    assert supervisor.state is ConnectionState.DISCONNECTED

    # Pending reconnect does nothing after cleanup
    run_scheduled_reconnect(scheduler)
    assert len(transport.listeners) == 1
