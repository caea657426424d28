"""
Connection supervisor for the WhatsApp session.

Owns the transport session and its connectivity state machine:

    DISCONNECTED -> CONNECTING -> CONNECTED
    CONNECTED -> RECONNECTING -> CONNECTING   (close, send timeout)
    any -> FATAL                              (logged out, attempts exhausted)

Reconnection attempts are scheduled on the shared APScheduler instance
with a capped exponential backoff.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable

from apscheduler.jobstores.base import JobLookupError

from smsgateway.utils import logger
from smsgateway.utils.exceptions import DeliveryTimeout, TransportUnavailable
from smsgateway.notifications import AlertNotifier
from smsgateway.whatsapp.events import (
    CloseReason,
    CredentialsUpdated,
    EventListener,
    SessionClosed,
    SessionOpened,
    Transport,
    TransportEvent,
)


RECONNECT_JOB_ID = "whatsapp_reconnect"


class ConnectionState(str, Enum):
    """Connectivity state of the WhatsApp session."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FATAL = "fatal"


def backoff_delay(attempt: int, base_ms: int, cap_ms: int) -> int:
    """
    Delay before a reconnection attempt.

    Args:
        attempt: 1-based attempt number
        base_ms: Delay of the first attempt
        cap_ms: Upper bound

    Returns:
        Delay in milliseconds
    """
    return min(base_ms * 2 ** (max(attempt, 1) - 1), cap_ms)


class ConnectionSupervisor:
    """
    Drives the WhatsApp session through its lifecycle.

    The connectivity state is only mutated here; the delivery loop reads
    it through ``state`` and ``is_connected``.
    """

    def __init__(
        self,
        transport: Transport,
        notifier: AlertNotifier,
        scheduler,
        max_attempts: int = 10,
        backoff_base_ms: int = 2000,
        backoff_cap_ms: int = 60000,
        send_timeout: float = 30.0,
        on_fatal: Callable[[str], None] | None = None,
    ):
        """
        Initialize the supervisor.

        Args:
            transport: Chat transport
            notifier: Alert notifier
            scheduler: APScheduler scheduler used for reconnect jobs
            max_attempts: Consecutive failed attempts before giving up
            backoff_base_ms: First reconnect delay
            backoff_cap_ms: Maximum reconnect delay
            send_timeout: Deadline for a single send, in seconds
            on_fatal: Called once with the reason when the session is lost for good
        """
        self.transport = transport
        self.notifier = notifier
        self.scheduler = scheduler
        self.max_attempts = max_attempts
        self.backoff_base_ms = backoff_base_ms
        self.backoff_cap_ms = backoff_cap_ms
        self.send_timeout = send_timeout
        self.on_fatal = on_fatal

        self._lock = threading.RLock()
        self._state = ConnectionState.DISCONNECTED
        self._attempt = 0
        # Bumped whenever a session is opened or abandoned; events carry the
        # generation of the session that produced them
        self._generation = 0
        self._reconnect_job = None
        self._cleaned_up = False
        self._send_pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="wa-send")

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def attempt(self) -> int:
        return self._attempt

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> bool:
        """
        Open the first session.

        Returns:
            True if the transport accepted the session request
        """
        with self._lock:
            if self._state is not ConnectionState.DISCONNECTED:
                logger.warning(f"initialize() called in state {self._state.value}")
                return self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED)

        logger.info("Starting WhatsApp session...")
        if self._open_session():
            return True

        with self._lock:
            self._state = ConnectionState.DISCONNECTED
        return False

    def cleanup(self) -> None:
        """Release the session and cancel pending reconnects. Idempotent."""
        with self._lock:
            if self._cleaned_up:
                return
            self._cleaned_up = True
            self._generation += 1
            self._cancel_reconnect()
            if self._state is not ConnectionState.FATAL:
                self._state = ConnectionState.DISCONNECTED

        logger.info("Releasing WhatsApp session")
        self._close_transport()
        self._send_pool.shutdown(wait=False, cancel_futures=True)

    def _open_session(self) -> bool:
        with self._lock:
            self._generation += 1
            generation = self._generation
            self._state = ConnectionState.CONNECTING

        try:
            self.transport.open(self._listener(generation))
            return True
        except Exception as e:
            logger.error(f"Failed to open WhatsApp session: {e}")
            return False

    def _listener(self, generation: int) -> EventListener:
        def listener(event: TransportEvent) -> None:
            self.handle_event(event, generation=generation)
        return listener

    def _close_transport(self) -> None:
        try:
            self.transport.close()
        except Exception as e:
            logger.warning(f"Error closing WhatsApp transport: {e}")

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def handle_event(self, event: TransportEvent, generation: int | None = None) -> None:
        """
        Apply a transport event to the state machine.

        Args:
            event: The transport event
            generation: Session that produced the event; stale sessions are ignored
        """
        with self._lock:
            if generation is not None and generation != self._generation:
                logger.debug(f"Ignoring {event!r} from superseded session {generation}")
                return
            if self._state is ConnectionState.FATAL or self._cleaned_up:
                return

            fatal_reason = None
            if isinstance(event, SessionOpened):
                self._on_opened()
            elif isinstance(event, SessionClosed):
                fatal_reason = self._on_closed(event)
            elif isinstance(event, CredentialsUpdated):
                self._on_credentials(event)
            else:
                raise TypeError(f"Unknown transport event: {event!r}")

        if fatal_reason:
            self._signal_fatal(fatal_reason)

    def _on_opened(self) -> None:
        if self._state is ConnectionState.CONNECTED:
            return
        self._state = ConnectionState.CONNECTED
        self._attempt = 0
        self._cancel_reconnect()
        logger.info("WhatsApp connected")
        self.notifier.success("WhatsApp conectado")

    def _on_closed(self, event: SessionClosed) -> str | None:
        detail = f"{event.reason.value}" + (f": {event.detail}" if event.detail else "")
        if event.reason is CloseReason.LOGGED_OUT:
            return self._enter_fatal(f"Session logged out ({detail}); scan a new QR code")
        return self._connection_lost(f"session closed ({detail})")

    def _on_credentials(self, event: CredentialsUpdated) -> None:
        if event.qr_code:
            logger.warning(f"WhatsApp login required, scan the QR code (attempt {event.attempt})")
            logger.info(f"QR code: {event.qr_code}")
        else:
            logger.info("WhatsApp credentials updated")

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def _connection_lost(self, reason: str) -> str | None:
        """Move to RECONNECTING, or FATAL when attempts are exhausted."""
        if self._state not in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            logger.debug(f"Ignoring connection loss in state {self._state.value}: {reason}")
            return None

        if self._attempt >= self.max_attempts:
            return self._enter_fatal(
                f"Reconnection failed after {self._attempt} attempts (last: {reason})"
            )

        self._attempt += 1
        self._generation += 1
        self._state = ConnectionState.RECONNECTING
        delay_ms = backoff_delay(self._attempt, self.backoff_base_ms, self.backoff_cap_ms)

        logger.warning(
            f"WhatsApp {reason}; reconnect attempt {self._attempt}/{self.max_attempts} "
            f"in {delay_ms / 1000:.1f}s"
        )
        self.notifier.warning(
            f"WhatsApp desconectado ({reason}). "
            f"Reintento {self._attempt}/{self.max_attempts} en {delay_ms / 1000:.0f}s"
        )

        self._reconnect_job = self.scheduler.add_job(
            self._reconnect,
            trigger="date",
            run_date=datetime.now(timezone.utc) + timedelta(milliseconds=delay_ms),
            id=RECONNECT_JOB_ID,
            name="WhatsApp Reconnect",
            replace_existing=True,
        )
        return None

    def _reconnect(self) -> None:
        with self._lock:
            if self._state is not ConnectionState.RECONNECTING or self._cleaned_up:
                return
            self._reconnect_job = None

        logger.info(f"Reconnecting WhatsApp (attempt {self._attempt})...")
        self._close_transport()
        if self._open_session():
            return

        with self._lock:
            fatal_reason = self._connection_lost("could not open session")
        if fatal_reason:
            self._signal_fatal(fatal_reason)

    def _cancel_reconnect(self) -> None:
        if self._reconnect_job is None:
            return
        try:
            self._reconnect_job.remove()
        except JobLookupError:
            pass
        self._reconnect_job = None

    def _enter_fatal(self, reason: str) -> str:
        self._state = ConnectionState.FATAL
        self._generation += 1
        self._cancel_reconnect()
        logger.critical(f"WhatsApp session unrecoverable: {reason}")
        self.notifier.critical(f"WhatsApp sin conexión, el gateway se detiene: {reason}")
        return reason

    def _signal_fatal(self, reason: str) -> None:
        if self.on_fatal is not None:
            self.on_fatal(reason)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send_text(self, address: str, body: str) -> Any:
        """
        Send a text message over the session.

        Args:
            address: Normalized destination number
            body: Message text

        Returns:
            The transport's delivery receipt

        Raises:
            TransportUnavailable: If the session is not connected
            DeliveryTimeout: If the send does not finish within ``send_timeout``
        """
        with self._lock:
            if self._state is not ConnectionState.CONNECTED:
                raise TransportUnavailable(state=self._state.value)
            generation = self._generation

        future = self._send_pool.submit(self.transport.send_text, address, body)
        try:
            return future.result(timeout=self.send_timeout)
        except FutureTimeout:
            future.cancel()
            logger.error(f"Send to {address} timed out after {self.send_timeout}s")
            # A hung send means the session is dead
            with self._lock:
                fatal_reason = None
                if self._generation == generation:
                    fatal_reason = self._connection_lost(
                        f"send timed out after {self.send_timeout}s"
                    )
            if fatal_reason:
                self._signal_fatal(fatal_reason)
            raise DeliveryTimeout(
                f"Send to {address} timed out after {self.send_timeout}s",
                timeout=self.send_timeout,
            )


__all__ = ["ConnectionState", "ConnectionSupervisor", "backoff_delay", "RECONNECT_JOB_ID"]
