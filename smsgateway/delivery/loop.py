"""
Delivery loop that moves messages from the queue API to WhatsApp.

Each cycle:
1. Fetches pending messages from the queue API
2. Sends them one by one over the WhatsApp session
3. Confirms every message upstream as COMPLETADO or ERROR
4. Lets the notifier emit its periodic summary
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.triggers.interval import IntervalTrigger

from smsgateway.utils import logger
from smsgateway.utils.exceptions import EmptyMessage
from smsgateway.notifications import AlertNotifier
from smsgateway.queue_api import DeliveryItem, DeliveryOutcome, QueueAPIClient
from smsgateway.whatsapp import ConnectionSupervisor
from smsgateway.delivery.address import normalize_address


@dataclass
class CycleReport:
    """Outcome of one delivery cycle."""
    fetched: int = 0
    sent: int = 0
    failed: int = 0
    interrupted: bool = False
    fetch_error: str | None = None


class DeliveryLoop:
    """
    Periodic poll-send-confirm cycle.

    Cycles never overlap, and a cycle does nothing while the WhatsApp
    session is not connected. Every processed message is confirmed
    exactly once so the queue API does not hand it out again.
    """

    JOB_ID = "message_polling"

    def __init__(
        self,
        api: QueueAPIClient,
        supervisor: ConnectionSupervisor,
        notifier: AlertNotifier,
        interval_seconds: float = 15.0,
        settle_seconds: float = 1.0,
        country_code: str = "591",
        operator_prefixes: str = "67",
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the delivery loop.

        Args:
            api: Queue API client
            supervisor: WhatsApp connection supervisor
            notifier: Alert notifier
            interval_seconds: Polling interval
            settle_seconds: Pause between two sends
            country_code: Country code for destination numbers
            operator_prefixes: Valid leading digits of mobile numbers
            sleep: Sleep function (replaced in tests)
        """
        self.api = api
        self.supervisor = supervisor
        self.notifier = notifier
        self.interval_seconds = interval_seconds
        self.settle_seconds = settle_seconds
        self.country_code = country_code
        self.operator_prefixes = operator_prefixes
        self._sleep = sleep

        self._cycle_lock = threading.Lock()
        self._job = None

    @property
    def is_processing(self) -> bool:
        return self._cycle_lock.locked()

    def start(self, scheduler) -> None:
        """Register the polling job on the scheduler."""
        self._job = scheduler.add_job(
            self.run_cycle,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=self.JOB_ID,
            name="Pending Messages Polling",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info(f"Message polling every {self.interval_seconds}s")

    def stop(self) -> None:
        """Remove the polling job."""
        if self._job is None:
            return
        try:
            self._job.remove()
        except JobLookupError:
            pass
        self._job = None
        logger.info("Message polling stopped")

    def run_cycle(self) -> CycleReport | None:
        """
        Run one delivery cycle.

        Returns:
            CycleReport, or None if the cycle was skipped
        """
        if not self._cycle_lock.acquire(blocking=False):
            logger.debug("Previous cycle still running, skipping")
            return None

        try:
            report = None
            if self.supervisor.is_connected:
                report = self._process_pending()
            else:
                logger.debug(f"WhatsApp {self.supervisor.state.value}, skipping cycle")

            self.notifier.summary(self.supervisor.is_connected)
            return report
        finally:
            self._cycle_lock.release()

    def _process_pending(self) -> CycleReport:
        pending = self.api.get_pending_items()
        report = CycleReport(fetched=len(pending), fetch_error=pending.error)

        if not pending.ok:
            self._alert_fetch_error(pending.error)
            return report

        if pending.items:
            logger.info(f"Processing {len(pending)} messages")

        for index, item in enumerate(pending.items):
            if index:
                self._sleep(self.settle_seconds)

            # Connectivity can drop between two messages
            if not self.supervisor.is_connected:
                logger.warning("WhatsApp disconnected, waiting for reconnection...")
                report.interrupted = True
                break

            if self._deliver(item):
                report.sent += 1
            else:
                report.failed += 1

        if report.fetched:
            logger.info(
                f"Cycle done: {report.sent} sent, {report.failed} failed"
                + (", interrupted" if report.interrupted else "")
            )
        return report

    def _deliver(self, item: DeliveryItem) -> bool:
        """Send one message and confirm its outcome. Returns True on success."""
        try:
            address = normalize_address(
                item.destination,
                country_code=self.country_code,
                operator_prefixes=self.operator_prefixes,
            )
            if not item.body.strip():
                raise EmptyMessage(f"Message {item.id} has no text")
            logger.info(f"Sending message {item.id} to {address}")
            self.supervisor.send_text(address, item.body)
        except Exception as e:
            # Any send failure is final for this item; an unconfirmed item
            # would be handed out again forever
            reason = str(e) or e.__class__.__name__
            logger.error(f"Error sending message {item.id}: {reason}")
            self.notifier.record_failed()
            self.notifier.warning(
                f"Error enviando mensaje {item.id} a {item.destination}: {reason}",
                category="delivery",
            )
            if not self.api.confirm_item(item.id, DeliveryOutcome.ERROR, reason):
                logger.error(f"Could not confirm failed message {item.id}")
            return False

        self.notifier.record_sent()
        if self.api.confirm_item(item.id, DeliveryOutcome.COMPLETADO):
            logger.info(f"Message {item.id} sent and confirmed")
        else:
            logger.error(f"Message {item.id} sent but confirmation was not accepted")
        return True

    def _alert_fetch_error(self, error: str | None) -> None:
        if error == "auth":
            self.notifier.critical(
                "No se pudo autenticar con la API de mensajes", category="auth"
            )
        else:
            self.notifier.warning(
                f"Error obteniendo mensajes pendientes ({error})", category="queue_api"
            )


__all__ = ["DeliveryLoop", "CycleReport"]
