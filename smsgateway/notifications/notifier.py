"""
Rate-limited operational notifier.

Forwards alerts to the Telegram channel with a per-category minimum
interval, and aggregates delivery counters into a periodic summary.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from html import escape
from typing import Callable

from smsgateway.utils import logger
from smsgateway.notifications.telegram import TelegramChannel


SEVERITY_HEADERS = {
    "critical": "🔴 <b>CRÍTICO</b>",
    "warning": "🟡 <b>Advertencia</b>",
    "info": "🔵 <b>Info</b>",
    "success": "🟢 <b>OK</b>",
}


@dataclass(frozen=True)
class DeliveryStats:
    """Snapshot of the running delivery counters."""
    sent: int
    failed: int
    period_start: float


class AlertNotifier:
    """
    Fire-and-forget alert channel with per-category rate limiting.

    Alerts are handed to a single background worker so a slow or failing
    Telegram API never blocks the delivery pipeline. Pass
    ``background=False`` to deliver inline.
    """

    def __init__(
        self,
        channel: TelegramChannel,
        rate_limit_seconds: float = 60.0,
        summary_period_seconds: float = 3600.0,
        now_fn: Callable[[], float] = time.monotonic,
        background: bool = True,
    ):
        self.channel = channel
        self.rate_limit_seconds = rate_limit_seconds
        self.summary_period_seconds = summary_period_seconds
        self._now_fn = now_fn

        self._lock = threading.Lock()
        self._last_sent: dict[str, float] = {}
        self._sent = 0
        self._failed = 0
        self._period_start = now_fn()

        self._executor = (
            ThreadPoolExecutor(max_workers=1, thread_name_prefix="notifier")
            if background
            else None
        )

    @property
    def enabled(self) -> bool:
        return self.channel.is_configured

    def alert(self, message: str, category: str = "info") -> bool:
        """
        Send an alert unless its category is rate limited.

        Args:
            message: HTML-formatted message
            category: Rate-limit bucket

        Returns:
            True if the alert was dispatched
        """
        if not self.enabled:
            return False

        with self._lock:
            now = self._now_fn()
            last = self._last_sent.get(category)
            if last is not None and now - last < self.rate_limit_seconds:
                logger.debug(f"[Telegram] Rate limited: {category}")
                return False
            self._last_sent[category] = now

        if self._executor is None:
            self._deliver(message, category)
            return True

        try:
            self._executor.submit(self._deliver, message, category)
        except RuntimeError:
            logger.warning(f"[Telegram] Notifier closed, dropping alert (category={category})")
            return False
        return True

    def _deliver(self, message: str, category: str) -> None:
        try:
            if not self.channel.send(message):
                logger.warning(f"[Telegram] Alert not delivered (category={category})")
        except Exception as e:
            logger.error(f"[Telegram] Alert delivery crashed (category={category}): {e}")

    def _severity(self, severity: str, message: str, category: str | None) -> bool:
        # Severity doubles as the category unless the caller names one
        return self.alert(
            f"{SEVERITY_HEADERS[severity]}\n{escape(message)}",
            category or severity,
        )

    def critical(self, message: str, category: str | None = None) -> bool:
        return self._severity("critical", message, category)

    def warning(self, message: str, category: str | None = None) -> bool:
        return self._severity("warning", message, category)

    def info(self, message: str, category: str | None = None) -> bool:
        return self._severity("info", message, category)

    def success(self, message: str, category: str | None = None) -> bool:
        return self._severity("success", message, category)

    # Statistics

    def record_sent(self) -> None:
        with self._lock:
            self._sent += 1

    def record_failed(self) -> None:
        with self._lock:
            self._failed += 1

    @property
    def stats(self) -> DeliveryStats:
        with self._lock:
            return DeliveryStats(self._sent, self._failed, self._period_start)

    def summary(self, connected: bool) -> bool:
        """
        Send the periodic summary if the aggregation period has elapsed.

        Counters and the period start are reset whenever a summary is
        composed, even if the alert itself is disabled or fails.

        Args:
            connected: Current WhatsApp connectivity

        Returns:
            True if a summary was composed
        """
        with self._lock:
            now = self._now_fn()
            if now - self._period_start < self.summary_period_seconds:
                return False
            sent, failed = self._sent, self._failed
            self._sent = 0
            self._failed = 0
            self._period_start = now

        status = "✅ Conectado" if connected else "❌ Desconectado"
        message = (
            "📊 <b>Resumen última hora</b>\n"
            f"✅ Enviados: {sent}\n"
            f"❌ Fallidos: {failed}\n"
            f"📡 Estado: {status}"
        )
        logger.info(f"Hourly summary: sent={sent} failed={failed} connected={connected}")
        self.alert(message, "summary")
        return True

    def close(self) -> None:
        """Wait for queued alerts and stop the worker."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)


__all__ = ["AlertNotifier", "DeliveryStats", "SEVERITY_HEADERS"]
