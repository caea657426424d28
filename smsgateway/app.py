"""
Gateway application: wiring, scheduling and process lifecycle.

Builds the notifier, queue API client, connection supervisor and
delivery loop, drives them from one APScheduler background scheduler,
and maps the outcome to a process exit code:

    0  graceful shutdown (SIGINT/SIGTERM)
    1  startup failure, unhandled fault or unrecoverable WhatsApp session
"""

import argparse
import signal
import threading

from apscheduler.events import EVENT_JOB_ERROR, JobExecutionEvent
from apscheduler.schedulers.background import BackgroundScheduler
from pydantic import ValidationError

from smsgateway.utils import logger, setup_logger
from smsgateway.utils.exceptions import ConfigurationError
from smsgateway.config import Settings, get_settings
from smsgateway.notifications import create_notifier
from smsgateway.queue_api import create_api_client
from smsgateway.whatsapp import create_supervisor
from smsgateway.delivery import create_delivery_loop


EXIT_OK = 0
EXIT_FAILURE = 1


class GatewayApp:
    """
    Owns the gateway components and their lifecycle.

    Features:
    - Single scheduler for polling and reconnect jobs
    - Graceful shutdown on SIGINT/SIGTERM
    - Fatal session loss and unhandled errors stop the process with code 1
    """

    def __init__(
        self,
        settings: Settings,
        interval_seconds: float | None = None,
    ):
        """
        Initialize the application.

        Args:
            settings: Application settings
            interval_seconds: Polling interval override
        """
        self.settings = settings
        self.scheduler = BackgroundScheduler(timezone="UTC")
        self.notifier = create_notifier(settings)
        self.api = create_api_client(settings)
        self.supervisor = create_supervisor(
            settings,
            self.notifier,
            self.scheduler,
            on_fatal=self._on_fatal,
        )
        self.loop = create_delivery_loop(
            settings,
            self.api,
            self.supervisor,
            self.notifier,
            interval_seconds=interval_seconds,
        )

        self._shutdown_requested = threading.Event()
        self._exit_code = EXIT_OK
        self._shutdown_reason: str | None = None
        self._stopped = False
        self._stop_lock = threading.Lock()

        self.scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)

    @property
    def exit_code(self) -> int:
        return self._exit_code

    # ------------------------------------------------------------------
    # Shutdown triggers
    # ------------------------------------------------------------------

    def request_shutdown(self, exit_code: int, reason: str) -> None:
        """Ask the main thread to stop. The first request decides the exit code."""
        if self._shutdown_requested.is_set():
            return
        logger.info(f"Shutdown requested ({reason})")
        self._exit_code = exit_code
        self._shutdown_reason = reason
        self._shutdown_requested.set()

    def _setup_signal_handlers(self) -> None:
        signal.signal(signal.SIGINT, self._on_signal)
        signal.signal(signal.SIGTERM, self._on_signal)

    def _on_signal(self, signum: int, frame) -> None:
        logger.info(f"Received signal {signum}, shutting down gracefully...")
        self.request_shutdown(EXIT_OK, f"signal {signum}")

    def _install_exception_hooks(self) -> None:
        def thread_hook(args: threading.ExceptHookArgs) -> None:
            self._on_unhandled(args.exc_value, where=f"thread {args.thread.name if args.thread else '?'}")
        threading.excepthook = thread_hook

    def _on_unhandled(self, error: BaseException | None, where: str) -> None:
        logger.opt(exception=error).critical(f"Unhandled error in {where}: {error}")
        self.notifier.critical(f"Error no controlado en {where}: {error}")
        self.request_shutdown(EXIT_FAILURE, f"unhandled error in {where}")

    def _on_job_error(self, event: JobExecutionEvent) -> None:
        logger.error(f"Job {event.job_id} failed with exception: {event.exception}")
        if event.traceback:
            logger.error(event.traceback)
        self._on_unhandled(event.exception, where=f"job {event.job_id}")

    def _on_fatal(self, reason: str) -> None:
        self.request_shutdown(EXIT_FAILURE, reason)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _start(self) -> bool:
        """Log in, open the WhatsApp session and start the scheduler."""
        if not self.api.login():
            logger.error("Could not log in to the queue API")
            self.notifier.critical("No se pudo iniciar sesión en la API")
            return False
        logger.info("Logged in to the queue API")

        self.scheduler.start()

        if not self.supervisor.initialize():
            logger.error("Could not start the WhatsApp session")
            self.notifier.critical("No se pudo iniciar el servicio de WhatsApp")
            return False
        logger.info("WhatsApp session starting")
        return True

    def run(self) -> int:
        """
        Run until a shutdown is requested.

        Returns:
            Process exit code
        """
        logger.info("=" * 60)
        logger.info("SMS GATEWAY")
        logger.info(f"Environment: {self.settings.environment}")
        logger.info(f"Queue API: {self.settings.api.base_url}")
        logger.info(f"Polling interval: {self.loop.interval_seconds}s")
        logger.info("=" * 60)

        self._setup_signal_handlers()
        self._install_exception_hooks()

        try:
            if not self._start():
                return EXIT_FAILURE

            self.loop.start(self.scheduler)
            self.notifier.info("Gateway iniciado")

            while not self._shutdown_requested.wait(timeout=1.0):
                pass
            return self._exit_code
        except Exception as e:
            self._on_unhandled(e, where="main thread")
            return EXIT_FAILURE
        finally:
            self.shutdown()

    def run_once(self, connect_timeout: float = 60.0) -> int:
        """
        Connect, run a single delivery cycle and stop.

        Args:
            connect_timeout: Seconds to wait for the session to connect

        Returns:
            Process exit code
        """
        try:
            if not self._start():
                return EXIT_FAILURE

            waited = 0.0
            while not self.supervisor.is_connected and waited < connect_timeout:
                if self._shutdown_requested.wait(0.5):
                    return self._exit_code
                waited += 0.5

            if not self.supervisor.is_connected:
                logger.error(f"WhatsApp not connected after {connect_timeout}s")
                return EXIT_FAILURE

            report = self.loop.run_cycle()
            if report is None:
                return EXIT_FAILURE
            logger.info(
                f"Cycle result: fetched={report.fetched} sent={report.sent} "
                f"failed={report.failed} error={report.fetch_error}"
            )
            return EXIT_OK if report.fetch_error is None else EXIT_FAILURE
        except Exception as e:
            self._on_unhandled(e, where="main thread")
            return EXIT_FAILURE
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        """Stop timers and release every resource. Idempotent."""
        with self._stop_lock:
            if self._stopped:
                return
            self._stopped = True

        logger.info("Stopping gateway...")
        self.loop.stop()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        self.supervisor.cleanup()
        self.api.close()

        reason = f" ({self._shutdown_reason})" if self._shutdown_reason else ""
        self.notifier.info(f"Gateway detenido{reason}", category="shutdown")
        self.notifier.close()
        logger.info("Gateway stopped")


def main(argv: list[str] | None = None) -> int:
    """Command line entry point."""
    parser = argparse.ArgumentParser(
        description="WhatsApp delivery gateway for the SMS supplier queue API"
    )
    parser.add_argument(
        "--run-once",
        action="store_true",
        help="Run a single delivery cycle instead of polling",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Polling interval in milliseconds (default: from settings)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level (default: from settings)",
    )
    args = parser.parse_args(argv)

    try:
        settings = get_settings()
    except (ConfigurationError, ValidationError) as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_FAILURE

    setup_logger(
        level=args.log_level or settings.logging.level,
        log_dir=settings.logging.log_dir if settings.logging.to_file else None,
        log_file=settings.logging.log_file,
        rotation=settings.logging.rotation,
        retention=settings.logging.retention,
    )

    interval_seconds = args.interval / 1000 if args.interval else None

    try:
        app = GatewayApp(settings, interval_seconds=interval_seconds)
        if args.run_once:
            return app.run_once()
        return app.run()
    except Exception as e:
        logger.exception(f"Gateway crashed: {e}")
        return EXIT_FAILURE


__all__ = ["GatewayApp", "main", "EXIT_OK", "EXIT_FAILURE"]
