"""
WhatsApp transport backed by a WPPConnect server sidecar.

The sidecar runs the WhatsApp Web session (and keeps its login tokens on
disk); this adapter starts the session, watches its status and sends
text messages over the sidecar's REST API.
"""

import threading
from typing import Any

import httpx

from smsgateway.utils import logger
from smsgateway.utils.exceptions import TransportError, TransportRejected
from smsgateway.whatsapp.events import (
    CloseReason,
    CredentialsUpdated,
    EventListener,
    SessionClosed,
    SessionOpened,
    TransportEvent,
)


OPEN_STATUSES = {"CONNECTED", "inChat", "isLogged", "qrReadSuccess", "chatsAvailable", "successChat"}
QR_STATUSES = {"QRCODE", "qrReadError", "waitForLogin"}
LOGGED_OUT_STATUSES = {"desconnectedMobile", "deleteToken", "LOGGED_OUT"}
CLOSED_STATUSES = {
    "CLOSED": CloseReason.DISCONNECTED,
    "DISCONNECTED": CloseReason.DISCONNECTED,
    "notLogged": CloseReason.DISCONNECTED,
    "autocloseCalled": CloseReason.DISCONNECTED,
    "serverClose": CloseReason.DISCONNECTED,
    "browserClose": CloseReason.BROWSER_CLOSED,
}

# Consecutive failed status polls before the session is reported closed
MAX_STATUS_FAILURES = 3


def translate_status(status: str | None, qr_code: str | None = None, attempt: int = 0) -> TransportEvent | None:
    """
    Map a WPPConnect session status to a transport event.

    Returns:
        The event, or None for intermediate statuses (initializing, etc.)
    """
    if not status:
        return None
    if status in OPEN_STATUSES:
        return SessionOpened()
    if status in LOGGED_OUT_STATUSES:
        return SessionClosed(CloseReason.LOGGED_OUT, detail=status)
    if status in CLOSED_STATUSES:
        return SessionClosed(CLOSED_STATUSES[status], detail=status)
    if status in QR_STATUSES:
        return CredentialsUpdated(qr_code=qr_code, attempt=attempt)
    return None


class WPPConnectTransport:
    """
    Transport speaking the WPPConnect server REST API.

    A daemon thread polls the session status and forwards changes to the
    listener given to ``open``.
    """

    def __init__(
        self,
        server_url: str,
        session: str = "mySession",
        secret_key: str | None = None,
        status_poll_seconds: float = 5.0,
        request_timeout: float = 10.0,
        send_timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize the transport.

        Args:
            server_url: WPPConnect server base URL
            session: Session name on the server
            secret_key: Server secret used to generate a bearer token
            status_poll_seconds: Interval between status checks
            request_timeout: Timeout for control requests
            send_timeout: Timeout for send requests
            transport: Optional httpx transport (used by tests)
        """
        self.server_url = server_url.rstrip("/")
        self.session = session
        self.secret_key = secret_key
        self.status_poll_seconds = status_poll_seconds
        self.request_timeout = request_timeout
        self.send_timeout = send_timeout
        self._transport = transport

        self._http: httpx.Client | None = None
        self._stop = threading.Event()
        self._watcher: threading.Thread | None = None
        self._lock = threading.Lock()

    def open(self, listener: EventListener) -> None:
        """
        Start the session on the server and begin watching its status.

        Raises:
            TransportError: If the server refuses or cannot be reached
        """
        self.close()

        http = httpx.Client(
            base_url=self.server_url,
            timeout=self.request_timeout,
            transport=self._transport,
        )
        try:
            if self.secret_key:
                token = self._generate_token(http)
                http.headers["Authorization"] = f"Bearer {token}"

            response = http.post(f"/api/{self.session}/start-session", json={"waitQrCode": False})
            if response.status_code >= 400:
                raise TransportError(f"start-session failed: {response.status_code} {response.text}")
        except httpx.HTTPError as e:
            http.close()
            raise TransportError(f"WPPConnect server unreachable: {e}")
        except TransportError:
            http.close()
            raise

        stop = threading.Event()
        with self._lock:
            self._http = http
            self._stop = stop
            self._watcher = threading.Thread(
                target=self._watch,
                args=(http, listener, stop),
                name="wpp-status",
                daemon=True,
            )
            self._watcher.start()

        logger.info(f"WPPConnect session '{self.session}' started")

    def _generate_token(self, http: httpx.Client) -> str:
        response = http.post(f"/api/{self.session}/{self.secret_key}/generate-token")
        data = response.json() if response.status_code < 400 else {}
        token = data.get("token")
        if not token:
            raise TransportError(f"generate-token failed: {response.status_code} {response.text}")
        return token

    def _watch(self, http: httpx.Client, listener: EventListener, stop: threading.Event) -> None:
        last_status = None
        failures = 0
        qr_attempt = 0

        while not stop.is_set():
            try:
                response = http.get(f"/api/{self.session}/status-session")
                data = response.json()
                if not isinstance(data, dict):
                    raise ValueError(f"unexpected status payload {data!r}")
                status = data.get("status")
                failures = 0
            except (httpx.HTTPError, ValueError) as e:
                failures += 1
                logger.warning(f"WPPConnect status check failed ({failures}/{MAX_STATUS_FAILURES}): {e}")
                if failures == MAX_STATUS_FAILURES:
                    last_status = None
                    listener(SessionClosed(CloseReason.ERROR, detail="status endpoint unreachable"))
                stop.wait(self.status_poll_seconds)
                continue

            if status != last_status:
                logger.info(f"WPPConnect session status: {status}")
                if status in QR_STATUSES:
                    qr_attempt += 1
                event = translate_status(status, data.get("qrcode"), qr_attempt)
                last_status = status
                if event is not None:
                    listener(event)

            stop.wait(self.status_poll_seconds)

    def send_text(self, address: str, body: str) -> Any:
        """
        Send a text message.

        Args:
            address: Destination phone number (digits with country code)
            body: Message text

        Returns:
            The server response payload

        Raises:
            TransportError: If no session is open
            TransportRejected: If the server refuses the message
        """
        http = self._http
        if http is None:
            raise TransportError("WPPConnect session is not open")

        payload = {"phone": address, "message": body, "isGroup": False}
        response = http.post(
            f"/api/{self.session}/send-message",
            json=payload,
            timeout=self.send_timeout,
        )

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400 or data.get("status") == "error":
            raise TransportRejected(
                f"send-message rejected: {data.get('message') or response.text}",
                status_code=response.status_code,
            )

        logger.debug(f"WPPConnect accepted message to {address}")
        return data

    def close(self) -> None:
        """Stop the status watcher and close the HTTP client."""
        with self._lock:
            http, watcher = self._http, self._watcher
            self._http = None
            self._watcher = None
            self._stop.set()

        if watcher is not None and watcher is not threading.current_thread():
            watcher.join(timeout=self.request_timeout)
        if http is not None:
            http.close()


__all__ = ["WPPConnectTransport", "translate_status"]
