"""
Queue API client for fetching and confirming outbound messages.

Authenticates with an email/password/device triple and keeps the bearer
token for subsequent requests. Expired tokens are refreshed
transparently, once per request.
"""

import threading
from concurrent.futures import Future
from typing import Any

import httpx
from pydantic import ValidationError

from smsgateway.utils import logger
from smsgateway.utils.exceptions import (
    APIError,
    QueueAPIError,
    AuthenticationError,
    APIConnectionError,
    APITimeoutError,
)
from smsgateway.queue_api.models import DeliveryItem, DeliveryOutcome, PendingItems


LOGIN_PATH = "/v1/auth/generate-token"
PENDING_PATH = "/v1/gateway/sms/supplier/pending-messages"
CONFIRM_PATH = "/v1/gateway/sms/supplier/confirm-sent-message"

MAX_ERROR_TEXT = 255


def _text_or_blank(value: Any) -> str:
    if isinstance(value, bool):
        return ""
    if isinstance(value, (int, float, str)):
        return str(value)
    return ""


class QueueAPIClient:
    """
    Client for the SMS supplier queue API.

    Login is single-flight: while an exchange is in progress every caller
    waits on the same result, and that result stays shared for a short
    cool-down after it completes.
    """

    def __init__(
        self,
        base_url: str,
        email: str | None,
        password: str | None,
        device_name: str = "Gateway",
        timeout: float = 10.0,
        login_cooldown: float = 1.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize the queue API client.

        Args:
            base_url: API base URL
            email: Login email
            password: Login password
            device_name: Device name registered with the token
            timeout: Request timeout in seconds
            login_cooldown: Seconds a completed login result stays shared
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.email = email
        self.password = password
        self.device_name = device_name
        self.timeout = timeout
        self.login_cooldown = login_cooldown

        self._http = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)
        self._token: str | None = None
        self._login_lock = threading.Lock()
        self._login_future: Future | None = None

        logger.info(f"Queue API client initialized for {self.base_url}")

    @property
    def token(self) -> str | None:
        return self._token

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def login(self) -> bool:
        """
        Exchange credentials for a bearer token.

        Concurrent callers share a single in-flight exchange and all
        observe its result.

        Returns:
            True if a token was obtained
        """
        with self._login_lock:
            pending = self._login_future
            owner = pending is None
            if owner:
                pending = self._login_future = Future()

        if owner:
            try:
                pending.set_result(self._exchange_credentials())
            except Exception as e:
                pending.set_exception(e)
            finally:
                self._schedule_login_reset(pending)
        else:
            logger.debug("Login already in flight, waiting for its result")

        return pending.result()

    def _exchange_credentials(self) -> bool:
        logger.info(f"Logging in to {self.base_url}{LOGIN_PATH}")
        payload = {
            "email": self.email,
            "password": self.password,
            "device_name": self.device_name,
        }

        try:
            response = self._http.post(LOGIN_PATH, json=payload)
            data = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"Login timed out after {self.timeout}s: {e}")
            return False
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Login request failed: {e}")
            return False

        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            logger.error(f"No token in login response ({response.status_code}): {data}")
            return False

        self._token = token
        logger.info("Queue API token obtained")
        return True

    def _schedule_login_reset(self, pending: Future) -> None:
        if self.login_cooldown <= 0:
            self._clear_login(pending)
            return
        timer = threading.Timer(self.login_cooldown, self._clear_login, args=(pending,))
        timer.daemon = True
        timer.start()

    def _clear_login(self, pending: Future) -> None:
        with self._login_lock:
            if self._login_future is pending:
                self._login_future = None

    def _refresh_token(self, stale_token: str | None) -> bool:
        """Re-login after a 401, unless another caller already did."""
        with self._login_lock:
            if self._token is not None and self._token != stale_token:
                return True
            self._token = None
            # A finished login produced the rejected token; do not reuse it
            if self._login_future is not None and self._login_future.done():
                self._login_future = None
        return self.login()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        retry_unauthorized: bool = True,
    ) -> Any:
        """
        Make an authenticated request to the queue API.

        Args:
            method: HTTP method
            path: Endpoint path
            json: JSON body
            retry_unauthorized: Re-login and replay once on HTTP 401

        Returns:
            Parsed JSON response

        Raises:
            AuthenticationError: When no valid token can be obtained
            QueueAPIError: On non-success responses or invalid JSON
            APIConnectionError: On connection failures
            APITimeoutError: When the request exceeds the timeout
        """
        if not self._token and not self.login():
            raise AuthenticationError("Login to the queue API failed")

        token = self._token
        try:
            logger.debug(f"{method} {path}")
            response = self._http.request(
                method,
                path,
                json=json,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TimeoutException as e:
            raise APITimeoutError(f"Request to {path} timed out: {e}", timeout=self.timeout)
        except httpx.ConnectError as e:
            raise APIConnectionError(f"Failed to connect to queue API: {e}")
        except httpx.HTTPError as e:
            raise QueueAPIError(f"HTTP error occurred: {e}")

        if response.status_code == 401:
            if not retry_unauthorized:
                raise AuthenticationError(f"{path} still unauthorized after re-login")
            logger.warning(f"{path} returned 401, refreshing token")
            if not self._refresh_token(token):
                raise AuthenticationError("Re-login to the queue API failed")
            return self._request(method, path, json=json, retry_unauthorized=False)

        if response.status_code >= 400:
            raise QueueAPIError(
                message=f"API request failed: {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
            )

        try:
            return response.json()
        except ValueError:
            raise QueueAPIError(
                message=f"Invalid JSON from {path}",
                status_code=response.status_code,
                response_body=response.text,
            )

    def get_pending_items(self) -> PendingItems:
        """
        Fetch pending outbound messages.

        Never raises: failures are logged and returned as an empty
        result carrying an error tag.

        Returns:
            PendingItems with the valid items in API order
        """
        try:
            data = self._request("GET", PENDING_PATH)
        except APITimeoutError as e:
            logger.error(f"Fetching pending messages timed out: {e}")
            return PendingItems(error="timeout")
        except AuthenticationError as e:
            logger.error(f"Not authorized to fetch pending messages: {e}")
            return PendingItems(error="auth")
        except APIConnectionError as e:
            logger.error(f"Queue API unreachable: {e}")
            return PendingItems(error="connection")
        except APIError as e:
            logger.error(f"Error fetching pending messages: {e}")
            return PendingItems(error="http")

        if not isinstance(data, dict):
            logger.error(f"Unexpected pending-messages response: {data!r}")
            return PendingItems(error="invalid_response")

        if data.get("type") != "success":
            logger.warning(f"Pending-messages request not successful: {data}")
            return PendingItems(error="rejected")

        raw_items = data.get("data") or []
        if isinstance(raw_items, dict):
            raw_items = [raw_items]
        if not isinstance(raw_items, list):
            logger.error(f"Unexpected pending-messages payload: {raw_items!r}")
            return PendingItems(error="invalid_response")

        items = []
        for raw in raw_items:
            item = self._parse_item(raw)
            if item is not None:
                items.append(item)

        logger.info(f"Received {len(items)} pending messages")
        return PendingItems(items=items)

    @staticmethod
    def _parse_item(raw: Any) -> DeliveryItem | None:
        """
        Build a work item from one pending-messages entry.

        An entry that fails validation but still carries an id is kept with
        blank fields, so the delivery loop confirms it as ERROR instead of
        the API handing it out again. Entries without an id are skipped.
        """
        try:
            return DeliveryItem.model_validate(raw)
        except ValidationError as e:
            item_id = raw.get("id_proveedor_envio_sms") if isinstance(raw, dict) else None
            if isinstance(item_id, bool) or not isinstance(item_id, (int, str)) or item_id == "":
                logger.warning(f"Skipping pending message without id {raw!r}: {e}")
                return None

            logger.warning(f"Malformed pending message {item_id}, will be confirmed as ERROR: {e}")
            return DeliveryItem(
                id=item_id,
                destination=_text_or_blank(raw.get("numero_destino")),
                body=_text_or_blank(raw.get("mensaje")),
            )

    def confirm_item(
        self,
        item_id: int | str,
        outcome: DeliveryOutcome,
        error_text: str | None = None,
    ) -> bool:
        """
        Report the terminal outcome of a message.

        Args:
            item_id: Item identifier from the pending-messages response
            outcome: COMPLETADO or ERROR
            error_text: Failure reason (truncated to 255 characters)

        Returns:
            True if the API accepted the confirmation
        """
        payload: dict[str, Any] = {
            "id_proveedor_envio_sms": item_id,
            "estado_envio": DeliveryOutcome(outcome).value,
        }
        if error_text:
            payload["mensaje_error"] = error_text[:MAX_ERROR_TEXT]

        try:
            data = self._request("POST", CONFIRM_PATH, json=payload)
        except APIError as e:
            logger.error(f"Error confirming message {item_id}: {e}")
            return False

        accepted = isinstance(data, dict) and data.get("type") == "success"
        if not accepted:
            logger.warning(f"Confirmation of {item_id} not accepted: {data}")
        return accepted

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._http.close()


__all__ = ["QueueAPIClient", "LOGIN_PATH", "PENDING_PATH", "CONFIRM_PATH", "MAX_ERROR_TEXT"]
