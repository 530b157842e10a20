"""Batch delivery state machine.

One ``flush()`` turns the buffered records into a single HTTP request and
drives it to a final outcome:

    IDLE -> BUILDING_REQUEST -> SENDING -> EVALUATING_RESPONSE
         -> (RETRY_WAIT -> SENDING)* -> DONE | FAILED

The buffer is cleared on every final outcome. A FAILED flush raises; the
dropped batch is never re-sent by a later flush.

Clock and sleep are injectable so retry timing can be tested without waiting.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import requests
from requests.structures import CaseInsensitiveDict

from httpsink.lib.auth import CredentialProvider
from httpsink.lib.config import HttpSinkConfig
from httpsink.lib.error_policy import ErrorPolicyTable, RetryAction
from httpsink.lib.errors import (
    AuthenticationError,
    EncodingError,
    TerminalDeliveryError,
    TransientDeliveryError,
)
from httpsink.lib.logging import get_sink_logger
from httpsink.lib.message_buffer import MessageBuffer
from httpsink.lib.placeholders import PlaceholderResolver
from httpsink.lib.resilience import RetryScheduler
from httpsink.lib.transport import USER_AGENT, build_timeout

__all__ = ["DeliveryState", "DeliveryRequest", "DeliveryResult", "DeliveryEngine"]

# Request errors that no amount of retrying will fix
_UNUSABLE_URL_ERRORS = (
    requests.exceptions.InvalidURL,
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidSchema,
)


class DeliveryState(Enum):
    IDLE = "idle"
    BUILDING_REQUEST = "building_request"
    SENDING = "sending"
    EVALUATING_RESPONSE = "evaluating_response"
    RETRY_WAIT = "retry_wait"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class DeliveryRequest:
    """Everything needed to send one attempt except the auth header."""

    method: str
    url: str
    headers: CaseInsensitiveDict
    body: Optional[bytes]


@dataclass
class DeliveryResult:
    """Outcome of a completed flush."""

    state: DeliveryState
    attempts: int
    status_code: Optional[int]
    url: str
    action: Optional[RetryAction]
    elapsed: float
    record_count: int
    skipped: bool = False

    @property
    def delivered(self) -> bool:
        return self.state is DeliveryState.DONE and not self.skipped


class DeliveryEngine:
    """Sends the contents of a ``MessageBuffer`` with retries.

    Args:
        config: Validated sink configuration
        buffer: The writer's buffer; cleared by every completed flush
        session: Pooled session reused across flushes
        credentials: OAuth2 provider, or None when auth is disabled
        scheduler: Retry delays and deadline (default from config)
        error_table: Status code policy (default from config)
        resolver: URL placeholder resolver (default from config)
        clock: Monotonic clock in seconds
        sleep: Blocking sleep in seconds

    Example:
        engine = DeliveryEngine(config, buffer, session=create_session(config))
        result = engine.flush()
        if result and result.skipped:
            ...
    """

    def __init__(
        self,
        config: HttpSinkConfig,
        buffer: MessageBuffer,
        *,
        session: requests.Session,
        credentials: Optional[CredentialProvider] = None,
        scheduler: Optional[RetryScheduler] = None,
        error_table: Optional[ErrorPolicyTable] = None,
        resolver: Optional[PlaceholderResolver] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.buffer = buffer
        self.session = session
        self.credentials = credentials
        self.scheduler = scheduler or config.retry_scheduler()
        self.error_table = error_table or config.error_table()
        self.resolver = resolver or PlaceholderResolver.for_method(
            config.url,
            config.method,
            charset=config.charset,
            missing=config.missing_placeholder,
        )
        self._clock = clock
        self._sleep = sleep
        self._timeout = build_timeout(config.connect_timeout_ms, config.read_timeout_ms)
        # Per-request verify=False overrides REQUESTS_CA_BUNDLE and CURL_CA_BUNDLE
        self._verify: Optional[bool] = False if config.disable_ssl_validation else None
        self._state = DeliveryState.IDLE

        self.log = get_sink_logger(__name__)
        self.log.set_context(sink=config.display_name, method=config.method.value)

    @property
    def state(self) -> DeliveryState:
        return self._state

    def _static_headers(self) -> CaseInsensitiveDict:
        config = self.config
        headers = CaseInsensitiveDict(
            {
                "Request-Method": config.method.value,
                "Instance-Follow-Redirects": str(config.follow_redirects).lower(),
                "charset": config.charset,
                "Connect-Timeout": str(config.connect_timeout_ms),
                "Read-Timeout": str(config.read_timeout_ms),
            }
        )
        headers.update(config.request_headers)
        if config.method.has_body and "Content-Type" not in headers:
            headers["Content-Type"] = self.buffer.get_content_type()
        headers.setdefault("User-Agent", USER_AGENT)
        return headers

    def build_request(self) -> DeliveryRequest:
        """Build the request for the current buffer contents.

        Raises:
            EncodingError: If the URL or body cannot be encoded
        """
        self._state = DeliveryState.BUILDING_REQUEST
        last = self.buffer.last_record
        url = self.resolver.resolve(last) if last is not None else self.config.url

        body: Optional[bytes] = None
        if self.config.method.has_body:
            message = self.buffer.get_message() or ""
            try:
                body = message.encode(self.config.charset)
            except (LookupError, UnicodeEncodeError) as exc:
                raise EncodingError(
                    f"Cannot encode request body as {self.config.charset}: {exc}",
                    charset=self.config.charset,
                ) from exc

        return DeliveryRequest(
            method=self.config.method.value,
            url=url,
            headers=self._static_headers(),
            body=body,
        )

    def _attempt_headers(self, request: DeliveryRequest) -> CaseInsensitiveDict:
        headers = request.headers.copy()
        if self.credentials is not None:
            headers.update(self.credentials.authorization_header())
        return headers

    def _send(self, request: DeliveryRequest, headers: CaseInsensitiveDict) -> int:
        self._state = DeliveryState.SENDING
        with self.session.request(
            request.method,
            request.url,
            headers=headers,
            data=request.body,
            timeout=self._timeout,
            verify=self._verify,
            allow_redirects=self.config.follow_redirects,
        ) as response:
            if response.status_code >= 400 and self.log.isEnabledFor(logging.DEBUG):
                self.log.debug(
                    "HTTP %d response body: %s", response.status_code, response.text[:500]
                )
            return response.status_code

    def _finish(
        self,
        state: DeliveryState,
        *,
        attempts: int,
        status_code: Optional[int],
        url: str,
        action: Optional[RetryAction],
        elapsed: float,
        record_count: int,
        skipped: bool = False,
    ) -> DeliveryResult:
        self.buffer.clear()
        self._state = state
        return DeliveryResult(
            state=state,
            attempts=attempts,
            status_code=status_code,
            url=url,
            action=action,
            elapsed=elapsed,
            record_count=record_count,
            skipped=skipped,
        )

    def _fail(
        self,
        message: str,
        *,
        attempts: int,
        status_code: Optional[int],
        url: str,
        record_count: int,
    ) -> TerminalDeliveryError:
        self.buffer.clear()
        self._state = DeliveryState.FAILED
        self.log.error("%s; dropped %d record(s)", message, record_count)
        return TerminalDeliveryError(
            message,
            status_code=status_code,
            url=url,
            attempts=attempts,
            details={"records_dropped": record_count},
        )

    def flush(self) -> Optional[DeliveryResult]:
        """Deliver the buffered batch.

        Returns:
            The result of the flush, or None when the buffer was empty

        Raises:
            TerminalDeliveryError: The batch was abandoned and dropped
            EncodingError: The request could not be built; batch dropped
        """
        if self.buffer.is_empty():
            return None

        record_count = self.buffer.size()
        try:
            request = self.build_request()
        except EncodingError:
            self.buffer.clear()
            self._state = DeliveryState.FAILED
            self.log.error("Could not build request; dropped %d record(s)", record_count)
            raise

        start = self._clock()
        attempts = 0
        last_error: Optional[TransientDeliveryError] = None

        while True:
            try:
                headers = self._attempt_headers(request)
            except AuthenticationError as exc:
                raise self._fail(
                    f"Could not acquire OAuth2 token for {request.url}: {exc.message}",
                    attempts=attempts,
                    status_code=None,
                    url=request.url,
                    record_count=record_count,
                ) from exc
            except Exception as exc:
                raise self._fail(
                    f"Could not prepare credentials for {request.url}: {exc}",
                    attempts=attempts,
                    status_code=None,
                    url=request.url,
                    record_count=record_count,
                ) from exc

            attempts += 1
            status_code: Optional[int] = None
            try:
                status_code = self._send(request, headers)
            except _UNUSABLE_URL_ERRORS as exc:
                raise self._fail(
                    f"URL '{request.url}' is not usable: {exc}",
                    attempts=attempts,
                    status_code=None,
                    url=request.url,
                    record_count=record_count,
                ) from exc
            except requests.RequestException as exc:
                action = RetryAction.RETRY
                last_error = TransientDeliveryError(
                    f"{request.method} {request.url} failed: {exc}",
                    url=request.url,
                    attempts=attempts,
                    cause=exc,
                )
            except Exception as exc:
                raise self._fail(
                    f"{request.method} {request.url} could not be sent: {exc!r}",
                    attempts=attempts,
                    status_code=None,
                    url=request.url,
                    record_count=record_count,
                ) from exc
            else:
                self._state = DeliveryState.EVALUATING_RESPONSE
                action = self.error_table.resolve(status_code)
                if status_code == 401 and self.credentials is not None:
                    self.credentials.invalidate()

            elapsed = self._clock() - start

            if action is RetryAction.SUCCESS:
                self.log.debug(
                    "Delivered %d record(s) to %s with HTTP %s after %d attempt(s)",
                    record_count,
                    request.url,
                    status_code,
                    attempts,
                )
                return self._finish(
                    DeliveryState.DONE,
                    attempts=attempts,
                    status_code=status_code,
                    url=request.url,
                    action=action,
                    elapsed=elapsed,
                    record_count=record_count,
                )

            if action is RetryAction.SKIP:
                self.log.warning(
                    "Skipping batch of %d record(s): HTTP %s from %s",
                    record_count,
                    status_code,
                    request.url,
                )
                return self._finish(
                    DeliveryState.DONE,
                    attempts=attempts,
                    status_code=status_code,
                    url=request.url,
                    action=action,
                    elapsed=elapsed,
                    record_count=record_count,
                    skipped=True,
                )

            if action is RetryAction.FAIL:
                raise self._fail(
                    f"{request.method} {request.url} failed with HTTP {status_code}",
                    attempts=attempts,
                    status_code=status_code,
                    url=request.url,
                    record_count=record_count,
                )

            if status_code is not None:
                last_error = TransientDeliveryError(
                    f"{request.method} {request.url} returned HTTP {status_code}",
                    status_code=status_code,
                    url=request.url,
                    attempts=attempts,
                )

            delay = self.scheduler.next_delay(attempts - 1)
            if self.scheduler.has_exceeded_deadline(elapsed + delay):
                if action.on_exhausted is RetryAction.SKIP:
                    self.log.warning(
                        "Retries exhausted after %d attempt(s) in %.1fs; skipping batch of %d record(s)",
                        attempts,
                        elapsed,
                        record_count,
                    )
                    return self._finish(
                        DeliveryState.DONE,
                        attempts=attempts,
                        status_code=status_code,
                        url=request.url,
                        action=action,
                        elapsed=elapsed,
                        record_count=record_count,
                        skipped=True,
                    )
                raise self._fail(
                    f"Delivery to {request.url} did not succeed within "
                    f"{self.scheduler.max_retry_duration:g}s ({attempts} attempt(s))",
                    attempts=attempts,
                    status_code=status_code,
                    url=request.url,
                    record_count=record_count,
                ) from last_error

            self.log.warning(
                "Attempt %d failed: %s. Retrying in %.1fs...",
                attempts,
                last_error.message if last_error else f"HTTP {status_code}",
                delay,
            )
            self._state = DeliveryState.RETRY_WAIT
            self._sleep(delay)
