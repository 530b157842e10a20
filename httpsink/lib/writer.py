"""Host-facing record writer.

``HttpRecordWriter`` is what a pipeline talks to: it buffers records, flushes
a batch whenever ``batch_size`` records are pending and forces a final flush
on ``close()``.

Example:
    config = HttpSinkConfig(url="https://api.example.com/v1/orders", batch_size=50)
    with HttpRecordWriter(config) as writer:
        for record in records:
            writer.write(record)
    print(writer.stats.records_delivered)
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional

import requests

from httpsink.lib.auth import CredentialProvider, TokenFetcher
from httpsink.lib.config import HttpSinkConfig
from httpsink.lib.engine import DeliveryEngine, DeliveryResult
from httpsink.lib.errors import ConfigurationError, SinkError
from httpsink.lib.logging import get_sink_logger
from httpsink.lib.message_buffer import MessageBuffer, MessageFormat
from httpsink.lib.placeholders import PlaceholderResolver
from httpsink.lib.records import Record, Schema, find_placeholders
from httpsink.lib.transport import HttpMethod, create_session

logger = logging.getLogger(__name__)

__all__ = ["HttpRecordWriter", "DeliveryStats"]


@dataclass
class DeliveryStats:
    """Counters accumulated over the lifetime of a writer."""

    records_written: int = 0
    records_delivered: int = 0
    records_skipped: int = 0
    records_dropped: int = 0
    batches_delivered: int = 0
    batches_skipped: int = 0
    batches_failed: int = 0
    total_attempts: int = 0

    def record(self, result: DeliveryResult) -> None:
        self.total_attempts += result.attempts
        if result.skipped:
            self.batches_skipped += 1
            self.records_skipped += result.record_count
        else:
            self.batches_delivered += 1
            self.records_delivered += result.record_count

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class HttpRecordWriter:
    """Buffers records and delivers them in batches.

    Args:
        config: Validated sink configuration
        schema: Field names of the incoming records. When given, URL and
            body placeholders are checked against it up front.
        session: Session to send with. When omitted the writer creates a
            pooled session and closes it on ``close()``.
        token_fetcher: OAuth2 token collaborator (defaults to the
            refresh-token grant in ``httpsink.lib.auth``)
        clock: Monotonic clock for retry deadlines
        sleep: Sleep used between retries

    Raises:
        ConfigurationError: If a placeholder names a field missing from schema
    """

    def __init__(
        self,
        config: HttpSinkConfig,
        schema: Optional[Schema] = None,
        *,
        session: Optional[requests.Session] = None,
        token_fetcher: Optional[TokenFetcher] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.schema = schema
        self.resolver = PlaceholderResolver.for_method(
            config.url,
            config.method,
            charset=config.charset,
            missing=config.missing_placeholder,
        )
        if schema is not None:
            self._validate_schema(schema)

        if config.batch_size > 1 and config.method in (HttpMethod.GET, HttpMethod.DELETE):
            logger.warning(
                "batch_size=%d with %s: only one request is sent per batch, "
                "using the URL of the last record",
                config.batch_size,
                config.method.value,
            )

        self.buffer = MessageBuffer(
            config.message_format,
            json_batch_key=config.json_batch_key,
            write_json_as_array=config.write_json_as_array,
            delimiter=config.delimiter,
            charset=config.charset,
            body_template=config.body,
            schema=schema,
        )

        self._owns_session = session is None
        self.session = session if session is not None else create_session(config)

        self.credentials: Optional[CredentialProvider] = None
        if config.oauth2 is not None:
            self.credentials = CredentialProvider(config.oauth2, token_fetcher)

        self.engine = DeliveryEngine(
            config,
            self.buffer,
            session=self.session,
            credentials=self.credentials,
            resolver=self.resolver,
            clock=clock,
            sleep=sleep,
        )
        self.stats = DeliveryStats()
        self.closed = False

        self.log = get_sink_logger(__name__)
        self.log.set_context(sink=config.display_name, method=config.method.value)
        self.log.debug(
            "Writer ready: batch_size=%d, format=%s, retry=%s",
            config.batch_size,
            config.message_format.value,
            self.engine.scheduler.describe(),
        )

    def _validate_schema(self, schema: Schema) -> None:
        issues = []
        if self.resolver.is_active:
            for name in schema.missing(self.resolver.fields):
                issues.append(f"URL placeholder '#{name}' is not a field of the input schema")
        if self.config.message_format is MessageFormat.CUSTOM:
            for name in schema.missing(find_placeholders(self.config.body or "")):
                issues.append(f"Body placeholder '#{name}' is not a field of the input schema")
        if issues:
            raise ConfigurationError(
                "Placeholders do not match the input schema",
                issues=issues,
                suggestion=f"Schema fields are: {', '.join(schema.fields)}",
            )

    def __enter__(self) -> "HttpRecordWriter":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if exc_type is None:
            self.close()
        else:
            # Do not mask the original error with a failure from the final flush
            try:
                self.close()
            except SinkError:
                logger.exception("Final flush failed while handling another error")

    def write(self, record: Record) -> Optional[DeliveryResult]:
        """Buffer a record, flushing when the batch is full.

        Returns:
            The flush result when this record completed a batch, else None
        """
        if self.closed:
            raise ValueError("write() called on a closed HttpRecordWriter")
        self.buffer.add(record)
        self.stats.records_written += 1
        if self.buffer.size() >= self.config.batch_size:
            return self.flush()
        return None

    def flush(self) -> Optional[DeliveryResult]:
        """Deliver whatever is buffered. No-op on an empty buffer."""
        pending = self.buffer.size()
        try:
            result = self.engine.flush()
        except SinkError:
            self.stats.batches_failed += 1
            self.stats.records_dropped += pending
            raise
        if result is not None:
            self.stats.record(result)
        return result

    def close(self) -> None:
        """Flush the remaining records and release the session.

        Safe to call more than once. A failure of the final flush propagates
        after the session is released.
        """
        if self.closed:
            return
        self.closed = True
        try:
            self.flush()
        finally:
            if self._owns_session:
                self.session.close()
            self._emit_metrics()

    def _emit_metrics(self) -> None:
        for name, value in self.stats.to_dict().items():
            unit = "requests" if name == "total_attempts" else (
                "batches" if name.startswith("batches") else "records"
            )
            self.log.metric(name, value, unit)
