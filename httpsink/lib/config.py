"""Sink configuration.

``HttpSinkConfig`` is an immutable description of one HTTP sink. It is
validated once on construction; every problem found is reported together in a
single ``ConfigurationError`` so a pipeline fails before delivering anything.

Example:
    config = HttpSinkConfig(
        url="https://api.example.com/v1/orders",
        method="POST",
        batch_size=100,
        message_format="json",
        request_headers="X-Tenant:acme\\nX-Source:pipeline",
        error_handling={"5\\d\\d": "retry", "4\\d\\d": "fail"},
        retry_policy="exponential",
        max_retry_duration=300,
    )

    # Or from a plain dict (e.g., parsed YAML)
    config = HttpSinkConfig.from_dict({"url": "...", "batch_size": 10})
"""

from __future__ import annotations

import codecs
import logging
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional, Union
from urllib.parse import urlsplit

from httpsink.lib.auth import OAuth2Config
from httpsink.lib.error_policy import ErrorHandlingRules, ErrorPolicyTable, RetryAction
from httpsink.lib.errors import ConfigurationError
from httpsink.lib.message_buffer import MessageFormat
from httpsink.lib.placeholders import MissingPlaceholderPolicy
from httpsink.lib.resilience import DEFAULT_EXPONENTIAL_BASE_DELAY, RetryPolicy, RetryScheduler
from httpsink.lib.transport import HttpMethod

logger = logging.getLogger(__name__)

__all__ = ["HttpSinkConfig", "ProxyConfig", "parse_headers"]

HEADER_DELIMITER = "\n"
KV_DELIMITER = ":"
DEFAULT_TIMEOUT_MS = 60000


def parse_headers(headers: Union[str, Mapping[str, Any], None]) -> Dict[str, str]:
    """Parse ``name:value`` lines (or a mapping) into a header dict.

    Blank lines are ignored. Whitespace around names and values is stripped.

    Raises:
        ConfigurationError: If a line has no ``:`` separator or an empty name
    """
    if not headers:
        return {}
    if isinstance(headers, Mapping):
        return {str(k).strip(): str(v).strip() for k, v in headers.items()}

    parsed: Dict[str, str] = {}
    for chunk in headers.split(HEADER_DELIMITER):
        if not chunk.strip():
            continue
        name, sep, value = chunk.partition(KV_DELIMITER)
        if not sep or not name.strip():
            raise ConfigurationError(
                f"Unable to parse key-value pair '{chunk}'.",
                field="request_headers",
                value=chunk,
            )
        parsed[name.strip()] = value.strip()
    return parsed


@dataclass(frozen=True)
class ProxyConfig:
    """HTTP proxy with optional basic-auth credentials."""

    url: str
    username: Optional[str] = None
    password: Optional[str] = None

    @classmethod
    def from_value(cls, value: Union[str, Mapping[str, Any], "ProxyConfig", None]) -> Optional["ProxyConfig"]:
        if value is None or value == "":
            return None
        if isinstance(value, ProxyConfig):
            return value
        if isinstance(value, str):
            return cls(url=value)
        return cls(
            url=value.get("url", ""),
            username=value.get("username"),
            password=value.get("password"),
        )


@dataclass(frozen=True)
class HttpSinkConfig:
    """Validated, immutable configuration for one HTTP sink.

    String values for the enum-typed fields are accepted and normalized on
    construction; ``request_headers`` accepts ``name:value`` lines or a
    mapping; ``error_handling`` accepts a mapping, a list of pairs or the
    compact ``"regex:action,..."`` form.
    """

    # Target
    url: str
    method: HttpMethod = HttpMethod.POST
    name: Optional[str] = None  # Used in logs; defaults to the URL host

    # Batching and payload
    batch_size: int = 1
    message_format: MessageFormat = MessageFormat.JSON
    body: Optional[str] = None  # Template for the custom format
    write_json_as_array: bool = True
    json_batch_key: Optional[str] = None
    delimiter: str = "\n"
    charset: str = "utf-8"

    # Request options
    request_headers: Dict[str, str] = field(default_factory=dict)
    follow_redirects: bool = True
    disable_ssl_validation: bool = False
    proxy: Optional[ProxyConfig] = None
    connect_timeout_ms: int = DEFAULT_TIMEOUT_MS  # 0 = infinite
    read_timeout_ms: int = DEFAULT_TIMEOUT_MS  # 0 = infinite

    # Error handling and retries
    error_handling: ErrorHandlingRules = None
    default_error_action: RetryAction = RetryAction.FAIL
    retry_policy: RetryPolicy = RetryPolicy.EXPONENTIAL
    linear_retry_interval: Optional[float] = None  # seconds, required for linear
    exponential_base_delay: float = DEFAULT_EXPONENTIAL_BASE_DELAY  # seconds
    max_retry_delay: Optional[float] = None  # seconds
    max_retry_duration: float = 600.0  # seconds

    # Placeholders
    missing_placeholder: MissingPlaceholderPolicy = MissingPlaceholderPolicy.LEAVE

    # Authentication
    oauth2: Optional[OAuth2Config] = None

    def __post_init__(self) -> None:
        issues: List[str] = []

        def coerce(name: str, parser: Any) -> None:
            try:
                object.__setattr__(self, name, parser(getattr(self, name)))
            except ConfigurationError as exc:
                issues.append(exc.message)

        coerce("method", HttpMethod.parse)
        coerce("message_format", MessageFormat.parse)
        coerce("retry_policy", RetryPolicy.parse)
        coerce("default_error_action", lambda v: RetryAction.parse(v, field="default_error_action"))
        coerce("missing_placeholder", MissingPlaceholderPolicy.parse)
        coerce("request_headers", parse_headers)
        coerce("proxy", ProxyConfig.from_value)
        if isinstance(self.oauth2, Mapping):
            coerce("oauth2", OAuth2Config.from_dict)

        issues.extend(self._validate())
        if issues:
            raise ConfigurationError(
                f"HTTP sink configuration errors for {self.url or '<no url>'}",
                issues=issues,
                suggestion="Fix the configuration and try again.",
            )

    def _validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors: List[str] = []

        if not self.url:
            errors.append("url is required (e.g., 'https://api.example.com/v1/records')")
        else:
            parts = urlsplit(self.url)
            if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
                errors.append(f"URL '{self.url}' is malformed: expected an http(s) URL with a host")

        if not isinstance(self.batch_size, int) or self.batch_size < 1:
            errors.append("Batch size must be greater than 0.")

        if self.connect_timeout_ms is not None and self.connect_timeout_ms < 0:
            errors.append("Connection Timeout cannot be a negative number.")
        if self.read_timeout_ms is not None and self.read_timeout_ms < 0:
            errors.append("Read Timeout cannot be a negative number.")

        # http.client encodes header lines as latin-1
        for name, value in self.request_headers.items():
            try:
                name.encode("latin-1")
                value.encode("latin-1")
            except UnicodeEncodeError:
                errors.append(
                    f"Header '{name}' must contain only latin-1 characters in its name and value"
                )

        try:
            codecs.lookup(self.charset)
        except LookupError:
            errors.append(f"Charset '{self.charset}' is not supported")

        if self.message_format is MessageFormat.CUSTOM and not self.body:
            errors.append("For Custom message format, message cannot be null.")

        if self.retry_policy is RetryPolicy.LINEAR and self.linear_retry_interval is None:
            errors.append("linear_retry_interval must be set when retry policy is linear")
        if self.linear_retry_interval is not None and self.linear_retry_interval < 0:
            errors.append("linear_retry_interval cannot be negative")
        if self.max_retry_duration is None or self.max_retry_duration < 0:
            errors.append("max_retry_duration must be zero or a positive number of seconds")
        if self.exponential_base_delay <= 0:
            errors.append("exponential_base_delay must be positive")

        if isinstance(self.default_error_action, RetryAction):
            try:
                self.error_table()
            except ConfigurationError as exc:
                errors.append(exc.message)

        if self.proxy is not None and isinstance(self.proxy, ProxyConfig):
            proxy_parts = urlsplit(self.proxy.url)
            if not proxy_parts.scheme or not proxy_parts.hostname:
                errors.append(f"Proxy URL '{self.proxy.url}' is malformed")

        return errors

    @classmethod
    def from_dict(cls, options: Mapping[str, Any]) -> "HttpSinkConfig":
        """Create a config from a plain dict, rejecting unknown keys.

        Nested ``proxy`` and ``oauth2`` sections may be dicts. An ``oauth2``
        section with ``enabled: false`` is ignored.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ConfigurationError(
                "Unknown HTTP sink configuration keys",
                issues=[f"'{key}' is not a recognised option" for key in unknown],
            )

        kwargs = dict(options)
        oauth2 = kwargs.get("oauth2")
        if isinstance(oauth2, Mapping):
            oauth2 = dict(oauth2)
            enabled = oauth2.pop("enabled", True)
            kwargs["oauth2"] = OAuth2Config.from_dict(oauth2) if enabled else None

        return cls(**kwargs)

    @property
    def display_name(self) -> str:
        return self.name or urlsplit(self.url).netloc

    @property
    def oauth2_enabled(self) -> bool:
        return self.oauth2 is not None

    def error_table(self) -> ErrorPolicyTable:
        return ErrorPolicyTable.from_config(
            self.error_handling, default_action=self.default_error_action
        )

    def retry_scheduler(self) -> RetryScheduler:
        if self.retry_policy is RetryPolicy.LINEAR:
            return RetryScheduler.linear(
                float(self.linear_retry_interval or 0), float(self.max_retry_duration)
            )
        return RetryScheduler.exponential(
            base_delay=float(self.exponential_base_delay),
            max_retry_duration=float(self.max_retry_duration),
            max_delay=self.max_retry_delay,
        )
