"""HTTP transport for the sink.

Builds the pooled ``requests.Session`` a writer reuses across flushes and
translates sink settings (timeouts in milliseconds, proxy credentials, TLS
validation toggle) into what requests expects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Dict, Optional, Tuple, Union
from urllib.parse import quote, urlsplit, urlunsplit

import requests
import requests_toolbelt
import tenacity
from requests.adapters import HTTPAdapter
from requests_toolbelt.utils.user_agent import user_agent

from httpsink import __version__
from httpsink.lib.errors import ConfigurationError

if TYPE_CHECKING:
    from httpsink.lib.config import HttpSinkConfig, ProxyConfig

logger = logging.getLogger(__name__)

__all__ = [
    "HttpMethod",
    "SyncPoolConfig",
    "USER_AGENT",
    "build_proxies",
    "build_timeout",
    "create_session",
]

USER_AGENT = user_agent(
    "http-sink",
    __version__,
    extras=[
        ("requests", getattr(requests, "__version__", "unknown")),
        ("tenacity", getattr(tenacity, "__version__", "unknown")),
        ("requests-toolbelt", getattr(requests_toolbelt, "__version__", "unknown")),
    ],
)


class HttpMethod(Enum):
    """Request methods the sink can issue."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"

    @classmethod
    def parse(cls, value: Union[str, "HttpMethod"]) -> "HttpMethod":
        if isinstance(value, HttpMethod):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            allowed = ",".join(m.value for m in cls)
            raise ConfigurationError(
                f"Invalid request method {value}, must be one of {allowed}.",
                field="method",
                value=value,
            ) from None

    @property
    def has_body(self) -> bool:
        return self in (HttpMethod.POST, HttpMethod.PUT)


@dataclass
class SyncPoolConfig:
    """Connection pool settings for the requests HTTPAdapter.

    Attributes:
        pool_connections: Number of urllib3 connection pools to cache
        pool_maxsize: Maximum connections per pool (per host)
        pool_block: Block when pool is full (vs raise error)
    """

    pool_connections: int = 1
    pool_maxsize: int = 1
    pool_block: bool = False


def build_timeout(
    connect_timeout_ms: Optional[int],
    read_timeout_ms: Optional[int],
) -> Tuple[Optional[float], Optional[float]]:
    """Convert millisecond timeouts to a requests ``(connect, read)`` tuple.

    ``0`` and ``None`` both mean "wait forever".
    """

    def to_seconds(value: Optional[int]) -> Optional[float]:
        if not value:
            return None
        return value / 1000.0

    return to_seconds(connect_timeout_ms), to_seconds(read_timeout_ms)


def build_proxies(proxy: Optional["ProxyConfig"]) -> Dict[str, str]:
    """Build a requests ``proxies`` mapping, embedding basic-auth credentials."""
    if proxy is None or not proxy.url:
        return {}

    parts = urlsplit(proxy.url)
    if not parts.scheme or not parts.hostname:
        raise ConfigurationError(
            f"Proxy URL '{proxy.url}' is malformed", field="proxy.url", value=proxy.url
        )

    netloc = parts.hostname
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    if proxy.username:
        credentials = quote(proxy.username, safe="")
        if proxy.password:
            credentials = f"{credentials}:{quote(proxy.password, safe='')}"
        netloc = f"{credentials}@{netloc}"

    proxy_url = urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
    return {"http": proxy_url, "https": proxy_url}


def create_session(
    config: "HttpSinkConfig",
    pool_config: Optional[SyncPoolConfig] = None,
) -> requests.Session:
    """Create the pooled session a writer uses for every attempt.

    Connection-level retries are disabled on the adapter; the delivery engine
    owns retry decisions.
    """
    pool = pool_config or SyncPoolConfig()
    session = requests.Session()

    adapter = HTTPAdapter(
        pool_connections=pool.pool_connections,
        pool_maxsize=pool.pool_maxsize,
        pool_block=pool.pool_block,
        max_retries=0,
    )
    session.mount("https://", adapter)
    session.mount("http://", adapter)

    proxies = build_proxies(config.proxy)
    if proxies:
        session.proxies.update(proxies)
        # Explicit proxy config wins over HTTP(S)_PROXY from the environment
        session.trust_env = False
        logger.debug("Routing requests through proxy %s", config.proxy.url if config.proxy else "")

    if config.disable_ssl_validation:
        session.verify = False
        logger.warning(
            "TLS certificate and hostname validation is disabled for %s",
            urlsplit(config.url).netloc,
        )

    logger.debug(
        "Created pooled session with connections=%d, maxsize=%d",
        pool.pool_connections,
        pool.pool_maxsize,
    )
    return session
