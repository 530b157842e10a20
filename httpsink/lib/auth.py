"""OAuth2 credentials for the sink.

A writer that has OAuth2 enabled owns one ``CredentialProvider``. The
provider caches the current access token and only asks the token endpoint
for a new one when the cached token has expired, so consecutive flushes share
a token.

All credential fields support ``${VAR_NAME}`` references when the config is
loaded from YAML (see ``httpsink.lib.config_loader``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Optional

import requests

from httpsink.lib.errors import AuthenticationError, ConfigurationError
from httpsink.lib.resilience import with_retry

logger = logging.getLogger(__name__)

__all__ = [
    "OAuth2Config",
    "AccessToken",
    "CredentialProvider",
    "fetch_access_token",
    "TokenFetcher",
]

TOKEN_REQUEST_TIMEOUT = 30.0


@dataclass(frozen=True)
class OAuth2Config:
    """Refresh-token grant settings.

    Example:
        oauth2 = OAuth2Config(
            token_url="https://login.example.com/oauth/token",
            client_id="${OAUTH_CLIENT_ID}",
            client_secret="${OAUTH_CLIENT_SECRET}",
            refresh_token="${OAUTH_REFRESH_TOKEN}",
            scopes="write:records",
        )
    """

    token_url: str
    client_id: str
    client_secret: str
    refresh_token: str
    scopes: Optional[str] = None

    def __post_init__(self) -> None:
        missing = [
            name
            for name in ("token_url", "client_id", "client_secret", "refresh_token")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(
                "OAuth2 is enabled but required properties are not set",
                field="oauth2",
                issues=[f"oauth2.{name} is required" for name in missing],
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OAuth2Config":
        return cls(
            token_url=data.get("token_url", ""),
            client_id=data.get("client_id", ""),
            client_secret=data.get("client_secret", ""),
            refresh_token=data.get("refresh_token", ""),
            scopes=data.get("scopes"),
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AccessToken:
    """A bearer token and the instant it stops being valid.

    ``expires_at`` of None means the token does not expire.
    """

    value: str
    expires_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or _utcnow()) >= self.expires_at


TokenFetcher = Callable[[OAuth2Config], AccessToken]


@with_retry(
    max_attempts=3,
    backoff_seconds=0.5,
    retry_exceptions=(requests.ConnectionError, requests.Timeout),
)
def _post_token_request(
    url: str, data: Dict[str, str], session: Optional[requests.Session]
) -> requests.Response:
    poster = session.post if session is not None else requests.post
    return poster(url, data=data, timeout=TOKEN_REQUEST_TIMEOUT)


def fetch_access_token(
    config: OAuth2Config,
    session: Optional[requests.Session] = None,
) -> AccessToken:
    """Exchange the refresh token for a new access token.

    Raises:
        AuthenticationError: If the endpoint is unreachable, rejects the
            request, or returns no ``access_token``
    """
    data = {
        "grant_type": "refresh_token",
        "client_id": config.client_id,
        "client_secret": config.client_secret,
        "refresh_token": config.refresh_token,
    }
    if config.scopes:
        data["scope"] = config.scopes

    try:
        response = _post_token_request(config.token_url, data, session)
    except requests.RequestException as exc:
        raise AuthenticationError(
            "Could not reach the OAuth2 token endpoint",
            token_url=config.token_url,
            cause=exc,
        ) from exc

    with response:
        if response.status_code >= 400:
            raise AuthenticationError(
                f"OAuth2 token endpoint returned HTTP {response.status_code}",
                token_url=config.token_url,
                details={"response": response.text[:500]},
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthenticationError(
                "OAuth2 token endpoint returned a non-JSON body",
                token_url=config.token_url,
                cause=exc,
            ) from exc

    token = payload.get("access_token") if isinstance(payload, dict) else None
    if not token:
        raise AuthenticationError(
            "OAuth2 token response has no 'access_token'",
            token_url=config.token_url,
        )

    expires_at = None
    expires_in = payload.get("expires_in")
    if expires_in is not None:
        try:
            expires_at = _utcnow() + timedelta(seconds=float(expires_in))
        except (TypeError, ValueError):
            logger.warning("Ignoring unparseable expires_in=%r from token endpoint", expires_in)

    logger.debug("Fetched OAuth2 access token (expires at %s)", expires_at)
    return AccessToken(value=token, expires_at=expires_at)


class CredentialProvider:
    """Caches an access token and refreshes it on expiry.

    Not thread-safe: each writer owns its own provider. Sharing one across
    concurrent writers requires guarding ``get_token`` with a lock.

    Example:
        provider = CredentialProvider(oauth2_config)
        headers.update(provider.authorization_header())
    """

    def __init__(
        self,
        config: OAuth2Config,
        fetcher: Optional[TokenFetcher] = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.config = config
        self._fetcher: TokenFetcher = fetcher or fetch_access_token
        self._clock = clock
        self._token: Optional[AccessToken] = None
        self.refresh_count = 0

    @property
    def cached_token(self) -> Optional[AccessToken]:
        return self._token

    def is_expired(self, token: Optional[AccessToken]) -> bool:
        if token is None:
            return True
        return token.is_expired(self._clock())

    def get_token(self) -> AccessToken:
        token = self._token
        if token is None or token.is_expired(self._clock()):
            logger.info("Refreshing OAuth2 access token from %s", self.config.token_url)
            token = self._fetcher(self.config)
            self._token = token
            self.refresh_count += 1
        return token

    def authorization_header(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.get_token().value}"}

    def invalidate(self) -> None:
        """Drop the cached token so the next use refreshes it."""
        self._token = None
