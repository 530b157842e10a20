"""URL placeholder substitution.

A URL template such as ``https://api.example.com/users/#user_id`` carries
``#field`` tokens that are replaced by the matching record value, URL-encoded,
before each PUT or DELETE request.

Offsets are computed once against the template. Substitution runs right to
left on a fresh copy so that replacing a later token never shifts the offsets
of an earlier one.
"""

from __future__ import annotations

import codecs
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple, Union
from urllib.parse import quote_plus

from httpsink.lib.errors import ConfigurationError, EncodingError
from httpsink.lib.records import PLACEHOLDER_PATTERN, Record
from httpsink.lib.transport import HttpMethod

logger = logging.getLogger(__name__)

__all__ = [
    "MissingPlaceholderPolicy",
    "PlaceholderBinding",
    "PlaceholderResolver",
    "PLACEHOLDER_METHODS",
]

PLACEHOLDER_METHODS = frozenset({HttpMethod.PUT, HttpMethod.DELETE})


class MissingPlaceholderPolicy(Enum):
    """What to do when a record lacks a field referenced by the URL."""

    LEAVE = "leave"  # keep the literal #token
    EMPTY = "empty"  # substitute an empty string
    FAIL = "fail"  # raise EncodingError

    @classmethod
    def parse(cls, value: Union[str, "MissingPlaceholderPolicy"]) -> "MissingPlaceholderPolicy":
        if isinstance(value, MissingPlaceholderPolicy):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(p.value for p in cls)
            raise ConfigurationError(
                f"Unsupported value for 'missing_placeholder': '{value}'. Allowed values are: {allowed}",
                field="missing_placeholder",
                value=value,
            ) from None


@dataclass(frozen=True)
class PlaceholderBinding:
    """A ``#field`` token located at ``template[start:end]``."""

    field: str
    start: int
    end: int


class PlaceholderResolver:
    """Renders a URL template per record.

    Example:
        resolver = PlaceholderResolver("https://x/#id/mail/#email")
        resolver.resolve({"id": "1", "email": "a@b.com"})
        # 'https://x/1/mail/a%40b.com'
    """

    def __init__(
        self,
        template: str,
        *,
        charset: str = "utf-8",
        missing: MissingPlaceholderPolicy = MissingPlaceholderPolicy.LEAVE,
        active: bool = True,
    ) -> None:
        self.template = template
        self.charset = charset
        self.missing = missing
        self._bindings: Tuple[PlaceholderBinding, ...] = (
            tuple(
                PlaceholderBinding(m.group(1), m.start(), m.end())
                for m in PLACEHOLDER_PATTERN.finditer(template)
            )
            if active
            else ()
        )

    @classmethod
    def for_method(
        cls,
        template: str,
        method: HttpMethod,
        *,
        charset: str = "utf-8",
        missing: MissingPlaceholderPolicy = MissingPlaceholderPolicy.LEAVE,
    ) -> "PlaceholderResolver":
        """Build a resolver that only substitutes for PUT and DELETE."""
        return cls(
            template,
            charset=charset,
            missing=missing,
            active=method in PLACEHOLDER_METHODS,
        )

    @property
    def bindings(self) -> Tuple[PlaceholderBinding, ...]:
        return self._bindings

    @property
    def is_active(self) -> bool:
        return bool(self._bindings)

    @property
    def fields(self) -> List[str]:
        return [b.field for b in self._bindings]

    def _encode(self, value: object, field: str) -> str:
        try:
            return quote_plus(str(value), encoding=self.charset)
        except LookupError as exc:
            raise EncodingError(
                f"Error encoding URL with placeholder value. Unsupported charset '{self.charset}'",
                field=field,
                charset=self.charset,
            ) from exc
        except UnicodeEncodeError as exc:
            raise EncodingError(
                f"Value of '{field}' cannot be encoded as {self.charset}: {exc.reason}",
                field=field,
                charset=self.charset,
            ) from exc

    def resolve(self, record: Record) -> str:
        if not self._bindings:
            return self.template

        self._check_charset()
        url = self.template
        for binding in reversed(self._bindings):
            value = record.get(binding.field)
            if value is None:
                if self.missing is MissingPlaceholderPolicy.FAIL:
                    raise EncodingError(
                        f"Record has no value for URL placeholder '#{binding.field}'",
                        field=binding.field,
                        suggestion="Make sure every record carries the fields used in the URL.",
                    )
                if self.missing is MissingPlaceholderPolicy.LEAVE:
                    logger.debug("Leaving placeholder #%s unresolved", binding.field)
                    continue
                replacement = ""
            else:
                replacement = self._encode(value, binding.field)
            url = url[: binding.start] + replacement + url[binding.end :]
        return url

    def _check_charset(self) -> None:
        try:
            codecs.lookup(self.charset)
        except LookupError as exc:
            raise EncodingError(
                f"Error encoding URL with placeholder value. Unsupported charset '{self.charset}'",
                charset=self.charset,
            ) from exc
