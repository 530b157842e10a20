"""Per-status-code error handling policy.

Maps HTTP status codes to a retry action through an ordered table of regular
expressions. Entries are evaluated in declaration order and the first pattern
that fully matches the three-digit status code wins.

Example:
    table = ErrorPolicyTable.from_config({
        "5\\d\\d": "retry",
        "404": "skip",
        "4\\d\\d": "fail",
    })
    table.resolve(503)  # RetryAction.RETRY
    table.resolve(404)  # RetryAction.SKIP
    table.resolve(201)  # RetryAction.SUCCESS (fallback)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Pattern, Sequence, Tuple, Union

from httpsink.lib.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = [
    "RetryAction",
    "ErrorHandlingEntry",
    "ErrorPolicyTable",
    "parse_error_handling",
    "DEFAULT_FALLBACK_ENTRIES",
]

ErrorHandlingRules = Union[str, Mapping[str, str], Sequence[Tuple[str, str]], None]


class RetryAction(Enum):
    """What to do with a batch after receiving a given status code."""

    SUCCESS = "success"
    FAIL = "fail"
    SKIP = "skip"
    RETRY = "retry"
    RETRY_AND_SKIP = "retry_and_skip"

    @classmethod
    def parse(cls, value: Union[str, "RetryAction"], *, field: str = "error_handling") -> "RetryAction":
        if isinstance(value, RetryAction):
            return value
        normalized = str(value).strip().lower().replace("-", "_")
        normalized = _ACTION_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            allowed = ", ".join(a.value for a in cls)
            raise ConfigurationError(
                f"Unsupported value for '{field}': '{value}'. Allowed values are: {allowed}",
                field=field,
                value=value,
            ) from None

    @property
    def should_retry(self) -> bool:
        return self in (RetryAction.RETRY, RetryAction.RETRY_AND_SKIP)

    @property
    def on_exhausted(self) -> "RetryAction":
        """Action applied once retries run out."""
        if self is RetryAction.RETRY:
            return RetryAction.FAIL
        if self is RetryAction.RETRY_AND_SKIP:
            return RetryAction.SKIP
        return self


_ACTION_ALIASES = {
    "retry_and_fail": "retry",
    "ok": "success",
}


@dataclass(frozen=True)
class ErrorHandlingEntry:
    """One (pattern, action) row of the policy table."""

    pattern: Pattern[str]
    action: RetryAction

    @classmethod
    def compile(cls, regex: str, action: Union[str, RetryAction]) -> "ErrorHandlingEntry":
        try:
            pattern = re.compile(regex)
        except re.error as exc:
            raise ConfigurationError(
                f"Error handling regex '{regex}' is not valid. {exc}",
                field="error_handling",
                value=regex,
            ) from exc
        return cls(pattern=pattern, action=RetryAction.parse(action))

    def matches(self, code: str) -> bool:
        return self.pattern.fullmatch(code) is not None


# Applied after the configured entries and before the default action.
DEFAULT_FALLBACK_ENTRIES: Tuple[Tuple[str, RetryAction], ...] = (
    (r"2\d\d", RetryAction.SUCCESS),
    (r"429", RetryAction.RETRY),
    (r"5\d\d", RetryAction.RETRY),
)


def parse_error_handling(rules: ErrorHandlingRules) -> List[Tuple[str, str]]:
    """Normalize the accepted error handling notations into ordered pairs.

    Accepts:
        - a mapping ``{"5\\d\\d": "retry"}`` (insertion order is kept)
        - a list of ``(regex, action)`` pairs or ``{"pattern":..., "action":...}`` dicts
        - the compact string ``"5\\d\\d:retry,404:skip"``. Patterns containing
          commas cannot be expressed in this form; use a mapping instead.
    """
    if rules is None or rules == "":
        return []

    if isinstance(rules, str):
        pairs: List[Tuple[str, str]] = []
        for chunk in rules.split(","):
            chunk = chunk.strip()
            if not chunk:
                continue
            regex, sep, action = chunk.rpartition(":")
            if not sep or not regex:
                raise ConfigurationError(
                    f"Missing value for key {chunk}",
                    field="error_handling",
                    value=rules,
                )
            pairs.append((regex.strip(), action.strip()))
        return pairs

    if isinstance(rules, Mapping):
        return [(str(k), _action_text(v)) for k, v in rules.items()]

    pairs = []
    for item in rules:
        if isinstance(item, Mapping):
            if "pattern" not in item or "action" not in item:
                raise ConfigurationError(
                    "Error handling entries need both 'pattern' and 'action'",
                    field="error_handling",
                    value=item,
                )
            pairs.append((str(item["pattern"]), _action_text(item["action"])))
        else:
            regex, action = item
            pairs.append((str(regex), _action_text(action)))
    return pairs


def _action_text(action: Any) -> str:
    return action.value if isinstance(action, RetryAction) else str(action)


class ErrorPolicyTable:
    """Ordered regex-over-status-code table resolving to a RetryAction.

    Resolution order:
        1. configured entries, first full match wins
        2. fallback rules: 2xx success, 429 and 5xx retry
        3. ``default_action`` (FAIL unless configured otherwise)

    The table is immutable after construction, so ``resolve`` is pure.
    """

    def __init__(
        self,
        entries: Iterable[ErrorHandlingEntry] = (),
        *,
        default_action: RetryAction = RetryAction.FAIL,
        fallback: Optional[Iterable[ErrorHandlingEntry]] = None,
    ) -> None:
        self._entries: Tuple[ErrorHandlingEntry, ...] = tuple(entries)
        if fallback is None:
            fallback = (
                ErrorHandlingEntry.compile(regex, action)
                for regex, action in DEFAULT_FALLBACK_ENTRIES
            )
        self._fallback: Tuple[ErrorHandlingEntry, ...] = tuple(fallback)
        self.default_action = default_action

    @classmethod
    def from_config(
        cls,
        rules: ErrorHandlingRules,
        *,
        default_action: Union[str, RetryAction] = RetryAction.FAIL,
    ) -> "ErrorPolicyTable":
        """Build and validate a table; fails fast on the first bad row."""
        entries = [
            ErrorHandlingEntry.compile(regex, action)
            for regex, action in parse_error_handling(rules)
        ]
        return cls(
            entries,
            default_action=RetryAction.parse(default_action, field="default_error_action"),
        )

    @property
    def entries(self) -> Tuple[ErrorHandlingEntry, ...]:
        return self._entries

    def resolve(self, status_code: int) -> RetryAction:
        code = str(status_code)
        for entry in self._entries:
            if entry.matches(code):
                return entry.action
        for entry in self._fallback:
            if entry.matches(code):
                return entry.action
        return self.default_action

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        rows = ", ".join(f"{e.pattern.pattern!r}: {e.action.value}" for e in self._entries)
        return f"ErrorPolicyTable({{{rows}}}, default={self.default_action.value})"
