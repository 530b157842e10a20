"""Record and schema helpers.

Records are opaque mappings supplied by the host pipeline. The sink only
reads field values by name, either to serialize them or to substitute them
into URL and body templates.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Tuple

from httpsink.lib.errors import ConfigurationError

__all__ = ["Record", "Schema", "PLACEHOLDER_PATTERN", "find_placeholders"]

Record = Mapping[str, Any]

# #fieldName tokens in URL and body templates
PLACEHOLDER_PATTERN = re.compile(r"#(\w+)")


def find_placeholders(template: str) -> List[str]:
    """Return the field names referenced by ``#name`` tokens, in order."""
    return [m.group(1) for m in PLACEHOLDER_PATTERN.finditer(template or "")]


@dataclass(frozen=True)
class Schema:
    """Ordered field names of the incoming records."""

    fields: Tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.fields:
            raise ConfigurationError("Schema must contain at least one field", field="schema")

    @classmethod
    def of(cls, *names: str) -> "Schema":
        return cls(tuple(names))

    @classmethod
    def from_fields(cls, names: Iterable[str]) -> "Schema":
        return cls(tuple(names))

    @classmethod
    def infer(cls, record: Record) -> "Schema":
        """Infer a schema from a record's keys (insertion order)."""
        return cls(tuple(str(k) for k in record.keys()))

    def __contains__(self, name: object) -> bool:
        return name in self.fields

    def __iter__(self):  # type: ignore[no-untyped-def]
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    def missing(self, names: Iterable[str]) -> List[str]:
        """Names not present in this schema, without duplicates."""
        seen: List[str] = []
        for name in names:
            if name not in self.fields and name not in seen:
                seen.append(name)
        return seen
