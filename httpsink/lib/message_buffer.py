"""Record batching and payload rendering.

The buffer accumulates records between flushes and renders them into a single
request body in the configured message format. Insertion order is preserved
in the rendered payload.

Formats:
- JSON: a compact JSON array (optionally wrapped as ``{batch_key: [...]}``),
  or one JSON object per record joined by the delimiter
- FORM: one ``application/x-www-form-urlencoded`` line per record
- CSV / TSV: one delimited line per record, columns in schema order
- CUSTOM: a body template with ``#field`` tokens rendered once per record
"""

from __future__ import annotations

import csv
import io
import json
import logging
from enum import Enum
from typing import Any, List, Optional, Union
from urllib.parse import urlencode

from httpsink.lib.errors import ConfigurationError, EncodingError
from httpsink.lib.records import PLACEHOLDER_PATTERN, Record, Schema

logger = logging.getLogger(__name__)

__all__ = ["MessageFormat", "MessageBuffer"]


class MessageFormat(Enum):
    """Wire format of the request body."""

    JSON = "json"
    FORM = "form"
    CSV = "csv"
    TSV = "tsv"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: Union[str, "MessageFormat"]) -> "MessageFormat":
        if isinstance(value, MessageFormat):
            return value
        normalized = str(value).strip().lower()
        if normalized == "delimited":
            normalized = "csv"
        try:
            return cls(normalized)
        except ValueError:
            allowed = ", ".join(f.value for f in cls)
            raise ConfigurationError(
                f"Unsupported value for 'message_format': '{value}'. Allowed values are: {allowed}",
                field="message_format",
                value=value,
            ) from None

    @property
    def content_type(self) -> str:
        return _CONTENT_TYPES[self]


_CONTENT_TYPES = {
    MessageFormat.JSON: "application/json",
    MessageFormat.FORM: "application/x-www-form-urlencoded",
    MessageFormat.CSV: "text/csv",
    MessageFormat.TSV: "text/tab-separated-values",
    MessageFormat.CUSTOM: "text/plain",
}

_COLUMN_SEPARATORS = {
    MessageFormat.CSV: ",",
    MessageFormat.TSV: "\t",
}


def _json_default(value: Any) -> Any:
    # datetimes, decimals, UUIDs and the like
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), default=_json_default)
    return str(value)


class MessageBuffer:
    """Pending records plus a cached rendering of the batch body.

    Owned by exactly one writer; not safe for concurrent mutation.

    Example:
        buffer = MessageBuffer(MessageFormat.JSON)
        buffer.add({"a": 1})
        buffer.add({"a": 2})
        buffer.get_message()  # '[{"a":1},{"a":2}]'
    """

    def __init__(
        self,
        message_format: MessageFormat = MessageFormat.JSON,
        *,
        json_batch_key: Optional[str] = None,
        write_json_as_array: bool = True,
        delimiter: str = "\n",
        charset: str = "utf-8",
        body_template: Optional[str] = None,
        schema: Optional[Schema] = None,
    ) -> None:
        if message_format is MessageFormat.CUSTOM and not body_template:
            raise ConfigurationError(
                "For Custom message format, message cannot be null.",
                field="body",
            )
        self.message_format = message_format
        self.json_batch_key = json_batch_key or None
        self.write_json_as_array = write_json_as_array
        self.delimiter = delimiter if delimiter else "\n"
        self.charset = charset
        self.body_template = body_template
        self.schema = schema

        self._records: List[Record] = []
        self._serialized: List[str] = []
        self._cached_message: Optional[str] = None

    def add(self, record: Record) -> None:
        """Append a record, serializing it now unless it is kept raw for JSON."""
        if self.message_format is not MessageFormat.JSON:
            self._serialized.append(self._serialize(record))
        self._records.append(record)
        self._cached_message = None

    def size(self) -> int:
        return len(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def is_empty(self) -> bool:
        return not self._records

    @property
    def last_record(self) -> Optional[Record]:
        return self._records[-1] if self._records else None

    @property
    def records(self) -> List[Record]:
        return list(self._records)

    def get_content_type(self) -> str:
        return self.message_format.content_type

    def get_message(self) -> Optional[str]:
        """Render the whole batch; ``None`` when nothing is buffered."""
        if not self._records:
            return None
        if self._cached_message is None:
            self._cached_message = self._render()
        return self._cached_message

    def clear(self) -> None:
        self._records.clear()
        self._serialized.clear()
        self._cached_message = None

    def _render(self) -> str:
        if self.message_format is MessageFormat.JSON:
            if self.write_json_as_array:
                payload: Any = list(self._records)
                if self.json_batch_key:
                    payload = {self.json_batch_key: payload}
                return self._dumps(payload)
            return self.delimiter.join(self._dumps(r) for r in self._records)
        return self.delimiter.join(self._serialized)

    def _dumps(self, payload: Any) -> str:
        return json.dumps(
            payload,
            separators=(",", ":"),
            ensure_ascii=False,
            default=_json_default,
        )

    def _columns(self, record: Record) -> List[str]:
        if self.schema is None:
            self.schema = Schema.infer(record)
        return list(self.schema.fields)

    def _serialize(self, record: Record) -> str:
        if self.message_format is MessageFormat.FORM:
            pairs = [(name, _to_text(record.get(name))) for name in self._columns(record)]
            try:
                return urlencode(pairs, encoding=self.charset)
            except (LookupError, UnicodeEncodeError) as exc:
                raise EncodingError(
                    f"Cannot form-encode record as {self.charset}: {exc}",
                    charset=self.charset,
                ) from exc

        if self.message_format in _COLUMN_SEPARATORS:
            line = io.StringIO()
            writer = csv.writer(
                line,
                delimiter=_COLUMN_SEPARATORS[self.message_format],
                lineterminator="",
            )
            writer.writerow([_to_text(record.get(name)) for name in self._columns(record)])
            return line.getvalue()

        return self._render_template(record)

    def _render_template(self, record: Record) -> str:
        template = self.body_template or ""

        def substitute(match: Any) -> str:
            name = match.group(1)
            if name not in record:
                raise EncodingError(
                    f"Custom body placeholder '#{name}' has no matching field in the record",
                    field=name,
                    suggestion="Check the body template against the input schema.",
                )
            return _to_text(record.get(name))

        return PLACEHOLDER_PATTERN.sub(substitute, template)
