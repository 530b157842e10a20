"""Tests for record batching and payload rendering."""

import json
from datetime import date, datetime
from decimal import Decimal

import pytest

from httpsink.lib.errors import ConfigurationError, EncodingError
from httpsink.lib.message_buffer import MessageBuffer, MessageFormat
from httpsink.lib.records import Schema


class TestMessageFormat:
    """Tests for MessageFormat parsing and content types."""

    def test_parse(self) -> None:
        assert MessageFormat.parse("JSON") is MessageFormat.JSON
        assert MessageFormat.parse("delimited") is MessageFormat.CSV

    def test_parse_unknown(self) -> None:
        with pytest.raises(ConfigurationError, match="message_format"):
            MessageFormat.parse("xml")

    @pytest.mark.parametrize(
        "fmt,content_type",
        [
            (MessageFormat.JSON, "application/json"),
            (MessageFormat.FORM, "application/x-www-form-urlencoded"),
            (MessageFormat.CSV, "text/csv"),
            (MessageFormat.TSV, "text/tab-separated-values"),
            (MessageFormat.CUSTOM, "text/plain"),
        ],
    )
    def test_content_type(self, fmt, content_type) -> None:
        assert fmt.content_type == content_type


class TestJsonBuffer:
    """Tests for JSON rendering."""

    def test_array(self) -> None:
        buffer = MessageBuffer(MessageFormat.JSON)
        buffer.add({"a": 1})
        buffer.add({"a": 2})
        assert buffer.get_message() == '[{"a":1},{"a":2}]'

    def test_batch_key(self) -> None:
        buffer = MessageBuffer(MessageFormat.JSON, json_batch_key="records")
        buffer.add({"a": 1})
        assert json.loads(buffer.get_message()) == {"records": [{"a": 1}]}

    def test_one_object_per_line(self) -> None:
        buffer = MessageBuffer(MessageFormat.JSON, write_json_as_array=False)
        buffer.add({"a": 1})
        buffer.add({"b": "x"})
        assert buffer.get_message() == '{"a":1}\n{"b":"x"}'

    def test_non_json_types(self) -> None:
        buffer = MessageBuffer()
        buffer.add({"d": date(2025, 1, 15), "t": datetime(2025, 1, 15, 10, 30), "n": Decimal("1.5")})
        assert json.loads(buffer.get_message()) == [
            {"d": "2025-01-15", "t": "2025-01-15T10:30:00", "n": "1.5"}
        ]

    def test_unicode_kept(self) -> None:
        buffer = MessageBuffer()
        buffer.add({"name": "Zoë"})
        assert buffer.get_message() == '[{"name":"Zoë"}]'


class TestDelimitedBuffer:
    """Tests for CSV, TSV and form rendering."""

    def test_csv_uses_schema_order(self) -> None:
        buffer = MessageBuffer(MessageFormat.CSV, schema=Schema.of("b", "a"))
        buffer.add({"a": 1, "b": 2})
        buffer.add({"a": 3, "b": 4})
        assert buffer.get_message() == "2,1\n4,3"

    def test_csv_infers_schema_from_first_record(self) -> None:
        buffer = MessageBuffer(MessageFormat.CSV)
        buffer.add({"x": "1", "y": "2"})
        buffer.add({"y": "4", "x": "3"})
        assert buffer.get_message() == "1,2\n3,4"

    def test_csv_quotes_values(self) -> None:
        buffer = MessageBuffer(MessageFormat.CSV, schema=Schema.of("name", "note"))
        buffer.add({"name": "Smith, J", "note": None})
        assert buffer.get_message() == '"Smith, J",'

    def test_tsv(self) -> None:
        buffer = MessageBuffer(MessageFormat.TSV, schema=Schema.of("a", "b"))
        buffer.add({"a": "x", "b": True})
        assert buffer.get_message() == "x\ttrue"

    def test_custom_delimiter(self) -> None:
        buffer = MessageBuffer(MessageFormat.CSV, delimiter="|", schema=Schema.of("a"))
        buffer.add({"a": 1})
        buffer.add({"a": 2})
        assert buffer.get_message() == "1|2"

    def test_form(self) -> None:
        buffer = MessageBuffer(MessageFormat.FORM, schema=Schema.of("q", "n"))
        buffer.add({"q": "a b&c", "n": 1})
        assert buffer.get_message() == "q=a+b%26c&n=1"


class TestCustomBuffer:
    """Tests for the custom body template."""

    def test_template_rendered_per_record(self) -> None:
        buffer = MessageBuffer(MessageFormat.CUSTOM, body_template="<id>#id</id>")
        buffer.add({"id": 1})
        buffer.add({"id": 2})
        assert buffer.get_message() == "<id>1</id>\n<id>2</id>"

    def test_template_required(self) -> None:
        with pytest.raises(ConfigurationError, match="message cannot be null"):
            MessageBuffer(MessageFormat.CUSTOM)

    def test_unknown_field_rejected_on_add(self) -> None:
        """A record lacking a template field is not buffered."""
        buffer = MessageBuffer(MessageFormat.CUSTOM, body_template="#id #missing")
        with pytest.raises(EncodingError, match="#missing"):
            buffer.add({"id": 1})
        assert buffer.is_empty()


class TestBufferLifecycle:
    """Tests for size, caching and clear()."""

    def test_empty_buffer(self) -> None:
        buffer = MessageBuffer()
        assert buffer.is_empty()
        assert buffer.size() == 0
        assert buffer.get_message() is None
        assert buffer.last_record is None

    def test_size_and_last_record(self) -> None:
        buffer = MessageBuffer()
        buffer.add({"id": 1})
        buffer.add({"id": 2})
        assert len(buffer) == 2
        assert buffer.last_record == {"id": 2}
        assert buffer.records == [{"id": 1}, {"id": 2}]

    def test_message_cache_invalidated_by_add(self) -> None:
        buffer = MessageBuffer()
        buffer.add({"id": 1})
        assert buffer.get_message() == '[{"id":1}]'
        buffer.add({"id": 2})
        assert buffer.get_message() == '[{"id":1},{"id":2}]'

    def test_clear_is_idempotent(self) -> None:
        """clear() twice leaves an empty buffer and never raises."""
        buffer = MessageBuffer()
        buffer.add({"id": 1})
        buffer.clear()
        buffer.clear()
        assert buffer.is_empty()
        assert buffer.get_message() is None

    def test_content_type(self) -> None:
        assert MessageBuffer(MessageFormat.TSV).get_content_type() == "text/tab-separated-values"
