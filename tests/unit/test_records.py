"""Tests for record and schema helpers."""

import pytest

from httpsink.lib.errors import ConfigurationError
from httpsink.lib.records import Schema, find_placeholders


class TestFindPlaceholders:
    """Tests for find_placeholders."""

    def test_in_order(self) -> None:
        assert find_placeholders("https://x/#id/mail/#email") == ["id", "email"]

    def test_none_found(self) -> None:
        assert find_placeholders("https://x/items") == []
        assert find_placeholders("") == []

    def test_word_characters_only(self) -> None:
        assert find_placeholders("#user_id-#v2.json") == ["user_id", "v2"]


class TestSchema:
    """Tests for Schema."""

    def test_of(self) -> None:
        schema = Schema.of("id", "name")
        assert schema.fields == ("id", "name")
        assert "id" in schema
        assert list(schema) == ["id", "name"]
        assert len(schema) == 2

    def test_empty_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="at least one field"):
            Schema.of()

    def test_infer_keeps_key_order(self) -> None:
        assert Schema.infer({"b": 1, "a": 2}).fields == ("b", "a")

    def test_missing(self) -> None:
        schema = Schema.of("id", "name")
        assert schema.missing(["id", "email", "email", "zip"]) == ["email", "zip"]
