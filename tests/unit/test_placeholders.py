"""Tests for URL placeholder substitution."""

import pytest

from httpsink.lib.errors import ConfigurationError, EncodingError
from httpsink.lib.placeholders import MissingPlaceholderPolicy, PlaceholderResolver
from httpsink.lib.transport import HttpMethod


class TestPlaceholderResolver:
    """Tests for PlaceholderResolver.resolve."""

    def test_substitutes_and_encodes(self) -> None:
        """Each #field is replaced by its URL-encoded value."""
        resolver = PlaceholderResolver("https://x/#id/mail/#email")
        url = resolver.resolve({"id": "1", "email": "a@b.com"})
        assert url == "https://x/1/mail/a%40b.com"

    def test_right_to_left_keeps_offsets(self) -> None:
        """Values longer or shorter than their tokens do not shift other tokens."""
        resolver = PlaceholderResolver("https://x/#a/#bb/#c")
        url = resolver.resolve({"a": "a-very-long-value", "bb": "", "c": "z"})
        assert url == "https://x/a-very-long-value//z"

    def test_spaces_encoded_as_plus(self) -> None:
        resolver = PlaceholderResolver("https://x/search/#q")
        assert resolver.resolve({"q": "hello world"}) == "https://x/search/hello+world"

    def test_non_string_values(self) -> None:
        resolver = PlaceholderResolver("https://x/#id")
        assert resolver.resolve({"id": 42}) == "https://x/42"

    def test_template_reused_across_records(self) -> None:
        resolver = PlaceholderResolver("https://x/#id")
        assert resolver.resolve({"id": 1}) == "https://x/1"
        assert resolver.resolve({"id": 2}) == "https://x/2"

    def test_charset_applied(self) -> None:
        resolver = PlaceholderResolver("https://x/#name", charset="latin-1")
        assert resolver.resolve({"name": "é"}) == "https://x/%E9"

    def test_utf8_default(self) -> None:
        resolver = PlaceholderResolver("https://x/#name")
        assert resolver.resolve({"name": "é"}) == "https://x/%C3%A9"

    def test_unsupported_charset(self) -> None:
        resolver = PlaceholderResolver("https://x/#id", charset="no-such-charset")
        with pytest.raises(EncodingError, match="Unsupported charset"):
            resolver.resolve({"id": "1"})

    def test_unencodable_value(self) -> None:
        resolver = PlaceholderResolver("https://x/#name", charset="ascii")
        with pytest.raises(EncodingError, match="name"):
            resolver.resolve({"name": "é"})

    def test_bindings_computed_once(self) -> None:
        resolver = PlaceholderResolver("https://x/#id/#kind")
        assert resolver.fields == ["id", "kind"]
        assert resolver.bindings[0].start == len("https://x/")
        assert resolver.bindings[0].end == len("https://x/#id")


class TestMissingPlaceholderPolicy:
    """Tests for records that lack a referenced field."""

    def test_leave_keeps_token(self) -> None:
        resolver = PlaceholderResolver("https://x/#id/#kind")
        assert resolver.resolve({"id": "1"}) == "https://x/1/#kind"

    def test_empty_substitutes_blank(self) -> None:
        resolver = PlaceholderResolver(
            "https://x/#id/#kind", missing=MissingPlaceholderPolicy.EMPTY
        )
        assert resolver.resolve({"id": "1"}) == "https://x/1/"

    def test_fail_raises(self) -> None:
        resolver = PlaceholderResolver("https://x/#id", missing=MissingPlaceholderPolicy.FAIL)
        with pytest.raises(EncodingError, match="#id"):
            resolver.resolve({"other": 1})

    def test_none_value_counts_as_missing(self) -> None:
        resolver = PlaceholderResolver("https://x/#id", missing=MissingPlaceholderPolicy.EMPTY)
        assert resolver.resolve({"id": None}) == "https://x/"

    def test_parse(self) -> None:
        assert MissingPlaceholderPolicy.parse("FAIL") is MissingPlaceholderPolicy.FAIL
        with pytest.raises(ConfigurationError):
            MissingPlaceholderPolicy.parse("ignore")


class TestForMethod:
    """Placeholders are only active for PUT and DELETE."""

    @pytest.mark.parametrize("method", [HttpMethod.PUT, HttpMethod.DELETE])
    def test_active_for_put_and_delete(self, method) -> None:
        resolver = PlaceholderResolver.for_method("https://x/#id", method)
        assert resolver.is_active
        assert resolver.resolve({"id": "7"}) == "https://x/7"

    @pytest.mark.parametrize("method", [HttpMethod.GET, HttpMethod.POST])
    def test_inactive_for_get_and_post(self, method) -> None:
        resolver = PlaceholderResolver.for_method("https://x/#id", method)
        assert not resolver.is_active
        assert resolver.resolve({"id": "7"}) == "https://x/#id"

    def test_inactive_without_tokens(self) -> None:
        resolver = PlaceholderResolver.for_method("https://x/items", HttpMethod.PUT)
        assert not resolver.is_active
        assert resolver.resolve({"id": "7"}) == "https://x/items"
