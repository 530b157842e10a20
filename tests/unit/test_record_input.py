"""Tests for reading input records from files."""

import json

import pytest

from httpsink.lib.errors import ConfigurationError, SinkError
from httpsink.lib.io import detect_input_format, read_records


class TestDetectInputFormat:
    """Tests for detect_input_format."""

    @pytest.mark.parametrize(
        "name,fmt",
        [("a.jsonl", "jsonl"), ("a.ndjson", "jsonl"), ("a.JSON", "json"), ("a.csv", "csv"), ("a.tsv", "tsv")],
    )
    def test_by_suffix(self, name, fmt) -> None:
        assert detect_input_format(name) == fmt

    def test_unknown_suffix(self) -> None:
        with pytest.raises(ConfigurationError, match="Cannot detect input format"):
            detect_input_format("records.parquet")


class TestReadRecords:
    """Tests for read_records."""

    def test_jsonl_skips_blank_lines(self, tmp_path) -> None:
        path = tmp_path / "in.jsonl"
        path.write_text('{"id": 1}\n\n{"id": 2}\n', encoding="utf-8")
        assert list(read_records(path)) == [{"id": 1}, {"id": 2}]

    def test_jsonl_bad_line(self, tmp_path) -> None:
        path = tmp_path / "in.jsonl"
        path.write_text('{"id": 1}\n{oops\n', encoding="utf-8")
        with pytest.raises(SinkError, match="line 2"):
            list(read_records(path))

    def test_json_array(self, tmp_path) -> None:
        path = tmp_path / "in.json"
        path.write_text(json.dumps([{"id": 1}, {"id": 2}]), encoding="utf-8")
        assert list(read_records(path)) == [{"id": 1}, {"id": 2}]

    def test_json_single_object(self, tmp_path) -> None:
        path = tmp_path / "in.json"
        path.write_text('{"id": 1}', encoding="utf-8")
        assert list(read_records(path)) == [{"id": 1}]

    def test_json_path(self, tmp_path) -> None:
        path = tmp_path / "in.json"
        path.write_text(json.dumps({"data": {"items": [{"id": 1}]}}), encoding="utf-8")
        assert list(read_records(path, json_path="data.items")) == [{"id": 1}]

    def test_csv(self, tmp_path) -> None:
        path = tmp_path / "in.csv"
        path.write_text("id,name\n1,Ann\n2,\"Smith, J\"\n", encoding="utf-8")
        assert list(read_records(path)) == [
            {"id": "1", "name": "Ann"},
            {"id": "2", "name": "Smith, J"},
        ]

    def test_tsv_with_explicit_format(self, tmp_path) -> None:
        path = tmp_path / "in.txt"
        path.write_text("id\tname\n1\tAnn\n", encoding="utf-8")
        assert list(read_records(path, "tsv")) == [{"id": "1", "name": "Ann"}]

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError, match="Input file not found"):
            read_records(tmp_path / "missing.jsonl")

    def test_unsupported_format(self, tmp_path) -> None:
        path = tmp_path / "in.jsonl"
        path.write_text("", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Unsupported input format"):
            read_records(path, "xml")
