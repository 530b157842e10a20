"""Record input for the command-line sink.

Reads records from local JSON Lines, JSON, CSV or TSV files. JSON Lines and
delimited files are streamed line by line so large inputs are never held in
memory; a JSON document is parsed whole.
"""

from __future__ import annotations

import csv
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

from httpsink.lib.errors import ConfigurationError, SinkError

logger = logging.getLogger(__name__)

__all__ = ["SUPPORTED_INPUT_FORMATS", "detect_input_format", "read_records"]

SUPPORTED_INPUT_FORMATS = {"jsonl", "json", "csv", "tsv"}

_SUFFIX_FORMATS = {
    ".jsonl": "jsonl",
    ".ndjson": "jsonl",
    ".json": "json",
    ".csv": "csv",
    ".tsv": "tsv",
}


def detect_input_format(path: Union[str, Path]) -> str:
    """Guess the input format from the file suffix."""
    suffix = Path(path).suffix.lower()
    try:
        return _SUFFIX_FORMATS[suffix]
    except KeyError:
        raise ConfigurationError(
            f"Cannot detect input format of '{path}'",
            field="input_format",
            suggestion=f"Pass --input-format, one of: {', '.join(sorted(SUPPORTED_INPUT_FORMATS))}",
        ) from None


def _read_jsonl(path: Path, encoding: str) -> Iterator[Dict[str, Any]]:
    with open(path, "r", encoding=encoding) as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError as e:
                raise SinkError(
                    f"Invalid JSON on line {line_number} of {path}: {e.msg}",
                    details={"path": str(path), "line": line_number},
                ) from e
            if not isinstance(record, dict):
                raise SinkError(f"Line {line_number} of {path} is not a JSON object")
            yield record


def _read_json(path: Path, encoding: str, json_path: Optional[str]) -> Iterator[Dict[str, Any]]:
    with open(path, "r", encoding=encoding) as f:
        try:
            data: Any = json.load(f)
        except json.JSONDecodeError as e:
            raise SinkError(f"Invalid JSON in {path}: {e.msg}", details={"path": str(path)}) from e

    if json_path:
        for part in json_path.split("."):
            if not isinstance(data, dict):
                raise SinkError(f"Cannot follow json_path '{json_path}' in file {path}")
            data = data.get(part, [])

    if isinstance(data, dict):
        yield data
        return
    if not isinstance(data, list):
        raise SinkError(f"JSON file {path} must contain an object or list of objects")
    for item in data:
        if not isinstance(item, dict):
            raise SinkError(f"JSON file {path} contains a non-object item: {item!r}")
        yield item


def _read_delimited(path: Path, encoding: str, delimiter: str) -> Iterator[Dict[str, Any]]:
    with open(path, "r", encoding=encoding, newline="") as f:
        reader = csv.DictReader(f, delimiter=delimiter)
        for row in reader:
            yield dict(row)


def read_records(
    path: Union[str, Path],
    fmt: Optional[str] = None,
    *,
    encoding: str = "utf-8",
    json_path: Optional[str] = None,
) -> Iterator[Dict[str, Any]]:
    """Yield records from a local file.

    Args:
        path: File to read
        fmt: One of jsonl, json, csv, tsv. Detected from the suffix when None.
        encoding: Text encoding of the file
        json_path: Dotted path to the record list inside a JSON document

    Raises:
        ConfigurationError: If the file is missing or the format is unknown
        SinkError: If the file content cannot be parsed
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Input file not found: {path}", field="input")

    fmt = (fmt or detect_input_format(path)).lower()
    if fmt not in SUPPORTED_INPUT_FORMATS:
        raise ConfigurationError(
            f"Unsupported input format: '{fmt}'",
            field="input_format",
            value=fmt,
        )

    logger.debug("Reading %s records from %s", fmt, path)
    if fmt == "jsonl":
        return _read_jsonl(path, encoding)
    if fmt == "json":
        return _read_json(path, encoding, json_path)
    return _read_delimited(path, encoding, "\t" if fmt == "tsv" else ",")
