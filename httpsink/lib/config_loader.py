"""YAML configuration loader for HTTP sinks.

Lets a sink be described in a YAML file instead of Python code.

Example YAML (orders_sink.yaml):
    sink:
      url: "https://${ORDERS_API_HOST}/v1/orders/#order_id"
      method: PUT
      batch_size: 1
      message_format: json
      request_headers:
        X-Tenant: acme
      error_handling:
        '5\\d\\d': retry
        '404': skip
        '4\\d\\d': fail
      retry_policy: exponential
      max_retry_duration: 300
      oauth2:
        token_url: https://login.example.com/oauth/token
        client_id: ${OAUTH_CLIENT_ID}
        client_secret: ${OAUTH_CLIENT_SECRET}
        refresh_token: ${OAUTH_REFRESH_TOKEN}

    # Optional: field names of the input records
    schema: [order_id, customer_id, total]

Regex keys in ``error_handling`` should be single-quoted so YAML keeps the
backslashes.

Usage:
    from httpsink.lib.config_loader import load_sink_config
    config = load_sink_config("./orders_sink.yaml")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from httpsink.lib.config import HttpSinkConfig
from httpsink.lib.env import expand_options, load_env_file
from httpsink.lib.errors import ConfigurationError
from httpsink.lib.records import Schema

logger = logging.getLogger(__name__)

__all__ = [
    "SinkDefinition",
    "load_sink_config",
    "load_sink_definition",
    "validate_sink_config",
]


@dataclass(frozen=True)
class SinkDefinition:
    """A parsed sink YAML file."""

    config: HttpSinkConfig
    schema: Optional[Schema]
    config_path: Path


def _read_yaml(config_path: Path) -> Dict[str, Any]:
    if not config_path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {config_path}",
            field="config",
            value=str(config_path),
        )

    with open(config_path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax: {e}", value=str(config_path)) from e

    if not data:
        raise ConfigurationError(f"Empty configuration file: {config_path}")
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Configuration file must contain a mapping, got {type(data).__name__}"
        )
    return data


def _parse_schema(value: Any) -> Optional[Schema]:
    if value is None:
        return None
    if isinstance(value, str):
        value = [name.strip() for name in value.split(",") if name.strip()]
    if not isinstance(value, list):
        raise ConfigurationError("schema must be a list of field names", field="schema")
    return Schema.from_fields(str(name) for name in value)


def load_sink_definition(
    config_path: Union[str, Path],
    *,
    env_file: Optional[Union[str, Path]] = None,
    strict_env: bool = False,
) -> SinkDefinition:
    """Load a sink definition (config plus optional schema) from YAML.

    Args:
        config_path: Path to the YAML configuration file
        env_file: Optional .env file loaded before ``${VAR}`` expansion
        strict_env: Fail on ``${VAR}`` references that are not set

    Raises:
        ConfigurationError: If the file is missing, malformed or invalid
    """
    config_path = Path(config_path)
    if env_file is not None:
        load_env_file(env_file)

    data = _read_yaml(config_path)
    if "sink" not in data:
        raise ConfigurationError("Configuration must have a 'sink' section", field="sink")
    sink_section = data["sink"]
    if not isinstance(sink_section, dict):
        raise ConfigurationError("'sink' section must be a mapping", field="sink")

    options = expand_options(sink_section, strict=strict_env)
    config = HttpSinkConfig.from_dict(options)
    schema = _parse_schema(data.get("schema"))

    logger.debug("Loaded sink config for %s from %s", config.display_name, config_path)
    return SinkDefinition(config=config, schema=schema, config_path=config_path)


def load_sink_config(
    config_path: Union[str, Path],
    *,
    env_file: Optional[Union[str, Path]] = None,
) -> HttpSinkConfig:
    """Load and validate the ``sink`` section of a YAML file.

    Example:
        config = load_sink_config("./orders_sink.yaml")
        writer = HttpRecordWriter(config)
    """
    return load_sink_definition(config_path, env_file=env_file).config


def validate_sink_config(config_path: Union[str, Path]) -> List[str]:
    """Validate a YAML sink file without creating a writer.

    Returns:
        List of validation errors (empty if valid)
    """
    try:
        load_sink_definition(config_path)
    except ConfigurationError as e:
        return list(e.issues) or [e.message]
    return []
