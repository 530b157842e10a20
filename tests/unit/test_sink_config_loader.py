"""Tests for loading sink configuration from YAML."""

from pathlib import Path

import pytest

from httpsink.lib.config_loader import (
    load_sink_config,
    load_sink_definition,
    validate_sink_config,
)
from httpsink.lib.error_policy import RetryAction
from httpsink.lib.errors import ConfigurationError
from httpsink.lib.transport import HttpMethod

SINK_YAML = """
sink:
  url: "https://${ORDERS_API_HOST}/v1/orders/#order_id"
  method: PUT
  batch_size: 1
  request_headers:
    X-Tenant: acme
  error_handling:
    '5\\d\\d': retry
    '404': skip
    '4\\d\\d': fail
  retry_policy: linear
  linear_retry_interval: 2
  max_retry_duration: 30
  oauth2:
    token_url: https://login.example.com/oauth/token
    client_id: ${OAUTH_CLIENT_ID}
    client_secret: ${OAUTH_CLIENT_SECRET}
    refresh_token: ${OAUTH_REFRESH_TOKEN}

schema: [order_id, customer_id, total]
"""


@pytest.fixture
def sink_env(monkeypatch):
    monkeypatch.setenv("ORDERS_API_HOST", "orders.example.com")
    monkeypatch.setenv("OAUTH_CLIENT_ID", "client")
    monkeypatch.setenv("OAUTH_CLIENT_SECRET", "secret")
    monkeypatch.setenv("OAUTH_REFRESH_TOKEN", "refresh")


def _write(tmp_path, text, name="sink.yaml"):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadSinkDefinition:
    """Tests for load_sink_definition."""

    def test_full_definition(self, tmp_path, sink_env) -> None:
        definition = load_sink_definition(_write(tmp_path, SINK_YAML))
        config = definition.config

        assert config.url == "https://orders.example.com/v1/orders/#order_id"
        assert config.method is HttpMethod.PUT
        assert config.request_headers == {"X-Tenant": "acme"}
        assert config.oauth2 is not None
        assert config.oauth2.client_secret == "secret"
        assert config.error_table().resolve(404) is RetryAction.SKIP
        assert config.error_table().resolve(502) is RetryAction.RETRY
        assert definition.schema is not None
        assert definition.schema.fields == ("order_id", "customer_id", "total")

    def test_env_file_loaded_first(self, tmp_path, monkeypatch) -> None:
        for name in ("ORDERS_API_HOST", "OAUTH_CLIENT_ID", "OAUTH_CLIENT_SECRET", "OAUTH_REFRESH_TOKEN"):
            monkeypatch.setenv(name, "")
            monkeypatch.delenv(name)
        env_file = _write(
            tmp_path,
            "ORDERS_API_HOST=from-env-file.example.com\n"
            "OAUTH_CLIENT_ID=c\nOAUTH_CLIENT_SECRET=s\nOAUTH_REFRESH_TOKEN=r\n",
            name=".env",
        )

        config = load_sink_config(_write(tmp_path, SINK_YAML), env_file=env_file)
        assert config.url.startswith("https://from-env-file.example.com/")

    def test_schema_optional(self, tmp_path) -> None:
        definition = load_sink_definition(
            _write(tmp_path, "sink:\n  url: https://api.example.com/v1\n")
        )
        assert definition.schema is None

    def test_schema_as_string(self, tmp_path) -> None:
        definition = load_sink_definition(
            _write(tmp_path, "sink:\n  url: https://api.example.com/v1\nschema: 'id, name'\n")
        )
        assert definition.schema.fields == ("id", "name")

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            load_sink_definition(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError, match="Invalid YAML syntax"):
            load_sink_definition(_write(tmp_path, "sink: [unclosed\n"))

    def test_empty_file(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError, match="Empty configuration file"):
            load_sink_definition(_write(tmp_path, ""))

    def test_missing_sink_section(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError, match="'sink' section"):
            load_sink_definition(_write(tmp_path, "source:\n  path: x\n"))

    def test_invalid_values_reported(self, tmp_path) -> None:
        path = _write(tmp_path, "sink:\n  url: https://api.example.com\n  batch_size: 0\n")
        with pytest.raises(ConfigurationError, match="Batch size must be greater than 0"):
            load_sink_definition(path)


class TestValidateSinkConfig:
    """Tests for validate_sink_config."""

    def test_valid(self, tmp_path) -> None:
        assert validate_sink_config(_write(tmp_path, "sink:\n  url: https://api.example.com\n")) == []

    def test_invalid_lists_issues(self, tmp_path) -> None:
        path = _write(
            tmp_path, "sink:\n  url: https://api.example.com\n  batch_size: 0\n  method: PATCH\n"
        )
        errors = validate_sink_config(path)
        assert len(errors) == 2


@pytest.mark.parametrize("name", ["orders_sink.yaml", "events_batch_sink.yaml"])
def test_shipped_examples_are_valid(name, sink_env) -> None:
    path = Path(__file__).resolve().parents[2] / "docs" / "examples" / name
    assert validate_sink_config(path) == []
