"""HTTP sink library modules.

This package contains the batching, encoding, retry and delivery building
blocks of the sink, plus the ``HttpRecordWriter`` that ties them together.
"""

from httpsink.lib.auth import AccessToken, CredentialProvider, OAuth2Config, fetch_access_token
from httpsink.lib.config import HttpSinkConfig, ProxyConfig, parse_headers
from httpsink.lib.config_loader import (
    SinkDefinition,
    load_sink_config,
    load_sink_definition,
    validate_sink_config,
)
from httpsink.lib.engine import DeliveryEngine, DeliveryRequest, DeliveryResult, DeliveryState
from httpsink.lib.env import expand_env_vars, expand_options, load_env_file
from httpsink.lib.error_policy import (
    ErrorHandlingEntry,
    ErrorPolicyTable,
    RetryAction,
    parse_error_handling,
)
from httpsink.lib.errors import (
    AuthenticationError,
    ConfigurationError,
    DeliveryError,
    EncodingError,
    SinkError,
    TerminalDeliveryError,
    TransientDeliveryError,
)
from httpsink.lib.io import detect_input_format, read_records
from httpsink.lib.logging import JSONFormatter, SinkLogger, get_sink_logger, setup_logging
from httpsink.lib.message_buffer import MessageBuffer, MessageFormat
from httpsink.lib.placeholders import MissingPlaceholderPolicy, PlaceholderResolver
from httpsink.lib.records import Record, Schema, find_placeholders
from httpsink.lib.resilience import RetryPolicy, RetryScheduler, with_retry
from httpsink.lib.transport import HttpMethod, SyncPoolConfig, create_session
from httpsink.lib.writer import DeliveryStats, HttpRecordWriter

__all__ = [
    # Writer
    "HttpRecordWriter",
    "DeliveryStats",
    # Configuration
    "HttpSinkConfig",
    "ProxyConfig",
    "parse_headers",
    "SinkDefinition",
    "load_sink_config",
    "load_sink_definition",
    "validate_sink_config",
    "expand_env_vars",
    "expand_options",
    "load_env_file",
    # Delivery
    "DeliveryEngine",
    "DeliveryRequest",
    "DeliveryResult",
    "DeliveryState",
    "HttpMethod",
    "SyncPoolConfig",
    "create_session",
    # Batching and encoding
    "MessageBuffer",
    "MessageFormat",
    "MissingPlaceholderPolicy",
    "PlaceholderResolver",
    "Record",
    "Schema",
    "find_placeholders",
    # Error handling and retries
    "ErrorHandlingEntry",
    "ErrorPolicyTable",
    "RetryAction",
    "parse_error_handling",
    "RetryPolicy",
    "RetryScheduler",
    "with_retry",
    # Authentication
    "AccessToken",
    "CredentialProvider",
    "OAuth2Config",
    "fetch_access_token",
    # Input
    "detect_input_format",
    "read_records",
    # Logging
    "JSONFormatter",
    "SinkLogger",
    "get_sink_logger",
    "setup_logging",
    # Errors
    "SinkError",
    "ConfigurationError",
    "DeliveryError",
    "TransientDeliveryError",
    "TerminalDeliveryError",
    "EncodingError",
    "AuthenticationError",
]
