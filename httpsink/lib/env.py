"""Environment variable expansion for sink configuration.

Secrets such as OAuth2 client secrets, refresh tokens and proxy passwords
should never be written into config files. Reference them as ``${VAR_NAME}``
(or ``${VAR_NAME:-default}``) and they are expanded when the config is loaded.

Uses python-dotenv for .env file loading.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv

from httpsink.lib.errors import ConfigurationError

__all__ = ["expand_env_vars", "expand_options", "load_env_file"]

# ${VAR}, ${VAR:-default} or $VAR
ENV_VAR_PATTERN = re.compile(
    r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}|\$([A-Za-z_][A-Za-z0-9_]*)"
)


def load_env_file(
    path: Optional[Union[str, Path]] = None,
    *,
    override: bool = False,
) -> bool:
    """Load environment variables from a .env file.

    Args:
        path: Path to .env file. If None, python-dotenv searches the current
              directory and its parents.
        override: If True, override existing environment variables.

    Returns:
        True if a .env file was found and loaded, False otherwise.
    """
    if path is not None and not Path(path).exists():
        raise ConfigurationError(f"Env file not found: {path}", field="env_file")
    return load_dotenv(dotenv_path=path, override=override)


def expand_env_vars(value: str, *, strict: bool = False) -> str:
    """Expand environment variables in a string.

    Args:
        value: String potentially containing env var references
        strict: If True, raise ConfigurationError for variables that are
                unset and have no default

    Example:
        >>> os.environ["SINK_HOST"] = "api.example.com"
        >>> expand_env_vars("https://${SINK_HOST}/v1/#id")
        'https://api.example.com/v1/#id'
    """

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1) or match.group(3)
        default = match.group(2)
        env_value = os.environ.get(var_name)
        if env_value is not None:
            return env_value
        if default is not None:
            return default
        if strict:
            raise ConfigurationError(
                f"Environment variable not set: {var_name}",
                field=var_name,
                suggestion="Export the variable or add it to the .env file.",
            )
        return str(match.group(0))

    return ENV_VAR_PATTERN.sub(replacer, value)


def _expand_value(value: Any, strict: bool) -> Any:
    if isinstance(value, str):
        return expand_env_vars(value, strict=strict)
    if isinstance(value, dict):
        return expand_options(value, strict=strict)
    if isinstance(value, list):
        expanded: List[Any] = [_expand_value(item, strict) for item in value]
        return expanded
    return value


def expand_options(options: Dict[str, Any], *, strict: bool = False) -> Dict[str, Any]:
    """Recursively expand environment variables in an options dict.

    Non-string leaves (numbers, booleans, None) are returned unchanged.

    Example:
        >>> os.environ["REFRESH_TOKEN"] = "r-123"
        >>> expand_options({"oauth2": {"refresh_token": "${REFRESH_TOKEN}"}, "batch_size": 5})
        {'oauth2': {'refresh_token': 'r-123'}, 'batch_size': 5}
    """
    return {key: _expand_value(value, strict) for key, value in options.items()}
