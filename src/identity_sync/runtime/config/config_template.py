"""Load ``config.yaml``, expanding ``${...}`` placeholders from the environment."""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from loguru import logger
from pydantic_core import ValidationError

from src.identity_sync.runtime.config.config_data import ConfigData

_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")

# Variables the deployment cannot start without
REQUIRED_ENV_VARS = {
    "IDP_DOMAIN": "Identity provider domain",
    "IDP_CLIENT_ID": "OAuth client ID",
    "IDP_CLIENT_SECRET": "OAuth client secret",
    "SESSION_SECRET": "Secret used to sign the session cookie",
}


def _resolve_placeholder(expression: str) -> str:
    if ":-" in expression:
        name, fallback = expression.split(":-", 1)
        # Set-but-empty counts as unset, like the shell
        return os.getenv(name) or fallback

    name, has_message, message = expression.partition(":?")
    value = os.getenv(name)
    if value is not None:
        return value
    if has_message:
        raise ValueError(f"Required environment variable {name}: {message}")
    raise ValueError(f"Required environment variable {name} not set")


def substitute_env_vars(text: str) -> str:
    """Expand environment placeholders in ``text``.

    ``${NAME}`` must be set, ``${NAME:-fallback}`` falls back when unset or
    empty, and ``${NAME:?message}`` fails with ``message`` when unset.

    Raises:
        ValueError: A required variable is missing
    """
    return _PLACEHOLDER.sub(lambda match: _resolve_placeholder(match.group(1)), text)


def apply_environment_overrides(env_mode: str) -> None:
    """Copy ``<ENV>_NAME`` variables onto ``NAME`` for the active environment."""
    prefix = f"{env_mode.upper()}_"
    overrides = {
        name[len(prefix):]: value
        for name, value in os.environ.items()
        if name.startswith(prefix) and len(name) > len(prefix)
    }
    if not overrides:
        return

    logger.info("Applying {} overrides: {}", env_mode, sorted(overrides))
    os.environ.update(overrides)


def _config_section(text: str) -> dict[str, Any]:
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValueError(f"Error parsing YAML: {e}") from e

    if not isinstance(document, dict):
        raise ValueError("Failed to parse YAML")
    return document.get("config") or {}


def load_templated_yaml(file_path: Path, env_mode: str = "development") -> ConfigData:
    """Read and validate a templated configuration file.

    Args:
        file_path: Path to the YAML file
        env_mode: Active environment, used for prefixed overrides

    Raises:
        ValueError: Missing variables, unparsable YAML or invalid values
        FileNotFoundError: If the YAML file doesn't exist
    """
    logger.info("Loading configuration for environment: {}", env_mode)
    apply_environment_overrides(env_mode)

    raw = Path(file_path).read_text(encoding="utf-8")
    section = _config_section(substitute_env_vars(raw))

    try:
        config = ConfigData.model_validate(section)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration: {e}") from e

    if not config.identity_provider.audience:
        logger.warning(
            "No API audience configured; API credentials will not be available "
            "and sync falls back to the identity credential"
        )
    return config


def validate_config_env_vars() -> dict[str, str]:
    """Required variables that are unset or empty, with their descriptions."""
    return {
        name: description
        for name, description in REQUIRED_ENV_VARS.items()
        if not os.getenv(name)
    }
