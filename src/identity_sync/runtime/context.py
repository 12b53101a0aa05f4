"""Process-wide application context.

The active :class:`ConfigData` lives in a context variable. Code reads it with
:func:`get_config`; tests scope partial overrides with :func:`with_context`.
"""

from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from dotenv.main import load_dotenv
from loguru import logger
from pydantic import BaseModel

from src.identity_sync.runtime.config.config_data import ConfigData
from src.identity_sync.runtime.config.config_template import load_templated_yaml
from src.identity_sync.runtime.config.settings import EnvironmentVariables


@dataclass
class AppContext:
    """Application-wide state shared by both apps and the CLI."""

    config: ConfigData


def _load_default_config() -> ConfigData:
    load_dotenv()
    env = EnvironmentVariables()
    config_path = Path(env.config_file)
    if not config_path.exists():
        logger.warning("{} not found; using built-in defaults", config_path)
        return ConfigData()
    return load_templated_yaml(config_path, env_mode=env.environment)


_default_context = AppContext(config=_load_default_config())

_app_context: ContextVar[AppContext] = ContextVar(
    "app_context", default=_default_context
)


def get_context() -> AppContext:
    return _app_context.get()


def set_context(context: AppContext) -> Token[AppContext]:
    """Install ``context`` for the current execution context."""
    return _app_context.set(context)


def get_config() -> ConfigData:
    """The active configuration."""
    return get_context().config


def _explicit_fields(model: BaseModel) -> dict[str, Any]:
    """Only the values a caller actually set, at any nesting depth."""
    explicit: dict[str, Any] = {}
    for name in type(model).model_fields:
        value = getattr(model, name)
        if isinstance(value, BaseModel):
            nested = _explicit_fields(value)
            if nested:
                explicit[name] = nested
            elif name in model.model_fields_set:
                explicit[name] = value.model_dump()
        elif name in model.model_fields_set:
            explicit[name] = value
    return explicit


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def merge_config(base: ConfigData, override: ConfigData) -> ConfigData:
    """``base`` with every explicitly set value of ``override`` applied."""
    return ConfigData.model_validate(
        _deep_merge(base.model_dump(), _explicit_fields(override))
    )


@contextmanager
def with_context(config_override: ConfigData | None = None):
    """Temporarily run with ``config_override`` merged into the active config.

    Example:
        override = ConfigData()
        override.identity_provider.audience = "https://api.example.com"
        with with_context(override):
            assert get_config().identity_provider.audience == "https://api.example.com"
    """
    if config_override is None:
        yield
        return
    if not isinstance(config_override, ConfigData):
        raise ValueError(
            f"config_override must be ConfigData, or None, got {type(config_override)}"
        )

    merged = merge_config(get_config(), config_override)
    token = set_context(replace(get_context(), config=merged))
    try:
        yield
    finally:
        _app_context.reset(token)
