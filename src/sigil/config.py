"""
Process-wide defaults for sigil.

Defaults are conservative so programs run without any setup. Override them
with ``configure(...)`` at startup, through ``SIGIL_*`` environment variables
via ``Settings.from_env()``, or temporarily with ``settings_override(...)``.
"""

from __future__ import annotations

import os
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, fields, replace
from typing import Any, TypeVar

from sigil.errors import ConfigurationError

T = TypeVar("T")


@dataclass(slots=True)
class Settings:
    """Defaults consulted by modules, models and retry policies."""

    default_model: Any = None

    # Retry behaviour for transient model failures
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 60.0
    retry_jitter: bool = True

    # Carried through to the model capability; enforcement happens there
    model_timeout: float = 30.0

    temperature: float = 0.7
    max_tokens: int = 1000

    max_assertion_retries: int = 3
    assertion_retry_delay: float = 0.1

    def validate(self) -> None:
        if self.default_model is not None and not callable(getattr(self.default_model, "complete", None)):
            raise ConfigurationError("default_model must implement complete(messages, **options)")
        if self.max_retries < 1:
            raise ConfigurationError("max_retries must be >= 1", context={"max_retries": self.max_retries})
        if self.model_timeout <= 0:
            raise ConfigurationError("model_timeout must be positive", context={"model_timeout": self.model_timeout})
        if self.retry_base_delay < 0 or self.retry_max_delay < 0:
            raise ConfigurationError("retry delays must be non-negative")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        for env_name, attr, cast in _ENV_FIELDS:
            raw = env.get(env_name)
            if raw is None or raw == "":
                continue
            try:
                overrides[attr] = cast(raw)
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {env_name}: {raw!r}", original_error=e) from e
        settings = cls(**overrides)
        settings.validate()
        return settings


_ENV_FIELDS = (
    ("SIGIL_MAX_RETRIES", "max_retries", int),
    ("SIGIL_RETRY_BASE_DELAY", "retry_base_delay", float),
    ("SIGIL_RETRY_MAX_DELAY", "retry_max_delay", float),
    ("SIGIL_MODEL_TIMEOUT", "model_timeout", float),
    ("SIGIL_TEMPERATURE", "temperature", float),
    ("SIGIL_MAX_TOKENS", "max_tokens", int),
)

_lock = threading.Lock()
_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        with _lock:
            if _settings is None:
                _settings = Settings()
    return _settings


def configure(**overrides: Any) -> Settings:
    """Replace fields on the process-wide settings and return the new instance."""
    global _settings
    new_settings = replace(get_settings(), **checked_overrides(Settings, overrides))
    new_settings.validate()
    with _lock:
        _settings = new_settings
    return new_settings


def reset_settings() -> Settings:
    global _settings
    with _lock:
        _settings = Settings()
    return _settings


@contextmanager
def settings_override(**overrides: Any) -> Iterator[Settings]:
    global _settings
    previous = get_settings()
    scoped = configure(**overrides)
    try:
        yield scoped
    finally:
        with _lock:
            _settings = previous


def checked_overrides(cls: type, overrides: Mapping[str, Any]) -> dict[str, Any]:
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ConfigurationError(f"Unknown {cls.__name__} options: {', '.join(unknown)}")
    return dict(overrides)


def build_config(cls: type[T], value: T | Mapping[str, Any] | None) -> T:
    """Accept a config dataclass instance, a mapping of overrides, or None."""
    if value is None:
        return cls()
    if isinstance(value, cls):
        return value
    if isinstance(value, Mapping):
        return cls(**checked_overrides(cls, value))
    raise ConfigurationError(f"Expected {cls.__name__} or mapping, got {type(value).__name__}")
