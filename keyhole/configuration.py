"""Layered configuration loader for keyhole."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, List, Literal, Mapping, Optional, Sequence

import yaml
from dotenv import dotenv_values
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator, model_validator

from .errors import TranslationProviderConfigurationError
from .namespacer import DEFAULT_ROLE_SUFFIXES
from .scanner import DEFAULT_ATTRIBUTES

APP_NAME = "keyhole"


class KeyholeConfig(BaseModel):
    """Schema describing all supported configuration options."""

    KEYHOLE_BASE_LOCALE: str = Field(default="en", description="Locale holding source text.")
    KEYHOLE_LOCALES: List[str] = Field(
        default_factory=lambda: ["en"],
        description="Every locale whose catalog is kept in sync.",
    )
    KEYHOLE_CATALOG_DIR: str = Field(default="src/assets/i18n")
    KEYHOLE_ATTRIBUTES: List[str] = Field(
        default_factory=lambda: sorted(DEFAULT_ATTRIBUTES),
        description="Attributes whose literal values are extracted.",
    )
    KEYHOLE_ROLE_SUFFIXES: List[str] = Field(
        default_factory=lambda: list(DEFAULT_ROLE_SUFFIXES)
    )
    KEYHOLE_MAX_KEY_WORDS: int = Field(default=4, ge=1)
    KEYHOLE_MAX_KEY_LENGTH: int = Field(default=32, ge=8)
    KEYHOLE_BACKEND: Literal["none", "echo", "openai", "azure_openai"] = Field(
        default="none",
        description="Translation backend used for non-base locales.",
    )
    KEYHOLE_BACKEND_TIMEOUT: float = Field(default=10.0, gt=0)
    KEYHOLE_BACKEND_RETRIES: int = Field(default=1, ge=0)
    KEYHOLE_PROVIDER_DEBUG: bool = Field(default=False)
    OPENAI_API_KEY: Optional[SecretStr] = None
    OPENAI_MODEL: Optional[str] = None
    AZURE_OPENAI_API_KEY: Optional[SecretStr] = None
    AZURE_OPENAI_ENDPOINT: Optional[str] = None
    AZURE_OPENAI_API_VERSION: Optional[str] = None
    AZURE_OPENAI_DEPLOYMENT_NAME: Optional[str] = None

    @field_validator(
        "KEYHOLE_LOCALES", "KEYHOLE_ATTRIBUTES", "KEYHOLE_ROLE_SUFFIXES", mode="before"
    )
    @classmethod
    def _split_lists(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @model_validator(mode="before")
    @classmethod
    def _normalise_backend(cls, data: Any) -> Any:
        if isinstance(data, dict):
            raw_value = data.get("KEYHOLE_BACKEND")
            if isinstance(raw_value, str):
                normalized = raw_value.strip().lower().replace("-", "_")
                synonyms = {
                    "azure_open_ai": "azure_openai",
                    "azureopenai": "azure_openai",
                    "off": "none",
                    "": "none",
                }
                data["KEYHOLE_BACKEND"] = synonyms.get(normalized, normalized)
        return data

    @model_validator(mode="after")
    def _base_is_known(self) -> "KeyholeConfig":
        if self.KEYHOLE_BASE_LOCALE not in self.KEYHOLE_LOCALES:
            self.KEYHOLE_LOCALES = [self.KEYHOLE_BASE_LOCALE, *self.KEYHOLE_LOCALES]
        return self


def discover_config_files(app_dir: Path) -> List[Path]:
    """YAML files in increasing order of precedence."""

    home = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    candidates = [
        home / APP_NAME / "config.yaml",
        app_dir / f"{APP_NAME}.yaml",
        app_dir / f"{APP_NAME}.yml",
    ]
    return [path for path in candidates if path.is_file()]


def _load_discovered_yaml(app_dir: Path) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for path in discover_config_files(app_dir):
        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise TranslationProviderConfigurationError(
                f"Configuration file {path} could not be read: {exc}"
            ) from exc
        if parsed is None:
            continue
        if not isinstance(parsed, Mapping):
            raise TranslationProviderConfigurationError(
                f"Invalid configuration file {path}: expected a mapping at the root."
            )
        result.update(parsed)
    return result


def _merge_env_sources(target: dict[str, Any], *, app_dir: Path) -> None:
    """Merge .env and process environment variables into the target mapping."""

    allowed = set(KeyholeConfig.model_fields)

    def merge_values(values: Mapping[str, Optional[str]]) -> None:
        for key, value in sorted(values.items()):
            if value is None or key not in allowed:
                continue
            target[key] = value

    dotenv_path = app_dir / ".env"
    if dotenv_path.exists():
        merge_values(dotenv_values(dotenv_path))
    merge_values(dict(os.environ))


@lru_cache(maxsize=4)
def _load_config(app_dir: Path) -> KeyholeConfig:
    """Load configuration layers once and cache the validated model."""

    combined = _load_discovered_yaml(app_dir)
    _merge_env_sources(combined, app_dir=app_dir)
    try:
        settings = KeyholeConfig.model_validate(combined)
    except ValidationError as exc:
        raise TranslationProviderConfigurationError(
            _format_validation_errors(exc.errors())
        ) from exc
    _validate_backend_settings(settings)
    return settings


def _validate_backend_settings(settings: KeyholeConfig) -> None:
    backend = settings.KEYHOLE_BACKEND
    errors: list[str] = []

    if backend == "openai" and not settings.OPENAI_API_KEY:
        errors.append("OPENAI_API_KEY is required when KEYHOLE_BACKEND is 'openai'.")
    elif backend == "azure_openai":
        missing = [
            name
            for name, value in {
                "AZURE_OPENAI_API_KEY": settings.AZURE_OPENAI_API_KEY,
                "AZURE_OPENAI_ENDPOINT": settings.AZURE_OPENAI_ENDPOINT,
                "AZURE_OPENAI_API_VERSION": settings.AZURE_OPENAI_API_VERSION,
                "AZURE_OPENAI_DEPLOYMENT_NAME": settings.AZURE_OPENAI_DEPLOYMENT_NAME,
            }.items()
            if not value
        ]
        if missing:
            errors.append(
                "The following Azure OpenAI settings must be provided when "
                f"KEYHOLE_BACKEND is 'azure_openai': {', '.join(missing)}."
            )

    if errors:
        bullet_list = "\n".join(f"- {message}" for message in errors)
        raise TranslationProviderConfigurationError(
            "Configuration validation errors detected:\n" + bullet_list
        )


def _format_validation_errors(entries: Sequence[Mapping[str, Any]]) -> str:
    details: list[str] = []
    for entry in entries:
        location = ".".join(str(part) for part in entry.get("loc") or () if part != "")
        message = str(entry.get("msg") or "Invalid value")
        prefix = f"{location}: " if location else ""
        details.append(f"- {prefix}{message}")
    return "Configuration validation errors detected:\n" + "\n".join(details)


def get_settings(app_dir: Path | None = None) -> KeyholeConfig:
    """Return the validated settings for ``app_dir`` (default: working directory)."""

    return _load_config((app_dir or Path.cwd()).resolve())


def clear_settings_cache() -> None:
    _load_config.cache_clear()
