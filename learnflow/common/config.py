"""
Centralized Configuration for LearnFlow

This module provides the configuration system for the analytics core.
Values come from defaults, an optional YAML/JSON config file, a ``.env``
file and environment variables (highest priority), with type checking and
validation done by pydantic.
"""

import os
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from learnflow.common.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def _env(name: str) -> Dict[str, Any]:
    """Field metadata naming the environment variable that overrides it."""
    return {"env": name}


class TelemetryConfig(BaseModel):
    """Event log configuration"""
    file_path: str = Field(default="data/telemetry.jsonl", json_schema_extra=_env("TELEMETRY_FILE"))
    retention_days: int = Field(default=365, json_schema_extra=_env("TELEMETRY_RETENTION_DAYS"))
    recent_limit: int = Field(default=50, json_schema_extra=_env("TELEMETRY_RECENT_LIMIT"))

    @field_validator('retention_days')
    @classmethod
    def validate_retention(cls, v):
        """Retention must be at least one day"""
        if v < 1:
            raise ValueError(f"Retention must be at least 1 day, got {v}")
        return v


class CacheConfig(BaseModel):
    """Dashboard cache configuration (TTLs in seconds)"""
    enabled: bool = Field(default=True, json_schema_extra=_env("CACHE_ENABLED"))
    namespace: str = Field(default="dashboard", json_schema_extra=_env("CACHE_NAMESPACE"))
    max_size: int = Field(default=10000, json_schema_extra=_env("CACHE_MAX_SIZE"))
    teacher_ttl: int = Field(default=60, json_schema_extra=_env("CACHE_TEACHER_TTL"))
    institution_ttl: int = Field(default=120, json_schema_extra=_env("CACHE_INSTITUTION_TTL"))
    metrics_ttl: int = Field(default=60, json_schema_extra=_env("CACHE_METRICS_TTL"))
    topic_ttl: int = Field(default=120, json_schema_extra=_env("CACHE_TOPIC_TTL"))
    system_health_ttl: int = Field(default=10, json_schema_extra=_env("CACHE_SYSTEM_HEALTH_TTL"))
    ethics_ttl: int = Field(default=120, json_schema_extra=_env("CACHE_ETHICS_TTL"))


class PrivacyConfig(BaseModel):
    """Anonymization and ethics tagging configuration"""
    anonymization_salt: str = Field(
        default="learnflow-default-salt",
        json_schema_extra=_env("ANONYMIZATION_SALT")
    )
    cheating_flags: List[str] = Field(
        default=["cheating_intent", "explicit_request_final_answer"],
        json_schema_extra=_env("ETHICS_CHEATING_FLAGS")
    )


class MetricsConfig(BaseModel):
    """Metrics export and cost estimation configuration"""
    enabled: bool = Field(default=True, json_schema_extra=_env("METRICS_ENABLED"))
    prefix: str = Field(default="learnflow", json_schema_extra=_env("METRICS_PREFIX"))
    input_cost_per_1k: float = Field(default=0.00025, json_schema_extra=_env("MODEL_INPUT_COST_PER_1K"))
    output_cost_per_1k: float = Field(default=0.0005, json_schema_extra=_env("MODEL_OUTPUT_COST_PER_1K"))
    monitor_max_entries: int = Field(default=10000, json_schema_extra=_env("MONITOR_MAX_ENTRIES"))


class LoggingConfig(BaseModel):
    """Logging configuration"""
    level: str = Field(default="INFO", json_schema_extra=_env("LOG_LEVEL"))
    json_output: bool = Field(default=False, json_schema_extra=_env("LOG_JSON"))
    file_path: Optional[str] = Field(default=None, json_schema_extra=_env("LOG_FILE"))

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        """Validate log level"""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


class APIConfig(BaseModel):
    """API configuration"""
    host: str = Field(default="0.0.0.0", json_schema_extra=_env("API_HOST"))
    port: int = Field(default=8000, json_schema_extra=_env("API_PORT"))
    prefix: str = Field(default="/api", json_schema_extra=_env("API_PREFIX"))
    allow_origins: List[str] = Field(default=["*"], json_schema_extra=_env("ALLOW_ORIGINS"))
    debug: bool = Field(default=False, json_schema_extra=_env("API_DEBUG"))


class EnvironmentConfig(BaseModel):
    """Environment configuration"""
    env: str = Field(default="development", json_schema_extra=_env("ENV"))

    @field_validator('env')
    @classmethod
    def validate_env(cls, v):
        """Validate environment"""
        valid_envs = ['development', 'testing', 'staging', 'production']
        if v.lower() not in valid_envs:
            raise ValueError(f"Invalid environment: {v}. Must be one of {valid_envs}")
        return v.lower()


class AppConfig(BaseModel):
    """Main application configuration"""
    app_name: str = Field(default="LearnFlow Analytics", json_schema_extra=_env("APP_NAME"))
    version: str = Field(default="0.1.0", json_schema_extra=_env("APP_VERSION"))
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    privacy: PrivacyConfig = Field(default_factory=PrivacyConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)

    @property
    def is_production(self) -> bool:
        """Check if environment is production"""
        return self.environment.env == "production"


def _coerce_env_value(raw: str, annotation: Any) -> Any:
    """Convert an environment string into something pydantic can validate."""
    if annotation is bool:
        return raw.strip().lower() in ("1", "true", "yes", "on")
    origin = getattr(annotation, "__origin__", None)
    if origin in (list, List):
        return [item.strip() for item in raw.split(",") if item.strip()]
    return raw


def _collect_env_overrides(model: type, environ: Dict[str, str]) -> Dict[str, Any]:
    """
    Walk a config model and pick up every field whose declared env var is set.

    Args:
        model: Pydantic model class
        environ: Environment mapping

    Returns:
        Nested dictionary of overrides
    """
    overrides: Dict[str, Any] = {}
    for name, field in model.model_fields.items():
        annotation = field.annotation
        if isinstance(annotation, type) and issubclass(annotation, BaseModel):
            nested = _collect_env_overrides(annotation, environ)
            if nested:
                overrides[name] = nested
            continue

        extra = field.json_schema_extra if isinstance(field.json_schema_extra, dict) else {}
        env_name = extra.get("env")
        if env_name and env_name in environ:
            overrides[name] = _coerce_env_value(environ[env_name], annotation)
    return overrides


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigLoader:
    """
    Configuration loader for the application.

    Loads configuration from:
    1. Default values
    2. Config file
    3. ``.env`` file and environment variables (highest priority)
    """

    def __init__(self, config_path: Optional[str] = None, environ: Optional[Dict[str, str]] = None,
                 use_dotenv: bool = True):
        """
        Initialize the config loader.

        Args:
            config_path: Path to config file (YAML or JSON)
            environ: Environment mapping (defaults to ``os.environ``)
            use_dotenv: Whether to load a ``.env`` file into the environment first
        """
        self.config_path = config_path or os.environ.get("CONFIG_PATH")
        self._environ = environ
        self._use_dotenv = use_dotenv
        self._config: Optional[AppConfig] = None

    def load(self) -> AppConfig:
        """
        Load configuration from all sources.

        Returns:
            Loaded configuration

        Raises:
            ConfigurationError: If the merged values fail validation
        """
        if self._config is not None:
            return self._config

        if self._use_dotenv and self._environ is None:
            load_dotenv(override=False)
        environ = self._environ if self._environ is not None else dict(os.environ)

        file_config: Dict[str, Any] = {}
        if self.config_path:
            file_config = self._load_from_file(self.config_path)

        merged = _deep_merge(file_config, _collect_env_overrides(AppConfig, environ))
        try:
            self._config = AppConfig(**merged)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        return self._config

    def _load_from_file(self, path: str) -> Dict[str, Any]:
        """
        Load configuration from a file.

        Args:
            path: Path to config file

        Returns:
            Loaded configuration dictionary
        """
        path = Path(path)
        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return {}

        try:
            if path.suffix.lower() in ['.yaml', '.yml']:
                with open(path, 'r') as f:
                    return yaml.safe_load(f) or {}
            elif path.suffix.lower() == '.json':
                with open(path, 'r') as f:
                    return json.load(f)
            else:
                logger.warning(f"Unsupported config file format: {path.suffix}")
                return {}
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            logger.error(f"Error loading config file: {e}")
            return {}


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """
    Get the loaded configuration, loading it on first use.

    Returns:
        Loaded configuration
    """
    global _config
    if _config is None:
        _config = ConfigLoader().load()
    return _config
