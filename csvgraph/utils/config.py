"""Configuration management using Pydantic for validation."""

from pathlib import Path
from typing import Any, Dict, Literal

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoaderConfig(BaseSettings):
    """CSV loading configuration."""

    csv_dir: str = "csv_output"
    batch_size: int = Field(default=5000, gt=0)
    merge_mode: bool = False
    progress_interval: int = Field(default=1000, ge=0)
    fail_fast: bool = False
    literal_mode: Literal["typed", "string"] = "typed"
    label_qualified_fallback: bool = False
    create_supporting_indexes: bool = True
    health_check: bool = True
    show_stats: bool = False
    stats_sample_label: str | None = None
    stats_sample_limit: int = Field(default=3, ge=0)


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    level: str = "INFO"
    file: str | None = "logs/csvgraph.log"
    rotation: str = "10 MB"
    retention: str = "1 week"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        level = v.upper()
        if level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class DatabaseConfig(BaseSettings):
    """Database configuration from environment variables."""

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    neo4j_uri: str = Field(default="bolt://localhost:7687")
    neo4j_user: str = Field(default="neo4j")
    neo4j_password: str = Field(default="")
    # Target graph; a Neo4j database name.
    neo4j_database: str = Field(default="neo4j")
    connection_timeout: float = Field(default=30.0, gt=0)
    max_connection_pool_size: int = Field(default=10, gt=0)


class Config(BaseSettings):
    """Main configuration class."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )

    loader: LoaderConfig = Field(default_factory=LoaderConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    @staticmethod
    def _deep_merge_dict(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
        """Deep-merge two dicts (overrides win)."""
        merged: Dict[str, Any] = dict(base)
        for key, value in overrides.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = Config._deep_merge_dict(merged[key], value)
            else:
                merged[key] = value
        return merged

    @classmethod
    def from_yaml(cls, yaml_path: str | Path = "config/config.yaml") -> "Config":
        """Load configuration from YAML file and environment variables.

        Precedence (highest to lowest):
        1) Environment variables / .env
        2) YAML file
        3) Model defaults

        Args:
            yaml_path: Path to YAML configuration file

        Returns:
            Config instance with loaded settings

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            yaml.YAMLError: If YAML file is invalid
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        with open(yaml_path) as f:
            yaml_config = yaml.safe_load(f) or {}

        if not isinstance(yaml_config, dict):
            raise ValueError(f"YAML config root must be a mapping/dict: {yaml_path}")

        # Nested BaseSettings do not see plain env vars (e.g. NEO4J_PASSWORD) through
        # the parent model, so DatabaseConfig overrides are merged explicitly.
        env_overrides = cls().model_dump(exclude_defaults=True)

        db_env_overrides = DatabaseConfig().model_dump(exclude_defaults=True)
        if db_env_overrides:
            yaml_db = yaml_config.get("database", {})
            env_overrides["database"] = cls._deep_merge_dict(
                yaml_db if isinstance(yaml_db, dict) else {},
                db_env_overrides,
            )

        merged = cls._deep_merge_dict(yaml_config, env_overrides)

        return cls(**merged)

    def with_overrides(self, **sections: Dict[str, Any]) -> "Config":
        """Return a copy with per-section overrides applied (None values ignored).

        Example:
            >>> cfg.with_overrides(loader={"batch_size": 100}, database={"neo4j_uri": None})
        """
        data = self.model_dump()
        for section, values in sections.items():
            cleaned = {k: v for k, v in (values or {}).items() if v is not None}
            data[section] = self._deep_merge_dict(data.get(section, {}), cleaned)
        return type(self).model_validate(data)


# Global configuration instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance.

    Raises:
        RuntimeError: If configuration hasn't been initialized
    """
    global _config
    if _config is None:
        raise RuntimeError("Configuration not initialized. Call load_config() first.")
    return _config


def load_config(yaml_path: str | Path | None = "config/config.yaml") -> Config:
    """Load configuration.

    Args:
        yaml_path: Path to YAML configuration file; ``None`` uses env and defaults only

    Returns:
        Loaded Config instance
    """
    global _config
    _config = Config() if yaml_path is None else Config.from_yaml(yaml_path)
    return _config


def reset_config() -> None:
    """Reset global configuration (mainly for testing)."""
    global _config
    _config = None
