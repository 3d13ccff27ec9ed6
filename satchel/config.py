"""
Config system - Layered configuration with validation.

Sources, lowest to highest precedence:
config files (YAML/JSON) < .env file < environment variables < overrides
"""

from typing import Any, Dict, Optional
from pathlib import Path
import json
import logging
import os
import re

import yaml
from dotenv import dotenv_values

from .sessions.policy import SessionPolicy

logger = logging.getLogger("satchel.config")

_ADAPTERS = ("param", "cookie", "header")
_GENERATORS = ("default", "secure")
_STORES = ("memory", "file")
_SAMESITE = ("strict", "lax", "none")


class ConfigError(Exception):
    """Raised when configuration validation fails."""
    pass


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources.

    Environment variable names drop the prefix, are lower-cased and split
    on double underscores, so ``SATCHEL_SESSIONS__TRANSPORT__ADAPTER=cookie``
    becomes ``{"sessions": {"transport": {"adapter": "cookie"}}}``.
    """

    def __init__(self, env_prefix: str = "SATCHEL_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[list[str]] = None,
        env_prefix: str = "SATCHEL_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from multiple sources with proper merge strategy.

        Args:
            paths: Config file paths or glob patterns (.yaml, .yml, .json)
            env_prefix: Prefix for environment variables
            env_file: Path to .env file
            overrides: Manual overrides (highest precedence)

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        for pattern in paths or []:
            loader._load_from_files(pattern)

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env()

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    def _load_from_files(self, pattern: str):
        """Load config from JSON or YAML files."""
        from glob import glob

        matches = sorted(glob(pattern))
        if not matches:
            logger.debug(f"No config files match {pattern!r}")

        for path_str in matches:
            path = Path(path_str)

            if path.suffix == ".json":
                self._load_json_file(path)
            elif path.suffix in (".yaml", ".yml"):
                self._load_yaml_file(path)
            else:
                raise ConfigError(f"Unsupported config file type: {path}")

    def _load_json_file(self, path: Path):
        """Load config from JSON file."""
        try:
            with open(path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}")
        if data:
            self._merge_dict(self.config_data, data)

    def _load_yaml_file(self, path: Path):
        """Load config from YAML file."""
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}")
        if data:
            self._merge_dict(self.config_data, data)

    def _load_env_file(self, path: str):
        """Load prefixed variables from a .env file."""
        env_path = Path(path)
        if not env_path.exists():
            logger.debug(f"Env file {path} not found, skipping")
            return

        for key, value in dotenv_values(env_path).items():
            if key.startswith(self.env_prefix) and value is not None:
                self._set_nested(key, value)

    def _load_from_env(self):
        """Load config from environment variables."""
        for key, value in os.environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str):
        """Convert SATCHEL_SESSIONS__SESSION_KEY to nested dict."""
        key = key[len(self.env_prefix):]
        parts = key.lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        if value.lower() in ("true", "yes", "on"):
            return True
        if value.lower() in ("false", "no", "off"):
            return False
        if value.lower() in ("none", "null"):
            return None

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        current = self.config_data

        for part in path.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default

        return current

    def to_dict(self) -> dict:
        """Export all config as dictionary."""
        return self.config_data.copy()

    def get_session_policy(self) -> SessionPolicy:
        """
        Build and validate the session policy from the ``sessions`` section.

        Raises:
            ConfigError: If a value has the wrong type or an unknown choice
        """
        section = self.get("sessions", {})
        if not isinstance(section, dict):
            raise ConfigError("'sessions' must be a mapping")

        for sub in ("transport", "expiry", "persistence"):
            if not isinstance(section.get(sub, {}), dict):
                raise ConfigError(f"'sessions.{sub}' must be a mapping")

        policy = SessionPolicy.from_dict(section)
        validate_session_policy(policy)
        return policy


def _check(condition: bool, message: str):
    if not condition:
        raise ConfigError(message)


def _positive_or_none(value: Any) -> bool:
    return value is None or (
        isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0
    )


def validate_session_policy(policy: SessionPolicy) -> None:
    """Raise ConfigError if ``policy`` cannot produce working collaborators."""
    _check(
        isinstance(policy.session_key, str) and bool(policy.session_key),
        "sessions.session_key must be a non-empty string",
    )
    _check(
        policy.generator in _GENERATORS,
        f"sessions.generator must be one of {_GENERATORS}, got {policy.generator!r}",
    )
    _check(isinstance(policy.validator, str), "sessions.validator must be a regex string")
    try:
        re.compile(policy.validator)
    except re.error as e:
        raise ConfigError(f"sessions.validator is not a valid regex: {e}")

    transport = policy.transport
    _check(
        transport.adapter in _ADAPTERS,
        f"sessions.transport.adapter must be one of {_ADAPTERS}, got {transport.adapter!r}",
    )
    _check(
        transport.cookie_samesite is None or transport.cookie_samesite in _SAMESITE,
        f"sessions.transport.cookie_samesite must be one of {_SAMESITE}",
    )
    for name in ("cookie_httponly", "cookie_secure"):
        _check(
            isinstance(getattr(transport, name), bool),
            f"sessions.transport.{name} must be a boolean",
        )
    _check(
        transport.cookie_max_age is None
        or (isinstance(transport.cookie_max_age, int) and not isinstance(transport.cookie_max_age, bool)),
        "sessions.transport.cookie_max_age must be an integer",
    )

    _check(_positive_or_none(policy.expiry.max_entries), "sessions.expiry.max_entries must be positive")
    _check(_positive_or_none(policy.expiry.ttl), "sessions.expiry.ttl must be positive")

    persistence = policy.persistence
    _check(
        persistence.store in _STORES,
        f"sessions.persistence.store must be one of {_STORES}, got {persistence.store!r}",
    )
    _check(
        persistence.store != "file" or bool(persistence.directory),
        "sessions.persistence.directory is required for the file store",
    )
    _check(
        _positive_or_none(persistence.max_sessions) and persistence.max_sessions is not None,
        "sessions.persistence.max_sessions must be positive",
    )
    _check(_positive_or_none(persistence.ttl), "sessions.persistence.ttl must be positive")
