"""
Config system - layered configuration for Quarry.

Merge precedence (later overrides earlier):
defaults < config files (YAML/JSON) < .env file < environment variables < overrides
"""

from typing import Any, Dict, Optional
from dataclasses import dataclass, fields
from pathlib import Path
import json
import os

from .faults.domains import ConfigInvalidFault


DEFAULTS: Dict[str, Any] = {
    "database": {
        "url": "sqlite:///db.sqlite3",
        "echo": False,
        "connect_retries": 3,
        "connect_retry_delay": 0.5,
        "migrations_dir": "migrations",
    },
}


@dataclass(frozen=True)
class DatabaseConfig:
    """Typed view of the ``database`` config section."""

    url: str = "sqlite:///db.sqlite3"
    echo: bool = False
    connect_retries: int = 3
    connect_retry_delay: float = 0.5
    migrations_dir: str = "migrations"


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources.

    Usage:
        config = ConfigLoader.load(paths=["quarry.yaml"], env_file=".env")
        db = Database.from_config(config.database_config())
    """

    def __init__(self, env_prefix: str = "QUARRY_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}
        self._merge_dict(self.config_data, json.loads(json.dumps(DEFAULTS)))

    @classmethod
    def load(
        cls,
        paths: Optional[list[str]] = None,
        env_prefix: str = "QUARRY_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from multiple sources with proper merge strategy.

        Args:
            paths: List of config file paths (glob patterns supported)
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

        for path_str in sorted(glob(pattern)):
            path = Path(path_str)
            if path.suffix == ".json":
                self._load_json_file(path)
            elif path.suffix in (".yaml", ".yml"):
                self._load_yaml_file(path)

    def _load_json_file(self, path: Path):
        """Load config from JSON file."""
        with open(path) as f:
            data = json.load(f)
            self._merge_dict(self.config_data, data)

    def _load_yaml_file(self, path: Path):
        """Load config from YAML file."""
        import yaml
        with open(path) as f:
            data = yaml.safe_load(f)
            if data:
                self._merge_dict(self.config_data, data)

    def _load_env_file(self, path: str):
        """Load prefixed keys from a .env file."""
        from dotenv import dotenv_values

        env_path = Path(path)
        if not env_path.exists():
            return

        for key, value in dotenv_values(env_path).items():
            if value is not None and key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _load_from_env(self):
        """Load config from environment variables."""
        for key, value in os.environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str):
        """Convert QUARRY_DATABASE__URL to {"database": {"url": ...}}."""
        key = key[len(self.env_prefix):]

        # Double underscore separates nesting levels
        parts = key.lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False

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
        parts = path.split(".")
        current = self.config_data

        for part in parts:
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default

        return current

    def database_config(self) -> DatabaseConfig:
        """Validate the ``database`` section and return it typed."""
        section = self.get("database", {})
        if not isinstance(section, dict):
            raise ConfigInvalidFault("database", "expected a mapping")

        values: Dict[str, Any] = {}
        for name in (f.name for f in fields(DatabaseConfig)):
            if name not in section:
                continue
            raw = section[name]
            try:
                if name in ("url", "migrations_dir"):
                    if not isinstance(raw, str) or not raw:
                        raise ValueError("expected a non-empty string")
                    values[name] = raw
                elif name == "echo":
                    values[name] = raw if isinstance(raw, bool) else str(raw).lower() in ("1", "true", "yes", "on")
                elif name == "connect_retries":
                    values[name] = int(raw)
                    if values[name] < 1:
                        raise ValueError("must be at least 1")
                else:
                    values[name] = float(raw)
                    if values[name] < 0:
                        raise ValueError("must not be negative")
            except (TypeError, ValueError) as exc:
                raise ConfigInvalidFault(f"database.{name}", str(exc)) from exc

        return DatabaseConfig(**values)
