"""
Configuration for the capacity planning service.

Values come from ``config/config.yaml`` and are overridden by environment
variables.
"""

import os
from typing import Optional

import yaml

from .storage import InMemoryStore, JsonFileStore, KeyValueStore


DEFAULT_CONFIG_PATH = "config/config.yaml"


class Config:
    """Load configuration from config.yaml and environment."""

    def __init__(self, config_path: Optional[str] = None):
        self.config = {}
        config_path = config_path or os.getenv("CAPACITY_CONFIG", DEFAULT_CONFIG_PATH)

        if os.path.exists(config_path):
            with open(config_path, encoding="utf-8") as f:
                self.config = yaml.safe_load(f) or {}

        # Override with environment variables
        self._load_env()

    def _load_env(self):
        """Load configuration from environment variables."""
        env_mapping = {
            "CAPACITY_STORE_PATH": ("storage", "path"),
            "CAPACITY_PROJECT_KEY": ("project", "key"),
            "CAPACITY_LOG_LEVEL": ("logging", "level"),
            "CAPACITY_CORS_ORIGINS": ("api", "cors_origins"),
        }

        for env_var, (section, key) in env_mapping.items():
            value = os.getenv(env_var)
            if value:
                self.set(section, key, value)

    def get(self, section: str, key: str, default=None):
        """Get configuration value."""
        return (self.config.get(section) or {}).get(key, default)

    def set(self, section: str, key: str, value) -> None:
        """Set configuration value, replacing an empty section."""
        if section not in self.config or self.config[section] is None:
            self.config[section] = {}
        self.config[section][key] = value

    @property
    def store_path(self) -> Optional[str]:
        return self.get("storage", "path")

    @property
    def project_key(self) -> Optional[str]:
        return self.get("project", "key")

    @property
    def log_level(self) -> str:
        return self.get("logging", "level", "INFO")

    @property
    def cors_origins(self) -> list[str]:
        origins = self.get("api", "cors_origins", ["*"])
        if isinstance(origins, str):
            return [o.strip() for o in origins.split(",") if o.strip()]
        return list(origins)

    @property
    def policy_seed(self) -> dict:
        """Policy for namespaces that have never saved one, in wire keys."""
        return self.config.get("policy") or {}

    @property
    def team_members(self) -> list[dict]:
        """Seed roster; plain usernames are accepted."""
        members = self.get("team", "members", []) or []
        return [m if isinstance(m, dict) else {"username": str(m)} for m in members]

    def create_store(self) -> KeyValueStore:
        """File-backed store when a path is configured, in-memory otherwise."""
        if self.store_path:
            return JsonFileStore(self.store_path)
        return InMemoryStore()
