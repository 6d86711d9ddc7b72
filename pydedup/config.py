"""Configuration management for pydedup."""

import os
import json
import yaml
from typing import Dict, Optional, Any


BACKENDS = ("memory", "redis")


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Configuration manager with file and environment variable support."""

    def __init__(self, config_file: Optional[str] = None):
        self.config: Dict[str, Any] = {}
        self.config_file = config_file or os.getenv('PYDEDUP_CONFIG', 'pydedup.yaml')
        self._set_defaults()
        self._load_config()
        self._load_env_overrides()

    def _load_config(self):
        """Merge configuration from file over the defaults."""
        if not os.path.exists(self.config_file):
            return

        with open(self.config_file, 'r') as f:
            if self.config_file.endswith('.yaml') or self.config_file.endswith('.yml'):
                loaded = yaml.safe_load(f) or {}
            elif self.config_file.endswith('.json'):
                loaded = json.load(f)
            else:
                return

        for section, values in loaded.items():
            if isinstance(values, dict):
                self.config.setdefault(section, {}).update(values)
            else:
                self.config[section] = values

    def _set_defaults(self):
        self.config = {
            "guard": {
                "header_name": "X-Request-Id",
                "pass_on_missing": False,
                "error": None,
                "error_overlap": None,
                "backend": "memory"
            },
            "redis": {
                "url": "redis://localhost:6379/0",
                "key": "RequestID",
                "socket_timeout": None
            },
            "api": {
                "host": "0.0.0.0",
                "port": 8080
            },
            "monitoring": {
                "prometheus_enabled": False,
                "prometheus_port": 9090
            }
        }

    def _load_env_overrides(self):
        """Override config with environment variables."""
        env_mappings = {
            "REQUEST_ID_HEADER": ("guard", "header_name"),
            "PASS_ON_MISSING": ("guard", "pass_on_missing", _parse_bool),
            "DEDUP_BACKEND": ("guard", "backend", lambda x: x.strip().lower()),
            "REDIS_URL": ("redis", "url"),
            "REDIS_KEY": ("redis", "key"),
            "REDIS_SOCKET_TIMEOUT": ("redis", "socket_timeout", float),
            "API_HOST": ("api", "host"),
            "API_PORT": ("api", "port", int),
            "PROMETHEUS_ENABLED": ("monitoring", "prometheus_enabled", _parse_bool),
            "PROMETHEUS_PORT": ("monitoring", "prometheus_port", int)
        }

        for env_key, (section, key, *converters) in env_mappings.items():
            value = os.getenv(env_key)
            if value is not None:
                if converters:
                    converter = converters[0]
                    try:
                        value = converter(value)
                    except (ValueError, TypeError):
                        continue
                if section not in self.config:
                    self.config[section] = {}
                self.config[section][key] = value

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """Get configuration value, falling back to default when unset."""
        value = self.config.get(section, {}).get(key)
        return default if value is None else value

    def set(self, section: str, key: str, value: Any):
        if section not in self.config:
            self.config[section] = {}
        self.config[section][key] = value

    def save(self, filename: Optional[str] = None):
        """Save configuration to file."""
        target_file = filename or self.config_file
        with open(target_file, 'w') as f:
            if target_file.endswith('.yaml') or target_file.endswith('.yml'):
                yaml.dump(self.config, f, default_flow_style=False)
            else:
                json.dump(self.config, f, indent=2)

    def validate(self) -> tuple[bool, list[str]]:
        """Validate configuration."""
        errors = []

        backend = self.get("guard", "backend")
        if backend not in BACKENDS:
            errors.append(f"Unknown backend: {backend}")

        if not self.get("guard", "header_name"):
            errors.append("Request id header name can't be empty")

        if backend == "redis" and not self.get("redis", "url"):
            errors.append("Redis backend selected but no redis url provided")

        for section, key in (("api", "port"), ("monitoring", "prometheus_port")):
            port = self.get(section, key)
            if not isinstance(port, int) or port < 1 or port > 65535:
                errors.append(f"Invalid {section} port")

        return len(errors) == 0, errors
