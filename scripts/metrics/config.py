"""
Unified configuration management for typing analytics.

Provides centralized configuration with:
- JSON file loading with defaults
- Environment variable overrides
- Dot-notation access
"""

import json
import os
import sys
from pathlib import Path
from typing import Any, Optional


class AnalyticsConfig:
    """
    Singleton configuration manager for typing analytics.

    Usage:
        from metrics.config import config

        pause_ms = config.get('thresholds.pause_ms')
    """

    _instance = None
    _config = None
    _config_loaded = False

    def __new__(cls):
        """Singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def load(self, config_path: Optional[Path] = None):
        """
        Load configuration from file.

        Args:
            config_path: Path to analytics_config.json (optional)
        """
        if self._config_loaded:
            return  # Already loaded

        if config_path is None:
            config_path = Path(__file__).parent.parent.parent / "config" / "analytics_config.json"

        self._config = self._get_defaults()

        if Path(config_path).exists():
            try:
                with open(config_path) as f:
                    self._merge(self._config, json.load(f))
            except Exception as e:
                print(f"Warning: Failed to load config from {config_path}: {e}",
                      file=sys.stderr)
                self._config = self._get_defaults()

        self._apply_env_overrides()

        self._config_loaded = True

    def _get_defaults(self) -> dict:
        """
        Get default configuration.

        Returns:
            Dictionary with default settings
        """
        return {
            "version": "1.0.0",
            "thresholds": {
                "pause_ms": 2000,
                "burst_ms": 300,
                "burst_min_length": 5,
                "chars_per_word": 5
            },
            "engine": {
                "default_value": 0,
                "calculator_timeout_sec": None,
                "deadline_workers": 4,
                "failure_log": {
                    "enabled": False,
                    "log_path": "~/.typing_analytics/calculator_failures.jsonl",
                    "batch_size": 10,
                    "batch_flush_interval_sec": 5.0
                }
            },
            "ingestion": {
                "max_batch_size": 1000
            },
            "recompute": {
                "max_workers": 1
            }
        }

    def _merge(self, target: dict, source: dict):
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge(target[key], value)
            else:
                target[key] = value

    def _apply_env_overrides(self):
        """Apply environment variable overrides to configuration."""
        numeric = {
            "TYPING_ANALYTICS_PAUSE_MS": ("thresholds", "pause_ms"),
            "TYPING_ANALYTICS_BURST_MS": ("thresholds", "burst_ms"),
            "TYPING_ANALYTICS_CALCULATOR_TIMEOUT_SEC": ("engine", "calculator_timeout_sec"),
        }
        for env_name, (section, key) in numeric.items():
            if env_name in os.environ:
                try:
                    self._config[section][key] = float(os.environ[env_name])
                except ValueError:
                    print(f"Warning: Ignoring non-numeric {env_name}", file=sys.stderr)

        # TYPING_ANALYTICS_FAILURE_LOG_ENABLED=true
        if "TYPING_ANALYTICS_FAILURE_LOG_ENABLED" in os.environ:
            value = os.environ["TYPING_ANALYTICS_FAILURE_LOG_ENABLED"].lower()
            self._config["engine"]["failure_log"]["enabled"] = value in ("true", "1", "yes")

        if "TYPING_ANALYTICS_FAILURE_LOG_PATH" in os.environ:
            self._config["engine"]["failure_log"]["log_path"] = os.environ["TYPING_ANALYTICS_FAILURE_LOG_PATH"]

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value with dot notation.

        Args:
            key: Configuration key (e.g., "thresholds.pause_ms")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        if not self._config_loaded:
            self.load()

        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default

    def set(self, key: str, value: Any):
        """
        Set configuration value (runtime only, not persisted).

        Args:
            key: Configuration key (dot notation)
            value: Value to set
        """
        if not self._config_loaded:
            self.load()

        keys = key.split('.')
        config = self._config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def is_enabled(self, feature: str) -> bool:
        """
        Check if a feature is enabled.

        Args:
            feature: Feature name (e.g., "engine.failure_log")

        Returns:
            True if enabled, False otherwise
        """
        return self.get(f"{feature}.enabled", False)

    def reload(self, config_path: Optional[Path] = None):
        """Force reload configuration from file."""
        self._config_loaded = False
        self.load(config_path)

    def get_all(self) -> dict:
        """
        Get entire configuration dictionary.

        Returns:
            Full configuration
        """
        if not self._config_loaded:
            self.load()
        return self._config.copy()


# Singleton instance for import
config = AnalyticsConfig()

# Auto-load on import
config.load()
