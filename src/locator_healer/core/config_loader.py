"""Configuration loading and validation utilities for locator healing."""

import copy
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from .models.healing_models import HealingConfiguration
from .config import settings

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""
    pass


class SelfHealingConfigLoader:
    """Loads and validates locator healing configuration."""

    DEFAULT_CONFIG = {
        "self_healing": {
            "enabled": True,
            "max_retries": 4,
            "oracle_timeout": 120.0,
            "evidence": {
                "prefix_match_labels": ["save"],
                "tags": ["input", "textarea", "button", "label", "a", "span"],
                "next_elements_count": 3
            },
            "labels": {
                "protected": []
            },
            "step_mapping": {
                "validation_test_marker": "Home Page validation",
                "validation_mapping_key": "homePageValidationTest",
                "default_mapping_key": "stepToLocatorMapping"
            },
            "source_layout": {
                "page_object_suffix": ".page.ts",
                "locator_file_glob": "**/*.ts",
                "default_locator_extension": ".ts"
            }
        }
    }

    def __init__(self, config_path: Optional[str] = None):
        """Initialize config loader with optional custom path."""
        self.config_path = Path(
            config_path or settings.SELF_HEALING_CONFIG_PATH)
        self._config_cache: Optional[HealingConfiguration] = None
        self._config_file_mtime: Optional[float] = None

    def load_config(self, force_reload: bool = False) -> HealingConfiguration:
        """Load and validate healing configuration.

        Args:
            force_reload: Force reload even if cached config exists

        Returns:
            HealingConfiguration: Validated configuration object

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not force_reload and self._config_cache and self._is_config_current():
            return self._config_cache

        try:
            config_data = self._load_config_file()
            healing_config = self._parse_healing_config(config_data)
            self._validate_config(healing_config)

            self._config_cache = healing_config
            if self.config_path.exists():
                self._config_file_mtime = self.config_path.stat().st_mtime

            logger.info(
                f"Loaded self-healing configuration from {self.config_path}")
            return healing_config

        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Failed to load self-healing configuration: {e}")
            raise ConfigurationError(
                f"Configuration loading failed: {e}") from e

    def save_config(self, config: HealingConfiguration) -> None:
        """Save configuration to file.

        Args:
            config: Configuration to save

        Raises:
            ConfigurationError: If saving fails
        """
        try:
            self._validate_config(config)

            self.config_path.parent.mkdir(parents=True, exist_ok=True)

            config_data = {
                "self_healing": self._config_to_dict(config)
            }

            with open(self.config_path, 'w', encoding='utf-8') as f:
                yaml.dump(config_data, f, default_flow_style=False, indent=2)

            self._config_cache = config
            self._config_file_mtime = self.config_path.stat().st_mtime

            logger.info(
                f"Saved self-healing configuration to {self.config_path}")

        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Failed to save self-healing configuration: {e}")
            raise ConfigurationError(
                f"Configuration saving failed: {e}") from e

    def _load_config_file(self) -> Dict[str, Any]:
        """Load configuration from file or return defaults."""
        if not self.config_path.exists():
            logger.info(
                f"Config file {self.config_path} not found, using defaults")
            return copy.deepcopy(self.DEFAULT_CONFIG)

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f) or {}

            # Merge with defaults to ensure all keys exist
            return self._deep_merge(copy.deepcopy(self.DEFAULT_CONFIG), config_data)

        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")
        except OSError as e:
            raise ConfigurationError(f"Failed to read config file: {e}")

    def _parse_healing_config(self, config_data: Dict[str, Any]) -> HealingConfiguration:
        """Parse configuration data into HealingConfiguration object."""
        healing_section = config_data.get("self_healing", {})

        evidence = healing_section.get("evidence", {})
        labels = healing_section.get("labels", {})
        step_mapping = healing_section.get("step_mapping", {})
        source_layout = healing_section.get("source_layout", {})

        return HealingConfiguration(
            enabled=healing_section.get("enabled", True),
            max_retries=healing_section.get("max_retries", 4),
            oracle_timeout=float(healing_section.get("oracle_timeout", 120.0)),
            prefix_match_labels=list(evidence.get("prefix_match_labels", ["save"])),
            evidence_tags=list(evidence.get("tags", [])),
            next_elements_count=evidence.get("next_elements_count", 3),
            protected_labels=list(labels.get("protected", [])),
            validation_test_marker=step_mapping.get(
                "validation_test_marker", "Home Page validation"),
            validation_mapping_key=step_mapping.get(
                "validation_mapping_key", "homePageValidationTest"),
            default_mapping_key=step_mapping.get(
                "default_mapping_key", "stepToLocatorMapping"),
            page_object_suffix=source_layout.get("page_object_suffix", ".page.ts"),
            locator_file_glob=source_layout.get("locator_file_glob", "**/*.ts"),
            default_locator_extension=source_layout.get(
                "default_locator_extension", ".ts")
        )

    def _config_to_dict(self, config: HealingConfiguration) -> Dict[str, Any]:
        """Convert HealingConfiguration to nested dictionary structure."""
        return {
            "enabled": config.enabled,
            "max_retries": config.max_retries,
            "oracle_timeout": config.oracle_timeout,
            "evidence": {
                "prefix_match_labels": list(config.prefix_match_labels),
                "tags": list(config.evidence_tags),
                "next_elements_count": config.next_elements_count
            },
            "labels": {
                "protected": list(config.protected_labels)
            },
            "step_mapping": {
                "validation_test_marker": config.validation_test_marker,
                "validation_mapping_key": config.validation_mapping_key,
                "default_mapping_key": config.default_mapping_key
            },
            "source_layout": {
                "page_object_suffix": config.page_object_suffix,
                "locator_file_glob": config.locator_file_glob,
                "default_locator_extension": config.default_locator_extension
            }
        }

    def _validate_config(self, config: HealingConfiguration) -> None:
        """Validate configuration values.

        Args:
            config: Configuration to validate

        Raises:
            ConfigurationError: If validation fails
        """
        errors = []

        if config.max_retries < 1 or config.max_retries > 10:
            errors.append("max_retries must be between 1 and 10")

        if config.oracle_timeout <= 0 or config.oracle_timeout > 900:
            errors.append("oracle_timeout must be between 0 and 900 seconds")

        if config.next_elements_count < 0 or config.next_elements_count > 20:
            errors.append("next_elements_count must be between 0 and 20")

        if not config.evidence_tags:
            errors.append("At least one evidence tag must be specified")

        if not config.page_object_suffix:
            errors.append("page_object_suffix must not be empty")

        if not config.default_locator_extension.startswith("."):
            errors.append("default_locator_extension must start with '.'")

        if errors:
            raise ConfigurationError(
                "Configuration validation failed: " + "; ".join(errors))

    def _is_config_current(self) -> bool:
        """Check if cached config is still current."""
        if not self.config_path.exists():
            return self._config_file_mtime is None

        current_mtime = self.config_path.stat().st_mtime
        return self._config_file_mtime == current_mtime

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result


# Global config loader instance
config_loader = SelfHealingConfigLoader()


def get_healing_config(force_reload: bool = False) -> HealingConfiguration:
    """Get the current healing configuration.

    Args:
        force_reload: Force reload from file

    Returns:
        HealingConfiguration: Current configuration
    """
    config = config_loader.load_config(force_reload)
    if not settings.SELF_HEALING_ENABLED:
        config.enabled = False
    return config

