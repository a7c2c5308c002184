"""
Core module for the locator healing pipeline.

This module contains:
- config.py: Environment settings
- config_loader.py: YAML healing configuration
- logging_config.py: Logging configuration
- exceptions.py: Error taxonomy
- models/: Data models
"""

__all__ = ["config", "config_loader", "logging_config", "exceptions", "models"]
