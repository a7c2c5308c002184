"""Locator resolution and self-healing for browser-based UI tests."""

__version__ = "0.1.0"
