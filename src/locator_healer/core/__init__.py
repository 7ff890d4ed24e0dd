"""
Core module for the locator healing engine.

This module contains:
- config.py: Environment settings
- config_loader.py: YAML healing configuration loading and validation
- logging_config.py: Structured logging configuration
- healing_utils.py: Failure classification helpers
"""

__all__ = ["config", "config_loader", "logging_config", "healing_utils"]
