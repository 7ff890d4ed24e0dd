"""
API module for the locator healing engine.

This module contains:
- healing_endpoints.py: REST endpoints for healing, feedback and reports
"""

__all__ = ["healing_endpoints"]
