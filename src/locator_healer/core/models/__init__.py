"""Core data models for the locator healing engine."""

from .healing_models import (
    LocatorKind,
    Platform,
    HealingSource,
    HealingStatus,
    FailureType,
    Severity,
    FailureClassification,
    LocatorSpec,
    FallbackLocator,
    Candidate,
    CacheEntry,
    TreeNode,
    Snapshot,
    HealingBudget,
    HealingOutcome,
    HealingEvent,
    HealingConfiguration,
    build_cache_key
)

__all__ = [
    "LocatorKind",
    "Platform",
    "HealingSource",
    "HealingStatus",
    "FailureType",
    "Severity",
    "FailureClassification",
    "LocatorSpec",
    "FallbackLocator",
    "Candidate",
    "CacheEntry",
    "TreeNode",
    "Snapshot",
    "HealingBudget",
    "HealingOutcome",
    "HealingEvent",
    "HealingConfiguration",
    "build_cache_key"
]
