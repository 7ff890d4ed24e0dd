"""
Services module for locator healing.

Snapshot parsing, feature extraction, similarity scoring, the healing
pipeline, the result cache, the healing report, and the service that
wires them together.
"""

from .healing_pipeline import HealingPipeline
from .healing_report import HealingReport
from .healing_service import HealingAttempt, LocatorHealingService
from .locator_cache import LocatorCache
from .similarity_scorer import SimilarityScorer
from .snapshot_parser import SnapshotParseError, parse_snapshot

__all__ = [
    "HealingPipeline",
    "HealingReport",
    "HealingAttempt",
    "LocatorHealingService",
    "LocatorCache",
    "SimilarityScorer",
    "SnapshotParseError",
    "parse_snapshot"
]
