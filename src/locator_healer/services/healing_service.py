"""
Locator Healing Service

Entry point for callers that need a broken locator healed. It checks the
result cache first, runs the healing pipeline on a miss, stores confident
results, and records every attempt in the healing report. Usage feedback
from the caller flows back into the cache's reliability tracking.

The cache and report are injected so that one pair can be shared by
every caller in a process and replaced in tests.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..core.logging_config import get_healing_logger
from ..core.models.healing_models import (
    Candidate,
    HealingConfiguration,
    HealingEvent,
    HealingOutcome,
    HealingSource,
    HealingStatus,
    LocatorSpec,
)
from .healing_pipeline import HealingPipeline
from .healing_report import HealingReport
from .locator_cache import LocatorCache


@dataclass
class HealingAttempt:
    """What one call to the service produced."""
    candidate: Optional[Candidate]
    source: Optional[HealingSource]
    cache_key: str
    outcome: Optional[HealingOutcome] = None
    elapsed_seconds: float = 0.0

    @property
    def healed(self) -> bool:
        return self.candidate is not None


class LocatorHealingService:
    """Cache-first healing with telemetry."""

    def __init__(self, cache: LocatorCache, report: HealingReport,
                 config: Optional[HealingConfiguration] = None,
                 pipeline: Optional[HealingPipeline] = None,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize the healing service.

        Args:
            cache: Shared result cache
            report: Shared healing report
            config: Healing configuration, defaults if omitted
            pipeline: Healing pipeline, built from config if omitted
            clock: Monotonic clock used to time attempts
        """
        self.config = config or HealingConfiguration()
        self.cache = cache
        self.report = report
        self.pipeline = pipeline or HealingPipeline(self.config, clock=clock)
        self._clock = clock

    def attempt(self, kind: Any, value: Optional[str], page_source: Optional[str],
                semantic_key: Optional[str] = None, test_name: Optional[str] = None,
                action_description: Optional[str] = None) -> HealingAttempt:
        """
        Heal a locator and report how the result was obtained.

        Args:
            kind: Original locator kind, as a LocatorKind or loose string
            value: Original locator value, may be empty when semantic_key is given
            page_source: Current UI-tree snapshot
            semantic_key: Optional page-object property name of the locator
            test_name: Optional name of the running test, for the report
            action_description: Optional description of the failing action

        Returns:
            HealingAttempt with the candidate (or None) and its source
        """
        spec = LocatorSpec.create(kind, value, semantic_key)
        cache_key = self.cache.generate_cache_key(spec.kind, spec.value, spec.semantic_key)
        log = get_healing_logger("service", cache_key=cache_key, test_case=test_name)

        if not self.config.enabled:
            log.info("Locator healing is disabled, skipping")
            return HealingAttempt(
                candidate=None,
                source=None,
                cache_key=cache_key,
                outcome=HealingOutcome(candidate=None, status=HealingStatus.DISABLED)
            )

        start = self._clock()
        log.log_operation_start("locator_healing", locator=str(spec))

        cached = self.cache.get(cache_key)
        if cached is not None:
            elapsed = self._clock() - start
            log.info(f"💨 Using cached healed locator: {cached}")
            self._record(spec, cached, HealingSource.CACHE, True, elapsed,
                         test_name, action_description)
            log.log_operation_success("locator_healing", elapsed, source="cache")
            return HealingAttempt(cached, HealingSource.CACHE, cache_key, None, elapsed)

        outcome = self.pipeline.heal(spec, page_source)
        elapsed = self._clock() - start

        candidate = outcome.candidate
        if candidate is not None and candidate.score < self.config.min_similarity:
            candidate = None

        if candidate is not None:
            self.cache.put(cache_key, candidate)
            log.log_operation_success("locator_healing", elapsed, source="local",
                                      strategy=candidate.strategy_name, score=candidate.score)
        else:
            log.log_operation_failure("locator_healing", elapsed,
                                      f"no candidate ({outcome.status.value})",
                                      error_code=outcome.status.value,
                                      nodes_processed=outcome.nodes_processed)

        self._record(spec, candidate, HealingSource.LOCAL, candidate is not None, elapsed,
                     test_name, action_description)
        return HealingAttempt(candidate, HealingSource.LOCAL, cache_key, outcome, elapsed)

    def heal(self, kind: Any, value: Optional[str], page_source: Optional[str],
             semantic_key: Optional[str] = None, test_name: Optional[str] = None,
             action_description: Optional[str] = None) -> Optional[Candidate]:
        """Heal a locator. Returns the candidate, or None when nothing matched."""
        return self.attempt(kind, value, page_source, semantic_key,
                            test_name, action_description).candidate

    def record_external(self, kind: Any, value: Optional[str], candidate: Candidate,
                        semantic_key: Optional[str] = None, test_name: Optional[str] = None,
                        action_description: Optional[str] = None,
                        elapsed_seconds: float = 0.0) -> str:
        """
        Store a result produced outside the pipeline, e.g. by an AI or OCR healer.

        Args:
            kind: Original locator kind
            value: Original locator value
            candidate: Replacement locator found by the external healer
            semantic_key: Optional page-object property name
            test_name: Optional name of the running test
            action_description: Optional description of the failing action
            elapsed_seconds: Time the external healer spent

        Returns:
            The cache key the candidate was stored under
        """
        spec = LocatorSpec.create(kind, value, semantic_key)
        cache_key = self.cache.generate_cache_key(spec.kind, spec.value, spec.semantic_key)
        log = get_healing_logger("service", cache_key=cache_key, test_case=test_name)

        self.cache.put(cache_key, candidate)
        self._record(spec, candidate, HealingSource.EXTERNAL, True, elapsed_seconds,
                     test_name, action_description)
        log.info(f"✓ Recorded externally healed locator: {candidate}")
        return cache_key

    def report_usage(self, kind: Any, value: Optional[str], success: bool,
                     semantic_key: Optional[str] = None) -> None:
        """Tell the cache whether the healed locator for this original worked."""
        spec = LocatorSpec.create(kind, value, semantic_key)
        cache_key = self.cache.generate_cache_key(spec.kind, spec.value, spec.semantic_key)
        self.cache.record_usage(cache_key, success)

    def _record(self, spec: LocatorSpec, candidate: Optional[Candidate], source: HealingSource,
                success: bool, elapsed: float, test_name: Optional[str],
                action_description: Optional[str]) -> None:
        self.report.record(HealingEvent(
            original=spec,
            candidate=candidate,
            source=source,
            success=success,
            elapsed_seconds=elapsed,
            test_name=test_name,
            action_description=action_description
        ))
