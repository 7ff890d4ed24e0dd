"""
Healing telemetry.

Append-only log of HealingEvents with aggregate views: a summary, a
verbose full report, and a simplified per-locator report that
deduplicates by cache key. Rendering to JSON or text is provided; writing
it anywhere is up to the caller.
"""

import json
import logging
import threading
from collections import Counter
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..core.models.healing_models import HealingEvent, HealingSource

logger = logging.getLogger(__name__)


class HealingReport:
    """Thread-safe record of every healing attempt in a session."""

    def __init__(self, now: Callable[[], datetime] = datetime.now):
        self._events: List[HealingEvent] = []
        self._lock = threading.Lock()
        self._now = now
        self._session_start = now()

    @property
    def session_start(self) -> datetime:
        return self._session_start

    def record(self, event: HealingEvent) -> None:
        with self._lock:
            self._events.append(event)
        logger.debug(f"Recorded {event.source.value} healing event for {event.cache_key} "
                     f"(success: {event.success})")

    def events(self) -> List[HealingEvent]:
        """All events in the order they were recorded, as a copy."""
        with self._lock:
            return list(self._events)

    def clear(self) -> None:
        """Drop every event and start a new session."""
        with self._lock:
            self._events.clear()
            self._session_start = self._now()
        logger.info("🗑️ Healing report cleared")

    def summary(self) -> Dict[str, Any]:
        """
        Aggregate counts over the session.

        Returns:
            Dictionary with attempt, success, cache-hit and per-source counts
        """
        with self._lock:
            events = list(self._events)
            session_start = self._session_start

        total = len(events)
        successful = sum(1 for event in events if event.success)
        cache_hits = sum(1 for event in events if event.from_cache)
        by_source = Counter(event.source for event in events)

        return {
            "total_attempts": total,
            "successful_heals": successful,
            "failed_heals": total - successful,
            "unique_locators": len({event.cache_key for event in events}),
            "cache_hits": cache_hits,
            "cache_hit_rate": cache_hits / total if total else 0.0,
            "by_source": {source.value: by_source.get(source, 0) for source in HealingSource},
            "session_start": session_start.isoformat(),
            "session_duration_seconds": (self._now() - session_start).total_seconds()
        }

    def simplified_report(self) -> Dict[str, Any]:
        """
        One entry per distinct original locator.

        The first event for a key supplies the details; later cache hits for
        the same key are counted.

        Returns:
            Dictionary with ``healed_locators`` (locator_1..N) and
            ``total_unique_locators``
        """
        first_events: Dict[str, HealingEvent] = {}
        cache_hit_counts: Counter = Counter()

        for event in self.events():
            key = event.cache_key
            if event.from_cache:
                cache_hit_counts[key] += 1
            first_events.setdefault(key, event)

        healed_locators = {}
        for index, (key, event) in enumerate(first_events.items(), start=1):
            original = event.original
            candidate = event.candidate
            healed_locators[f"locator_{index}"] = {
                "original": f"{original.kind.value}||{original.value}",
                "healed_value": (f"{candidate.strategy.value}||{candidate.value}"
                                 if candidate else "Not healed"),
                "suggestions": event.alternatives,
                "cache_hits": cache_hit_counts.get(key, 0),
                "success": event.success
            }

        return {
            "healed_locators": healed_locators,
            "total_unique_locators": len(first_events)
        }

    def full_report(self, cache_stats: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Verbose report with statistics, per-locator detail and every event.

        Args:
            cache_stats: Optional LocatorCache.stats() to embed

        Returns:
            Report dictionary ready for serialisation
        """
        events = self.events()
        summary = self.summary()
        generated_at = self._now()

        cache_hits_per_locator: Counter = Counter(
            event.cache_key for event in events if event.from_cache)

        healed_locators: Dict[str, Dict[str, Any]] = {}
        for event in events:
            key = event.cache_key
            existing = healed_locators.get(key)
            if existing is None:
                healed_locators[key] = event.to_dict()
                continue
            existing["total_attempts"] += 1
            if event.from_cache:
                existing["cache_hits"] += 1

        report = {
            "session": {
                "start_time": summary["session_start"],
                "generated_time": generated_at.isoformat(),
                "duration_seconds": summary["session_duration_seconds"]
            },
            "statistics": {
                "total_healing_attempts": summary["total_attempts"],
                "successful_heals": summary["successful_heals"],
                "failed_heals": summary["failed_heals"],
                "unique_locators_failed": summary["unique_locators"],
                "cache_hits": summary["cache_hits"],
                "cache_hit_rate": summary["cache_hit_rate"],
                "healed_via_local_heuristic": summary["by_source"][HealingSource.LOCAL.value],
                "healed_via_external": summary["by_source"][HealingSource.EXTERNAL.value]
            },
            "cache_hits_per_locator": dict(cache_hits_per_locator),
            "healed_locators": healed_locators,
            "detailed_events": {
                f"event_{index}": event.to_detailed_dict()
                for index, event in enumerate(events, start=1)
            }
        }
        if cache_stats is not None:
            report["cache_statistics"] = cache_stats

        return report

    def to_json(self, simplified: bool = True,
                cache_stats: Optional[Dict[str, Any]] = None) -> str:
        """Serialise the simplified or full report with 2-space indentation."""
        data = self.simplified_report() if simplified else self.full_report(cache_stats)
        return json.dumps(data, indent=2)

    def format_summary(self) -> str:
        """Render the summary as a console block."""
        summary = self.summary()
        separator = "=" * 60
        lines = [
            separator,
            "📊 HEALING REPORT SUMMARY",
            separator,
            f"Total Healing Attempts: {summary['total_attempts']}",
            f"Successful Heals: {summary['successful_heals']}",
            f"Failed Heals: {summary['failed_heals']}",
            f"Unique Locators Failed: {summary['unique_locators']}",
            f"Cache Hits: {summary['cache_hits']}",
            f"Cache Hit Rate: {summary['cache_hit_rate'] * 100:.1f}%",
            separator,
        ]
        return "\n".join(lines)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
