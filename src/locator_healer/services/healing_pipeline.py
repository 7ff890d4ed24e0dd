"""
Locator Healing Pipeline

Turns a stale locator plus a fresh UI-tree snapshot into a scored
replacement locator. The snapshot is parsed and its features extracted
once, then up to four strategies run in order against the extracted
elements, all drawing on one shared HealingBudget:

    1. Same-strategy match: the attribute the original locator kind targets
    2. Partial match: key parts with dynamic fragments stripped
    3. Alternative attributes: every platform attribute, cross-checked
    4. Context match: keywords found in the element's surroundings

An optional fifth stage ranks whole elements with the feature score.

The first stage to produce a match at or above the minimum similarity ends
the search. With early_exit_all_strategies set, later stages keep looking
until some match reaches the high-confidence threshold, and a strictly
higher score replaces the earlier one. Budget exhaustion and "nothing
found" are normal outcomes, reported through HealingOutcome.status, never
raised.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from ..core.models.healing_models import (
    Candidate,
    FallbackLocator,
    HealingBudget,
    HealingConfiguration,
    HealingOutcome,
    HealingStatus,
    LocatorKind,
    LocatorSpec,
    Platform,
    Snapshot,
)
from .element_extractor import ElementFeatures, extract_all, extract_features
from .similarity_scorer import (
    SimilarityScorer,
    contains_either,
    extract_key_part,
    extract_search_terms,
)
from .snapshot_parser import SnapshotParseError, parse_snapshot

logger = logging.getLogger(__name__)

DEFAULT_MIN_SIMILARITY = 0.6

SAME_STRATEGY = "same_strategy"
PARTIAL_MATCH = "partial_match"
ALTERNATIVE_ATTRIBUTES = "alternative_attributes"
CONTEXT = "context"
FEATURE = "feature"

# Kinds whose value is a plain attribute value rather than an expression
_ATTRIBUTE_KINDS = (
    LocatorKind.ID,
    LocatorKind.ACCESSIBILITY,
    LocatorKind.NAME,
    LocatorKind.CLASS_NAME,
)


@dataclass
class _Match:
    """Best element a strategy found, before it becomes a Candidate."""
    features: ElementFeatures
    kind: LocatorKind
    value: str
    score: float
    strategy_name: str


def _scan(elements: List[ElementFeatures], budget: HealingBudget,
          score_element: Callable[[ElementFeatures], Optional[_Match]],
          threshold: float) -> Optional[_Match]:
    """Run one budgeted pass, keeping the first highest-scoring match."""
    best: Optional[_Match] = None

    for features in elements:
        if not budget.can_process_more_nodes():
            break
        budget.increment_nodes()

        match = score_element(features)
        if match is None or match.score < threshold:
            continue
        if best is None or match.score > best.score:
            best = match

    return best


def _locator_for(features: ElementFeatures, kind: LocatorKind) -> Tuple[LocatorKind, str]:
    """Locator that reaches the element through the original kind's attribute.

    Falls back to a structural path when the kind is an expression kind or
    the attribute is empty.
    """
    if kind in _ATTRIBUTE_KINDS:
        value = features.attribute_for(kind)
        if value and value.strip():
            return kind, value
    return LocatorKind.XPATH, build_xpath(features)


def find_by_same_strategy(elements: List[ElementFeatures], kind: LocatorKind, value: str,
                          budget: HealingBudget, scorer: Optional[SimilarityScorer] = None,
                          threshold: float = DEFAULT_MIN_SIMILARITY) -> Optional[_Match]:
    """Compare the attribute the original locator kind targets."""
    scorer = scorer or SimilarityScorer()

    def score_element(features: ElementFeatures) -> Optional[_Match]:
        attribute = features.attribute_for(kind)
        if not attribute or not attribute.strip():
            return None
        score = scorer.boosted_similarity(value, attribute)
        locator_kind, locator_value = _locator_for(features, kind)
        return _Match(features, locator_kind, locator_value, score, SAME_STRATEGY)

    return _scan(elements, budget, score_element, threshold)


def find_by_partial_match(elements: List[ElementFeatures], kind: LocatorKind, value: str,
                          budget: HealingBudget, scorer: Optional[SimilarityScorer] = None,
                          threshold: float = DEFAULT_MIN_SIMILARITY) -> Optional[_Match]:
    """Match on key parts, for locators whose values carry dynamic fragments."""
    scorer = scorer or SimilarityScorer()
    key_part = extract_key_part(value)
    if len(key_part) < 3:
        logger.debug(f"Key part '{key_part}' too short for partial matching")
        return None

    def score_element(features: ElementFeatures) -> Optional[_Match]:
        attribute = features.attribute_for(kind)
        if not attribute or not attribute.strip():
            return None
        if not contains_either(key_part, extract_key_part(attribute)):
            return None
        score = scorer.partial_match_score(value, attribute)
        locator_kind, locator_value = _locator_for(features, kind)
        return _Match(features, locator_kind, locator_value, score, PARTIAL_MATCH)

    return _scan(elements, budget, score_element, threshold)


def find_by_alternative_attributes(elements: List[ElementFeatures], value: str,
                                   budget: HealingBudget,
                                   scorer: Optional[SimilarityScorer] = None,
                                   threshold: float = DEFAULT_MIN_SIMILARITY) -> Optional[_Match]:
    """Score every platform attribute and keep the best one per element."""
    scorer = scorer or SimilarityScorer()

    def score_element(features: ElementFeatures) -> Optional[_Match]:
        best: Optional[_Match] = None
        for attribute, implied_kind in features.alternative_attributes():
            if not attribute or not attribute.strip():
                continue
            score = scorer.edit_similarity(value, attribute)
            if best is None or score > best.score:
                best = _Match(features, implied_kind, attribute, score, ALTERNATIVE_ATTRIBUTES)
        return best

    return _scan(elements, budget, score_element, threshold)


def context_keywords(value: str) -> List[str]:
    """Alphanumeric words longer than two characters."""
    words = "".join(c if c.isalnum() else " " for c in value.lower()).split()
    return [word for word in words if len(word) > 2]


def find_by_context(elements: List[ElementFeatures], value: str, snapshot: Snapshot,
                    budget: HealingBudget,
                    threshold: float = DEFAULT_MIN_SIMILARITY) -> Optional[_Match]:
    """Look for the value's keywords around each element.

    The context of an element is its own attributes, its parent's
    attributes and its previous sibling's visible text. The score is the
    fraction of keywords found in that context; the locator is always a
    structural path.
    """
    keywords = context_keywords(value)
    if not keywords:
        return None

    def score_element(features: ElementFeatures) -> Optional[_Match]:
        parts = [features.context_text()]

        parent = snapshot.parent_of(features.node)
        if parent is not None:
            parts.append(extract_features(parent, snapshot.platform).context_text())

        sibling = snapshot.previous_sibling_of(features.node)
        if sibling is not None:
            parts.append(extract_features(sibling, snapshot.platform).display_text())

        context = " ".join(parts).lower()
        found = sum(1 for keyword in keywords if keyword in context)
        score = found / len(keywords)
        return _Match(features, LocatorKind.XPATH, build_xpath(features), score, CONTEXT)

    return _scan(elements, budget, score_element, threshold)


def heal_by_feature_score(value: str, elements: List[ElementFeatures], budget: HealingBudget,
                          scorer: Optional[SimilarityScorer] = None,
                          threshold: float = DEFAULT_MIN_SIMILARITY) -> Optional[_Match]:
    """Rank whole elements with the weighted feature score.

    Unlike the other strategies, unusable elements are scored too; the
    usability bonus is part of the score.
    """
    scorer = scorer or SimilarityScorer()

    def score_element(features: ElementFeatures) -> Optional[_Match]:
        score = scorer.feature_score(features, value)
        for locator_value, kind in (
            (features.identifier, features.identifier_kind),
            (features.description, LocatorKind.ACCESSIBILITY),
            (features.text, LocatorKind.NAME),
            (features.name, LocatorKind.NAME),
        ):
            if locator_value:
                return _Match(features, kind, locator_value, score, FEATURE)
        return _Match(features, LocatorKind.XPATH, build_xpath(features), score, FEATURE)

    return _scan(elements, budget, score_element, threshold)


def _quote(value: str) -> str:
    """XPath string literal for a value, using concat() when it holds both quote kinds."""
    if "'" not in value:
        return f"'{value}'"
    if '"' not in value:
        return f'"{value}"'
    return "concat(" + ", \"'\", ".join(f"'{part}'" for part in value.split("'")) + ")"


def build_xpath(features: ElementFeatures) -> str:
    """Structural path expression for an element.

    The root element gets an absolute path; everything else gets a
    descendant path narrowed by the most stable attribute it carries.
    """
    node = features.node
    if node.parent_index is None:
        return f"/{node.tag}"

    if features.platform == Platform.ANDROID:
        predicates = [("resource-id", features.resource_id),
                      ("content-desc", features.content_desc),
                      ("text", features.text)]
    elif features.platform == Platform.IOS:
        predicates = [("name", features.name),
                      ("label", features.label)]
    else:
        predicates = [("resource-id", features.resource_id),
                      ("id", features.element_id),
                      ("name", features.name),
                      ("content-desc", features.content_desc),
                      ("text", features.text)]

    for attribute, value in predicates:
        if value:
            return f"//{node.tag}[@{attribute}={_quote(value)}]"
    return f"//{node.tag}"


def build_fallbacks(features: ElementFeatures) -> List[FallbackLocator]:
    """Alternative locators for the winning element, in priority order."""
    fallbacks: List[FallbackLocator] = []

    if features.platform == Platform.IOS:
        if features.name:
            fallbacks.append(FallbackLocator(LocatorKind.ACCESSIBILITY, features.name))
        if features.label:
            fallbacks.append(FallbackLocator(LocatorKind.NAME, features.label))
        if features.name and features.type:
            fallbacks.append(FallbackLocator(
                LocatorKind.IOS_CLASS_CHAIN,
                f"**/{features.type}[`name == '{features.name}'`]"))
        if features.name:
            fallbacks.append(FallbackLocator(
                LocatorKind.IOS_PREDICATE, f"name == '{features.name}'"))

    elif features.platform == Platform.ANDROID:
        if features.resource_id:
            fallbacks.append(FallbackLocator(LocatorKind.ID, features.resource_id))
        if features.content_desc:
            fallbacks.append(FallbackLocator(LocatorKind.ACCESSIBILITY, features.content_desc))
        if features.text:
            fallbacks.append(FallbackLocator(LocatorKind.NAME, features.text))
        if features.resource_id:
            fallbacks.append(FallbackLocator(
                LocatorKind.UIAUTOMATOR,
                f'new UiSelector().resourceId("{features.resource_id}")'))
        elif features.content_desc:
            fallbacks.append(FallbackLocator(
                LocatorKind.UIAUTOMATOR,
                f'new UiSelector().description("{features.content_desc}")'))

    else:
        if features.identifier:
            fallbacks.append(FallbackLocator(LocatorKind.ID, features.identifier))
        if features.description:
            fallbacks.append(FallbackLocator(LocatorKind.ACCESSIBILITY, features.description))
        if features.text:
            fallbacks.append(FallbackLocator(LocatorKind.NAME, features.text))

    fallbacks.append(FallbackLocator(LocatorKind.XPATH, build_xpath(features)))
    return fallbacks


class HealingPipeline:
    """
    Runs the healing strategies for one locator against one snapshot.

    The pipeline holds no state between attempts apart from the scorer's
    distance memo; every call gets a fresh budget.
    """

    def __init__(self, config: Optional[HealingConfiguration] = None,
                 scorer: Optional[SimilarityScorer] = None,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize the healing pipeline.

        Args:
            config: Thresholds and budget limits, defaults if omitted
            scorer: Similarity scorer to share across attempts
            clock: Monotonic clock used for the wall-clock budget
        """
        self.config = config or HealingConfiguration()
        self.scorer = scorer or SimilarityScorer()
        self._clock = clock

    def heal(self, spec: LocatorSpec, page_source: Optional[str]) -> HealingOutcome:
        """
        Search a snapshot for the element a stale locator meant.

        Args:
            spec: The original locator
            page_source: Current UI-tree snapshot as XML or HTML

        Returns:
            HealingOutcome carrying the candidate (or None) and the reason
            the attempt ended. Never raises for bad input or a missed match.
        """
        budget = self.config.new_budget(self._clock)

        if not self.config.enabled:
            return HealingOutcome(candidate=None, status=HealingStatus.DISABLED)

        search_value = spec.value or ""
        if not search_value.strip() and spec.semantic_key:
            search_value = extract_search_terms(spec.semantic_key)
            logger.info(f"🔑 Empty locator value, searching for '{search_value}' "
                        f"derived from key '{spec.semantic_key}'")

        if not search_value.strip():
            logger.warning(f"Nothing to search for: {spec} has no value and no usable key")
            return self._outcome(None, HealingStatus.INVALID_INPUT, budget, [], search_value)

        if page_source is None or not page_source.strip():
            logger.warning("Empty snapshot, cannot heal")
            return self._outcome(None, HealingStatus.INVALID_INPUT, budget, [], search_value)

        try:
            snapshot = parse_snapshot(page_source)
        except SnapshotParseError as e:
            logger.warning(f"Cannot heal {spec}: {e}")
            return self._outcome(None, HealingStatus.INVALID_INPUT, budget, [], search_value)

        strategies_run: List[str] = []
        try:
            return self._run(spec, search_value, snapshot, budget, strategies_run)
        except Exception as e:
            logger.error(f"Error during locator healing for {spec}: {e}", exc_info=True)
            return self._outcome(None, HealingStatus.NO_MATCH, budget, strategies_run,
                                 search_value, snapshot.platform)

    def _run(self, spec: LocatorSpec, value: str, snapshot: Snapshot,
             budget: HealingBudget, strategies_run: List[str]) -> HealingOutcome:
        config = self.config
        threshold = config.min_similarity
        logger.info(f"Starting locator healing for {spec} on {snapshot.platform.value} "
                    f"snapshot ({len(snapshot)} nodes, budget {config.max_healing_seconds}s)")

        elements = extract_all(snapshot, budget)
        if budget.exhausted:
            logger.warning(f"⚠️ Healing budget exhausted during feature extraction "
                           f"after {len(elements)} elements")
            return self._outcome(None, HealingStatus.BUDGET_EXHAUSTED, budget, strategies_run,
                                 value, snapshot.platform)

        usable = [features for features in elements if features.usable]
        logger.debug(f"{len(usable)} of {len(elements)} elements are usable")

        best: Optional[_Match] = None

        def consider(name: str, match: Optional[_Match]) -> None:
            nonlocal best
            strategies_run.append(name)
            if match is None:
                logger.debug(f"Strategy {name}: no match [{budget.elapsed():.3f}s]")
                return
            logger.info(f"Strategy {name}: score {match.score:.2f} for "
                        f"{match.kind.value}={match.value} [{budget.elapsed():.3f}s]")
            if best is None or match.score > best.score:
                best = match

        def keep_searching() -> bool:
            # Any match at or above min_similarity ends the search, unless every
            # stage is allowed to keep looking for a high-confidence one.
            if best is None:
                return True
            return config.early_exit_all_strategies and best.score < config.high_confidence

        if budget.has_time_remaining():
            consider(SAME_STRATEGY, find_by_same_strategy(
                usable, spec.kind, value, budget, self.scorer, threshold))

        stages = [
            (PARTIAL_MATCH, lambda: find_by_partial_match(
                usable, spec.kind, value, budget, self.scorer, threshold)),
            (ALTERNATIVE_ATTRIBUTES, lambda: find_by_alternative_attributes(
                usable, value, budget, self.scorer, threshold)),
            (CONTEXT, lambda: find_by_context(
                usable, value, snapshot, budget, threshold)),
        ]
        if config.enable_feature_scorer:
            stages.append((FEATURE, lambda: heal_by_feature_score(
                value, elements, budget, self.scorer, threshold)))

        for name, run_stage in stages:
            if not keep_searching() or budget.exhausted or not budget.has_time_remaining():
                break
            if name == CONTEXT and not budget.allows_expensive_stage():
                logger.info(f"Strategy {CONTEXT}: skipped, only "
                            f"{budget.remaining():.1f}s of budget left")
                continue
            consider(name, run_stage())

        if best is None:
            if budget.exhausted:
                logger.warning(f"⚠️ Healing budget exhausted for {spec} after "
                               f"{budget.elapsed():.3f}s and {budget.nodes_processed} nodes")
                status = HealingStatus.BUDGET_EXHAUSTED
            else:
                logger.info(f"No match for {spec} [{budget.elapsed():.3f}s]")
                status = HealingStatus.NO_MATCH
            return self._outcome(None, status, budget, strategies_run, value, snapshot.platform)

        candidate = Candidate(
            strategy=best.kind,
            value=best.value,
            score=best.score,
            platform=snapshot.platform,
            fallbacks=tuple(build_fallbacks(best.features)),
            strategy_name=best.strategy_name,
            original=spec
        )
        logger.info(f"✅ Healed {spec} -> {candidate} with {len(candidate.fallbacks)} "
                    f"alternatives [{budget.elapsed():.3f}s]")
        return self._outcome(candidate, HealingStatus.MATCHED, budget, strategies_run,
                             value, snapshot.platform)

    def _outcome(self, candidate: Optional[Candidate], status: HealingStatus,
                 budget: HealingBudget, strategies_run: List[str], search_value: str,
                 platform: Platform = Platform.UNKNOWN) -> HealingOutcome:
        return HealingOutcome(
            candidate=candidate,
            status=status,
            platform=platform,
            elapsed=budget.elapsed(),
            nodes_processed=budget.nodes_processed,
            strategies_run=list(strategies_run),
            search_value=search_value,
            budget_exhausted=budget.exhausted
        )
