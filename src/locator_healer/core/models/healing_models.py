"""Data models for the locator healing engine."""

import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple


class LocatorKind(Enum):
    """Locator strategies a healed candidate can be expressed in."""
    ID = "id"
    ACCESSIBILITY = "accessibility"
    NAME = "name"
    CLASS_NAME = "classname"
    XPATH = "xpath"
    UIAUTOMATOR = "uiautomator"
    IOS_CLASS_CHAIN = "iOSClassChain"
    IOS_PREDICATE = "iOSPredicate"

    @classmethod
    def normalize(cls, raw: Optional[str]) -> "LocatorKind":
        """Map a loosely spelled locator type onto a LocatorKind.

        Case and punctuation are ignored, so ``"resource-id"``,
        ``"-ios predicate string"`` and ``"accessibilityId"`` all resolve.
        Unknown spellings fall back to ACCESSIBILITY.
        """
        if isinstance(raw, LocatorKind):
            return raw
        if raw is None:
            return cls.ACCESSIBILITY
        letters = re.sub(r"[^a-z]", "", raw.lower())
        return _KIND_ALIASES.get(letters, cls.ACCESSIBILITY)


_KIND_ALIASES = {
    "id": LocatorKind.ID,
    "resourceid": LocatorKind.ID,
    "accessibility": LocatorKind.ACCESSIBILITY,
    "aid": LocatorKind.ACCESSIBILITY,
    "accessibilityid": LocatorKind.ACCESSIBILITY,
    "name": LocatorKind.NAME,
    "text": LocatorKind.NAME,
    "classname": LocatorKind.CLASS_NAME,
    "cn": LocatorKind.CLASS_NAME,
    "class": LocatorKind.CLASS_NAME,
    "xpath": LocatorKind.XPATH,
    "uiautomator": LocatorKind.UIAUTOMATOR,
    "androiduiautomator": LocatorKind.UIAUTOMATOR,
    "classchain": LocatorKind.IOS_CLASS_CHAIN,
    "iosclasschain": LocatorKind.IOS_CLASS_CHAIN,
    "predicate": LocatorKind.IOS_PREDICATE,
    "iospredicate": LocatorKind.IOS_PREDICATE,
    "iospredicatestring": LocatorKind.IOS_PREDICATE,
    "iosnspredicatestring": LocatorKind.IOS_PREDICATE,
}

# Human-readable driver call used when a locator is rendered for reports
_APPIUM_BY = {
    LocatorKind.ID: "AppiumBy.id",
    LocatorKind.ACCESSIBILITY: "AppiumBy.accessibilityId",
    LocatorKind.NAME: "AppiumBy.name",
    LocatorKind.CLASS_NAME: "AppiumBy.className",
    LocatorKind.XPATH: "AppiumBy.xpath",
    LocatorKind.UIAUTOMATOR: "AppiumBy.androidUIAutomator",
    LocatorKind.IOS_CLASS_CHAIN: "AppiumBy.iOSClassChain",
    LocatorKind.IOS_PREDICATE: "AppiumBy.iOSNsPredicateString",
}


class Platform(Enum):
    """Platform a UI-tree snapshot was captured from."""
    IOS = "IOS"
    ANDROID = "ANDROID"
    UNKNOWN = "UNKNOWN"


class HealingSource(Enum):
    """Where a healing result came from."""
    CACHE = "cache"
    LOCAL = "local"
    EXTERNAL = "external"


class HealingStatus(Enum):
    """Terminal state of one pipeline run."""
    MATCHED = "matched"
    NO_MATCH = "no_match"
    BUDGET_EXHAUSTED = "budget_exhausted"
    INVALID_INPUT = "invalid_input"
    DISABLED = "disabled"


class FailureType(Enum):
    """Driver failures the classification helper distinguishes."""
    NO_SUCH_ELEMENT = "Element Not Found"
    TIMEOUT = "Timeout Exceeded"
    STALE_ELEMENT = "Stale Element Reference"
    ELEMENT_NOT_INTERACTABLE = "Element Not Interactable"
    ELEMENT_NOT_CLICKABLE = "Element Not Clickable"
    ELEMENT_NOT_VISIBLE = "Element Not Visible"
    CLICK_INTERCEPTED = "Click Intercepted"
    INVALID_ELEMENT_STATE = "Invalid Element State"
    NO_SUCH_SESSION = "Session Not Found"
    SESSION_NOT_CREATED = "Session Creation Failed"
    WEBDRIVER_EXCEPTION = "WebDriver Exception"
    UNREACHABLE_BROWSER = "Browser/App Unreachable"
    INVALID_SELECTOR = "Invalid Selector Syntax"
    NO_ALERT_PRESENT = "No Alert Present"
    NO_SUCH_WINDOW = "Window/Context Not Found"
    NO_SUCH_FRAME = "Frame Not Found"
    UNHANDLED_ALERT = "Unhandled Alert Present"
    JAVASCRIPT_EXCEPTION = "JavaScript Execution Failed"
    GENERIC = "Generic Exception"


class Severity(Enum):
    """How critical a classified failure is."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class FailureClassification:
    """Result of classifying a driver failure."""
    failure_type: FailureType
    severity: Severity
    recoverable: bool

    @property
    def description(self) -> str:
        return self.failure_type.value


@dataclass(frozen=True)
class LocatorSpec:
    """The locator the caller originally asked for."""
    kind: LocatorKind
    value: str
    semantic_key: Optional[str] = None

    @classmethod
    def create(cls, kind: Any, value: Optional[str],
               semantic_key: Optional[str] = None) -> "LocatorSpec":
        """Build a LocatorSpec from loosely typed caller input."""
        return cls(
            kind=LocatorKind.normalize(kind),
            value=value or "",
            semantic_key=semantic_key or None
        )

    def __str__(self) -> str:
        return f"{self.kind.value}||{self.value}"


@dataclass(frozen=True)
class FallbackLocator:
    """An alternative way to reach the healed element."""
    kind: LocatorKind
    value: str

    def describe(self) -> str:
        """Render the locator as a driver call for human-readable reports."""
        return f'{_APPIUM_BY[self.kind]}("{self.value}")'

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind.value, "value": self.value}


@dataclass(frozen=True)
class Candidate:
    """A scored replacement locator produced by healing.

    The score is clamped to [0, 1] and any fallback whose value equals the
    primary value is dropped, so both hold for every instance.
    """
    strategy: LocatorKind
    value: str
    score: float
    platform: Platform = Platform.UNKNOWN
    fallbacks: Tuple[FallbackLocator, ...] = ()
    strategy_name: str = ""
    original: Optional[LocatorSpec] = None

    def __post_init__(self):
        object.__setattr__(self, "score", min(1.0, max(0.0, float(self.score))))
        unique: List[FallbackLocator] = []
        for fallback in self.fallbacks:
            if fallback.value == self.value or fallback in unique:
                continue
            unique.append(fallback)
        object.__setattr__(self, "fallbacks", tuple(unique))

    def fallback_strings(self) -> List[str]:
        """Readable form of the fallback locators, in priority order."""
        return [fallback.describe() for fallback in self.fallbacks]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "value": self.value,
            "score": self.score,
            "platform": self.platform.value,
            "strategy_name": self.strategy_name,
            "fallbacks": [fallback.to_dict() for fallback in self.fallbacks],
        }

    def __str__(self) -> str:
        return (f"[{self.platform.value}] Strategy: {self.strategy.value}, "
                f"Value: {self.value}, Confidence: {self.score * 100:.2f}%")


@dataclass
class CacheEntry:
    """A cached healing result with its usage statistics."""
    candidate: Candidate
    cache_key: str
    created_at: float
    last_used_at: float
    use_count: int = 0
    success_count: int = 0
    failure_count: int = 0

    def record_use(self, success: bool, now: float) -> None:
        self.use_count += 1
        self.last_used_at = now
        if success:
            self.success_count += 1
        else:
            self.failure_count += 1

    @property
    def success_rate(self) -> float:
        if self.use_count == 0:
            return 0.0
        return self.success_count / self.use_count

    def is_expired(self, ttl_seconds: float, now: float) -> bool:
        return now - self.created_at > ttl_seconds

    def is_unreliable(self, min_uses: int = 3, min_success_rate: float = 0.5) -> bool:
        """Used often enough to judge, and failing more than it works."""
        return self.use_count >= min_uses and self.success_rate < min_success_rate


@dataclass
class TreeNode:
    """One element of a parsed UI-tree snapshot."""
    index: int
    tag: str
    attributes: Dict[str, str] = field(default_factory=dict)
    parent_index: Optional[int] = None
    previous_sibling_index: Optional[int] = None
    depth: int = 0

    def get(self, name: str) -> str:
        return self.attributes.get(name) or ""


@dataclass
class Snapshot:
    """Flat, document-ordered view of a UI tree."""
    platform: Platform
    nodes: List[TreeNode] = field(default_factory=list)
    source_format: str = "xml"

    def __len__(self) -> int:
        return len(self.nodes)

    def parent_of(self, node: TreeNode) -> Optional[TreeNode]:
        if node.parent_index is None:
            return None
        return self.nodes[node.parent_index]

    def previous_sibling_of(self, node: TreeNode) -> Optional[TreeNode]:
        if node.previous_sibling_index is None:
            return None
        return self.nodes[node.previous_sibling_index]


@dataclass
class HealingBudget:
    """Wall-clock and node ceiling for one healing attempt.

    Time and the node ceiling are both shared by every stage of the
    attempt, feature extraction included.
    """
    max_elapsed: float = 45.0
    max_nodes: int = 1000
    context_margin: float = 5.0
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    nodes_processed: int = 0
    timeout_reached: bool = False
    node_limit_reached: bool = False
    started_at: float = field(init=False)

    def __post_init__(self):
        self.started_at = self.clock()

    def elapsed(self) -> float:
        return self.clock() - self.started_at

    def remaining(self) -> float:
        return max(0.0, self.max_elapsed - self.elapsed())

    def has_time_remaining(self) -> bool:
        if self.elapsed() >= self.max_elapsed:
            self.timeout_reached = True
            return False
        return True

    def can_process_more_nodes(self) -> bool:
        if self.nodes_processed >= self.max_nodes:
            self.node_limit_reached = True
            return False
        return self.has_time_remaining()

    def increment_nodes(self, count: int = 1) -> None:
        self.nodes_processed += count

    def allows_expensive_stage(self) -> bool:
        """Whether enough time is left for the context stage."""
        return self.remaining() > self.context_margin

    @property
    def exhausted(self) -> bool:
        return self.timeout_reached or self.node_limit_reached


@dataclass
class HealingOutcome:
    """Result of one pipeline run, including why it ended."""
    candidate: Optional[Candidate]
    status: HealingStatus
    platform: Platform = Platform.UNKNOWN
    elapsed: float = 0.0
    nodes_processed: int = 0
    strategies_run: List[str] = field(default_factory=list)
    search_value: str = ""
    budget_exhausted: bool = False

    @property
    def matched(self) -> bool:
        return self.candidate is not None


@dataclass(frozen=True)
class HealingEvent:
    """Append-only record of one healing attempt."""
    original: LocatorSpec
    candidate: Optional[Candidate]
    source: HealingSource
    success: bool
    elapsed_seconds: float = 0.0
    timestamp: datetime = field(default_factory=datetime.now)
    test_name: Optional[str] = None
    action_description: Optional[str] = None

    @property
    def confidence(self) -> float:
        return self.candidate.score if self.candidate else 0.0

    @property
    def from_cache(self) -> bool:
        return self.source == HealingSource.CACHE

    @property
    def platform(self) -> Platform:
        return self.candidate.platform if self.candidate else Platform.UNKNOWN

    @property
    def cache_key(self) -> str:
        return build_cache_key(self.original.kind.value, self.original.value,
                               self.original.semantic_key)

    @property
    def alternatives(self) -> List[str]:
        return self.candidate.fallback_strings() if self.candidate else []

    def to_dict(self) -> Dict[str, Any]:
        """Per-locator view used by the full report."""
        return {
            "original_locator": {
                "type": self.original.kind.value,
                "value": self.original.value,
                "key": self.original.semantic_key or "",
            },
            "healed_locator": {
                "type": self.candidate.strategy.value if self.candidate else "",
                "value": self.candidate.value if self.candidate else "",
                "confidence": f"{self.confidence * 100:.2f}%",
            },
            "alternatives": self.alternatives,
            "from_cache": self.from_cache,
            "success": self.success,
            "healing_method": self.source.value,
            "platform": self.platform.value,
            "total_attempts": 1,
            "cache_hits": 1 if self.from_cache else 0,
        }

    def to_detailed_dict(self) -> Dict[str, Any]:
        data = self.to_dict()
        data.update({
            "timestamp": self.timestamp.isoformat(),
            "healing_time_ms": int(self.elapsed_seconds * 1000),
            "test_name": self.test_name or "",
            "action_description": self.action_description or "",
        })
        return data


def build_cache_key(kind: str, value: str, semantic_key: Optional[str] = None) -> str:
    """Deterministic cache key for an original locator."""
    key = f"{kind}||{value}"
    if semantic_key:
        key += f"||KEY:{semantic_key}"
    return key


@dataclass
class HealingConfiguration:
    """Configuration settings for the locator healing engine."""
    enabled: bool = True

    # Matching thresholds
    min_similarity: float = 0.6
    high_confidence: float = 0.85
    early_exit_all_strategies: bool = False
    enable_feature_scorer: bool = False

    # Budget
    max_healing_seconds: float = 45.0
    max_nodes: int = 1000
    context_margin_seconds: float = 5.0

    # Result cache
    cache_enabled: bool = True
    cache_ttl_seconds: float = 300.0
    cache_max_size: int = 500
    unreliable_min_uses: int = 3
    unreliable_success_rate: float = 0.5

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "enabled": self.enabled,
            "min_similarity": self.min_similarity,
            "high_confidence": self.high_confidence,
            "early_exit_all_strategies": self.early_exit_all_strategies,
            "enable_feature_scorer": self.enable_feature_scorer,
            "max_healing_seconds": self.max_healing_seconds,
            "max_nodes": self.max_nodes,
            "context_margin_seconds": self.context_margin_seconds,
            "cache_enabled": self.cache_enabled,
            "cache_ttl_seconds": self.cache_ttl_seconds,
            "cache_max_size": self.cache_max_size,
            "unreliable_min_uses": self.unreliable_min_uses,
            "unreliable_success_rate": self.unreliable_success_rate,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HealingConfiguration":
        """Create configuration from dictionary."""
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)

    def new_budget(self, clock: Optional[Callable[[], float]] = None) -> HealingBudget:
        """Fresh budget sized by this configuration."""
        return HealingBudget(
            max_elapsed=self.max_healing_seconds,
            max_nodes=self.max_nodes,
            context_margin=self.context_margin_seconds,
            clock=clock or time.monotonic
        )
