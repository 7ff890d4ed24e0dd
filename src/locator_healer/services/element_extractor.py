"""
Element Feature Extraction

Projects raw TreeNode attributes onto the fixed bundle of comparable
features the healing strategies work with. Attribute names differ per
platform (Appium iOS sources use name/label/value/type, Android sources use
resource-id/content-desc/text/class), so every accessor here is
platform-aware.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..core.models.healing_models import (
    HealingBudget,
    LocatorKind,
    Platform,
    Snapshot,
    TreeNode,
)

logger = logging.getLogger(__name__)


@dataclass
class ElementFeatures:
    """Comparable attributes of one tree node, extracted once per scan."""
    node: TreeNode
    platform: Platform
    resource_id: str = ""
    content_desc: str = ""
    text: str = ""
    name: str = ""
    label: str = ""
    value: str = ""
    type: str = ""
    class_name: str = ""
    element_id: str = ""
    aria_label: str = ""
    usable: bool = True

    @property
    def identifier(self) -> str:
        if self.platform == Platform.IOS:
            return self.name
        if self.platform == Platform.ANDROID:
            return self.resource_id
        return self.name or self.element_id or self.resource_id

    @property
    def identifier_kind(self) -> LocatorKind:
        """Locator kind that finds this element by its identifier."""
        if self.platform == Platform.IOS:
            return LocatorKind.ACCESSIBILITY
        return LocatorKind.ID

    @property
    def description(self) -> str:
        if self.platform == Platform.IOS:
            return self.label or self.value
        if self.platform == Platform.ANDROID:
            return self.content_desc
        return self.content_desc or self.aria_label

    @property
    def type_tag(self) -> str:
        if self.platform == Platform.IOS:
            return self.type
        return self.class_name or self.node.tag

    def attribute_for(self, kind: LocatorKind) -> str:
        """Attribute a locator of the given kind would have matched against.

        Args:
            kind: Locator kind of the original locator

        Returns:
            The attribute value, or an empty string if the node lacks it
        """
        if self.platform == Platform.IOS:
            if kind in (LocatorKind.ID, LocatorKind.ACCESSIBILITY):
                return self.name
            if kind == LocatorKind.NAME:
                return self.label or self.value
            if kind == LocatorKind.CLASS_NAME:
                return self.type
            return self.name

        if self.platform == Platform.ANDROID:
            if kind == LocatorKind.ID:
                return self.resource_id
            if kind == LocatorKind.ACCESSIBILITY:
                return self.content_desc
            if kind == LocatorKind.NAME:
                return self.text
            if kind == LocatorKind.CLASS_NAME:
                return self.class_name
            return self.content_desc

        # Unknown platform: first non-empty of the common attributes
        return self.identifier or self.description or self.text or self.label

    def alternative_attributes(self) -> List[Tuple[str, LocatorKind]]:
        """Attributes worth cross-checking, each tagged with the locator kind it implies."""
        if self.platform == Platform.IOS:
            return [
                (self.name, LocatorKind.ACCESSIBILITY),
                (self.label, LocatorKind.NAME),
                (self.value, LocatorKind.NAME),
                (self.type, LocatorKind.CLASS_NAME),
            ]
        if self.platform == Platform.ANDROID:
            return [
                (self.resource_id, LocatorKind.ID),
                (self.content_desc, LocatorKind.ACCESSIBILITY),
                (self.text, LocatorKind.NAME),
                (self.class_name, LocatorKind.CLASS_NAME),
            ]
        return [
            (self.identifier, LocatorKind.ID),
            (self.description, LocatorKind.ACCESSIBILITY),
            (self.text, LocatorKind.NAME),
            (self.class_name, LocatorKind.CLASS_NAME),
        ]

    def context_text(self) -> str:
        """All descriptive attributes joined into one string."""
        if self.platform == Platform.IOS:
            parts = [self.name, self.label, self.value, self.type]
        elif self.platform == Platform.ANDROID:
            parts = [self.resource_id, self.content_desc, self.text, self.class_name]
        else:
            parts = [self.name, self.label, self.text, self.resource_id,
                     self.content_desc, self.element_id, self.aria_label]
        return " ".join(part for part in parts if part)

    def display_text(self) -> str:
        """What a user would read on screen."""
        return self.text or self.label or self.value


def is_usable(node: TreeNode, platform: Platform) -> bool:
    """Whether the element is visible and enabled.

    Only an explicit ``"false"`` marks a node unusable; missing flags count
    as usable.
    """
    enabled = node.get("enabled").lower()
    if platform == Platform.ANDROID:
        return enabled != "false" and node.get("displayed").lower() != "false"
    if platform == Platform.IOS:
        return node.get("visible").lower() != "false" and enabled != "false"
    return True


def extract_features(node: TreeNode, platform: Platform) -> ElementFeatures:
    """Build the feature bundle for a single node."""
    return ElementFeatures(
        node=node,
        platform=platform,
        resource_id=node.get("resource-id"),
        content_desc=node.get("content-desc"),
        text=node.get("text"),
        name=node.get("name"),
        label=node.get("label"),
        value=node.get("value"),
        type=node.get("type"),
        class_name=node.get("class"),
        element_id=node.get("id"),
        aria_label=node.get("aria-label"),
        usable=is_usable(node, platform)
    )


def extract_all(snapshot: Snapshot, budget: Optional[HealingBudget] = None) -> List[ElementFeatures]:
    """Extract features for every node of a snapshot, in document order.

    Every extracted node counts against the attempt's node ceiling; extraction
    stops once that ceiling or the wall-clock budget is reached.

    Args:
        snapshot: Parsed snapshot
        budget: Optional budget shared with the rest of the healing attempt

    Returns:
        List of ElementFeatures, possibly truncated by the budget
    """
    if budget is None:
        return [extract_features(node, snapshot.platform) for node in snapshot.nodes]

    features: List[ElementFeatures] = []
    for node in snapshot.nodes:
        if not budget.can_process_more_nodes():
            logger.warning(
                f"Feature extraction stopped after {len(features)} of {len(snapshot)} nodes")
            break
        features.append(extract_features(node, snapshot.platform))
        budget.increment_nodes()

    logger.debug(f"Extracted features for {len(features)} nodes in {budget.elapsed():.3f}s")
    return features
