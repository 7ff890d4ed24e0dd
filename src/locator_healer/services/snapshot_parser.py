"""
UI-tree snapshot parsing.

Turns the page source handed over by the automation driver into a flat,
document-ordered list of TreeNode objects. Appium page sources are parsed
as XML; browser DOMs are parsed with BeautifulSoup.
"""

import logging
import re
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional

from bs4 import BeautifulSoup, NavigableString, Tag

from ..core.models.healing_models import Platform, Snapshot, TreeNode

logger = logging.getLogger(__name__)

_HTML_START = re.compile(r"^\s*(<!--.*?-->\s*)*<(!doctype\s+html|html)\b", re.IGNORECASE | re.DOTALL)


class SnapshotParseError(Exception):
    """Raised when a snapshot cannot be parsed into a tree."""
    pass


def detect_platform(page_source: str) -> Platform:
    """Detect the platform a snapshot was captured from.

    iOS markers are checked first, then Android class names, then
    Android-only attribute names.
    """
    if not page_source:
        return Platform.UNKNOWN
    if "XCUIElement" in page_source or "XCUIApplication" in page_source:
        return Platform.IOS
    if "android." in page_source or "com.android." in page_source:
        return Platform.ANDROID
    if "content-desc" in page_source or "resource-id" in page_source:
        return Platform.ANDROID
    return Platform.UNKNOWN


def is_html(page_source: str) -> bool:
    return bool(_HTML_START.match(page_source))


def parse_snapshot(page_source: str) -> Snapshot:
    """Parse a textual UI-tree snapshot.

    Args:
        page_source: XML page source or HTML document

    Returns:
        Snapshot with one node per element in document order. An empty
        or blank source yields an empty snapshot.

    Raises:
        SnapshotParseError: If the markup is malformed
    """
    if page_source is None or not page_source.strip():
        return Snapshot(platform=Platform.UNKNOWN)

    platform = detect_platform(page_source)

    if is_html(page_source):
        nodes = _parse_html(page_source)
        source_format = "html"
    else:
        nodes = _parse_xml(page_source)
        source_format = "xml"

    logger.debug(f"Parsed {len(nodes)} {source_format} nodes (platform: {platform.value})")
    return Snapshot(platform=platform, nodes=nodes, source_format=source_format)


def _parse_xml(page_source: str) -> List[TreeNode]:
    try:
        root = ET.fromstring(page_source.encode("utf-8"))
    except ET.ParseError as e:
        raise SnapshotParseError(f"Malformed XML snapshot: {e}") from e

    nodes: List[TreeNode] = []
    _append_xml_node(nodes, root, None, None, 0)

    # Each frame: [parent index, iterator over its children, last emitted child]
    stack: List[list] = [[0, iter(root), None]]
    while stack:
        frame = stack[-1]
        parent_index, children, previous_index = frame
        child = next(children, None)
        if child is None:
            stack.pop()
            continue
        depth = nodes[parent_index].depth + 1
        index = _append_xml_node(nodes, child, parent_index, previous_index, depth)
        frame[2] = index
        stack.append([index, iter(child), None])

    return nodes


def _append_xml_node(nodes: List[TreeNode], element: ET.Element, parent_index: Optional[int],
                     sibling_index: Optional[int], depth: int) -> int:
    index = len(nodes)
    nodes.append(TreeNode(
        index=index,
        tag=_local_name(element.tag),
        attributes={_local_name(k): v for k, v in element.attrib.items()},
        parent_index=parent_index,
        previous_sibling_index=sibling_index,
        depth=depth
    ))
    return index


def _parse_html(page_source: str) -> List[TreeNode]:
    soup = BeautifulSoup(page_source, 'html.parser')
    tags = soup.find_all(True)
    positions: Dict[int, int] = {id(tag): i for i, tag in enumerate(tags)}

    nodes: List[TreeNode] = []
    for i, tag in enumerate(tags):
        attributes = {}
        for name, value in tag.attrs.items():
            attributes[name] = ' '.join(value) if isinstance(value, list) else str(value)
        own_text = ''.join(
            str(child) for child in tag.children if isinstance(child, NavigableString)
        ).strip()
        if own_text and "text" not in attributes:
            attributes["text"] = own_text

        parent = tag.parent if isinstance(tag.parent, Tag) else None
        parent_index = positions.get(id(parent)) if parent is not None else None
        sibling = tag.find_previous_sibling()
        sibling_index = positions.get(id(sibling)) if sibling is not None else None

        nodes.append(TreeNode(
            index=i,
            tag=tag.name,
            attributes=attributes,
            parent_index=parent_index,
            previous_sibling_index=sibling_index,
            depth=len(list(tag.parents)) - 1
        ))

    return nodes


def _local_name(name: str) -> str:
    """Strip an XML namespace prefix of the form ``{uri}name``."""
    if name.startswith("{"):
        return name.split("}", 1)[1]
    return name
