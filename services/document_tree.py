"""
Document tree helpers: traversal, lookup and the JSON shape exchanged with the
editing surface.
"""

import logging
from typing import Dict, Iterator, List, Optional, Tuple

from config import log_event
from models import (
    Provenance,
    Document,
    Heading,
    Paragraph,
    ListItem,
    BulletList,
    OrderedList,
    InlineSpan,
    DocumentNode,
    new_node_id,
)
from services.inline import spans_text

Path = Tuple[DocumentNode, ...]


def _child_nodes(node) -> List[DocumentNode]:
    if isinstance(node, (BulletList, OrderedList)):
        return list(node.items)
    if isinstance(node, ListItem):
        return list(node.children)
    return []


def iter_nodes(document: Document) -> Iterator[Tuple[DocumentNode, Path]]:
    """Depth-first, document order. Yields (node, ancestors outermost first)."""
    stack = [(node, ()) for node in reversed(document.children)]
    while stack:
        node, ancestors = stack.pop()
        yield node, ancestors
        for child in reversed(_child_nodes(node)):
            stack.append((child, ancestors + (node,)))


def find_node(document: Document, node_id: str) -> Tuple[Optional[DocumentNode], Path]:
    for node, ancestors in iter_nodes(document):
        if node.id == node_id:
            return node, ancestors
    return None, ()


def plain_text(node) -> str:
    if isinstance(node, (Heading, Paragraph)):
        return spans_text(node.spans)
    if isinstance(node, ListItem) and node.paragraph:
        return spans_text(node.paragraph.spans)
    return ""


# --- DICT CONVERSION ---

def _spans_to_dict(spans: List[InlineSpan]) -> List[Dict]:
    return [{"text": s.text, "bold": s.bold, "italic": s.italic} for s in spans]


def node_to_dict(node) -> Dict:
    if isinstance(node, Heading):
        return {
            "type": "heading",
            "id": node.id,
            "level": node.level,
            "provenance": Provenance(node.provenance).value,
            "spans": _spans_to_dict(node.spans),
        }
    if isinstance(node, Paragraph):
        return {
            "type": "paragraph",
            "id": node.id,
            "provenance": Provenance(node.provenance).value,
            "spans": _spans_to_dict(node.spans),
        }
    if isinstance(node, ListItem):
        return {
            "type": "listItem",
            "id": node.id,
            "provenance": Provenance(node.provenance).value,
            "children": [node_to_dict(c) for c in node.children],
        }
    list_type = "orderedList" if isinstance(node, OrderedList) else "bulletList"
    return {"type": list_type, "id": node.id, "items": [node_to_dict(i) for i in node.items]}


def document_to_dict(document: Document) -> Dict:
    return {"type": "doc", "children": [node_to_dict(n) for n in document.children]}


def _provenance_from(data: Dict) -> Provenance:
    value = str(data.get("provenance") or "").lower()
    if value == Provenance.AI.value:
        return Provenance.AI
    return Provenance.USER


def spans_from_dicts(raw_spans) -> List[InlineSpan]:
    spans = []
    for raw in raw_spans or []:
        if not isinstance(raw, dict) or not raw.get("text"):
            continue
        spans.append(InlineSpan(
            text=str(raw["text"]),
            bold=bool(raw.get("bold")),
            italic=bool(raw.get("italic")),
        ))
    return spans


def _level_from(data: Dict) -> int:
    level = data.get("level")
    if isinstance(level, int) and not isinstance(level, bool) and 1 <= level <= 4:
        return level
    return 2


def node_from_dict(data: Dict):
    """Build a node from editor JSON. Unknown types return None."""
    if not isinstance(data, dict):
        return None
    node_type = data.get("type")
    node_id = str(data.get("id") or new_node_id())

    if node_type == "heading":
        return Heading(level=_level_from(data), provenance=_provenance_from(data),
                       spans=spans_from_dicts(data.get("spans")), id=node_id)
    if node_type == "paragraph":
        return Paragraph(provenance=_provenance_from(data), spans=spans_from_dicts(data.get("spans")), id=node_id)
    if node_type == "listItem":
        provenance = _provenance_from(data)
        children = []
        for child in data.get("children") or []:
            built = node_from_dict(child)
            if isinstance(built, (Paragraph, BulletList, OrderedList)):
                children.append(built)
        if not any(isinstance(c, Paragraph) for c in children):
            children.insert(0, Paragraph(provenance=provenance))
        return ListItem(provenance=provenance, children=children, id=node_id)
    if node_type in ("bulletList", "orderedList"):
        items = [node_from_dict(i) for i in data.get("items") or []]
        items = [i for i in items if isinstance(i, ListItem)]
        cls = OrderedList if node_type == "orderedList" else BulletList
        return cls(items=items, id=node_id)

    log_event(logging.DEBUG, "document_node_skipped", type=node_type)
    return None


def document_from_dict(data: Dict) -> Document:
    """Defensive inverse of document_to_dict; bad input yields an empty document."""
    if not isinstance(data, dict):
        return Document()
    children = []
    for raw in data.get("children") or []:
        node = node_from_dict(raw)
        if isinstance(node, (Heading, Paragraph, BulletList, OrderedList)):
            children.append(node)
    return Document(children=children)
