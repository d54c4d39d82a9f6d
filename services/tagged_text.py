"""
Tagged text <-> document tree conversion.

Tagged text is line oriented markdown where each line may carry a provenance
token (``[user]`` or ``[ai]``, optionally wrapped in ``**``):

    ## Action items
    [ai] - Follow up with Klaus
    [user]   - ask about the *rollout* date
    [ai] 1. Ship **v2**

Indentation is two spaces per nesting level. Untagged headings inherit
provenance from the next tagged line on parse, so the serializer only tags a
heading whose provenance differs from what it would inherit.
"""

import re
import logging
from typing import List, Optional, Tuple, Union

from config import log_event, MAX_NESTING_DEPTH
from models import (
    Provenance,
    LineKind,
    TaggedLine,
    Document,
    Heading,
    Paragraph,
    ListItem,
    BulletList,
    OrderedList,
    Block,
)
from services.inline import parse_inline, serialize_inline

TAG_ALIASES = {
    "user": Provenance.USER,
    "noted": Provenance.USER,
    "ai": Provenance.AI,
}

LEADING_TAG_PATTERN = re.compile(r"^(\s*)(\*\*)?\[(user|ai|noted)\](\*\*)?", re.IGNORECASE)
RULE_PATTERN = re.compile(r"^[-*_]{3,}$")
HEADING_PATTERN = re.compile(r"^(#{1,4})\s+(.*)$")
BULLET_PATTERN = re.compile(r"^-\s+(.*)$")
ORDERED_PATTERN = re.compile(r"^\d+\.\s+(.*)$")


# --- LINE CLASSIFICATION ---

def _split_leading_tag(line: str) -> Tuple[Optional[Provenance], str]:
    """Strip a provenance token at the start of a line, keeping indentation."""
    match = LEADING_TAG_PATTERN.match(line)
    if not match:
        return None, line
    provenance = TAG_ALIASES[match.group(3).lower()]
    indent = match.group(1)
    rest = line[match.end():]
    if indent:
        return provenance, indent + rest.lstrip(" \t")
    # "[ai]   - x": everything past the separator space is indentation
    if rest.startswith(" "):
        rest = rest[1:]
    return provenance, rest


def classify_line(raw: str) -> TaggedLine:
    """Classify one source line. Never raises."""
    line = raw.rstrip("\r")
    provenance, line = _split_leading_tag(line)
    stripped = line.lstrip(" ")
    indent_level = (len(line) - len(stripped)) // 2
    stripped = stripped.lstrip("\t")

    if not stripped.strip():
        return TaggedLine(indent_level, LineKind.BLANK, provenance, "")
    if RULE_PATTERN.match(stripped.strip()):
        return TaggedLine(indent_level, LineKind.RULE, provenance, "")

    heading = HEADING_PATTERN.match(stripped)
    if heading:
        body_tag, body = _split_leading_tag(heading.group(2))
        return TaggedLine(
            indent_level,
            LineKind.HEADING,
            provenance or body_tag,
            body,
            heading_level=len(heading.group(1)),
        )

    for kind, pattern in ((LineKind.BULLET, BULLET_PATTERN), (LineKind.ORDERED, ORDERED_PATTERN)):
        match = pattern.match(stripped)
        if match:
            body_tag, body = _split_leading_tag(match.group(1))
            return TaggedLine(indent_level, kind, provenance or body_tag, body)

    return TaggedLine(indent_level, LineKind.PARAGRAPH, provenance, stripped)


def classify_lines(text: str) -> List[TaggedLine]:
    """Classify all lines, dropping blanks and horizontal rules."""
    lines = []
    for raw in (text or "").split("\n"):
        tagged = classify_line(raw)
        if tagged.kind in (LineKind.BLANK, LineKind.RULE):
            continue
        lines.append(tagged)
    return lines


def resolve_heading_provenance(lines: List[TaggedLine]) -> None:
    """Untagged headings take the provenance of the next tagged line, else user."""
    following: Optional[Provenance] = None
    for line in reversed(lines):
        if line.kind == LineKind.HEADING and line.provenance is None:
            line.provenance = following or Provenance.USER
            continue
        if line.provenance is not None:
            following = line.provenance


# --- PARSER ---

def _new_list(kind: LineKind):
    return BulletList() if kind == LineKind.BULLET else OrderedList()


def _list_kind(node) -> LineKind:
    return LineKind.BULLET if isinstance(node, BulletList) else LineKind.ORDERED


def _new_item(line: TaggedLine, provenance: Provenance) -> ListItem:
    return ListItem(
        provenance=provenance,
        children=[Paragraph(provenance=provenance, spans=parse_inline(line.body))],
    )


def parse_tagged_text(
    content: str,
    default_provenance: Provenance = Provenance.USER,
    max_depth: int = MAX_NESTING_DEPTH,
) -> Document:
    """
    Parse tagged text into a document tree.

    Lists are built with an explicit stack of (base indent, open list). A line
    shallower than the innermost list closes it; a deeper line opens a nested
    list under the last item of the innermost list. Malformed lines become
    plain paragraphs; nothing here raises.
    """
    lines = classify_lines(content)
    resolve_heading_provenance(lines)

    blocks: List[Block] = []
    stack: List[Tuple[int, Union[BulletList, OrderedList]]] = []
    flattened = 0

    for line in lines:
        provenance = line.provenance or default_provenance

        if line.kind not in (LineKind.BULLET, LineKind.ORDERED):
            stack.clear()
            if line.kind == LineKind.HEADING:
                blocks.append(Heading(
                    level=line.heading_level,
                    provenance=provenance,
                    spans=parse_inline(line.body),
                ))
            else:
                blocks.append(Paragraph(provenance=provenance, spans=parse_inline(line.body)))
            continue

        item = _new_item(line, provenance)
        indent = line.indent_level
        while True:
            if not stack:
                # Indented item with no open parent list degrades to base level
                node = _new_list(line.kind)
                node.items.append(item)
                blocks.append(node)
                stack.append((0, node))
                break

            base, node = stack[-1]
            if indent < base:
                stack.pop()
                continue

            if indent > base:
                if len(stack) < max_depth:
                    nested = _new_list(line.kind)
                    nested.items.append(item)
                    node.items[-1].children.append(nested)
                    stack.append((indent, nested))
                    break
                flattened += 1

            if _list_kind(node) == line.kind:
                node.items.append(item)
                break
            # Same depth, different list type: the parent decides where it goes
            stack.pop()

    if flattened:
        log_event(logging.DEBUG, "tagged_text_depth_capped", lines=flattened, max_depth=max_depth)
    log_event(logging.DEBUG, "tagged_text_parsed", lines=len(lines), blocks=len(blocks))
    return Document(children=blocks)


# --- SERIALIZER ---

def _provenance(node) -> Provenance:
    return Provenance(getattr(node, "provenance", None) or Provenance.USER)


def _heading_level(node) -> int:
    level = getattr(node, "level", None)
    if not isinstance(level, int):
        return 2
    return min(max(level, 1), 4)


def _serialize_list(node, lines: List[Tuple[str, Provenance, str, bool]], depth: int) -> None:
    indent = "  " * depth
    ordered = isinstance(node, OrderedList)
    for position, item in enumerate(getattr(node, "items", None) or [], start=1):
        children = getattr(item, "children", None) or []
        para = next((c for c in children if isinstance(c, Paragraph)), None)
        text = serialize_inline(para.spans) if para else ""
        marker = f"{position}." if ordered else "-"
        lines.append((indent, _provenance(item), f"{marker} {text}", False))
        for child in children:
            if isinstance(child, (BulletList, OrderedList)):
                _serialize_list(child, lines, depth + 1)


def serialize_document(document: Document, tag_headings: bool = False) -> str:
    """
    Serialize a document tree back to tagged text, one line per leaf.

    A heading carries a token only when re-parsing would otherwise infer a
    different provenance from the following lines, or when ``tag_headings``
    is set.
    """
    lines: List[Tuple[str, Provenance, str, bool]] = []
    for node in getattr(document, "children", None) or []:
        if isinstance(node, Heading):
            hashes = "#" * _heading_level(node)
            lines.append(("", _provenance(node), f"{hashes} {serialize_inline(node.spans)}", True))
        elif isinstance(node, (BulletList, OrderedList)):
            _serialize_list(node, lines, 0)
        elif isinstance(node, Paragraph):
            lines.append(("", _provenance(node), serialize_inline(node.spans), False))

    # Walk backwards so each heading sees what it would inherit on re-parse
    out: List[str] = []
    following: Optional[Provenance] = None
    for indent, provenance, body, is_heading in reversed(lines):
        if is_heading and not tag_headings and provenance == (following or Provenance.USER):
            out.append(body)
            continue
        following = provenance
        out.append(f"{indent}[{provenance.value}] {body}")
    out.reverse()
    return "\n".join(out)


# --- TEXT HELPERS ---

def strip_provenance_tag(line: str) -> str:
    """Remove the provenance token from one line, keeping its indentation."""
    provenance, rest = _split_leading_tag(line)
    if provenance is None:
        return line
    return rest


def strip_provenance_tags(content: str) -> str:
    """Plain markdown copy of tagged text, for export."""
    return "\n".join(strip_provenance_tag(line) for line in (content or "").split("\n"))


def strip_model_blank_lines(content: str) -> str:
    """Drop blank lines, tag-only lines and horizontal rules from model output."""
    kept = []
    for line in (content or "").split("\n"):
        tagged = classify_line(line)
        if tagged.kind in (LineKind.BLANK, LineKind.RULE):
            continue
        kept.append(line.rstrip())
    return "\n".join(kept)
