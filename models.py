"""
Data structures (dataclasses) for the attributed note document.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union


class Provenance(str, Enum):
    """Who wrote a piece of the document."""
    USER = "user"
    AI = "ai"


class LineKind(str, Enum):
    BLANK = "blank"
    RULE = "rule"
    HEADING = "heading"
    BULLET = "bullet"
    ORDERED = "ordered"
    PARAGRAPH = "paragraph"


def new_node_id() -> str:
    return str(uuid.uuid4())[:8]


@dataclass
class InlineSpan:
    """A run of text with uniform bold/italic marks."""
    text: str
    bold: bool = False
    italic: bool = False


@dataclass
class Heading:
    level: int  # 1 for #, 2 for ##, etc.
    provenance: Provenance = Provenance.USER
    spans: List[InlineSpan] = field(default_factory=list)
    id: str = field(default_factory=new_node_id, compare=False)


@dataclass
class Paragraph:
    provenance: Provenance = Provenance.USER
    spans: List[InlineSpan] = field(default_factory=list)
    id: str = field(default_factory=new_node_id, compare=False)


@dataclass
class ListItem:
    """One paragraph followed by zero or more nested lists."""
    provenance: Provenance = Provenance.USER
    children: List[Union[Paragraph, "BulletList", "OrderedList"]] = field(default_factory=list)
    id: str = field(default_factory=new_node_id, compare=False)

    @property
    def paragraph(self) -> Optional[Paragraph]:
        return next((c for c in self.children if isinstance(c, Paragraph)), None)


@dataclass
class BulletList:
    items: List[ListItem] = field(default_factory=list)
    id: str = field(default_factory=new_node_id, compare=False)


@dataclass
class OrderedList:
    items: List[ListItem] = field(default_factory=list)
    id: str = field(default_factory=new_node_id, compare=False)


Block = Union[Heading, Paragraph, BulletList, OrderedList]
ListNode = Union[BulletList, OrderedList]
DocumentNode = Union[Heading, Paragraph, BulletList, OrderedList, ListItem]
TaggableNode = Union[Heading, Paragraph, ListItem]


@dataclass
class Document:
    """Root of the tree; only blocks live at the top level."""
    children: List[Block] = field(default_factory=list)


@dataclass
class TaggedLine:
    """One classified source line, before tree building."""
    indent_level: int
    kind: LineKind
    provenance: Optional[Provenance]  # None when the line carried no tag
    body: str
    heading_level: int = 0


@dataclass
class CorrectionSuggestion:
    """A likely vocabulary correction found in a saved revision."""
    word: str
    source_label: str
    source_id: str
