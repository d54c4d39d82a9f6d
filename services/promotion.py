"""
Provenance promotion: an interactive edit inside AI-written content makes that
content the user's.
"""

import logging
from contextlib import contextmanager
from typing import List, Sequence

from config import log_event
from models import Provenance, Heading, Paragraph, ListItem, DocumentNode, TaggableNode


def promotion_targets(node: DocumentNode, ancestors: Sequence[DocumentNode]) -> List[TaggableNode]:
    """
    Smallest taggable scope of an edit. A list item and its own paragraph are
    one logical line, so they are promoted together; outer items are not.
    """
    if isinstance(node, Heading):
        return [node]
    if isinstance(node, Paragraph):
        parent = ancestors[-1] if ancestors else None
        if isinstance(parent, ListItem):
            return [parent, node]
        return [node]
    if isinstance(node, ListItem):
        para = node.paragraph
        return [node, para] if para else [node]
    return []


class PromotionRule:
    """Rewrites ai -> user on interactive edits unless suppressed."""

    def __init__(self):
        self._suppress_depth = 0

    @property
    def suppressed(self) -> bool:
        return self._suppress_depth > 0

    @contextmanager
    def suppress(self):
        """Scope for bulk programmatic changes (loading, regeneration)."""
        self._suppress_depth += 1
        try:
            yield self
        finally:
            self._suppress_depth -= 1

    def apply(self, node: DocumentNode, ancestors: Sequence[DocumentNode]) -> List[TaggableNode]:
        """Promote the edited node's scope in place; returns what changed."""
        if self.suppressed:
            return []
        promoted = []
        for target in promotion_targets(node, ancestors):
            if target.provenance == Provenance.AI:
                target.provenance = Provenance.USER
                promoted.append(target)
        if promoted:
            log_event(logging.DEBUG, "provenance_promoted", node=node.id, count=len(promoted))
        return promoted
