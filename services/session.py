"""
Per-document editing sessions.

A session holds the parsed tree of one open document and its debounce
deadline. The SessionManager owns every open session plus the table of last
saved baselines, and runs the save pipeline:

    serialize -> persist -> diff against baseline -> suggestions -> new baseline

Nothing here starts threads or timers. ``tick()`` is called cooperatively
and flushes every session whose quiet window has elapsed. The HTTP layer
calls it before each request and on each SSE heartbeat; with neither, an
edited document waits for the next request, focus switch, close or shutdown.
"""

import copy
import time
import logging
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from config import (
    log_event,
    SAVE_DEBOUNCE_SECONDS,
    UNDO_LIMIT,
    WORD_SUGGESTIONS_ENABLED,
    DEFAULT_DOCUMENT_LABEL,
)
from models import (
    Provenance,
    Document,
    Paragraph,
    ListItem,
    BulletList,
    OrderedList,
    InlineSpan,
)
from services.inline import parse_inline
from services.tagged_text import parse_tagged_text, serialize_document
from services.document_tree import find_node, document_from_dict, spans_from_dicts
from services.promotion import PromotionRule
from services.corrections import CorrectionDetector


class DocumentState(str, Enum):
    UNLOADED = "unloaded"
    LOADED = "loaded"
    EDITING = "editing"
    SAVING = "saving"
    DIFFED = "diffed"


class DocumentNotOpenError(KeyError):
    pass


class UnknownNodeError(KeyError):
    pass


class SessionBusyError(RuntimeError):
    pass


class DocumentSaveError(RuntimeError):
    pass


Content = Union[str, List[InlineSpan]]


def _to_spans(content: Content) -> List[InlineSpan]:
    if isinstance(content, list):
        if all(isinstance(s, InlineSpan) for s in content):
            return list(content)
        return spans_from_dicts(content)
    return parse_inline(content or "")


def _position(nodes: List, node) -> int:
    # Nodes compare by value, so equal-looking siblings need identity lookup
    return next(i for i, candidate in enumerate(nodes) if candidate is node)


class DocumentSession:
    """One open document: tree, lifecycle state, debounce deadline, undo."""

    def __init__(
        self,
        document_id: str,
        label: str = DEFAULT_DOCUMENT_LABEL,
        debounce_seconds: float = SAVE_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        undo_limit: int = UNDO_LIMIT,
    ):
        self.document_id = document_id
        self.label = label or DEFAULT_DOCUMENT_LABEL
        self.debounce_seconds = debounce_seconds
        self.clock = clock
        self.undo_limit = undo_limit
        self.document = Document()
        self.state = DocumentState.UNLOADED
        self.promotion = PromotionRule()
        self.deadline: Optional[float] = None
        self._undo: List[Document] = []
        self._busy: Optional[str] = None

    # --- guards ---

    @contextmanager
    def _exclusive(self, operation: str):
        if self._busy:
            raise SessionBusyError(f"{operation} while {self._busy} in progress for {self.document_id}")
        self._busy = operation
        try:
            yield
        finally:
            self._busy = None

    @property
    def dirty(self) -> bool:
        return self.deadline is not None

    def due(self, now: float) -> bool:
        return self.deadline is not None and now >= self.deadline

    def mark_dirty(self):
        self.state = DocumentState.EDITING
        self.deadline = self.clock() + self.debounce_seconds

    def _checkpoint(self):
        self._undo.append(copy.deepcopy(self.document))
        if len(self._undo) > self.undo_limit:
            del self._undo[0]

    def _require(self, node_id: str):
        node, ancestors = find_node(self.document, node_id)
        if node is None:
            raise UnknownNodeError(node_id)
        return node, ancestors

    # --- whole-document operations ---

    def load(self, content: str):
        """Initial parse. Resets history and clears any pending save."""
        with self._exclusive("parse"), self.promotion.suppress():
            self.document = parse_tagged_text(content)
        self._undo.clear()
        self.deadline = None
        self.state = DocumentState.LOADED

    def serialize(self) -> str:
        with self._exclusive("serialize"):
            return serialize_document(self.document)

    def on_programmatic_replace(self, tree: Union[str, Dict, Document]):
        """Replace the whole document without promoting anything."""
        with self.promotion.suppress():
            if isinstance(tree, Document):
                self.document = tree
            elif isinstance(tree, dict):
                self.document = document_from_dict(tree)
            else:
                with self._exclusive("parse"):
                    self.document = parse_tagged_text(tree or "")
        self._undo.clear()
        self.deadline = None
        self.state = DocumentState.LOADED
        log_event(logging.INFO, "document_replaced", document=self.document_id, blocks=len(self.document.children))

    # --- interactive operations ---

    def on_interactive_edit(self, node_id: str, new_content: Content):
        """Replace a node's inline content; promotes ai -> user in the same step."""
        node, ancestors = self._require(node_id)
        if isinstance(node, (BulletList, OrderedList)):
            raise UnknownNodeError(f"{node_id} has no inline content")

        self._checkpoint()
        spans = _to_spans(new_content)
        if isinstance(node, ListItem):
            para = node.paragraph
            if para is None:
                para = Paragraph(provenance=node.provenance)
                node.children.insert(0, para)
            para.spans = spans
        else:
            node.spans = spans
        promoted = self.promotion.apply(node, ancestors)
        self.mark_dirty()
        return promoted

    def apply_edit(self, node_id: str, new_content: Content, interactive: bool = True):
        """Entry point for the editing surface's (node, content, interactive) events."""
        if interactive:
            return self.on_interactive_edit(node_id, new_content)
        with self.promotion.suppress():
            return self.on_interactive_edit(node_id, new_content)

    def on_interactive_insert(self, after_node_id: str, content: Content):
        """Insert a user-authored line after a block or list item."""
        node, ancestors = self._require(after_node_id)
        if isinstance(node, Paragraph) and ancestors and isinstance(ancestors[-1], ListItem):
            node, ancestors = ancestors[-1], ancestors[:-1]

        self._checkpoint()
        spans = _to_spans(content)
        if isinstance(node, ListItem):
            parent = ancestors[-1]
            new_node = ListItem(
                provenance=Provenance.USER,
                children=[Paragraph(provenance=Provenance.USER, spans=spans)],
            )
            parent.items.insert(_position(parent.items, node) + 1, new_node)
        else:
            top = ancestors[0] if ancestors else node
            new_node = Paragraph(provenance=Provenance.USER, spans=spans)
            self.document.children.insert(_position(self.document.children, top) + 1, new_node)
        self.mark_dirty()
        return new_node

    def on_interactive_delete(self, node_id: str):
        """Remove a block or list item; lists left empty are removed too."""
        node, ancestors = self._require(node_id)
        if isinstance(node, Paragraph) and ancestors and isinstance(ancestors[-1], ListItem):
            node, ancestors = ancestors[-1], ancestors[:-1]

        self._checkpoint()
        while ancestors:
            parent = ancestors[-1]
            if isinstance(parent, (BulletList, OrderedList)):
                del parent.items[_position(parent.items, node)]
                if parent.items:
                    break
            else:
                del parent.children[_position(parent.children, node)]
                break
            node, ancestors = parent, ancestors[:-1]
        else:
            del self.document.children[_position(self.document.children, node)]
        self.mark_dirty()

    def undo(self) -> bool:
        """Revert the last transaction, content and promotion together."""
        if not self._undo:
            return False
        self.document = self._undo.pop()
        self.mark_dirty()
        return True


class SessionManager:
    """Owns open sessions and their last-saved baselines, keyed by document id."""

    def __init__(
        self,
        persist: Callable[[str, str], bool],
        sink=None,
        detector: Optional[CorrectionDetector] = None,
        debounce_seconds: float = SAVE_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        suggestions_enabled: bool = WORD_SUGGESTIONS_ENABLED,
        on_event: Optional[Callable[[Dict], None]] = None,
        undo_limit: int = UNDO_LIMIT,
    ):
        self.persist = persist
        self.sink = sink
        self.detector = detector or CorrectionDetector()
        self.debounce_seconds = debounce_seconds
        self.clock = clock
        self.suggestions_enabled = suggestions_enabled
        self.on_event = on_event
        self.undo_limit = undo_limit
        self.focused_id: Optional[str] = None
        self._sessions: Dict[str, DocumentSession] = {}
        self._baselines: Dict[str, str] = {}

    # --- lifecycle ---

    def open(self, document_id: str, content: str, label: str = None) -> DocumentSession:
        """Parse a stored revision and start tracking it. Idempotent per id."""
        if document_id in self._sessions:
            return self._sessions[document_id]
        session = DocumentSession(
            document_id,
            label=label,
            debounce_seconds=self.debounce_seconds,
            clock=self.clock,
            undo_limit=self.undo_limit,
        )
        session.load(content)
        self._sessions[document_id] = session
        self._baselines[document_id] = session.serialize()
        log_event(logging.INFO, "document_opened", document=document_id, blocks=len(session.document.children))
        return session

    def get(self, document_id: str) -> DocumentSession:
        session = self._sessions.get(document_id)
        if session is None:
            raise DocumentNotOpenError(document_id)
        return session

    def is_open(self, document_id: str) -> bool:
        return document_id in self._sessions

    def open_ids(self) -> List[str]:
        return list(self._sessions)

    def baseline(self, document_id: str) -> Optional[str]:
        return self._baselines.get(document_id)

    def focus(self, document_id: str) -> List[str]:
        """Switch the active document, flushing the one switched away from."""
        self.get(document_id)
        previous, self.focused_id = self.focused_id, document_id
        if previous and previous != document_id and previous in self._sessions:
            return self.flush(previous)
        return []

    def close(self, document_id: str) -> List[str]:
        """
        Flush pending edits, then forget the tree and its baseline. A document
        whose final save fails stays open, still dirty.
        """
        session = self.get(document_id)
        suggestions = self.flush(document_id)
        if session.dirty:
            raise DocumentSaveError(document_id)
        del self._sessions[document_id]
        self._baselines.pop(document_id, None)
        if self.focused_id == document_id:
            self.focused_id = None
        log_event(logging.INFO, "document_closed", document=document_id)
        return suggestions

    def shutdown(self):
        """Flush and close everything (process exit)."""
        for document_id in list(self._sessions):
            try:
                self.close(document_id)
            except DocumentSaveError:
                log_event(logging.ERROR, "document_left_unsaved", document=document_id)
            except Exception as e:
                log_event(logging.ERROR, "document_close_failed", document=document_id, error=str(e))

    # --- editing ---

    def replace(self, document_id: str, tree) -> str:
        """
        Whole-document replacement from the generation pipeline. Saved at once
        and taken as the new baseline, so machine-written text never turns into
        vocabulary suggestions.
        """
        session = self.get(document_id)
        self.flush(document_id)
        session.on_programmatic_replace(tree)
        text = session.serialize()
        self._baselines[document_id] = text
        if not self._persist(document_id, text):
            session.mark_dirty()
        return text

    # --- save pipeline ---

    def tick(self, now: float = None) -> List[str]:
        """Flush every session whose debounce window has elapsed."""
        now = self.clock() if now is None else now
        flushed = []
        for document_id, session in list(self._sessions.items()):
            if session.due(now):
                self.flush(document_id)
                flushed.append(document_id)
        return flushed

    def flush(self, document_id: str) -> List[str]:
        """Save now if dirty. Returns the correction words found."""
        session = self.get(document_id)
        if not session.dirty:
            return []

        session.deadline = None
        session.state = DocumentState.SAVING
        text = session.serialize()
        if not self._persist(document_id, text):
            log_event(logging.WARNING, "document_save_retry_scheduled", document=document_id)
            session.mark_dirty()
            return []

        words = []
        if self.suggestions_enabled:
            words = self.detector.detect(self._baselines.get(document_id), text)
            self._emit_suggestions(session, words)
        self._baselines[document_id] = text
        session.state = DocumentState.DIFFED

        log_event(logging.INFO, "revision_diffed", document=document_id, bytes=len(text), suggestions=len(words))
        self._emit({"type": "document_saved", "document_id": document_id})
        return words

    def _persist(self, document_id: str, text: str) -> bool:
        try:
            return bool(self.persist(document_id, text))
        except Exception as e:
            log_event(logging.ERROR, "document_persist_failed", document=document_id, error=str(e))
            return False

    def _emit_suggestions(self, session: DocumentSession, words: List[str]):
        if not words or self.sink is None:
            return
        for word in words:
            try:
                self.sink.add_suggestion(word, session.label, session.document_id)
            except Exception as e:
                log_event(logging.WARNING, "suggestion_sink_failed", word=word, error=str(e))
        self._emit({"type": "suggestions_changed", "document_id": session.document_id, "words": words})

    def _emit(self, data: Dict):
        if self.on_event is None:
            return
        try:
            self.on_event(data)
        except Exception as e:
            log_event(logging.DEBUG, "session_event_failed", type=data.get("type"), error=str(e))
