"""Services package for provenance notes."""

from services.inline import (
    parse_inline,
    serialize_inline,
)

from services.tagged_text import (
    parse_tagged_text,
    serialize_document,
    strip_provenance_tags,
    strip_model_blank_lines,
)

from services.document_tree import (
    find_node,
    document_to_dict,
    document_from_dict,
)

from services.promotion import PromotionRule

from services.revision_diff import (
    compute_lcs,
    align_revisions,
    find_modified_pairs,
    GreedyPairing,
    ScoreOrderedPairing,
)

from services.corrections import (
    CorrectionDetector,
    detect_corrections,
)

from services.notes_store import (
    read_notes_file,
    write_notes_file,
)

from services.vocabulary import VocabularyStore
from services.events import EventBroadcaster

from services.session import (
    DocumentSession,
    DocumentState,
    SessionManager,
    DocumentNotOpenError,
    UnknownNodeError,
    SessionBusyError,
    DocumentSaveError,
)

from services.ai import generate_tagged_notes

__all__ = [
    # Inline spans
    "parse_inline",
    "serialize_inline",
    # Tagged text
    "parse_tagged_text",
    "serialize_document",
    "strip_provenance_tags",
    "strip_model_blank_lines",
    # Tree
    "find_node",
    "document_to_dict",
    "document_from_dict",
    "PromotionRule",
    # Revision diff
    "compute_lcs",
    "align_revisions",
    "find_modified_pairs",
    "GreedyPairing",
    "ScoreOrderedPairing",
    "CorrectionDetector",
    "detect_corrections",
    # Storage
    "read_notes_file",
    "write_notes_file",
    "VocabularyStore",
    "EventBroadcaster",
    # Sessions
    "DocumentSession",
    "DocumentState",
    "SessionManager",
    "DocumentNotOpenError",
    "UnknownNodeError",
    "SessionBusyError",
    "DocumentSaveError",
    # AI
    "generate_tagged_notes",
]
