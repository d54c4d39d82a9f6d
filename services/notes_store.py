"""
Tagged notes file operations.
"""

import logging
from pathlib import Path

from config import log_event, get_notes_path


def ensure_notes_file(document_id: str, root: Path = None) -> Path:
    """Create the document's notes file if it doesn't exist and return its path."""
    path = get_notes_path(document_id, root)
    if not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("", encoding='utf-8')
        log_event(logging.INFO, "notes_file_created", document=document_id, path=str(path))
    return path


def read_notes_file(document_id: str, root: Path = None) -> str:
    """Read the last persisted revision of a document."""
    path = ensure_notes_file(document_id, root)
    content = path.read_text(encoding='utf-8')
    log_event(logging.DEBUG, "notes_file_read", document=document_id, bytes=len(content))
    return content


def write_notes_file(document_id: str, content: str, root: Path = None) -> bool:
    """Write a document's tagged text. Returns True on success."""
    try:
        path = ensure_notes_file(document_id, root)
        path.write_text(content, encoding='utf-8')
        log_event(logging.INFO, "notes_file_written", document=document_id, bytes=len(content))
        return True
    except Exception as e:
        log_event(logging.ERROR, "notes_file_write_failed", document=document_id, error=str(e))
        return False
