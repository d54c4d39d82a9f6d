"""
Tests for document sessions and the debounced save pipeline
"""

import pytest

from models import Provenance
from services.session import (
    SessionManager,
    DocumentState,
    DocumentNotOpenError,
    UnknownNodeError,
    SessionBusyError,
    DocumentSaveError,
)
from services.tagged_text import parse_tagged_text


def _first_item(session):
    return session.document.children[0].items[0]


def _edit_first_item(manager, document_id, text):
    session = manager.get(document_id)
    return session.on_interactive_edit(_first_item(session).paragraph.id, text)


class TestLifecycle:
    """Open, focus, close, shutdown"""

    def test_open_sets_baseline_without_saving(self, manager, store):
        session = manager.open("d1", "[ai] - met shiba", label="Standup")
        assert session.state == DocumentState.LOADED
        assert session.label == "Standup"
        assert manager.baseline("d1") == "[ai] - met shiba"
        assert store.writes == []

    def test_baseline_is_normalized(self, manager):
        manager.open("d1", "[ai]   3. first\n\n---\n")
        assert manager.baseline("d1") == "[ai] 1. first"

    def test_open_is_idempotent(self, manager):
        first = manager.open("d1", "[ai] - a")
        assert manager.open("d1", "[ai] - something else") is first
        assert manager.open_ids() == ["d1"]

    def test_empty_document(self, manager):
        session = manager.open("d1", "")
        assert session.document.children == []
        assert manager.baseline("d1") == ""

    def test_unknown_document(self, manager):
        with pytest.raises(DocumentNotOpenError):
            manager.get("missing")
        with pytest.raises(DocumentNotOpenError):
            manager.close("missing")

    def test_close_flushes_and_forgets(self, manager, store, sink):
        manager.open("d1", "[ai] - met shiba")
        _edit_first_item(manager, "d1", "met SHIVA")
        assert manager.close("d1") == ["SHIVA"]
        assert store.saved["d1"] == "[user] - met SHIVA"
        assert not manager.is_open("d1")
        assert manager.baseline("d1") is None

    def test_focus_switch_flushes_previous(self, manager, store):
        manager.open("d1", "[ai] - a")
        manager.open("d2", "[ai] - b")
        manager.focus("d1")
        _edit_first_item(manager, "d1", "a edited")
        manager.focus("d2")
        assert store.saved == {"d1": "[user] - a edited"}
        assert manager.focused_id == "d2"

    def test_refocus_same_document_does_not_flush(self, manager, store):
        manager.open("d1", "[ai] - a")
        manager.focus("d1")
        _edit_first_item(manager, "d1", "a edited")
        manager.focus("d1")
        assert store.writes == []

    def test_shutdown_flushes_everything(self, manager, store):
        manager.open("d1", "[ai] - a")
        manager.open("d2", "[ai] - b")
        _edit_first_item(manager, "d1", "x")
        _edit_first_item(manager, "d2", "y")
        manager.shutdown()
        assert store.saved == {"d1": "[user] - x", "d2": "[user] - y"}
        assert manager.open_ids() == []


class TestDebounce:
    """Quiet-window saving driven by tick()"""

    def test_saves_after_quiet_window(self, manager, store, clock):
        manager.open("d1", "[ai] - met shiba")
        _edit_first_item(manager, "d1", "met SHIVA")
        assert manager.get("d1").state == DocumentState.EDITING

        clock.advance(1.0)
        assert manager.tick() == []
        assert store.writes == []

        clock.advance(0.5)
        assert manager.tick() == ["d1"]
        assert store.saved["d1"] == "[user] - met SHIVA"
        assert manager.get("d1").state == DocumentState.DIFFED
        assert not manager.get("d1").dirty

    def test_each_edit_restarts_the_window(self, manager, store, clock):
        manager.open("d1", "[ai] - a")
        _edit_first_item(manager, "d1", "b")
        clock.advance(1.0)
        _edit_first_item(manager, "d1", "c")
        clock.advance(1.0)
        assert manager.tick() == []
        clock.advance(0.5)
        assert manager.tick() == ["d1"]
        assert store.writes == [("d1", "[user] - c")]

    def test_explicit_now(self, manager, clock):
        manager.open("d1", "[ai] - a")
        _edit_first_item(manager, "d1", "b")
        assert manager.tick(now=clock.now + 1.5) == ["d1"]

    def test_flush_without_edits_is_noop(self, manager, store):
        manager.open("d1", "[ai] - a")
        assert manager.flush("d1") == []
        assert store.writes == []


class TestSuggestions:
    """Baseline diffing after each save"""

    def test_correction_reaches_sink(self, manager, sink, clock):
        manager.open("d1", "[ai] - Met with Klaus about the shiba project", label="Weekly")
        _edit_first_item(manager, "d1", "Met with Klaus about the SHIVA project")
        clock.advance(1.5)
        manager.tick()
        assert sink.calls == [("SHIVA", "Weekly", "d1")]
        assert manager.baseline("d1") == "[user] - Met with Klaus about the SHIVA project"

    def test_default_label(self, manager, sink):
        manager.open("d1", "[ai] - met shiba")
        _edit_first_item(manager, "d1", "met SHIVA")
        manager.flush("d1")
        assert sink.calls == [("SHIVA", "Untitled", "d1")]

    def test_diff_against_latest_baseline(self, manager, sink):
        manager.open("d1", "[ai] - met shiba")
        _edit_first_item(manager, "d1", "met SHIVA")
        assert manager.flush("d1") == ["SHIVA"]
        _edit_first_item(manager, "d1", "met SHIVA")
        assert manager.flush("d1") == []
        assert len(sink.calls) == 1

    def test_addition_is_not_suggested(self, manager, sink):
        manager.open("d1", "[ai] - met Klaus")
        _edit_first_item(manager, "d1", "met Klaus and Priya")
        assert manager.flush("d1") == []
        assert sink.calls == []

    def test_sink_failure_is_swallowed(self, clock, store):
        class BrokenSink:
            def add_suggestion(self, word, source_label, source_id):
                raise IOError("disk full")

        manager = SessionManager(persist=store, sink=BrokenSink(), clock=clock, suggestions_enabled=True)
        manager.open("d1", "[ai] - met shiba")
        _edit_first_item(manager, "d1", "met SHIVA")
        assert manager.flush("d1") == ["SHIVA"]
        assert manager.baseline("d1") == "[user] - met SHIVA"

    def test_disabled(self, clock, store, sink):
        manager = SessionManager(persist=store, sink=sink, clock=clock, suggestions_enabled=False)
        manager.open("d1", "[ai] - met shiba")
        _edit_first_item(manager, "d1", "met SHIVA")
        assert manager.flush("d1") == []
        assert sink.calls == []
        assert manager.baseline("d1") == "[user] - met SHIVA"

    def test_events(self, clock, store, sink):
        events = []
        manager = SessionManager(persist=store, sink=sink, clock=clock,
                                 suggestions_enabled=True, on_event=events.append)
        manager.open("d1", "[ai] - met shiba")
        _edit_first_item(manager, "d1", "met SHIVA")
        manager.flush("d1")
        assert [e["type"] for e in events] == ["suggestions_changed", "document_saved"]
        assert events[0]["words"] == ["SHIVA"]

    def test_event_listener_failure_is_swallowed(self, clock, store):
        def explode(data):
            raise RuntimeError("listener gone")

        manager = SessionManager(persist=store, clock=clock, on_event=explode)
        manager.open("d1", "[ai] - a")
        _edit_first_item(manager, "d1", "b")
        manager.flush("d1")
        assert store.saved["d1"] == "[user] - b"


class TestPersistFailure:
    """A failed write keeps the document dirty and the baseline unchanged"""

    def test_retry_after_failure(self, manager, store, clock):
        manager.open("d1", "[ai] - met shiba")
        _edit_first_item(manager, "d1", "met SHIVA")
        store.fail = True
        clock.advance(1.5)
        assert manager.tick() == ["d1"]

        session = manager.get("d1")
        assert session.dirty
        assert session.state == DocumentState.EDITING
        assert manager.baseline("d1") == "[ai] - met shiba"

        store.fail = False
        clock.advance(1.5)
        manager.tick()
        assert store.saved["d1"] == "[user] - met SHIVA"
        assert manager.baseline("d1") == "[user] - met SHIVA"

    def test_persist_exception_treated_as_failure(self, clock):
        def broken(document_id, text):
            raise OSError("read-only file system")

        manager = SessionManager(persist=broken, clock=clock)
        manager.open("d1", "[ai] - a")
        _edit_first_item(manager, "d1", "b")
        assert manager.flush("d1") == []
        assert manager.get("d1").dirty

    def test_failed_close_keeps_document_open(self, manager, store):
        manager.open("d1", "[ai] - met shiba")
        _edit_first_item(manager, "d1", "met SHIVA")
        store.fail = True
        with pytest.raises(DocumentSaveError):
            manager.close("d1")

        session = manager.get("d1")
        assert session.dirty
        assert manager.baseline("d1") == "[ai] - met shiba"
        assert _first_item(session).paragraph.spans[0].text == "met SHIVA"

        store.fail = False
        assert manager.close("d1") == ["SHIVA"]
        assert store.saved["d1"] == "[user] - met SHIVA"
        assert not manager.is_open("d1")

    def test_shutdown_keeps_unsaved_documents(self, manager, store):
        manager.open("d1", "[ai] - a")
        manager.open("d2", "[ai] - b")
        _edit_first_item(manager, "d1", "a edited")
        store.fail = True
        manager.shutdown()
        assert manager.open_ids() == ["d1"]
        assert manager.get("d1").dirty


class TestProgrammaticReplace:
    """Whole-document replacement from generation"""

    def test_no_promotion_and_new_baseline(self, manager, store, sink):
        manager.open("d1", "[user] - my note")
        text = manager.replace("d1", "[user] - my note\n[ai] - met with SHIVA team")
        session = manager.get("d1")
        assert session.document.children[0].items[1].provenance == Provenance.AI
        assert manager.baseline("d1") == text
        assert store.saved["d1"] == text
        assert not session.dirty
        assert sink.calls == []

    def test_pending_edits_flushed_first(self, manager, store):
        manager.open("d1", "[ai] - a")
        _edit_first_item(manager, "d1", "mine")
        manager.replace("d1", "[ai] - generated")
        assert store.writes == [("d1", "[user] - mine"), ("d1", "[ai] - generated")]

    def test_accepts_tree_dict(self, manager):
        manager.open("d1", "")
        tree = {"type": "doc", "children": [
            {"type": "paragraph", "provenance": "ai", "spans": [{"text": "from editor"}]},
        ]}
        assert manager.replace("d1", tree) == "[ai] from editor"

    def test_failed_save_marks_dirty(self, manager, store):
        manager.open("d1", "")
        store.fail = True
        manager.replace("d1", "[ai] - generated")
        assert manager.get("d1").dirty
        assert manager.baseline("d1") == "[ai] - generated"

    def test_later_user_correction_diffs_against_replacement(self, manager):
        manager.open("d1", "")
        manager.replace("d1", "[ai] - call with shiba team")
        _edit_first_item(manager, "d1", "call with SHIVA team")
        assert manager.flush("d1") == ["SHIVA"]


class TestEditing:
    """Interactive edits, inserts, deletes and undo"""

    def test_edit_promotes_item_and_paragraph(self, manager):
        session = manager.open("d1", "[ai] - a\n  [ai] - nested")
        item = _first_item(session)
        promoted = session.on_interactive_edit(item.paragraph.id, "**b**")
        assert promoted == [item, item.paragraph]
        assert session.serialize() == "[user] - **b**\n  [ai] - nested"

    def test_edit_by_item_id(self, manager):
        session = manager.open("d1", "[ai] 1. a")
        session.on_interactive_edit(_first_item(session).id, "b")
        assert session.serialize() == "[user] 1. b"

    def test_edited_heading_saves_as_user(self, manager, store):
        """An inherited ai heading edited by the user must not re-inherit ai on reload"""
        session = manager.open("d1", "## Plan\n[ai] - item")
        heading = session.document.children[0]
        assert heading.provenance == Provenance.AI
        session.on_interactive_edit(heading.id, "Plan v2")
        manager.flush("d1")
        assert store.saved["d1"] == "[user] ## Plan v2\n[ai] - item"
        reloaded = parse_tagged_text(store.saved["d1"])
        assert reloaded.children[0].provenance == Provenance.USER

    def test_non_interactive_edit_keeps_provenance(self, manager):
        session = manager.open("d1", "[ai] - a")
        session.apply_edit(_first_item(session).id, "b", interactive=False)
        assert session.serialize() == "[ai] - b"
        assert session.dirty

    def test_edit_unknown_node(self, manager):
        session = manager.open("d1", "[ai] - a")
        with pytest.raises(UnknownNodeError):
            session.on_interactive_edit("nope", "x")
        with pytest.raises(UnknownNodeError):
            session.on_interactive_edit(session.document.children[0].id, "x")

    def test_undo_reverts_content_and_promotion(self, manager):
        session = manager.open("d1", "[ai] - a")
        session.on_interactive_edit(_first_item(session).id, "b")
        assert session.undo() is True
        assert session.serialize() == "[ai] - a"
        assert session.dirty
        assert session.undo() is False

    def test_undo_limit(self, clock, store):
        manager = SessionManager(persist=store, clock=clock, undo_limit=2)
        session = manager.open("d1", "[ai] - a")
        for text in ("b", "c", "d"):
            session.on_interactive_edit(_first_item(session).id, text)
        assert session.undo() and session.undo()
        assert not session.undo()
        assert session.serialize() == "[user] - b"

    def test_insert_after_list_item(self, manager):
        session = manager.open("d1", "[ai] - a\n[ai] - b")
        session.on_interactive_insert(_first_item(session).paragraph.id, "new")
        assert session.serialize() == "[ai] - a\n[user] - new\n[ai] - b"
        assert session.dirty

    def test_insert_after_block(self, manager):
        session = manager.open("d1", "[ai] intro\n[ai] - a")
        session.on_interactive_insert(session.document.children[0].id, "added")
        assert session.serialize() == "[ai] intro\n[user] added\n[ai] - a"

    def test_insert_after_list_adds_paragraph(self, manager):
        session = manager.open("d1", "[ai] - a\n[ai] tail")
        session.on_interactive_insert(session.document.children[0].id, "between")
        assert session.serialize() == "[ai] - a\n[user] between\n[ai] tail"

    def test_delete_prunes_empty_lists(self, manager):
        session = manager.open("d1", "[ai] - a\n  [ai] - b\n[ai] tail")
        nested = _first_item(session).children[1].items[0]
        session.on_interactive_delete(nested.id)
        assert session.serialize() == "[ai] - a\n[ai] tail"
        session.on_interactive_delete(_first_item(session).paragraph.id)
        assert session.serialize() == "[ai] tail"

    def test_delete_picks_the_right_twin(self, manager):
        session = manager.open("d1", "[ai] - same\n[ai] - same\n[ai] - other")
        items = session.document.children[0].items
        second = items[1]
        session.on_interactive_delete(second.id)
        assert all(item is not second for item in items)
        assert len(items) == 2

    def test_busy_guard(self, manager):
        session = manager.open("d1", "[ai] - a")
        with session._exclusive("parse"):
            with pytest.raises(SessionBusyError):
                session.serialize()
        assert session.serialize() == "[ai] - a"
