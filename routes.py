"""
Flask routes for the provenance notes API.
"""

import json
import queue
import logging
from dataclasses import asdict
from functools import wraps

from flask import Blueprint, Response, current_app, request, jsonify, stream_with_context

from config import log_event, slugify_document_id, gemini_model
from services.notes_store import read_notes_file
from services.tagged_text import strip_provenance_tags
from services.document_tree import document_to_dict, node_to_dict
from services.session import DocumentNotOpenError, UnknownNodeError, SessionBusyError, DocumentSaveError
from services.ai import generate_tagged_notes

# Create blueprint
api = Blueprint('api', __name__)


def _sessions():
    return current_app.config["SESSIONS"]


def _vocabulary():
    return current_app.config["VOCABULARY"]


def _events():
    return current_app.config["EVENTS"]


def exclusive(view):
    """Run a view as the single owner of session state."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        with current_app.config["SESSION_LOCK"]:
            return view(*args, **kwargs)
    return wrapper


def _document_payload(document_id: str) -> dict:
    session = _sessions().get(document_id)
    return {
        "document_id": document_id,
        "label": session.label,
        "state": session.state.value,
        "dirty": session.dirty,
        "tree": document_to_dict(session.document),
        "tagged_text": session.serialize(),
    }


@api.before_app_request
def flush_due_documents():
    """Cooperative debounce driver: save whatever has been quiet long enough."""
    with current_app.config["SESSION_LOCK"]:
        _sessions().tick()


@api.errorhandler(DocumentNotOpenError)
def document_not_open(e):
    return jsonify({"error": "Document not open", "document_id": e.args[0]}), 404


@api.errorhandler(UnknownNodeError)
def unknown_node(e):
    return jsonify({"error": "Unknown node", "node_id": e.args[0]}), 404


@api.errorhandler(SessionBusyError)
def session_busy(e):
    return jsonify({"error": str(e)}), 409


@api.errorhandler(DocumentSaveError)
def document_save_failed(e):
    return jsonify({"error": "Document could not be saved; still open", "document_id": e.args[0]}), 503


def heartbeat(sessions, lock) -> dict:
    """Drive the debounce while no requests arrive; returns the heartbeat event."""
    with lock:
        flushed = sessions.tick()
    return {"type": "heartbeat", "flushed": flushed}


@api.route('/health')
def health():
    """Health check endpoint."""
    return jsonify({
        "status": "ok",
        "gemini_available": gemini_model is not None,
        "open_documents": _sessions().open_ids(),
    })


# --- DOCUMENTS ---

@api.route('/api/documents/<document_id>/open', methods=['POST'])
@exclusive
def open_document(document_id):
    """Load the stored revision of a document and make it the active one."""
    data = request.get_json(silent=True) or {}
    sessions = _sessions()
    content = read_notes_file(document_id, current_app.config["NOTES_DIR"])
    sessions.open(document_id, content, label=data.get("label"))
    suggestions = sessions.focus(document_id)
    payload = _document_payload(document_id)
    payload["suggestions"] = suggestions
    return jsonify(payload)


@api.route('/api/documents/<document_id>', methods=['GET'])
@exclusive
def get_document(document_id):
    return jsonify(_document_payload(document_id))


@api.route('/api/documents/<document_id>', methods=['PUT'])
@exclusive
def replace_document(document_id):
    """Programmatic whole-document replacement (tagged text or tree JSON)."""
    data = request.get_json(silent=True) or {}
    if "tagged_text" in data:
        tree = data["tagged_text"]
    elif "tree" in data:
        tree = data["tree"]
    else:
        return jsonify({"error": "tagged_text or tree required"}), 400
    _sessions().replace(document_id, tree)
    return jsonify(_document_payload(document_id))


@api.route('/api/documents/<document_id>/generate', methods=['POST'])
@exclusive
def generate_document(document_id):
    """Regenerate the document from a transcript via the AI pipeline."""
    data = request.get_json(silent=True) or {}
    transcript = (data.get('transcript') or '').strip()
    if not transcript:
        return jsonify({"error": "No transcript provided"}), 400
    sessions = _sessions()
    sessions.get(document_id)
    log_event(logging.INFO, "api_generate_notes", document=document_id, chars=len(transcript))
    tagged = generate_tagged_notes(transcript, data.get('user_notes'))
    sessions.replace(document_id, tagged)
    return jsonify(_document_payload(document_id))


@api.route('/api/documents/<document_id>/edit', methods=['POST'])
@exclusive
def edit_node(document_id):
    data = request.get_json(silent=True) or {}
    node_id = data.get('node_id')
    if not node_id or 'content' not in data:
        return jsonify({"error": "node_id and content required"}), 400
    session = _sessions().get(document_id)
    promoted = session.apply_edit(node_id, data['content'], interactive=data.get('interactive', True))
    return jsonify({
        "status": "ok",
        "promoted": [n.id for n in promoted],
        "state": session.state.value,
    })


@api.route('/api/documents/<document_id>/insert', methods=['POST'])
@exclusive
def insert_node(document_id):
    data = request.get_json(silent=True) or {}
    after = data.get('after_node_id')
    if not after:
        return jsonify({"error": "after_node_id required"}), 400
    session = _sessions().get(document_id)
    node = session.on_interactive_insert(after, data.get('content', ''))
    return jsonify({"status": "ok", "node": node_to_dict(node)})


@api.route('/api/documents/<document_id>/delete', methods=['POST'])
@exclusive
def delete_node(document_id):
    data = request.get_json(silent=True) or {}
    node_id = data.get('node_id')
    if not node_id:
        return jsonify({"error": "node_id required"}), 400
    _sessions().get(document_id).on_interactive_delete(node_id)
    return jsonify({"status": "ok"})


@api.route('/api/documents/<document_id>/undo', methods=['POST'])
@exclusive
def undo(document_id):
    undone = _sessions().get(document_id).undo()
    return jsonify({"status": "ok" if undone else "nothing_to_undo"})


@api.route('/api/documents/<document_id>/flush', methods=['POST'])
@exclusive
def flush_document(document_id):
    suggestions = _sessions().flush(document_id)
    return jsonify({"status": "saved", "suggestions": suggestions})


@api.route('/api/documents/<document_id>/close', methods=['POST'])
@exclusive
def close_document(document_id):
    suggestions = _sessions().close(document_id)
    return jsonify({"status": "closed", "suggestions": suggestions})


@api.route('/api/documents/<document_id>/export')
@exclusive
def export_document(document_id):
    """Download the saved notes as plain markdown (provenance tags removed)."""
    sessions = _sessions()
    if sessions.is_open(document_id):
        sessions.flush(document_id)
    content = read_notes_file(document_id, current_app.config["NOTES_DIR"])
    slug = slugify_document_id(document_id)
    return Response(
        strip_provenance_tags(content),
        mimetype="text/markdown",
        headers={"Content-Disposition": f"attachment; filename={slug}.md"}
    )


# --- VOCABULARY ---

@api.route('/api/suggestions', methods=['GET'])
@exclusive
def get_suggestions():
    vocabulary = _vocabulary()
    return jsonify({
        "suggestions": [asdict(s) for s in vocabulary.suggestions()],
        "custom_words": vocabulary.custom_words(),
    })


@api.route('/api/suggestions/<word>/approve', methods=['POST'])
@exclusive
def approve_suggestion(word):
    if not _vocabulary().approve(word):
        return jsonify({"error": "Failed to save vocabulary"}), 500
    _events().broadcast({"type": "suggestions_changed"})
    return jsonify({"status": "approved", "word": word})


@api.route('/api/suggestions/<word>/dismiss', methods=['POST'])
@exclusive
def dismiss_suggestion(word):
    if not _vocabulary().dismiss(word):
        return jsonify({"error": "Failed to save vocabulary"}), 500
    _events().broadcast({"type": "suggestions_changed"})
    return jsonify({"status": "dismissed", "word": word})


# --- STREAM ---

@api.route('/api/stream')
def stream():
    """SSE endpoint for save and suggestion notifications."""
    events = _events()
    sessions = _sessions()
    lock = current_app.config["SESSION_LOCK"]
    client_queue = events.connect()

    def event_stream():
        yield f"data: {json.dumps({'type': 'init', 'open_documents': sessions.open_ids()})}\n\n"
        try:
            while True:
                try:
                    data = client_queue.get(timeout=1.0)
                    yield f"data: {json.dumps(data)}\n\n"
                except queue.Empty:
                    yield f"data: {json.dumps(heartbeat(sessions, lock))}\n\n"
        except GeneratorExit:
            pass
        finally:
            events.disconnect(client_queue)

    return Response(
        stream_with_context(event_stream()),
        mimetype="text/event-stream",
        headers={
            'Cache-Control': 'no-cache',
            'Connection': 'keep-alive',
            'X-Accel-Buffering': 'no'
        }
    )
