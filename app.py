"""
Provenance Notes - attributed meeting notes service.
Keeps AI-written and user-written lines apart across edits, and learns
vocabulary from the corrections users make to AI notes.
"""

import os
import atexit
import signal
import logging
import threading
from functools import partial
from pathlib import Path

from flask import Flask
from flask_cors import CORS

from config import (
    log_event,
    NOTES_DIR,
    VOCABULARY_PATH,
    SAVE_DEBOUNCE_SECONDS,
    WORD_SUGGESTIONS_ENABLED,
    gemini_model,
)
from routes import api
from services.events import EventBroadcaster
from services.notes_store import write_notes_file
from services.session import SessionManager
from services.vocabulary import VocabularyStore


def make_termination_handler(sessions: SessionManager, lock):
    """SIGTERM handler: flush every open document, then exit."""
    def handle(signum, frame):
        log_event(logging.INFO, "shutdown_signal", signal=signum, open_documents=len(sessions.open_ids()))
        with lock:
            sessions.shutdown()
        raise SystemExit(0)
    return handle


def register_shutdown_flush(sessions: SessionManager, lock):
    """Pending edits must reach disk on normal exit and on SIGTERM."""
    atexit.register(sessions.shutdown)
    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGTERM, make_termination_handler(sessions, lock))
    else:
        log_event(logging.WARNING, "sigterm_handler_skipped", reason="not main thread")


def create_app(notes_dir: Path = None, vocabulary_path: Path = None, sessions: SessionManager = None,
               register_exit_flush: bool = True) -> Flask:
    """Build the Flask app with its session manager, vocabulary store and event fan-out."""
    app = Flask(__name__)
    CORS(app)

    notes_dir = Path(notes_dir or NOTES_DIR)
    events = EventBroadcaster()
    vocabulary = VocabularyStore(vocabulary_path or VOCABULARY_PATH)
    if sessions is None:
        sessions = SessionManager(
            persist=partial(write_notes_file, root=notes_dir),
            sink=vocabulary,
            debounce_seconds=SAVE_DEBOUNCE_SECONDS,
            suggestions_enabled=WORD_SUGGESTIONS_ENABLED,
            on_event=events.broadcast,
        )

    lock = threading.Lock()
    app.config.update(
        NOTES_DIR=notes_dir,
        SESSIONS=sessions,
        VOCABULARY=vocabulary,
        EVENTS=events,
        SESSION_LOCK=lock,
    )
    app.register_blueprint(api)

    if register_exit_flush:
        register_shutdown_flush(sessions, lock)
    return app


if __name__ == '__main__':
    port = int(os.getenv("PORT", 5050))
    app = create_app()
    log_event(
        logging.INFO,
        "server_startup",
        gemini_ready=bool(gemini_model),
        notes_dir=str(NOTES_DIR),
        debounce=SAVE_DEBOUNCE_SECONDS,
        port=port,
    )
    app.run(debug=False, port=port, threaded=True)
