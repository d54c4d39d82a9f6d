"""
Custom vocabulary store: approved words, dismissed words, and pending
suggestions produced by correction detection.
"""

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Dict, List

from config import log_event
from models import CorrectionSuggestion


class VocabularyStore:
    """JSON-file backed suggestion sink. Adding is idempotent."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> Dict:
        data = {"custom_words": [], "dismissed": [], "suggestions": []}
        if not self.path.exists():
            return data
        try:
            stored = json.loads(self.path.read_text(encoding='utf-8'))
        except (OSError, ValueError) as e:
            log_event(logging.ERROR, "vocabulary_read_failed", path=str(self.path), error=str(e))
            return data
        if not isinstance(stored, dict):
            return data
        for key in data:
            if isinstance(stored.get(key), list):
                data[key] = stored[key]
        return data

    def _save(self, data: Dict) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2), encoding='utf-8')
            return True
        except OSError as e:
            log_event(logging.ERROR, "vocabulary_write_failed", path=str(self.path), error=str(e))
            return False

    def add_suggestion(self, word: str, source_label: str, source_id: str) -> bool:
        """Record a suggestion. Returns False when it was already known."""
        data = self._load()
        if (
            word in data["custom_words"]
            or word in data["dismissed"]
            or any(s.get("word") == word for s in data["suggestions"])
        ):
            log_event(logging.DEBUG, "suggestion_skipped", word=word)
            return False

        suggestion = CorrectionSuggestion(word=word, source_label=source_label, source_id=source_id)
        data["suggestions"].append(asdict(suggestion))
        saved = self._save(data)
        if saved:
            log_event(logging.INFO, "suggestion_added", word=word, source=source_id)
        return saved

    def suggestions(self) -> List[CorrectionSuggestion]:
        return [
            CorrectionSuggestion(
                word=s.get("word", ""),
                source_label=s.get("source_label", ""),
                source_id=s.get("source_id", ""),
            )
            for s in self._load()["suggestions"]
            if s.get("word")
        ]

    def custom_words(self) -> List[str]:
        return list(self._load()["custom_words"])

    def approve(self, word: str) -> bool:
        """Move a word into the custom vocabulary."""
        data = self._load()
        if word not in data["custom_words"]:
            data["custom_words"].append(word)
        data["suggestions"] = [s for s in data["suggestions"] if s.get("word") != word]
        log_event(logging.INFO, "suggestion_approved", word=word)
        return self._save(data)

    def dismiss(self, word: str) -> bool:
        """Drop a suggestion and never offer the word again."""
        data = self._load()
        if word not in data["dismissed"]:
            data["dismissed"].append(word)
        data["suggestions"] = [s for s in data["suggestions"] if s.get("word") != word]
        log_event(logging.INFO, "suggestion_dismissed", word=word)
        return self._save(data)
