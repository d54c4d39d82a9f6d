"""
Vocabulary correction detection.

When a saved revision replaces a word in a line with a capitalized word
("shiba" -> "SHIVA"), the new word is probably a proper noun the transcriber
misheard and is worth suggesting as a custom vocabulary word. Pure additions
are never suggestions.
"""

import logging
from typing import FrozenSet, List, Optional

from config import (
    log_event,
    MIN_CORRECTION_LENGTH,
    MAX_CORRECTION_LENGTH,
    MAX_SUGGESTIONS_PER_PAIR,
    MAX_SUGGESTIONS_PER_REVISION,
)
from services.revision_diff import extract_words, find_modified_pairs

STOP_WORDS: FrozenSet[str] = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "from", "is", "are", "was", "were", "be", "been", "have",
    "has", "had", "do", "does", "did", "will", "would", "could", "should",
    "may", "might", "must", "can", "this", "that", "these", "those", "it",
    "its", "we", "our", "you", "your", "they", "their", "he", "his", "she",
    "her", "not", "all", "some", "any", "no", "yes", "so", "if", "then",
})


class CorrectionDetector:
    """Heuristics are attributes so callers can tune them per instance."""

    def __init__(
        self,
        stop_words: FrozenSet[str] = STOP_WORDS,
        min_length: int = MIN_CORRECTION_LENGTH,
        max_length: int = MAX_CORRECTION_LENGTH,
        per_pair_limit: int = MAX_SUGGESTIONS_PER_PAIR,
        per_revision_limit: int = MAX_SUGGESTIONS_PER_REVISION,
        require_capitalized: bool = True,
        pairing_strategy=None,
    ):
        self.stop_words = stop_words
        self.min_length = min_length
        self.max_length = max_length
        self.per_pair_limit = per_pair_limit
        self.per_revision_limit = per_revision_limit
        self.require_capitalized = require_capitalized
        self.pairing_strategy = pairing_strategy

    def is_candidate(self, word: str) -> bool:
        if word.lower() in self.stop_words:
            return False
        if len(word) < self.min_length or len(word) > self.max_length:
            return False
        if self.require_capitalized:
            return word[0].isupper()
        return True

    def corrections_in_pair(self, old_line: str, new_line: str) -> List[str]:
        """Added words of one modified line that look like corrections."""
        old_words = extract_words(old_line)
        new_words = extract_words(new_line)
        old_set = {w.lower() for w in old_words}
        new_set = {w.lower() for w in new_words}

        if not any(w.lower() not in new_set for w in old_words):
            return []

        found, seen = [], set()
        for word in new_words:
            lower = word.lower()
            if lower in old_set or lower in seen:
                continue
            if self.is_candidate(word):
                seen.add(lower)
                found.append(word)
                if len(found) >= self.per_pair_limit:
                    break
        return found

    def detect(self, old_text: Optional[str], new_text: str) -> List[str]:
        """Correction words between two revisions, first-seen order, capped."""
        if not old_text or new_text is None:
            return []

        pairs = find_modified_pairs(old_text.split("\n"), new_text.split("\n"), self.pairing_strategy)
        corrections, seen = [], set()
        for pair in pairs:
            for word in self.corrections_in_pair(pair.old_line, pair.new_line):
                lower = word.lower()
                if lower in seen:
                    continue
                seen.add(lower)
                corrections.append(word)
                if len(corrections) >= self.per_revision_limit:
                    log_event(logging.DEBUG, "corrections_capped", pairs=len(pairs), limit=self.per_revision_limit)
                    return corrections

        log_event(logging.DEBUG, "corrections_detected", pairs=len(pairs), words=len(corrections))
        return corrections


def detect_corrections(old_text: Optional[str], new_text: str) -> List[str]:
    return CorrectionDetector().detect(old_text, new_text)
