"""
Revision alignment: which lines of a saved revision survived, and which
changed lines are edits of an older line rather than insertions/deletions.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Set, Tuple

from config import OVERLAP_THRESHOLD
from services.tagged_text import strip_provenance_tag

WORD_PATTERN = re.compile(r"[A-Za-z](?:[A-Za-z0-9'-]*[A-Za-z0-9])?")


def extract_words(text: str) -> List[str]:
    """Words start with a letter; hyphens and apostrophes only inside a word."""
    return WORD_PATTERN.findall(strip_provenance_tag(text or ""))


def word_set(text: str) -> Set[str]:
    return {w.lower() for w in extract_words(text)}


def word_overlap_score(line1: str, line2: str) -> float:
    """Jaccard similarity of the two lines' lowercase word sets (0-1)."""
    set1 = word_set(line1)
    set2 = word_set(line2)
    if not set1 or not set2:
        return 0.0
    intersection = len(set1 & set2)
    union = len(set1 | set2)
    return intersection / union if union else 0.0


# --- LCS ---

def compute_lcs(old_lines: Sequence[str], new_lines: Sequence[str]) -> List[Tuple[int, int]]:
    """Index pairs (old, new) of a longest common subsequence of lines."""
    m, n = len(old_lines), len(new_lines)
    dp = [[0] * (n + 1) for _ in range(m + 1)]
    for i in range(1, m + 1):
        old = old_lines[i - 1]
        row, prev = dp[i], dp[i - 1]
        for j in range(1, n + 1):
            if old == new_lines[j - 1]:
                row[j] = prev[j - 1] + 1
            else:
                row[j] = max(prev[j], row[j - 1])

    pairs = []
    i, j = m, n
    while i > 0 and j > 0:
        if old_lines[i - 1] == new_lines[j - 1]:
            pairs.append((i - 1, j - 1))
            i -= 1
            j -= 1
        elif dp[i - 1][j] > dp[i][j - 1]:
            i -= 1
        else:
            j -= 1
    pairs.reverse()
    return pairs


@dataclass
class IndexedLine:
    index: int
    line: str


@dataclass
class Alignment:
    matches: List[Tuple[int, int]] = field(default_factory=list)
    unmatched_old: List[IndexedLine] = field(default_factory=list)
    unmatched_new: List[IndexedLine] = field(default_factory=list)


def align_revisions(old_lines: Sequence[str], new_lines: Sequence[str]) -> Alignment:
    matches = compute_lcs(old_lines, new_lines)
    matched_old = {i for i, _ in matches}
    matched_new = {j for _, j in matches}
    return Alignment(
        matches=matches,
        unmatched_old=[IndexedLine(i, l) for i, l in enumerate(old_lines) if i not in matched_old],
        unmatched_new=[IndexedLine(j, l) for j, l in enumerate(new_lines) if j not in matched_new],
    )


# --- PAIRING STRATEGIES ---

@dataclass
class ModifiedPair:
    old_index: int
    new_index: int
    old_line: str
    new_line: str
    score: float


class GreedyPairing:
    """
    Walk new lines in order; each takes the best-scoring unused old line above
    the threshold. First-encountered wins ties. Not globally optimal.
    """

    def __init__(self, threshold: float = OVERLAP_THRESHOLD):
        self.threshold = threshold

    def __call__(self, unmatched_old: List[IndexedLine], unmatched_new: List[IndexedLine]) -> List[ModifiedPair]:
        pairs = []
        used = set()
        for new_item in unmatched_new:
            best: Optional[ModifiedPair] = None
            for old_item in unmatched_old:
                if old_item.index in used:
                    continue
                score = word_overlap_score(old_item.line, new_item.line)
                if score > self.threshold and (best is None or score > best.score):
                    best = ModifiedPair(old_item.index, new_item.index, old_item.line, new_item.line, score)
            if best:
                pairs.append(best)
                used.add(best.old_index)
        return pairs


class ScoreOrderedPairing(GreedyPairing):
    """
    Global best-first: score every candidate pair, accept highest first. Does
    not depend on the order of new lines. Output is in new-line order.
    """

    def __call__(self, unmatched_old: List[IndexedLine], unmatched_new: List[IndexedLine]) -> List[ModifiedPair]:
        candidates = []
        for new_rank, new_item in enumerate(unmatched_new):
            for old_rank, old_item in enumerate(unmatched_old):
                score = word_overlap_score(old_item.line, new_item.line)
                if score > self.threshold:
                    candidates.append((-score, new_rank, old_rank, old_item, new_item))
        candidates.sort(key=lambda c: c[:3])

        used_old, used_new, pairs = set(), set(), []
        for neg_score, _, _, old_item, new_item in candidates:
            if old_item.index in used_old or new_item.index in used_new:
                continue
            used_old.add(old_item.index)
            used_new.add(new_item.index)
            pairs.append(ModifiedPair(old_item.index, new_item.index, old_item.line, new_item.line, -neg_score))
        pairs.sort(key=lambda p: p.new_index)
        return pairs


def find_modified_pairs(old_lines: Sequence[str], new_lines: Sequence[str], strategy=None) -> List[ModifiedPair]:
    """Old/new line pairs that look like edits of the same line."""
    alignment = align_revisions(old_lines, new_lines)
    if not alignment.unmatched_old or not alignment.unmatched_new:
        return []
    strategy = strategy or GreedyPairing()
    return strategy(alignment.unmatched_old, alignment.unmatched_new)
