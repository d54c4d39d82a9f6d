"""
Tests for line alignment and modified-pair extraction
"""

from services.revision_diff import (
    extract_words,
    word_overlap_score,
    compute_lcs,
    align_revisions,
    find_modified_pairs,
    GreedyPairing,
    ScoreOrderedPairing,
    IndexedLine,
)


class TestWords:
    """Tokenizing and overlap"""

    def test_extract_words(self):
        assert extract_words("[ai] - don't re-run 'quoted' end-") == ["don't", "re-run", "quoted", "end"]

    def test_bold_tag_not_a_word(self):
        assert extract_words("**[user]** hello") == ["hello"]

    def test_overlap_is_jaccard(self):
        assert word_overlap_score("a b c", "A B d") == 0.5

    def test_overlap_empty(self):
        assert word_overlap_score("", "words") == 0.0
        assert word_overlap_score("- 1.", "- 2.") == 0.0


class TestLCS:
    """Longest common subsequence of lines"""

    def test_single_substitution(self):
        assert compute_lcs(["a", "b", "c"], ["a", "x", "c"]) == [(0, 0), (2, 2)]

    def test_alignment_unmatched(self):
        alignment = align_revisions(["a", "b", "c"], ["a", "x", "c"])
        assert alignment.unmatched_old == [IndexedLine(1, "b")]
        assert alignment.unmatched_new == [IndexedLine(1, "x")]

    def test_empty_inputs(self):
        assert compute_lcs([], []) == []
        assert compute_lcs(["a"], []) == []
        assert compute_lcs([], ["a"]) == []

    def test_identical(self):
        lines = ["one", "two", "three"]
        assert compute_lcs(lines, lines) == [(0, 0), (1, 1), (2, 2)]

    def test_insertions_and_deletions(self):
        assert compute_lcs(["a", "b", "c", "d"], ["b", "d", "e"]) == [(1, 0), (3, 1)]

    def test_matches_strictly_increasing(self):
        pairs = compute_lcs(["x", "a", "x", "b", "x"], ["a", "x", "x", "b"])
        assert len(pairs) == 3
        assert all(p[0] < q[0] and p[1] < q[1] for p, q in zip(pairs, pairs[1:]))


class TestModifiedPairs:
    """Pairing unmatched lines by word overlap"""

    def test_edited_line_paired(self):
        old = ["# Notes", "[ai] - met Klaus about shiba", "[ai] - end"]
        new = ["# Notes", "[ai] - met Klaus about SHIVA", "[ai] - end"]
        pairs = find_modified_pairs(old, new)
        assert [(p.old_index, p.new_index) for p in pairs] == [(1, 1)]
        assert pairs[0].score == 0.6

    def test_nothing_unmatched(self):
        assert find_modified_pairs(["a", "b"], ["a", "b"]) == []
        assert find_modified_pairs([], ["new line"]) == []
        assert find_modified_pairs(["old line"], []) == []

    def test_threshold_is_strict(self):
        old = ["one two three four five six seven"]
        new = ["one two three eight nine ten"]
        assert word_overlap_score(old[0], new[0]) == 0.3
        assert find_modified_pairs(old, new) == []

    def test_unrelated_lines_not_paired(self):
        assert find_modified_pairs(["buy milk"], ["call the bank"]) == []

    def test_old_line_used_once(self):
        old = ["alpha beta gamma"]
        new = ["alpha beta gamma delta", "alpha beta gamma epsilon"]
        pairs = find_modified_pairs(old, new)
        assert [(p.old_index, p.new_index) for p in pairs] == [(0, 0)]

    def test_first_encountered_wins_ties(self):
        old = ["alpha beta", "alpha beta"]
        new = ["alpha beta gamma"]
        pairs = find_modified_pairs(old, new)
        assert [(p.old_index, p.new_index) for p in pairs] == [(0, 0)]


class TestPairingStrategies:
    """Greedy in new-line order versus global best-first"""

    OLD = ["red blue green pink", "red blue"]
    NEW = ["red blue green", "red blue green pink teal"]

    def test_greedy(self):
        pairs = find_modified_pairs(self.OLD, self.NEW, GreedyPairing())
        assert [(p.old_index, p.new_index) for p in pairs] == [(0, 0), (1, 1)]

    def test_score_ordered(self):
        pairs = find_modified_pairs(self.OLD, self.NEW, ScoreOrderedPairing())
        assert [(p.old_index, p.new_index) for p in pairs] == [(1, 0), (0, 1)]
        assert pairs[1].score == 0.8

    def test_custom_threshold(self):
        pairs = find_modified_pairs(["a b c d"], ["a e f g"], GreedyPairing(threshold=0.1))
        assert len(pairs) == 1
