"""Tests for document de-duplication helpers."""

from libs.utils.dedupe import dedupe_exact, jaccard, near_duplicate_groups, word_trigrams


def test_dedupe_exact_keeps_first_occurrence():
    items = [("a", 1), ("b", 2), ("a", 3)]

    assert dedupe_exact(items, key=lambda item: item[0]) == [("a", 1), ("b", 2)]


def test_near_duplicate_groups():
    texts = [
        "Athletes may appeal a selection decision within 48 hours of notice",
        "Athletes may appeal a selection decision within 48 hours of notice.",
        "Whereabouts failures are handled by USADA",
    ]

    assert near_duplicate_groups(texts) == [[0, 1], [2]]


def test_near_duplicate_threshold():
    texts = ["one two three four", "one two three five"]

    assert near_duplicate_groups(texts, threshold=0.3) == [[0, 1]]
    assert near_duplicate_groups(texts, threshold=0.9) == [[0], [1]]


def test_trigrams_and_jaccard():
    assert word_trigrams("Hi there") == {("hi", "there")}
    assert word_trigrams("") == set()
    assert jaccard(set(), set()) == 1.0
    assert jaccard({1, 2}, {2, 3}) == 1 / 3
