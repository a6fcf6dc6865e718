"""Similarity primitives used by both duplicate detectors."""

import pytest

from leasy.duplicates.similarity import (
    normalize_title, normalize_text, levenshtein_distance, similarity_ratio,
    haversine_distance, token_jaccard, tolerance_score, within_percent
)


def test_normalize_title_drops_punctuation():
    assert normalize_title('  Sunny Flat, Mitte! ') == 'sunny flat mitte'
    assert normalize_title(None) == ''


def test_normalize_text_collapses_whitespace():
    assert normalize_text('Main-Street   12,\tBerlin') == 'main street 12 berlin'


def test_levenshtein_distance():
    assert levenshtein_distance('kitten', 'sitting') == 3
    assert levenshtein_distance('', 'abc') == 3
    assert levenshtein_distance('same', 'same') == 0


def test_levenshtein_distance_with_substitution_cost():
    """A substitution counts as delete plus insert"""
    assert levenshtein_distance('abc', 'abd', substitution_cost=2) == 2


def test_similarity_ratio_edges():
    assert similarity_ratio('flat', 'flat') == 100
    assert similarity_ratio('', '') == 100
    assert similarity_ratio('flat', '') == 0
    assert similarity_ratio(None, 'flat') == 0


def test_similarity_ratio_partial():
    score = similarity_ratio('apartment', 'apartments')
    assert 90 < score < 100


def test_haversine_berlin_munich():
    distance = haversine_distance(52.5200, 13.4050, 48.1351, 11.5820)
    assert 500000 < distance < 600000


def test_haversine_same_point():
    assert haversine_distance(52.52, 13.405, 52.52, 13.405) == 0


def test_token_jaccard():
    assert token_jaccard('Sunny flat Mitte', 'sunny FLAT mitte') == 100
    assert token_jaccard('sunny flat', 'sunny house') == pytest.approx(100 / 3)
    assert token_jaccard('', 'anything') == 0


def test_tolerance_score():
    assert tolerance_score(1000, 1020, 5) == 100
    assert tolerance_score(1000, 1200, 5) == pytest.approx(100 - 200 / 600 * 100)
    assert tolerance_score(1000, 3000, 5) == 0
    assert tolerance_score(None, 1000, 5) == 0
    assert tolerance_score(0, 1000, 5) == 0


def test_within_percent():
    assert within_percent(100, 104, 5)
    assert not within_percent(100, 110, 5)
    assert not within_percent(None, 100, 5)
