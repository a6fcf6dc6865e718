"""
String, numeric and geographic similarity primitives used by duplicate detection.

All scores are on a 0-100 scale.
"""
import math
import re
from typing import Optional

from rapidfuzz import fuzz
from rapidfuzz.distance import Levenshtein

EARTH_RADIUS_METERS = 6371e3

_NON_WORD = re.compile(r'[^\w\s]')
_WHITESPACE = re.compile(r'\s+')


def normalize_title(text: Optional[str]) -> str:
    """Lowercase, drop punctuation, trim"""
    if not text:
        return ''
    return _NON_WORD.sub('', text.lower()).strip()


def normalize_text(text: Optional[str]) -> str:
    """Lowercase, replace punctuation with spaces, collapse whitespace"""
    if not text:
        return ''
    return _WHITESPACE.sub(' ', _NON_WORD.sub(' ', text.lower())).strip()


def levenshtein_distance(first: str, second: str, substitution_cost: int = 1) -> int:
    """Edit distance between two strings.

    With ``substitution_cost=2`` this is the insert/delete distance that
    :func:`similarity_ratio` is built on.
    """
    return Levenshtein.distance(first or '', second or '', weights=(1, 1, substitution_cost))


def similarity_ratio(first: Optional[str], second: Optional[str]) -> float:
    """Fuzzy ratio of two strings, 0-100"""
    first = first or ''
    second = second or ''
    if first == second:
        return 100.0
    if not first or not second:
        return 0.0
    return fuzz.ratio(first, second)


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in metres"""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (math.sin(d_phi / 2) ** 2
         + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def token_jaccard(first: Optional[str], second: Optional[str]) -> float:
    """Word overlap (intersection over union), 0-100"""
    if not first or not second:
        return 0.0
    tokens_a = set(normalize_title(first).split())
    tokens_b = set(normalize_title(second).split())
    union = tokens_a | tokens_b
    if not union:
        return 0.0
    return len(tokens_a & tokens_b) / len(union) * 100


def tolerance_score(first: Optional[float], second: Optional[float], tolerance_percent: float) -> float:
    """100 inside the tolerance band, then linear decay to 0 at a 50% difference"""
    if not first or not second:
        return 0.0
    largest = max(first, second)
    difference = abs(first - second)
    if difference <= (tolerance_percent / 100) * largest:
        return 100.0
    max_difference = largest * 0.5
    return max(0.0, 100 - (difference / max_difference) * 100)


def within_percent(first: Optional[float], second: Optional[float], percent: float) -> bool:
    """Both values present and within ``percent`` of the larger one"""
    if not first or not second:
        return False
    return abs(first - second) <= max(first, second) * (percent / 100)
