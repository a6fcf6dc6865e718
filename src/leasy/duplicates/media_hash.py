"""
Perceptual image hashing for listing photos.

Difference hash (dHash): the image is reduced to a 16x16 greyscale grid and
each pixel is compared with its right-hand neighbour, giving a 240 bit
string. Near-identical photos differ in only a few bits.
"""
import io
import logging
from contextlib import nullcontext
from typing import Iterable, List, Optional, Sequence, Union

import requests
from PIL import Image

from ..config import settings
from ..database import db, PropertyMediaHash
from ..services.error_logging import CircuitBreaker, CircuitOpenError, retry_with_backoff

LOGGER = logging.getLogger(__name__)

HASH_SIZE = 16

image_fetch_breaker = CircuitBreaker(
    'image-fetch',
    failure_threshold=settings.MEDIA_HASH_BREAKER_THRESHOLD,
    reset_timeout=settings.MEDIA_HASH_BREAKER_RESET,
)


class MediaHashError(OSError):
    """Photos could not be downloaded or decoded for hashing"""


def difference_hash(image: Union[Image.Image, bytes], hash_size: int = HASH_SIZE) -> str:
    """Bit string dHash of an image"""
    if isinstance(image, bytes):
        image = Image.open(io.BytesIO(image))

    grey = image.convert('L').resize((hash_size, hash_size), Image.LANCZOS)
    pixels = list(grey.getdata())

    bits = []
    for row in range(hash_size):
        offset = row * hash_size
        for col in range(hash_size - 1):
            bits.append('1' if pixels[offset + col] > pixels[offset + col + 1] else '0')
    return ''.join(bits)


def hamming_distance(hash1: str, hash2: str) -> float:
    """Differing bits; infinite when the hashes have different lengths"""
    if len(hash1) != len(hash2):
        return float('inf')
    return sum(1 for a, b in zip(hash1, hash2) if a != b)


def _cached_hash(url: str, property_id: Optional[int]) -> Optional[str]:
    query = PropertyMediaHash.query.filter_by(media_url=url)
    if property_id is not None:
        query = query.filter_by(property_id=property_id)
    entry = query.first()
    return entry.hash_value if entry else None


def _download(http, url: str) -> bytes:
    response = http.get(url, timeout=settings.MEDIA_HASH_TIMEOUT)
    response.raise_for_status()
    return response.content


def hash_image_url(
    url: str,
    session: Optional[requests.Session] = None,
    property_id: Optional[int] = None
) -> Optional[str]:
    """
    Download an image and return its dHash.

    Downloads are retried with backoff and pass through ``image_fetch_breaker``,
    so a dead image host is skipped for a while instead of stalling every
    comparison. Hashes of stored listings (``property_id`` given) are cached
    in ``property_media_hashes``. Download or decode failures are logged and
    give ``None``.
    """
    cached = _cached_hash(url, property_id)
    if cached:
        return cached

    http = session or requests
    try:
        content = image_fetch_breaker.call(lambda: retry_with_backoff(
            lambda: _download(http, url),
            retries=settings.MEDIA_HASH_RETRIES,
            delay=settings.MEDIA_HASH_RETRY_DELAY,
            context=url,
        ))
    except (requests.RequestException, CircuitOpenError) as e:
        LOGGER.warning("could not download image %s: %s", url, e)
        return None

    try:
        value = difference_hash(content)
    except (OSError, ValueError) as e:
        LOGGER.warning("could not hash image %s: %s", url, e)
        return None

    if property_id is not None:
        db.session.add(PropertyMediaHash(property_id=property_id, media_url=url, hash_value=value))
        db.session.commit()
    return value


def hash_urls(urls: Iterable[str], session: Optional[requests.Session] = None,
              property_id: Optional[int] = None) -> List[str]:
    hashes = []
    for url in urls:
        value = hash_image_url(url, session, property_id)
        if value:
            hashes.append(value)
    return hashes


def media_similarity(hashes1: Sequence[str], hashes2: Sequence[str]) -> float:
    """Best pairwise similarity (0..1) between two sets of hashes"""
    best = 0.0
    for hash1 in hashes1:
        for hash2 in hashes2:
            distance = hamming_distance(hash1, hash2)
            if distance == float('inf') or not hash1:
                continue
            best = max(best, 1 - distance / len(hash1))
    return best


def compare_listing_photos(
    photos1: Sequence[str],
    photos2: Sequence[str],
    property_id1: Optional[int] = None,
    property_id2: Optional[int] = None,
    session: Optional[requests.Session] = None
) -> float:
    """
    Photo similarity of two listings as a 0..100 score.

    Raises:
        MediaHashError: photos were given but none of one listing could be hashed
    """
    if not photos1 or not photos2:
        return 0.0
    with requests.Session() if session is None else nullcontext(session) as http:
        hashes1 = hash_urls(photos1, http, property_id1)
        hashes2 = hash_urls(photos2, http, property_id2)
    if not hashes1 or not hashes2:
        raise MediaHashError('No listing photo could be hashed for comparison')
    return media_similarity(hashes1, hashes2) * 100
