"""
Leasy Property Data Models

Plain dataclasses used by the duplicate detection and import pipeline.
They are independent from the database layer so the scoring code can run
on rows that were never persisted.
"""
from dataclasses import dataclass, field, asdict
from typing import List, Optional, Dict, Any
from enum import Enum


class ApartmentType(Enum):
    """Kinds of rentable units"""
    APARTMENT = "apartment"
    HOUSE = "house"
    STUDIO = "studio"
    ROOM = "room"
    SHARED_APARTMENT = "shared_apartment"
    OTHER = "other"


class Category(Enum):
    """Listing categories"""
    RENTAL = "rental"
    SALE = "sale"
    SHORT_TERM = "short_term"
    LONG_TERM = "long_term"


class PropertyStatus(Enum):
    """Listing publication status"""
    DRAFT = "draft"
    PUBLISHED = "published"
    SYNCED = "synced"


class MediaType(Enum):
    PHOTO = "photo"
    FLOORPLAN = "floorplan"
    VIDEO = "video"


class DuplicateStatus(Enum):
    """Outcome of comparing a new listing against an existing one"""
    DUPLICATE = "duplicate"
    POTENTIAL = "potential"
    UNIQUE = "unique"


class GroupStatus(Enum):
    """Review state of a duplicate group"""
    PENDING = "pending"
    REVIEWED = "reviewed"
    MERGED = "merged"
    DISMISSED = "dismissed"


def _to_float(value) -> Optional[float]:
    if value is None or value == '':
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int(value) -> Optional[int]:
    number = _to_float(value)
    return int(round(number)) if number is not None else None


@dataclass
class PropertyForDetection:
    """The subset of listing fields that duplicate detection looks at"""
    title: str = ""
    street_name: Optional[str] = None
    street_number: Optional[str] = None
    zip_code: Optional[str] = None
    city: Optional[str] = None
    monthly_rent: Optional[float] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    square_meters: Optional[float] = None
    source: Optional[str] = None
    photos: List[str] = field(default_factory=list)
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PropertyForDetection':
        """Build from a row or API payload, tolerating strings for numbers"""
        photos = data.get('photos') or data.get('image_urls') or []
        if isinstance(photos, str):
            photos = [p.strip() for p in photos.split(',') if p.strip()]
        return cls(
            title=data.get('title') or '',
            street_name=data.get('street_name'),
            street_number=_str_or_none(data.get('street_number')),
            zip_code=_str_or_none(data.get('zip_code')),
            city=data.get('city'),
            monthly_rent=_to_float(data.get('monthly_rent')),
            bedrooms=_to_int(data.get('bedrooms')),
            bathrooms=_to_int(data.get('bathrooms')),
            square_meters=_to_float(data.get('square_meters')),
            source=data.get('source'),
            photos=list(photos),
            latitude=_to_float(data.get('latitude')),
            longitude=_to_float(data.get('longitude')),
        )


def _str_or_none(value) -> Optional[str]:
    if value is None or value == '':
        return None
    return str(value)


@dataclass
class ExistingProperty(PropertyForDetection):
    """A stored listing that new listings are compared against"""
    id: Optional[int] = None
    created_at: Optional[str] = None


@dataclass
class MatchReason:
    """One weighted component of a duplicate match"""
    parameter: str
    score: float
    weight: float
    details: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'parameter': self.parameter,
            'score': round(self.score, 2),
            'weight': self.weight,
            'details': self.details,
        }


@dataclass
class DuplicateMatch:
    """Result of comparing a new listing with one existing listing"""
    existing_property: ExistingProperty
    match_score: int
    match_reasons: List[MatchReason] = field(default_factory=list)
    status: DuplicateStatus = DuplicateStatus.UNIQUE
    suggestion: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'existing_property': self.existing_property.to_dict(),
            'match_score': self.match_score,
            'match_reasons': [r.to_dict() for r in self.match_reasons],
            'status': self.status.value,
            'suggestion': self.suggestion,
        }
