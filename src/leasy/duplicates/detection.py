"""
Import-time duplicate detection.

Compares a new listing against existing listings with a weighted sum of
per-field similarity scores (title, address, price, rooms, area and, when
both sides carry the data, GPS proximity, source and photos).
"""
import logging
from dataclasses import dataclass, asdict, fields, replace
from typing import Dict, Any, Iterable, List, Optional

from ..config import settings
from ..models import (
    PropertyForDetection, ExistingProperty, MatchReason, DuplicateMatch, DuplicateStatus
)
from .similarity import (
    normalize_title, levenshtein_distance, haversine_distance, tolerance_score
)

LOGGER = logging.getLogger(__name__)


@dataclass
class DuplicateDetectionConfig:
    """Weights (percent of the total) and thresholds for scoring"""
    title_weight: float = 10
    address_weight: float = 35
    location_weight: float = 10
    price_weight: float = 10
    rooms_weight: float = 10
    area_weight: float = 10
    source_weight: float = 5
    photo_weight: float = 10
    duplicate_threshold: float = 85
    potential_threshold: float = 70
    price_tolerance_percent: float = 5
    area_tolerance_percent: float = 5
    location_tolerance_meters: float = 50

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    def update(self, **changes) -> None:
        unknown = set(changes) - set(self.field_names())
        if unknown:
            raise ValueError(f"Unknown detection settings: {', '.join(sorted(unknown))}")
        for key, value in changes.items():
            setattr(self, key, float(value))

    def copy(self) -> 'DuplicateDetectionConfig':
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_overrides(cls, overrides: Optional[Dict[str, Any]]) -> 'DuplicateDetectionConfig':
        """Defaults with stored overrides applied; unknown keys are ignored"""
        config = cls()
        known = set(cls.field_names())
        for key, value in (overrides or {}).items():
            if key not in known:
                LOGGER.warning("ignoring unknown detection setting %s", key)
                continue
            try:
                setattr(config, key, float(value))
            except (TypeError, ValueError):
                LOGGER.warning("ignoring non-numeric detection setting %s=%r", key, value)
        return config


DEFAULT_CONFIG = DuplicateDetectionConfig()


def load_config() -> DuplicateDetectionConfig:
    """Defaults merged with the admin overrides stored in the database"""
    from ..database import DetectionSetting
    return DuplicateDetectionConfig.from_overrides(DetectionSetting.get_all())


class DuplicateDetectionService:
    """
    Scores new listings against existing ones.

    A match is ``duplicate`` at or above ``duplicate_threshold``,
    ``potential`` at or above ``potential_threshold`` and ``unique`` below.
    """

    def __init__(self, config: DuplicateDetectionConfig = None, media_hash: Optional[bool] = None):
        self.config = (config or DEFAULT_CONFIG).copy()
        self.media_hash = settings.MEDIA_HASH_ENABLED if media_hash is None else media_hash

    # ==================== CONFIG ====================

    def get_config(self) -> DuplicateDetectionConfig:
        return self.config.copy()

    def update_config(self, **changes) -> None:
        self.config.update(**changes)

    # ==================== DETECTION ====================

    def detect_duplicates(
        self,
        new_property: PropertyForDetection,
        candidates: Iterable[ExistingProperty]
    ) -> List[DuplicateMatch]:
        """Matches at or above the potential threshold, best first"""
        matches = []
        for existing in candidates:
            match = self.calculate_match(new_property, existing)
            if match.match_score >= self.config.potential_threshold:
                matches.append(match)
        matches.sort(key=lambda m: m.match_score, reverse=True)
        return matches

    def find_duplicates_for_user(self, new_property: PropertyForDetection, user_id: int) -> List[DuplicateMatch]:
        """Compare a listing against everything the user already owns"""
        from ..database import Property

        existing = Property.query.filter_by(user_id=user_id).all()
        LOGGER.debug("checking %s against %d existing listings", new_property.title, len(existing))
        return self.detect_duplicates(new_property, [p.to_detection() for p in existing])

    def calculate_match(self, new_property: PropertyForDetection, existing: ExistingProperty) -> DuplicateMatch:
        """Weighted comparison of a single pair"""
        cfg = self.config
        reasons: List[MatchReason] = []

        reasons.append(MatchReason(
            parameter='Title',
            score=self.calculate_title_similarity(new_property.title, existing.title),
            weight=cfg.title_weight,
            details=f'"{new_property.title}" vs "{existing.title}"'
        ))
        reasons.append(MatchReason(
            parameter='Address',
            score=self.calculate_address_match(new_property, existing),
            weight=cfg.address_weight,
            details=f'{self.format_address(new_property)} vs {self.format_address(existing)}'
        ))
        reasons.append(MatchReason(
            parameter='Monthly Rent',
            score=self.calculate_price_match(new_property.monthly_rent, existing.monthly_rent),
            weight=cfg.price_weight,
            details=f'€{new_property.monthly_rent or 0} vs €{existing.monthly_rent or 0}'
        ))
        reasons.append(MatchReason(
            parameter='Bedrooms',
            score=self.calculate_rooms_match(new_property, existing),
            weight=cfg.rooms_weight,
            details=f'{new_property.bedrooms or 0} vs {existing.bedrooms or 0} bedrooms'
        ))
        reasons.append(MatchReason(
            parameter='Area',
            score=self.calculate_area_match(new_property.square_meters, existing.square_meters),
            weight=cfg.area_weight,
            details=f'{new_property.square_meters or 0}m² vs {existing.square_meters or 0}m²'
        ))

        if (new_property.latitude and new_property.longitude
                and existing.latitude and existing.longitude):
            reasons.append(MatchReason(
                parameter='Location',
                score=self.calculate_location_proximity(
                    new_property.latitude, new_property.longitude,
                    existing.latitude, existing.longitude
                ),
                weight=cfg.location_weight,
                details='GPS coordinates proximity'
            ))

        if new_property.source and existing.source:
            reasons.append(MatchReason(
                parameter='Source',
                score=self.calculate_source_match(new_property.source, existing.source),
                weight=cfg.source_weight,
                details=f'{new_property.source} vs {existing.source}'
            ))

        if new_property.photos and existing.photos:
            reasons.append(MatchReason(
                parameter='Photos',
                score=self.score_photos(new_property, existing),
                weight=cfg.photo_weight,
                details=f'{len(new_property.photos)} vs {len(existing.photos)} photos'
            ))

        total = sum(r.score * (r.weight / 100) for r in reasons)

        if total >= cfg.duplicate_threshold:
            status = DuplicateStatus.DUPLICATE
        elif total >= cfg.potential_threshold:
            status = DuplicateStatus.POTENTIAL
        else:
            status = DuplicateStatus.UNIQUE

        score = int(round(total))
        return DuplicateMatch(
            existing_property=existing,
            match_score=score,
            match_reasons=reasons,
            status=status,
            suggestion=self.generate_suggestion(score, reasons, status)
        )

    # ==================== FIELD SCORES ====================

    def calculate_title_similarity(self, title1: Optional[str], title2: Optional[str]) -> float:
        if not title1 or not title2:
            return 0.0

        normalized1 = normalize_title(title1)
        normalized2 = normalize_title(title2)
        if normalized1 == normalized2:
            return 100.0

        distance = levenshtein_distance(normalized1, normalized2)
        max_length = max(len(normalized1), len(normalized2))
        return max(0.0, (max_length - distance) / max_length * 100)

    def calculate_address_match(self, prop1: PropertyForDetection, prop2: PropertyForDetection) -> float:
        address1 = self.normalize_address(prop1)
        address2 = self.normalize_address(prop2)
        if address1 and address1 == address2:
            return 100.0

        score = 0
        if prop1.zip_code and prop2.zip_code and prop1.zip_code == prop2.zip_code:
            score += 40
        if prop1.city and prop2.city and prop1.city.lower() == prop2.city.lower():
            score += 30
        if (prop1.street_name and prop2.street_name
                and prop1.street_name.lower() == prop2.street_name.lower()):
            score += 30
        return float(min(score, 100))

    def calculate_price_match(self, price1: Optional[float], price2: Optional[float]) -> float:
        return tolerance_score(price1, price2, self.config.price_tolerance_percent)

    def calculate_area_match(self, area1: Optional[float], area2: Optional[float]) -> float:
        return tolerance_score(area1, area2, self.config.area_tolerance_percent)

    def calculate_rooms_match(self, prop1: PropertyForDetection, prop2: PropertyForDetection) -> float:
        if prop1.bedrooms == prop2.bedrooms:
            return 100.0
        if not prop1.bedrooms or not prop2.bedrooms:
            return 0.0
        difference = abs(prop1.bedrooms - prop2.bedrooms)
        # each room of difference costs 25 points
        return float(max(0, 100 - difference * 25))

    def calculate_location_proximity(self, lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        distance = haversine_distance(lat1, lon1, lat2, lon2)
        if distance <= self.config.location_tolerance_meters:
            return 100.0
        max_distance = 1000
        return max(0.0, 100 - (distance / max_distance) * 100)

    def calculate_source_match(self, source1: str, source2: str) -> float:
        return 100.0 if source1.strip().lower() == source2.strip().lower() else 0.0

    def calculate_photo_match(self, photos1: List[str], photos2: List[str]) -> float:
        """Share of the smaller photo set that also appears in the other"""
        set1 = {p.strip() for p in photos1 if p}
        set2 = {p.strip() for p in photos2 if p}
        if not set1 or not set2:
            return 0.0
        return len(set1 & set2) / min(len(set1), len(set2)) * 100

    def score_photos(self, new_property: PropertyForDetection, existing: ExistingProperty) -> float:
        """
        Perceptual photo similarity when media hashing is on, shared photo
        URLs otherwise or when the photos cannot be fetched.
        """
        if not self.media_hash:
            return self.calculate_photo_match(new_property.photos, existing.photos)

        from ..services.error_logging import with_fallback
        from .media_hash import compare_listing_photos

        return with_fallback(
            lambda: compare_listing_photos(new_property.photos, existing.photos,
                                           None, getattr(existing, 'id', None)),
            lambda: self.calculate_photo_match(new_property.photos, existing.photos),
            'media_processing'
        )

    # ==================== HELPERS ====================

    @staticmethod
    def _address_parts(prop: PropertyForDetection) -> List[str]:
        return [p for p in (prop.street_name, prop.street_number, prop.zip_code, prop.city) if p]

    def normalize_address(self, prop: PropertyForDetection) -> str:
        return ' '.join(str(p).lower().strip() for p in self._address_parts(prop))

    def format_address(self, prop: PropertyForDetection) -> str:
        return ', '.join(str(p) for p in self._address_parts(prop)) or 'Address not specified'

    @staticmethod
    def generate_suggestion(score: int, reasons: List[MatchReason], status: DuplicateStatus) -> str:
        top = sorted((r for r in reasons if r.score > 70), key=lambda r: r.score, reverse=True)[:2]
        names = ' and '.join(r.parameter for r in top)

        if status == DuplicateStatus.DUPLICATE:
            return (f"High confidence duplicate ({score}% match). {names} are very similar. "
                    f"Strongly recommend skipping this import.")
        if status == DuplicateStatus.POTENTIAL:
            return (f"Potential duplicate detected ({score}% match). {names} show similarities. "
                    f"Review carefully before importing.")
        return f"Appears to be a unique listing ({score}% match). Safe to import."
