"""
Automatic mapping of spreadsheet headers onto listing fields
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from rapidfuzz import fuzz

from ..database import db, FieldMappingMemory

LOGGER = logging.getLogger(__name__)

MATCH_THRESHOLD = 0.7

STANDARD_FIELDS = [
    {'key': 'title', 'label': 'Property Title', 'required': True},
    {'key': 'description', 'label': 'Description', 'required': False},
    {'key': 'apartment_type', 'label': 'Apartment Type', 'required': True},
    {'key': 'category', 'label': 'Category', 'required': True},
    {'key': 'street_name', 'label': 'Street Name', 'required': True},
    {'key': 'street_number', 'label': 'Street Number', 'required': False},
    {'key': 'city', 'label': 'City', 'required': True},
    {'key': 'zip_code', 'label': 'ZIP Code', 'required': False},
    {'key': 'region', 'label': 'Region/State', 'required': False},
    {'key': 'country', 'label': 'Country', 'required': False},
    {'key': 'monthly_rent', 'label': 'Monthly Rent', 'required': False},
    {'key': 'weekly_rate', 'label': 'Weekly Rate', 'required': False},
    {'key': 'daily_rate', 'label': 'Daily Rate', 'required': False},
    {'key': 'bedrooms', 'label': 'Bedrooms', 'required': False},
    {'key': 'bathrooms', 'label': 'Bathrooms', 'required': False},
    {'key': 'max_guests', 'label': 'Max Guests', 'required': False},
    {'key': 'square_meters', 'label': 'Square Meters', 'required': False},
    {'key': 'checkin_time', 'label': 'Check-in Time', 'required': False},
    {'key': 'checkout_time', 'label': 'Check-out Time', 'required': False},
    {'key': 'provides_wgsb', 'label': 'Provides WGSB', 'required': False},
    {'key': 'house_rules', 'label': 'House Rules', 'required': False},
    {'key': 'image_urls', 'label': 'Image URLs', 'required': False},
    {'key': 'floorplan_urls', 'label': 'Floorplan URLs', 'required': False},
]

REQUIRED_FIELD_KEYS = [f['key'] for f in STANDARD_FIELDS if f['required']]

HEADER_PATTERNS: Dict[str, List[str]] = {
    'title': ['title', 'property_title', 'name', 'property_name', 'listing_title'],
    'description': ['description', 'desc', 'details', 'property_description'],
    'apartment_type': ['apartment_type', 'type', 'property_type', 'unit_type'],
    'category': ['category', 'rental_type', 'listing_category'],
    'street_name': ['street_name', 'street', 'address', 'street_address'],
    'street_number': ['street_number', 'house_number', 'number'],
    'city': ['city', 'location', 'town'],
    'zip_code': ['zip_code', 'postal_code', 'zipcode', 'zip', 'postcode'],
    'region': ['region', 'state', 'province', 'region_state'],
    'country': ['country', 'nation'],
    'monthly_rent': ['monthly_rent', 'rent', 'price', 'monthly_price'],
    'weekly_rate': ['weekly_rate', 'weekly_rent', 'weekly_price'],
    'daily_rate': ['daily_rate', 'daily_rent', 'daily_price', 'nightly_rate'],
    'bedrooms': ['bedrooms', 'beds', 'rooms', 'bedroom_count'],
    'bathrooms': ['bathrooms', 'baths', 'bathroom_count'],
    'max_guests': ['max_guests', 'capacity', 'guests', 'occupancy'],
    'square_meters': ['square_meters', 'area', 'size', 'sqm', 'square_feet'],
    'checkin_time': ['checkin_time', 'check_in', 'checkin', 'arrival_time'],
    'checkout_time': ['checkout_time', 'check_out', 'checkout', 'departure_time'],
    'provides_wgsb': ['provides_wgsb', 'wgsb', 'housing_benefit'],
    'house_rules': ['house_rules', 'rules', 'policies'],
    'image_urls': ['image_urls', 'images', 'photos', 'photo_urls', 'pictures'],
    'floorplan_urls': ['floorplan_urls', 'floorplan', 'layout', 'plan'],
}


@dataclass
class ColumnMapping:
    csv_header: str
    mapped_field: Optional[str]
    confidence: float

    def to_dict(self):
        return {
            'csv_header': self.csv_header,
            'mapped_field': self.mapped_field,
            'confidence': round(self.confidence, 3),
        }


def normalize_header(header: str) -> str:
    return re.sub(r'[^a-z0-9]', '_', str(header).lower())


def best_field_for(header: str):
    """(field, score) of the closest header pattern above the threshold"""
    normalized = normalize_header(header)
    best_field, best_score = None, 0.0
    for field_key, patterns in HEADER_PATTERNS.items():
        for pattern in patterns:
            score = fuzz.ratio(normalized, pattern) / 100
            if score > best_score and score > MATCH_THRESHOLD:
                best_field, best_score = field_key, score
    return best_field, best_score


def auto_detect_mappings(headers: List[str], saved: Optional[Dict[str, str]] = None) -> List[ColumnMapping]:
    """Suggest a field for every header; remembered mappings win"""
    saved = saved or {}
    mappings = []
    for header in headers:
        if header in saved:
            mappings.append(ColumnMapping(header, saved[header], 1.0))
            continue
        field_key, score = best_field_for(header)
        mappings.append(ColumnMapping(header, field_key, score))
    return mappings


def mapping_to_dict(mappings: List[ColumnMapping]) -> Dict[str, str]:
    return {m.csv_header: m.mapped_field for m in mappings if m.mapped_field}


def missing_required_fields(mapping: Dict[str, str]) -> List[str]:
    mapped = set(mapping.values())
    return [key for key in REQUIRED_FIELD_KEYS if key not in mapped]


def load_saved_mappings(user_id: int, headers: List[str]) -> Dict[str, str]:
    """Mappings the user confirmed before, keyed by the header as it appears now"""
    patterns = {normalize_header(h): h for h in headers}
    if not patterns:
        return {}
    rows = FieldMappingMemory.query.filter(
        FieldMappingMemory.user_id == user_id,
        FieldMappingMemory.document_field_pattern.in_(list(patterns))
    ).all()
    return {patterns[row.document_field_pattern]: row.mapped_field_key for row in rows}


def remember_mappings(user_id: int, mapping: Dict[str, str], confidence: float = 1.0) -> int:
    """Store confirmed header mappings; repeated headers bump their usage count"""
    stored = 0
    for header, field_key in mapping.items():
        if not field_key:
            continue
        pattern = normalize_header(header)
        entry = FieldMappingMemory.query.filter_by(user_id=user_id, document_field_pattern=pattern).first()
        if entry:
            entry.usage_count = (entry.usage_count or 0) + 1
            entry.mapped_field_key = field_key
            entry.document_field_name = header
            entry.confidence_score = confidence
            entry.updated_at = datetime.utcnow()
        else:
            db.session.add(FieldMappingMemory(
                user_id=user_id,
                document_field_name=header,
                document_field_pattern=pattern,
                mapped_field_key=field_key,
                confidence_score=confidence,
                usage_count=1,
            ))
        stored += 1
    db.session.commit()
    LOGGER.debug("remembered %d column mappings for user %s", stored, user_id)
    return stored
