"""Header auto-mapping and the per-user mapping memory."""

from leasy.database import FieldMappingMemory
from leasy.imports.column_mapping import (
    auto_detect_mappings, mapping_to_dict, missing_required_fields, load_saved_mappings,
    remember_mappings, normalize_header, best_field_for, STANDARD_FIELDS
)


def test_normalize_header():
    assert normalize_header('Property Title') == 'property_title'
    assert normalize_header('ZIP-Code') == 'zip_code'


def test_auto_detect_common_headers():
    headers = ['Property Title', 'Type', 'Category', 'Street', 'City', 'Rent', 'Beds', 'Postcode']
    mapping = mapping_to_dict(auto_detect_mappings(headers))

    assert mapping == {
        'Property Title': 'title',
        'Type': 'apartment_type',
        'Category': 'category',
        'Street': 'street_name',
        'City': 'city',
        'Rent': 'monthly_rent',
        'Beds': 'bedrooms',
        'Postcode': 'zip_code',
    }


def test_field_labels_map_to_their_fields():
    mapping = mapping_to_dict(auto_detect_mappings([f['label'] for f in STANDARD_FIELDS]))

    assert mapping == {f['label']: f['key'] for f in STANDARD_FIELDS}


def test_auto_detect_tolerates_typos():
    field_key, score = best_field_for('Bedroms')
    assert field_key == 'bedrooms'
    assert 0.7 < score < 1


def test_unknown_header_is_unmapped():
    mappings = auto_detect_mappings(['Favourite Colour'])

    assert mappings[0].mapped_field is None
    assert mappings[0].confidence == 0
    assert mapping_to_dict(mappings) == {}


def test_saved_mappings_win():
    mappings = auto_detect_mappings(['Rent', 'Objekt'], saved={'Rent': 'weekly_rate', 'Objekt': 'title'})

    assert [(m.mapped_field, m.confidence) for m in mappings] == [('weekly_rate', 1.0), ('title', 1.0)]


def test_missing_required_fields():
    assert missing_required_fields({'Name': 'title', 'Town': 'city'}) == [
        'apartment_type', 'category', 'street_name'
    ]
    assert missing_required_fields({}) == ['title', 'apartment_type', 'category', 'street_name', 'city']


def test_remember_and_load_mappings(user, other_user):
    remember_mappings(user.id, {'Objekt Name': 'title', 'Ort': 'city', 'Ignored': None})

    assert load_saved_mappings(user.id, ['objekt name', 'Ort', 'Preis']) == {
        'objekt name': 'title',
        'Ort': 'city',
    }
    assert load_saved_mappings(other_user.id, ['Ort']) == {}


def test_remember_mappings_counts_usage(user):
    remember_mappings(user.id, {'Ort': 'city'})
    remember_mappings(user.id, {'Ort': 'region'})

    entry = FieldMappingMemory.query.filter_by(user_id=user.id).one()
    assert entry.usage_count == 2
    assert entry.mapped_field_key == 'region'
