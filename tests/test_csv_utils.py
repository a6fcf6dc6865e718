"""Row conversion, validation and sanitising for spreadsheet imports."""

import pytest

from leasy.imports.csv_utils import (
    process_rows_with_fallback, validate_property_data, sanitize_property_input, convert_to_numeric,
    convert_to_boolean, detect_media_columns, paginate_rows, validate_time_format, strip_html
)

MAPPING = {
    'Title': 'title',
    'Type': 'apartment_type',
    'Category': 'category',
    'Street': 'street_name',
    'City': 'city',
}


def _row(**extra):
    row = {
        'Title': 'Sunny flat',
        'Type': 'apartment',
        'Category': 'rental',
        'Street': 'Main Street',
        'City': 'Berlin',
    }
    row.update(extra)
    return row


def _base(**extra):
    data = {
        'title': 'Test',
        'apartment_type': 'apartment',
        'category': 'rental',
        'street_name': 'Main St',
        'city': 'Berlin',
    }
    data.update(extra)
    return data


# -- Row pipeline --------------------------------------------------------------

def test_valid_row_is_mapped_and_cleaned():
    result = process_rows_with_fallback([_row(Title='  Sunny   flat ')], MAPPING)

    assert result.errors == []
    assert result.skipped_rows == []
    assert result.valid_rows[0]['title'] == 'Sunny flat'
    assert result.valid_rows[0]['city'] == 'Berlin'


def test_missing_required_field_skips_row():
    result = process_rows_with_fallback([_row(), _row(City='  ')], MAPPING)

    assert len(result.valid_rows) == 1
    assert result.skipped_rows == [2]
    assert result.errors[0].row == 2
    assert result.errors[0].field == 'city'


def test_unparsable_number_is_an_error():
    result = process_rows_with_fallback([_row(monthly_rent='call us')], MAPPING)

    assert result.skipped_rows == [1]
    assert result.errors[0].field == 'monthly_rent'
    assert "Cannot convert 'call us' to number" in result.errors[0].message


def test_out_of_range_number_is_a_warning():
    result = process_rows_with_fallback([_row(monthly_rent='60000', bedrooms='25')], MAPPING)

    row = result.valid_rows[0]
    assert row['monthly_rent'] == 60000
    assert row['bedrooms'] == 25
    fields = {w.field for w in result.warnings}
    assert fields == {'monthly_rent', 'bedrooms'}
    assert all(w.severity == 'warning' for w in result.warnings)
    assert 'outside expected range (0-50000)' in result.warnings[0].message


def test_numbers_are_converted():
    result = process_rows_with_fallback([_row(monthly_rent='€1.250,50', bedrooms='2.5', square_meters='70')],
                                        MAPPING)

    row = result.valid_rows[0]
    assert row['monthly_rent'] == 1250.5
    assert row['bedrooms'] == 3
    assert row['square_meters'] == 70


def test_square_feet_converted_when_no_square_meters():
    result = process_rows_with_fallback([_row(square_feet='1000')], MAPPING)

    assert result.valid_rows[0]['square_meters'] == 93
    assert any('sq ft' in w.message for w in result.warnings)


def test_square_meters_wins_over_square_feet():
    result = process_rows_with_fallback([_row(square_meters='50', square_feet='1000')], MAPPING)
    assert result.valid_rows[0]['square_meters'] == 50


def test_times_are_normalised():
    result = process_rows_with_fallback([_row(checkin_time='14.30', checkout_time='11:00:00')], MAPPING)

    row = result.valid_rows[0]
    assert row['checkin_time'] == '14:30'
    assert row['checkout_time'] == '11:00'
    assert len(result.warnings) == 2


def test_invalid_time_is_dropped_with_warning():
    result = process_rows_with_fallback([_row(checkin_time='25:99')], MAPPING)

    assert 'checkin_time' not in result.valid_rows[0]
    assert result.warnings[0].message == "Invalid time format: '25:99'"


@pytest.mark.parametrize('value, expected', [
    ('9', '09:00'),
    ('09:15', '09:15'),
    ('7.05', '07:05'),
])
def test_validate_time_format(value, expected):
    assert validate_time_format(value, 'checkin_time', 1, []) == expected


def test_wgsb_flag():
    result = process_rows_with_fallback([_row(provides_wgsb='Ja'), _row(provides_wgsb='nein')], MAPPING)

    assert result.valid_rows[0]['provides_wgsb'] is True
    assert result.valid_rows[1]['provides_wgsb'] is False


def test_media_urls_attached():
    row = _row(Photos='https://cdn.example.com/a.jpg, https://cdn.example.com/b.jpg',
               Grundriss='https://cdn.example.com/plan-1.png')
    result = process_rows_with_fallback([row], MAPPING)

    processed = result.valid_rows[0]
    assert processed['photos'] == ['https://cdn.example.com/a.jpg', 'https://cdn.example.com/b.jpg']
    assert processed['floorplans'] == ['https://cdn.example.com/plan-1.png']


def test_explicit_media_columns():
    mapping = dict(MAPPING, Images='image_urls')
    result = process_rows_with_fallback([_row(Images='https://example.com/listing/photo-page')], mapping)
    assert result.valid_rows[0]['photos'] == ['https://example.com/listing/photo-page']


def test_broken_row_is_skipped_with_general_error():
    result = process_rows_with_fallback([None, _row()], MAPPING)

    assert result.skipped_rows == [1]
    assert result.errors[0].field == 'general'
    assert len(result.valid_rows) == 1


# -- Schema validation ---------------------------------------------------------

def test_validate_complete_property():
    result = validate_property_data(_base(title='Beautiful Apartment', street_name='Main Street',
                                          monthly_rent=1000, bedrooms=2), 1)
    assert result.is_valid
    assert result.errors == []


def test_validate_missing_required_fields():
    result = validate_property_data({'apartment_type': 'apartment', 'category': 'rental'}, 1)

    assert not result.is_valid
    assert sorted(e.field for e in result.errors) == ['city', 'street_name', 'title']
    assert any(e.message == 'Title is required' for e in result.errors)


def test_validate_numeric_fields():
    result = validate_property_data(_base(monthly_rent=-500, bedrooms='not-a-number', square_meters=0), 1)

    assert not result.is_valid
    fields = {e.field for e in result.errors}
    assert {'monthly_rent', 'bedrooms', 'square_meters'} <= fields


def test_validate_enums():
    result = validate_property_data(_base(apartment_type='castle', status='archived'), 3)

    assert {e.field for e in result.errors} == {'apartment_type', 'status'}
    assert all(e.row == 3 for e in result.errors)


def test_validate_email():
    assert any(e.field == 'landlord_email'
               for e in validate_property_data(_base(landlord_email='invalid-email'), 1).errors)
    assert not any(e.field == 'landlord_email'
                   for e in validate_property_data(_base(landlord_email='landlord@example.com'), 1).errors)


def test_checkout_before_checkin_warns():
    result = validate_property_data(_base(checkin_time='15:00', checkout_time='10:00'), 1)

    assert result.is_valid
    assert [w.field for w in result.warnings] == ['checkout_time']


def test_weekly_rate_consistency_warns():
    consistent = validate_property_data(_base(daily_rate=100, weekly_rate=680), 1)
    inconsistent = validate_property_data(_base(daily_rate=100, weekly_rate=500), 1)

    assert consistent.warnings == []
    assert [w.field for w in inconsistent.warnings] == ['weekly_rate']


# -- Sanitising ----------------------------------------------------------------

def test_sanitize_html():
    result = sanitize_property_input({
        'title': '<script>alert("xss")</script>Safe Title',
        'description': 'Normal text with <b>bold</b> and <script>dangerous()</script>',
        'house_rules': '<p>Valid paragraph</p><script>bad()</script>',
    })

    assert result['title'] == 'Safe Title'
    assert result['description'] == 'Normal text with <b>bold</b> and'
    assert result['house_rules'] == '<p>Valid paragraph</p>'


def test_sanitize_drops_attributes_on_allowed_tags():
    result = sanitize_property_input({'description': '<p onclick="steal()">Hi <a href="x">there</a></p>'})
    assert result['description'] == '<p>Hi there</p>'


def test_strip_html_plain_text_untouched():
    assert strip_html('no markup') == 'no markup'
    assert strip_html('<style>p { color: red }</style><b>Bold</b> text') == 'Bold text'


def test_sanitize_trims_whitespace():
    result = sanitize_property_input({'title': '  Trimmed Title  ', 'city': '\n  Berlin  \t'})

    assert result['title'] == 'Trimmed Title'
    assert result['city'] == 'Berlin'


def test_sanitize_numeric_conversions():
    result = sanitize_property_input({'monthly_rent': '1000.50', 'bedrooms': '2', 'square_meters': '75.5'})

    assert result['monthly_rent'] == 1000.50
    assert result['bedrooms'] == 2
    assert isinstance(result['bedrooms'], int)
    assert result['square_meters'] == 75.5


def test_sanitize_keeps_unconvertible_numbers():
    assert sanitize_property_input({'bedrooms': 'many'})['bedrooms'] == 'many'


def test_sanitize_boolean_conversions():
    result = sanitize_property_input({
        'provides_wgsb': 'true',
        'another_bool': 'false',
        'yes_bool': 'yes',
        'no_bool': 'no',
    })

    assert result['provides_wgsb'] is True
    assert result['another_bool'] is False
    assert result['yes_bool'] is True
    assert result['no_bool'] is False


def test_sanitize_numeric_zip_code_becomes_text():
    assert sanitize_property_input({'zip_code': 10115})['zip_code'] == '10115'


# -- Conversions ---------------------------------------------------------------

@pytest.mark.parametrize('value, expected', [
    ('123', 123),
    ('123.45', 123.45),
    ('1.234,56', 1234.56),
    ('1,234.56', 1234.56),
    ('€1,000', 1000),
    ('$1,234.56', 1234.56),
    ('950,5', 950.5),
    (42, 42),
])
def test_convert_to_numeric(value, expected):
    assert convert_to_numeric(value) == pytest.approx(expected)


@pytest.mark.parametrize('value', ['not-a-number', '', None, True])
def test_convert_to_numeric_invalid(value):
    assert convert_to_numeric(value) is None


def test_convert_square_feet():
    assert convert_to_numeric('100', 'square_feet') == pytest.approx(9.29, abs=0.01)


@pytest.mark.parametrize('value, expected', [
    ('yes', True), ('Y', True), ('1', True), ('oui', True), ('sí', True),
    ('no', False), ('', False), (0, False), (1, True), (None, False),
])
def test_convert_to_boolean(value, expected):
    assert convert_to_boolean(value) is expected


# -- Media and paging ----------------------------------------------------------

def test_detect_media_columns():
    media = detect_media_columns({
        'gallery': 'https://cdn.example.com/a.jpg; https://i.imgur.com/xyz',
        'layout': 'https://cdn.example.com/unit.png',
        'website': 'https://example.com/listing',
    })

    assert media['photos'] == ['https://cdn.example.com/a.jpg', 'https://i.imgur.com/xyz']
    assert media['floorplans'] == ['https://cdn.example.com/unit.png']


def test_paginate_rows():
    rows = [{'n': i} for i in range(120)]

    page = paginate_rows(rows, page=2, page_size=50)
    assert [r['n'] for r in page.rows][:2] == [50, 51]
    assert page.total_pages == 3
    assert page.has_next and page.has_prev

    last = paginate_rows(rows, page=9, page_size=50)
    assert last.page == 3
    assert len(last.rows) == 20
    assert not last.has_next


def test_paginate_empty_rows():
    page = paginate_rows([], page=0)
    assert page.page == 1
    assert page.total_pages == 1
    assert page.rows == []
