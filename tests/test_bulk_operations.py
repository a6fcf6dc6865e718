"""CSV, Excel and JSON import orchestration."""

import io
import json
from datetime import datetime

import pytest

from leasy.database import Property, FieldMappingMemory
from leasy.errors import ImportFileError
from leasy.utils.bulk_operations import BulkResult, BulkImportManager, read_csv_rows, read_excel_rows, read_json_rows
from leasy.duplicates import merge_duplicate_properties, save_duplicate_groups, scan_user_portfolio

CSV_TEXT = (
    'Title,Type,Category,Street,City,Rent,Beds,Size,Photos\n'
    'Sunny Flat,apartment,rental,Main Street,Berlin,"1.200,00",2,65,https://imgur.com/a.jpg\n'
    'Broken,apartment,rental,Main Street,,abc,1,40,\n'
)


def test_bulk_result_to_dict():
    result = BulkResult(total=4)
    result.add_success('A', 1)
    result.add_success('B', 2)
    result.add_failure('C', 'bad row', row=3)
    result.add_duplicate('D', 'already there', row=4)

    data = result.to_dict()
    assert data['success_rate'] == '50.0%'
    assert data['failed'] == 1
    assert data['skipped_duplicates'] == 1
    assert str(result) == 'BulkResult(total=4, successful=2, failed=1, skipped_duplicates=1)'


def test_read_csv_rows_skips_blank_lines_and_bom():
    headers, rows = read_csv_rows(('\ufeff' + 'Title;City\nA;Berlin\n;\nB;Hamburg\n').encode('utf-8'), ';')

    assert headers == ['Title', 'City']
    assert [r['Title'] for r in rows] == ['A', 'B']


def test_read_csv_rows_latin1_fallback():
    headers, rows = read_csv_rows('Title,City\nMünchen Loft,München\n'.encode('latin-1'))
    assert rows[0]['City'] == 'München'


def test_read_csv_rows_without_header():
    with pytest.raises(ImportFileError):
        read_csv_rows(b'')


def test_read_excel_rows_keeps_cell_types(make_workbook):
    data = make_workbook([
        ['Title', 'Rent', 'Available From', None],
        ['Loft', 950, datetime(2025, 7, 1), 'no header'],
        [None, None, None, None],
        [' Studio ', 700.5, 'soon', None],
    ])

    headers, rows = read_excel_rows(io.BytesIO(data))

    assert headers == ['Title', 'Rent', 'Available From']
    assert rows == [
        {'Title': 'Loft', 'Rent': 950, 'Available From': '2025-07-01T00:00:00'},
        {'Title': ' Studio ', 'Rent': 700.5, 'Available From': 'soon'},
    ]


def test_read_excel_rows_rejects_other_files(make_workbook):
    with pytest.raises(ImportFileError):
        read_excel_rows(b'Title,City\nA,Berlin\n')
    with pytest.raises(ImportFileError):
        read_excel_rows(make_workbook([]))


def test_read_json_rows_shapes():
    assert read_json_rows(b'[{"title": "A"}]') == [{'title': 'A'}]
    assert read_json_rows(io.BytesIO(b'{"listings": [{"title": "B"}]}')) == [{'title': 'B'}]
    with pytest.raises(ImportFileError):
        read_json_rows(b'{"title": "not a list"}')
    with pytest.raises(ImportFileError):
        read_json_rows(b'{broken')


def test_import_from_csv(user):
    progress = []
    manager = BulkImportManager(user)

    result = manager.import_from_csv(CSV_TEXT.encode('utf-8'),
                                     progress_callback=lambda *args: progress.append(args))

    assert result.total == 2
    assert result.successful == 1
    assert result.failed == 1
    assert result.errors[0]['row'] == 2

    prop = Property.query.filter_by(user_id=user.id).one()
    assert prop.monthly_rent == 1200
    assert prop.square_meters == 65
    assert prop.source == 'csv'
    assert prop.photo_urls() == ['https://imgur.com/a.jpg']

    assert progress[-1] == (1, 1, 'Complete')
    assert FieldMappingMemory.query.filter_by(user_id=user.id).count() == 9


def test_import_skips_duplicates(user):
    manager = BulkImportManager(user)
    manager.import_from_csv(CSV_TEXT.encode('utf-8'))

    again = manager.import_from_csv(CSV_TEXT.encode('utf-8'))

    assert again.successful == 0
    assert again.skipped_duplicates == 1
    duplicate = [r for r in again.results if r['status'] == 'duplicate'][0]
    assert duplicate['matches'][0]['status'] == 'duplicate'
    assert Property.query.count() == 1


def test_import_allows_duplicates_when_asked(user):
    BulkImportManager(user).import_from_csv(CSV_TEXT.encode('utf-8'))

    again = BulkImportManager(user, allow_duplicates=True).import_from_csv(CSV_TEXT.encode('utf-8'))

    assert again.successful == 1
    assert any(w.get('field') == 'duplicate' for w in again.warnings)
    assert Property.query.count() == 2


def test_import_rejects_merged_listing(user, admin):
    manager = BulkImportManager(user, allow_duplicates=True)
    manager.import_from_csv(CSV_TEXT.encode('utf-8'))
    manager.import_from_csv(CSV_TEXT.encode('utf-8'))
    keep, drop = Property.query.order_by(Property.id).all()
    group = save_duplicate_groups(scan_user_portfolio(user.id))[0]
    merge_duplicate_properties(group.id, keep.id, [keep.id, drop.id], admin.id)

    result = manager.import_from_csv(CSV_TEXT.encode('utf-8'))

    assert result.skipped_duplicates == 1
    assert result.results[-1]['reason'] == 'Previously merged duplicate'


def test_import_requires_mapped_columns(user):
    with pytest.raises(ImportFileError) as exc:
        BulkImportManager(user).import_from_csv(b'Title,City\nA,Berlin\n')

    assert exc.value.payload['missing_fields'] == ['apartment_type', 'category', 'street_name']


def test_import_row_limit(user):
    manager = BulkImportManager(user)
    manager.max_rows = 1

    with pytest.raises(ImportFileError):
        manager.import_rows([{'title': 'A'}, {'title': 'B'}], {})


def test_import_from_json(user, listing):
    payload = json.dumps({'listings': [listing(), listing(title='', city='Hamburg')]}).encode('utf-8')

    result = BulkImportManager(user).import_from_json(payload)

    assert result.successful == 1
    assert result.failed == 1
    assert Property.query.one().source == 'json'


def test_export_results_to_file(user, tmp_path):
    manager = BulkImportManager(user)
    result = BulkResult(total=1)
    result.add_success('A', 1)
    output = tmp_path / 'results.json'

    manager.export_results_to_file(result, str(output))

    assert json.loads(output.read_text(encoding='utf-8'))['successful'] == 1


def test_import_from_excel(user, make_workbook):
    data = make_workbook([
        ['Property Title', 'Apartment Type', 'Category', 'Street Name', 'Street Number', 'City', 'Monthly Rent', 'Bedrooms'],
        ['Garden Flat', 'apartment', 'rental', 'Park Lane', 12, 'Hamburg', 1350, 3],
        ['No City', 'apartment', 'rental', 'Park Lane', 14, None, 900, 1],
    ])

    result = BulkImportManager(user).import_from_excel(data)

    assert result.total == 2
    assert result.successful == 1
    assert result.failed == 1
    prop = Property.query.filter_by(user_id=user.id).one()
    assert prop.street_number == '12'
    assert prop.monthly_rent == 1350
    assert prop.bedrooms == 3
    assert prop.source == 'xlsx'
    assert FieldMappingMemory.query.filter_by(user_id=user.id).count() == 8
