"""
Spreadsheet downloads: listing exports and the import template

Column headers are the labels of the standard import fields, so an
exported file can be imported again without a manual mapping.
"""
import csv
import io
from typing import Any, Dict, Iterable, List

from openpyxl import Workbook

from ..errors import ValidationError
from ..imports.column_mapping import STANDARD_FIELDS

EXPORT_FORMATS = ('xlsx', 'csv')

MIME_TYPES = {
    'xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    'csv': 'text/csv',
}

# import field -> Property.to_dict() key
_MEDIA_KEYS = {'image_urls': 'photos', 'floorplan_urls': 'floorplans'}

FIELD_HEADERS = [f['label'] for f in STANDARD_FIELDS]
EXPORT_HEADERS = ['ID'] + FIELD_HEADERS + ['Publication Status', 'Source', 'Created At']

TEMPLATE_ROW = {
    'Property Title': 'Modern Apartment in Berlin',
    'Description': 'Beautiful 2-bedroom apartment in the heart of Berlin',
    'Apartment Type': 'apartment',
    'Category': 'long_term',
    'Street Name': 'Alexanderplatz',
    'Street Number': '1',
    'City': 'Berlin',
    'ZIP Code': '10178',
    'Region/State': 'Berlin',
    'Country': 'Germany',
    'Monthly Rent': 1200,
    'Weekly Rate': 300,
    'Daily Rate': 50,
    'Bedrooms': 2,
    'Bathrooms': 1,
    'Max Guests': 4,
    'Square Meters': 75,
    'Check-in Time': '15:00',
    'Check-out Time': '11:00',
    'Provides WGSB': 'true',
    'House Rules': 'No smoking, no pets',
    'Image URLs': 'https://example.com/photo1.jpg, https://example.com/photo2.jpg',
    'Floorplan URLs': 'https://example.com/floorplan.pdf',
}


def listing_row(prop) -> Dict[str, Any]:
    """One export row for a stored listing"""
    data = prop.to_dict()
    row = {'ID': data['id']}
    for field in STANDARD_FIELDS:
        value = data.get(_MEDIA_KEYS.get(field['key'], field['key']))
        if isinstance(value, list):
            value = ', '.join(value)
        row[field['label']] = value
    row['Publication Status'] = data.get('status')
    row['Source'] = data.get('source')
    row['Created At'] = data.get('created_at')
    return row


def write_rows(rows: Iterable[Dict[str, Any]], headers: List[str], fmt: str = 'xlsx',
               sheet_title: str = 'Properties') -> bytes:
    """Serialize rows as an .xlsx workbook or a CSV file"""
    if fmt not in EXPORT_FORMATS:
        raise ValidationError(f"Unsupported export format: {fmt}")

    if fmt == 'csv':
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=headers, extrasaction='ignore')
        writer.writeheader()
        writer.writerows(rows)
        return buffer.getvalue().encode('utf-8')

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = sheet_title
    sheet.append(headers)
    for row in rows:
        sheet.append([row.get(header) for header in headers])

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def export_listings(properties, fmt: str = 'xlsx') -> bytes:
    return write_rows((listing_row(p) for p in properties), EXPORT_HEADERS, fmt)


def import_template(fmt: str = 'xlsx') -> bytes:
    return write_rows([TEMPLATE_ROW], FIELD_HEADERS, fmt, sheet_title='Properties Template')
