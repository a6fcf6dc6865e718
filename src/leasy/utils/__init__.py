"""
Leasy Utilities Package
"""
from .bulk_operations import BulkResult, BulkImportManager, read_csv_rows, read_excel_rows, read_json_rows
from .exports import EXPORT_FORMATS, export_listings, import_template

__all__ = [
    'BulkResult', 'BulkImportManager', 'read_csv_rows', 'read_excel_rows', 'read_json_rows',
    'EXPORT_FORMATS', 'export_listings', 'import_template',
]
