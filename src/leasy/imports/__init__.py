"""
Spreadsheet import: header mapping and row validation
"""
from .csv_utils import (
    ValidationIssue, ProcessingResult, ValidationResult, RowPage, PropertySchema,
    process_rows_with_fallback, validate_property_data, sanitize_property_input,
    convert_to_numeric, detect_media_columns, paginate_rows
)
from .column_mapping import (
    ColumnMapping, STANDARD_FIELDS, HEADER_PATTERNS, auto_detect_mappings, mapping_to_dict,
    missing_required_fields, load_saved_mappings, remember_mappings
)

__all__ = [
    'ValidationIssue', 'ProcessingResult', 'ValidationResult', 'RowPage', 'PropertySchema',
    'process_rows_with_fallback', 'validate_property_data', 'sanitize_property_input',
    'convert_to_numeric', 'detect_media_columns', 'paginate_rows',
    'ColumnMapping', 'STANDARD_FIELDS', 'HEADER_PATTERNS', 'auto_detect_mappings', 'mapping_to_dict',
    'missing_required_fields', 'load_saved_mappings', 'remember_mappings',
]
