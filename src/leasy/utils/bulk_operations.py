"""
Bulk Operations for Leasy listings
Supports CSV, Excel and JSON file imports with validation and duplicate screening
"""
import csv
import io
import json
import logging
import zipfile
from dataclasses import dataclass
from datetime import date, datetime, time
from pathlib import Path
from typing import List, Dict, Any, Optional, Callable, Tuple, Union

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from ..config import settings
from ..database import db, Property
from ..duplicates import DuplicateDetectionService, load_config, check_for_merged_duplicate
from ..errors import ImportFileError
from ..imports import (
    process_rows_with_fallback, validate_property_data, auto_detect_mappings,
    mapping_to_dict, missing_required_fields, load_saved_mappings, remember_mappings
)
from ..models import PropertyForDetection, DuplicateStatus

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


@dataclass
class BulkResult:
    """Result of a bulk operation"""
    total: int = 0
    successful: int = 0
    failed: int = 0
    skipped_duplicates: int = 0
    results: List[Dict[str, Any]] = None
    errors: List[Dict[str, Any]] = None
    warnings: List[Dict[str, Any]] = None

    def __post_init__(self):
        if self.results is None:
            self.results = []
        if self.errors is None:
            self.errors = []
        if self.warnings is None:
            self.warnings = []

    def add_success(self, reference: str, property_id: int, data: dict = None):
        """Add a successful result"""
        self.successful += 1
        self.results.append({
            'reference': reference,
            'property_id': property_id,
            'status': 'success',
            'data': data
        })

    def add_failure(self, reference: str, error: str, data: dict = None, row: int = None):
        """Add a failed result"""
        self.failed += 1
        self.errors.append({
            'reference': reference,
            'row': row,
            'error': error,
            'status': 'failed',
            'data': data
        })

    def add_duplicate(self, reference: str, reason: str, matches: list = None, row: int = None):
        """Add a row that was not imported because it duplicates an existing listing"""
        self.skipped_duplicates += 1
        self.results.append({
            'reference': reference,
            'row': row,
            'status': 'duplicate',
            'reason': reason,
            'matches': matches or []
        })

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'total': self.total,
            'successful': self.successful,
            'failed': self.failed,
            'skipped_duplicates': self.skipped_duplicates,
            'success_rate': f"{(self.successful / self.total * 100):.1f}%" if self.total > 0 else "0%",
            'results': self.results,
            'errors': self.errors,
            'warnings': self.warnings
        }

    def __str__(self):
        return (f"BulkResult(total={self.total}, successful={self.successful}, "
                f"failed={self.failed}, skipped_duplicates={self.skipped_duplicates})")


def _read_text(source: Union[str, Path, io.IOBase, bytes]) -> str:
    if isinstance(source, bytes):
        raw = source
    elif hasattr(source, 'read'):
        raw = source.read()
    else:
        with open(source, 'rb') as f:
            raw = f.read()
    if isinstance(raw, str):
        return raw.lstrip('\ufeff')
    try:
        return raw.decode('utf-8-sig')
    except UnicodeDecodeError:
        return raw.decode('latin-1')


def read_csv_rows(source, delimiter: str = ',') -> Tuple[List[str], List[Dict[str, Any]]]:
    """
    Parse a CSV file, stream or byte string.

    Returns:
        (headers, rows); blank lines are dropped
    """
    text = _read_text(source)
    reader = csv.DictReader(io.StringIO(text), delimiter=delimiter)
    headers = [h for h in (reader.fieldnames or []) if h]
    if not headers:
        raise ImportFileError('CSV file has no header row')

    rows = []
    for row in reader:
        row.pop(None, None)
        if not any((v or '').strip() for v in row.values() if isinstance(v, str)):
            continue
        rows.append(row)
    return headers, rows


def read_excel_rows(source) -> Tuple[List[str], List[Dict[str, Any]]]:
    """
    Parse the first worksheet of an .xlsx workbook.

    Returns:
        (headers, rows) like ``read_csv_rows``; cell values keep their types,
        dates and times become ISO strings
    """
    if isinstance(source, bytes):
        source = io.BytesIO(source)
    elif hasattr(source, 'read'):
        source = io.BytesIO(source.read())

    try:
        workbook = openpyxl.load_workbook(source, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        raise ImportFileError(f'Could not read Excel file: {e}')

    try:
        cells = workbook.active.iter_rows(values_only=True)
        header_row = next(cells, None) or ()
        headers = [str(h).strip() if h is not None else '' for h in header_row]
        if not any(headers):
            raise ImportFileError('Excel file has no header row')

        rows = []
        for values in cells:
            row = {}
            for header, value in zip(headers, values):
                if not header:
                    continue
                if isinstance(value, (datetime, date, time)):
                    value = value.isoformat()
                row[header] = '' if value is None else value
            if any(str(v).strip() for v in row.values()):
                rows.append(row)
    finally:
        workbook.close()

    return [h for h in headers if h], rows


def read_json_rows(source) -> List[Dict[str, Any]]:
    """Listings from a JSON array, or an object with a listings/properties/data key"""
    try:
        data = json.loads(_read_text(source))
    except json.JSONDecodeError as e:
        raise ImportFileError(f'Invalid JSON: {e.msg} (line {e.lineno})')

    if isinstance(data, dict):
        for key in ('listings', 'properties', 'data'):
            if key in data:
                data = data[key]
                break
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise ImportFileError('JSON import must be a list of listing objects')
    return data


class BulkImportManager:
    """
    Manages bulk listing imports for one user

    Supports:
    - CSV and Excel file import with automatic column mapping
    - JSON file import
    - Duplicate screening against the user's existing listings
    - Progress callbacks
    - Error handling and reporting
    """

    def __init__(self, user, detector: DuplicateDetectionService = None, allow_duplicates: bool = False):
        """
        Initialize bulk manager

        Args:
            user: Owner of the imported listings
            detector: Duplicate detector (built from stored settings if not provided)
            allow_duplicates: Import rows even when they match an existing listing
        """
        self.user = user
        self.detector = detector or DuplicateDetectionService(load_config())
        self.allow_duplicates = allow_duplicates
        self.max_rows = settings.BULK_MAX_ROWS

    def resolve_mapping(self, headers: List[str], mapping: Dict[str, str] = None) -> Dict[str, str]:
        """Use the given mapping, or suggest one from remembered and fuzzy-matched headers"""
        if mapping:
            return mapping
        saved = load_saved_mappings(self.user.id, headers)
        return mapping_to_dict(auto_detect_mappings(headers, saved))

    def import_from_csv(
        self,
        source,
        mapping: Dict[str, str] = None,
        delimiter: str = ',',
        progress_callback: ProgressCallback = None
    ) -> BulkResult:
        """
        Create listings from a CSV file

        Args:
            source: Path, file object or bytes
            mapping: CSV header -> listing field (auto-detected if not provided)
            delimiter: CSV delimiter character
            progress_callback: Optional callback(current, total, status)

        Returns:
            BulkResult with operation results
        """
        headers, rows = read_csv_rows(source, delimiter)
        return self._import_table(headers, rows, mapping, progress_callback, 'csv')

    def import_from_excel(
        self,
        source,
        mapping: Dict[str, str] = None,
        progress_callback: ProgressCallback = None
    ) -> BulkResult:
        """Create listings from the first worksheet of an .xlsx workbook"""
        headers, rows = read_excel_rows(source)
        return self._import_table(headers, rows, mapping, progress_callback, 'xlsx')

    def _import_table(self, headers, rows, mapping, progress_callback, source_name) -> BulkResult:
        mapping = self.resolve_mapping(headers, mapping)

        missing = missing_required_fields(mapping)
        if missing:
            raise ImportFileError(
                f"Required columns are not mapped: {', '.join(missing)}",
                payload={'missing_fields': missing, 'mapping': mapping}
            )

        result = self.import_rows(rows, mapping, progress_callback, source_name=source_name)
        if result.successful:
            remember_mappings(self.user.id, mapping)
        return result

    def import_from_json(
        self,
        source,
        mapping: Dict[str, str] = None,
        progress_callback: ProgressCallback = None
    ) -> BulkResult:
        """Create listings from a JSON file"""
        rows = read_json_rows(source)
        return self.import_rows(rows, mapping or {}, progress_callback, source_name='json')

    def import_rows(
        self,
        rows: List[Dict[str, Any]],
        mapping: Dict[str, str] = None,
        progress_callback: ProgressCallback = None,
        source_name: str = 'import'
    ) -> BulkResult:
        """
        Validate and store a list of raw rows

        Rows failing conversion or validation are reported as failures,
        rows matching an already merged listing or an existing listing above
        the duplicate threshold are skipped.
        """
        if len(rows) > self.max_rows:
            raise ImportFileError(f'Import is limited to {self.max_rows} rows, got {len(rows)}')

        result = BulkResult(total=len(rows))
        processing = process_rows_with_fallback(rows, mapping or {})

        result.warnings.extend(w.to_dict() for w in processing.warnings)
        for row_number in processing.skipped_rows:
            messages = [e.message for e in processing.errors if e.row == row_number]
            result.add_failure(f"row_{row_number}", '; '.join(messages), row=row_number)

        skipped = set(processing.skipped_rows)
        row_numbers = [n for n in range(1, len(rows) + 1) if n not in skipped]

        for position, (row_number, row) in enumerate(zip(row_numbers, processing.valid_rows), start=1):
            reference = row.get('title') or f"row_{row_number}"
            if progress_callback:
                progress_callback(position, len(row_numbers), f"Importing: {reference}")
            self._import_row(result, row_number, reference, row, source_name)

        if progress_callback:
            progress_callback(len(row_numbers), len(row_numbers), "Complete")

        LOGGER.info("import for user %s: %s", self.user.id, result)
        return result

    def _import_row(self, result: BulkResult, row_number: int, reference: str, row: Dict[str, Any], source_name: str):
        validation = validate_property_data(row, row_number)
        result.warnings.extend(w.to_dict() for w in validation.warnings)
        if not validation.is_valid:
            result.add_failure(reference, '; '.join(f"{e.field}: {e.message}" for e in validation.errors),
                               data=row, row=row_number)
            return

        data = validation.sanitized_data
        data.setdefault('source', source_name)

        if check_for_merged_duplicate(data):
            result.add_duplicate(reference, 'Previously merged duplicate', row=row_number)
            return

        matches = self.detector.find_duplicates_for_user(PropertyForDetection.from_dict(data), self.user.id)
        duplicates = [m for m in matches if m.status == DuplicateStatus.DUPLICATE]
        if duplicates and not self.allow_duplicates:
            result.add_duplicate(reference, duplicates[0].suggestion,
                                 [m.to_dict() for m in duplicates], row=row_number)
            return
        if matches:
            result.warnings.append({
                'row': row_number,
                'field': 'duplicate',
                'message': matches[0].suggestion,
                'severity': 'warning'
            })

        try:
            prop = Property.from_dict(data, self.user.id)
            db.session.add(prop)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            LOGGER.exception("failed to store row %d", row_number)
            result.add_failure(reference, str(e), data=row, row=row_number)
            return

        result.add_success(reference, prop.id, {'title': prop.title})

    def export_results_to_file(self, result: BulkResult, output_path: str):
        """
        Export bulk operation results to a JSON file

        Args:
            result: BulkResult object
            output_path: Path for output file
        """
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(result.to_dict(), f, indent=2, ensure_ascii=False, default=str)
        LOGGER.info("Results exported to: %s", output_path)
