"""
CSV row validation and conversion.

Raw spreadsheet rows are mapped onto listing fields, cleaned, converted and
checked. Problems are reported per row as ``error`` (the row is skipped) or
``warning`` (the row is kept).
"""
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from bs4 import BeautifulSoup
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaError

REQUIRED_FIELDS = ['title', 'apartment_type', 'category', 'street_name', 'city']

OPTIONAL_STRING_FIELDS = [
    'description', 'street_number', 'region', 'zip_code', 'country', 'house_rules', 'landlord_email',
]

# field, min, max, integer
NUMERIC_RANGES = [
    ('monthly_rent', 0, 50000, False),
    ('weekly_rate', 0, 15000, False),
    ('daily_rate', 0, 2000, False),
    ('bedrooms', 0, 20, True),
    ('bathrooms', 0, 10, True),
    ('max_guests', 1, 50, True),
    ('square_meters', 1, 2000, False),
    ('latitude', -90, 90, False),
    ('longitude', -180, 180, False),
]

NUMERIC_FIELDS = [name for name, _, _, _ in NUMERIC_RANGES]
TIME_FIELDS = ['checkin_time', 'checkout_time']
HTML_FIELDS = ['description', 'house_rules']
ALLOWED_HTML_TAGS = ['p', 'br', 'strong', 'em', 'b', 'i', 'ul', 'ol', 'li']

SQFT_TO_SQM = 0.092903

TRUTHY = ('true', 'yes', 'y', '1', 'ja', 'oui', 'sí')

_TIME_PATTERNS = [
    re.compile(r'(\d{1,2}):(\d{2})'),
    re.compile(r'(\d{1,2})\.(\d{2})'),
    re.compile(r'(\d{1,2}):(\d{2}):(\d{2})'),
    re.compile(r'(\d{1,2})'),
]

_CURRENCY = re.compile(r'[€$£¥₹]')
_NOT_NUMERIC = re.compile(r'[^\d.,\-]')
_WHITESPACE = re.compile(r'\s+')
_URL = re.compile(r'https?://[^\s,;|]+')

IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.gif', '.bmp', '.webp', '.tiff')
IMAGE_HOSTS = (
    'imgur.com', 'flickr.com', 'cloudinary.com', 'unsplash.com', 'pexels.com', 'amazonaws.com',
    'googleusercontent.com', 'dropbox.com', 'onedrive.com', 'googledrive.com',
)
FLOORPLAN_KEYWORDS = ('floorplan', 'floor_plan', 'layout', 'blueprint', 'plan', 'grundriss')


@dataclass
class ValidationIssue:
    row: int
    field: str
    message: str
    value: Any = None
    severity: str = 'error'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'row': self.row,
            'field': self.field,
            'message': self.message,
            'value': self.value,
            'severity': self.severity,
        }


@dataclass
class ProcessingResult:
    valid_rows: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)
    skipped_rows: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'valid_rows': self.valid_rows,
            'errors': [e.to_dict() for e in self.errors],
            'warnings': [w.to_dict() for w in self.warnings],
            'skipped_rows': self.skipped_rows,
        }


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[ValidationIssue]
    warnings: List[ValidationIssue]
    sanitized_data: Dict[str, Any]


@dataclass
class RowPage:
    rows: List[Dict[str, Any]]
    page: int
    page_size: int
    total_rows: int
    total_pages: int

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rows': self.rows,
            'page': self.page,
            'page_size': self.page_size,
            'total_rows': self.total_rows,
            'total_pages': self.total_pages,
            'has_next': self.has_next,
            'has_prev': self.has_prev,
        }


# ==================== ROW PIPELINE ====================

def process_rows_with_fallback(raw_rows: List[Dict[str, Any]], column_mapping: Dict[str, str]) -> ProcessingResult:
    """
    Map, convert and validate every row.

    A row with any error is skipped (row numbers are 1-based); warnings are
    always reported. A row that blows up during conversion is skipped with a
    ``general`` error instead of aborting the import.
    """
    result = ProcessingResult()

    for index, raw_row in enumerate(raw_rows):
        row_number = index + 1
        row_errors: List[ValidationIssue] = []
        row_warnings: List[ValidationIssue] = []

        try:
            mapped = apply_column_mapping(raw_row, column_mapping)
            processed = validate_and_convert_row(mapped, row_number, row_errors, row_warnings)
        except Exception as e:
            result.errors.append(ValidationIssue(row_number, 'general', str(e) or 'Unknown processing error'))
            result.skipped_rows.append(row_number)
            continue

        if any(issue.severity == 'error' for issue in row_errors):
            result.skipped_rows.append(row_number)
            result.errors.extend(row_errors)
        else:
            result.valid_rows.append(processed)
        result.warnings.extend(row_warnings)

    return result


def apply_column_mapping(raw_row: Dict[str, Any], mapping: Dict[str, str]) -> Dict[str, Any]:
    """Rename mapped headers; unmapped columns are kept for media detection"""
    mapped = {}
    for header, value in raw_row.items():
        mapped[mapping.get(header) or header] = value
    return mapped


def validate_and_convert_row(
    row: Dict[str, Any],
    row_number: int,
    errors: List[ValidationIssue],
    warnings: List[ValidationIssue]
) -> Dict[str, Any]:
    processed: Dict[str, Any] = {}

    for name in REQUIRED_FIELDS:
        value = row.get(name)
        if not value or (isinstance(value, str) and not value.strip()):
            errors.append(ValidationIssue(
                row_number, name, f"Required field '{name}' is missing or empty", value
            ))
        else:
            processed[name] = sanitize_string(value)

    for name in OPTIONAL_STRING_FIELDS:
        value = row.get(name)
        if value is not None and value != '':
            processed[name] = sanitize_string(value)

    for name, minimum, maximum, integer in NUMERIC_RANGES:
        value = row.get(name)
        if value is None or value == '':
            continue
        converted = convert_to_numeric(value)
        if converted is None:
            errors.append(ValidationIssue(row_number, name, f"Cannot convert '{value}' to number", value))
            continue
        if converted < minimum or converted > maximum:
            warnings.append(ValidationIssue(
                row_number, name,
                f"Value {_format_number(converted)} is outside expected range ({minimum}-{maximum})",
                converted, 'warning'
            ))
        processed[name] = _round_half_up(converted) if integer else converted

    for name in TIME_FIELDS:
        value = row.get(name)
        if value:
            normalized = validate_time_format(value, name, row_number, warnings)
            if normalized:
                processed[name] = normalized

    if 'provides_wgsb' in row:
        processed['provides_wgsb'] = convert_to_boolean(row['provides_wgsb'])

    square_feet = row.get('square_feet')
    if square_feet and not processed.get('square_meters'):
        sqft = convert_to_numeric(square_feet)
        if sqft is None:
            errors.append(ValidationIssue(
                row_number, 'square_feet', f"Cannot convert '{square_feet}' to number", square_feet
            ))
        elif sqft:
            processed['square_meters'] = _round_half_up(sqft * SQFT_TO_SQM)
            warnings.append(ValidationIssue(
                row_number, 'square_meters',
                f"Converted {_format_number(sqft)} sq ft to {processed['square_meters']} sq m",
                severity='warning'
            ))

    photos, floorplans = _collect_media(row)
    if photos:
        processed['photos'] = photos
    if floorplans:
        processed['floorplans'] = floorplans

    return processed


def _collect_media(row: Dict[str, Any]):
    """Explicit URL columns first, then anything that looks like an image"""
    photos = extract_urls(row.get('image_urls')) + extract_urls(row.get('photos'))
    floorplans = extract_urls(row.get('floorplan_urls')) + extract_urls(row.get('floorplans'))

    explicit = ('image_urls', 'photos', 'floorplan_urls', 'floorplans')
    detected = detect_media_columns({k: v for k, v in row.items() if k not in explicit})
    photos += detected['photos']
    floorplans += detected['floorplans']

    return _unique(photos), _unique(floorplans)


def _unique(items: List[str]) -> List[str]:
    seen = set()
    return [x for x in items if not (x in seen or seen.add(x))]


# ==================== CONVERSIONS ====================

def sanitize_string(value: Any) -> str:
    return _WHITESPACE.sub(' ', str(value).strip())


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def convert_to_numeric(value: Any, field_type: Optional[str] = None) -> Optional[float]:
    """
    Parse a number from spreadsheet text.

    Currency symbols are dropped. ``1.234,56`` and ``1,234.56`` both give
    1234.56; a lone comma followed by at most two digits is a decimal
    separator. ``field_type='square_feet'`` converts to square metres.
    """
    if value is None or value == '' or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return None
        numeric = value
    elif isinstance(value, str):
        cleaned = _NOT_NUMERIC.sub('', _CURRENCY.sub('', value)).strip()
        if not cleaned:
            return None

        if ',' in cleaned and '.' in cleaned:
            if cleaned.rfind(',') > cleaned.rfind('.'):
                cleaned = cleaned.replace('.', '').replace(',', '.', 1)
            else:
                cleaned = cleaned.replace(',', '')
        elif ',' in cleaned:
            parts = cleaned.split(',')
            if len(parts) == 2 and len(parts[1]) <= 2:
                cleaned = cleaned.replace(',', '.')
            else:
                cleaned = cleaned.replace(',', '')

        try:
            numeric = float(cleaned)
        except ValueError:
            return None
    else:
        return None

    if field_type == 'square_feet':
        return round(numeric * SQFT_TO_SQM, 2)
    return numeric


def convert_to_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower().strip() in TRUTHY
    if isinstance(value, (int, float)):
        return value != 0
    return False


def convert_to_boolean_ex(value: Any) -> Optional[bool]:
    """Like :func:`convert_to_boolean`, but ``None`` when the value is not boolean-like"""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lower = value.lower().strip()
        if lower in ('true', 'yes', '1', 'on', 'enabled'):
            return True
        if lower in ('false', 'no', '0', 'off', 'disabled'):
            return False
    if isinstance(value, (int, float)):
        return value != 0
    return None


def validate_time_format(value: Any, field_name: str, row_number: int,
                         warnings: List[ValidationIssue]) -> Optional[str]:
    """Normalise a time to HH:MM; anything unparsable is dropped with a warning"""
    text = str(value).strip()

    for pattern in _TIME_PATTERNS:
        match = pattern.fullmatch(text)
        if not match:
            continue
        hour = int(match.group(1))
        minute = int(match.group(2)) if pattern.groups >= 2 else 0
        if 0 <= hour <= 23 and 0 <= minute <= 59:
            formatted = f'{hour:02d}:{minute:02d}'
            if text != formatted:
                warnings.append(ValidationIssue(
                    row_number, field_name, f"Time format '{text}' converted to '{formatted}'", value, 'warning'
                ))
            return formatted

    warnings.append(ValidationIssue(
        row_number, field_name, f"Invalid time format: '{text}'", value, 'warning'
    ))
    return None


def _parse_minutes(value: str) -> Optional[int]:
    if not isinstance(value, str):
        return None
    match = re.fullmatch(r'(\d{1,2}):(\d{2})', value)
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


# ==================== MEDIA ====================

def extract_urls(text: Any) -> List[str]:
    if isinstance(text, (list, tuple)):
        text = ' '.join(str(item) for item in text if item)
    if not isinstance(text, str):
        return []
    return [url.strip().rstrip(',;|') for url in _URL.findall(text)]


def is_image_url(url: str) -> bool:
    lower = url.lower()
    return any(ext in lower for ext in IMAGE_EXTENSIONS) or any(host in lower for host in IMAGE_HOSTS)


def is_floorplan_url(column_name: str, url: str) -> bool:
    key = column_name.lower()
    lower = url.lower()
    return any(word in key or word in lower for word in FLOORPLAN_KEYWORDS)


def detect_media_columns(row: Dict[str, Any]) -> Dict[str, List[str]]:
    """Find image URLs in any column and split them into photos and floorplans"""
    photos: List[str] = []
    floorplans: List[str] = []

    for key, value in row.items():
        for url in extract_urls(value):
            if not is_image_url(url):
                continue
            if is_floorplan_url(str(key), url):
                floorplans.append(url)
            else:
                photos.append(url)

    return {'photos': photos, 'floorplans': floorplans}


# ==================== SCHEMA VALIDATION ====================

EMAIL_PATTERN = r'^$|^[^\s@]+@[^\s@]+\.[^\s@]+$'
TIME_PATTERN = r'^$|^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$'


class PropertySchema(BaseModel):
    """Field rules for a listing before it is stored"""
    model_config = ConfigDict(extra='allow')

    title: str = Field(min_length=1, max_length=200)
    apartment_type: Literal['apartment', 'house', 'studio', 'room', 'shared_apartment', 'other']
    category: Literal['rental', 'sale', 'short_term', 'long_term']
    street_name: str = Field(min_length=1, max_length=100)
    city: str = Field(min_length=1, max_length=50)
    status: Optional[Literal['draft', 'published', 'synced']] = None

    street_number: Optional[str] = Field(default=None, max_length=20)
    zip_code: Optional[str] = Field(default=None, max_length=20)
    country: Optional[str] = Field(default=None, max_length=50)
    region: Optional[str] = Field(default=None, max_length=50)

    monthly_rent: Optional[float] = Field(default=None, ge=0, le=999999)
    weekly_rate: Optional[float] = Field(default=None, ge=0, le=999999)
    daily_rate: Optional[float] = Field(default=None, ge=0, le=9999)
    bedrooms: Optional[int] = Field(default=None, ge=0, le=50)
    bathrooms: Optional[int] = Field(default=None, ge=0, le=50)
    max_guests: Optional[int] = Field(default=None, ge=1, le=100)
    square_meters: Optional[float] = Field(default=None, ge=1, le=10000)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)

    landlord_email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)
    description: Optional[str] = Field(default=None, max_length=5000)
    house_rules: Optional[str] = Field(default=None, max_length=2000)
    provides_wgsb: Optional[bool] = None
    checkin_time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    checkout_time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)


def _schema_message(error: Dict[str, Any], field_name: str) -> str:
    if error['type'] == 'missing':
        return f"{field_name.replace('_', ' ').capitalize()} is required"
    return error['msg']


def validate_property_data(data: Dict[str, Any], row_number: int) -> ValidationResult:
    """Sanitise a listing and check it against :class:`PropertySchema` and business rules"""
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []
    sanitized = sanitize_property_input(data)

    try:
        PropertySchema.model_validate(sanitized)
    except SchemaError as e:
        for error in e.errors():
            field_name = '.'.join(str(part) for part in error['loc'])
            value = None if error['type'] == 'missing' else error.get('input')
            errors.append(ValidationIssue(row_number, field_name, _schema_message(error, field_name), value))

    checkin = _parse_minutes(sanitized.get('checkin_time'))
    checkout = _parse_minutes(sanitized.get('checkout_time'))
    if checkin is not None and checkout is not None and checkout <= checkin:
        warnings.append(ValidationIssue(
            row_number, 'checkout_time', 'Check-out time should be after check-in time', severity='warning'
        ))

    daily = sanitized.get('daily_rate')
    weekly = sanitized.get('weekly_rate')
    if _is_number(daily) and _is_number(weekly) and daily and weekly:
        expected = daily * 7
        if abs(weekly - expected) > expected * 0.1:
            warnings.append(ValidationIssue(
                row_number, 'weekly_rate', "Weekly rate doesn't match daily rate calculation", severity='warning'
            ))

    return ValidationResult(not errors, errors, warnings, sanitized)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def strip_html(value: str, allowed_tags=()) -> str:
    """Remove markup; script and style elements go together with their content"""
    if '<' not in value:
        return value
    soup = BeautifulSoup(value, 'html.parser')
    for tag in soup(['script', 'style']):
        tag.decompose()
    if not allowed_tags:
        return soup.get_text()
    for tag in soup.find_all(True):
        if tag.name in allowed_tags:
            tag.attrs = {}
        else:
            tag.unwrap()
    return str(soup)


def sanitize_property_input(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Clean user supplied listing data.

    Strings lose their markup (description and house rules keep simple
    formatting tags) and surrounding whitespace. Numeric fields are
    converted; values that cannot be converted are left as they are so that
    validation reports them. Boolean-looking strings become booleans.
    """
    sanitized = dict(data)

    for key, value in sanitized.items():
        if _is_number(value) and (key in REQUIRED_FIELDS or key in OPTIONAL_STRING_FIELDS):
            sanitized[key] = value = _format_number(value)
        if isinstance(value, str):
            allowed = ALLOWED_HTML_TAGS if key in HTML_FIELDS else ()
            sanitized[key] = strip_html(value, allowed).strip()

    for name in NUMERIC_FIELDS:
        value = sanitized.get(name)
        if value is None:
            continue
        if value == '':
            sanitized[name] = None
            continue
        converted = convert_to_numeric(value, name)
        if converted is not None:
            if name in ('bedrooms', 'bathrooms', 'max_guests') and float(converted).is_integer():
                converted = int(converted)
            sanitized[name] = converted

    for key, value in sanitized.items():
        if key == 'provides_wgsb':
            sanitized[key] = convert_to_boolean_ex(value)
        elif key not in NUMERIC_FIELDS and isinstance(value, str) \
                and value.lower() in ('true', 'false', 'yes', 'no') \
                and key not in REQUIRED_FIELDS and key not in OPTIONAL_STRING_FIELDS:
            sanitized[key] = value.lower() in ('true', 'yes')

    return sanitized


# ==================== PREVIEW PAGING ====================

def paginate_rows(rows: List[Dict[str, Any]], page: int = 1, page_size: int = 50) -> RowPage:
    """One page of parsed rows for the import preview"""
    page_size = max(1, int(page_size))
    total = len(rows)
    total_pages = max(1, math.ceil(total / page_size))
    page = min(max(1, int(page)), total_pages)
    start = (page - 1) * page_size
    return RowPage(rows[start:start + page_size], page, page_size, total, total_pages)
