"""
Leasy - JSON API for managing rental listings
"""
import json
import logging
from datetime import datetime, timedelta
from functools import wraps
from pathlib import Path

from flask import Flask, Blueprint, Response, request, jsonify, session, g
from sqlalchemy import func
from werkzeug.exceptions import HTTPException

from .config import settings
from .database import db, User, Property, PropertyMedia, DuplicateGroup, DetectionSetting, ErrorLog, SystemMeta
from .duplicates import (
    DuplicateDetectionConfig, DuplicateDetectionService, load_config, scan_user_portfolio,
    save_duplicate_groups, get_pending_groups, merge_duplicate_properties, dismiss_duplicate_group,
    check_for_merged_duplicate, cleanup_exact_duplicates
)
from .errors import LeasyError, ValidationError, NotFoundError, PermissionDeniedError, DuplicateListingError
from .imports import (
    validate_property_data, auto_detect_mappings, mapping_to_dict, missing_required_fields,
    load_saved_mappings, process_rows_with_fallback, paginate_rows, sanitize_property_input, STANDARD_FIELDS
)
from .models import PropertyForDetection, DuplicateStatus, GroupStatus, MediaType
from .services.error_logging import log_error, get_error_stats, cleanup_old_errors, CATEGORIES
from .utils.bulk_operations import BulkImportManager, read_csv_rows, read_excel_rows
from .utils.exports import EXPORT_FORMATS, MIME_TYPES, export_listings, import_template

LOGGER = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {'csv', 'xlsx', 'json'}

api = Blueprint('api', __name__)


def configure_logging(level=None):
    """Send log records to stderr at LOG_LEVEL"""
    root = logging.getLogger()
    if not any(getattr(h, '_leasy', False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('[%(levelname)s] %(name)s: %(message)s'))
        handler._leasy = True
        root.addHandler(handler)
    root.setLevel((level or settings.LOG_LEVEL).upper())


def create_app(config_overrides=None):
    """
    Build the Flask application

    Args:
        config_overrides: Flask config values applied after the defaults
                          (tests pass an in-memory SQLALCHEMY_DATABASE_URI)
    """
    configure_logging()

    app = Flask(__name__)
    app.secret_key = settings.SECRET_KEY
    app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(days=7)
    app.config['SQLALCHEMY_DATABASE_URI'] = settings.database_uri
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['MAX_CONTENT_LENGTH'] = settings.MAX_CONTENT_LENGTH_MB * 1024 * 1024
    if not settings.is_sqlite:
        app.config['SQLALCHEMY_ENGINE_OPTIONS'] = {
            'pool_pre_ping': True,
            'pool_recycle': 300,
        }
    app.config.update(config_overrides or {})

    uri = app.config['SQLALCHEMY_DATABASE_URI']
    if uri.startswith('sqlite:///') and ':memory:' not in uri:
        Path(uri[len('sqlite:///'):]).parent.mkdir(parents=True, exist_ok=True)

    db.init_app(app)
    register_error_handlers(app)
    app.register_blueprint(api)

    with app.app_context():
        db.create_all()
        ensure_admin_user()
        LOGGER.info("[STARTUP] %s %s ready (database: %s)",
                    settings.APP_NAME, settings.APP_VERSION, 'sqlite' if uri.startswith('sqlite') else 'postgresql')

    return app


def ensure_admin_user():
    """Create the default admin account on first start"""
    if User.query.filter_by(role='admin').first():
        return None
    admin = User(email=settings.ADMIN_EMAIL.lower(), name='Administrator', role='admin')
    admin.set_password(settings.ADMIN_PASSWORD)
    db.session.add(admin)
    db.session.commit()
    LOGGER.info("[STARTUP] Created admin user %s", admin.email)
    return admin


# ==================== ERROR HANDLERS ====================

def register_error_handlers(app):

    @app.errorhandler(LeasyError)
    def handle_leasy_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({'error': e.description, 'success': False}), e.code

    @app.errorhandler(Exception)
    def handle_exception(e):
        """Log all unhandled exceptions"""
        LOGGER.exception("Unhandled exception: %s: %s", type(e).__name__, e)
        db.session.rollback()
        log_error(e, context={'path': request.path, 'method': request.method},
                  user_id=session.get('user_id'), url=request.url,
                  user_agent=request.headers.get('User-Agent'))
        return jsonify({
            'error': f'{type(e).__name__}: {str(e)}',
            'success': False
        }), 500


# ==================== AUTHENTICATION ====================

def get_current_user():
    """Get the currently logged-in user"""
    if 'user_id' in session:
        return db.session.get(User, session['user_id'])
    return None


def login_required(f):
    """Decorator to require login for a route"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'user_id' not in session:
            return jsonify({'error': 'Authentication required', 'success': False}), 401

        user = db.session.get(User, session['user_id'])
        if not user or not user.is_active:
            session.clear()
            return jsonify({'error': 'Your session has expired. Please log in again.', 'success': False}), 401

        g.user = user
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """Decorator to require an admin user"""
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        if not g.user.is_admin:
            return jsonify({'error': 'Admin access required', 'success': False}), 403
        return f(*args, **kwargs)
    return decorated_function


@api.before_app_request
def load_user():
    """Load user before each request"""
    g.user = get_current_user()


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _flag(value):
    if isinstance(value, bool):
        return value
    return str(value or '').lower() in ('1', 'true', 'yes', 'on')


def _int_value(value, name):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{name} must be an integer')


def _export_format():
    fmt = (request.args.get('format') or 'xlsx').lower()
    if fmt not in EXPORT_FORMATS:
        raise ValidationError(f"format must be one of: {', '.join(EXPORT_FORMATS)}")
    return fmt


def _download(content, filename, fmt):
    return Response(content, mimetype=MIME_TYPES[fmt],
                    headers={'Content-Disposition': f'attachment; filename={filename}.{fmt}'})


@api.route('/api/auth/login', methods=['POST'])
def api_login():
    """Log in with email and password"""
    data = _json_body()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(password):
        raise LeasyError('Invalid email or password.', 401)
    if not user.is_active:
        raise PermissionDeniedError('Your account has been deactivated. Contact an administrator.')

    session.clear()
    session['user_id'] = user.id
    if data.get('remember'):
        session.permanent = True

    user.last_login = datetime.utcnow()
    db.session.commit()
    LOGGER.info("user %s logged in", user.email)

    return jsonify({'success': True, 'data': user.to_dict()})


@api.route('/api/auth/logout', methods=['POST'])
def api_logout():
    """Logout the user"""
    session.clear()
    return jsonify({'success': True, 'message': 'Logged out'})


@api.route('/api/auth/me', methods=['GET'])
@login_required
def api_me():
    return jsonify({'success': True, 'data': g.user.to_dict()})


# ==================== PROPERTIES ====================

def _get_owned_property(property_id):
    prop = db.session.get(Property, property_id)
    if prop is None:
        raise NotFoundError(f'Property {property_id} not found')
    if prop.user_id != g.user.id and not g.user.is_admin:
        raise PermissionDeniedError('You do not have access to this property')
    return prop


def _detector():
    return DuplicateDetectionService(load_config())


def _replace_media(prop, urls, media_type):
    for media in [m for m in prop.media if m.media_type == media_type.value]:
        prop.media.remove(media)
    order = max([m.sort_order or 0 for m in prop.media] + [-1]) + 1
    for url in urls:
        prop.media.append(PropertyMedia(url=url, media_type=media_type.value, sort_order=order))
        order += 1


@api.route('/api/properties', methods=['GET'])
@login_required
def api_list_properties():
    """List the user's properties (admins may pass all=true)"""
    page = request.args.get('page', 1, type=int)
    per_page = min(request.args.get('per_page', 25, type=int), 100)
    status = request.args.get('status')

    query = Property.query
    if not (g.user.is_admin and _flag(request.args.get('all'))):
        query = query.filter_by(user_id=g.user.id)
    if status:
        query = query.filter_by(status=status)

    query = query.order_by(Property.updated_at.desc())
    pagination = query.paginate(page=page, per_page=per_page, error_out=False)

    return jsonify({
        'success': True,
        'data': [p.to_dict() for p in pagination.items],
        'meta': {
            'current_page': pagination.page,
            'last_page': pagination.pages,
            'per_page': per_page,
            'total': pagination.total
        }
    })


@api.route('/api/properties', methods=['POST'])
@login_required
def api_create_property():
    """
    Create a property

    The listing is checked against the user's existing listings first; a
    match above the duplicate threshold is rejected with 409 unless the
    request sets ``force``.
    """
    data = _json_body()
    force = _flag(data.pop('force', False))

    validation = validate_property_data(data, 1)
    if not validation.is_valid:
        raise ValidationError('Validation failed', payload={
            'errors': [e.to_dict() for e in validation.errors],
            'warnings': [w.to_dict() for w in validation.warnings],
        })

    clean = validation.sanitized_data
    clean.setdefault('source', 'manual')

    matches = []
    if not force:
        if check_for_merged_duplicate(clean):
            raise DuplicateListingError('This listing was previously merged into another listing',
                                        payload={'merged': True})
        matches = _detector().find_duplicates_for_user(PropertyForDetection.from_dict(clean), g.user.id)
        duplicates = [m for m in matches if m.status == DuplicateStatus.DUPLICATE]
        if duplicates:
            raise DuplicateListingError(duplicates[0].suggestion, payload={
                'matches': [m.to_dict() for m in duplicates]
            })

    prop = Property.from_dict(clean, g.user.id)
    db.session.add(prop)
    db.session.commit()
    LOGGER.info("property %s created by user %s", prop.id, g.user.id)

    return jsonify({
        'success': True,
        'data': prop.to_dict(),
        'warnings': [w.to_dict() for w in validation.warnings],
        'potential_duplicates': [m.to_dict() for m in matches],
    }), 201


@api.route('/api/properties/export', methods=['GET'])
@login_required
def api_export_properties():
    """Download the user's listings as an Excel workbook or CSV file"""
    fmt = _export_format()
    query = Property.query
    if not (g.user.is_admin and _flag(request.args.get('all'))):
        query = query.filter_by(user_id=g.user.id)
    if request.args.get('status'):
        query = query.filter_by(status=request.args['status'])

    properties = query.order_by(Property.created_at, Property.id).all()
    LOGGER.info("user %s exported %d listings as %s", g.user.id, len(properties), fmt)
    return _download(export_listings(properties, fmt), 'properties', fmt)


@api.route('/api/properties/<int:property_id>', methods=['GET'])
@login_required
def api_get_property(property_id):
    prop = _get_owned_property(property_id)
    return jsonify({'success': True, 'data': prop.to_dict()})


@api.route('/api/properties/<int:property_id>', methods=['PUT', 'PATCH'])
@login_required
def api_update_property(property_id):
    """Update a property; fields not sent keep their values"""
    prop = _get_owned_property(property_id)
    data = _json_body()

    merged = {**prop.to_dict(include_media=False), **data}
    validation = validate_property_data(merged, 1)
    if not validation.is_valid:
        raise ValidationError('Validation failed', payload={
            'errors': [e.to_dict() for e in validation.errors],
        })

    clean = validation.sanitized_data
    prop.apply({k: clean[k] for k in data if k in Property.EDITABLE_FIELDS})
    if 'photos' in data:
        _replace_media(prop, data.get('photos') or [], MediaType.PHOTO)
    if 'floorplans' in data:
        _replace_media(prop, data.get('floorplans') or [], MediaType.FLOORPLAN)
    prop.updated_at = datetime.utcnow()
    db.session.commit()

    return jsonify({
        'success': True,
        'data': prop.to_dict(),
        'warnings': [w.to_dict() for w in validation.warnings],
    })


@api.route('/api/properties/<int:property_id>', methods=['DELETE'])
@login_required
def api_delete_property(property_id):
    prop = _get_owned_property(property_id)
    db.session.delete(prop)
    db.session.commit()
    return jsonify({'success': True, 'message': 'Property deleted'})


# ==================== IMPORT ====================

def _uploaded_file():
    if 'file' not in request.files:
        raise ValidationError('No file provided')
    file = request.files['file']
    if file.filename == '':
        raise ValidationError('No file selected')
    extension = file.filename.rsplit('.', 1)[-1].lower() if '.' in file.filename else ''
    if extension not in ALLOWED_EXTENSIONS:
        raise ValidationError('Invalid file type. Use CSV, Excel (.xlsx) or JSON')
    return file, extension


def _read_table(file, extension):
    if extension == 'xlsx':
        return read_excel_rows(file.stream)
    return read_csv_rows(file.stream, request.form.get('delimiter', ','))


def _mapping_from_form():
    raw = request.form.get('mapping')
    if not raw:
        return None
    try:
        mapping = json.loads(raw)
    except json.JSONDecodeError:
        raise ValidationError('mapping must be a JSON object')
    if not isinstance(mapping, dict):
        raise ValidationError('mapping must be a JSON object')
    return mapping


@api.route('/api/import/fields', methods=['GET'])
@login_required
def api_import_fields():
    return jsonify({'success': True, 'data': STANDARD_FIELDS})


@api.route('/api/import/template', methods=['GET'])
@login_required
def api_import_template():
    """Sample spreadsheet with one row per standard column"""
    fmt = _export_format()
    return _download(import_template(fmt), 'leasy_properties_template', fmt)


@api.route('/api/import/preview', methods=['POST'])
@login_required
def api_import_preview():
    """Headers, suggested column mapping and one page of rows from a CSV or Excel upload"""
    file, extension = _uploaded_file()
    if extension == 'json':
        raise ValidationError('Preview is only available for CSV and Excel files')

    headers, rows = _read_table(file, extension)
    suggestions = auto_detect_mappings(headers, load_saved_mappings(g.user.id, headers))
    mapping = _mapping_from_form() or mapping_to_dict(suggestions)

    page = paginate_rows(rows, request.form.get('page', 1, type=int),
                         request.form.get('page_size', settings.CSV_PAGE_SIZE, type=int))
    processing = process_rows_with_fallback(page.rows, mapping)

    return jsonify({
        'success': True,
        'data': {
            'headers': headers,
            'mappings': [m.to_dict() for m in suggestions],
            'mapping': mapping,
            'missing_required_fields': missing_required_fields(mapping),
            'page': page.to_dict(),
            'validation': {
                'valid_rows': len(processing.valid_rows),
                'errors': [e.to_dict() for e in processing.errors],
                'warnings': [w.to_dict() for w in processing.warnings],
            },
        }
    })


@api.route('/api/import/csv', methods=['POST'])
@login_required
def api_import_file():
    """Import listings from an uploaded CSV, Excel or JSON file"""
    file, extension = _uploaded_file()
    manager = BulkImportManager(g.user, _detector(), _flag(request.form.get('allow_duplicates')))

    if extension == 'json':
        result = manager.import_from_json(file.stream, _mapping_from_form())
    elif extension == 'xlsx':
        result = manager.import_from_excel(file.stream, _mapping_from_form())
    else:
        result = manager.import_from_csv(file.stream, _mapping_from_form(), request.form.get('delimiter', ','))

    return jsonify({'success': True, **result.to_dict()})


@api.route('/api/import/rows', methods=['POST'])
@login_required
def api_import_rows():
    """Import listings from a JSON array of rows"""
    data = _json_body()
    rows = data.get('rows') or data.get('listings') or []
    if not rows:
        raise ValidationError('No rows provided')
    if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
        raise ValidationError('rows must be a list of objects')

    mapping = data.get('mapping') or {}
    manager = BulkImportManager(g.user, _detector(), _flag(data.get('allow_duplicates')))
    result = manager.import_rows(rows, mapping, source_name=data.get('source') or 'json')

    return jsonify({'success': True, **result.to_dict()})


# ==================== DUPLICATES ====================

@api.route('/api/duplicates/check', methods=['POST'])
@login_required
def api_check_duplicates():
    """Score a listing against the user's listings without saving it"""
    data = sanitize_property_input(_json_body())
    matches = _detector().find_duplicates_for_user(PropertyForDetection.from_dict(data), g.user.id)

    return jsonify({
        'success': True,
        'data': {
            'is_duplicate': any(m.status == DuplicateStatus.DUPLICATE for m in matches),
            'previously_merged': check_for_merged_duplicate(data),
            'matches': [m.to_dict() for m in matches],
        }
    })


@api.route('/api/duplicates/scan', methods=['POST'])
@login_required
def api_scan_duplicates():
    """Scan a portfolio for duplicate pairs and queue them for review"""
    data = _json_body()
    user_id = g.user.id
    if g.user.is_admin and data.get('user_id'):
        user_id = _int_value(data['user_id'], 'user_id')

    matches = scan_user_portfolio(user_id)
    groups = save_duplicate_groups(matches, g.user.id) if _flag(data.get('save', True)) else []

    return jsonify({
        'success': True,
        'data': {
            'matches': [m.to_dict() for m in matches],
            'groups_created': len(groups),
            'group_ids': [grp.id for grp in groups],
        }
    })


@api.route('/api/duplicates/groups', methods=['GET'])
@admin_required
def api_duplicate_groups():
    status = request.args.get('status', GroupStatus.PENDING.value)
    if status == GroupStatus.PENDING.value:
        groups = get_pending_groups()
    else:
        groups = (DuplicateGroup.query.filter_by(status=status)
                  .order_by(DuplicateGroup.reviewed_at.desc()).all())
    return jsonify({'success': True, 'data': [grp.to_dict() for grp in groups]})


@api.route('/api/duplicates/groups/<int:group_id>/merge', methods=['POST'])
@admin_required
def api_merge_group(group_id):
    data = _json_body()
    group = db.session.get(DuplicateGroup, group_id)
    if group is None:
        raise NotFoundError(f'Duplicate group {group_id} not found')

    target_id = data.get('target_property_id')
    if target_id is None:
        raise ValidationError('target_property_id is required')
    property_ids = data.get('property_ids') or group.property_ids()

    outcome = merge_duplicate_properties(group_id, _int_value(target_id, 'target_property_id'),
                                         [_int_value(i, 'property_ids') for i in property_ids],
                                         g.user.id, data.get('reason'))
    return jsonify({'success': True, 'data': outcome})


@api.route('/api/duplicates/groups/<int:group_id>/dismiss', methods=['POST'])
@admin_required
def api_dismiss_group(group_id):
    data = _json_body()
    group = dismiss_duplicate_group(group_id, g.user.id, data.get('notes'))
    return jsonify({'success': True, 'data': group.to_dict(include_properties=False)})


@api.route('/api/duplicates/cleanup', methods=['POST'])
@login_required
def api_cleanup_duplicates():
    """Remove exact duplicates (same title, street and city)"""
    data = _json_body()
    user_id = g.user.id
    if g.user.is_admin:
        if _flag(data.get('all')):
            user_id = None
        elif data.get('user_id'):
            user_id = _int_value(data['user_id'], 'user_id')

    outcome = cleanup_exact_duplicates(user_id, g.user.id)
    return jsonify({'success': True, 'data': outcome})


@api.route('/api/duplicates/settings', methods=['GET'])
@admin_required
def api_get_detection_settings():
    return jsonify({
        'success': True,
        'data': load_config().to_dict(),
        'defaults': DuplicateDetectionConfig().to_dict(),
    })


@api.route('/api/duplicates/settings', methods=['PUT', 'POST'])
@admin_required
def api_update_detection_settings():
    """Store weight and threshold overrides"""
    data = _json_body()
    config = load_config()
    try:
        config.update(**data)
    except (TypeError, ValueError) as e:
        raise ValidationError(str(e))

    for key in data:
        DetectionSetting.set(key, getattr(config, key), g.user.id)
    db.session.commit()

    return jsonify({'success': True, 'data': config.to_dict()})


# ==================== DASHBOARD ====================

@api.route('/api/dashboard/stats', methods=['GET'])
@login_required
def api_dashboard_stats():
    """Listing statistics for the dashboard"""
    base = Property.query.filter_by(user_id=g.user.id)

    by_status = {
        (status or 'unknown'): count for status, count in
        db.session.query(Property.status, func.count(Property.id))
        .filter(Property.user_id == g.user.id).group_by(Property.status).all()
    }
    top_cities = (
        db.session.query(Property.city, func.count(Property.id))
        .filter(Property.user_id == g.user.id, Property.city.isnot(None))
        .group_by(Property.city).order_by(func.count(Property.id).desc()).limit(5).all()
    )
    average_rent = (db.session.query(func.avg(Property.monthly_rent))
                    .filter(Property.user_id == g.user.id, Property.monthly_rent.isnot(None)).scalar())
    recent = base.order_by(Property.updated_at.desc()).limit(5).all()

    stats = {
        'total': base.count(),
        'published': by_status.get('published', 0),
        'draft': by_status.get('draft', 0),
        'synced': by_status.get('synced', 0),
        'by_status': by_status,
        'top_cities': [{'city': city, 'count': count} for city, count in top_cities],
        'average_rent': round(average_rent, 2) if average_rent is not None else None,
        'recent': [p.to_dict(include_media=False) for p in recent],
    }
    if g.user.is_admin:
        stats['pending_duplicate_groups'] = DuplicateGroup.query.filter_by(
            status=GroupStatus.PENDING.value).count()

    return jsonify({'success': True, 'data': stats})


# ==================== RESILIENCE ====================

@api.route('/api/errors', methods=['POST'])
def api_report_error():
    """Store an error reported by a client"""
    data = _json_body()
    message = (data.get('message') or '').strip()
    if not message:
        raise ValidationError('message is required')

    category = data.get('category')
    record = log_error(
        message,
        category if category in CATEGORIES else 'unknown',
        context=data.get('context') if isinstance(data.get('context'), dict) else {},
        user_id=session.get('user_id'),
        url=data.get('url') or request.referrer,
        user_agent=request.headers.get('User-Agent'),
        stack=data.get('stack'),
    )
    return jsonify({'success': True, 'data': record}), 201


@api.route('/api/errors', methods=['GET'])
@admin_required
def api_list_errors():
    page = request.args.get('page', 1, type=int)
    per_page = min(request.args.get('per_page', 50, type=int), 200)

    query = ErrorLog.query
    if request.args.get('severity'):
        query = query.filter_by(severity=request.args['severity'])
    if request.args.get('category'):
        query = query.filter_by(category=request.args['category'])
    pagination = query.order_by(ErrorLog.created_at.desc()).paginate(page=page, per_page=per_page, error_out=False)

    return jsonify({
        'success': True,
        'data': [e.to_dict() for e in pagination.items],
        'stats': get_error_stats(request.args.get('hours', 24, type=int)),
        'meta': {
            'current_page': pagination.page,
            'last_page': pagination.pages,
            'per_page': per_page,
            'total': pagination.total
        }
    })


@api.route('/api/errors', methods=['DELETE'])
@admin_required
def api_cleanup_errors():
    """Delete stored errors older than ``days``"""
    days = _int_value(request.args.get('days', settings.ERROR_LOG_RETENTION_DAYS), 'days')
    if days < 0:
        raise ValidationError('days must not be negative')
    deleted = cleanup_old_errors(days)
    LOGGER.info("removed %d error log entries older than %d days", deleted, days)
    return jsonify({'success': True, 'data': {'deleted_count': deleted, 'days': days}})


@api.route('/api/version', methods=['GET'])
def api_version():
    """
    Version check for cache busting

    Clients send the version they were built with; a mismatch with the
    published version means cached assets are stale.
    """
    current = settings.APP_VERSION
    published = SystemMeta.get('APP_VERSION') or current
    client_version = request.args.get('client_version')

    return jsonify({
        'success': True,
        'data': {
            'current_version': current,
            'published_version': published,
            'client_version': client_version,
            'update_available': published != current,
            'reload_required': bool(client_version) and client_version != published,
        }
    })


@api.route('/api/version', methods=['POST'])
@admin_required
def api_publish_version():
    data = _json_body()
    version = str(data.get('version') or settings.APP_VERSION)
    SystemMeta.set('APP_VERSION', version)
    LOGGER.info("published app version %s", version)
    return jsonify({'success': True, 'data': {'published_version': version}})


@api.route('/ping')
def ping():
    return 'pong', 200


@api.route('/health')
def health_check():
    """Health check endpoint"""
    try:
        db.session.execute(db.text('SELECT 1'))
        return jsonify({
            'status': 'healthy',
            'database': 'connected',
            'version': settings.APP_VERSION
        }), 200
    except Exception as e:
        LOGGER.error("health check failed: %s", e)
        return jsonify({
            'status': 'unhealthy',
            'error': str(e)
        }), 500
