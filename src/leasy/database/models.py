"""
Database Models for Leasy property storage
"""
import json
from datetime import datetime
from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import generate_password_hash, check_password_hash

from ..models import ExistingProperty, MediaType

db = SQLAlchemy()


def _iso(value):
    return value.isoformat() if value else None


def _load_json(raw, default):
    if not raw:
        return default
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return default


# ==================== USER & AUTHENTICATION ====================

class User(db.Model):
    """Dashboard user"""
    __tablename__ = 'users'
    __table_args__ = (
        db.Index('idx_users_role', 'role'),
        db.Index('idx_users_is_active', 'is_active'),
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    role = db.Column(db.String(20), default='user')  # admin, user
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    last_login = db.Column(db.DateTime)

    properties = db.relationship('Property', backref='owner', lazy='dynamic')

    def set_password(self, password):
        """Hash and set the user's password"""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        """Verify the user's password"""
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self):
        return self.role == 'admin'

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'role': self.role,
            'is_active': self.is_active,
            'created_at': _iso(self.created_at),
            'last_login': _iso(self.last_login),
        }


# ==================== PROPERTIES ====================

class Property(db.Model):
    """A rental listing"""
    __tablename__ = 'properties'
    __table_args__ = (
        db.Index('idx_properties_user_id', 'user_id'),
        db.Index('idx_properties_status', 'status'),
        db.Index('idx_properties_city', 'city'),
        db.Index('idx_properties_zip_code', 'zip_code'),
        db.Index('idx_properties_created_at', 'created_at'),
        db.Index('idx_properties_user_status', 'user_id', 'status'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)

    # Core details
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    apartment_type = db.Column(db.String(30))
    category = db.Column(db.String(30))
    status = db.Column(db.String(20), default='draft')  # draft, published, synced
    source = db.Column(db.String(50))  # manual, csv, json

    # Address
    street_number = db.Column(db.String(20))
    street_name = db.Column(db.String(100))
    zip_code = db.Column(db.String(20))
    city = db.Column(db.String(50))
    region = db.Column(db.String(50))
    country = db.Column(db.String(50), default='Germany')
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)

    # Rental fees
    monthly_rent = db.Column(db.Float)
    weekly_rate = db.Column(db.Float)
    daily_rate = db.Column(db.Float)

    # Specifications
    bedrooms = db.Column(db.Integer)
    bathrooms = db.Column(db.Integer)
    max_guests = db.Column(db.Integer)
    square_meters = db.Column(db.Float)

    # Terms
    checkin_time = db.Column(db.String(5))
    checkout_time = db.Column(db.String(5))
    house_rules = db.Column(db.Text)
    provides_wgsb = db.Column(db.Boolean, default=False)
    landlord_email = db.Column(db.String(120))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    media = db.relationship('PropertyMedia', backref='property', lazy=True,
                            cascade='all, delete-orphan', order_by='PropertyMedia.sort_order')
    fees = db.relationship('PropertyFee', backref='property', lazy=True, cascade='all, delete-orphan')

    EDITABLE_FIELDS = (
        'title', 'description', 'apartment_type', 'category', 'status', 'source',
        'street_number', 'street_name', 'zip_code', 'city', 'region', 'country',
        'latitude', 'longitude', 'monthly_rent', 'weekly_rate', 'daily_rate',
        'bedrooms', 'bathrooms', 'max_guests', 'square_meters', 'checkin_time',
        'checkout_time', 'house_rules', 'provides_wgsb', 'landlord_email',
    )

    def photo_urls(self):
        return [m.url for m in self.media if m.media_type == MediaType.PHOTO.value]

    def floorplan_urls(self):
        return [m.url for m in self.media if m.media_type == MediaType.FLOORPLAN.value]

    def to_dict(self, include_media=True):
        """Convert to dictionary"""
        data = {'id': self.id, 'user_id': self.user_id}
        for name in self.EDITABLE_FIELDS:
            data[name] = getattr(self, name)
        data['created_at'] = _iso(self.created_at)
        data['updated_at'] = _iso(self.updated_at)
        if include_media:
            data['photos'] = self.photo_urls()
            data['floorplans'] = self.floorplan_urls()
            data['fees'] = [f.to_dict() for f in self.fees]
        return data

    def to_detection(self):
        """Build the detection view of this listing"""
        return ExistingProperty(
            id=self.id,
            created_at=_iso(self.created_at),
            title=self.title or '',
            street_name=self.street_name,
            street_number=self.street_number,
            zip_code=self.zip_code,
            city=self.city,
            monthly_rent=self.monthly_rent,
            bedrooms=self.bedrooms,
            bathrooms=self.bathrooms,
            square_meters=self.square_meters,
            source=self.source,
            photos=self.photo_urls(),
            latitude=self.latitude,
            longitude=self.longitude,
        )

    def apply(self, data):
        """Copy editable fields from a dictionary"""
        for name in self.EDITABLE_FIELDS:
            if name in data:
                setattr(self, name, data[name])
        return self

    @classmethod
    def from_dict(cls, data, user_id):
        """Create from a validated row; media URLs become PropertyMedia rows"""
        prop = cls(user_id=user_id).apply(data)
        if not prop.status:
            prop.status = 'draft'
        photos = data.get('photos') or data.get('image_urls') or []
        floorplans = data.get('floorplans') or data.get('floorplan_urls') or []
        if isinstance(photos, str):
            photos = [u.strip() for u in photos.split(',') if u.strip()]
        if isinstance(floorplans, str):
            floorplans = [u.strip() for u in floorplans.split(',') if u.strip()]
        order = 0
        for url in photos:
            prop.media.append(PropertyMedia(url=url, media_type=MediaType.PHOTO.value, sort_order=order))
            order += 1
        for url in floorplans:
            prop.media.append(PropertyMedia(url=url, media_type=MediaType.FLOORPLAN.value, sort_order=order))
            order += 1
        return prop


class PropertyMedia(db.Model):
    __tablename__ = 'property_media'

    id = db.Column(db.Integer, primary_key=True)
    property_id = db.Column(db.Integer, db.ForeignKey('properties.id', ondelete='CASCADE'),
                            nullable=False, index=True)
    url = db.Column(db.Text, nullable=False)
    title = db.Column(db.String(200))
    category = db.Column(db.String(50))
    media_type = db.Column(db.String(20), nullable=False)  # photo, floorplan, video
    sort_order = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'property_id': self.property_id,
            'url': self.url,
            'title': self.title,
            'category': self.category,
            'media_type': self.media_type,
            'sort_order': self.sort_order,
        }


class PropertyFee(db.Model):
    __tablename__ = 'property_fees'

    id = db.Column(db.Integer, primary_key=True)
    property_id = db.Column(db.Integer, db.ForeignKey('properties.id', ondelete='CASCADE'),
                            nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    frequency = db.Column(db.String(20), nullable=False)  # monthly, weekly, one-time
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'amount': self.amount, 'frequency': self.frequency}


# ==================== DUPLICATE DETECTION ====================

class DuplicateGroup(db.Model):
    """A set of listings flagged as likely duplicates, awaiting review"""
    __tablename__ = 'duplicate_groups'
    __table_args__ = (
        db.Index('idx_duplicate_groups_status', 'status'),
    )

    id = db.Column(db.Integer, primary_key=True)
    confidence_score = db.Column(db.Float, nullable=False)
    status = db.Column(db.String(20), nullable=False, default='pending')  # pending, reviewed, merged, dismissed
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    reviewed_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    reviewed_at = db.Column(db.DateTime)
    merge_target_property_id = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text)

    members = db.relationship('DuplicateGroupProperty', backref='group', lazy=True,
                              cascade='all, delete-orphan')

    def property_ids(self):
        return [m.property_id for m in self.members]

    def to_dict(self, include_properties=True):
        data = {
            'id': self.id,
            'confidence_score': self.confidence_score,
            'status': self.status,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
            'reviewed_by': self.reviewed_by,
            'reviewed_at': _iso(self.reviewed_at),
            'merge_target_property_id': self.merge_target_property_id,
            'notes': self.notes,
            'property_ids': self.property_ids(),
        }
        if include_properties:
            data['properties'] = [
                {**m.property.to_dict(), 'similarity_reasons': m.get_reasons()}
                for m in self.members if m.property is not None
            ]
        return data


class DuplicateGroupProperty(db.Model):
    __tablename__ = 'duplicate_group_properties'
    __table_args__ = (
        db.UniqueConstraint('duplicate_group_id', 'property_id', name='uq_duplicate_group_property'),
    )

    id = db.Column(db.Integer, primary_key=True)
    duplicate_group_id = db.Column(db.Integer, db.ForeignKey('duplicate_groups.id', ondelete='CASCADE'),
                                   nullable=False)
    property_id = db.Column(db.Integer, db.ForeignKey('properties.id', ondelete='CASCADE'), nullable=False)
    similarity_reasons = db.Column(db.Text, default='[]')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    property = db.relationship('Property')

    def get_reasons(self):
        return _load_json(self.similarity_reasons, [])

    def set_reasons(self, reasons):
        self.similarity_reasons = json.dumps(reasons or [])


class DuplicateDetectionLog(db.Model):
    """Audit trail for scan, merge and dismiss actions"""
    __tablename__ = 'duplicate_detection_log'

    id = db.Column(db.Integer, primary_key=True)
    action_type = db.Column(db.String(20), nullable=False)  # scan, merge, dismiss, cleanup
    duplicate_group_id = db.Column(db.Integer, nullable=True)
    admin_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    affected_properties = db.Column(db.Text, default='[]')
    details = db.Column(db.Text, default='{}')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'action_type': self.action_type,
            'duplicate_group_id': self.duplicate_group_id,
            'admin_user_id': self.admin_user_id,
            'affected_properties': _load_json(self.affected_properties, []),
            'details': _load_json(self.details, {}),
            'created_at': _iso(self.created_at),
        }


class MergedPropertyTracking(db.Model):
    """Fingerprints of merged listings, so they are not re-imported"""
    __tablename__ = 'merged_properties_tracking'

    id = db.Column(db.Integer, primary_key=True)
    original_property_id = db.Column(db.Integer, nullable=False)
    target_property_id = db.Column(db.Integer, nullable=False)
    merge_date = db.Column(db.DateTime, default=datetime.utcnow)
    merged_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    original_data = db.Column(db.Text, nullable=False)
    merge_reason = db.Column(db.Text)
    fingerprint = db.Column(db.String(32), nullable=False, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'original_property_id': self.original_property_id,
            'target_property_id': self.target_property_id,
            'merge_date': _iso(self.merge_date),
            'merged_by': self.merged_by,
            'original_data': _load_json(self.original_data, {}),
            'merge_reason': self.merge_reason,
            'fingerprint': self.fingerprint,
        }


class DuplicateFalsePositive(db.Model):
    """A pair of listings an admin confirmed are not duplicates"""
    __tablename__ = 'duplicate_false_positives'
    __table_args__ = (
        db.UniqueConstraint('property_id_1', 'property_id_2', name='uq_false_positive_pair'),
    )

    id = db.Column(db.Integer, primary_key=True)
    property_id_1 = db.Column(db.Integer, nullable=False)
    property_id_2 = db.Column(db.Integer, nullable=False)
    marked_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @staticmethod
    def ordered(id_a, id_b):
        return (id_a, id_b) if id_a <= id_b else (id_b, id_a)

    @classmethod
    def pair_set(cls):
        """All stored pairs as ordered tuples"""
        return {(fp.property_id_1, fp.property_id_2) for fp in cls.query.all()}

    @classmethod
    def mark(cls, id_a, id_b, user_id=None):
        first, second = cls.ordered(id_a, id_b)
        existing = cls.query.filter_by(property_id_1=first, property_id_2=second).first()
        if existing:
            return existing
        entry = cls(property_id_1=first, property_id_2=second, marked_by=user_id)
        db.session.add(entry)
        return entry


class PropertyMediaHash(db.Model):
    """Cached perceptual hash of a listing image"""
    __tablename__ = 'property_media_hashes'
    __table_args__ = (
        db.UniqueConstraint('property_id', 'media_url', name='uq_media_hash_property_url'),
    )

    id = db.Column(db.Integer, primary_key=True)
    property_id = db.Column(db.Integer, db.ForeignKey('properties.id', ondelete='CASCADE'), nullable=False)
    media_url = db.Column(db.Text, nullable=False)
    hash_value = db.Column(db.String(512), nullable=False)
    hash_type = db.Column(db.String(20), nullable=False, default='dhash')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class DetectionSetting(db.Model):
    """Admin overrides for duplicate detection weights and thresholds"""
    __tablename__ = 'detection_settings'

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False)
    value = db.Column(db.Text)
    updated_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @classmethod
    def get_all(cls):
        """Stored overrides as a {key: value} dict, values JSON-decoded"""
        return {s.key: _load_json(s.value, s.value) for s in cls.query.all()}

    @classmethod
    def set(cls, key, value, user_id=None):
        setting = cls.query.filter_by(key=key).first()
        if not setting:
            setting = cls(key=key)
            db.session.add(setting)
        setting.value = json.dumps(value)
        setting.updated_by = user_id
        return setting


# ==================== IMPORT SUPPORT ====================

class FieldMappingMemory(db.Model):
    """Learned CSV header -> listing field mappings per user"""
    __tablename__ = 'field_mapping_memory'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'document_field_pattern', name='uq_mapping_user_pattern'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    document_field_name = db.Column(db.String(200), nullable=False)
    document_field_pattern = db.Column(db.String(200), nullable=False)
    mapped_field_key = db.Column(db.String(100), nullable=False)
    confidence_score = db.Column(db.Float, nullable=False, default=1.0)
    usage_count = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'document_field_name': self.document_field_name,
            'mapped_field_key': self.mapped_field_key,
            'confidence_score': self.confidence_score,
            'usage_count': self.usage_count,
        }


# ==================== RESILIENCE ====================

class ErrorLog(db.Model):
    """Server and client-reported runtime errors"""
    __tablename__ = 'error_logs'
    __table_args__ = (
        db.Index('idx_error_logs_created_at', 'created_at'),
        db.Index('idx_error_logs_user_id', 'user_id'),
    )

    id = db.Column(db.Integer, primary_key=True)
    message = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(30), default='unknown')
    severity = db.Column(db.String(10), default='medium')
    recoverable = db.Column(db.Boolean, default=True)
    stack = db.Column(db.Text)
    context = db.Column(db.Text)
    user_agent = db.Column(db.String(300))
    url = db.Column(db.String(500))
    user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'message': self.message,
            'category': self.category,
            'severity': self.severity,
            'recoverable': self.recoverable,
            'stack': self.stack,
            'context': _load_json(self.context, {}),
            'user_agent': self.user_agent,
            'url': self.url,
            'user_id': self.user_id,
            'created_at': _iso(self.created_at),
        }


class SystemMeta(db.Model):
    """Key/value metadata such as the published app version"""
    __tablename__ = 'system_meta'

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False)
    value = db.Column(db.Text)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @classmethod
    def get(cls, key, default=None):
        entry = cls.query.filter_by(key=key).first()
        return entry.value if entry else default

    @classmethod
    def set(cls, key, value):
        entry = cls.query.filter_by(key=key).first()
        if not entry:
            entry = cls(key=key)
            db.session.add(entry)
        entry.value = str(value) if value is not None else ''
        db.session.commit()
        return entry
