"""Shared fixtures: an app on in-memory SQLite, a client and a regular user."""

import io

import pytest
from openpyxl import Workbook

from leasy.app import create_app
from leasy.config import settings
from leasy.database import db, User, Property


@pytest.fixture
def app():
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def session(app):
    return db.session


@pytest.fixture
def user(session):
    owner = User(email='owner@example.com', name='Owner', role='user')
    owner.set_password('secret')
    session.add(owner)
    session.commit()
    return owner


@pytest.fixture
def other_user(session):
    other = User(email='other@example.com', name='Other', role='user')
    other.set_password('secret')
    session.add(other)
    session.commit()
    return other


@pytest.fixture
def admin(session):
    return User.query.filter_by(email=settings.ADMIN_EMAIL.lower()).first()


@pytest.fixture
def login(client):
    """Log the test client in; returns the response"""
    def _login(email='owner@example.com', password='secret'):
        return client.post('/api/auth/login', json={'email': email, 'password': password})
    return _login


@pytest.fixture
def login_admin(login):
    def _login_admin():
        return login(settings.ADMIN_EMAIL, settings.ADMIN_PASSWORD)
    return _login_admin


def listing_data(**overrides):
    data = {
        'title': 'Bright two room flat',
        'apartment_type': 'apartment',
        'category': 'rental',
        'street_name': 'Main Street',
        'street_number': '5',
        'zip_code': '10115',
        'city': 'Berlin',
        'monthly_rent': 1200,
        'bedrooms': 2,
        'square_meters': 70,
        'latitude': 52.52,
        'longitude': 13.405,
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_property(session, user):
    """Store a listing for ``user`` (or the given owner)"""
    def _make(owner=None, **overrides):
        prop = Property.from_dict(listing_data(**overrides), (owner or user).id)
        session.add(prop)
        session.commit()
        return prop
    return _make


@pytest.fixture
def listing():
    """Factory for a valid listing payload"""
    return listing_data


def workbook_bytes(rows):
    """An .xlsx file whose first sheet holds ``rows`` (the first row is the header)"""
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def make_workbook():
    return workbook_bytes
