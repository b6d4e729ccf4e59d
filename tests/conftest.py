import sqlite3
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import jwt
import pytest
from sqlalchemy import event
from sqlalchemy.engine import Engine

from app import create_app, db
from app.models import Contractor, Profile, Submission
from config import TestingConfig


@event.listens_for(Engine, 'connect')
def _enforce_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores REFERENCES unless asked; PostgreSQL always enforces them
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()


@pytest.fixture
def app(tmp_path):
    class Config(TestingConfig):
        UPLOAD_FOLDER = str(tmp_path)

    app = create_app(Config)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def repository(app):
    return app.extensions['submission_repository']


@pytest.fixture
def users(app):
    admin = Profile(email='admin@intellibus.com', full_name='Ada Admin', role='admin')
    manager = Profile(email='manager@intellibus.com', full_name='Max Manager', role='manager')
    other_manager = Profile(email='other.manager@intellibus.com', full_name='Olive Other', role='manager')
    contractor = Profile(email='casey@intellibus.com', full_name='Casey Contractor', role='contractor')
    other_contractor = Profile(email='devon@intellibus.com', full_name='Devon Dev', role='contractor')
    db.session.add_all([admin, manager, other_manager, contractor, other_contractor])
    db.session.flush()

    db.session.add_all([
        Contractor(
            contractor_id=contractor.id,
            manager_id=manager.id,
            rate_type='hourly',
            hourly_rate=100,
            overtime_rate=150,
            default_project_name='Portal Build'
        ),
        Contractor(
            contractor_id=other_contractor.id,
            manager_id=other_manager.id,
            rate_type='hourly',
            hourly_rate=80,
            overtime_rate=120
        ),
    ])
    db.session.commit()
    return SimpleNamespace(
        admin=admin,
        manager=manager,
        other_manager=other_manager,
        contractor=contractor,
        other_contractor=other_contractor
    )


@pytest.fixture
def viewer():
    def _viewer(profile):
        return {'id': profile.id, 'role': profile.role, 'email': profile.email, 'full_name': profile.full_name}
    return _viewer


@pytest.fixture
def make_token(app):
    def _make(subject, email=None, expires_in=3600, secret=None, audience='authenticated'):
        payload = {
            'sub': subject,
            'exp': datetime.now(timezone.utc) + timedelta(seconds=expires_in),
            'aud': audience,
        }
        if email:
            payload['email'] = email
        return jwt.encode(payload, secret or app.config['AUTH_JWT_SECRET'], algorithm='HS256')
    return _make


@pytest.fixture
def auth_headers(make_token):
    def _headers(profile):
        return {'Authorization': f'Bearer {make_token(profile.id, profile.email)}'}
    return _headers


@pytest.fixture
def make_submission(app):
    """Insert a submission row directly, bypassing the repository"""
    def _make(contractor, work_period='2026-01', status='pending_manager', paid_at=None, **fields):
        contract = db.session.get(Contractor, contractor.id)
        values = dict(
            contractor_user_id=contractor.id,
            manager_id=contract.manager_id if contract else None,
            work_period=work_period,
            regular_hours=160,
            overtime_hours=0,
            description='Monthly work',
            project_name='Portal Build',
            rate_type='hourly',
            regular_rate=100,
            overtime_rate=150,
            total_amount=16000,
            status=status,
            paid_at=paid_at,
            submitted_at=datetime.now(timezone.utc),
        )
        values.update(fields)
        submission = Submission(**values)
        db.session.add(submission)
        db.session.commit()
        return submission
    return _make
