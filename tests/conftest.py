"""
Shared fixtures for EvenTotem tests.

Environment variables are set before any application import so that
core.config and core.database pick up an in-memory SQLite URL.
"""

import os
from datetime import timedelta

os.environ.setdefault('POSTGRES_USER', 'test_user')
os.environ.setdefault('POSTGRES_PASSWORD', 'test_password')
os.environ.setdefault('POSTGRES_DB', 'test_db')
os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('S3_ENDPOINT', 'https://test.s3.com')
os.environ.setdefault('S3_ACCESS_KEY', 'test_access_key')
os.environ.setdefault('S3_SECRET_KEY', 'test_secret_key')
os.environ.setdefault('S3_BUCKET', 'test_bucket')
os.environ.setdefault('API_KEYS', '')
os.environ.setdefault('LOG_JSON', 'false')

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.database import Base
from models.event import Event, EventPermission, EventStatus, MediaVariant, new_id
from models.user import User
from services.permissions import Actor

from factories import NOW, FakeBlobStore, media_item


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store():
    return FakeBlobStore()


@pytest.fixture
def make_user(db):
    def factory(name="Ana Souza", email=None, admin=False):
        user = User(
            id=new_id(),
            name=name,
            email=email or f"{new_id()[:8]}@example.org",
            is_admin=admin,
        )
        db.add(user)
        db.commit()
        return user
    return factory


@pytest.fixture
def organizer(make_user):
    return make_user(name="Organizer", email="organizer@example.org")


@pytest.fixture
def organizer_actor(organizer):
    return Actor.from_user(organizer)


@pytest.fixture
def make_event(db):
    """Persist an event; active events get one media item per variant."""

    def factory(owner, status=EventStatus.ACTIVE, media=None, permissions=(), **overrides):
        event_id = new_id()
        fields = dict(
            title="Semana de Tecnologia",
            description="Palestras e oficinas",
            location="Auditorio central",
            start_at=NOW + timedelta(days=3),
            end_at=NOW + timedelta(days=3, hours=8),
            exhibit_start_at=NOW - timedelta(days=10),
            exhibit_end_at=NOW + timedelta(days=10),
            display_days="segunda,quarta",
            display_morning=True,
            display_afternoon=False,
            display_night=False,
            category="palestra",
            color=1,
            animation=0,
        )
        tags = overrides.pop("tags", ["tecnologia"])
        fields.update(overrides)

        event = Event(
            id=event_id,
            status=status,
            organizer_id=owner.id,
            organizer_name=owner.name,
            **fields,
        )
        event.tags = tags
        if media is None:
            media = list(MediaVariant) if status == EventStatus.ACTIVE else []
        for variant in media:
            event.media.append(media_item(event_id, variant))
        for user_id, expires_at in permissions:
            event.permissions.append(EventPermission(id=new_id(), user_id=user_id, expires_at=expires_at))

        db.add(event)
        db.commit()
        return event

    return factory
