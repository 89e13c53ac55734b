"""
Unit tests for core/database.py module.

Tests engine options, session management, and the FastAPI dependency.
"""

import pytest
from unittest.mock import patch, MagicMock
from sqlalchemy import inspect
from sqlalchemy.orm import Session

from core.database import (
    Base,
    SessionLocal,
    _engine_options,
    engine,
    get_db,
)


class TestEngineOptions:
    """Test backend-specific engine configuration."""

    def test_sqlite_options(self):
        options = _engine_options("sqlite://")
        assert options == {"connect_args": {"check_same_thread": False}}

    def test_postgres_pool_options(self):
        options = _engine_options("postgresql://u:p@db:5432/events")
        assert options["pool_pre_ping"] is True
        assert options["pool_size"] == 10
        assert options["max_overflow"] == 20

    def test_engine_uses_configured_url(self):
        assert str(engine.url).startswith("sqlite")


class TestSessionLocal:
    """Test SessionLocal factory creation."""

    def test_session_local_configuration(self):
        """Test that SessionLocal has autocommit and autoflush disabled."""
        assert SessionLocal.kw.get('autocommit') is False
        assert SessionLocal.kw.get('autoflush') is False


class TestMetadata:
    """Test the declarative Base registry."""

    def test_all_tables_registered(self, engine):
        tables = set(inspect(engine).get_table_names())
        assert {"events", "event_tags", "event_media", "event_permissions", "users"} <= tables

    def test_base_has_metadata(self):
        assert hasattr(Base, 'metadata')


class TestDependencyFunctions:
    """Test dependency injection function for FastAPI."""

    @patch('core.database.SessionLocal')
    def test_get_db_yields_session(self, mock_session_local):
        """Test that get_db yields a database session."""
        mock_session = MagicMock(spec=Session)
        mock_session_local.return_value = mock_session

        gen = get_db()
        session = next(gen)

        mock_session_local.assert_called_once()
        assert session == mock_session

    @patch('core.database.SessionLocal')
    def test_get_db_closes_session(self, mock_session_local):
        """Test that get_db closes session after use."""
        mock_session = MagicMock(spec=Session)
        mock_session_local.return_value = mock_session

        gen = get_db()
        next(gen)

        with pytest.raises(StopIteration):
            next(gen)

        mock_session.close.assert_called_once()

    @patch('core.database.SessionLocal')
    def test_get_db_closes_on_exception(self, mock_session_local):
        """Test that get_db closes session even if exception occurs."""
        mock_session = MagicMock(spec=Session)
        mock_session_local.return_value = mock_session

        gen = get_db()
        next(gen)

        with pytest.raises(RuntimeError):
            gen.throw(RuntimeError("Test exception"))

        mock_session.close.assert_called_once()
