"""Tests for database setup."""

from sqlalchemy.ext.asyncio import create_async_engine

from settlement_engine import database


class TestInitDb:
    """Test the shared engine and session factory."""

    def test_builds_once_and_reuses(self, monkeypatch):
        monkeypatch.setattr(database, "_engine", None)
        monkeypatch.setattr(database, "_session_factory", None)
        monkeypatch.setattr(
            database, "get_engine", lambda: create_async_engine("sqlite+aiosqlite://")
        )

        engine, session_factory = database.init_db()

        assert session_factory.kw["bind"] is engine
        assert database.init_db() == (engine, session_factory)
