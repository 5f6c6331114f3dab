"""Tests for database.database."""
import sqlalchemy.orm

from database import database


def test_declarative_base_comes_from_orm_module():
    assert database.declarative_base is sqlalchemy.orm.declarative_base
    assert isinstance(database.Base.registry, sqlalchemy.orm.registry)


def test_database_url_override(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///local.db")
    assert database._database_url() == "sqlite:///local.db"


def test_database_url_from_postgres_settings(monkeypatch):
    for name in ("DATABASE_URL", "POSTGRES_USER", "POSTGRES_PASSWORD", "POSTGRES_PORT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("POSTGRES_HOST", "db.internal")
    monkeypatch.setenv("POSTGRES_DB", "qgen")
    url = database._database_url()
    assert url.startswith("postgresql://questiongen_user:")
    assert url.endswith("@db.internal:5432/qgen")
