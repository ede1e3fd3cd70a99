import pytest

import config
from db import resolve_database_url


def test_database_url_rewrites_postgres_scheme(monkeypatch):
    monkeypatch.setattr(config, "DATABASE_URL", "postgres://u:p@host:5432/crm")
    assert resolve_database_url() == "postgresql://u:p@host:5432/crm"


def test_database_url_falls_back_to_sqlite_in_dev(monkeypatch):
    monkeypatch.setattr(config, "DATABASE_URL", None)
    monkeypatch.setattr(config, "ENV", "dev")
    monkeypatch.setattr(config, "DATABASE_PATH", "/tmp/crm.db")
    assert resolve_database_url() == "sqlite:////tmp/crm.db"


def test_database_url_required_in_production(monkeypatch):
    monkeypatch.setattr(config, "DATABASE_URL", None)
    monkeypatch.setattr(config, "ENV", "production")
    with pytest.raises(RuntimeError):
        resolve_database_url()
