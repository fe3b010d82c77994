"""Tests for database connection settings."""

from psycopg.conninfo import conninfo_to_dict

from feedlens.db.connection import build_conninfo


def test_conninfo_from_config():
    info = conninfo_to_dict(
        build_conninfo({"host": "db", "port": 6543, "database": "lens", "user": "reader", "password": "p@ss word"})
    )

    assert info["host"] == "db"
    assert info["port"] == "6543"
    assert info["dbname"] == "lens"
    assert info["user"] == "reader"
    assert info["password"] == "p@ss word"


def test_password_from_environment(monkeypatch):
    monkeypatch.setenv("LENS_DB_PASSWORD", "from-env")
    info = conninfo_to_dict(build_conninfo({"password": "inline", "password_env": "LENS_DB_PASSWORD"}))

    assert info["password"] == "from-env"


def test_no_password():
    info = conninfo_to_dict(build_conninfo({}))

    assert "password" not in info
    assert info["dbname"] == "feedlens"
