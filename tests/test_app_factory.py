from __future__ import annotations

from flask import Flask

from app import create_app
from app.config import DevelopmentConfig, TestingConfig, get_config
from app.db import get_engine, reset_engine


def test_create_app_returns_flask_instance() -> None:
    reset_engine()
    app = create_app("testing")
    assert isinstance(app, Flask)
    assert app.config["TESTING"] is True
    assert {"api", "pages"} <= set(app.blueprints)


def test_overrides_win_over_config_class() -> None:
    reset_engine()
    app = create_app("testing", {"TEST_MODE": False, "LOG_LEVEL": "WARNING"})
    assert app.config["TEST_MODE"] is False
    assert app.config["LOG_LEVEL"] == "WARNING"


def test_unknown_env_falls_back_to_development() -> None:
    assert get_config("staging") is DevelopmentConfig
    assert get_config(None) is DevelopmentConfig
    assert get_config("test") is TestingConfig


def test_new_database_url_replaces_built_engine(tmp_path) -> None:
    reset_engine()
    create_app("testing", {"SQLALCHEMY_DATABASE_URI": f"sqlite+pysqlite:///{tmp_path / 'a.db'}"})
    first = get_engine()

    create_app("testing", {"SQLALCHEMY_DATABASE_URI": f"sqlite+pysqlite:///{tmp_path / 'b.db'}"})
    second = get_engine()

    assert second is not first
    assert second.url.database.endswith("b.db")

    # Same URL again keeps the engine.
    create_app("testing", {"SQLALCHEMY_DATABASE_URI": f"sqlite+pysqlite:///{tmp_path / 'b.db'}"})
    assert get_engine() is second
    reset_engine()
