from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any

from flask import Flask
from flask_cors import CORS

from .config import get_config
from .db import init_db
from .observability import init_observability
from .api.pages import pages_bp
from .api.pastes import api_bp


def create_app(
    env_name: str | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Flask:
    """
    Application factory for the Flask backend.

    The configuration is selected based on the provided ``env_name`` or,
    if not given, the ``APP_ENV`` environment variable (falling back to
    ``development``). ``overrides`` is applied on top of the selected
    config class.
    """
    if env_name is None:
        env_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__)
    app_config = get_config(env_name)
    app.config.from_object(app_config)
    if overrides:
        app.config.update(overrides)

    CORS(app, resources={r"/api/*": {"origins": "*"}})

    # Initialize infrastructure layers
    init_db(app)
    init_observability(app)

    # Register blueprints
    app.register_blueprint(api_bp)
    app.register_blueprint(pages_bp)

    return app
