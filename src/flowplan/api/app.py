"""Flask app factory for the API server."""

from __future__ import annotations

from typing import Optional

from flask import Flask
from flask_cors import CORS

from ..config.settings import Settings, get_settings
from ..utils.logging import setup_logging
from .common import cors_origins


def create_app(settings: Optional[Settings] = None) -> Flask:
    settings = settings or get_settings()
    setup_logging(settings)
    app = Flask(__name__)
    CORS(app, supports_credentials=True, origins=cors_origins(settings))
    return app
