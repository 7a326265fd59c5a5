"""HTTP routes."""

from flask import Flask

from .api import core_bp, gen_bp


def register_blueprints(app: Flask) -> None:
    """Attach every API blueprint to ``app``."""
    app.register_blueprint(core_bp)
    app.register_blueprint(gen_bp)
