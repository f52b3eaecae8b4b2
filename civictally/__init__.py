from flask import Flask

from civictally.cli import register_cli
from civictally.config import Config
from civictally.extensions import db, migrate
from civictally.routes import register_routes


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(app.config["LOG_LEVEL"])

    db.init_app(app)
    migrate.init_app(app, db)

    register_routes(app)
    register_cli(app)
    return app


__all__ = ["db", "migrate", "create_app"]
