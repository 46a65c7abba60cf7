"""
A small Flask application showing ``BaseModel`` on two related models.

    flask --app example_app setup
    flask --app example_app seed
"""

import os

from flask import Flask

from base_model import handle_for
from base_model.config import Config, config
from base_model.utils.logging_utils import get_logger, init_logger

from .commands import seed_command, setup_command
from .extensions import db, ma
from .models import Problem, User


def create_app(config_name=None):
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'default')

    config_class = config.get(config_name, Config)

    app = Flask(__name__)
    app.config.from_object(config_class)
    config_class.init_app(app)

    init_logger(app)
    get_logger("app").info("%s startup with config %s", app.config["APP_NAME"], config_class.__name__)

    db.init_app(app)
    ma.init_app(app)

    # build and validate the model handles once, at startup
    for model in (User, Problem):
        handle_for(model)

    app.cli.add_command(setup_command)
    app.cli.add_command(seed_command)

    return app


__all__ = ["create_app", "db", "User", "Problem"]
