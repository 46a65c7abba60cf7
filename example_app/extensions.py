from flask_sqlalchemy import SQLAlchemy

from base_model.extensions import ma

db = SQLAlchemy()

__all__ = ["db", "ma"]
