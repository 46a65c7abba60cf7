from marshmallow import EXCLUDE, validate
from marshmallow_sqlalchemy import auto_field

from base_model import BaseModel

from .extensions import db, ma

ALLOWED_SEVERITIES = (1, 5)


class User(BaseModel, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    age = db.Column(db.Integer, nullable=True)

    problems = db.relationship("Problem", back_populates="user", lazy=True)

    created_at = db.Column(
        db.DateTime,
        nullable=False,
        server_default=db.func.current_timestamp(),
    )
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        server_default=db.func.current_timestamp(),
        onupdate=db.func.current_timestamp(),
    )

    def __repr__(self):
        return f"<User id={self.id} name={self.name!r}>"


class Problem(BaseModel, db.Model):
    __tablename__ = "problems"

    id = db.Column(db.Integer, primary_key=True)
    description = db.Column(db.Text, nullable=True)
    severity = db.Column(db.Integer, nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    user = db.relationship("User", back_populates="problems")

    created_at = db.Column(
        db.DateTime,
        nullable=False,
        server_default=db.func.current_timestamp(),
    )
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        server_default=db.func.current_timestamp(),
        onupdate=db.func.current_timestamp(),
    )

    # Both changesets share one schema but stay separate so update rules can
    # diverge from create rules later (e.g. freezing user_id).
    @classmethod
    def create_changeset(cls, params):
        return ProblemChangeset().load(dict(params), session=db.session)

    @classmethod
    def update_changeset(cls, record, params):
        return ProblemChangeset().load(dict(params), instance=record, partial=True, session=db.session)

    def __repr__(self):
        return f"<Problem id={self.id} severity={self.severity}>"


class ProblemChangeset(ma.SQLAlchemyAutoSchema):
    class Meta:
        model = Problem
        load_instance = True
        include_fk = True
        unknown = EXCLUDE
        fields = ("description", "severity", "user_id")

    severity = auto_field(validate=validate.Range(min=ALLOWED_SEVERITIES[0], max=ALLOWED_SEVERITIES[1]))
