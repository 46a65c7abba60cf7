import click
from flask.cli import with_appcontext

from base_model import PreconditionError
from base_model.utils.logging_utils import get_logger

from .extensions import db
from .models import Problem, User

logger = get_logger("app")

SEED_USERS = (
    {"name": "alice", "age": 34},
    {"name": "bob", "age": 27},
)

SEED_PROBLEMS = (
    ("alice", "Login page times out", 3),
    ("alice", "Export drops the last row", 4),
    ("bob", "Typo on the settings page", 1),
)


@click.command("setup")
@click.option("--drop/--no-drop", default=False, help="Drop every table before creating them again")
@with_appcontext
def setup_command(drop: bool):
    """Create the example tables. Safe to run multiple times."""
    if drop:
        db.drop_all()
        click.echo("Dropped all tables.")
    db.create_all()
    logger.info("Tables ensured drop=%s", drop)
    click.echo("Tables are ready.")


@click.command("seed")
@with_appcontext
def seed_command():
    """Seed example users and problems; existing rows are reused."""
    users = {}
    for attributes in SEED_USERS:
        try:
            users[attributes["name"]] = User.first_or_create(attributes)
        except PreconditionError as exc:
            raise click.ClickException(f"Cannot seed user {attributes['name']}: {exc.failure.errors}")

    created = 0
    for owner, description, severity in SEED_PROBLEMS:
        user = users[owner]
        if Problem.count({"user": user, "description": description}):
            continue
        result = Problem.create(user=user, description=description, severity=severity)
        if not result.ok:
            raise click.ClickException(f"Cannot seed problem {description!r}: {result.error.errors}")
        created += 1

    click.echo(f"Seeded {len(users)} users and {created} problems.")
