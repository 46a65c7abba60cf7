import os

import pytest

from example_app import create_app
from example_app.extensions import db
from example_app.models import Problem, User


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    os.environ['FLASK_ENV'] = 'testing'

    app = create_app('testing')

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def database(app):
    """Yield the session and empty every table afterwards."""
    yield db.session
    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    # rows were removed behind the ORM's back; drop the stale identity map
    db.session.remove()


@pytest.fixture(scope='function')
def runner(app):
    """Create test CLI runner."""
    return app.test_cli_runner()


@pytest.fixture(scope='function')
def create_user(database):
    """Create a user through the model layer and return it."""
    def _create_user(name='testuser', age=None):
        result = User.create(name=name, age=age)
        assert result.ok, result.error
        return result.value
    return _create_user


@pytest.fixture(scope='function')
def create_problem(database):
    """Create a problem owned by ``user`` and return it."""
    def _create_problem(user, description='a problem', severity=1):
        result = Problem.create(user=user, description=description, severity=severity)
        assert result.ok, result.error
        return result.value
    return _create_problem
