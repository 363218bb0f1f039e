import logging
import os

import pytest

# Point the app at an in-memory database before it is imported.
os.environ.setdefault('SCHEDULER_DATABASE_URI', 'sqlite:///:memory:')
os.environ.setdefault('SCHEDULER_SEED_SAMPLE_DATA', '0')

from app import app  # noqa: E402
from database import Employee, db  # noqa: E402

logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
)
logger = logging.getLogger("tests")


@pytest.fixture(autouse=True)
def _is_testing_env():
    app.config["TESTING"] = True
    app.config["PROPAGATE_EXCEPTIONS"] = True


@pytest.fixture
def app_ctx():
    """Fresh schema per test with a small seeded roster."""
    with app.app_context():
        db.drop_all()
        db.create_all()

        emps = [
            # name, email, role, rate
            ("Priya Nair", "priya@test.com", "cashier", 15.0),
            ("Kevin Osei", "kevin@test.com", "barista", 20.0),
            ("Tom Becker", "tom@test.com", "kitchen", 18.0),
        ]
        for name, email, role, rate in emps:
            db.session.add(Employee(name=name, email=email, role=role, hourly_rate=rate))
        db.session.commit()

        yield

        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app_ctx):
    return app.test_client()


@pytest.fixture
def employees(app_ctx):
    return {e.name.split()[0].lower(): e for e in Employee.query.all()}
