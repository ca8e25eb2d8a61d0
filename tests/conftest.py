"""
Shared pytest fixtures for the Training Back-Office test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - trainer / customer / course_type: pre-created entities
    - core_templates: the system email templates seeded
"""

import pytest

from backoffice import create_app
from backoffice.models import db as _db
from backoffice.models.certificate import CourseType
from backoffice.models.client import Client
from backoffice.models.trainer import Trainer
from backoffice.services.email_template_service import seed_core_templates


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


def make_trainer(name="Sam Trainer", **kw):
    t = Trainer(name=name, email=kw.pop("email", "sam.trainer@example.com"), **kw)
    _db.session.add(t)
    _db.session.commit()
    return t


@pytest.fixture()
def trainer():
    return make_trainer()


@pytest.fixture()
def customer():
    """A client company (named to avoid clashing with the test client fixture)."""
    c = Client(name="Acme Logistics", contact_name="Pat Jones", email="pat@acme.example",
               telephone="01234 567890")
    _db.session.add(c)
    _db.session.commit()
    return c


@pytest.fixture()
def course_type():
    ct = CourseType(code="FLT", name="Forklift Truck", duration_days=3,
                    certificate_validity_months=36, required_fields=[])
    _db.session.add(ct)
    _db.session.commit()
    return ct


@pytest.fixture()
def core_templates():
    return seed_core_templates()
