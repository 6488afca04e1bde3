import os
import tempfile
from datetime import date

# Must be set before anything under app/ is imported: app.db builds its engine at import time
_TMP_DIR = tempfile.mkdtemp(prefix="library-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'library.db')}"

import pytest

from app import schemas, services
from app.db import SessionLocal, engine
from app.schema import create_schema, drop_schema


@pytest.fixture
def db():
    # Fresh schema per test
    drop_schema(engine)
    create_schema(engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def publisher(db):
    p, err = services.create_publisher(
        db, schemas.PublisherCreate(name="Acme Press", email="contact@acmepress.com")
    )
    assert err is None
    return p


@pytest.fixture
def book(db, publisher):
    b, err = services.create_book(
        db,
        schemas.BookCreate(
            isbn="9780306406157",
            title="The Pragmatic Shelf",
            publisher_id=publisher.publisher_id,
            stock_quantity=5,
            available_quantity=5,
        ),
    )
    assert err is None
    return b


@pytest.fixture
def make_member(db):
    def _make(card="LC-0001", email="ana@example.com", **overrides):
        fields = dict(
            library_card_number=card,
            first_name="Ana",
            last_name="García",
            date_of_birth=date(1990, 5, 17),
            address="12 Main St",
            city="Springfield",
            email=email,
            registration_date=date(2024, 1, 1),
            membership_expiry_date=date(2099, 1, 1),
        )
        fields.update(overrides)
        m, err = services.create_member(db, schemas.MemberCreate(**fields))
        assert err is None, err
        return m

    return _make


@pytest.fixture
def member(make_member):
    return make_member()


@pytest.fixture
def staff(db):
    s, err = services.create_staff(
        db,
        schemas.StaffCreate(
            first_name="Sam",
            last_name="Lee",
            position="Librarian",
            hire_date=date(2020, 3, 1),
            email="sam.lee@library.org",
            username="slee",
            password="correct-horse",
        ),
    )
    assert err is None
    return s
