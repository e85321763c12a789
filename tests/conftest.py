from datetime import date, timedelta
from decimal import Decimal

import pytest

from library_service.app import create_app
from library_service.circulation import CirculationManager
from library_service.config import Config
from library_service.database import Database, next_identifier
from library_service.models import Book, Payment, PaymentStatus, Role, User
from library_service.security import issue_token


class UnitTestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    JWT_SECRET_KEY = "unit-test-secret-that-is-long-enough-for-hs256"
    NOTIFICATION_BASE_URL = None
    RESTOCK_ON_RETURN = False
    ALLOW_ADMIN_REGISTRATION = False
    LOG_LEVEL = "WARNING"


class FakeClock:
    def __init__(self, today):
        self.today = today

    def __call__(self):
        return self.today

    def advance(self, days):
        self.today += timedelta(days=days)


@pytest.fixture
def db():
    database = Database("sqlite://")
    database.create_all()
    yield database
    database.engine.dispose()


@pytest.fixture
def clock():
    return FakeClock(date(2025, 4, 1))


@pytest.fixture
def events():
    return []


@pytest.fixture
def manager(db, clock, events):
    return CirculationManager(db, clock=clock, post_commit_hooks=[events.append])


@pytest.fixture
def make_user(db):
    def _make(role=Role.STUDENT, name="Test Student", email=None, password_hash="not-a-real-hash"):
        with db.session_scope() as session:
            user_id = next_identifier(session, User.user_id, "U")
            user = User(
                user_id=user_id,
                email=email or f"{user_id.lower()}@example.com",
                password_hash=password_hash,
                name=name,
                role=role,
            )
            session.add(user)
        return user

    return _make


@pytest.fixture
def make_book(db):
    def _make(quantity=1, title="Clean Code", isbn=None, category="Software Engineering"):
        with db.session_scope() as session:
            book_id = next_identifier(session, Book.book_id, "B")
            book = Book(
                book_id=book_id,
                title=title,
                isbn=isbn or f"978-{book_id}",
                author="Robert C. Martin",
                publisher="Prentice Hall",
                category=category,
                quantity=quantity,
            )
            session.add(book)
        return book

    return _make


@pytest.fixture
def make_payment(db):
    def _make(user_id, status=PaymentStatus.PENDING, amount="10.00"):
        with db.session_scope() as session:
            payment = Payment(
                payment_id=next_identifier(session, Payment.payment_id, "P"),
                user_id=user_id,
                amount=Decimal(amount),
                status=status,
            )
            session.add(payment)
        return payment

    return _make


@pytest.fixture
def fetch(db):
    """Read a fresh copy of a row, or every row of a model when no key is given."""
    def _fetch(model, key=None):
        session = db.SessionLocal()
        try:
            if key is None:
                return session.query(model).all()
            return session.get(model, key)
        finally:
            session.close()

    return _fetch


# ----------------- HTTP -----------------

@pytest.fixture
def app():
    application = create_app(UnitTestConfig)
    yield application
    application.extensions["db"].engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(app):
    def _headers(user):
        with app.app_context():
            token = issue_token(user.user_id, user.role)
        return {"Authorization": f"Bearer {token}"}

    return _headers
