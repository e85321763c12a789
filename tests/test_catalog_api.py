import pytest

from library_service.models import PaymentStatus, Role


@pytest.fixture
def db(app):
    return app.extensions["db"]


@pytest.fixture
def admin_headers(make_user, auth_headers):
    return auth_headers(make_user(role=Role.ADMIN))


@pytest.fixture
def student_headers(make_user, auth_headers):
    return auth_headers(make_user())


NEW_BOOK = {
    "title": "Operating System Concepts",
    "isbn": "978-1118063330",
    "author": "Silberschatz",
    "publisher": "Wiley",
    "category": "Operating Systems",
    "quantity": 4,
}


# ----------------- books -----------------

def test_create_and_search_books(client, admin_headers, student_headers):
    resp = client.post("/api/books", json=NEW_BOOK, headers=admin_headers)
    assert resp.status_code == 201
    assert resp.get_json()["book"]["book_id"] == "B1"

    found = client.get("/api/books?q=silber", headers=student_headers).get_json()
    assert [b["isbn"] for b in found] == ["978-1118063330"]
    assert client.get("/api/books?q=cobol", headers=student_headers).get_json() == []


@pytest.mark.parametrize(
    "overrides, code",
    [
        ({"category": "Cooking"}, "invalid_category"),
        ({"quantity": -2}, "invalid_quantity"),
        ({"title": ""}, "missing_fields"),
        ({"title": {"en": "OS Concepts"}}, "invalid_field"),
        ({"category": ["Operating Systems"]}, "invalid_field"),
    ],
)
def test_create_book_validation(client, admin_headers, overrides, code):
    resp = client.post("/api/books", json={**NEW_BOOK, **overrides}, headers=admin_headers)

    assert resp.status_code == 400
    assert resp.get_json()["code"] == code


def test_duplicate_isbn(client, admin_headers):
    client.post("/api/books", json=NEW_BOOK, headers=admin_headers)

    resp = client.post("/api/books", json=NEW_BOOK, headers=admin_headers)

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "isbn_taken"


def test_students_cannot_add_books(client, student_headers):
    resp = client.post("/api/books", json=NEW_BOOK, headers=student_headers)

    assert resp.status_code == 403
    assert resp.get_json()["code"] == "forbidden"


def test_categories(client, student_headers):
    categories = client.get("/api/books/categories", headers=student_headers).get_json()["categories"]

    assert "Operating Systems" in categories


# ----------------- lost / damaged -----------------

def test_lost_damaged_lifecycle(client, admin_headers, student_headers, make_book):
    book = make_book(quantity=5)

    resp = client.post(
        "/api/lost-damaged-books", json={"book_id": book.book_id, "quantity": 2}, headers=admin_headers
    )
    assert resp.status_code == 201
    assert resp.get_json()["record"]["lost_damaged_book_id"] == "LD1"

    resp = client.post(
        "/api/lost-damaged-books", json={"book_id": book.book_id, "quantity": 3}, headers=admin_headers
    )
    assert resp.status_code == 200
    assert client.get(f"/api/books/{book.book_id}", headers=student_headers).get_json()["quantity"] == 2

    resp = client.put("/api/lost-damaged-books/LD1", json={"quantity": 1}, headers=admin_headers)
    assert resp.get_json()["record"]["quantity"] == 1

    resp = client.delete("/api/lost-damaged-books/LD1", headers=admin_headers)
    assert resp.status_code == 200
    assert client.get(f"/api/books/{book.book_id}", headers=student_headers).get_json()["quantity"] == 5
    assert client.get("/api/lost-damaged-books/LD1", headers=admin_headers).status_code == 404


def test_lost_damaged_update_to_zero_deletes(client, admin_headers, make_book):
    book = make_book(quantity=2)
    client.post("/api/lost-damaged-books", json={"book_id": book.book_id, "quantity": 1}, headers=admin_headers)

    resp = client.put("/api/lost-damaged-books/LD1", json={"quantity": 0}, headers=admin_headers)

    assert resp.status_code == 200
    assert "record" not in resp.get_json()
    assert client.get("/api/lost-damaged-books", headers=admin_headers).get_json()["records"] == []


def test_lost_damaged_exceeding_stock(client, admin_headers, make_book):
    book = make_book(quantity=1)

    resp = client.post(
        "/api/lost-damaged-books", json={"book_id": book.book_id, "quantity": 4}, headers=admin_headers
    )

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "insufficient_quantity"


def test_lost_damaged_is_admin_only(client, student_headers):
    assert client.get("/api/lost-damaged-books", headers=student_headers).status_code == 403


# ----------------- dashboard -----------------

def test_dashboard_stats(client, admin_headers, make_user, make_book, make_payment, auth_headers):
    student = make_user()
    book = make_book(quantity=3)
    make_book(quantity=2)
    client.post(
        "/api/issue-records", json={"user_id": student.user_id, "book_id": book.book_id}, headers=admin_headers
    )
    make_payment(student.user_id, status=PaymentStatus.PAID, amount="10.00")
    make_payment(student.user_id, status=PaymentStatus.PAID, amount="2.50")
    make_payment(student.user_id)

    stats = client.get("/api/dashboard/stats", headers=admin_headers).get_json()["stats"]

    assert stats["available_copies"] == 4
    assert stats["total_students"] == 1
    assert stats["total_admins"] == 1
    assert stats["books_issued"] == 1
    assert stats["overdue_books"] == 0
    assert stats["pending_payments"] == 1
    assert stats["total_revenue"] == "12.50"

    recent = client.get("/api/dashboard/recent-issues", headers=admin_headers).get_json()["issues"]
    assert [r["id"] for r in recent] == ["IR1"]
    assert recent[0]["status"] == "ISSUED"
