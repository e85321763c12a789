from flask import Blueprint, jsonify, request
from sqlalchemy import or_, select

from ..database import get_db, next_identifier
from ..errors import NotFoundError, StateConflictError, ValidationError
from ..models import VALID_CATEGORIES, Book, Role
from ..security import require_auth, require_role
from ..validators import json_body, parse_quantity, require_fields, require_text

bp = Blueprint("books", __name__, url_prefix="/api/books")


@bp.get("/categories")
@require_auth
def list_categories():
    return jsonify({"message": "List of valid book categories", "categories": VALID_CATEGORIES})


@bp.get("")
@require_auth
def search_books():
    """
    List the catalog.
    - ?q=...  case-insensitive match on title/author/isbn/publisher/category
    """
    query = request.args.get("q")

    session = get_db().SessionLocal()
    try:
        q = select(Book).order_by(Book.book_id)
        if query:
            like = f"%{query}%"
            q = q.where(
                or_(
                    Book.title.ilike(like),
                    Book.author.ilike(like),
                    Book.isbn.ilike(like),
                    Book.publisher.ilike(like),
                    Book.category.ilike(like),
                )
            )
        books = session.execute(q).scalars().all()
        return jsonify([b.to_dict() for b in books])
    finally:
        session.close()


@bp.get("/<book_id>")
@require_auth
def get_book(book_id):
    session = get_db().SessionLocal()
    try:
        book = session.get(Book, book_id)
        if not book:
            raise NotFoundError("Book not found", code="book_not_found", details={"book_id": book_id})
        return jsonify(book.to_dict())
    finally:
        session.close()


@bp.post("")
@require_role(Role.ADMIN)
def create_book():
    data = json_body()
    require_fields(data, "title", "isbn", "author", "publisher", "category", "quantity")
    require_text(data, "title", "isbn", "author", "publisher", "category")
    quantity = parse_quantity(data["quantity"])
    if data["category"] not in VALID_CATEGORIES:
        raise ValidationError(
            "Invalid category. Please provide a valid category from the predefined list.",
            code="invalid_category",
            details={"received": data["category"]},
        )

    with get_db().session_scope() as session:
        existing = session.execute(
            select(Book).where(Book.isbn == data["isbn"])
        ).scalar_one_or_none()
        if existing:
            raise StateConflictError("ISBN already exists", code="isbn_taken", details={"isbn": data["isbn"]})

        book = Book(
            book_id=next_identifier(session, Book.book_id, "B"),
            title=data["title"],
            isbn=data["isbn"],
            author=data["author"],
            publisher=data["publisher"],
            category=data["category"],
            quantity=quantity,
        )
        session.add(book)

    return jsonify({"message": "Book created successfully", "book": book.to_dict()}), 201
