from flask import Blueprint, jsonify
from sqlalchemy import select

from ..database import get_db
from ..errors import NotFoundError
from ..inventory import get_ledger
from ..models import LostDamagedBook, Role
from ..security import require_role
from ..validators import json_body, require_fields

bp = Blueprint("lost_damaged_books", __name__, url_prefix="/api/lost-damaged-books")


@bp.get("")
@require_role(Role.ADMIN)
def list_records():
    session = get_db().SessionLocal()
    try:
        records = session.execute(
            select(LostDamagedBook).order_by(LostDamagedBook.lost_damaged_book_id)
        ).scalars().all()
        return jsonify(
            {
                "message": "Lost or damaged books retrieved successfully",
                "records": [r.to_dict() for r in records],
            }
        )
    finally:
        session.close()


@bp.get("/<record_id>")
@require_role(Role.ADMIN)
def get_record(record_id):
    session = get_db().SessionLocal()
    try:
        record = session.get(LostDamagedBook, record_id)
        if not record:
            raise NotFoundError(
                "Lost or damaged book record not found",
                code="record_not_found",
                details={"lost_damaged_book_id": record_id},
            )
        return jsonify({"record": record.to_dict()})
    finally:
        session.close()


@bp.post("")
@require_role(Role.ADMIN)
def record_lost_damaged():
    """
    Request JSON: {"book_id": "B3", "quantity": 2}

    ``quantity`` is the total number of lost/damaged copies for the book,
    not an increment.
    """
    data = json_body()
    require_fields(data, "book_id", "quantity")
    record, created = get_ledger().record(data["book_id"], data["quantity"])
    if created:
        return jsonify({"message": "Lost or damaged book added successfully", "record": record.to_dict()}), 201
    return jsonify({"message": "Lost or damaged book quantity updated successfully", "record": record.to_dict()})


@bp.put("/<record_id>")
@require_role(Role.ADMIN)
def update_record(record_id):
    data = json_body()
    require_fields(data, "quantity")
    record = get_ledger().update(record_id, data["quantity"])
    if record is None:
        return jsonify({"message": "Lost or damaged book record deleted successfully"})
    return jsonify({"message": "Lost or damaged book record updated successfully", "record": record.to_dict()})


@bp.delete("/<record_id>")
@require_role(Role.ADMIN)
def delete_record(record_id):
    get_ledger().remove(record_id)
    return jsonify({"message": "Lost or damaged book record deleted successfully"})
