from flask import Blueprint, g, jsonify
from sqlalchemy import select

from ..circulation import get_circulation
from ..database import get_db
from ..errors import NotFoundError
from ..models import IssueRecord, Role
from ..security import require_auth, require_role, require_self_or_admin
from ..validators import json_body, parse_calendar_date

bp = Blueprint("issue_records", __name__, url_prefix="/api/issue-records")


@bp.get("")
@require_role(Role.ADMIN)
def list_issue_records():
    today = get_circulation().clock()
    session = get_db().SessionLocal()
    try:
        records = session.execute(
            select(IssueRecord).order_by(IssueRecord.issue_date.desc(), IssueRecord.issue_record_id)
        ).scalars().all()
        return jsonify(
            {
                "message": "All issue records retrieved successfully",
                "records": [r.to_dict(today=today) for r in records],
            }
        )
    finally:
        session.close()


@bp.get("/<issue_record_id>")
@require_auth
def get_issue_record(issue_record_id):
    today = get_circulation().clock()
    session = get_db().SessionLocal()
    try:
        record = session.get(IssueRecord, issue_record_id)
        if not record:
            raise NotFoundError(
                "Issue record not found",
                code="loan_not_found",
                details={"issue_record_id": issue_record_id},
            )
        return jsonify({"message": "Issue record retrieved successfully", "record": record.to_dict(today=today)})
    finally:
        session.close()


@bp.post("")
@require_auth
def issue_book():
    data = json_body()
    circulation = get_circulation()
    loan = circulation.issue_book(data.get("user_id"), data.get("book_id"))
    return jsonify(
        {"message": "Book issued successfully", "issue_record": loan.to_dict(today=circulation.clock())}
    ), 201


@bp.put("/return/<issue_record_id>")
@require_auth
def return_book(issue_record_id):
    data = json_body()
    return_date = parse_calendar_date(data.get("return_date"), "return_date")
    circulation = get_circulation()
    loan = circulation.return_book(issue_record_id, return_date)
    return jsonify(
        {"message": "Book returned successfully", "issue_record": loan.to_dict(today=circulation.clock())}
    )


@bp.put("/renew/<issue_record_id>")
@require_auth
def renew_book(issue_record_id):
    current = g.current_user
    circulation = get_circulation()
    loan = circulation.renew_book(issue_record_id, current.user_id, current.role)
    return jsonify(
        {"message": "Book renewed successfully", "issue_record": loan.to_dict(today=circulation.clock())}
    )


@bp.get("/user/<user_id>")
@require_auth
def list_user_issue_records(user_id):
    require_self_or_admin(user_id)

    today = get_circulation().clock()
    session = get_db().SessionLocal()
    try:
        records = session.execute(
            select(IssueRecord)
            .where(IssueRecord.user_id == user_id)
            .order_by(IssueRecord.issue_date.desc(), IssueRecord.issue_record_id)
        ).scalars().all()
        return jsonify(
            {
                "message": "User issue records retrieved successfully",
                "records": [r.to_dict(today=today) for r in records],
            }
        )
    finally:
        session.close()


@bp.get("/book/<book_id>")
@require_auth
def list_book_issue_records(book_id):
    """Loan history of a single book."""
    today = get_circulation().clock()
    session = get_db().SessionLocal()
    try:
        records = session.execute(
            select(IssueRecord)
            .where(IssueRecord.book_id == book_id)
            .order_by(IssueRecord.issue_date.desc(), IssueRecord.issue_record_id)
        ).scalars().all()
        return jsonify({"records": [r.to_dict(today=today) for r in records]})
    finally:
        session.close()
