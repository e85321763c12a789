from flask import Blueprint, jsonify
from sqlalchemy import func, select

from ..circulation import get_circulation
from ..database import get_db
from ..models import Book, IssueRecord, LostDamagedBook, Payment, PaymentStatus, Role, User
from ..security import require_role

bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")

RECENT_ISSUES = 5


@bp.get("/stats")
@require_role(Role.ADMIN)
def stats():
    today = get_circulation().clock()
    session = get_db().SessionLocal()
    try:
        def scalar(q):
            return session.execute(q).scalar() or 0

        open_loans = IssueRecord.returned.is_(False)
        return jsonify(
            {
                "message": "Dashboard statistics retrieved successfully",
                "stats": {
                    "available_copies": scalar(select(func.sum(Book.quantity))),
                    "total_students": scalar(select(func.count()).where(User.role == Role.STUDENT)),
                    "total_admins": scalar(select(func.count()).where(User.role == Role.ADMIN)),
                    "books_issued": scalar(select(func.count()).where(open_loans)),
                    "overdue_books": scalar(
                        select(func.count()).where(open_loans, IssueRecord.due_date < today)
                    ),
                    "lost_damaged_books": scalar(select(func.sum(LostDamagedBook.quantity))),
                    "pending_payments": scalar(
                        select(func.count()).where(Payment.status == PaymentStatus.PENDING)
                    ),
                    "total_revenue": str(
                        scalar(
                            select(func.sum(Payment.amount)).where(Payment.status == PaymentStatus.PAID)
                        )
                    ),
                },
            }
        )
    finally:
        session.close()


@bp.get("/recent-issues")
@require_role(Role.ADMIN)
def recent_issues():
    today = get_circulation().clock()
    session = get_db().SessionLocal()
    try:
        records = session.execute(
            select(IssueRecord)
            .order_by(IssueRecord.issue_date.desc(), IssueRecord.issue_record_id.desc())
            .limit(RECENT_ISSUES)
        ).scalars().all()
        return jsonify(
            {
                "issues": [
                    {
                        "id": r.issue_record_id,
                        "book": {"title": r.book.title, "author": r.book.author},
                        "user": {"name": r.user.name, "email": r.user.email},
                        "issue_date": r.issue_date.isoformat(),
                        "due_date": r.due_date.isoformat(),
                        "status": r.status(today),
                    }
                    for r in records
                ]
            }
        )
    finally:
        session.close()
