import logging

from flask import Blueprint, g, jsonify
from sqlalchemy import delete, select

from ..circulation import get_circulation
from ..database import get_db
from ..errors import NotFoundError, StateConflictError
from ..models import IssueRecord, Payment, PaymentStatus, Role, User
from ..security import require_auth, require_role
from ..validators import check_identifier

logger = logging.getLogger(__name__)

bp = Blueprint("users", __name__, url_prefix="/api/users")

HISTORY_LIMIT = 10


@bp.get("")
@require_role(Role.ADMIN)
def list_users():
    session = get_db().SessionLocal()
    try:
        users = session.execute(select(User).order_by(User.user_id)).scalars().all()
        return jsonify([u.to_dict() for u in users])
    finally:
        session.close()


@bp.get("/profile")
@require_auth
def profile():
    """Current loans, recent history and payments of the caller."""
    user_id = g.current_user.user_id

    today = get_circulation().clock()
    session = get_db().SessionLocal()
    try:
        user = session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found", code="user_not_found", details={"user_id": user_id})

        current_issues = session.execute(
            select(IssueRecord)
            .where(IssueRecord.user_id == user_id, IssueRecord.returned.is_(False))
            .order_by(IssueRecord.issue_date.desc())
        ).scalars().all()
        issue_history = session.execute(
            select(IssueRecord)
            .where(IssueRecord.user_id == user_id, IssueRecord.returned.is_(True))
            .order_by(IssueRecord.return_date.desc())
            .limit(HISTORY_LIMIT)
        ).scalars().all()
        pending_payments = session.execute(
            select(Payment)
            .where(Payment.user_id == user_id, Payment.status == PaymentStatus.PENDING)
            .order_by(Payment.payment_id)
        ).scalars().all()
        payment_history = session.execute(
            select(Payment)
            .where(Payment.user_id == user_id, Payment.status == PaymentStatus.PAID)
            .order_by(Payment.payment_id.desc())
            .limit(HISTORY_LIMIT)
        ).scalars().all()

        return jsonify(
            {
                "user": user.to_dict(),
                "current_issues": [r.to_dict(today=today) for r in current_issues],
                "issue_history": [r.to_dict(today=today) for r in issue_history],
                "pending_payments": [p.to_dict() for p in pending_payments],
                "payment_history": [p.to_dict() for p in payment_history],
            }
        )
    finally:
        session.close()


@bp.get("/<user_id>")
@require_auth
def get_user(user_id):
    session = get_db().SessionLocal()
    try:
        user = session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found", code="user_not_found", details={"user_id": user_id})
        return jsonify(user.to_dict())
    finally:
        session.close()


@bp.delete("/<user_id>")
@require_role(Role.ADMIN)
def delete_user(user_id):
    """
    Remove a user together with their closed loans and settled payments.
    Refused while the user holds a book or owes a PENDING payment.
    """
    check_identifier(user_id, "U", "user_id")

    with get_db().session_scope() as session:
        user = session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found", code="user_not_found", details={"user_id": user_id})

        active_loan = session.execute(
            select(IssueRecord.issue_record_id).where(
                IssueRecord.user_id == user_id, IssueRecord.returned.is_(False)
            )
        ).first()
        if active_loan:
            raise StateConflictError(
                "Cannot delete user",
                code="user_has_active_loans",
                details={"error": "User has active book issues. All books must be returned first."},
            )

        pending = session.execute(
            select(Payment.payment_id).where(
                Payment.user_id == user_id, Payment.status == PaymentStatus.PENDING
            )
        ).first()
        if pending:
            raise StateConflictError(
                "Cannot delete user",
                code="user_has_pending_payments",
                details={"error": "User has pending payments. Resolve them before deleting the user."},
            )

        # loans reference payments, so they go first
        session.execute(delete(IssueRecord).where(IssueRecord.user_id == user_id))
        session.execute(delete(Payment).where(Payment.user_id == user_id))
        session.delete(user)

    logger.info("Deleted user %s", user_id)
    return jsonify(
        {
            "message": "User deleted successfully",
            "details": {"user_id": user_id, "name": user.name, "email": user.email},
        }
    )
