import logging

from flask import Blueprint, g, jsonify
from sqlalchemy import select, update

from ..database import get_db, next_identifier
from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..models import IssueRecord, Payment, PaymentStatus, Role, User
from ..notifications import get_notifier, run_post_commit_hooks
from ..security import require_auth, require_role, require_self_or_admin
from ..validators import check_identifier, json_body, parse_amount, require_fields

logger = logging.getLogger(__name__)

bp = Blueprint("payments", __name__, url_prefix="/api/payments")


def _parse_status(value):
    try:
        return PaymentStatus(value)
    except ValueError:
        raise ValidationError(
            "Invalid status",
            code="invalid_status",
            details={"received": value, "allowed": [s.value for s in PaymentStatus]},
        )


def _optional_text(data, field, current):
    if field not in data:
        return current
    value = data[field]
    if value is not None and not isinstance(value, str):
        raise ValidationError(
            f"Invalid {field}",
            code="invalid_field",
            details={field: value, "expected": "String or null"},
        )
    return value


def _load_payment(session, payment_id):
    check_identifier(payment_id, "P", "payment_id")
    payment = session.execute(
        select(Payment).where(Payment.payment_id == payment_id).with_for_update()
    ).scalar_one_or_none()
    if not payment:
        raise NotFoundError("Payment not found", code="payment_not_found", details={"payment_id": payment_id})
    return payment


def _status_changed(payment, previous):
    logger.info("Payment %s: %s -> %s", payment.payment_id, previous.value, payment.status.value)
    run_post_commit_hooks(
        [get_notifier()],
        {
            "type": "payment_status_changed",
            "payment_id": payment.payment_id,
            "user_id": payment.user_id,
            "status": payment.status.value,
        },
    )


@bp.get("")
@require_role(Role.ADMIN)
def list_payments():
    session = get_db().SessionLocal()
    try:
        payments = session.execute(select(Payment).order_by(Payment.payment_id)).scalars().all()
        return jsonify(
            {
                "message": "All payments retrieved successfully" if payments else "No payments found",
                "payments": [p.to_dict() for p in payments],
            }
        )
    finally:
        session.close()


@bp.get("/user/<user_id>")
@require_auth
def list_user_payments(user_id):
    require_self_or_admin(user_id)
    check_identifier(user_id, "U", "user_id")

    session = get_db().SessionLocal()
    try:
        if not session.get(User, user_id):
            raise NotFoundError("User not found", code="user_not_found", details={"user_id": user_id})
        payments = session.execute(
            select(Payment).where(Payment.user_id == user_id).order_by(Payment.payment_id)
        ).scalars().all()
        return jsonify({"payments": [p.to_dict() for p in payments]})
    finally:
        session.close()


@bp.post("")
@require_auth
def create_payment():
    """User-initiated payment request, opened as PENDING for the caller."""
    data = json_body()
    require_fields(data, "amount", "description")
    amount = parse_amount(data["amount"])
    description = data["description"]
    if not isinstance(description, str) or not description.strip():
        raise ValidationError(
            "Invalid description",
            code="invalid_field",
            details={"description": description, "expected": "Non-empty string"},
        )

    with get_db().session_scope() as session:
        payment = Payment(
            payment_id=next_identifier(session, Payment.payment_id, "P"),
            user_id=g.current_user.user_id,
            amount=amount,
            status=PaymentStatus.PENDING,
            description=description.strip(),
        )
        session.add(payment)

    logger.info("Payment %s of %s opened by %s", payment.payment_id, amount, payment.user_id)
    run_post_commit_hooks(
        [get_notifier()],
        {
            "type": "payment_created",
            "payment_id": payment.payment_id,
            "user_id": payment.user_id,
            "amount": str(payment.amount),
        },
    )
    return jsonify({"message": "Payment created successfully", "payment": payment.to_dict()}), 201


@bp.post("/update/<payment_id>")
@require_auth
def update_payment(payment_id):
    """Owner or admin records the outcome of a payment attempt."""
    data = json_body()
    status = _parse_status(data["status"]) if data.get("status") else None

    with get_db().session_scope() as session:
        payment = _load_payment(session, payment_id)
        current = g.current_user
        if not current.is_admin and payment.user_id != current.user_id:
            raise ForbiddenError(
                "Only admins or payment owners can update payment",
                code="not_payment_owner",
                details={"payment_user_id": payment.user_id, "current_user_id": current.user_id},
            )

        previous = payment.status
        payment.payment_method = _optional_text(data, "payment_method", payment.payment_method)
        payment.transaction_id = _optional_text(data, "transaction_id", payment.transaction_id)
        if status is not None:
            payment.status = status

    if payment.status is not previous:
        _status_changed(payment, previous)
    return jsonify({"message": "Payment updated successfully", "payment": payment.to_dict()})


@bp.put("/status/<payment_id>")
@require_role(Role.ADMIN)
def set_payment_status(payment_id):
    data = json_body()
    require_fields(data, "status")
    status = _parse_status(data["status"])

    with get_db().session_scope() as session:
        payment = _load_payment(session, payment_id)
        previous = payment.status
        payment.status = status

    if payment.status is not previous:
        _status_changed(payment, previous)
    return jsonify({"message": "Payment status updated successfully", "payment": payment.to_dict()})


@bp.delete("/<payment_id>")
@require_role(Role.ADMIN)
def delete_payment(payment_id):
    """Loans that pointed at the payment keep their history but lose the link."""
    with get_db().session_scope() as session:
        payment = _load_payment(session, payment_id)
        session.execute(
            update(IssueRecord).where(IssueRecord.payment_id == payment_id).values(payment_id=None)
        )
        session.delete(payment)

    logger.info("Deleted payment %s of %s", payment_id, payment.user_id)
    return jsonify({"message": "Payment deleted successfully", "payment_id": payment_id})
