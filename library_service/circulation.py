"""Book circulation: issuing, returning and renewing loans.

A loan (``IssueRecord``) is open until it is returned; returning is final.
Issuing takes one copy off the book's available quantity. A return after
the due date opens a PENDING fine for the borrower, and a PENDING fine
blocks further issues and renewals for that user.

Each operation runs in a single ``Database.session_scope()`` transaction, so
a failed precondition or a database error leaves every row untouched.
Notifications are sent through post-commit hooks once the transaction has
committed.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, List, Optional

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from .database import Database, next_identifier
from .errors import (
    ForbiddenError,
    NotFoundError,
    PendingPaymentError,
    StateConflictError,
    ValidationError,
)
from .models import OPEN_LOAN_INDEX, Book, IssueRecord, Payment, PaymentStatus, Role, User
from .notifications import run_post_commit_hooks

logger = logging.getLogger(__name__)

LOAN_PERIOD_DAYS = 15
LATE_RETURN_FINE = Decimal("10.00")


class CirculationManager:
    def __init__(
        self,
        db: Database,
        loan_period_days: int = LOAN_PERIOD_DAYS,
        late_return_fine: Decimal = LATE_RETURN_FINE,
        restock_on_return: bool = False,
        clock: Callable[[], date] = date.today,
        post_commit_hooks: Optional[List[Callable[[dict], None]]] = None,
    ) -> None:
        self.db = db
        self.loan_period = timedelta(days=loan_period_days)
        self.late_return_fine = Decimal(late_return_fine)
        self.restock_on_return = restock_on_return
        self.clock = clock
        self.post_commit_hooks = list(post_commit_hooks or [])

    # ----------------- issue -----------------

    def issue_book(self, user_id: str, book_id: str) -> IssueRecord:
        if not user_id or not book_id:
            raise ValidationError(
                "Missing required fields",
                code="missing_fields",
                details={"required": ["user_id", "book_id"]},
            )
        for field, value in (("user_id", user_id), ("book_id", book_id)):
            if not isinstance(value, str):
                raise ValidationError(
                    f"Invalid {field}",
                    code="invalid_identifier",
                    details={field: value, "expected": "String identifier"},
                )

        with self.db.session_scope() as session:
            user = session.get(User, user_id)
            if user is None:
                raise NotFoundError("User not found", code="user_not_found", details={"user_id": user_id})

            if not self._may_borrow(user.role):
                raise ForbiddenError(
                    "Cannot issue books to admin users",
                    code="admin_cannot_borrow",
                    details={"user_id": user_id, "role": user.role.value},
                )

            pending = self._pending_payments(session, user_id)
            if pending:
                raise PendingPaymentError(
                    "Cannot issue book due to pending payment",
                    details={"user_id": user_id, "pending_payment": _payment_summary(pending[0])},
                )

            book = session.execute(
                select(Book).where(Book.book_id == book_id).with_for_update()
            ).scalar_one_or_none()
            if book is None:
                raise NotFoundError("Book not found", code="book_not_found", details={"book_id": book_id})

            if book.quantity <= 0:
                raise _unavailable(book_id, book.quantity)

            open_loan = session.execute(
                select(IssueRecord).where(
                    IssueRecord.book_id == book_id,
                    IssueRecord.returned.is_(False),
                )
            ).scalars().first()
            if open_loan is not None:
                raise StateConflictError(
                    "Book is already issued",
                    code="book_already_issued",
                    details={
                        "book_id": book_id,
                        "current_holder": {"user_id": open_loan.user_id},
                        "issue_date": open_loan.issue_date.isoformat(),
                        "due_date": open_loan.due_date.isoformat(),
                    },
                )

            today = self.clock()
            # the checks above may be stale by now; the guarded decrement and
            # the open-loan index decide under concurrent issues
            taken = session.execute(
                update(Book)
                .where(Book.book_id == book_id, Book.quantity > 0)
                .values(quantity=Book.quantity - 1)
                .execution_options(synchronize_session=False)
            ).rowcount
            if not taken:
                raise _unavailable(book_id, 0)
            session.refresh(book)

            loan = IssueRecord(
                issue_record_id=next_identifier(session, IssueRecord.issue_record_id, "IR"),
                user_id=user.user_id,
                book_id=book.book_id,
                user=user,
                book=book,
                payment=None,
                issue_date=today,
                due_date=today + self.loan_period,
                return_date=None,
                returned=False,
            )
            session.add(loan)
            try:
                session.flush()
            except IntegrityError as e:
                if not _is_open_loan_conflict(e):
                    raise
                raise StateConflictError(
                    "Book is already issued",
                    code="book_already_issued",
                    details={"book_id": book_id},
                )

        logger.info(
            "Issued book %s to %s as %s (due %s, %s left)",
            book_id, user_id, loan.issue_record_id, loan.due_date, book.quantity,
        )
        self._after_commit(
            {
                "type": "book_issued",
                "user_id": user_id,
                "book_id": book_id,
                "issue_record_id": loan.issue_record_id,
                "due_date": loan.due_date.isoformat(),
            }
        )
        return loan

    # ----------------- return -----------------

    def return_book(self, loan_id: str, return_date: date) -> IssueRecord:
        """
        Close the loan on ``return_date``. Returning after the due date opens
        a PENDING fine for the borrower and links it to the loan.
        """
        fine = None
        with self.db.session_scope() as session:
            loan = self._lock_loan(session, loan_id)

            if loan.returned:
                raise StateConflictError(
                    "Book is already returned",
                    code="loan_already_returned",
                    details={
                        "issue_record_id": loan.issue_record_id,
                        "return_date": loan.return_date.isoformat() if loan.return_date else None,
                    },
                )

            if return_date < loan.issue_date:
                raise ValidationError(
                    "Return date cannot be before issue date",
                    code="return_before_issue",
                    details={
                        "issue_date": loan.issue_date.isoformat(),
                        "return_date": return_date.isoformat(),
                    },
                )

            if return_date > loan.due_date:
                fine = Payment(
                    payment_id=next_identifier(session, Payment.payment_id, "P"),
                    user_id=loan.user_id,
                    amount=self.late_return_fine,
                    status=PaymentStatus.PENDING,
                    description=f"Late return of {loan.book_id} ({loan.issue_record_id})",
                )
                session.add(fine)
                loan.payment_id = fine.payment_id
                loan.payment = fine

            loan.return_date = return_date
            loan.returned = True

            if self.restock_on_return:
                book = session.execute(
                    select(Book)
                    .where(Book.book_id == loan.book_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalar_one()
                book.quantity += 1

        logger.info("Returned %s on %s", loan.issue_record_id, return_date)
        if fine is not None:
            logger.info(
                "Assessed late fine %s of %s for %s on %s",
                fine.payment_id, fine.amount, loan.user_id, loan.issue_record_id,
            )
            self._after_commit(
                {
                    "type": "fine_assessed",
                    "user_id": loan.user_id,
                    "issue_record_id": loan.issue_record_id,
                    "payment_id": fine.payment_id,
                    "amount": str(fine.amount),
                }
            )
        return loan

    # ----------------- renew -----------------

    def renew_book(self, loan_id: str, requester_id: str, requester_role: Role) -> IssueRecord:
        with self.db.session_scope() as session:
            loan = self._lock_loan(session, loan_id)

            if loan.returned:
                raise StateConflictError(
                    "Cannot renew returned book",
                    code="loan_already_returned",
                    details={"issue_record_id": loan.issue_record_id},
                )

            if not self._may_manage(loan, requester_id, requester_role):
                raise ForbiddenError(
                    "Can only renew own books",
                    code="not_loan_owner",
                    details={"user_id": requester_id, "issue_user_id": loan.user_id},
                )

            pending = self._pending_payments(session, loan.user_id)
            if pending:
                raise PendingPaymentError(
                    "Cannot renew book due to pending payments",
                    details={
                        "user_id": loan.user_id,
                        "pending_payments": [_payment_summary(p) for p in pending],
                    },
                )

            loan.due_date = self.clock() + self.loan_period

        logger.info("Renewed %s until %s", loan.issue_record_id, loan.due_date)
        return loan

    # ----------------- helpers -----------------

    @staticmethod
    def _may_borrow(role):
        if role is Role.STUDENT:
            return True
        if role is Role.ADMIN:
            return False
        raise ValueError(f"Unknown role {role!r}")

    @staticmethod
    def _may_manage(loan, requester_id, requester_role):
        if requester_role is Role.ADMIN:
            return True
        if requester_role is Role.STUDENT:
            return loan.user_id == requester_id
        raise ValueError(f"Unknown role {requester_role!r}")

    @staticmethod
    def _lock_loan(session, loan_id):
        loan = session.execute(
            select(IssueRecord)
            .where(IssueRecord.issue_record_id == loan_id)
            .with_for_update(of=IssueRecord)
        ).scalar_one_or_none()
        if loan is None:
            raise NotFoundError(
                "Issue record not found",
                code="loan_not_found",
                details={"issue_record_id": loan_id},
            )
        return loan

    @staticmethod
    def _pending_payments(session, user_id):
        return session.execute(
            select(Payment)
            .where(Payment.user_id == user_id, Payment.status == PaymentStatus.PENDING)
            .order_by(Payment.payment_id)
        ).scalars().all()

    def _after_commit(self, event):
        run_post_commit_hooks(self.post_commit_hooks, event)


def _unavailable(book_id, quantity):
    return StateConflictError(
        "Book is not available",
        code="book_unavailable",
        details={"book_id": book_id, "available_quantity": quantity},
    )


def _is_open_loan_conflict(err):
    message = str(err.orig)
    return OPEN_LOAN_INDEX in message or "issue_records.book_id" in message


def _payment_summary(payment):
    return {
        "payment_id": payment.payment_id,
        "amount": str(payment.amount),
        "status": payment.status.value,
    }


def get_circulation():
    return current_app.extensions["circulation"]
