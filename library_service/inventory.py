"""Lost/damaged bookkeeping.

Each book has at most one ``LostDamagedBook`` row holding the number of
copies taken out of circulation. Setting that number moves the difference
from (or back to) the book's available quantity in the same transaction.
"""

import logging

from flask import current_app
from sqlalchemy import select

from .database import next_identifier
from .errors import NotFoundError, StateConflictError
from .models import Book, LostDamagedBook
from .validators import check_identifier, parse_quantity

logger = logging.getLogger(__name__)


class LostDamagedLedger:
    def __init__(self, db):
        self.db = db

    def record(self, book_id, quantity):
        """
        Set the lost/damaged count of ``book_id`` to ``quantity``.

        Returns ``(record, created)``.
        """
        check_identifier(book_id, "B", "book_id")
        quantity = parse_quantity(quantity)

        with self.db.session_scope() as session:
            book = self._lock_book(session, book_id)
            record = session.execute(
                select(LostDamagedBook).where(LostDamagedBook.book_id == book_id).with_for_update()
            ).scalar_one_or_none()

            created = record is None
            previous = 0 if created else record.quantity
            self._adjust(book, quantity - previous)

            if created:
                record = LostDamagedBook(
                    lost_damaged_book_id=next_identifier(
                        session, LostDamagedBook.lost_damaged_book_id, "LD"
                    ),
                    book_id=book.book_id,
                    book=book,
                    quantity=quantity,
                )
                session.add(record)
            else:
                record.quantity = quantity

        logger.info(
            "Lost/damaged count for %s set to %s (%s available)",
            book_id, quantity, book.quantity,
        )
        return record, created

    def update(self, record_id, quantity):
        """Change an existing record; a quantity of 0 deletes it and returns None."""
        quantity = parse_quantity(quantity)

        with self.db.session_scope() as session:
            record = self._lock_record(session, record_id)
            book = self._lock_book(session, record.book_id)
            self._adjust(book, quantity - record.quantity)

            if quantity == 0:
                session.delete(record)
                record = None
            else:
                record.quantity = quantity

        logger.info("Lost/damaged record %s set to %s", record_id, quantity)
        return record

    def remove(self, record_id):
        """Delete the record and put its copies back into circulation."""
        with self.db.session_scope() as session:
            record = self._lock_record(session, record_id)
            book = self._lock_book(session, record.book_id)
            self._adjust(book, -record.quantity)
            session.delete(record)

        logger.info("Lost/damaged record %s removed", record_id)

    @staticmethod
    def _adjust(book, delta):
        # positive delta: copies leave circulation
        if delta > book.quantity:
            raise StateConflictError(
                "Requested quantity exceeds available book quantity",
                code="insufficient_quantity",
                details={"available_quantity": book.quantity, "requested_quantity": delta},
            )
        book.quantity -= delta

    @staticmethod
    def _lock_book(session, book_id):
        book = session.execute(
            select(Book)
            .where(Book.book_id == book_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if book is None:
            raise NotFoundError("Book not found", code="book_not_found", details={"book_id": book_id})
        return book

    @staticmethod
    def _lock_record(session, record_id):
        record = session.execute(
            select(LostDamagedBook)
            .where(LostDamagedBook.lost_damaged_book_id == record_id)
            .with_for_update(of=LostDamagedBook)
        ).scalar_one_or_none()
        if record is None:
            raise NotFoundError(
                "Lost or damaged book record not found",
                code="record_not_found",
                details={"lost_damaged_book_id": record_id},
            )
        return record


def get_ledger():
    return current_app.extensions["inventory"]
