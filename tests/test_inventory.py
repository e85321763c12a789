import pytest

from library_service.errors import NotFoundError, StateConflictError, ValidationError
from library_service.inventory import LostDamagedLedger
from library_service.models import Book, LostDamagedBook


@pytest.fixture
def ledger(db):
    return LostDamagedLedger(db)


def test_first_record_takes_copies_out_of_circulation(ledger, make_book, fetch):
    book = make_book(quantity=5)

    record, created = ledger.record(book.book_id, 2)

    assert created is True
    assert record.lost_damaged_book_id == "LD1"
    assert record.quantity == 2
    assert fetch(Book, book.book_id).quantity == 3


def test_recording_again_moves_only_the_difference(ledger, make_book, fetch):
    book = make_book(quantity=5)
    ledger.record(book.book_id, 2)

    record, created = ledger.record(book.book_id, "3")

    assert created is False
    assert record.quantity == 3
    assert fetch(Book, book.book_id).quantity == 2

    record, _ = ledger.record(book.book_id, 1)

    assert record.quantity == 1
    assert fetch(Book, book.book_id).quantity == 4
    assert len(fetch(LostDamagedBook)) == 1


def test_cannot_remove_more_copies_than_available(ledger, make_book, fetch):
    book = make_book(quantity=2)

    with pytest.raises(StateConflictError) as exc:
        ledger.record(book.book_id, 3)

    assert exc.value.code == "insufficient_quantity"
    assert fetch(Book, book.book_id).quantity == 2
    assert fetch(LostDamagedBook) == []


@pytest.mark.parametrize("quantity", [-1, 1.5, "two", None, True])
def test_quantity_must_be_a_non_negative_integer(ledger, make_book, quantity):
    book = make_book()

    with pytest.raises(ValidationError) as exc:
        ledger.record(book.book_id, quantity)

    assert exc.value.code == "invalid_quantity"


def test_record_checks_book_reference(ledger):
    with pytest.raises(ValidationError) as exc:
        ledger.record("X1", 1)
    assert exc.value.code == "invalid_identifier"

    with pytest.raises(NotFoundError) as exc:
        ledger.record("B42", 1)
    assert exc.value.code == "book_not_found"


def test_update_adjusts_book_quantity(ledger, make_book, fetch):
    book = make_book(quantity=4)
    record, _ = ledger.record(book.book_id, 1)

    updated = ledger.update(record.lost_damaged_book_id, 3)

    assert updated.quantity == 3
    assert fetch(Book, book.book_id).quantity == 1


def test_update_to_zero_deletes_record(ledger, make_book, fetch):
    book = make_book(quantity=4)
    record, _ = ledger.record(book.book_id, 2)

    assert ledger.update(record.lost_damaged_book_id, 0) is None

    assert fetch(LostDamagedBook) == []
    assert fetch(Book, book.book_id).quantity == 4


def test_update_unknown_record(ledger):
    with pytest.raises(NotFoundError) as exc:
        ledger.update("LD7", 1)

    assert exc.value.code == "record_not_found"


def test_remove_restores_copies(ledger, make_book, fetch):
    book = make_book(quantity=3)
    record, _ = ledger.record(book.book_id, 3)
    assert fetch(Book, book.book_id).quantity == 0

    ledger.remove(record.lost_damaged_book_id)

    assert fetch(LostDamagedBook, record.lost_damaged_book_id) is None
    assert fetch(Book, book.book_id).quantity == 3


def test_lost_copies_cannot_be_issued(ledger, manager, make_user, make_book):
    book = make_book(quantity=1)
    ledger.record(book.book_id, 1)

    with pytest.raises(StateConflictError) as exc:
        manager.issue_book(make_user().user_id, book.book_id)

    assert exc.value.code == "book_unavailable"
