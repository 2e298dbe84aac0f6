import logging
import sqlite3
import threading
from datetime import datetime, timedelta, timezone

import pytest

from book import BookStatus
from circulation import compute_fine
from errors import BadRequestError, ConflictError, MissingFieldError, NotFoundError
from library import Library
from ledger import LoanLedger


@pytest.fixture
def dune_and_alice(library):
    book = library.catalog.add_book({"title": "Dune", "author": "Herbert"})
    member = library.members.add_member({"name": "Alice", "email": "a@x.com"})
    return book.book_id, member.member_id


DUE = datetime(2024, 3, 8, 9, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "now, expected",
    [
        (DUE - timedelta(days=2), 0),
        (DUE, 0),
        (DUE + timedelta(seconds=1), 5),
        (DUE + timedelta(days=1), 5),
        (DUE + timedelta(days=1, seconds=1), 10),
        (DUE + timedelta(days=3), 15),
    ],
)
def test_compute_fine(now, expected):
    assert compute_fine(DUE, now, 5) == expected


def test_dune_scenario(library, clock, dune_and_alice):
    book_id, member_id = dune_and_alice
    borrowed_at = clock()

    due_date = library.circulation.borrow(book_id, member_id, days=7)

    assert due_date == borrowed_at + timedelta(days=7)
    book = library.catalog.get_book(book_id)
    assert book.status is BookStatus.BORROWED
    assert book.borrowed_by == member_id
    assert book.due_date == due_date
    assert book.borrow_count == 1
    items = library.members.get_member(member_id).borrowed_books
    assert [(i.book_id, i.borrowed_on, i.due_date) for i in items] == [(book_id, borrowed_at, due_date)]

    clock.advance(days=10)
    fine = library.circulation.return_book(book_id, member_id)

    assert fine == 15
    book = library.catalog.get_book(book_id)
    assert book.status is BookStatus.AVAILABLE
    assert book.borrowed_by is None and book.due_date is None
    assert book.borrow_count == 1
    assert library.members.get_member(member_id).borrowed_books == []
    [loan] = library.circulation.loans_for_member(member_id)
    assert loan.returned_on == clock()
    assert loan.fine == 15


def test_on_time_return_has_no_fine(library, clock, dune_and_alice):
    book_id, member_id = dune_and_alice
    library.circulation.borrow(book_id, member_id, days=7)
    clock.advance(days=7)
    assert library.circulation.return_book(book_id, member_id) == 0


@pytest.mark.parametrize("days, expected", [("abc", 7), (-2, 7), (0, 7), ("10", 10), (None, 7)])
def test_borrow_days_coercion(library, clock, dune_and_alice, days, expected):
    book_id, member_id = dune_and_alice
    due_date = library.circulation.borrow(book_id, member_id, days=days)
    assert due_date == clock() + timedelta(days=expected)


def test_double_borrow_conflicts_without_changes(library, dune_and_alice):
    book_id, member_id = dune_and_alice
    bob = library.members.add_member({"name": "Bob", "email": "b@x.com"})
    library.circulation.borrow(book_id, member_id)

    with pytest.raises(ConflictError):
        library.circulation.borrow(book_id, bob.member_id)

    book = library.catalog.get_book(book_id)
    assert book.borrowed_by == member_id
    assert book.borrow_count == 1
    assert library.members.get_member(bob.member_id).borrowed_books == []
    assert len(library.circulation.loans()) == 1


def test_borrow_unknown_records(library, dune_and_alice):
    book_id, member_id = dune_and_alice
    with pytest.raises(NotFoundError):
        library.circulation.borrow("0" * 32, member_id)
    with pytest.raises(NotFoundError):
        library.circulation.borrow(book_id, "0" * 32)
    with pytest.raises(MissingFieldError):
        library.circulation.borrow(book_id, None)
    assert library.catalog.get_book(book_id).borrow_count == 0


def test_return_requires_borrowed_book(library, dune_and_alice):
    book_id, member_id = dune_and_alice
    with pytest.raises(ConflictError) as exc:
        library.circulation.return_book(book_id, member_id)
    assert exc.value.message == "Book is not currently borrowed"
    with pytest.raises(NotFoundError):
        library.circulation.return_book("0" * 32, member_id)


def test_round_trip_restores_book_shape(library, dune_and_alice):
    book_id, member_id = dune_and_alice
    before = library.catalog.get_book(book_id).to_dict()

    library.circulation.borrow(book_id, member_id)
    library.circulation.return_book(book_id, member_id)

    after = library.catalog.get_book(book_id).to_dict()
    assert after.pop("borrowCount") == 1
    before.pop("borrowCount")
    assert after == before


def test_borrow_count_is_lifetime_counter(library, dune_and_alice):
    book_id, member_id = dune_and_alice
    for _ in range(3):
        library.circulation.borrow(book_id, member_id)
        library.circulation.return_book(book_id, member_id)
    assert library.catalog.get_book(book_id).borrow_count == 3
    assert [loan.is_open for loan in library.circulation.loans(member_id)] == [False, False, False]


def test_failed_ledger_write_rolls_back_borrow(library, monkeypatch, dune_and_alice):
    book_id, member_id = dune_and_alice

    def broken_append(self, loan):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(LoanLedger, "append", broken_append)

    with pytest.raises(sqlite3.OperationalError):
        library.circulation.borrow(book_id, member_id)

    book = library.catalog.get_book(book_id)
    assert book.status is BookStatus.AVAILABLE
    assert book.borrow_count == 0
    assert library.members.get_member(member_id).borrowed_books == []


def test_return_without_open_loan_still_transitions(library, caplog, dune_and_alice):
    book_id, member_id = dune_and_alice
    library.circulation.borrow(book_id, member_id)
    with library.db.connection() as conn:
        conn.execute("DELETE FROM loans")

    with caplog.at_level(logging.WARNING):
        fine = library.circulation.return_book(book_id, member_id)

    assert fine == 0
    assert library.catalog.get_book(book_id).status is BookStatus.AVAILABLE
    assert library.members.get_member(member_id).borrowed_books == []
    assert "No open loan" in caplog.text


def test_open_loan_filter(library, dune_and_alice):
    book_id, member_id = dune_and_alice
    other = library.catalog.add_book({"title": "Emma", "author": "Austen"})
    library.circulation.borrow(book_id, member_id)
    library.circulation.borrow(other.book_id, member_id)
    library.circulation.return_book(book_id, member_id)

    open_loans = library.circulation.loans(member_id, open_only=True)
    assert [loan.book_id for loan in open_loans] == [other.book_id]


@pytest.mark.parametrize("days", [10**9, 3_000_000, "366"])
def test_borrow_rejects_days_over_maximum(library, dune_and_alice, days):
    book_id, member_id = dune_and_alice

    with pytest.raises(BadRequestError) as exc:
        library.circulation.borrow(book_id, member_id, days=days)

    assert exc.value.message == "days must be at most 365"
    book = library.catalog.get_book(book_id)
    assert book.status is BookStatus.AVAILABLE
    assert book.borrow_count == 0
    assert library.circulation.loans() == []


def test_borrow_due_date_past_calendar_end_is_bad_request(settings_factory, clock):
    with Library(settings_factory(max_loan_days=10**10), clock=clock) as library:
        book = library.catalog.add_book({"title": "Dune", "author": "Herbert"})
        member = library.members.add_member({"name": "Alice", "email": "a@x.com"})

        with pytest.raises(BadRequestError):
            library.circulation.borrow(book.book_id, member.member_id, days=10**9)

        assert library.catalog.get_book(book.book_id).status is BookStatus.AVAILABLE


def test_concurrent_borrows_of_one_book_admit_a_single_winner(library):
    book = library.catalog.add_book({"title": "Dune", "author": "Herbert"})
    member_ids = [
        library.members.add_member({"name": f"Reader {i}", "email": f"r{i}@x.com"}).member_id
        for i in range(8)
    ]
    barrier = threading.Barrier(len(member_ids))
    winners, conflicts, errors = [], [], []
    lock = threading.Lock()

    def worker(member_id):
        barrier.wait()
        try:
            library.circulation.borrow(book.book_id, member_id)
        except ConflictError as exc:
            with lock:
                conflicts.append(exc)
        except Exception as exc:
            with lock:
                errors.append(exc)
        else:
            with lock:
                winners.append(member_id)

    threads = [threading.Thread(target=worker, args=(member_id,)) for member_id in member_ids]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert errors == []
    assert len(winners) == 1
    assert len(conflicts) == len(member_ids) - 1
    stored = library.catalog.get_book(book.book_id)
    assert stored.borrow_count == 1
    assert stored.borrowed_by == winners[0]
    assert [loan.member_id for loan in library.circulation.loans()] == winners
