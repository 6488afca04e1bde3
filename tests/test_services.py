from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app import models, schemas, services
from app.services import _common, circulation


def _fresh(db, obj):
    db.refresh(obj)
    return obj


# --- End-to-end ---------------------------------------------------------------
def test_borrowing_scenario_end_to_end(db, make_member):
    publisher, err = services.create_publisher(
        db, schemas.PublisherCreate(name="Acme Press", email="hello@acme.example")
    )
    assert err is None

    book, err = services.create_book(
        db,
        schemas.BookCreate(
            isbn="9781234567897",
            title="Circulation Basics",
            publisher_id=publisher.publisher_id,
            stock_quantity=5,
            available_quantity=5,
        ),
    )
    assert err is None
    assert len(book.isbn) == 13

    member = make_member(
        card="LC-2024", email="reader@example.com",
        registration_date=date(2024, 1, 1), membership_expiry_date=date(2025, 1, 1),
    )

    staff, err = services.create_staff(
        db,
        schemas.StaffCreate(
            first_name="Dee", last_name="Desk", position="Clerk",
            hire_date=date(2023, 1, 1), username="ddesk", password="s3cret-pass",
        ),
    )
    assert err is None

    borrowing, err = services.borrow_book(
        db,
        book_id=book.book_id,
        member_id=member.member_id,
        staff_id=staff.staff_id,
        borrow_date=date(2024, 6, 1),
        due_date=date(2024, 6, 15),
    )
    assert err is None

    stored = services.get_borrowing(db, borrowing.borrowing_id)
    assert stored.status == models.BorrowingStatus.BORROWED
    assert stored.borrow_date == date(2024, 6, 1)
    assert stored.due_date == date(2024, 6, 15)
    assert stored.return_date is None
    assert _fresh(db, book).available_quantity == 4


# --- Catalog ------------------------------------------------------------------
def test_create_book_rejects_duplicate_isbn(db, book):
    data = schemas.BookCreate(isbn=book.isbn, title="Again", publisher_id=book.publisher_id)
    result, err = services.create_book(db, data)
    assert result is None
    assert "already exists" in err


def test_create_book_rejects_unknown_publisher(db):
    data = schemas.BookCreate(isbn="9780306406157", title="Orphan", publisher_id=99)
    result, err = services.create_book(db, data)
    assert result is None
    assert err == "Publisher not found"


def test_lookup_by_isbn_and_title_search(db, book):
    assert services.get_book_by_isbn(db, "9780306406157").book_id == book.book_id
    assert services.get_book_by_isbn(db, "0000000000") is None
    assert [b.book_id for b in services.list_books(db, title="pragmatic")] == [book.book_id]
    assert services.list_books(db, title="nothing like it") == []


def test_title_search_treats_wildcards_literally(db, book):
    promo, err = services.create_book(
        db,
        schemas.BookCreate(
            isbn="9780000000019", title="100% Pure_Fiction", publisher_id=book.publisher_id,
        ),
    )
    assert err is None
    assert [b.book_id for b in services.list_books(db, title="%")] == [promo.book_id]
    assert [b.book_id for b in services.list_books(db, title="_")] == [promo.book_id]
    assert services.list_books(db, title="100%Pure") == []


def test_update_book_cannot_break_quantity_bounds(db, book):
    result, err = services.update_book(db, book.book_id, schemas.BookUpdate(available_quantity=9))
    assert result is None
    assert "available_quantity" in err
    assert _fresh(db, book).available_quantity == 5


def test_update_missing_book(db):
    result, err = services.update_book(db, 404, schemas.BookUpdate(title="Ghost"))
    assert result is None
    assert err == "Book not found"


def test_adjust_stock(db, book):
    updated, err = services.adjust_stock(db, book.book_id, 2)
    assert err is None
    assert (updated.stock_quantity, updated.available_quantity) == (7, 7)

    updated, err = services.adjust_stock(db, book.book_id, -3)
    assert err is None
    assert (updated.stock_quantity, updated.available_quantity) == (4, 4)

    result, err = services.adjust_stock(db, book.book_id, -5)
    assert result is None
    assert "Not enough copies" in err


def test_duplicate_author_is_reported(db):
    data = schemas.AuthorCreate(first_name="Octavia", last_name="Butler")
    author, err = services.create_author(db, data)
    assert err is None
    again, err = services.create_author(db, data)
    assert again is None
    assert err
    assert services.get_author_by_name(db, first_name="Octavia", last_name="Butler").author_id == author.author_id


def test_book_author_and_genre_links(db, book):
    author, _ = services.create_author(db, schemas.AuthorCreate(first_name="Ted", last_name="Chiang"))
    genre, _ = services.create_genre(db, schemas.GenreCreate(name="Science Fiction"))

    link, err = services.add_book_author(db, book.book_id, author.author_id, "Editor")
    assert err is None
    assert link.contribution_type == "Editor"
    _, err = services.add_book_author(db, book.book_id, author.author_id)
    assert err == "Author is already linked to this book"

    _, err = services.add_book_genre(db, book.book_id, genre.genre_id)
    assert err is None
    _, err = services.add_book_genre(db, book.book_id, genre.genre_id)
    assert err == "Genre is already linked to this book"
    assert [g.name for g in services.list_book_genres(db, book.book_id)] == ["Science Fiction"]

    _, err = services.remove_book_genre(db, book.book_id, genre.genre_id)
    assert err is None
    _, err = services.remove_book_genre(db, book.book_id, genre.genre_id)
    assert err == "Genre link not found"


def test_default_contribution_type_is_primary(db, book):
    author, _ = services.create_author(db, schemas.AuthorCreate(first_name="N", last_name="K. Jemisin"))
    link, err = services.add_book_author(db, book.book_id, author.author_id)
    assert err is None
    assert link.contribution_type == "Primary"


def test_linking_unknown_author_fails(db, book):
    result, err = services.add_book_author(db, book.book_id, 777)
    assert result is None
    assert err


def test_delete_author_keeps_the_book(db, book):
    author, _ = services.create_author(db, schemas.AuthorCreate(first_name="Iain", last_name="Banks"))
    services.add_book_author(db, book.book_id, author.author_id)

    _, err = services.delete_author(db, author.author_id)
    assert err is None
    assert services.get_book(db, book.book_id) is not None
    assert services.list_book_authors(db, book.book_id) == []


def test_delete_publisher_with_books_is_refused(db, book):
    result, err = services.delete_publisher(db, book.publisher_id)
    assert result is None
    assert "still referenced" in err
    assert services.get_publisher(db, book.publisher_id) is not None


# --- People ---------------------------------------------------------------------
def test_member_lookup_and_status(db, member):
    assert services.get_member_by_card(db, "LC-0001").member_id == member.member_id
    updated, err = services.set_membership_status(db, member.member_id, models.MembershipStatus.SUSPENDED)
    assert err is None
    assert updated.membership_status == models.MembershipStatus.SUSPENDED
    assert services.list_members(db, status=models.MembershipStatus.ACTIVE) == []


def test_member_defaults(db, member):
    assert member.membership_status == models.MembershipStatus.ACTIVE
    assert member.country == "United States"


def test_duplicate_card_number(db, member):
    data = schemas.MemberCreate(
        library_card_number=member.library_card_number,
        first_name="Bo",
        last_name="Tran",
        date_of_birth=date(2001, 1, 1),
        address="3 Oak Ave",
        city="Springfield",
        registration_date=date(2024, 2, 1),
        membership_expiry_date=date(2025, 2, 1),
    )
    result, err = services.create_member(db, data)
    assert result is None
    assert err == "Library card LC-0001 is already registered."


def test_update_member_expiry_before_registration_is_refused(db, member):
    result, err = services.update_member(
        db, member.member_id, schemas.MemberUpdate(membership_expiry_date=date(2023, 1, 1))
    )
    assert result is None
    assert "membership_expiry_date" in err


def test_staff_password_is_hashed_and_login_recorded(db, staff):
    assert staff.password_hash != "correct-horse"
    assert services.verify_password(staff, "correct-horse")
    assert staff.last_login is None

    logged_in, err = services.record_login(db, username="slee", password="correct-horse")
    assert err is None
    assert logged_in.last_login is not None

    _, err = services.record_login(db, username="slee", password="wrong-password")
    assert err == "Invalid username or password"


def test_deactivated_staff_cannot_log_in_or_lend(db, staff, book, member):
    services.deactivate_staff(db, staff.staff_id)
    _, err = services.record_login(db, username="slee", password="correct-horse")
    assert err
    _, err = services.borrow_book(
        db, book_id=book.book_id, member_id=member.member_id, staff_id=staff.staff_id
    )
    assert err == "Staff member is inactive"


def test_delete_member_with_history_is_refused(db, book, member, staff):
    services.borrow_book(db, book_id=book.book_id, member_id=member.member_id, staff_id=staff.staff_id)
    result, err = services.delete_member(db, member.member_id)
    assert result is None
    assert "still referenced" in err


def test_delete_member_without_history(db, member):
    _, err = services.delete_member(db, member.member_id)
    assert err is None
    assert services.get_member(db, member.member_id) is None


# --- Borrowing ------------------------------------------------------------------
def test_borrow_defaults_due_date_from_loan_days(db, book, member, staff):
    borrowing, err = services.borrow_book(
        db, book_id=book.book_id, member_id=member.member_id, staff_id=staff.staff_id
    )
    assert err is None
    assert borrowing.borrow_date == date.today()
    assert borrowing.due_date == date.today() + timedelta(days=circulation.LOAN_DAYS)


def test_borrow_and_return_keep_availability_in_step(db, book, member, staff):
    borrowing, _ = services.borrow_book(
        db, book_id=book.book_id, member_id=member.member_id, staff_id=staff.staff_id
    )
    assert _fresh(db, book).available_quantity == 4

    returned, err = services.return_book(db, borrowing.borrowing_id, late_fee=Decimal("1.50"))
    assert err is None
    assert returned.status == models.BorrowingStatus.RETURNED
    assert returned.return_date == date.today()
    assert returned.late_fee == Decimal("1.50")
    assert _fresh(db, book).available_quantity == 5

    _, err = services.return_book(db, borrowing.borrowing_id)
    assert err == "Borrowing is already Returned"
    assert _fresh(db, book).available_quantity == 5


def test_borrow_when_no_copies_left(db, publisher, member, staff):
    book, _ = services.create_book(
        db,
        schemas.BookCreate(
            isbn="9780262033848", title="Out Of Stock",
            publisher_id=publisher.publisher_id, stock_quantity=1, available_quantity=0,
        ),
    )
    result, err = services.borrow_book(
        db, book_id=book.book_id, member_id=member.member_id, staff_id=staff.staff_id
    )
    assert result is None
    assert err == "No copies available"
    assert services.list_borrowings(db) == []


@pytest.mark.parametrize(
    "status", [models.MembershipStatus.SUSPENDED, models.MembershipStatus.EXPIRED]
)
def test_inactive_member_cannot_borrow(db, book, member, staff, status):
    services.set_membership_status(db, member.member_id, status)
    result, err = services.borrow_book(
        db, book_id=book.book_id, member_id=member.member_id, staff_id=staff.staff_id
    )
    assert result is None
    assert err == f"Membership is {status.value}"
    assert _fresh(db, book).available_quantity == 5


def test_member_past_expiry_cannot_borrow(db, book, staff, make_member):
    member = make_member(
        card="LC-OLD", email=None,
        registration_date=date(2020, 1, 1), membership_expiry_date=date(2021, 1, 1),
    )
    _, err = services.borrow_book(
        db, book_id=book.book_id, member_id=member.member_id, staff_id=staff.staff_id,
        borrow_date=date(2022, 3, 1),
    )
    assert err == "Membership expired on 2021-01-01"


def test_borrow_with_due_before_borrow_is_refused(db, book, member, staff):
    _, err = services.borrow_book(
        db, book_id=book.book_id, member_id=member.member_id, staff_id=staff.staff_id,
        borrow_date=date(2024, 6, 15), due_date=date(2024, 6, 1),
    )
    assert err == "due_date must be on or after borrow_date"


def test_overdue_then_return(db, book, member, staff):
    borrowing, _ = services.borrow_book(
        db, book_id=book.book_id, member_id=member.member_id, staff_id=staff.staff_id
    )
    updated, err = services.set_borrowing_status(db, borrowing.borrowing_id, models.BorrowingStatus.OVERDUE)
    assert err is None
    assert updated.status == models.BorrowingStatus.OVERDUE
    assert [b.borrowing_id for b in services.list_borrowings(db, status=models.BorrowingStatus.OVERDUE)] == [
        borrowing.borrowing_id
    ]

    _, err = services.set_borrowing_status(db, borrowing.borrowing_id, models.BorrowingStatus.RETURNED)
    assert err == "Use return_book to close a borrowing"

    returned, err = services.return_book(db, borrowing.borrowing_id)
    assert err is None
    assert returned.status == models.BorrowingStatus.RETURNED


def test_mark_lost_shrinks_stock(db, book, member, staff):
    borrowing, _ = services.borrow_book(
        db, book_id=book.book_id, member_id=member.member_id, staff_id=staff.staff_id
    )
    lost, err = services.mark_lost(db, borrowing.borrowing_id)
    assert err is None
    assert lost.status == models.BorrowingStatus.LOST
    book = _fresh(db, book)
    assert (book.stock_quantity, book.available_quantity) == (4, 4)


# --- Fines ----------------------------------------------------------------------
def test_fine_lifecycle(db, book, member, staff):
    borrowing, _ = services.borrow_book(
        db, book_id=book.book_id, member_id=member.member_id, staff_id=staff.staff_id
    )
    fine, err = services.issue_fine(
        db,
        schemas.FineCreate(
            member_id=member.member_id, borrowing_id=borrowing.borrowing_id,
            amount=Decimal("2.50"), reason="Returned late",
        ),
    )
    assert err is None
    assert fine.status == models.FineStatus.PENDING
    assert fine.issue_date == date.today()

    paid, err = services.pay_fine(db, fine.fine_id, payment_date=date(2024, 7, 2))
    assert err is None
    assert paid.status == models.FineStatus.PAID
    assert paid.payment_date == date(2024, 7, 2)

    _, err = services.pay_fine(db, fine.fine_id)
    assert err == "Fine is already Paid"
    _, err = services.waive_fine(db, fine.fine_id)
    assert err == "Fine is already Paid"


def test_waive_fine(db, member):
    fine, _ = services.issue_fine(
        db, schemas.FineCreate(member_id=member.member_id, amount=Decimal("5"), reason="Damaged cover")
    )
    waived, err = services.waive_fine(db, fine.fine_id)
    assert err is None
    assert waived.status == models.FineStatus.WAIVED
    assert waived.payment_date is None
    assert services.list_fines(db, status=models.FineStatus.PENDING) == []


def test_fine_for_someone_elses_borrowing_is_refused(db, book, member, staff, make_member):
    other = make_member(card="LC-0002", email="other@example.com")
    borrowing, _ = services.borrow_book(
        db, book_id=book.book_id, member_id=member.member_id, staff_id=staff.staff_id
    )
    _, err = services.issue_fine(
        db,
        schemas.FineCreate(
            member_id=other.member_id, borrowing_id=borrowing.borrowing_id, amount=Decimal("1"), reason="x"
        ),
    )
    assert err == "Borrowing belongs to a different member"


# --- Reservations ------------------------------------------------------------------
def test_reserve_defaults_hold_period(db, book, member):
    start = datetime(2024, 6, 1, 9, 30)
    reservation, err = services.reserve_book(
        db, book_id=book.book_id, member_id=member.member_id, reservation_date=start
    )
    assert err is None
    assert reservation.status == models.ReservationStatus.PENDING
    assert reservation.expiry_date == start + timedelta(days=circulation.RESERVATION_HOLD_DAYS)
    assert _fresh(db, book).available_quantity == 5


def test_duplicate_pending_reservation_is_refused(db, book, member):
    services.reserve_book(db, book_id=book.book_id, member_id=member.member_id)
    result, err = services.reserve_book(db, book_id=book.book_id, member_id=member.member_id)
    assert result is None
    assert err == "Member already has a pending reservation for this book"


def test_reservation_with_expiry_not_after_start_is_refused(db, book, member):
    start = datetime(2024, 6, 1, 9, 30)
    _, err = services.reserve_book(
        db, book_id=book.book_id, member_id=member.member_id,
        reservation_date=start, expiry_date=start,
    )
    assert err == "expiry_date must be after reservation_date"


def test_cancel_reservation(db, book, member):
    reservation, _ = services.reserve_book(db, book_id=book.book_id, member_id=member.member_id)
    cancelled, err = services.cancel_reservation(db, reservation.reservation_id)
    assert err is None
    assert cancelled.status == models.ReservationStatus.CANCELLED

    _, err = services.cancel_reservation(db, reservation.reservation_id)
    assert err == "Reservation is already Cancelled"
    # a new hold is allowed once the old one is closed
    _, err = services.reserve_book(db, book_id=book.book_id, member_id=member.member_id)
    assert err is None


def test_fulfill_reservation_lends_the_book(db, book, member, staff):
    reservation, _ = services.reserve_book(db, book_id=book.book_id, member_id=member.member_id)
    borrowing, err = services.fulfill_reservation(db, reservation.reservation_id, staff_id=staff.staff_id)
    assert err is None
    assert borrowing.book_id == book.book_id
    assert borrowing.member_id == member.member_id
    assert services.get_reservation(db, reservation.reservation_id).status == models.ReservationStatus.FULFILLED
    assert _fresh(db, book).available_quantity == 4


def test_failed_fulfilment_leaves_reservation_pending(db, book, member, staff):
    reservation, _ = services.reserve_book(db, book_id=book.book_id, member_id=member.member_id)
    services.deactivate_staff(db, staff.staff_id)
    result, err = services.fulfill_reservation(db, reservation.reservation_id, staff_id=staff.staff_id)
    assert result is None
    assert err == "Staff member is inactive"
    assert services.get_reservation(db, reservation.reservation_id).status == models.ReservationStatus.PENDING
    assert _fresh(db, book).available_quantity == 5


def test_expire_reservation_via_status(db, book, member):
    reservation, _ = services.reserve_book(db, book_id=book.book_id, member_id=member.member_id)
    expired, err = services.set_reservation_status(db, reservation.reservation_id, models.ReservationStatus.EXPIRED)
    assert err is None
    assert expired.status == models.ReservationStatus.EXPIRED


# --- Audit ------------------------------------------------------------------------
def test_audit_entries_are_appended_and_filtered(db, book, staff):
    entry = services.audit_entry_for(
        book, models.AuditAction.INSERT, new_values={"isbn": book.isbn}, user_id=staff.staff_id
    )
    assert (entry.table_name, entry.record_id) == ("Book", book.book_id)

    logged, err = services.record_audit(db, entry)
    assert err is None
    assert logged.new_values == {"isbn": "9780306406157"}

    services.record_audit(
        db,
        schemas.AuditLogCreate(
            table_name="Book", record_id=book.book_id, action_type=models.AuditAction.UPDATE,
            old_values={"title": "a"}, new_values={"title": "b"},
        ),
    )
    assert len(services.list_audit(db, table_name="Book", record_id=book.book_id)) == 2
    assert [e.action_type for e in services.list_audit(db, action=models.AuditAction.UPDATE)] == [
        models.AuditAction.UPDATE
    ]


def test_reservation_with_mixed_timezone_awareness(db, book, member):
    start = datetime(2024, 6, 1, 10, 0, tzinfo=timezone(timedelta(hours=2)))
    reservation, err = services.reserve_book(
        db, book_id=book.book_id, member_id=member.member_id,
        reservation_date=start, expiry_date=datetime(2024, 6, 3, 8, 0),
    )
    assert err is None
    assert reservation.reservation_date == datetime(2024, 6, 1, 8, 0)
    assert reservation.expiry_date == datetime(2024, 6, 3, 8, 0)

    _, err = services.reserve_book(
        db, book_id=book.book_id, member_id=member.member_id,
        reservation_date=start, expiry_date=datetime(2024, 6, 1, 8, 0),
    )
    assert err == "expiry_date must be after reservation_date"


# --- Unknown statuses / unexpected errors --------------------------------------
def test_unknown_status_strings_are_reported(db, book, member, staff):
    borrowing, _ = services.borrow_book(
        db, book_id=book.book_id, member_id=member.member_id, staff_id=staff.staff_id
    )
    reservation, _ = services.reserve_book(db, book_id=book.book_id, member_id=member.member_id)

    assert services.set_borrowing_status(db, borrowing.borrowing_id, "Missing") == (None, "Unknown status 'Missing'")
    assert services.set_reservation_status(db, reservation.reservation_id, "Held") == (None, "Unknown status 'Held'")
    assert services.set_membership_status(db, member.member_id, "Banned") == (None, "Unknown status 'Banned'")
    assert _fresh(db, member).membership_status == models.MembershipStatus.ACTIVE


def test_status_given_as_plain_string_is_accepted(db, member):
    updated, err = services.set_membership_status(db, member.member_id, "Suspended")
    assert err is None
    assert updated.membership_status == models.MembershipStatus.SUSPENDED


def test_non_integrity_failures_roll_back_and_report(db, book):
    entry, err = services.record_audit(
        db, services.audit_entry_for(book, models.AuditAction.INSERT, new_values={"isbn": book.isbn})
    )
    assert err is None

    result, err = _common.update(db, entry, {"table_name": "Member"}, "AuditLog")
    assert result is None
    assert "append-only" in err

    result, err = _common.delete(db, entry, "AuditLog")
    assert result is None
    assert "append-only" in err

    # session is usable again and nothing changed
    logged = services.list_audit(db)
    assert [(e.table_name, e.record_id) for e in logged] == [("Book", book.book_id)]
