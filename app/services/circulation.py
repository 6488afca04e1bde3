# app/services/circulation.py
"""
Borrowing, fines and reservations.

Every operation that touches more than one row (borrow, return, lost,
fulfil) runs in one transaction: it either commits once or rolls back, so
Book.available_quantity always matches the open Borrowing rows.
"""
import os
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app import models, schemas
from app.services import _common
from app.services._common import Result

LOAN_DAYS = int(os.getenv("LOAN_DAYS", "14"))
RESERVATION_HOLD_DAYS = int(os.getenv("RESERVATION_HOLD_DAYS", "3"))

OPEN_STATUSES = (models.BorrowingStatus.BORROWED, models.BorrowingStatus.OVERDUE)


def _check_member(member: Optional[models.Member], on: date) -> Optional[str]:
    if not member:
        return "Member not found"
    if member.membership_status != models.MembershipStatus.ACTIVE:
        return f"Membership is {member.membership_status.value}"
    if member.membership_expiry_date < on:
        return f"Membership expired on {member.membership_expiry_date.isoformat()}"
    return None


def _open_borrowing(
    db: Session,
    *,
    book_id: int,
    member_id: int,
    staff_id: int,
    borrow_date: Optional[date],
    due_date: Optional[date],
    notes: Optional[str],
) -> Result:
    """Stages a Borrowing and the stock decrement; the caller commits or rolls back."""
    borrow_date = borrow_date or date.today()
    due_date = due_date or borrow_date + timedelta(days=LOAN_DAYS)
    if due_date < borrow_date:
        return None, "due_date must be on or after borrow_date"

    err = _check_member(db.get(models.Member, member_id), borrow_date)
    if err:
        return None, err

    staff = db.get(models.Staff, staff_id)
    if not staff:
        return None, "Staff not found"
    if not staff.is_active:
        return None, "Staff member is inactive"

    book = _common.get_by_pk(db, models.Book, book_id, lock=True)
    if not book:
        return None, "Book not found"
    if book.available_quantity < 1:
        return None, "No copies available"

    borrowing = models.Borrowing(
        book_id=book_id,
        member_id=member_id,
        staff_id=staff_id,
        borrow_date=borrow_date,
        due_date=due_date,
        notes=notes,
        status=models.BorrowingStatus.BORROWED,
    )
    book.available_quantity -= 1
    db.add(borrowing)
    return borrowing, None


# --- Borrowing --------------------------------------------------------------
def borrow_book(
    db: Session,
    *,
    book_id: int,
    member_id: int,
    staff_id: int,
    borrow_date: Optional[date] = None,
    due_date: Optional[date] = None,
    notes: Optional[str] = None,
) -> Result:
    borrowing, err = _open_borrowing(
        db,
        book_id=book_id,
        member_id=member_id,
        staff_id=staff_id,
        borrow_date=borrow_date,
        due_date=due_date,
        notes=notes,
    )
    if err:
        db.rollback()
        return None, err
    return _common.commit(db, borrowing)


def return_book(
    db: Session,
    borrowing_id: int,
    *,
    return_date: Optional[date] = None,
    late_fee: Optional[Decimal] = None,
) -> Result:
    """Closes a loan and puts the copy back on the shelf. late_fee is taken as given."""
    borrowing = _common.get_by_pk(db, models.Borrowing, borrowing_id, lock=True)
    if not borrowing:
        return None, "Borrowing not found"
    if borrowing.status not in OPEN_STATUSES:
        db.rollback()
        return None, f"Borrowing is already {borrowing.status.value}"

    return_date = return_date or date.today()
    if return_date < borrowing.borrow_date:
        db.rollback()
        return None, "return_date cannot be before borrow_date"

    book = _common.get_by_pk(db, models.Book, borrowing.book_id, lock=True)
    book.available_quantity += 1
    borrowing.return_date = return_date
    borrowing.status = models.BorrowingStatus.RETURNED
    if late_fee is not None:
        borrowing.late_fee = late_fee
    return _common.commit(db, borrowing)


def mark_lost(db: Session, borrowing_id: int) -> Result:
    # The copy was already off the shelf, so only the stock shrinks
    borrowing = _common.get_by_pk(db, models.Borrowing, borrowing_id, lock=True)
    if not borrowing:
        return None, "Borrowing not found"
    if borrowing.status not in OPEN_STATUSES:
        db.rollback()
        return None, f"Borrowing is already {borrowing.status.value}"

    book = _common.get_by_pk(db, models.Book, borrowing.book_id, lock=True)
    book.stock_quantity -= 1
    borrowing.status = models.BorrowingStatus.LOST
    return _common.commit(db, borrowing)


def set_borrowing_status(
    db: Session, borrowing_id: int, status: models.BorrowingStatus
) -> Result:
    """Status-only change (e.g. Borrowed -> Overdue). Returned/Lost move stock, so they have their own calls."""
    status, err = _common.coerce_status(models.BorrowingStatus, status)
    if err:
        return None, err
    if status == models.BorrowingStatus.RETURNED:
        return None, "Use return_book to close a borrowing"
    if status == models.BorrowingStatus.LOST:
        return None, "Use mark_lost to record a lost copy"
    borrowing = get_borrowing(db, borrowing_id)
    if borrowing and borrowing.status not in OPEN_STATUSES:
        return None, f"Borrowing is already {borrowing.status.value}"
    return _common.update(db, borrowing, {"status": status}, "Borrowing")


def get_borrowing(db: Session, borrowing_id: int) -> Optional[models.Borrowing]:
    return db.get(models.Borrowing, borrowing_id)


def list_borrowings(
    db: Session,
    *,
    member_id: Optional[int] = None,
    book_id: Optional[int] = None,
    status: Optional[models.BorrowingStatus] = None,
) -> List[models.Borrowing]:
    stmt = select(models.Borrowing)
    if member_id is not None:
        stmt = stmt.where(models.Borrowing.member_id == member_id)
    if book_id is not None:
        stmt = stmt.where(models.Borrowing.book_id == book_id)
    if status is not None:
        stmt = stmt.where(models.Borrowing.status == status)
    return list(db.scalars(stmt.order_by(models.Borrowing.borrow_date, models.Borrowing.borrowing_id)))


# --- Fine -------------------------------------------------------------------
def issue_fine(db: Session, data: schemas.FineCreate) -> Result:
    if not db.get(models.Member, data.member_id):
        return None, "Member not found"
    if data.borrowing_id is not None:
        borrowing = db.get(models.Borrowing, data.borrowing_id)
        if not borrowing:
            return None, "Borrowing not found"
        if borrowing.member_id != data.member_id:
            return None, "Borrowing belongs to a different member"
    fields = data.model_dump()
    fields["issue_date"] = data.issue_date or date.today()
    return _common.create(db, models.Fine, fields)


def get_fine(db: Session, fine_id: int) -> Optional[models.Fine]:
    return db.get(models.Fine, fine_id)


def list_fines(
    db: Session,
    *,
    member_id: Optional[int] = None,
    status: Optional[models.FineStatus] = None,
) -> List[models.Fine]:
    stmt = select(models.Fine)
    if member_id is not None:
        stmt = stmt.where(models.Fine.member_id == member_id)
    if status is not None:
        stmt = stmt.where(models.Fine.status == status)
    return list(db.scalars(stmt.order_by(models.Fine.issue_date, models.Fine.fine_id)))


def _settle_fine(db: Session, fine_id: int, status: models.FineStatus, payment_date: Optional[date]) -> Result:
    fine = _common.get_by_pk(db, models.Fine, fine_id, lock=True)
    if not fine:
        return None, "Fine not found"
    if fine.status != models.FineStatus.PENDING:
        db.rollback()
        return None, f"Fine is already {fine.status.value}"
    fine.status = status
    fine.payment_date = payment_date
    return _common.commit(db, fine)


def pay_fine(db: Session, fine_id: int, *, payment_date: Optional[date] = None) -> Result:
    return _settle_fine(db, fine_id, models.FineStatus.PAID, payment_date or date.today())


def waive_fine(db: Session, fine_id: int) -> Result:
    return _settle_fine(db, fine_id, models.FineStatus.WAIVED, None)


# --- Reservation ------------------------------------------------------------
def reserve_book(
    db: Session,
    *,
    book_id: int,
    member_id: int,
    reservation_date: Optional[datetime] = None,
    expiry_date: Optional[datetime] = None,
) -> Result:
    """A hold on a title; it does not take a copy off the shelf."""
    reservation_date = schemas.naive_utc(reservation_date) or datetime.now()
    expiry_date = schemas.naive_utc(expiry_date) or reservation_date + timedelta(days=RESERVATION_HOLD_DAYS)
    if expiry_date <= reservation_date:
        return None, "expiry_date must be after reservation_date"

    err = _check_member(db.get(models.Member, member_id), reservation_date.date())
    if err:
        return None, err
    if not db.get(models.Book, book_id):
        return None, "Book not found"

    pending = db.scalars(
        select(models.Reservation).filter_by(
            book_id=book_id, member_id=member_id, status=models.ReservationStatus.PENDING
        )
    ).first()
    if pending:
        return None, "Member already has a pending reservation for this book"

    return _common.create(
        db,
        models.Reservation,
        {
            "book_id": book_id,
            "member_id": member_id,
            "reservation_date": reservation_date,
            "expiry_date": expiry_date,
            "status": models.ReservationStatus.PENDING,
        },
    )


def get_reservation(db: Session, reservation_id: int) -> Optional[models.Reservation]:
    return db.get(models.Reservation, reservation_id)


def list_reservations(
    db: Session,
    *,
    member_id: Optional[int] = None,
    book_id: Optional[int] = None,
    status: Optional[models.ReservationStatus] = None,
) -> List[models.Reservation]:
    stmt = select(models.Reservation)
    if member_id is not None:
        stmt = stmt.where(models.Reservation.member_id == member_id)
    if book_id is not None:
        stmt = stmt.where(models.Reservation.book_id == book_id)
    if status is not None:
        stmt = stmt.where(models.Reservation.status == status)
    return list(db.scalars(stmt.order_by(models.Reservation.reservation_date)))


def set_reservation_status(
    db: Session, reservation_id: int, status: models.ReservationStatus
) -> Result:
    status, err = _common.coerce_status(models.ReservationStatus, status)
    if err:
        return None, err
    return _common.update(db, get_reservation(db, reservation_id), {"status": status}, "Reservation")


def cancel_reservation(db: Session, reservation_id: int) -> Result:
    reservation = get_reservation(db, reservation_id)
    if reservation and reservation.status != models.ReservationStatus.PENDING:
        return None, f"Reservation is already {reservation.status.value}"
    return set_reservation_status(db, reservation_id, models.ReservationStatus.CANCELLED)


def fulfill_reservation(
    db: Session,
    reservation_id: int,
    *,
    staff_id: int,
    borrow_date: Optional[date] = None,
    due_date: Optional[date] = None,
) -> Result:
    """Marks the hold Fulfilled and lends the book in the same transaction. Returns the Borrowing."""
    reservation = _common.get_by_pk(db, models.Reservation, reservation_id, lock=True)
    if not reservation:
        return None, "Reservation not found"
    if reservation.status != models.ReservationStatus.PENDING:
        db.rollback()
        return None, f"Reservation is already {reservation.status.value}"

    borrowing, err = _open_borrowing(
        db,
        book_id=reservation.book_id,
        member_id=reservation.member_id,
        staff_id=staff_id,
        borrow_date=borrow_date,
        due_date=due_date,
        notes=f"Reservation {reservation_id}",
    )
    if err:
        db.rollback()
        return None, err
    reservation.status = models.ReservationStatus.FULFILLED
    return _common.commit(db, borrowing)
