from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
    event,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    ...


class Gender(str, enum.Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"


class MembershipStatus(str, enum.Enum):
    ACTIVE = "Active"
    EXPIRED = "Expired"
    SUSPENDED = "Suspended"


class BorrowingStatus(str, enum.Enum):
    BORROWED = "Borrowed"
    RETURNED = "Returned"
    OVERDUE = "Overdue"
    LOST = "Lost"


class FineStatus(str, enum.Enum):
    PENDING = "Pending"
    PAID = "Paid"
    WAIVED = "Waived"


class ReservationStatus(str, enum.Enum):
    PENDING = "Pending"
    FULFILLED = "Fulfilled"
    CANCELLED = "Cancelled"
    EXPIRED = "Expired"


class AuditAction(str, enum.Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


def _enum(enum_cls: type[enum.Enum], name: str) -> Enum:
    # Stores the literal values ("Active", not "ACTIVE"); non-native backends get a CHECK
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        create_constraint=True,
        validate_strings=True,
    )


EMAIL_PATTERN = "email LIKE '%@%.%'"


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------
class Publisher(Base):
    __tablename__ = "Publisher"
    __table_args__ = (
        CheckConstraint(EMAIL_PATTERN, name="chk_publisher_email"),
    )

    publisher_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100))
    address: Mapped[Optional[str]] = mapped_column(String(200))
    phone: Mapped[Optional[str]] = mapped_column(String(20))
    email: Mapped[Optional[str]] = mapped_column(String(100))
    website: Mapped[Optional[str]] = mapped_column(String(100))
    established_date: Mapped[Optional[date]] = mapped_column(Date)

    books: Mapped[List["Book"]] = relationship(back_populates="publisher", passive_deletes="all")


class Author(Base):
    __tablename__ = "Author"
    __table_args__ = (
        UniqueConstraint("first_name", "last_name", name="unq_author_name"),
        Index("idx_author_name", "last_name", "first_name"),
    )

    author_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first_name: Mapped[str] = mapped_column(String(50))
    last_name: Mapped[str] = mapped_column(String(50))
    birth_date: Mapped[Optional[date]] = mapped_column(Date)
    nationality: Mapped[Optional[str]] = mapped_column(String(50))
    biography: Mapped[Optional[str]] = mapped_column(Text)

    book_links: Mapped[List["BookAuthor"]] = relationship(
        back_populates="author", cascade="all, delete-orphan", passive_deletes=True
    )


class Genre(Base):
    __tablename__ = "Genre"

    genre_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text)

    books: Mapped[List["Book"]] = relationship(
        secondary="Book_Genre", back_populates="genres", passive_deletes=True
    )


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------
class Book(Base):
    __tablename__ = "Book"
    __table_args__ = (
        ForeignKeyConstraint(["publisher_id"], ["Publisher.publisher_id"], name="fk_book_publisher"),
        CheckConstraint(
            "available_quantity <= stock_quantity AND available_quantity >= 0",
            name="chk_book_quantities",
        ),
        CheckConstraint("LENGTH(isbn) >= 10", name="chk_book_isbn"),
        Index("idx_book_title", "title"),
    )

    book_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    isbn: Mapped[str] = mapped_column(String(20), unique=True)
    title: Mapped[str] = mapped_column(String(200))
    publisher_id: Mapped[int] = mapped_column(Integer)
    publication_date: Mapped[Optional[date]] = mapped_column(Date)
    edition: Mapped[Optional[int]] = mapped_column(Integer, default=1, server_default="1")
    page_count: Mapped[Optional[int]] = mapped_column(Integer)
    language: Mapped[Optional[str]] = mapped_column(String(30))
    description: Mapped[Optional[str]] = mapped_column(Text)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    stock_quantity: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    available_quantity: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    publisher: Mapped["Publisher"] = relationship(back_populates="books")
    author_links: Mapped[List["BookAuthor"]] = relationship(
        back_populates="book", cascade="all, delete-orphan", passive_deletes=True
    )
    genres: Mapped[List["Genre"]] = relationship(
        secondary="Book_Genre", back_populates="books", passive_deletes=True
    )
    borrowings: Mapped[List["Borrowing"]] = relationship(back_populates="book", passive_deletes="all")
    reservations: Mapped[List["Reservation"]] = relationship(back_populates="book", passive_deletes="all")


class BookAuthor(Base):
    __tablename__ = "Book_Author"
    __table_args__ = (
        ForeignKeyConstraint(["book_id"], ["Book.book_id"], name="fk_ba_book", ondelete="CASCADE"),
        ForeignKeyConstraint(["author_id"], ["Author.author_id"], name="fk_ba_author", ondelete="CASCADE"),
    )

    book_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    author_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    contribution_type: Mapped[Optional[str]] = mapped_column(
        String(50), default="Primary", server_default="Primary"
    )

    book: Mapped["Book"] = relationship(back_populates="author_links")
    author: Mapped["Author"] = relationship(back_populates="book_links")


book_genre = Table(
    "Book_Genre",
    Base.metadata,
    Column("book_id", Integer, primary_key=True),
    Column("genre_id", Integer, primary_key=True),
    ForeignKeyConstraint(["book_id"], ["Book.book_id"], name="fk_bg_book", ondelete="CASCADE"),
    ForeignKeyConstraint(["genre_id"], ["Genre.genre_id"], name="fk_bg_genre", ondelete="CASCADE"),
)


# ---------------------------------------------------------------------------
# People
# ---------------------------------------------------------------------------
class Member(Base):
    __tablename__ = "Member"
    __table_args__ = (
        CheckConstraint(EMAIL_PATTERN, name="chk_member_email"),
        CheckConstraint("membership_expiry_date >= registration_date", name="chk_member_dates"),
        Index("idx_member_name", "last_name", "first_name"),
        Index("idx_member_card", "library_card_number"),
    )

    member_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    library_card_number: Mapped[str] = mapped_column(String(20), unique=True)
    first_name: Mapped[str] = mapped_column(String(50))
    last_name: Mapped[str] = mapped_column(String(50))
    date_of_birth: Mapped[date] = mapped_column(Date)
    gender: Mapped[Optional[Gender]] = mapped_column(_enum(Gender, "member_gender"))
    address: Mapped[str] = mapped_column(String(200))
    city: Mapped[str] = mapped_column(String(50))
    state: Mapped[Optional[str]] = mapped_column(String(50))
    postal_code: Mapped[Optional[str]] = mapped_column(String(20))
    country: Mapped[Optional[str]] = mapped_column(
        String(50), default="United States", server_default="United States"
    )
    phone: Mapped[Optional[str]] = mapped_column(String(20))
    email: Mapped[Optional[str]] = mapped_column(String(100), unique=True)
    registration_date: Mapped[date] = mapped_column(Date)
    membership_expiry_date: Mapped[date] = mapped_column(Date)
    membership_status: Mapped[Optional[MembershipStatus]] = mapped_column(
        _enum(MembershipStatus, "membership_status"),
        default=MembershipStatus.ACTIVE,
        server_default=MembershipStatus.ACTIVE.value,
    )

    borrowings: Mapped[List["Borrowing"]] = relationship(back_populates="member", passive_deletes="all")
    fines: Mapped[List["Fine"]] = relationship(back_populates="member", passive_deletes="all")
    reservations: Mapped[List["Reservation"]] = relationship(back_populates="member", passive_deletes="all")


class Staff(Base):
    __tablename__ = "Staff"
    __table_args__ = (
        CheckConstraint(EMAIL_PATTERN, name="chk_staff_email"),
    )

    staff_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first_name: Mapped[str] = mapped_column(String(50))
    last_name: Mapped[str] = mapped_column(String(50))
    position: Mapped[str] = mapped_column(String(50))
    hire_date: Mapped[date] = mapped_column(Date)
    salary: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    address: Mapped[Optional[str]] = mapped_column(String(200))
    phone: Mapped[Optional[str]] = mapped_column(String(20))
    email: Mapped[Optional[str]] = mapped_column(String(100), unique=True)
    username: Mapped[str] = mapped_column(String(50), unique=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime)
    is_active: Mapped[Optional[bool]] = mapped_column(Boolean, default=True, server_default="1")

    borrowings: Mapped[List["Borrowing"]] = relationship(back_populates="staff", passive_deletes="all")


# ---------------------------------------------------------------------------
# Activity
# ---------------------------------------------------------------------------
class Borrowing(Base):
    __tablename__ = "Borrowing"
    __table_args__ = (
        ForeignKeyConstraint(["book_id"], ["Book.book_id"], name="fk_borrowing_book"),
        ForeignKeyConstraint(["member_id"], ["Member.member_id"], name="fk_borrowing_member"),
        ForeignKeyConstraint(["staff_id"], ["Staff.staff_id"], name="fk_borrowing_staff"),
        CheckConstraint(
            "due_date >= borrow_date AND (return_date IS NULL OR return_date >= borrow_date)",
            name="chk_borrowing_dates",
        ),
        Index("idx_borrowing_dates", "borrow_date", "due_date", "return_date"),
        Index("idx_borrowing_status", "status"),
    )

    borrowing_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    book_id: Mapped[int] = mapped_column(Integer)
    member_id: Mapped[int] = mapped_column(Integer)
    staff_id: Mapped[int] = mapped_column(Integer)
    borrow_date: Mapped[date] = mapped_column(Date)
    due_date: Mapped[date] = mapped_column(Date)
    return_date: Mapped[Optional[date]] = mapped_column(Date)
    late_fee: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2), default=Decimal("0.00"), server_default="0.00"
    )
    status: Mapped[Optional[BorrowingStatus]] = mapped_column(
        _enum(BorrowingStatus, "borrowing_status"),
        default=BorrowingStatus.BORROWED,
        server_default=BorrowingStatus.BORROWED.value,
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)

    book: Mapped["Book"] = relationship(back_populates="borrowings")
    member: Mapped["Member"] = relationship(back_populates="borrowings")
    staff: Mapped["Staff"] = relationship(back_populates="borrowings")
    fines: Mapped[List["Fine"]] = relationship(back_populates="borrowing", passive_deletes="all")


class Fine(Base):
    __tablename__ = "Fine"
    __table_args__ = (
        ForeignKeyConstraint(["member_id"], ["Member.member_id"], name="fk_fine_member"),
        ForeignKeyConstraint(["borrowing_id"], ["Borrowing.borrowing_id"], name="fk_fine_borrowing"),
        CheckConstraint("amount >= 0", name="chk_fine_amount"),
        Index("idx_fine_status", "status"),
    )

    fine_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    member_id: Mapped[int] = mapped_column(Integer)
    borrowing_id: Mapped[Optional[int]] = mapped_column(Integer)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    issue_date: Mapped[date] = mapped_column(Date)
    payment_date: Mapped[Optional[date]] = mapped_column(Date)
    status: Mapped[Optional[FineStatus]] = mapped_column(
        _enum(FineStatus, "fine_status"),
        default=FineStatus.PENDING,
        server_default=FineStatus.PENDING.value,
    )
    reason: Mapped[str] = mapped_column(String(200))

    member: Mapped["Member"] = relationship(back_populates="fines")
    borrowing: Mapped[Optional["Borrowing"]] = relationship(back_populates="fines")


class Reservation(Base):
    __tablename__ = "Reservation"
    __table_args__ = (
        ForeignKeyConstraint(["book_id"], ["Book.book_id"], name="fk_reservation_book"),
        ForeignKeyConstraint(["member_id"], ["Member.member_id"], name="fk_reservation_member"),
        CheckConstraint("expiry_date > reservation_date", name="chk_reservation_dates"),
    )

    reservation_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    book_id: Mapped[int] = mapped_column(Integer)
    member_id: Mapped[int] = mapped_column(Integer)
    reservation_date: Mapped[datetime] = mapped_column(DateTime)
    expiry_date: Mapped[datetime] = mapped_column(DateTime)
    status: Mapped[Optional[ReservationStatus]] = mapped_column(
        _enum(ReservationStatus, "reservation_status"),
        default=ReservationStatus.PENDING,
        server_default=ReservationStatus.PENDING.value,
    )

    book: Mapped["Book"] = relationship(back_populates="reservations")
    member: Mapped["Member"] = relationship(back_populates="reservations")


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------
class AuditLog(Base):
    """Generic change log; (table_name, record_id) is a loose pointer, not a foreign key."""

    __tablename__ = "AuditLog"

    log_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    table_name: Mapped[str] = mapped_column(String(50))
    record_id: Mapped[int] = mapped_column(Integer)
    action_type: Mapped[AuditAction] = mapped_column(_enum(AuditAction, "audit_action_type"))
    action_timestamp: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), server_default=func.now()
    )
    user_id: Mapped[Optional[int]] = mapped_column(Integer)
    old_values: Mapped[Optional[Any]] = mapped_column(JSON)
    new_values: Mapped[Optional[Any]] = mapped_column(JSON)


class AppendOnlyError(RuntimeError):
    pass


@event.listens_for(AuditLog, "before_update")
def _refuse_audit_update(mapper, connection, target):
    raise AppendOnlyError(f"AuditLog row {target.log_id} is append-only and cannot be updated")


@event.listens_for(AuditLog, "before_delete")
def _refuse_audit_delete(mapper, connection, target):
    raise AppendOnlyError(f"AuditLog row {target.log_id} is append-only and cannot be deleted")
