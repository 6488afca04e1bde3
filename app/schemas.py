from __future__ import annotations

import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.models import (
    AuditAction,
    BorrowingStatus,
    FineStatus,
    Gender,
    MembershipStatus,
    ReservationStatus,
)

# Same shape the database checks with LIKE '%@%.%': an "@" somewhere before a "."
EMAIL_RE = re.compile(r".*@.*\..*", re.DOTALL)
ISBN_MIN_LENGTH = 10


def check_email(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    if not EMAIL_RE.fullmatch(value):
        raise ValueError("email must contain '@' followed by '.'")
    return value


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    # DateTime columns are naive; offsets are folded into UTC first
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class _EmailMixin(BaseModel):
    @field_validator("email", check_fields=False)
    @classmethod
    def _valid_email(cls, v):
        return check_email(v)


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Publisher / Author / Genre
# ---------------------------------------------------------------------------
class PublisherBase(_EmailMixin):
    name: str = Field(max_length=100)
    address: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=20)
    email: Optional[str] = Field(default=None, max_length=100)
    website: Optional[str] = Field(default=None, max_length=100)
    established_date: Optional[date] = None


class PublisherCreate(PublisherBase):
    pass


class PublisherUpdate(_EmailMixin):
    name: Optional[str] = Field(default=None, max_length=100)
    address: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=20)
    email: Optional[str] = Field(default=None, max_length=100)
    website: Optional[str] = Field(default=None, max_length=100)
    established_date: Optional[date] = None


class PublisherRead(PublisherBase, ORMModel):
    publisher_id: int


class AuthorBase(BaseModel):
    first_name: str = Field(max_length=50)
    last_name: str = Field(max_length=50)
    birth_date: Optional[date] = None
    nationality: Optional[str] = Field(default=None, max_length=50)
    biography: Optional[str] = None


class AuthorCreate(AuthorBase):
    pass


class AuthorUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, max_length=50)
    last_name: Optional[str] = Field(default=None, max_length=50)
    birth_date: Optional[date] = None
    nationality: Optional[str] = Field(default=None, max_length=50)
    biography: Optional[str] = None


class AuthorRead(AuthorBase, ORMModel):
    author_id: int


class GenreBase(BaseModel):
    name: str = Field(max_length=50)
    description: Optional[str] = None


class GenreCreate(GenreBase):
    pass


class GenreUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = None


class GenreRead(GenreBase, ORMModel):
    genre_id: int


# ---------------------------------------------------------------------------
# Book and its links
# ---------------------------------------------------------------------------
class BookBase(BaseModel):
    isbn: str = Field(min_length=ISBN_MIN_LENGTH, max_length=20)
    title: str = Field(max_length=200)
    publisher_id: int
    publication_date: Optional[date] = None
    edition: Optional[int] = 1
    page_count: Optional[int] = None
    language: Optional[str] = Field(default=None, max_length=30)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)
    stock_quantity: int = Field(default=0, ge=0)
    available_quantity: int = Field(default=0, ge=0)


class BookCreate(BookBase):
    @model_validator(mode="after")
    def _quantities(self):
        if self.available_quantity > self.stock_quantity:
            raise ValueError("available_quantity cannot exceed stock_quantity")
        return self


class BookUpdate(BaseModel):
    isbn: Optional[str] = Field(default=None, min_length=ISBN_MIN_LENGTH, max_length=20)
    title: Optional[str] = Field(default=None, max_length=200)
    publisher_id: Optional[int] = None
    publication_date: Optional[date] = None
    edition: Optional[int] = None
    page_count: Optional[int] = None
    language: Optional[str] = Field(default=None, max_length=30)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)
    stock_quantity: Optional[int] = Field(default=None, ge=0)
    available_quantity: Optional[int] = Field(default=None, ge=0)


class BookRead(BookBase, ORMModel):
    book_id: int


class BookAuthorCreate(BaseModel):
    author_id: int
    contribution_type: Optional[str] = Field(default="Primary", max_length=50)


class BookAuthorRead(ORMModel):
    book_id: int
    author_id: int
    contribution_type: Optional[str] = None


class BookGenreCreate(BaseModel):
    genre_id: int


# ---------------------------------------------------------------------------
# Member / Staff
# ---------------------------------------------------------------------------
class MemberBase(_EmailMixin):
    library_card_number: str = Field(max_length=20)
    first_name: str = Field(max_length=50)
    last_name: str = Field(max_length=50)
    date_of_birth: date
    gender: Optional[Gender] = None
    address: str = Field(max_length=200)
    city: str = Field(max_length=50)
    state: Optional[str] = Field(default=None, max_length=50)
    postal_code: Optional[str] = Field(default=None, max_length=20)
    country: Optional[str] = Field(default="United States", max_length=50)
    phone: Optional[str] = Field(default=None, max_length=20)
    email: Optional[str] = Field(default=None, max_length=100)
    registration_date: date
    membership_expiry_date: date
    membership_status: Optional[MembershipStatus] = MembershipStatus.ACTIVE


class MemberCreate(MemberBase):
    @model_validator(mode="after")
    def _membership_dates(self):
        if self.membership_expiry_date < self.registration_date:
            raise ValueError("membership_expiry_date must be on or after registration_date")
        return self


class MemberUpdate(_EmailMixin):
    library_card_number: Optional[str] = Field(default=None, max_length=20)
    first_name: Optional[str] = Field(default=None, max_length=50)
    last_name: Optional[str] = Field(default=None, max_length=50)
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    address: Optional[str] = Field(default=None, max_length=200)
    city: Optional[str] = Field(default=None, max_length=50)
    state: Optional[str] = Field(default=None, max_length=50)
    postal_code: Optional[str] = Field(default=None, max_length=20)
    country: Optional[str] = Field(default=None, max_length=50)
    phone: Optional[str] = Field(default=None, max_length=20)
    email: Optional[str] = Field(default=None, max_length=100)
    registration_date: Optional[date] = None
    membership_expiry_date: Optional[date] = None


class MemberRead(MemberBase, ORMModel):
    member_id: int


class StaffBase(_EmailMixin):
    first_name: str = Field(max_length=50)
    last_name: str = Field(max_length=50)
    position: str = Field(max_length=50)
    hire_date: date
    salary: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)
    address: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=20)
    email: Optional[str] = Field(default=None, max_length=100)
    username: str = Field(max_length=50)


class StaffCreate(StaffBase):
    password: str = Field(min_length=8)


class StaffUpdate(_EmailMixin):
    first_name: Optional[str] = Field(default=None, max_length=50)
    last_name: Optional[str] = Field(default=None, max_length=50)
    position: Optional[str] = Field(default=None, max_length=50)
    salary: Optional[Decimal] = Field(default=None, max_digits=10, decimal_places=2)
    address: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=20)
    email: Optional[str] = Field(default=None, max_length=100)
    password: Optional[str] = Field(default=None, min_length=8)


class StaffRead(StaffBase, ORMModel):
    staff_id: int
    last_login: Optional[datetime] = None
    is_active: Optional[bool] = True


# ---------------------------------------------------------------------------
# Circulation
# ---------------------------------------------------------------------------
class BorrowingCreate(BaseModel):
    book_id: int
    member_id: int
    staff_id: int
    borrow_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _dates(self):
        if self.borrow_date and self.due_date and self.due_date < self.borrow_date:
            raise ValueError("due_date must be on or after borrow_date")
        return self


class BorrowingReturn(BaseModel):
    return_date: Optional[date] = None
    late_fee: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)


class BorrowingRead(ORMModel):
    borrowing_id: int
    book_id: int
    member_id: int
    staff_id: int
    borrow_date: date
    due_date: date
    return_date: Optional[date] = None
    late_fee: Optional[Decimal] = None
    status: Optional[BorrowingStatus] = None
    notes: Optional[str] = None


class FineCreate(BaseModel):
    member_id: int
    borrowing_id: Optional[int] = None
    amount: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    issue_date: Optional[date] = None
    reason: str = Field(max_length=200)


class FineRead(ORMModel):
    fine_id: int
    member_id: int
    borrowing_id: Optional[int] = None
    amount: Decimal
    issue_date: date
    payment_date: Optional[date] = None
    status: Optional[FineStatus] = None
    reason: str


class ReservationCreate(BaseModel):
    book_id: int
    member_id: int
    reservation_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None

    @field_validator("reservation_date", "expiry_date")
    @classmethod
    def _naive_utc(cls, v):
        return naive_utc(v)

    @model_validator(mode="after")
    def _dates(self):
        if self.reservation_date and self.expiry_date and self.expiry_date <= self.reservation_date:
            raise ValueError("expiry_date must be after reservation_date")
        return self


class ReservationRead(ORMModel):
    reservation_id: int
    book_id: int
    member_id: int
    reservation_date: datetime
    expiry_date: datetime
    status: Optional[ReservationStatus] = None


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------
class AuditLogCreate(BaseModel):
    table_name: str = Field(min_length=1, max_length=50)
    record_id: int
    action_type: AuditAction
    user_id: Optional[int] = None
    old_values: Optional[Any] = None
    new_values: Optional[Any] = None


class AuditLogRead(AuditLogCreate, ORMModel):
    log_id: int
    action_timestamp: datetime
