# app/services/_common.py
import enum
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app import models

T = TypeVar("T", bound=models.Base)
E = TypeVar("E", bound=enum.Enum)

Result = Tuple[Optional[Any], Optional[str]]

# Constraint name -> message shown to the caller
CONSTRAINT_MESSAGES = {
    "chk_publisher_email": "Publisher email must contain '@' followed by '.'.",
    "chk_member_email": "Member email must contain '@' followed by '.'.",
    "chk_staff_email": "Staff email must contain '@' followed by '.'.",
    "chk_book_quantities": "available_quantity must stay between 0 and stock_quantity.",
    "chk_book_isbn": "ISBN must have at least 10 characters.",
    "chk_member_dates": "membership_expiry_date must be on or after registration_date.",
    "chk_borrowing_dates": "due_date and return_date cannot be before borrow_date.",
    "chk_fine_amount": "Fine amount cannot be negative.",
    "chk_reservation_dates": "expiry_date must be after reservation_date.",
    "unq_author_name": "An author with that first and last name already exists.",
}


def describe_integrity_error(exc: IntegrityError) -> str:
    raw = str(exc.orig)
    for name, message in CONSTRAINT_MESSAGES.items():
        if name in raw:
            return message
    low = raw.lower()
    if "unique" in low or "duplicate" in low:
        return f"Duplicate value: {raw}"
    if "foreign key" in low:
        return f"Referenced row missing or still in use: {raw}"
    if "not null" in low or "cannot be null" in low:
        return f"Missing required value: {raw}"
    return f"Constraint violation: {raw}"


def commit(db: Session, obj: Optional[T] = None) -> Result:
    """Commit the unit of work; on any error roll back and report."""
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        return None, describe_integrity_error(e)
    except Exception as e:
        db.rollback()
        return None, f"Error saving changes: {e}"
    if obj is not None:
        db.refresh(obj)
    return obj, None


def coerce_status(enum_cls: Type[E], value: Any) -> Tuple[Optional[E], Optional[str]]:
    try:
        return enum_cls(value), None
    except ValueError:
        return None, f"Unknown status {value!r}"


def get_by_pk(db: Session, model: Type[T], pk: int, *, lock: bool = False) -> Optional[T]:
    if lock:
        return db.get(model, pk, with_for_update=True)
    return db.get(model, pk)


def create(db: Session, model: Type[T], fields: Dict[str, Any]) -> Result:
    obj = model(**fields)
    db.add(obj)
    return commit(db, obj)


def update(db: Session, obj: Optional[T], changes: Dict[str, Any], label: str) -> Result:
    if obj is None:
        return None, f"{label} not found"
    for key, value in changes.items():
        setattr(obj, key, value)
    return commit(db, obj)


def delete(db: Session, obj: Optional[T], label: str) -> Result:
    if obj is None:
        return None, f"{label} not found"
    db.delete(obj)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return None, f"{label} is still referenced by other records and cannot be deleted"
    except Exception as e:
        db.rollback()
        return None, f"Error deleting {label.lower()}: {e}"
    return obj, None


def primary_key_of(obj: models.Base) -> int:
    identity = inspect(obj).identity
    if not identity or len(identity) != 1:
        raise ValueError(f"{type(obj).__name__} does not have a single-column primary key")
    return identity[0]
