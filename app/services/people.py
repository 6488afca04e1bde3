# app/services/people.py
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from app import models, schemas
from app.services import _common
from app.services._common import Result


# --- Member -----------------------------------------------------------------
def create_member(db: Session, data: schemas.MemberCreate) -> Result:
    if get_member_by_card(db, data.library_card_number):
        return None, f"Library card {data.library_card_number} is already registered."
    return _common.create(db, models.Member, data.model_dump())


def get_member(db: Session, member_id: int) -> Optional[models.Member]:
    return db.get(models.Member, member_id)


def get_member_by_card(db: Session, library_card_number: str) -> Optional[models.Member]:
    return db.scalars(
        select(models.Member).filter_by(library_card_number=library_card_number)
    ).first()


def list_members(
    db: Session, *, status: Optional[models.MembershipStatus] = None
) -> List[models.Member]:
    stmt = select(models.Member)
    if status is not None:
        stmt = stmt.where(models.Member.membership_status == status)
    return list(db.scalars(stmt.order_by(models.Member.last_name, models.Member.first_name)))


def update_member(db: Session, member_id: int, data: schemas.MemberUpdate) -> Result:
    # the date pair is checked against stored values by chk_member_dates
    return _common.update(
        db, get_member(db, member_id), data.model_dump(exclude_unset=True), "Member"
    )


def set_membership_status(
    db: Session, member_id: int, status: models.MembershipStatus
) -> Result:
    status, err = _common.coerce_status(models.MembershipStatus, status)
    if err:
        return None, err
    return _common.update(db, get_member(db, member_id), {"membership_status": status}, "Member")


def delete_member(db: Session, member_id: int) -> Result:
    """Refused while borrowings, fines or reservations reference the member."""
    return _common.delete(db, get_member(db, member_id), "Member")


# --- Staff ------------------------------------------------------------------
def create_staff(db: Session, data: schemas.StaffCreate) -> Result:
    if get_staff_by_username(db, data.username):
        return None, f"Username {data.username} is already taken."
    fields = data.model_dump(exclude={"password"})
    fields["password_hash"] = generate_password_hash(data.password)
    return _common.create(db, models.Staff, fields)


def get_staff(db: Session, staff_id: int) -> Optional[models.Staff]:
    return db.get(models.Staff, staff_id)


def get_staff_by_username(db: Session, username: str) -> Optional[models.Staff]:
    return db.scalars(select(models.Staff).filter_by(username=username)).first()


def list_staff(db: Session, *, active_only: bool = False) -> List[models.Staff]:
    stmt = select(models.Staff)
    if active_only:
        stmt = stmt.where(models.Staff.is_active.is_(True))
    return list(db.scalars(stmt.order_by(models.Staff.last_name, models.Staff.first_name)))


def update_staff(db: Session, staff_id: int, data: schemas.StaffUpdate) -> Result:
    changes = data.model_dump(exclude_unset=True, exclude={"password"})
    if data.password:
        changes["password_hash"] = generate_password_hash(data.password)
    return _common.update(db, get_staff(db, staff_id), changes, "Staff")


def deactivate_staff(db: Session, staff_id: int) -> Result:
    return _common.update(db, get_staff(db, staff_id), {"is_active": False}, "Staff")


def verify_password(staff: models.Staff, password: str) -> bool:
    return check_password_hash(staff.password_hash, password)


def record_login(db: Session, *, username: str, password: str) -> Result:
    staff = get_staff_by_username(db, username)
    if not staff or not staff.is_active or not verify_password(staff, password):
        return None, "Invalid username or password"
    staff.last_login = datetime.now()
    return _common.commit(db, staff)


def delete_staff(db: Session, staff_id: int) -> Result:
    """Refused while borrowings were handled by this staff member; deactivate instead."""
    return _common.delete(db, get_staff(db, staff_id), "Staff")
