from datetime import date
from typing import List, Optional, Tuple

from fastapi import Depends, FastAPI, HTTPException
from sqlalchemy.orm import Session

from app import models, schemas, services
from app.db import DATABASE_URL, engine, get_db
from app.schema import create_schema, ensure_database

app = FastAPI(title="Library Catalog & Circulation", version="0.1.0")


@app.on_event("startup")
def on_startup():
    ensure_database(DATABASE_URL)
    created = create_schema(engine)
    print(f"[API] Schema ready ({len(created)} tables created)", flush=True)


def _ok(result: Tuple, conflict_status: int = 409):
    obj, err = result
    if err:
        raise HTTPException(404 if err.endswith("not found") else conflict_status, err)
    return obj


def _found(obj, label: str):
    if obj is None:
        raise HTTPException(404, f"{label} not found")
    return obj


@app.get("/healthz")
def health():
    return {"ok": True}


# ─────────────────────── Publishers ───────────────────────
@app.get("/publishers", response_model=List[schemas.PublisherRead])
def api_list_publishers(db: Session = Depends(get_db)):
    return services.list_publishers(db)


@app.post("/publishers", response_model=schemas.PublisherRead, status_code=201)
def api_create_publisher(data: schemas.PublisherCreate, db: Session = Depends(get_db)):
    return _ok(services.create_publisher(db, data))


@app.get("/publishers/{publisher_id}", response_model=schemas.PublisherRead)
def api_get_publisher(publisher_id: int, db: Session = Depends(get_db)):
    return _found(services.get_publisher(db, publisher_id), "Publisher")


@app.patch("/publishers/{publisher_id}", response_model=schemas.PublisherRead)
def api_update_publisher(publisher_id: int, data: schemas.PublisherUpdate, db: Session = Depends(get_db)):
    return _ok(services.update_publisher(db, publisher_id, data))


@app.delete("/publishers/{publisher_id}")
def api_delete_publisher(publisher_id: int, db: Session = Depends(get_db)):
    _ok(services.delete_publisher(db, publisher_id))
    return {"deleted": True}


# ─────────────────────── Authors ───────────────────────
@app.get("/authors", response_model=List[schemas.AuthorRead])
def api_list_authors(db: Session = Depends(get_db)):
    return services.list_authors(db)


@app.post("/authors", response_model=schemas.AuthorRead, status_code=201)
def api_create_author(data: schemas.AuthorCreate, db: Session = Depends(get_db)):
    return _ok(services.create_author(db, data))


@app.get("/authors/{author_id}", response_model=schemas.AuthorRead)
def api_get_author(author_id: int, db: Session = Depends(get_db)):
    return _found(services.get_author(db, author_id), "Author")


@app.patch("/authors/{author_id}", response_model=schemas.AuthorRead)
def api_update_author(author_id: int, data: schemas.AuthorUpdate, db: Session = Depends(get_db)):
    return _ok(services.update_author(db, author_id, data))


@app.delete("/authors/{author_id}")
def api_delete_author(author_id: int, db: Session = Depends(get_db)):
    _ok(services.delete_author(db, author_id))
    return {"deleted": True}


# ─────────────────────── Genres ───────────────────────
@app.get("/genres", response_model=List[schemas.GenreRead])
def api_list_genres(db: Session = Depends(get_db)):
    return services.list_genres(db)


@app.post("/genres", response_model=schemas.GenreRead, status_code=201)
def api_create_genre(data: schemas.GenreCreate, db: Session = Depends(get_db)):
    return _ok(services.create_genre(db, data))


@app.get("/genres/{genre_id}", response_model=schemas.GenreRead)
def api_get_genre(genre_id: int, db: Session = Depends(get_db)):
    return _found(services.get_genre(db, genre_id), "Genre")


@app.patch("/genres/{genre_id}", response_model=schemas.GenreRead)
def api_update_genre(genre_id: int, data: schemas.GenreUpdate, db: Session = Depends(get_db)):
    return _ok(services.update_genre(db, genre_id, data))


@app.delete("/genres/{genre_id}")
def api_delete_genre(genre_id: int, db: Session = Depends(get_db)):
    _ok(services.delete_genre(db, genre_id))
    return {"deleted": True}


# ─────────────────────── Books ───────────────────────
@app.get("/books", response_model=List[schemas.BookRead])
def api_list_books(
    title: Optional[str] = None,
    publisher_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    return services.list_books(db, title=title, publisher_id=publisher_id)


@app.post("/books", response_model=schemas.BookRead, status_code=201)
def api_create_book(data: schemas.BookCreate, db: Session = Depends(get_db)):
    return _ok(services.create_book(db, data))


@app.get("/books/isbn/{isbn}", response_model=schemas.BookRead)
def api_get_book_by_isbn(isbn: str, db: Session = Depends(get_db)):
    return _found(services.get_book_by_isbn(db, isbn), "Book")


@app.get("/books/{book_id}", response_model=schemas.BookRead)
def api_get_book(book_id: int, db: Session = Depends(get_db)):
    return _found(services.get_book(db, book_id), "Book")


@app.patch("/books/{book_id}", response_model=schemas.BookRead)
def api_update_book(book_id: int, data: schemas.BookUpdate, db: Session = Depends(get_db)):
    return _ok(services.update_book(db, book_id, data))


@app.delete("/books/{book_id}")
def api_delete_book(book_id: int, db: Session = Depends(get_db)):
    _ok(services.delete_book(db, book_id))
    return {"deleted": True}


@app.post("/books/{book_id}/stock", response_model=schemas.BookRead)
def api_adjust_stock(book_id: int, delta: int, db: Session = Depends(get_db)):
    return _ok(services.adjust_stock(db, book_id, delta))


@app.get("/books/{book_id}/authors", response_model=List[schemas.BookAuthorRead])
def api_list_book_authors(book_id: int, db: Session = Depends(get_db)):
    _found(services.get_book(db, book_id), "Book")
    return services.list_book_authors(db, book_id)


@app.post("/books/{book_id}/authors", response_model=schemas.BookAuthorRead, status_code=201)
def api_add_book_author(book_id: int, data: schemas.BookAuthorCreate, db: Session = Depends(get_db)):
    return _ok(services.add_book_author(db, book_id, data.author_id, data.contribution_type))


@app.delete("/books/{book_id}/authors/{author_id}")
def api_remove_book_author(book_id: int, author_id: int, db: Session = Depends(get_db)):
    _ok(services.remove_book_author(db, book_id, author_id))
    return {"deleted": True}


@app.get("/books/{book_id}/genres", response_model=List[schemas.GenreRead])
def api_list_book_genres(book_id: int, db: Session = Depends(get_db)):
    _found(services.get_book(db, book_id), "Book")
    return services.list_book_genres(db, book_id)


@app.post("/books/{book_id}/genres", status_code=201)
def api_add_book_genre(book_id: int, data: schemas.BookGenreCreate, db: Session = Depends(get_db)):
    _ok(services.add_book_genre(db, book_id, data.genre_id))
    return {"book_id": book_id, "genre_id": data.genre_id}


@app.delete("/books/{book_id}/genres/{genre_id}")
def api_remove_book_genre(book_id: int, genre_id: int, db: Session = Depends(get_db)):
    _ok(services.remove_book_genre(db, book_id, genre_id))
    return {"deleted": True}


# ─────────────────────── Members ───────────────────────
@app.get("/members", response_model=List[schemas.MemberRead])
def api_list_members(status: Optional[models.MembershipStatus] = None, db: Session = Depends(get_db)):
    return services.list_members(db, status=status)


@app.post("/members", response_model=schemas.MemberRead, status_code=201)
def api_create_member(data: schemas.MemberCreate, db: Session = Depends(get_db)):
    return _ok(services.create_member(db, data))


@app.get("/members/card/{card}", response_model=schemas.MemberRead)
def api_get_member_by_card(card: str, db: Session = Depends(get_db)):
    return _found(services.get_member_by_card(db, card), "Member")


@app.get("/members/{member_id}", response_model=schemas.MemberRead)
def api_get_member(member_id: int, db: Session = Depends(get_db)):
    return _found(services.get_member(db, member_id), "Member")


@app.patch("/members/{member_id}", response_model=schemas.MemberRead)
def api_update_member(member_id: int, data: schemas.MemberUpdate, db: Session = Depends(get_db)):
    return _ok(services.update_member(db, member_id, data))


@app.put("/members/{member_id}/status", response_model=schemas.MemberRead)
def api_set_membership_status(member_id: int, status: models.MembershipStatus, db: Session = Depends(get_db)):
    return _ok(services.set_membership_status(db, member_id, status))


@app.delete("/members/{member_id}")
def api_delete_member(member_id: int, db: Session = Depends(get_db)):
    _ok(services.delete_member(db, member_id))
    return {"deleted": True}


# ─────────────────────── Staff ───────────────────────
@app.get("/staff", response_model=List[schemas.StaffRead])
def api_list_staff(active_only: bool = False, db: Session = Depends(get_db)):
    return services.list_staff(db, active_only=active_only)


@app.post("/staff", response_model=schemas.StaffRead, status_code=201)
def api_create_staff(data: schemas.StaffCreate, db: Session = Depends(get_db)):
    return _ok(services.create_staff(db, data))


@app.get("/staff/{staff_id}", response_model=schemas.StaffRead)
def api_get_staff(staff_id: int, db: Session = Depends(get_db)):
    return _found(services.get_staff(db, staff_id), "Staff")


@app.patch("/staff/{staff_id}", response_model=schemas.StaffRead)
def api_update_staff(staff_id: int, data: schemas.StaffUpdate, db: Session = Depends(get_db)):
    return _ok(services.update_staff(db, staff_id, data))


@app.post("/staff/{staff_id}/deactivate", response_model=schemas.StaffRead)
def api_deactivate_staff(staff_id: int, db: Session = Depends(get_db)):
    return _ok(services.deactivate_staff(db, staff_id))


@app.delete("/staff/{staff_id}")
def api_delete_staff(staff_id: int, db: Session = Depends(get_db)):
    _ok(services.delete_staff(db, staff_id))
    return {"deleted": True}


# ─────────────────────── Borrowings ───────────────────────
@app.get("/borrowings", response_model=List[schemas.BorrowingRead])
def api_list_borrowings(
    member_id: Optional[int] = None,
    book_id: Optional[int] = None,
    status: Optional[models.BorrowingStatus] = None,
    db: Session = Depends(get_db),
):
    return services.list_borrowings(db, member_id=member_id, book_id=book_id, status=status)


@app.post("/borrowings", response_model=schemas.BorrowingRead, status_code=201)
def api_borrow_book(data: schemas.BorrowingCreate, db: Session = Depends(get_db)):
    return _ok(services.borrow_book(db, **data.model_dump()))


@app.get("/borrowings/{borrowing_id}", response_model=schemas.BorrowingRead)
def api_get_borrowing(borrowing_id: int, db: Session = Depends(get_db)):
    return _found(services.get_borrowing(db, borrowing_id), "Borrowing")


@app.post("/borrowings/{borrowing_id}/return", response_model=schemas.BorrowingRead)
def api_return_book(
    borrowing_id: int,
    data: Optional[schemas.BorrowingReturn] = None,
    db: Session = Depends(get_db),
):
    data = data or schemas.BorrowingReturn()
    return _ok(services.return_book(db, borrowing_id, return_date=data.return_date, late_fee=data.late_fee))


@app.post("/borrowings/{borrowing_id}/lost", response_model=schemas.BorrowingRead)
def api_mark_lost(borrowing_id: int, db: Session = Depends(get_db)):
    return _ok(services.mark_lost(db, borrowing_id))


@app.put("/borrowings/{borrowing_id}/status", response_model=schemas.BorrowingRead)
def api_set_borrowing_status(borrowing_id: int, status: models.BorrowingStatus, db: Session = Depends(get_db)):
    return _ok(services.set_borrowing_status(db, borrowing_id, status))


# ─────────────────────── Fines ───────────────────────
@app.get("/fines", response_model=List[schemas.FineRead])
def api_list_fines(
    member_id: Optional[int] = None,
    status: Optional[models.FineStatus] = None,
    db: Session = Depends(get_db),
):
    return services.list_fines(db, member_id=member_id, status=status)


@app.post("/fines", response_model=schemas.FineRead, status_code=201)
def api_issue_fine(data: schemas.FineCreate, db: Session = Depends(get_db)):
    return _ok(services.issue_fine(db, data))


@app.get("/fines/{fine_id}", response_model=schemas.FineRead)
def api_get_fine(fine_id: int, db: Session = Depends(get_db)):
    return _found(services.get_fine(db, fine_id), "Fine")


@app.post("/fines/{fine_id}/pay", response_model=schemas.FineRead)
def api_pay_fine(fine_id: int, payment_date: Optional[date] = None, db: Session = Depends(get_db)):
    return _ok(services.pay_fine(db, fine_id, payment_date=payment_date))


@app.post("/fines/{fine_id}/waive", response_model=schemas.FineRead)
def api_waive_fine(fine_id: int, db: Session = Depends(get_db)):
    return _ok(services.waive_fine(db, fine_id))


# ─────────────────────── Reservations ───────────────────────
@app.get("/reservations", response_model=List[schemas.ReservationRead])
def api_list_reservations(
    member_id: Optional[int] = None,
    book_id: Optional[int] = None,
    status: Optional[models.ReservationStatus] = None,
    db: Session = Depends(get_db),
):
    return services.list_reservations(db, member_id=member_id, book_id=book_id, status=status)


@app.post("/reservations", response_model=schemas.ReservationRead, status_code=201)
def api_reserve_book(data: schemas.ReservationCreate, db: Session = Depends(get_db)):
    return _ok(services.reserve_book(db, **data.model_dump()))


@app.get("/reservations/{reservation_id}", response_model=schemas.ReservationRead)
def api_get_reservation(reservation_id: int, db: Session = Depends(get_db)):
    return _found(services.get_reservation(db, reservation_id), "Reservation")


@app.post("/reservations/{reservation_id}/cancel", response_model=schemas.ReservationRead)
def api_cancel_reservation(reservation_id: int, db: Session = Depends(get_db)):
    return _ok(services.cancel_reservation(db, reservation_id))


@app.post("/reservations/{reservation_id}/fulfill", response_model=schemas.BorrowingRead)
def api_fulfill_reservation(reservation_id: int, staff_id: int, db: Session = Depends(get_db)):
    return _ok(services.fulfill_reservation(db, reservation_id, staff_id=staff_id))


@app.put("/reservations/{reservation_id}/status", response_model=schemas.ReservationRead)
def api_set_reservation_status(
    reservation_id: int, status: models.ReservationStatus, db: Session = Depends(get_db)
):
    return _ok(services.set_reservation_status(db, reservation_id, status))


# ─────────────────────── Audit ───────────────────────
@app.get("/audit", response_model=List[schemas.AuditLogRead])
def api_list_audit(
    table_name: Optional[str] = None,
    record_id: Optional[int] = None,
    action: Optional[models.AuditAction] = None,
    db: Session = Depends(get_db),
):
    return services.list_audit(db, table_name=table_name, record_id=record_id, action=action)


@app.post("/audit", response_model=schemas.AuditLogRead, status_code=201)
def api_record_audit(entry: schemas.AuditLogCreate, db: Session = Depends(get_db)):
    return _ok(services.record_audit(db, entry))
