# app/services/catalog.py
from typing import List, Optional

from sqlalchemy import delete as sql_delete, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app import models, schemas
from app.services import _common
from app.services._common import Result


# --- Publisher --------------------------------------------------------------
def create_publisher(db: Session, data: schemas.PublisherCreate) -> Result:
    return _common.create(db, models.Publisher, data.model_dump())


def get_publisher(db: Session, publisher_id: int) -> Optional[models.Publisher]:
    return db.get(models.Publisher, publisher_id)


def list_publishers(db: Session) -> List[models.Publisher]:
    return list(db.scalars(select(models.Publisher).order_by(models.Publisher.name)))


def update_publisher(db: Session, publisher_id: int, data: schemas.PublisherUpdate) -> Result:
    return _common.update(
        db, get_publisher(db, publisher_id), data.model_dump(exclude_unset=True), "Publisher"
    )


def delete_publisher(db: Session, publisher_id: int) -> Result:
    """Refused while any book still points at the publisher."""
    return _common.delete(db, get_publisher(db, publisher_id), "Publisher")


# --- Author -----------------------------------------------------------------
def create_author(db: Session, data: schemas.AuthorCreate) -> Result:
    return _common.create(db, models.Author, data.model_dump())


def get_author(db: Session, author_id: int) -> Optional[models.Author]:
    return db.get(models.Author, author_id)


def get_author_by_name(db: Session, *, first_name: str, last_name: str) -> Optional[models.Author]:
    return db.scalars(
        select(models.Author).filter_by(first_name=first_name, last_name=last_name)
    ).first()


def list_authors(db: Session) -> List[models.Author]:
    stmt = select(models.Author).order_by(models.Author.last_name, models.Author.first_name)
    return list(db.scalars(stmt))


def update_author(db: Session, author_id: int, data: schemas.AuthorUpdate) -> Result:
    return _common.update(
        db, get_author(db, author_id), data.model_dump(exclude_unset=True), "Author"
    )


def delete_author(db: Session, author_id: int) -> Result:
    # Book_Author rows go with it (ON DELETE CASCADE); the books stay
    return _common.delete(db, get_author(db, author_id), "Author")


# --- Genre ------------------------------------------------------------------
def create_genre(db: Session, data: schemas.GenreCreate) -> Result:
    return _common.create(db, models.Genre, data.model_dump())


def get_genre(db: Session, genre_id: int) -> Optional[models.Genre]:
    return db.get(models.Genre, genre_id)


def get_genre_by_name(db: Session, name: str) -> Optional[models.Genre]:
    return db.scalars(select(models.Genre).filter_by(name=name)).first()


def list_genres(db: Session) -> List[models.Genre]:
    return list(db.scalars(select(models.Genre).order_by(models.Genre.name)))


def update_genre(db: Session, genre_id: int, data: schemas.GenreUpdate) -> Result:
    return _common.update(
        db, get_genre(db, genre_id), data.model_dump(exclude_unset=True), "Genre"
    )


def delete_genre(db: Session, genre_id: int) -> Result:
    return _common.delete(db, get_genre(db, genre_id), "Genre")


# --- Book -------------------------------------------------------------------
def create_book(db: Session, data: schemas.BookCreate) -> Result:
    """
    Adds a title to the catalog.
    - Duplicate ISBN -> (None, "ISBN ... already exists in the catalog.")
    - Unknown publisher -> (None, "Publisher not found")
    """
    if get_book_by_isbn(db, data.isbn):
        return None, f"ISBN {data.isbn} already exists in the catalog."
    if not get_publisher(db, data.publisher_id):
        return None, "Publisher not found"
    return _common.create(db, models.Book, data.model_dump())


def get_book(db: Session, book_id: int) -> Optional[models.Book]:
    return db.get(models.Book, book_id)


def get_book_by_isbn(db: Session, isbn: str) -> Optional[models.Book]:
    return db.scalars(select(models.Book).filter_by(isbn=isbn)).first()


def list_books(
    db: Session, *, title: Optional[str] = None, publisher_id: Optional[int] = None
) -> List[models.Book]:
    stmt = select(models.Book)
    if title:
        stmt = stmt.where(models.Book.title.icontains(title, autoescape=True))
    if publisher_id is not None:
        stmt = stmt.where(models.Book.publisher_id == publisher_id)
    return list(db.scalars(stmt.order_by(models.Book.title)))


def update_book(db: Session, book_id: int, data: schemas.BookUpdate) -> Result:
    return _common.update(
        db, get_book(db, book_id), data.model_dump(exclude_unset=True), "Book"
    )


def delete_book(db: Session, book_id: int) -> Result:
    """Author/genre links cascade; borrowing or reservation history blocks the delete."""
    return _common.delete(db, get_book(db, book_id), "Book")


def adjust_stock(db: Session, book_id: int, delta: int) -> Result:
    """
    Adds (delta > 0) or withdraws (delta < 0) physical copies.
    Withdrawn copies must be on the shelf, so available_quantity never drops below 0.
    """
    book = _common.get_by_pk(db, models.Book, book_id, lock=True)
    if not book:
        return None, "Book not found"
    if delta < 0 and book.available_quantity + delta < 0:
        db.rollback()
        return None, "Not enough copies on the shelf to withdraw"
    book.stock_quantity += delta
    book.available_quantity += delta
    return _common.commit(db, book)


# --- Book_Author / Book_Genre -----------------------------------------------
def add_book_author(
    db: Session, book_id: int, author_id: int, contribution_type: Optional[str] = "Primary"
) -> Result:
    if db.get(models.BookAuthor, (book_id, author_id)):
        return None, "Author is already linked to this book"
    link = models.BookAuthor(book_id=book_id, author_id=author_id, contribution_type=contribution_type)
    db.add(link)
    return _common.commit(db, link)


def remove_book_author(db: Session, book_id: int, author_id: int) -> Result:
    return _common.delete(db, db.get(models.BookAuthor, (book_id, author_id)), "Author link")


def list_book_authors(db: Session, book_id: int) -> List[models.BookAuthor]:
    return list(db.scalars(select(models.BookAuthor).filter_by(book_id=book_id)))


def add_book_genre(db: Session, book_id: int, genre_id: int) -> Result:
    exists = db.execute(
        select(models.book_genre).filter_by(book_id=book_id, genre_id=genre_id)
    ).first()
    if exists:
        return None, "Genre is already linked to this book"
    try:
        db.execute(insert(models.book_genre).values(book_id=book_id, genre_id=genre_id))
        db.commit()
    except IntegrityError as e:
        db.rollback()
        return None, _common.describe_integrity_error(e)
    return (book_id, genre_id), None


def remove_book_genre(db: Session, book_id: int, genre_id: int) -> Result:
    result = db.execute(
        sql_delete(models.book_genre).where(
            models.book_genre.c.book_id == book_id,
            models.book_genre.c.genre_id == genre_id,
        )
    )
    db.commit()
    if not result.rowcount:
        return None, "Genre link not found"
    return (book_id, genre_id), None


def list_book_genres(db: Session, book_id: int) -> List[models.Genre]:
    stmt = (
        select(models.Genre)
        .join(models.book_genre, models.book_genre.c.genre_id == models.Genre.genre_id)
        .where(models.book_genre.c.book_id == book_id)
        .order_by(models.Genre.name)
    )
    return list(db.scalars(stmt))
