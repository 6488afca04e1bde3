# app/services/__init__.py
from app.services.audit import audit_entry_for, list_audit, record_audit
from app.services.catalog import (
    add_book_author,
    add_book_genre,
    adjust_stock,
    create_author,
    create_book,
    create_genre,
    create_publisher,
    delete_author,
    delete_book,
    delete_genre,
    delete_publisher,
    get_author,
    get_author_by_name,
    get_book,
    get_book_by_isbn,
    get_genre,
    get_genre_by_name,
    get_publisher,
    list_authors,
    list_book_authors,
    list_book_genres,
    list_books,
    list_genres,
    list_publishers,
    remove_book_author,
    remove_book_genre,
    update_author,
    update_book,
    update_genre,
    update_publisher,
)
from app.services.circulation import (
    borrow_book,
    cancel_reservation,
    fulfill_reservation,
    get_borrowing,
    get_fine,
    get_reservation,
    issue_fine,
    list_borrowings,
    list_fines,
    list_reservations,
    mark_lost,
    pay_fine,
    reserve_book,
    return_book,
    set_borrowing_status,
    set_reservation_status,
    waive_fine,
)
from app.services.people import (
    create_member,
    create_staff,
    deactivate_staff,
    delete_member,
    delete_staff,
    get_member,
    get_member_by_card,
    get_staff,
    get_staff_by_username,
    list_members,
    list_staff,
    record_login,
    set_membership_status,
    update_member,
    update_staff,
    verify_password,
)
