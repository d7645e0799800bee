import logging
import sqlite3

from .balances import aggregate_balances, balance_for
from .db import connect
from .exceptions import AuthenticationError, DuplicateError, NotFoundError
from .logic import (
    cents_to_amount,
    hash_password,
    validate_currency,
    validate_password,
    verify_password,
)
from .models import Admin, Friend, Transaction, UnknownTypePolicy
from .tracking import generate_tracking_code, generate_tracking_url, is_valid_tracking_code

logger = logging.getLogger(__name__)


def _admin(row) -> Admin:
    return Admin(
        id=row["id"],
        full_name=row["full_name"],
        email=row["email"],
        whatsapp_number=row["whatsapp_number"],
        preferred_currency=row["preferred_currency"],
        created_at=row["created_at"],
    )


def _friend(row) -> Friend:
    return Friend(
        id=row["id"],
        admin_id=row["admin_id"],
        full_name=row["full_name"],
        whatsapp_number=row["whatsapp_number"],
        tracking_url=row["tracking_url"],
        tracking_code=row["tracking_code"],
        created_at=row["created_at"],
    )


def _transaction(row) -> Transaction:
    return Transaction(
        id=row["id"],
        friend_id=row["friend_id"],
        type=row["type"],
        amount=cents_to_amount(row["amount_cents"]),
        transaction_date=row["transaction_date"],
        description=row["description"],
    )


def whatsapp_number_owner(db_path, whatsapp_number: str) -> str | None:
    """``"admin"`` or ``"friend"`` when the number is already known, else ``None``."""
    with connect(db_path) as conn:
        if conn.execute(
            "SELECT 1 FROM admins WHERE whatsapp_number = ?", (whatsapp_number,)
        ).fetchone():
            return "admin"
        if conn.execute(
            "SELECT 1 FROM friends WHERE whatsapp_number = ?", (whatsapp_number,)
        ).fetchone():
            return "friend"
    return None


def create_admin(
    db_path,
    *,
    full_name: str,
    email: str,
    whatsapp_number: str,
    password: str,
    preferred_currency: str = "USD",
) -> int:
    name = full_name.strip()
    if not name:
        raise ValueError("name required")
    if whatsapp_number_owner(db_path, whatsapp_number) == "admin":
        raise DuplicateError("whatsapp number already registered")
    with connect(db_path) as conn:
        try:
            cur = conn.execute(
                """
                INSERT INTO admins(full_name, email, whatsapp_number, password_hash, preferred_currency)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    name,
                    email.strip().lower(),
                    whatsapp_number,
                    hash_password(password),
                    preferred_currency,
                ),
            )
        except sqlite3.IntegrityError as exc:
            if "whatsapp_number" in str(exc):
                raise DuplicateError("whatsapp number already registered") from exc
            raise DuplicateError("email already registered") from exc
        admin_id = int(cur.lastrowid)
    logger.info("Admin registered", extra={"admin_id": admin_id})
    return admin_id


def get_admin(db_path, admin_id: int) -> Admin | None:
    with connect(db_path) as conn:
        row = conn.execute("SELECT * FROM admins WHERE id = ?", (admin_id,)).fetchone()
    return _admin(row) if row else None


def authenticate_admin(db_path, email: str, password: str) -> Admin:
    with connect(db_path) as conn:
        row = conn.execute(
            "SELECT * FROM admins WHERE email = ?", (email.strip().lower(),)
        ).fetchone()
    if row is None or not verify_password(password, row["password_hash"]):
        logger.warning("Failed login", extra={"known_account": row is not None})
        raise AuthenticationError("invalid email or password")
    return _admin(row)


def update_admin_profile(
    db_path, admin_id: int, *, full_name: str, preferred_currency: str
) -> None:
    name = full_name.strip()
    if not name:
        raise ValueError("name required")
    currency = validate_currency(preferred_currency)
    with connect(db_path) as conn:
        cur = conn.execute(
            "UPDATE admins SET full_name = ?, preferred_currency = ? WHERE id = ?",
            (name, currency, admin_id),
        )
        if cur.rowcount == 0:
            raise NotFoundError("admin not found")
    logger.info("Profile updated", extra={"admin_id": admin_id})


def change_password(
    db_path, admin_id: int, *, current_password: str, new_password: str
) -> None:
    with connect(db_path) as conn:
        row = conn.execute(
            "SELECT password_hash FROM admins WHERE id = ?", (admin_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError("admin not found")
        if not verify_password(current_password, row["password_hash"]):
            logger.warning("Password change refused", extra={"admin_id": admin_id})
            raise AuthenticationError("current password is incorrect")
        validate_password(new_password)
        conn.execute(
            "UPDATE admins SET password_hash = ? WHERE id = ?",
            (hash_password(new_password), admin_id),
        )
    logger.info("Password changed", extra={"admin_id": admin_id})


def list_friends(db_path, admin_id: int) -> list[Friend]:
    with connect(db_path) as conn:
        rows = conn.execute(
            """
            SELECT * FROM friends
            WHERE admin_id = ?
            ORDER BY full_name COLLATE NOCASE ASC, id ASC
            """,
            (admin_id,),
        ).fetchall()
    return [_friend(row) for row in rows]


def get_friend(db_path, friend_id: int, *, admin_id: int) -> Friend:
    with connect(db_path) as conn:
        row = conn.execute(
            "SELECT * FROM friends WHERE id = ? AND admin_id = ?",
            (friend_id, admin_id),
        ).fetchone()
    if row is None:
        raise NotFoundError("friend not found")
    return _friend(row)


def get_friend_by_tracking_url(db_path, tracking_url: str) -> Friend:
    with connect(db_path) as conn:
        row = conn.execute(
            "SELECT * FROM friends WHERE tracking_url = ?", (tracking_url,)
        ).fetchone()
    if row is None:
        raise NotFoundError("tracking link not found")
    return _friend(row)


def create_friend(db_path, *, admin_id: int, full_name: str, whatsapp_number: str) -> int:
    name = full_name.strip()
    number = whatsapp_number.strip()
    if not name:
        raise ValueError("name required")
    if not number:
        raise ValueError("whatsapp number required")
    with connect(db_path) as conn:
        try:
            cur = conn.execute(
                """
                INSERT INTO friends(admin_id, full_name, whatsapp_number, tracking_url, tracking_code)
                VALUES (?, ?, ?, ?, ?)
                """,
                (admin_id, name, number, generate_tracking_url(), generate_tracking_code()),
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateError("friend with this number already exists") from exc
        friend_id = int(cur.lastrowid)
    logger.info("Friend added", extra={"admin_id": admin_id, "friend_id": friend_id})
    return friend_id


def update_friend(
    db_path, friend_id: int, *, admin_id: int, full_name: str, whatsapp_number: str
) -> None:
    name = full_name.strip()
    number = whatsapp_number.strip()
    if not name:
        raise ValueError("name required")
    if not number:
        raise ValueError("whatsapp number required")
    with connect(db_path) as conn:
        try:
            cur = conn.execute(
                """
                UPDATE friends
                SET full_name = ?, whatsapp_number = ?
                WHERE id = ? AND admin_id = ?
                """,
                (name, number, friend_id, admin_id),
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateError("friend with this number already exists") from exc
        if cur.rowcount == 0:
            raise NotFoundError("friend not found")


def update_tracking_code(db_path, friend_id: int, *, admin_id: int, code: str) -> None:
    if not is_valid_tracking_code(code):
        raise ValueError("tracking code must be 4 digits")
    with connect(db_path) as conn:
        cur = conn.execute(
            "UPDATE friends SET tracking_code = ? WHERE id = ? AND admin_id = ?",
            (code, friend_id, admin_id),
        )
        if cur.rowcount == 0:
            raise NotFoundError("friend not found")


def delete_friend(db_path, friend_id: int, *, admin_id: int) -> None:
    with connect(db_path) as conn:
        cur = conn.execute(
            "DELETE FROM friends WHERE id = ? AND admin_id = ?",
            (friend_id, admin_id),
        )
        if cur.rowcount == 0:
            raise NotFoundError("friend not found")
    logger.info("Friend deleted", extra={"admin_id": admin_id, "friend_id": friend_id})


def create_txn(
    db_path,
    *,
    admin_id: int,
    friend_id: int,
    txn_type,
    amount_cents: int,
    description: str | None = None,
    date_str: str | None = None,
) -> int:
    get_friend(db_path, friend_id, admin_id=admin_id)
    with connect(db_path) as conn:
        cur = conn.execute(
            """
            INSERT INTO transactions(admin_id, friend_id, type, amount_cents, description, transaction_date)
            VALUES (?, ?, ?, ?, ?, COALESCE(?, datetime('now')))
            """,
            (
                admin_id,
                friend_id,
                getattr(txn_type, "value", txn_type),
                amount_cents,
                description or None,
                date_str,
            ),
        )
        txn_id = int(cur.lastrowid)
    logger.info(
        "Transaction recorded",
        extra={"admin_id": admin_id, "friend_id": friend_id, "transaction_id": txn_id},
    )
    return txn_id


def list_txns(db_path, *, admin_id: int, friend_id: int | None = None):
    with connect(db_path) as conn:
        if friend_id is None:
            cur = conn.execute(
                """
                SELECT t.*, f.full_name AS friend_name
                FROM transactions t JOIN friends f ON f.id = t.friend_id
                WHERE t.admin_id = ?
                ORDER BY t.transaction_date DESC, t.id DESC
                """,
                (admin_id,),
            )
        else:
            cur = conn.execute(
                """
                SELECT t.*, f.full_name AS friend_name
                FROM transactions t JOIN friends f ON f.id = t.friend_id
                WHERE t.admin_id = ? AND t.friend_id = ?
                ORDER BY t.transaction_date DESC, t.id DESC
                """,
                (admin_id, friend_id),
            )
        return cur.fetchall()


def delete_txn(db_path, txn_id: int, *, admin_id: int) -> None:
    with connect(db_path) as conn:
        cur = conn.execute(
            "DELETE FROM transactions WHERE id = ? AND admin_id = ?",
            (txn_id, admin_id),
        )
        if cur.rowcount == 0:
            raise NotFoundError("transaction not found")


def load_snapshot(db_path, *, admin_id: int, friend_id: int | None = None) -> list[Transaction]:
    """Every transaction of one admin (optionally one friend) as domain models."""
    return [
        _transaction(row)
        for row in list_txns(db_path, admin_id=admin_id, friend_id=friend_id)
    ]


def get_friend_balances(
    db_path,
    *,
    admin_id: int,
    unknown_type_policy: UnknownTypePolicy = UnknownTypePolicy.INCLUDE,
):
    """Pair every friend of the admin with their balance, zero when they have no transactions."""
    friends = list_friends(db_path, admin_id)
    balances = aggregate_balances(
        load_snapshot(db_path, admin_id=admin_id),
        unknown_type_policy=unknown_type_policy,
    )
    return [(friend, balance_for(balances, friend.id)) for friend in friends]
