import sqlite3
from pathlib import Path

from .settings import Settings


def connect(db_path: str | Path):
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def init_db(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    with connect(settings.db_path) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS admins (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              full_name TEXT NOT NULL,
              email TEXT NOT NULL UNIQUE,
              whatsapp_number TEXT NOT NULL UNIQUE,
              password_hash TEXT NOT NULL,
              preferred_currency TEXT NOT NULL DEFAULT 'USD',
              created_at TEXT NOT NULL DEFAULT (datetime('now')),
              updated_at TEXT NOT NULL DEFAULT (datetime('now'))
            );
            """
        )
        conn.execute(
            """
            CREATE TRIGGER IF NOT EXISTS admins_updated_at
            AFTER UPDATE ON admins
            FOR EACH ROW
            BEGIN
              UPDATE admins SET updated_at = datetime('now') WHERE id = OLD.id;
            END;
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS friends (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              admin_id INTEGER NOT NULL REFERENCES admins(id) ON DELETE CASCADE,
              full_name TEXT NOT NULL,
              whatsapp_number TEXT NOT NULL,
              tracking_url TEXT NOT NULL UNIQUE,
              tracking_code TEXT NOT NULL,
              created_at TEXT NOT NULL DEFAULT (datetime('now')),
              updated_at TEXT NOT NULL DEFAULT (datetime('now')),
              UNIQUE(admin_id, whatsapp_number)
            );
            """
        )
        conn.execute(
            """
            CREATE TRIGGER IF NOT EXISTS friends_updated_at
            AFTER UPDATE ON friends
            FOR EACH ROW
            BEGIN
              UPDATE friends SET updated_at = datetime('now') WHERE id = OLD.id;
            END;
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS transactions (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              admin_id INTEGER NOT NULL REFERENCES admins(id) ON DELETE CASCADE,
              friend_id INTEGER NOT NULL REFERENCES friends(id) ON DELETE CASCADE,
              type TEXT NOT NULL CHECK(type IN ('loan','repayment')),
              amount_cents INTEGER NOT NULL CHECK(amount_cents >= 0),
              transaction_date TEXT NOT NULL DEFAULT (datetime('now')),
              description TEXT,
              created_at TEXT NOT NULL DEFAULT (datetime('now')),
              updated_at TEXT NOT NULL DEFAULT (datetime('now'))
            );
            """
        )
        conn.execute(
            """
            CREATE TRIGGER IF NOT EXISTS transactions_updated_at
            AFTER UPDATE ON transactions
            FOR EACH ROW
            BEGIN
              UPDATE transactions SET updated_at = datetime('now') WHERE id = OLD.id;
            END;
            """
        )
        conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_transactions_admin_friend_date
            ON transactions(admin_id, friend_id, transaction_date DESC, id DESC)
            """
        )
