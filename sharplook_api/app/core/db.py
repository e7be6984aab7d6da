"""
SQLite database integration and a small migration system.

This module provides ``get_connection`` for services, a ``get_cursor``
context manager for short scripts, ``init_db`` which applies pending
migrations on application start, and helpers that turn ``sqlite3.Row``
objects into plain dictionaries.

Nested structures (status history, offer responses, dispute evidence,
vendor schedules and so on) are stored as JSON text and decoded by
``row_to_dict``.  Timestamps are ISO-8601 strings in UTC.
"""

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

from .config import settings


logger = logging.getLogger(__name__)


def get_database_path() -> str:
    """Compute the path to the SQLite database file.

    Absolute paths in ``settings.database_url`` are used as is, relative
    ones are resolved against the project root.
    """
    db_url = settings.database_url
    if db_url == ":memory:" or os.path.isabs(db_url):
        return db_url
    base_dir = Path(__file__).resolve().parent.parent.parent.parent
    return str((base_dir / db_url).resolve())


def get_connection() -> sqlite3.Connection:
    """Create and return a new SQLite connection.

    Rows are returned as ``sqlite3.Row`` so columns can be accessed by
    name, and foreign key enforcement is switched on for the lifetime
    of the connection.
    """
    conn = sqlite3.connect(get_database_path(), timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def get_cursor() -> Iterator[sqlite3.Cursor]:
    """Yield a cursor, commit on success and always close the connection."""
    conn = get_connection()
    try:
        yield conn.cursor()
        conn.commit()
    finally:
        conn.close()


def row_to_dict(
    row: Optional[sqlite3.Row],
    json_fields: Iterable[str] = (),
    bool_fields: Iterable[str] = (),
    exclude: Iterable[str] = (),
) -> Optional[Dict[str, Any]]:
    """Convert a row to a dictionary.

    Parameters
    ----------
    row : sqlite3.Row or None
        Row returned by a cursor.  ``None`` is passed through.
    json_fields : iterable of str
        Columns holding JSON text that should be decoded.
    bool_fields : iterable of str
        Integer flag columns that should be exposed as booleans.
    exclude : iterable of str
        Columns that must never leave the service layer (hashes, tokens).

    Returns
    -------
    dict or None
    """
    if row is None:
        return None
    data = dict(row)
    for field in exclude:
        data.pop(field, None)
    for field in json_fields:
        if field in data and data[field] is not None:
            data[field] = json.loads(data[field])
    for field in bool_fields:
        if field in data and data[field] is not None:
            data[field] = bool(data[field])
    return data


def rows_to_dicts(rows: Iterable[sqlite3.Row], **kwargs: Any) -> List[Dict[str, Any]]:
    return [row_to_dict(row, **kwargs) for row in rows]


def dump_json(value: Any) -> Optional[str]:
    """Serialise a value for a JSON column; ``None`` stays ``NULL``."""
    if value is None:
        return None
    return json.dumps(value, default=str)


MIGRATIONS: list[tuple[int, str]] = [
    # Migration 1: users, catalogue and bookings
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            first_name TEXT NOT NULL,
            last_name TEXT NOT NULL,
            email TEXT NOT NULL UNIQUE,
            phone TEXT NOT NULL UNIQUE,
            password TEXT NOT NULL,
            role TEXT NOT NULL DEFAULT 'client',
            status TEXT NOT NULL DEFAULT 'pending_verification',
            avatar TEXT,
            is_email_verified INTEGER NOT NULL DEFAULT 0,
            is_phone_verified INTEGER NOT NULL DEFAULT 0,
            email_verification_token TEXT,
            email_verification_expires TEXT,
            password_reset_token TEXT,
            password_reset_expires TEXT,
            refresh_token TEXT,
            last_login TEXT,
            login_attempts INTEGER NOT NULL DEFAULT 0,
            lock_until TEXT,
            is_online INTEGER NOT NULL DEFAULT 0,
            last_seen TEXT,
            preferences TEXT NOT NULL,
            withdrawal_pin TEXT,
            referral_code TEXT NOT NULL UNIQUE,
            referred_by INTEGER,
            wallet_balance REAL NOT NULL DEFAULT 0 CHECK (wallet_balance >= 0),
            is_vendor INTEGER NOT NULL DEFAULT 0,
            is_deleted INTEGER NOT NULL DEFAULT 0,
            deleted_at TEXT,
            deleted_by INTEGER,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            FOREIGN KEY(referred_by) REFERENCES users(id)
        );
        CREATE INDEX IF NOT EXISTS idx_users_role_status ON users(role, status);

        CREATE TABLE IF NOT EXISTS vendor_profiles (
            user_id INTEGER PRIMARY KEY,
            business_name TEXT NOT NULL,
            business_description TEXT,
            vendor_type TEXT NOT NULL,
            categories TEXT,
            location TEXT,
            latitude REAL,
            longitude REAL,
            service_radius REAL NOT NULL DEFAULT 10,
            rating REAL NOT NULL DEFAULT 0,
            total_ratings INTEGER NOT NULL DEFAULT 0,
            completed_bookings INTEGER NOT NULL DEFAULT 0,
            availability_schedule TEXT,
            documents TEXT,
            is_verified INTEGER NOT NULL DEFAULT 0,
            verification_date TEXT,
            FOREIGN KEY(user_id) REFERENCES users(id)
        );

        CREATE TABLE IF NOT EXISTS categories (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE,
            slug TEXT NOT NULL UNIQUE,
            description TEXT,
            icon TEXT,
            image TEXT,
            parent_id INTEGER,
            is_active INTEGER NOT NULL DEFAULT 1,
            display_order INTEGER NOT NULL DEFAULT 0,
            is_deleted INTEGER NOT NULL DEFAULT 0,
            deleted_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            FOREIGN KEY(parent_id) REFERENCES categories(id)
        );

        CREATE TABLE IF NOT EXISTS services (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            vendor_id INTEGER NOT NULL,
            name TEXT NOT NULL,
            slug TEXT NOT NULL UNIQUE,
            description TEXT NOT NULL,
            category_id INTEGER NOT NULL,
            subcategory_id INTEGER,
            base_price REAL NOT NULL CHECK (base_price >= 0),
            price_type TEXT NOT NULL DEFAULT 'fixed',
            duration INTEGER,
            images TEXT,
            tags TEXT,
            requirements TEXT,
            what_is_included TEXT,
            faqs TEXT,
            availability TEXT,
            is_active INTEGER NOT NULL DEFAULT 0,
            approval_status TEXT NOT NULL DEFAULT 'pending',
            approved_by INTEGER,
            approved_at TEXT,
            approval_notes TEXT,
            rejected_by INTEGER,
            rejected_at TEXT,
            rejection_reason TEXT,
            views INTEGER NOT NULL DEFAULT 0,
            bookings INTEGER NOT NULL DEFAULT 0,
            completed_bookings INTEGER NOT NULL DEFAULT 0,
            average_rating REAL NOT NULL DEFAULT 0,
            total_reviews INTEGER NOT NULL DEFAULT 0,
            is_deleted INTEGER NOT NULL DEFAULT 0,
            deleted_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            FOREIGN KEY(vendor_id) REFERENCES users(id),
            FOREIGN KEY(category_id) REFERENCES categories(id),
            FOREIGN KEY(subcategory_id) REFERENCES categories(id)
        );
        CREATE INDEX IF NOT EXISTS idx_services_vendor ON services(vendor_id);
        CREATE INDEX IF NOT EXISTS idx_services_category ON services(category_id);

        CREATE TABLE IF NOT EXISTS offers (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            client_id INTEGER NOT NULL,
            title TEXT NOT NULL,
            description TEXT NOT NULL,
            category_id INTEGER NOT NULL,
            service_id INTEGER,
            proposed_price REAL NOT NULL CHECK (proposed_price >= 0),
            location TEXT,
            latitude REAL,
            longitude REAL,
            preferred_date TEXT,
            preferred_time TEXT,
            flexibility TEXT NOT NULL DEFAULT 'flexible',
            images TEXT,
            status TEXT NOT NULL DEFAULT 'open',
            responses TEXT NOT NULL,
            selected_vendor_id INTEGER,
            selected_response_id INTEGER,
            accepted_at TEXT,
            booking_id INTEGER,
            expires_at TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            FOREIGN KEY(client_id) REFERENCES users(id),
            FOREIGN KEY(category_id) REFERENCES categories(id),
            FOREIGN KEY(service_id) REFERENCES services(id)
        );

        CREATE TABLE IF NOT EXISTS bookings (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            booking_type TEXT NOT NULL DEFAULT 'standard',
            client_id INTEGER NOT NULL,
            vendor_id INTEGER NOT NULL,
            service_id INTEGER,
            offer_id INTEGER,
            scheduled_date TEXT NOT NULL,
            scheduled_time TEXT,
            duration INTEGER,
            location TEXT,
            service_price REAL NOT NULL,
            distance_charge REAL NOT NULL DEFAULT 0,
            total_amount REAL NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            status_history TEXT NOT NULL,
            client_notes TEXT,
            vendor_notes TEXT,
            completed_at TEXT,
            completed_by TEXT,
            client_marked_complete INTEGER NOT NULL DEFAULT 0,
            vendor_marked_complete INTEGER NOT NULL DEFAULT 0,
            payment_id INTEGER,
            payment_status TEXT NOT NULL DEFAULT 'pending',
            payment_reference TEXT,
            cancelled_at TEXT,
            cancelled_by INTEGER,
            cancellation_reason TEXT,
            has_dispute INTEGER NOT NULL DEFAULT 0,
            dispute_id INTEGER,
            has_review INTEGER NOT NULL DEFAULT 0,
            review_id INTEGER,
            accepted_at TEXT,
            rejected_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            FOREIGN KEY(client_id) REFERENCES users(id),
            FOREIGN KEY(vendor_id) REFERENCES users(id),
            FOREIGN KEY(service_id) REFERENCES services(id),
            FOREIGN KEY(offer_id) REFERENCES offers(id)
        );
        CREATE INDEX IF NOT EXISTS idx_bookings_client ON bookings(client_id, status);
        CREATE INDEX IF NOT EXISTS idx_bookings_vendor ON bookings(vendor_id, status);

        CREATE TABLE IF NOT EXISTS audit_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER,
            action TEXT NOT NULL,
            object_type TEXT,
            object_id INTEGER,
            timestamp TEXT NOT NULL,
            details TEXT
        );
        """,
    ),
    # Migration 2: money movement
    (
        2,
        """
        CREATE TABLE IF NOT EXISTS payments (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            vendor_id INTEGER NOT NULL,
            booking_id INTEGER NOT NULL,
            amount REAL NOT NULL CHECK (amount >= 0),
            currency TEXT NOT NULL DEFAULT 'NGN',
            status TEXT NOT NULL DEFAULT 'pending',
            payment_method TEXT,
            reference TEXT NOT NULL UNIQUE,
            authorization_url TEXT,
            access_code TEXT,
            commission_rate REAL NOT NULL DEFAULT 0,
            platform_fee REAL NOT NULL DEFAULT 0,
            vendor_amount REAL NOT NULL DEFAULT 0,
            escrow_status TEXT NOT NULL DEFAULT 'pending',
            escrowed_at TEXT,
            released_at TEXT,
            paid_at TEXT,
            refund_amount REAL,
            refund_reason TEXT,
            refunded_at TEXT,
            refunded_by INTEGER,
            gateway_response TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            FOREIGN KEY(user_id) REFERENCES users(id),
            FOREIGN KEY(vendor_id) REFERENCES users(id),
            FOREIGN KEY(booking_id) REFERENCES bookings(id)
        );

        CREATE TABLE IF NOT EXISTS withdrawals (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            amount REAL NOT NULL,
            fee REAL NOT NULL DEFAULT 0,
            net_amount REAL NOT NULL,
            bank_details TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            reference TEXT NOT NULL UNIQUE,
            recipient_code TEXT,
            transfer_code TEXT,
            processed_by INTEGER,
            processed_at TEXT,
            completed_at TEXT,
            failure_reason TEXT,
            rejection_reason TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            FOREIGN KEY(user_id) REFERENCES users(id)
        );

        CREATE TABLE IF NOT EXISTS transactions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            type TEXT NOT NULL,
            amount REAL NOT NULL,
            balance_before REAL NOT NULL,
            balance_after REAL NOT NULL,
            status TEXT NOT NULL DEFAULT 'completed',
            reference TEXT NOT NULL UNIQUE,
            description TEXT,
            booking_id INTEGER,
            payment_id INTEGER,
            withdrawal_id INTEGER,
            metadata TEXT,
            created_at TEXT NOT NULL,
            FOREIGN KEY(user_id) REFERENCES users(id)
        );
        CREATE INDEX IF NOT EXISTS idx_transactions_user ON transactions(user_id, type);

        CREATE TABLE IF NOT EXISTS subscriptions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            vendor_id INTEGER NOT NULL,
            type TEXT NOT NULL,
            monthly_fee REAL NOT NULL,
            commission_rate REAL NOT NULL,
            status TEXT NOT NULL,
            start_date TEXT NOT NULL,
            end_date TEXT NOT NULL,
            next_payment_due TEXT,
            last_payment_date TEXT,
            auto_renew INTEGER NOT NULL DEFAULT 1,
            cancelled_at TEXT,
            cancellation_reason TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            FOREIGN KEY(vendor_id) REFERENCES users(id)
        );

        CREATE TABLE IF NOT EXISTS referrals (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            referrer_id INTEGER NOT NULL,
            referee_id INTEGER NOT NULL UNIQUE,
            referral_code TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            referrer_reward REAL NOT NULL,
            referee_reward REAL NOT NULL,
            referrer_paid INTEGER NOT NULL DEFAULT 0,
            referee_paid INTEGER NOT NULL DEFAULT 0,
            requires_first_booking INTEGER NOT NULL DEFAULT 1,
            first_booking_id INTEGER,
            completed_at TEXT,
            expires_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            FOREIGN KEY(referrer_id) REFERENCES users(id),
            FOREIGN KEY(referee_id) REFERENCES users(id)
        );
        """,
    ),
    # Migration 3: disputes, reviews, chat and notifications
    (
        3,
        """
        CREATE TABLE IF NOT EXISTS disputes (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            booking_id INTEGER NOT NULL,
            raised_by INTEGER NOT NULL,
            against INTEGER NOT NULL,
            reason TEXT NOT NULL,
            description TEXT NOT NULL,
            category TEXT NOT NULL,
            priority TEXT NOT NULL DEFAULT 'medium',
            status TEXT NOT NULL DEFAULT 'open',
            evidence TEXT NOT NULL,
            messages TEXT NOT NULL,
            assigned_to INTEGER,
            reviewed_at TEXT,
            resolution TEXT,
            resolution_details TEXT,
            refund_amount REAL,
            vendor_payment_amount REAL,
            resolved_at TEXT,
            resolved_by INTEGER,
            closed_at TEXT,
            closed_by INTEGER,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            FOREIGN KEY(booking_id) REFERENCES bookings(id),
            FOREIGN KEY(raised_by) REFERENCES users(id),
            FOREIGN KEY(against) REFERENCES users(id)
        );

        CREATE TABLE IF NOT EXISTS reviews (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            booking_id INTEGER NOT NULL,
            service_id INTEGER,
            reviewer_id INTEGER NOT NULL,
            reviewee_id INTEGER NOT NULL,
            reviewer_type TEXT NOT NULL,
            rating INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
            title TEXT,
            comment TEXT NOT NULL,
            detailed_ratings TEXT,
            images TEXT,
            response TEXT,
            helpful_count INTEGER NOT NULL DEFAULT 0,
            not_helpful_count INTEGER NOT NULL DEFAULT 0,
            helpful_votes TEXT NOT NULL,
            is_approved INTEGER NOT NULL DEFAULT 1,
            is_flagged INTEGER NOT NULL DEFAULT 0,
            flag_reason TEXT,
            flagged_by INTEGER,
            flagged_at TEXT,
            moderated_by INTEGER,
            moderated_at TEXT,
            is_hidden INTEGER NOT NULL DEFAULT 0,
            hidden_reason TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE(booking_id, reviewer_id),
            FOREIGN KEY(booking_id) REFERENCES bookings(id),
            FOREIGN KEY(reviewer_id) REFERENCES users(id),
            FOREIGN KEY(reviewee_id) REFERENCES users(id)
        );

        CREATE TABLE IF NOT EXISTS conversations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            participant_one INTEGER NOT NULL,
            participant_two INTEGER NOT NULL,
            booking_id INTEGER,
            last_message TEXT,
            unread_count TEXT NOT NULL,
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            FOREIGN KEY(participant_one) REFERENCES users(id),
            FOREIGN KEY(participant_two) REFERENCES users(id)
        );

        CREATE TABLE IF NOT EXISTS messages (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            conversation_id INTEGER NOT NULL,
            sender_id INTEGER NOT NULL,
            receiver_id INTEGER NOT NULL,
            message_type TEXT NOT NULL DEFAULT 'text',
            text TEXT,
            attachments TEXT,
            is_read INTEGER NOT NULL DEFAULT 0,
            read_at TEXT,
            is_deleted INTEGER NOT NULL DEFAULT 0,
            deleted_at TEXT,
            created_at TEXT NOT NULL,
            FOREIGN KEY(conversation_id) REFERENCES conversations(id),
            FOREIGN KEY(sender_id) REFERENCES users(id)
        );
        CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id, created_at);

        CREATE TABLE IF NOT EXISTS notifications (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            type TEXT NOT NULL,
            title TEXT NOT NULL,
            message TEXT NOT NULL,
            related_booking INTEGER,
            related_payment INTEGER,
            related_dispute INTEGER,
            related_review INTEGER,
            related_message INTEGER,
            action_url TEXT,
            is_read INTEGER NOT NULL DEFAULT 0,
            read_at TEXT,
            is_sent INTEGER NOT NULL DEFAULT 0,
            sent_at TEXT,
            channels TEXT NOT NULL,
            data TEXT,
            is_deleted INTEGER NOT NULL DEFAULT 0,
            deleted_at TEXT,
            created_at TEXT NOT NULL,
            FOREIGN KEY(user_id) REFERENCES users(id)
        );
        CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, is_read);

        CREATE TABLE IF NOT EXISTS device_tokens (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            token TEXT NOT NULL UNIQUE,
            device_type TEXT NOT NULL,
            device_name TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            last_used TEXT,
            created_at TEXT NOT NULL,
            FOREIGN KEY(user_id) REFERENCES users(id)
        );
        """,
    ),
]


def init_db() -> None:
    """Initialise the database and apply pending migrations.

    Creates the ``migrations`` table if needed, then runs every entry of
    ``MIGRATIONS`` whose version has not been recorded yet.  New schema
    changes must be appended with an incremented version number.
    """
    conn = get_connection()
    try:
        cursor = conn.cursor()
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS migrations (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        applied = {row["version"] for row in cursor.execute("SELECT version FROM migrations").fetchall()}
        for version, sql in MIGRATIONS:
            if version in applied:
                continue
            cursor.executescript(sql)
            cursor.execute("INSERT INTO migrations (version) VALUES (?)", (version,))
            conn.commit()
            logger.info("Applied database migration %s", version)
    finally:
        conn.close()
