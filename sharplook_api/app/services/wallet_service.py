"""
Wallet balances, the transaction ledger and vendor withdrawals.

Every balance change goes through ``credit_wallet``/``debit_wallet``
which update ``users.wallet_balance`` and append a row to
``transactions`` with the balance before and after, on the caller's
cursor.  Debits are recorded with a negative amount.
"""

import logging
import sqlite3
from typing import Any, Dict, List, Optional, Tuple

from sharplook_api.app.core.config import settings
from sharplook_api.app.core.db import dump_json, get_connection, row_to_dict, rows_to_dicts
from sharplook_api.app.core.errors import BadRequestError, ForbiddenError, NotFoundError, PaymentError, ServiceUnavailableError
from sharplook_api.app.core.helpers import generate_transaction_ref, now_iso
from sharplook_api.app.services.audit_service import AuditService
from sharplook_api.app.services.notification_service import notify
from sharplook_api.app.services.paystack import PaystackGateway
from sharplook_api.app.services.user_service import UserService


logger = logging.getLogger(__name__)

CREDIT_TYPES = ("booking_payment", "deposit")


def get_balance(cursor: sqlite3.Cursor, user_id: int) -> float:
    row = cursor.execute("SELECT wallet_balance FROM users WHERE id = ?", (user_id,)).fetchone()
    if not row:
        raise NotFoundError("User not found")
    return row["wallet_balance"]


def _record(
    cursor: sqlite3.Cursor,
    user_id: int,
    tx_type: str,
    amount: float,
    description: str,
    status: str,
    booking_id: Optional[int],
    payment_id: Optional[int],
    withdrawal_id: Optional[int],
    metadata: Optional[Dict[str, Any]],
) -> int:
    before = get_balance(cursor, user_id)
    after = round(before + amount, 2)
    if after < 0:
        raise BadRequestError("Insufficient wallet balance")
    cursor.execute(
        "UPDATE users SET wallet_balance = ?, updated_at = ? WHERE id = ?",
        (after, now_iso(), user_id),
    )
    prefix = "REF" if tx_type == "referral_bonus" else "TXN"
    cursor.execute(
        """
        INSERT INTO transactions (user_id, type, amount, balance_before, balance_after, status, reference,
            description, booking_id, payment_id, withdrawal_id, metadata, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            user_id,
            tx_type,
            amount,
            before,
            after,
            status,
            generate_transaction_ref(prefix),
            description,
            booking_id,
            payment_id,
            withdrawal_id,
            dump_json(metadata),
            now_iso(),
        ),
    )
    return cursor.lastrowid


def credit_wallet(
    cursor: sqlite3.Cursor,
    user_id: int,
    amount: float,
    tx_type: str,
    description: str,
    status: str = "completed",
    booking_id: Optional[int] = None,
    payment_id: Optional[int] = None,
    withdrawal_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> int:
    """Add ``amount`` to the wallet and return the transaction id."""
    return _record(cursor, user_id, tx_type, abs(amount), description, status, booking_id, payment_id,
                   withdrawal_id, metadata)


def debit_wallet(
    cursor: sqlite3.Cursor,
    user_id: int,
    amount: float,
    tx_type: str,
    description: str,
    status: str = "completed",
    booking_id: Optional[int] = None,
    payment_id: Optional[int] = None,
    withdrawal_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> int:
    """Take ``amount`` from the wallet; raises when the balance is too low."""
    return _record(cursor, user_id, tx_type, -abs(amount), description, status, booking_id, payment_id,
                   withdrawal_id, metadata)


def _serialize_withdrawal(row: sqlite3.Row) -> Dict[str, Any]:
    return row_to_dict(row, json_fields=("bank_details",))


def _fetch_withdrawal(cursor: sqlite3.Cursor, withdrawal_id: int) -> sqlite3.Row:
    row = cursor.execute("SELECT * FROM withdrawals WHERE id = ?", (withdrawal_id,)).fetchone()
    if not row:
        raise NotFoundError("Withdrawal not found")
    return row


def _refund_withdrawal(cursor: sqlite3.Cursor, withdrawal: sqlite3.Row, reason: str) -> None:
    """Return the held amount and mark the pending ledger entry failed."""
    cursor.execute(
        "UPDATE transactions SET status = 'failed' WHERE withdrawal_id = ? AND type = 'withdrawal'",
        (withdrawal["id"],),
    )
    credit_wallet(
        cursor,
        withdrawal["user_id"],
        withdrawal["amount"],
        "refund",
        f"Withdrawal {withdrawal['reference']} returned: {reason}",
        withdrawal_id=withdrawal["id"],
    )


def _processing_withdrawal(cursor: sqlite3.Cursor, reference: str, event: str) -> Optional[sqlite3.Row]:
    """Return the withdrawal a transfer event may settle, or ``None``.

    Only a withdrawal an administrator has sent to Paystack
    (``processing``) can be settled.  Events for anything else are
    logged for manual reconciliation and ignored.
    """
    row = cursor.execute("SELECT * FROM withdrawals WHERE reference = ?", (reference,)).fetchone()
    if not row:
        logger.warning("%s for unknown withdrawal %s", event, reference)
        return None
    if row["status"] != "processing":
        logger.error(
            "%s for withdrawal %s in status %s ignored; reconcile manually", event, reference, row["status"]
        )
        return None
    return row


def complete_transfer(cursor: sqlite3.Cursor, reference: str, transfer_code: Optional[str]) -> bool:
    """Mark a withdrawal paid out after Paystack confirms the transfer."""
    row = _processing_withdrawal(cursor, reference, "transfer.success")
    if row is None:
        return False
    now = now_iso()
    cursor.execute(
        """
        UPDATE withdrawals SET status = 'completed', completed_at = ?, transfer_code = COALESCE(?, transfer_code),
            updated_at = ?
        WHERE id = ?
        """,
        (now, transfer_code, now, row["id"]),
    )
    cursor.execute(
        "UPDATE transactions SET status = 'completed' WHERE withdrawal_id = ? AND type = 'withdrawal'",
        (row["id"],),
    )
    notify(cursor, row["user_id"], "payment", "Withdrawal completed",
           f"Your withdrawal of {row['net_amount']:,.2f} has been sent to your bank account.")
    logger.info("Transfer successful: %s", reference)
    return True


def fail_transfer(cursor: sqlite3.Cursor, reference: str, transfer_code: Optional[str], reason: str) -> bool:
    """Mark a withdrawal failed and refund the vendor's wallet."""
    row = _processing_withdrawal(cursor, reference, "transfer.failed")
    if row is None:
        return False
    now = now_iso()
    cursor.execute(
        """
        UPDATE withdrawals SET status = 'failed', failure_reason = ?, transfer_code = COALESCE(?, transfer_code),
            updated_at = ?
        WHERE id = ?
        """,
        (reason, transfer_code, now, row["id"]),
    )
    _refund_withdrawal(cursor, row, reason)
    logger.error("Transfer failed: %s (%s)", reference, reason)
    return True


class WalletService:
    """Balance queries and withdrawal workflow."""

    @classmethod
    async def get_balance(cls, user_id: int) -> float:
        conn = get_connection()
        try:
            return get_balance(conn.cursor(), user_id)
        finally:
            conn.close()

    @classmethod
    async def get_transactions(
        cls,
        user_id: int,
        type: Optional[str] = None,
        status: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            where = ["user_id = ?"]
            params: list = [user_id]
            if type:
                where.append("type = ?")
                params.append(type)
            if status:
                where.append("status = ?")
                params.append(status)
            if start_date:
                where.append("created_at >= ?")
                params.append(start_date)
            if end_date:
                where.append("created_at <= ?")
                params.append(end_date)
            clause = " AND ".join(where)
            total = cursor.execute(f"SELECT COUNT(*) FROM transactions WHERE {clause}", tuple(params)).fetchone()[0]
            rows = cursor.execute(
                f"SELECT * FROM transactions WHERE {clause} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                (*params, limit, offset),
            ).fetchall()
            return rows_to_dicts(rows, json_fields=("metadata",)), total
        finally:
            conn.close()

    @classmethod
    async def get_stats(cls, user_id: int) -> Dict[str, float]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            balance = get_balance(cursor, user_id)
            placeholders = ",".join("?" for _ in CREDIT_TYPES)
            received = cursor.execute(
                f"""
                SELECT COALESCE(SUM(amount), 0) FROM transactions
                WHERE user_id = ? AND type IN ({placeholders}) AND status = 'completed'
                """,
                (user_id, *CREDIT_TYPES),
            ).fetchone()[0]
            withdrawn = cursor.execute(
                """
                SELECT COALESCE(SUM(ABS(amount)), 0) FROM transactions
                WHERE user_id = ? AND type = 'withdrawal' AND status = 'completed'
                """,
                (user_id,),
            ).fetchone()[0]
            pending = cursor.execute(
                "SELECT COALESCE(SUM(amount), 0) FROM withdrawals WHERE user_id = ? AND status IN ('pending', 'processing')",
                (user_id,),
            ).fetchone()[0]
            return {
                "balance": balance,
                "total_received": received,
                "total_withdrawn": withdrawn,
                "pending_withdrawals": pending,
            }
        finally:
            conn.close()

    @classmethod
    async def request_withdrawal(cls, user_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        """Hold ``amount`` from a vendor's wallet for a payout.

        The wallet is debited immediately; a financial admin processes
        or rejects the request later.  The fee is deducted from the
        amount sent to the bank.
        """
        amount = data["amount"]
        conn = get_connection()
        try:
            cursor = conn.cursor()
            user = cursor.execute("SELECT * FROM users WHERE id = ? AND is_deleted = 0", (user_id,)).fetchone()
            if not user:
                raise NotFoundError("User not found")
            if not user["is_vendor"]:
                raise BadRequestError("Only vendors can withdraw funds")
            if not user["withdrawal_pin"]:
                raise BadRequestError("Please set up your withdrawal PIN first")
            if not UserService.check_withdrawal_pin(cursor, user_id, data["pin"]):
                raise BadRequestError("Invalid withdrawal PIN")
            if user["wallet_balance"] < amount:
                raise BadRequestError("Insufficient wallet balance")
            if amount < settings.withdrawal_min_amount:
                raise BadRequestError(f"Minimum withdrawal is ₦{settings.withdrawal_min_amount:,.0f}")

            fee = settings.withdrawal_fee
            reference = generate_transaction_ref("WTH")
            bank_details = {
                "bank_name": data["bank_name"],
                "account_number": data["account_number"],
                "account_name": data["account_name"],
            }
            now = now_iso()
            cursor.execute(
                """
                INSERT INTO withdrawals (user_id, amount, fee, net_amount, bank_details, status, reference,
                    created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, 'pending', ?, ?, ?)
                """,
                (user_id, amount, fee, amount - fee, dump_json(bank_details), reference, now, now),
            )
            withdrawal_id = cursor.lastrowid
            debit_wallet(
                cursor,
                user_id,
                amount,
                "withdrawal",
                f"Withdrawal to {data['bank_name']} - {data['account_number']}",
                status="pending",
                withdrawal_id=withdrawal_id,
            )
            conn.commit()
            logger.info("Withdrawal requested: %s by user %s", reference, user_id)
            return _serialize_withdrawal(_fetch_withdrawal(cursor, withdrawal_id))
        finally:
            conn.close()

    @classmethod
    async def process_withdrawal(cls, withdrawal_id: int, admin: Dict[str, Any]) -> Dict[str, Any]:
        """Send a pending withdrawal to the vendor's bank through Paystack.

        A gateway failure marks the withdrawal failed and refunds the
        wallet; the final state is returned in both cases.
        """
        conn = get_connection()
        try:
            cursor = conn.cursor()
            withdrawal = _fetch_withdrawal(cursor, withdrawal_id)
            if withdrawal["status"] != "pending":
                raise BadRequestError("Only pending withdrawals can be processed")
            now = now_iso()
            cursor.execute(
                """
                UPDATE withdrawals SET status = 'processing', processed_by = ?, processed_at = ?, updated_at = ?
                WHERE id = ?
                """,
                (admin["id"], now, now, withdrawal_id),
            )
            conn.commit()
        finally:
            conn.close()

        bank = row_to_dict(withdrawal, json_fields=("bank_details",))["bank_details"]
        recipient_code = None
        transfer_code = None
        failure = None
        try:
            recipient_code = PaystackGateway.create_transfer_recipient(
                bank["account_name"], bank["account_number"], bank["bank_name"]
            )
            transfer_code = PaystackGateway.initiate_transfer(
                withdrawal["net_amount"], recipient_code, withdrawal["reference"], "Withdrawal for vendor"
            )
        except (PaymentError, ServiceUnavailableError) as exc:
            failure = exc.message

        conn = get_connection()
        try:
            cursor = conn.cursor()
            if failure:
                cursor.execute(
                    "UPDATE withdrawals SET recipient_code = ? WHERE id = ?",
                    (recipient_code, withdrawal_id),
                )
                fail_transfer(cursor, withdrawal["reference"], None, failure)
            else:
                cursor.execute(
                    "UPDATE withdrawals SET recipient_code = ?, transfer_code = ?, updated_at = ? WHERE id = ?",
                    (recipient_code, transfer_code, now_iso(), withdrawal_id),
                )
                logger.info("Withdrawal transfer initiated: %s", withdrawal["reference"])
            conn.commit()
            result = _serialize_withdrawal(_fetch_withdrawal(cursor, withdrawal_id))
        finally:
            conn.close()
        await AuditService.log(
            user_id=admin["id"],
            action="process",
            object_type="withdrawal",
            object_id=withdrawal_id,
            details={"status": result["status"]},
        )
        return result

    @classmethod
    async def reject_withdrawal(cls, withdrawal_id: int, admin: Dict[str, Any], reason: str) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            withdrawal = _fetch_withdrawal(cursor, withdrawal_id)
            if withdrawal["status"] != "pending":
                raise BadRequestError("Only pending withdrawals can be rejected")
            now = now_iso()
            cursor.execute(
                """
                UPDATE withdrawals SET status = 'rejected', rejection_reason = ?, processed_by = ?,
                    processed_at = ?, updated_at = ?
                WHERE id = ?
                """,
                (reason, admin["id"], now, now, withdrawal_id),
            )
            _refund_withdrawal(cursor, withdrawal, reason)
            notify(cursor, withdrawal["user_id"], "payment", "Withdrawal rejected",
                   f"Your withdrawal request was rejected: {reason}")
            conn.commit()
            result = _serialize_withdrawal(_fetch_withdrawal(cursor, withdrawal_id))
        finally:
            conn.close()
        logger.info("Withdrawal rejected: %s", withdrawal["reference"])
        await AuditService.log(
            user_id=admin["id"],
            action="reject",
            object_type="withdrawal",
            object_id=withdrawal_id,
            details={"reason": reason},
        )
        return result

    @classmethod
    async def get_withdrawal(cls, withdrawal_id: int, user_id: int) -> Dict[str, Any]:
        conn = get_connection()
        try:
            withdrawal = _fetch_withdrawal(conn.cursor(), withdrawal_id)
        finally:
            conn.close()
        if withdrawal["user_id"] != user_id:
            raise ForbiddenError("Not authorized to view this withdrawal")
        return _serialize_withdrawal(withdrawal)

    @classmethod
    async def list_withdrawals(
        cls,
        user_id: Optional[int] = None,
        status: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """List withdrawals, either one user's or (admin) everybody's."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            where: List[str] = []
            params: list = []
            if user_id is not None:
                where.append("user_id = ?")
                params.append(user_id)
            if status:
                where.append("status = ?")
                params.append(status)
            if start_date:
                where.append("created_at >= ?")
                params.append(start_date)
            if end_date:
                where.append("created_at <= ?")
                params.append(end_date)
            clause = " WHERE " + " AND ".join(where) if where else ""
            total = cursor.execute(f"SELECT COUNT(*) FROM withdrawals{clause}", tuple(params)).fetchone()[0]
            rows = cursor.execute(
                f"SELECT * FROM withdrawals{clause} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                (*params, limit, offset),
            ).fetchall()
            return [_serialize_withdrawal(row) for row in rows], total
        finally:
            conn.close()
