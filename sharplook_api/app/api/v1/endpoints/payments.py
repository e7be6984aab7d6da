"""
Payment, escrow and wallet endpoints.

The webhook endpoint is unauthenticated; it trusts a request only when
the ``x-paystack-signature`` header matches the raw body.  Wallet
routes are declared before ``/{payment_id}`` so they are matched first.
"""

import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, Request

from sharplook_api.app.core.errors import BadRequestError, UnauthorizedError
from sharplook_api.app.core.pagination import Pagination, pagination_params
from sharplook_api.app.core.rate_limit import payment_limiter
from sharplook_api.app.core.responses import paginated, success
from sharplook_api.app.core.security import ADMIN_ROLES, get_current_user, require_financial_admin, require_vendor
from sharplook_api.app.schemas.common import ReasonBody, RequiredReasonBody
from sharplook_api.app.schemas.payment import PaymentInitialize, WithdrawalRequest
from sharplook_api.app.services.payment_service import PaymentService
from sharplook_api.app.services.paystack import PaystackGateway
from sharplook_api.app.services.wallet_service import WalletService


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/initialize", dependencies=[Depends(payment_limiter)])
async def initialize_payment(
    data: PaymentInitialize,
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    result = await PaymentService.initialize_payment(current_user["id"], data.booking_id, data.metadata)
    return success(result, "Payment initialized successfully")


@router.get("/verify/{reference}")
async def verify_payment(reference: str, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    payment = await PaymentService.verify_payment(reference)
    return success({"payment": payment}, "Payment verified successfully")


@router.post("/webhook")
async def paystack_webhook(
    request: Request,
    x_paystack_signature: Optional[str] = Header(None),
) -> Dict[str, Any]:
    raw_body = await request.body()
    if not PaystackGateway.verify_signature(raw_body, x_paystack_signature):
        logger.warning("Rejected webhook with invalid signature")
        raise UnauthorizedError("Invalid signature")
    try:
        event = json.loads(raw_body)
    except ValueError:
        raise BadRequestError("Invalid webhook payload")
    await PaymentService.handle_webhook(event)
    return success(message="Webhook processed")


@router.get("/my-payments")
async def my_payments(
    status: Optional[str] = None,
    pagination: Pagination = Depends(pagination_params(10)),
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    payments, total = await PaymentService.list_payments(
        current_user["id"], status=status, limit=pagination.limit, offset=pagination.offset
    )
    return paginated(payments, pagination.page, pagination.limit, total, "Payments retrieved successfully")


@router.post("/release/{booking_id}")
async def release_payment(booking_id: int, current_user: dict = Depends(require_financial_admin)) -> Dict[str, Any]:
    payment = await PaymentService.release_payment(booking_id, current_user)
    return success({"payment": payment}, "Payment released to vendor")


@router.post("/refund/{booking_id}")
async def refund_payment(
    booking_id: int,
    data: Optional[ReasonBody] = None,
    current_user: dict = Depends(require_financial_admin),
) -> Dict[str, Any]:
    payment = await PaymentService.refund_payment(booking_id, current_user, data.reason if data else None)
    return success({"payment": payment}, "Payment refunded to client")


@router.get("/wallet/balance")
async def wallet_balance(current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    balance = await WalletService.get_balance(current_user["id"])
    return success({"balance": balance}, "Wallet balance retrieved successfully")


@router.get("/wallet/transactions")
async def wallet_transactions(
    type: Optional[str] = None,
    status: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    pagination: Pagination = Depends(pagination_params(20)),
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    transactions, total = await WalletService.get_transactions(
        current_user["id"],
        type=type,
        status=status,
        start_date=start_date,
        end_date=end_date,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    return paginated(transactions, pagination.page, pagination.limit, total, "Transactions retrieved successfully")


@router.get("/wallet/stats")
async def wallet_stats(current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    stats = await WalletService.get_stats(current_user["id"])
    return success({"stats": stats}, "Wallet stats retrieved successfully")


@router.post("/wallet/withdraw", dependencies=[Depends(payment_limiter)])
async def request_withdrawal(
    data: WithdrawalRequest,
    current_user: dict = Depends(require_vendor),
) -> Dict[str, Any]:
    withdrawal = await WalletService.request_withdrawal(current_user["id"], data.model_dump())
    return success({"withdrawal": withdrawal}, "Withdrawal request submitted successfully")


@router.get("/wallet/withdrawals/my-withdrawals")
async def my_withdrawals(
    status: Optional[str] = None,
    pagination: Pagination = Depends(pagination_params(20)),
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    withdrawals, total = await WalletService.list_withdrawals(
        user_id=current_user["id"], status=status, limit=pagination.limit, offset=pagination.offset
    )
    return paginated(withdrawals, pagination.page, pagination.limit, total, "Withdrawals retrieved successfully")


@router.get("/wallet/withdrawals/{withdrawal_id}")
async def get_withdrawal(withdrawal_id: int, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    withdrawal = await WalletService.get_withdrawal(withdrawal_id, current_user["id"])
    return success({"withdrawal": withdrawal}, "Withdrawal retrieved successfully")


@router.get("/wallet/withdrawals")
async def list_withdrawals(
    status: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    pagination: Pagination = Depends(pagination_params(20)),
    current_user: dict = Depends(require_financial_admin),
) -> Dict[str, Any]:
    withdrawals, total = await WalletService.list_withdrawals(
        status=status,
        start_date=start_date,
        end_date=end_date,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    return paginated(withdrawals, pagination.page, pagination.limit, total, "Withdrawals retrieved successfully")


@router.post("/wallet/withdrawals/{withdrawal_id}/process")
async def process_withdrawal(
    withdrawal_id: int,
    current_user: dict = Depends(require_financial_admin),
) -> Dict[str, Any]:
    withdrawal = await WalletService.process_withdrawal(withdrawal_id, current_user)
    return success({"withdrawal": withdrawal}, "Withdrawal processed successfully")


@router.post("/wallet/withdrawals/{withdrawal_id}/reject")
async def reject_withdrawal(
    withdrawal_id: int,
    data: RequiredReasonBody,
    current_user: dict = Depends(require_financial_admin),
) -> Dict[str, Any]:
    withdrawal = await WalletService.reject_withdrawal(withdrawal_id, current_user, data.reason)
    return success({"withdrawal": withdrawal}, "Withdrawal rejected")


@router.get("/{payment_id}")
async def get_payment(payment_id: int, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    payment = await PaymentService.get_payment(
        payment_id, current_user["id"], is_admin=current_user["role"] in ADMIN_ROLES
    )
    return success({"payment": payment}, "Payment retrieved successfully")
