"""钱包路由

GET  /api/wallets/{user_id}: 余额（不存在时自动创建）
GET  /api/wallets/{user_id}/transactions: 账本记录，最新在前
POST /api/wallets/{user_id}/deposit: 充值
POST /api/wallets/{user_id}/withdraw: 提现申请
写操作要求调用方即钱包所有者。
"""

from decimal import Decimal

from campusgig.core.config import TRANSACTION_HISTORY_LIMIT
from campusgig.core.exceptions import MarketplaceError
from campusgig.core.marketplace import Marketplace
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..deps import get_actor_id, get_marketplace
from ..errors import error_body, error_response

router = APIRouter()


class DepositRequest(BaseModel):
    """充值请求体"""

    amount: Decimal = Field(description="充值金额")


class WithdrawRequest(BaseModel):
    """提现请求体"""

    amount: Decimal = Field(description="提现金额")
    payment_method_id: str = Field(description="收款方式 ID")


def _forbidden(actor_id: str, user_id: str):
    return error_body(
        403,
        "NOT_WALLET_OWNER",
        f"User {actor_id} cannot operate the wallet of {user_id}",
    )


@router.get("/api/wallets/{user_id}")
async def get_wallet(
    user_id: str,
    market: Marketplace = Depends(get_marketplace),
):
    """查询余额"""
    try:
        balance = await market.wallets.get_balance(user_id)
    except MarketplaceError as e:
        return error_response(e)
    return {"user_id": user_id, "balance": str(balance)}


@router.get("/api/wallets/{user_id}/transactions")
async def list_transactions(
    user_id: str,
    limit: int = Query(default=TRANSACTION_HISTORY_LIMIT, ge=1, le=500),
    market: Marketplace = Depends(get_marketplace),
):
    """账本记录，最新在前"""
    entries = await market.wallets.list_transactions(user_id, limit)
    return {"transactions": [e.model_dump(mode="json") for e in entries]}


@router.post("/api/wallets/{user_id}/deposit")
async def deposit(
    user_id: str,
    body: DepositRequest,
    actor_id: str = Depends(get_actor_id),
    market: Marketplace = Depends(get_marketplace),
):
    """充值"""
    if actor_id != user_id:
        return _forbidden(actor_id, user_id)
    try:
        transaction_id = await market.wallets.deposit(user_id, body.amount)
        balance = await market.wallets.get_balance(user_id)
    except MarketplaceError as e:
        return error_response(e)
    return {"transaction_id": transaction_id, "balance": str(balance)}


@router.post("/api/wallets/{user_id}/withdraw")
async def withdraw(
    user_id: str,
    body: WithdrawRequest,
    actor_id: str = Depends(get_actor_id),
    market: Marketplace = Depends(get_marketplace),
):
    """提现申请（仅扣减余额，不对接打款渠道）"""
    if actor_id != user_id:
        return _forbidden(actor_id, user_id)
    try:
        transaction_id = await market.wallets.request_withdrawal(
            user_id, body.amount, body.payment_method_id
        )
        balance = await market.wallets.get_balance(user_id)
    except MarketplaceError as e:
        return error_response(e)
    return {"transaction_id": transaction_id, "balance": str(balance)}
