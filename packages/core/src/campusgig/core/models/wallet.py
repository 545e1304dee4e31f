"""Wallet / Ledger Domain Model

每个用户恰好一个钱包，首次访问时自动创建。
账本记录（transactions）append-only，余额变更与账本记录在同一事务内写入。
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from .enums import TransactionType


class Wallet(BaseModel):
    """用户钱包"""

    user_id: str = Field(description="钱包所有者")
    balance: Decimal = Field(default=Decimal("0.00"), description="当前余额")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")


class LedgerEntry(BaseModel):
    """账本记录（Transaction）

    amount 带符号：正数为入账，负数为出账。
    """

    transaction_id: str = Field(description="唯一标识，ULID 格式")
    user_id: str = Field(description="所属用户")
    task_id: str | None = Field(default=None, description="关联任务")
    amount: Decimal = Field(description="带符号金额")
    type: TransactionType = Field(description="credit / debit")
    description: str = Field(default="", description="描述")
    idempotency_key: str | None = Field(
        default=None,
        description="幂等键，结算类记录必填",
    )
    created_at: datetime = Field(description="记录时间")


class TransferReceipt(BaseModel):
    """转账结果：一出一入两条账本记录"""

    debit_transaction_id: str
    credit_transaction_id: str
