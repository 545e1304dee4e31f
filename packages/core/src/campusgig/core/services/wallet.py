"""WalletService -- 余额查询、入账、出账、转账、提现

每个公开方法即一个原子写入单元：余额变更与账本记录同时提交或同时回滚。
"""

from decimal import Decimal

import structlog

from ..config import TRANSACTION_HISTORY_LIMIT
from ..models.money import from_cents, require_positive
from ..models.wallet import LedgerEntry, TransferReceipt
from ..store import StoreGroup

log = structlog.get_logger()

WALLET_COLLECTIONS = ("wallets", "transactions")


class WalletService:
    """钱包业务服务"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group

    async def get_balance(self, user_id: str) -> Decimal:
        """查询余额；钱包不存在时自动创建零余额钱包"""
        async with self._stores.snapshot() as stores:
            wallet = await stores.wallet_store.get_wallet(user_id)
        if wallet is not None:
            return wallet.balance

        async with self._stores.transaction("wallets") as stores:
            await stores.wallet_store.ensure_wallet(user_id)
            cents = await stores.wallet_store.get_balance_cents(user_id)
        return from_cents(cents)

    async def credit(
        self,
        user_id: str,
        amount: Decimal | int | str,
        description: str,
        task_id: str | None = None,
    ) -> str:
        """入账，返回 transaction_id

        Raises:
            InvalidAmountError: amount <= 0
        """
        value = require_positive(amount)
        async with self._stores.transaction(*WALLET_COLLECTIONS) as stores:
            transaction_id = await stores.wallet_store.post_credit(
                user_id, value, description, task_id=task_id
            )
        log.info("wallet_credited", user_id=user_id, amount=str(value), task_id=task_id)
        return transaction_id

    async def debit(
        self,
        user_id: str,
        amount: Decimal | int | str,
        description: str,
        task_id: str | None = None,
    ) -> str:
        """出账，返回 transaction_id

        Raises:
            InvalidAmountError: amount <= 0
            InsufficientFundsError: 余额不足（无任何写入）
        """
        value = require_positive(amount)
        async with self._stores.transaction(*WALLET_COLLECTIONS) as stores:
            transaction_id = await stores.wallet_store.post_debit(
                user_id, value, description, task_id=task_id
            )
        log.info("wallet_debited", user_id=user_id, amount=str(value), task_id=task_id)
        return transaction_id

    async def transfer(
        self,
        from_user_id: str,
        to_user_id: str,
        amount: Decimal | int | str,
        task_id: str,
    ) -> TransferReceipt:
        """转账：两条腿在同一事务内提交

        收款方钱包不存在时先以零余额创建。

        Raises:
            InvalidAmountError: amount <= 0
            InsufficientFundsError: 付款方余额不足（双方余额均不变、无账本记录）
        """
        value = require_positive(amount)
        async with self._stores.transaction(*WALLET_COLLECTIONS) as stores:
            receipt = await stores.wallet_store.post_transfer(
                from_user_id, to_user_id, value, task_id
            )
        log.info(
            "wallet_transfer_completed",
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            amount=str(value),
            task_id=task_id,
        )
        return receipt

    async def request_withdrawal(
        self,
        user_id: str,
        amount: Decimal | int | str,
        payment_method_id: str,
    ) -> str:
        """提现申请：等价于一次出账，不与外部打款渠道通信"""
        transaction_id = await self.debit(user_id, amount, "Withdrawal request")
        log.info(
            "withdrawal_requested",
            user_id=user_id,
            transaction_id=transaction_id,
            payment_method_id=payment_method_id,
        )
        return transaction_id

    async def deposit(self, user_id: str, amount: Decimal | int | str) -> str:
        """充值"""
        return await self.credit(user_id, amount, "Wallet deposit")

    async def list_transactions(
        self,
        user_id: str,
        limit: int = TRANSACTION_HISTORY_LIMIT,
    ) -> list[LedgerEntry]:
        """账本记录，最新在前"""
        async with self._stores.snapshot() as stores:
            return await stores.wallet_store.list_transactions(user_id, limit)
