"""WalletStore SQLite 实现

余额缓存在 wallets.balance_cents，账本写入 transactions。
每次余额变更都在同一事务内写入恰好一条账本记录，两者不得偏离。
"""

from datetime import UTC, datetime
from decimal import Decimal

import aiosqlite
from ulid import ULID

from ..exceptions import InsufficientFundsError, TransferPartialFailureError
from ..models.enums import TransactionType
from ..models.money import from_cents, to_cents
from ..models.wallet import LedgerEntry, TransferReceipt, Wallet


def settlement_keys(task_id: str) -> tuple[str, str]:
    """结算两条腿的幂等键 (debit, credit)"""
    return f"settle:{task_id}:debit", f"settle:{task_id}:credit"


class SqliteWalletStore:
    """WalletStore 的 SQLite 实现

    注意：所有方法均不自动提交事务，需由调用方（StoreGroup.transaction）管理。
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def ensure_wallet(self, user_id: str) -> None:
        """钱包不存在时创建零余额钱包"""
        now = datetime.now(UTC).isoformat()
        await self._conn.execute(
            """
            INSERT OR IGNORE INTO wallets (user_id, balance_cents, created_at, updated_at)
            VALUES (?, 0, ?, ?)
            """,
            (user_id, now, now),
        )

    async def get_wallet(self, user_id: str) -> Wallet | None:
        cursor = await self._conn.execute(
            "SELECT * FROM wallets WHERE user_id = ?",
            (user_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return Wallet(
            user_id=row["user_id"],
            balance=from_cents(row["balance_cents"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    async def get_balance_cents(self, user_id: str) -> int:
        cursor = await self._conn.execute(
            "SELECT balance_cents FROM wallets WHERE user_id = ?",
            (user_id,),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def post_credit(
        self,
        user_id: str,
        amount: Decimal,
        description: str,
        task_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> str:
        """入账：余额增加 + 一条 credit 记录"""
        await self.ensure_wallet(user_id)
        cents = to_cents(amount)
        now = datetime.now(UTC).isoformat()
        cursor = await self._conn.execute(
            """
            UPDATE wallets SET balance_cents = balance_cents + ?, updated_at = ?
            WHERE user_id = ?
            """,
            (cents, now, user_id),
        )
        if cursor.rowcount != 1:
            raise TransferPartialFailureError(task_id, "credit")
        return await self._append_entry(
            user_id, task_id, cents, TransactionType.CREDIT, description, idempotency_key, now
        )

    async def post_debit(
        self,
        user_id: str,
        amount: Decimal,
        description: str,
        task_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> str:
        """出账：余额不足时抛出 InsufficientFundsError 且不做任何写入

        余额检查与扣减为同一条条件 UPDATE，防止并发扣成负数。
        """
        await self.ensure_wallet(user_id)
        cents = to_cents(amount)
        available = await self.get_balance_cents(user_id)
        if available < cents:
            raise InsufficientFundsError(user_id, amount, from_cents(available))

        now = datetime.now(UTC).isoformat()
        cursor = await self._conn.execute(
            """
            UPDATE wallets SET balance_cents = balance_cents - ?, updated_at = ?
            WHERE user_id = ? AND balance_cents >= ?
            """,
            (cents, now, user_id, cents),
        )
        if cursor.rowcount != 1:
            available = await self.get_balance_cents(user_id)
            raise InsufficientFundsError(user_id, amount, from_cents(available))
        return await self._append_entry(
            user_id, task_id, -cents, TransactionType.DEBIT, description, idempotency_key, now
        )

    async def post_transfer(
        self,
        from_user_id: str,
        to_user_id: str,
        amount: Decimal,
        task_id: str,
    ) -> TransferReceipt:
        """转账：先出账后入账，两条腿共享 task_id 且带结算幂等键

        必须在单个事务内调用；任一腿失败由事务整体回滚。
        """
        debit_key, credit_key = settlement_keys(task_id)
        debit_id = await self.post_debit(
            from_user_id,
            amount,
            f"Payment for task {task_id}",
            task_id=task_id,
            idempotency_key=debit_key,
        )
        credit_id = await self.post_credit(
            to_user_id,
            amount,
            f"Payment received for task {task_id}",
            task_id=task_id,
            idempotency_key=credit_key,
        )
        return TransferReceipt(
            debit_transaction_id=debit_id,
            credit_transaction_id=credit_id,
        )

    async def find_by_idempotency_key(self, key: str) -> LedgerEntry | None:
        cursor = await self._conn.execute(
            "SELECT * FROM transactions WHERE idempotency_key = ? LIMIT 1",
            (key,),
        )
        row = await cursor.fetchone()
        return self._row_to_entry(row) if row else None

    async def list_transactions(self, user_id: str, limit: int) -> list[LedgerEntry]:
        """用户账本记录，最新在前"""
        cursor = await self._conn.execute(
            """
            SELECT * FROM transactions WHERE user_id = ?
            ORDER BY created_at DESC, transaction_id DESC
            LIMIT ?
            """,
            (user_id, limit),
        )
        rows = await cursor.fetchall()
        return [self._row_to_entry(row) for row in rows]

    async def list_for_task(self, task_id: str) -> list[LedgerEntry]:
        cursor = await self._conn.execute(
            "SELECT * FROM transactions WHERE task_id = ? ORDER BY created_at, amount_cents",
            (task_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_entry(row) for row in rows]

    async def ledger_sums(self) -> dict[str, tuple[int, int]]:
        """每个钱包的 (缓存余额, 账本合计)，单位为分"""
        cursor = await self._conn.execute(
            """
            SELECT w.user_id, w.balance_cents, COALESCE(SUM(t.amount_cents), 0)
            FROM wallets w
            LEFT JOIN transactions t ON t.user_id = w.user_id
            GROUP BY w.user_id
            ORDER BY w.user_id
            """
        )
        rows = await cursor.fetchall()
        return {row[0]: (row[1], row[2]) for row in rows}

    async def set_balance_cents(self, user_id: str, balance_cents: int) -> None:
        """直接覆盖缓存余额（仅供账本重建使用）"""
        await self._conn.execute(
            "UPDATE wallets SET balance_cents = ?, updated_at = ? WHERE user_id = ?",
            (balance_cents, datetime.now(UTC).isoformat(), user_id),
        )

    async def _append_entry(
        self,
        user_id: str,
        task_id: str | None,
        amount_cents: int,
        tx_type: TransactionType,
        description: str,
        idempotency_key: str | None,
        created_at: str,
    ) -> str:
        transaction_id = str(ULID())
        await self._conn.execute(
            """
            INSERT INTO transactions (transaction_id, user_id, task_id, amount_cents,
                                      type, description, idempotency_key, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                transaction_id,
                user_id,
                task_id,
                amount_cents,
                tx_type.value,
                description,
                idempotency_key,
                created_at,
            ),
        )
        return transaction_id

    @staticmethod
    def _row_to_entry(row: aiosqlite.Row) -> LedgerEntry:
        return LedgerEntry(
            transaction_id=row["transaction_id"],
            user_id=row["user_id"],
            task_id=row["task_id"],
            amount=from_cents(row["amount_cents"]),
            type=TransactionType(row["type"]),
            description=row["description"],
            idempotency_key=row["idempotency_key"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
