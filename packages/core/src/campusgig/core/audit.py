"""账本审计模块

wallets.balance_cents 是 transactions 的缓存汇总。
audit_wallets 找出缓存与账本不一致的钱包，rebuild_balances 以账本为准重写缓存。
"""

import time

import structlog
from pydantic import BaseModel

from .models.money import from_cents
from .store import StoreGroup

log = structlog.get_logger()


class WalletDrift(BaseModel):
    """缓存余额与账本合计的偏差"""

    user_id: str
    cached_balance: str
    ledger_balance: str


async def audit_wallets(store_group: StoreGroup) -> list[WalletDrift]:
    """返回所有缓存余额与账本合计不一致的钱包"""
    async with store_group.snapshot() as stores:
        sums = await stores.wallet_store.ledger_sums()

    drifts = [
        WalletDrift(
            user_id=user_id,
            cached_balance=str(from_cents(cached)),
            ledger_balance=str(from_cents(ledger)),
        )
        for user_id, (cached, ledger) in sums.items()
        if cached != ledger
    ]
    await log.ainfo(
        "wallet_audit_completed",
        wallet_count=len(sums),
        drift_count=len(drifts),
    )
    return drifts


async def rebuild_balances(store_group: StoreGroup) -> int:
    """以账本为准重写所有钱包的缓存余额

    Returns:
        被修正的钱包数
    """
    start_time = time.monotonic()

    async with store_group.transaction("wallets") as stores:
        sums = await stores.wallet_store.ledger_sums()
        fixed = 0
        for user_id, (cached, ledger) in sums.items():
            if cached == ledger:
                continue
            log.warning(
                "wallet_balance_rebuilt",
                user_id=user_id,
                cached_balance=str(from_cents(cached)),
                ledger_balance=str(from_cents(ledger)),
            )
            await stores.wallet_store.set_balance_cents(user_id, ledger)
            fixed += 1

    elapsed_ms = int((time.monotonic() - start_time) * 1000)
    await log.ainfo(
        "wallet_rebuild_completed",
        wallet_count=len(sums),
        fixed_count=fixed,
        elapsed_ms=elapsed_ms,
    )
    return fixed
