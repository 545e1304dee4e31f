"""CLI 入口模块 -- python -m campusgig.core <command>

支持的命令：
  audit-wallets     检查缓存余额与账本合计是否一致
  rebuild-balances  以账本为准重写缓存余额
  settle-pending    为缺少结算记录的已完成付费任务补齐结算
"""

import asyncio
import sys

from .config import get_db_path

_COMMANDS = {
    "audit-wallets": "检查缓存余额与账本合计是否一致",
    "rebuild-balances": "以账本为准重写缓存余额",
    "settle-pending": "为缺少结算记录的已完成付费任务补齐结算",
}


def _print_usage() -> None:
    print("用法: python -m campusgig.core <command>")
    print("命令:")
    for name, help_text in _COMMANDS.items():
        print(f"  {name:<17} {help_text}")


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        _print_usage()
        sys.exit(1)

    command = sys.argv[1]

    if command == "audit-wallets":
        drift_count = asyncio.run(audit_wallets_command())
        sys.exit(1 if drift_count else 0)
    elif command == "rebuild-balances":
        asyncio.run(rebuild_balances_command())
    elif command == "settle-pending":
        asyncio.run(settle_pending_command())
    else:
        print(f"未知命令: {command}")
        print(f"可用命令: {', '.join(_COMMANDS)}")
        sys.exit(1)


async def audit_wallets_command() -> int:
    """执行账本审计，返回不一致的钱包数"""
    from .audit import audit_wallets
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    store_group = await create_store_group(db_path)
    try:
        drifts = await audit_wallets(store_group)
    finally:
        await store_group.close()

    if not drifts:
        print("所有钱包余额与账本一致")
    for drift in drifts:
        print(
            f"{drift.user_id}: 缓存 {drift.cached_balance} / 账本 {drift.ledger_balance}"
        )
    return len(drifts)


async def rebuild_balances_command() -> None:
    """执行余额重建"""
    from .audit import rebuild_balances
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")
    print("开始重建余额...")

    store_group = await create_store_group(db_path)
    try:
        fixed = await rebuild_balances(store_group)
        print(f"重建完成，修正 {fixed} 个钱包")
    finally:
        await store_group.close()


async def settle_pending_command() -> None:
    """对所有已完成付费任务执行幂等结算补偿"""
    from .exceptions import MarketplaceError
    from .marketplace import Marketplace
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    store_group = await create_store_group(db_path)
    try:
        market = Marketplace(store_group)
        async with store_group.snapshot() as stores:
            tasks = await stores.task_store.list_completed_paid()

        failed = 0
        for task in tasks:
            try:
                await market.lifecycle.retry_settlement(task.task_id)
            except MarketplaceError as e:
                failed += 1
                print(f"{task.task_id}: {e.code} {e.message}")
        print(f"检查 {len(tasks)} 个已完成付费任务，失败 {failed} 个")
    finally:
        await store_group.close()


if __name__ == "__main__":
    main()
