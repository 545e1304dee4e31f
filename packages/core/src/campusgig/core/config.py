"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、取消费策略、通知重试参数等可配置项。
"""

import os
from decimal import Decimal, InvalidOperation
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, ValidationError

log = structlog.get_logger()


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("CAMPUSGIG_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "CAMPUSGIG_DB_PATH",
        str(_get_base_dir() / "sqlite" / "campusgig.db"),
    )


# SSE 心跳间隔（秒）
SSE_HEARTBEAT_INTERVAL: int = int(
    os.environ.get("CAMPUSGIG_SSE_HEARTBEAT_INTERVAL", "15")
)

# 交易记录默认查询条数
TRANSACTION_HISTORY_LIMIT: int = 50

# 消息摘要截断长度（会话列表 last_message）
MESSAGE_PREVIEW_LENGTH: int = 200


class LifecyclePolicy(BaseModel):
    """任务生命周期策略 -- 从环境变量加载

    环境变量:
        CAMPUSGIG_CANCEL_FEE_THRESHOLD: 免费取消次数上限（默认 3）
        CAMPUSGIG_CANCEL_FEE_RATE: 取消费比例（默认 0.10）
        CAMPUSGIG_CANCEL_FEE_MINIMUM: 取消费下限（默认 1.00）
        CAMPUSGIG_NOTIFY_MAX_ATTEMPTS: 副作用最大尝试次数（默认 3）
        CAMPUSGIG_NOTIFY_RETRY_DELAY_S: 首次重试等待（秒，默认 0.05）
    """

    cancellation_fee_threshold: int = Field(
        default=3,
        ge=0,
        description="累计取消次数达到该值后，取消付费任务需缴纳取消费",
    )
    cancellation_fee_rate: Decimal = Field(
        default=Decimal("0.10"),
        ge=0,
        description="取消费占任务价格的比例",
    )
    cancellation_fee_minimum: Decimal = Field(
        default=Decimal("1.00"),
        ge=0,
        description="取消费下限",
    )
    notify_max_attempts: int = Field(
        default=3,
        ge=1,
        description="通知/会话等提交后副作用的最大尝试次数",
    )
    notify_retry_base_delay_s: float = Field(
        default=0.05,
        ge=0,
        description="副作用重试的初始等待时间（指数退避）",
    )


_POLICY_ENV = {
    "CAMPUSGIG_CANCEL_FEE_THRESHOLD": ("cancellation_fee_threshold", int),
    "CAMPUSGIG_CANCEL_FEE_RATE": ("cancellation_fee_rate", Decimal),
    "CAMPUSGIG_CANCEL_FEE_MINIMUM": ("cancellation_fee_minimum", Decimal),
    "CAMPUSGIG_NOTIFY_MAX_ATTEMPTS": ("notify_max_attempts", int),
    "CAMPUSGIG_NOTIFY_RETRY_DELAY_S": ("notify_retry_base_delay_s", float),
}


def load_lifecycle_policy() -> LifecyclePolicy:
    """从环境变量加载生命周期策略

    每个覆盖项单独解析并校验：无法解析或越界的取值仅记录 warning
    并回退到默认值，不阻塞启动。
    """
    kwargs: dict = {}

    for env_var, (field_name, parse) in _POLICY_ENV.items():
        val = os.environ.get(env_var)
        if not val:
            continue
        try:
            value = parse(val)
            LifecyclePolicy.model_validate({field_name: value})
        except (ValueError, InvalidOperation, ValidationError) as e:
            log.warning(
                "invalid_policy_config",
                env_var=env_var,
                value=val,
                error=str(e),
            )
            continue
        kwargs[field_name] = value

    return LifecyclePolicy(**kwargs)
