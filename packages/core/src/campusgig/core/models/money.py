"""金额工具

Python 侧统一使用 Decimal（两位小数），存储层使用整数分，
避免浮点累加导致余额与账本不一致。
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from ..exceptions import InvalidAmountError

CENT = Decimal("0.01")

# 单笔金额上限；以分存储时远低于 SQLite INTEGER (int64) 的范围
MAX_AMOUNT = Decimal("1000000000.00")


def quantize(amount: Decimal | int | float | str) -> Decimal:
    """规整为两位小数（四舍五入），超出 MAX_AMOUNT 视为非法金额"""
    try:
        value = Decimal(str(amount))
    except InvalidOperation as e:
        raise InvalidAmountError(amount) from e
    if not value.is_finite() or abs(value) > MAX_AMOUNT:
        raise InvalidAmountError(amount)
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def require_positive(amount: Decimal | int | float | str) -> Decimal:
    """校验并返回正金额，否则抛出 InvalidAmountError"""
    value = quantize(amount)
    if value <= 0:
        raise InvalidAmountError(amount)
    return value


def to_cents(amount: Decimal) -> int:
    return int(quantize(amount) * 100)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)
