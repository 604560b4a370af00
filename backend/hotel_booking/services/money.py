"""金额工具（整数分）"""
from decimal import Decimal, ROUND_HALF_UP


def percent_of(amount_cents: int, percent: int) -> int:
    """按百分比计算金额，四舍五入到分（0.5 向上）"""
    value = Decimal(amount_cents) * Decimal(percent) / Decimal(100)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
