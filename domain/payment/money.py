"""
金额与币种校验 - 所有金额以最小货币单位（分）的整数表示

浮点数只允许出现在 to_minor_units 的入参中，且会先经 Decimal 转换再四舍五入。
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from enum import Enum
from typing import Any, Optional, Union

from domain.payment.exceptions import PaymentError
from shared.codes.payment_codes import PaymentErrorCode


MAX_AMOUNT = 99_999_999
MINOR_UNIT_EXPONENT = 2


class Currency(str, Enum):
    """支持的币种（ISO-4217）"""
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    CAD = "CAD"


DEFAULT_CURRENCY = Currency.USD

_CURRENCY_SYMBOLS = {
    Currency.USD: "$",
    Currency.EUR: "€",
    Currency.GBP: "£",
    Currency.CAD: "CA$",
}


@dataclass(frozen=True)
class AmountCheck:
    valid: bool
    error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid


@dataclass(frozen=True)
class FeeBreakdown:
    subtotal: int
    platform_fee: int
    processor_fee: int
    total: int


def validate_amount(minor_units: Any) -> AmountCheck:
    """校验金额：必须为正整数且不超过 MAX_AMOUNT"""
    # bool 是 int 的子类，需单独排除
    if isinstance(minor_units, bool) or not isinstance(minor_units, int):
        return AmountCheck(False, "Amount in minor units must be an integer")
    if minor_units <= 0:
        return AmountCheck(False, "Amount must be positive")
    if minor_units > MAX_AMOUNT:
        return AmountCheck(False, "Amount exceeds maximum allowed")
    return AmountCheck(True)


def ensure_valid_amount(minor_units: Any, field: str = "amount") -> int:
    """校验失败时抛出 INVALID_AMOUNT"""
    check = validate_amount(minor_units)
    if not check.valid:
        raise PaymentError(
            check.error or "Invalid amount",
            PaymentErrorCode.INVALID_AMOUNT,
            details={"amount": minor_units if isinstance(minor_units, (int, str)) else str(minor_units)},
            field=field,
        )
    return minor_units


def parse_currency(value: Union[str, Currency, None]) -> Currency:
    if value is None or value == "":
        return DEFAULT_CURRENCY
    if isinstance(value, Currency):
        return value
    try:
        return Currency(str(value).upper())
    except ValueError:
        raise PaymentError(
            f"Unsupported currency: {value}",
            PaymentErrorCode.INVALID_CURRENCY,
            details={"currency": value, "supported": [c.value for c in Currency]},
            field="currency",
        ) from None


def to_minor_units(major: Union[int, float, str, Decimal]) -> int:
    """主单位 -> 最小单位，四舍五入到最近的分"""
    try:
        # float 先转 str，避免 19.99 * 100 = 1998.9999... 的漂移
        value = Decimal(str(major)) if not isinstance(major, Decimal) else major
    except InvalidOperation:
        raise PaymentError(
            f"Invalid amount: {major}",
            PaymentErrorCode.INVALID_AMOUNT,
            field="amount",
        ) from None
    scaled = value.scaleb(MINOR_UNIT_EXPONENT)
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_major_units(minor: int) -> Decimal:
    """最小单位 -> 主单位（Decimal，保留两位）"""
    return (Decimal(minor).scaleb(-MINOR_UNIT_EXPONENT)).quantize(Decimal("0.01"))


def format_for_display(minor_units: int, currency: Union[str, Currency] = DEFAULT_CURRENCY) -> str:
    """仅用于展示，例如 123456 -> $1,234.56"""
    cur = parse_currency(currency)
    major = to_major_units(abs(minor_units))
    sign = "-" if minor_units < 0 else ""
    return f"{sign}{_CURRENCY_SYMBOLS[cur]}{major:,.2f}"


def _percent_of(amount: int, percent: Union[int, float, Decimal]) -> int:
    share = Decimal(amount) * Decimal(str(percent)) / Decimal(100)
    return int(share.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_total_with_fees(
    subtotal: int,
    platform_fee_percent: Union[float, Decimal] = Decimal("2.5"),
    processor_fee_percent: Union[float, Decimal] = Decimal("2.9"),
    processor_fee_fixed: int = 30,
) -> FeeBreakdown:
    """计算含平台费与通道费的总额（均为最小单位整数）"""
    ensure_valid_amount(subtotal, field="subtotal")
    platform_fee = _percent_of(subtotal, platform_fee_percent)
    processor_fee = _percent_of(subtotal, processor_fee_percent) + processor_fee_fixed
    return FeeBreakdown(
        subtotal=subtotal,
        platform_fee=platform_fee,
        processor_fee=processor_fee,
        total=subtotal + platform_fee + processor_fee,
    )
