from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.types import TypeDecorator, Numeric as SA_Numeric

CENT = Decimal("0.01")


def to_money(value) -> Decimal | None:
    """Coerce int/float/str/Decimal to a cent-quantized Decimal."""
    if value is None:
        return None
    try:
        if not isinstance(value, Decimal):
            # Use str() to avoid binary-float surprises
            value = Decimal(str(value))
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except ArithmeticError:
        raise ValueError(f"Cannot convert {value!r} to a money amount")


class Money(TypeDecorator):
    """
    Decimal amount stored in NUMERIC(18,2).

    - Python value: decimal.Decimal quantized to cents, ROUND_HALF_UP
    - DB value: NUMERIC(18,2)
    """
    impl = SA_Numeric(precision=18, scale=2, asdecimal=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return to_money(value)

    def process_result_value(self, value, dialect):
        return to_money(value)


def money_str(value: Decimal | None) -> str | None:
    """Serialize a money value for JSON without float rounding."""
    if value is None:
        return None
    return str(to_money(value))
