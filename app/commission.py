# app/commission.py

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Iterable

from app.errors import ValidationError
from models.partners import CommissionType

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def money2(v: Decimal) -> Decimal:
    return v.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def to_decimal(value: Any, field: str = "amount") -> Decimal:
    """
    Converte input (int/float/str/Decimal) in Decimal passando da str,
    così 0.1 resta 0.1 e non 0.1000000000000000055...
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required")
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not d.is_finite():
        raise ValidationError(f"{field} must be a number")
    return d


def validate_commission(rate: Decimal, commission_type: CommissionType) -> Decimal:
    if rate < 0:
        raise ValidationError("commission_rate must be >= 0")
    if commission_type == CommissionType.PERCENTAGE and rate > HUNDRED:
        raise ValidationError("commission_rate must be between 0 and 100")
    return rate


def calc_commission(payment_amount: Decimal, rate: Decimal, commission_type: CommissionType) -> Decimal:
    """
    Commissione spettante su un pagamento cliente.
    - percentage: amount * rate / 100
    - fixed: rate (importo fisso, indipendente dal pagamento)
    - tiered: nessuna regola definita → rifiutato
    """
    if commission_type == CommissionType.PERCENTAGE:
        return money2((payment_amount * rate) / HUNDRED)
    if commission_type == CommissionType.FIXED:
        return money2(rate)
    raise ValidationError(
        "Tiered commission has no calculation rule: cannot record payments for tiered partners",
    )


def sum_amounts(rows: Iterable[Any]) -> Decimal:
    total = ZERO
    for r in rows:
        if r.amount is not None:
            total += Decimal(str(r.amount))
    return money2(total)
