"""
Module: approval_kernel.db.types
Responsibility: Conversion of caller-supplied loan amounts to Decimal, and
    trimming of fixed-scale column padding from stored vote weights.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    CRITICAL: No floats for money.  Amounts use Decimal with explicit precision;
    to_money() is the ONLY sanctioned conversion for caller-supplied amounts.

Failure modes:
    - ValueError on a non-numeric or non-finite value passed to to_money().
"""

from decimal import Decimal, InvalidOperation


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Convert a caller-supplied amount to Decimal.

    Floats are refused; pass a string if the value came from a float.

    Raises:
        ValueError: if the value is a float, not numeric, or not finite.
    """
    if isinstance(value, float):
        raise ValueError(f"Float amounts are not accepted: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError(f"Invalid amount: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Amount must be finite: {value!r}")
    return result


def strip_scale(value: Decimal) -> Decimal:
    """Drop the trailing zeros a fixed-scale column pads onto a value.

    Decimal("3.500000") becomes Decimal("3.5") and Decimal("10.000000")
    becomes Decimal("10"), never the exponent form Decimal("1E+1").
    """
    if value == value.to_integral_value():
        return value.quantize(Decimal(1))
    return value.normalize()
