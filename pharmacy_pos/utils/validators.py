# utils/validators.py
from decimal import Decimal, InvalidOperation


# ---- Numeric parsing & validators ----

def try_parse_decimal(x):
    """
    Best-effort parse to Decimal.

    Returns:
        (ok: bool, value: Decimal|None)
    """
    if isinstance(x, float):
        x = repr(x)
    try:
        return True, Decimal(x)
    except (InvalidOperation, ValueError, TypeError):
        return False, None


def is_positive_int(x) -> bool:
    """
    True iff x is a whole number > 0 (bools rejected).
    """
    if isinstance(x, bool):
        return False
    if isinstance(x, int):
        return x > 0
    ok, val = try_parse_decimal(x)
    return bool(ok and val is not None and val.is_finite() and val > 0 and val == val.to_integral_value())
