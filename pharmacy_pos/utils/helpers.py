# utils/helpers.py
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import logging
from typing import Union, Optional

NumberLike = Union[Decimal, float, int, str]

_log = logging.getLogger(__name__)

CENT = Decimal("0.01")


def today_str() -> str:
    """Return today's date as ISO string (YYYY-MM-DD)."""
    return date.today().isoformat()


def to_money(v: Optional[NumberLike]) -> Decimal:
    """
    Coerce a money value coming back from the service (REAL column, str, int)
    into a Decimal rounded to cents. ``None`` becomes zero.

    Floats go through ``str`` first so 12.1 stays 12.10 instead of picking up
    binary noise.
    """
    if v is None:
        return Decimal("0.00")
    if isinstance(v, float):
        v = repr(v)
    try:
        return Decimal(v).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValueError(f"Could not parse {v!r} as a money amount.") from e


def fmt_money(
    v: NumberLike,
    places: int = 2,
    *,
    strict: bool = False,
    sentinel: Optional[str] = None,
) -> str:
    """
    Format a number as money with thousands separators and a fixed number of decimals.

    Behavior on parse failure:
      - By default (strict=False, sentinel=None), returns str(v).
      - If `sentinel` is provided (e.g., "N/A"), returns that sentinel instead.
      - If `strict=True`, raises ValueError on parse failures.
    """
    try:
        x = Decimal(str(v))
    except (InvalidOperation, ValueError, TypeError) as e:
        _log.debug("fmt_money: failed to parse %r as a number: %s", v, e)
        if strict:
            raise ValueError(f"Could not parse {v!r} as a number.") from e
        return str(sentinel) if sentinel is not None else str(v)
    return f"{x:,.{places}f}"
