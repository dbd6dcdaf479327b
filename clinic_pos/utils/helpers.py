# utils/helpers.py
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
import logging
from typing import Union, Optional

NumberLike = Union[float, int, str]

_log = logging.getLogger(__name__)


def today_str() -> str:
    """Return today's date as ISO string (YYYY-MM-DD)."""
    return date.today().isoformat()


def now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


def round2(v: float) -> float:
    """
    Round half-up to 2 decimals (money rounding, not banker's rounding).

    Goes through str() so that e.g. 2.675 rounds to 2.68 as an operator expects.
    """
    return float(Decimal(str(v)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def fmt_money(
    v: NumberLike,
    places: int = 2,
    *,
    strict: bool = False,
    sentinel: Optional[str] = None,
) -> str:
    """
    Format a number as money with thousands separators and a fixed number of decimals.

    On parse failure returns str(v), or `sentinel` when given; raises ValueError
    when strict=True.
    """
    try:
        x = float(v)
    except (TypeError, ValueError) as e:
        _log.debug("fmt_money: failed to parse %r as float: %s", v, e)
        if strict:
            raise ValueError(f"Could not parse {v!r} as a number.") from e
        return str(sentinel) if sentinel is not None else str(v)
    return f"{x:,.{places}f}"


def fmt_qty(v: float) -> str:
    """Quantities without trailing zeros: 2.0 -> '2', 2.50 -> '2.5'."""
    return f"{float(v):.3f}".rstrip("0").rstrip(".")
