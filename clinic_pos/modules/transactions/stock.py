"""
Stock reconciliation and the out-of-stock override flow.

Running short of recorded stock never blocks a sale. A request above what is
available has to be acknowledged by the operator, after which the line is
committed as asked and stock is allowed to go negative (the shelf count is
reconciled later). The same flow serves whole-unit sales, partial sales and
bundles; a bundle is short when any of its constituents is short.

    Entering -> WithinLimit
    Entering -> OverLimit -> ConfirmationPending -> Confirmed
                                                 -> Cancelled -> Entering
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Callable, Iterable, Sequence

from .conversion import effective_capacity, validate_quantity
from .items import SALE_VOLUME, TransactionItem
from .records import BundleAvailability, ProductRecord
from ...utils.helpers import fmt_qty

_log = logging.getLogger(__name__)


class StockState(str, Enum):
    ENTERING = "entering"
    WITHIN_LIMIT = "within_limit"
    OVER_LIMIT = "over_limit"
    CONFIRMATION_PENDING = "confirmation_pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class InvalidTransition(Exception):
    pass


@dataclass(frozen=True)
class StockLine:
    name: str
    requested: float
    available: float
    unit: str = ""

    @property
    def shortfall(self) -> float:
        return max(0.0, float(self.requested) - float(self.available))

    @property
    def is_short(self) -> bool:
        return self.shortfall > 0


@dataclass(frozen=True)
class OverridePrompt:
    """Everything the confirmation dialog shows."""
    requested: float
    available: float
    shortfall: float
    lines: tuple[StockLine, ...]

    @property
    def message(self) -> str:
        parts = []
        for ln in self.lines:
            if not ln.is_short:
                continue
            u = f" {ln.unit}" if ln.unit else ""
            parts.append(
                f"{ln.name}: requested {fmt_qty(ln.requested)}{u}, "
                f"available {fmt_qty(ln.available)}{u}, "
                f"short by {fmt_qty(ln.shortfall)}{u}"
            )
        parts.append(
            "This will create negative inventory that needs to be reconciled later. "
            "Proceed with this out-of-stock sale?"
        )
        return "\n".join(parts)


# ---- Availability helpers ----

def quantity_in_cart(items: Iterable[TransactionItem], product_id: int, exclude_id: str | None = None) -> float:
    """Base units of ``product_id`` already taken by product lines in the cart."""
    total = 0.0
    for it in items:
        if it.id == exclude_id or it.item_type != "product":
            continue
        if getattr(it, "product_id", None) == product_id:
            total += float(it.converted_quantity)
    return total


def product_stock_lines(
    product: ProductRecord,
    quantity: float,
    sale_type: str,
    in_cart: float = 0.0,
) -> list[StockLine]:
    """
    Compare a product request against stock, both in base units.

    Whole-unit requests consume ``quantity × capacity``; partial requests are
    already in base units.
    """
    q = float(quantity)
    requested = q if sale_type == SALE_VOLUME else q * effective_capacity(product.container_capacity)
    available = float(product.current_stock) - float(in_cart)
    return [StockLine(product.name, requested, available, product.unit_name)]


def bundle_stock_lines(availability: BundleAvailability) -> list[StockLine]:
    return [
        StockLine(r.name, float(r.required_stock), float(r.available_stock))
        for r in availability.results
    ]


# ---- State machine ----

class OverrideFlow:
    """
    One add/edit action's walk through the override states.

    ``check`` supplies the stock comparison for a quantity, so the same flow
    drives products (local stock) and bundles (backend availability).
    """

    def __init__(self, check: Callable[[float], Sequence[StockLine]], label: str = ""):
        self._check = check
        self.label = label
        self.state = StockState.ENTERING
        self.history: list[StockState] = [StockState.ENTERING]
        self.quantity: float | None = None
        self.lines: tuple[StockLine, ...] = ()
        self.committed_quantity: float | None = None

    def _move(self, state: StockState) -> None:
        self.state = state
        self.history.append(state)

    def _expect(self, *states: StockState) -> None:
        if self.state not in states:
            raise InvalidTransition(f"Not allowed from {self.state.value}")

    def enter(self, quantity) -> StockState:
        """
        Leave Entering with a quantity. Raises ValidationFailed for q <= 0 and
        stays in Entering.
        """
        self._expect(StockState.ENTERING)
        q = validate_quantity(quantity)
        self.quantity = q
        self.lines = tuple(self._check(q))
        if any(ln.is_short for ln in self.lines):
            self._move(StockState.OVER_LIMIT)
        else:
            self._move(StockState.WITHIN_LIMIT)
            self.committed_quantity = q
        return self.state

    def prompt(self) -> OverridePrompt:
        """OverLimit -> ConfirmationPending; returns what to show the operator."""
        self._expect(StockState.OVER_LIMIT, StockState.CONFIRMATION_PENDING)
        if self.state == StockState.OVER_LIMIT:
            self._move(StockState.CONFIRMATION_PENDING)
        requested = sum(ln.requested for ln in self.lines)
        available = sum(ln.available for ln in self.lines)
        shortfall = sum(ln.shortfall for ln in self.lines)
        return OverridePrompt(requested, available, shortfall, self.lines)

    def confirm(self) -> float:
        self._expect(StockState.CONFIRMATION_PENDING)
        self._move(StockState.CONFIRMED)
        self.committed_quantity = self.quantity
        shorts = ", ".join(f"{ln.name} short {fmt_qty(ln.shortfall)}" for ln in self.lines if ln.is_short)
        _log.warning("Out-of-stock override confirmed for %s: %s", self.label or "item", shorts)
        return float(self.quantity)  # type: ignore[arg-type]

    def cancel(self) -> StockState:
        self._expect(StockState.CONFIRMATION_PENDING, StockState.OVER_LIMIT)
        self._move(StockState.CANCELLED)
        self.quantity = None
        self.lines = ()
        self._move(StockState.ENTERING)
        return self.state

    @property
    def is_committed(self) -> bool:
        return self.state in (StockState.WITHIN_LIMIT, StockState.CONFIRMED)


__all__ = [
    "StockState",
    "InvalidTransition",
    "StockLine",
    "OverridePrompt",
    "OverrideFlow",
    "quantity_in_cart",
    "product_stock_lines",
    "bundle_stock_lines",
]
