"""Stock reconciliation rules.

Every change to ``Product.stock`` is paired with exactly one StockLog
describing it. The functions here only derive the movement; the controller
creates the log entry. Product deletion deliberately has no movement.
"""

from typing import NamedTuple, Optional

from schemas import StockLogType

REF_NEW_PRODUCT = "New product"
REF_MANUAL_EDIT = "Manual stock edit"
REF_MANUAL_INCREMENT = "Manual stock increment"
REF_MANUAL_DECREMENT = "Manual stock decrement"


class StockMovement(NamedTuple):
    type: StockLogType
    jumlah: int
    reference: str


def movement_for_delta(delta: int, reference: str) -> Optional[StockMovement]:
    if delta == 0:
        return None
    direction = StockLogType.MASUK if delta > 0 else StockLogType.KELUAR
    return StockMovement(direction, abs(delta), reference)


def clamp_stock(current: int, delta: int) -> int:
    return max(0, current + delta)


def new_product_movement(initial_stock: int) -> Optional[StockMovement]:
    if initial_stock <= 0:
        return None
    return StockMovement(StockLogType.MASUK, initial_stock, REF_NEW_PRODUCT)


def edit_movement(old_stock: int, new_stock: int) -> Optional[StockMovement]:
    return movement_for_delta(new_stock - old_stock, REF_MANUAL_EDIT)


def adjust(current: int, requested: int):
    """Apply a +/- button adjustment.

    Returns ``(new_stock, movement)``. A decrement past zero stops at zero and
    the movement records the delta actually applied.
    """
    new_stock = clamp_stock(current, requested)
    applied = new_stock - current
    reference = REF_MANUAL_INCREMENT if applied > 0 else REF_MANUAL_DECREMENT
    return new_stock, movement_for_delta(applied, reference)


def consume(current: int, quantity: int, transaction_number: str):
    """Stock leaving through a sale; same clamp as manual adjustments."""
    new_stock = clamp_stock(current, -quantity)
    movement = movement_for_delta(new_stock - current, f"Transaction {transaction_number}")
    return new_stock, movement


def restore(current: int, quantity: int, transaction_number: str):
    """Stock returned when an edited sale lists fewer units."""
    new_stock = current + quantity
    movement = movement_for_delta(quantity, f"Transaction {transaction_number} (edit)")
    return new_stock, movement
