"""Transaction pricing, totals and validation."""

from collections import OrderedDict
from datetime import datetime
from typing import Dict, List, Optional

from errors import ValidationError
from schemas import (
    DiscountType,
    PaymentStatus,
    Product,
    Transaction,
    TransactionIn,
    TransactionItem,
    TransactionItemIn,
    TransactionType,
)

DEFAULT_COST_RATIO = 0.7  # perkiraan harga pokok jika produk tidak punya cost


def discount_amount(item: TransactionItemIn, unit_price: int) -> int:
    gross = unit_price * item.quantity
    if item.discount.type == DiscountType.PERCENTAGE:
        return int(round(gross * item.discount.value / 100))
    if item.discount.type == DiscountType.AMOUNT:
        return int(item.discount.value)
    return 0


def build_item(item: TransactionItemIn, product: Optional[Product], item_id: str) -> TransactionItem:
    if item.quantity <= 0:
        raise ValidationError("Pilih produk dan masukkan jumlah yang valid!")
    if product is not None:
        name = product.name
        unit_price = item.unit_price if item.unit_price else product.price
        if item.unit_cost:
            unit_cost = item.unit_cost
        elif product.cost:
            unit_cost = product.cost
        else:
            unit_cost = int(round(unit_price * DEFAULT_COST_RATIO))
    else:
        if not item.product_name or item.unit_price is None:
            raise ValidationError("Item tanpa produk harus punya nama dan harga!")
        name = item.product_name
        unit_price = item.unit_price
        unit_cost = item.unit_cost or 0
    if unit_price < 0 or unit_cost < 0:
        raise ValidationError("Harga tidak boleh negatif!")

    total_price = max(0, unit_price * item.quantity - discount_amount(item, unit_price))
    return TransactionItem(
        id=item_id,
        product_id=product.id if product else None,
        product_name=name,
        category_id=product.category_id if product else None,
        quantity=item.quantity,
        unit_price=unit_price,
        unit_cost=unit_cost,
        discount=item.discount,
        total_price=total_price,
        total_cost=unit_cost * item.quantity,
    )


def compute_totals(items: List[TransactionItem]):
    """Return ``(nominal, total_cost, profit)`` for a list of items."""
    nominal = sum(item.total_price for item in items)
    total_cost = sum(item.total_cost for item in items)
    return nominal, total_cost, nominal - total_cost


def quantities_by_product(items: List[TransactionItem]) -> Dict[str, int]:
    totals: Dict[str, int] = OrderedDict()
    for item in items:
        if item.product_id:
            totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return totals


def check_stock(required: Dict[str, int], products: Dict[str, Product]):
    for product_id, quantity in required.items():
        if quantity <= 0:
            continue
        product = products.get(product_id)
        if product is None:
            raise ValidationError("Produk tidak ditemukan!")
        if product.stock < quantity:
            raise ValidationError(f"Stok {product.name} tidak mencukupi! Tersedia: {product.stock}")


def check_payment(status: PaymentStatus, nominal: int, paid_amount: Optional[int]):
    if status == PaymentStatus.SEBAGIAN:
        if paid_amount is None:
            raise ValidationError("Jumlah dibayar wajib diisi untuk pembayaran sebagian!")
        if paid_amount <= 0 or paid_amount >= nominal:
            raise ValidationError("Jumlah dibayar harus lebih dari 0 dan kurang dari total!")


def resolve_nominal(data: TransactionIn, items: List[TransactionItem]):
    if items:
        return compute_totals(items)
    if data.type == TransactionType.PEMASUKAN and data.nominal is None:
        raise ValidationError("Tambahkan minimal satu item!")
    if data.nominal is None or data.nominal <= 0:
        raise ValidationError("Nominal harus lebih dari 0!")
    return data.nominal, 0, data.nominal


def make_transaction_number(transactions: List[Transaction], now: datetime) -> str:
    today = now.strftime("%Y%m%d")
    prefix = f"TRX-{today}-"
    sequences = [
        int(t.transaction_number[len(prefix):])
        for t in transactions
        if t.transaction_number.startswith(prefix) and t.transaction_number[len(prefix):].isdigit()
    ]
    return f"{prefix}{max(sequences, default=0) + 1:04d}"


def outstanding_amount(transaction: Transaction) -> int:
    """Amount the customer still owes for this transaction."""
    if transaction.payment_status == PaymentStatus.HUTANG:
        return transaction.nominal
    if transaction.payment_status == PaymentStatus.SEBAGIAN:
        return transaction.nominal - (transaction.paid_amount or 0)
    return 0
