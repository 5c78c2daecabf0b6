"""Debt ledger rules.

``Debt.total_debt`` is a signed running sum of the debt's transactions:
``memberi`` adds to what the customer owes, ``menerima`` subtracts. A
negative balance means the store owes the customer (overpayment credit).
Every function that appends a DebtTransaction updates the balance in the
same call, so the two can never drift apart.
"""

import logging
import re
from datetime import datetime
from typing import List, Optional, Tuple
from urllib.parse import quote

from errors import ValidationError
from schemas import Debt, DebtTransaction, DebtTransactionType, PaymentStatus, Transaction
from transactions import outstanding_amount
from utils import Clock, format_rupiah

logger = logging.getLogger(__name__)

NOTE_INITIAL_DEBT = "Hutang awal"
NOTE_INITIAL_CREDIT = "Kredit awal (pelanggan overpaid)"
NOTE_PAY_OFF = "Pelunasan hutang lengkap"
NOTE_REFUND = "Refund kredit pelanggan"


def match_customer(debts: List[Debt], customer_name: str) -> Optional[Debt]:
    """Find the debt for a customer.

    Matching is exact and case-sensitive: "Ani" and "ani" are two customers.
    Customers have no stable identity beyond the name typed at the counter.
    """
    for debt in debts:
        if debt.customer_name == customer_name:
            return debt
    return None


def signed_amount(transaction: DebtTransaction) -> int:
    if transaction.type == DebtTransactionType.MEMBERI:
        return transaction.amount
    return -transaction.amount


def balance_of(transactions: List[DebtTransaction]) -> int:
    return sum(signed_amount(t) for t in transactions)


def append_transaction(
    debt: Debt,
    type: DebtTransactionType,
    amount: int,
    catatan: str,
    clock: Clock,
    tanggal: Optional[datetime] = None,
) -> DebtTransaction:
    if amount <= 0:
        raise ValidationError("Jumlah harus lebih dari 0!")
    now = clock.now()
    entry = DebtTransaction(
        id=clock.new_id(),
        debt_id=debt.id,
        type=type,
        amount=amount,
        catatan=catatan,
        tanggal=tanggal or now,
        created_at=now,
    )
    debt.transactions.append(entry)
    debt.total_debt += signed_amount(entry)
    debt.updated_at = now
    return entry


def open_debt(
    customer_name: str,
    clock: Clock,
    customer_phone: Optional[str] = None,
    due_date: Optional[datetime] = None,
) -> Debt:
    now = clock.now()
    return Debt(
        id=clock.new_id(),
        customer_name=customer_name,
        customer_phone=customer_phone or None,
        total_debt=0,
        due_date=due_date,
        transactions=[],
        created_at=now,
        updated_at=now,
    )


def new_debtor(
    customer_name: str,
    initial_debt: int,
    clock: Clock,
    customer_phone: Optional[str] = None,
    due_date: Optional[datetime] = None,
) -> Debt:
    """Create a debtor by hand, seeded with one transaction worth ``initial_debt``."""
    if not customer_name or not customer_name.strip() or initial_debt == 0:
        raise ValidationError("Mohon lengkapi nama dan jumlah!")
    debt = open_debt(customer_name, clock, customer_phone, due_date)
    if initial_debt > 0:
        append_transaction(debt, DebtTransactionType.MEMBERI, initial_debt, NOTE_INITIAL_DEBT, clock)
    else:
        append_transaction(debt, DebtTransactionType.MENERIMA, -initial_debt, NOTE_INITIAL_CREDIT, clock)
    return debt


def apply_transaction(debts: List[Debt], transaction: Transaction, clock: Clock) -> Optional[Tuple[Debt, bool]]:
    """Record what a sale left unpaid on the customer's debt.

    Returns ``(debt, created)`` or None when the transaction does not create
    an obligation. Fully paid transactions never touch the debts, even for a
    customer with an open balance.
    """
    if transaction.payment_status == PaymentStatus.LUNAS:
        return None
    if not transaction.customer_name:
        logger.warning(
            "Transaksi %s berstatus %s tanpa nama pelanggan, hutang tidak dicatat",
            transaction.transaction_number,
            transaction.payment_status.value,
        )
        return None
    amount = outstanding_amount(transaction)
    if amount <= 0:
        return None

    debt = match_customer(debts, transaction.customer_name)
    created = debt is None
    if created:
        debt = open_debt(
            transaction.customer_name,
            clock,
            customer_phone=transaction.customer_phone,
            due_date=transaction.due_date,
        )
    append_transaction(debt, DebtTransactionType.MEMBERI, amount, transaction.catatan, clock, tanggal=transaction.tanggal)
    return debt, created


def pay_off(debt: Debt, clock: Clock) -> Optional[DebtTransaction]:
    """Settle a positive balance in one payment; no-op otherwise."""
    if debt.total_debt <= 0:
        return None
    return append_transaction(debt, DebtTransactionType.MENERIMA, debt.total_debt, NOTE_PAY_OFF, clock)


def refund(debt: Debt, amount: int, clock: Clock) -> Optional[DebtTransaction]:
    """Pay back store credit, never more than the credit held."""
    if amount <= 0:
        raise ValidationError("Jumlah refund harus lebih dari 0!")
    if debt.total_debt >= 0:
        return None
    actual = min(amount, -debt.total_debt)
    return append_transaction(debt, DebtTransactionType.MEMBERI, actual, NOTE_REFUND, clock)


def status_label(debt: Debt) -> str:
    if debt.total_debt > 0:
        return "Hutang"
    if debt.total_debt < 0:
        return "Kredit"
    return "Lunas"


def is_overdue(debt: Debt, now: datetime) -> bool:
    return debt.due_date is not None and debt.due_date < now and debt.total_debt > 0


def reminder_link(debt: Debt, store_name: str) -> str:
    phone = re.sub(r"[^\d]", "", debt.customer_phone or "")
    if not phone:
        raise ValidationError("Nomor telepon pelanggan belum diisi!")
    message = f"Halo {debt.customer_name},\n\n"
    message += f"Kami ingin mengingatkan bahwa Anda memiliki hutang sebesar {format_rupiah(debt.total_debt)}.\n"
    if debt.due_date:
        message += f"Jatuh tempo: {debt.due_date.strftime('%d/%m/%Y')}\n"
    message += "\nMohon untuk segera melakukan pembayaran.\n\n"
    message += "Terima kasih!\n"
    message += store_name or "Toko Anda"
    return f"https://wa.me/{phone}?text={quote(message)}"
