from datetime import datetime

import pytest

import debts
from errors import NotFoundError, ValidationError
from schemas import DebtorIn, DebtTransactionIn, DebtTransactionType, PaymentStatus, TransactionIn


def assert_reconciled(debt):
    assert debt.total_debt == debts.balance_of(debt.transactions)


def receive(amount, catatan="Terima bayar"):
    return DebtTransactionIn(type=DebtTransactionType.MENERIMA, amount=amount, catatan=catatan)


@pytest.fixture
def ani(toko):
    toko.record_transaction(TransactionIn(nominal=5000, payment_status=PaymentStatus.HUTANG, customer_name="Ani"))
    return toko.list_debts()[0]


def test_receive_payment_reduces_balance(toko, ani):
    debt = toko.add_debt_transaction(ani.id, receive(2000))
    assert debt.total_debt == 3000
    assert debt.transactions[-1].type == DebtTransactionType.MENERIMA
    assert debt.transactions[-1].amount == 2000
    assert_reconciled(debt)


def test_pay_off_settles_in_one_payment(toko, ani):
    toko.add_debt_transaction(ani.id, receive(2000))

    debt = toko.pay_off_debt(ani.id)

    assert debt.total_debt == 0
    assert len(debt.transactions) == 3
    assert debt.transactions[-1].type == DebtTransactionType.MENERIMA
    assert debt.transactions[-1].amount == 3000
    assert debt.transactions[-1].catatan == debts.NOTE_PAY_OFF
    assert_reconciled(debt)


def test_pay_off_without_positive_balance_is_noop(toko, ani):
    toko.pay_off_debt(ani.id)
    settled = toko.get_debt(ani.id)

    again = toko.pay_off_debt(ani.id)

    assert again.total_debt == 0
    assert len(again.transactions) == len(settled.transactions)


def test_overpayment_becomes_store_credit(toko, ani):
    debt = toko.add_debt_transaction(ani.id, receive(7000, "Bayar lebih"))
    assert debt.total_debt == -2000
    assert_reconciled(debt)

    debt = toko.add_debt_transaction(ani.id, DebtTransactionIn(type=DebtTransactionType.MEMBERI, amount=4000, catatan="Bon baru"))
    assert debt.total_debt == 2000
    assert_reconciled(debt)


@pytest.mark.parametrize("requested, expected", [(2000, -3000), (5000, 0), (8000, 0)])
def test_refund_is_capped_at_credit(toko, requested, expected):
    credit = toko.add_debtor(DebtorIn(customer_name="Citra", initial_debt=-5000))

    debt = toko.refund_credit(credit.id, requested)

    assert debt.total_debt == expected
    assert debt.transactions[-1].type == DebtTransactionType.MEMBERI
    assert debt.transactions[-1].amount == min(requested, 5000)
    assert_reconciled(debt)


def test_refund_on_positive_balance_is_noop(toko, ani):
    debt = toko.refund_credit(ani.id, 1000)
    assert debt.total_debt == 5000
    assert len(debt.transactions) == 1


def test_refund_amount_must_be_positive(toko):
    credit = toko.add_debtor(DebtorIn(customer_name="Citra", initial_debt=-5000))
    with pytest.raises(ValidationError):
        toko.refund_credit(credit.id, 0)


@pytest.mark.parametrize("initial, seed_type", [(4000, DebtTransactionType.MEMBERI), (-4000, DebtTransactionType.MENERIMA)])
def test_manual_debtor_seed_matches_initial_amount(toko, initial, seed_type):
    debt = toko.add_debtor(DebtorIn(customer_name="Dewi", customer_phone="0812", initial_debt=initial))
    assert debt.total_debt == initial
    assert len(debt.transactions) == 1
    assert debt.transactions[0].type == seed_type
    assert debt.transactions[0].amount == 4000
    assert_reconciled(debt)


@pytest.mark.parametrize("name, initial", [("", 1000), ("Dewi", 0)])
def test_manual_debtor_needs_name_and_amount(toko, name, initial):
    with pytest.raises(ValidationError):
        toko.add_debtor(DebtorIn(customer_name=name, initial_debt=initial))
    assert toko.list_debts() == []


def test_debt_transaction_needs_amount_and_note(toko, ani):
    with pytest.raises(ValidationError):
        toko.add_debt_transaction(ani.id, receive(0))
    with pytest.raises(ValidationError):
        toko.add_debt_transaction(ani.id, receive(1000, catatan=" "))


def test_stale_debt_operations_are_noops(toko):
    assert toko.add_debt_transaction("404", receive(1000)) is None
    assert toko.pay_off_debt("404") is None
    assert toko.refund_credit("404", 1000) is None


def test_delete_debt(toko, ani):
    toko.delete_debt(ani.id)
    assert toko.list_debts() == []
    with pytest.raises(NotFoundError):
        toko.delete_debt(ani.id)


def test_balance_always_reconciles(toko, ani):
    steps = [receive(1000), receive(6000), DebtTransactionIn(type=DebtTransactionType.MEMBERI, amount=2500, catatan="x")]
    for step in steps:
        assert_reconciled(toko.add_debt_transaction(ani.id, step))
    toko.refund_credit(ani.id, 100)
    toko.pay_off_debt(ani.id)
    for debt in toko.list_debts():
        assert_reconciled(debt)


def test_match_customer_is_case_sensitive(toko, ani):
    all_debts = toko.list_debts()
    assert debts.match_customer(all_debts, "Ani").id == ani.id
    assert debts.match_customer(all_debts, "ani") is None


def test_reminder_link(toko):
    debt = toko.add_debtor(DebtorIn(
        customer_name="Ani", customer_phone="0812-3456", initial_debt=5000, due_date=datetime(2024, 6, 1),
    ))

    url = toko.debt_reminder(debt.id)

    assert url.startswith("https://wa.me/08123456?text=")
    assert "Halo%20Ani%2C" in url
    assert "01/06/2024" in url
    assert "Sistem%20Kelola%20Barang" in url


def test_reminder_needs_phone(toko, ani):
    with pytest.raises(ValidationError):
        toko.debt_reminder(ani.id)
