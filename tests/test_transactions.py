import pytest

from controller import TokoController
from errors import NotFoundError, ValidationError
from schemas import (
    Discount,
    DiscountType,
    PaymentStatus,
    ProductIn,
    StockLogType,
    TransactionIn,
    TransactionItemIn,
    TransactionType,
)


@pytest.fixture
def kopi(toko):
    return toko.add_product(ProductIn(name="Kopi", stock=10, price=5000, cost=3000))


def sale(product, quantity, **kwargs):
    return TransactionIn(items=[TransactionItemIn(product_id=product.id, quantity=quantity)], **kwargs)


def test_sale_derives_totals_and_consumes_stock(toko, kopi):
    transaction = toko.record_transaction(sale(kopi, 2, catatan="Jual kopi"))

    assert transaction.transaction_number == "TRX-20240510-0001"
    assert transaction.nominal == 10000
    assert transaction.total_cost == 6000
    assert transaction.profit == 4000
    assert toko.get_product(kopi.id).stock == 8

    latest = toko.list_stock_logs()[0]
    assert latest.type == StockLogType.KELUAR
    assert latest.jumlah == 2
    assert latest.reference == "Transaction TRX-20240510-0001"


def test_totals_follow_items(toko, kopi):
    teh = toko.add_product(ProductIn(name="Teh", stock=5, price=3000))
    data = TransactionIn(items=[
        TransactionItemIn(product_id=kopi.id, quantity=2, discount=Discount(type=DiscountType.PERCENTAGE, value=10)),
        TransactionItemIn(product_id=teh.id, quantity=1, discount=Discount(type=DiscountType.AMOUNT, value=500)),
    ])

    transaction = toko.record_transaction(data)

    assert [item.total_price for item in transaction.items] == [9000, 2500]
    # Teh tanpa harga pokok: 70% dari harga jual
    assert [item.total_cost for item in transaction.items] == [6000, 2100]
    assert transaction.nominal == sum(item.total_price for item in transaction.items)
    assert transaction.profit == transaction.nominal - transaction.total_cost


def test_transaction_numbers_increase(toko, kopi):
    first = toko.record_transaction(sale(kopi, 1))
    second = toko.record_transaction(sale(kopi, 1))
    assert first.transaction_number.endswith("-0001")
    assert second.transaction_number.endswith("-0002")
    assert [t.id for t in toko.list_transactions()] == [second.id, first.id]


def test_insufficient_stock_rejects_whole_action(toko, kopi):
    data = TransactionIn(items=[
        TransactionItemIn(product_id=kopi.id, quantity=6),
        TransactionItemIn(product_id=kopi.id, quantity=6),
    ], payment_status=PaymentStatus.HUTANG, customer_name="Ani")

    with pytest.raises(ValidationError):
        toko.record_transaction(data)

    assert toko.list_transactions() == []
    assert toko.list_debts() == []
    assert toko.get_product(kopi.id).stock == 10
    assert len(toko.list_stock_logs()) == 1


def test_unknown_product_is_rejected(toko):
    with pytest.raises(ValidationError):
        toko.record_transaction(TransactionIn(items=[TransactionItemIn(product_id="404", quantity=1)]))


def test_income_without_items_or_nominal_is_rejected(toko):
    with pytest.raises(ValidationError):
        toko.record_transaction(TransactionIn())


def test_free_item_without_product(toko):
    transaction = toko.record_transaction(TransactionIn(items=[
        TransactionItemIn(product_name="Jasa antar", quantity=1, unit_price=7000),
    ]))
    assert transaction.nominal == 7000
    assert transaction.items[0].product_id is None


def test_transaction_stock_logs_can_be_disabled(clock):
    toko = TokoController(clock=clock, log_transaction_stock=False)
    kopi = toko.add_product(ProductIn(name="Kopi", stock=10, price=5000))

    toko.record_transaction(sale(kopi, 3))

    assert toko.get_product(kopi.id).stock == 7
    assert len(toko.list_stock_logs()) == 1


def test_expense_does_not_touch_stock(toko, kopi):
    toko.record_transaction(TransactionIn(type=TransactionType.PENGELUARAN, nominal=20000, catatan="Listrik"))
    assert toko.get_product(kopi.id).stock == 10


def test_debt_sale_creates_debt(toko):
    toko.record_transaction(TransactionIn(
        nominal=5000, payment_status=PaymentStatus.HUTANG, customer_name="Ani", catatan="Bon warung",
    ))

    debts = toko.list_debts()
    assert len(debts) == 1
    assert debts[0].customer_name == "Ani"
    assert debts[0].total_debt == 5000
    assert len(debts[0].transactions) == 1
    entry = debts[0].transactions[0]
    assert entry.type.value == "memberi"
    assert entry.amount == 5000
    assert entry.catatan == "Bon warung"
    assert entry.debt_id == debts[0].id


def test_debts_match_customer_name_exactly(toko):
    for name, nominal in (("Ani", 5000), ("Ani", 3000), ("ani", 1000)):
        toko.record_transaction(TransactionIn(nominal=nominal, payment_status=PaymentStatus.HUTANG, customer_name=name))

    by_name = {d.customer_name: d for d in toko.list_debts()}
    assert by_name["Ani"].total_debt == 8000
    assert len(by_name["Ani"].transactions) == 2
    assert by_name["ani"].total_debt == 1000


def test_partial_payment_records_outstanding_amount(toko, kopi):
    toko.record_transaction(sale(kopi, 2, payment_status=PaymentStatus.SEBAGIAN, paid_amount=4000, customer_name="Budi"))
    assert toko.list_debts()[0].total_debt == 6000


@pytest.mark.parametrize("paid", [None, 0, 10000, 12000])
def test_partial_payment_needs_valid_paid_amount(toko, kopi, paid):
    with pytest.raises(ValidationError):
        toko.record_transaction(sale(kopi, 2, payment_status=PaymentStatus.SEBAGIAN, paid_amount=paid, customer_name="Budi"))
    assert toko.get_product(kopi.id).stock == 10


def test_paid_sale_ignores_existing_debt(toko):
    toko.record_transaction(TransactionIn(nominal=5000, payment_status=PaymentStatus.HUTANG, customer_name="Ani"))
    toko.record_transaction(TransactionIn(nominal=9000, payment_status=PaymentStatus.LUNAS, customer_name="Ani"))
    assert toko.list_debts()[0].total_debt == 5000


def test_debt_sale_without_customer_records_only_transaction(toko):
    toko.record_transaction(TransactionIn(nominal=5000, payment_status=PaymentStatus.HUTANG))
    assert len(toko.list_transactions()) == 1
    assert toko.list_debts() == []


def test_recording_clears_draft(toko, kopi):
    toko.save_draft({"customerName": "Ani", "items": []})
    toko.record_transaction(sale(kopi, 1))
    assert toko.get_draft() is None


def test_edit_reconciles_stock_by_quantity_change(toko, kopi):
    original = toko.record_transaction(sale(kopi, 2))

    edited = toko.update_transaction(original.id, sale(kopi, 5))
    assert toko.get_product(kopi.id).stock == 5
    assert edited.nominal == 25000
    assert edited.transaction_number == original.transaction_number
    assert edited.created_at == original.created_at
    assert edited.updated_at is not None

    toko.update_transaction(original.id, sale(kopi, 1))
    assert toko.get_product(kopi.id).stock == 9
    assert toko.list_stock_logs()[0].type == StockLogType.MASUK


def test_edit_beyond_stock_is_rejected(toko, kopi):
    original = toko.record_transaction(sale(kopi, 2))
    with pytest.raises(ValidationError):
        toko.update_transaction(original.id, sale(kopi, 11))
    assert toko.get_transaction(original.id).nominal == 10000
    assert toko.get_product(kopi.id).stock == 8


def test_delete_transaction_keeps_stock(toko, kopi):
    transaction = toko.record_transaction(sale(kopi, 2))
    toko.delete_transaction(transaction.id)
    assert toko.list_transactions() == []
    assert toko.get_product(kopi.id).stock == 8
    with pytest.raises(NotFoundError):
        toko.delete_transaction(transaction.id)
