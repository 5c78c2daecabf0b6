import json
from datetime import datetime

from sqlalchemy.exc import OperationalError

from controller import TokoController
from models import StorageEntry
from persistence import PersistenceMirror
from schemas import DebtorIn, PaymentStatus, ProductIn, TransactionIn
from store import DOCUMENT_NAMES


class CountingStorage:
    def __init__(self):
        self.documents = {}
        self.writes = 0

    def set_items(self, documents):
        self.writes += 1
        self.documents.update(documents)

    def get_item(self, name):
        return self.documents.get(name)


class BrokenStorage(CountingStorage):
    def set_items(self, documents):
        raise OperationalError("INSERT", {}, Exception("disk penuh"))


def populate(toko):
    product = toko.add_product(ProductIn(name="Kopi", stock=10, price=5000, cost=3000))
    toko.record_transaction(TransactionIn(nominal=5000, payment_status=PaymentStatus.HUTANG, customer_name="Ani"))
    toko.add_debtor(DebtorIn(customer_name="Citra", initial_debt=-2000))
    toko.save_draft({"customerName": "Budi"})
    return product


def test_flush_writes_namespaced_documents(persisted_toko, storage, session_factory):
    populate(persisted_toko)

    assert persisted_toko.flush()

    with session_factory() as db:
        keys = {entry.key for entry in db.query(StorageEntry).all()}
    assert keys == {f"inventory_{name}" for name in DOCUMENT_NAMES}
    products = json.loads(storage.get_item("products"))
    assert products[0]["name"] == "Kopi"
    assert products[0]["minStock"] == 10
    assert isinstance(products[0]["createdAt"], str)


def test_reload_restores_same_state(persisted_toko, storage, clock):
    populate(persisted_toko)
    persisted_toko.flush()

    fresh = TokoController(storage=storage, clock=clock, flush_delay=60)
    assert fresh.load() == []

    assert fresh.snapshot() == persisted_toko.snapshot()
    assert isinstance(fresh.list_debts()[0].created_at, datetime)
    assert fresh.get_draft() == {"customerName": "Budi"}


def test_corrupt_document_does_not_block_other_collections(persisted_toko, storage, clock):
    populate(persisted_toko)
    persisted_toko.flush()
    storage.set_item("debts", "{rusak")

    fresh = TokoController(storage=storage, clock=clock, flush_delay=60)

    assert fresh.load() == ["debts"]
    assert fresh.list_debts() == []
    assert len(fresh.list_products()) == 1


def test_bursts_are_coalesced_into_one_write(clock):
    storage = CountingStorage()
    toko = TokoController(storage=storage, clock=clock, flush_delay=60)

    populate(toko)

    assert storage.writes == 0
    assert toko.mirror.pending
    toko.flush()
    assert storage.writes == 1
    assert not toko.mirror.pending
    assert not toko.mirror.dirty


def test_zero_delay_writes_immediately(clock):
    storage = CountingStorage()
    toko = TokoController(storage=storage, clock=clock, flush_delay=0)
    toko.add_product(ProductIn(name="Kopi", stock=1, price=5000))
    assert storage.writes == 1
    assert json.loads(storage.documents["products"])[0]["name"] == "Kopi"


def test_write_failure_keeps_memory_state(clock):
    toko = TokoController(storage=BrokenStorage(), clock=clock, flush_delay=60)
    product = populate(toko)

    assert toko.flush() is False

    assert toko.mirror.dirty
    assert toko.get_product(product.id).stock == 10
    assert len(toko.list_debts()) == 2
    # percobaan ulang sudah dijadwalkan
    assert toko.mirror.pending

    toko.close()
    assert not toko.mirror.pending
    assert toko.mirror.dirty


def test_mirror_uses_snapshot_callback():
    storage = CountingStorage()
    mirror = PersistenceMirror(storage, lambda: {"products": [], "draftTransaction": None}, delay=60)
    mirror.mark_dirty()
    mirror.close()
    assert storage.documents == {"products": "[]", "draftTransaction": "null"}


def test_stored_debt_balance_is_recomputed_on_load(storage, clock):
    storage.set_item("debts", json.dumps([{
        "id": "d1", "customerName": "Ani", "totalDebt": 999,
        "transactions": [
            {"id": "a", "debtId": "d1", "type": "memberi", "amount": 5000, "tanggal": "2024-05-01T08:00:00+07:00", "createdAt": "2024-05-01T08:00:00+07:00"},
            {"id": "b", "debtId": "d1", "type": "menerima", "amount": 1500, "tanggal": "2024-05-02T08:00:00+07:00", "createdAt": "2024-05-02T08:00:00+07:00"},
        ],
        "createdAt": "2024-05-01T08:00:00+07:00", "updatedAt": "2024-05-02T08:00:00+07:00",
    }]))

    toko = TokoController(storage=storage, clock=clock, flush_delay=60)

    assert toko.load() == []
    assert toko.list_debts()[0].total_debt == 3500
