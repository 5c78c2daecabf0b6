"""Application state owner.

``TokoController`` is the only object that mutates the entity store. Views
and routes read through the ``list_*``/``get_*`` accessors, which hand out
deep copies, and change state only through the intent methods below. Each
intent runs under one lock: validation first, then every derived update,
then the persistence mirror is marked dirty. A flush therefore never sees a
half-applied action.
"""

import logging
import threading
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as SchemaError

import debts as debt_rules
import stock as stock_rules
from config import FLUSH_DELAY, LOG_TRANSACTION_STOCK
from errors import BackupError, NotFoundError, ValidationError
from persistence import KeyValueStorage, PersistenceMirror
from schemas import (
    Category,
    CategoryIn,
    Debt,
    DebtorIn,
    DebtTransactionIn,
    Product,
    ProductIn,
    Receipt,
    ReceiptIn,
    StockLog,
    Transaction,
    TransactionIn,
    TransactionType,
    PaymentStatus,
)
from store import DOCUMENT_NAMES, SETTINGS, EntityStore
from transactions import (
    build_item,
    check_payment,
    check_stock,
    make_transaction_number,
    quantities_by_product,
    resolve_nominal,
)
from utils import Clock

logger = logging.getLogger(__name__)


def _copies(entities):
    return [entity.model_copy(deep=True) for entity in entities]


class TokoController:
    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        clock: Optional[Clock] = None,
        flush_delay: float = FLUSH_DELAY,
        log_transaction_stock: bool = LOG_TRANSACTION_STOCK,
    ):
        self.store = EntityStore()
        self.clock = clock or Clock()
        self.log_transaction_stock = log_transaction_stock
        self._lock = threading.RLock()
        self.mirror = PersistenceMirror(storage, self.snapshot, flush_delay) if storage else None

    # -------- lifecycle ----------
    def load(self) -> List[str]:
        if not self.mirror:
            return []
        with self._lock:
            return self.mirror.load(self.store)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return self.store.snapshot()

    def flush(self) -> bool:
        return self.mirror.flush() if self.mirror else True

    def close(self):
        if self.mirror:
            self.mirror.close()

    def _changed(self):
        if self.mirror:
            self.mirror.mark_dirty()

    # -------- read accessors ----------
    def list_products(self) -> List[Product]:
        with self._lock:
            return _copies(self.store.products)

    def list_categories(self) -> List[Category]:
        with self._lock:
            return _copies(self.store.categories)

    def list_stock_logs(self) -> List[StockLog]:
        with self._lock:
            return _copies(self.store.stock_logs)

    def list_receipts(self) -> List[Receipt]:
        with self._lock:
            return _copies(self.store.receipts)

    def list_transactions(self) -> List[Transaction]:
        with self._lock:
            return _copies(self.store.transactions)

    def list_debts(self) -> List[Debt]:
        with self._lock:
            return _copies(self.store.debts)

    def get_product(self, product_id: str) -> Product:
        with self._lock:
            return self._product(product_id).model_copy(deep=True)

    def get_transaction(self, transaction_id: str) -> Transaction:
        with self._lock:
            return self._transaction(transaction_id).model_copy(deep=True)

    def get_debt(self, debt_id: str) -> Debt:
        with self._lock:
            return self._debt(debt_id).model_copy(deep=True)

    def _product(self, product_id: str) -> Product:
        product = self.store.get("products", product_id)
        if product is None:
            raise NotFoundError("Produk tidak ditemukan!")
        return product

    def _category(self, category_id: str) -> Category:
        category = self.store.get("categories", category_id)
        if category is None:
            raise NotFoundError("Kategori tidak ditemukan!")
        return category

    def _transaction(self, transaction_id: str) -> Transaction:
        transaction = self.store.get("transactions", transaction_id)
        if transaction is None:
            raise NotFoundError("Transaksi tidak ditemukan!")
        return transaction

    def _debt(self, debt_id: str) -> Debt:
        debt = self.store.get("debts", debt_id)
        if debt is None:
            raise NotFoundError("Hutang tidak ditemukan!")
        return debt

    # -------- stock log ----------
    def _log_stock(self, product: Product, movement, tanggal=None):
        if movement is None:
            return None
        now = self.clock.now()
        log = StockLog(
            id=self.clock.new_id(),
            product_id=product.id,
            product_name=product.name,
            type=movement.type,
            jumlah=movement.jumlah,
            reference=movement.reference,
            tanggal=tanggal or now,
            created_at=now,
        )
        self.store.add("stockLogs", log, newest_first=True)
        return log

    # -------- products ----------
    def _validate_product(self, data: ProductIn):
        if not data.name or not data.name.strip() or data.price <= 0:
            raise ValidationError("Mohon lengkapi nama produk dan harga jual!")
        if data.stock < 0:
            raise ValidationError("Stok tidak boleh negatif!")
        if data.cost is not None and data.cost < 0:
            raise ValidationError("Harga pokok tidak boleh negatif!")

    def _category_name(self, category_id: Optional[str]) -> str:
        if not category_id:
            return ""
        category = self.store.get("categories", category_id)
        if category is None:
            raise ValidationError("Kategori tidak ditemukan!")
        return category.name

    def add_product(self, data: ProductIn) -> Product:
        with self._lock:
            self._validate_product(data)
            category_name = self._category_name(data.category_id)
            now = self.clock.now()
            product = Product(
                id=self.clock.new_id(),
                name=data.name.strip(),
                category=category_name,
                category_id=data.category_id or None,
                stock=data.stock,
                price=data.price,
                cost=data.cost,
                min_stock=data.min_stock,
                barcode=data.barcode or None,
                created_at=now,
                updated_at=now,
            )
            self.store.add("products", product)
            self._log_stock(product, stock_rules.new_product_movement(product.stock))
            result = product.model_copy(deep=True)
        logger.info("Produk ditambahkan: %s (stok %d)", product.name, product.stock)
        self._changed()
        return result

    def update_product(self, product_id: str, data: ProductIn) -> Product:
        with self._lock:
            product = self._product(product_id)
            self._validate_product(data)
            category_name = self._category_name(data.category_id)
            movement = stock_rules.edit_movement(product.stock, data.stock)

            product.name = data.name.strip()
            product.category = category_name
            product.category_id = data.category_id or None
            product.stock = data.stock
            product.price = data.price
            product.cost = data.cost
            product.min_stock = data.min_stock
            product.barcode = data.barcode or None
            product.updated_at = self.clock.now()
            self._log_stock(product, movement)
            result = product.model_copy(deep=True)
        self._changed()
        return result

    def adjust_stock(self, product_id: str, adjustment: int) -> Optional[Product]:
        """Apply a +/- stock button. Unknown products are ignored."""
        with self._lock:
            product = self.store.get("products", product_id)
            if product is None:
                logger.warning("Penyesuaian stok diabaikan, produk %s tidak ada", product_id)
                return None
            new_stock, movement = stock_rules.adjust(product.stock, adjustment)
            if movement is None:
                return product.model_copy(deep=True)
            product.stock = new_stock
            product.updated_at = self.clock.now()
            self._log_stock(product, movement)
            result = product.model_copy(deep=True)
        self._changed()
        return result

    def delete_product(self, product_id: str) -> Product:
        # Menghapus produk TIDAK membuat stock log, walaupun stoknya masih ada
        with self._lock:
            product = self.store.remove("products", product_id)
            if product is None:
                raise NotFoundError("Produk tidak ditemukan!")
        logger.info("Produk dihapus: %s (sisa stok %d)", product.name, product.stock)
        self._changed()
        return product

    # -------- categories ----------
    def add_category(self, data: CategoryIn) -> Category:
        if not data.name or not data.name.strip():
            raise ValidationError("Mohon masukkan nama kategori!")
        with self._lock:
            now = self.clock.now()
            category = Category(
                id=self.clock.new_id(),
                name=data.name.strip(),
                description=data.description or None,
                created_at=now,
                updated_at=now,
            )
            self.store.add("categories", category)
            result = category.model_copy(deep=True)
        self._changed()
        return result

    def update_category(self, category_id: str, data: CategoryIn) -> Category:
        if not data.name or not data.name.strip():
            raise ValidationError("Mohon masukkan nama kategori!")
        with self._lock:
            category = self._category(category_id)
            now = self.clock.now()
            category.name = data.name.strip()
            category.description = data.description or None
            category.updated_at = now
            for product in self.store.products:
                if product.category_id == category_id:
                    product.category = category.name
                    product.updated_at = now
            result = category.model_copy(deep=True)
        self._changed()
        return result

    def delete_category(self, category_id: str) -> Category:
        """Remove a category; its products keep existing without one."""
        with self._lock:
            category = self.store.remove("categories", category_id)
            if category is None:
                raise NotFoundError("Kategori tidak ditemukan!")
            now = self.clock.now()
            for product in self.store.products:
                if product.category_id == category_id:
                    product.category_id = None
                    product.category = ""
                    product.updated_at = now
        self._changed()
        return category

    # -------- receipts ----------
    def add_receipt(self, data: ReceiptIn) -> Receipt:
        with self._lock:
            product = self._product(data.product_id)
            harga = product.price if data.harga is None else data.harga
            if data.jumlah <= 0 or harga < 0:
                raise ValidationError("Jumlah dan harga tidak valid!")
            receipt = Receipt(
                id=self.clock.new_id(),
                product_id=product.id,
                product_name=product.name,
                jumlah=data.jumlah,
                harga=harga,
                total=data.jumlah * harga,
                tanggal=self.clock.localize(data.tanggal) or self.clock.now(),
            )
            self.store.add("receipts", receipt, newest_first=True)
            result = receipt.model_copy(deep=True)
        self._changed()
        return result

    # -------- transactions ----------
    def _build_items(self, data: TransactionIn, products: Dict[str, Product]):
        items = []
        for item in data.items:
            product = None
            if item.product_id:
                product = products.get(item.product_id)
                if product is None:
                    raise ValidationError("Produk tidak ditemukan!")
            items.append(build_item(item, product, self.clock.new_id()))
        return items

    def _apply_stock_delta(self, product_id: str, delta: int, transaction: Transaction):
        product = self.store.get("products", product_id)
        if product is None:
            logger.warning("Stok produk %s tidak diubah, produk sudah dihapus", product_id)
            return
        if delta > 0:
            new_stock, movement = stock_rules.consume(product.stock, delta, transaction.transaction_number)
        else:
            new_stock, movement = stock_rules.restore(product.stock, -delta, transaction.transaction_number)
        product.stock = new_stock
        product.updated_at = self.clock.now()
        if self.log_transaction_stock:
            self._log_stock(product, movement, transaction.tanggal)

    def _transaction_fields(self, data: TransactionIn, products: Dict[str, Product]):
        items = self._build_items(data, products)
        nominal, total_cost, profit = resolve_nominal(data, items)
        check_payment(data.payment_status, nominal, data.paid_amount)
        return dict(
            type=data.type,
            items=items,
            nominal=nominal,
            total_cost=total_cost,
            profit=profit,
            catatan=data.catatan or "",
            kategori=data.kategori or None,
            customer_name=(data.customer_name or "").strip() or None,
            customer_phone=data.customer_phone or None,
            payment_status=data.payment_status,
            paid_amount=data.paid_amount if data.payment_status == PaymentStatus.SEBAGIAN else None,
            due_date=self.clock.localize(data.due_date),
        )

    def record_transaction(self, data: TransactionIn) -> Transaction:
        with self._lock:
            products = {p.id: p for p in self.store.products}
            fields = self._transaction_fields(data, products)
            required = {}
            if data.type == TransactionType.PEMASUKAN:
                required = quantities_by_product(fields["items"])
                check_stock(required, products)

            now = self.clock.now()
            transaction = Transaction(
                id=self.clock.new_id(),
                transaction_number=make_transaction_number(self.store.transactions, now),
                tanggal=self.clock.localize(data.tanggal) or now,
                created_at=now,
                **fields,
            )
            self.store.add("transactions", transaction, newest_first=True)
            for product_id, quantity in required.items():
                self._apply_stock_delta(product_id, quantity, transaction)
            derived = debt_rules.apply_transaction(self.store.debts, transaction, self.clock)
            if derived and derived[1]:
                self.store.add("debts", derived[0], newest_first=True)
            self.store.draft = None
            result = transaction.model_copy(deep=True)
        logger.info(
            "Transaksi %s disimpan: %s %d (%s)",
            transaction.transaction_number,
            transaction.type.value,
            transaction.nominal,
            transaction.payment_status.value,
        )
        self._changed()
        return result

    def update_transaction(self, transaction_id: str, data: TransactionIn) -> Transaction:
        """Edit a transaction; stock follows the change in sold quantities.

        Debts derived when the transaction was first recorded are left as is.
        """
        with self._lock:
            old = self._transaction(transaction_id)
            products = {p.id: p for p in self.store.products}
            fields = self._transaction_fields(data, products)

            old_qty = quantities_by_product(old.items) if old.type == TransactionType.PEMASUKAN else {}
            new_qty = quantities_by_product(fields["items"]) if data.type == TransactionType.PEMASUKAN else {}
            deltas = {}
            for product_id in list(old_qty) + [pid for pid in new_qty if pid not in old_qty]:
                delta = new_qty.get(product_id, 0) - old_qty.get(product_id, 0)
                if delta:
                    deltas[product_id] = delta
            check_stock({pid: d for pid, d in deltas.items() if d > 0}, products)

            updated = Transaction(
                id=old.id,
                transaction_number=old.transaction_number,
                tanggal=self.clock.localize(data.tanggal) or old.tanggal,
                created_at=old.created_at,
                updated_at=self.clock.now(),
                **fields,
            )
            self.store.replace("transactions", updated)
            for product_id, delta in deltas.items():
                self._apply_stock_delta(product_id, delta, updated)
            result = updated.model_copy(deep=True)
        self._changed()
        return result

    def delete_transaction(self, transaction_id: str) -> Transaction:
        with self._lock:
            transaction = self.store.remove("transactions", transaction_id)
            if transaction is None:
                raise NotFoundError("Transaksi tidak ditemukan!")
        logger.info("Transaksi %s dihapus", transaction.transaction_number)
        self._changed()
        return transaction

    # -------- draft ----------
    def get_draft(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            return dict(self.store.draft) if self.store.draft is not None else None

    def save_draft(self, draft: Dict[str, Any]):
        with self._lock:
            self.store.draft = dict(draft)
        self._changed()

    def clear_draft(self):
        with self._lock:
            self.store.draft = None
        self._changed()

    # -------- debts ----------
    def add_debtor(self, data: DebtorIn) -> Debt:
        with self._lock:
            debt = debt_rules.new_debtor(
                data.customer_name.strip(),
                data.initial_debt,
                self.clock,
                customer_phone=data.customer_phone,
                due_date=self.clock.localize(data.due_date),
            )
            self.store.add("debts", debt, newest_first=True)
            result = debt.model_copy(deep=True)
        self._changed()
        return result

    def add_debt_transaction(self, debt_id: str, data: DebtTransactionIn) -> Optional[Debt]:
        if data.amount <= 0 or not data.catatan.strip():
            raise ValidationError("Mohon lengkapi jumlah dan catatan!")
        with self._lock:
            debt = self.store.get("debts", debt_id)
            if debt is None:
                logger.warning("Transaksi hutang diabaikan, hutang %s tidak ada", debt_id)
                return None
            debt_rules.append_transaction(debt, data.type, data.amount, data.catatan.strip(), self.clock)
            result = debt.model_copy(deep=True)
        self._changed()
        return result

    def pay_off_debt(self, debt_id: str) -> Optional[Debt]:
        with self._lock:
            debt = self.store.get("debts", debt_id)
            if debt is None:
                logger.warning("Pelunasan diabaikan, hutang %s tidak ada", debt_id)
                return None
            entry = debt_rules.pay_off(debt, self.clock)
            result = debt.model_copy(deep=True)
        if entry is None:
            logger.info("Tidak ada hutang yang perlu dilunasi untuk %s", debt.customer_name)
        else:
            logger.info("Hutang %s dilunasi: %d", debt.customer_name, entry.amount)
            self._changed()
        return result

    def refund_credit(self, debt_id: str, amount: int) -> Optional[Debt]:
        with self._lock:
            debt = self.store.get("debts", debt_id)
            if debt is None:
                logger.warning("Refund diabaikan, hutang %s tidak ada", debt_id)
                return None
            entry = debt_rules.refund(debt, amount, self.clock)
            result = debt.model_copy(deep=True)
        if entry is not None:
            logger.info("Refund kredit %s: %d", debt.customer_name, entry.amount)
            self._changed()
        return result

    def delete_debt(self, debt_id: str) -> Debt:
        with self._lock:
            debt = self.store.remove("debts", debt_id)
            if debt is None:
                raise NotFoundError("Hutang tidak ditemukan!")
        self._changed()
        return debt

    def debt_reminder(self, debt_id: str) -> str:
        with self._lock:
            debt = self._debt(debt_id)
            return debt_rules.reminder_link(debt, self.store.store_settings.name)

    # -------- settings ----------
    def get_settings(self, name: str):
        if name not in SETTINGS:
            raise NotFoundError("Pengaturan tidak ditemukan!")
        with self._lock:
            return getattr(self.store, SETTINGS[name][0]).model_copy(deep=True)

    def update_settings(self, name: str, changes: Dict[str, Any]):
        if name not in SETTINGS:
            raise NotFoundError("Pengaturan tidak ditemukan!")
        attr, model = SETTINGS[name]
        with self._lock:
            merged = {**getattr(self.store, attr).to_document(), **changes}
            try:
                settings = model.model_validate(merged)
            except SchemaError as e:
                raise ValidationError(f"Pengaturan tidak valid: {e.errors()[0]['msg']}")
            setattr(self.store, attr, settings)
            result = settings.model_copy(deep=True)
        self._changed()
        return result

    def reset_settings(self):
        with self._lock:
            self.store.reset_settings()
        self._changed()

    def reset_data(self):
        with self._lock:
            self.store.clear_data()
        logger.warning("Semua data dihapus")
        self._changed()

    # -------- backup ----------
    def replace_documents(self, documents: Dict[str, Any]):
        """Replace the named documents wholesale.

        Every document is validated before anything is applied; a single bad
        document rejects the whole set. The result is written to storage
        immediately.
        """
        parsed = {}
        for name, payload in documents.items():
            if name not in DOCUMENT_NAMES:
                continue
            try:
                parsed[name] = self.store.parse(name, payload)
            except (SchemaError, TypeError, ValueError):
                logger.exception("Dokumen %s pada backup tidak valid", name)
                raise BackupError(f"Data {name} pada file backup tidak valid!")
        with self._lock:
            for name, value in parsed.items():
                self.store.apply(name, value)
        logger.info("Backup diimpor: %s", ", ".join(parsed) or "-")
        if self.mirror:
            self.mirror.flush()
        return list(parsed)
