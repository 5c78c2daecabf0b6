"""
Entity schemas

Pydantic models for every collection kept by the store. Attributes are
snake_case in Python and camelCase in the stored JSON documents, so a
document written by ``to_document`` can be read back by ``model_validate``.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from config import TIMEZONE
from utils import resolve_timezone

STORE_TZ = resolve_timezone(TIMEZONE)

logger = logging.getLogger(__name__)


class StockLogType(str, Enum):
    MASUK = "masuk"
    KELUAR = "keluar"


class TransactionType(str, Enum):
    PEMASUKAN = "pemasukan"
    PENGELUARAN = "pengeluaran"


class PaymentStatus(str, Enum):
    LUNAS = "lunas"
    HUTANG = "hutang"
    SEBAGIAN = "sebagian"


class DebtTransactionType(str, Enum):
    MEMBERI = "memberi"
    MENERIMA = "menerima"


class DiscountType(str, Enum):
    NONE = "none"
    PERCENTAGE = "percentage"
    AMOUNT = "amount"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @field_validator("*")
    @classmethod
    def localize_datetimes(cls, value):
        # tanggal tanpa offset dianggap waktu lokal toko
        if isinstance(value, datetime) and value.tzinfo is None:
            return STORE_TZ.localize(value)
        return value


# -----------------------------
# Inventory
# -----------------------------

class Category(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class Product(CamelModel):
    id: str
    name: str
    category: str = ""  # snapshot nama kategori
    category_id: Optional[str] = None
    stock: int = Field(0, ge=0)
    price: int = Field(0, ge=0)  # harga jual
    cost: Optional[int] = Field(None, ge=0)  # harga pokok
    min_stock: int = 10
    barcode: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class StockLog(CamelModel):
    id: str
    product_id: str
    product_name: str
    type: StockLogType
    jumlah: int = Field(..., gt=0)
    reference: str
    tanggal: datetime
    created_at: datetime


class Receipt(CamelModel):
    id: str
    product_id: str
    product_name: str
    jumlah: int
    harga: int
    total: int
    tanggal: datetime


# -----------------------------
# Finance
# -----------------------------

class Discount(CamelModel):
    type: DiscountType = DiscountType.NONE
    value: float = 0


class TransactionItem(CamelModel):
    id: str
    product_id: Optional[str] = None
    product_name: str
    category_id: Optional[str] = None
    quantity: int = Field(..., gt=0)
    unit_price: int
    unit_cost: int = 0
    discount: Discount = Field(default_factory=Discount)
    total_price: int
    total_cost: int = 0


class Transaction(CamelModel):
    id: str
    transaction_number: str
    type: TransactionType
    items: List[TransactionItem] = Field(default_factory=list)
    nominal: int = Field(0, ge=0)
    total_cost: int = Field(0, ge=0)
    profit: int = 0
    catatan: str = ""
    kategori: Optional[str] = None
    tanggal: datetime
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    payment_status: PaymentStatus = PaymentStatus.LUNAS
    paid_amount: Optional[int] = None
    due_date: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class DebtTransaction(CamelModel):
    id: str
    debt_id: str
    type: DebtTransactionType
    amount: int = Field(..., gt=0)
    catatan: str = ""
    tanggal: datetime
    created_at: datetime


class Debt(CamelModel):
    id: str
    customer_name: str
    customer_phone: Optional[str] = None
    total_debt: int = 0  # positif: pelanggan berhutang, negatif: toko berhutang
    due_date: Optional[datetime] = None
    transactions: List[DebtTransaction] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def reconcile_total(self):
        """``total_debt`` always equals the signed sum of the ledger."""
        total = sum(t.amount if t.type == DebtTransactionType.MEMBERI else -t.amount for t in self.transactions)
        if self.total_debt != total:
            logger.warning("Saldo hutang %s (%d) tidak cocok dengan riwayat, dihitung ulang: %d", self.customer_name, self.total_debt, total)
            self.total_debt = total
        return self


# -----------------------------
# Settings blobs
# -----------------------------

class StoreSettings(CamelModel):
    name: str = "Sistem Kelola Barang"
    address: str = ""
    phone: str = ""
    email: str = ""
    description: str = ""
    currency: str = "IDR"
    tax_rate: float = 0
    receipt_footer: str = "Terima kasih atas kunjungan Anda!"


class NotificationSettings(CamelModel):
    low_stock_alert: bool = True
    daily_report: bool = False
    debt_reminder: bool = True
    new_transaction: bool = False
    low_stock_threshold: int = 10
    email_notifications: bool = True
    sms_notifications: bool = False
    sound_alerts: bool = True


class SystemSettings(CamelModel):
    auto_backup: bool = True
    require_pin_for_delete: bool = False
    activity_log: bool = True
    dark_mode: bool = False
    language: str = "id"
    time_zone: str = "Asia/Jakarta"
    backup_frequency: str = "daily"
    max_transaction_history: int = 10000
    enable_api_access: bool = False


class PerformanceSettings(CamelModel):
    cache_enabled: bool = True
    preload_data: bool = True
    compression_enabled: bool = True
    max_cache_size: int = 50
    auto_optimize: bool = True


# -----------------------------
# Request bodies
# -----------------------------

class ProductIn(CamelModel):
    name: str
    category_id: Optional[str] = None
    stock: int = 0
    price: int
    cost: Optional[int] = None
    min_stock: int = 10
    barcode: Optional[str] = None


class StockAdjustIn(CamelModel):
    adjustment: int


class CategoryIn(CamelModel):
    name: str
    description: Optional[str] = None


class ReceiptIn(CamelModel):
    product_id: str
    jumlah: int
    harga: Optional[int] = None
    tanggal: Optional[datetime] = None


class TransactionItemIn(CamelModel):
    product_id: Optional[str] = None
    product_name: Optional[str] = None
    quantity: int = 1
    unit_price: Optional[int] = None
    unit_cost: Optional[int] = None
    discount: Discount = Field(default_factory=Discount)


class TransactionIn(CamelModel):
    type: TransactionType = TransactionType.PEMASUKAN
    items: List[TransactionItemIn] = Field(default_factory=list)
    nominal: Optional[int] = None  # hanya untuk transaksi tanpa item
    catatan: str = ""
    kategori: Optional[str] = None
    tanggal: Optional[datetime] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    payment_status: PaymentStatus = PaymentStatus.LUNAS
    paid_amount: Optional[int] = None
    due_date: Optional[datetime] = None


class DebtorIn(CamelModel):
    customer_name: str
    customer_phone: Optional[str] = None
    initial_debt: int
    due_date: Optional[datetime] = None


class DebtTransactionIn(CamelModel):
    type: DebtTransactionType
    amount: int
    catatan: str = ""


class RefundIn(CamelModel):
    amount: int
