import logging
import threading
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, Response, StreamingResponse

import backup
import reports
from config import LOG_LEVEL
from controller import TokoController
from db import Base, SessionLocal, engine
from errors import TokoError
from persistence import KeyValueStorage
from schemas import (
    CategoryIn,
    DebtorIn,
    DebtTransactionIn,
    ProductIn,
    ReceiptIn,
    RefundIn,
    StockAdjustIn,
    TransactionIn,
)
from utils import format_idr

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

_controller: Optional[TokoController] = None
_controller_lock = threading.Lock()


def get_controller() -> TokoController:
    global _controller
    with _controller_lock:
        if _controller is None:
            Base.metadata.create_all(bind=engine)
            _controller = TokoController(storage=KeyValueStorage(SessionLocal))
            failed = _controller.load()
            if failed:
                logger.warning("Sebagian data gagal dimuat: %s", ", ".join(failed))
            logger.info("Data toko dimuat")
        return _controller


@asynccontextmanager
async def lifespan(app: FastAPI):
    get_controller()
    yield
    if _controller is not None:
        _controller.close()
        logger.info("Data toko disimpan sebelum berhenti")


app = FastAPI(title="Toko Kelola API", lifespan=lifespan)


@app.exception_handler(TokoError)
def toko_error_handler(request: Request, exc: TokoError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def _doc(entity):
    return entity.to_document()


def _docs(entities):
    return [entity.to_document() for entity in entities]


def _not_found(result, message):
    if result is None:
        raise HTTPException(status_code=404, detail=message)
    return result


@app.get("/")
def home():
    return {"message": "Toko Kelola API berjalan"}


# -------- PRODUCTS ----------
@app.get("/api/products")
def list_products(toko: TokoController = Depends(get_controller)):
    return _docs(toko.list_products())


@app.post("/api/products", status_code=201)
def add_product(data: ProductIn, toko: TokoController = Depends(get_controller)):
    return _doc(toko.add_product(data))


@app.get("/api/products/{pid}")
def get_product(pid: str, toko: TokoController = Depends(get_controller)):
    return _doc(toko.get_product(pid))


@app.put("/api/products/{pid}")
def update_product(pid: str, data: ProductIn, toko: TokoController = Depends(get_controller)):
    return _doc(toko.update_product(pid, data))


@app.post("/api/products/{pid}/adjust")
def adjust_stock(pid: str, data: StockAdjustIn, toko: TokoController = Depends(get_controller)):
    product = _not_found(toko.adjust_stock(pid, data.adjustment), "Produk tidak ditemukan!")
    return _doc(product)


@app.delete("/api/products/{pid}")
def delete_product(pid: str, toko: TokoController = Depends(get_controller)):
    product = toko.delete_product(pid)
    return {"success": True, "message": f"Produk {product.name} dihapus"}


# -------- CATEGORIES ----------
@app.get("/api/categories")
def list_categories(toko: TokoController = Depends(get_controller)):
    return _docs(toko.list_categories())


@app.post("/api/categories", status_code=201)
def add_category(data: CategoryIn, toko: TokoController = Depends(get_controller)):
    return _doc(toko.add_category(data))


@app.put("/api/categories/{cid}")
def update_category(cid: str, data: CategoryIn, toko: TokoController = Depends(get_controller)):
    return _doc(toko.update_category(cid, data))


@app.delete("/api/categories/{cid}")
def delete_category(cid: str, toko: TokoController = Depends(get_controller)):
    category = toko.delete_category(cid)
    return {"success": True, "message": f"Kategori {category.name} dihapus"}


# -------- STOCK LOGS & RECEIPTS ----------
@app.get("/api/stock-logs")
def list_stock_logs(product_id: Optional[str] = None, toko: TokoController = Depends(get_controller)):
    logs = toko.list_stock_logs()
    if product_id:
        logs = [log for log in logs if log.product_id == product_id]
    return _docs(logs)


@app.get("/api/receipts")
def list_receipts(toko: TokoController = Depends(get_controller)):
    return _docs(toko.list_receipts())


@app.post("/api/receipts", status_code=201)
def add_receipt(data: ReceiptIn, toko: TokoController = Depends(get_controller)):
    return _doc(toko.add_receipt(data))


# -------- TRANSACTIONS ----------
@app.get("/api/transactions")
def list_transactions(q: Optional[str] = None, toko: TokoController = Depends(get_controller)):
    transactions = toko.list_transactions()
    if q:
        q = q.lower()
        transactions = [
            t for t in transactions
            if q in t.catatan.lower()
            or q in (t.customer_name or "").lower()
            or q in t.transaction_number.lower()
        ]
    return _docs(transactions)


@app.post("/api/transactions", status_code=201)
def record_transaction(data: TransactionIn, toko: TokoController = Depends(get_controller)):
    transaction = toko.record_transaction(data)
    label = "Pemasukan" if transaction.type.value == "pemasukan" else "Pengeluaran"
    return {
        "message": f"Transaksi berhasil disimpan! {label} sebesar Rp {format_idr(transaction.nominal)}",
        "transaction": _doc(transaction),
    }


@app.get("/api/transactions/{tid}")
def get_transaction(tid: str, toko: TokoController = Depends(get_controller)):
    return _doc(toko.get_transaction(tid))


@app.put("/api/transactions/{tid}")
def update_transaction(tid: str, data: TransactionIn, toko: TokoController = Depends(get_controller)):
    return _doc(toko.update_transaction(tid, data))


@app.delete("/api/transactions/{tid}")
def delete_transaction(tid: str, toko: TokoController = Depends(get_controller)):
    transaction = toko.delete_transaction(tid)
    return {"success": True, "message": f"Transaksi {transaction.transaction_number} dihapus"}


# -------- DRAFT ----------
@app.get("/api/draft")
def get_draft(toko: TokoController = Depends(get_controller)):
    return {"draft": toko.get_draft()}


@app.put("/api/draft")
def save_draft(draft: Dict[str, Any] = Body(...), toko: TokoController = Depends(get_controller)):
    toko.save_draft(draft)
    return {"draft": toko.get_draft()}


@app.delete("/api/draft")
def clear_draft(toko: TokoController = Depends(get_controller)):
    toko.clear_draft()
    return {"draft": None}


# -------- DEBTS ----------
@app.get("/api/debts")
def list_debts(toko: TokoController = Depends(get_controller)):
    return _docs(toko.list_debts())


@app.post("/api/debts", status_code=201)
def add_debtor(data: DebtorIn, toko: TokoController = Depends(get_controller)):
    return _doc(toko.add_debtor(data))


@app.get("/api/debts/{did}")
def get_debt(did: str, toko: TokoController = Depends(get_controller)):
    return _doc(toko.get_debt(did))


@app.delete("/api/debts/{did}")
def delete_debt(did: str, toko: TokoController = Depends(get_controller)):
    debt = toko.delete_debt(did)
    return {"success": True, "message": f"Hutang {debt.customer_name} dihapus"}


@app.post("/api/debts/{did}/transactions")
def add_debt_transaction(did: str, data: DebtTransactionIn, toko: TokoController = Depends(get_controller)):
    debt = _not_found(toko.add_debt_transaction(did, data), "Hutang tidak ditemukan!")
    return _doc(debt)


@app.post("/api/debts/{did}/pay-off")
def pay_off_debt(did: str, toko: TokoController = Depends(get_controller)):
    debt = _not_found(toko.pay_off_debt(did), "Hutang tidak ditemukan!")
    return _doc(debt)


@app.post("/api/debts/{did}/refund")
def refund_credit(did: str, data: RefundIn, toko: TokoController = Depends(get_controller)):
    debt = _not_found(toko.refund_credit(did, data.amount), "Hutang tidak ditemukan!")
    return _doc(debt)


@app.get("/api/debts/{did}/reminder")
def debt_reminder(did: str, toko: TokoController = Depends(get_controller)):
    return {"url": toko.debt_reminder(did)}


# -------- REPORTS ----------
def _bounds(toko: TokoController, period: str, start: Optional[datetime], end: Optional[datetime]):
    return reports.period_bounds(period, toko.clock.now(), toko.clock.localize(start), toko.clock.localize(end))


@app.get("/api/reports/financial")
def financial_report(
    period: str = "bulan",
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    toko: TokoController = Depends(get_controller),
):
    bounds = _bounds(toko, period, start, end)
    transactions = reports.filter_by_period(toko.list_transactions(), bounds)
    receipts = reports.filter_by_period(toko.list_receipts(), bounds)
    return {
        "period": period,
        "summary": reports.financial_summary(transactions, receipts),
        "categories": reports.category_analysis(transactions),
    }


@app.get("/api/reports/stock")
def stock_report(
    period: str = "semua",
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    toko: TokoController = Depends(get_controller),
):
    bounds = _bounds(toko, period, start, end)
    logs = reports.filter_by_period(toko.list_stock_logs(), bounds)
    receipts = reports.filter_by_period(toko.list_receipts(), bounds)
    return {"period": period, "summary": reports.stock_summary(logs, receipts)}


@app.get("/api/reports/debts")
def debt_report(toko: TokoController = Depends(get_controller)):
    return reports.debt_summary(toko.list_debts(), toko.clock.now())


@app.get("/api/reports/low_stock")
def low_stock_report(toko: TokoController = Depends(get_controller)):
    return _docs(reports.low_stock_products(toko.list_products()))


@app.get("/api/reports/export_excel")
def export_reports_excel(
    period: str = "bulan",
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    toko: TokoController = Depends(get_controller),
):
    bounds = _bounds(toko, period, start, end)
    transactions = reports.filter_by_period(toko.list_transactions(), bounds)
    receipts = reports.filter_by_period(toko.list_receipts(), bounds)
    output = reports.export_financial_excel(transactions, receipts)
    filename = f"laporan-keuangan-{period}-{toko.clock.now().strftime('%Y%m%d')}.xlsx"
    return StreamingResponse(
        output,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@app.get("/api/reports/export_debts")
def export_debts_excel(toko: TokoController = Depends(get_controller)):
    output = reports.export_debts_excel(toko.list_debts())
    filename = f"hutang-piutang-detail-{toko.clock.now().strftime('%Y-%m-%d')}.xlsx"
    return StreamingResponse(
        output,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


# -------- SETTINGS ----------
@app.get("/api/settings/{name}")
def get_settings(name: str, toko: TokoController = Depends(get_controller)):
    return _doc(toko.get_settings(name))


@app.put("/api/settings/{name}")
def update_settings(name: str, changes: Dict[str, Any] = Body(...), toko: TokoController = Depends(get_controller)):
    return _doc(toko.update_settings(name, changes))


@app.post("/api/settings/reset")
def reset_settings(toko: TokoController = Depends(get_controller)):
    toko.reset_settings()
    return {"success": True, "message": "Pengaturan dikembalikan ke default"}


# -------- BACKUP ----------
@app.get("/api/backup/export")
def export_backup(toko: TokoController = Depends(get_controller)):
    """Download seluruh data sebagai satu file JSON."""
    content = backup.dumps(backup.export_data(toko))
    return Response(
        content=content,
        media_type="application/json",
        headers={"Content-Disposition": f"attachment; filename={backup.backup_filename(toko)}"},
    )


@app.post("/api/backup/import")
def import_backup(file: UploadFile = File(...), toko: TokoController = Depends(get_controller)):
    """Import file backup JSON (menimpa data yang ada)."""
    if not file.filename.lower().endswith(".json"):
        raise HTTPException(status_code=400, detail="Hanya file backup .json yang diizinkan!")
    replaced = backup.import_data(toko, file.file.read())
    return {"success": True, "message": "Data berhasil diimpor!", "documents": replaced}


@app.post("/api/backup/reset")
def reset_data(toko: TokoController = Depends(get_controller)):
    """Hapus semua data (produk, transaksi, hutang, log stok). Pengaturan tidak dihapus."""
    toko.reset_data()
    return {"success": True, "message": "Semua data berhasil dihapus!"}
