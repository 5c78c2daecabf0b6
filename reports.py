import io
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pandas as pd
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from debts import is_overdue, status_label
from errors import ValidationError
from schemas import Debt, Product, Receipt, StockLog, StockLogType, Transaction, TransactionType

PERIODS = ("hari", "minggu", "bulan", "tahun", "semua", "custom")


def period_bounds(period: str, now: datetime, start: Optional[datetime] = None, end: Optional[datetime] = None):
    """Return ``(start, end)`` for a report period; None means unbounded.

    The range is half-open: ``start <= tanggal < end``.
    """
    if period not in PERIODS:
        raise ValidationError(f"Periode tidak dikenal: {period}")
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "hari":
        return day_start, day_start + timedelta(days=1)
    if period == "minggu":
        # minggu dimulai hari Minggu
        return day_start - timedelta(days=(now.weekday() + 1) % 7), None
    if period == "bulan":
        return day_start.replace(day=1), None
    if period == "tahun":
        return day_start.replace(month=1, day=1), None
    if period == "custom":
        return start, end
    return None, None


def in_period(value: datetime, bounds) -> bool:
    start, end = bounds
    if start is not None and value < start:
        return False
    if end is not None and value >= end:
        return False
    return True


def filter_by_period(entities, bounds, attr: str = "tanggal"):
    return [e for e in entities if in_period(getattr(e, attr), bounds)]


def financial_summary(transactions: List[Transaction], receipts: List[Receipt]) -> Dict[str, float]:
    receipt_revenue = sum(r.total for r in receipts)
    income = [t for t in transactions if t.type == TransactionType.PEMASUKAN]
    expenses = [t for t in transactions if t.type == TransactionType.PENGELUARAN]

    total_revenue = receipt_revenue + sum(t.nominal for t in income)
    cogs = sum(t.total_cost for t in income)
    other_expenses = sum(t.nominal for t in expenses)
    total_expenses = cogs + other_expenses
    gross_profit = total_revenue - cogs
    net_profit = total_revenue - total_expenses

    return {
        "totalRevenue": total_revenue,
        "cogs": cogs,
        "otherExpenses": other_expenses,
        "totalExpenses": total_expenses,
        "grossProfit": gross_profit,
        "netProfit": net_profit,
        "grossMargin": (gross_profit / total_revenue * 100) if total_revenue > 0 else 0,
        "netMargin": (net_profit / total_revenue * 100) if total_revenue > 0 else 0,
        "transactionCount": len(transactions),
    }


def category_analysis(transactions: List[Transaction]) -> List[Dict[str, float]]:
    data: Dict[str, Dict[str, float]] = {}
    for t in transactions:
        if t.type != TransactionType.PEMASUKAN:
            continue
        for item in t.items:
            key = item.category_id or "Uncategorized"
            row = data.setdefault(key, {"categoryName": key, "revenue": 0, "cost": 0, "profit": 0, "margin": 0, "transactions": 0})
            row["revenue"] += item.total_price
            row["cost"] += item.total_cost
            row["transactions"] += 1
    for row in data.values():
        row["profit"] = row["revenue"] - row["cost"]
        row["margin"] = (row["profit"] / row["revenue"] * 100) if row["revenue"] > 0 else 0
    return sorted(data.values(), key=lambda r: r["revenue"], reverse=True)


def stock_summary(stock_logs: List[StockLog], receipts: List[Receipt]) -> Dict[str, int]:
    return {
        "totalStokMasuk": sum(log.jumlah for log in stock_logs if log.type == StockLogType.MASUK),
        "totalStokKeluar": sum(log.jumlah for log in stock_logs if log.type == StockLogType.KELUAR),
        "totalPenjualan": sum(r.total for r in receipts),
        "jumlahLog": len(stock_logs),
    }


def debt_summary(debts: List[Debt], now: datetime) -> Dict[str, int]:
    return {
        "totalCustomerDebt": sum(max(0, d.total_debt) for d in debts),
        "totalStoreDebt": sum(abs(min(0, d.total_debt)) for d in debts),
        "overdue": sum(1 for d in debts if is_overdue(d, now)),
        "debtorCount": len(debts),
    }


def low_stock_products(products: List[Product]) -> List[Product]:
    return sorted((p for p in products if p.stock <= p.min_stock), key=lambda p: p.stock)


# -------- EXCEL ----------
def _style_workbook(workbook):
    """Header biru, border tipis, format angka dan auto-width untuk semua sheet"""
    header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")  # Biru
    header_font = Font(bold=True, color="FFFFFF", size=10, name="Roboto")
    border_style = Border(
        left=Side(style='thin'),
        right=Side(style='thin'),
        top=Side(style='thin'),
        bottom=Side(style='thin')
    )
    center_align = Alignment(horizontal='center', vertical='center')
    right_align = Alignment(horizontal='right', vertical='center')
    left_align = Alignment(horizontal='left', vertical='center')

    for ws in workbook.worksheets:
        if ws.max_row <= 1:
            continue  # Skip jika tidak ada data
        ws.freeze_panes = 'A2'

        for cell in ws[1]:
            cell.fill = header_fill
            cell.font = header_font
            cell.alignment = center_align
            cell.border = border_style
        ws.row_dimensions[1].height = 20

        for row in ws.iter_rows(min_row=2, max_row=ws.max_row):
            for cell in row:
                cell.border = border_style
                if isinstance(cell.value, (int, float)):
                    cell.number_format = '#,##0'
                    cell.alignment = right_align
                else:
                    cell.alignment = left_align

        for column in ws.columns:
            column_letter = get_column_letter(column[0].column)
            max_length = max((len(str(cell.value)) for cell in column if cell.value is not None), default=0)
            ws.column_dimensions[column_letter].width = min(max(max_length + 2, 10), 50)


def export_financial_excel(transactions: List[Transaction], receipts: List[Receipt]) -> io.BytesIO:
    output = io.BytesIO()
    with pd.ExcelWriter(output, engine='openpyxl') as writer:
        df_trx = pd.DataFrame([{
            "TRX_NO": t.transaction_number,
            "TANGGAL": t.tanggal.strftime("%Y-%m-%d %H:%M"),
            "JENIS": t.type.value,
            "PELANGGAN": t.customer_name or "",
            "STATUS": t.payment_status.value,
            "NOMINAL": t.nominal,
            "MODAL": t.total_cost,
            "LABA": t.profit,
            "CATATAN": t.catatan,
        } for t in transactions], columns=["TRX_NO", "TANGGAL", "JENIS", "PELANGGAN", "STATUS", "NOMINAL", "MODAL", "LABA", "CATATAN"])
        df_trx.to_excel(writer, sheet_name='Transaksi', index=False)

        summary = financial_summary(transactions, receipts)
        df_keuangan = pd.DataFrame([
            {"Keterangan": "Total Pendapatan", "Nilai": summary["totalRevenue"]},
            {"Keterangan": "Harga Pokok Penjualan", "Nilai": summary["cogs"]},
            {"Keterangan": "Pengeluaran Lain", "Nilai": summary["otherExpenses"]},
            {"Keterangan": "Total Pengeluaran", "Nilai": summary["totalExpenses"]},
            {"Keterangan": "Laba Kotor", "Nilai": summary["grossProfit"]},
            {"Keterangan": "Laba Bersih", "Nilai": summary["netProfit"]},
        ])
        df_keuangan.to_excel(writer, sheet_name='Ringkasan Keuangan', index=False)

        _style_workbook(writer.book)
    output.seek(0)
    return output


def export_debts_excel(debts: List[Debt]) -> io.BytesIO:
    output = io.BytesIO()
    with pd.ExcelWriter(output, engine='openpyxl') as writer:
        df = pd.DataFrame([{
            "Nama Pelanggan": d.customer_name,
            "Telepon": d.customer_phone or "",
            "Hutang/Kredit": d.total_debt,
            "Jatuh Tempo": d.due_date.strftime("%d/%m/%Y") if d.due_date else "",
            "Status": status_label(d),
            "Dibuat": d.created_at.strftime("%d/%m/%Y"),
            "Terakhir Update": d.updated_at.strftime("%d/%m/%Y"),
            "Total Transaksi": len(d.transactions),
        } for d in debts], columns=["Nama Pelanggan", "Telepon", "Hutang/Kredit", "Jatuh Tempo", "Status", "Dibuat", "Terakhir Update", "Total Transaksi"])
        df.to_excel(writer, sheet_name='Hutang Piutang', index=False)
        _style_workbook(writer.book)
    output.seek(0)
    return output
