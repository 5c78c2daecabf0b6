import threading
import time
from datetime import datetime

import pytz

from config import TIMEZONE

# Timezone Indonesia yang biasa dipakai toko
TIMEZONE_MAP = {
    "WIB": "Asia/Jakarta",      # UTC+7
    "WITA": "Asia/Makassar",    # UTC+8
    "WIT": "Asia/Jayapura"      # UTC+9
}


def resolve_timezone(name: str):
    """Terima alias WIB/WITA/WIT atau nama zona IANA, default Asia/Jakarta"""
    name = TIMEZONE_MAP.get(name, name)
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        return pytz.timezone(TIMEZONE_MAP["WIB"])


def format_idr(value):
    return "{:,}".format(int(value)).replace(",", ".")


def format_rupiah(value):
    sign = "-" if value < 0 else ""
    return f"{sign}Rp {format_idr(abs(value))}"


class Clock:
    """Sumber waktu dan id untuk semua entitas.

    Id dibuat dari milidetik saat ini, tetapi selalu lebih besar dari id
    sebelumnya sehingga unik dan urut (lebih baru = lebih besar).
    """

    def __init__(self, timezone: str = TIMEZONE):
        self.tz = resolve_timezone(timezone)
        self._last_id = 0
        self._lock = threading.Lock()

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def _millis(self) -> int:
        return int(time.time() * 1000)

    def new_id(self) -> str:
        with self._lock:
            value = max(self._millis(), self._last_id + 1)
            self._last_id = value
            return str(value)

    def localize(self, value):
        """Attach the store timezone to naive datetimes from user input."""
        if value is None or value.tzinfo is not None:
            return value
        return self.tz.localize(value)
