"""Consolidated JSON backup.

An export bundles every collection and settings blob into one document with
a ``version`` tag. Import is all-or-nothing: a missing or unsupported
version, malformed JSON or any invalid collection rejects the whole file.
"""

import json
import logging
from typing import Any, Dict, Union

from config import BACKUP_VERSION, SUPPORTED_BACKUP_VERSIONS
from errors import BackupError
from store import COLLECTIONS, SETTINGS

logger = logging.getLogger(__name__)


def export_data(controller) -> Dict[str, Any]:
    snapshot = controller.snapshot()
    data = {name: snapshot[name] for name in SETTINGS}
    data.update({name: snapshot[name] for name in COLLECTIONS})
    data["exportDate"] = controller.clock.now().isoformat()
    data["version"] = BACKUP_VERSION
    return data


def backup_filename(controller) -> str:
    return f"sistem-kelola-barang-backup-{controller.clock.now().strftime('%Y-%m-%d')}.json"


def dumps(data: Dict[str, Any]) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2)


def import_data(controller, raw: Union[str, bytes, Dict[str, Any]]):
    """Restore a backup produced by ``export_data``.

    Returns the names of the documents that were replaced. Documents absent
    from the file keep their current value.
    """
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except ValueError:
            raise BackupError("Gagal mengimpor data! Pastikan file valid.")
    else:
        data = raw

    if not isinstance(data, dict) or not data.get("version"):
        raise BackupError("File backup tidak valid atau versi lama!")
    if data["version"] not in SUPPORTED_BACKUP_VERSIONS:
        raise BackupError(f"Versi backup {data['version']} tidak didukung!")

    documents = {name: data[name] for name in list(SETTINGS) + list(COLLECTIONS) if data.get(name) is not None}
    replaced = controller.replace_documents(documents)
    logger.info("Import backup versi %s selesai", data["version"])
    return replaced
