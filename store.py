"""In-memory entity store.

Holds every collection of the application plus the draft transaction and
the settings blobs. The store owns no business rules; the controller is the
only writer.
"""

from typing import Any, Dict, List, Optional

from schemas import (
    Category,
    Debt,
    NotificationSettings,
    PerformanceSettings,
    Product,
    Receipt,
    StockLog,
    StoreSettings,
    SystemSettings,
    Transaction,
)

# nama dokumen -> (atribut store, model)
COLLECTIONS = {
    "products": ("products", Product),
    "categories": ("categories", Category),
    "stockLogs": ("stock_logs", StockLog),
    "receipts": ("receipts", Receipt),
    "transactions": ("transactions", Transaction),
    "debts": ("debts", Debt),
}

SETTINGS = {
    "storeSettings": ("store_settings", StoreSettings),
    "notificationSettings": ("notification_settings", NotificationSettings),
    "systemSettings": ("system_settings", SystemSettings),
    "performanceSettings": ("performance_settings", PerformanceSettings),
}

DRAFT = "draftTransaction"

DOCUMENT_NAMES = tuple(COLLECTIONS) + (DRAFT,) + tuple(SETTINGS)


class EntityStore:
    def __init__(self):
        self.products: List[Product] = []
        self.categories: List[Category] = []
        self.stock_logs: List[StockLog] = []
        self.receipts: List[Receipt] = []
        self.transactions: List[Transaction] = []
        self.debts: List[Debt] = []
        self.draft: Optional[Dict[str, Any]] = None
        self.reset_settings()

    def _items(self, collection: str) -> list:
        attr, _ = COLLECTIONS[collection]
        return getattr(self, attr)

    def get(self, collection: str, entity_id: str):
        for entity in self._items(collection):
            if entity.id == entity_id:
                return entity
        return None

    def add(self, collection: str, entity, newest_first: bool = False):
        items = self._items(collection)
        if newest_first:
            items.insert(0, entity)
        else:
            items.append(entity)
        return entity

    def replace(self, collection: str, entity) -> bool:
        items = self._items(collection)
        for i, existing in enumerate(items):
            if existing.id == entity.id:
                items[i] = entity
                return True
        return False

    def remove(self, collection: str, entity_id: str):
        items = self._items(collection)
        for i, existing in enumerate(items):
            if existing.id == entity_id:
                return items.pop(i)
        return None

    def set(self, collection: str, entities: list):
        attr, _ = COLLECTIONS[collection]
        setattr(self, attr, list(entities))

    def clear_data(self):
        for collection in COLLECTIONS:
            self.set(collection, [])
        self.draft = None

    def reset_settings(self):
        for attr, model in SETTINGS.values():
            setattr(self, attr, model())

    # -------- serialisasi ----------
    def dump(self, name: str):
        """JSON-ready value of one named document."""
        if name in COLLECTIONS:
            return [entity.to_document() for entity in self._items(name)]
        if name in SETTINGS:
            attr, _ = SETTINGS[name]
            return getattr(self, attr).to_document()
        if name == DRAFT:
            return self.draft
        raise KeyError(name)

    def snapshot(self) -> Dict[str, Any]:
        return {name: self.dump(name) for name in DOCUMENT_NAMES}

    def parse(self, name: str, payload):
        """Validate a JSON value for a document without applying it.

        Raises ``pydantic.ValidationError`` or ``TypeError`` on bad data.
        """
        if name in COLLECTIONS:
            _, model = COLLECTIONS[name]
            if not isinstance(payload, list):
                raise TypeError(f"{name} harus berupa array")
            return [model.model_validate(doc) for doc in payload]
        if name in SETTINGS:
            _, model = SETTINGS[name]
            return model.model_validate(payload)
        if name == DRAFT:
            if payload is not None and not isinstance(payload, dict):
                raise TypeError(f"{name} harus berupa object")
            return payload
        raise KeyError(name)

    def apply(self, name: str, parsed):
        if name in COLLECTIONS:
            self.set(name, parsed)
        elif name in SETTINGS:
            setattr(self, SETTINGS[name][0], parsed)
        elif name == DRAFT:
            self.draft = parsed
        else:
            raise KeyError(name)

    def restore(self, name: str, payload):
        self.apply(name, self.parse(name, payload))
