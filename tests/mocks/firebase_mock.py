"""
MockFirestore: synchronous in-memory Firestore stand-in for unit tests.

Supports: collection(), document(), get(), set(merge=), update(), order_by(),
limit(), stream(), seed(), transaction().
SERVER_TIMESTAMP sentinels are silently dropped so tests can inspect real values;
Increment transforms are applied to the stored number.
"""


def _is_sentinel(value) -> bool:
    """Return True for Firestore sentinel objects (SERVER_TIMESTAMP, etc.)."""
    type_name = type(value).__name__
    return type_name in ("ServerTimestamp", "Sentinel", "_UNSET_SENTINEL")


def _is_increment(value) -> bool:
    return type(value).__name__ == "Increment"


def _apply(target: dict, data: dict) -> None:
    for k, v in data.items():
        if _is_sentinel(v):
            continue
        if _is_increment(v):
            target[k] = (target.get(k) or 0) + v.value
        else:
            target[k] = v


class MockDocumentSnapshot:
    def __init__(self, doc_id: str, data: dict | None = None, exists: bool = True):
        self.id = doc_id
        self.exists = exists
        self._data = dict(data) if data else {}

    def to_dict(self) -> dict | None:
        return dict(self._data) if self.exists else None

    def get(self, key):
        return self._data.get(key)


class MockDocumentReference:
    def __init__(self, store: dict, doc_id: str):
        self._store = store
        self.id = doc_id

    def get(self, transaction=None) -> MockDocumentSnapshot:
        data = self._store.get(self.id)
        return MockDocumentSnapshot(self.id, data, exists=self.id in self._store)

    def set(self, data: dict, merge: bool = False) -> None:
        target = dict(self._store.get(self.id, {})) if merge else {}
        _apply(target, data)
        self._store[self.id] = target

    def update(self, data: dict) -> None:
        if self.id not in self._store:
            raise KeyError(f"No document to update: {self.id}")
        _apply(self._store[self.id], data)


class MockQuery:
    def __init__(self, docs: dict, order: tuple | None = None, limit: int | None = None):
        self._docs = docs
        self._order = order
        self._limit = limit

    def order_by(self, field: str, direction: str = "ASCENDING") -> "MockQuery":
        return MockQuery(self._docs, (field, direction), self._limit)

    def limit(self, count: int) -> "MockQuery":
        return MockQuery(self._docs, self._order, count)

    def stream(self):
        items = list(self._docs.items())
        if self._order:
            field, direction = self._order
            items.sort(key=lambda kv: kv[1].get(field, 0), reverse=direction == "DESCENDING")
        if self._limit is not None:
            items = items[: self._limit]
        return iter([MockDocumentSnapshot(doc_id, data) for doc_id, data in items])


class MockCollection(MockQuery):
    def __init__(self):
        self._docs_store: dict[str, dict] = {}
        super().__init__(self._docs_store)

    def document(self, doc_id: str) -> MockDocumentReference:
        return MockDocumentReference(self._docs_store, doc_id)


class MockTransaction:
    """Writes are applied immediately; tests run a single writer at a time."""

    def __init__(self):
        self.writes: list[tuple] = []

    def set(self, ref: MockDocumentReference, data: dict, merge: bool = False) -> None:
        self.writes.append(("set", ref.id, data))
        ref.set(data, merge=merge)

    def update(self, ref: MockDocumentReference, data: dict) -> None:
        self.writes.append(("update", ref.id, data))
        ref.update(data)


class MockFirestore:
    def __init__(self):
        self._collections: dict[str, MockCollection] = {}
        self.transactions: list[MockTransaction] = []

    def collection(self, name: str) -> MockCollection:
        if name not in self._collections:
            self._collections[name] = MockCollection()
        return self._collections[name]

    def transaction(self) -> MockTransaction:
        tx = MockTransaction()
        self.transactions.append(tx)
        return tx

    def seed(self, collection: str, doc_id: str, data: dict) -> None:
        """Pre-populate a document for test setup."""
        self.collection(collection)._docs_store[doc_id] = dict(data)

    def dump(self, collection: str) -> dict:
        return {k: dict(v) for k, v in self.collection(collection)._docs_store.items()}


def mock_transactional(func):
    """Pass-through replacement for @firestore.transactional."""
    def wrapper(transaction, *args, **kwargs):
        return func(transaction, *args, **kwargs)
    return wrapper
