from collections.abc import MutableMapping, Sequence
from datetime import datetime

from pydantic import BaseModel

from shiftnotes.keys import EntityType

TableKey = tuple[str, str]


class StoreError(Exception):
    """Raised by the table for infrastructure-level failures."""


class TableItem(BaseModel):
    owner_id: str
    entity_id: str
    entity_type: EntityType
    # serialized snapshot of the domain entity
    data: str
    created_at: datetime
    updated_at: datetime

    @property
    def key(self) -> TableKey:
        return (self.owner_id, self.entity_id)


class InMemoryEntityTable:
    """
    Simple in-memory flat table keyed by (owner_id, entity_id).

    Only supports what the remote document store supports: direct get/put/
    delete, begins-with queries on the entity id within one owner, and batch
    deletes of at most ``max_batch_size`` keys.
    """

    max_batch_size = 25

    def __init__(self) -> None:
        self._store: MutableMapping[TableKey, TableItem] = {}

    def put(self, item: TableItem) -> None:
        self._store[item.key] = item

    def get(self, owner_id: str, entity_id: str) -> TableItem | None:
        return self._store.get((owner_id, entity_id))

    def delete(self, owner_id: str, entity_id: str) -> None:
        self._store.pop((owner_id, entity_id), None)

    def query(self, owner_id: str, prefix: str = "") -> list[TableItem]:
        items = [
            item
            for (owner, entity_id), item in self._store.items()
            if owner == owner_id and entity_id.startswith(prefix)
        ]
        return sorted(items, key=lambda i: i.entity_id)

    def batch_delete(self, owner_id: str, entity_ids: Sequence[str]) -> None:
        if len(entity_ids) > self.max_batch_size:
            raise StoreError(
                f"batch of {len(entity_ids)} exceeds limit of {self.max_batch_size}"
            )
        for entity_id in entity_ids:
            self._store.pop((owner_id, entity_id), None)

    def all(self) -> list[TableItem]:
        return list(self._store.values())

    def __len__(self) -> int:
        return len(self._store)
