"""Entity Store: the only code path that inserts or deletes records."""

import logging
from typing import Any, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from socialgraph.errors import IndexConsistencyError, NotFound
from socialgraph.services.indexes import IndexLayer, index_layer

logger = logging.getLogger(__name__)


class EntityStore:
    """
    Record storage bound to one session (one transaction).

    Single-record writes are atomic; a caller that needs several writes to
    appear as one unit performs them on the same store before the session
    commits.
    """

    def __init__(self, db: Session, indexes: IndexLayer = index_layer):
        self.db = db
        self.indexes = indexes

    def put(self, entity: Any) -> int:
        self.db.add(entity)
        self.db.flush()
        return entity.id

    def get(self, model: type, entity_id: int) -> Any:
        entity = self.db.get(model, entity_id)
        if entity is None:
            raise NotFound(f"{model.__name__} {entity_id} not found")
        return entity

    def find(self, model: type, entity_id: int) -> Optional[Any]:
        return self.db.get(model, entity_id)

    def get_many(self, model: type, ids: Sequence[int], index_name: str = "primary") -> List[Any]:
        """Fetch records for ids produced by an index, preserving their order.

        A missing id means the index and the store disagree.
        """
        if not ids:
            return []
        rows = self.db.execute(select(model).where(model.id.in_(list(ids)))).scalars().all()
        by_id = {row.id: row for row in rows}
        missing = set(ids) - set(by_id)
        if missing:
            error = IndexConsistencyError(index_name, missing)
            logger.error("index/store inconsistency: %s", error)
            raise error
        return [by_id[i] for i in ids]

    def delete(self, model: type, entity_id: int) -> None:
        self.delete_entity(self.get(model, entity_id))

    def delete_entity(self, entity: Any) -> None:
        self.db.delete(entity)
        self.db.flush()

    def lookup(self, model: type, index_name: str, prefix: Sequence[Any]) -> List[Any]:
        """Every record matching an index prefix, in index order."""
        return self.get_many(model, self.indexes.lookup(self.db, index_name, prefix), index_name)

    def first(self, model: type, index_name: str, prefix: Sequence[Any]) -> Optional[Any]:
        entity_id = self.indexes.first(self.db, index_name, prefix)
        if entity_id is None:
            return None
        return self.get_many(model, [entity_id], index_name)[0]

    def scan(
        self,
        model: type,
        index_name: str,
        prefix: Sequence[Any] = (),
        cursor: Optional[str] = None,
        limit: int = 20,
        descending: bool = True,
    ) -> Tuple[List[Any], Optional[str]]:
        page = self.indexes.range_scan(
            self.db, index_name, prefix, cursor=cursor, limit=limit, descending=descending
        )
        return self.get_many(model, page.ids, index_name), page.next_cursor
