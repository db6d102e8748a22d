"""
Index Layer for the social graph store.

Every index is a named SQLAlchemy ``Index`` declared next to its model, so the
database maintains it inside the same transaction as the record write. This
module only reads them: prefix lookups, keyset range scans with self-describing
cursors, substring search over the text indexes, and a small planner that picks
the compound index matching a set of equality filters.
"""

import base64
import binascii
import heapq
import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import Column, Index, and_, func, or_, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from socialgraph.config import DB_RETRY_ATTEMPTS, DB_RETRY_MAX_WAIT, DB_RETRY_MIN_WAIT
from socialgraph.errors import InvalidArgument
from socialgraph.models import Base

logger = logging.getLogger(__name__)

# Leading column preference when two compound indexes cover the same number of filters.
PLANNER_PRIORITY = ("country_code", "gender", "gender_preference", "age_group")


@dataclass(frozen=True)
class IndexDef:
    """Read-only description of one declared index."""
    name: str
    model: type
    columns: Tuple[Column, ...]
    unique: bool = False
    search: Optional[str] = None
    sort: Optional[str] = None

    @property
    def id_column(self) -> Column:
        return self.model.__table__.c.id

    @property
    def filter_columns(self) -> Tuple[Column, ...]:
        """Columns a text index can be filtered on (everything but the searched column)."""
        return tuple(c for c in self.columns if c.key != self.search)

    def order_columns(self, prefix_len: int) -> Tuple[Column, ...]:
        if self.search:
            return (self.model.__table__.c[self.sort], self.id_column)
        return tuple(self.columns[prefix_len:]) + (self.id_column,)


@dataclass
class IndexEntry:
    id: int
    key: Tuple[Any, ...]


@dataclass
class IndexPage:
    cursor_name: str
    entries: List[IndexEntry] = field(default_factory=list)
    next_cursor: Optional[str] = None

    @property
    def ids(self) -> List[int]:
        return [e.id for e in self.entries]


@dataclass(frozen=True)
class QueryPlan:
    index: str
    prefix: Tuple[Any, ...]
    residual: Dict[str, Any]


def _encode_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def _decode_value(column: Column, value: Any) -> Any:
    try:
        python_type = column.type.python_type
    except NotImplementedError:
        return value
    if value is None:
        return None
    if python_type is datetime:
        return datetime.fromisoformat(value)
    if python_type is date:
        return date.fromisoformat(value)
    if isinstance(python_type, type) and issubclass(python_type, Enum):
        return python_type(value)
    if not isinstance(value, python_type):
        raise ValueError(f"expected {python_type.__name__} for {column.key}")
    return value


def _after(order_cols: Sequence[Column], key: Sequence[Any], descending: bool):
    """Keyset predicate selecting rows strictly past ``key`` in scan order."""
    clauses = []
    for i, col in enumerate(order_cols):
        equal = [order_cols[j] == key[j] for j in range(i)]
        step = col < key[i] if descending else col > key[i]
        clauses.append(and_(*equal, step))
    return or_(*clauses)


class IndexLayer:
    """Registry of the declared indexes and the queries they answer."""

    def __init__(self, metadata=Base.metadata):
        self._indexes: Dict[str, IndexDef] = {}
        model_by_table = {m.class_.__tablename__: m.class_ for m in Base.registry.mappers}
        for table in metadata.sorted_tables:
            model = model_by_table.get(table.name)
            if model is None:
                continue
            for index in table.indexes:
                self._register(model, index)

    def _register(self, model: type, index: Index) -> None:
        info = index.info or {}
        self._indexes[index.name] = IndexDef(
            name=index.name,
            model=model,
            columns=tuple(index.columns),
            unique=bool(index.unique),
            search=info.get("search"),
            sort=info.get("sort"),
        )

    def definition(self, name: str) -> IndexDef:
        try:
            return self._indexes[name]
        except KeyError:
            raise InvalidArgument(f"Unknown index {name}")

    def names(self, model: Optional[type] = None) -> List[str]:
        return sorted(n for n, d in self._indexes.items() if model is None or d.model is model)

    # Cursors

    def encode_cursor(self, cursor_name: str, key: Sequence[Any]) -> str:
        payload = json.dumps({"i": cursor_name, "k": [_encode_value(v) for v in key]})
        return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")

    def decode_cursor(self, cursor_name: str, cursor: str, columns: Sequence[Column]) -> Tuple[Any, ...]:
        try:
            payload = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8"))
            if payload["i"] != cursor_name:
                raise InvalidArgument("Cursor was issued for a different query")
            raw = payload["k"]
            if not isinstance(raw, list) or len(raw) != len(columns):
                raise ValueError("cursor key length mismatch")
            return tuple(_decode_value(col, v) for col, v in zip(columns, raw))
        except InvalidArgument:
            raise
        except (ValueError, KeyError, TypeError, UnicodeError, binascii.Error) as exc:
            raise InvalidArgument(f"Malformed cursor: {exc}")

    # Queries

    def _prefix_clauses(self, idx: IndexDef, prefix: Sequence[Any]) -> List[Any]:
        if idx.search:
            raise InvalidArgument(f"Index {idx.name} is a text index; use search()")
        if len(prefix) > len(idx.columns):
            raise InvalidArgument(
                f"Index {idx.name} has {len(idx.columns)} columns, got {len(prefix)} prefix values"
            )
        return [col == value for col, value in zip(idx.columns, prefix)]

    def _residual_clauses(self, idx: IndexDef, residual: Optional[Mapping[str, Any]]) -> List[Any]:
        table = idx.model.__table__
        clauses = []
        for name, value in (residual or {}).items():
            if name not in table.c:
                raise InvalidArgument(f"Unknown attribute {name} for {table.name}")
            clauses.append(table.c[name] == value)
        return clauses

    @retry(
        retry=retry_if_exception_type(OperationalError),
        stop=stop_after_attempt(DB_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=DB_RETRY_MIN_WAIT, max=DB_RETRY_MAX_WAIT),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    def _fetch(self, db: Session, stmt) -> List[Any]:
        return db.execute(stmt).all()

    def lookup(self, db: Session, name: str, prefix: Sequence[Any] = ()) -> List[int]:
        """All ids matching ``prefix``, ascending by the remaining index columns."""
        idx = self.definition(name)
        order = idx.order_columns(len(prefix))
        stmt = select(idx.id_column).where(*self._prefix_clauses(idx, prefix)).order_by(*order)
        return [row[0] for row in self._fetch(db, stmt)]

    def first(self, db: Session, name: str, prefix: Sequence[Any]) -> Optional[int]:
        idx = self.definition(name)
        order = idx.order_columns(len(prefix))
        stmt = (
            select(idx.id_column)
            .where(*self._prefix_clauses(idx, prefix))
            .order_by(*order)
            .limit(1)
        )
        rows = self._fetch(db, stmt)
        return rows[0][0] if rows else None

    def count(self, db: Session, name: str, prefix: Sequence[Any]) -> int:
        """Cardinality of a prefix lookup."""
        idx = self.definition(name)
        stmt = select(func.count()).select_from(idx.model.__table__).where(
            *self._prefix_clauses(idx, prefix)
        )
        return self._fetch(db, stmt)[0][0]

    def range_scan(
        self,
        db: Session,
        name: str,
        prefix: Sequence[Any] = (),
        cursor: Optional[str] = None,
        limit: int = 20,
        descending: bool = True,
        residual: Optional[Mapping[str, Any]] = None,
    ) -> IndexPage:
        """One page of ids matching ``prefix``, ordered by the trailing key.

        ``residual`` holds equality predicates on attributes the index does not
        cover; they narrow the scan without changing its order.
        """
        if limit < 1:
            raise InvalidArgument("limit must be positive")
        idx = self.definition(name)
        order = idx.order_columns(len(prefix))
        where = self._prefix_clauses(idx, prefix) + self._residual_clauses(idx, residual)
        if cursor:
            where.append(_after(order, self.decode_cursor(name, cursor, order), descending))
        return self._page(db, name, idx, order, where, limit, descending)

    def search(
        self,
        db: Session,
        names: Sequence[str],
        term: str,
        filters: Optional[Mapping[str, Any]] = None,
        cursor: Optional[str] = None,
        limit: int = 20,
        descending: bool = True,
    ) -> IndexPage:
        """Case-insensitive substring search over one or more text indexes.

        Results of several indexes are merged in sort-key order and
        de-duplicated, so a record matching on two fields appears once.
        """
        term = (term or "").strip()
        if not term:
            raise InvalidArgument("Search term must not be empty")
        if limit < 1:
            raise InvalidArgument("limit must be positive")
        defs = [self.definition(n) for n in names]
        for d in defs:
            if not d.search:
                raise InvalidArgument(f"Index {d.name} is not a text index")
        cursor_name = "+".join(names)
        order = defs[0].order_columns(0)
        after_key = self.decode_cursor(cursor_name, cursor, order) if cursor else None
        pattern = f"%{_escape_like(term)}%"

        pages = []
        for d in defs:
            table = d.model.__table__
            allowed = {c.key for c in d.filter_columns}
            where = [table.c[d.search].ilike(pattern, escape="\\")]
            for attr, value in (filters or {}).items():
                if attr not in allowed:
                    raise InvalidArgument(f"Index {d.name} cannot filter on {attr}")
                where.append(table.c[attr] == value)
            d_order = d.order_columns(0)
            if after_key is not None:
                where.append(_after(d_order, after_key, descending))
            pages.append(self._page(db, cursor_name, d, d_order, where, limit, descending))

        # A truncated stream alone holds ``limit`` distinct ids, so the merged
        # page is full whenever any stream has more to give.
        more = any(p.next_cursor for p in pages)
        merged = heapq.merge(*(p.entries for p in pages), key=lambda e: e.key, reverse=descending)
        page = IndexPage(cursor_name)
        seen = set()
        for entry in merged:
            if entry.id in seen:
                continue
            if len(page.entries) == limit:
                more = True
                break
            seen.add(entry.id)
            page.entries.append(entry)
        if more and page.entries:
            page.next_cursor = self.encode_cursor(cursor_name, page.entries[-1].key)
        return page

    def _page(self, db, cursor_name, idx, order, where, limit, descending) -> IndexPage:
        ordering = [c.desc() for c in order] if descending else list(order)
        stmt = select(*order).where(*where).order_by(*ordering).limit(limit + 1)
        rows = self._fetch(db, stmt)
        page = IndexPage(cursor_name)
        for row in rows[:limit]:
            key = tuple(row)
            page.entries.append(IndexEntry(id=key[-1], key=key))
        if len(rows) > limit:
            page.next_cursor = self.encode_cursor(cursor_name, page.entries[-1].key)
        return page

    def plan(self, model: type, equalities: Mapping[str, Any], sort: str) -> QueryPlan:
        """Pick the compound index that covers the most equality filters.

        An index qualifies when every column before its trailing ``sort``
        column is fixed by ``equalities``. Filters the chosen index does not
        cover come back as residual predicates.
        """
        best: Optional[IndexDef] = None
        for d in self._indexes.values():
            if d.model is not model or d.unique or d.search:
                continue
            *leading, trailing = d.columns
            if trailing.key != sort or any(c.key not in equalities for c in leading):
                continue
            if best is None or _plan_rank(d) > _plan_rank(best):
                best = d
        if best is None:
            raise InvalidArgument(f"No index on {model.__tablename__} sorts by {sort}")
        leading = best.columns[:-1]
        used = {c.key for c in leading}
        logger.debug("planned %s for filters %s", best.name, sorted(equalities))
        return QueryPlan(
            index=best.name,
            prefix=tuple(equalities[c.key] for c in leading),
            residual={k: v for k, v in equalities.items() if k not in used},
        )


def _plan_rank(d: IndexDef) -> Tuple[int, int]:
    width = len(d.columns) - 1
    lead = d.columns[0].key if width else None
    priority = len(PLANNER_PRIORITY) - PLANNER_PRIORITY.index(lead) if lead in PLANNER_PRIORITY else 0
    return width, priority


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# Global index layer built from the declared models
index_layer = IndexLayer()
