"""Pages of view objects and the fill loop shared by discovery and the feed."""

from dataclasses import dataclass, field
from typing import Any, Callable, Generic, List, Optional, Tuple, TypeVar

from socialgraph.config import MAX_PAGE_SIZE
from socialgraph.errors import InvalidArgument
from socialgraph.services.indexes import IndexLayer, IndexPage

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    items: List[T] = field(default_factory=list)
    next_cursor: Optional[str] = None


def check_page_size(page_size: int, max_page_size: int = MAX_PAGE_SIZE) -> int:
    if isinstance(page_size, bool) or not isinstance(page_size, int) or not 1 <= page_size <= max_page_size:
        raise InvalidArgument(f"page_size must be between 1 and {max_page_size}")
    return page_size


def fill_page(
    indexes: IndexLayer,
    fetch: Callable[[Optional[str], int], IndexPage],
    load: Callable[[IndexPage], List[Any]],
    keep: Callable[[Any], bool],
    cursor: Optional[str],
    page_size: int,
) -> Tuple[List[Any], Optional[str]]:
    """Scan an index from ``cursor`` until ``page_size`` records pass ``keep``.

    Excluded records are skipped rather than shrinking the page. The returned
    cursor sits on the last record consumed, so the next call resumes right
    after it; it is None once the index is exhausted.
    """
    kept: List[Any] = []
    while True:
        page = fetch(cursor, page_size)
        for entry, record in zip(page.entries, load(page)):
            if not keep(record):
                continue
            kept.append(record)
            if len(kept) == page_size:
                exhausted = entry is page.entries[-1] and page.next_cursor is None
                return kept, None if exhausted else indexes.encode_cursor(page.cursor_name, entry.key)
        if page.next_cursor is None:
            return kept, None
        cursor = page.next_cursor
