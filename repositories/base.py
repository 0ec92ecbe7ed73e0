"""
Base repository interface and the shared Supabase implementation.
"""

from abc import ABC, abstractmethod
from typing import TypeVar, Generic, Callable, Iterator, Optional, List, Dict, Any, Sequence
from datetime import datetime, timezone

from common.exceptions import DatabaseException
from common.logging import get_logger

T = TypeVar('T')

logger = get_logger("repository")


def chunked(values: Sequence[Any], size: int) -> Iterator[List[Any]]:
    """Yield consecutive slices of at most `size` items."""
    if size <= 0:
        raise ValueError("size must be positive")
    for start in range(0, len(values), size):
        yield list(values[start:start + size])


class BaseRepository(ABC, Generic[T]):
    """
    Abstract repository interface.
    """

    @abstractmethod
    async def get_by_id(self, entity_id: str) -> Optional[T]:
        pass


class SupabaseRepository(BaseRepository[T], ABC):
    """
    Base Supabase repository with timestamp, ordering and error-wrapping helpers.
    """

    def __init__(self, supabase_client, table_name: str, batch_size: int = 900, page_size: int = 1000):
        self.supabase = supabase_client
        self.table_name = table_name
        self.batch_size = batch_size
        # must not exceed the PostgREST max-rows setting
        self.page_size = page_size

    def _add_audit_fields(self, data: Dict[str, Any], is_update: bool = False) -> Dict[str, Any]:
        now = datetime.now(timezone.utc).isoformat()
        if not is_update:
            data["created_at"] = now
        data["updated_at"] = now
        return data

    def _apply_ordering(self, query, order_by: Optional[str]):
        """'-field' orders descending; default is newest first."""
        if order_by:
            if order_by.startswith("-"):
                query = query.order(order_by[1:], desc=True)
            else:
                query = query.order(order_by, desc=False)
        else:
            query = query.order("created_at", desc=True)
        return query

    def _fetch_pages(self, build_query: Callable[[], Any], operation: str, **context) -> List[Dict[str, Any]]:
        """
        Run a freshly built query one `.range()` page at a time until a short
        page comes back. The query must have a total ordering so that pages
        do not overlap.
        """
        rows: List[Dict[str, Any]] = []
        start = 0
        while True:
            try:
                res = build_query().range(start, start + self.page_size - 1).execute()
            except Exception as e:
                raise self._database_error(operation, e, offset=start, **context)
            page = res.data or []
            rows.extend(page)
            if len(page) < self.page_size:
                return rows
            start += self.page_size

    def _database_error(self, operation: str, error: Exception, **context) -> DatabaseException:
        logger.error(f"{self.table_name}.{operation} failed: {error}", exc_info=True)
        return DatabaseException(
            detail=f"Database operation '{operation}' failed on {self.table_name}",
            operation=operation,
            error_code=f"{self.table_name.upper()}_{operation.upper()}_FAILED",
            context={"table": self.table_name, "operation": operation, **context},
        )

    async def delete(self, entity_id: str) -> bool:
        """Hard delete by ID. Returns True if a row was deleted."""
        try:
            res = (
                self.supabase
                .table(self.table_name)
                .delete()
                .eq("id", entity_id)
                .execute()
            )
            return bool(res.data)
        except Exception as e:
            raise self._database_error("delete", e, id=entity_id)
