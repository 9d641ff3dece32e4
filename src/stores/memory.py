"""
In-memory query store

Holds rows in plain lists keyed by collection name. Used by the test suite
and for local development without a database.
"""

from typing import Dict, List, Any, Optional, Sequence
import copy
import logging

from .base_store import BaseQueryStore, OrderPolicy, QueryStoreConfig

logger = logging.getLogger(__name__)


def _ordered(rows: List[Dict[str, Any]], order: OrderPolicy) -> List[Dict[str, Any]]:
    """Sort by the policy field; rows missing the field always go last"""
    present = [r for r in rows if r.get(order.field) is not None]
    missing = [r for r in rows if r.get(order.field) is None]
    # strings after numbers so mixed columns still compare
    present.sort(
        key=lambda r: (isinstance(r[order.field], str), r[order.field]),
        reverse=order.descending
    )
    return present + missing


class InMemoryQueryStore(BaseQueryStore):
    """Query store backed by Python lists"""

    def __init__(
        self,
        rows: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        config: Optional[QueryStoreConfig] = None
    ):
        super().__init__(config)
        self._rows: Dict[str, List[Dict[str, Any]]] = {
            name: [dict(r) for r in items] for name, items in (rows or {}).items()
        }

    async def initialize(self) -> None:
        self._initialized = True
        logger.info(f"In-memory store ready with {sum(len(r) for r in self._rows.values())} rows")

    async def _find_containing(
        self,
        collection: str,
        field_name: str,
        patterns: Sequence[str],
        filters: Dict[str, Any],
        order: Optional[OrderPolicy],
        limit: int
    ) -> List[Dict[str, Any]]:
        lowered = [p.lower() for p in patterns]

        def matches(row: Dict[str, Any]) -> bool:
            value = row.get(field_name)
            # substring matching applies to text columns only
            if not isinstance(value, str):
                return False
            if not any(p in value.lower() for p in lowered):
                return False
            return all(row.get(k) == v for k, v in filters.items())

        return self._select(collection, matches, order, limit)

    async def _find_equal(
        self,
        collection: str,
        field_name: str,
        value: Any,
        order: Optional[OrderPolicy],
        limit: int
    ) -> List[Dict[str, Any]]:
        return self._select(collection, lambda row: row.get(field_name) == value, order, limit)

    def _select(self, collection: str, predicate, order: Optional[OrderPolicy], limit: int) -> List[Dict[str, Any]]:
        rows = [r for r in self._rows.get(collection, []) if predicate(r)]
        if order:
            rows = _ordered(rows, order)
        return [copy.deepcopy(r) for r in rows[:limit]]

    def get_stats(self) -> Dict[str, Any]:
        stats = super().get_stats()
        stats['collections'] = {name: len(items) for name, items in self._rows.items()}
        return stats
