"""
MongoDB query store

Runs the lookup contract against motor collections. Substring matching is a
case-insensitive $regex on the escaped pattern, one clause per pattern
joined with $or.
"""

from typing import Dict, List, Any, Optional, Sequence
import logging
import re

import pymongo

from core.database import DatabaseManager
from .base_store import BaseQueryStore, OrderPolicy, QueryStoreConfig

logger = logging.getLogger(__name__)


def build_contains_query(
    field_name: str,
    patterns: Sequence[str],
    filters: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Build the Mongo filter for 'field contains any pattern AND filters'"""
    query: Dict[str, Any] = {
        "$or": [
            {field_name: {"$regex": re.escape(p), "$options": "i"}}
            for p in patterns
        ]
    }
    for key, value in (filters or {}).items():
        query[key] = value
    return query


def build_sort(order: Optional[OrderPolicy]) -> Optional[List[tuple]]:
    if order is None:
        return None
    return [(order.field, pymongo.DESCENDING if order.descending else pymongo.ASCENDING)]


class MongoQueryStore(BaseQueryStore):
    """Query store backed by MongoDB through motor"""

    def __init__(
        self,
        db_manager: Optional[DatabaseManager] = None,
        config: Optional[QueryStoreConfig] = None
    ):
        super().__init__(config)
        self.db_manager = db_manager or DatabaseManager()
        self._owns_manager = db_manager is None

    async def initialize(self) -> None:
        if self._initialized:
            return
        await self.db_manager.initialize()
        self._initialized = True
        logger.info("Mongo query store initialized")

    async def _find_containing(
        self,
        collection: str,
        field_name: str,
        patterns: Sequence[str],
        filters: Dict[str, Any],
        order: Optional[OrderPolicy],
        limit: int
    ) -> List[Dict[str, Any]]:
        return await self._find(collection, build_contains_query(field_name, patterns, filters), order, limit)

    async def _find_equal(
        self,
        collection: str,
        field_name: str,
        value: Any,
        order: Optional[OrderPolicy],
        limit: int
    ) -> List[Dict[str, Any]]:
        return await self._find(collection, {field_name: value}, order, limit)

    async def _find(
        self,
        collection: str,
        query: Dict[str, Any],
        order: Optional[OrderPolicy],
        limit: int
    ) -> List[Dict[str, Any]]:
        cursor = self.db_manager.get_collection(collection).find(query, {"_id": 0})

        sort = build_sort(order)
        if sort:
            cursor = cursor.sort(sort)

        return await cursor.limit(limit).to_list(length=limit)

    async def health_check(self) -> Dict[str, Any]:
        health = await self.db_manager.health_check()
        health['store'] = self.store_name
        return health

    async def cleanup(self) -> None:
        if self._owns_manager:
            await self.db_manager.cleanup()
        await super().cleanup()
