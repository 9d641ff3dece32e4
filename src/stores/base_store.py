"""
Base Query Store Interface

Defines the read-only query contract the identity resolver depends on.
Every backend (in-memory, MongoDB, Postgres REST) implements it so the
resolver never needs to know which one it is talking to.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Any, Optional, Sequence
from dataclasses import dataclass, field
import asyncio
import logging
import time

from core.exceptions import DataAccessFailure, LookupTimeout, StoreNotInitialized
from core.logging_setup import mask_digits

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderPolicy:
    """Deterministic ordering applied before a result limit"""
    field: str
    descending: bool = False


@dataclass
class QueryStoreConfig:
    """Base configuration for query stores"""
    timeout_seconds: float = 5.0
    max_limit: int = 100
    order_policies: Dict[str, OrderPolicy] = field(default_factory=dict)

    def __post_init__(self):
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if self.max_limit <= 0:
            raise ValueError("max_limit must be positive")


class BaseQueryStore(ABC):
    """
    Abstract base class for all query stores

    Public methods wrap the backend calls with a timeout and translate
    every backend fault into DataAccessFailure, so callers only ever see
    rows, LookupTimeout or DataAccessFailure.
    """

    def __init__(self, config: Optional[QueryStoreConfig] = None):
        self.config = config or QueryStoreConfig()
        self.store_name = self.__class__.__name__.replace('QueryStore', '').replace('Store', '').lower()
        self._initialized = False
        self._query_count = 0
        self._error_count = 0
        self._total_query_ms = 0.0

    @abstractmethod
    async def initialize(self) -> None:
        """Set up connections needed by the store"""
        pass

    @abstractmethod
    async def _find_containing(
        self,
        collection: str,
        field_name: str,
        patterns: Sequence[str],
        filters: Dict[str, Any],
        order: Optional[OrderPolicy],
        limit: int
    ) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def _find_equal(
        self,
        collection: str,
        field_name: str,
        value: Any,
        order: Optional[OrderPolicy],
        limit: int
    ) -> List[Dict[str, Any]]:
        pass

    async def find_containing(
        self,
        collection: str,
        field_name: str,
        patterns: Sequence[str],
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 1
    ) -> List[Dict[str, Any]]:
        """
        Rows whose field case-insensitively contains any of the patterns

        Args:
            collection: Collection or table name
            field_name: Field to match the patterns against
            patterns: Substrings, any of which may match
            filters: Extra equality conditions, all of which must hold
            limit: Maximum rows to return

        Returns:
            Matching rows in the collection's ordering policy
        """
        patterns = [p for p in patterns if p]
        if not patterns:
            return []

        return await self._run(
            collection,
            self._find_containing(
                collection,
                field_name,
                patterns,
                filters or {},
                self.order_for(collection),
                self._clamp(limit)
            )
        )

    async def find_equal(
        self,
        collection: str,
        field_name: str,
        value: Any,
        limit: int = 1
    ) -> List[Dict[str, Any]]:
        """Rows whose field equals value exactly"""
        return await self._run(
            collection,
            self._find_equal(
                collection,
                field_name,
                value,
                self.order_for(collection),
                self._clamp(limit)
            )
        )

    def order_for(self, collection: str) -> Optional[OrderPolicy]:
        return self.config.order_policies.get(collection)

    def set_order_policy(self, collection: str, policy: OrderPolicy) -> None:
        self.config.order_policies[collection] = policy

    async def _run(self, collection: str, query) -> List[Dict[str, Any]]:
        if not self._initialized:
            query.close()
            raise StoreNotInitialized(f"{self.store_name} store not initialized. Call initialize() first.")

        start = time.perf_counter()
        self._query_count += 1
        try:
            return await asyncio.wait_for(query, timeout=self.config.timeout_seconds)
        except asyncio.TimeoutError:
            self._error_count += 1
            logger.error(f"Query on {collection} timed out after {self.config.timeout_seconds}s")
            raise LookupTimeout(
                f"Query on {collection} timed out",
                collection=collection
            )
        except DataAccessFailure:
            self._error_count += 1
            raise
        except Exception as e:
            self._error_count += 1
            detail = mask_digits(str(e))
            logger.error(f"Query on {collection} failed: {detail}")
            raise DataAccessFailure(
                f"Query on {collection} failed: {detail}",
                collection=collection
            ) from e
        finally:
            self._total_query_ms += (time.perf_counter() - start) * 1000

    def _clamp(self, limit: int) -> int:
        return max(1, min(limit, self.config.max_limit))

    async def health_check(self) -> Dict[str, Any]:
        """
        Check store health status

        Default implementation reports initialization state only.
        Stores with a remote backend should override and ping it.
        """
        return {
            'status': 'healthy' if self._initialized else 'error',
            'store': self.store_name,
            'initialized': self._initialized
        }

    def get_stats(self) -> Dict[str, Any]:
        """Basic query statistics"""
        return {
            'store': self.store_name,
            'initialized': self._initialized,
            'queries': self._query_count,
            'errors': self._error_count,
            'avg_query_ms': self._total_query_ms / self._query_count if self._query_count else 0.0,
            'config': {
                'timeout_seconds': self.config.timeout_seconds,
                'max_limit': self.config.max_limit,
                'order_policies': {
                    name: {'field': p.field, 'descending': p.descending}
                    for name, p in self.config.order_policies.items()
                }
            }
        }

    async def cleanup(self) -> None:
        """Release store resources"""
        self._initialized = False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(initialized={self._initialized})"
