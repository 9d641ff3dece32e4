"""
Postgres REST query store

Talks to the managed Postgres REST endpoint (PostgREST, as exposed by
Supabase) over aiohttp. Substring matching maps to `ilike` with `*`
wildcards inside a single `or=(...)` filter.
"""

from typing import Dict, List, Any, Optional, Sequence
import logging
import re

import aiohttp
import orjson

from core.config import HTTPConfig, PostgrestConfig
from core.exceptions import DataAccessFailure
from core.logging_setup import mask_digits
from .base_store import BaseQueryStore, OrderPolicy, QueryStoreConfig

logger = logging.getLogger(__name__)

_PLAIN_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def quote_identifier(name: str) -> str:
    """Double-quote a column name unless it is a plain identifier"""
    if _PLAIN_IDENTIFIER.match(name):
        return name
    return '"' + name.replace('"', '""') + '"'


def quote_value(value: str) -> str:
    """Quote a filter value so reserved characters ( , . : ( ) ) survive"""
    return '"' + value.replace('\\', '\\\\').replace('"', '\\"') + '"'


def format_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def build_or_filter(field_name: str, patterns: Sequence[str]) -> str:
    """e.g. or=(Mobile.ilike."*98765*",Mobile.ilike."*987-65*")"""
    column = quote_identifier(field_name)
    clauses = [f'{column}.ilike.{quote_value("*" + p + "*")}' for p in patterns]
    return "(" + ",".join(clauses) + ")"


def build_order(order: Optional[OrderPolicy]) -> Optional[str]:
    if order is None:
        return None
    return f"{quote_identifier(order.field)}.{'desc' if order.descending else 'asc'}"


def build_contains_params(
    field_name: str,
    patterns: Sequence[str],
    filters: Optional[Dict[str, Any]],
    order: Optional[OrderPolicy],
    limit: int
) -> Dict[str, str]:
    params = {"select": "*", "or": build_or_filter(field_name, patterns)}
    for key, value in (filters or {}).items():
        params[key] = "eq." + format_scalar(value)
    return _finish_params(params, order, limit)


def build_equal_params(
    field_name: str,
    value: Any,
    order: Optional[OrderPolicy],
    limit: int
) -> Dict[str, str]:
    params = {"select": "*", field_name: "eq." + format_scalar(value)}
    return _finish_params(params, order, limit)


def error_code(body: bytes) -> Optional[str]:
    """PostgREST error code (e.g. PGRST100) from an error body, if present"""
    try:
        payload = orjson.loads(body)
    except orjson.JSONDecodeError:
        return None
    if isinstance(payload, dict) and payload.get("code") is not None:
        return str(payload["code"])
    return None


def _finish_params(params: Dict[str, str], order: Optional[OrderPolicy], limit: int) -> Dict[str, str]:
    order_clause = build_order(order)
    if order_clause:
        params["order"] = order_clause
    params["limit"] = str(limit)
    return params


class PostgrestQueryStore(BaseQueryStore):
    """Query store backed by a PostgREST endpoint"""

    def __init__(
        self,
        postgrest_config: Optional[PostgrestConfig] = None,
        http_config: Optional[HTTPConfig] = None,
        config: Optional[QueryStoreConfig] = None,
        session: Optional[aiohttp.ClientSession] = None
    ):
        super().__init__(config)
        self.postgrest_config = postgrest_config or PostgrestConfig()
        self.http_config = http_config or HTTPConfig()
        self.session = session
        self._owns_session = session is None

    @property
    def base_url(self) -> str:
        return (self.postgrest_config.url or "").rstrip("/") + self.postgrest_config.rest_path

    def _headers(self) -> Dict[str, str]:
        key = self.postgrest_config.api_key or ""
        return {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Accept": "application/json",
            "Accept-Profile": self.postgrest_config.schema,
        }

    async def initialize(self) -> None:
        if self._initialized:
            return

        if not self.postgrest_config.url:
            raise ValueError("SUPABASE_URL must be set to use the postgrest store")

        if self.session is None:
            connector = aiohttp.TCPConnector(
                limit=self.http_config.max_pool_size,
                limit_per_host=self.http_config.max_per_host,
                ttl_dns_cache=self.http_config.ttl_dns_cache
            )
            timeout = aiohttp.ClientTimeout(
                total=self.http_config.total_timeout,
                connect=self.http_config.connect_timeout
            )
            self.session = aiohttp.ClientSession(
                connector=connector,
                timeout=timeout,
                json_serialize=lambda x: orjson.dumps(x).decode()
            )

        self._initialized = True
        logger.info(f"PostgREST store initialized against {self.base_url}")

    async def _find_containing(
        self,
        collection: str,
        field_name: str,
        patterns: Sequence[str],
        filters: Dict[str, Any],
        order: Optional[OrderPolicy],
        limit: int
    ) -> List[Dict[str, Any]]:
        params = build_contains_params(field_name, patterns, filters, order, limit)
        return await self._get(collection, params)

    async def _find_equal(
        self,
        collection: str,
        field_name: str,
        value: Any,
        order: Optional[OrderPolicy],
        limit: int
    ) -> List[Dict[str, Any]]:
        params = build_equal_params(field_name, value, order, limit)
        return await self._get(collection, params)

    async def _get(self, collection: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        url = f"{self.base_url}/{collection}"
        async with self.session.get(url, params=params, headers=self._headers()) as response:
            body = await response.read()
            if response.status >= 400:
                # error bodies echo the filter, which holds the caller's number
                logger.debug(
                    f"PostgREST error body for {collection}: "
                    f"{mask_digits(body[:200].decode(errors='replace'))}"
                )
                raise DataAccessFailure(
                    f"PostgREST returned {response.status} for {collection} "
                    f"(code={error_code(body) or 'unknown'})",
                    collection=collection
                )
            rows = orjson.loads(body) if body else []
            if not isinstance(rows, list):
                raise DataAccessFailure(
                    f"Unexpected PostgREST payload for {collection}",
                    collection=collection
                )
            return rows

    async def health_check(self) -> Dict[str, Any]:
        if not self._initialized:
            return {"status": "error", "store": self.store_name, "message": "Store not initialized"}
        try:
            async with self.session.get(self.base_url + "/", headers=self._headers()) as response:
                healthy = response.status < 500
                return {
                    "status": "healthy" if healthy else "unhealthy",
                    "store": self.store_name,
                    "http_status": response.status
                }
        except Exception as e:
            logger.error(f"PostgREST health check failed: {e}")
            return {"status": "unhealthy", "store": self.store_name, "error": str(e)}

    async def cleanup(self) -> None:
        if self.session and self._owns_session:
            await self.session.close()
            self.session = None
        await super().cleanup()
