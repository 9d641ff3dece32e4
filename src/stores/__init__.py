"""
Query Stores Package

This package contains the read-only query store implementations used by the
identity resolver. They all follow the BaseQueryStore interface.

Available Stores:
- InMemoryQueryStore: rows held in process, for tests and local development
- MongoQueryStore: MongoDB through motor
- PostgrestQueryStore: managed Postgres REST endpoint through aiohttp
"""

from .base_store import BaseQueryStore, OrderPolicy, QueryStoreConfig
from .memory import InMemoryQueryStore
from .mongo import MongoQueryStore
from .postgrest import PostgrestQueryStore

__all__ = [
    # Base classes
    'BaseQueryStore',
    'OrderPolicy',
    'QueryStoreConfig',

    # Store implementations
    'InMemoryQueryStore',
    'MongoQueryStore',
    'PostgrestQueryStore',
]

# Store registry for dynamic loading
STORE_REGISTRY = {
    'memory': InMemoryQueryStore,
    'mongo': MongoQueryStore,
    'postgrest': PostgrestQueryStore
}


def get_store_class(store_name: str):
    """
    Get store class by name

    Args:
        store_name: Name of the store ('memory', 'mongo', 'postgrest')

    Returns:
        Store class

    Raises:
        ValueError: If store name is not recognized
    """
    store_name = store_name.lower()

    if store_name not in STORE_REGISTRY:
        available = ', '.join(STORE_REGISTRY.keys())
        raise ValueError(f"Unknown store '{store_name}'. Available stores: {available}")

    return STORE_REGISTRY[store_name]


def create_store(store_name: str, config=None, **kwargs):
    """
    Create store instance by name

    Args:
        store_name: Name of the store
        config: QueryStoreConfig for timeouts and ordering
        **kwargs: Additional arguments passed to the store constructor

    Returns:
        Store instance
    """
    store_class = get_store_class(store_name)
    return store_class(config=config, **kwargs)


def build_store_config(app_config) -> QueryStoreConfig:
    """Translate application settings into a QueryStoreConfig with primary-key ordering"""
    db = app_config.database
    store = app_config.store
    return QueryStoreConfig(
        timeout_seconds=store.query_timeout_seconds,
        order_policies={
            db.members_collection: OrderPolicy(store.members_order_field),
            db.elected_members_collection: OrderPolicy(store.elected_order_field),
            db.opd_schedule_collection: OrderPolicy(store.opd_order_field),
            db.hospitals_collection: OrderPolicy(store.hospitals_order_field),
        }
    )


def create_store_from_config(app_config) -> BaseQueryStore:
    """Create the store named by STORE_BACKEND, wired with application settings"""
    name = app_config.store.backend.lower()
    store_config = build_store_config(app_config)

    if name == 'postgrest':
        return create_store(
            name,
            config=store_config,
            postgrest_config=app_config.postgrest,
            http_config=app_config.http
        )
    if name == 'mongo':
        from core.database import DatabaseManager
        return create_store(name, config=store_config, db_manager=DatabaseManager(app_config.database))
    return create_store(name, config=store_config)
