"""
MongoDB connection management for the mongo query store
"""

import logging
from typing import Optional, Dict, Any

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorCollection
import pymongo

from .config import get_database_config, DatabaseConfig

logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Centralized database connection manager.
    Provides a single point for the motor client and collection handles.
    """

    def __init__(self, config: Optional[DatabaseConfig] = None):
        self.config = config or get_database_config()
        self._client: Optional[AsyncIOMotorClient] = None
        self._database: Optional[AsyncIOMotorDatabase] = None
        self._collections: Dict[str, AsyncIOMotorCollection] = {}
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize database connection and collections"""
        if self._initialized:
            return

        logger.info(f"Initializing database connection to database {self.config.name}")

        try:
            self._client = AsyncIOMotorClient(
                self.config.uri,
                maxPoolSize=self.config.max_pool_size,
                minPoolSize=self.config.min_pool_size,
                maxIdleTimeMS=self.config.max_idle_time_ms,
                serverSelectionTimeoutMS=self.config.server_selection_timeout_ms
            )

            # Test connection
            await self._client.admin.command('ping')
            logger.info("Database connection established successfully")

            self._database = self._client[self.config.name]

            await self._setup_collections()

            self._initialized = True
            logger.info("Database manager initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

    async def _setup_collections(self) -> None:
        """Setup collection handles and lookup indexes"""
        self._collections = {
            self.config.members_collection: self._database[self.config.members_collection],
            self.config.elected_members_collection: self._database[self.config.elected_members_collection],
            self.config.opd_schedule_collection: self._database[self.config.opd_schedule_collection],
            self.config.hospitals_collection: self._database[self.config.hospitals_collection],
        }

        await self._create_indexes()

    async def _create_indexes(self) -> None:
        """
        Create indexes used by the identity lookups.

        Substring regexes cannot use these for the match itself, but the
        primary-key indexes back the deterministic sort and the equality
        filters back the soft join and the active flag.
        """
        try:
            members = self._collections[self.config.members_collection]
            await members.create_index([("S. No.", pymongo.ASCENDING)])
            await members.create_index([("Membership number", pymongo.ASCENDING)])

            elected = self._collections[self.config.elected_members_collection]
            await elected.create_index([("id", pymongo.ASCENDING)])
            await elected.create_index([("membership_number", pymongo.ASCENDING)])

            opd = self._collections[self.config.opd_schedule_collection]
            await opd.create_index([("is_active", pymongo.ASCENDING), ("id", pymongo.ASCENDING)])

            hospitals = self._collections[self.config.hospitals_collection]
            await hospitals.create_index([("id", pymongo.ASCENDING)])

            logger.info("Database indexes created successfully")

        except Exception as e:
            logger.error(f"Failed to create database indexes: {e}")
            raise

    async def cleanup(self) -> None:
        """Cleanup database connections"""
        if self._client:
            self._client.close()
            self._initialized = False
            logger.info("Database connections closed")

    def get_collection(self, name: str) -> AsyncIOMotorCollection:
        """Get a collection by name"""
        if not self._initialized:
            raise RuntimeError("Database manager not initialized. Call initialize() first.")

        if name in self._collections:
            return self._collections[name]

        return self._database[name]

    async def health_check(self) -> Dict[str, Any]:
        """Perform database health check"""
        try:
            if not self._initialized:
                return {"status": "error", "message": "Database not initialized"}

            await self._client.admin.command('ping')

            stats = await self._database.command("dbStats")

            return {
                "status": "healthy",
                "database": self.config.name,
                "collections": stats.get("collections", 0),
                "objects": stats.get("objects", 0),
            }

        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return {
                "status": "unhealthy",
                "error": str(e)
            }
