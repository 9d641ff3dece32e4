"""
Centralized configuration management for the Identity Service
"""

import os
from typing import Optional, Dict
from dataclasses import dataclass, field
from functools import lru_cache
import logging

logger = logging.getLogger(__name__)


@dataclass
class DatabaseConfig:
    """MongoDB settings, used by the mongo store"""
    uri: str = field(default_factory=lambda: os.getenv("MONGODB_URI", "mongodb://localhost:27017"))
    name: str = field(default_factory=lambda: os.getenv("PORTAL_DB", "trustee_portal"))
    max_pool_size: int = field(default_factory=lambda: int(os.getenv("MONGO_POOL_SIZE", "50")))
    min_pool_size: int = field(default_factory=lambda: int(os.getenv("MONGO_MIN_POOL_SIZE", "10")))
    max_idle_time_ms: int = field(default_factory=lambda: int(os.getenv("MONGO_MAX_IDLE_TIME_MS", "10000")))
    server_selection_timeout_ms: int = field(default_factory=lambda: int(os.getenv("MONGO_SERVER_SELECTION_TIMEOUT_MS", "5000")))

    # Collection names, shared by every store backend
    members_collection: str = field(default_factory=lambda: os.getenv("MEMBERS_TABLE", "Members Table"))
    elected_members_collection: str = field(default_factory=lambda: os.getenv("ELECTED_MEMBERS_TABLE", "elected_members"))
    opd_schedule_collection: str = field(default_factory=lambda: os.getenv("OPD_SCHEDULE_TABLE", "opd_schedule"))
    hospitals_collection: str = field(default_factory=lambda: os.getenv("HOSPITALS_TABLE", "hospitals"))


@dataclass
class PostgrestConfig:
    """Managed Postgres REST endpoint settings, used by the postgrest store"""
    url: Optional[str] = field(default_factory=lambda: os.getenv("SUPABASE_URL"))
    api_key: Optional[str] = field(default_factory=lambda: os.getenv("SUPABASE_KEY"))
    schema: str = field(default_factory=lambda: os.getenv("SUPABASE_SCHEMA", "public"))
    rest_path: str = "/rest/v1"


@dataclass
class StoreConfig:
    """Query store selection and per-query limits"""
    backend: str = field(default_factory=lambda: os.getenv("STORE_BACKEND", "postgrest"))
    query_timeout_seconds: float = field(default_factory=lambda: float(os.getenv("STORE_QUERY_TIMEOUT", "5")))

    # Primary keys used as the deterministic ordering for first-match lookups
    members_order_field: str = field(default_factory=lambda: os.getenv("MEMBERS_ORDER_FIELD", "S. No."))
    elected_order_field: str = field(default_factory=lambda: os.getenv("ELECTED_ORDER_FIELD", "id"))
    opd_order_field: str = field(default_factory=lambda: os.getenv("OPD_ORDER_FIELD", "id"))
    hospitals_order_field: str = field(default_factory=lambda: os.getenv("HOSPITALS_ORDER_FIELD", "id"))


@dataclass
class RedisConfig:
    """Redis configuration settings"""
    host: str = field(default_factory=lambda: os.getenv("REDIS_HOST", "localhost"))
    port: int = field(default_factory=lambda: int(os.getenv("REDIS_PORT", "6379")))
    password: Optional[str] = field(default_factory=lambda: os.getenv("REDIS_PASSWORD"))
    db: int = field(default_factory=lambda: int(os.getenv("REDIS_DB", "0")))
    max_connections: int = field(default_factory=lambda: int(os.getenv("REDIS_POOL_SIZE", "50")))
    socket_timeout: int = field(default_factory=lambda: int(os.getenv("REDIS_SOCKET_TIMEOUT", "30")))
    socket_connect_timeout: int = field(default_factory=lambda: int(os.getenv("REDIS_CONNECT_TIMEOUT", "30")))
    key_prefix: str = field(default_factory=lambda: os.getenv("REDIS_KEY_PREFIX", "portal"))


@dataclass
class HTTPConfig:
    """HTTP client configuration settings"""
    total_timeout: int = field(default_factory=lambda: int(os.getenv("HTTP_TOTAL_TIMEOUT", "30")))
    connect_timeout: int = field(default_factory=lambda: int(os.getenv("HTTP_CONNECT_TIMEOUT", "10")))
    max_pool_size: int = field(default_factory=lambda: int(os.getenv("CONNECTION_POOL_SIZE", "100")))
    max_per_host: int = field(default_factory=lambda: int(os.getenv("HTTP_MAX_PER_HOST", "30")))
    ttl_dns_cache: int = field(default_factory=lambda: int(os.getenv("HTTP_DNS_CACHE_TTL", "300")))


@dataclass
class SecurityConfig:
    """Security configuration settings"""
    # Rate limiting on the sign-in check, per client IP
    rate_limit_enabled: bool = field(default_factory=lambda: os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true")
    rate_limit_requests: int = field(default_factory=lambda: int(os.getenv("RATE_LIMIT_REQUESTS", "20")))
    rate_limit_window: int = field(default_factory=lambda: int(os.getenv("RATE_LIMIT_WINDOW", "60")))
    # Only enable behind a proxy that overwrites X-Forwarded-For
    trust_forwarded_for: bool = field(default_factory=lambda: os.getenv("TRUST_FORWARDED_FOR", "false").lower() == "true")

    # CORS settings
    cors_origins: list = field(default_factory=lambda: os.getenv("CORS_ORIGINS", "*").split(","))
    cors_allow_credentials: bool = field(default_factory=lambda: os.getenv("CORS_ALLOW_CREDENTIALS", "true").lower() == "true")


@dataclass
class LoggingConfig:
    """Logging configuration settings"""
    level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    format: str = field(default_factory=lambda: os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    redact_phone: bool = field(default_factory=lambda: os.getenv("LOG_REDACT_PHONE", "true").lower() == "true")

    # File logging
    log_file: Optional[str] = field(default_factory=lambda: os.getenv("LOG_FILE"))
    max_file_size: int = field(default_factory=lambda: int(os.getenv("LOG_MAX_FILE_SIZE", "10485760")))  # 10MB
    backup_count: int = field(default_factory=lambda: int(os.getenv("LOG_BACKUP_COUNT", "5")))


@dataclass
class ApplicationConfig:
    """Main application configuration"""
    # Basic app settings
    app_name: str = field(default_factory=lambda: os.getenv("APP_NAME", "Trustee Portal Identity Service"))
    app_version: str = field(default_factory=lambda: os.getenv("APP_VERSION", "1.0.0"))
    environment: str = field(default_factory=lambda: os.getenv("ENVIRONMENT", "development"))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")

    # Server settings
    host: str = field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "5001")))
    workers: int = field(default_factory=lambda: int(os.getenv("WORKERS", "1")))

    # Component configurations
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    postgrest: PostgrestConfig = field(default_factory=PostgrestConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    http: HTTPConfig = field(default_factory=HTTPConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        """Validate configuration after initialization"""
        self.validate()

    def validate(self):
        """Validate configuration settings"""
        errors = []

        backend = self.store.backend.lower()
        if backend not in ("postgrest", "mongo", "memory"):
            errors.append(f"Unknown store backend '{self.store.backend}'")

        if backend == "mongo":
            if not self.database.uri:
                errors.append("Database URI is required for the mongo store")
            if not self.database.name:
                errors.append("Database name is required for the mongo store")

        if backend == "postgrest" and self.environment == "production":
            if not self.postgrest.url:
                errors.append("SUPABASE_URL is required for the postgrest store")
            if not self.postgrest.api_key:
                errors.append("SUPABASE_KEY is required for the postgrest store")

        if self.store.query_timeout_seconds <= 0:
            errors.append("Store query timeout must be positive")

        if self.security.rate_limit_enabled:
            if not self.redis.host:
                errors.append("Redis host is required when rate limiting is enabled")
            if not (1 <= self.redis.port <= 65535):
                errors.append("Redis port must be between 1 and 65535")
            if self.security.rate_limit_requests <= 0 or self.security.rate_limit_window <= 0:
                errors.append("Rate limit requests and window must be positive")

        if errors:
            raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")

    def get_database_collections(self) -> Dict[str, str]:
        """Get all collection names"""
        return {
            "members": self.database.members_collection,
            "elected_members": self.database.elected_members_collection,
            "opd_schedule": self.database.opd_schedule_collection,
            "hospitals": self.database.hospitals_collection,
        }


@lru_cache(maxsize=1)
def get_config() -> ApplicationConfig:
    """
    Get application configuration singleton.
    Uses LRU cache to ensure same instance is returned.
    """
    config = ApplicationConfig()
    logger.info(f"Configuration loaded for environment: {config.environment}")
    return config


# Convenience functions for common config access patterns
def get_database_config() -> DatabaseConfig:
    """Get database configuration"""
    return get_config().database


def get_redis_config() -> RedisConfig:
    """Get Redis configuration"""
    return get_config().redis
