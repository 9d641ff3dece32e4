"""
Dependency injection for the application
"""

from typing import Optional
from fastapi import Request, Depends

from core.cache import RateLimiter
from stores.base_store import BaseQueryStore

from domains.identity.repositories.identity_repository import IdentityRepository
from domains.identity.services.identity_service import IdentityResolver
from domains.identity.services.auth_service import PhoneAuthService


async def get_service_context(request: Request):
    """Get the identity service context created at start-up"""
    return request.app.state.identity_service


async def get_query_store(context=Depends(get_service_context)) -> BaseQueryStore:
    """Get the configured query store"""
    return context.store


async def get_rate_limiter(context=Depends(get_service_context)) -> Optional[RateLimiter]:
    """Get the sign-in rate limiter, or None when rate limiting is disabled"""
    return context.rate_limiter


# Repository dependencies
async def get_identity_repository(
    store: BaseQueryStore = Depends(get_query_store),
    context=Depends(get_service_context)
) -> IdentityRepository:
    """Get identity repository instance"""
    return IdentityRepository(store, context.config.database)


# Service dependencies
async def get_identity_resolver(
    repository: IdentityRepository = Depends(get_identity_repository)
) -> IdentityResolver:
    """Get identity resolver instance"""
    return IdentityResolver(repository)


async def get_phone_auth_service(
    resolver: IdentityResolver = Depends(get_identity_resolver),
    context=Depends(get_service_context)
) -> PhoneAuthService:
    """Get phone auth service instance"""
    return PhoneAuthService(resolver, context.config.logging)
