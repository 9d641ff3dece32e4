"""
Auth controller - HTTP endpoint handlers for the phone sign-in check
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Request
from fastapi.responses import ORJSONResponse
import logging

from ..models.identity import (
    LookupStatus,
    PhoneCheckRequest,
    PhoneCheckResponse,
    PhoneCheckData
)
from ..services.auth_service import PhoneAuthService
from core.cache import RateLimiter
from core.dependencies import get_phone_auth_service, get_rate_limiter, get_service_context
from core.exceptions import InvalidPhoneFormat


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _client_key(request: Request, trust_forwarded_for: bool = False) -> str:
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@router.post(
    "/check-phone",
    response_model=PhoneCheckResponse,
    responses={
        400: {"model": PhoneCheckResponse},
        404: {"model": PhoneCheckResponse},
        429: {"model": PhoneCheckResponse},
        503: {"model": PhoneCheckResponse},
    }
)
async def check_phone(
    body: PhoneCheckRequest,
    request: Request,
    service: PhoneAuthService = Depends(get_phone_auth_service),
    limiter: Optional[RateLimiter] = Depends(get_rate_limiter),
    context=Depends(get_service_context)
):
    """
    Check whether a phone number belongs to a registered user

    Looks the number up in the members, on-call doctor and hospital
    tables. Returns the merged user record and the number in +91 form
    when found, 404 when the number is not registered and 503 when the
    lookup itself failed.
    """
    if limiter is not None:
        decision = await limiter.check(
            _client_key(request, context.config.security.trust_forwarded_for)
        )
        if not decision.allowed:
            return ORJSONResponse(
                status_code=429,
                content=PhoneCheckResponse(
                    success=False,
                    message="Too many attempts. Please try again later."
                ).model_dump(),
                headers={"Retry-After": str(decision.retry_after)}
            )

    try:
        result = await service.check_phone(body.phoneNumber)

    except InvalidPhoneFormat as e:
        return ORJSONResponse(
            status_code=400,
            content=PhoneCheckResponse(success=False, message=e.message).model_dump()
        )
    except Exception as e:
        logger.error(f"Error checking phone number: {e}")
        raise HTTPException(status_code=500, detail="Internal error while checking phone number")

    if result.status is LookupStatus.LOOKUP_FAILED:
        return ORJSONResponse(
            status_code=503,
            content=PhoneCheckResponse(success=False, message=result.message).model_dump()
        )

    if result.status is LookupStatus.NOT_FOUND:
        return ORJSONResponse(
            status_code=404,
            content=PhoneCheckResponse(success=False, message=result.message).model_dump()
        )

    return PhoneCheckResponse(
        success=True,
        message=result.message,
        data=PhoneCheckData(
            phoneNumber=result.phone_number,
            table=result.identity.provenance,
            user=dict(result.identity.fields)
        )
    )
