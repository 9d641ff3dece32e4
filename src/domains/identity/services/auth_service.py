"""
Phone auth service - the sign-in check built on the identity resolver
"""

from typing import Optional
import logging

from ..models.identity import LookupStatus, PhoneCheckResult, ResolvedIdentity
from .identity_service import IdentityResolver
from .phone import validate_phone_number
from core.config import LoggingConfig
from core.exceptions import DataAccessFailure, LookupTimeout
from core.logging_setup import mask_digits, mask_phone, length_class


logger = logging.getLogger(__name__)

MESSAGE_VERIFIED = "Phone number verified in database"
MESSAGE_NOT_REGISTERED = "Phone number not registered in the system"
MESSAGE_RETRY = "Unable to verify phone number right now. Please try again."


class PhoneAuthService:
    """Service layer for the phone sign-in check"""

    def __init__(self, resolver: IdentityResolver, logging_config: Optional[LoggingConfig] = None):
        self.resolver = resolver
        self.logging_config = logging_config or LoggingConfig()

    def _loggable(self, phone: str) -> str:
        if self.logging_config.redact_phone:
            return mask_phone(phone)
        return phone

    async def check_phone(self, phone_number: str) -> PhoneCheckResult:
        """
        Check whether a phone number belongs to a registered user

        Returns a FOUND, NOT_FOUND or LOOKUP_FAILED result. An unregistered
        number and a failed lookup are never confused.

        Raises:
            InvalidPhoneFormat: if the number matched a record but cannot be
                shaped into +91XXXXXXXXXX
        """
        try:
            identity = await self.resolver.resolve_phone_identity(phone_number)

        except DataAccessFailure as e:
            kind = "timed out" if isinstance(e, LookupTimeout) else "failed"
            logger.error(
                f"Phone lookup {kind} at stage={e.stage or 'unknown'} "
                f"collection={e.collection} input={length_class(phone_number)}: {mask_digits(e.message)}"
            )
            return PhoneCheckResult(
                status=LookupStatus.LOOKUP_FAILED,
                identity=ResolvedIdentity.not_found(),
                failed_stage=e.stage,
                message=MESSAGE_RETRY
            )

        if not identity.found:
            logger.info(f"Phone {self._loggable(phone_number)} not registered")
            return PhoneCheckResult(
                status=LookupStatus.NOT_FOUND,
                identity=identity,
                message=MESSAGE_NOT_REGISTERED
            )

        formatted = validate_phone_number(phone_number)
        logger.info(f"Phone number verified in database: {self._loggable(formatted)} ({identity.provenance})")

        return PhoneCheckResult(
            status=LookupStatus.FOUND,
            identity=identity,
            phone_number=formatted,
            message=MESSAGE_VERIFIED
        )
