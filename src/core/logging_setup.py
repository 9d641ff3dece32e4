"""
Logging setup and phone redaction helpers
"""

import logging
import re
from logging.handlers import RotatingFileHandler
from typing import Optional

from .config import LoggingConfig

# digit runs that may carry separators, e.g. "+91 987-654-3210"
_NUMBER_RUN = re.compile(r"\+?\d[\d\s().\-]*\d")


def configure_logging(config: Optional[LoggingConfig] = None) -> None:
    """Apply level, format and optional rotating file output to the root logger"""
    config = config or LoggingConfig()

    logging.basicConfig(level=config.level.upper(), format=config.format)

    if config.log_file:
        root = logging.getLogger()
        if not any(isinstance(h, RotatingFileHandler) for h in root.handlers):
            handler = RotatingFileHandler(
                config.log_file,
                maxBytes=config.max_file_size,
                backupCount=config.backup_count
            )
            handler.setFormatter(logging.Formatter(config.format))
            root.addHandler(handler)


def mask_phone(phone: Optional[str], visible: int = 4) -> str:
    """Mask all but the last few digits, e.g. '******3210'"""
    if not phone:
        return ""
    digits = ''.join(filter(str.isdigit, phone))
    if len(digits) <= visible:
        return "*" * len(digits)
    return "*" * (len(digits) - visible) + digits[-visible:]


def mask_digits(text: Optional[str]) -> str:
    """Mask every number of five or more digits found in free text"""
    if not text:
        return ""

    def _mask(match):
        run = match.group(0)
        if sum(c.isdigit() for c in run) < 5:
            return run
        return mask_phone(run)

    return _NUMBER_RUN.sub(_mask, text)


def length_class(phone: Optional[str]) -> str:
    """Coarse description of an input number, safe to log"""
    digits = ''.join(filter(str.isdigit, phone or ""))
    if len(digits) < 5:
        return "short"
    if len(digits) == 10:
        return "domestic"
    if len(digits) == 12 and digits.startswith("91"):
        return "country_code"
    return "other"
