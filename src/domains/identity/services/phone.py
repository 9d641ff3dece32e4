"""
Phone number normalization and formatting.

Stored phone fields were typed in by hand over many years with no format
constraint, so lookups search for a small fan-out of representations of
the input rather than one canonical value.

Country code 91 (India) is fixed. It is not configurable.
"""

from typing import List, Tuple, Iterator
from dataclasses import dataclass

from core.exceptions import InvalidPhoneFormat

COUNTRY_CODE = "91"
MIN_PATTERN_LENGTH = 5


def clean_digits(phone: str) -> str:
    """Strip every non-digit character"""
    return ''.join(c for c in (phone or "") if c.isdigit())


def cosmetic_variants(digits: str) -> List[str]:
    """
    Re-punctuated forms of a 10-digit number, as legacy free-text
    fields tend to hold them.

    >>> cosmetic_variants("9876543210")
    ['987-654-3210', '987 654 3210', '(987) 654-3210', '98765 43210', '9876 543 210']
    """
    if len(digits) != 10:
        return []
    return [
        f"{digits[:3]}-{digits[3:6]}-{digits[6:]}",
        f"{digits[:3]} {digits[3:6]} {digits[6:]}",
        f"({digits[:3]}) {digits[3:6]}-{digits[6:]}",
        f"{digits[:5]} {digits[5:]}",
        f"{digits[:4]} {digits[4:7]} {digits[7:]}",
    ]


def _unique(values) -> Tuple[str, ...]:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return tuple(seen)


@dataclass(frozen=True)
class PhoneCandidateSet:
    """Deduplicated representations of one input number, in generation order"""
    raw: str
    clean: str
    base: Tuple[str, ...]
    all: Tuple[str, ...]

    def __iter__(self) -> Iterator[str]:
        return iter(self.all)

    def __len__(self) -> int:
        return len(self.all)

    def __contains__(self, item: object) -> bool:
        return item in self.all

    def __bool__(self) -> bool:
        return bool(self.all)


def build_candidates(raw_phone: str) -> PhoneCandidateSet:
    """
    Expand a raw phone string into every representation stored data
    might contain.

    Args:
        raw_phone: Phone number in any format

    Returns:
        PhoneCandidateSet; empty when fewer than five digits remain
    """
    raw_phone = raw_phone or ""
    clean = clean_digits(raw_phone)
    patterns = []

    if len(clean) >= MIN_PATTERN_LENGTH:
        patterns.append(clean)

    if len(clean) == 10:
        patterns.append(COUNTRY_CODE + clean)
        patterns.append("+" + COUNTRY_CODE + clean)

    if len(clean) == 12 and clean.startswith(COUNTRY_CODE):
        patterns.append(clean[2:])

    # clean is digits only, so this never matches; "+919876543210" is
    # handled by the 12-digit branch above
    if len(clean) == 13 and clean.startswith("+" + COUNTRY_CODE):
        patterns.append(clean[3:])

    base = _unique(patterns)

    expanded = list(base)
    for pattern in base:
        expanded.extend(cosmetic_variants(pattern))

    return PhoneCandidateSet(raw=raw_phone, clean=clean, base=base, all=_unique(expanded))


def validate_phone_number(phone: str) -> str:
    """
    Shape a confirmed number into +91XXXXXXXXXX.

    Raises:
        InvalidPhoneFormat: if the number is neither a 10-digit domestic
            number nor a 91-prefixed 12-digit one
    """
    phone = phone or ""
    clean = clean_digits(phone)

    if len(clean) == 10:
        return "+" + COUNTRY_CODE + clean

    if len(clean) == 12 and clean.startswith(COUNTRY_CODE):
        return "+" + clean

    if phone.startswith("+" + COUNTRY_CODE) and len(clean) == 12:
        return phone

    raise InvalidPhoneFormat()
