import hashlib
import re
from dataclasses import replace
from typing import Callable, Optional

from .schema import IdentityBlock


_NON_DIGITS = re.compile(r"\D")
_WHITESPACE = re.compile(r"\s+")
_NON_ALNUM = re.compile(r"[^0-9a-z]")


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def _lower(value: str) -> str:
    return value.strip().lower()


def _digits(value: str) -> str:
    return _NON_DIGITS.sub("", value)


def _gender(value: str) -> str:
    return value.strip()[:1].lower()


def _city(value: str) -> str:
    return _WHITESPACE.sub("", value.strip().lower())


def _state(value: str) -> str:
    return _NON_ALNUM.sub("", value.strip().lower())


def _postal(value: str) -> str:
    return _WHITESPACE.sub("", value.strip())


# Canonicalization applied to each value before hashing. Fields not listed
# here (external_id, fbc, fbp, IP, user agent) are sent unchanged.
NORMALIZERS: dict[str, Callable[[str], str]] = {
    "em": _lower,
    "fn": _lower,
    "ln": _lower,
    "country": _lower,
    "ph": _digits,
    "db": _digits,
    "ge": _gender,
    "ct": _city,
    "st": _state,
    "zp": _postal,
}


def normalize_value(field_name: str, value: str) -> str:
    return NORMALIZERS[field_name](value)


def hash_value(field_name: str, value: str) -> str:
    return sha256_hex(normalize_value(field_name, value))


def _hash_values(field_name: str, values: Optional[tuple[str, ...]]) -> Optional[tuple[str, ...]]:
    if not values:
        return None
    return tuple(hash_value(field_name, value) for value in values)


def hash_identity(block: IdentityBlock) -> IdentityBlock:
    """Return a copy of ``block`` with every sensitive field SHA-256 hashed.

    One digest is produced per value so order and length are preserved.
    Hashing is the last step before transmission; a block that has already
    been hashed is rejected rather than hashed twice.
    """
    if block.hashed:
        raise ValueError("Identity block is already hashed")
    hashed_fields = {name: _hash_values(name, getattr(block, name)) for name in NORMALIZERS}
    return replace(block, hashed=True, **hashed_fields)
