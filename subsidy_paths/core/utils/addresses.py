from typing import Any

from eth_utils import is_address, to_checksum_address

from subsidy_paths.core.constants.base import ZERO_ADDRESS
from subsidy_paths.core.errors import InvalidInputError


def normalize_address(value: Any, *, field: str = "address") -> str:
    """Checksum ``value``; reject malformed input and the zero address."""
    value_str = str(value or "").strip()
    if not is_address(value_str):
        raise InvalidInputError(f"{field} is not a valid address: {value!r}")
    address = to_checksum_address(value_str)
    if address == ZERO_ADDRESS:
        raise InvalidInputError(f"{field} must not be the zero address")
    return address


def same_address(a: str | None, b: str | None) -> bool:
    if not a or not b:
        return False
    return str(a).lower() == str(b).lower()
