"""Address validation and EIP-55 checksum helpers"""

import re
from typing import Any

from eth_utils import is_checksum_address
from web3 import Web3

from polygon_nodes.errors import InvalidAddressError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

_ADDRESS_RE = re.compile(r"0x[0-9a-fA-F]{40}")
_EMBEDDED_ADDRESS_RE = re.compile(r"0x[a-fA-F0-9]{40}")


def validate_address(address: Any) -> bool:
    """
    Check that a value is a 0x-prefixed 20-byte hex address.

    All-lowercase and all-uppercase hex are accepted as-is; mixed case
    must carry a valid EIP-55 checksum.
    """
    if not isinstance(address, str) or not _ADDRESS_RE.fullmatch(address):
        return False

    body = address[2:]
    if body == body.lower() or body == body.upper():
        return True

    return is_checksum_address(address)


def checksum_address(address: Any) -> str:
    """Return the EIP-55 checksummed form, raising InvalidAddressError if invalid"""
    if not validate_address(address):
        raise InvalidAddressError(address)
    return Web3.to_checksum_address(address)


def addresses_equal(address1: Any, address2: Any) -> bool:
    """Compare two addresses case-insensitively; invalid input never matches"""
    if not validate_address(address1) or not validate_address(address2):
        return False
    return address1.lower() == address2.lower()


def is_zero_address(address: Any) -> bool:
    return addresses_equal(address, ZERO_ADDRESS)


def shorten_address(address: Any, chars: int = 4) -> Any:
    """Shorten an address for display (0x1234...abcd)"""
    if not validate_address(address):
        return address
    checksummed = Web3.to_checksum_address(address)
    return f"{checksummed[:chars + 2]}...{checksummed[-chars:]}"


def parse_address(text: str) -> str:
    """Extract and checksum the first address found in free text"""
    trimmed = text.strip()

    if validate_address(trimmed):
        return checksum_address(trimmed)

    match = _EMBEDDED_ADDRESS_RE.search(trimmed)
    if match:
        return checksum_address(match.group(0))

    raise InvalidAddressError(text)


def topic_to_address(topic: str) -> str:
    """Decode an indexed address topic (32-byte word) into a checksummed address"""
    if isinstance(topic, (bytes, bytearray)):
        topic = Web3.to_hex(topic)
    return Web3.to_checksum_address("0x" + topic[-40:])


def address_to_topic(address: str) -> str:
    """Left-pad an address into a 32-byte topic for log filters"""
    return "0x" + checksum_address(address)[2:].lower().rjust(64, "0")


async def is_contract(provider, address: str) -> bool:
    """Check whether an address has deployed code"""
    code = await provider.get_code(checksum_address(address))
    return code not in ("0x", "0x0", "", None)
