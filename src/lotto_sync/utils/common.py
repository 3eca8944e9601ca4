"""Small helpers shared across the client."""

from typing import Optional


def same_account(left: Optional[str], right: Optional[str]) -> bool:
    """Accounts compare case-insensitively; a missing side never matches."""
    if not left or not right:
        return False
    return left.lower() == right.lower()


def shorten_eth_address(address: Optional[str]) -> str:
    """Shorten an address for status messages: '0x1234...abcd'."""
    if not address:
        return ""
    if len(address) <= 10:
        return address
    return f"{address[:6]}...{address[-4:]}"
