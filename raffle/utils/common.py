"""Common utility functions for the raffle keeper."""

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def shorten_eth_address(address: str) -> str:
    """Shorten an Ethereum address for display: '0x123456...abcd'.
    Returns the first 6 and last 4 characters, separated by '...'.
    Handles addresses with or without '0x' prefix.
    """
    if not address:
        return ""
    addr = address.lower()
    if addr.startswith("0x"):
        addr = addr[2:]
    if len(addr) < 10:
        return f"0x{addr}"
    return f"0x{addr[:6]}...{addr[-4:]}"


def is_zero_address(address: str) -> bool:
    return not address or address.lower() == ZERO_ADDRESS
