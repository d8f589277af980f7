import random
from decimal import Decimal

from eth_utils import from_wei


def truncate_address(address: str, chars: int = 4) -> str:
    return f"{address[:chars + 2]}...{address[-chars:]}"


def truncate_hash(hash_hex: str, chars: int = 16) -> str:
    return f"{hash_hex[:chars + 2]}..."


def format_eth(balance_wei: int, decimals: int = 4) -> str:
    balance = from_wei(balance_wei, "ether")
    if balance == 0:
        return "0"
    if balance < Decimal("0.0001"):
        return "< 0.0001"
    return f"{balance:.{decimals}f}"


def generate_token_id() -> int:
    return random.randrange(1_000_000)
