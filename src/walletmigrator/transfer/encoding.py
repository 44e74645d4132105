"""ERC-20 call encoding and exact amount conversion.

Amounts never pass through float: a Decimal is rendered in fixed-point notation
and the fraction is cut to the token's decimals before becoming an integer.
"""

from decimal import Decimal

# ERC-20 ABI fragments
ERC20_TRANSFER_SELECTOR = "0xa9059cbb"  # transfer(address,uint256)

MAX_UINT256 = 2**256 - 1


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Convert a human-readable amount to integer base units.

    Extra precision beyond `decimals` is truncated (never rounded up), so the
    result never exceeds the amount actually held.

    Raises:
        ValueError: If amount is negative or not finite
    """
    amount = Decimal(amount)
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"Invalid token amount: {amount}")

    text = format(amount, "f")
    whole, _, fraction = text.partition(".")
    fraction = (fraction + "0" * decimals)[:decimals]
    return int(whole + fraction) if decimals else int(whole)


def encode_transfer(to_address: str, amount: int) -> str:
    """Encode transfer(address to, uint256 amount) calldata."""
    if amount < 0 or amount > MAX_UINT256:
        raise ValueError(f"Amount out of uint256 range: {amount}")
    to_padded = to_address.lower().replace("0x", "").zfill(64)
    amount_hex = hex(amount)[2:].zfill(64)
    return f"{ERC20_TRANSFER_SELECTOR}{to_padded}{amount_hex}"
